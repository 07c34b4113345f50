from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from esbundle.config_loader import (
    BuildConfig,
    ConfigurationError,
    Reference,
    load_build_config,
    normalize_path_mapping,
    normalize_string_list,
)


class LoadBuildConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_missing_default_config_is_empty(self) -> None:
        config = load_build_config(self.root / "server.config.json", explicit=False)
        self.assertFalse(config.located)
        self.assertIsNone(config.directory)
        self.assertEqual(config.values, {})
        self.assertEqual(config.references, [])

    def test_unparsable_default_config_is_empty(self) -> None:
        path = self.root / "server.config.json"
        path.write_text("{ not json", encoding="utf-8")
        config = load_build_config(path, explicit=False)
        self.assertFalse(config.located)

    def test_missing_explicit_config_is_fatal(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            load_build_config(self.root / "custom.json", explicit=True)
        self.assertIn("custom.json", str(ctx.exception))

    def test_unparsable_explicit_config_is_fatal(self) -> None:
        path = self.root / "custom.json"
        path.write_text("[1, 2", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_build_config(path, explicit=True)

    def test_non_mapping_explicit_config_is_fatal(self) -> None:
        path = self.root / "custom.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_build_config(path, explicit=True)

    def test_json_config_with_references(self) -> None:
        config_dir = self.root / "app"
        config_dir.mkdir()
        path = config_dir / "server.config.json"
        path.write_text(
            textwrap.dedent(
                """
                {
                    "file": "src/index.ts",
                    "production": true,
                    "references": [
                        {"module": "@shared", "path": "../shared/index.ts", "external": false}
                    ]
                }
                """
            ).strip(),
            encoding="utf-8",
        )
        config = load_build_config(path, explicit=False)
        self.assertTrue(config.located)
        self.assertEqual(config.directory, config_dir.resolve())
        self.assertEqual(config.values, {"file": "src/index.ts", "production": True})
        self.assertEqual(config.references, [Reference(module="@shared", path="../shared/index.ts")])

    def test_yaml_config(self) -> None:
        path = self.root / "server.config.yaml"
        path.write_text(
            textwrap.dedent(
                """
                file: main.ts
                external:
                  - pg
                  - redis
                """
            ),
            encoding="utf-8",
        )
        config = load_build_config(path, explicit=True)
        self.assertEqual(config.values, {"file": "main.ts", "external": ["pg", "redis"]})

    def test_toml_config(self) -> None:
        path = self.root / "server.config.toml"
        path.write_text('file = "main.ts"\nbundleEnvVars = true\n', encoding="utf-8")
        config = load_build_config(path, explicit=True)
        self.assertEqual(config.values, {"file": "main.ts", "bundleEnvVars": True})

    def test_malformed_reference_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            BuildConfig.from_mapping({"references": [{"module": "@a"}]})
        with self.assertRaises(ConfigurationError):
            BuildConfig.from_mapping({"references": "nope"})


class NormalizationTests(unittest.TestCase):
    def test_string_list(self) -> None:
        self.assertEqual(normalize_string_list(None, field_name="external"), [])
        self.assertEqual(normalize_string_list(" pg ", field_name="external"), ["pg"])
        self.assertEqual(normalize_string_list(["a", " ", "b"], field_name="external"), ["a", "b"])
        with self.assertRaises(ConfigurationError):
            normalize_string_list([1], field_name="external")
        with self.assertRaises(ConfigurationError):
            normalize_string_list(3, field_name="external")

    def test_path_mapping(self) -> None:
        self.assertEqual(normalize_path_mapping({"@app": "src"}, field_name="paths"), {"@app": "src"})
        self.assertEqual(
            normalize_path_mapping(["@app=src", "~lib = lib "], field_name="paths"),
            {"@app": "src", "~lib": "lib"},
        )
        with self.assertRaises(ConfigurationError):
            normalize_path_mapping(["@app"], field_name="paths")


if __name__ == "__main__":
    unittest.main()
