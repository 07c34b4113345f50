from __future__ import annotations

from pathlib import Path
import json
import os
import tempfile
import textwrap
import unittest

from esbundle.build import COMMONJS_PLUGIN, SERVE_PLUGIN, BuildMode
from esbundle.config_loader import load_build_config
from esbundle.resolver import CliArguments, ConfigResolver, resolve_build_request


class ResolverTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        self._previous_cwd = os.getcwd()
        os.chdir(self.root)

    def tearDown(self) -> None:
        os.chdir(self._previous_cwd)
        self.temp_dir.cleanup()


class EndToEndResolutionTests(ResolverTestCase):
    def test_production_without_config_or_env(self) -> None:
        config = load_build_config(Path("server.config.json"), explicit=False)
        request = ConfigResolver(config).resolve(CliArguments(file="app.ts", production=True))

        self.assertEqual(request.entry_point, "app.ts")
        self.assertEqual(request.outfile, "dist/index.js")
        self.assertEqual(request.platform, "node")
        self.assertEqual(request.format, "esm")
        self.assertIs(request.mode, BuildMode.PRODUCTION)
        self.assertEqual({key.rsplit(".", 1)[1] for key in request.define}, {"NODE_ENV"})
        self.assertEqual(set(request.define.values()), {'"production"'})
        self.assertEqual(dict(request.alias), {})
        self.assertEqual(request.external, ())

    def test_development_build(self) -> None:
        request = resolve_build_request(CliArguments(file="app.ts"))
        self.assertIs(request.mode, BuildMode.BUILD)
        self.assertEqual(request.define["import.meta.env.NODE_ENV"], '"development"')
        self.assertFalse(request.minify)
        self.assertNotIn("minify", request.to_options())
        self.assertEqual([plugin.module for plugin in request.plugins], [COMMONJS_PLUGIN])

    def test_watch_adds_serve_plugin(self) -> None:
        request = resolve_build_request(CliArguments(file="app.ts", watch=True))
        self.assertIs(request.mode, BuildMode.WATCH)
        self.assertEqual([plugin.module for plugin in request.plugins], [COMMONJS_PLUGIN, SERVE_PLUGIN])

    def test_production_wins_over_watch(self) -> None:
        request = resolve_build_request(CliArguments(file="app.ts", watch=True, production=True))
        self.assertIs(request.mode, BuildMode.PRODUCTION)
        options = request.to_options()
        self.assertTrue(options["minify"])
        self.assertTrue(options["minifyIdentifiers"])
        self.assertTrue(options["minifySyntax"])
        self.assertTrue(options["minifyWhitespace"])
        self.assertEqual(options["legalComments"], "none")
        self.assertTrue(options["bundle"])

    def test_env_file_in_working_directory(self) -> None:
        (self.root / ".env").write_text("PORT=8080\nHOST=localhost\n", encoding="utf-8")
        request = resolve_build_request(CliArguments(file="app.ts", bundle_env_vars=True))
        self.assertEqual(request.define["import.meta.env.PORT"], "8080")
        self.assertEqual(request.define["process.env.HOST"], '"localhost"')


class ConfigRelativePathTests(ResolverTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.app_dir = self.root / "services" / "api"
        (self.app_dir / "src").mkdir(parents=True)
        (self.app_dir / "lib").mkdir()
        (self.app_dir / "lib" / "db.ts").write_text("export {}", encoding="utf-8")
        (self.app_dir / ".env.api").write_text("API_KEY=secret\n", encoding="utf-8")
        (self.root / ".env.api").write_text("API_KEY=wrong\n", encoding="utf-8")
        self.config_path = self.app_dir / "server.config.json"
        self.config_path.write_text(
            textwrap.dedent(
                """
                {
                    "references": [
                        {"module": "@shared", "path": "../shared/index.ts"}
                    ]
                }
                """
            ),
            encoding="utf-8",
        )

    def _resolver(self) -> ConfigResolver:
        return ConfigResolver(load_build_config(self.config_path, explicit=True))

    def test_file_and_env_resolve_against_config_directory(self) -> None:
        args = CliArguments(file="src/index.ts", env_file=".env.api", config=str(self.config_path), config_explicit=True)
        request = self._resolver().resolve(args)
        self.assertEqual(Path(request.entry_point), self.app_dir / "src" / "index.ts")
        self.assertEqual(request.define["import.meta.env.API_KEY"], '"secret"')

    def test_alias_table_from_references(self) -> None:
        request = self._resolver().resolve(CliArguments(file="src/index.ts"))
        self.assertEqual(dict(request.alias), {"@shared": str(self.root / "services" / "shared" / "index.ts")})

    def test_redirects_stay_out_of_alias_table(self) -> None:
        args = CliArguments(file="src/index.ts", paths={"@lib": "lib"})
        request = self._resolver().resolve(args)
        self.assertEqual(request.redirects["@lib/db"], str(self.app_dir / "lib" / "db.ts"))
        self.assertEqual(dict(request.redirect_roots), {"@lib": str(self.app_dir / "lib")})
        self.assertEqual(list(request.alias), ["@shared"])

    def test_bare_prefix_without_index_is_not_redirected(self) -> None:
        request = self._resolver().resolve(CliArguments(file="src/index.ts", paths={"@lib": "lib"}))
        self.assertNotIn("@lib", request.redirects)
        self.assertNotIn("@lib/missing", request.redirects)

    def test_references_shadow_redirects(self) -> None:
        args = CliArguments(file="src/index.ts", paths={"@shared": "lib"})
        request = self._resolver().resolve(args)
        self.assertNotIn("@shared/db", request.redirects)
        self.assertIn("@shared", request.alias)

    def test_dev_only_redirects_skipped_in_production(self) -> None:
        args = CliArguments(file="src/index.ts", paths={"@lib": "lib"}, paths_dev_only=True, production=True)
        request = self._resolver().resolve(args)
        self.assertEqual(dict(request.redirects), {})
        self.assertEqual(dict(request.redirect_roots), {})
        dev = self._resolver().resolve(CliArguments(file="src/index.ts", paths={"@lib": "lib"}, paths_dev_only=True))
        self.assertIn("@lib/db", dev.redirects)


class ExternalsResolutionTests(ResolverTestCase):
    def test_dependencies_from_default_manifest(self) -> None:
        (self.root / "package.json").write_text(json.dumps({"dependencies": {"express": "4", "pg": "8"}}), encoding="utf-8")
        request = resolve_build_request(
            CliArguments(file="app.ts", external=("pg", "sharp"), external_dependencies=True)
        )
        self.assertEqual(request.external, ("pg", "sharp", "express"))

    def test_missing_default_manifest_is_tolerated(self) -> None:
        request = resolve_build_request(CliArguments(file="app.ts", external_dependencies=True))
        self.assertEqual(request.external, ())


class BuildRequestTests(unittest.TestCase):
    def test_request_is_immutable(self) -> None:
        request = resolve_build_request(CliArguments(file="/abs/app.ts"))
        with self.assertRaises(Exception):
            request.outfile = "elsewhere.js"  # type: ignore[misc]
        with self.assertRaises(TypeError):
            request.define["import.meta.env.X"] = "1"  # type: ignore[index]

    def test_rejects_unknown_format(self) -> None:
        with self.assertRaises(ValueError):
            resolve_build_request(CliArguments(file="app.ts", format="umd"))


class CliArgumentsTests(unittest.TestCase):
    def test_paths_are_frozen_pairs(self) -> None:
        source = {"@app": "src"}
        args = CliArguments(file="app.ts", paths=source, external=["pg"])
        source["@other"] = "lib"
        self.assertEqual(args.paths, (("@app", "src"),))
        self.assertEqual(args.external, ("pg",))
        self.assertEqual(hash(args), hash(CliArguments(file="app.ts", paths={"@app": "src"}, external=("pg",))))


if __name__ == "__main__":
    unittest.main()
