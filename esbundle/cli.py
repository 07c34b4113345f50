"""Command line interface for esbundle."""
from __future__ import annotations

from argparse import ArgumentParser, BooleanOptionalAction, Namespace
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List
import json
import logging
import sys

from .build import FORMATS, BuildEngine, BuildMode, BuildRequest
from .bundler import DRIVER_PLACEHOLDER, DRIVER_SOURCE, BundlerNotFoundError, NodeBundler
from .command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner
from .config_loader import (
    DEFAULT_CONFIG_PATH,
    BuildConfig,
    ConfigurationError,
    load_build_config,
    normalize_path_mapping,
    normalize_string_list,
)
from .manifest import DEFAULT_MANIFEST_PATH
from .resolver import DEFAULT_DIST, DEFAULT_ENV_FILE, DEFAULT_FORMAT, CliArguments, ConfigResolver


PROG = "esbundle"

logger = logging.getLogger(__name__)


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"config value '{key}' must be true or false")
    return value


def _as_str(key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"config value '{key}' must be a non-empty string")
    return value


def _as_format(key: str, value: Any) -> str:
    text = _as_str(key, value)
    if text not in FORMATS:
        raise ConfigurationError(f"config value '{key}' must be one of {', '.join(FORMATS)}")
    return text


@dataclass(frozen=True, slots=True)
class _Setting:
    dest: str
    config_key: str
    coerce: Callable[[str, Any], Any]
    default: Any


_SETTINGS: tuple[_Setting, ...] = (
    _Setting("file", "file", _as_str, None),
    _Setting("dist", "dist", _as_str, DEFAULT_DIST),
    _Setting("env_file", "envFile", _as_str, DEFAULT_ENV_FILE),
    _Setting("watch", "watch", _as_bool, False),
    _Setting("production", "production", _as_bool, False),
    _Setting("format", "format", _as_format, DEFAULT_FORMAT),
    _Setting("external", "external", lambda key, value: normalize_string_list(value, field_name=key), []),
    _Setting("external_dependencies", "externalDependencies", _as_bool, False),
    _Setting("external_peer_dependencies", "externalPeerDependencies", _as_bool, False),
    _Setting("package_json", "packageJson", _as_str, DEFAULT_MANIFEST_PATH),
    _Setting("bundle_env_vars", "bundleEnvVars", _as_bool, False),
    _Setting("paths", "paths", lambda key, value: normalize_path_mapping(value, field_name=key), {}),
    _Setting("paths_dev_only", "pathsDevOnly", _as_bool, False),
)
_KNOWN_CONFIG_KEYS = {setting.config_key for setting in _SETTINGS} | {"config"}


def _build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog=PROG, description="Bundle a Node.js application with esbuild")
    parser.add_argument(
        "-c",
        "--config",
        help=f"Config file whose keys act as defaults for these flags (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--envFile", dest="env_file", help=".env file from which environment variables will be imported")
    parser.add_argument("-f", "--file", help="Index file to be used as source")
    parser.add_argument("-d", "-o", "--dist", "--out", dest="dist", help=f"The compiled file name (default: {DEFAULT_DIST})")
    parser.add_argument(
        "-w",
        "--watch",
        action=BooleanOptionalAction,
        default=None,
        help="Recompile and restart the app when code changes",
    )
    parser.add_argument(
        "-p",
        "--production",
        action=BooleanOptionalAction,
        default=None,
        help="Minify the output, drop all comments (legal ones included) and do not run the app",
    )
    parser.add_argument("--format", choices=FORMATS, help=f"The module format for the out file (default: {DEFAULT_FORMAT})")
    parser.add_argument(
        "-e",
        "--ext",
        "--external",
        dest="external",
        action="append",
        nargs="+",
        metavar="NAME",
        help="Mark a file or package as external; the import is preserved and evaluated at run time",
    )
    parser.add_argument(
        "--externalDependencies",
        dest="external_dependencies",
        action=BooleanOptionalAction,
        default=None,
        help="Mark every dependency listed in package.json as external",
    )
    parser.add_argument(
        "--externalPeerDependencies",
        dest="external_peer_dependencies",
        action=BooleanOptionalAction,
        default=None,
        help="With --externalDependencies, also mark peerDependencies as external",
    )
    parser.add_argument("--packageJson", dest="package_json", help=f"package.json to read dependencies from (default: {DEFAULT_MANIFEST_PATH})")
    parser.add_argument(
        "--bundleEnvVars",
        dest="bundle_env_vars",
        action=BooleanOptionalAction,
        default=None,
        help="Also bundle the env file into process.env; import.meta.env is always bundled",
    )
    parser.add_argument(
        "--paths",
        action="append",
        metavar="PREFIX=DIR",
        help="Redirect imports starting with PREFIX to files inside DIR",
    )
    parser.add_argument(
        "--pathsDevOnly",
        dest="paths_dev_only",
        action=BooleanOptionalAction,
        default=None,
        help="Skip --paths redirection in production builds",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the bundler command without executing it")
    parser.add_argument("--show-request", action="store_true", help="Print the resolved build request as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _config_defaults(config: BuildConfig) -> Dict[str, Any]:
    defaults: Dict[str, Any] = {}
    for setting in _SETTINGS:
        if setting.config_key in config.values:
            defaults[setting.dest] = setting.coerce(setting.config_key, config.values[setting.config_key])
    for key in sorted(set(config.values) - _KNOWN_CONFIG_KEYS):
        logger.debug("ignoring unknown config key '%s'", key)
    return defaults


def _flatten(groups: Iterable[Iterable[str]]) -> List[str]:
    return [value for group in groups for value in group if value]


def _cli_values(args: Namespace) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for setting in _SETTINGS:
        value = getattr(args, setting.dest, None)
        if value is None:
            continue
        if setting.dest == "external":
            value = _flatten(value)
        elif setting.dest == "paths":
            value = normalize_path_mapping(value, field_name="--paths")
        values[setting.dest] = value
    return values


def merge_arguments(args: Namespace, config: BuildConfig) -> CliArguments:
    """Combine explicit flags, config defaults and built-in defaults, in that order."""

    cli_values = _cli_values(args)
    config_values = _config_defaults(config)
    merged: Dict[str, Any] = {}
    for setting in _SETTINGS:
        if setting.dest in cli_values:
            merged[setting.dest] = cli_values[setting.dest]
        elif setting.dest in config_values:
            merged[setting.dest] = config_values[setting.dest]
        else:
            merged[setting.dest] = setting.default

    return CliArguments(
        file=merged["file"],
        dist=merged["dist"],
        config=args.config or DEFAULT_CONFIG_PATH,
        config_explicit=args.config is not None,
        env_file=merged["env_file"],
        format=merged["format"],
        watch=merged["watch"],
        production=merged["production"],
        external=tuple(merged["external"]),
        external_dependencies=merged["external_dependencies"],
        external_peer_dependencies=merged["external_peer_dependencies"],
        package_json=merged["package_json"],
        package_json_explicit=Path(merged["package_json"]) != Path(DEFAULT_MANIFEST_PATH),
        bundle_env_vars=merged["bundle_env_vars"],
        paths=tuple(merged["paths"].items()),
        paths_dev_only=merged["paths_dev_only"],
    )


def _emit_request(request: BuildRequest) -> None:
    print(json.dumps(request.to_mapping(), indent=2))


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace, substitutions={DRIVER_SOURCE: DRIVER_PLACEHOLDER}):
        print(line)


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))
    _configure_logging(args.verbose)
    workspace = Path.cwd()

    try:
        config = load_build_config(Path(args.config or DEFAULT_CONFIG_PATH), explicit=args.config is not None)
        arguments = merge_arguments(args, config)
    except ConfigurationError as exc:
        print(f"{PROG}: error: {exc}", file=sys.stderr)
        return 1

    if not arguments.file:
        parser.error("the following arguments are required: -f/--file")

    try:
        return _handle_build(arguments, config, workspace=workspace, dry_run=args.dry_run, show_request=args.show_request)
    except (ConfigurationError, BundlerNotFoundError, CommandError, OSError) as exc:
        print(f"{PROG}: error: {exc}", file=sys.stderr)
        return 1


def _handle_build(
    arguments: CliArguments,
    config: BuildConfig,
    *,
    workspace: Path,
    dry_run: bool,
    show_request: bool,
) -> int:
    request = ConfigResolver(config).resolve(arguments)
    if show_request:
        _emit_request(request)

    runner: SubprocessCommandRunner | RecordingCommandRunner
    if dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()

    engine = BuildEngine(bundler=NodeBundler(runner, cwd=workspace, locate=not dry_run))
    if request.mode is BuildMode.WATCH:
        print(f"watching {arguments.file}...")
    engine.dispatch(request)

    if dry_run and isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, workspace=workspace)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
