"""Resolution of CLI arguments and config into a single :class:`BuildRequest`."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Tuple
import logging

from .aliases import build_alias_table, build_redirect_resolver, expand_redirects
from .build import BuildMode, BuildRequest, plugins_for
from .config_loader import DEFAULT_CONFIG_PATH, BuildConfig
from .environment import build_define_map
from .manifest import DEFAULT_MANIFEST_PATH, resolve_externals


logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"
DEFAULT_DIST = "dist/index.js"
DEFAULT_FORMAT = "esm"


@dataclass(frozen=True, slots=True)
class CliArguments:
    file: str
    dist: str = DEFAULT_DIST
    config: str = DEFAULT_CONFIG_PATH
    config_explicit: bool = False
    env_file: str = DEFAULT_ENV_FILE
    format: str = DEFAULT_FORMAT
    watch: bool = False
    production: bool = False
    external: Tuple[str, ...] = ()
    external_dependencies: bool = False
    external_peer_dependencies: bool = False
    package_json: str = DEFAULT_MANIFEST_PATH
    package_json_explicit: bool = False
    bundle_env_vars: bool = False
    # a mapping is accepted and stored as (prefix, directory) pairs
    paths: Tuple[Tuple[str, str], ...] = ()
    paths_dev_only: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "external", tuple(self.external))
        paths = self.paths.items() if isinstance(self.paths, Mapping) else self.paths
        object.__setattr__(self, "paths", tuple((prefix, target) for prefix, target in paths))

    @property
    def mode(self) -> BuildMode:
        return BuildMode.select(production=self.production, watch=self.watch)


def _relative_to(base: Path | None, value: str) -> Path:
    path = Path(value)
    if base is None or path.is_absolute():
        return path
    return base / path


class ConfigResolver:
    """Derives the bundler request from parsed arguments and the decoded config."""

    def __init__(self, config: BuildConfig) -> None:
        self._config = config

    @property
    def config(self) -> BuildConfig:
        return self._config

    def input_file(self, args: CliArguments) -> Path:
        return _relative_to(self._config.directory, args.file)

    def env_file(self, args: CliArguments) -> Path:
        return _relative_to(self._config.directory, args.env_file)

    def define_map(self, args: CliArguments) -> Dict[str, str]:
        env_file = self.env_file(args)
        return build_define_map(
            env_file if env_file.is_file() else None,
            production=args.production,
            bundle_env_vars=args.bundle_env_vars,
        )

    def externals(self, args: CliArguments) -> Tuple[str, ...]:
        return tuple(
            resolve_externals(
                args.external,
                external_dependencies=args.external_dependencies,
                manifest_path=Path(args.package_json),
                manifest_explicit=args.package_json_explicit,
                include_peers=args.external_peer_dependencies,
            )
        )

    def alias_table(self, args: CliArguments) -> Dict[str, str]:
        return build_alias_table(self._config)

    def redirects(self, args: CliArguments) -> Tuple[Dict[str, str], Dict[str, str]]:
        """Return the exact redirect table and the prefix -> directory roots behind it.

        Entries under a ``references`` module are dropped so the alias wins.
        """

        if not args.paths:
            return {}, {}
        if args.paths_dev_only and args.production:
            logger.debug("skipping module path redirection for production build")
            return {}, {}
        resolver = build_redirect_resolver(dict(args.paths), base=self._config.directory)
        modules = [reference.module for reference in self._config.references]
        table = {
            import_path: target
            for import_path, target in expand_redirects(resolver).items()
            if not any(import_path == module or import_path.startswith(f"{module}/") for module in modules)
        }
        return table, {prefix: str(directory) for prefix, directory in resolver.redirects.items()}

    def resolve(self, args: CliArguments) -> BuildRequest:
        mode = args.mode
        redirects, redirect_roots = self.redirects(args)
        return BuildRequest(
            entry_point=str(self.input_file(args)),
            outfile=args.dist,
            format=args.format,
            define=self.define_map(args),
            alias=self.alias_table(args),
            external=self.externals(args),
            plugins=plugins_for(mode),
            mode=mode,
            redirects=redirects,
            redirect_roots=redirect_roots,
        )


def resolve_build_request(args: CliArguments, config: BuildConfig | None = None) -> BuildRequest:
    return ConfigResolver(config or BuildConfig()).resolve(args)


__all__ = [
    "CliArguments",
    "ConfigResolver",
    "DEFAULT_DIST",
    "DEFAULT_ENV_FILE",
    "DEFAULT_FORMAT",
    "resolve_build_request",
]
