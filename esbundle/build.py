"""Build request model and dispatch to the bundler."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Protocol, Tuple
import logging

from .command_runner import CommandResult


logger = logging.getLogger(__name__)

PLATFORM = "node"
FORMATS = ("esm", "cjs", "iife")

COMMONJS_PLUGIN = "@chialab/esbuild-plugin-commonjs"
SERVE_PLUGIN = "@es-exec/esbuild-plugin-serve"

PRODUCTION_OPTIONS: Mapping[str, Any] = MappingProxyType(
    {
        "minify": True,
        "minifyIdentifiers": True,
        "minifySyntax": True,
        "minifyWhitespace": True,
        "legalComments": "none",
    }
)


class BuildMode(str, Enum):
    BUILD = "build"
    PRODUCTION = "production"
    WATCH = "watch"

    @classmethod
    def select(cls, *, production: bool, watch: bool) -> "BuildMode":
        if production:
            return cls.PRODUCTION
        if watch:
            return cls.WATCH
        return cls.BUILD


@dataclass(frozen=True, slots=True)
class PluginDescriptor:
    """An npm package whose default export builds an esbuild plugin."""

    module: str
    options: Mapping[str, Any] = field(default_factory=dict)

    def to_mapping(self) -> Dict[str, Any]:
        return {"module": self.module, "options": dict(self.options)}


def plugins_for(mode: BuildMode) -> Tuple[PluginDescriptor, ...]:
    plugins = [PluginDescriptor(COMMONJS_PLUGIN)]
    if mode is BuildMode.WATCH:
        plugins.append(PluginDescriptor(SERVE_PLUGIN))
    return tuple(plugins)


@dataclass(frozen=True, slots=True)
class BuildRequest:
    """Everything the bundler needs for one invocation."""

    entry_point: str
    outfile: str
    format: str
    define: Mapping[str, str]
    alias: Mapping[str, str]
    external: Tuple[str, ...]
    plugins: Tuple[PluginDescriptor, ...]
    mode: BuildMode = BuildMode.BUILD
    # exact import path -> file; imports missing from it are looked up under redirect_roots at build time
    redirects: Mapping[str, str] = field(default_factory=dict)
    redirect_roots: Mapping[str, str] = field(default_factory=dict)
    platform: str = PLATFORM

    def __post_init__(self) -> None:
        if self.format not in FORMATS:
            raise ValueError(f"Unsupported module format '{self.format}', expected one of {', '.join(FORMATS)}")
        object.__setattr__(self, "define", MappingProxyType(dict(self.define)))
        object.__setattr__(self, "alias", MappingProxyType(dict(self.alias)))
        object.__setattr__(self, "redirects", MappingProxyType(dict(self.redirects)))
        object.__setattr__(self, "redirect_roots", MappingProxyType(dict(self.redirect_roots)))

    @property
    def minify(self) -> bool:
        return self.mode is BuildMode.PRODUCTION

    def to_options(self) -> Dict[str, Any]:
        """Render the esbuild options object (plugins are passed separately)."""

        options: Dict[str, Any] = {
            "entryPoints": [self.entry_point],
            "outfile": self.outfile,
            "platform": self.platform,
            "format": self.format,
            "bundle": True,
            "define": dict(self.define),
            "external": list(self.external),
        }
        if self.alias:
            options["alias"] = dict(self.alias)
        if self.minify:
            options.update(PRODUCTION_OPTIONS)
        return options

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "options": self.to_options(),
            "plugins": [plugin.to_mapping() for plugin in self.plugins],
            "redirects": {"paths": dict(self.redirects), "roots": dict(self.redirect_roots)},
        }


class WatchHandle(Protocol):
    def watch(self) -> CommandResult: ...


class Bundler(Protocol):
    def build(self, request: BuildRequest) -> CommandResult: ...

    def context(self, request: BuildRequest) -> WatchHandle: ...


class BuildEngine:
    """Hands a resolved request to the bundler in the mode it asks for."""

    def __init__(self, *, bundler: Bundler) -> None:
        self._bundler = bundler

    def dispatch(self, request: BuildRequest) -> CommandResult:
        if request.mode is BuildMode.WATCH:
            logger.debug("opening watch context for %s", request.entry_point)
            return self._bundler.context(request).watch()
        logger.debug("%s build of %s -> %s", request.mode.value, request.entry_point, request.outfile)
        return self._bundler.build(request)


__all__ = [
    "BuildEngine",
    "BuildMode",
    "BuildRequest",
    "Bundler",
    "COMMONJS_PLUGIN",
    "FORMATS",
    "PLATFORM",
    "PRODUCTION_OPTIONS",
    "PluginDescriptor",
    "SERVE_PLUGIN",
    "WatchHandle",
    "plugins_for",
]
