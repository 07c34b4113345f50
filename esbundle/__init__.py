"""esbundle: resolve build settings for a Node.js app and hand them to esbuild."""
from __future__ import annotations

from .build import BuildEngine, BuildMode, BuildRequest, PluginDescriptor
from .cli import main
from .resolver import CliArguments, ConfigResolver, resolve_build_request

__all__ = [
    "BuildEngine",
    "BuildMode",
    "BuildRequest",
    "CliArguments",
    "ConfigResolver",
    "PluginDescriptor",
    "main",
    "resolve_build_request",
]
