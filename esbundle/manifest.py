"""package.json handling for automatic externalization."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List, Mapping
import json
import logging

from .config_loader import ConfigurationError


logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_PATH = "./package.json"


class ManifestNotFoundError(ConfigurationError):
    """Raised when an explicitly requested manifest cannot be read."""

    def __init__(self, path: Path, reason: str | None = None) -> None:
        message = f"manifest not found: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path


def load_manifest(path: Path, *, explicit: bool) -> Mapping[str, Any]:
    """Decode the manifest at ``path``.

    At the default location a missing or malformed manifest is treated as
    empty; an explicit path raises :class:`ManifestNotFoundError`.
    """

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as exc:
        if explicit:
            raise ManifestNotFoundError(path) from exc
        logger.debug("no manifest at %s", path)
        return {}
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        if explicit:
            raise ManifestNotFoundError(path, str(exc)) from exc
        logger.debug("ignoring unreadable manifest %s: %s", path, exc)
        return {}

    if not isinstance(data, Mapping):
        if explicit:
            raise ManifestNotFoundError(path, "root is not an object")
        return {}
    return data


def dependency_names(manifest: Mapping[str, Any], *, include_peers: bool = False) -> List[str]:
    sections = ["dependencies"]
    if include_peers:
        sections.append("peerDependencies")
    names: List[str] = []
    for section in sections:
        entries = manifest.get(section)
        if isinstance(entries, Mapping):
            names.extend(str(name) for name in entries)
    return names


def _unique(names: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    result: List[str] = []
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        result.append(name)
    return result


def resolve_externals(
    externals: Iterable[str],
    *,
    external_dependencies: bool,
    manifest_path: Path,
    manifest_explicit: bool,
    include_peers: bool = False,
) -> List[str]:
    """Return the CLI externals plus, if requested, the manifest dependency names."""

    names = list(externals)
    if external_dependencies:
        manifest = load_manifest(manifest_path, explicit=manifest_explicit)
        dependencies = dependency_names(manifest, include_peers=include_peers)
        logger.debug("externalizing %d dependencies from %s", len(dependencies), manifest_path)
        names.extend(dependencies)
    return _unique(names)


__all__ = [
    "DEFAULT_MANIFEST_PATH",
    "ManifestNotFoundError",
    "dependency_names",
    "load_manifest",
    "resolve_externals",
]
