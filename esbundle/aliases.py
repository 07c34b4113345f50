"""Alias table and custom module-path redirection."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, Sequence
import glob
import logging

from .config_loader import BuildConfig


logger = logging.getLogger(__name__)

ResolutionStrategy = Callable[[Path, str], Path | None]
"""Given a redirect directory and the import remainder, return a match or ``None``."""


def _first_file(candidates: Iterable[Path]) -> Path | None:
    matches = sorted(path for path in candidates if path.is_file())
    return matches[0] if matches else None


def exact_file(directory: Path, name: str) -> Path | None:
    if not name:
        return None
    candidate = directory / name
    return candidate if candidate.is_file() else None


def extension_glob(directory: Path, name: str) -> Path | None:
    if not name:
        return None
    target = directory / name
    if not target.parent.is_dir():
        return None
    return _first_file(target.parent.glob(f"{glob.escape(target.name)}.*"))


def index_glob(directory: Path, name: str) -> Path | None:
    folder = directory / name if name else directory
    if not folder.is_dir():
        return None
    return _first_file(folder.glob("index.*"))


DEFAULT_STRATEGIES: tuple[ResolutionStrategy, ...] = (exact_file, extension_glob, index_glob)


class ModulePathResolver:
    """Redirects imports under a prefix to files inside a directory.

    The strategies are tried in order and the first match wins; an import
    that matches no prefix, or no file, is returned unchanged.
    """

    def __init__(
        self,
        redirects: Mapping[str, Path],
        *,
        strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        # longest prefix first so "@app/ui" beats "@app"
        self._redirects = sorted(redirects.items(), key=lambda item: len(item[0]), reverse=True)
        self._strategies = tuple(strategies)

    @property
    def redirects(self) -> Dict[str, Path]:
        return dict(self._redirects)

    def _split(self, import_path: str) -> tuple[Path, str] | None:
        for prefix, directory in self._redirects:
            if import_path == prefix:
                return directory, ""
            if import_path.startswith(prefix.rstrip("/") + "/"):
                return directory, import_path[len(prefix.rstrip("/")) + 1:]
        return None

    def lookup(self, directory: Path, name: str) -> Path | None:
        for strategy in self._strategies:
            found = strategy(directory, name)
            if found is not None:
                return found
        return None

    def resolve(self, import_path: str) -> str:
        split = self._split(import_path)
        if split is None:
            return import_path
        directory, name = split
        found = self.lookup(directory, name)
        if found is None:
            logger.debug("no file for %s under %s, left unchanged", import_path, directory)
            return import_path
        return str(found)


def _candidate_names(directory: Path) -> list[str]:
    names: set[str] = {""}
    for path in directory.rglob("*"):
        relative = path.relative_to(directory)
        if "node_modules" in relative.parts:
            continue
        if path.is_dir():
            names.add(relative.as_posix())
            continue
        names.add(relative.as_posix())
        if relative.suffix:
            names.add(relative.with_suffix("").as_posix())
    return sorted(names)


def expand_redirects(resolver: ModulePathResolver) -> Dict[str, str]:
    """Enumerate every import path the resolver can redirect.

    The table is matched exactly, never by prefix, so an import that is not
    listed keeps its normal resolution.
    """

    table: Dict[str, str] = {}
    for prefix, directory in sorted(resolver.redirects.items()):
        if not directory.is_dir():
            logger.debug("redirect directory %s for %s does not exist", directory, prefix)
            continue
        base = prefix.rstrip("/")
        for name in _candidate_names(directory):
            import_path = f"{base}/{name}" if name else base
            resolved = resolver.resolve(import_path)
            if resolved != import_path:
                table.setdefault(import_path, resolved)
    return table


def _resolve_against(base: Path | None, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute() and base is not None:
        path = base / path
    return path.resolve()


def build_alias_table(config: BuildConfig) -> Dict[str, str]:
    """Map each ``references`` entry's module to its path, relative to the config directory."""

    table: Dict[str, str] = {}
    for reference in config.references:
        table[reference.module] = str(_resolve_against(config.directory, reference.path))
    return table


def build_redirect_resolver(paths: Mapping[str, str], *, base: Path | None) -> ModulePathResolver:
    return ModulePathResolver({prefix: _resolve_against(base, target) for prefix, target in paths.items()})


__all__ = [
    "DEFAULT_STRATEGIES",
    "ModulePathResolver",
    "ResolutionStrategy",
    "build_alias_table",
    "build_redirect_resolver",
    "exact_file",
    "expand_redirects",
    "extension_glob",
    "index_glob",
]
