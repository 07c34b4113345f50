"""Environment file parsing and the compile-time define map."""
from __future__ import annotations

from io import StringIO
from pathlib import Path
from typing import Dict, Mapping
import json
import logging
import math
import re

from dotenv import dotenv_values


logger = logging.getLogger(__name__)

MODE_KEY = "NODE_ENV"
IMPORT_META_NAMESPACE = "import.meta.env"
PROCESS_NAMESPACE = "process.env"

_KEY_PATTERN = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
# JSON number grammar: esbuild define replacements must be JSON values or identifiers.
_NUMBER_PATTERN = re.compile(r"-?(?:0|[1-9][0-9]*)(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?")


def is_numeric_literal(value: str) -> bool:
    """Return True when ``value`` as a whole is a finite JSON number."""

    if not _NUMBER_PATTERN.fullmatch(value):
        return False
    return math.isfinite(float(value))


def to_literal(value: str) -> str:
    """Render ``value`` as replacement text: bare if numeric, else a quoted string."""

    if is_numeric_literal(value):
        return value
    return json.dumps(value)


def parse_env(content: str) -> Dict[str, str]:
    """Parse dotenv ``content``, skipping entries that cannot become define names.

    Values are taken literally; ``${VAR}`` references are not expanded.
    """

    values: Dict[str, str] = {}
    parsed = dotenv_values(stream=StringIO(content.removeprefix("\ufeff")), interpolate=False)
    for key, value in parsed.items():
        if value is None:
            logger.debug("env entry '%s' has no value, skipped", key)
            continue
        if not _KEY_PATTERN.fullmatch(key):
            logger.debug("env entry '%s' is not a usable name, skipped", key)
            continue
        values[key] = value
    return values


def parse_env_file(path: Path) -> Dict[str, str]:
    """Parse the env file at ``path``; a missing or unreadable file yields no entries."""

    try:
        content = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        logger.debug("no env file at %s", path)
        return {}
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("ignoring unreadable env file %s: %s", path, exc)
        return {}
    return parse_env(content)


class DefineMap:
    """Accumulates define entries under the ``import.meta.env`` and ``process.env`` namespaces."""

    def __init__(self, *, bundle_env_vars: bool = False) -> None:
        self._bundle_env_vars = bundle_env_vars
        self._entries: Dict[str, str] = {}

    def add(self, name: str, value: str, *, process: bool | None = None) -> None:
        literal = to_literal(value)
        self._entries[f"{IMPORT_META_NAMESPACE}.{name}"] = literal
        include_process = self._bundle_env_vars if process is None else process
        if include_process:
            self._entries[f"{PROCESS_NAMESPACE}.{name}"] = literal

    def update(self, values: Mapping[str, str]) -> None:
        for name, value in values.items():
            self.add(name, value)

    def export(self) -> Dict[str, str]:
        return dict(self._entries)


def mode_name(production: bool) -> str:
    return "production" if production else "development"


def build_define_map(
    env_file: Path | None,
    *,
    production: bool,
    bundle_env_vars: bool,
) -> Dict[str, str]:
    """Build the define map from ``env_file`` plus the always-present mode key."""

    defines = DefineMap(bundle_env_vars=bundle_env_vars)
    if env_file is not None:
        entries = parse_env_file(env_file)
        logger.debug("loaded %d env entries from %s", len(entries), env_file)
        defines.update(entries)
    defines.add(MODE_KEY, mode_name(production), process=True)
    return defines.export()


__all__ = [
    "DefineMap",
    "IMPORT_META_NAMESPACE",
    "MODE_KEY",
    "PROCESS_NAMESPACE",
    "build_define_map",
    "is_numeric_literal",
    "mode_name",
    "parse_env",
    "parse_env_file",
    "to_literal",
]
