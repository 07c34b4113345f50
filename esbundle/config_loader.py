"""Configuration file loading and normalization."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence
import json
import logging
import tomllib

import yaml


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "server.config.json"

ConfigLoader = Callable[[Any], Any]


class ConfigurationError(ValueError):
    """Raised when a required configuration input is absent or malformed."""


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".json": lambda stream: json.load(stream),
    ".toml": lambda stream: tomllib.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".yml": lambda stream: yaml.safe_load(stream),
}
"""Mapping of file suffixes to loader callables. Unknown suffixes are read as JSON."""

_DECODE_ERRORS = (json.JSONDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError, UnicodeDecodeError)


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix, FILE_LOADERS[".json"])

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    with path.open(mode, **kwargs) as handle:
        data = loader(handle)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def normalize_string_list(value: Any, *, field_name: str) -> List[str]:
    """Coerce ``value`` into a list of trimmed, non-empty strings."""

    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    if isinstance(value, Sequence):
        items: List[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigurationError(f"{field_name} entries must be strings")
            text = item.strip()
            if text:
                items.append(text)
        return items
    raise ConfigurationError(f"{field_name} must be a string or a list of strings")


def normalize_path_mapping(value: Any, *, field_name: str) -> Dict[str, str]:
    """Coerce ``PREFIX=DIR`` strings or a mapping into a prefix → directory dict."""

    if value is None:
        return {}
    if isinstance(value, Mapping):
        result: Dict[str, str] = {}
        for key, target in value.items():
            if not isinstance(key, str) or not isinstance(target, str):
                raise ConfigurationError(f"{field_name} must map strings to strings")
            result[key.strip()] = target.strip()
        return result

    result = {}
    for entry in normalize_string_list(value, field_name=field_name):
        prefix, sep, target = entry.partition("=")
        if not sep or not prefix.strip() or not target.strip():
            raise ConfigurationError(f"{field_name} entries must look like PREFIX=DIR, got '{entry}'")
        result[prefix.strip()] = target.strip()
    return result


@dataclass(frozen=True, slots=True)
class Reference:
    """One ``references`` entry: a logical module name and the path it maps to."""

    module: str
    path: str

    @classmethod
    def from_value(cls, value: Any) -> "Reference":
        if not isinstance(value, Mapping):
            raise ConfigurationError("references entries must be objects with 'module' and 'path'")
        module = value.get("module")
        path = value.get("path")
        if not isinstance(module, str) or not module.strip():
            raise ConfigurationError("references entries must include a non-empty 'module'")
        if not isinstance(path, str) or not path.strip():
            raise ConfigurationError(f"references entry '{module}' must include a non-empty 'path'")
        return cls(module=module.strip(), path=path.strip())


@dataclass(slots=True)
class BuildConfig:
    """Decoded configuration file.

    ``values`` holds the top-level keys that act as CLI defaults; ``path`` is
    ``None`` when no config file was located.
    """

    path: Path | None = None
    values: Dict[str, Any] = field(default_factory=dict)
    references: List[Reference] = field(default_factory=list)

    @property
    def located(self) -> bool:
        return self.path is not None

    @property
    def directory(self) -> Path | None:
        return self.path.parent if self.path is not None else None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, path: Path | None = None) -> "BuildConfig":
        values = {str(key): value for key, value in data.items() if key != "references"}
        raw_references = data.get("references")
        references: List[Reference] = []
        if raw_references is not None:
            if isinstance(raw_references, (str, bytes)) or not isinstance(raw_references, Sequence):
                raise ConfigurationError("references must be a list")
            references = [Reference.from_value(entry) for entry in raw_references]
        return cls(path=path, values=values, references=references)


def load_build_config(path: Path, *, explicit: bool) -> BuildConfig:
    """Locate and decode the config file at ``path``.

    A missing or undecodable file at the default location yields an empty
    config. When the path was given explicitly the same conditions raise
    :class:`ConfigurationError`.
    """

    if not path.is_file():
        if explicit:
            raise ConfigurationError(f"config file not found: {path}")
        logger.debug("no config file at %s", path)
        return BuildConfig()

    try:
        data = load_config_file(path)
    except (OSError, *_DECODE_ERRORS) as exc:
        if explicit:
            raise ConfigurationError(f"config file could not be read: {path}: {exc}") from exc
        logger.debug("ignoring unreadable config file %s: %s", path, exc)
        return BuildConfig()
    except ConfigurationError:
        if explicit:
            raise
        logger.debug("ignoring config file %s without a mapping at the root", path)
        return BuildConfig()

    return BuildConfig.from_mapping(data, path=path.resolve())


__all__ = [
    "BuildConfig",
    "ConfigLoader",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "FILE_LOADERS",
    "Reference",
    "load_build_config",
    "load_config_file",
    "normalize_path_mapping",
    "normalize_string_list",
]
