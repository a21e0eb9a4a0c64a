from __future__ import annotations
import copy
import logging
import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_NAME = ".fossil.yml"

DEFAULT_CONFIG = {
    "markers": ["TODO", "FIXME", "HACK", "XXX", "NOTE"],
    "ignored_dirs": [
        ".git",
        "node_modules",
        "target",
        "dist",
        "build",
        ".venv",
        "venv",
        "vendor",
        ".next",
        "__pycache__",
        ".pytest_cache",
        "coverage",
    ],
    "exclude": [],
    "context_lines": 2,
    "max_file_size": 10 * 1024 * 1024,
    "severity": {},
    "workers": min(8, os.cpu_count() or 1),
    "blame_timeout": 30.0,
    "respect_gitignore": True,
}


@dataclass
class Config:
    data: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG))

    def __post_init__(self):
        validate(self.data)

    @property
    def markers(self) -> List[str]:
        return list(self.data["markers"])

    @property
    def ignored_dirs(self) -> List[str]:
        return list(self.data["ignored_dirs"])

    @property
    def exclude(self) -> List[str]:
        return list(self.data.get("exclude") or [])

    @property
    def context_lines(self) -> int:
        return int(self.data["context_lines"])

    @property
    def max_file_size(self) -> int:
        return int(self.data["max_file_size"])

    @property
    def severity(self) -> Dict[str, str]:
        return dict(self.data.get("severity") or {})

    @property
    def workers(self) -> int:
        return int(self.data["workers"])

    @property
    def blame_timeout(self) -> float:
        return float(self.data["blame_timeout"])

    @property
    def respect_gitignore(self) -> bool:
        return bool(self.data.get("respect_gitignore", True))

    def with_overrides(self, **overrides: Any) -> "Config":
        merged = copy.deepcopy(self.data)
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return Config(merged)


def validate(data: Dict[str, Any]) -> None:
    markers = data.get("markers")
    if not isinstance(markers, list) or not markers or not all(isinstance(m, str) and m.strip() for m in markers):
        raise ConfigError("markers must be a non-empty list of keywords")
    if not isinstance(data.get("ignored_dirs"), list):
        raise ConfigError("ignored_dirs must be a list")
    if not isinstance(data.get("exclude") or [], list):
        raise ConfigError("exclude must be a list of glob patterns")
    if not isinstance(data.get("severity") or {}, dict):
        raise ConfigError("severity must map marker types to labels")
    for key, minimum in (("context_lines", 0), ("max_file_size", 1), ("workers", 1)):
        value = data.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            raise ConfigError(f"{key} must be an integer >= {minimum}")
    timeout = data.get("blame_timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("blame_timeout must be a positive number of seconds")


def merge_config(user: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for k, v in user.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k].update(v)
        else:
            merged[k] = v
    return merged


def load_config_file(path: str) -> Config:
    try:
        with open(path, "r", encoding="utf-8") as f:
            user = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e
    if not isinstance(user, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return Config(merge_config(user))


def load_config(path: Optional[str] = None) -> Config:
    """Resolve configuration.

    Search order: an explicit path (errors are fatal), ``.fossil.yml`` in the
    working directory, ``~/.fossil.yml``, then the built-in defaults.
    """
    if path:
        return load_config_file(path)
    candidates = [os.path.join(os.getcwd(), CONFIG_NAME), os.path.join(os.path.expanduser("~"), CONFIG_NAME)]
    for candidate in candidates:
        if not os.path.isfile(candidate):
            continue
        try:
            return load_config_file(candidate)
        except ConfigError as e:
            logger.warning("ignoring %s", e)
    return Config()
