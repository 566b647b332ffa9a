"""
Typed configuration for the SSR dev server.

Features:
  - ``ServerConfig`` dataclass with defaults for every setting
  - ``from_dict()`` / ``to_dict()`` for plain-dict and JSON file I/O
  - ``apply_env_overrides()`` overlay for SSR_* environment variables
  - Built-in validation with descriptive errors
  - Merge semantics: defaults -> file -> env -> command-line overrides

Usage::

    from ssrloader.app_config import ServerConfig

    cfg = ServerConfig.from_dict({"root": "./site", "port": 3000})
    cfg.apply_env_overrides()

    errors = cfg.validate()
    if errors:
        raise ConfigError(errors)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional

from ssrloader.constants import DEFAULT_PACKAGE_DIRS, SOURCE_SUFFIX

log = logging.getLogger("ssrloader.app_config")


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


class ValidationError:
    """Single validation failure."""

    __slots__ = ("field", "message", "value")

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value

    def __repr__(self) -> str:
        return f"ValidationError({self.field!r}, {self.message!r})"

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


# Environment variable -> field name
_ENV_TO_FIELD: Dict[str, str] = {
    "SSR_ROOT": "root",
    "SSR_ENTRY": "entry",
    "SSR_HOST": "host",
    "SSR_PORT": "port",
    "SSR_WATCH": "watch",
    "SSR_POLL_INTERVAL": "poll_interval",
    "SSR_PACKAGE_DIRS": "package_dirs",
    "SSR_LOG_LEVEL": "log_level",
    "SSR_LOG_FORMAT": "log_format",
    "SSR_DEBUG": "debug",
}


@dataclass
class ServerConfig:
    """Settings of one dev-server session."""

    root: str = "."
    entry: str = "/entry_server.py"
    host: str = "127.0.0.1"
    port: int = 3000
    watch: bool = True
    poll_interval: float = 1.0
    package_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_PACKAGE_DIRS))
    log_level: str = "INFO"
    log_format: str = "text"
    debug: bool = False

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ServerConfig":
        """Build a config from a plain dict; unknown keys are logged and ignored."""
        cfg = cls()
        known = {f.name for f in fields(cls)}
        for key, value in d.items():
            if key in known:
                _set_field(cfg, key, value)
            else:
                log.warning("Ignoring unknown config key %r", key)
        return cfg

    @classmethod
    def from_file(cls, path: str) -> "ServerConfig":
        """Load a JSON config file."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["package_dirs"] = list(self.package_dirs)
        return out

    # ------------------------------------------------------------------
    # Environment variable overlay
    # ------------------------------------------------------------------

    def apply_env_overrides(self) -> List[str]:
        """Read ``SSR_*`` environment variables and override matching fields.

        Returns a list of variables that were applied (for logging).
        """
        overridden: List[str] = []

        for env_var, field_name in _ENV_TO_FIELD.items():
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            _set_field(self, field_name, raw)
            overridden.append(env_var)

        if overridden:
            log.info(
                "Applied %d env-var override(s): %s",
                len(overridden),
                ", ".join(overridden),
            )
        return overridden

    def merge(self, overrides: Dict[str, Any]) -> None:
        """Apply overrides whose value is not ``None`` (command-line flags)."""
        for key, value in overrides.items():
            if value is not None and hasattr(self, key):
                _set_field(self, key, value)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @property
    def abs_root(self) -> str:
        return os.path.abspath(self.root)

    def validate(self) -> List[ValidationError]:
        """Validate all fields. Returns a list of errors (empty = valid)."""
        errors: List[ValidationError] = []

        if not os.path.isdir(self.root):
            errors.append(ValidationError(
                "root",
                "Must be an existing directory",
                self.root,
            ))
        if not self.entry.startswith("/"):
            errors.append(ValidationError(
                "entry",
                "Must be a root-relative url starting with '/'",
                self.entry,
            ))
        elif not self.entry.endswith(SOURCE_SUFFIX):
            errors.append(ValidationError(
                "entry",
                f"Must name a {SOURCE_SUFFIX} module",
                self.entry,
            ))
        if self.port < 1 or self.port > 65535:
            errors.append(ValidationError(
                "port",
                "Must be 1-65535",
                self.port,
            ))
        if self.poll_interval <= 0:
            errors.append(ValidationError(
                "poll_interval",
                "Must be > 0 seconds",
                self.poll_interval,
            ))
        if self.log_level.upper() not in LogLevel.__members__:
            errors.append(ValidationError(
                "log_level",
                f"Must be one of: {', '.join(LogLevel.__members__)}",
                self.log_level,
            ))
        if self.log_format not in {f.value for f in LogFormat}:
            errors.append(ValidationError(
                "log_format",
                "Must be 'text' or 'json'",
                self.log_format,
            ))
        return errors

    def is_valid(self) -> bool:
        return not self.validate()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> ServerConfig:
    """Defaults, then the JSON file at *path*, then env vars, then *overrides*."""
    cfg = ServerConfig.from_file(path) if path else ServerConfig()
    cfg.apply_env_overrides()
    if overrides:
        cfg.merge(overrides)
    return cfg


def _set_field(cfg: ServerConfig, name: str, value: Any) -> None:
    """Set *name* on *cfg*, coercing strings to the field's declared type."""
    current = getattr(cfg, name)
    if isinstance(current, list):
        if isinstance(value, str):
            value = [p.strip() for p in value.split(",") if p.strip()]
        setattr(cfg, name, list(value))
        return
    if isinstance(value, str) and not isinstance(current, str):
        value = _coerce(value, type(current))
    elif isinstance(current, float) and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
    setattr(cfg, name, value)


def _coerce(raw: str, target: type) -> Any:
    """Best-effort coercion from string to target type."""
    if target is bool:
        return raw.lower() in ("1", "true", "yes", "on")
    if target is int:
        try:
            return int(raw)
        except (ValueError, TypeError):
            return 0
    if target is float:
        try:
            return float(raw)
        except (ValueError, TypeError):
            return 0.0
    return raw
