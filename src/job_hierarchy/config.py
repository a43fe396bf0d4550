"""
Settings for job-hierarchy.

HierarchySettings is a validated dataclass. It can be built directly, read
from ``HIERARCHY_*`` environment variables (optionally seeded from a .env
file), or loaded from the ``hierarchy`` section of a YAML or TOML file.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Union

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["json", "text"]

THIRTY_DAYS = 60 * 60 * 24 * 30  # key expiration
DEFAULT_INFO_KEYS: Tuple[str, ...] = ("class", "queue")


@dataclass
class HierarchySettings:
    """Options for a Hierarchy: where records live and how transitions are checked."""

    # Store
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    key_prefix: str = "hierarchy:job"
    ttl_seconds: int = THIRTY_DAYS

    # Job records
    info_keys: Tuple[str, ...] = DEFAULT_INFO_KEYS
    max_depth: int = 10_000  # guard for ancestor walks on corrupted data

    # State machine
    strict_transitions: bool = True
    default_max_retries: int = 25

    # Notifications
    event_channel_prefix: str = "hierarchy:events"

    # Logging
    log_level: LogLevel = "INFO"
    log_format: LogFormat = "json"

    def __post_init__(self):
        if isinstance(self.info_keys, (list, set)):
            self.info_keys = tuple(self.info_keys)
        if isinstance(self.info_keys, str):
            self.info_keys = tuple(k.strip() for k in self.info_keys.split(",") if k.strip())
        if self.ttl_seconds <= 0:
            raise ConfigError("ttl_seconds must be positive")
        if self.max_depth <= 0:
            raise ConfigError("max_depth must be positive")
        if self.default_max_retries < 0:
            raise ConfigError("default_max_retries cannot be negative")
        if not self.key_prefix:
            raise ConfigError("key_prefix cannot be empty")
        if self.log_format not in ("json", "text"):
            raise ConfigError(f"Unsupported log_format: {self.log_format}")

    @classmethod
    def from_env(cls, prefix: str = "HIERARCHY_") -> "HierarchySettings":
        """
        Read ``{prefix}*`` variables over the defaults; unset ones are left alone.

        Example:
            HIERARCHY_REDIS_URL=redis://cache:6379/2
            HIERARCHY_TTL_SECONDS=86400
            HIERARCHY_INFO_KEYS=class,queue,tenant
            HIERARCHY_STRICT_TRANSITIONS=false
        """
        settings = cls()

        if url := os.getenv(f"{prefix}REDIS_URL"):
            settings.redis_url = url
        if key_prefix := os.getenv(f"{prefix}KEY_PREFIX"):
            settings.key_prefix = key_prefix
        if ttl := os.getenv(f"{prefix}TTL_SECONDS"):
            settings.ttl_seconds = int(ttl)
        if info_keys := os.getenv(f"{prefix}INFO_KEYS"):
            settings.info_keys = tuple(k.strip() for k in info_keys.split(",") if k.strip())
        if max_depth := os.getenv(f"{prefix}MAX_DEPTH"):
            settings.max_depth = int(max_depth)
        if strict := os.getenv(f"{prefix}STRICT_TRANSITIONS"):
            settings.strict_transitions = _parse_bool(strict)
        if retries := os.getenv(f"{prefix}DEFAULT_MAX_RETRIES"):
            settings.default_max_retries = int(retries)
        if channel := os.getenv(f"{prefix}EVENT_CHANNEL_PREFIX"):
            settings.event_channel_prefix = channel
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            settings.log_level = level.upper()  # type: ignore
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            settings.log_format = log_format.lower()  # type: ignore

        settings.__post_init__()
        return settings

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "HierarchySettings":
        """
        Read a ``.yaml``/``.yml`` or ``.toml`` file.

        Keys may sit at top level or under a ``hierarchy`` table; unknown keys
        are ignored.
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Settings file does not exist: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            import yaml

            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            import tomllib

            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ConfigError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data.get("hierarchy", data))

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "HierarchySettings":
        settings = cls()
        for key, value in data.items():
            if hasattr(settings, key):
                setattr(settings, key, value)
        settings.__post_init__()
        return settings

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form, e.g. for logging the effective settings."""
        import dataclasses

        d = dataclasses.asdict(self)
        d["info_keys"] = list(self.info_keys)
        return d


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"Not a boolean value: {value!r}")


# =============================================================================
# Process-wide settings
# =============================================================================

_global_settings: Optional[HierarchySettings] = None


def get_settings() -> HierarchySettings:
    """Process-wide settings, read from the environment on first use."""
    global _global_settings
    if _global_settings is None:
        _global_settings = HierarchySettings.from_env()
    return _global_settings


def configure(settings: Optional[HierarchySettings] = None, **kwargs) -> HierarchySettings:
    """
    Install ``settings`` as the process-wide default, then apply ``kwargs``.

    Without ``settings`` the current default (or one read from the
    environment) is updated in place. The result is validated again.
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = HierarchySettings.from_env()

    for key, value in kwargs.items():
        if hasattr(_global_settings, key):
            setattr(_global_settings, key, value)

    _global_settings.__post_init__()
    return _global_settings


def load_env(path: Optional[str] = None, *, override: bool = False) -> bool:
    """
    Copy a .env file into ``os.environ`` before ``from_env`` reads it.

    ``path`` defaults to the nearest .env found from the working directory.
    Variables already set in the process win unless ``override`` is true.
    Returns False when there was nothing to load.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = [
    "HierarchySettings",
    "THIRTY_DAYS",
    "DEFAULT_INFO_KEYS",
    "get_settings",
    "configure",
    "load_env",
]
