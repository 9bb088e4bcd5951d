"""
Secure Configuration Module
===========================

Immutable KDF, memory and logging settings with environment overrides.

Security Features:
- Frozen sections; the aggregate refuses attribute assignment
- Weak KDF settings rejected at load time, never clamped
- Salt/secret-looking variables are never read from the environment
- Debug mode can only be enabled in code, not through the environment
- OS-aware log directory default

Environment variables use the form ``SECUREKDF_<SECTION>__<FIELD>``:

    SECUREKDF_KDF__TARGET_SECONDS=0.5
    SECUREKDF_KDF__MAX_MEMORY_BYTES=8388608
    SECUREKDF_MEMORY__LOCK_MEMORY=false
    SECUREKDF_LOGGING__LEVEL=DEBUG
"""

from __future__ import annotations

import dataclasses
import hashlib
import os
import platform
import stat
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional


DEFAULT_ENV_PREFIX: Final[str] = "SECUREKDF"

# Substrings that mark a variable as secret-bearing; such variables are skipped
_SENSITIVE_MARKERS: Final[frozenset[str]] = frozenset({
    "password", "passphrase", "secret", "salt", "token", "private", "credential",
})

# Fields that may only be set in code
_CODE_ONLY_FIELDS: Final[frozenset[str]] = frozenset({"app.debug_mode"})

_MIN_KDF_MEMORY: Final[int] = 64  # One SHA-512 output
_MIN_OUTPUT_BYTES: Final[int] = 16
_MIN_SALT_BYTES: Final[int] = 16
_LOG_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class SecurityWarning(UserWarning):
    """A setting or host condition weakens key protection."""
    pass


def _default_log_dir() -> Path:
    system = platform.system()
    if system == "Windows":
        local = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return local / "securekdf" / "Logs"
    if system == "Darwin":
        return Path.home() / "Library" / "Logs" / "securekdf"
    state = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
    return state / "securekdf" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Filesystem locations."""

    log_dir: Path = field(default_factory=_default_log_dir)

    def __post_init__(self) -> None:
        if not Path(self.log_dir).is_absolute():
            raise ValueError(f"log_dir must be an absolute path: {self.log_dir}")


@dataclass(frozen=True, slots=True)
class KdfConfig:
    """Calibration targets and derived-key shape."""

    target_seconds: float = 0.25
    max_memory_bytes: int = 32 * 1024 * 1024  # 32 MB
    hash_algorithm: str = "sha512"
    output_bytes: int = 32  # 256 bits
    salt_length: int = 32

    def __post_init__(self) -> None:
        # Deferred: hashing imports the crypto package, which imports memory -> config
        from securekdf.core.crypto.hashing import HashAlgorithm

        if not self.target_seconds > 0:
            raise ValueError(f"KDF target time must be positive, got {self.target_seconds}")
        if self.max_memory_bytes < _MIN_KDF_MEMORY:
            raise ValueError(f"KDF memory cap must be at least {_MIN_KDF_MEMORY} bytes")
        if self.output_bytes < _MIN_OUTPUT_BYTES:
            raise ValueError(f"KDF output must be at least {_MIN_OUTPUT_BYTES} bytes")
        if self.salt_length < _MIN_SALT_BYTES:
            raise ValueError(f"Salt length must be at least {_MIN_SALT_BYTES} bytes")

        # Unknown names raise KdfConfigurationError (a ValueError)
        HashAlgorithm.parse(self.hash_algorithm)


@dataclass(frozen=True, slots=True)
class MemoryConfig:
    """Page locking for SecureBuffers and KDF tables."""

    lock_memory: bool = True


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Handlers and formats applied by ``configure_logging``."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Package identity and debug switch."""

    app_name: str = "securekdf"
    version: str = "0.1.0"
    debug_mode: bool = False

    def __post_init__(self) -> None:
        if self.debug_mode:
            warnings.warn(
                "Debug mode is enabled; never use it when deriving production keys",
                SecurityWarning,
                stacklevel=3,
            )


_SECTIONS: Final[dict[str, type]] = {
    "paths": PathConfig,
    "kdf": KdfConfig,
    "memory": MemoryConfig,
    "logging": LoggingConfig,
    "app": AppConfig,
}


def _is_sensitive(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def _field_defaults(section: type) -> dict[str, Any]:
    defaults: dict[str, Any] = {}
    for f in dataclasses.fields(section):
        if f.default is not dataclasses.MISSING:
            defaults[f.name] = f.default
        elif f.default_factory is not dataclasses.MISSING:
            defaults[f.name] = f.default_factory()
    return defaults


def _coerce(raw: str, template: Any) -> Any:
    """Convert an environment string to the type of the field default."""
    if isinstance(template, bool):
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if isinstance(template, int):
        return int(raw.strip())
    if isinstance(template, float):
        return float(raw.strip())
    if isinstance(template, Path):
        return Path(raw)
    return raw


class SecureConfig:
    """
    Immutable aggregate of all configuration sections.

    Usage:
        config = SecureConfig.load()
        kdf = MemoryHardKdf.from_config(config)
        configure_logging(config.logging, config.paths.log_dir)
    """

    __slots__ = ("_sections", "_config_hash", "_frozen")

    _instance: Optional[SecureConfig] = None

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        kdf: Optional[KdfConfig] = None,
        memory: Optional[MemoryConfig] = None,
        logging: Optional[LoggingConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        supplied = {"paths": paths, "kdf": kdf, "memory": memory, "logging": logging, "app": app}
        sections = {
            name: value if value is not None else _SECTIONS[name]()
            for name, value in supplied.items()
        }
        object.__setattr__(self, "_sections", sections)
        object.__setattr__(self, "_config_hash", self._fingerprint(sections))
        object.__setattr__(self, "_frozen", True)

    @staticmethod
    def _fingerprint(sections: dict[str, Any]) -> str:
        """Short digest identifying this configuration in logs."""
        digest = hashlib.sha256()
        for name in sorted(sections):
            digest.update(f"{name}={sections[name]!r};".encode())
        return digest.hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._sections["paths"]

    @property
    def kdf(self) -> KdfConfig:
        return self._sections["kdf"]

    @property
    def memory(self) -> MemoryConfig:
        return self._sections["memory"]

    @property
    def logging(self) -> LoggingConfig:
        return self._sections["logging"]

    @property
    def app(self) -> AppConfig:
        return self._sections["app"]

    @property
    def config_hash(self) -> str:
        """Configuration fingerprint (safe to log)."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = DEFAULT_ENV_PREFIX) -> SecureConfig:
        """
        Build configuration from defaults plus environment overrides.

        Unknown sections and fields are ignored.

        Raises:
            ValueError: If an override cannot be parsed or is too weak
        """
        overrides = cls._parse_env_overrides(env_prefix)
        sections: dict[str, Any] = {}

        for name, section in _SECTIONS.items():
            defaults = _field_defaults(section)
            kwargs: dict[str, Any] = {}
            for field_name, template in defaults.items():
                key = f"{name}.{field_name}"
                if key not in overrides or key in _CODE_ONLY_FIELDS:
                    continue
                try:
                    kwargs[field_name] = _coerce(overrides[key], template)
                except ValueError as e:
                    raise ValueError(f"Invalid value for {key}: {e}") from e
            if kwargs:
                sections[name] = section(**kwargs)

        return cls(**sections)

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Map ``PREFIX_SECTION__FIELD`` variables to ``section.field`` keys."""
        marker = f"{prefix.upper()}_"
        overrides: dict[str, str] = {}

        for variable, value in os.environ.items():
            if not variable.startswith(marker):
                continue
            key = variable[len(marker):].lower().replace("__", ".")
            if _is_sensitive(key):
                continue
            overrides[key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> SecureConfig:
        """Process-wide configuration, loaded on first use."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide configuration (tests only)."""
        cls._instance = None

    def ensure_directories(self) -> None:
        """Create the log directory, owner-only on POSIX."""
        log_dir = self.paths.log_dir
        log_dir.mkdir(parents=True, exist_ok=True)
        if os.name != "nt":
            log_dir.chmod(stat.S_IRWXU)  # 700

    def __repr__(self) -> str:
        return f"SecureConfig(hash={self._config_hash}, app={self.app.app_name})"

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("SecureConfig is immutable after initialization")
