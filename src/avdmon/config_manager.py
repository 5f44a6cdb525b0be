"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores the target AVD environment (subscription, resource group, workspace),
notification settings and reconciliation tuning.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation
- Input validation (resource group names, severities, policies)
"""

import logging
import os
import re
import tempfile
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for older Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

logger = logging.getLogger(__name__)

VALID_POLICIES = ("create-only", "create-or-update")

_INT_KEYS = {"alert_severity", "max_workers"}
_FLOAT_KEYS = {"bulk_timeout"}
_BOOL_KEYS = {"fail_on_error"}


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class AvdmonConfig:
    """avdmon configuration data."""

    subscription: str | None = None
    resource_group: str | None = None
    workspace_name: str | None = None
    notification_email: str | None = None
    action_group_name: str = "avd-alerts-ag"
    name_prefix: str = "avd"
    alert_severity: int = 2
    max_workers: int = 5
    policy: str = "create-only"
    bulk_timeout: float = 25.0
    output_path: str = "avdmon-results.csv"
    fail_on_error: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # TOML has no null
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AvdmonConfig":
        """Create from dictionary, ignoring unknown keys.

        Quoted numbers and booleans (a hand-edited ``max_workers = "8"``) are
        converted to the key's type.

        Raises:
            ConfigError: If a value cannot be converted
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(
            **{k: ConfigManager.coerce_value(k, v) for k, v in data.items() if k in known}
        )

    def merged(self, **overrides: Any) -> "AvdmonConfig":
        """Return a copy with every non-None override applied (CLI flags win)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: If any value has the wrong type or is out of range
        """
        self._check_types()
        if not 0 <= self.alert_severity <= 4:
            raise ConfigError(f"alert_severity must be between 0 and 4, got {self.alert_severity}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.policy not in VALID_POLICIES:
            raise ConfigError(
                f"policy must be one of {', '.join(VALID_POLICIES)}, got '{self.policy}'"
            )
        if self.bulk_timeout <= 0:
            raise ConfigError(f"bulk_timeout must be positive, got {self.bulk_timeout}")
        if not re.match(r"^[a-zA-Z0-9][a-zA-Z0-9\-]{0,30}$", self.name_prefix):
            raise ConfigError(
                f"Invalid name_prefix: '{self.name_prefix}' "
                "(letters, digits and hyphens, max 31 characters)"
            )
        if self.resource_group:
            ConfigManager.validate_resource_group_name(self.resource_group)

    def _check_types(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name in _BOOL_KEYS:
                ok, expected = isinstance(value, bool), "a boolean"
            elif f.name in _INT_KEYS:
                ok, expected = isinstance(value, int) and not isinstance(value, bool), "an integer"
            elif f.name in _FLOAT_KEYS:
                ok = isinstance(value, (int, float)) and not isinstance(value, bool)
                expected = "a number"
            else:
                ok, expected = isinstance(value, str), "a string"
            if not ok:
                raise ConfigError(f"{f.name} must be {expected}, got {value!r}")


class ConfigManager:
    """Manage avdmon configuration file.

    Configuration is stored at ~/.avdmon/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".avdmon"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Validate configuration file path.

        The path must live under ~/.avdmon/, the current working directory or
        the system temporary directory.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()

        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            Path to config file

        Raises:
            ConfigError: If path is invalid or outside allowed directories
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            path = cls._validate_config_path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            logger.debug(f"Config directory ready: {cls.DEFAULT_CONFIG_DIR}")
            return cls.DEFAULT_CONFIG_DIR
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> AvdmonConfig:
        """Load configuration from file.

        A missing default config file yields the defaults.

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return AvdmonConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]

            logger.debug(f"Loaded config from: {config_path}")
            return AvdmonConfig.from_dict(data)  # type: ignore[arg-type]

        except (OSError, TypeError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: AvdmonConfig, custom_path: str | None = None) -> None:
        """Save configuration to file.

        Existing comments and formatting are preserved (tomlkit); the write is
        a temp file plus atomic rename.

        Raises:
            ConfigError: If saving fails or path is outside allowed directories
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = cls._validate_config_path(Path(custom_path).expanduser().resolve())
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")

        except (OSError, ValueError) as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> AvdmonConfig:
        """Update configuration values and persist them.

        String values are coerced to the key's type (so ``config set
        max_workers 8`` stores an integer).

        Raises:
            ConfigError: If a key is unknown, a value is invalid, or saving fails
        """
        config = cls.load_config(custom_path)
        known = {f.name for f in fields(AvdmonConfig)}

        for key, value in updates.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            setattr(config, key, cls.coerce_value(key, value))

        config.validate()
        cls.save_config(config, custom_path)
        return config

    @classmethod
    def coerce_value(cls, key: str, value: Any) -> Any:
        """Convert a string value to the type of the given config key.

        Raises:
            ConfigError: If the value cannot be converted
        """
        if not isinstance(value, str):
            return value
        try:
            if key in _INT_KEYS:
                return int(value)
            if key in _FLOAT_KEYS:
                return float(value)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: '{value}'") from e
        if key in _BOOL_KEYS:
            lowered = value.strip().lower()
            if lowered in ("true", "yes", "1", "on"):
                return True
            if lowered in ("false", "no", "0", "off"):
                return False
            raise ConfigError(f"Invalid boolean for {key}: '{value}'")
        return value

    @classmethod
    def validate_resource_group_name(cls, name: str) -> bool:
        """Validate resource group name format.

        Azure resource group naming rules:
        - 1-90 characters
        - Alphanumeric, underscore, hyphen, period, parentheses
        - Cannot end with period

        Raises:
            ConfigError: If name is invalid
        """
        if not name:
            raise ConfigError("Resource group name cannot be empty")

        if len(name) > 90:
            raise ConfigError(f"Resource group name too long: {len(name)} characters (max 90)")

        if not re.match(r"^[a-zA-Z0-9_\-\.\(\)]+$", name):
            raise ConfigError(
                f"Invalid resource group name: {name}\n"
                "Resource group names must contain only letters, numbers, "
                "underscores, hyphens, periods and parentheses"
            )

        if name.endswith("."):
            raise ConfigError("Resource group name cannot end with a period")

        return True

    @classmethod
    def format_config(cls, config: AvdmonConfig) -> str:
        """Render configuration as TOML text for display."""
        doc = tomlkit.document()
        for key, value in config.to_dict().items():
            doc[key] = value
        return tomlkit.dumps(doc)


__all__ = ["VALID_POLICIES", "AvdmonConfig", "ConfigError", "ConfigManager"]
