"""
Configuration module for SCML.

Supports loading from YAML/JSON files with environment variable overrides.
Default values are loaded from defaults.yaml for maintainability.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Path to the default configuration file
_DEFAULTS_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

# Cache for default values
_defaults_cache: dict[str, Any] | None = None


def _load_defaults() -> dict[str, Any]:
    """Load default configuration values from defaults.yaml."""
    global _defaults_cache

    if _defaults_cache is not None:
        return _defaults_cache

    if not _DEFAULTS_CONFIG_PATH.exists():
        logger.warning(f"Defaults config not found: {_DEFAULTS_CONFIG_PATH}")
        _defaults_cache = {}
        return _defaults_cache

    try:
        content = _DEFAULTS_CONFIG_PATH.read_text(encoding="utf-8")
        _defaults_cache = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse defaults config: {e}")
        _defaults_cache = {}

    return _defaults_cache


def _get_default(section: str, key: str, fallback: Any = None) -> Any:
    """Get a default value from the defaults config."""
    defaults = _load_defaults()
    section_defaults = defaults.get(section, {}) or {}
    return section_defaults.get(key, fallback)


@dataclass
class ConnectionConfig:
    """Configuration for connecting to file servers."""

    port: int = field(default_factory=lambda: _get_default("connection", "port", 445))
    timeout: float = field(default_factory=lambda: _get_default("connection", "timeout", 30.0))
    use_current_user: bool = field(
        default_factory=lambda: _get_default("connection", "use_current_user", False)
    )
    domain: str = field(default_factory=lambda: _get_default("connection", "domain", ""))
    username: str = field(default_factory=lambda: _get_default("connection", "username", ""))


@dataclass
class RetrySettings:
    """Configuration for the lockout-aware retry policy."""

    max_attempts: int = field(default_factory=lambda: _get_default("retry", "max_attempts", 2))
    base_delay: float = field(default_factory=lambda: _get_default("retry", "base_delay", 2.0))
    max_delay: float = field(default_factory=lambda: _get_default("retry", "max_delay", 10.0))


@dataclass
class SessionConfig:
    """Configuration for session keep-alive and reconnects."""

    keepalive_seconds: float = field(
        default_factory=lambda: _get_default("session", "keepalive_seconds", 30.0)
    )
    reconnect_attempts: int = field(
        default_factory=lambda: _get_default("session", "reconnect_attempts", 3)
    )
    reconnect_pause: float = field(
        default_factory=lambda: _get_default("session", "reconnect_pause", 1.0)
    )
    auth_min_interval: float = field(
        default_factory=lambda: _get_default("session", "auth_min_interval", 5.0)
    )


@dataclass
class InventoryConfig:
    """Configuration for inventory crawling."""

    path: str = field(default_factory=lambda: _get_default("inventory", "path", "inventory.txt"))
    flush_interval: int = field(
        default_factory=lambda: _get_default("inventory", "flush_interval", 10)
    )
    sidecar_suffix: str = field(
        default_factory=lambda: _get_default("inventory", "sidecar_suffix", ".INI")
    )


@dataclass
class DownloadConfig:
    """Configuration for file retrieval."""

    output_dir: str = field(
        default_factory=lambda: _get_default("download", "output_dir", "CMLootOut")
    )
    parallel: int = field(default_factory=lambda: _get_default("download", "parallel", 1))
    preserve_filenames: bool = field(
        default_factory=lambda: _get_default("download", "preserve_filenames", False)
    )
    progress_interval: int = field(
        default_factory=lambda: _get_default("download", "progress_interval", 10)
    )
    monitor_interval: float = field(
        default_factory=lambda: _get_default("download", "monitor_interval", 5.0)
    )
    default_preset: str = field(
        default_factory=lambda: _get_default("download", "default_preset", "")
    )


@dataclass
class AnalysisConfig:
    """Configuration for sensitivity analysis."""

    max_content_bytes: int = field(
        default_factory=lambda: _get_default("analysis", "max_content_bytes", 10 * 1024 * 1024)
    )
    context_lines: int = field(
        default_factory=lambda: _get_default("analysis", "context_lines", 2)
    )
    context_width: int = field(
        default_factory=lambda: _get_default("analysis", "context_width", 100)
    )
    ignore_patterns: list[str] = field(
        default_factory=lambda: list(_get_default("analysis", "ignore_patterns", ["*.part"]))
    )


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = field(default_factory=lambda: _get_default("logging", "level", "INFO"))
    format: str = field(
        default_factory=lambda: _get_default(
            "logging", "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )


@dataclass
class SCMLConfig:
    """Main configuration class for SCML."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    retry: RetrySettings = field(default_factory=RetrySettings)
    session: SessionConfig = field(default_factory=SessionConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "SCMLConfig":
        """
        Load configuration from a YAML or JSON file.

        Args:
            path: Path to the configuration file (.yaml, .yml, or .json)

        Returns:
            SCMLConfig instance with loaded values

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the file format is unsupported
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif path.suffix == ".json":
            data = json.loads(content) if content.strip() else {}
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "SCMLConfig":
        """Create SCMLConfig from a dictionary."""
        config = cls()

        if "connection" in data:
            config.connection = ConnectionConfig(**data["connection"])
        if "retry" in data:
            config.retry = RetrySettings(**data["retry"])
        if "session" in data:
            config.session = SessionConfig(**data["session"])
        if "inventory" in data:
            config.inventory = InventoryConfig(**data["inventory"])
        if "download" in data:
            config.download = DownloadConfig(**data["download"])
        if "analysis" in data:
            config.analysis = AnalysisConfig(**data["analysis"])
        if "logging" in data:
            config.logging = LoggingConfig(**data["logging"])

        return config

    def apply_env_overrides(self) -> "SCMLConfig":
        """
        Apply environment variable overrides to the configuration.

        Environment variables follow the pattern: SCML_<SECTION>_<KEY>
        Examples:
            - SCML_CONNECTION_PORT
            - SCML_DOWNLOAD_PARALLEL
            - SCML_LOGGING_LEVEL

        Returns:
            Self with environment overrides applied
        """
        env_mappings = {
            # Connection config
            "SCML_CONNECTION_PORT": ("connection", "port", int),
            "SCML_CONNECTION_TIMEOUT": ("connection", "timeout", float),
            "SCML_CONNECTION_USE_CURRENT_USER": ("connection", "use_current_user", _parse_bool),
            "SCML_CONNECTION_DOMAIN": ("connection", "domain", str),
            "SCML_CONNECTION_USERNAME": ("connection", "username", str),
            # Retry config
            "SCML_RETRY_MAX_ATTEMPTS": ("retry", "max_attempts", int),
            "SCML_RETRY_BASE_DELAY": ("retry", "base_delay", float),
            "SCML_RETRY_MAX_DELAY": ("retry", "max_delay", float),
            # Session config
            "SCML_SESSION_KEEPALIVE_SECONDS": ("session", "keepalive_seconds", float),
            "SCML_SESSION_RECONNECT_ATTEMPTS": ("session", "reconnect_attempts", int),
            "SCML_SESSION_RECONNECT_PAUSE": ("session", "reconnect_pause", float),
            "SCML_SESSION_AUTH_MIN_INTERVAL": ("session", "auth_min_interval", float),
            # Inventory config
            "SCML_INVENTORY_PATH": ("inventory", "path", str),
            "SCML_INVENTORY_FLUSH_INTERVAL": ("inventory", "flush_interval", int),
            # Download config
            "SCML_DOWNLOAD_OUTPUT_DIR": ("download", "output_dir", str),
            "SCML_DOWNLOAD_PARALLEL": ("download", "parallel", int),
            "SCML_DOWNLOAD_PRESERVE_FILENAMES": ("download", "preserve_filenames", _parse_bool),
            "SCML_DOWNLOAD_DEFAULT_PRESET": ("download", "default_preset", str),
            # Analysis config
            "SCML_ANALYSIS_MAX_CONTENT_BYTES": ("analysis", "max_content_bytes", int),
            # Logging config
            "SCML_LOGGING_LEVEL": ("logging", "level", str),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                section_obj = getattr(self, section)
                setattr(section_obj, key, converter(value))

        return self

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Serialize configuration to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def to_json(self) -> str:
        """Serialize configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def save(self, path: Path | str) -> None:
        """
        Save configuration to a file.

        Args:
            path: Path to save the configuration (.yaml, .yml, or .json)

        Raises:
            ValueError: If the file format is unsupported
        """
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            content = self.to_yaml()
        elif path.suffix == ".json":
            content = self.to_json()
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def _parse_bool(value: str) -> bool:
    """Parse a string to boolean."""
    return value.lower() in ("true", "1", "yes", "on")


def load_config(config_path: Optional[Path | str] = None, apply_env: bool = True) -> SCMLConfig:
    """
    Load configuration with optional environment variable overrides.

    Args:
        config_path: Optional path to config file. If None, uses defaults.
        apply_env: Whether to apply environment variable overrides.

    Returns:
        SCMLConfig instance
    """
    if config_path:
        config = SCMLConfig.from_file(config_path)
    else:
        config = SCMLConfig()

    if apply_env:
        config.apply_env_overrides()

    return config
