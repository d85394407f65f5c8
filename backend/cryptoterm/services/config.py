"""Configuration loading and validation.

The terminal reads one YAML file (``config.yaml`` in the backend directory,
or whatever ``$CRYPTOTERM_CONFIG`` points at). A missing file means all
defaults; an invalid one is fatal at startup.
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CRYPTOTERM_CONFIG"

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class ConfigValidationError:
    """One problem found in the configuration file."""
    path: str
    message: str


class ConfigValidationException(Exception):
    """Raised when the configuration file cannot be used."""

    def __init__(self, errors: List[ConfigValidationError]):
        self.errors = errors
        details = "\n".join(f"{e.path or '<root>'}: {e.message}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{details}")


def _field(type_name: str, **rules) -> Dict[str, Any]:
    return {"type": type_name, **rules}


def _section(**properties) -> Dict[str, Any]:
    return {"type": "dict", "properties": properties}


def _source_section() -> Dict[str, Any]:
    return _section(
        enabled=_field("bool"),
        url=_field("str"),
        api_key=_field("str"),
        ttl_seconds=_field("float", min=1),
        timeout_seconds=_field("float", min=0.1, max=120),
    )


# Every key is optional; unknown keys are errors.
CONFIG_SCHEMA = {
    "server": _section(
        host=_field("str"),
        port=_field("int", min=1, max=65535),
    ),
    "logging": _section(
        level=_field("str", options=LOG_LEVELS),
        format=_field("str"),
        file=_field("str"),
    ),
    "broadcast": _section(
        interval_seconds=_field("float", min=1),
    ),
    "market": _section(
        top_limit=_field("int", min=1, max=250),
        details_limit=_field("int", min=1, max=250),
    ),
    "sources": _section(
        market=_source_section(),
        sentiment=_source_section(),
        whales=_source_section(),
        chains=_source_section(),
        news=_source_section(),
    ),
}

_PYTHON_TYPES = {
    "str": str,
    "int": int,
    "float": (int, float),
    "bool": bool,
}


@dataclass
class SourceConfig:
    """Settings for one upstream data source."""
    enabled: bool = True
    url: Optional[str] = None
    api_key: Optional[str] = None
    ttl_seconds: float = 300
    timeout_seconds: float = 10


# name -> (default TTL seconds, default upstream URL)
SOURCE_DEFAULTS = {
    "market": (30, "https://api.coingecko.com/api/v3"),
    "sentiment": (300, "https://api.alternative.me/fng/"),
    "whales": (60, None),
    "chains": (300, "https://api.llama.fi"),
    "news": (300, "https://cryptopanic.com/api/free/v1/posts/"),
}


@dataclass
class TerminalSettings:
    """Typed view of the configuration with defaults applied."""
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    log_format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    log_file: Optional[str] = None
    broadcast_interval_seconds: float = 30
    top_limit: int = 100
    details_limit: int = 250
    sources: Dict[str, SourceConfig] = field(default_factory=dict)

    def __post_init__(self):
        for name, (ttl, url) in SOURCE_DEFAULTS.items():
            self.sources.setdefault(name, SourceConfig(url=url, ttl_seconds=ttl))

    def source(self, name: str) -> SourceConfig:
        return self.sources[name]

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TerminalSettings":
        """Build settings from a validated configuration dictionary."""
        server = config.get("server") or {}
        log_cfg = config.get("logging") or {}
        broadcast = config.get("broadcast") or {}
        market = config.get("market") or {}
        sources_cfg = config.get("sources") or {}
        defaults = cls()

        sources = {}
        for name, (ttl, url) in SOURCE_DEFAULTS.items():
            source_cfg = sources_cfg.get(name) or {}
            sources[name] = SourceConfig(
                enabled=source_cfg.get("enabled", True),
                url=source_cfg.get("url", url),
                api_key=source_cfg.get("api_key") or None,
                ttl_seconds=source_cfg.get("ttl_seconds", ttl),
                timeout_seconds=source_cfg.get("timeout_seconds", 10),
            )

        return cls(
            host=server.get("host", defaults.host),
            port=server.get("port", defaults.port),
            log_level=log_cfg.get("level", defaults.log_level),
            log_format=log_cfg.get("format", defaults.log_format),
            log_file=log_cfg.get("file"),
            broadcast_interval_seconds=broadcast.get("interval_seconds", defaults.broadcast_interval_seconds),
            top_limit=market.get("top_limit", defaults.top_limit),
            details_limit=market.get("details_limit", defaults.details_limit),
            sources=sources,
        )


class ConfigService:
    """Loads the YAML file and checks it against CONFIG_SCHEMA."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path: Path to the config file. Defaults to $CRYPTOTERM_CONFIG,
                then config.yaml in the backend directory.
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR)
        if config_path is None:
            config_path = str(Path(__file__).parent.parent.parent / "config.yaml")

        self.config_path = config_path
        self._config: Dict[str, Any] = {}

    def load_and_validate(self) -> Dict[str, Any]:
        """Read and validate the configuration file.

        Returns:
            Validated configuration dictionary (empty when the file is missing).

        Raises:
            ConfigValidationException: unreadable YAML or schema violations.
        """
        if not os.path.exists(self.config_path):
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._config = {}
            return self._config

        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationException([ConfigValidationError("", f"Invalid YAML syntax: {e}")])

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigValidationException([
                ConfigValidationError("", f"Config must be a mapping, got {type(config).__name__}")
            ])

        errors = self._validate_dict(config, CONFIG_SCHEMA, "")
        if errors:
            raise ConfigValidationException(errors)

        self._config = config
        logger.info(f"Configuration loaded and validated from {self.config_path}")
        return config

    def load_settings(self) -> TerminalSettings:
        """Load, validate and convert the configuration to typed settings."""
        return TerminalSettings.from_config(self.load_and_validate())

    def _validate_dict(self, data: Dict[str, Any], schema: Dict[str, Any], path: str) -> List[ConfigValidationError]:
        errors = []
        for key, value in data.items():
            key_path = f"{path}.{key}" if path else key
            if key not in schema:
                errors.append(ConfigValidationError(key_path, f"Unknown configuration key '{key}'"))
            else:
                errors.extend(self._validate_value(value, schema[key], key_path))
        return errors

    def _validate_value(self, value: Any, schema: Dict[str, Any], path: str) -> List[ConfigValidationError]:
        expected_type = schema["type"]

        if expected_type == "dict":
            if not isinstance(value, dict):
                return [ConfigValidationError(path, f"Expected dict, got {type(value).__name__}")]
            return self._validate_dict(value, schema.get("properties", {}), path)

        numeric = expected_type in ("int", "float")
        # bool is an int subclass; `port: true` must not pass
        if not isinstance(value, _PYTHON_TYPES[expected_type]) or (numeric and isinstance(value, bool)):
            return [ConfigValidationError(path, f"Expected {expected_type}, got {type(value).__name__}")]

        errors = []
        if numeric and "min" in schema and value < schema["min"]:
            errors.append(ConfigValidationError(path, f"Value {value} is below minimum {schema['min']}"))
        if numeric and "max" in schema and value > schema["max"]:
            errors.append(ConfigValidationError(path, f"Value {value} is above maximum {schema['max']}"))
        if "options" in schema and value not in schema["options"]:
            errors.append(ConfigValidationError(path, f"Value '{value}' not in allowed options: {schema['options']}"))
        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a loaded value by dot-notation key (e.g. "server.port")."""
        value = self._config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value
