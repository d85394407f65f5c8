"""Tests for configuration loading, validation and logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from cryptoterm.main import load_settings
from cryptoterm.services.config import (
    CONFIG_ENV_VAR,
    ConfigService,
    ConfigValidationException,
    TerminalSettings,
)
from cryptoterm.services.logging_service import configure_logging, resolve_log_file


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestConfigService:
    """Test YAML loading and schema validation."""

    def test_missing_file_means_defaults(self, tmp_path):
        settings = ConfigService(str(tmp_path / "absent.yaml")).load_settings()

        assert settings.port == 3001
        assert settings.broadcast_interval_seconds == 30
        assert settings.source("market").ttl_seconds == 30
        assert settings.source("sentiment").ttl_seconds == 300
        assert settings.source("whales").url is None

    def test_empty_file_means_defaults(self, tmp_path):
        settings = ConfigService(write_config(tmp_path, "")).load_settings()
        assert settings.top_limit == 100

    def test_values_applied(self, tmp_path):
        path = write_config(tmp_path, """
server:
  port: 8080
logging:
  level: DEBUG
broadcast:
  interval_seconds: 5
market:
  top_limit: 50
sources:
  news:
    api_key: secret
    ttl_seconds: 600
  whales:
    enabled: false
""")
        service = ConfigService(path)
        settings = service.load_settings()

        assert settings.port == 8080
        assert settings.log_level == "DEBUG"
        assert settings.broadcast_interval_seconds == 5
        assert settings.top_limit == 50
        assert settings.details_limit == 250
        assert settings.source("news").api_key == "secret"
        assert settings.source("news").ttl_seconds == 600
        assert settings.source("news").url == "https://cryptopanic.com/api/free/v1/posts/"
        assert settings.source("whales").enabled is False
        assert service.get("server.port") == 8080
        assert service.get("server.missing", "x") == "x"

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "server:\n  port: 9000\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, path)

        service = ConfigService()

        assert service.config_path == path
        assert service.load_settings().port == 9000

    @pytest.mark.parametrize("text,path", [
        ("server:\n  port: 70000\n", "server.port"),
        ("server:\n  port: true\n", "server.port"),
        ("logging:\n  level: VERBOSE\n", "logging.level"),
        ("broadcast:\n  interval_seconds: 0\n", "broadcast.interval_seconds"),
        ("sources:\n  market:\n    timeout_seconds: 500\n", "sources.market.timeout_seconds"),
        ("sources:\n  weather: {}\n", "sources.weather"),
        ("unknown: 1\n", "unknown"),
    ])
    def test_invalid_values_rejected(self, tmp_path, text, path):
        with pytest.raises(ConfigValidationException) as exc_info:
            ConfigService(write_config(tmp_path, text)).load_and_validate()

        assert [e.path for e in exc_info.value.errors] == [path]

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigValidationException) as exc_info:
            ConfigService(write_config(tmp_path, "server: [unclosed\n")).load_and_validate()
        assert "Invalid YAML syntax" in str(exc_info.value)

    def test_non_mapping_root(self, tmp_path):
        with pytest.raises(ConfigValidationException):
            ConfigService(write_config(tmp_path, "- a\n- b\n")).load_and_validate()

    def test_invalid_config_is_fatal_at_startup(self, tmp_path):
        service = ConfigService(write_config(tmp_path, "server:\n  port: nope\n"))
        with pytest.raises(SystemExit) as exc_info:
            load_settings(service)
        assert exc_info.value.code == 1


class TestLogging:
    """Test process-wide logging setup."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers = list(root.handlers)
        level = root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers = handlers
        root.setLevel(level)

    def test_relative_log_file_goes_to_logs_dir(self):
        assert resolve_log_file(None) is None
        assert resolve_log_file("terminal.log").parent.name == "logs"

    def test_configure_is_idempotent(self, tmp_path):
        log_file = str(tmp_path / "terminal.log")
        settings = TerminalSettings(log_level="WARNING", log_file=log_file)

        configure_logging(settings)
        configure_logging(settings)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        console = [h for h in root.handlers if getattr(h, "_cryptoterm", False)]
        assert len(console) == 1
