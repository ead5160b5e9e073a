#!/usr/bin/env python3
"""
Unit Tests for Configuration

Tests environment handling, JSON file loading, validation and logging
setup.
"""

import json
import logging
import logging.handlers

import pytest

from cccd_parser.config import (
    Config,
    Environment,
    LoggingConfig,
    LogLevel,
    OCRConfig,
    configure_logging,
    get_config,
    init_config,
    reload_config,
)
from cccd_parser.exceptions import ConfigurationError


class TestConfig:
    """Test cases for Config."""

    def test_defaults(self):
        config = Config(environment="testing")

        assert config.environment == Environment.TESTING
        assert config.is_testing()
        assert config.ocr.engine == "tesseract"
        assert config.ocr.document_language == "vie"
        assert config.enhancement.lightweight_scale == 6.0
        assert config.enhancement.clahe_tile_size == 8
        assert config.quality.blur_threshold == 100.0
        assert config.validation.min_issue_year == 2021
        assert config.validation.verification_threshold == 0.7
        assert config.logging.level == LogLevel.WARNING
        assert config.logging.file_enabled is False

    def test_environment_overrides(self):
        assert Config(environment="development").logging.level == LogLevel.DEBUG
        assert Config(environment="development").api.debug is True

        production = Config(environment="production")
        assert production.is_production()
        assert production.api.debug is False
        assert production.logging.file_enabled is True

    def test_environment_from_variable(self, monkeypatch):
        monkeypatch.setenv("CCCD_ENV", "production")
        assert Config().environment == Environment.PRODUCTION

    def test_unknown_environment(self):
        with pytest.raises(ConfigurationError):
            Config(environment="staging")

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("CCCD_OCR_ENGINE", "easyocr")
        monkeypatch.setenv("CCCD_ENHANCEMENT_MODE", "full")
        monkeypatch.setenv("CCCD_ENFORCE_QUALITY", "true")
        monkeypatch.setenv("API_PORT", "9000")

        config = Config(environment="testing")

        assert config.ocr.engine == "easyocr"
        assert config.enhancement.mode == "full"
        assert config.quality.enforce_gate is True
        assert config.api.port == 9000

    def test_load_from_file(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "ocr": {"document_language": "vie+eng", "unknown_key": 1},
            "quality": {"enforce_gate": True},
            "metrics": {"enabled": True}
        }), encoding="utf-8")

        config = Config(config_file=config_file, environment="testing")

        assert config.ocr.document_language == "vie+eng"
        assert config.quality.enforce_gate is True
        assert not hasattr(config.ocr, "unknown_key")

    def test_invalid_file_values(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "validation": {"mrz_confidence": 1.5},
            "enhancement": {"lightweight_scale": 10}
        }), encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            Config(config_file=config_file, environment="testing")

        assert "mrz_confidence" in exc_info.value.message
        assert "Lightweight scale" in exc_info.value.message

    def test_malformed_file(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            Config(config_file=config_file, environment="testing")

    def test_save_and_reload(self, tmp_path):
        config = Config(environment="testing")
        config.enhancement.mode = "full"
        config.validation.verification_threshold = 0.8

        path = tmp_path / "saved" / "config.json"
        config.save_to_file(path)
        loaded = Config(config_file=path, environment="testing")

        assert loaded.enhancement.mode == "full"
        assert loaded.validation.verification_threshold == 0.8
        assert json.loads(path.read_text(encoding="utf-8"))["logging"]["level"] == "WARNING"

    def test_engine_config(self):
        assert OCRConfig().get_engine_config("easyocr") == {"languages": ["vi", "en"], "gpu": False}
        with pytest.raises(ConfigurationError):
            OCRConfig().get_engine_config("paddle")


class TestGlobalConfig:
    """Test cases for the global configuration helpers."""

    def test_init_and_reload(self):
        config = init_config(environment="testing")
        assert get_config() is config

        reloaded = reload_config()
        assert reloaded is not config
        assert reloaded.environment == Environment.TESTING


class TestConfigureLogging:
    """Test cases for logging setup."""

    @pytest.fixture(autouse=True)
    def restore_package_logger(self):
        package_logger = logging.getLogger("cccd_parser")
        handlers, level, propagate = list(package_logger.handlers), package_logger.level, package_logger.propagate
        yield
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()
        for handler in handlers:
            package_logger.addHandler(handler)
        package_logger.setLevel(level)
        package_logger.propagate = propagate

    def test_console_handler(self):
        configure_logging(LoggingConfig(level=LogLevel.ERROR))

        package_logger = logging.getLogger("cccd_parser")
        assert package_logger.level == logging.ERROR
        assert len(package_logger.handlers) == 1
        assert isinstance(package_logger.handlers[0], logging.StreamHandler)

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "cccd.log"
        configure_logging(LoggingConfig(file_enabled=True, console_enabled=False, file_path=str(log_file)))

        package_logger = logging.getLogger("cccd_parser")
        assert isinstance(package_logger.handlers[0], logging.handlers.RotatingFileHandler)
        logging.getLogger("cccd_parser.pipeline").warning("written to file")
        package_logger.handlers[0].flush()
        assert "written to file" in log_file.read_text(encoding="utf-8")

    def test_reconfigure_replaces_handlers(self):
        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())
        assert len(logging.getLogger("cccd_parser").handlers) == 1
