#!/usr/bin/env python3
"""
Configuration Module

Centralized configuration management for the CCCD parser.
Handles settings for the OCR engine, image enhancement, the quality gate,
field validation, logging and the HTTP API.
"""

import os
import json
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field, asdict
from enum import Enum

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class OCRConfig:
    """OCR engine configuration."""
    engine: str = "tesseract"
    tesseract_cmd: Optional[str] = None
    document_language: str = "vie"
    digits_language: str = "eng"
    document_psm: int = 6
    digits_psm: int = 7
    digits_oem: int = 1
    digits_whitelist: str = "0123456789"
    easyocr_languages: List[str] = field(default_factory=lambda: ["vi", "en"])
    easyocr_gpu: bool = False
    min_word_confidence: float = 0.0

    def get_engine_config(self, engine: Optional[str] = None) -> Dict[str, Any]:
        """Get configuration for specific OCR engine."""
        engine = engine or self.engine
        if engine == "tesseract":
            return {
                "tesseract_cmd": self.tesseract_cmd,
                "document_language": self.document_language,
                "digits_language": self.digits_language
            }
        elif engine == "easyocr":
            return {
                "languages": self.easyocr_languages,
                "gpu": self.easyocr_gpu
            }
        else:
            raise ConfigurationError(f"Unsupported OCR engine: {engine}")


@dataclass
class EnhancementConfig:
    """Image enhancement configuration."""
    mode: str = "lightweight"
    lightweight_scale: float = 6.0
    full_scale: float = 2.0
    selection_scale: float = 3.0
    clahe_clip_limit: Optional[float] = 2.0
    clahe_tile_size: int = 8
    contrast_factor: float = 1.5
    brightness_multiplier: Optional[float] = None
    max_dimension: int = 4000  # pixels


@dataclass
class QualityConfig:
    """Image quality gate thresholds."""
    blur_threshold: float = 100.0
    sharp_threshold: float = 200.0
    dark_pixel_level: int = 50
    bright_pixel_level: int = 200
    min_avg_brightness: float = 60.0
    max_avg_brightness: float = 200.0
    max_dark_ratio: float = 0.5
    max_bright_ratio: float = 0.5
    enforce_gate: bool = False


@dataclass
class ValidationConfig:
    """Field validation and confidence rules."""
    min_issue_year: int = 2021
    min_year: int = 1900
    max_year: int = 2100
    two_digit_year_pivot: int = 30
    mrz_confidence: float = 0.95
    verification_threshold: float = 0.7


@dataclass
class APIConfig:
    """API configuration."""
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    max_upload_size: int = 10 * 1024 * 1024  # 10MB
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_enabled: bool = False
    file_path: str = "./logs/cccd_parser.log"
    file_max_size: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5
    console_enabled: bool = True

    @property
    def log_file_path(self) -> Path:
        """Get log file path."""
        return Path(self.file_path).resolve()


class Config:
    """Main configuration class."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None, environment: Optional[str] = None):
        try:
            self.environment = Environment(environment or os.getenv("CCCD_ENV", "development"))
        except ValueError as e:
            raise ConfigurationError(f"Unknown environment: {e}")
        self.config_file = Path(config_file) if config_file else None

        # Initialize configuration sections
        self.ocr = OCRConfig()
        self.enhancement = EnhancementConfig()
        self.quality = QualityConfig()
        self.validation = ValidationConfig()
        self.api = APIConfig()
        self.logging = LoggingConfig()

        # Load configuration
        self._load_from_environment()
        if self.config_file and self.config_file.exists():
            self._load_from_file()

        # Apply environment-specific overrides
        self._apply_environment_overrides()

        # Validate configuration
        self._validate_config()

        logger.debug(f"Configuration loaded for {self.environment.value} environment")

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # OCR
        self.ocr.engine = os.getenv("CCCD_OCR_ENGINE", self.ocr.engine)
        self.ocr.tesseract_cmd = os.getenv("TESSERACT_CMD", self.ocr.tesseract_cmd)
        self.ocr.document_language = os.getenv("CCCD_OCR_LANGUAGE", self.ocr.document_language)
        self.ocr.easyocr_gpu = os.getenv("CCCD_OCR_GPU", "false").lower() == "true"

        # Enhancement
        self.enhancement.mode = os.getenv("CCCD_ENHANCEMENT_MODE", self.enhancement.mode)
        self.enhancement.max_dimension = int(os.getenv("CCCD_MAX_DIMENSION", self.enhancement.max_dimension))

        # Quality gate
        self.quality.enforce_gate = os.getenv("CCCD_ENFORCE_QUALITY", "false").lower() == "true"

        # Validation
        self.validation.verification_threshold = float(
            os.getenv("CCCD_VERIFICATION_THRESHOLD", self.validation.verification_threshold)
        )

        # API
        self.api.host = os.getenv("API_HOST", self.api.host)
        self.api.port = int(os.getenv("API_PORT", self.api.port))
        self.api.debug = os.getenv("API_DEBUG", "false").lower() == "true"

        # Logging
        log_level = os.getenv("LOG_LEVEL", self.logging.level.value)
        try:
            self.logging.level = LogLevel(log_level.upper())
        except ValueError:
            logger.warning(f"Invalid log level '{log_level}', using default")

    def _load_from_file(self):
        """Load configuration from JSON file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load configuration from {self.config_file}: {e}")

        # Update configuration sections
        for section_name, section_data in config_data.items():
            section = getattr(self, section_name, None)
            if section is None or not isinstance(section_data, dict):
                logger.warning(f"Ignoring unknown configuration section '{section_name}'")
                continue
            for key, value in section_data.items():
                if not hasattr(section, key):
                    logger.warning(f"Ignoring unknown setting '{section_name}.{key}'")
                    continue
                if key == "level" and isinstance(value, str):
                    value = LogLevel(value.upper())
                setattr(section, key, value)

        logger.info(f"Configuration loaded from {self.config_file}")

    def _apply_environment_overrides(self):
        """Apply environment-specific configuration overrides."""
        if self.environment == Environment.DEVELOPMENT:
            self.api.debug = True
            self.logging.level = LogLevel.DEBUG

        elif self.environment == Environment.TESTING:
            self.logging.level = LogLevel.WARNING
            self.logging.file_enabled = False

        elif self.environment == Environment.PRODUCTION:
            self.api.debug = False
            self.logging.level = LogLevel.INFO
            self.logging.file_enabled = True

    def _validate_config(self):
        """Validate configuration settings."""
        errors = []

        if self.ocr.engine not in ("tesseract", "easyocr"):
            errors.append(f"Unsupported OCR engine: {self.ocr.engine}")

        if self.enhancement.mode not in ("lightweight", "full", "selection"):
            errors.append(f"Unknown enhancement mode: {self.enhancement.mode}")

        if not 3.0 <= self.enhancement.lightweight_scale <= 6.0:
            errors.append(f"Lightweight scale must be between 3 and 6: {self.enhancement.lightweight_scale}")

        if self.enhancement.clahe_tile_size < 1:
            errors.append(f"Invalid CLAHE tile size: {self.enhancement.clahe_tile_size}")

        if self.enhancement.max_dimension < 32:
            errors.append(f"Invalid max dimension: {self.enhancement.max_dimension}")

        if self.quality.blur_threshold > self.quality.sharp_threshold:
            errors.append("Blur threshold must not exceed sharp threshold")

        for name in ("mrz_confidence", "verification_threshold"):
            value = getattr(self.validation, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"{name} must be within [0, 1]: {value}")

        if self.api.port < 1 or self.api.port > 65535:
            errors.append(f"Invalid API port: {self.api.port}")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ConfigurationError(error_msg)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        logging_section = asdict(self.logging)
        logging_section["level"] = self.logging.level.value
        return {
            "environment": self.environment.value,
            "ocr": asdict(self.ocr),
            "enhancement": asdict(self.enhancement),
            "quality": asdict(self.quality),
            "validation": asdict(self.validation),
            "api": asdict(self.api),
            "logging": logging_section
        }

    def save_to_file(self, file_path: Union[str, Path]):
        """Save configuration to JSON file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info(f"Configuration saved to {file_path}")

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING


def configure_logging(logging_config: LoggingConfig) -> None:
    """Install console and rotating file handlers on the package logger."""
    package_logger = logging.getLogger("cccd_parser")
    package_logger.setLevel(logging_config.level.value)
    formatter = logging.Formatter(logging_config.format, logging_config.date_format)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if logging_config.console_enabled:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        package_logger.addHandler(console)

    if logging_config.file_enabled:
        logging_config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            logging_config.log_file_path,
            maxBytes=logging_config.file_max_size,
            backupCount=logging_config.file_backup_count,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    package_logger.propagate = False


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def init_config(config_file: Optional[Union[str, Path]] = None, environment: Optional[str] = None) -> Config:
    """Initialize global configuration."""
    global _config
    _config = Config(config_file=config_file, environment=environment)
    return _config


def reload_config() -> Config:
    """Reload global configuration."""
    global _config
    if _config:
        _config = Config(config_file=_config.config_file, environment=_config.environment.value)
    else:
        _config = Config()
    return _config
