#!/usr/bin/env python3
"""
Exception hierarchy for the CCCD parser.

Only unexpected faults are raised. Expected failures (blurry photo, empty OCR
text, missing fields) travel through the pipeline as data.
"""

from typing import Any, Dict, Optional


class CCCDParserError(Exception):
    """
    Base exception for all parser errors.

    Attributes:
        message: Human-readable error message
        error_code: Application-specific error code
        http_status: HTTP status code the API returns for this error
        details: Additional context
    """

    error_code = "CCCD_PARSER_ERROR"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "status": self.http_status,
            "details": self.details
        }


class ImageDecodeError(CCCDParserError):
    """The supplied image could not be read or decoded."""

    error_code = "IMAGE_DECODE_ERROR"
    http_status = 400


class RecognitionEngineError(CCCDParserError):
    """The OCR engine is unavailable or failed for a reason other than "no text"."""

    error_code = "RECOGNITION_ENGINE_ERROR"
    http_status = 503


class ConfigurationError(CCCDParserError):
    """Configuration values are missing or out of range."""

    error_code = "CONFIGURATION_ERROR"
    http_status = 500
