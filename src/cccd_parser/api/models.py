#!/usr/bin/env python3
"""
API Models

Pydantic models for the CCCD extraction endpoints.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Configure logging
logger = logging.getLogger(__name__)


class ExtractedFieldsModel(BaseModel):
    """Identity fields read from the card."""
    cccd_number: Optional[str] = Field(None, description="12-digit citizen ID number")
    full_name: Optional[str] = Field(None, description="Full name in upper case")
    date_of_birth: Optional[str] = Field(None, description="Date of birth, DD/MM/YYYY")
    gender: Optional[str] = Field(None, description="Nam or Nữ")
    nationality: Optional[str] = Field(None, description="Nationality")
    place_of_origin: Optional[str] = Field(None, description="Place of origin")
    place_of_residence: Optional[str] = Field(None, description="Place of residence")
    issue_date: Optional[str] = Field(None, description="Issue date, DD/MM/YYYY")
    issuing_authority: Optional[str] = Field(None, description="Issuing authority")


class QualityReportModel(BaseModel):
    """Image quality assessment."""
    passed: bool = Field(..., description="Whether the image passed every check")
    is_blurry: bool = Field(..., description="Laplacian variance below the blur threshold")
    blur_variance: float = Field(..., description="Laplacian variance of the luminance")
    blur_quality: str = Field(..., description="blurry, acceptable or sharp")
    brightness: str = Field(..., description="too_dark, too_bright or good")
    avg_brightness: float = Field(..., description="Mean luminance")
    dark_ratio: float = Field(..., description="Share of dark pixels")
    bright_ratio: float = Field(..., description="Share of bright pixels")
    has_missing_corners: bool = Field(..., description="Whether a card corner is outside the frame")
    issues: List[str] = Field(default_factory=list, description="Human-readable problems")


class ExtractionResponse(BaseModel):
    """Result of a CCCD extraction request."""
    success: bool = Field(..., description="Whether the CCCD number was read")
    extracted_data: ExtractedFieldsModel = Field(..., description="Extracted fields")
    confidence_score: float = Field(..., ge=0.0, le=1.0, description="Overall confidence")
    format_valid: bool = Field(..., description="All critical fields present and well formed")
    missing_fields: List[str] = Field(default_factory=list, description="Critical fields not found")
    method: str = Field(..., description="mrz, regex, number_only or none")
    needs_manual_review: bool = Field(False, description="Record should be checked by a person")
    validation_errors: List[str] = Field(default_factory=list, description="Validation messages")
    stages: List[str] = Field(default_factory=list, description="Pipeline stages visited")
    quality: Optional[QualityReportModel] = Field(None, description="Front image quality")
    verification_status: str = Field(..., description="verified or pending")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(..., description="Check time")
    engine: Dict[str, Any] = Field(default_factory=dict, description="OCR engine information")


class ErrorResponse(BaseModel):
    """Error body returned for failed requests."""
    code: str = Field(..., description="Application error code")
    message: str = Field(..., description="Human-readable error message")
    status: int = Field(..., description="HTTP status code")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional context")
