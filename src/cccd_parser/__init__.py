#!/usr/bin/env python3
"""
CCCD Parser

OCR and field extraction pipeline for Vietnamese citizen identity cards
(Căn cước công dân). Turns a photo of the card into a validated record with
a confidence score.

Features:
- Image quality gate (blur, exposure)
- Image enhancement (upscale, CLAHE, denoise, sharpen, Otsu)
- OCR through Tesseract, with EasyOCR as an optional engine
- MRZ decoding with regex fallback
- Field validation and OCR error correction
- RESTful API and command line interface

Version: 1.0.0
"""

__version__ = "1.0.0"

# Core modules
from .enhancement import EnhancementMode, ImageEnhancer
from .exceptions import CCCDParserError, ConfigurationError, ImageDecodeError, RecognitionEngineError
from .field_extractor import ExtractionResult, FieldExtractor
from .models import ExtractedFields, MRZRecord, PipelineResult, QualityReport, RawImage, RecognitionResult
from .mrz import MRZParser, parse_mrz
from .pipeline import CCCDPipeline
from .quality import ImageQualityChecker
from .recognition import DIGITS_ONLY, GENERAL_TEXT, RecognitionOptions, TextRecognizer
from .session import CaptureSession, CaptureStep
from .validator import DocumentValidator, fix_ocr_errors, validate_cccd_number, validate_date

__all__ = [
    "CCCDPipeline",
    "CaptureSession",
    "CaptureStep",
    "DocumentValidator",
    "EnhancementMode",
    "ExtractedFields",
    "ExtractionResult",
    "FieldExtractor",
    "ImageEnhancer",
    "ImageQualityChecker",
    "MRZParser",
    "MRZRecord",
    "PipelineResult",
    "QualityReport",
    "RawImage",
    "RecognitionOptions",
    "RecognitionResult",
    "TextRecognizer",
    "GENERAL_TEXT",
    "DIGITS_ONLY",
    "parse_mrz",
    "fix_ocr_errors",
    "validate_cccd_number",
    "validate_date",
    "CCCDParserError",
    "ConfigurationError",
    "ImageDecodeError",
    "RecognitionEngineError",
]
