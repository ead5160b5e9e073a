#!/usr/bin/env python3
"""
CCCD Data Models

Defines the data structures that flow through the CCCD parsing pipeline:
raw and enhanced images, quality reports, recognition results, MRZ records,
extracted fields, validation reports and the final pipeline result.
"""

import logging
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

# Configure logging
logger = logging.getLogger(__name__)

# Canonical gender tokens printed on the card
GENDER_MALE = "Nam"
GENDER_FEMALE = "Nữ"
CANONICAL_GENDERS = (GENDER_MALE, GENDER_FEMALE)

CRITICAL_FIELDS = ("cccd_number", "full_name", "date_of_birth", "gender")
OPTIONAL_FIELDS = (
    "nationality",
    "place_of_origin",
    "place_of_residence",
    "issue_date",
    "issuing_authority",
)
ALL_FIELDS = CRITICAL_FIELDS + OPTIONAL_FIELDS


class DocumentSide(Enum):
    """Side of the identity card an image shows."""
    FRONT = "front"
    BACK = "back"

    @classmethod
    def from_string(cls, value: str) -> 'DocumentSide':
        """Create DocumentSide from string value."""
        return cls(value.lower())


class BrightnessLevel(Enum):
    """Exposure classification of an image."""
    TOO_DARK = "too_dark"
    TOO_BRIGHT = "too_bright"
    GOOD = "good"


class PipelineStage(Enum):
    """States of the pipeline orchestrator, in execution order."""
    QUALITY_CHECK = "quality_check"
    ENHANCE = "enhance"
    RECOGNIZE = "recognize"
    MRZ_ATTEMPT = "mrz_attempt"
    REGEX_FALLBACK = "regex_fallback"
    VALIDATE = "validate"
    DONE = "done"


class ExtractionMethod(Enum):
    """Which path produced the final record."""
    MRZ = "mrz"
    REGEX = "regex"
    NUMBER_ONLY = "number_only"
    NONE = "none"


@dataclass(frozen=True)
class Region:
    """Rectangular selection inside an image, in source pixels."""
    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Region':
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            width=int(data["width"]),
            height=int(data["height"])
        )


@dataclass(eq=False)
class RawImage:
    """
    RGBA pixel buffer.

    ``pixels`` has shape (height, width, 4) and dtype uint8. Stages never
    modify a buffer they received; each one allocates its own output.
    """
    pixels: np.ndarray

    def __post_init__(self):
        if not isinstance(self.pixels, np.ndarray):
            raise TypeError(f"pixels must be a numpy array, got {type(self.pixels)}")
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"pixels must have shape (H, W, 4), got {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"pixels must be uint8, got {self.pixels.dtype}")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> int:
        """Number of pixels."""
        return self.width * self.height

    def copy(self) -> 'RawImage':
        return RawImage(self.pixels.copy())


@dataclass(eq=False)
class EnhancedImage(RawImage):
    """RawImage plus the ordered list of transforms that produced it."""
    transforms: List[str] = field(default_factory=list)
    otsu_threshold: Optional[int] = None

    def with_transform(self, pixels: np.ndarray, name: str, **changes) -> 'EnhancedImage':
        """Return a new EnhancedImage with ``name`` appended to the history."""
        return replace(self, pixels=pixels, transforms=self.transforms + [name], **changes)

    @classmethod
    def from_raw(cls, image: RawImage) -> 'EnhancedImage':
        if isinstance(image, EnhancedImage):
            return image
        return cls(pixels=image.pixels, transforms=[])


@dataclass(frozen=True)
class QualityReport:
    """Blur, exposure and framing assessment of a raw image."""
    is_blurry: bool
    blur_variance: float
    blur_quality: str
    brightness: BrightnessLevel
    avg_brightness: float
    dark_ratio: float = 0.0
    bright_ratio: float = 0.0
    has_missing_corners: bool = False

    @property
    def passed(self) -> bool:
        return (not self.is_blurry
                and self.brightness == BrightnessLevel.GOOD
                and not self.has_missing_corners)

    @property
    def issues(self) -> List[str]:
        messages = []
        if self.is_blurry:
            messages.append("Image is blurry, please recapture")
        if self.brightness == BrightnessLevel.TOO_DARK:
            messages.append("Image is too dark, increase lighting")
        elif self.brightness == BrightnessLevel.TOO_BRIGHT:
            messages.append("Image is overexposed, reduce lighting")
        if self.has_missing_corners:
            messages.append("Card corners are not fully visible")
        return messages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "is_blurry": self.is_blurry,
            "blur_variance": self.blur_variance,
            "blur_quality": self.blur_quality,
            "brightness": self.brightness.value,
            "avg_brightness": self.avg_brightness,
            "dark_ratio": self.dark_ratio,
            "bright_ratio": self.bright_ratio,
            "has_missing_corners": self.has_missing_corners,
            "issues": self.issues
        }


@dataclass(frozen=True)
class RecognitionResult:
    """Normalised output of a text recognition call."""
    text: str
    confidence: float

    def __post_init__(self):
        object.__setattr__(self, "text", self.text or "")
        object.__setattr__(self, "confidence", min(max(float(self.confidence or 0.0), 0.0), 1.0))

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @classmethod
    def empty(cls) -> 'RecognitionResult':
        return cls(text="", confidence=0.0)


@dataclass
class ExtractedFields:
    """
    Canonical identity record.

    Every field is either a non-empty string or None. Empty and
    whitespace-only strings are stored as None.
    """
    cccd_number: Optional[str] = None
    full_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    place_of_origin: Optional[str] = None
    place_of_residence: Optional[str] = None
    issue_date: Optional[str] = None
    issuing_authority: Optional[str] = None

    def __post_init__(self):
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if value is not None:
                value = str(value).strip()
                setattr(self, f.name, value or None)

    def get(self, name: str) -> Optional[str]:
        return getattr(self, name)

    def has(self, name: str) -> bool:
        return getattr(self, name) is not None

    def present_fields(self) -> List[str]:
        return [name for name in ALL_FIELDS if self.has(name)]

    def merged_with(self, other: 'ExtractedFields') -> 'ExtractedFields':
        """Fill fields absent here from ``other``; present values are kept."""
        values = self.to_dict()
        for name, value in other.to_dict().items():
            values.setdefault(name, value)
        return ExtractedFields(**values)

    def overridden_by(self, other: 'ExtractedFields') -> 'ExtractedFields':
        """Return a copy where every field present in ``other`` wins."""
        values = self.to_dict()
        values.update(other.to_dict())
        return ExtractedFields(**values)

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in ALL_FIELDS if getattr(self, name) is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtractedFields':
        return cls(**{k: v for k, v in data.items() if k in ALL_FIELDS})


@dataclass(frozen=True)
class MRZRecord:
    """Identity fields decoded from the machine readable zone."""
    document_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    sex: Optional[str] = None
    expiry_date: Optional[str] = None
    surname: Optional[str] = None
    given_names: Optional[str] = None
    nationality: Optional[str] = None
    check_digits_valid: Optional[bool] = None

    @property
    def full_name(self) -> Optional[str]:
        if self.surname and self.given_names:
            return f"{self.surname} {self.given_names}"
        return None

    @property
    def gender(self) -> Optional[str]:
        if self.sex == "M":
            return GENDER_MALE
        if self.sex == "F":
            return GENDER_FEMALE
        return None

    @property
    def is_usable(self) -> bool:
        """Both mandatory fields (document number, name) are present."""
        return bool(self.document_number and self.full_name)

    def to_fields(self) -> ExtractedFields:
        return ExtractedFields(
            cccd_number=self.document_number,
            full_name=self.full_name,
            date_of_birth=self.date_of_birth,
            gender=self.gender,
            nationality=self.nationality
        )


@dataclass
class ValidationReport:
    """Outcome of post-processing a merged record."""
    format_valid: bool
    missing_fields: List[str] = field(default_factory=list)
    critical_missing: List[str] = field(default_factory=list)
    invalid_fields: List[str] = field(default_factory=list)
    needs_manual_review: bool = False
    validation_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_valid": self.format_valid,
            "missing_fields": list(self.missing_fields),
            "critical_missing": list(self.critical_missing),
            "invalid_fields": list(self.invalid_fields),
            "needs_manual_review": self.needs_manual_review,
            "validation_errors": list(self.validation_errors)
        }


@dataclass
class PipelineResult:
    """Final record handed to the KYC collaborators."""
    extracted_data: ExtractedFields
    confidence_score: float
    format_valid: bool
    missing_fields: List[str]
    method: ExtractionMethod = ExtractionMethod.NONE
    quality: Optional[QualityReport] = None
    validation: Optional[ValidationReport] = None
    stages: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.extracted_data.has("cccd_number")

    @property
    def needs_manual_review(self) -> bool:
        return bool(self.validation and self.validation.needs_manual_review)

    @classmethod
    def failed(cls, quality: Optional[QualityReport] = None,
               stages: Optional[List[str]] = None) -> 'PipelineResult':
        """Total-failure result: no fields, zero confidence."""
        return cls(
            extracted_data=ExtractedFields(),
            confidence_score=0.0,
            format_valid=False,
            missing_fields=list(CRITICAL_FIELDS),
            method=ExtractionMethod.NONE,
            quality=quality,
            stages=list(stages or [])
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "extracted_data": self.extracted_data.to_dict(),
            "confidence_score": self.confidence_score,
            "format_valid": self.format_valid,
            "missing_fields": list(self.missing_fields),
            "method": self.method.value,
            "needs_manual_review": self.needs_manual_review,
            "validation_errors": list(self.validation.validation_errors) if self.validation else [],
            "stages": list(self.stages)
        }
        if self.quality is not None:
            data["quality"] = self.quality.to_dict()
        return data
