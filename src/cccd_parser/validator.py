#!/usr/bin/env python3
"""
Document Field Validator

Post-processes extracted CCCD fields: repairs common OCR digit confusions,
normalises dates, checks formats and decides whether a record needs
manual review.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from .config import ValidationConfig
from .models import (
    CANONICAL_GENDERS,
    CRITICAL_FIELDS,
    OPTIONAL_FIELDS,
    ExtractedFields,
    ValidationReport,
)

# Configure logging
logger = logging.getLogger(__name__)

# Letter -> digit substitutions, split by how much digit context they need
EITHER_NEIGHBOUR = {"O": "0", "o": "0", "I": "1", "l": "1", "|": "1"}
BOTH_NEIGHBOURS = {"S": "5", "s": "5", "Z": "2", "z": "2", "B": "8", "b": "8"}

DATE_FORMAT = re.compile(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})")


@dataclass(frozen=True)
class CCCDValidation:
    """Result of checking a CCCD number."""
    valid: bool
    fixed: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class DateValidation:
    """Result of checking a DD/MM/YYYY date."""
    valid: bool
    fixed: Optional[str] = None
    error: Optional[str] = None

    @property
    def year(self) -> Optional[int]:
        return int(self.fixed[-4:]) if self.valid and self.fixed else None


def fix_ocr_errors(token: Optional[str]) -> Optional[str]:
    """
    Replace letters OCR commonly confuses with digits.

    O/o become 0 and I/l/| become 1 when either neighbour is a digit; S/s, Z/z
    and B/b become 5, 2 and 8 only when both neighbours are digits. Neighbours
    are always read from the original token, so one substitution never enables
    another.
    """
    if not token:
        return token

    def is_digit_at(index: int) -> bool:
        return 0 <= index < len(token) and token[index].isdigit()

    chars = []
    for index, char in enumerate(token):
        before, after = is_digit_at(index - 1), is_digit_at(index + 1)
        if char in EITHER_NEIGHBOUR and (before or after):
            chars.append(EITHER_NEIGHBOUR[char])
        elif char in BOTH_NEIGHBOURS and before and after:
            chars.append(BOTH_NEIGHBOURS[char])
        else:
            chars.append(char)
    return "".join(chars)


def validate_cccd_number(value: Optional[str]) -> CCCDValidation:
    """Check that a CCCD number is exactly 12 digits once OCR confusions are repaired."""
    if not value:
        return CCCDValidation(valid=False, fixed="", error="CCCD number is missing")

    digits = re.sub(r"\D", "", fix_ocr_errors(value))
    if len(digits) != 12:
        return CCCDValidation(valid=False, fixed=digits,
                              error=f"CCCD must be 12 digits, got {len(digits)}")
    return CCCDValidation(valid=True, fixed=digits)


def validate_date(value: Optional[str], field_name: str = "Date",
                  min_year: int = 1900, max_year: int = 2100) -> DateValidation:
    """
    Validate a DD/MM/YYYY date and normalise it to zero-padded form.

    Args:
        value: Date string; '/', '-' and '.' separators are accepted
        field_name: Name used in error messages
        min_year: Earliest accepted year
        max_year: Latest accepted year

    Returns:
        DateValidation: Validity, the normalised date and an error message
    """
    if not value:
        return DateValidation(valid=False, error=f"{field_name} is missing")

    match = DATE_FORMAT.fullmatch(value.strip())
    if not match:
        return DateValidation(valid=False, error=f"{field_name} format invalid, expected DD/MM/YYYY")

    day, month, year = (int(part) for part in match.groups())
    if not 1 <= month <= 12:
        return DateValidation(valid=False, error=f"Invalid month: {month}")
    if not 1 <= day <= 31:
        return DateValidation(valid=False, error=f"Invalid day: {day}")
    if not min_year <= year <= max_year:
        return DateValidation(valid=False, error=f"Invalid year: {year}")
    try:
        date(year, month, day)
    except ValueError:
        return DateValidation(valid=False, error=f"Date does not exist: {day}/{month}/{year}")

    return DateValidation(valid=True, fixed=f"{day:02d}/{month:02d}/{year}")


def is_valid_name(value: str) -> bool:
    return bool(value.strip()) and all(char.isalpha() or char == " " for char in value)


class DocumentValidator:
    """
    Validator for merged CCCD records.

    Features:
    - CCCD number repair and length check
    - Date normalisation and calendar checks
    - Manual review flag for pre-chip issue dates
    - Format verdict computed from the critical fields only
    """

    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or ValidationConfig()

    def _validate_date(self, value: str, field_name: str) -> DateValidation:
        return validate_date(value, field_name, self.config.min_year, self.config.max_year)

    def validate(self, fields: ExtractedFields) -> Tuple[ExtractedFields, ValidationReport]:
        """
        Validate and correct a record.

        Args:
            fields: Merged extraction result

        Returns:
            Tuple of the corrected copy of ``fields`` and a ValidationReport.
            Running validate on the corrected copy returns the same pair.
        """
        values = fields.to_dict()
        errors: List[str] = []
        invalid: List[str] = []
        needs_review = False

        if fields.cccd_number:
            result = validate_cccd_number(fields.cccd_number)
            if result.valid:
                values["cccd_number"] = result.fixed
            else:
                errors.append(result.error)
                invalid.append("cccd_number")
                needs_review = True

        if fields.full_name and not is_valid_name(fields.full_name):
            invalid.append("full_name")
            errors.append("Full name contains invalid characters")
            needs_review = True

        if fields.date_of_birth:
            result = self._validate_date(fields.date_of_birth, "Date of birth")
            if result.valid:
                values["date_of_birth"] = result.fixed
            else:
                errors.append(result.error)
                invalid.append("date_of_birth")
                needs_review = True

        if fields.gender and fields.gender not in CANONICAL_GENDERS:
            invalid.append("gender")
            errors.append(f"Gender must be Nam or Nữ, got {fields.gender}")
            needs_review = True

        if fields.issue_date:
            result = self._validate_date(fields.issue_date, "Issue date")
            if result.valid:
                values["issue_date"] = result.fixed
                if result.year < self.config.min_issue_year:
                    errors.append(f"Issue date must be >= {self.config.min_issue_year} for chip-based CCCD")
                    needs_review = True
            else:
                errors.append(result.error)
                invalid.append("issue_date")
                needs_review = True

        corrected = ExtractedFields(**values)
        critical_missing = [name for name in CRITICAL_FIELDS if not corrected.has(name)]
        missing = critical_missing + [name for name in OPTIONAL_FIELDS if not corrected.has(name)]
        format_valid = not critical_missing and not any(name in invalid for name in CRITICAL_FIELDS)

        report = ValidationReport(
            format_valid=format_valid,
            missing_fields=missing,
            critical_missing=critical_missing,
            invalid_fields=invalid,
            needs_manual_review=needs_review,
            validation_errors=errors
        )
        logger.info(f"Validation: format_valid={format_valid}, review={needs_review}, "
                    f"critical_missing={critical_missing}")
        return corrected, report


def postprocess(fields: ExtractedFields,
                config: Optional[ValidationConfig] = None) -> Tuple[ExtractedFields, ValidationReport]:
    """Convenience function to validate a record."""
    return DocumentValidator(config).validate(fields)
