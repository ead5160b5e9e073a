#!/usr/bin/env python3
"""
MRZ Parser

Decodes the machine readable zone printed on the back of the Vietnamese
CCCD (ICAO 9303 TD1, three lines of 30 characters):

    Line 1: IDVNM + document number + check digit + optional data
    Line 2: birth date + check + sex + expiry date + check + nationality
    Line 3: SURNAME<<GIVEN<NAMES

OCR output is noisy, so lines are located heuristically rather than by
position and every field is optional.
"""

import logging
import re
from datetime import date
from typing import List, Optional, Tuple

from .models import MRZRecord

# Configure logging
logger = logging.getLogger(__name__)

MIN_LINE_LENGTH = 30
DOCUMENT_NUMBER_LENGTH = 12

NATIONALITY_NAMES = {
    "VNM": "Việt Nam"
}

_NON_MRZ_CHARS = re.compile(r"[^A-Za-z0-9<]")
_TWELVE_DIGITS = re.compile(r"\d{12}")
_MRZ_ALPHABET = re.compile(r"^[A-Z0-9<]+$")
_DATES_PATTERN = re.compile(r"(\d{6})(\d)?([MFN<])(\d{6})(\d)?([A-Z<]{3})?")
_LETTERS = re.compile(r"^[A-Z]+$")

_CHECK_WEIGHTS = (7, 3, 1)


def compute_check_digit(value: str) -> int:
    """
    ICAO 9303 check digit.

    Digits count as themselves, letters A-Z as 10-35 and the filler '<' as 0;
    values are weighted 7, 3, 1 repeating and summed modulo 10.
    """
    total = 0
    for index, char in enumerate(value):
        if char.isdigit():
            number = int(char)
        elif "A" <= char <= "Z":
            number = ord(char) - ord("A") + 10
        else:
            number = 0
        total += number * _CHECK_WEIGHTS[index % 3]
    return total % 10


def clean_line(line: str) -> str:
    """Keep only the MRZ alphabet, upper-cased."""
    return _NON_MRZ_CHARS.sub("", line).upper()


def is_mrz_line(cleaned: str) -> bool:
    if len(cleaned) < MIN_LINE_LENGTH:
        return False
    return ("<<" in cleaned
            or cleaned.startswith("ID")
            or cleaned.startswith("VNM")
            or bool(_TWELVE_DIGITS.search(cleaned))
            or bool(_MRZ_ALPHABET.match(cleaned)))


def _parse_yymmdd(value: str, century: int) -> Optional[date]:
    try:
        return date(century + int(value[0:2]), int(value[2:4]), int(value[4:6]))
    except ValueError:
        return None


class MRZParser:
    """Locates MRZ lines in OCR text and decodes them into an MRZRecord."""

    def find_mrz_lines(self, text: str) -> List[str]:
        """Return cleaned candidate MRZ lines in reading order."""
        lines = []
        for raw_line in re.split(r"[\r\n]+", text or ""):
            cleaned = clean_line(raw_line)
            if is_mrz_line(cleaned):
                lines.append(cleaned)
        return lines

    def parse(self, text: str) -> Optional[MRZRecord]:
        """
        Parse MRZ fields out of recognised text.

        Args:
            text: Raw OCR text, possibly containing non-MRZ lines

        Returns:
            MRZRecord with whatever fields could be decoded, or None when
            fewer than two MRZ lines are present
        """
        lines = self.find_mrz_lines(text)
        logger.debug(f"Found {len(lines)} MRZ candidate lines")
        if len(lines) < 2:
            return None

        checks: List[bool] = []

        document_number = self._parse_document_number(lines, checks)
        birth, sex, expiry, nationality = self._parse_dates(lines, checks)
        surname, given_names = self._parse_name(lines)

        record = MRZRecord(
            document_number=document_number,
            date_of_birth=birth,
            sex=sex,
            expiry_date=expiry,
            surname=surname,
            given_names=given_names,
            nationality=nationality,
            check_digits_valid=all(checks) if checks else None
        )
        logger.info(f"MRZ parsed: usable={record.is_usable}, check digits valid={record.check_digits_valid}")
        return record

    def _parse_document_number(self, lines: List[str], checks: List[bool]) -> Optional[str]:
        for line in lines:
            if not (line.startswith("ID") or line.startswith("VNM")):
                continue

            if line.startswith("ID") and len(line) >= 15 and line[14].isdigit():
                checks.append(compute_check_digit(line[5:14]) == int(line[14]))

            # TD1: the full 12-digit number lives in the optional data field
            optional_data = line[15:15 + DOCUMENT_NUMBER_LENGTH]
            if line.startswith("ID") and re.fullmatch(r"\d{12}", optional_data):
                return optional_data

            match = _TWELVE_DIGITS.search(line)
            if match:
                return match.group(0)
        return None

    def _parse_dates(self, lines: List[str],
                     checks: List[bool]) -> Tuple[Optional[str], Optional[str], Optional[str], Optional[str]]:
        for line in lines:
            match = _DATES_PATTERN.search(line)
            if not match:
                continue

            birth_raw, birth_check, sex, expiry_raw, expiry_check, country = match.groups()
            if birth_check is not None:
                checks.append(compute_check_digit(birth_raw) == int(birth_check))
            if expiry_check is not None:
                checks.append(compute_check_digit(expiry_raw) == int(expiry_check))

            birth_century = 2000 if int(birth_raw[0:2]) < 50 else 1900
            birth = _parse_yymmdd(birth_raw, birth_century)
            expiry = _parse_yymmdd(expiry_raw, 2000)

            nationality = None
            if country and _LETTERS.match(country):
                nationality = NATIONALITY_NAMES.get(country, country)

            return (
                birth.strftime("%d/%m/%Y") if birth else None,
                sex if sex in ("M", "F") else None,
                expiry.strftime("%d/%m/%Y") if expiry else None,
                nationality
            )
        return None, None, None, None

    def _parse_name(self, lines: List[str]) -> Tuple[Optional[str], Optional[str]]:
        for line in lines:
            if "<<" not in line:
                continue
            parts = line.split("<<")
            surname = parts[0].strip("<")
            if not _LETTERS.match(surname):
                continue
            given_names = " ".join(re.sub(r"[^A-Z<]", "", parts[1]).replace("<", " ").split())
            if given_names:
                return surname, given_names
        return None, None


def parse_mrz(text: str) -> Optional[MRZRecord]:
    """Convenience function to parse MRZ from text."""
    return MRZParser().parse(text)
