#!/usr/bin/env python3
"""
Field Extraction Service

Extracts CCCD fields from recognised text with rule-based strategies.
Each field has an ordered list of strategies (labelled pattern first, then
positional heuristics); the first strategy that yields a value wins and
is recorded as the field's source.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .models import GENDER_FEMALE, GENDER_MALE, DocumentSide, ExtractedFields

# Configure logging
logger = logging.getLogger(__name__)

# Upper-case Vietnamese letters
UPPER_VI = "A-ZÀÁẠẢÃÂẦẤẬẨẪĂẰẮẶẲẴÈÉẸẺẼÊỀẾỆỂỄÌÍỊỈĨÒÓỌỎÕÔỒỐỘỔỖƠỜỚỢỞỠÙÚỤỦŨƯỪỨỰỬỮỲÝỴỶỸĐ"

UPPER_WORD_RUN = rf"(?:[{UPPER_VI}]+\b)(?:[ \t]+[{UPPER_VI}]+\b)*"
UPPER_LINE = re.compile(rf"^[{UPPER_VI}\s]+$")

HEADER_PHRASES = [
    r"CỘNG\s+HÒA\s+XÃ\s+HỘI\s+CHỦ\s+NGHĨA\s+VIỆT\s+NAM",
    r"CÒNG\s+HÒA\s+XÃ\s+HỘI",
    r"ĐỘC\s+LẬP\s*-\s*TỰ\s+DO\s*-\s*HẠNH\s+PHÚC",
    r"CĂN\s+CƯỚC\s+CÔNG\s+DÂN",
    r"SOCIALIST\s+REPUBLIC\s+OF\s+VIET\s*NAM",
    r"SOCIALIST\s+REPUBLIC",
    r"INDEPENDENCE\s*-\s*FREEDOM\s*-\s*HAPPINESS",
    r"CITIZEN\s+IDENTITY\s+CARD",
]
HEADER_PATTERN = re.compile("|".join(HEADER_PHRASES), re.IGNORECASE)
HEADER_KEYWORDS = re.compile(r"CỘNG|HÒA|XÃ\s+HỘI|CÔNG\s+DÂN|IDENTITY|CARD|REPUBLIC|CĂN\s+CƯỚC|VIỆT\s+NAM", re.IGNORECASE)

# Vietnamese / English label pairs, as printed on the card
LABELS = {
    "cccd_number": (r"Số", r"No\.?"),
    "full_name": (r"Họ\s+và\s+tên", r"Full\s+name"),
    "date_of_birth": (r"Ngày(?:,\s*tháng,\s*năm)?\s+sinh", r"Date\s+of\s+birth"),
    "gender": (r"Giới\s+tính", r"Sex"),
    "nationality": (r"Quốc\s+tịch", r"Nationality"),
    "place_of_origin": (r"Quê\s+quán|Nơi\s+đăng\s+ký\s+khai\s+sinh", r"Place\s+of\s+(?:origin|birth)"),
    "place_of_residence": (r"Nơi\s+(?:thường|cư)\s+trú", r"Place\s+of\s+residence"),
    "expiry_date": (r"Có\s+giá\s+trị\s+đến", r"Date\s+of\s+expiry"),
    "issue_date": (r"Ngày(?:,\s*tháng,\s*năm)?(?:\s+cấp)?", r"Date(?:,\s*month,\s*year|\s+of\s+issue)?"),
    "issuing_authority": (r"Cơ\s+quan(?:\s+cấp)?", r"Authority|Issued\s+by"),
    "features": (r"Đặc\s+điểm\s+nhân\s+dạng", r"Personal\s+identification"),
}

LABEL_SEPARATOR = r"[: \t/]*"

DATE_BODY = r"(\d{1,2})[\s/\-.](\d{1,2})[\s/\-.](\d{4}|\d{2})(?!\d)"
BARE_DATE = re.compile(r"(?<!\d)(\d{1,2})[/\-. ](\d{1,2})[/\-. ](\d{4})(?!\d)")

GENDER_SYNONYMS = {
    "NAM": GENDER_MALE,
    "M": GENDER_MALE,
    "MALE": GENDER_MALE,
    "NGM": GENDER_MALE,
    "NỮ": GENDER_FEMALE,
    "F": GENDER_FEMALE,
    "FEMALE": GENDER_FEMALE,
}

AUTHORITY_LINE = re.compile(r"CẢNH\s+SÁT", re.IGNORECASE)


def bilingual_label(name: str) -> str:
    """Regex matching the Vietnamese label, optionally followed by '/ English', or the English label alone."""
    vietnamese, english = LABELS[name]
    return rf"(?:{vietnamese})(?:\s*/\s*(?:{english}))?|(?:{english})"


def _labelled(name: str, body: str) -> re.Pattern:
    return re.compile(rf"(?:{bilingual_label(name)}){LABEL_SEPARATOR}{body}", re.IGNORECASE)


ANY_LABEL = re.compile("|".join(f"(?:{bilingual_label(name)})" for name in LABELS
                                if name not in ("cccd_number", "issue_date")), re.IGNORECASE)


def normalize_date(day: str, month: str, year: str, pivot: int = 30) -> Optional[str]:
    """
    Format date parts as DD/MM/YYYY.

    Two-digit years above ``pivot`` are read as 19xx, others as 20xx. Day and
    month are only range checked here; calendar validity is the validator's job.
    """
    if len(year) == 2:
        year = f"19{year}" if int(year) > pivot else f"20{year}"
    d, m = int(day), int(month)
    if not (1 <= d <= 31 and 1 <= m <= 12):
        return None
    return f"{d:02d}/{m:02d}/{year}"


def collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


@dataclass
class ExtractionResult:
    """Extracted fields and the strategy that produced each one."""
    fields: ExtractedFields = field(default_factory=ExtractedFields)
    sources: Dict[str, str] = field(default_factory=dict)

    def merged_with(self, other: 'ExtractionResult') -> 'ExtractionResult':
        sources = dict(other.sources)
        sources.update(self.sources)
        merged = self.fields.merged_with(other.fields)
        return ExtractionResult(merged, {k: v for k, v in sources.items() if merged.has(k)})


Strategy = Callable[[str, List[str]], Optional[str]]


class FieldExtractor:
    """
    Field extraction service for CCCD text.

    Features:
    - Bilingual (Vietnamese / English) labelled patterns
    - Positional fallbacks for the name, dates and gender
    - Number-only mode that recovers the 12-digit ID from broken digit runs
    """

    def __init__(self, two_digit_year_pivot: int = 30):
        self.two_digit_year_pivot = two_digit_year_pivot

        self._cccd_labelled = re.compile(r"(?:Số|No\.?|ID)[:\s/]*(\d{12})(?!\d)", re.IGNORECASE)
        self._cccd_bare = re.compile(r"(?<!\d)(\d{12})(?!\d)")
        self._name_same_line = _labelled("full_name", f"(?-i:({UPPER_WORD_RUN}))")
        self._name_label = re.compile(bilingual_label("full_name"), re.IGNORECASE)
        self._dob_labelled = _labelled("date_of_birth", DATE_BODY)
        self._gender_labelled = _labelled("gender", r"(Nam|Nữ|Male|Female|Ngm|M|F)\b")
        self._issue_labelled = _labelled("issue_date", DATE_BODY)

        self.strategies: Dict[DocumentSide, List[Tuple[str, str, Strategy]]] = {
            DocumentSide.FRONT: [
                ("cccd_number", "labelled", self._cccd_from_label),
                ("cccd_number", "bare_digits", self._cccd_bare_token),
                ("full_name", "labelled_same_line", self._name_from_label),
                ("full_name", "labelled_next_line", self._name_from_next_line),
                ("full_name", "uppercase_line", self._name_from_uppercase_line),
                ("date_of_birth", "labelled", self._dob_from_label),
                ("date_of_birth", "bare_date", self._first_bare_date),
                ("gender", "labelled", self._gender_from_label),
                ("gender", "standalone_word", self._gender_standalone),
                ("nationality", "labelled", self._line_value("nationality")),
                ("place_of_origin", "labelled", self._line_value("place_of_origin")),
                ("place_of_residence", "labelled", self._residence),
            ],
            DocumentSide.BACK: [
                ("issue_date", "labelled", self._issue_date_from_label),
                ("issue_date", "bare_date", self._first_bare_date),
                ("issuing_authority", "labelled", self._line_value("issuing_authority")),
                ("issuing_authority", "authority_line", self._authority_line),
                ("place_of_residence", "labelled", self._residence),
            ],
        }

        logger.debug("FieldExtractor initialized")

    def extract(self, text: str, side: DocumentSide = DocumentSide.FRONT,
                number_only: bool = False) -> ExtractionResult:
        """
        Extract fields from recognised text.

        Args:
            text: OCR text of one side of the card
            side: Which side the text comes from
            number_only: Only recover the 12-digit ID number

        Returns:
            ExtractionResult: Fields found and the strategy behind each
        """
        text = self._clean_text(text)

        if number_only:
            number = self.extract_number_only(text)
            if number is None:
                logger.info("No CCCD number found in number-only mode")
                return ExtractionResult()
            return ExtractionResult(ExtractedFields(cccd_number=number), {"cccd_number": "number_only"})

        lines = [line.strip() for line in text.split("\n") if line.strip()]
        values: Dict[str, str] = {}
        sources: Dict[str, str] = {}

        for field_name, strategy_name, strategy in self.strategies[side]:
            if field_name in values:
                continue
            value = strategy(text, lines)
            if value:
                values[field_name] = value
                sources[field_name] = strategy_name
                logger.debug(f"{field_name} found by {strategy_name}")

        logger.info(f"Extracted {len(values)} fields from {side.value} side: {', '.join(values)}")
        return ExtractionResult(ExtractedFields(**values), sources)

    def _clean_text(self, text: str) -> str:
        text = unicodedata.normalize("NFC", text or "")
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        return HEADER_PATTERN.sub("", text)

    # Number-only mode

    def extract_number_only(self, text: str) -> Optional[str]:
        """
        Recover a 12-digit ID from text where OCR may have split the number.

        A 12-digit run wins; otherwise the first window of adjacent digit runs
        that concatenates to exactly 12 digits; otherwise the first 12 of all
        digits when at least 12 exist.
        """
        runs = re.findall(r"\d+", text)

        for run in runs:
            if len(run) == 12:
                return run

        for start in range(len(runs)):
            combined = ""
            for run in runs[start:]:
                combined += run
                if len(combined) >= 12:
                    break
            if len(combined) == 12:
                return combined

        digits = "".join(runs)
        if len(digits) >= 12:
            return digits[:12]
        return None

    # cccd_number

    def _cccd_from_label(self, text: str, lines: List[str]) -> Optional[str]:
        match = self._cccd_labelled.search(text)
        return match.group(1) if match else None

    def _cccd_bare_token(self, text: str, lines: List[str]) -> Optional[str]:
        match = self._cccd_bare.search(text)
        return match.group(1) if match else None

    # full_name

    def _name_from_label(self, text: str, lines: List[str]) -> Optional[str]:
        for line in lines:
            match = self._name_same_line.search(line)
            if match:
                return collapse_whitespace(match.group(1))
        return None

    def _name_from_next_line(self, text: str, lines: List[str]) -> Optional[str]:
        for index, line in enumerate(lines[:-1]):
            if not self._name_label.search(line):
                continue
            candidate = lines[index + 1]
            if UPPER_LINE.match(candidate) and len(candidate) > 5:
                return collapse_whitespace(candidate)
        return None

    def _name_from_uppercase_line(self, text: str, lines: List[str]) -> Optional[str]:
        for line in lines:
            if HEADER_KEYWORDS.search(line) or not UPPER_LINE.match(line):
                continue
            words = line.split()
            if 2 <= len(words) <= 5 and 8 <= len(line) <= 30:
                return collapse_whitespace(line)
        return None

    # Dates

    def _date_from_match(self, match: Optional[re.Match]) -> Optional[str]:
        if not match:
            return None
        return normalize_date(match.group(1), match.group(2), match.group(3), self.two_digit_year_pivot)

    def _dob_from_label(self, text: str, lines: List[str]) -> Optional[str]:
        return self._date_from_match(self._dob_labelled.search(text))

    def _first_bare_date(self, text: str, lines: List[str]) -> Optional[str]:
        for match in BARE_DATE.finditer(text):
            value = self._date_from_match(match)
            if value:
                return value
        return None

    def _issue_date_from_label(self, text: str, lines: List[str]) -> Optional[str]:
        for match in self._issue_labelled.finditer(text):
            value = self._date_from_match(match)
            if value:
                return value
        return None

    # gender

    def _gender_from_label(self, text: str, lines: List[str]) -> Optional[str]:
        match = self._gender_labelled.search(text)
        if not match:
            return None
        return GENDER_SYNONYMS.get(match.group(1).upper())

    def _gender_standalone(self, text: str, lines: List[str]) -> Optional[str]:
        text = re.sub(r"Việt\s*Nam", " ", text, flags=re.IGNORECASE)
        if re.search(r"\b(?:Nam|Ngm)\b", text, re.IGNORECASE):
            return GENDER_MALE
        if re.search(r"\bNữ\b", text, re.IGNORECASE):
            return GENDER_FEMALE
        return None

    # Free-text fields

    def _label_remainder(self, name: str, line: str) -> Optional[str]:
        match = re.search(rf"(?:{bilingual_label(name)}){LABEL_SEPARATOR}", line, re.IGNORECASE)
        if not match:
            return None
        remainder = line[match.end():]
        next_label = ANY_LABEL.search(remainder)
        if next_label:
            remainder = remainder[:next_label.start()]
        return collapse_whitespace(remainder.strip(" :/,"))

    def _line_value(self, name: str) -> Strategy:
        def strategy(text: str, lines: List[str]) -> Optional[str]:
            for line in lines:
                value = self._label_remainder(name, line)
                if value is not None:
                    return value or None
            return None
        return strategy

    def _residence(self, text: str, lines: List[str]) -> Optional[str]:
        for index, line in enumerate(lines):
            value = self._label_remainder("place_of_residence", line)
            if value is None:
                continue
            parts = [value] if value else []
            if index + 1 < len(lines):
                following = lines[index + 1]
                if not ANY_LABEL.search(following) and not BARE_DATE.search(following):
                    parts.append(collapse_whitespace(following))
            return " ".join(parts) or None
        return None

    def _authority_line(self, text: str, lines: List[str]) -> Optional[str]:
        for line in lines:
            if AUTHORITY_LINE.search(line):
                return collapse_whitespace(line)
        return None


def extract_fields(text: str, side: DocumentSide = DocumentSide.FRONT,
                   number_only: bool = False) -> ExtractionResult:
    """Convenience function to extract fields from text."""
    return FieldExtractor().extract(text, side, number_only)
