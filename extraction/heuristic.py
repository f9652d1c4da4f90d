"""
Fallback extractor — local pattern matching, no network.

This exists so a degraded upstream never exhausts a job's retries on its
own: when Gemini times out or errors, the job still completes, just with
lower-quality data. It never raises, and fields it cannot find get the
placeholders from extraction/fields.py.

The patterns target Brazilian resumes (Portuguese "anos", DDD area codes),
which is where the queue's documents come from.
"""

import re
from datetime import date

from models.enums import ExtractField
from extraction.base import AbstractExtractor, ExtractionResult
from extraction.fields import NAME_PLACEHOLDER, placeholder_result

_UP = "A-ZÀÁÂÃÄÉÊËÍÎÏÓÔÕÖÚÛÜÇ"
_LO = "a-zàáâãäéêëíîïóôõöúûüç"

NAME_PATTERNS = [
    # Proper name at the start of a line, connectives allowed
    re.compile(rf"^([{_UP}][{_LO}]+(?:[ \t]+(?:de|da|do|dos|das)?[ \t]*[{_UP}][{_LO}]+)+)", re.M),
    # After a "Nome:" label
    re.compile(rf"Nome[:\s]+([{_UP}][^\n\r]{{8,50}})", re.I),
    # First capitalised run of letters on a line
    re.compile(rf"^([{_UP}][A-Za-z{_LO} ]{{10,50}})", re.M),
]
AGE_RE = re.compile(r"(\d{1,2})\s+(?:anos?|years?)\b", re.I)
BIRTH_DATE_PATTERNS = [
    (re.compile(r"(?<!\d)(\d{2})[/-](\d{2})[/-](\d{4})(?!\d)"), 3),  # DD/MM/YYYY
    (re.compile(r"(?<!\d)(\d{4})[/-](\d{2})[/-](\d{2})(?!\d)"), 1),  # YYYY-MM-DD
]
EMAIL_RE = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
PHONE_RE = re.compile(r"(?<!\d)\(?(\d{2})\)?[\s-]*(9?\d{4})[\s-]?(\d{4})(?!\d)")

# Quick-path detectors
_HAS_NAME = re.compile(rf"^[{_UP}][{_LO}]+\s+[{_UP}]", re.M)
_HAS_AGE = re.compile(r"\d{1,2}\s+anos?\b", re.I)

MAX_CONTACTS = 3


def should_use_quick_extraction(text: str) -> bool:
    """
    True when the heuristic is good enough on its own and the upstream call
    can be skipped: very short text, or at least 3 of the 4 fields are
    plainly visible.
    """
    if not text or len(text) < 200:
        return True

    clear_patterns = sum(
        bool(pattern.search(text))
        for pattern in (_HAS_NAME, _HAS_AGE, EMAIL_RE, PHONE_RE)
    )
    return clear_patterns >= 3


class HeuristicExtractor(AbstractExtractor):

    @property
    def method(self) -> str:
        return "fallback"

    def extract(self, text: str, fields: list[ExtractField]) -> ExtractionResult:
        text = text or ""
        data = placeholder_result(fields)

        if ExtractField.NAME in fields:
            data[ExtractField.NAME.value] = self._find_name(text) or NAME_PLACEHOLDER
        if ExtractField.AGE in fields:
            data[ExtractField.AGE.value] = self._find_age(text)
        if ExtractField.EMAIL in fields:
            data[ExtractField.EMAIL.value] = self._find_email(text)
        if ExtractField.CONTACTS in fields:
            data[ExtractField.CONTACTS.value] = self._find_contacts(text)

        return ExtractionResult(data=data, method=self.method)

    @staticmethod
    def _find_name(text: str) -> str | None:
        for pattern in NAME_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            name = re.sub(r"\s+", " ", match.group(1).strip())
            name = re.sub(r"[^\w\s]", "", name)[:60].strip()
            if len(name) >= 8 and len(name.split(" ")) >= 2:
                return name
        return None

    @staticmethod
    def _find_age(text: str) -> int:
        match = AGE_RE.search(text)
        if match:
            age = int(match.group(1))
            return age if 16 <= age <= 80 else 0

        current_year = date.today().year
        for pattern, year_group in BIRTH_DATE_PATTERNS:
            for match in pattern.finditer(text):
                year = int(match.group(year_group))
                if 1940 <= year <= 2010:
                    age = current_year - year
                    if 16 <= age <= 80:
                        return age
        return 0

    @staticmethod
    def _find_email(text: str) -> str:
        match = EMAIL_RE.search(text)
        if not match:
            return ""
        email = match.group(1).lower().strip()
        if ".." in email or len(email) > 50:
            return ""
        return email

    @staticmethod
    def _find_contacts(text: str) -> list[str]:
        found: list[str] = []
        for match in PHONE_RE.finditer(text):
            ddd, head, tail = match.groups()
            if not 11 <= int(ddd) <= 99:
                continue
            formatted = f"({ddd}) {head}-{tail}"
            if formatted not in found:
                found.append(formatted)
            if len(found) >= MAX_CONTACTS:
                break
        return found
