#!/usr/bin/env python3
"""
Pattern-based field extraction for scanned medical records.

Maps noisy OCR text onto the canonical field set (patient name, age,
gender, date, diagnosis, prescription) with an ordered table of labeled
regular expressions. Lines are scanned in reading order and the first
match wins for each field. Two whole-text heuristics run afterwards for
name and age when no labeled line was found.
"""

import json
import logging
import re
import sys
from dataclasses import dataclass, field, fields as dc_fields, replace
from typing import Any, Callable, Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)

# attribute name -> wire / review-form key
FIELD_KEYS = {
    "patient_name": "patientName",
    "age": "age",
    "gender": "gender",
    "date": "date",
    "diagnosis": "diagnosis",
    "prescription": "prescription",
}

CANONICAL_GENDERS = ("Male", "Female", "Other")

_MALE_TOKENS = {"m", "male", "man"}
_FEMALE_TOKENS = {"f", "female", "woman"}


@dataclass
class ExtractedFields:
    """Canonical record shape handed to the review form. Never holds None."""
    patient_name: str = ""
    age: str = ""
    gender: str = ""
    date: str = ""
    diagnosis: str = ""
    prescription: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {FIELD_KEYS[f.name]: getattr(self, f.name) for f in dc_fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExtractedFields":
        """Build from camelCase or snake_case keys; missing or null values become ''."""
        data = data or {}
        values = {}
        for attr, key in FIELD_KEYS.items():
            raw = data.get(key, data.get(attr))
            values[attr] = "" if raw is None else str(raw)
        return cls(**values)

    def missing(self) -> List[str]:
        return [attr for attr in FIELD_KEYS if not getattr(self, attr)]

    def is_complete(self) -> bool:
        return not self.missing()


def normalize_gender(value: Optional[str]) -> str:
    """Map loose gender tokens onto Male/Female/Other; unknown input gives ''."""
    if value is None:
        return ""
    token = str(value).strip().lower().rstrip(".")
    if token in _MALE_TOKENS:
        return "Male"
    if token in _FEMALE_TOKENS:
        return "Female"
    if token == "other":
        return "Other"
    return ""


def _strip(value: str) -> str:
    return value.strip()


@dataclass
class FieldRule:
    """One labeled pattern: label alternation, value pattern, post-processor."""
    attr: str
    labels: str
    value: str
    post: Callable[[str], str] = _strip
    separator: str = r"[\s:\-]*"
    pattern: Pattern = field(init=False, repr=False)

    def __post_init__(self):
        self.pattern = re.compile(
            rf"\b(?:{self.labels})\b\.?{self.separator}({self.value})",
            re.IGNORECASE,
        )

    def match(self, line: str) -> str:
        m = self.pattern.search(line)
        if not m:
            return ""
        return self.post(m.group(1))


_DATE_VALUE = (
    r"\d{4}[\/\-\.]\d{1,2}[\/\-\.]\d{1,2}"
    r"|\d{1,2}[\/\-\.]\d{1,2}[\/\-\.]\d{2,4}"
)

# Order of the table is the order fields are tested on each line.
FIELD_RULES: List[FieldRule] = [
    FieldRule(
        "patient_name",
        r"patient(?:'s)?\s+name|name\s+of\s+(?:the\s+)?patient|name|patient|pt|mrs|mr|miss|ms|dr",
        r"[A-Za-z][A-Za-z\s.'-]*",
    ),
    FieldRule(
        "age",
        r"age|yrs?|years?|y\/o|born",
        r"\d{1,3}(?!\d)",
    ),
    FieldRule(
        "gender",
        r"gender|sex|m\/f|patient",
        r"female|male|woman|man|f|m",
        post=normalize_gender,
        separator=r"[\s:\-]*(?=(?:female|male|woman|man|f|m)\b)",
    ),
    FieldRule(
        "date",
        r"date(?:\s+of\s+visit)?|dated|visit|seen|examined|today",
        _DATE_VALUE,
    ),
    FieldRule(
        "diagnosis",
        r"diagnosis|dx|condition|problem|chief\s+complaints?|presenting\s+(?:problem|complaint)|complain\w*|presenting",
        r"[^\s:,\-][^,\n\r]*",
    ),
    FieldRule(
        "prescription",
        r"prescription|prescribed|rx|medications?|medicines?|drugs?|treatment|advised",
        r"[^\s:,\-][^,\n\r]*",
    ),
]

_NAME_FALLBACK = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")
_AGE_FALLBACK = re.compile(r"\b([1-9]\d?|100)\b")


def split_lines(text: str) -> List[str]:
    """Trimmed non-blank lines in reading order."""
    return [line.strip() for line in text.splitlines() if line.strip()]


def extract_fields(text: str, rules: Optional[List[FieldRule]] = None) -> ExtractedFields:
    """
    Best-effort extraction of the canonical field set from raw OCR text.

    Pure and total: never raises. On an unexpected internal failure the
    fields found so far are returned and the rest stay ''.
    """
    found = ExtractedFields()
    if not isinstance(text, str) or not text.strip():
        return found
    rules = FIELD_RULES if rules is None else rules

    try:
        for line in split_lines(text):
            for rule in rules:
                if getattr(found, rule.attr):
                    continue
                value = rule.match(line)
                if value:
                    setattr(found, rule.attr, value)

        if not found.patient_name:
            m = _NAME_FALLBACK.search(text)
            if m:
                found.patient_name = m.group(0)

        if not found.age:
            m = _AGE_FALLBACK.search(text)
            if m:
                found.age = m.group(1)
    except Exception as e:
        logger.warning("Pattern extraction stopped early: %s", e)

    return found


def fill_missing_fields(primary: ExtractedFields, fallback: ExtractedFields) -> ExtractedFields:
    """Copy of primary with each empty field taken from fallback."""
    gaps = {attr: getattr(fallback, attr) for attr in FIELD_KEYS if not getattr(primary, attr)}
    return replace(primary, **gaps)


def main():
    if len(sys.argv) != 2:
        print("Usage: python3 field_extract.py <ocr_text_file>")
        sys.exit(1)
    try:
        with open(sys.argv[1], "r", encoding="utf-8", errors="ignore") as f:
            text = f.read()
    except FileNotFoundError:
        print(f"Error: File '{sys.argv[1]}' not found")
        sys.exit(1)
    print(json.dumps(extract_fields(text).to_dict(), indent=2))


if __name__ == "__main__":
    main()
