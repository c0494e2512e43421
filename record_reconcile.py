"""
Turns reviewed fields into the payload the record store persists.

Validation problems are reported through SaveOutcome, never raised.
"""

import re
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from field_extract import FIELD_KEYS, ExtractedFields, normalize_gender

# Formats accepted from OCR text or the review form, tried in order
DATE_FORMATS = [
    "%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d",
    "%m/%d/%Y", "%m-%d-%Y", "%m.%d.%Y",
    "%m/%d/%y", "%m-%d-%y", "%m.%d.%y",
]
DAY_FIRST_FORMATS = [
    "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y",
    "%d/%m/%y", "%d-%m-%y", "%d.%m.%y",
]


def generate_patient_id(patient_name: str, timestamp_ms: Optional[int] = None) -> str:
    """First three non-space characters of the name, uppercased, plus the low 6 digits of the clock.

    Not unique: two saves in the same millisecond window for similar names collide.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    prefix = re.sub(r"\s+", "", patient_name or "")[:3].upper()
    return f"{prefix}{timestamp_ms % 1_000_000:06d}"


def parse_age(value: Optional[str]) -> Optional[int]:
    """Leading integer of the value ("34 yrs" -> 34); None when there is none."""
    m = re.match(r"\s*(\d+)", value or "")
    return int(m.group(1)) if m else None


def normalize_record_date(value: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """Calendar date for the record. Blank -> today; unparseable -> None."""
    raw = (value or "").strip()
    if not raw:
        return today or date.today()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    # 25/12/2024 style: only when the month-first reading failed
    for fmt in DAY_FIRST_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def _optional_text(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


@dataclass
class RecordPayload:
    patient_id: str
    patient_name: str
    age: Optional[int]
    gender: Optional[str]
    date: date
    diagnosis: Optional[str]
    prescription: Optional[str]
    doctor_id: str
    image_url: Optional[str] = None
    raw_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patientId": self.patient_id,
            "patientName": self.patient_name,
            "age": self.age,
            "gender": self.gender,
            "date": self.date.isoformat(),
            "diagnosis": self.diagnosis,
            "prescription": self.prescription,
            "imageUrl": self.image_url,
            "doctorId": self.doctor_id,
            "rawText": self.raw_text,
        }


@dataclass
class SaveOutcome:
    """Result of one save attempt. `fields` always holds what the doctor submitted."""
    status: str
    fields: ExtractedFields
    errors: List[str] = field(default_factory=list)
    payload: Optional[RecordPayload] = None
    record_id: Optional[str] = None

    PENDING = "pending"
    SAVED = "saved"
    VALIDATION_ERROR = "validation_error"
    PERSISTENCE_ERROR = "persistence_error"
    UNAUTHENTICATED = "unauthenticated"

    @property
    def ok(self) -> bool:
        return self.status == self.SAVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "ok": self.ok,
            "errors": list(self.errors),
            "recordId": self.record_id,
            "record": self.payload.to_dict() if self.payload else None,
            "fields": self.fields.to_dict(),
        }


def apply_edits(fields: ExtractedFields, edits: Optional[Dict[str, Any]] = None) -> ExtractedFields:
    """Overlay review-form edits (camelCase or snake_case keys) on extracted fields."""
    if not edits:
        return replace(fields)
    changes = {}
    for attr, key in FIELD_KEYS.items():
        for k in (key, attr):
            if k in edits:
                value = edits[k]
                changes[attr] = "" if value is None else str(value)
                break
    return replace(fields, **changes)


def build_record_payload(fields: ExtractedFields, doctor_id: str,
                         image_url: Optional[str] = None,
                         raw_text: Optional[str] = None,
                         now: Optional[datetime] = None) -> SaveOutcome:
    """Validate reviewed fields and derive the persisted payload.

    Returns a SaveOutcome with status VALIDATION_ERROR (and no payload) when the
    name is blank or a non-empty date cannot be read; otherwise a PENDING
    outcome carrying `payload`, which the caller persists and finalizes.
    """
    now = now or datetime.now()
    errors = []

    name = fields.patient_name.strip()
    if not name:
        errors.append("Patient name is required")

    record_date = normalize_record_date(fields.date, today=now.date())
    if record_date is None:
        errors.append(f"Date '{fields.date.strip()}' is not a valid calendar date")

    if errors:
        return SaveOutcome(SaveOutcome.VALIDATION_ERROR, fields, errors)

    gender = normalize_gender(fields.gender)
    payload = RecordPayload(
        patient_id=generate_patient_id(name, int(now.timestamp() * 1000)),
        patient_name=name,
        age=parse_age(fields.age),
        gender=gender or None,
        date=record_date,
        diagnosis=_optional_text(fields.diagnosis),
        prescription=_optional_text(fields.prescription),
        doctor_id=doctor_id,
        image_url=image_url,
        raw_text=raw_text,
    )
    return SaveOutcome(SaveOutcome.PENDING, fields, payload=payload)
