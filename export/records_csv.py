# export/records_csv.py
import csv
import io
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

HEADER = ["Patient ID", "Patient Name", "Age", "Gender", "Date", "Diagnosis", "Prescription"]


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def record_row(record) -> List[str]:
    return [
        _cell(record.patient_id),
        _cell(record.patient_name),
        _cell(record.age),
        _cell(record.gender),
        _cell(record.date_recorded),
        _cell(record.diagnosis),
        _cell(record.prescription),
    ]


def records_to_csv(records: Iterable) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(HEADER)
    for record in records:
        writer.writerow(record_row(record))
    return buf.getvalue()


def default_filename(today: Optional[date] = None) -> str:
    return f"patient_records_{(today or date.today()).isoformat()}.csv"


def export_records(records: Iterable, out_dir: str = ".", filename: Optional[str] = None) -> Path:
    """Write records to a CSV file and return its path."""
    path = Path(out_dir) / (filename or default_filename())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(records_to_csv(records), encoding="utf-8")
    return path
