"""
Persistence for reviewed medical records (SQLAlchemy).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Column, Date, DateTime, Integer, String, Text, create_engine, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from errors import PersistenceError
from record_reconcile import RecordPayload

logger = logging.getLogger(__name__)

Base = declarative_base()

# label -> inclusive (low, high); None means open-ended
AGE_RANGES: Dict[str, Tuple[Optional[int], Optional[int]]] = {
    "0-18": (None, 18),
    "19-35": (19, 35),
    "36-50": (36, 50),
    "51-65": (51, 65),
    "65+": (66, None),
}


class MedicalRecord(Base):
    """One saved record. patient_id is a human-facing label, not a key."""
    __tablename__ = 'medical_records'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    patient_id = Column(String, nullable=False, index=True)
    patient_name = Column(String, nullable=False)
    age = Column(Integer)
    gender = Column(String)
    date_recorded = Column(Date, nullable=False, default=date.today)
    diagnosis = Column(Text)
    prescription = Column(Text)
    raw_text = Column(Text)
    image_url = Column(String)
    doctor_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<MedicalRecord(patient_id='{self.patient_id}', patient_name='{self.patient_name}')>"

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "patientName": self.patient_name,
            "age": self.age,
            "gender": self.gender,
            "date": self.date_recorded.isoformat() if self.date_recorded else None,
            "diagnosis": self.diagnosis,
            "prescription": self.prescription,
            "imageUrl": self.image_url,
            "doctorId": self.doctor_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class RecordFilter:
    search: str = ""
    diagnosis: str = ""
    gender: str = ""
    age_range: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    doctor_id: Optional[str] = None


class RecordStore:
    def __init__(self, database_url: str = "sqlite:///medscan.db", echo: bool = False):
        self.engine = create_engine(database_url, echo=echo, future=True)
        self._Session = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError("Could not open the record database",
                                   context={"url": self.engine.url.render_as_string(hide_password=True)}) from e

    def insert(self, payload: RecordPayload) -> str:
        """Persist a payload and return the stored record id."""
        record = MedicalRecord(
            patient_id=payload.patient_id,
            patient_name=payload.patient_name,
            age=payload.age,
            gender=payload.gender,
            date_recorded=payload.date,
            diagnosis=payload.diagnosis,
            prescription=payload.prescription,
            raw_text=payload.raw_text,
            image_url=payload.image_url,
            doctor_id=payload.doctor_id,
        )
        with self._Session() as session:
            try:
                session.add(record)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise PersistenceError(
                    "Record violates a database constraint",
                    duplicate="unique" in str(e.orig).lower(),
                    context={"patient_id": payload.patient_id},
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError("Failed to save medical record",
                                       context={"patient_id": payload.patient_id}) from e
            logger.info("Saved record %s for patient %s", record.id, record.patient_id)
            return record.id

    def get(self, record_id: str) -> Optional[MedicalRecord]:
        with self._Session() as session:
            return session.get(MedicalRecord, record_id)

    def list_records(self, doctor_id: Optional[str] = None) -> List[MedicalRecord]:
        return self.search(RecordFilter(doctor_id=doctor_id))

    def search(self, flt: RecordFilter) -> List[MedicalRecord]:
        """Newest first. Text search spans name, patient id, diagnosis and prescription."""
        with self._Session() as session:
            query = session.query(MedicalRecord)
            if flt.doctor_id:
                query = query.filter(MedicalRecord.doctor_id == flt.doctor_id)
            term = flt.search.strip()
            if term:
                like = f"%{term}%"
                query = query.filter(or_(
                    MedicalRecord.patient_name.ilike(like),
                    MedicalRecord.patient_id.ilike(like),
                    MedicalRecord.diagnosis.ilike(like),
                    MedicalRecord.prescription.ilike(like),
                ))
            if flt.diagnosis.strip():
                query = query.filter(MedicalRecord.diagnosis.ilike(f"%{flt.diagnosis.strip()}%"))
            if flt.gender:
                query = query.filter(MedicalRecord.gender == flt.gender)
            if flt.age_range:
                if flt.age_range not in AGE_RANGES:
                    raise ValueError(f"Unknown age range: {flt.age_range}")
                low, high = AGE_RANGES[flt.age_range]
                query = query.filter(MedicalRecord.age.isnot(None))
                if low is not None:
                    query = query.filter(MedicalRecord.age >= low)
                if high is not None:
                    query = query.filter(MedicalRecord.age <= high)
            if flt.date_from:
                query = query.filter(MedicalRecord.date_recorded >= flt.date_from)
            if flt.date_to:
                query = query.filter(MedicalRecord.date_recorded <= flt.date_to)
            return query.order_by(MedicalRecord.created_at.desc()).all()
