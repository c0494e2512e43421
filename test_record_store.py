#!/usr/bin/env python3
"""
Unit tests for record_store.py, image_store.py and export/records_csv.py
"""

import tempfile
import unittest
from datetime import date
from pathlib import Path

from errors import PersistenceError
from export import default_filename, export_records, records_to_csv
from image_store import LocalImageStore
from record_reconcile import RecordPayload
from record_store import MedicalRecord, RecordFilter, RecordStore


def _payload(patient_id, name, age=None, gender=None, day=date(2024, 3, 12),
             diagnosis=None, prescription=None, doctor_id="doc-1"):
    return RecordPayload(
        patient_id=patient_id, patient_name=name, age=age, gender=gender, date=day,
        diagnosis=diagnosis, prescription=prescription, doctor_id=doctor_id,
    )


class TestRecordStore(unittest.TestCase):

    def setUp(self):
        self.store = RecordStore("sqlite://")
        self.store.insert(_payload("ALI000001", "Alice Walker", 34, "Female",
                                   diagnosis="Seasonal allergies", prescription="Loratadine 10mg"))
        self.store.insert(_payload("BOB000002", "Bob Stone", 12, "Male", day=date(2024, 1, 5),
                                   diagnosis="Asthma", prescription="Salbutamol inhaler"))
        self.store.insert(_payload("CAR000003", "Carol King", 70, "Female", day=date(2023, 11, 20),
                                   diagnosis="Hypertension", doctor_id="doc-2"))
        self.store.insert(_payload("DAN000004", "Dan Moss"))

    def _ids(self, flt):
        return sorted(r.patient_id for r in self.store.search(flt))

    def test_insert_and_get(self):
        record_id = self.store.insert(_payload("EVE000005", "Eve Adams", 29, "Female",
                                               diagnosis="Migraine"))
        record = self.store.get(record_id)
        self.assertIsInstance(record, MedicalRecord)
        self.assertEqual(record.patient_name, "Eve Adams")
        self.assertEqual(record.age, 29)
        self.assertEqual(record.date_recorded, date(2024, 3, 12))
        self.assertIsNone(record.prescription)
        self.assertEqual(record.to_dict()["patientId"], "EVE000005")

    def test_get_missing(self):
        self.assertIsNone(self.store.get("does-not-exist"))

    def test_same_patient_id_allowed(self):
        self.store.insert(_payload("ALI000001", "Alicia Moore"))
        self.assertEqual(self._ids(RecordFilter(search="ALI000001")), ["ALI000001", "ALI000001"])

    def test_list_by_doctor(self):
        self.assertEqual(len(self.store.list_records()), 4)
        self.assertEqual([r.patient_id for r in self.store.list_records("doc-2")], ["CAR000003"])

    def test_text_search(self):
        self.assertEqual(self._ids(RecordFilter(search="walker")), ["ALI000001"])
        self.assertEqual(self._ids(RecordFilter(search="inhaler")), ["BOB000002"])
        self.assertEqual(self._ids(RecordFilter(search="CAR0")), ["CAR000003"])

    def test_diagnosis_and_gender_filters(self):
        self.assertEqual(self._ids(RecordFilter(diagnosis="asth")), ["BOB000002"])
        self.assertEqual(self._ids(RecordFilter(gender="Female")), ["ALI000001", "CAR000003"])

    def test_age_ranges(self):
        self.assertEqual(self._ids(RecordFilter(age_range="0-18")), ["BOB000002"])
        self.assertEqual(self._ids(RecordFilter(age_range="19-35")), ["ALI000001"])
        self.assertEqual(self._ids(RecordFilter(age_range="65+")), ["CAR000003"])
        self.assertEqual(self._ids(RecordFilter(age_range="36-50")), [])

    def test_unknown_age_range(self):
        with self.assertRaises(ValueError):
            self.store.search(RecordFilter(age_range="teen"))

    def test_date_range(self):
        flt = RecordFilter(date_from=date(2024, 1, 1), date_to=date(2024, 2, 1))
        self.assertEqual(self._ids(flt), ["BOB000002"])

    def test_missing_required_column_raises_persistence_error(self):
        with self.assertRaises(PersistenceError):
            self.store.insert(_payload("NON000006", None))


class TestImageStore(unittest.TestCase):

    def test_upload(self):
        with tempfile.TemporaryDirectory() as tmp:
            images = LocalImageStore(tmp)
            url = images.upload("ALI000001", b"\xff\xd8jpeg", 1710000000000)
            path = Path(tmp) / "ALI000001_1710000000000.jpg"
            self.assertTrue(url.startswith("file://"))
            self.assertTrue(url.endswith("ALI000001_1710000000000.jpg"))
            self.assertEqual(path.read_bytes(), b"\xff\xd8jpeg")

    def test_empty_upload_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(PersistenceError):
                LocalImageStore(tmp).upload("ALI000001", b"")

    def test_delete(self):
        with tempfile.TemporaryDirectory() as tmp:
            images = LocalImageStore(tmp)
            url = images.upload("ALI000001", b"jpeg", 1)
            images.delete(url)
            self.assertEqual(list(Path(tmp).iterdir()), [])
            images.delete(url)

    def test_delete_outside_store_rejected(self):
        with tempfile.TemporaryDirectory() as tmp, tempfile.TemporaryDirectory() as other:
            stray = Path(other) / "keep.jpg"
            stray.write_bytes(b"jpeg")
            with self.assertRaises(PersistenceError):
                LocalImageStore(tmp).delete(stray.resolve().as_uri())
            self.assertTrue(stray.exists())


class TestCsvExport(unittest.TestCase):

    def setUp(self):
        self.store = RecordStore("sqlite://")
        self.store.insert(_payload("ALI000001", "Walker, Alice", 34, "Female",
                                   diagnosis="Seasonal allergies", prescription="Loratadine 10mg"))
        self.store.insert(_payload("DAN000004", "Dan Moss"))

    def test_records_to_csv(self):
        rows = records_to_csv(sorted(self.store.list_records(), key=lambda r: r.patient_id)).splitlines()
        self.assertEqual(rows[0], "Patient ID,Patient Name,Age,Gender,Date,Diagnosis,Prescription")
        self.assertEqual(rows[1], 'ALI000001,"Walker, Alice",34,Female,2024-03-12,'
                                  'Seasonal allergies,Loratadine 10mg')
        self.assertEqual(rows[2], "DAN000004,Dan Moss,,,2024-03-12,,")

    def test_default_filename(self):
        self.assertEqual(default_filename(date(2024, 3, 12)), "patient_records_2024-03-12.csv")

    def test_export_records(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = export_records(self.store.list_records(), tmp, "out.csv")
            self.assertEqual(path, Path(tmp) / "out.csv")
            self.assertTrue(path.read_text(encoding="utf-8").startswith("Patient ID,"))


if __name__ == '__main__':
    unittest.main(verbosity=2)
