#!/usr/bin/env python3
"""
Quality control validators for extracted record fields.
Produces qc_results with errors and warnings shown to the reviewing doctor.
"""
from typing import Dict, List

from config.rules import load_json
from field_extract import CANONICAL_GENDERS, ExtractedFields
from record_reconcile import normalize_record_date, parse_age

_DEFAULT_AGE_RANGE = {"min": 0, "max": 120}


def _age_bounds():
    rng = load_json("confidence_rules.json").get("ageRange") or _DEFAULT_AGE_RANGE
    return rng.get("min", 0), rng.get("max", 120)


def run_qc(fields: ExtractedFields) -> Dict[str, List[str]]:
    errors: List[str] = []
    warnings: List[str] = []

    if not fields.patient_name.strip():
        errors.append('Missing patient name')

    # Age
    if not fields.age.strip():
        warnings.append('Missing age')
    else:
        age = parse_age(fields.age)
        low, high = _age_bounds()
        if age is None:
            warnings.append('Age is not a number')
        elif not low <= age <= high:
            warnings.append(f'Age {age} outside expected range {low}-{high}')

    # Gender
    if not fields.gender.strip():
        warnings.append('Missing gender')
    elif fields.gender.strip() not in CANONICAL_GENDERS:
        warnings.append('Gender not one of Male/Female/Other')

    # Date: blank is fine, the save defaults it to today
    if fields.date.strip() and normalize_record_date(fields.date) is None:
        warnings.append('Date format not recognized')
    elif not fields.date.strip():
        warnings.append("Missing date (today's date will be used)")

    if not fields.diagnosis.strip():
        warnings.append('Missing diagnosis')
    if not fields.prescription.strip():
        warnings.append('Missing prescription')

    return {
        'errors': errors,
        'warnings': warnings
    }
