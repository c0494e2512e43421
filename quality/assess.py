# quality/assess.py
from typing import Any, Dict, List, Optional, Union

from config.rules import load_json
from field_extract import ExtractedFields

BANDS = ["High", "Medium", "Low", "Manual Review"]

DEFAULT_RULES = {
    "thresholds": {"high": 90, "medium": 80, "low": 70},
    "criticalFields": ["patientName", "diagnosis", "prescription"],
    "blockingFields": ["patientName"],
    "manualTriggers": ["sparse_text"],
}


def load_rules() -> Dict[str, Any]:
    return load_json("confidence_rules.json", DEFAULT_RULES)


def _band_for_score(score: float, thresholds: Dict[str, Any]) -> int:
    if score >= thresholds.get("high", 90):
        return 0
    if score >= thresholds.get("medium", 80):
        return 1
    if score >= thresholds.get("low", 70):
        return 2
    return 3


def compute_confidence(fields: ExtractedFields, ocr_percent: Optional[Union[float, int]] = None,
                       manual_signals: Optional[List[str]] = None):
    """
    Returns: {
      "label": "High|Medium|Low|Manual Review",
      "score": <ocr_percent or None>,
      "reasons": [ ... ],
      "missingCritical": [ ... ]
    }

    A missing blocking field (the patient name, without which the record
    cannot be saved) always means Manual Review. Every other missing
    critical field (diagnosis, prescription) drops the OCR band by one.
    """
    rules = load_rules()
    thresholds = rules.get("thresholds", {})
    manual_triggers = set(rules.get("manualTriggers", []))
    criticals = rules.get("criticalFields", [])
    blocking = set(rules.get("blockingFields", DEFAULT_RULES["blockingFields"]))

    values = fields.to_dict()
    reasons = []
    missing = [key for key in criticals if key in values and not values[key].strip()]
    missing_blocking = [key for key in missing if key in blocking]

    score = None
    if isinstance(ocr_percent, (int, float)) and not isinstance(ocr_percent, bool):
        score = float(ocr_percent)

    for sig in (manual_signals or []):
        if sig in manual_triggers:
            reasons.append(f"manual:{sig}")
    if missing_blocking:
        reasons.append(f"missing_blocking:{','.join(missing_blocking)}")
    if missing:
        reasons.append(f"missing_critical:{','.join(missing)}")

    if any(r.startswith("manual:") for r in reasons) or missing_blocking:
        band = len(BANDS) - 1
    elif score is None:
        # Without an OCR score only the fields tell us anything
        band = 2 if missing else 1
    else:
        band = min(_band_for_score(score, thresholds) + len(missing), len(BANDS) - 1)

    return {"label": BANDS[band], "score": score, "reasons": reasons, "missingCritical": missing}


__all__ = ["compute_confidence", "load_rules"]
