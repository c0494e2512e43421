"""
Exception hierarchy for the MedScan worker.

    MedScanError (base)
    ├── ConfigurationError   # malformed environment settings
    ├── OCRError             # image unreadable / no text found
    ├── EnhancementError     # remote enhancement transport or parse failure
    └── PersistenceError     # database or storage failure on save

Validation problems at save time are not exceptions; they are reported
through record_reconcile.SaveOutcome.
"""

from typing import Any, Dict, Optional


class MedScanError(Exception):
    """Base exception for all worker errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ConfigurationError(MedScanError):
    pass


class OCRError(MedScanError):
    """Raised by the OCR collaborator; retry-worthy for the user."""
    pass


class EnhancementError(MedScanError):
    """Raised inside ai_enhance only; never escapes RemoteEnhancer.enhance."""

    def __init__(self, message: str, status: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.status = status


class PersistenceError(MedScanError):
    def __init__(self, message: str, duplicate: bool = False,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.duplicate = duplicate
