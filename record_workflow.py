#!/usr/bin/env python3
"""
Scan-to-record workflow
Coordinates one doctor interaction at a time:
- OCR of the uploaded image
- Field extraction (remote enhancement with pattern fallback)
- Review assistance (QC warnings, confidence label)
- Validation, image storage and persistence on save
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ai_enhance import RemoteEnhancer
from config.settings import Settings, load_settings
from doctor_session import SessionManager
from errors import OCRError, PersistenceError
from field_extract import ExtractedFields, split_lines
from image_store import LocalImageStore
from quality.assess import compute_confidence
from quality_control import run_qc
from record_reconcile import SaveOutcome, apply_edits, build_record_payload
from record_store import RecordStore
from scan_ocr import RecordOCRProcessor

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None):
    """Stream logging to stderr, plus a per-run file when log_dir is set"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_filename = f"medscan_processing_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        handlers.append(logging.FileHandler(os.path.join(log_dir, log_filename)))

    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


@dataclass
class ScanResult:
    """Initial state for the review form"""
    text: str
    fields: ExtractedFields
    ocr_confidence: Optional[float] = None
    qc_results: Dict[str, List[str]] = field(default_factory=dict)
    confidence: Dict[str, Any] = field(default_factory=dict)
    image: Optional[bytes] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "fields": self.fields.to_dict(),
            "ocr_confidence": self.ocr_confidence,
            "qc_results": self.qc_results,
            "confidence": self.confidence,
        }


class RecordWorkflow:
    """Scan, review and save for the signed-in doctor"""

    def __init__(self, sessions: SessionManager,
                 settings: Optional[Settings] = None,
                 store: Optional[RecordStore] = None,
                 ocr: Optional[RecordOCRProcessor] = None,
                 enhancer: Optional[RemoteEnhancer] = None,
                 images: Optional[LocalImageStore] = None):
        self.settings = settings or load_settings()
        self.sessions = sessions
        self._store = store
        self.ocr = ocr or RecordOCRProcessor(self.settings.ocr_lang, self.settings.tesseract_cmd)
        self.enhancer = enhancer or RemoteEnhancer(self.settings)
        self.images = images or LocalImageStore(self.settings.image_store_dir)

    @property
    def store(self) -> RecordStore:
        """Opened on first save so scan-only use never touches the database"""
        if self._store is None:
            self._store = RecordStore(self.settings.database_url)
        return self._store

    async def scan(self, image: bytes, content_type: Optional[str] = None) -> ScanResult:
        """Image -> reviewed-ready fields. OCRError propagates so the caller can reset the preview."""
        logger.info("Step 1: OCR extraction")
        try:
            ocr_result = await asyncio.to_thread(self.ocr.extract, image, content_type)
        except OCRError as e:
            logger.error("OCR processing error: %s", e)
            raise

        return await self.review(ocr_result.text, ocr_result.avg_conf, image=image)

    async def review(self, text: str, ocr_confidence: Optional[float] = None,
                     image: Optional[bytes] = None) -> ScanResult:
        """Text -> fields plus QC for the review form."""
        logger.info("Step 2: Field extraction (enhancement %s)",
                    "on" if self.enhancer.available else "off")
        fields = await self.enhancer.enhance(text)

        logger.info("Step 3: Quality control")
        signals = ["sparse_text"] if len(split_lines(text)) < 2 else []
        return ScanResult(
            text=text,
            fields=fields,
            ocr_confidence=ocr_confidence,
            qc_results=run_qc(fields),
            confidence=compute_confidence(fields, ocr_confidence, signals),
            image=image,
        )

    async def save(self, fields: ExtractedFields, edits: Optional[Dict[str, Any]] = None,
                   raw_text: Optional[str] = None, image: Optional[bytes] = None,
                   now: Optional[datetime] = None) -> SaveOutcome:
        """One user-initiated save. Never raises for validation or storage problems."""
        fields = apply_edits(fields, edits)
        user = self.sessions.current_user()
        if user is None:
            return SaveOutcome(SaveOutcome.UNAUTHENTICATED, fields, ["Sign in to save records"])

        now = now or datetime.now()
        outcome = build_record_payload(fields, user.user_id, raw_text=raw_text, now=now)
        if outcome.status == SaveOutcome.VALIDATION_ERROR:
            logger.info("Save blocked: %s", "; ".join(outcome.errors))
            return outcome

        payload = outcome.payload
        if image:
            try:
                payload.image_url = self.images.upload(payload.patient_id, image,
                                                       int(now.timestamp() * 1000))
            except PersistenceError as e:
                # the record is still saved without its image
                logger.warning("Image upload failed for %s: %s", payload.patient_id, e)

        try:
            outcome.record_id = self.store.insert(payload)
        except PersistenceError as e:
            logger.error("Save error: %s", e)
            if payload.image_url:
                self._discard_image(payload.image_url)
                payload.image_url = None
            outcome.status = SaveOutcome.PERSISTENCE_ERROR
            outcome.errors.append("Failed to save medical record")
            return outcome

        outcome.status = SaveOutcome.SAVED
        return outcome

    def _discard_image(self, url: str):
        try:
            self.images.delete(url)
        except PersistenceError as e:
            logger.warning("Could not remove image %s after failed save: %s", url, e)

    async def save_scan(self, scan: ScanResult, edits: Optional[Dict[str, Any]] = None) -> SaveOutcome:
        return await self.save(scan.fields, edits, raw_text=scan.text, image=scan.image)
