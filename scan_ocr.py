#!/usr/bin/env python3
"""
OCR for photographed or uploaded paper records (Tesseract)
"""

import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError

from errors import OCRError
from ocr_preprocessing import OCRPreprocessor

logger = logging.getLogger(__name__)

NO_TEXT_MESSAGE = "No text could be extracted from the image"


@dataclass
class OCRResult:
    """Recognized text for one image"""
    text: str
    raw_text: str
    avg_conf: float
    engine: str = "tesseract"
    psm_used: Optional[int] = None
    preprocessing_applied: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "text": self.text,
            "raw_text": self.raw_text,
            "avg_conf": self.avg_conf,
            "engine": self.engine,
            "psm_used": self.psm_used,
            "preprocessing_applied": list(self.preprocessing_applied),
        }


class RecordOCRProcessor:
    """Image bytes -> corrected text, trying a few page segmentation modes"""

    def __init__(self, lang: str = 'eng', tesseract_cmd: Optional[str] = None,
                 psms: Tuple[int, ...] = (6, 4, 3)):
        self.lang = lang or 'eng'
        self.psms = psms
        self.preprocessor = OCRPreprocessor()
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def load_image(self, data: bytes, content_type: Optional[str] = None) -> np.ndarray:
        if content_type and not content_type.startswith('image/'):
            raise OCRError("Please select an image file", {"content_type": content_type})
        if not data:
            raise OCRError("Empty image upload")
        try:
            img = Image.open(io.BytesIO(data))
            # phone cameras store rotation in EXIF
            img = ImageOps.exif_transpose(img).convert('RGB')
        except (UnidentifiedImageError, OSError) as e:
            raise OCRError("Could not read the image file") from e
        return np.array(img)

    def _recognize(self, image: np.ndarray, psm: int) -> Tuple[str, float]:
        cfg = f"--oem 3 --psm {psm} -l {self.lang}"
        data = pytesseract.image_to_data(image, config=cfg, output_type=pytesseract.Output.DICT)
        confs = []
        for conf, word in zip(data.get('conf', []), data.get('text', [])):
            try:
                c = float(conf)
            except (TypeError, ValueError):
                continue
            if c >= 0 and str(word).strip():
                confs.append(c)
        avg = sum(confs) / len(confs) if confs else 0.0
        text = pytesseract.image_to_string(image, config=cfg)
        return text, avg

    def extract(self, data: bytes, content_type: Optional[str] = None) -> OCRResult:
        """Recognize text in an uploaded image. Raises OCRError when nothing is readable."""
        image = self.load_image(data, content_type)
        processed, steps = self.preprocessor.preprocess(image)

        best_text, best_conf, best_psm = "", -1.0, None
        try:
            for psm in self.psms:
                text, conf = self._recognize(processed, psm)
                logger.debug("psm %s: conf %.1f, %d chars", psm, conf, len(text.strip()))
                if text.strip() and conf > best_conf:
                    best_text, best_conf, best_psm = text, conf, psm
            # Binarization can wipe out faint handwriting; retry on the original pixels
            if not best_text.strip():
                text, conf = self._recognize(image, self.psms[0])
                if text.strip():
                    best_text, best_conf, best_psm = text, conf, self.psms[0]
                    steps = steps + ['variant:original']
        except pytesseract.TesseractNotFoundError as e:
            raise OCRError("Tesseract is not installed or not on PATH") from e
        except pytesseract.TesseractError as e:
            raise OCRError("Tesseract failed to process the image", {"status": e.status}) from e

        if not best_text.strip():
            raise OCRError(NO_TEXT_MESSAGE)

        return OCRResult(
            text=self.preprocessor.correct_ocr_text(best_text),
            raw_text=best_text.strip(),
            avg_conf=max(best_conf, 0.0),
            psm_used=best_psm,
            preprocessing_applied=steps,
        )
