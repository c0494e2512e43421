"""
OCR preprocessing and error correction module
Handles image enhancement before recognition and conservative text cleanup after it
"""

import re
from typing import List, Tuple

import cv2
import numpy as np


class OCRPreprocessor:
    def __init__(self):
        # Frequent misreads of record labels and clinical words
        self.medical_corrections = {
            r'\bpat[il1]en[il1t]\b': 'patient',
            r'\bpal[il1]ent\b': 'patient',
            r'\bd[il1]agnos[il1]s\b': 'diagnosis',
            r'\bdagnosis\b': 'diagnosis',
            r'\bprescr[il1]pt[il1]on\b': 'prescription',
            r'\bprescr[il1]p[il1][il1]on\b': 'prescription',
            r'\bmed[il1]cat[il1]on\b': 'medication',
            r'\bmed[il1]c[il1]ne\b': 'medicine',
            r'\bgend[e3]r\b': 'gender',
            r'\bsymp[lt]o[mn]s\b': 'symptoms',
            r'\bsymptons\b': 'symptoms',
            r'\btreatmen[il]\b': 'treatment',
        }

    def preprocess(self, image: np.ndarray) -> Tuple[np.ndarray, List[str]]:
        """Grayscale, contrast, denoise, deskew and binarize a photographed record"""
        steps_applied = []

        if len(image.shape) == 3:
            if image.shape[2] == 4:
                gray = cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
            else:
                gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
            steps_applied.append("grayscale")
        else:
            gray = image.copy()

        # Phone photos are often unevenly lit
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        gray = clahe.apply(gray)
        steps_applied.append("clahe")

        gray = cv2.fastNlMeansDenoising(gray, h=10)
        steps_applied.append("denoise")

        gray, was_deskewed = deskew_image(gray)
        if was_deskewed:
            steps_applied.append("deskew")

        binary = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )
        steps_applied.append("adaptive_threshold")

        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 2))
        binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)
        steps_applied.append("morphology")

        # Small photos read better upscaled
        height, width = binary.shape
        if max(height, width) < 1500:
            binary = cv2.resize(binary, (width * 2, height * 2), interpolation=cv2.INTER_CUBIC)
            steps_applied.append("upscale_2x")

        return binary, steps_applied

    def correct_ocr_text(self, text: str) -> str:
        """Apply OCR error corrections to text while preserving newlines for downstream regex."""
        if not text:
            return ''
        corrected = text

        # Obvious numeric OCR confusions in context
        corrected = re.sub(r'\bO(\d)', r'0\1', corrected)     # O followed by digit -> 0
        corrected = re.sub(r'\bl(\d)', r'1\1', corrected)     # l followed by digit -> 1

        for pattern, replacement in self.medical_corrections.items():
            corrected = re.sub(pattern, _keep_case(replacement), corrected, flags=re.IGNORECASE)

        # Preserve newlines but normalize spaces
        corrected = corrected.replace('\r', '\n')
        corrected = corrected.replace('\f', '\n')
        corrected = re.sub(r'[ \t]+', ' ', corrected)
        corrected = re.sub(r' +\n', '\n', corrected)
        corrected = re.sub(r'\n+', '\n', corrected)

        return corrected.strip()


def _keep_case(replacement: str):
    """Substitution callback that keeps the casing of the misread word"""
    def _sub(m):
        word = m.group(0)
        if word.isupper():
            return replacement.upper()
        if word[0].isupper():
            return replacement.capitalize()
        return replacement
    return _sub


def deskew_image(image: np.ndarray) -> Tuple[np.ndarray, bool]:
    """Detect and correct skew in image"""
    thresh = cv2.threshold(image, 0, 255, cv2.THRESH_BINARY_INV | cv2.THRESH_OTSU)[1]
    coords = np.column_stack(np.where(thresh > 0))

    if coords.size == 0:
        return image, False

    angle = cv2.minAreaRect(coords.astype(np.float32))[-1]
    if angle < -45:
        angle = -(90 + angle)
    elif angle > 45:
        angle = 90 - angle
    else:
        angle = -angle

    # Only deskew if angle is significant
    if abs(angle) < 0.5:
        return image, False

    (h, w) = image.shape[:2]
    center = (w // 2, h // 2)
    M = cv2.getRotationMatrix2D(center, angle, 1.0)
    deskewed = cv2.warpAffine(image, M, (w, h), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE)

    return deskewed, True
