"""
Runtime settings for the worker, read from the environment.
A .env file at the project root is loaded first when python-dotenv finds one.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigurationError

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_MODEL_URL = "https://api-inference.huggingface.co/models/microsoft/DialoGPT-medium"

# Preferred tesseract locations; otherwise pytesseract uses PATH
DEFAULT_TESSERACT_PATHS = [
    "/opt/homebrew/bin/tesseract",
    "/usr/local/bin/tesseract",
    "/usr/bin/tesseract",
]


@dataclass(frozen=True)
class Settings:
    hf_token: Optional[str] = None
    enhance_model_url: str = DEFAULT_MODEL_URL
    enhance_enabled: bool = True
    enhance_timeout: Optional[float] = None
    enhance_max_length: int = 500
    enhance_temperature: float = 0.3
    database_url: str = "sqlite:///medscan.db"
    image_store_dir: str = "medical-images"
    tesseract_cmd: Optional[str] = None
    ocr_lang: str = "eng"
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @property
    def enhancement_available(self) -> bool:
        return bool(self.enhance_enabled and self.hf_token and self.enhance_model_url)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError("Invalid boolean setting", {"name": name, "value": raw})


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigurationError("Invalid numeric setting", {"name": name, "value": raw}) from None


def _detect_tesseract() -> Optional[str]:
    for path in DEFAULT_TESSERACT_PATHS:
        if os.path.exists(path):
            return path
    return None


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Build Settings from the environment (after loading .env)."""
    load_dotenv(env_file or _ROOT / ".env")

    timeout = _env_number("ENHANCE_TIMEOUT", None, float)
    if timeout is not None and timeout <= 0:
        raise ConfigurationError("ENHANCE_TIMEOUT must be positive", {"value": timeout})

    settings = Settings(
        hf_token=os.getenv("HUGGING_FACE_ACCESS_TOKEN") or None,
        enhance_model_url=os.getenv("ENHANCE_MODEL_URL") or DEFAULT_MODEL_URL,
        enhance_enabled=_env_bool("ENHANCE_ENABLED", True),
        enhance_timeout=timeout,
        enhance_max_length=_env_number("ENHANCE_MAX_LENGTH", 500, int),
        enhance_temperature=_env_number("ENHANCE_TEMPERATURE", 0.3, float),
        database_url=os.getenv("DATABASE_URL") or "sqlite:///medscan.db",
        image_store_dir=os.getenv("IMAGE_STORE_DIR") or "medical-images",
        tesseract_cmd=os.getenv("TESSERACT_CMD") or _detect_tesseract(),
        ocr_lang=os.getenv("OCR_LANG") or "eng",
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        log_dir=os.getenv("LOG_DIR") or None,
    )
    if settings.enhance_enabled and not settings.hf_token:
        logger.info("HUGGING_FACE_ACCESS_TOKEN not set; using pattern extraction only")
    return settings
