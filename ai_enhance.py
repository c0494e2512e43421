"""
Remote enhancement of extracted fields.

Sends the OCR text to a hosted text-generation model and asks for the
canonical fields as JSON. The model answer is untrusted: the first JSON
object found in the generated text is narrowed through a schema, and any
field it leaves empty is filled from pattern extraction of the original
text. Every failure (transport, HTTP status, parse) degrades silently to
field_extract.extract_fields; enhance() never raises.
"""

import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import Settings, load_settings
from errors import EnhancementError
from field_extract import ExtractedFields, extract_fields, fill_missing_fields, normalize_gender

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "Extract and organize this medical record text into structured fields. "
    "Fix OCR errors and common medical handwriting mistakes. "
    "Format as JSON with exactly these fields: patientName, age, gender, date, diagnosis, prescription.\n\n"
    "Text: {text}\n\n"
    "Response (JSON only):"
)

_decoder = json.JSONDecoder()


class EnhancedFieldsPayload(BaseModel):
    """Schema for the model's JSON answer. Unknown keys are dropped."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    patient_name: str = Field("", alias="patientName")
    age: str = ""
    gender: str = ""
    date: str = ""
    diagnosis: str = ""
    prescription: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _to_text(cls, value: Any) -> str:
        if value is None or isinstance(value, bool):
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return ""

    @field_validator("gender")
    @classmethod
    def _canonical_gender(cls, value: str) -> str:
        return normalize_gender(value) if value else ""

    def to_fields(self) -> ExtractedFields:
        return ExtractedFields(
            patient_name=self.patient_name,
            age=self.age,
            gender=self.gender,
            date=self.date,
            diagnosis=self.diagnosis,
            prescription=self.prescription,
        )


def build_prompt(text: str) -> str:
    return PROMPT_TEMPLATE.format(text=text)


def generated_text(payload: Any) -> str:
    """Pull the generated string out of an inference response body."""
    if isinstance(payload, list):
        if not payload:
            raise EnhancementError("Empty response from model")
        payload = payload[0]
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        if payload.get("error"):
            raise EnhancementError("Model returned an error", context={"error": payload["error"]})
        text = payload.get("generated_text")
        if isinstance(text, str):
            return text
    raise EnhancementError("Unrecognized response shape", context={"type": type(payload).__name__})


def first_json_object(text: str) -> Dict[str, Any]:
    """The top-level JSON object starting at the first "{" of free text.

    Only that object is tried; a truncated or malformed answer raises
    EnhancementError rather than yielding an object nested inside it.
    """
    start = text.find("{")
    if start == -1:
        raise EnhancementError("No JSON object in model output")
    try:
        obj, _ = _decoder.raw_decode(text, start)
    except ValueError as e:
        raise EnhancementError("Model output is not valid JSON", context={"offset": start}) from e
    return obj


def parse_enhancement(payload: Any) -> ExtractedFields:
    """Response body -> narrowed fields. Raises EnhancementError when nothing usable is found."""
    if isinstance(payload, dict) and isinstance(payload.get("extractedFields"), dict):
        candidate = payload["extractedFields"]
    else:
        candidate = first_json_object(generated_text(payload))
    return EnhancedFieldsPayload.model_validate(candidate).to_fields()


class RemoteEnhancer:
    """Single round trip to the text-generation endpoint with pattern fallback."""

    def __init__(self, settings: Optional[Settings] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings or load_settings()
        self._session = session

    @property
    def available(self) -> bool:
        return self.settings.enhancement_available

    async def enhance(self, text: str) -> ExtractedFields:
        fallback = extract_fields(text)
        if not self.available or not (text or "").strip():
            return fallback

        try:
            payload = await self._generate(build_prompt(text))
            enhanced = parse_enhancement(payload)
        except Exception as e:
            logger.warning("AI enhancement failed, using pattern extraction: %s", e)
            return fallback

        logger.debug("AI enhancement result: %s", enhanced.to_dict())
        return fill_missing_fields(enhanced, fallback)

    async def _generate(self, prompt: str) -> Any:
        body = {
            "inputs": prompt,
            "parameters": {
                "max_length": self.settings.enhance_max_length,
                "temperature": self.settings.enhance_temperature,
                "do_sample": True,
                "return_full_text": False,
            },
        }
        headers = {
            "Authorization": f"Bearer {self.settings.hf_token}",
            "Content-Type": "application/json",
        }
        # total=None leaves the call unbounded unless ENHANCE_TIMEOUT is set
        timeout = aiohttp.ClientTimeout(total=self.settings.enhance_timeout)

        if self._session is not None:
            return await self._post(self._session, body, headers, timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._post(session, body, headers, timeout)

    async def _post(self, session: aiohttp.ClientSession, body: Dict[str, Any],
                    headers: Dict[str, str], timeout: aiohttp.ClientTimeout) -> Any:
        async with session.post(self.settings.enhance_model_url, json=body,
                                headers=headers, timeout=timeout) as resp:
            if not 200 <= resp.status < 300:
                raise EnhancementError(f"HTTP error! status: {resp.status}", status=resp.status)
            return await resp.json(content_type=None)


async def enhance(text: str, settings: Optional[Settings] = None) -> ExtractedFields:
    return await RemoteEnhancer(settings).enhance(text)
