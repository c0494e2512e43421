#!/usr/bin/env python3
"""
Unit tests for ai_enhance.py
"""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from ai_enhance import (
    EnhancedFieldsPayload,
    RemoteEnhancer,
    build_prompt,
    first_json_object,
    generated_text,
    parse_enhancement,
)
from config.settings import Settings
from errors import EnhancementError
from field_extract import extract_fields

RECORD_TEXT = ("Patient Name: Alice Walker\nAge: 34\nGender: F\n"
               "Diagnosis: Seasonal allergies\nRx: Loratadine 10mg")


def _settings(**overrides):
    values = dict(hf_token="hf_test", enhance_model_url="https://example.test/models/m")
    values.update(overrides)
    return Settings(**values)


class TestResponseParsing(unittest.TestCase):

    def test_generated_text_shapes(self):
        self.assertEqual(generated_text([{"generated_text": "abc"}]), "abc")
        self.assertEqual(generated_text({"generated_text": "abc"}), "abc")
        self.assertEqual(generated_text("abc"), "abc")

    def test_generated_text_errors(self):
        with self.assertRaises(EnhancementError):
            generated_text([])
        with self.assertRaises(EnhancementError):
            generated_text({"error": "Model is loading"})
        with self.assertRaises(EnhancementError):
            generated_text(42)

    def test_first_json_object_in_prose(self):
        text = 'Here it is: {"patientName": "Jane", "age": 40} done'
        self.assertEqual(first_json_object(text), {"patientName": "Jane", "age": 40})

    def test_first_json_object_is_only_candidate(self):
        # a later valid object is not used when the first one is broken
        with self.assertRaises(EnhancementError):
            first_json_object('Sure! {not json} Here it is: {"patientName": "Jane"}')

    def test_truncated_object_not_mined_for_nested_values(self):
        with self.assertRaises(EnhancementError):
            first_json_object('{"record": {"patientName": "Bob Stone", "age": 71}, '
                              '"diagnosis": "Seasonal all')

    def test_first_json_object_missing(self):
        with self.assertRaises(EnhancementError):
            first_json_object("I cannot help with that")

    def test_parse_enhancement_extracted_fields_shortcut(self):
        fields = parse_enhancement({"extractedFields": {"patientName": "Jane", "gender": "f"}})
        self.assertEqual(fields.patient_name, "Jane")
        self.assertEqual(fields.gender, "Female")

    def test_payload_narrowing(self):
        payload = EnhancedFieldsPayload.model_validate({
            "patientName": "  Jane Doe ",
            "age": 34.0,
            "gender": "woman",
            "date": None,
            "diagnosis": {"nested": "value"},
            "prescription": 12.5,
            "bloodType": "O+",
        })
        self.assertEqual(payload.to_fields().to_dict(), {
            "patientName": "Jane Doe",
            "age": "34",
            "gender": "Female",
            "date": "",
            "diagnosis": "",
            "prescription": "12.5",
        })

    def test_unknown_gender_becomes_empty(self):
        payload = EnhancedFieldsPayload.model_validate({"gender": "unspecified"})
        self.assertEqual(payload.gender, "")

    def test_prompt_contains_text(self):
        prompt = build_prompt("Name: Jane")
        self.assertIn("Text: Name: Jane", prompt)
        self.assertTrue(prompt.endswith("Response (JSON only):"))


class TestRemoteEnhancer(unittest.IsolatedAsyncioTestCase):

    async def test_transport_failure_falls_back(self):
        enhancer = RemoteEnhancer(_settings())
        with patch.object(RemoteEnhancer, "_generate",
                          AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))):
            fields = await enhancer.enhance(RECORD_TEXT)
        self.assertEqual(fields, extract_fields(RECORD_TEXT))

    async def test_http_error_falls_back(self):
        enhancer = RemoteEnhancer(_settings())
        with patch.object(RemoteEnhancer, "_generate",
                          AsyncMock(side_effect=EnhancementError("HTTP error! status: 503", status=503))):
            fields = await enhancer.enhance(RECORD_TEXT)
        self.assertEqual(fields, extract_fields(RECORD_TEXT))

    async def test_non_json_answer_falls_back(self):
        enhancer = RemoteEnhancer(_settings())
        with patch.object(RemoteEnhancer, "_generate",
                          AsyncMock(return_value=[{"generated_text": "no structured data here"}])):
            fields = await enhancer.enhance(RECORD_TEXT)
        self.assertEqual(fields, extract_fields(RECORD_TEXT))

    async def test_truncated_answer_falls_back(self):
        enhancer = RemoteEnhancer(_settings())
        answer = [{"generated_text": '{"record": {"patientName": "Bob Stone", "age": 71}, '
                                     '"diagnosis": "Seasonal all'}]
        with patch.object(RemoteEnhancer, "_generate", AsyncMock(return_value=answer)):
            fields = await enhancer.enhance(RECORD_TEXT)
        self.assertEqual(fields, extract_fields(RECORD_TEXT))
        self.assertEqual(fields.patient_name, "Alice Walker")

    async def test_partial_answer_is_gap_filled(self):
        enhancer = RemoteEnhancer(_settings())
        answer = [{"generated_text": '{"patientName": "Jane", "comment": "ignored"}'}]
        with patch.object(RemoteEnhancer, "_generate", AsyncMock(return_value=answer)):
            fields = await enhancer.enhance(RECORD_TEXT)

        expected = extract_fields(RECORD_TEXT)
        self.assertEqual(fields.patient_name, "Jane")
        self.assertEqual(fields.age, expected.age)
        self.assertEqual(fields.gender, expected.gender)
        self.assertEqual(fields.diagnosis, expected.diagnosis)
        self.assertEqual(fields.prescription, expected.prescription)
        self.assertNotIn("comment", fields.to_dict())

    async def test_model_values_take_precedence(self):
        enhancer = RemoteEnhancer(_settings())
        answer = [{"generated_text": '{"patientName": "Alice Walker", "age": 35, '
                                     '"diagnosis": "Allergic rhinitis"}'}]
        with patch.object(RemoteEnhancer, "_generate", AsyncMock(return_value=answer)):
            fields = await enhancer.enhance(RECORD_TEXT)
        self.assertEqual(fields.age, "35")
        self.assertEqual(fields.diagnosis, "Allergic rhinitis")
        self.assertEqual(fields.prescription, "Loratadine 10mg")

    async def test_no_token_skips_remote_call(self):
        enhancer = RemoteEnhancer(_settings(hf_token=None))
        generate = AsyncMock()
        with patch.object(RemoteEnhancer, "_generate", generate):
            fields = await enhancer.enhance(RECORD_TEXT)
        generate.assert_not_called()
        self.assertFalse(enhancer.available)
        self.assertEqual(fields, extract_fields(RECORD_TEXT))

    async def test_disabled_skips_remote_call(self):
        enhancer = RemoteEnhancer(_settings(enhance_enabled=False))
        generate = AsyncMock()
        with patch.object(RemoteEnhancer, "_generate", generate):
            await enhancer.enhance(RECORD_TEXT)
        generate.assert_not_called()

    async def test_empty_text(self):
        enhancer = RemoteEnhancer(_settings())
        generate = AsyncMock()
        with patch.object(RemoteEnhancer, "_generate", generate):
            fields = await enhancer.enhance("   ")
        generate.assert_not_called()
        self.assertEqual(fields.to_dict(), extract_fields("").to_dict())

    async def test_request_shape(self):
        resp = MagicMock(status=200)
        resp.json = AsyncMock(return_value=[{"generated_text": '{"patientName": "Jane"}'}])
        session = MagicMock()
        session.post.return_value.__aenter__.return_value = resp

        enhancer = RemoteEnhancer(_settings(enhance_timeout=5), session=session)
        fields = await enhancer.enhance("Name: Jane")

        self.assertEqual(fields.patient_name, "Jane")
        args, kwargs = session.post.call_args
        self.assertEqual(args[0], "https://example.test/models/m")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer hf_test")
        self.assertIn("Name: Jane", kwargs["json"]["inputs"])
        self.assertEqual(kwargs["json"]["parameters"]["max_length"], 500)
        self.assertEqual(kwargs["json"]["parameters"]["temperature"], 0.3)
        self.assertEqual(kwargs["timeout"].total, 5)

    async def test_non_2xx_status_falls_back(self):
        resp = MagicMock(status=500)
        resp.json = AsyncMock(return_value={"patientName": "Wrong"})
        session = MagicMock()
        session.post.return_value.__aenter__.return_value = resp

        enhancer = RemoteEnhancer(_settings(), session=session)
        fields = await enhancer.enhance(RECORD_TEXT)

        self.assertEqual(fields, extract_fields(RECORD_TEXT))
        resp.json.assert_not_called()


if __name__ == '__main__':
    unittest.main(verbosity=2)
