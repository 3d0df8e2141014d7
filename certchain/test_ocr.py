# test_ocr.py
# A unittest-based test suite for services.ocr_service.
# - The gateway client is exercised against a mocked requests.post.
# - Upstream failures must surface as OcrError subclasses, never as data.
# - Unparseable model output falls back to a low-confidence raw-text record.

import json
import unittest
from unittest import mock

import cv2
import numpy as np
import pytesseract
import requests

from certchain.app import create_app
from certchain.services import ocr_service
from certchain.services.ocr_service import (
    CertificateTextExtractor, GatewayOcrClient, OcrError, OcrQuotaExceededError, OcrRateLimitedError,
    OcrResponseError, OcrUnavailableError, TesseractOcrClient, clean_extracted, get_ocr_client, parse_extraction,
)

SAMPLE_TEXT = """ANNA UNIVERSITY
Certificate No: CERT_2024_002
This is to certify that Priya Sharma
has completed Bachelor of Engineering
Department of Mechanical Engineering
CGPA: 8.9
Date of Issue: 15-06-2024
"""


def gateway_response(status_code=200, content=None, body=None):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = "upstream says no"
    if body is None:
        body = {"choices": [{"message": {"content": content}}]}
    response.json.return_value = body
    return response


class OcrTestCase(unittest.TestCase):

    def setUp(self):
        self.app = create_app('testing')
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        self.ctx.pop()


class TestParseExtraction(OcrTestCase):

    def test_plain_json(self):
        parsed = parse_extraction('{"holder_name": "Priya Sharma", "confidence": "high"}')
        self.assertEqual(parsed["holder_name"], "Priya Sharma")

    def test_json_fenced_in_markdown(self):
        parsed = parse_extraction('```json\n{"certificate_id": "CERT_2024_002"}\n```')
        self.assertEqual(parsed, {"certificate_id": "CERT_2024_002"})

    def test_bare_fence(self):
        parsed = parse_extraction('```\n{"institution": "Anna University"}\n```  ')
        self.assertEqual(parsed, {"institution": "Anna University"})

    def test_unparseable_falls_back_to_raw_text(self):
        content = "Sorry, I could not read this certificate."
        self.assertEqual(parse_extraction(content), {"raw_text": content, "confidence": "low"})

    def test_non_object_json_falls_back(self):
        self.assertEqual(parse_extraction("[1, 2]")["confidence"], "low")


class TestCleanExtracted(unittest.TestCase):

    def test_projects_onto_known_fields(self):
        cleaned = clean_extracted({"holder_name": "  Priya  ", "grade": "", "secret": "x", "confidence": "HIGH"})
        self.assertEqual(cleaned["holder_name"], "Priya")
        self.assertIsNone(cleaned["grade"])
        self.assertNotIn("secret", cleaned)
        self.assertEqual(cleaned["confidence"], "high")
        self.assertEqual(set(cleaned), set(ocr_service.EXTRACTED_FIELDS) | {"confidence"})

    def test_unknown_confidence(self):
        self.assertEqual(clean_extracted({"confidence": "very sure"})["confidence"], "unknown")
        self.assertEqual(clean_extracted(None)["confidence"], "unknown")

    def test_drops_nested_values(self):
        self.assertIsNone(clean_extracted({"additional_info": {"a": 1}})["additional_info"])


class TestGatewayOcrClient(OcrTestCase):

    def setUp(self):
        super().setUp()
        self.client = GatewayOcrClient("https://ocr.example/v1/chat/completions", "key", "test-model", timeout=3)

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_successful_extraction(self, post):
        content = "```json\n" + json.dumps({"holder_name": "Priya Sharma", "confidence": "high"}) + "\n```"
        post.return_value = gateway_response(content=content)

        extracted = self.client.extract(b"\x89PNG", "image/png")

        self.assertEqual(extracted["holder_name"], "Priya Sharma")
        self.assertEqual(extracted["confidence"], "high")
        _, kwargs = post.call_args
        self.assertEqual(kwargs["timeout"], 3)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer key")
        image_url = kwargs["json"]["messages"][1]["content"][1]["image_url"]["url"]
        self.assertTrue(image_url.startswith("data:image/png;base64,"))

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_unstructured_answer_is_low_confidence_record(self, post):
        post.return_value = gateway_response(content="ANNA UNIVERSITY ... Priya Sharma")
        extracted = self.client.extract(b"img", "image/jpeg")
        self.assertEqual(extracted["confidence"], "low")
        self.assertEqual(extracted["raw_text"], "ANNA UNIVERSITY ... Priya Sharma")
        self.assertIsNone(extracted["holder_name"])

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_status_codes_map_to_errors(self, post):
        for status_code, error in [(429, OcrRateLimitedError), (402, OcrQuotaExceededError), (500, OcrResponseError)]:
            with self.subTest(status_code=status_code):
                post.return_value = gateway_response(status_code=status_code)
                with self.assertRaises(error):
                    self.client.extract(b"img", "image/png")

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_timeout_is_unavailable(self, post):
        post.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(OcrUnavailableError) as caught:
            self.client.extract(b"img", "image/png")
        self.assertEqual(caught.exception.status_code, 503)

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_connection_error_is_unavailable(self, post):
        post.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(OcrUnavailableError):
            self.client.extract(b"img", "image/png")

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_empty_content_is_response_error(self, post):
        for body in [{"choices": []}, {"choices": [{"message": {"content": ""}}]}, {}]:
            with self.subTest(body=body):
                post.return_value = gateway_response(body=body)
                with self.assertRaises(OcrResponseError):
                    self.client.extract(b"img", "image/png")

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_missing_api_key_never_calls_upstream(self, post):
        client = GatewayOcrClient("https://ocr.example", None, "m", timeout=3)
        with self.assertRaises(OcrUnavailableError):
            client.extract(b"img", "image/png")
        post.assert_not_called()

    @mock.patch("certchain.services.ocr_service.requests.post")
    def test_empty_payload(self, post):
        with self.assertRaises(OcrError):
            self.client.extract(b"", "image/png")
        post.assert_not_called()


class TestCertificateTextExtractor(unittest.TestCase):

    def test_extracts_labelled_fields(self):
        extracted = CertificateTextExtractor(SAMPLE_TEXT).extract_all()
        self.assertEqual(extracted["institution"], "ANNA UNIVERSITY")
        self.assertEqual(extracted["certificate_id"], "CERT_2024_002")
        self.assertEqual(extracted["holder_name"], "Priya Sharma")
        self.assertEqual(extracted["department"], "Mechanical Engineering")
        self.assertEqual(extracted["degree_type"], "has completed Bachelor of Engineering")
        self.assertEqual(extracted["grade"], "8.9")
        self.assertEqual(extracted["issue_date"], "15-06-2024")
        self.assertEqual(extracted["confidence"], "medium")
        self.assertEqual(extracted["raw_text"], SAMPLE_TEXT.strip())

    def test_unlabelled_text_is_low_confidence(self):
        extracted = CertificateTextExtractor("lorem ipsum\ndolor sit amet").extract_all()
        self.assertEqual(extracted["confidence"], "low")
        self.assertIsNone(extracted["holder_name"])


class TestTesseractOcrClient(OcrTestCase):

    def setUp(self):
        super().setUp()
        ok, buffer = cv2.imencode(".png", np.full((40, 60, 3), 255, np.uint8))
        self.png = buffer.tobytes()
        self.client = TesseractOcrClient(lang="eng", timeout=2)

    @mock.patch("certchain.services.ocr_service.pytesseract.image_to_string")
    def test_extracts_fields_from_ocr_text(self, image_to_string):
        image_to_string.return_value = SAMPLE_TEXT
        extracted = self.client.extract(self.png, "image/png")
        self.assertEqual(extracted["holder_name"], "Priya Sharma")
        self.assertEqual(image_to_string.call_args.kwargs["timeout"], 2)

    @mock.patch("certchain.services.ocr_service.pytesseract.image_to_string")
    def test_timeout_is_unavailable(self, image_to_string):
        image_to_string.side_effect = RuntimeError("Tesseract process timeout")
        with self.assertRaises(OcrUnavailableError):
            self.client.extract(self.png, "image/png")

    @mock.patch("certchain.services.ocr_service.pytesseract.image_to_string")
    def test_engine_error_is_not_reported_as_timeout(self, image_to_string):
        image_to_string.side_effect = pytesseract.TesseractError(1, "Failed loading language 'tam'")
        with self.assertRaises(OcrResponseError) as caught:
            self.client.extract(self.png, "image/png")
        self.assertNotIn("timed out", caught.exception.message)

    @mock.patch("certchain.services.ocr_service.pytesseract.image_to_string")
    def test_blank_page_is_response_error(self, image_to_string):
        image_to_string.return_value = "   \n"
        with self.assertRaises(OcrResponseError):
            self.client.extract(self.png, "image/png")

    def test_corrupt_image(self):
        with self.assertRaises(OcrError):
            self.client.extract(b"definitely not a png", "image/png")

    def test_corrupt_pdf(self):
        with self.assertRaises(OcrError):
            self.client.extract(b"%PDF-1.4 truncated", "application/pdf")


class TestGetOcrClient(unittest.TestCase):

    def test_providers(self):
        self.assertIsInstance(get_ocr_client({"OCR_PROVIDER": "gateway", "OCR_API_KEY": "k"}), GatewayOcrClient)
        self.assertIsInstance(get_ocr_client({"OCR_PROVIDER": "Tesseract"}), TesseractOcrClient)
        with self.assertRaises(ValueError):
            get_ocr_client({"OCR_PROVIDER": "magic"})


if __name__ == "__main__":
    unittest.main(verbosity=2)
