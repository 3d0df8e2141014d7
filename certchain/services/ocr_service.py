# certchain/services/ocr_service.py

import base64
import json
import re
from typing import Dict, Optional, Any

import cv2
import numpy as np
import pytesseract

import requests
from flask import current_app

from certchain.services import pdf_service

EXTRACTED_FIELDS = (
    'holder_name', 'institution', 'department', 'degree_type', 'certificate_id',
    'start_date', 'end_date', 'issue_date', 'grade', 'additional_info', 'raw_text',
)
CONFIDENCE_LEVELS = ('high', 'medium', 'low')

SYSTEM_PROMPT = """You are an expert OCR system specialized in extracting information from academic certificates, degrees, and educational documents.

Extract ALL text and structured information from the certificate image. Return a JSON object with these fields:
{
  "raw_text": "Complete extracted text from the document",
  "certificate_id": "Certificate ID/number if visible",
  "holder_name": "Name of the certificate holder",
  "institution": "Name of the college/university",
  "department": "Department or field of study",
  "degree_type": "Type of degree (e.g., Bachelor, Master, PhD)",
  "start_date": "Start date if visible (YYYY-MM-DD format)",
  "end_date": "End date or graduation date if visible (YYYY-MM-DD format)",
  "issue_date": "Date of issue if visible",
  "grade": "Grade or GPA if visible",
  "additional_info": "Any other relevant information",
  "confidence": "high/medium/low based on image quality and text clarity"
}

If a field is not visible or cannot be determined, use null for that field.
IMPORTANT: Return ONLY valid JSON, no markdown formatting or additional text."""

USER_PROMPT = 'Extract all information from this certificate image and return it as structured JSON.'


class OcrError(Exception):
    """The OCR collaborator could not produce an extraction. Never a verdict."""
    status_code = 502
    default_message = 'Failed to process image'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class OcrRateLimitedError(OcrError):
    status_code = 429
    default_message = 'Rate limit exceeded. Please try again later.'


class OcrQuotaExceededError(OcrError):
    status_code = 402
    default_message = 'OCR credits exhausted. Please add credits to continue.'


class OcrUnavailableError(OcrError):
    status_code = 503
    default_message = 'OCR service is unavailable. Please try again later.'


class OcrResponseError(OcrError):
    status_code = 502
    default_message = 'Failed to extract text from image'


def clean_extracted(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Projects an arbitrary dict onto the extracted-field record."""
    data = data or {}
    cleaned = {}
    for key in EXTRACTED_FIELDS:
        value = data.get(key)
        if isinstance(value, str):
            value = value.strip() or None
        elif value is not None and not isinstance(value, (int, float)):
            value = None
        cleaned[key] = value

    confidence = str(data.get('confidence') or '').strip().lower()
    cleaned['confidence'] = confidence if confidence in CONFIDENCE_LEVELS else 'unknown'
    return cleaned


def parse_extraction(content: str) -> Dict[str, Any]:
    """
    Parses the JSON object returned by the model.
    Tolerates markdown fences around it; anything unparseable becomes a
    low-confidence raw-text record.
    """
    clean_content = content.strip()
    if clean_content.startswith('```json'):
        clean_content = clean_content[7:]
    elif clean_content.startswith('```'):
        clean_content = clean_content[3:]
    if clean_content.endswith('```'):
        clean_content = clean_content[:-3]

    try:
        parsed = json.loads(clean_content.strip())
    except ValueError:
        parsed = None

    if not isinstance(parsed, dict):
        current_app.logger.warning("OCR response was not a JSON object, falling back to raw text.")
        return {'raw_text': content, 'confidence': 'low'}
    return parsed


def to_data_url(payload: bytes, mimetype: str) -> str:
    return f"data:{mimetype};base64,{base64.b64encode(payload).decode('ascii')}"


class GatewayOcrClient:
    """Multimodal OCR through an OpenAI-compatible chat completions endpoint."""

    def __init__(self, api_url: str, api_key: Optional[str], model: str, timeout: float):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _build_request(self, image_url: str) -> Dict[str, Any]:
        return {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {
                    'role': 'user',
                    'content': [
                        {'type': 'text', 'text': USER_PROMPT},
                        {'type': 'image_url', 'image_url': {'url': image_url}},
                    ],
                },
            ],
        }

    def extract(self, payload: bytes, mimetype: str) -> Dict[str, Any]:
        if not payload:
            raise OcrError('No image provided')
        if not self.api_key:
            current_app.logger.error("OCR_API_KEY is not configured")
            raise OcrUnavailableError('API key not configured')

        current_app.logger.info("Processing OCR request...")
        try:
            response = requests.post(
                self.api_url,
                headers={'Authorization': f'Bearer {self.api_key}', 'Content-Type': 'application/json'},
                json=self._build_request(to_data_url(payload, mimetype)),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            current_app.logger.warning(f"OCR gateway timed out after {self.timeout}s")
            raise OcrUnavailableError('OCR service timed out. Please try again.')
        except requests.exceptions.RequestException as e:
            current_app.logger.warning(f"Could not connect to the OCR gateway: {e}")
            raise OcrUnavailableError()

        if not response.ok:
            current_app.logger.error(f"OCR gateway error: {response.status_code} {response.text[:500]}")
            if response.status_code == 429:
                raise OcrRateLimitedError()
            if response.status_code == 402:
                raise OcrQuotaExceededError()
            raise OcrResponseError('Failed to process image')

        try:
            data = response.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError):
            content = None

        if not content or not isinstance(content, str):
            current_app.logger.error("No content in OCR gateway response")
            raise OcrResponseError()

        current_app.logger.info("OCR extraction completed successfully")
        return clean_extracted(parse_extraction(content))


### Local OCR with Tesseract ###

def _deskew(image):
    """Straightens slightly rotated scans of a grayscale image."""
    try:
        gray = cv2.bitwise_not(image)
        thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)[1]
        coords = np.column_stack(np.where(thresh > 0)).astype(np.float32)
        if len(coords) == 0:
            return image
        # OpenCV >= 4.5 reports the rectangle angle in (0, 90]
        angle = cv2.minAreaRect(coords)[-1]
        if angle > 45:
            angle -= 90
        if abs(angle) > 0.5:
            (h, w) = image.shape[:2]
            center = (w // 2, h // 2)
            M = cv2.getRotationMatrix2D(center, angle, 1.0)
            image = cv2.warpAffine(image, M, (w, h), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE)
    except cv2.error:
        pass
    return image


class CertificateTextExtractor:
    """Maps labelled lines of plain OCR text onto the extracted-field record."""

    FIELD_KEYWORDS = {
        'certificate_id': ['certificate no', 'certificate number', 'certificate id', 'cert id', 'serial no', 'registration no'],
        'holder_name': ['name of the student', 'name of the candidate', 'student name', 'certify that', 'awarded to', 'name'],
        'department': ['department of', 'department', 'branch', 'discipline'],
        'grade': ['cgpa', 'grade', 'division'],
        'issue_date': ['date of issue', 'issued on', 'dated'],
    }
    # These keywords are part of the value itself, so the whole line is kept.
    LINE_KEYWORDS = {
        'institution': ['university', 'college', 'institute', 'vidyalaya'],
        'degree_type': ['bachelor', 'master', 'doctor of', 'diploma', 'b.tech', 'm.tech', 'ph.d'],
    }
    DATE_PATTERN = re.compile(
        r'(\d{4}-\d{2}-\d{2}|\d{1,2}[\s./-](?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\w*[\s./-]\d{2,4}|\d{1,2}[./-]\d{1,2}[./-]\d{2,4})',
        re.IGNORECASE,
    )

    def __init__(self, raw_text: str):
        self.raw_text = raw_text
        self.lines = [line.strip() for line in raw_text.split('\n') if line.strip()]

    def _clean_value(self, value: str) -> str:
        if not value: return ""
        return re.sub(r'^[^\w\d]+', '', value).strip()

    def _extract_by_keyword(self, field_name: str) -> Optional[str]:
        keywords = sorted(self.FIELD_KEYWORDS[field_name], key=len, reverse=True)
        for i, line in enumerate(self.lines):
            for keyword in keywords:
                parts = re.split(r'\b' + re.escape(keyword) + r'\b', line, maxsplit=1, flags=re.IGNORECASE)
                if len(parts) < 2:
                    continue
                if field_name == 'issue_date':
                    match = self.DATE_PATTERN.search(line)
                    return match.group(1) if match else None
                value = self._clean_value(parts[1])
                if value:
                    return value
                if i + 1 < len(self.lines):
                    return self._clean_value(self.lines[i + 1])
        return None

    def _extract_line(self, field_name: str) -> Optional[str]:
        for line in self.lines:
            lowered = line.lower()
            if any(keyword in lowered for keyword in self.LINE_KEYWORDS[field_name]):
                return self._clean_value(line)
        return None

    def extract_all(self) -> Dict[str, Any]:
        results = {field: self._extract_by_keyword(field) for field in self.FIELD_KEYWORDS}
        results.update({field: self._extract_line(field) for field in self.LINE_KEYWORDS})
        found = any(results.values())
        results['raw_text'] = self.raw_text
        results['confidence'] = 'medium' if found else 'low'
        return clean_extracted(results)


class TesseractOcrClient:
    """Runs Tesseract locally; PDFs are rendered from their first page."""

    def __init__(self, lang: str = 'eng', timeout: float = 30):
        self.lang = lang
        self.timeout = timeout

    def _load_image(self, payload: bytes, mimetype: str):

        if mimetype == 'application/pdf':
            image, _ = pdf_service.pdf_bytes_to_image(payload)
        else:
            image = cv2.imdecode(np.frombuffer(payload, np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise OcrError('Could not read the uploaded image. It may be corrupted.')
        return image

    def extract(self, payload: bytes, mimetype: str) -> Dict[str, Any]:

        if not payload:
            raise OcrError('No image provided')
        image = self._load_image(payload, mimetype)
        gray_image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        try:
            raw_text = pytesseract.image_to_string(
                _deskew(gray_image), lang=self.lang, config=r'--oem 3 --psm 4', timeout=self.timeout
            )
        except pytesseract.TesseractNotFoundError:
            current_app.logger.error("TESSERACT ERROR: 'tesseract' is not installed or not in your PATH.")
            raise OcrUnavailableError('OCR engine is not installed.')
        except pytesseract.TesseractError as e:
            current_app.logger.error(f"Tesseract could not process the image: {e}")
            raise OcrResponseError('OCR engine could not process the image.')
        except RuntimeError as e:
            # pytesseract signals its timeout with a bare RuntimeError
            current_app.logger.warning(f"Tesseract OCR failed: {e}")
            raise OcrUnavailableError('OCR timed out. Please try again.')

        if not raw_text.strip():
            raise OcrResponseError()
        return CertificateTextExtractor(raw_text).extract_all()


def get_ocr_client(config):
    provider = (config.get('OCR_PROVIDER') or 'gateway').lower()
    if provider == 'tesseract':
        return TesseractOcrClient(lang=config.get('TESSERACT_LANG', 'eng'), timeout=config.get('OCR_TIMEOUT_SECONDS', 30))
    if provider == 'gateway':
        return GatewayOcrClient(
            api_url=config.get('OCR_API_URL'),
            api_key=config.get('OCR_API_KEY'),
            model=config.get('OCR_MODEL'),
            timeout=config.get('OCR_TIMEOUT_SECONDS', 60),
        )
    raise ValueError(f"Unknown OCR_PROVIDER '{provider}'")
