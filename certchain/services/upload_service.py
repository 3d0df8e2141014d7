# certchain/services/upload_service.py
"""
Validates certificate uploads before anything is sent to OCR.
Accepts images (any image/* type) and PDFs, either as a multipart file or
as a base64 data URL.
"""
import base64
import binascii
import mimetypes
import re
from typing import Tuple

PDF_MIMETYPE = 'application/pdf'

_DATA_URL = re.compile(r'^data:(?P<mimetype>[\w.+-]+/[\w.+-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.*)$', re.DOTALL)


class UploadValidationError(Exception):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def allowed_mimetype(mimetype: str) -> bool:
    return bool(mimetype) and (mimetype.startswith('image/') or mimetype == PDF_MIMETYPE)


def _validate(payload: bytes, mimetype: str, max_bytes: int) -> Tuple[bytes, str]:
    if not allowed_mimetype(mimetype):
        raise UploadValidationError("Invalid file type. Please upload an image (JPG, PNG) or PDF file.")
    if not payload:
        raise UploadValidationError("No image provided")
    if len(payload) > max_bytes:
        raise UploadValidationError(
            f"File too large. Please upload a file smaller than {max_bytes // (1024 * 1024)}MB.", status_code=413
        )
    return payload, mimetype


def read_upload(file_storage, max_bytes: int) -> Tuple[bytes, str]:
    """Reads a werkzeug FileStorage into (bytes, mimetype)."""
    if file_storage is None or not file_storage.filename:
        raise UploadValidationError("No image provided")
    mimetype = file_storage.mimetype
    if not allowed_mimetype(mimetype):
        # Some clients send application/octet-stream; trust the extension then.
        mimetype = mimetypes.guess_type(file_storage.filename)[0] or mimetype
    # Read one byte past the limit so oversize files are detected without reading them whole.
    payload = file_storage.stream.read(max_bytes + 1)
    return _validate(payload, mimetype, max_bytes)


def read_data_url(data_url: str, max_bytes: int) -> Tuple[bytes, str]:
    """Decodes a 'data:<mimetype>;base64,<data>' string into (bytes, mimetype)."""
    if not data_url or not isinstance(data_url, str):
        raise UploadValidationError("No image provided")
    match = _DATA_URL.match(data_url.strip())
    if not match:
        raise UploadValidationError("Image must be a base64 data URL.")
    try:
        payload = base64.b64decode(match.group('data'), validate=True)
    except (binascii.Error, ValueError):
        raise UploadValidationError("Image data is not valid base64.")
    return _validate(payload, match.group('mimetype') or '', max_bytes)
