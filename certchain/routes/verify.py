# certchain/routes/verify.py

from flask import Blueprint, request, jsonify, current_app

from certchain.routes.auth import current_username
from certchain.services.registry_service import CertificateRegistry
from certchain.services.upload_service import UploadValidationError, read_upload, read_data_url
from certchain.services.verification_service import VerificationService


def read_image_from_request():
    """
    Returns (bytes, mimetype) from a multipart 'file' field or a JSON
    {"image": "<data URL>"} body. Raises UploadValidationError.
    """
    max_bytes = current_app.config['MAX_UPLOAD_BYTES']
    if 'file' in request.files:
        return read_upload(request.files['file'], max_bytes)
    data = request.get_json(silent=True) or {}
    if data.get('image'):
        return read_data_url(data['image'], max_bytes)
    raise UploadValidationError("No image provided")


def get_verification_service():
    return VerificationService(CertificateRegistry(), current_app.extensions['ocr_client'])


verify_bp = Blueprint("verify_bp", __name__, url_prefix='/verify')


@verify_bp.route("/upload", methods=["POST"])
def upload_for_verification():
    """Verifies an uploaded certificate image against the registry. Guests allowed."""
    payload, mimetype = read_image_from_request()
    verifier = current_username()
    result = get_verification_service().verify_image(payload, mimetype, verifier=verifier)
    return jsonify(result)


@verify_bp.route("/id", methods=["POST"])
def verify_by_id():
    data = request.get_json(silent=True) or {}
    cert_id = (data.get('cert_id') or '').strip()
    if not cert_id:
        return jsonify(error="Bad Request", message="A certificate ID is required."), 400
    return jsonify(get_verification_service().verify_by_id(cert_id))


@verify_bp.route("/id/<path:cert_id>", methods=["GET"])
def verify_by_id_path(cert_id):
    if not cert_id.strip():
        return jsonify(error="Bad Request", message="A certificate ID is required."), 400
    return jsonify(get_verification_service().verify_by_id(cert_id))
