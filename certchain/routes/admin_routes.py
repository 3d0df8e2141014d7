from flask import Blueprint, request, jsonify, current_app, send_from_directory
from flask_jwt_extended import jwt_required, get_jwt_identity

from certchain.models import db, User, UserRole, Certificate, CertificateStatus
from certchain.routes.auth import roles_required, find_user
from certchain.routes.verify import read_image_from_request
from certchain.services.image_store import image_folder
from certchain.services.ocr_service import clean_extracted
from certchain.services.registration_service import register_certificate
from certchain.services.registry_service import CertificateRegistry
from certchain.services.upload_service import read_data_url

admin_bp = Blueprint("admin", __name__)

# Minimum password length per role when an admin creates a user.
MIN_PASSWORD_LENGTH = {UserRole.ADMIN: 6, UserRole.UPLOADER: 4, UserRole.VIEWER: 4}


@admin_bp.route("/stats", methods=["GET"])
@roles_required("admin")
def get_stats():
    """Provides key statistics for the admin dashboard cards."""
    return jsonify(CertificateRegistry().stats())


@admin_bp.route("/verification-logs", methods=["GET"])
@roles_required("admin")
def get_verification_logs():
    limit = min(request.args.get("limit", 100, type=int) or 100, 500)
    logs = CertificateRegistry().recent_logs(limit=limit)
    return jsonify([log.to_dict() for log in logs])


@admin_bp.route("/certificates", methods=["GET"])
@jwt_required()
def get_certificates():
    """Lists registered certificates, optionally filtered by ?status=active|revoked."""
    status = request.args.get("status")
    if status:
        try:
            status = CertificateStatus(status.lower())
        except ValueError:
            return jsonify(error="Bad Request", message=f"Unknown status '{status}'."), 400
    certificates = CertificateRegistry().list_all(status=status or None)
    return jsonify([cert.to_dict() for cert in certificates])


@admin_bp.route("/certificates/extract", methods=["POST"])
@roles_required("admin", "uploader")
def extract_certificate():
    """Runs OCR on an upload so the operator can review it before saving."""
    payload, mimetype = read_image_from_request()
    extracted = current_app.extensions['ocr_client'].extract(payload, mimetype)
    return jsonify(success=True, extracted=clean_extracted(extracted))


@admin_bp.route("/certificates", methods=["POST"])
@roles_required("admin", "uploader")
def add_certificate():
    """
    Registers a certificate.
    - multipart: 'file' (+ optional 'cert_id'); the file is OCR'd and saved.
    - JSON: {"extracted": {...}, "cert_id": optional, "image": optional data URL}
      for data the operator already reviewed.
    """
    registry = CertificateRegistry()
    username = get_jwt_identity()

    if 'file' in request.files:
        image = read_image_from_request()
        extracted = current_app.extensions['ocr_client'].extract(*image)
        manual_cert_id = request.form.get('cert_id')
    else:
        data = request.get_json(silent=True) or {}
        extracted = data.get('extracted')
        if not isinstance(extracted, dict):
            return jsonify(error="Bad Request", message="No data to save. Provide the extracted fields."), 400
        image = read_data_url(data['image'], current_app.config['MAX_UPLOAD_BYTES']) if data.get('image') else None
        manual_cert_id = data.get('cert_id')

    certificate_id = register_certificate(
        registry, extracted, created_by=username, manual_cert_id=manual_cert_id, image=image
    )
    certificate = db.session.get(Certificate, certificate_id)
    return jsonify(msg=f"Certificate {certificate.cert_id} saved to the registry.", certificate=certificate.to_dict()), 201


@admin_bp.route("/certificates/image/<path:filename>", methods=["GET"])
@jwt_required()
def certificate_image(filename):
    return send_from_directory(image_folder(), filename)


def _change_status(status):
    data = request.get_json(silent=True) or {}
    cert_ids = data.get('ids') or []
    if not cert_ids:
        return jsonify(error="Bad Request", message="No certificate IDs provided."), 400
    count = CertificateRegistry().set_status(cert_ids, status)
    current_app.logger.info(f"{get_jwt_identity()} set {count} certificate(s) to {status.value}")
    return jsonify(msg=f"Successfully updated {count} certificate(s).", updated=count)


@admin_bp.route("/certificates/revoke", methods=["POST"])
@roles_required("admin")
def revoke_certificates():
    """Marks certificates as revoked; they stop taking part in verification."""
    return _change_status(CertificateStatus.REVOKED)


@admin_bp.route("/certificates/restore", methods=["POST"])
@roles_required("admin")
def restore_certificates():
    return _change_status(CertificateStatus.ACTIVE)


@admin_bp.route("/users", methods=["GET"])
@roles_required("admin")
def list_users():
    users = User.query.order_by(User.username).all()
    return jsonify([user.to_dict() for user in users])


@admin_bp.route("/users", methods=["POST"])
@roles_required("admin")
def create_user():
    """Allows an admin to create a new user with a role and password."""
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""

    try:
        role = UserRole((data.get("role") or "uploader").lower())
    except ValueError:
        return jsonify(error="Bad Request", message="Role must be one of admin, uploader, viewer."), 400

    if not username:
        return jsonify(error="Bad Request", message="Username is required."), 400
    if len(password) < MIN_PASSWORD_LENGTH[role]:
        return jsonify(error="Bad Request",
                       message=f"Password must be at least {MIN_PASSWORD_LENGTH[role]} characters for {role.value}."), 400
    if find_user(username):
        return jsonify(error="Conflict", message="Username already exists."), 409

    new_user = User(username=username, role=role)
    new_user.set_password(password)
    db.session.add(new_user)
    db.session.commit()

    return jsonify(msg=f"User '{username}' created.", user=new_user.to_dict()), 201


@admin_bp.route("/users/<username>", methods=["DELETE"])
@roles_required("admin")
def delete_user(username):
    if username.strip().lower() == (get_jwt_identity() or "").lower():
        return jsonify(error="Bad Request", message="You cannot remove your own account."), 400
    user = find_user(username)
    if not user:
        return jsonify(error="Not Found", message="User not found"), 404
    db.session.delete(user)
    db.session.commit()
    return jsonify(msg=f"User '{user.username}' removed.")
