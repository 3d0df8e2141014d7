# certchain/app.py

import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge

from certchain.config import config
from certchain.models import db, TokenBlocklist
from certchain.seed import seed_command, create_user_command
from certchain.routes.auth import auth_bp
from certchain.routes.verify import verify_bp
from certchain.routes.admin_routes import admin_bp
from certchain.services.ocr_service import OcrError, get_ocr_client
from certchain.services.upload_service import UploadValidationError

def create_app(config_name=None):
    if config_name is None:
        config_name = os.getenv('FLASK_CONFIG', 'default')

    PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    INSTANCE_FOLDER_PATH = os.path.join(PROJECT_ROOT, 'instance')

    app = Flask(__name__, instance_path=INSTANCE_FOLDER_PATH)
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    CORS(app)
    jwt = JWTManager(app)
    # Swappable OCR collaborator; tests replace it with a stub.
    app.extensions['ocr_client'] = get_ocr_client(app.config)

    @jwt.token_in_blocklist_loader
    def check_if_token_in_blocklist(jwt_header, jwt_payload):
        jti = jwt_payload["jti"]
        token = db.session.query(TokenBlocklist.id).filter_by(jti=jti).scalar()
        return token is not None

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(verify_bp)
    app.register_blueprint(admin_bp, url_prefix='/admin')

    if not app.debug and not app.testing:
        log_dir = os.path.join(PROJECT_ROOT, 'logs')
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(os.path.join(log_dir, 'certchain.log'), maxBytes=10240, backupCount=10)
        file_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('CertChain Application Startup')

    # Failures below carry no verdict, so they cannot be mistaken for "no_match".
    @app.errorhandler(UploadValidationError)
    def handle_invalid_upload(e):
        return jsonify(error="Invalid Upload", message=e.message), e.status_code

    @app.errorhandler(OcrError)
    def handle_ocr_error(e):
        app.logger.warning(f"Verification failed during OCR: {e.message}")
        return jsonify(error="Verification Failed", message=e.message), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(e):
        db.session.rollback()
        app.logger.exception(f"Registry unavailable: {e}")
        return jsonify(error="Verification Failed", message="The certificate registry is unavailable. Please try again."), 503

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return jsonify(error="Not Found", message="The requested resource was not found."), 404

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        max_mb = app.config['MAX_UPLOAD_BYTES'] // (1024 * 1024)
        return jsonify(error="Invalid Upload", message=f"File too large. Please upload a file smaller than {max_mb}MB."), 413

    @app.errorhandler(Exception)
    def handle_generic_error(e):
        if isinstance(e, HTTPException):
            return jsonify(error=e.name, message=e.description), e.code
        app.logger.exception(f"An unhandled exception occurred: {e}")
        return jsonify(error="Internal Server Error", message="An unexpected error occurred."), 500

    app.cli.add_command(seed_command)
    app.cli.add_command(create_user_command)

    @app.route("/")
    def index():
        return "✅ CertChain - API Service is Running"

    return app
