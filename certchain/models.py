# certchain/models.py
import enum
from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    UPLOADER = "uploader"
    VIEWER = "viewer"

class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.VIEWER)
    login_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    def set_password(self, password): self.password_hash = generate_password_hash(password)
    def check_password(self, password): return check_password_hash(self.password_hash, password)
    def to_dict(self):
        return {
            "username": self.username,
            "role": self.role.value,
            "login_count": self.login_count or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class CertificateStatus(str, enum.Enum):
    ACTIVE = "active"
    REVOKED = "revoked"

class Certificate(db.Model):
    """A registered certificate. Only ACTIVE rows take part in matching."""
    __tablename__ = "certificates"
    id = db.Column(db.Integer, primary_key=True)
    # Not unique: operators and OCR may both assign ids.
    cert_id = db.Column(db.String(120), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    college = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(255), nullable=True)
    start_year = db.Column(db.String(50), nullable=True)
    end_year = db.Column(db.String(50), nullable=True)
    extracted_text = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    created_by = db.Column(db.String(120), nullable=True)
    status = db.Column(db.Enum(CertificateStatus), nullable=False, default=CertificateStatus.ACTIVE, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    verification_logs = db.relationship("VerificationLog", backref="certificate", lazy=True)
    def to_dict(self):
        return {
            "id": self.id,
            "cert_id": self.cert_id,
            "name": self.name,
            "college": self.college,
            "department": self.department,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "image_url": self.image_url,
            "created_by": self.created_by,
            "status": self.status.value if self.status else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class VerificationResult(str, enum.Enum):
    ORIGINAL = "original"
    FAKE = "fake"
    NO_MATCH = "no_match"

class VerificationSource(str, enum.Enum):
    IMAGE = "image"

class VerificationLog(db.Model):
    __tablename__ = "verification_logs"
    id = db.Column(db.Integer, primary_key=True)
    certificate_id = db.Column(db.Integer, db.ForeignKey("certificates.id"), nullable=True)
    result = db.Column(db.Enum(VerificationResult), nullable=False)
    confidence_score = db.Column(db.Integer, nullable=False, default=0)
    extracted_data = db.Column(db.JSON, nullable=True)
    matched_fields = db.Column(db.JSON, nullable=True)
    source = db.Column(db.Enum(VerificationSource), nullable=False, default=VerificationSource.IMAGE)
    verifier = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "certificate_id": self.certificate_id,
            "cert_id": self.certificate.cert_id if self.certificate else None,
            "result": self.result.value,
            "confidence_score": self.confidence_score,
            "extracted_data": self.extracted_data,
            "matched_fields": self.matched_fields,
            "source": self.source.value if self.source else None,
            "verifier": self.verifier or "Guest",
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }

class TokenBlocklist(db.Model): __tablename__ = "token_blocklist"; id = db.Column(db.Integer, primary_key=True); jti = db.Column(db.String(36), nullable=False, index=True); created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
