# certchain/services/registry_service.py
"""
Storage collaborator for the matching engine: registered certificates and
verification logs, backed by Flask-SQLAlchemy.
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func

from certchain.models import db, Certificate, CertificateStatus, User, VerificationLog, VerificationResult


class CertificateRegistry:

    def __init__(self, session=None):
        self.session = session or db.session

    def list_active(self) -> List[Certificate]:
        # Ordered by id so "first seen wins" ties are reproducible.
        return (
            self.session.query(Certificate)
            .filter(Certificate.status == CertificateStatus.ACTIVE)
            .order_by(Certificate.id)
            .all()
        )

    def list_all(self, status: Optional[CertificateStatus] = None) -> List[Certificate]:
        query = self.session.query(Certificate)
        if status is not None:
            query = query.filter(Certificate.status == status)
        return query.order_by(Certificate.created_at.desc(), Certificate.id.desc()).all()

    def find_by_cert_id(self, cert_id: str, case_insensitive: bool = True) -> Optional[Certificate]:
        """Exact lookup among active certificates. No LIKE wildcards are honoured."""
        cert_id = (cert_id or '').strip()
        if not cert_id:
            return None
        query = self.session.query(Certificate).filter(Certificate.status == CertificateStatus.ACTIVE)
        if case_insensitive:
            query = query.filter(func.lower(Certificate.cert_id) == cert_id.lower())
        else:
            query = query.filter(Certificate.cert_id == cert_id)
        return query.order_by(Certificate.id).first()

    def insert_certificate(self, **fields) -> int:
        certificate = Certificate(**fields)
        self.session.add(certificate)
        self.session.commit()
        return certificate.id

    def insert_verification_log(self, **entry) -> None:
        try:
            self.session.add(VerificationLog(**entry))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def set_status(self, cert_ids: Iterable[str], status: CertificateStatus) -> int:
        certificates = self.session.query(Certificate).filter(Certificate.cert_id.in_(list(cert_ids))).all()
        for certificate in certificates:
            certificate.status = status
        self.session.commit()
        return len(certificates)

    def recent_logs(self, limit: int = 100) -> List[VerificationLog]:
        return (
            self.session.query(VerificationLog)
            .order_by(VerificationLog.created_at.desc(), VerificationLog.id.desc())
            .limit(limit)
            .all()
        )

    def stats(self) -> Dict[str, Any]:
        """Counts for the dashboard cards."""
        by_status = dict(
            self.session.query(Certificate.status, func.count(Certificate.id)).group_by(Certificate.status).all()
        )
        by_result = dict(
            self.session.query(VerificationLog.result, func.count(VerificationLog.id)).group_by(VerificationLog.result).all()
        )
        by_role = dict(self.session.query(User.role, func.count(User.id)).group_by(User.role).all())
        return {
            "certificates": {
                "total": sum(by_status.values()),
                **{status.value: by_status.get(status, 0) for status in CertificateStatus},
            },
            "verifications": {
                "total": sum(by_result.values()),
                **{result.value: by_result.get(result, 0) for result in VerificationResult},
            },
            "users": {role.value: count for role, count in by_role.items()},
        }
