# certchain/services/registration_service.py

import time
from typing import Any, Dict, Optional, Tuple

from flask import current_app, url_for

from certchain.models import CertificateStatus
from certchain.services.image_store import save_certificate_image
from certchain.services.ocr_service import clean_extracted


def choose_cert_id(manual_cert_id: Optional[str], extracted: Dict[str, Any]) -> str:
    """Operator-supplied id first, then the OCR'd one, then a generated CERT_<epoch ms>."""
    for candidate in (manual_cert_id, extracted.get('certificate_id')):
        if candidate is not None and str(candidate).strip():
            return str(candidate).strip()
    return f"CERT_{int(time.time() * 1000)}"


def register_certificate(
    registry,
    extracted: Dict[str, Any],
    created_by: str,
    manual_cert_id: Optional[str] = None,
    image: Optional[Tuple[bytes, str]] = None,
) -> int:
    """Saves a reviewed extraction as an active certificate and returns its row id."""
    extracted = clean_extracted(extracted)
    cert_id = choose_cert_id(manual_cert_id, extracted)

    image_url = None
    if image is not None:
        filename = save_certificate_image(image[0], image[1], cert_id)
        image_url = url_for('admin.certificate_image', filename=filename)

    certificate_id = registry.insert_certificate(
        cert_id=cert_id,
        name=extracted.get('holder_name') or 'Unknown',
        college=extracted.get('institution') or 'Unknown',
        department=extracted.get('department') or '',
        start_year=extracted.get('start_date') or '',
        end_year=extracted.get('end_date') or '',
        extracted_text=extracted.get('raw_text') or '',
        image_url=image_url,
        created_by=created_by or 'admin',
        status=CertificateStatus.ACTIVE,
    )
    current_app.logger.info(f"Certificate {cert_id} registered by {created_by}")
    return certificate_id
