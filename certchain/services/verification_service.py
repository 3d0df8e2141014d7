# certchain/services/verification_service.py

from typing import Any, Dict, Optional

from flask import current_app

from certchain.models import VerificationResult, VerificationSource
from certchain.services import matching_service
from certchain.services.ocr_service import clean_extracted


class VerificationService:
    """
    Runs one verification request end to end:
    OCR -> active records -> scoring -> verdict -> audit log.

    OCR and registry read failures propagate to the caller, so an outage is
    never reported as a "not found" verdict. Audit log failures are only logged.
    """

    def __init__(self, registry, ocr_client):
        self.registry = registry
        self.ocr_client = ocr_client

    def verify_image(self, payload: bytes, mimetype: str, verifier: Optional[str] = None) -> Dict[str, Any]:
        extracted = clean_extracted(self.ocr_client.extract(payload, mimetype))
        return self.verify_extracted(extracted, verifier=verifier)

    def verify_extracted(self, extracted: Dict[str, Any], verifier: Optional[str] = None) -> Dict[str, Any]:
        certificates = self.registry.list_active()
        match = matching_service.match_certificates(extracted, certificates)
        result = matching_service.build_result(match, extracted)
        current_app.logger.info(
            f"Verification finished: status={result['status']} score={result['matchScore']} "
            f"candidates={match.candidates}"
        )
        self._log_verification(match, result, extracted, verifier)
        return result

    def verify_by_id(self, cert_id: str) -> Dict[str, Any]:
        certificate = self.registry.find_by_cert_id(cert_id, case_insensitive=True)
        return matching_service.build_lookup_result(certificate)

    def _log_verification(self, match, result, extracted, verifier) -> None:
        verdict = VerificationResult(result['status'])
        matched = result.get('matchedCertificate')
        entry = {
            'certificate_id': matched['id'] if matched else None,
            'result': verdict,
            'confidence_score': result['matchScore'],
            'extracted_data': extracted,
            'source': VerificationSource.IMAGE,
            'verifier': verifier,
        }
        if matched:
            entry['matched_fields'] = {
                'score': match.score,
                'differences': list(match.differences),
                'fields': {c.field: c.outcome.value for c in match.comparisons},
            }
        try:
            self.registry.insert_verification_log(**entry)
        except Exception:
            # The verdict has already been computed; the log is best-effort.
            current_app.logger.exception("Failed to write verification log")
