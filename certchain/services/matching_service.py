# certchain/services/matching_service.py
"""
Decides whether OCR-extracted certificate fields belong to a registered certificate.

Every active certificate is scored field by field against the extracted data:
- holder name, institution, certificate id and department are compared after
  normalization (lower-case, ASCII letters and digits only);
- each field earns points for an exact, substring or fuzzy match, with the
  weights in FIELD_RULES (the four exact weights add up to 100);
- fields missing on either side earn nothing and are not reported.

The best scoring certificate is then classified as original (>= 80),
suspicious/fake (>= 40) or not found.
"""
import enum
import re
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from certchain.models import VerificationResult

ORIGINAL_THRESHOLD = 80
SUSPICIOUS_THRESHOLD = 40

MESSAGES = {
    VerificationResult.ORIGINAL: "✅ ORIGINAL CERTIFICATE - This certificate matches our registered records.",
    VerificationResult.FAKE: "⚠️ SUSPICIOUS CERTIFICATE - Data partially matches but contains discrepancies.",
    VerificationResult.NO_MATCH: "❌ NOT FOUND - This certificate is not registered in our registry.",
}
EMPTY_REGISTRY_MESSAGE = "No registered certificates found in the system. Please contact administrator."
ID_FOUND_MESSAGE = "✅ ORIGINAL - Certificate ID found in the certificate registry."
ID_NOT_FOUND_MESSAGE = "❌ NOT FOUND - No certificate with this ID exists in our records."

_NON_ALNUM = re.compile(r'[^a-z0-9]')


class MatchOutcome(str, enum.Enum):
    EXACT = "exact_match"
    CONTAINS = "contains_match"
    FUZZY = "fuzzy_match"
    MISMATCH = "mismatch"
    ABSENT = "field_absent"


class FieldRule(NamedTuple):
    field: str                  # key in the extracted data
    attribute: str              # attribute on the registered Certificate
    label: str
    exact_points: int
    contains_points: int
    contains_flagged: bool      # whether a substring match is reported as a difference
    fuzzy_threshold: Optional[float]
    fuzzy_points: int
    mismatch_relation: str


# Institution and department substring matches score like exact ones, since
# registered names often carry extra suffixes ("..., Chennai").
FIELD_RULES = (
    FieldRule("holder_name", "name", "Name", 35, 25, False, 0.7, 15, "mismatch"),
    FieldRule("institution", "college", "Institution", 25, 25, False, 0.6, 15, "mismatch"),
    FieldRule("certificate_id", "cert_id", "Certificate ID", 25, 15, True, None, 0, "mismatch"),
    FieldRule("department", "department", "Department", 15, 15, False, None, 0, "differs"),
)


class FieldComparison(NamedTuple):
    field: str
    outcome: MatchOutcome
    points: int
    message: Optional[str]


class CandidateScore(NamedTuple):
    score: int
    differences: List[str]
    comparisons: List[FieldComparison]


class MatchResult(NamedTuple):
    score: int
    certificate: Any
    differences: List[str]
    comparisons: List[FieldComparison]
    candidates: int


def normalize_text(text: Optional[str]) -> str:
    """Lower-cases and drops everything that is not an ASCII letter or digit."""
    if not text:
        return ""
    return _NON_ALNUM.sub('', str(text).lower())


def calculate_similarity(first: str, second: str) -> float:
    """
    Character-overlap ratio in [0, 1].

    Counts the characters of the shorter string that occur anywhere in the
    longer one (repeats count every time) and divides by the longer length.
    On equal lengths the second argument is treated as the longer one.
    """
    if len(first) > len(second):
        longer, shorter = first, second
    else:
        longer, shorter = second, first

    if not longer:
        return 1.0

    matches = sum(1 for char in shorter if char in longer)
    return matches / len(longer)


def _difference(rule: FieldRule, relation: str, extracted_value, registered_value) -> str:
    return f'{rule.label} {relation}: "{extracted_value}" vs "{registered_value}"'


def compare_field(rule: FieldRule, extracted_value, registered_value) -> FieldComparison:
    extracted_norm = normalize_text(extracted_value)
    registered_norm = normalize_text(registered_value)

    # Punctuation-only values carry nothing to compare.
    if not extracted_norm or not registered_norm:
        return FieldComparison(rule.field, MatchOutcome.ABSENT, 0, None)

    if extracted_norm == registered_norm:
        return FieldComparison(rule.field, MatchOutcome.EXACT, rule.exact_points, None)

    if extracted_norm in registered_norm or registered_norm in extracted_norm:
        message = None
        if rule.contains_flagged:
            message = _difference(rule, "differs", extracted_value, registered_value)
        return FieldComparison(rule.field, MatchOutcome.CONTAINS, rule.contains_points, message)

    if rule.fuzzy_threshold is not None and \
            calculate_similarity(extracted_norm, registered_norm) > rule.fuzzy_threshold:
        return FieldComparison(
            rule.field, MatchOutcome.FUZZY, rule.fuzzy_points,
            _difference(rule, "differs", extracted_value, registered_value),
        )

    return FieldComparison(
        rule.field, MatchOutcome.MISMATCH, 0,
        _difference(rule, rule.mismatch_relation, extracted_value, registered_value),
    )


def score_certificate(extracted: Dict[str, Any], certificate) -> CandidateScore:
    comparisons = [
        compare_field(rule, extracted.get(rule.field), getattr(certificate, rule.attribute, None))
        for rule in FIELD_RULES
    ]
    score = sum(c.points for c in comparisons)
    differences = [c.message for c in comparisons if c.message]
    return CandidateScore(score, differences, comparisons)


def match_certificates(extracted: Dict[str, Any], certificates: Iterable) -> MatchResult:
    """
    Scores every certificate and keeps the best one.

    Ties keep the certificate seen first; a certificate is only retained when it
    scores above zero.
    """
    best = MatchResult(0, None, [], [], 0)
    seen = 0
    for certificate in certificates:
        seen += 1
        candidate = score_certificate(extracted, certificate)
        if candidate.score > best.score:
            best = MatchResult(candidate.score, certificate, candidate.differences, candidate.comparisons, 0)
    return best._replace(candidates=seen)


def classify_score(score: int) -> VerificationResult:
    if score >= ORIGINAL_THRESHOLD:
        return VerificationResult.ORIGINAL
    if score >= SUSPICIOUS_THRESHOLD:
        return VerificationResult.FAKE
    return VerificationResult.NO_MATCH


def build_result(match: MatchResult, extracted: Dict[str, Any]) -> Dict[str, Any]:
    """Turns a MatchResult into the payload returned to callers."""
    if match.candidates == 0:
        return {
            "isOriginal": False,
            "status": VerificationResult.NO_MATCH.value,
            "matchScore": 0,
            "message": EMPTY_REGISTRY_MESSAGE,
            "extractedData": extracted,
        }

    verdict = classify_score(match.score)
    result = {
        "isOriginal": verdict is VerificationResult.ORIGINAL,
        "status": verdict.value,
        "matchScore": match.score,
        "message": MESSAGES[verdict],
        "extractedData": extracted,
    }
    # A sub-40 best candidate is not a meaningful association.
    if verdict is VerificationResult.NO_MATCH:
        return result

    result["matchedCertificate"] = match.certificate.to_dict()
    if verdict is VerificationResult.FAKE or match.differences:
        result["differences"] = list(match.differences)
    return result


def build_lookup_result(certificate) -> Dict[str, Any]:
    if certificate is None:
        return {
            "isOriginal": False,
            "status": VerificationResult.NO_MATCH.value,
            "matchScore": 0,
            "message": ID_NOT_FOUND_MESSAGE,
        }
    return {
        "isOriginal": True,
        "status": VerificationResult.ORIGINAL.value,
        "matchScore": 100,
        "matchedCertificate": certificate.to_dict(),
        "message": ID_FOUND_MESSAGE,
    }
