"""
Verification Service - resolves a search term to a trainer record.

Lookup rules:
1. The term is trimmed and upper-cased
2. A record matches when its certification_id equals the term
   (case-insensitive) or its internal id equals the term
3. If several records match, the earliest created one wins: that is the
   number as originally issued; later holders are collisions
4. No match, or an empty term, is a "not found" result, never an error

The scan is linear over the loaded records; registry sizes are small.
"""

from dataclasses import dataclass
from typing import List, Optional

from registry.logging_config import get_logger, log_with_context

logger = get_logger("registry")

NOT_FOUND_MESSAGE = "No matching record found in the official registry."


@dataclass
class VerificationResult:
    found: bool
    term: str
    trainer: Optional[dict] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "found": self.found,
            "term": self.term,
            "trainer": self.trainer,
            "message": self.message,
        }


def normalize_term(term: Optional[str]) -> str:
    return (term or "").strip().upper()


def _matches(record: dict, normalized: str, raw: str) -> bool:
    certification_id = (record.get("certification_id") or "").upper()
    record_id = str(record.get("id") or "")
    return certification_id == normalized or record_id in (normalized, raw)


def verify(term: Optional[str], trainers: List[dict]) -> VerificationResult:
    """
    Resolve a certification number or record id against loaded trainers.

    Args:
        term: User input (query string, scanned QR payload, typed ID)
        trainers: Serialized trainer records

    Returns:
        VerificationResult; found=False with a message when nothing matches
    """
    normalized = normalize_term(term)
    if not normalized:
        return VerificationResult(found=False, term=normalized, message=NOT_FOUND_MESSAGE)

    raw = (term or "").strip()
    matches = [t for t in trainers if _matches(t, normalized, raw)]

    if not matches:
        log_with_context(logger, "INFO", "Verification miss for {}".format(normalized))
        return VerificationResult(found=False, term=normalized, message=NOT_FOUND_MESSAGE)

    if len(matches) > 1:
        log_with_context(logger, "WARNING",
            "{} records share certification ID {}".format(len(matches), normalized),
            extra_data={"trainer_ids": [m.get("id") for m in matches]})
        matches.sort(key=lambda t: (t.get("created_at") or "", str(t.get("id") or "")))

    match = matches[0]
    log_with_context(logger, "INFO", "Verified {}".format(match.get("certification_id")),
                     context={"trainer_id": match.get("id")})
    return VerificationResult(found=True, term=normalized, trainer=match)


def filter_directory(trainers: List[dict], query: Optional[str]) -> List[dict]:
    """Public directory search: name or any specialty contains the query."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(trainers)
    return [
        t for t in trainers
        if needle in (t.get("full_name") or "").lower()
        or any(needle in s.lower() for s in t.get("specialties") or [])
    ]
