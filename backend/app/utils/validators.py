"""
Validators — Rule-based checks for verification documents and decisions.
"""
import re

from app.models.verification import (
    CREDENTIAL_DOCUMENTS,
    IDENTITY_DOCUMENTS,
    DocumentType,
    VerificationKind,
)

_FILE_NAME_RE = re.compile(r"^[\w .()\-]{1,200}$")


def clamp_score(value, default: float = 0) -> float:
    """Coerce a model-supplied score to a number in [0, 100]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float(default)
    if number != number:  # NaN
        number = float(default)
    return max(0.0, min(100.0, number))


def missing_required_documents(kind: str, document_types) -> list[str]:
    """Return the human-readable names of missing required document groups.

    A complete set holds one identity document and one credential document
    valid for the verification kind.
    """
    present = {str(t) for t in document_types}
    identity = {d.value for d in IDENTITY_DOCUMENTS}
    credentials = {d.value for d in CREDENTIAL_DOCUMENTS[VerificationKind(kind)]}

    missing = []
    if not present & identity:
        missing.append("identity document (driver's license or passport)")
    if not present & credentials:
        missing.append("business credential document")
    return missing


def is_allowed_document(kind: str, doc_type: str) -> bool:
    try:
        doc = DocumentType(doc_type)
    except ValueError:
        return False
    return doc in IDENTITY_DOCUMENTS or doc in CREDENTIAL_DOCUMENTS[VerificationKind(kind)]


def sanitize_file_name(name: str | None) -> str:
    """Strip path components and characters unsafe for storage keys."""
    if not name:
        return ""
    base = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    return base if _FILE_NAME_RE.match(base) else re.sub(r"[^\w.\-]", "_", base)[:200]


def normalize_reason(reason: str | None) -> str:
    """Collapse whitespace; empty string when nothing meaningful is left."""
    return " ".join((reason or "").split())
