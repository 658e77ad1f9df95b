from app.utils.validators import clamp_score, missing_required_documents, normalize_reason

__all__ = [
    "clamp_score", "missing_required_documents", "normalize_reason",
]
