"""
Submission Service — Subject-side verification flow.
Handles: upload URLs, attaching documents to a draft, submission, status view.
"""
import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import Settings
from app.errors import IllegalTransition, NotAuthorized, RecordNotFound, StaleRecord, ValidationFailed
from app.models.user import User
from app.models.verification import VerificationKind, VerificationRecord, VerificationStatus, VerificationTier
from app.services.document_analyzer import DocumentAnalyzer, degraded_verdict
from app.services.sla_scheduler import document_refs
from app.services.status_engine import Actor, StatusTransitionEngine, Transition
from app.services.storage_service import DocumentStorage
from app.utils.logger import get_logger
from app.utils.validators import is_allowed_document, sanitize_file_name

logger = get_logger("SUBMISSION")

# A subject may open a new draft once the previous record ends in one of these
REOPENABLE = {VerificationStatus.REJECTED, VerificationStatus.EXPIRED}

STATUS_LABELS = {
    VerificationStatus.DRAFT: "Not Submitted",
    VerificationStatus.PENDING_AI: "Verification Pending (Document Review)",
    VerificationStatus.PENDING_ADMIN: "Verification Pending (Admin Review)",
    VerificationStatus.ACTIVE: "Verified",
    VerificationStatus.EXPIRED: "Verification Expired",
    VerificationStatus.REVOKED: "Verification Revoked",
    VerificationStatus.REJECTED: "Verification Not Approved",
}


def _check_kind(kind: str) -> str:
    try:
        return VerificationKind(kind).value
    except ValueError:
        raise ValidationFailed(f"Unknown verification kind '{kind}'")


def latest_record(db: Session, subject_id: str, kind: str) -> Optional[VerificationRecord]:
    return (
        db.query(VerificationRecord)
        .filter(VerificationRecord.subject_id == subject_id, VerificationRecord.kind == kind)
        .order_by(VerificationRecord.created_at.desc(), VerificationRecord.id.desc())
        .first()
    )


class SubmissionService:
    def __init__(
        self,
        settings: Settings,
        storage: DocumentStorage,
        analyzer: DocumentAnalyzer,
        engine: StatusTransitionEngine,
    ):
        self.settings = settings
        self.storage = storage
        self.analyzer = analyzer
        self.engine = engine

    def create_upload_url(self, user: User, kind: str, doc_type: str, file_name: str, content_type: str) -> dict:
        kind = _check_kind(kind)
        if not is_allowed_document(kind, doc_type):
            raise ValidationFailed(f"Document type '{doc_type}' is not accepted for {kind} verification")

        key = self.storage.build_key(kind, user.id, file_name)
        return {
            "uploadUrl": self.storage.presigned_put_url(key, content_type),
            "storageKey": key,
            "expiresIn": self.settings.UPLOAD_URL_TTL_SECONDS,
        }

    def attach_document(
        self,
        db: Session,
        user: User,
        kind: str,
        doc_type: str,
        storage_key: str,
        file_name: str,
        expiration_date: Optional[date] = None,
    ) -> VerificationRecord:
        """Add a document to the subject's draft, replacing one of the same type."""
        kind = _check_kind(kind)
        if not is_allowed_document(kind, doc_type):
            raise ValidationFailed(f"Document type '{doc_type}' is not accepted for {kind} verification")
        if not storage_key.startswith(self.storage.owner_prefix(kind, user.id)):
            raise NotAuthorized("Storage key does not belong to this account")

        record = self._open_draft(db, user, kind)
        document = {
            "type": doc_type,
            "storageKey": storage_key,
            "fileName": sanitize_file_name(file_name) or "document",
            "uploadedAt": datetime.utcnow().isoformat(),
            "expirationDate": expiration_date.isoformat() if expiration_date else None,
        }
        record.documents = [d for d in (record.documents or []) if d.get("type") != doc_type] + [document]

        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise StaleRecord("Verification was modified concurrently; reload and retry") from e
        db.refresh(record)
        return record

    def _open_draft(self, db: Session, user: User, kind: str) -> VerificationRecord:
        record = latest_record(db, user.id, kind)
        if record is not None and record.status == VerificationStatus.DRAFT:
            return record
        if record is not None and record.status not in REOPENABLE:
            raise IllegalTransition(f"Verification already submitted or active (status '{record.status.value}')")

        record = VerificationRecord(
            id=str(uuid.uuid4()),
            subject_id=user.id,
            kind=kind,
            tier=VerificationTier.STANDARD.value,
            _status=VerificationStatus.DRAFT,
            documents=[],
            admin_decision={},
            reminders_sent={},
        )
        db.add(record)
        return record

    def submit(self, db: Session, user: User, kind: str, tier: str) -> VerificationRecord:
        """Move the draft to pending-ai; priority tier is analyzed immediately."""
        kind = _check_kind(kind)
        record = latest_record(db, user.id, kind)
        if record is None:
            raise RecordNotFound("No verification record found. Please upload documents first.")

        self.engine.apply(db, record, Transition.SUBMIT, Actor.SUBJECT, actor_id=user.id, tier=tier)

        if record.tier == VerificationTier.PRIORITY.value:
            try:
                refs = document_refs(record, self.storage)
            except Exception as e:
                logger.warning(f"Document URLs unavailable for {record.id}: {e}")
                verdict = degraded_verdict(f"documents unavailable: {e}", datetime.utcnow())
            else:
                verdict = self.analyzer.analyze(kind, refs, user.name, user.email)
            self.engine.apply(
                db, record, Transition.ATTACH_VERDICT, Actor.SYSTEM,
                verdict=verdict, reason="AI verification complete (priority)",
            )
        return record

    def subject_status(self, db: Session, user: User, kind: str) -> dict:
        """Human-readable status; no analyzer output and no storage keys."""
        kind = _check_kind(kind)
        record = latest_record(db, user.id, kind)
        verified = user.is_verified_contractor if kind == "contractor" else user.is_verified_seller
        if record is None:
            return {"kind": kind, "status": None, "label": "Not Verified", "verified": bool(verified), "documents": []}

        decision = record.admin_decision or {}
        return {
            "kind": kind,
            "status": record.status.value,
            "label": STATUS_LABELS[record.status],
            "verified": bool(verified),
            "tier": record.tier,
            "submittedAt": record.submitted_at,
            "expiresAt": record.expires_at,
            "rejectionReason": decision.get("rejectionReason") if record.status == VerificationStatus.REJECTED else None,
            "documents": [
                {"type": d.get("type"), "fileName": d.get("fileName"), "uploadedAt": d.get("uploadedAt")}
                for d in (record.documents or [])
            ],
        }
