"""
Review Service — Admin review queue, record detail, document viewer and
approve/reject/revoke/reinstate decisions.
"""
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import Settings
from app.errors import RecordNotFound, ValidationFailed
from app.models.user import User
from app.models.verification import VerificationRecord, VerificationStatus
from app.services.audit_service import AuditService
from app.services.status_engine import ADMIN_ACTIONS, Actor, StatusTransitionEngine, Transition, allowed_transitions
from app.services.storage_service import DocumentStorage
from app.utils.validators import normalize_reason


def summarize(record: VerificationRecord, subject: Optional[User]) -> dict:
    """List-view fields. Document storage keys are deliberately left out."""
    verdict = record.ai_verdict or {}
    return {
        "id": record.id,
        "subject": {
            "id": record.subject_id,
            "name": subject.name if subject else None,
            "email": subject.email if subject else None,
        },
        "kind": record.kind,
        "tier": record.tier,
        "status": record.status.value,
        "aiStatus": verdict.get("status"),
        "aiConfidence": verdict.get("confidence"),
        "flagCount": len(verdict.get("flags") or []),
        "documents": [
            {"type": d.get("type"), "fileName": d.get("fileName"), "uploadedAt": d.get("uploadedAt")}
            for d in (record.documents or [])
        ],
        "submittedAt": record.submitted_at,
        "expiresAt": record.expires_at,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


class ReviewService:
    def __init__(self, settings: Settings, storage: DocumentStorage, engine: StatusTransitionEngine):
        self.settings = settings
        self.storage = storage
        self.engine = engine

    def list_records(
        self,
        db: Session,
        status: str = "pending-admin",
        kind: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        query = db.query(VerificationRecord)
        if status != "all":
            try:
                query = query.filter(VerificationRecord.status == VerificationStatus(status))
            except ValueError:
                raise ValidationFailed(f"Unknown status filter '{status}'")
        if kind:
            query = query.filter(VerificationRecord.kind == kind)

        page = max(page, 1)
        limit = max(1, min(limit, 100))
        total = query.count()
        records = (
            query.order_by(VerificationRecord.submitted_at.asc(), VerificationRecord.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        subjects = {
            u.id: u
            for u in db.query(User).filter(User.id.in_({r.subject_id for r in records})).all()
        } if records else {}

        return {
            "verifications": [summarize(r, subjects.get(r.subject_id)) for r in records],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    def _get(self, db: Session, record_id: str) -> VerificationRecord:
        record = db.get(VerificationRecord, record_id)
        if record is None:
            raise RecordNotFound("Verification not found")
        return record

    def get_detail(self, db: Session, record_id: str) -> dict:
        record = self._get(db, record_id)
        detail = summarize(record, db.get(User, record.subject_id))

        detail.update(
            aiVerdict=record.ai_verdict,
            adminDecision=record.admin_decision or {},
            statusHistory=[
                {"status": h.status, "changedAt": h.changed_at, "changedBy": h.changed_by, "reason": h.reason}
                for h in record.history
            ],
            allowedActions=[
                action for action, t in ADMIN_ACTIONS.items()
                if t in allowed_transitions(record.status, Actor.ADMIN)
            ],
        )
        return detail

    def document_url(self, db: Session, admin: User, record_id: str, doc_type: str) -> dict:
        """Short-lived signed URL for one document; the view is audited."""
        record = self._get(db, record_id)
        document = record.find_document(doc_type)
        if document is None:
            raise RecordNotFound("Document not found")

        ttl = self.settings.DOCUMENT_URL_TTL_SECONDS
        url = self.storage.presigned_get_url(document["storageKey"], ttl)
        AuditService.log(
            db, actor_id=admin.id, action="DOCUMENT_VIEW", target_id=record.id,
            details={"type": doc_type, "fileName": document.get("fileName")},
        )
        return {
            "viewUrl": url,
            "expiresIn": ttl,
            "fileName": document.get("fileName"),
            "type": doc_type,
            "uploadedAt": document.get("uploadedAt"),
        }

    def decide(
        self,
        db: Session,
        admin: User,
        record_id: str,
        action: str,
        notes: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> dict:
        """Apply an admin decision and return the updated summary."""
        transition = ADMIN_ACTIONS.get(action)
        if transition is None:
            raise ValidationFailed("Invalid action")
        if transition == Transition.REJECT and not normalize_reason(rejection_reason):
            raise ValidationFailed("Rejection reason required")

        record = self._get(db, record_id)
        reason = rejection_reason if transition == Transition.REJECT else None
        self.engine.apply(db, record, transition, Actor.ADMIN, actor_id=admin.id, reason=reason, notes=notes)
        return summarize(record, db.get(User, record.subject_id))

    def dashboard(self, db: Session) -> dict:
        """Aggregated queue metrics for the admin overview."""
        by_status = dict(
            db.query(VerificationRecord._status, func.count(VerificationRecord.id))
            .group_by(VerificationRecord._status)
            .all()
        )
        by_tier = dict(
            db.query(VerificationRecord.tier, func.count(VerificationRecord.id))
            .filter(VerificationRecord.status == VerificationStatus.PENDING_ADMIN)
            .group_by(VerificationRecord.tier)
            .all()
        )
        by_kind = dict(
            db.query(VerificationRecord.kind, func.count(VerificationRecord.id))
            .group_by(VerificationRecord.kind)
            .all()
        )

        # Average submission-to-approval time
        approved = (
            db.query(VerificationRecord.submitted_at, VerificationRecord.approved_at)
            .filter(VerificationRecord.approved_at.isnot(None), VerificationRecord.submitted_at.isnot(None))
            .all()
        )
        avg_hours = 0.0
        if approved:
            total_seconds = sum((a - s).total_seconds() for s, a in approved)
            avg_hours = total_seconds / len(approved) / 3600

        return {
            "total": sum(by_status.values()),
            "byStatus": {getattr(k, "value", k): v for k, v in by_status.items()},
            "pendingReviewByTier": by_tier,
            "byKind": by_kind,
            "avgApprovalHours": round(avg_hours, 1),
        }
