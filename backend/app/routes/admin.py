"""
Admin Routes — Verification review queue, decisions, document viewer,
dashboard metrics and audit trail access.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_review_service, require_admin
from app.errors import VerificationError
from app.models.user import User
from app.schemas.schemas import AdminDecisionRequest, AuditLogEntry, DocumentViewResponse
from app.services.audit_service import AuditService
from app.services.review_service import ReviewService

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/dashboard")
def get_dashboard(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
):
    """Get aggregated verification queue metrics."""
    return service.dashboard(db)


@router.get("/verifications")
def list_verifications(
    status: str = "pending-admin",
    kind: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
):
    """List verifications by status ("all" for every status), oldest submission first."""
    try:
        return service.list_records(db, status=status, kind=kind, page=page, limit=limit)
    except VerificationError as e:
        raise e.to_http()


@router.get("/verifications/{record_id}")
def get_verification(
    record_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
):
    try:
        return service.get_detail(db, record_id)
    except VerificationError as e:
        raise e.to_http()


@router.get("/verifications/{record_id}/document", response_model=DocumentViewResponse)
def view_document(
    record_id: str,
    type: str = Query(..., description="Document type to view"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
):
    """Short-lived signed URL for one document. Each view is audited."""
    try:
        return service.document_url(db, admin, record_id, type)
    except VerificationError as e:
        raise e.to_http()


@router.post("/verifications/decision")
def decide_verification(
    payload: AdminDecisionRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
):
    """Approve, reject, revoke or reinstate a verification."""
    try:
        verification = service.decide(
            db, admin, payload.verification_id, payload.action,
            notes=payload.notes, rejection_reason=payload.rejection_reason,
        )
    except VerificationError as e:
        raise e.to_http()
    return {"success": True, "verification": verification}


@router.get("/audit/{target_id}", response_model=list[AuditLogEntry])
def get_audit_trail(
    target_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Get the full audit trail for a verification."""
    logs = AuditService.get_trail(db, target_id)
    if not logs:
        raise HTTPException(status_code=404, detail="No audit logs found for this verification")
    return logs


@router.get("/audit/{target_id}/verify")
def verify_audit_chain(
    target_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Verify the integrity of the audit hash chain for a verification."""
    return AuditService.verify_chain(db, target_id)
