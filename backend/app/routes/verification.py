"""
Verification Routes — Subject-side seller/contractor verification.
Handles: upload URLs, attaching documents, submission, status view.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_submission_service
from app.errors import VerificationError
from app.models.user import User
from app.schemas.schemas import (
    AttachDocumentRequest,
    SubjectStatusResponse,
    SubmitRequest,
    UploadUrlRequest,
    UploadUrlResponse,
)
from app.services.submission_service import SubmissionService
from app.utils.rate_limiter import rate_limit

router = APIRouter(prefix="/api/verification", tags=["Verification"])


@router.post(
    "/upload-url",
    response_model=UploadUrlResponse,
    dependencies=[Depends(rate_limit(requests=20, window=60, scope="upload-url"))],
)
def create_upload_url(
    payload: UploadUrlRequest,
    user: User = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Issue a short-lived upload URL scoped to the caller's storage prefix."""
    try:
        return service.create_upload_url(user, payload.kind, payload.type, payload.file_name, payload.content_type)
    except VerificationError as e:
        raise e.to_http()


@router.post("/documents", response_model=SubjectStatusResponse)
def attach_document(
    payload: AttachDocumentRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
):
    """Record an uploaded document on the caller's draft verification."""
    try:
        service.attach_document(
            db, user, payload.kind, payload.type, payload.storage_key, payload.file_name, payload.expiration_date,
        )
        return service.subject_status(db, user, payload.kind)
    except VerificationError as e:
        raise e.to_http()


@router.post(
    "/submit",
    response_model=SubjectStatusResponse,
    dependencies=[Depends(rate_limit(requests=5, window=60, scope="submit"))],
)
def submit_verification(
    payload: SubmitRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
):
    """Submit the draft for review. Priority tier is analyzed before responding."""
    try:
        service.submit(db, user, payload.kind, payload.tier)
        return service.subject_status(db, user, payload.kind)
    except VerificationError as e:
        raise e.to_http()


@router.get("/status", response_model=SubjectStatusResponse)
def get_status(
    kind: str = Query(..., description="seller or contractor"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
):
    try:
        return service.subject_status(db, user, kind)
    except VerificationError as e:
        raise e.to_http()
