"""
Pydantic Schemas — Request & Response models for API validation.
JSON bodies use camelCase field names.
"""
from datetime import date, datetime
from typing import Optional, Dict, List, Literal
from pydantic import BaseModel, Field


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True


# ──────────────── Subject Verification ────────────────

class UploadUrlRequest(CamelModel):
    kind: Literal["seller", "contractor"]
    type: str = Field(..., description="Document type, e.g. drivers_license, business_license")
    file_name: str = Field(..., alias="fileName", min_length=1, max_length=255)
    content_type: str = Field("image/jpeg", alias="contentType")


class UploadUrlResponse(CamelModel):
    upload_url: str = Field(..., alias="uploadUrl")
    storage_key: str = Field(..., alias="storageKey")
    expires_in: int = Field(..., alias="expiresIn")


class AttachDocumentRequest(CamelModel):
    kind: Literal["seller", "contractor"]
    type: str
    storage_key: str = Field(..., alias="storageKey", min_length=1)
    file_name: str = Field(..., alias="fileName", min_length=1, max_length=255)
    expiration_date: Optional[date] = Field(None, alias="expirationDate")


class SubmitRequest(CamelModel):
    kind: Literal["seller", "contractor"]
    tier: Literal["standard", "priority"] = "standard"


class DocumentSummary(CamelModel):
    type: str
    file_name: Optional[str] = Field(None, alias="fileName")
    uploaded_at: Optional[str] = Field(None, alias="uploadedAt")


class SubjectStatusResponse(CamelModel):
    kind: str
    status: Optional[str] = None
    label: str
    verified: bool = False
    tier: Optional[str] = None
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")
    documents: List[DocumentSummary] = []


# ──────────────── Admin ────────────────

class AdminDecisionRequest(CamelModel):
    verification_id: str = Field(..., alias="verificationId", min_length=1)
    action: Literal["approve", "reject", "revoke", "reinstate"]
    notes: Optional[str] = Field(None, max_length=2000)
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason", max_length=2000)


class DocumentViewResponse(CamelModel):
    view_url: str = Field(..., alias="viewUrl")
    expires_in: int = Field(..., alias="expiresIn")
    file_name: Optional[str] = Field(None, alias="fileName")
    type: str
    uploaded_at: Optional[str] = Field(None, alias="uploadedAt")


class AuditLogEntry(BaseModel):
    id: int
    actor_id: str
    action: str
    target_id: str
    details: Optional[Dict] = None
    reason: Optional[str] = None
    payload_hash: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


# ──────────────── Notifications ────────────────

class NotificationEntry(BaseModel):
    id: int
    type: str
    title: str
    message: Optional[str] = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True
