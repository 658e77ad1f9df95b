"""
Verification Record Model — Seller/contractor verification applications.
Stores document references, the AI verdict, the admin decision and the
append-only status history.
"""
import enum
from datetime import datetime, timedelta

from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from app.database import Base


class VerificationStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_AI = "pending-ai"
    PENDING_ADMIN = "pending-admin"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    REJECTED = "rejected"


class VerificationKind(str, enum.Enum):
    SELLER = "seller"
    CONTRACTOR = "contractor"


class VerificationTier(str, enum.Enum):
    STANDARD = "standard"
    PRIORITY = "priority"


class DocumentType(str, enum.Enum):
    DRIVERS_LICENSE = "drivers_license"
    PASSPORT = "passport"
    BUSINESS_LICENSE = "business_license"
    EIN_DOCUMENT = "ein_document"
    CONTRACTOR_LICENSE = "contractor_license"
    INSURANCE_CERTIFICATE = "insurance_certificate"


IDENTITY_DOCUMENTS = frozenset({DocumentType.DRIVERS_LICENSE, DocumentType.PASSPORT})

CREDENTIAL_DOCUMENTS = {
    VerificationKind.SELLER: frozenset({DocumentType.BUSINESS_LICENSE, DocumentType.EIN_DOCUMENT}),
    VerificationKind.CONTRACTOR: frozenset({
        DocumentType.BUSINESS_LICENSE,
        DocumentType.CONTRACTOR_LICENSE,
        DocumentType.INSURANCE_CERTIFICATE,
    }),
}

# remindersSent keys, by lead time in days
REMINDER_KEYS = {30: "thirtyDay", 7: "sevenDay", 0: "dayOf"}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class VerificationRecord(Base):
    __tablename__ = "verification_records"

    id = Column(String(36), primary_key=True, index=True)
    subject_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    kind = Column(String(16), nullable=False)                  # seller | contractor
    tier = Column(String(16), default=VerificationTier.STANDARD.value)

    # Written only by StatusTransitionEngine; read through `status`
    _status = Column(
        "status",
        SAEnum(VerificationStatus, native_enum=False, length=24, values_callable=_enum_values),
        nullable=False,
        default=VerificationStatus.DRAFT,
        index=True,
    )

    # [{type, storageKey, fileName, uploadedAt, expirationDate}]
    documents = Column(JSON, default=list)

    # {status, confidence, flags, extractedFields, nameMatchScore, tamperingScore, ...}
    ai_verdict = Column(JSON, nullable=True)

    # {decidedBy, decidedAt, notes, rejectionReason}
    admin_decision = Column(JSON, default=dict)

    submitted_at = Column(DateTime, nullable=True, index=True)
    approved_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)

    # {thirtyDay, sevenDay, dayOf}: ISO timestamps, never cleared. A flag
    # stamped before approved_at belongs to an earlier term.
    reminders_sent = Column(JSON, default=dict)
    # Lease held by the daily run that is currently sending a reminder
    reminder_claimed_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    history = relationship(
        "StatusHistoryEntry",
        order_by="StatusHistoryEntry.id",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def status(self) -> VerificationStatus:
        return self._status

    def document_types(self) -> set[str]:
        return {d.get("type") for d in (self.documents or [])}

    def find_document(self, doc_type: str) -> dict | None:
        return next((d for d in (self.documents or []) if d.get("type") == doc_type), None)

    def reminder_sent(self, key: str) -> bool:
        """Whether the reminder already went out for the current term."""
        sent_at = (self.reminders_sent or {}).get(key)
        if not sent_at:
            return False
        if self.approved_at is None:
            return True
        return datetime.fromisoformat(sent_at) >= self.approved_at

    def reminder_claimed(self, now: datetime, lease: timedelta) -> bool:
        return self.reminder_claimed_at is not None and self.reminder_claimed_at > now - lease


class StatusHistoryEntry(Base):
    """Append-only transition log. Rows are inserted, never updated or deleted."""
    __tablename__ = "verification_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    record_id = Column(String(36), ForeignKey("verification_records.id"), nullable=False, index=True)

    status = Column(String(24), nullable=False)
    changed_at = Column(DateTime, default=datetime.utcnow)
    changed_by = Column(String(36), nullable=True)   # user id, or None for system jobs
    reason = Column(Text)
