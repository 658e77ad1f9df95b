"""
Audit Log Model — Immutable, tamper-evident trail of admin actions.
Entries are SHA-256 hash-chained per target record.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Text

from app.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    actor_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    # Actions: VERIFICATION_APPROVE, VERIFICATION_REJECT, VERIFICATION_REVOKE,
    #          VERIFICATION_REINSTATE, DOCUMENT_VIEW

    target_id = Column(String(36), nullable=False, index=True)
    details = Column(JSON, default=dict)
    reason = Column(Text)

    payload_hash = Column(String(64))       # Chain hash of this entry
    previous_hash = Column(String(64))      # Hash of the previous entry for the target

    timestamp = Column(DateTime, default=datetime.utcnow)
