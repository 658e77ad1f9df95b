"""
Notification Model — In-app messages shown on the subject's dashboard.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Text

from app.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    type = Column(String(48), nullable=False)
    # Types: verification_pending, verification_approved, verification_rejected,
    #        verification_revoked, verification_expired, verification_reinstated,
    #        verification_renewal

    title = Column(String(128), nullable=False)
    message = Column(Text)
    read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
