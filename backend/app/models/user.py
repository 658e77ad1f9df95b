"""
User Model — Marketplace account with role and verified-badge entitlements.
Maps to the 'users' table.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    email = Column(String(256), unique=True, nullable=False, index=True)
    role = Column(String(16), default="buyer")  # buyer | seller | contractor | admin

    # Visibility entitlements granted by an active verification
    is_verified_seller = Column(Boolean, default=False)
    is_verified_contractor = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def set_verified(self, kind: str, verified: bool) -> None:
        """Grant or strip the verified badge for a verification kind."""
        if kind == "contractor":
            self.is_verified_contractor = verified
        else:
            self.is_verified_seller = verified
