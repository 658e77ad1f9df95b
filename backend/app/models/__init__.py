from app.models.user import User
from app.models.verification import VerificationRecord, StatusHistoryEntry
from app.models.audit import AuditLog
from app.models.notification import Notification

__all__ = ["User", "VerificationRecord", "StatusHistoryEntry", "AuditLog", "Notification"]
