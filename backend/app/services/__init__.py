from app.services.document_analyzer import DocumentAnalyzer
from app.services.status_engine import StatusTransitionEngine
from app.services.sla_scheduler import SLAScheduler
from app.services.submission_service import SubmissionService
from app.services.review_service import ReviewService
from app.services.audit_service import AuditService

__all__ = [
    "DocumentAnalyzer",
    "StatusTransitionEngine",
    "SLAScheduler",
    "SubmissionService",
    "ReviewService",
    "AuditService",
]
