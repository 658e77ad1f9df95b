"""
Request Dependencies — caller identity, cron authentication and the
pipeline services, wired from Settings.
"""
import hmac

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.database import get_db
from app.models.user import User
from app.services.document_analyzer import DocumentAnalyzer
from app.services.notification_service import NotificationService
from app.services.review_service import ReviewService
from app.services.sla_scheduler import SLAScheduler
from app.services.status_engine import StatusTransitionEngine
from app.services.storage_service import DocumentStorage
from app.services.submission_service import SubmissionService
from app.utils.logger import get_logger

logger = get_logger("SERVER", "server.log")


# ─── Identity ────────────────────────────────────────────────────────

def get_current_user(
    user_id: str = Header(None, alias="user-id"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling account from the user-id header."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def verify_cron_secret(
    authorization: str = Header(None),
    settings: Settings = Depends(get_settings),
) -> bool:
    """Bearer-token check for batch triggers. Fails closed without a secret."""
    if not settings.CRON_SECRET:
        logger.error("SECURITY: CRON_SECRET not configured - blocking cron access")
        raise HTTPException(status_code=401, detail="Service not configured")

    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


# ─── Services ────────────────────────────────────────────────────────

def get_storage(settings: Settings = Depends(get_settings)) -> DocumentStorage:
    return DocumentStorage(settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> NotificationService:
    return NotificationService(settings)


def get_analyzer(settings: Settings = Depends(get_settings)) -> DocumentAnalyzer:
    return DocumentAnalyzer(settings)


def get_engine(
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
) -> StatusTransitionEngine:
    return StatusTransitionEngine(settings, notifier)


def get_submission_service(
    settings: Settings = Depends(get_settings),
    storage: DocumentStorage = Depends(get_storage),
    analyzer: DocumentAnalyzer = Depends(get_analyzer),
    engine: StatusTransitionEngine = Depends(get_engine),
) -> SubmissionService:
    return SubmissionService(settings, storage, analyzer, engine)


def get_review_service(
    settings: Settings = Depends(get_settings),
    storage: DocumentStorage = Depends(get_storage),
    engine: StatusTransitionEngine = Depends(get_engine),
) -> ReviewService:
    return ReviewService(settings, storage, engine)


def get_scheduler(
    settings: Settings = Depends(get_settings),
    analyzer: DocumentAnalyzer = Depends(get_analyzer),
    storage: DocumentStorage = Depends(get_storage),
    notifier: NotificationService = Depends(get_notifier),
    engine: StatusTransitionEngine = Depends(get_engine),
) -> SLAScheduler:
    return SLAScheduler(settings, analyzer, storage, notifier, engine)
