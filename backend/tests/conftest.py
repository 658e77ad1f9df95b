"""Shared fixtures: in-memory database, fake model transport, fake S3 client,
recording notifier and seeded users/records."""

import json
import os
import tempfile
import uuid

# Settings are cached on first import; configure the environment before any app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="railx-test-logs-")
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["GEMINI_API_KEY"] = ""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings
from app.database import get_db, init_db
from app.dependencies import get_analyzer, get_notifier, get_storage
from app.models.user import User
from app.models.verification import VerificationRecord, VerificationStatus
from app.routes import admin_router, cron_router, notification_router, verification_router
from app.services.document_analyzer import DocumentAnalyzer
from app.services.notification_service import DeliveryResult, NotificationService
from app.services.sla_scheduler import SLAScheduler
from app.services.status_engine import StatusTransitionEngine
from app.services.storage_service import DocumentStorage
from app.utils.rate_limiter import reset_rate_limits

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}

PASSING_RESPONSE = {
    "status": "passed",
    "confidence": 92,
    "flags": [],
    "extractedFields": {"name": "Casey Rivera", "businessName": "Rivera Rail Supply"},
    "nameMatchScore": 95,
    "documentExpired": False,
    "tamperingScore": 3,
    "tamperingIndicators": [],
    "fraudSignals": [],
    "recommendation": "approved",
    "notes": "Documents consistent.",
}


# ─── Fakes ───────────────────────────────────────────────────────────

class FakeTransport:
    """Model transport returning a canned response or raising a canned error."""

    def __init__(self, response=None, error=None):
        self.response = json.dumps(PASSING_RESPONSE) if response is None else response
        self.error = error
        self.calls = []

    def complete(self, prompt, documents, timeout):
        self.calls.append({"prompt": prompt, "documents": documents, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class FakeS3Client:
    def __init__(self):
        self.calls = []

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        self.calls.append((operation, Params, ExpiresIn))
        return f"https://signed.test/{Params['Bucket']}/{Params['Key']}?op={operation}&ttl={ExpiresIn}"


class RecordingNotifier(NotificationService):
    """Real notifier whose email delivery is recorded and can be made to fail."""

    def __init__(self, settings, deliver=True):
        super().__init__(settings)
        self.deliver = deliver
        self.sent = []

    def send_email(self, to_email, subject, body):
        self.sent.append({"to": to_email, "subject": subject, "body": body})
        if self.deliver:
            return DeliveryResult(success=True, provider="test", detail="OK")
        return DeliveryResult(success=False, provider="test", detail="ERROR: mailbox unavailable")


# ─── Database ────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def reset_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


# ─── Services ────────────────────────────────────────────────────────

@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def storage(settings, s3_client):
    return DocumentStorage(settings, client=s3_client)


@pytest.fixture
def notifier(settings):
    return RecordingNotifier(settings)


@pytest.fixture
def analyzer(settings, transport):
    return DocumentAnalyzer(settings, transport=transport)


@pytest.fixture
def status_engine(settings, notifier):
    return StatusTransitionEngine(settings, notifier)


@pytest.fixture
def scheduler(settings, analyzer, storage, notifier, status_engine):
    return SLAScheduler(settings, analyzer, storage, notifier, status_engine)


# ─── Seed data ───────────────────────────────────────────────────────

def seller_documents(user_id):
    prefix = f"verification/seller/{user_id}"
    return [
        {"type": "drivers_license", "storageKey": f"{prefix}/a1-license.jpg", "fileName": "license.jpg",
         "uploadedAt": "2026-01-01T00:00:00"},
        {"type": "business_license", "storageKey": f"{prefix}/b2-business.pdf", "fileName": "business.pdf",
         "uploadedAt": "2026-01-01T00:00:00"},
    ]


@pytest.fixture
def make_user(db):
    def _make(role="seller", name="Casey Rivera", email=None, **fields):
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            role=role,
            **fields,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_record(db):
    """Seed a record directly in a given status (bypasses the engine)."""
    def _make(user, status=VerificationStatus.DRAFT, kind="seller", tier="standard", documents=None, **fields):
        fields.setdefault("reminders_sent", {})
        fields.setdefault("admin_decision", {})
        record = VerificationRecord(
            id=str(uuid.uuid4()),
            subject_id=user.id,
            kind=kind,
            tier=tier,
            _status=status,
            documents=seller_documents(user.id) if documents is None else documents,
            **fields,
        )
        db.add(record)
        db.commit()
        return record
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", name="Morgan Admin", email="admin@example.com")


# ─── API ─────────────────────────────────────────────────────────────

@pytest.fixture
def app(db, analyzer, storage, notifier):
    app = FastAPI()
    app.include_router(verification_router)
    app.include_router(admin_router)
    app.include_router(cron_router)
    app.include_router(notification_router)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
