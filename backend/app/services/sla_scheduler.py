"""
SLA Scheduler — the two verification batch jobs.

Hourly: run the analyzer over queued standard-tier records and hand them to
admin review; force-escalate anything stuck in pending-ai past the hard limit.
Daily: expire lapsed verifications and send renewal reminders.

Each record is processed and committed on its own. A failure rolls back that
record only and is added to the job report; a killed job leaves unprocessed
records untouched for the next run.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import Settings
from app.errors import RecordNotFound, StaleRecord, ValidationFailed
from app.models.user import User
from app.models.verification import (
    REMINDER_KEYS,
    VerificationRecord,
    VerificationStatus,
    VerificationTier,
)
from app.services.document_analyzer import DocumentAnalyzer, DocumentRef, forced_escalation_verdict
from app.services.notification_service import NotificationService
from app.services.status_engine import Actor, StatusTransitionEngine, Transition
from app.services.storage_service import DocumentStorage
from app.utils.logger import get_logger

logger = get_logger("SCHEDULER")


@dataclass
class JobReport:
    job: str
    started_at: datetime
    processed: int = 0
    escalated: int = 0
    sla_breached: int = 0
    expired: int = 0
    reminders: dict = field(default_factory=dict)
    errors: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


def reminder_window(now: datetime, lead_days: int) -> tuple[datetime, datetime]:
    """Expiry range [start, end) in which the lead-time reminder is due.

    The window closes at now + lead_days (at least one day, so the day-of
    reminder covers the coming 24 hours) and stays open back to now, so a
    reminder missed by a skipped daily run is still delivered later.
    """
    return now, now + timedelta(days=max(lead_days, 1))


def document_refs(record: VerificationRecord, storage: DocumentStorage) -> list[DocumentRef]:
    return [
        DocumentRef(type=d["type"], url=storage.presigned_get_url(d["storageKey"]), file_name=d.get("fileName", ""))
        for d in (record.documents or [])
    ]


class SLAScheduler:
    def __init__(
        self,
        settings: Settings,
        analyzer: DocumentAnalyzer,
        storage: DocumentStorage,
        notifier: NotificationService,
        engine: Optional[StatusTransitionEngine] = None,
    ):
        self.settings = settings
        self.analyzer = analyzer
        self.storage = storage
        self.notifier = notifier
        self.engine = engine or StatusTransitionEngine(settings, notifier)

    # ─── Hourly ──────────────────────────────────────────────────────

    def run_hourly(self, db: Session, now: Optional[datetime] = None) -> JobReport:
        now = now or datetime.utcnow()
        report = JobReport(job="process-verifications", started_at=now)

        # Priority tier is analyzed at submission time
        batch_ids = [
            row.id
            for row in db.query(VerificationRecord.id)
            .filter(
                VerificationRecord.status == VerificationStatus.PENDING_AI,
                VerificationRecord.tier == VerificationTier.STANDARD.value,
            )
            .order_by(VerificationRecord.submitted_at.asc())
            .limit(self.settings.AI_BATCH_SIZE)
            .all()
        ]

        for record_id in batch_ids:
            try:
                self._process_pending(db, record_id, now, report)
            except Exception as e:
                db.rollback()
                report.errors.append(f"Error processing {record_id}: {e}")
                logger.error(f"Error processing {record_id}: {type(e).__name__}: {e}")

        cutoff = now - timedelta(hours=self.settings.HARD_ESCALATION_HOURS)
        stuck_ids = [
            row.id
            for row in db.query(VerificationRecord.id)
            .filter(
                VerificationRecord.status == VerificationStatus.PENDING_AI,
                VerificationRecord.submitted_at < cutoff,
            )
            .all()
        ]

        for record_id in stuck_ids:
            try:
                self._force_escalate(db, record_id, now, report)
            except Exception as e:
                db.rollback()
                report.errors.append(f"Error escalating {record_id}: {e}")
                logger.error(f"Error escalating {record_id}: {type(e).__name__}: {e}")

        logger.info(
            f"Hourly run: processed={report.processed} escalated={report.escalated} "
            f"breached={report.sla_breached} errors={len(report.errors)}"
        )
        return report

    def _process_pending(self, db: Session, record_id: str, now: datetime, report: JobReport):
        record = db.get(VerificationRecord, record_id)
        if record is None or record.status != VerificationStatus.PENDING_AI:
            return  # picked up by another writer since selection

        user = db.get(User, record.subject_id)
        if user is None:
            raise RecordNotFound(f"User not found for verification {record_id}")
        if record.submitted_at is None:
            raise ValidationFailed(f"No submission date for verification {record_id}")

        verdict = self.analyzer.analyze(record.kind, document_refs(record, self.storage), user.name, user.email, now=now)
        breached = self.engine.sla_breached(record, now)

        self.engine.apply(
            db, record, Transition.ATTACH_VERDICT, Actor.SCHEDULER,
            verdict=verdict, reason="AI verification complete (background processor)", now=now,
        )
        report.processed += 1
        if breached:
            report.sla_breached += 1

    def _force_escalate(self, db: Session, record_id: str, now: datetime, report: JobReport):
        record = db.get(VerificationRecord, record_id)
        if record is None or record.status != VerificationStatus.PENDING_AI:
            return

        hours = self.settings.HARD_ESCALATION_HOURS
        self.engine.apply(
            db, record, Transition.FORCE_ESCALATE, Actor.SCHEDULER,
            verdict=forced_escalation_verdict(hours, now), now=now,
        )
        report.escalated += 1
        logger.warning(f"Force-escalated {record_id} after {hours}h in pending-ai")

    # ─── Daily ───────────────────────────────────────────────────────

    def run_daily(self, db: Session, now: Optional[datetime] = None) -> JobReport:
        now = now or datetime.utcnow()
        report = JobReport(job="verification-reminders", started_at=now)

        expired_ids = [
            row.id
            for row in db.query(VerificationRecord.id)
            .filter(
                VerificationRecord.status == VerificationStatus.ACTIVE,
                VerificationRecord.expires_at <= now,
            )
            .all()
        ]
        for record_id in expired_ids:
            try:
                record = db.get(VerificationRecord, record_id)
                if record is None or record.status != VerificationStatus.ACTIVE:
                    continue
                self.engine.apply(db, record, Transition.EXPIRE, Actor.SCHEDULER, now=now)
                report.expired += 1
            except Exception as e:
                db.rollback()
                report.errors.append(f"Error expiring {record_id}: {e}")
                logger.error(f"Error expiring {record_id}: {type(e).__name__}: {e}")

        for lead_days in sorted(self.settings.REMINDER_LEAD_DAYS, reverse=True):
            key = REMINDER_KEYS.get(lead_days, f"{lead_days}Day")
            report.reminders[key] = self._send_reminders(db, lead_days, key, now, report)

        logger.info(
            f"Daily run: expired={report.expired} reminders={report.reminders} errors={len(report.errors)}"
        )
        return report

    def _send_reminders(self, db: Session, lead_days: int, key: str, now: datetime, report: JobReport) -> int:
        start, end = reminder_window(now, lead_days)
        candidate_ids = [
            row.id
            for row in db.query(VerificationRecord.id)
            .filter(
                VerificationRecord.status == VerificationStatus.ACTIVE,
                VerificationRecord.expires_at >= start,
                VerificationRecord.expires_at < end,
            )
            .order_by(VerificationRecord.expires_at.asc())
            .all()
        ]

        sent = 0
        for record_id in candidate_ids:
            try:
                if self._send_reminder(db, record_id, lead_days, key, now, report):
                    sent += 1
            except Exception as e:
                db.rollback()
                report.errors.append(f"Error sending {key} reminder for {record_id}: {e}")
                logger.error(f"Error sending {key} reminder for {record_id}: {type(e).__name__}: {e}")
        return sent

    def _claim_reminder(self, db: Session, record_id: str, key: str, now: datetime) -> Optional[VerificationRecord]:
        """Take the send lease on a record before its reminder goes out.

        The lease is committed under the record's version check, so of two
        overlapping runs only one gets past this point. Returns None when the
        reminder was already sent this term, another run holds the lease, or
        the record changed since it was read.
        """
        record = db.get(VerificationRecord, record_id, populate_existing=True)
        if record is None or record.status != VerificationStatus.ACTIVE or record.reminder_sent(key):
            return None
        if record.reminder_claimed(now, timedelta(minutes=self.settings.REMINDER_CLAIM_MINUTES)):
            logger.info(f"Reminder {key} for {record_id} is being sent by another run")
            return None

        record.reminder_claimed_at = now
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.info(f"Reminder {key} for {record_id} claimed by another run")
            return None
        return record

    def _send_reminder(
        self, db: Session, record_id: str, lead_days: int, key: str, now: datetime, report: JobReport
    ) -> bool:
        record = db.get(VerificationRecord, record_id)
        if record is None:
            return False
        user = db.get(User, record.subject_id)
        if user is None:
            raise RecordNotFound(f"User not found for verification {record_id}")

        record = self._claim_reminder(db, record_id, key, now)
        if record is None:
            return False

        result = self.notifier.send_renewal_reminder(
            user.name, user.email, record.kind, record.expires_at, now, lead_days=lead_days,
        )
        record.reminder_claimed_at = None
        if result.success:
            record.reminders_sent = {**(record.reminders_sent or {}), key: now.isoformat()}
            self.notifier.notify(
                db, user.id, "verification_renewal", "Verification Renewal Reminder",
                f"Your {record.kind} verification expires on {record.expires_at:%B %d, %Y}.",
            )
        try:
            db.commit()
        except StaleDataError as e:
            raise StaleRecord(f"Verification {record_id} was modified concurrently") from e

        if not result.success:
            # Lease released and flag left unset so the next run retries
            report.errors.append(f"Reminder {key} for {record_id} not delivered: {result.detail}")
            logger.warning(f"Reminder {key} for {record_id} not delivered: {result.detail}")
            return False
        return True
