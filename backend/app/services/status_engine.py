"""
Status Transition Engine — the only writer of a verification record's status.

Lifecycle:
    draft → pending-ai → pending-admin → active | rejected
    active → expired | revoked
    expired | revoked → pending-admin   (reinstate)

Every transition is checked against the rule table (actor, source status,
transition guard) before anything is touched, then writes the new status,
appends exactly one history entry, applies its side effects and commits once.
A concurrent writer on the same record loses with StaleRecord.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import Settings
from app.errors import IllegalTransition, NotAuthorized, RecordNotFound, StaleRecord, ValidationFailed
from app.models.user import User
from app.models.verification import (
    StatusHistoryEntry,
    VerificationRecord,
    VerificationStatus,
    VerificationTier,
)
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.utils.logger import get_logger
from app.utils.validators import missing_required_documents, normalize_reason

logger = get_logger("ENGINE")

S = VerificationStatus


class Transition(str, enum.Enum):
    SUBMIT = "submit"
    ATTACH_VERDICT = "attach_verdict"
    FORCE_ESCALATE = "force_escalate"
    APPROVE = "approve"
    REJECT = "reject"
    REVOKE = "revoke"
    EXPIRE = "expire"
    REINSTATE = "reinstate"


class Actor(str, enum.Enum):
    SUBJECT = "subject"
    SYSTEM = "system"          # synchronous processing inside a request
    SCHEDULER = "scheduler"
    ADMIN = "admin"


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset
    target: VerificationStatus
    actors: frozenset


RULES: dict[Transition, TransitionRule] = {
    Transition.SUBMIT: TransitionRule(frozenset({S.DRAFT}), S.PENDING_AI, frozenset({Actor.SUBJECT})),
    Transition.ATTACH_VERDICT: TransitionRule(
        frozenset({S.PENDING_AI}), S.PENDING_ADMIN, frozenset({Actor.SYSTEM, Actor.SCHEDULER})
    ),
    Transition.FORCE_ESCALATE: TransitionRule(frozenset({S.PENDING_AI}), S.PENDING_ADMIN, frozenset({Actor.SCHEDULER})),
    Transition.APPROVE: TransitionRule(frozenset({S.PENDING_ADMIN}), S.ACTIVE, frozenset({Actor.ADMIN})),
    Transition.REJECT: TransitionRule(frozenset({S.PENDING_ADMIN}), S.REJECTED, frozenset({Actor.ADMIN})),
    Transition.REVOKE: TransitionRule(frozenset({S.ACTIVE}), S.REVOKED, frozenset({Actor.ADMIN})),
    Transition.EXPIRE: TransitionRule(frozenset({S.ACTIVE}), S.EXPIRED, frozenset({Actor.SCHEDULER})),
    Transition.REINSTATE: TransitionRule(frozenset({S.REVOKED, S.EXPIRED}), S.PENDING_ADMIN, frozenset({Actor.ADMIN})),
}

# Admin decision actions accepted by the review endpoint
ADMIN_ACTIONS = {
    "approve": Transition.APPROVE,
    "reject": Transition.REJECT,
    "revoke": Transition.REVOKE,
    "reinstate": Transition.REINSTATE,
}

SLA_BREACH_TAG = " [SLA BREACHED]"


def allowed_transitions(status: VerificationStatus, actor: Actor) -> list[Transition]:
    """Transitions the actor may trigger from a status, in rule-table order."""
    return [t for t, rule in RULES.items() if status in rule.sources and actor in rule.actors]


class StatusTransitionEngine:
    def __init__(self, settings: Settings, notifier: Optional[NotificationService] = None):
        self.settings = settings
        self.notifier = notifier or NotificationService(settings)

    def sla_breached(self, record: VerificationRecord, now: datetime) -> bool:
        if record.submitted_at is None:
            return False
        return now - record.submitted_at > timedelta(hours=self.settings.sla_hours(record.tier))

    def apply(
        self,
        db: Session,
        record: VerificationRecord,
        transition: Transition,
        actor: Actor,
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        verdict: Optional[dict] = None,
        tier: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VerificationRecord:
        """Apply one transition and commit it.

        Raises:
            NotAuthorized: The actor may not trigger this transition.
            IllegalTransition: The record's status does not allow it.
            ValidationFailed: A transition guard rejected the input.
            RecordNotFound: The record's subject no longer exists.
            StaleRecord: Another writer committed a change to the record first.
        """
        now = now or datetime.utcnow()
        rule = RULES[transition]

        if actor not in rule.actors:
            raise NotAuthorized(f"{actor.value} may not {transition.value} a verification")

        current = record.status
        if current not in rule.sources:
            raise IllegalTransition(
                f"Cannot {transition.value.replace('_', ' ')} a verification in status '{current.value}'"
            )

        reason = normalize_reason(reason) or None
        self._check_guard(record, transition, reason=reason, verdict=verdict, tier=tier, now=now)

        subject = db.get(User, record.subject_id)
        if subject is None:
            raise RecordNotFound(f"User not found for verification {record.id}")

        # Guards passed: from here on every write belongs to one commit
        history_reason = self._apply_side_effects(
            db, record, subject, transition,
            actor_id=actor_id, reason=reason, notes=notes, verdict=verdict, tier=tier, now=now,
        )
        record._status = rule.target
        record.history.append(
            StatusHistoryEntry(status=rule.target.value, changed_at=now, changed_by=actor_id, reason=history_reason)
        )

        if actor == Actor.ADMIN:
            AuditService.log(
                db,
                actor_id=actor_id or "unknown",
                action=f"VERIFICATION_{transition.value.upper()}",
                target_id=record.id,
                details={"from": current.value, "to": rule.target.value, "notes": notes},
                reason=history_reason,
                commit=False,
            )

        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            logger.warning(f"Concurrent update on {record.id} during {transition.value}: {e}")
            raise StaleRecord(f"Verification {record.id} was modified concurrently; reload and retry") from e

        logger.info(f"{record.id}: {current.value} -> {rule.target.value} ({transition.value} by {actor.value})")
        return record

    def _check_guard(self, record, transition, *, reason, verdict, tier, now):
        if transition == Transition.SUBMIT:
            missing = missing_required_documents(record.kind, record.document_types())
            if missing:
                raise ValidationFailed(f"Missing required documents: {', '.join(missing)}")
            if tier is not None and tier not in {t.value for t in VerificationTier}:
                raise ValidationFailed(f"Unknown verification tier '{tier}'")

        elif transition in (Transition.ATTACH_VERDICT, Transition.FORCE_ESCALATE):
            if not verdict:
                raise ValidationFailed("A verdict is required before review")

        elif transition == Transition.REJECT:
            if not reason:
                raise ValidationFailed("Rejection reason required")

        elif transition == Transition.EXPIRE:
            if record.expires_at is None or record.expires_at > now:
                raise IllegalTransition(f"Verification {record.id} is not due to expire")

    def _apply_side_effects(self, db, record, subject, transition, *, actor_id, reason, notes, verdict, tier, now) -> str:
        """Write the transition's side effects; return the history reason."""
        notify = self.notifier.notify

        if transition == Transition.SUBMIT:
            record.tier = tier or record.tier or VerificationTier.STANDARD.value
            record.submitted_at = now
            return reason or f"Documents submitted for AI verification ({record.tier} tier)"

        if transition in (Transition.ATTACH_VERDICT, Transition.FORCE_ESCALATE):
            record.ai_verdict = dict(verdict)
            breached = self.sla_breached(record, now)
            if transition == Transition.FORCE_ESCALATE:
                text = reason or (
                    f"Auto-escalated: exceeded {self.settings.HARD_ESCALATION_HOURS}-hour processing limit"
                )
            else:
                text = (
                    f"{reason or 'AI verification complete'}: {verdict.get('status')} "
                    f"(confidence: {float(verdict.get('confidence', 0)):.0f}%)"
                )
            if breached:
                text += SLA_BREACH_TAG
                logger.warning(f"SLA breach for verification {record.id} (submitted {record.submitted_at.isoformat()})")
            notify(
                db, subject.id, "verification_pending", "Verification Review In Progress",
                "Your documents have been processed and are now under admin review.",
            )
            return text

        if transition == Transition.APPROVE:
            record.approved_at = now
            record.expires_at = now + timedelta(days=self.settings.VERIFICATION_VALIDITY_DAYS)
            record.admin_decision = _decision("approve", actor_id, now, notes)
            subject.set_verified(record.kind, True)
            notify(
                db, subject.id, "verification_approved", "Verification Approved",
                f"Your {record.kind} verification is active until {record.expires_at:%B %d, %Y}.",
            )
            return notes or "Approved by admin"

        if transition == Transition.REJECT:
            record.admin_decision = _decision("reject", actor_id, now, notes, rejection_reason=reason)
            notify(
                db, subject.id, "verification_rejected", "Verification Not Approved",
                f"Your {record.kind} verification was not approved: {reason}",
            )
            return reason

        if transition == Transition.REVOKE:
            record.admin_decision = _decision("revoke", actor_id, now, notes)
            subject.set_verified(record.kind, False)
            notify(
                db, subject.id, "verification_revoked", "Verification Revoked",
                f"Your verified {record.kind} badge has been revoked.",
            )
            return reason or notes or "Badge revoked by admin"

        if transition == Transition.EXPIRE:
            subject.set_verified(record.kind, False)
            notify(
                db, subject.id, "verification_expired", "Verification Expired",
                f"Your {record.kind} verification has expired. Renew to restore your verified badge.",
            )
            return reason or "Verification expired - auto-expired by scheduler"

        if transition == Transition.REINSTATE:
            record.admin_decision = _decision("reinstate", actor_id, now, notes)
            notify(
                db, subject.id, "verification_reinstated", "Verification Reinstated",
                "Your verification has been reinstated and is awaiting final review.",
            )
            return reason or notes or "Reinstated by admin - pending renewal payment"

        raise IllegalTransition(f"Unhandled transition {transition.value}")


def _decision(action, actor_id, now, notes, rejection_reason=None) -> dict:
    decision = {
        "action": action,
        "decidedBy": actor_id,
        "decidedAt": now.isoformat(),
        "notes": notes or "",
    }
    if rejection_reason:
        decision["rejectionReason"] = rejection_reason
    return decision
