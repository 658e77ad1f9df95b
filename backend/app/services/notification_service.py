"""
Notification Service — In-app notifications and email delivery.
Email results are reported back so callers can tell a confirmed send from
a failed or ambiguous one.
"""
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage

from sqlalchemy.orm import Session

from app.config import Settings
from app.models.notification import Notification
from app.utils.logger import get_logger

logger = get_logger("NOTIFY")

KIND_LABELS = {
    "seller": "Seller Verification",
    "contractor": "Contractor Verification Badge",
}

RENEW_PATHS = {
    "seller": "/dashboard/verification/seller",
    "contractor": "/dashboard/contractor/verify",
}

# Notice name per reminder lead time, in days
NOTICE_LABELS = {30: "30-Day Notice", 7: "7-Day Notice", 0: "Final Notice"}


@dataclass
class DeliveryResult:
    success: bool
    provider: str
    detail: str = ""


class NotificationService:
    def __init__(self, settings: Settings):
        self.settings = settings

    def notify(self, db: Session, user_id: str, type: str, title: str, message: str) -> Notification:
        """Add an in-app notification to the caller's transaction (no commit)."""
        notification = Notification(user_id=user_id, type=type, title=title, message=message, read=False)
        db.add(notification)
        return notification

    def send_email(self, to_email: str, subject: str, body: str) -> DeliveryResult:
        """Deliver an email through the configured backend.

        The console backend only logs the message and always succeeds.
        The SMTP backend fails (success=False) when unconfigured or on any
        transport error, including timeouts.
        """
        if self.settings.EMAIL_BACKEND == "console":
            logger.info(f"[EMAIL] To {to_email}: {subject}")
            return DeliveryResult(success=True, provider="console", detail="logged")

        settings = self.settings
        if not (settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASS and to_email):
            logger.warning(f"SMTP not configured, email to {to_email or '-'} not sent")
            return DeliveryResult(success=False, provider="smtp", detail="SMTP not configured")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"The Rail Exchange <{settings.FROM_EMAIL}>"
        msg["To"] = to_email
        msg.set_content(body)

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as s:
                s.starttls()
                s.login(settings.SMTP_USER, settings.SMTP_PASS)
                s.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Email to {to_email} failed: {e}")
            return DeliveryResult(success=False, provider="smtp", detail=f"ERROR: {e}")

        return DeliveryResult(success=True, provider="smtp", detail="OK")

    def send_renewal_reminder(
        self, name: str, email: str, kind: str, expires_at: datetime, now: datetime, lead_days: int | None = None,
    ) -> DeliveryResult:
        """Email a renewal reminder; wording follows the time actually left.

        With lead_days the subject and body also name the notice being sent,
        so reminders caught up in the same run are told apart.
        """
        label = KIND_LABELS.get(kind, "Verification")
        days_left = max(0, (expires_at - now).days)
        formatted_date = expires_at.strftime("%B %d, %Y")
        renew_url = f"{self.settings.SITE_URL}{RENEW_PATHS.get(kind, '/dashboard/verification')}"

        if days_left == 0:
            subject = f"Your {label} Expires Today"
            urgency = "expires today"
            consequence = (
                "Your verified contractor badge and priority placement will be removed until you renew."
                if kind == "contractor"
                else "Your ability to create and edit listings will be restricted until you renew."
            )
        else:
            subject = f"Your {label} Expires in {days_left} Day{'s' if days_left != 1 else ''}"
            urgency = f"expires in {days_left} day{'s' if days_left != 1 else ''}"
            consequence = f"Renew now to maintain your verified {kind} status."

        body = (
            f"Hi {name},\n\n"
            f"Your {label.lower()} {urgency} on {formatted_date}.\n"
            f"{consequence}\n\n"
            f"Renew your verification: {renew_url}\n\n"
            f"The Rail Exchange team"
        )
        if lead_days is not None:
            notice = NOTICE_LABELS.get(lead_days, f"{lead_days}-Day Notice")
            subject = f"{notice}: {subject}"
            body = f"{notice}\n\n{body}"
        return self.send_email(email, subject, body)
