"""
Cron Routes — Bearer-authenticated triggers for the verification batch jobs.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_scheduler, verify_cron_secret
from app.services.sla_scheduler import SLAScheduler

router = APIRouter(prefix="/api/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


@router.get("/process-verifications")
def process_verifications(
    db: Session = Depends(get_db),
    scheduler: SLAScheduler = Depends(get_scheduler),
):
    """Hourly: analyze queued standard-tier records and escalate stuck ones."""
    report = scheduler.run_hourly(db)
    return {"success": report.ok, **report.to_dict()}


@router.get("/verification-reminders")
def verification_reminders(
    db: Session = Depends(get_db),
    scheduler: SLAScheduler = Depends(get_scheduler),
):
    """Daily: expire lapsed verifications and send renewal reminders."""
    report = scheduler.run_daily(db)
    return {"success": report.ok, **report.to_dict()}
