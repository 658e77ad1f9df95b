"""
Rail Exchange Verification — Batch Job Runner
Runs one verification batch job in-process, for schedulers that invoke a
command instead of calling the cron endpoints.

Usage:
    python run_jobs.py hourly
    python run_jobs.py daily

Prints the job report as JSON; exits 1 when any record failed.
"""
import argparse
import json
import sys

from app.config import get_settings
from app.database import SessionLocal, init_db
from app.services.document_analyzer import DocumentAnalyzer
from app.services.notification_service import NotificationService
from app.services.sla_scheduler import SLAScheduler
from app.services.storage_service import DocumentStorage


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Rail Exchange verification batch jobs")
    parser.add_argument("job", choices=["hourly", "daily"], help="hourly: AI processing; daily: expiry and reminders")
    args = parser.parse_args(argv)

    settings = get_settings()
    init_db()
    scheduler = SLAScheduler(
        settings,
        analyzer=DocumentAnalyzer(settings),
        storage=DocumentStorage(settings),
        notifier=NotificationService(settings),
    )

    db = SessionLocal()
    try:
        report = scheduler.run_hourly(db) if args.job == "hourly" else scheduler.run_daily(db)
    finally:
        db.close()

    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
