"""
Rail Exchange Verification — API server launcher.

    python run.py                      # 0.0.0.0:8000
    python run.py --port 9000 --reload
    python run.py --workers 4 --log-level warning

The batch jobs are not started here; schedule the cron endpoints or
run_jobs.py separately.
"""
import argparse

import uvicorn


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rail Exchange verification API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="restart on code changes (development only)")
    parser.add_argument("--workers", type=int, default=1, help="ignored with --reload")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    return parser


def main():
    args = build_parser().parse_args()

    print(
        f"\n  Rail Exchange Verification API\n"
        f"  listening on http://{args.host}:{args.port}  (docs at /docs)\n"
        f"  hourly job: GET /api/cron/process-verifications\n"
        f"  daily job:  GET /api/cron/verification-reminders\n"
    )

    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
