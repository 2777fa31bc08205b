"""Sweep the webhook retry queue once.

Meant to be run by an external scheduler (cron, k8s CronJob) every minute
or so: ``python -m scripts.process_retries``.
"""
from __future__ import annotations

import argparse

from rich import print

from homeinv.config import settings
from homeinv.db import SessionLocal
from homeinv.logging_config import configure_logging
from homeinv.subscriptions.service import ReconciliationEngine

def main() -> None:
    parser = argparse.ArgumentParser(description="process due webhook retries")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    configure_logging(settings.log_level, json_logs=settings.log_json)

    with SessionLocal() as db:
        counts = ReconciliationEngine(db).process_due_retries(limit=args.limit)

    print(counts)

if __name__ == "__main__":
    main()
