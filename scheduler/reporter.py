# scheduler/reporter.py
import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional

import pandas as pd

from finder.exceptions import MailerError
from utils.log import get_logger

logger = get_logger("reporter")

SKIPPED = "skipped"
NO_RESULTS = "no_results"
NOTIFIED = "notified"
FAILED = "failed"


@dataclass
class BookOutcome:
    user_id: str
    book_id: str
    title: str
    status: str
    results: int = 0
    error: Optional[str] = None


@dataclass
class RunReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    users: int = 0
    outcomes: List[BookOutcome] = field(default_factory=list)
    aborted: bool = False
    error: Optional[str] = None

    def count(self, status):
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total_results(self):
        return sum(o.results for o in self.outcomes)

    def to_records(self):
        return [asdict(o) for o in self.outcomes]


def write_run_report(report, report_dir):
    """
    Write the per-book outcomes of a daily run as JSON and CSV.

    Files are named after the run's start day (UTC), so a second run on the
    same day overwrites the first.

    Returns:
        list[str]: paths of the JSON and CSV files
    """
    os.makedirs(report_dir, exist_ok=True)
    filename_base = f"daily_search_{report.started_at.date().isoformat()}"
    json_path = os.path.join(report_dir, f"{filename_base}.json")
    csv_path = os.path.join(report_dir, f"{filename_base}.csv")

    records = report.to_records()
    payload = {
        "started_at": report.started_at.isoformat(),
        "finished_at": report.finished_at.isoformat() if report.finished_at else None,
        "users": report.users,
        "aborted": report.aborted,
        "error": report.error,
        "outcomes": records,
    }
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    if records:
        df = pd.DataFrame(records)
    else:
        df = pd.DataFrame([{"message": "No books were processed in this run."}])
    df.to_csv(csv_path, index=False)

    logger.info(f"Generated daily search report: {json_path}, {csv_path}")
    return [json_path, csv_path]


def summary_message(report):
    """Subject and plain-text body summarising a run for the operator."""
    if report.aborted:
        subject = "[Book Tracker] Daily search aborted"
    else:
        subject = (
            f"[Book Tracker] {report.count(NOTIFIED)} book(s) with new listings"
        )

    body = (
        "Daily book search finished.\n\n"
        f"Started: {report.started_at.isoformat()}\n"
        f"Users processed: {report.users}\n"
        f"Books notified: {report.count(NOTIFIED)}\n"
        f"Books without results: {report.count(NO_RESULTS)}\n"
        f"Books skipped (searched recently): {report.count(SKIPPED)}\n"
        f"Books failed: {report.count(FAILED)}\n"
        f"Listings found: {report.total_results}\n"
    )
    if report.error:
        body += f"\nRun aborted: {report.error}\n"
    failed = [o for o in report.outcomes if o.status == FAILED]
    if failed:
        body += "\nFailures:\n"
        for o in failed:
            body += f"- {o.title} ({o.book_id}): {o.error}\n"
    return subject, body


async def publish_run_report(report, settings, mailer):
    """
    Write the run report files and, if ALERT_EMAIL is set, mail a summary.

    Reporting problems are logged and never fail the run.
    """
    try:
        paths = write_run_report(report, settings.report_dir)
    except OSError:
        logger.exception("Could not write daily search report")
        paths = []

    if not settings.alert_email:
        return paths

    subject, body = summary_message(report)
    try:
        await mailer.send_text(settings.alert_email, subject, body, attachments=paths)
        logger.info("Run summary email sent.")
    except MailerError:
        logger.exception("Could not send run summary email")
    return paths
