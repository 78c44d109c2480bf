"""
Run the KPI report scheduler until interrupted.

Reports are handed to a delivery callback that only logs them; plug a mailer
in its place to send them out.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from worktrack.domain.models import KPIReport, Organization
from worktrack.infra.config import get_settings
from worktrack.infra.db import init_db
from worktrack.infra.logging_config import setup_logging
from worktrack.services.report_scheduler import ReportScheduler

logger = logging.getLogger("worktrack.scripts.run_scheduler")


async def log_delivery(org: Organization, report: KPIReport, recipients: List[str]) -> None:
    summary = report.summary
    logger.info(
        f"[{org.name}] {report.report_meta.period} report for {', '.join(recipients)}: "
        f"{summary.total_hours}h, {summary.total_tasks} tasks, completion {summary.completion_rate}%, "
        f"{len(report.action_items)} action item(s)"
    )


async def main():
    settings = get_settings()
    setup_logging(settings)
    db = await init_db()

    scheduler = ReportScheduler(deliver=log_delivery, db=db, settings=settings)
    scheduler.start()
    logger.info("Scheduler running, press Ctrl+C to stop")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
        await db.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
