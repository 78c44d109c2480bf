"""
Report Scheduler - fires KPI report generation on clock triggers.

Each run generates one report per organization with bounded concurrency.
Organizations are isolated from each other: a storage failure for one tenant
is retried with backoff, then logged, and never stops the others. Delivery
(email, chat, ...) is a callback owned by the caller.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from worktrack.domain.errors import StorageError
from worktrack.domain.models import KPIReport, Organization
from worktrack.domain.periods import Period, parse_period
from worktrack.infra.config import Settings, get_settings
from worktrack.infra.db import DatabaseEngine, get_engine
from worktrack.infra.repository import MembershipRepository, OrganizationRepository
from worktrack.services.kpi_service import KPIService

logger = logging.getLogger(__name__)

# deliver(organization, report, owner_emails)
ReportDelivery = Callable[[Organization, KPIReport, List[str]], Awaitable[None]]

STATUS_DELIVERED = "delivered"
STATUS_GENERATED = "generated"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


class ReportScheduler:

    def __init__(self, deliver: Optional[ReportDelivery] = None,
                 db: Optional[DatabaseEngine] = None,
                 kpi_service: Optional[KPIService] = None,
                 settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.db = db or get_engine()
        self.kpi_service = kpi_service or KPIService(self.db)
        self.deliver = deliver
        self.scheduler = AsyncIOScheduler(timezone=self.settings.scheduler_timezone)

    def start(self):
        schedule = {
            Period.DAILY: self.settings.daily_report_cron,
            Period.WEEKLY: self.settings.weekly_report_cron,
            Period.MONTHLY: self.settings.monthly_report_cron,
        }
        for period, crontab in schedule.items():
            self.scheduler.add_job(
                self.run_for_all_organizations,
                CronTrigger.from_crontab(crontab, timezone=self.settings.scheduler_timezone),
                args=[period],
                id=f"{period.value}_kpi_reports",
                replace_existing=True,
                coalesce=True
            )
            logger.info(f"Scheduled {period.value} KPI reports: '{crontab}' ({self.settings.scheduler_timezone})")

        self.scheduler.start()
        logger.info("Report scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Report scheduler stopped")

    async def run_for_all_organizations(self, period: Union[str, Period]) -> Dict[str, str]:
        """
        Generate (and deliver) the `period` report for every organization.

        Returns a map of organization id to outcome status.
        """
        period = parse_period(period)
        started = datetime.now()

        async with self.db.transaction() as session:
            organizations = await OrganizationRepository(session).list_all()
        logger.info(f"=== {period.value.upper()} KPI RUN: {len(organizations)} organization(s) ===")

        semaphore = asyncio.Semaphore(self.settings.report_concurrency)
        outcomes = await asyncio.gather(
            *(self._run_for_organization(org, period, semaphore) for org in organizations)
        )
        results = dict(outcomes)

        failed = sum(1 for status in results.values() if status == STATUS_FAILED)
        elapsed = (datetime.now() - started).total_seconds()
        logger.info(
            f"=== {period.value.upper()} KPI RUN COMPLETED in {elapsed:.2f}s: "
            f"{len(results) - failed} ok, {failed} failed ==="
        )
        return results

    async def _run_for_organization(self, org: Organization, period: Period,
                                    semaphore: asyncio.Semaphore) -> Tuple[str, str]:
        async with semaphore:
            try:
                report = await self._generate_with_retry(org.id, period)
                if self.deliver is None:
                    return org.id, STATUS_GENERATED

                async with self.db.transaction() as session:
                    owners = await MembershipRepository(session).list_owners(org.id)
                recipients = [user.email for user in owners if user.email]
                if not recipients:
                    logger.info(f"No owners found for org {org.name} ({org.id}), skipping delivery")
                    return org.id, STATUS_SKIPPED

                await self.deliver(org, report, recipients)
                logger.info(f"{period.value.capitalize()} report delivered to {', '.join(recipients)} for org {org.name}")
                return org.id, STATUS_DELIVERED
            except Exception as e:
                # One tenant's failure must not abort the run for the others
                logger.error(f"Failed {period.value} report for org {org.id}: {e}", exc_info=True)
                return org.id, STATUS_FAILED

    async def _generate_with_retry(self, org_id: str, period: Period) -> KPIReport:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.report_retry_attempts),
            wait=wait_exponential(multiplier=1, min=0, max=self.settings.report_retry_max_wait_seconds),
            retry=retry_if_exception_type(StorageError),
            before_sleep=lambda state: logger.warning(
                f"Retrying report for org {org_id} after attempt {state.attempt_number}: {state.outcome.exception()}"
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.kpi_service.generate_report(org_id, period)
