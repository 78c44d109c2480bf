"""
KPI Service - Organization analytics per period.

Reads time entries, reports, completed tasks and memberships for the current
and the previous period, then assembles the full KPI report in memory. The
service only reads. Either every query succeeds and a complete report is
returned, or PartialComputationImpossible is raised.
"""

import datetime
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set, Union

from worktrack.domain.errors import PartialComputationImpossible, StorageError
from worktrack.domain.models import (
    DateRange, EmployeeRef, EmployeeRollup, KPIPerformanceView, KPIReport, KPISummary, KPISummaryView,
    Membership, MembershipRole, Project, ProjectRollup, Report, ReportDateRange, ReportMeta, Task, TimeEntry,
    TopProject, Trends, User,
)
from worktrack.domain.periods import Period, date_range, parse_period, parse_reference_date, previous_range
from worktrack.infra.db import DatabaseEngine, get_engine
from worktrack.infra.repository import (
    MembershipRepository, ProjectRepository, ReportRepository, TaskRepository, TimeEntryRepository,
)
from worktrack.services.performance import (
    calculate_metrics, categorize_employee_performance, completion_rate, generate_action_items, pct_change,
    round_half_up,
)

logger = logging.getLogger(__name__)

UNASSIGNED_PROJECT_ID = "__unassigned__"
UNASSIGNED_PROJECT_NAME = "Unassigned"

ReferenceDate = Optional[Union[str, datetime.date, datetime.datetime]]


class _PeriodData:
    """Rows loaded for one window"""

    def __init__(self, entries: List[TimeEntry], reports: List[Report],
                 tasks_completed: List[Task], overdue_tasks: int = 0):
        self.entries = entries
        self.reports = reports
        self.tasks_completed = tasks_completed
        self.overdue_tasks = overdue_tasks


class KPIService:
    """
    Generates KPI reports for one organization at a time.

    Safe to share: it keeps no state besides the engine and the clock.
    """

    def __init__(self, db: Optional[DatabaseEngine] = None,
                 clock: Callable[[], datetime.datetime] = datetime.datetime.now):
        self.db = db or get_engine()
        self.clock = clock

    async def generate_report(self, org_id: str, period: Union[str, Period] = Period.WEEKLY,
                              reference_date: ReferenceDate = None) -> KPIReport:
        """
        Build the complete KPI report for `org_id`.

        Args:
            org_id: Organization to report on
            period: daily, weekly, monthly or yearly
            reference_date: Any moment inside the wanted period (default: now)
        """
        period = parse_period(period)
        reference = parse_reference_date(reference_date) if reference_date is not None else self.clock()
        current = date_range(period, reference)
        previous = previous_range(period, current)
        generated_at = self.clock()

        try:
            async with self.db.transaction() as session:
                members = await MembershipRepository(session).list_members(org_id)
                projects = await ProjectRepository(session).get_map(org_id)
                current_data = await self._load_period(session, org_id, current, generated_at)
                previous_data = await self._load_period(session, org_id, previous, generated_at)
                tasks_by_id = await TaskRepository(session).get_by_ids(
                    e.task_id for e in current_data.entries
                )
        except StorageError as exc:
            logger.error(f"KPI report for org {org_id} ({period.value}) aborted: {exc}")
            raise PartialComputationImpossible(f"Could not load KPI data for organization {org_id}") from exc

        report = self._assemble(
            org_id, period, current, previous, generated_at,
            members, projects, tasks_by_id, current_data, previous_data,
        )
        logger.info(
            f"Generated {period.value} KPI report for org {org_id}: "
            f"{len(report.employees)} employees, {len(report.action_items)} action items"
        )
        return report

    async def generate_summary(self, org_id: str, period: Union[str, Period] = Period.WEEKLY,
                               reference_date: ReferenceDate = None) -> KPISummaryView:
        report = await self.generate_report(org_id, period, reference_date)
        return report.summary_view()

    async def generate_performance(self, org_id: str, period: Union[str, Period] = Period.WEEKLY,
                                   reference_date: ReferenceDate = None) -> KPIPerformanceView:
        report = await self.generate_report(org_id, period, reference_date)
        return report.performance_view()

    @staticmethod
    async def _load_period(session, org_id: str, window: DateRange,
                           generated_at: datetime.datetime) -> _PeriodData:
        tasks = TaskRepository(session)
        overdue_cutoff = min(generated_at, window.end)
        return _PeriodData(
            entries=await TimeEntryRepository(session).list_for_org(org_id, window.start, window.end),
            reports=await ReportRepository(session).list_in_range(org_id, window.start, window.end),
            tasks_completed=await tasks.list_completed(org_id, window.start, window.end),
            overdue_tasks=await tasks.count_overdue(org_id, window.start, overdue_cutoff),
        )

    def _assemble(self, org_id: str, period: Period, current: DateRange, previous: DateRange,
                  generated_at: datetime.datetime, members: List[tuple], projects: Dict[int, Project],
                  tasks_by_id: Dict[int, Task], data: _PeriodData, prev_data: _PeriodData) -> KPIReport:
        eligible = [(m, u) for m, u in members if m.role != MembershipRole.CLIENT]
        member_count = len(eligible)

        employees = build_employee_rollups(eligible, data, projects)
        performance = categorize_employee_performance(employees, current.days)

        metrics = calculate_metrics(data.entries, data.reports, data.tasks_completed, data.overdue_tasks)
        prev_metrics = calculate_metrics(prev_data.entries, prev_data.reports, prev_data.tasks_completed)

        rate = completion_rate(len(data.reports), member_count)
        prev_rate = completion_rate(len(prev_data.reports), member_count)

        project_rollups = build_project_rollups(data.entries, data.tasks_completed, tasks_by_id, projects)
        top_project = project_rollups[0] if project_rollups else None

        reporter_ids = {r.user_id for r in data.reports}
        missing_reporters = [
            EmployeeRef(id=u.id, name=u.display_name, email=u.email)
            for _, u in eligible if u.id not in reporter_ids
        ]

        return KPIReport(
            report_meta=ReportMeta(
                period=period.value,
                date_range=ReportDateRange(start=current.start.date(), end=current.end.date()),
                previous_date_range=ReportDateRange(start=previous.start.date(), end=previous.end.date()),
                generated_at=generated_at,
                org_id=org_id,
            ),
            summary=KPISummary(
                **metrics.model_dump(),
                completion_rate=rate,
                member_count=member_count,
                top_project=TopProject(name=top_project.name, hours=top_project.hours) if top_project else None,
            ),
            trends=Trends(
                hours=pct_change(prev_metrics.total_hours, metrics.total_hours),
                reports=pct_change(prev_metrics.total_reports, metrics.total_reports),
                tasks=pct_change(prev_metrics.total_tasks, metrics.total_tasks),
                active_employees=pct_change(prev_metrics.active_employees, metrics.active_employees),
                completion_rate=pct_change(prev_rate, rate),
            ),
            performance=performance,
            employees=employees,
            projects=project_rollups,
            action_items=generate_action_items(performance, metrics, current.days),
            missing_reporters=missing_reporters,
        )


def build_employee_rollups(members: List[tuple], data: _PeriodData,
                           projects: Dict[int, Project]) -> List[EmployeeRollup]:
    """One rollup per (membership, user) pair, sorted by hours then reports"""
    seconds: Dict[str, int] = defaultdict(int)
    days: Dict[str, Set[datetime.date]] = defaultdict(set)
    report_counts: Dict[str, int] = defaultdict(int)
    task_counts: Dict[str, int] = defaultdict(int)
    project_names: Dict[str, List[str]] = defaultdict(list)

    for entry in data.entries:
        days[entry.user_id].add(entry.begin.date())
        if entry.end is not None and entry.duration is not None:
            seconds[entry.user_id] += entry.duration

    for report in data.reports:
        report_counts[report.user_id] += 1

    for task in data.tasks_completed:
        if task.user_id is None:
            continue
        task_counts[task.user_id] += 1
        project = projects.get(task.project_id) if task.project_id is not None else None
        if project and project.name not in project_names[task.user_id]:
            project_names[task.user_id].append(project.name)

    rollups = []
    membership: Membership
    user: User
    for membership, user in members:
        hours = seconds[user.id] / 3600
        days_active = len(days[user.id])
        rollups.append(EmployeeRollup(
            id=user.id,
            name=user.display_name,
            email=user.email,
            role=membership.role,
            hours=round_half_up(hours, 2),
            reports=report_counts[user.id],
            tasks_completed=task_counts[user.id],
            projects=project_names[user.id],
            days_active=days_active,
            avg_hours_per_day=round_half_up(hours / days_active, 2) if days_active > 0 else 0,
            has_activity=hours > 0 or report_counts[user.id] > 0 or task_counts[user.id] > 0,
        ))

    rollups.sort(key=lambda e: (e.hours, e.reports), reverse=True)
    return rollups


def build_project_rollups(entries: List[TimeEntry], tasks_completed: List[Task],
                          tasks_by_id: Dict[int, Task], projects: Dict[int, Project]) -> List[ProjectRollup]:
    """Hours, completed tasks and contributors per project, busiest first"""
    buckets: Dict[str, dict] = {}

    def bucket_for(project_id: Optional[int]) -> dict:
        project = projects.get(project_id) if project_id is not None else None
        key = str(project.id) if project else UNASSIGNED_PROJECT_ID
        if key not in buckets:
            buckets[key] = {
                "id": key,
                "name": project.name if project else UNASSIGNED_PROJECT_NAME,
                "seconds": 0,
                "tasks_count": 0,
                "contributors": set(),
            }
        return buckets[key]

    for entry in entries:
        task = tasks_by_id.get(entry.task_id) if entry.task_id is not None else None
        bucket = bucket_for(task.project_id if task else None)
        if entry.end is not None and entry.duration is not None:
            bucket["seconds"] += entry.duration
        bucket["contributors"].add(entry.user_id)

    for task in tasks_completed:
        bucket = bucket_for(task.project_id)
        bucket["tasks_count"] += 1
        if task.user_id is not None:
            bucket["contributors"].add(task.user_id)

    rollups = [
        ProjectRollup(
            id=b["id"],
            name=b["name"],
            hours=round_half_up(b["seconds"] / 3600, 2),
            tasks_count=b["tasks_count"],
            contributors=len(b["contributors"]),
        )
        for b in buckets.values()
    ]
    rollups.sort(key=lambda p: p.hours, reverse=True)
    return rollups
