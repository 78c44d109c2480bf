"""
Performance analysis helpers for the KPI report.

Pure functions over already-loaded rows: period metrics, percent trends, the
four-way employee classification and the action items derived from it.

Classification thresholds are fixed. Reports and emails already in
circulation were produced with exactly these values, so they are constants
rather than settings.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence

from worktrack.domain.models import (
    ActionItem, ClassifiedEmployee, EmployeeRollup, PerformanceCategories, PeriodMetrics, Report, Task, TimeEntry,
)

# "Above" and excessive-hours checks compare with >= and also need a value
# above zero; with a zero mean nobody counts as above it.
ABOVE_AVERAGE_FACTOR = 1.2
EXCESSIVE_HOURS_FACTOR = 1.6
LOW_ACTIVITY_FACTOR = 0.5
OVERWORKED_ACTIVE_DAYS_RATIO = 0.8
TOP_QUARTILE_INDEX = 0.25
STAR_MIN_TASKS = 2
STAR_WEIGHT_HOURS = 0.3
STAR_WEIGHT_TASKS = 0.4
STAR_WEIGHT_REPORTS = 0.3

UNDERPERFORMANCE_RECOMMENDATION = "Schedule performance review and discuss support needs"
BURNOUT_RECOMMENDATION = "Consider workload redistribution or additional support"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values, like Math.round"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def pct_change(previous: float, current: float) -> Optional[int]:
    """
    Percent change from previous to current.

    Both zero means no change (0). A zero previous value with a non-zero
    current one has no baseline and yields None.
    """
    if previous == 0 and current == 0:
        return 0
    if previous == 0:
        return None
    return round_int((current - previous) / previous * 100)


def completion_rate(report_count: int, eligible_members: int) -> int:
    """Reports submitted per eligible (non-client) member, as a percentage"""
    if eligible_members <= 0:
        return 0
    return round_int(report_count / eligible_members * 100)


def hours_of(entries: Iterable[TimeEntry]) -> float:
    """Hours of closed entries; running entries have no duration yet"""
    return sum(e.duration for e in entries if e.end is not None and e.duration is not None) / 3600


def calculate_metrics(entries: Sequence[TimeEntry], reports: Sequence[Report],
                      tasks_completed: Sequence[Task], overdue_tasks: int = 0) -> PeriodMetrics:
    """Organization-wide metrics for one window"""
    total_hours = hours_of(entries)
    billable_hours = hours_of(e for e in entries if e.is_billable)
    total_reports = len(reports)
    total_tasks = len(tasks_completed)
    active_employees = len({e.user_id for e in entries})

    def per_employee(total: float) -> float:
        return round_half_up(total / active_employees, 2) if active_employees > 0 else 0

    return PeriodMetrics(
        total_hours=round_half_up(total_hours, 2),
        total_reports=total_reports,
        total_tasks=total_tasks,
        active_employees=active_employees,
        avg_hours_per_employee=per_employee(total_hours),
        avg_tasks_per_employee=per_employee(total_tasks),
        avg_reports_per_employee=per_employee(total_reports),
        billable_hours=round_half_up(billable_hours, 2),
        billable_ratio=round_int(billable_hours / total_hours * 100) if total_hours > 0 else 0,
        overdue_tasks=overdue_tasks,
    )


def _top_quartile(values: List[float]) -> float:
    ordered = sorted(values, reverse=True)
    return ordered[math.floor(len(ordered) * TOP_QUARTILE_INDEX)]


def _above(value: float, mean: float) -> bool:
    return value > 0 and value >= mean * ABOVE_AVERAGE_FACTOR


def _ratio(value: float, base: float) -> float:
    return value / base if base else float(value)


def categorize_employee_performance(employees: Sequence[EmployeeRollup],
                                    period_days: int = 7) -> PerformanceCategories:
    """
    Put every employee into exactly one of four categories.

    Evaluated in priority order, first match wins:
    star performer, overworked, underperformer, coaster.
    """
    categories = PerformanceCategories()
    if not employees:
        return categories

    count = len(employees)
    avg_hours = sum(e.hours for e in employees) / count
    avg_tasks = sum(e.tasks_completed for e in employees) / count
    avg_reports = sum(e.reports for e in employees) / count

    p75_hours = _top_quartile([e.hours for e in employees])
    p75_tasks = _top_quartile([e.tasks_completed for e in employees])
    p75_reports = _top_quartile([e.reports for e in employees])

    buckets: Dict[str, List[ClassifiedEmployee]] = {
        "star_performers": categories.star_performers,
        "overworked": categories.overworked,
        "underperformers": categories.underperformers,
        "coasters": categories.coasters,
    }

    for emp in employees:
        hours_above_avg = _above(emp.hours, avg_hours)
        task_above_avg = _above(emp.tasks_completed, avg_tasks)
        report_above_avg = _above(emp.reports, avg_reports)
        low_activity = emp.hours < avg_hours * LOW_ACTIVITY_FACTOR or not emp.has_activity
        excessive_hours = emp.hours > 0 and emp.hours >= avg_hours * EXCESSIVE_HOURS_FACTOR
        active_ratio = emp.days_active / period_days if period_days > 0 else 0

        if (hours_above_avg and task_above_avg and report_above_avg) or (
                emp.hours >= p75_hours and emp.tasks_completed >= max(p75_tasks, STAR_MIN_TASKS)):
            category = "star_performers"
            score = (
                _ratio(emp.hours, p75_hours) * STAR_WEIGHT_HOURS
                + emp.tasks_completed / max(p75_tasks, 1) * STAR_WEIGHT_TASKS
                + emp.reports / max(p75_reports, 1) * STAR_WEIGHT_REPORTS
            )
        elif excessive_hours and task_above_avg and active_ratio > OVERWORKED_ACTIVE_DAYS_RATIO:
            category = "overworked"
            score = _ratio(emp.hours, avg_hours)
        elif low_activity:
            category = "underperformers"
            score = min(
                _ratio(emp.hours, avg_hours),
                emp.tasks_completed / max(avg_tasks, 1),
                emp.reports / max(avg_reports, 1),
            )
        else:
            category = "coasters"
            score = min(
                _ratio(emp.hours, avg_hours),
                emp.tasks_completed / max(avg_tasks, 1),
            )

        buckets[category].append(ClassifiedEmployee(
            **emp.model_dump(),
            performance_score=round_half_up(score, 2),
        ))

    for members in buckets.values():
        members.sort(key=lambda e: e.performance_score, reverse=True)

    return categories


def generate_action_items(performance: PerformanceCategories, metrics: PeriodMetrics,
                          period_days: int = 7) -> List[ActionItem]:
    """High severity items for underperformers, medium for overworked employees"""
    items: List[ActionItem] = []

    for emp in performance.underperformers:
        reasons = []
        if emp.hours < metrics.avg_hours_per_employee * LOW_ACTIVITY_FACTOR:
            reasons.append(f"Logged {emp.hours}h vs avg {metrics.avg_hours_per_employee}h")
        if emp.tasks_completed < metrics.avg_tasks_per_employee * LOW_ACTIVITY_FACTOR:
            reasons.append(
                f"Completed {emp.tasks_completed} tasks vs avg {round_int(metrics.avg_tasks_per_employee)}"
            )
        if metrics.avg_reports_per_employee > 0 and \
                emp.reports < metrics.avg_reports_per_employee * LOW_ACTIVITY_FACTOR:
            reasons.append(
                f"Submitted {emp.reports} reports vs avg {round_int(metrics.avg_reports_per_employee)}"
            )
        if not emp.has_activity:
            reasons.append("No recorded activity")
        if not reasons:
            reasons.append(f"Logged {emp.hours}h, under half of the team average")

        items.append(ActionItem(
            type="underperformance",
            severity="high",
            employee=emp.ref(),
            reasons=reasons,
            recommendation=UNDERPERFORMANCE_RECOMMENDATION,
        ))

    for emp in performance.overworked:
        above = round_int((_ratio(emp.hours, metrics.avg_hours_per_employee) - 1) * 100)
        share = round_int(emp.days_active / period_days * 100) if period_days > 0 else 0
        items.append(ActionItem(
            type="burnout-risk",
            severity="medium",
            employee=emp.ref(),
            reasons=[
                f"{emp.hours}h logged ({above}% above avg)",
                f"Active {emp.days_active} days ({share}% of period)",
            ],
            recommendation=BURNOUT_RECOMMENDATION,
        ))

    return items
