"""
Tests for period metrics, trends, employee classification and action items.
"""

import datetime

import pytest

from worktrack.domain.models import EmployeeRollup, MembershipRole, PeriodMetrics, Report, Task, TaskStatus, TimeEntry
from worktrack.services.performance import (
    calculate_metrics, categorize_employee_performance, completion_rate, generate_action_items, pct_change,
    round_half_up,
)


def emp(user_id, hours, tasks, reports, days_active=5):
    return EmployeeRollup(
        id=user_id,
        name=user_id.upper(),
        email=f"{user_id}@example.com",
        role=MembershipRole.STAFF,
        hours=hours,
        reports=reports,
        tasks_completed=tasks,
        days_active=days_active,
        avg_hours_per_day=round_half_up(hours / days_active, 2) if days_active else 0,
        has_activity=hours > 0 or reports > 0 or tasks > 0,
    )


def ids(employees):
    return [e.id for e in employees]


def test_no_employees_gives_empty_categories():
    categories = categorize_employee_performance([])
    assert categories.all_employees() == []


def test_busy_and_idle_pair():
    """40h/10 tasks against 5h/1 task"""
    categories = categorize_employee_performance([
        emp("x", 40, 10, 5),
        emp("y", 5, 1, 1),
    ])

    assert ids(categories.star_performers) == ["x"]
    assert ids(categories.underperformers) == ["y"]
    assert categories.overworked == []
    assert categories.coasters == []
    assert categories.star_performers[0].performance_score == pytest.approx(1.0)
    assert categories.underperformers[0].performance_score == pytest.approx(0.18)


def test_exactly_average_is_a_coaster():
    categories = categorize_employee_performance([
        emp("a", 30, 6, 4),
        emp("b", 20, 4, 3),
        emp("c", 10, 2, 2),
    ])

    assert ids(categories.star_performers) == ["a"]
    # b sits on the mean; c logs exactly half of it, which is not "under half"
    assert sorted(ids(categories.coasters)) == ["b", "c"]
    assert categories.underperformers == []


def test_reports_at_mean_block_star_without_top_quartile():
    categories = categorize_employee_performance([
        emp("t", 25, 7, 3),
        emp("a", 40, 2, 3),
        emp("b", 30, 2, 3),
        emp("c", 3, 8, 3),
        emp("d", 2, 6, 3),
    ])

    assert "t" not in ids(categories.star_performers)
    assert "t" in ids(categories.coasters)


def test_top_quartile_makes_a_star_even_with_average_reports():
    categories = categorize_employee_performance([
        emp("t", 25, 7, 3),
        emp("a", 40, 2, 3),
        emp("b", 20, 2, 3),
        emp("c", 10, 8, 3),
        emp("d", 5, 6, 3),
    ])

    assert "t" in ids(categories.star_performers)


def _overworked_team(days_active):
    return [
        emp("o", 50, 3, 1, days_active=days_active),
        emp("p", 10, 4, 3),
        emp("q", 10, 4, 3),
        emp("r", 10, 0, 3),
        emp("s", 10, 0, 3),
    ]


def test_long_hours_on_most_days_is_overworked():
    categories = categorize_employee_performance(_overworked_team(days_active=7), period_days=7)

    assert ids(categories.overworked) == ["o"]
    assert sorted(ids(categories.star_performers)) == ["p", "q"]
    assert sorted(ids(categories.coasters)) == ["r", "s"]
    assert categories.overworked[0].performance_score == pytest.approx(2.78)


def test_long_hours_on_few_days_is_not_overworked():
    categories = categorize_employee_performance(_overworked_team(days_active=5), period_days=7)

    assert categories.overworked == []
    assert "o" in ids(categories.coasters)


def test_classification_is_exhaustive_and_deterministic():
    team = [
        emp("a", 41.5, 9, 5, 6),
        emp("b", 0, 0, 0, 0),
        emp("c", 12.25, 3, 2, 3),
        emp("d", 38, 1, 0, 7),
        emp("e", 22, 4, 5, 5),
        emp("f", 7.5, 6, 1, 2),
    ]

    first = categorize_employee_performance(team)
    second = categorize_employee_performance(list(team))

    classified = ids(first.all_employees())
    assert sorted(classified) == sorted(ids(team))
    assert len(classified) == len(set(classified))
    assert first == second


def test_categories_sorted_by_score():
    categories = categorize_employee_performance([
        emp("a", 40, 10, 6),
        emp("b", 38, 9, 6),
        emp("c", 45, 12, 7),
        emp("d", 1, 0, 0),
        emp("e", 2, 0, 1),
    ])

    for members in (categories.star_performers, categories.underperformers):
        scores = [e.performance_score for e in members]
        assert scores == sorted(scores, reverse=True)


def test_no_activity_is_underperformer():
    categories = categorize_employee_performance([emp("a", 20, 4, 3), emp("z", 0, 0, 0, 0)])
    assert "z" in ids(categories.underperformers)
    assert not categories.underperformers[0].has_activity


@pytest.mark.parametrize("previous,current,expected", [
    (0, 0, 0),
    (0, 5, None),
    (10, 15, 50),
    (10, 5, -50),
    (3, 4, 33),
    (8, 9, 13),
])
def test_pct_change(previous, current, expected):
    assert pct_change(previous, current) == expected


def test_completion_rate():
    assert completion_rate(3, 4) == 75
    assert completion_rate(2, 3) == 67
    assert completion_rate(5, 0) == 0
    assert completion_rate(0, 0) == 0


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(1.005 * 100) == 100


def test_calculate_metrics():
    begin = datetime.datetime(2026, 1, 12, 9, 0)

    def entry(user_id, seconds, billable):
        end = begin + datetime.timedelta(seconds=seconds) if seconds is not None else None
        return TimeEntry(user_id=user_id, org_id="o", begin=begin, end=end, duration=seconds,
                         is_billable=billable)

    entries = [
        entry("u1", 3600, True),
        entry("u1", 1800, False),
        entry("u2", 7200, True),
        entry("u3", None, True),  # still running
    ]
    tasks = [
        Task(org_id="o", user_id="u1", title="A", status=TaskStatus.COMPLETED, completed_at=begin),
        Task(org_id="o", user_id="u2", title="B", status=TaskStatus.COMPLETED, completed_at=begin),
    ]
    reports = [Report(user_id="u1", org_id="o", created_at=begin)]

    metrics = calculate_metrics(entries, reports, tasks, overdue_tasks=2)

    assert metrics.total_hours == 3.5
    assert metrics.total_reports == 1
    assert metrics.total_tasks == 2
    assert metrics.active_employees == 3
    assert metrics.avg_hours_per_employee == 1.17
    assert metrics.avg_tasks_per_employee == 0.67
    assert metrics.avg_reports_per_employee == 0.33
    assert metrics.billable_hours == 3.0
    assert metrics.billable_ratio == 86
    assert metrics.overdue_tasks == 2


def test_calculate_metrics_empty_window():
    metrics = calculate_metrics([], [], [])
    assert metrics == PeriodMetrics()


def test_action_items_for_underperformers():
    categories = categorize_employee_performance([emp("x", 40, 10, 5), emp("y", 5, 1, 1)])
    metrics = PeriodMetrics(
        avg_hours_per_employee=22.5,
        avg_tasks_per_employee=5.5,
        avg_reports_per_employee=3,
    )

    items = generate_action_items(categories, metrics)

    assert len(items) == 1
    item = items[0]
    assert item.type == "underperformance"
    assert item.severity == "high"
    assert item.employee.id == "y"
    assert item.reasons == [
        "Logged 5.0h vs avg 22.5h",
        "Completed 1 tasks vs avg 6",
        "Submitted 1 reports vs avg 3",
    ]
    assert item.recommendation


def test_action_items_for_overworked():
    categories = categorize_employee_performance(_overworked_team(days_active=7), period_days=7)
    metrics = PeriodMetrics(avg_hours_per_employee=18.0, avg_tasks_per_employee=2.2, avg_reports_per_employee=2.6)

    items = generate_action_items(categories, metrics, period_days=7)

    assert [(i.type, i.severity, i.employee.id) for i in items] == [("burnout-risk", "medium", "o")]
    assert items[0].reasons == [
        "50.0h logged (178% above avg)",
        "Active 7 days (100% of period)",
    ]


def test_idle_member_action_item_mentions_no_activity():
    categories = categorize_employee_performance([emp("a", 20, 4, 3), emp("z", 0, 0, 0, 0)])
    metrics = PeriodMetrics(avg_hours_per_employee=20.0, avg_tasks_per_employee=4, avg_reports_per_employee=3)

    items = generate_action_items(categories, metrics)

    assert len(items) == 1
    assert "No recorded activity" in items[0].reasons


def test_zero_mean_does_not_make_anyone_above_average():
    categories = categorize_employee_performance([emp("a", 0, 0, 0, 0), emp("b", 0, 0, 0, 0)])

    assert categories.star_performers == []
    assert categories.overworked == []
    assert sorted(ids(categories.underperformers)) == ["a", "b"]
