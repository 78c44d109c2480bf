"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic validates data coming out of the database and into the services,
and gives the KPI report a stable JSON shape for whoever renders or mails it.
"""

from datetime import datetime, date
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Organization(BaseModel):
    """Tenant boundary. Every query is scoped by organization id."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]


class Membership(BaseModel):
    """Binds a user to an organization with a role."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: str
    org_id: str
    role: MembershipRole = MembershipRole.STAFF


class Project(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    org_id: str
    name: str = Field(..., min_length=1, max_length=100)


class Task(BaseModel):
    """
    A macro task. Completed tasks count toward the assignee's KPIs,
    not toward whoever logged time against them.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    org_id: str
    user_id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    project_id: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.now)


class TimeEntry(BaseModel):
    """
    A single tracked span of time.

    The entry is active while `end` is None. `duration` stays None until the
    entry is stopped and is never recomputed afterwards.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: str
    org_id: str
    task_id: Optional[int] = None
    category: str = "work"
    begin: datetime
    end: Optional[datetime] = None
    duration: Optional[int] = None  # seconds
    is_billable: bool = False
    description: Optional[str] = None
    timezone: str = "UTC"

    @property
    def is_active(self) -> bool:
        return self.end is None


class TimeEntryPatch(BaseModel):
    """
    Partial update for an entry. Only description and category may change;
    begin, end and duration are owned by the timer lifecycle.
    """
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)


class Report(BaseModel):
    """An "I did X" submission, used only as an engagement signal."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: str
    org_id: str
    body: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class TimerStats(BaseModel):
    active_count: int
    today_total_seconds: int
    week_total_seconds: int
    today_formatted: str
    week_formatted: str


# KPI report structures. Computed on every generation, never persisted.

class DateRange(BaseModel):
    start: datetime
    end: datetime

    @property
    def days(self) -> int:
        """Number of calendar days covered by the range."""
        return (self.end.date() - self.start.date()).days + 1

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= moment <= self.end


class ReportDateRange(BaseModel):
    start: date
    end: date


class EmployeeRef(BaseModel):
    id: str
    name: str
    email: str


class EmployeeRollup(BaseModel):
    """Per-employee aggregate for one organization and period."""
    id: str
    name: str
    email: str
    role: MembershipRole
    hours: float = 0.0
    reports: int = 0
    tasks_completed: int = 0
    projects: List[str] = Field(default_factory=list)
    days_active: int = 0
    avg_hours_per_day: float = 0.0
    has_activity: bool = False

    def ref(self) -> EmployeeRef:
        return EmployeeRef(id=self.id, name=self.name, email=self.email)


class ClassifiedEmployee(EmployeeRollup):
    performance_score: float = 0.0


class PerformanceCategories(BaseModel):
    star_performers: List[ClassifiedEmployee] = Field(default_factory=list)
    overworked: List[ClassifiedEmployee] = Field(default_factory=list)
    coasters: List[ClassifiedEmployee] = Field(default_factory=list)
    underperformers: List[ClassifiedEmployee] = Field(default_factory=list)

    def all_employees(self) -> List[ClassifiedEmployee]:
        return self.star_performers + self.overworked + self.coasters + self.underperformers


class PeriodMetrics(BaseModel):
    total_hours: float = 0.0
    total_reports: int = 0
    total_tasks: int = 0
    active_employees: int = 0
    avg_hours_per_employee: float = 0.0
    avg_tasks_per_employee: float = 0.0
    avg_reports_per_employee: float = 0.0
    billable_hours: float = 0.0
    billable_ratio: int = 0
    overdue_tasks: int = 0


class TopProject(BaseModel):
    name: str
    hours: float


class KPISummary(PeriodMetrics):
    completion_rate: int = 0
    member_count: int = 0
    top_project: Optional[TopProject] = None


class Trends(BaseModel):
    """Percent change per headline metric. None means there is no baseline."""
    hours: Optional[int] = 0
    reports: Optional[int] = 0
    tasks: Optional[int] = 0
    active_employees: Optional[int] = 0
    completion_rate: Optional[int] = 0


class ProjectRollup(BaseModel):
    id: str
    name: str
    hours: float = 0.0
    tasks_count: int = 0
    contributors: int = 0


class ActionItem(BaseModel):
    type: str
    severity: str
    employee: EmployeeRef
    reasons: List[str]
    recommendation: str


class ReportMeta(BaseModel):
    period: str
    date_range: ReportDateRange
    previous_date_range: ReportDateRange
    generated_at: datetime
    org_id: str


class KPISummaryView(BaseModel):
    report_meta: ReportMeta
    summary: KPISummary
    trends: Trends
    top_performers: List[ClassifiedEmployee]
    underperformers: List[ClassifiedEmployee]
    action_item_count: int


class KPIPerformanceView(BaseModel):
    report_meta: ReportMeta
    performance: PerformanceCategories
    action_items: List[ActionItem]
    summary: KPISummary


class KPIReport(BaseModel):
    report_meta: ReportMeta
    summary: KPISummary
    trends: Trends
    performance: PerformanceCategories
    employees: List[EmployeeRollup]
    projects: List[ProjectRollup]
    action_items: List[ActionItem]
    missing_reporters: List[EmployeeRef]

    def summary_view(self, top: int = 5) -> KPISummaryView:
        """Lighter projection of the report; no extra queries needed."""
        return KPISummaryView(
            report_meta=self.report_meta,
            summary=self.summary,
            trends=self.trends,
            top_performers=self.performance.star_performers[:top],
            underperformers=self.performance.underperformers,
            action_item_count=len(self.action_items),
        )

    def performance_view(self) -> KPIPerformanceView:
        return KPIPerformanceView(
            report_meta=self.report_meta,
            performance=self.performance,
            action_items=self.action_items,
            summary=self.summary,
        )
