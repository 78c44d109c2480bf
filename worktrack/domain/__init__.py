"""Domain layer - Pure business entities and logic"""

from .errors import (
    AlreadyStopped,
    NotFound,
    PartialComputationImpossible,
    StorageError,
    ValidationError,
    WorkTrackError,
)
from .models import (
    KPIReport,
    Membership,
    MembershipRole,
    Organization,
    Report,
    Task,
    TaskStatus,
    TimeEntry,
    TimeEntryPatch,
    TimerStats,
    User,
)
from .periods import Period, date_range, previous_range

__all__ = [
    "AlreadyStopped", "NotFound", "PartialComputationImpossible", "StorageError",
    "ValidationError", "WorkTrackError",
    "KPIReport", "Membership", "MembershipRole", "Organization", "Report", "Task",
    "TaskStatus", "TimeEntry", "TimeEntryPatch", "TimerStats", "User",
    "Period", "date_range", "previous_range",
]
