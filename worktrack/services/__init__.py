"""Services layer - Business logic"""

from .timer_service import TimerService
from .kpi_service import KPIService
from .report_scheduler import ReportScheduler

__all__ = ["TimerService", "KPIService", "ReportScheduler"]
