"""Infrastructure layer - Database and persistence"""

from .db import DatabaseEngine, get_engine, init_db
from .models import Base, TimeEntryModel, TaskModel

__all__ = ["DatabaseEngine", "get_engine", "init_db", "Base", "TimeEntryModel", "TaskModel"]
