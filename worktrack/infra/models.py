"""
SQLAlchemy ORM models.
Separated from db.py for cleaner imports.
"""

from .db import (
    Base,
    MembershipModel,
    OrganizationModel,
    ProjectModel,
    ReportModel,
    TaskModel,
    TimeEntryModel,
    UserModel,
)

__all__ = [
    "Base", "MembershipModel", "OrganizationModel", "ProjectModel",
    "ReportModel", "TaskModel", "TimeEntryModel", "UserModel",
]
