"""
Pytest configuration and fixtures.
"""

import datetime
import sys
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from worktrack.domain.models import (
    Membership, MembershipRole, Organization, Project, Report, Task, TaskStatus, TimeEntry, User,
)
from worktrack.infra.db import DatabaseEngine
from worktrack.infra.repository import (
    MembershipRepository, OrganizationRepository, ProjectRepository, ReportRepository, TaskRepository,
    TimeEntryRepository, UserRepository,
)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime.datetime):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> datetime.datetime:
        self.now += datetime.timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime.datetime) -> datetime.datetime:
        self.now = moment
        return self.now


class DataFactory:
    """Writes fixture rows, one committed transaction per call"""

    def __init__(self, db: DatabaseEngine):
        self.db = db

    async def org(self, org_id: str = "org_1", name: str = "Acme") -> Organization:
        async with self.db.transaction() as session:
            return await OrganizationRepository(session).create(Organization(id=org_id, name=name))

    async def member(self, org_id: str, user_id: str, role: MembershipRole = MembershipRole.STAFF,
                     name: Optional[str] = None, email: Optional[str] = None) -> User:
        user = User(id=user_id, email=email or f"{user_id}@example.com", name=name)
        async with self.db.transaction() as session:
            await UserRepository(session).create(user)
            await MembershipRepository(session).create(Membership(user_id=user_id, org_id=org_id, role=role))
        return user

    async def project(self, org_id: str, name: str) -> Project:
        async with self.db.transaction() as session:
            return await ProjectRepository(session).create(Project(org_id=org_id, name=name))

    async def task(self, org_id: str, user_id: Optional[str], title: str = "Task",
                   completed_at: Optional[datetime.datetime] = None,
                   project_id: Optional[int] = None,
                   due_date: Optional[datetime.datetime] = None) -> Task:
        async with self.db.transaction() as session:
            return await TaskRepository(session).create(Task(
                org_id=org_id,
                user_id=user_id,
                title=title,
                status=TaskStatus.COMPLETED if completed_at else TaskStatus.IN_PROGRESS,
                completed_at=completed_at,
                project_id=project_id,
                due_date=due_date,
            ))

    async def completed_tasks(self, org_id: str, user_id: str, count: int,
                              completed_at: datetime.datetime, project_id: Optional[int] = None):
        for i in range(count):
            await self.task(org_id, user_id, f"Task {i}", completed_at=completed_at, project_id=project_id)

    async def entry(self, org_id: str, user_id: str, begin: datetime.datetime,
                    hours: Optional[float] = None, task_id: Optional[int] = None,
                    is_billable: bool = False) -> TimeEntry:
        """Closed entry of `hours`, or an active one when hours is None"""
        duration = int(hours * 3600) if hours is not None else None
        async with self.db.transaction() as session:
            return await TimeEntryRepository(session).create(TimeEntry(
                user_id=user_id,
                org_id=org_id,
                task_id=task_id,
                begin=begin,
                end=begin + datetime.timedelta(seconds=duration) if duration is not None else None,
                duration=duration,
                is_billable=is_billable,
            ))

    async def report(self, org_id: str, user_id: str, created_at: datetime.datetime) -> Report:
        async with self.db.transaction() as session:
            return await ReportRepository(session).create(
                Report(user_id=user_id, org_id=org_id, created_at=created_at)
            )


@pytest_asyncio.fixture
async def db(tmp_path):
    """A fresh SQLite database file per test"""
    engine = DatabaseEngine(f"sqlite+aiosqlite:///{tmp_path / 'worktrack.db'}")
    await engine.create_tables()
    yield engine
    await engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime.datetime(2026, 1, 14, 9, 0, 0))


@pytest.fixture
def factory(db):
    return DataFactory(db)
