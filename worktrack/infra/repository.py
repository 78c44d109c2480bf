"""
Repository Pattern Implementation.

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Mock data for testing
- Keep every query scoped by organization

Repositories never commit. They work on the session handed to them by
`DatabaseEngine.transaction()`, so the caller decides what is atomic.
"""

from datetime import datetime
from typing import List, Optional, Dict, Iterable, Tuple

from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from worktrack.domain.models import (
    Membership, MembershipRole, Organization, Project, Report, Task, TaskStatus, TimeEntry, User,
)
from worktrack.infra.db import (
    MembershipModel, OrganizationModel, ProjectModel, ReportModel, TaskModel, TimeEntryModel, UserModel,
)


class _Repository:
    def __init__(self, session: AsyncSession):
        self.session = session


class OrganizationRepository(_Repository):

    async def list_all(self) -> List[Organization]:
        result = await self.session.execute(select(OrganizationModel).order_by(OrganizationModel.id))
        return [Organization.model_validate(m) for m in result.scalars().all()]

    async def create(self, org: Organization) -> Organization:
        self.session.add(OrganizationModel(id=org.id, name=org.name))
        await self.session.flush()
        return org


class UserRepository(_Repository):

    async def create(self, user: User) -> User:
        self.session.add(UserModel(id=user.id, email=user.email, name=user.name))
        await self.session.flush()
        return user

    async def lock(self, user_id: str) -> None:
        """Row-lock the user until the transaction ends (no-op on SQLite)"""
        await self.session.execute(
            select(UserModel.id).where(UserModel.id == user_id).with_for_update()
        )


class MembershipRepository(_Repository):

    async def create(self, membership: Membership) -> Membership:
        model = MembershipModel(
            user_id=membership.user_id,
            org_id=membership.org_id,
            role=membership.role.value
        )
        self.session.add(model)
        await self.session.flush()
        return Membership.model_validate(model)

    async def list_members(self, org_id: str) -> List[Tuple[Membership, User]]:
        """All memberships of an organization together with their users"""
        result = await self.session.execute(
            select(MembershipModel, UserModel)
            .join(UserModel, UserModel.id == MembershipModel.user_id)
            .where(MembershipModel.org_id == org_id)
            .order_by(MembershipModel.id)
        )
        return [(Membership.model_validate(m), User.model_validate(u)) for m, u in result.all()]

    async def list_owners(self, org_id: str) -> List[User]:
        members = await self.list_members(org_id)
        return [user for membership, user in members if membership.role == MembershipRole.OWNER]


class ProjectRepository(_Repository):

    async def create(self, project: Project) -> Project:
        model = ProjectModel(org_id=project.org_id, name=project.name)
        self.session.add(model)
        await self.session.flush()
        return Project.model_validate(model)

    async def get_map(self, org_id: str) -> Dict[int, Project]:
        result = await self.session.execute(select(ProjectModel).where(ProjectModel.org_id == org_id))
        return {m.id: Project.model_validate(m) for m in result.scalars().all()}


class TaskRepository(_Repository):
    """
    Handles all Task-related database operations.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    """

    async def create(self, task: Task) -> Task:
        """Create a new task"""
        model = TaskModel(
            org_id=task.org_id,
            user_id=task.user_id,
            title=task.title,
            status=task.status.value,
            due_date=task.due_date,
            completed_at=task.completed_at,
            project_id=task.project_id,
            created_at=task.created_at
        )
        self.session.add(model)
        await self.session.flush()
        return Task.model_validate(model)

    async def get_by_ids(self, task_ids: Iterable[int]) -> Dict[int, Task]:
        ids = {task_id for task_id in task_ids if task_id is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(TaskModel).where(TaskModel.id.in_(ids)))
        return {m.id: Task.model_validate(m) for m in result.scalars().all()}

    async def list_completed(self, org_id: str, start: datetime, end: datetime) -> List[Task]:
        """Tasks completed inside [start, end]"""
        result = await self.session.execute(
            select(TaskModel).where(
                and_(
                    TaskModel.org_id == org_id,
                    TaskModel.status == TaskStatus.COMPLETED.value,
                    TaskModel.completed_at >= start,
                    TaskModel.completed_at <= end
                )
            )
        )
        return [Task.model_validate(m) for m in result.scalars().all()]

    async def count_overdue(self, org_id: str, start: datetime, cutoff: datetime) -> int:
        """Open tasks whose due date falls in [start, cutoff)"""
        result = await self.session.execute(
            select(func.count(TaskModel.id)).where(
                and_(
                    TaskModel.org_id == org_id,
                    TaskModel.status != TaskStatus.COMPLETED.value,
                    TaskModel.due_date >= start,
                    TaskModel.due_date < cutoff
                )
            )
        )
        return result.scalar_one()


class ReportRepository(_Repository):

    async def create(self, report: Report) -> Report:
        model = ReportModel(
            user_id=report.user_id,
            org_id=report.org_id,
            body=report.body,
            created_at=report.created_at
        )
        self.session.add(model)
        await self.session.flush()
        return Report.model_validate(model)

    async def list_in_range(self, org_id: str, start: datetime, end: datetime) -> List[Report]:
        result = await self.session.execute(
            select(ReportModel).where(
                and_(
                    ReportModel.org_id == org_id,
                    ReportModel.created_at >= start,
                    ReportModel.created_at <= end
                )
            )
        )
        return [Report.model_validate(m) for m in result.scalars().all()]


class TimeEntryRepository(_Repository):
    """
    Handles all TimeEntry-related database operations.
    """

    @staticmethod
    def _scope(user_id: str, org_id: Optional[str]):
        clauses = [TimeEntryModel.user_id == user_id]
        if org_id:
            clauses.append(TimeEntryModel.org_id == org_id)
        return clauses

    async def create(self, entry: TimeEntry) -> TimeEntry:
        """Create a new time entry"""
        model = TimeEntryModel(
            user_id=entry.user_id,
            org_id=entry.org_id,
            task_id=entry.task_id,
            category=entry.category,
            begin=entry.begin,
            end=entry.end,
            duration=entry.duration,
            is_billable=entry.is_billable,
            description=entry.description,
            timezone=entry.timezone
        )
        self.session.add(model)
        await self.session.flush()
        return TimeEntry.model_validate(model)

    async def get_owned(self, entry_id: int, user_id: str) -> Optional[TimeEntry]:
        """Get an entry only if it belongs to the user"""
        result = await self.session.execute(
            select(TimeEntryModel).where(
                and_(TimeEntryModel.id == entry_id, TimeEntryModel.user_id == user_id)
            )
        )
        model = result.scalar_one_or_none()
        return TimeEntry.model_validate(model) if model else None

    async def list_active(self, user_id: str, org_id: Optional[str] = None,
                          for_update: bool = False) -> List[TimeEntry]:
        """Get the user's entries with no end time, most recent first"""
        stmt = (
            select(TimeEntryModel)
            .where(and_(*self._scope(user_id, org_id), TimeEntryModel.end.is_(None)))
            .order_by(TimeEntryModel.begin.desc(), TimeEntryModel.id.desc())
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def close(self, entry_id: int, user_id: str, end: datetime, duration: int) -> bool:
        """
        Set end and duration on an active entry.

        Guarded by ownership and `end IS NULL`; returns False when no row matched.
        """
        result = await self.session.execute(
            update(TimeEntryModel)
            .where(
                and_(
                    TimeEntryModel.id == entry_id,
                    TimeEntryModel.user_id == user_id,
                    TimeEntryModel.end.is_(None)
                )
            )
            .values(end=end, duration=duration)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_details(self, entry_id: int, values: Dict[str, object]) -> TimeEntry:
        """Apply a description/category update and return the fresh row"""
        await self.session.execute(
            update(TimeEntryModel)
            .where(TimeEntryModel.id == entry_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(TimeEntryModel)
            .where(TimeEntryModel.id == entry_id)
            .execution_options(populate_existing=True)
        )
        return TimeEntry.model_validate(result.scalar_one())

    async def get_by_id(self, entry_id: int) -> Optional[TimeEntry]:
        result = await self.session.execute(
            select(TimeEntryModel)
            .where(TimeEntryModel.id == entry_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return TimeEntry.model_validate(model) if model else None

    async def delete(self, entry_id: int) -> None:
        """Delete a time entry by ID"""
        await self.session.execute(delete(TimeEntryModel).where(TimeEntryModel.id == entry_id))

    async def list_recent(self, user_id: str, org_id: Optional[str] = None, limit: int = 10) -> List[TimeEntry]:
        result = await self.session.execute(
            select(TimeEntryModel)
            .where(and_(*self._scope(user_id, org_id)))
            .order_by(TimeEntryModel.begin.desc(), TimeEntryModel.id.desc())
            .limit(limit)
        )
        return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def count_active(self, user_id: str, org_id: Optional[str] = None) -> int:
        result = await self.session.execute(
            select(func.count(TimeEntryModel.id))
            .where(and_(*self._scope(user_id, org_id), TimeEntryModel.end.is_(None)))
        )
        return result.scalar_one()

    async def sum_closed_duration(self, user_id: str, org_id: Optional[str],
                                  start: datetime, end: Optional[datetime] = None) -> int:
        """Total seconds of closed entries that began in [start, end)"""
        clauses = [
            *self._scope(user_id, org_id),
            TimeEntryModel.end.is_not(None),
            TimeEntryModel.begin >= start,
        ]
        if end is not None:
            clauses.append(TimeEntryModel.begin < end)
        result = await self.session.execute(
            select(func.coalesce(func.sum(TimeEntryModel.duration), 0)).where(and_(*clauses))
        )
        return int(result.scalar_one())

    async def list_for_org(self, org_id: str, start: datetime, end: datetime) -> List[TimeEntry]:
        """All entries of an organization that began inside [start, end]"""
        result = await self.session.execute(
            select(TimeEntryModel).where(
                and_(
                    TimeEntryModel.org_id == org_id,
                    TimeEntryModel.begin >= start,
                    TimeEntryModel.begin <= end
                )
            )
        )
        return [TimeEntry.model_validate(m) for m in result.scalars().all()]
