"""
Timer Service - Core time tracking logic.

Architecture Decision: Stateless service over the store
Nothing about running timers is kept in memory. Every call re-reads the
database, and the only invariant the service enforces, one active entry per
user, is protected three ways: the per-user asyncio lock shared through the
engine, a write transaction (`BEGIN IMMEDIATE` on SQLite) and a row lock on
the user (`SELECT ... FOR UPDATE` elsewhere).
"""

import datetime
import logging
import math
from typing import Callable, List, Mapping, Optional, Union

import pydantic

from worktrack.domain.errors import AlreadyStopped, NotFound, ValidationError
from worktrack.domain.models import TimeEntry, TimeEntryPatch, TimerStats
from worktrack.domain.periods import start_of_day, start_of_week_sunday
from worktrack.infra.db import DatabaseEngine, get_engine
from worktrack.infra.locks import UserLocks
from worktrack.infra.repository import TimeEntryRepository, UserRepository

logger = logging.getLogger(__name__)

MAX_CATEGORY_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 500


def format_duration(seconds: int) -> str:
    """H:MM:SS when there are hours, otherwise M:SS"""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def elapsed_seconds(begin: datetime.datetime, end: datetime.datetime) -> int:
    """Whole seconds between begin and end, floored and never negative"""
    return max(0, math.floor((end - begin).total_seconds()))


class TimerService:
    """
    Start, stop, restart and inspect time entries.

    The service can be shared across requests: it holds the engine, a clock
    and the per-user lock table, none of which describe timer state.
    """

    def __init__(self, db: Optional[DatabaseEngine] = None,
                 clock: Callable[[], datetime.datetime] = datetime.datetime.now,
                 locks: Optional[UserLocks] = None):
        self.db = db or get_engine()
        self.clock = clock
        self.locks = locks or self.db.user_locks

    # ------------------------------------------------------------------ reads

    async def list_active(self, user_id: str, org_id: Optional[str] = None) -> List[TimeEntry]:
        """All entries of the user with no end timestamp, most recent first"""
        async with self.db.transaction() as session:
            return await TimeEntryRepository(session).list_active(user_id, org_id)

    async def get_active_timer(self, user_id: str, org_id: Optional[str] = None) -> Optional[TimeEntry]:
        active = await self.list_active(user_id, org_id)
        return active[0] if active else None

    async def recent_entries(self, user_id: str, org_id: Optional[str] = None,
                             limit: int = 10) -> List[TimeEntry]:
        async with self.db.transaction() as session:
            return await TimeEntryRepository(session).list_recent(user_id, org_id, limit)

    async def statistics(self, user_id: str, org_id: Optional[str] = None) -> TimerStats:
        """
        Active count plus completed totals for today and this week.

        Today is midnight to midnight of the service clock; the week starts on
        the most recent Sunday at 00:00. Active entries do not count toward the
        totals because their duration is not fixed yet.
        """
        now = self.clock()
        today = start_of_day(now)
        week_start = start_of_week_sunday(now)

        async with self.db.transaction() as session:
            repo = TimeEntryRepository(session)
            active_count = await repo.count_active(user_id, org_id)
            today_total = await repo.sum_closed_duration(
                user_id, org_id, today, today + datetime.timedelta(days=1)
            )
            week_total = await repo.sum_closed_duration(user_id, org_id, week_start)

        return TimerStats(
            active_count=active_count,
            today_total_seconds=today_total,
            week_total_seconds=week_total,
            today_formatted=format_duration(today_total),
            week_formatted=format_duration(week_total),
        )

    get_timer_stats = statistics

    # -------------------------------------------------------------- mutations

    async def start(self, user_id: str, org_id: str, *,
                    task_id: Optional[int] = None,
                    description: Optional[str] = None,
                    category: str = "work",
                    timezone: str = "UTC",
                    is_billable: bool = False) -> TimeEntry:
        """
        Start a new timer for the user.

        Every active entry of the user in the organization is closed at `now`
        and the new entry begins at the same `now`, all in one transaction.
        """
        _validate_category(category)
        _validate_description(description)

        async with self.locks.for_user(user_id):
            async with self.db.transaction(immediate=True) as session:
                await UserRepository(session).lock(user_id)
                repo = TimeEntryRepository(session)
                now = self.clock()
                stopped = await self._close_active(repo, user_id, org_id, now)
                entry = await repo.create(TimeEntry(
                    user_id=user_id,
                    org_id=org_id,
                    task_id=task_id,
                    description=description,
                    category=category,
                    timezone=timezone,
                    is_billable=is_billable,
                    begin=now,
                ))

        logger.info(f"Started timer {entry.id} for user {user_id} (task={task_id}, closed {stopped} active)")
        return entry

    start_timer = start

    async def stop(self, entry_id: int, user_id: str) -> TimeEntry:
        """
        Stop one active entry owned by the user.

        Raises NotFound when the entry does not exist or belongs to someone
        else, AlreadyStopped when it is owned but already closed.
        """
        async with self.locks.for_user(user_id):
            async with self.db.transaction() as session:
                repo = TimeEntryRepository(session)
                entry = await repo.get_owned(entry_id, user_id)
                if entry is None:
                    raise NotFound(f"Timer {entry_id} not found")
                if not entry.is_active:
                    raise AlreadyStopped(f"Timer {entry_id} is already stopped")

                now = self.clock()
                duration = elapsed_seconds(entry.begin, now)
                if not await repo.close(entry_id, user_id, now, duration):
                    raise AlreadyStopped(f"Timer {entry_id} is already stopped")
                stopped = await repo.get_by_id(entry_id)

        logger.info(f"Stopped timer {entry_id} for user {user_id} after {duration}s")
        return stopped

    async def stop_timer(self, user_id: str, org_id: Optional[str] = None) -> TimeEntry:
        """Stop the caller's running timer; NotFound if nothing is running"""
        async with self.locks.for_user(user_id):
            async with self.db.transaction(immediate=True) as session:
                await UserRepository(session).lock(user_id)
                repo = TimeEntryRepository(session)
                active = await repo.list_active(user_id, org_id, for_update=True)
                if not active:
                    raise NotFound("No active timer found")
                now = self.clock()
                for entry in active:
                    await repo.close(entry.id, user_id, now, elapsed_seconds(entry.begin, now))
                stopped = await repo.get_by_id(active[0].id)

        logger.info(f"Stopped active timer {stopped.id} for user {user_id}")
        return stopped

    async def stop_all_active(self, user_id: str, org_id: Optional[str] = None) -> int:
        """Close every active entry of the user. Returns how many were closed."""
        async with self.locks.for_user(user_id):
            async with self.db.transaction(immediate=True) as session:
                await UserRepository(session).lock(user_id)
                count = await self._close_active(TimeEntryRepository(session), user_id, org_id, self.clock())

        if count:
            logger.info(f"Stopped {count} active timer(s) for user {user_id}")
        return count

    async def restart(self, entry_id: int, user_id: str, org_id: str) -> TimeEntry:
        """Start a new entry with the same task, description, category and timezone"""
        async with self.db.transaction() as session:
            existing = await TimeEntryRepository(session).get_owned(entry_id, user_id)
        if existing is None:
            raise NotFound(f"Timer {entry_id} not found")

        return await self.start(
            user_id,
            org_id,
            task_id=existing.task_id,
            description=existing.description,
            category=existing.category,
            timezone=existing.timezone,
            is_billable=existing.is_billable,
        )

    async def update(self, entry_id: int, user_id: str,
                     patch: Union[TimeEntryPatch, Mapping[str, object]]) -> TimeEntry:
        """Change description and/or category of an owned entry, active or stopped"""
        patch = _parse_patch(patch)
        values = patch.model_dump(exclude_unset=True)
        if values.get("category", "") is None:
            raise ValidationError("category cannot be cleared")

        async with self.db.transaction() as session:
            repo = TimeEntryRepository(session)
            entry = await repo.get_owned(entry_id, user_id)
            if entry is None:
                raise NotFound(f"Timer {entry_id} not found")
            if not values:
                return entry
            updated = await repo.update_details(entry_id, values)

        logger.debug(f"Updated timer {entry_id}: {sorted(values)}")
        return updated

    update_timer = update

    async def remove(self, entry_id: int, user_id: str) -> TimeEntry:
        """Delete an owned entry and return it as it was before deletion"""
        async with self.db.transaction() as session:
            repo = TimeEntryRepository(session)
            entry = await repo.get_owned(entry_id, user_id)
            if entry is None:
                raise NotFound(f"Timer {entry_id} not found")
            await repo.delete(entry_id)

        logger.info(f"Deleted timer {entry_id} for user {user_id}")
        return entry

    @staticmethod
    async def _close_active(repo: TimeEntryRepository, user_id: str,
                            org_id: Optional[str], now: datetime.datetime) -> int:
        closed = 0
        for entry in await repo.list_active(user_id, org_id, for_update=True):
            if await repo.close(entry.id, user_id, now, elapsed_seconds(entry.begin, now)):
                closed += 1
        return closed


def _validate_category(category: str) -> None:
    if not isinstance(category, str) or not category.strip():
        raise ValidationError("category must be a non-empty string")
    if len(category) > MAX_CATEGORY_LENGTH:
        raise ValidationError(f"category must be at most {MAX_CATEGORY_LENGTH} characters")


def _validate_description(description: Optional[str]) -> None:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")


def _parse_patch(patch: Union[TimeEntryPatch, Mapping[str, object]]) -> TimeEntryPatch:
    if isinstance(patch, TimeEntryPatch):
        return patch
    try:
        return TimeEntryPatch.model_validate(dict(patch))
    except pydantic.ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        raise ValidationError(f"Invalid timer update ({fields})") from exc
