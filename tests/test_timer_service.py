"""
Tests for TimerService.
"""

import asyncio
import datetime

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from worktrack.domain.errors import AlreadyStopped, NotFound, StorageError, ValidationError
from worktrack.domain.models import TimeEntryPatch
from worktrack.infra.db import DatabaseEngine
from worktrack.infra.repository import TimeEntryRepository
from worktrack.services.timer_service import TimerService, format_duration

ORG = "org_1"
USER = "u_ada"
OTHER = "u_ben"


@pytest_asyncio.fixture
async def service(db, clock, factory):
    await factory.org(ORG)
    await factory.member(ORG, USER, name="Ada")
    await factory.member(ORG, OTHER, name="Ben")
    return TimerService(db, clock=clock)


@pytest.mark.asyncio
async def test_start_creates_active_entry(service, clock):
    entry = await service.start(USER, ORG, description="Planning", category="meeting")

    assert entry.id is not None
    assert entry.is_active
    assert entry.begin == clock.now
    assert entry.duration is None
    assert entry.category == "meeting"

    active = await service.list_active(USER, ORG)
    assert [e.id for e in active] == [entry.id]


@pytest.mark.asyncio
async def test_starting_again_closes_previous_entry(service, clock):
    first = await service.start(USER, ORG, description="First")
    clock.advance(minutes=20)
    second = await service.start(USER, ORG, description="Second")

    active = await service.list_active(USER, ORG)
    assert [e.id for e in active] == [second.id]

    entries = {e.id: e for e in await service.recent_entries(USER, ORG)}
    closed = entries[first.id]
    assert closed.end == datetime.datetime(2026, 1, 14, 9, 20)
    assert closed.duration == 1200
    assert second.begin == closed.end


@pytest.mark.asyncio
async def test_timers_of_other_users_are_untouched(service):
    mine = await service.start(USER, ORG)
    theirs = await service.start(OTHER, ORG)

    assert (await service.get_active_timer(USER, ORG)).id == mine.id
    assert (await service.get_active_timer(OTHER, ORG)).id == theirs.id


@pytest.mark.asyncio
async def test_concurrent_starts_leave_one_active_entry(service):
    await asyncio.gather(*(service.start(USER, ORG, description=f"Run {i}") for i in range(5)))

    active = await service.list_active(USER, ORG)
    assert len(active) == 1

    entries = await service.recent_entries(USER, ORG, limit=10)
    assert len(entries) == 5
    assert sum(1 for e in entries if not e.is_active) == 4


@pytest.mark.asyncio
async def test_concurrent_starts_through_separate_services(db, clock, service):
    services = [TimerService(db, clock=clock) for _ in range(8)]
    assert services[0].locks is services[1].locks

    await asyncio.gather(*(s.start(USER, ORG, description=f"Request {i}") for i, s in enumerate(services)))

    assert len(await service.list_active(USER, ORG)) == 1
    assert len(await service.recent_entries(USER, ORG, limit=20)) == 8


@pytest.mark.asyncio
async def test_concurrent_starts_through_separate_engines(db, clock, service):
    # A second process would hold its own engine and lock table
    other_db = DatabaseEngine(db.engine.url.render_as_string(hide_password=False))
    try:
        services = [TimerService(db, clock=clock), TimerService(other_db, clock=clock)]
        await asyncio.gather(*(services[i % 2].start(USER, ORG) for i in range(6)))
    finally:
        await other_db.dispose()

    assert len(await service.list_active(USER, ORG)) == 1
    entries = await service.recent_entries(USER, ORG, limit=20)
    assert len(entries) == 6
    assert sum(1 for e in entries if not e.is_active) == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [
    {"category": ""},
    {"category": "   "},
    {"category": "x" * 51},
    {"description": "d" * 501},
])
async def test_start_rejects_invalid_input(service, kwargs):
    with pytest.raises(ValidationError):
        await service.start(USER, ORG, **kwargs)
    assert await service.list_active(USER, ORG) == []


@pytest.mark.asyncio
async def test_failed_start_keeps_previous_timer_running(service, clock, monkeypatch):
    running = await service.start(USER, ORG)
    clock.advance(minutes=5)

    async def broken_create(self, entry):
        raise OperationalError("INSERT INTO time_entries", {}, Exception("disk I/O error"))

    monkeypatch.setattr(TimeEntryRepository, "create", broken_create)

    with pytest.raises(StorageError):
        await service.start(USER, ORG)

    active = await service.list_active(USER, ORG)
    assert [e.id for e in active] == [running.id]


@pytest.mark.asyncio
async def test_stop_sets_end_and_duration(service, clock):
    entry = await service.start(USER, ORG)
    clock.advance(hours=1, minutes=2, seconds=5, microseconds=900)

    stopped = await service.stop(entry.id, USER)

    assert stopped.end == clock.now
    assert stopped.duration == 3725
    assert await service.list_active(USER, ORG) == []


@pytest.mark.asyncio
async def test_stop_errors(service):
    with pytest.raises(NotFound):
        await service.stop(999, USER)

    entry = await service.start(USER, ORG)
    with pytest.raises(NotFound):
        await service.stop(entry.id, OTHER)

    await service.stop(entry.id, USER)
    with pytest.raises(AlreadyStopped):
        await service.stop(entry.id, USER)


@pytest.mark.asyncio
async def test_stop_timer_without_active_entry(service):
    with pytest.raises(NotFound):
        await service.stop_timer(USER, ORG)


@pytest.mark.asyncio
async def test_stop_timer_returns_stopped_entry(service, clock):
    entry = await service.start_timer(USER, ORG)
    clock.advance(minutes=3)

    stopped = await service.stop_timer(USER, ORG)

    assert stopped.id == entry.id
    assert stopped.duration == 180


@pytest.mark.asyncio
async def test_stop_all_active_counts_closed_entries(service, factory, clock):
    # Two running entries can only exist through direct writes
    await factory.entry(ORG, USER, clock.now - datetime.timedelta(hours=2))
    await factory.entry(ORG, USER, clock.now - datetime.timedelta(hours=1))

    assert await service.stop_all_active(USER, ORG) == 2
    assert await service.stop_all_active(USER, ORG) == 0
    assert await service.list_active(USER, ORG) == []


@pytest.mark.asyncio
async def test_restart_copies_entry_details(service, factory, clock):
    task = await factory.task(ORG, USER, "Write docs")
    original = await service.start(
        USER, ORG, task_id=task.id, description="Docs", category="writing",
        timezone="Australia/Perth", is_billable=True,
    )
    clock.advance(minutes=30)
    await service.stop(original.id, USER)
    clock.advance(minutes=10)

    restarted = await service.restart(original.id, USER, ORG)

    assert restarted.id != original.id
    assert restarted.is_active
    assert restarted.begin == clock.now
    assert restarted.task_id == task.id
    assert restarted.description == "Docs"
    assert restarted.category == "writing"
    assert restarted.timezone == "Australia/Perth"
    assert restarted.is_billable


@pytest.mark.asyncio
async def test_restart_closes_the_running_entry(service, clock):
    first = await service.start(USER, ORG, description="First", category="dev")
    clock.advance(minutes=10)
    second = await service.start(USER, ORG, description="Second")
    clock.advance(minutes=5)

    restarted = await service.restart(first.id, USER, ORG)

    active = await service.list_active(USER, ORG)
    assert [e.id for e in active] == [restarted.id]
    assert restarted.id not in (first.id, second.id)
    assert (restarted.description, restarted.category) == ("First", "dev")

    entries = {e.id: e for e in await service.recent_entries(USER, ORG)}
    assert entries[second.id].end == restarted.begin
    assert entries[second.id].duration == 300
    assert entries[first.id].duration == 600


@pytest.mark.asyncio
async def test_restart_unknown_entry(service):
    with pytest.raises(NotFound):
        await service.restart(12345, USER, ORG)


@pytest.mark.asyncio
async def test_update_changes_description_and_category(service):
    entry = await service.start(USER, ORG, description="Old")

    updated = await service.update(entry.id, USER, {"description": "New", "category": "review"})

    assert updated.description == "New"
    assert updated.category == "review"
    assert updated.begin == entry.begin
    assert updated.is_active


@pytest.mark.asyncio
async def test_update_accepts_patch_model_and_stopped_entries(service):
    entry = await service.start(USER, ORG)
    await service.stop(entry.id, USER)

    updated = await service.update_timer(entry.id, USER, TimeEntryPatch(description="After the fact"))

    assert updated.description == "After the fact"
    assert updated.duration == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("patch", [
    {"begin": "2026-01-01T00:00:00"},
    {"end": "2026-01-01T00:00:00"},
    {"duration": 10},
    {"category": None},
    {"category": ""},
    {"description": "d" * 501},
])
async def test_update_rejects_other_fields_and_bad_values(service, patch):
    entry = await service.start(USER, ORG)
    with pytest.raises(ValidationError):
        await service.update(entry.id, USER, patch)


@pytest.mark.asyncio
async def test_update_with_empty_patch_returns_entry(service):
    entry = await service.start(USER, ORG, description="Same")
    assert await service.update(entry.id, USER, {}) == entry


@pytest.mark.asyncio
async def test_update_foreign_entry(service):
    entry = await service.start(USER, ORG)
    with pytest.raises(NotFound):
        await service.update(entry.id, OTHER, {"description": "Mine now"})


@pytest.mark.asyncio
async def test_remove_returns_deleted_entry(service):
    entry = await service.start(USER, ORG, description="Oops")

    removed = await service.remove(entry.id, USER)

    assert removed == entry
    assert await service.recent_entries(USER, ORG) == []
    with pytest.raises(NotFound):
        await service.remove(entry.id, USER)


@pytest.mark.asyncio
async def test_statistics(service, factory, clock):
    # clock: Wednesday 2026-01-14 09:00, week started Sunday 2026-01-11
    await factory.entry(ORG, USER, datetime.datetime(2026, 1, 14, 7, 0), hours=1)
    await factory.entry(ORG, USER, datetime.datetime(2026, 1, 12, 9, 0), hours=2)
    await factory.entry(ORG, USER, datetime.datetime(2026, 1, 11, 0, 0), hours=0.5)
    await factory.entry(ORG, USER, datetime.datetime(2026, 1, 10, 23, 0), hours=3)
    await factory.entry(ORG, OTHER, datetime.datetime(2026, 1, 14, 8, 0), hours=1)
    await service.start(USER, ORG)

    stats = await service.get_timer_stats(USER, ORG)

    assert stats.active_count == 1
    assert stats.today_total_seconds == 3600
    assert stats.week_total_seconds == 12600
    assert stats.today_formatted == "1:00:00"
    assert stats.week_formatted == "3:30:00"


@pytest.mark.asyncio
async def test_statistics_for_new_user(service):
    stats = await service.statistics(USER, ORG)
    assert stats.active_count == 0
    assert stats.today_formatted == "0:00"
    assert stats.week_formatted == "0:00"


@pytest.mark.parametrize("seconds,expected", [
    (0, "0:00"),
    (59, "0:59"),
    (61, "1:01"),
    (3600, "1:00:00"),
    (3725, "1:02:05"),
    (36000, "10:00:00"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
