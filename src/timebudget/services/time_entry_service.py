"""Time entry service - manual entries and timers."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.errors import (
    InvalidTimeEntry,
    ProjectNotFound,
    TimeEntryNotFound,
    TimerAlreadyStopped,
    UserNotFound,
)
from timebudget.models import Project, TimeEntry, User
from timebudget.models.base import as_utc, utcnow
from timebudget.services.spending_triggers import EntryRef, SpendingTriggers

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"project_id", "work_date", "start_time", "end_time", "duration", "description"}
)


def minutes_between(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes elapsed between two instants."""
    seconds = (as_utc(end_time) - as_utc(start_time)).total_seconds()
    if seconds < 0:
        raise InvalidTimeEntry("End time must not be before start time")
    return int(seconds // 60)


class TimeEntryService:
    """Writes time entries and fires the spending triggers.

    ``hours`` is always derived from ``duration`` through
    ``TimeEntry.set_duration``; callers never set it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.triggers = SpendingTriggers(session)

    async def get_entry(self, time_entry_id: UUID) -> TimeEntry:
        entry = await self.session.get(TimeEntry, time_entry_id)
        if entry is None:
            raise TimeEntryNotFound(time_entry_id)
        return entry

    async def _check_refs(self, user_id: UUID, project_id: UUID) -> None:
        if await self.session.get(User, user_id) is None:
            raise UserNotFound(user_id)
        if await self.session.get(Project, project_id) is None:
            raise ProjectNotFound(project_id)

    async def create_manual_entry(
        self,
        user_id: UUID,
        project_id: UUID,
        start_time: datetime,
        end_time: datetime | None = None,
        duration: int | None = None,
        description: str | None = None,
        work_date: date | None = None,
    ) -> TimeEntry:
        """Log a completed block of work.

        The duration comes from ``end_time - start_time`` unless given
        explicitly; the work date defaults to the start time's date.
        """
        await self._check_refs(user_id, project_id)

        if duration is None:
            if end_time is None:
                raise InvalidTimeEntry("A manual entry needs an end time or a duration")
            duration = minutes_between(start_time, end_time)
        elif end_time is not None:
            minutes_between(start_time, end_time)
        if duration < 0:
            raise InvalidTimeEntry(f"Duration must be non-negative, got {duration}")

        entry = TimeEntry(
            user_id=user_id,
            project_id=project_id,
            description=description,
            work_date=work_date or as_utc(start_time).date(),
            start_time=start_time,
            end_time=end_time,
        )
        entry.set_duration(duration)
        self.session.add(entry)
        await self.session.flush()

        logger.info(
            "User %s logged %s h on project %s for %s",
            user_id,
            entry.hours,
            project_id,
            entry.work_date,
        )
        await self.triggers.on_time_entry_created(entry)
        return entry

    async def start_timer(
        self,
        user_id: UUID,
        project_id: UUID,
        description: str | None = None,
        now: datetime | None = None,
    ) -> TimeEntry:
        """Open a running entry with no end time and zero duration."""
        await self._check_refs(user_id, project_id)
        now = now or utcnow()

        entry = TimeEntry(
            user_id=user_id,
            project_id=project_id,
            description=description,
            work_date=as_utc(now).date(),
            start_time=now,
            end_time=None,
        )
        entry.set_duration(0)
        self.session.add(entry)
        await self.session.flush()

        await self.triggers.on_time_entry_created(entry)
        return entry

    async def stop_timer(self, time_entry_id: UUID, now: datetime | None = None) -> TimeEntry:
        """Close a running entry and derive its duration in whole minutes."""
        entry = await self.get_entry(time_entry_id)
        if entry.end_time is not None:
            raise TimerAlreadyStopped(time_entry_id)

        now = now or utcnow()
        old = EntryRef.of(entry)
        entry.set_duration(minutes_between(entry.start_time, now))
        entry.end_time = now
        await self.session.flush()

        await self.triggers.on_time_entry_updated(old, entry)
        return entry

    async def update_entry(self, time_entry_id: UUID, changes: dict[str, Any]) -> TimeEntry:
        """Apply field changes and recompute the affected project(s).

        Changing the start or end time re-derives the duration unless a
        duration is passed with the same update.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidTimeEntry(f"Cannot update fields: {', '.join(sorted(unknown))}")

        entry = await self.get_entry(time_entry_id)
        old = EntryRef.of(entry)

        if changes.get("project_id") not in (None, entry.project_id):
            await self._check_refs(entry.user_id, changes["project_id"])
            entry.project_id = changes["project_id"]
        if "description" in changes:
            entry.description = changes["description"]
        if changes.get("start_time") is not None:
            entry.start_time = changes["start_time"]
        if "end_time" in changes:
            entry.end_time = changes["end_time"]
        if changes.get("work_date") is not None:
            entry.work_date = changes["work_date"]

        if changes.get("duration") is not None:
            if changes["duration"] < 0:
                raise InvalidTimeEntry(f"Duration must be non-negative, got {changes['duration']}")
            entry.set_duration(changes["duration"])
        elif entry.end_time is not None and ({"start_time", "end_time"} & changes.keys()):
            entry.set_duration(minutes_between(entry.start_time, entry.end_time))
        elif entry.end_time is not None:
            minutes_between(entry.start_time, entry.end_time)

        await self.session.flush()
        await self.triggers.on_time_entry_updated(old, entry)
        return entry

    async def delete_entry(self, time_entry_id: UUID) -> EntryRef:
        entry = await self.get_entry(time_entry_id)
        ref = EntryRef.of(entry)
        await self.session.delete(entry)
        await self.session.flush()

        logger.info("Deleted time entry %s from project %s", time_entry_id, ref.project_id)
        await self.triggers.on_time_entry_deleted(ref)
        return ref

    async def list_entries(
        self,
        user_id: UUID | None = None,
        project_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[TimeEntry]:
        """Entries filtered by owner, project and inclusive date range."""
        query = select(TimeEntry)
        if user_id is not None:
            query = query.where(TimeEntry.user_id == user_id)
        if project_id is not None:
            query = query.where(TimeEntry.project_id == project_id)
        if start is not None:
            query = query.where(TimeEntry.work_date >= start)
        if end is not None:
            query = query.where(TimeEntry.work_date <= end)

        result = await self.session.execute(
            query.order_by(TimeEntry.work_date.desc(), TimeEntry.start_time.desc())
        )
        return list(result.scalars().all())
