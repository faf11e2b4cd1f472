"""Recompute hooks fired after time entry and rate history writes.

Each hook runs after the triggering write has been flushed. Recompute
failures are logged and reported in the returned FanOutResult; they never
undo the write that fired the hook.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timebudget.calculators.aggregator import SpendingAggregator
from timebudget.calculators.types import FanOutResult
from timebudget.models import TimeEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryRef:
    """A time entry's identity and placement, captured before a change."""

    time_entry_id: UUID
    user_id: UUID
    project_id: UUID
    work_date: date

    @classmethod
    def of(cls, entry: TimeEntry) -> EntryRef:
        return cls(
            time_entry_id=entry.time_entry_id,
            user_id=entry.user_id,
            project_id=entry.project_id,
            work_date=entry.work_date,
        )


class SpendingTriggers:
    """Maps data changes onto project spending recomputes."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.aggregator = SpendingAggregator(session)

    async def on_time_entry_created(self, entry: TimeEntry | EntryRef) -> FanOutResult:
        return await self.aggregator.recompute_projects([entry.project_id], user_id=entry.user_id)

    async def on_time_entry_updated(
        self,
        old: TimeEntry | EntryRef,
        new: TimeEntry | EntryRef,
    ) -> FanOutResult:
        """Recompute the entry's project, and its previous one if it moved."""
        return await self.aggregator.recompute_projects(
            {old.project_id, new.project_id}, user_id=new.user_id
        )

    async def on_time_entry_deleted(self, entry: TimeEntry | EntryRef) -> FanOutResult:
        return await self.aggregator.recompute_projects([entry.project_id], user_id=entry.user_id)

    async def on_rate_changed(self, user_id: UUID, effective_date: date) -> FanOutResult:
        """Recompute every project the user has logged time against."""
        logger.info("Rate change for user %s effective %s; recomputing projects", user_id, effective_date)
        return await self.aggregator.recompute_projects_for_user(user_id)

    async def on_rate_deleted(self, user_id: UUID, effective_date: date) -> FanOutResult:
        """Recompute after a scheduled rate change was removed."""
        logger.info(
            "Rate change for user %s effective %s deleted; recomputing projects",
            user_id,
            effective_date,
        )
        return await self.aggregator.recompute_projects_for_user(user_id)
