"""Timer service - business logic for time tracking."""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from app.errors import OperationFailedError, StorageError
from app.models.time_entry import TimeEntry, TimeEntryCreate, TimeEntryUpdate, TimerEntryCreate
from app.models.usage import DaySummary
from app.repositories.entry_repository import EntryRepository
from app.services.valuation_service import summarize_day
from app.utils.duration import (
    DEFAULT_GRID_MINUTES,
    hours_from_seconds,
    parse_and_quantize,
    round_up_to_grid,
)

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    """Stopwatch states of a user."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass
class TimerMachine:
    """
    Stopwatch state of one user, derived from an entry snapshot.

    Normally ``running`` holds at most one entry. Two entries can read as
    running for a moment while an implicit stop is still being written;
    the machine keeps all of them so the next transition stops the stale one.
    """

    user_id: str
    running: list[TimeEntry] = field(default_factory=list)

    @classmethod
    def from_entries(cls, user_id: str, entries: list[TimeEntry]) -> "TimerMachine":
        return cls(
            user_id=user_id,
            running=[e for e in entries if e.user_id == user_id and e.is_active],
        )

    @property
    def state(self) -> TimerState:
        return TimerState.RUNNING if self.running else TimerState.IDLE

    @property
    def is_timer_active(self) -> bool:
        return self.state == TimerState.RUNNING

    @property
    def active_entry(self) -> Optional[TimeEntry]:
        return self.running[0] if self.running else None

    @property
    def active_entry_id(self) -> Optional[str]:
        entry = self.active_entry
        return entry.id if entry else None

    def others(self, entry_id: Optional[str] = None) -> list[TimeEntry]:
        """Running entries that must stop before ``entry_id`` may run."""
        return [e for e in self.running if e.id != entry_id]


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    """Whole seconds since ``started_at``; never negative."""
    return max(0, int((now - started_at).total_seconds()))


def live_hours(entry: TimeEntry, now: Optional[datetime] = None) -> Decimal:
    """
    Hours to display for an entry right now.

    The start timestamp is authoritative; the synchronised seconds are
    only used when it is missing.
    """
    if not entry.is_active:
        return entry.hours

    if entry.timer_started_at is not None:
        if now is None:
            now = datetime.utcnow()
        return entry.hours + hours_from_seconds(elapsed_seconds(entry.timer_started_at, now))

    return entry.hours + hours_from_seconds(entry.timer_seconds)


@contextmanager
def _storage_errors(operation: str):
    try:
        yield
    except StorageError as e:
        logger.error("Timer operation %s failed: %s", operation, e)
        raise OperationFailedError(operation) from e


class TimerService:
    """Service for handling time tracking operations."""

    def __init__(
        self,
        repository: EntryRepository,
        ticker=None,
        grid_minutes: int = DEFAULT_GRID_MINUTES,
    ):
        """
        Initialize service.

        Args:
            repository: Time entry storage
            ticker: Optional TimerTicker that keeps running timers synchronised
            grid_minutes: Quantization grid for committed hours
        """
        self.repository = repository
        self.ticker = ticker
        self.grid_minutes = grid_minutes

    async def _load(self, user_id: str, operation: str) -> list[TimeEntry]:
        with _storage_errors(operation):
            return await self.repository.list_for_user(user_id)

    async def _load_owned(self, user_id: str, entry_id: str, operation: str) -> TimeEntry:
        with _storage_errors(operation):
            entry = await self.repository.get(entry_id)

        if entry is None or entry.user_id != user_id:
            raise ValueError("Time entry not found")

        return entry

    async def _finalize(self, entry: TimeEntry, now: datetime, operation: str) -> Optional[TimeEntry]:
        """Fold a running timer into committed, quantized hours."""
        final_seconds = entry.timer_seconds
        if entry.timer_started_at is not None:
            # Live recomputation wins, but never goes below the last tick
            final_seconds = max(final_seconds, elapsed_seconds(entry.timer_started_at, now))

        raw_hours = entry.hours + hours_from_seconds(final_seconds)
        hours = round_up_to_grid(raw_hours, self.grid_minutes)

        with _storage_errors(operation):
            stopped = await self.repository.patch(entry.id, {
                "hours": hours,
                "is_active": False,
                "timer_started_at": None,
                "timer_seconds": 0,
            })

        logger.info(
            "Stopped timer on entry %s for user %s: %ss, %s -> %s hours",
            entry.id, entry.user_id, final_seconds, entry.hours, hours,
        )
        return stopped

    def _schedule(self, user_id: str) -> None:
        if self.ticker is not None:
            self.ticker.schedule(user_id)

    async def _resync(self, user_id: str) -> None:
        """Align the ticker with the user's entries after a timer went away."""
        if self.ticker is None:
            return
        try:
            entries = await self.repository.list_for_user(user_id)
        except StorageError as e:
            logger.warning("Could not reload entries of user %s, cancelling ticker: %s", user_id, e)
            self.ticker.cancel(user_id)
            return
        self.ticker.sync(user_id, entries)

    async def start(
        self,
        user_id: str,
        entry_id: str,
        now: Optional[datetime] = None,
    ) -> TimeEntry:
        """
        Start the timer on an existing entry.

        Any other running timer of the user is stopped first; starting a
        second timer supersedes the first rather than failing. Starting the
        entry that is already running changes nothing.

        Args:
            user_id: User ID
            entry_id: Entry to start
            now: Optional start time (defaults to now)

        Returns:
            The running entry

        Raises:
            ValueError: If the entry does not exist for this user
            OperationFailedError: If a write fails
        """
        if now is None:
            now = datetime.utcnow()

        entries = await self._load(user_id, "start")
        target = next((e for e in entries if e.id == entry_id), None)
        if target is None:
            raise ValueError("Time entry not found")

        machine = TimerMachine.from_entries(user_id, entries)
        for running in machine.others(entry_id):
            await self._finalize(running, now, "start")

        if target.is_active:
            self._schedule(user_id)
            return target

        with _storage_errors("start"):
            started = await self.repository.patch(entry_id, {
                "is_active": True,
                "timer_started_at": now,
                "timer_seconds": 0,
            })

        if started is None:
            raise ValueError("Time entry not found")

        logger.info("Started timer on entry %s for user %s", entry_id, user_id)
        self._schedule(user_id)
        return started

    async def create_and_start(
        self,
        user_id: str,
        draft: TimerEntryCreate,
        now: Optional[datetime] = None,
    ) -> TimeEntry:
        """
        Create a new entry with its timer already running.

        Any running timer of the user is stopped first.

        Args:
            user_id: User ID
            draft: Project, task, price item and note of the new entry
            now: Optional start time (defaults to now)

        Returns:
            Created, running entry

        Raises:
            OperationFailedError: If a write fails
        """
        if now is None:
            now = datetime.utcnow()

        entries = await self._load(user_id, "create")
        machine = TimerMachine.from_entries(user_id, entries)
        for running in machine.others():
            await self._finalize(running, now, "create")

        fields = draft.model_dump(exclude_none=True)
        fields.update({
            "user_id": user_id,
            "hours": Decimal(0),
            "is_active": True,
            "timer_started_at": now,
            "timer_seconds": 0,
        })

        with _storage_errors("create"):
            entry = await self.repository.create(fields)

        logger.info("Created running timer entry %s for user %s", entry.id, user_id)
        self._schedule(user_id)
        return entry

    async def tick(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[TimeEntry]:
        """
        Persist the elapsed seconds of the user's running timer.

        Args:
            user_id: User ID
            now: Optional current time (defaults to now)

        Returns:
            The first running entry written, or None if the user is idle
            or every running timer was stopped before the write landed
        """
        if now is None:
            now = datetime.utcnow()

        entries = await self._load(user_id, "tick")
        machine = TimerMachine.from_entries(user_id, entries)
        if not machine.is_timer_active:
            return None

        ticked = None
        for running in machine.running:
            if running.timer_started_at is None:
                if ticked is None:
                    ticked = running
                continue
            seconds = elapsed_seconds(running.timer_started_at, now)
            with _storage_errors("tick"):
                updated = await self.repository.patch(
                    running.id,
                    {"timer_seconds": seconds},
                    match={"is_active": True},
                )
            if updated is None:
                logger.debug("Entry %s stopped before its tick was written", running.id)
                continue
            logger.debug("Tick entry %s: %ss", running.id, seconds)
            if ticked is None:
                ticked = updated

        return ticked

    async def stop(
        self,
        user_id: str,
        entry_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[TimeEntry]:
        """
        Stop a running timer and commit its time.

        The elapsed time is added to the entry's hours and the sum is
        rounded up to the quantization grid. Stopping an idle entry
        returns it unchanged.

        Args:
            user_id: User ID
            entry_id: Entry to stop
            now: Optional stop time (defaults to now)

        Returns:
            The stopped entry, or None if it does not exist for this user

        Raises:
            OperationFailedError: If a write fails
        """
        if now is None:
            now = datetime.utcnow()

        with _storage_errors("stop"):
            entry = await self.repository.get(entry_id)

        if entry is None or entry.user_id != user_id:
            return None
        if not entry.is_active:
            return entry

        stopped = await self._finalize(entry, now, "stop")
        await self._resync(user_id)
        return stopped

    def get_live_display_value(
        self,
        entry: TimeEntry,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """Hours to display for an entry, including live timer time."""
        return live_hours(entry, now)

    async def get_machine(self, user_id: str) -> TimerMachine:
        """
        Get the stopwatch state of a user from the current entries.

        Also makes sure the ticker follows a timer that was left running,
        e.g. across a restart.
        """
        entries = await self._load(user_id, "read")
        machine = TimerMachine.from_entries(user_id, entries)
        if self.ticker is not None:
            if machine.is_timer_active:
                self.ticker.watch(user_id)
            self.ticker.sync(user_id, entries)
        return machine

    async def get_active_timer(self, user_id: str) -> Optional[TimeEntry]:
        """Get the currently running entry, if any."""
        machine = await self.get_machine(user_id)
        return machine.active_entry

    async def is_timer_active(self, user_id: str) -> bool:
        """Whether the user has a running timer."""
        machine = await self.get_machine(user_id)
        return machine.is_timer_active

    async def list_entries(
        self,
        user_id: str,
        day: Optional[date] = None,
    ) -> list[TimeEntry]:
        """
        List time entries for a user.

        Args:
            user_id: User ID
            day: Optional billing day filter

        Returns:
            Entries, newest billing day first
        """
        entries = await self._load(user_id, "read")
        if day is not None:
            entries = [e for e in entries if e.date == day]
        return entries

    async def summarize(self, user_id: str, day: date) -> DaySummary:
        """Hours logged on ``day`` and in its week."""
        entries = await self._load(user_id, "read")
        return summarize_day(entries, day)

    async def create_entry(
        self,
        user_id: str,
        entry_create: TimeEntryCreate,
    ) -> TimeEntry:
        """
        Create a manual time entry.

        Hours are rounded up to the quantization grid.

        Args:
            user_id: User ID
            entry_create: Time entry creation data

        Returns:
            Created time entry
        """
        if isinstance(entry_create.hours, str):
            hours = parse_and_quantize(entry_create.hours, self.grid_minutes)
        else:
            hours = round_up_to_grid(entry_create.hours, self.grid_minutes)

        fields = entry_create.model_dump(exclude_none=True)
        fields.update({
            "user_id": user_id,
            "hours": hours,
            "is_active": False,
            "timer_started_at": None,
            "timer_seconds": 0,
        })

        with _storage_errors("create"):
            return await self.repository.create(fields)

    async def update_entry(
        self,
        user_id: str,
        entry_id: str,
        entry_update: TimeEntryUpdate,
    ) -> TimeEntry:
        """
        Apply an inline edit to a time entry.

        Edited hours bypass the timer and go straight through
        quantization.

        Args:
            user_id: User ID
            entry_id: Time entry ID
            entry_update: Update data

        Returns:
            Updated time entry

        Raises:
            ValueError: If entry not found
        """
        await self._load_owned(user_id, entry_id, "update")

        update_doc = entry_update.model_dump(exclude_none=True)
        if entry_update.hours is not None:
            update_doc["hours"] = parse_and_quantize(entry_update.hours, self.grid_minutes)

        with _storage_errors("update"):
            updated = await self.repository.patch(entry_id, update_doc)

        if updated is None:
            raise ValueError("Time entry not found")

        return updated

    async def duplicate_entry(
        self,
        user_id: str,
        entry_id: str,
    ) -> TimeEntry:
        """
        Copy an entry into a new, stopped entry.

        Raises:
            ValueError: If entry not found
        """
        entry = await self._load_owned(user_id, entry_id, "duplicate")

        fields = {
            "user_id": user_id,
            "project_id": entry.project_id,
            "task_id": entry.task_id,
            "price_item_id": entry.price_item_id,
            "hours": entry.hours,
            "note": f"{entry.note} (copy)",
            "date": entry.date,
            "is_active": False,
            "timer_started_at": None,
            "timer_seconds": 0,
        }
        if entry.hourly_rate is not None:
            fields["hourly_rate"] = entry.hourly_rate

        with _storage_errors("duplicate"):
            return await self.repository.create(fields)

    async def delete_entry(
        self,
        user_id: str,
        entry_id: str,
    ) -> dict:
        """
        Delete a time entry.

        Returns:
            Dictionary with deleted_count

        Raises:
            ValueError: If entry not found
        """
        entry = await self._load_owned(user_id, entry_id, "delete")

        with _storage_errors("delete"):
            deleted = await self.repository.remove(entry_id)

        if entry.is_active:
            await self._resync(user_id)

        return {"deleted_count": 1 if deleted else 0}
