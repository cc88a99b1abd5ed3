"""Background ticker that keeps running timers synchronised."""
import asyncio
import logging
from contextlib import aclosing

from app.errors import OperationFailedError, StorageError
from app.models.time_entry import TimeEntry
from app.repositories.entry_repository import EntryRepository
from app.services.timer_service import TimerMachine, TimerService
from app.utils.duration import DEFAULT_GRID_MINUTES

logger = logging.getLogger(__name__)


class TimerTicker:
    """
    Per-user tick loops for running timers.

    A user's loop exists only while that user has a running timer: it is
    started by ``schedule`` and ends as soon as a tick finds the user idle
    or ``cancel`` is called.
    """

    def __init__(
        self,
        repository: EntryRepository,
        interval: float = 1.0,
        grid_minutes: int = DEFAULT_GRID_MINUTES,
    ):
        """
        Initialize ticker.

        Args:
            repository: Time entry storage
            interval: Seconds between ticks
            grid_minutes: Quantization grid passed to the tick service
        """
        self.repository = repository
        self.interval = interval
        self.service = TimerService(repository, grid_minutes=grid_minutes)
        self._tasks: dict[str, asyncio.Task] = {}
        self._followers: dict[str, asyncio.Task] = {}

    def is_scheduled(self, user_id: str) -> bool:
        task = self._tasks.get(user_id)
        return task is not None and not task.done()

    def is_following(self, user_id: str) -> bool:
        task = self._followers.get(user_id)
        return task is not None and not task.done()

    def schedule(self, user_id: str) -> None:
        """Start ticking for a user unless already ticking."""
        if self.is_scheduled(user_id):
            return
        self._tasks[user_id] = asyncio.get_running_loop().create_task(
            self._run(user_id), name=f"timer-tick-{user_id}"
        )
        logger.debug("Scheduled timer tick for user %s", user_id)

    def cancel(self, user_id: str) -> None:
        """Stop ticking for a user."""
        task = self._tasks.pop(user_id, None)
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Cancelled timer tick for user %s", user_id)

    def sync(self, user_id: str, entries: list[TimeEntry]) -> TimerMachine:
        """Schedule or cancel ticking to match an entry snapshot."""
        machine = TimerMachine.from_entries(user_id, entries)
        if machine.is_timer_active:
            self.schedule(user_id)
        else:
            self.cancel(user_id)
        return machine

    async def _run(self, user_id: str) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    entry = await self.service.tick(user_id)
                except OperationFailedError as e:
                    logger.warning("Timer tick for user %s failed: %s", user_id, e.__cause__)
                    continue
                except Exception:
                    logger.exception("Timer tick loop for user %s crashed", user_id)
                    break
                if entry is None:
                    logger.debug("User %s is idle, tick loop ends", user_id)
                    break
        finally:
            if self._tasks.get(user_id) is asyncio.current_task():
                del self._tasks[user_id]

    async def follow(self, user_id: str) -> None:
        """
        Keep ticking in step with the live entry snapshots of a user.

        Ends with the first snapshot in which the user is idle.
        """
        try:
            async with aclosing(self.repository.subscribe(user_id)) as snapshots:
                async for snapshot in snapshots:
                    machine = self.sync(user_id, snapshot)
                    if not machine.is_timer_active:
                        logger.debug("User %s is idle, stopped following", user_id)
                        break
        except StorageError as e:
            logger.warning("Live updates for user %s unavailable: %s", user_id, e)
        except Exception:
            logger.exception("Following user %s crashed", user_id)
        finally:
            if self._followers.get(user_id) is asyncio.current_task():
                del self._followers[user_id]

    def watch(self, user_id: str) -> None:
        """Start following a user's snapshots in the background."""
        if self.is_following(user_id):
            return
        self._followers[user_id] = asyncio.get_running_loop().create_task(
            self.follow(user_id), name=f"timer-follow-{user_id}"
        )

    async def shutdown(self) -> None:
        """Cancel every tick loop and follower."""
        tasks = list(self._tasks.values()) + list(self._followers.values())
        self._tasks.clear()
        self._followers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Timer ticker stopped (%d tasks cancelled)", len(tasks))
