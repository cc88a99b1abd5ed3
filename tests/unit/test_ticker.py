"""Tests for the background TimerTicker."""
import asyncio
import logging
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.services.ticker import TimerTicker


def running_fields(user_id="user123"):
    return {
        "user_id": user_id,
        "project_id": "proj-1",
        "task_id": "task-1",
        "price_item_id": "dev",
        "note": "",
        "date": date(2026, 10, 14),
        "hours": Decimal(0),
        "is_active": True,
        "timer_started_at": datetime.utcnow(),
        "timer_seconds": 0,
    }


@pytest.mark.asyncio
class TestTimerTickerSchedule:
    """Tests for per-user tick loops."""

    async def test_schedule_ticks_running_timer(self, repository):
        """Test a scheduled loop writes the elapsed seconds."""
        repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=0.01)

        ticker.schedule("user123")
        await asyncio.sleep(0.05)

        assert ticker.is_scheduled("user123")
        assert "patch" in repository.calls
        await ticker.shutdown()

    async def test_loop_ends_when_user_goes_idle(self, repository):
        """Test the loop stops by itself once no timer runs."""
        entry = repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=0.01)

        ticker.schedule("user123")
        await asyncio.sleep(0.03)
        repository.docs[entry.id]["is_active"] = False
        await asyncio.sleep(0.05)

        assert not ticker.is_scheduled("user123")

    async def test_schedule_twice_keeps_one_loop(self, repository):
        """Test scheduling is idempotent."""
        repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=1.0)

        ticker.schedule("user123")
        task = ticker._tasks["user123"]
        ticker.schedule("user123")

        assert ticker._tasks["user123"] is task
        await ticker.shutdown()

    async def test_cancel(self, repository):
        """Test cancelling a loop."""
        ticker = TimerTicker(repository, interval=1.0)

        ticker.schedule("user123")
        ticker.cancel("user123")
        await asyncio.sleep(0)

        assert not ticker.is_scheduled("user123")

    async def test_failed_tick_keeps_looping(self, repository):
        """Test a storage failure in one tick does not end the loop."""
        repository.add(is_active=True, timer_started_at=datetime.utcnow())
        repository.fail_on.add("patch")
        ticker = TimerTicker(repository, interval=0.01)

        ticker.schedule("user123")
        await asyncio.sleep(0.1)

        assert ticker.is_scheduled("user123")
        assert repository.calls.count("patch") >= 2
        await ticker.shutdown()

    async def test_crashed_tick_is_logged_and_ends_loop(self, repository, caplog):
        """Test an unexpected error in a tick is logged and ends the loop."""
        ticker = TimerTicker(repository, interval=0.01)
        ticker.service.tick = AsyncMock(side_effect=RuntimeError("boom"))

        with caplog.at_level(logging.ERROR, logger="app.services.ticker"):
            ticker.schedule("user123")
            await asyncio.sleep(0.05)

        assert not ticker.is_scheduled("user123")
        assert ticker.service.tick.await_count == 1
        assert "Timer tick loop for user user123 crashed" in caplog.text
        assert "boom" in caplog.text

    async def test_sync(self, repository):
        """Test sync schedules for running snapshots and cancels for idle ones."""
        entry = repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=1.0)

        machine = ticker.sync("user123", [entry])
        assert machine.is_timer_active
        assert ticker.is_scheduled("user123")

        machine = ticker.sync("user123", [])
        assert not machine.is_timer_active
        await asyncio.sleep(0)
        assert not ticker.is_scheduled("user123")

    async def test_shutdown_cancels_everything(self, repository):
        """Test shutdown clears loops and followers."""
        ticker = TimerTicker(repository, interval=1.0)
        ticker.schedule("user123")
        ticker.watch("user123")

        await ticker.shutdown()

        assert not ticker.is_scheduled("user123")
        assert not ticker.is_following("user123")


@pytest.mark.asyncio
class TestTimerTickerFollow:
    """Tests for following live entry snapshots."""

    async def test_follow_schedules_running_user(self, repository):
        """Test a timer left running elsewhere is picked up."""
        repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=1.0)

        ticker.watch("user123")
        await asyncio.sleep(0.01)

        assert ticker.is_following("user123")
        assert ticker.is_scheduled("user123")
        await ticker.shutdown()

    async def test_follow_ends_when_user_goes_idle(self, repository):
        """Test the follower and its subscription end once the timer stops."""
        entry = repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=1.0)

        ticker.watch("user123")
        await asyncio.sleep(0.01)
        await repository.patch(entry.id, {"is_active": False, "timer_started_at": None})
        await asyncio.sleep(0.01)

        assert not ticker.is_following("user123")
        assert not ticker.is_scheduled("user123")
        assert repository._subscribers == []

    async def test_follow_idle_user_ends_at_once(self, repository):
        """Test watching an idle user does not leave a follower behind."""
        repository.add()
        ticker = TimerTicker(repository, interval=1.0)

        ticker.watch("user123")
        await asyncio.sleep(0.01)

        assert not ticker.is_following("user123")
        assert repository._subscribers == []

    async def test_follow_ignores_other_users(self, repository):
        """Test another user's timer does not schedule for them."""
        repository.add(is_active=True, timer_started_at=datetime.utcnow())
        ticker = TimerTicker(repository, interval=1.0)

        ticker.watch("user123")
        await asyncio.sleep(0.01)
        await repository.create(running_fields(user_id="bob"))
        await asyncio.sleep(0.01)

        assert ticker.is_following("user123")
        assert not ticker.is_scheduled("bob")
        await ticker.shutdown()

    async def test_follow_storage_failure(self, repository):
        """Test an unavailable feed ends the follower quietly."""
        repository.fail_on.add("list")
        ticker = TimerTicker(repository, interval=1.0)

        await ticker.follow("user123")

        assert not ticker.is_following("user123")
