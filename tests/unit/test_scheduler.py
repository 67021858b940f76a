import asyncio

import pytest

from tidyflow.host import WaitScheduler


@pytest.mark.asyncio
async def test_timer_fires_callback_once():
    fired = []

    async def on_elapsed(key):
        fired.append(key)

    scheduler = WaitScheduler(on_elapsed)
    scheduler.schedule("wf-1", 0.01)
    assert scheduler.pending("wf-1")

    await scheduler.join()

    assert fired == ["wf-1"]
    assert not scheduler.pending("wf-1")


@pytest.mark.asyncio
async def test_rescheduling_replaces_pending_timer():
    fired = []

    async def on_elapsed(key):
        fired.append(key)

    scheduler = WaitScheduler(on_elapsed)
    scheduler.schedule("wf-1", 10)
    scheduler.schedule("wf-1", 0)

    await scheduler.join()

    assert fired == ["wf-1"]


@pytest.mark.asyncio
async def test_cancelled_timer_never_fires():
    fired = []

    async def on_elapsed(key):
        fired.append(key)

    scheduler = WaitScheduler(on_elapsed)
    timer = scheduler.timer_for("wf-1")
    timer.schedule(0.01)
    assert timer.pending

    assert timer.cancel()
    assert not timer.cancel()
    await asyncio.sleep(0.03)

    assert fired == []


@pytest.mark.asyncio
async def test_callback_may_rearm_its_own_timer():
    fired = []
    scheduler = None

    async def on_elapsed(key):
        fired.append(key)
        if len(fired) < 3:
            scheduler.schedule(key, 0)

    scheduler = WaitScheduler(on_elapsed)
    scheduler.schedule("wf-1", 0)

    await scheduler.join()

    assert fired == ["wf-1"] * 3


@pytest.mark.asyncio
async def test_failing_callback_is_logged(caplog):
    async def on_elapsed(key):
        raise RuntimeError("boom")

    scheduler = WaitScheduler(on_elapsed)
    scheduler.schedule("wf-1", 0)

    await scheduler.join()

    assert "Timer callback for wf-1 failed" in caplog.text


@pytest.mark.asyncio
async def test_shutdown_cancels_everything():
    fired = []

    async def on_elapsed(key):
        fired.append(key)

    scheduler = WaitScheduler(on_elapsed)
    scheduler.schedule("a", 10)
    scheduler.schedule("b", 10)

    await scheduler.shutdown()

    assert not scheduler.pending("a")
    assert not scheduler.pending("b")
    assert fired == []
