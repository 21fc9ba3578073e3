import asyncio

import pytest

from starfire.scheduler import Scheduler


def test_runs_immediately_and_then_on_interval():
    calls = []

    async def cycle():
        calls.append(asyncio.get_running_loop().time())
        return len(calls)

    async def main():
        sched = Scheduler(cycle, 0.02)
        sched.start()
        await asyncio.sleep(0.09)
        sched.stop()
        await sched.wait_idle()
        return sched

    sched = asyncio.run(main())
    assert len(calls) >= 3
    assert sched.completed == len(calls)
    assert not sched.running


def test_errors_do_not_stop_the_timer():
    calls = []

    async def cycle():
        calls.append(1)
        raise RuntimeError("boom")

    async def main():
        sched = Scheduler(cycle, 0.01)
        sched.start()
        await asyncio.sleep(0.06)
        sched.stop()
        await sched.wait_idle()
        return sched

    sched = asyncio.run(main())
    assert len(calls) >= 2
    assert sched.failed == len(calls)


def test_overlapping_ticks_are_skipped():
    started = []

    async def slow_cycle():
        started.append(1)
        await asyncio.sleep(0.1)

    async def main():
        sched = Scheduler(slow_cycle, 0.02)
        sched.start()
        await asyncio.sleep(0.07)
        sched.stop()
        await sched.wait_idle()
        return sched

    sched = asyncio.run(main())
    assert len(started) == 1
    assert sched.skipped >= 2
    assert sched.completed == 1


def test_stop_is_idempotent_and_leaves_inflight_cycle_running():
    finished = []

    async def cycle():
        await asyncio.sleep(0.03)
        finished.append(1)

    async def main():
        sched = Scheduler(cycle, 10)
        sched.stop()
        sched.start()
        await asyncio.sleep(0.005)
        sched.stop()
        sched.stop()
        await sched.wait_idle()

    asyncio.run(main())
    assert finished == [1]


def test_results_are_handed_to_callback():
    seen = []

    async def cycle():
        return "report"

    async def main():
        sched = Scheduler(cycle, 10, on_result=seen.append)
        sched.start()
        await asyncio.sleep(0.01)
        sched.stop()
        await sched.wait_idle()

    asyncio.run(main())
    assert seen == ["report"]


def test_interval_must_be_positive():
    async def cycle():
        return None

    with pytest.raises(ValueError):
        Scheduler(cycle, 0)
