from __future__ import annotations

import asyncio

from hrdc.jobs.scheduler import PeriodicRunner, RunnerState, ScheduledTask, wait_for_stop


class _Task(ScheduledTask):
    name = "test-task"

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def run_once(self):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _scripted_wait(answers, seen):
    answers = list(answers)

    async def wait(stop_event, timeout):
        seen.append(timeout)
        stop = answers.pop(0)
        if stop:
            stop_event.set()
        return stop

    return wait


def test_wait_for_stop_returns_immediately_when_set():
    async def scenario():
        stop = asyncio.Event()
        stop.set()
        return await wait_for_stop(stop, 60)

    assert asyncio.run(scenario()) is True


def test_wait_for_stop_times_out():
    async def scenario():
        return await wait_for_stop(asyncio.Event(), 0.01)

    assert asyncio.run(scenario()) is False


def test_runner_ticks_then_waits_interval():
    waits = []
    task = _Task(["first", "second"])
    runner = PeriodicRunner(task, interval_seconds=86400, wait=_scripted_wait([False, True], waits))

    asyncio.run(runner.run(asyncio.Event()))

    assert task.calls == 2
    assert waits == [86400, 86400]
    assert runner.last_result == "second"
    assert runner.status()["runs"] == 2
    assert runner.state == RunnerState.IDLE


def test_failed_tick_is_logged_and_runner_keeps_going():
    waits = []
    task = _Task([RuntimeError("db down"), "recovered"])
    runner = PeriodicRunner(task, interval_seconds=10, wait=_scripted_wait([False, True], waits))

    asyncio.run(runner.run(asyncio.Event()))

    assert task.calls == 2
    assert runner.last_error is None
    assert runner.last_result == "recovered"


def test_failed_tick_records_error():
    runner = PeriodicRunner(_Task([RuntimeError("db down")]), interval_seconds=10)
    assert asyncio.run(runner.tick()) is None
    assert runner.last_error == "db down"


def test_runner_can_wait_before_first_tick():
    waits = []
    task = _Task([])
    runner = PeriodicRunner(
        task,
        interval_seconds=5,
        run_at_start=False,
        wait=_scripted_wait([True], waits),
    )

    asyncio.run(runner.run(asyncio.Event()))

    assert task.calls == 0
    assert waits == [5]
