"""Unit tests for the cron scheduler."""

from concurrent.futures import Executor, Future
from datetime import datetime

import pytest
import pytz

from verification_service.scheduling import CronScheduler, next_fire_time

MONROVIA = pytz.timezone("Africa/Monrovia")


class InlineExecutor(Executor):
    """Runs submitted work on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future


def _at(*args):
    return MONROVIA.localize(datetime(*args))


@pytest.fixture
def clock():
    current = {"now": _at(2025, 6, 15, 5, 59)}
    return current


@pytest.fixture
def scheduler(clock):
    return CronScheduler(
        timezone="Africa/Monrovia",
        clock=lambda: clock["now"],
        executor=InlineExecutor(),
    )


def test_next_fire_time_daily():
    assert next_fire_time("0 6 * * *", datetime(2025, 6, 15, 5, 59), MONROVIA) == _at(2025, 6, 15, 6, 0)


def test_next_fire_time_is_strictly_after():
    assert next_fire_time("0 6 * * *", _at(2025, 6, 15, 6, 0), MONROVIA) == _at(2025, 6, 16, 6, 0)


def test_next_fire_time_weekly_monday():
    # 2025-06-15 is a Sunday.
    assert next_fire_time("0 6 * * mon", datetime(2025, 6, 15, 7, 0), MONROVIA) == _at(2025, 6, 16, 6, 0)


def test_due_job_runs_and_rearms(scheduler):
    calls = []
    scheduler.register_recurring("daily", "0 6 * * *", lambda: calls.append("daily"))

    assert scheduler.run_pending(_at(2025, 6, 15, 5, 59, 59)) == []
    assert scheduler.run_pending(_at(2025, 6, 15, 6, 0)) == ["daily"]
    assert calls == ["daily"]
    assert scheduler.next_run("daily") == _at(2025, 6, 16, 6, 0)

    assert scheduler.run_pending(_at(2025, 6, 15, 12, 0)) == []


def test_cancel_prevents_run(scheduler):
    calls = []
    scheduler.register_recurring("daily", "0 6 * * *", lambda: calls.append("daily"))

    assert scheduler.cancel("daily") is True
    assert scheduler.cancel("daily") is False
    assert scheduler.run_pending(_at(2025, 6, 15, 6, 0)) == []
    assert calls == []
    assert not scheduler.is_registered("daily")


def test_register_replaces_existing_job(scheduler):
    calls = []
    scheduler.register_recurring("company-sync:1", "0 6 * * *", lambda: calls.append("old"))
    scheduler.register_recurring("company-sync:1", "0 6 * * *", lambda: calls.append("new"))

    scheduler.run_pending(_at(2025, 6, 15, 6, 0))

    assert calls == ["new"]
    assert scheduler.keys() == ["company-sync:1"]


def test_invalid_cron_rejected(scheduler):
    with pytest.raises(ValueError):
        scheduler.register_recurring("broken", "every tuesday", lambda: None)
    assert scheduler.keys() == []


def test_failing_job_does_not_stop_others(scheduler):
    calls = []

    def boom():
        raise RuntimeError("feed exploded")

    scheduler.register_recurring("a-failing", "0 6 * * *", boom)
    scheduler.register_recurring("b-working", "0 6 * * *", lambda: calls.append("ran"))

    dispatched = scheduler.run_pending(_at(2025, 6, 15, 6, 0))

    assert sorted(dispatched) == ["a-failing", "b-working"]
    assert calls == ["ran"]
    assert scheduler.is_registered("a-failing")


def test_start_and_shutdown(scheduler):
    scheduler.register_recurring("hourly", "0 * * * *", lambda: None)
    scheduler.start()
    scheduler.start()

    scheduler.shutdown(wait=True)

    assert scheduler.keys() == []
