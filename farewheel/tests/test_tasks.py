from datetime import datetime, timezone

import pytest

from farewheel.tasks import ALERT_JOB_ID, CLEANUP_JOB_ID, MaintenanceScheduler
from farewheel.tests.helpers import T0


class FakeEvaluator:
    def __init__(self, triggered=2, error=None):
        self.runs = 0
        self.triggered = triggered
        self.error = error

    def evaluate_all(self):
        self.runs += 1
        if self.error:
            raise self.error
        return self.triggered


class FakeHistory:
    def __init__(self):
        self.prunes = 0

    def prune(self, retention_days=None):
        self.prunes += 1
        return 7


class FakeOffers:
    def __init__(self):
        self.purges = 0

    def purge_expired(self):
        self.purges += 1
        return 3


@pytest.fixture
def parts():
    return FakeEvaluator(), FakeHistory(), FakeOffers()


@pytest.fixture
def sched(parts, clock):
    s = MaintenanceScheduler(*parts, alert_interval_h=2, prune_hour=2, prune_minute=0, clock=clock)
    s.start(paused=True)
    yield s
    s.shutdown(wait=False)


def test_both_jobs_registered(sched):
    alert_job = sched.sched.get_job(ALERT_JOB_ID)
    cleanup_job = sched.sched.get_job(CLEANUP_JOB_ID)
    assert alert_job is not None and cleanup_job is not None
    # first sweep runs immediately at start-up
    assert alert_job.next_run_time == T0
    assert alert_job.trigger.interval.total_seconds() == 2 * 3600


def test_cleanup_anchored_to_wall_clock(sched):
    trigger = sched.sched.get_job(CLEANUP_JOB_ID).trigger
    before = datetime(2024, 6, 1, 1, 0, tzinfo=timezone.utc)
    after = datetime(2024, 6, 1, 3, 0, tzinfo=timezone.utc)

    assert trigger.get_next_fire_time(None, before) == datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc)
    assert trigger.get_next_fire_time(None, after) == datetime(2024, 6, 2, 2, 0, tzinfo=timezone.utc)
    # after a run the following day is picked, not a fixed interval from start
    fired = datetime(2024, 6, 2, 2, 0, tzinfo=timezone.utc)
    assert trigger.get_next_fire_time(fired, datetime(2024, 6, 2, 2, 0, 1, tzinfo=timezone.utc)) == datetime(
        2024, 6, 3, 2, 0, tzinfo=timezone.utc
    )


def test_jobs_cancel_independently(sched):
    assert sched.cancel(ALERT_JOB_ID) is True
    assert sched.sched.get_job(ALERT_JOB_ID) is None
    assert sched.sched.get_job(CLEANUP_JOB_ID) is not None
    assert sched.cancel(ALERT_JOB_ID) is False


def test_manual_triggers(sched, parts):
    evaluator, history, offers = parts
    assert sched.trigger_alert_sweep() == 2
    assert sched.trigger_history_cleanup() == 7
    assert (evaluator.runs, history.prunes, offers.purges) == (1, 1, 1)


def test_job_bodies_log_failures(parts, clock, caplog):
    evaluator, history, offers = parts
    evaluator.error = RuntimeError("boom")
    s = MaintenanceScheduler(evaluator, history, offers, clock=clock)
    s._alert_job()
    assert "Error in scheduled price alerts check" in caplog.text

    s._cleanup_job()
    assert (history.prunes, offers.purges) == (1, 1)


def test_shutdown_without_start(parts, clock):
    MaintenanceScheduler(*parts, clock=clock).shutdown()
