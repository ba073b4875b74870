"""
Tests for JobScheduler: manual runs, exclusion, timers and status
"""

import logging
import threading
import time
from datetime import datetime, timezone

import pytest

from lifelog.core.registry import DriverRegistry
from lifelog.core.scheduler import JobScheduler
from lifelog.errors import DriverBusyError, DriverError, NotFoundError, ValidationError
from tests.factories import FakeDriver, make_event, utc


def fixed_clock(instant: datetime):
    return lambda: instant


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def registry(store, tmp_path):
    return DriverRegistry(store, tmp_path / "raw")


@pytest.fixture
def make_scheduler(registry):
    created = []

    def _make(drivers, **kwargs):
        registry.load_drivers(drivers)
        scheduler = JobScheduler(registry, **kwargs)
        created.append(scheduler)
        return scheduler

    yield _make
    for scheduler in created:
        scheduler.stop(timeout=2.0)


class TestManualRun:
    def test_unknown_driver(self, make_scheduler):
        scheduler = make_scheduler([])
        with pytest.raises(NotFoundError):
            scheduler.trigger_manual_run("nope")

    def test_returns_rows_inserted(self, make_scheduler, store):
        events = [make_event("a", utc(2024, 1, 1)), make_event("b", utc(2024, 1, 2))]
        scheduler = make_scheduler([FakeDriver("fake", store=store, events=events)])

        assert scheduler.trigger_manual_run("fake").new_events == 2
        # Second run indexes nothing new
        assert scheduler.trigger_manual_run("fake").new_events == 0

    def test_driver_error_propagates_and_counter_restored(self, make_scheduler):
        driver = FakeDriver("fake", fetch_error=DriverError("fake", "parse exploded"))
        scheduler = make_scheduler([driver])

        with pytest.raises(DriverError):
            scheduler.trigger_manual_run("fake")
        assert scheduler.active_jobs == 0
        assert scheduler.is_driver_running("fake") is False

        driver.fetch_error = None
        assert scheduler.trigger_manual_run("fake").new_events == 0

    def test_unexpected_exception_also_restores_counter(self, make_scheduler):
        scheduler = make_scheduler([FakeDriver("fake", fetch_error=RuntimeError("boom"))])
        with pytest.raises(RuntimeError):
            scheduler.trigger_manual_run("fake")
        assert scheduler.active_jobs == 0

    def test_concurrent_run_rejected(self, make_scheduler):
        gate = threading.Event()
        driver = FakeDriver("slow", gate=gate)
        scheduler = make_scheduler([driver])

        worker = threading.Thread(target=scheduler.trigger_manual_run, args=("slow",))
        worker.start()
        assert driver.started.wait(2)

        assert scheduler.active_jobs == 1
        with pytest.raises(DriverBusyError):
            scheduler.trigger_manual_run("slow")

        gate.set()
        worker.join(2)
        assert driver.calls == 1
        assert scheduler.active_jobs == 0

    def test_different_drivers_run_in_parallel(self, make_scheduler):
        gate = threading.Event()
        slow = FakeDriver("slow", gate=gate)
        scheduler = make_scheduler([slow, FakeDriver("quick")])

        worker = threading.Thread(target=scheduler.trigger_manual_run, args=("slow",))
        worker.start()
        assert slow.started.wait(2)

        scheduler.trigger_manual_run("quick")
        gate.set()
        worker.join(2)


class TestTimers:
    def test_only_automatic_drivers_scheduled(self, make_scheduler):
        scheduler = make_scheduler(
            [FakeDriver("auto"), FakeDriver("manual", automatic=False)],
            clock=fixed_clock(utc(2024, 1, 1, 10, 0)),
        )
        assert scheduler.start() == 1
        assert [job.driver_id for job in scheduler.get_jobs()] == ["auto"]

    def test_start_is_idempotent(self, make_scheduler):
        scheduler = make_scheduler([FakeDriver("auto")], clock=fixed_clock(utc(2024, 1, 1)))
        scheduler.start()
        first_thread = scheduler.get_jobs()[0].thread
        scheduler.start()
        assert len(scheduler.get_jobs()) == 1
        assert scheduler.get_jobs()[0].thread is first_thread

    def test_rule_precedence(self, make_scheduler):
        scheduler = make_scheduler(
            [
                FakeDriver("own", schedule="@daily"),
                FakeDriver("configured"),
                FakeDriver("plain"),
            ],
            default_rule="5 * * * *",
            rules={"configured": "@every 10m", "own": "@weekly"},
        )
        rules = {d.id: str(scheduler.resolve_rule(d)) for d in scheduler.registry.get_all_drivers()}
        assert rules == {"own": "@daily", "configured": "@every 10m", "plain": "5 * * * *"}

    def test_invalid_rule_rejected(self, registry):
        with pytest.raises(ValidationError):
            JobScheduler(registry, default_rule="every hour please")

    def test_firing_runs_driver(self, make_scheduler):
        driver = FakeDriver("ticker", schedule="@every 1s")
        scheduler = make_scheduler([driver])
        scheduler.start()
        assert driver.finished.wait(5)

    def test_failed_firing_is_logged_not_raised(self, make_scheduler, caplog):
        driver = FakeDriver("flaky", schedule="@every 1s", fetch_error=DriverError("flaky", "disk gone"))
        scheduler = make_scheduler([driver])

        with caplog.at_level(logging.ERROR, logger="lifelog.scheduler"):
            scheduler.start()
            assert driver.finished.wait(5)
            assert wait_for(lambda: any("FAILED" in r.getMessage() for r in caplog.records))

        assert scheduler.active_jobs == 0
        assert scheduler.get_jobs()[0].thread.is_alive()

    def test_firing_skipped_while_busy(self, make_scheduler, caplog):
        gate = threading.Event()
        driver = FakeDriver("busy", schedule="@every 1s", gate=gate)
        scheduler = make_scheduler([driver])

        worker = threading.Thread(target=scheduler.trigger_manual_run, args=("busy",))
        worker.start()
        assert driver.started.wait(2)

        with caplog.at_level(logging.WARNING, logger="lifelog.scheduler"):
            scheduler.start()
            skipped = wait_for(
                lambda: any("Skipped scheduled run" in r.getMessage() for r in caplog.records)
            )
        gate.set()
        worker.join(2)

        assert skipped
        assert driver.calls >= 1

    def test_stop_joins_threads(self, make_scheduler):
        scheduler = make_scheduler([FakeDriver("auto")], clock=fixed_clock(utc(2024, 1, 1)))
        scheduler.start()
        thread = scheduler.get_jobs()[0].thread
        scheduler.stop(timeout=2.0)
        assert not thread.is_alive()
        assert scheduler.get_jobs() == []
        assert scheduler.is_running is False

    def test_restart_during_run_keeps_one_timer(self, make_scheduler):
        gate = threading.Event()
        driver = FakeDriver("gated", schedule="@every 1s", gate=gate)
        scheduler = make_scheduler([driver])

        scheduler.start()
        assert driver.started.wait(5)
        old_thread = scheduler.get_jobs()[0].thread
        scheduler.stop(timeout=0.2)
        assert old_thread.is_alive()

        scheduler.start()
        gate.set()

        assert wait_for(lambda: not old_thread.is_alive())
        timers = [t for t in threading.enumerate() if t.name == "lifelog-job-gated"]
        assert timers == [scheduler.get_jobs()[0].thread]


class TestStatus:
    def test_next_jobs_sorted_and_capped(self, make_scheduler):
        drivers = [
            FakeDriver("half", schedule="30 * * * *"),
            FakeDriver("five", schedule="@every 5m"),
            FakeDriver("noon", schedule="0 12 * * *"),
            FakeDriver("newyear", schedule="@yearly"),
        ]
        scheduler = make_scheduler(drivers, clock=fixed_clock(utc(2024, 1, 1, 10, 0)))
        scheduler.start()

        status = scheduler.get_status()
        assert status.active_jobs == 0
        assert [j.driver_id for j in status.next_jobs] == ["five", "half", "noon"]
        assert status.next_jobs[0].next_run == utc(2024, 1, 1, 10, 5)

    def test_never_firing_job_sorted_last(self, make_scheduler):
        drivers = [
            FakeDriver("never", schedule="0 0 31 2 *"),
            FakeDriver("soon", schedule="@every 5m"),
        ]
        scheduler = make_scheduler(drivers, clock=fixed_clock(utc(2024, 1, 1, 10, 0)))
        scheduler.start()

        next_jobs = scheduler.get_status().next_jobs
        assert [j.driver_id for j in next_jobs] == ["soon", "never"]
        assert next_jobs[1].next_run is None

    def test_status_wire_shape(self, make_scheduler):
        scheduler = make_scheduler([FakeDriver("five", schedule="@every 5m")], clock=fixed_clock(utc(2024, 1, 1, 10, 0)))
        scheduler.start()
        assert scheduler.get_status().to_dict() == {
            "activeJobs": 0,
            "nextJobs": [{"driverId": "five", "name": "Five", "nextRun": "2024-01-01T10:05:00+00:00"}],
        }

    def test_no_jobs_before_start(self, make_scheduler):
        scheduler = make_scheduler([FakeDriver("auto")])
        assert scheduler.get_status().next_jobs == []
