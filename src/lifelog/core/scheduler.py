"""
Job Scheduler - Periodic and manual driver runs

Features:
- One daemon timer thread per automatic driver, each with its own cadence
  rule (driver metadata, then configured override, then default)
- Per-driver exclusion: at most one run in flight for any driver; a
  scheduled firing that finds the driver busy is skipped, a manual
  trigger is rejected with DriverBusyError
- Active-run counter and next-run preview for status views
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lifelog.core.cadence import CadenceRule
from lifelog.core.registry import DriverRegistry
from lifelog.drivers import Driver
from lifelog.errors import DriverBusyError, ValidationError
from lifelog.models import FetchResult
from lifelog.services.logger import log_success

DEFAULT_RULE = "5 * * * *"
MAX_NEXT_JOBS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduledJob:
    """Recurring run of one automatic driver"""

    driver_id: str
    name: str
    rule: CadenceRule
    next_run: datetime | None = None
    thread: threading.Thread | None = field(default=None, repr=False, compare=False)
    stop_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)


@dataclass(frozen=True)
class NextJob:
    driver_id: str
    name: str
    next_run: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "driverId": self.driver_id,
            "name": self.name,
            "nextRun": self.next_run.isoformat() if self.next_run else None,
        }


@dataclass(frozen=True)
class SchedulerStatus:
    active_jobs: int
    next_jobs: list[NextJob]

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeJobs": self.active_jobs,
            "nextJobs": [job.to_dict() for job in self.next_jobs],
        }


class JobScheduler:
    """
    Runs drivers on their cadence and on demand.

    Usage:
        scheduler = JobScheduler(registry, default_rule=config.default_schedule,
                                 rules=config.schedules)
        scheduler.start()
        result = scheduler.trigger_manual_run("spotify")
        scheduler.stop()
    """

    def __init__(
        self,
        registry: DriverRegistry,
        default_rule: str = DEFAULT_RULE,
        rules: dict[str, str] | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
        max_next_jobs: int = MAX_NEXT_JOBS,
    ):
        """
        Args:
            registry: Loaded drivers
            default_rule: Cadence for automatic drivers without their own rule
            rules: Per-driver cadence overrides (driver id -> rule)
            logger: Component logger (defaults to lifelog.scheduler)
            clock: Returns the current aware UTC time (for tests)
            max_next_jobs: Size of the next-run preview in get_status()

        Raises:
            ValidationError: If any rule is malformed
        """
        self.registry = registry
        self.default_rule = CadenceRule.parse(default_rule)
        self.rules = {driver_id: CadenceRule.parse(rule) for driver_id, rule in (rules or {}).items()}
        self.logger = logger or logging.getLogger("lifelog.scheduler")
        self._clock = clock or _utcnow
        self._max_next_jobs = max_next_jobs

        self._jobs: dict[str, ScheduledJob] = {}
        self._jobs_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._started = False

        # Exclusion: one lock per driver, acquired without blocking
        self._run_locks: dict[str, threading.Lock] = {}
        self._run_locks_guard = threading.Lock()

        self._active = 0
        self._active_lock = threading.Lock()

        self.logger.info("JobScheduler initialized")

    def resolve_rule(self, driver: Driver) -> CadenceRule:
        """Cadence for a driver: own metadata, then configured override, then default"""
        if driver.metadata.schedule:
            return CadenceRule.parse(driver.metadata.schedule)
        return self.rules.get(driver.id, self.default_rule)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> int:
        """
        Schedule every automatic driver. Calling start() again is a no-op.

        Returns:
            Number of scheduled jobs
        """
        with self._jobs_lock:
            if self._started:
                self.logger.debug("Scheduler already started")
                return len(self._jobs)
            self._started = True
            # Each start gets its own stop signal; loops of an earlier start keep theirs
            stop_event = threading.Event()
            self._stop_event = stop_event

        self.logger.info("Starting scheduler...")
        now = self._clock()
        for driver in self.registry.get_all_drivers():
            if not driver.metadata.is_automatic:
                continue
            try:
                rule = self.resolve_rule(driver)
            except ValidationError as e:
                self.logger.error(f"Not scheduling '{driver.metadata.name}': {e}")
                continue

            job = ScheduledJob(
                driver_id=driver.id,
                name=driver.metadata.name,
                rule=rule,
                next_run=rule.next_after(now),
                stop_event=stop_event,
            )
            job.thread = threading.Thread(
                target=self._job_loop,
                args=(job,),
                name=f"lifelog-job-{driver.id}",
                daemon=True,
            )
            with self._jobs_lock:
                self._jobs[driver.id] = job
            job.thread.start()
            self.logger.info(f"Scheduled automatic run for '{job.name}' with rule: {rule}")

        self.logger.info(f"Started with {len(self._jobs)} automatic jobs.")
        return len(self._jobs)

    def stop(self, timeout: float = 5.0) -> None:
        """
        Cancel pending firings and wait for timer threads to exit.

        Args:
            timeout: Seconds to wait per thread (an in-flight run may outlast it)
        """
        self._stop_event.set()
        with self._jobs_lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
            self._started = False

        for job in jobs:
            if job.thread is not None and job.thread is not threading.current_thread():
                job.thread.join(timeout=timeout)
                if job.thread.is_alive():
                    self.logger.warning(f"Job thread for '{job.name}' did not stop within {timeout}s")

        self.logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        with self._jobs_lock:
            return self._started

    # =========================================================================
    # Timer threads
    # =========================================================================

    def _job_loop(self, job: ScheduledJob) -> None:
        stop_event = job.stop_event
        while True:
            with self._jobs_lock:
                if self._jobs.get(job.driver_id) is not job:
                    return
                next_run = job.next_run
            if next_run is None:
                self.logger.warning(f"Rule '{job.rule}' for '{job.name}' never fires again")
                return

            delay = (next_run - self._clock()).total_seconds()
            if delay > 0:
                if stop_event.wait(delay):
                    return
                continue
            if stop_event.is_set():
                return

            self._run_scheduled(job)
            with self._jobs_lock:
                job.next_run = job.rule.next_after(max(self._clock(), next_run))

    def _run_scheduled(self, job: ScheduledJob) -> None:
        driver = self.registry.get_driver(job.driver_id)
        if driver is None:
            self.logger.warning(f"Scheduled driver '{job.driver_id}' is no longer loaded")
            return

        self.logger.info(f"Running scheduled job for: {job.name}")
        try:
            self._execute(driver)
        except DriverBusyError:
            self.logger.warning(f"Skipped scheduled run for '{job.name}': a run is already in progress")
        except Exception as e:
            # Scheduled failures end here; the next firing proceeds normally
            self.logger.error(f"FAILED: {job.name} run failed: {e}")

    # =========================================================================
    # Runs
    # =========================================================================

    def _run_lock(self, driver_id: str) -> threading.Lock:
        with self._run_locks_guard:
            if driver_id not in self._run_locks:
                self._run_locks[driver_id] = threading.Lock()
            return self._run_locks[driver_id]

    def _execute(self, driver: Driver) -> FetchResult:
        lock = self._run_lock(driver.id)
        if not lock.acquire(blocking=False):
            raise DriverBusyError(driver.id)
        try:
            with self._active_lock:
                self._active += 1
            try:
                result = driver.run_fetch()
            finally:
                with self._active_lock:
                    self._active -= 1
        finally:
            lock.release()

        log_success(
            self.logger,
            f"SUCCESS: {driver.metadata.name} run finished. Found {result.new_events} new events.",
        )
        if result.warnings:
            self.logger.warning(f"WARNINGS from {driver.metadata.name}: {', '.join(result.warnings)}")
        return result

    def trigger_manual_run(self, driver_id: str) -> FetchResult:
        """
        Run one driver now, outside its schedule.

        Args:
            driver_id: Id of a loaded driver

        Returns:
            FetchResult of the run

        Raises:
            NotFoundError: If the driver is not loaded
            DriverBusyError: If a run for the driver is already in flight
            DriverError / StorageError: If the run itself fails
        """
        driver = self.registry.require_driver(driver_id)
        self.logger.info(f"Triggering manual run for: {driver.metadata.name}")
        try:
            return self._execute(driver)
        except DriverBusyError:
            self.logger.warning(f"Manual run for '{driver.metadata.name}' rejected: already running")
            raise
        except Exception as e:
            self.logger.error(f"FAILED: Manual run for {driver.metadata.name} failed: {e}")
            raise

    def is_driver_running(self, driver_id: str) -> bool:
        return self._run_lock(driver_id).locked()

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def active_jobs(self) -> int:
        with self._active_lock:
            return self._active

    def get_jobs(self) -> list[ScheduledJob]:
        with self._jobs_lock:
            return list(self._jobs.values())

    def get_status(self) -> SchedulerStatus:
        """
        Active run count and the soonest upcoming firings.

        Returns:
            SchedulerStatus with next_jobs sorted ascending, unknown times last
        """
        with self._jobs_lock:
            upcoming = [NextJob(j.driver_id, j.name, j.next_run) for j in self._jobs.values()]
        upcoming.sort(key=lambda j: (j.next_run is None, j.next_run or datetime.min.replace(tzinfo=timezone.utc)))
        return SchedulerStatus(active_jobs=self.active_jobs, next_jobs=upcoming[: self._max_next_jobs])
