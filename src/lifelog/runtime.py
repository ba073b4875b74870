"""
Lifelog Runtime - Wires store, registry, scheduler and query engine

Startup order: event store (fatal on failure), drivers (partial load is
fine), scheduler. Also exposes the status views the boundary layer
serves: data sources, system stats and recent logs.
"""

import logging
import os
import time
from typing import Any

from lifelog.config import Config
from lifelog.core.query_engine import QueryEngine
from lifelog.core.registry import DriverRegistry
from lifelog.core.scheduler import JobScheduler
from lifelog.drivers.base import format_bytes
from lifelog.errors import StorageError
from lifelog.models import DriverStatus
from lifelog.services.event_store import EventStore
from lifelog.services.logger import RecentLogHandler

logger = logging.getLogger("lifelog.runtime")


class LifelogRuntime:
    """
    Process-level facade over the lifelog core.

    Usage:
        runtime = LifelogRuntime.from_config(Config())
        runtime.start()
        runtime.list_sources()
        runtime.stop()
    """

    def __init__(
        self,
        store: EventStore,
        registry: DriverRegistry,
        scheduler: JobScheduler,
        query_engine: QueryEngine,
        recent_logs: RecentLogHandler | None = None,
        stop_timeout: float = 5.0,
    ):
        """
        Args:
            recent_logs: Shared recent-log buffer (from LoggerService). When
                omitted the runtime attaches its own to the "lifelog" logger.
        """
        self.store = store
        self.registry = registry
        self.scheduler = scheduler
        self.query_engine = query_engine
        self.stop_timeout = stop_timeout

        self._owns_recent = recent_logs is None
        self.recent = recent_logs or RecentLogHandler()
        self._started_at: float | None = None
        self._stopped = False

    @classmethod
    def from_config(cls, config: Config, recent_logs: RecentLogHandler | None = None) -> "LifelogRuntime":
        """Build all components from a Config"""
        store = EventStore(config.db_path, logger=logging.getLogger("lifelog.store"))
        registry = DriverRegistry(store, config.raw_dir, disabled=config.disabled_drivers)
        scheduler = JobScheduler(
            registry,
            default_rule=config.default_schedule,
            rules=config.schedules,
            max_next_jobs=Config.SCHEDULER["max_next_jobs"],
        )
        query_engine = QueryEngine(
            store,
            default_limit=Config.QUERY["default_search_limit"],
            max_limit=Config.QUERY["max_search_limit"],
            default_top_limit=Config.QUERY["default_top_list_limit"],
        )
        return cls(
            store,
            registry,
            scheduler,
            query_engine,
            recent_logs=recent_logs,
            stop_timeout=Config.SCHEDULER["stop_timeout"],
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> list[str]:
        """
        Initialize the store, load drivers and start the scheduler.

        Returns:
            Ids of loaded drivers

        Raises:
            StorageError: If the event store cannot be initialized
        """
        if self._owns_recent:
            lifelog_logger = logging.getLogger("lifelog")
            if lifelog_logger.level == logging.NOTSET:
                lifelog_logger.setLevel(logging.INFO)
            lifelog_logger.addHandler(self.recent)

        logger.info("Initializing components...")
        try:
            self.store.init()
        except StorageError as e:
            logger.critical(f"Event store unavailable, aborting startup: {e}")
            raise

        loaded = self.registry.load_drivers()
        self.scheduler.start()
        self._started_at = time.monotonic()
        logger.info(f"Loaded drivers: {', '.join(loaded) if loaded else '(none)'}")
        return loaded

    def stop(self) -> None:
        """Stop the scheduler and close the store. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        self.scheduler.stop(timeout=self.stop_timeout)
        self.store.close()
        logger.info("Lifelog runtime stopped")
        if self._owns_recent:
            logging.getLogger("lifelog").removeHandler(self.recent)

    def __enter__(self) -> "LifelogRuntime":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # =========================================================================
    # Status views
    # =========================================================================

    @property
    def uptime(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def list_sources(self) -> list[dict[str, Any]]:
        """
        Every loaded driver with its current status.

        A driver whose status probe raises is reported with ERROR health.
        """
        sources = []
        for driver in self.registry.get_all_drivers():
            try:
                status = driver.get_status()
            except Exception as e:
                logger.error(f"Failed to get status for {driver.metadata.id}: {e}")
                status = DriverStatus.error("Failed to fetch status.")
            sources.append(
                {
                    "metadata": driver.metadata.model_dump(by_alias=True),
                    "status": status.model_dump(by_alias=True, mode="json"),
                }
            )
        return sources

    def run_source(self, driver_id: str) -> dict[str, Any]:
        """
        Manual run of one driver, shaped for the boundary layer.

        Raises:
            NotFoundError, DriverBusyError, DriverError, StorageError
        """
        result = self.scheduler.trigger_manual_run(driver_id)
        return {
            "message": f"Successfully triggered run for '{driver_id}'.",
            **result.model_dump(by_alias=True),
        }

    def system_stats(self) -> dict[str, Any]:
        """Uptime, driver totals and ingestion state"""
        drivers = self.registry.get_all_drivers()
        index_stats = self.store.get_stats()
        job_status = self.scheduler.get_status()

        stats: dict[str, Any] = {
            "uptime": round(self.uptime, 3),
            "driverStatus": {
                "total": len(drivers),
                "active": sum(1 for d in drivers if d.metadata.is_automatic),
            },
            "ingestion": {
                "totalEvents": index_stats.total_events,
                "activeJobs": job_status.active_jobs,
                "nextJobs": [job.to_dict() for job in job_status.next_jobs],
            },
            "storage": {"used": self._index_size()},
        }
        if hasattr(os, "getloadavg"):
            stats["cpuLoad"] = list(os.getloadavg())
        return stats

    def _index_size(self) -> str:
        path = self.store.db_path
        if path == ":memory:" or not os.path.exists(path):
            return format_bytes(0)
        return format_bytes(os.path.getsize(path))

    def recent_logs(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent log records, newest first"""
        return self.recent.get_recent(limit)
