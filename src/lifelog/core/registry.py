"""
Driver Registry - Loads drivers and looks them up by id

A driver that fails init() is logged and left out; loading continues
with the rest. Lookup is read-only after load_drivers() returns.
"""

import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from lifelog.drivers import DRIVER_FACTORIES, Driver, DriverContext
from lifelog.errors import NotFoundError
from lifelog.services.event_store import EventStore


class DriverRegistry:
    """
    Registry of loaded drivers, in load order.

    Duplicate ids: the first successfully initialized driver wins, later
    ones are rejected and listed in `rejected`.
    """

    def __init__(
        self,
        store: EventStore,
        raw_root: Path | str,
        logger: logging.Logger | None = None,
        disabled: Iterable[str] = (),
    ):
        """
        Args:
            store: Event store handed to every driver
            raw_root: Root of raw artifacts
            logger: Component logger (defaults to lifelog.registry)
            disabled: Driver ids to skip when building from DRIVER_FACTORIES
        """
        self.store = store
        self.raw_root = Path(raw_root)
        self.logger = logger or logging.getLogger("lifelog.registry")
        self.disabled = set(disabled)

        self._drivers: dict[str, Driver] = {}
        self._lock = threading.Lock()
        self.failed: dict[str, str] = {}
        self.rejected: list[str] = []

    def load_drivers(self, drivers: Iterable[Driver] | None = None) -> list[str]:
        """
        Initialize drivers and register the ones that succeed.

        Args:
            drivers: Explicit driver instances (defaults to one per
                registered factory, minus disabled ids)

        Returns:
            Ids of drivers loaded by this call
        """
        candidates = list(drivers) if drivers is not None else self._build_from_factories()
        loaded: list[str] = []

        for driver in candidates:
            driver_id = driver.metadata.id
            with self._lock:
                if driver_id in self._drivers:
                    self.logger.error(
                        f"Duplicate driver id '{driver_id}' ({driver.metadata.name}) rejected; "
                        f"keeping the driver loaded first"
                    )
                    self.rejected.append(driver_id)
                    continue

            try:
                driver.init()
            except Exception as e:
                self.logger.error(f"Failed to load driver: {driver.metadata.name} - {e}")
                self.failed[driver_id] = str(e)
                continue

            with self._lock:
                if driver_id in self._drivers:
                    self.logger.error(f"Duplicate driver id '{driver_id}' rejected after init")
                    self.rejected.append(driver_id)
                    continue
                self._drivers[driver_id] = driver
            self.failed.pop(driver_id, None)
            loaded.append(driver_id)
            self.logger.info(f"Loaded driver: {driver.metadata.name} ({driver_id})")

        self.logger.info(
            f"Driver registry ready: {len(self._drivers)} loaded, {len(self.failed)} failed"
        )
        return loaded

    def _build_from_factories(self) -> list[Driver]:
        ctx = DriverContext(
            store=self.store,
            raw_root=self.raw_root,
            logger=logging.getLogger("lifelog.driver"),
        )
        drivers = []
        for driver_id, factory in DRIVER_FACTORIES.items():
            if driver_id in self.disabled:
                self.logger.info(f"Driver '{driver_id}' disabled by configuration")
                continue
            try:
                drivers.append(factory(ctx))
            except Exception as e:
                self.logger.error(f"Failed to build driver '{driver_id}': {e}")
                self.failed[driver_id] = str(e)
        return drivers

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_driver(self, driver_id: str) -> Driver | None:
        with self._lock:
            return self._drivers.get(driver_id)

    def require_driver(self, driver_id: str) -> Driver:
        """
        Look up a loaded driver.

        Raises:
            NotFoundError: If no driver with that id is loaded
        """
        driver = self.get_driver(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver with ID '{driver_id}' not found.")
        return driver

    def get_all_drivers(self) -> list[Driver]:
        with self._lock:
            return list(self._drivers.values())

    def get_driver_ids(self) -> list[str]:
        with self._lock:
            return list(self._drivers.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)

    def __contains__(self, driver_id: str) -> bool:
        with self._lock:
            return driver_id in self._drivers
