"""
Driver base classes and registration table

A driver owns one personal-data source: it knows where the raw exports
live, how to turn them into Events and how healthy it is. Drivers never
query the event store and never talk to each other.
"""

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import ClassVar

from lifelog.errors import DriverError, StorageError
from lifelog.models import DriverMetadata, DriverStatus, Event, FetchResult, Health
from lifelog.services.event_store import EventStore

logger = logging.getLogger(__name__)


@dataclass
class DriverContext:
    """Everything a driver factory needs to build a driver"""

    store: EventStore
    raw_root: Path
    logger: logging.Logger | None = None


DriverFactory = Callable[[DriverContext], "Driver"]

# Driver registry: id -> factory
DRIVER_FACTORIES: dict[str, DriverFactory] = {}


def register_driver(driver_id: str, factory: DriverFactory | None = None):
    """
    Register a driver factory under its id.

    Usable directly (register_driver("x", factory)) or as a class decorator
    (@register_driver("x")); classes are built through from_context().

    Raises:
        ValueError: If the id is already registered
    """

    def decorator(target):
        if driver_id in DRIVER_FACTORIES:
            raise ValueError(f"Driver factory already registered: {driver_id}")
        DRIVER_FACTORIES[driver_id] = target.from_context if isinstance(target, type) else target
        return target

    if factory is not None:
        return decorator(factory)
    return decorator


def format_bytes(size: int) -> str:
    """Human-readable byte count ("0 B", "512 B", "1.2 MB")"""
    value = float(size)
    for unit in ["B", "KB", "MB", "GB"]:
        if value < 1024:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def directory_size(path: Path) -> int:
    """
    Total size of regular files under path.

    Raises:
        OSError: If path is missing or unreadable
    """
    if not path.is_dir():
        raise FileNotFoundError(f"Raw directory missing: {path}")
    total = 0
    for root, _dirs, files in os.walk(path, onerror=_raise):
        for name in files:
            total += os.stat(os.path.join(root, name)).st_size
    return total


def _raise(error: OSError) -> None:
    raise error


class Driver(ABC):
    """
    Abstract base class for data source drivers

    Subclasses declare a class-level `metadata` and implement the
    lifecycle: init() once at load, run_fetch() per scheduled or manual
    run, get_status() on demand.
    """

    metadata: ClassVar[DriverMetadata]

    @property
    def id(self) -> str:
        return self.metadata.id

    @abstractmethod
    def init(self) -> None:
        """
        Prepare the driver (directories, mounts, credentials).

        Raises:
            DriverError: If the driver cannot be used
        """

    @abstractmethod
    def parse_data(self) -> list[Event]:
        """Read the raw source and convert it into Events"""

    @abstractmethod
    def run_fetch(self) -> FetchResult:
        """
        Run one fetch cycle: parse, then hand the batch to the store.

        Returns:
            FetchResult with the number of rows actually inserted
        """

    @abstractmethod
    def get_status(self) -> DriverStatus:
        """Report health. Must not raise."""

    def __str__(self):
        return self.id


class FileDriver(Driver):
    """
    Shared base for drivers that read exported files from a raw directory.

    Subclasses implement iter_source_files() and parse_file(). A file or
    record that cannot be parsed becomes a warning on the FetchResult
    rather than failing the run.
    """

    def __init__(
        self,
        store: EventStore,
        raw_root: Path | str,
        logger: logging.Logger | None = None,
    ):
        """
        Args:
            store: Event store receiving parsed batches
            raw_root: Root of raw artifacts (this driver uses raw_root/<id>)
            logger: Component logger (defaults to lifelog.driver.<id>)
        """
        self.store = store
        self.raw_dir = Path(raw_root) / self.metadata.id
        self.logger = logger or logging.getLogger(f"lifelog.driver.{self.metadata.id}")

        self.last_pull: datetime | None = None
        self.last_error: str | None = None
        self.last_warnings: list[str] = []
        self._warnings: list[str] = []

    @classmethod
    def from_context(cls, ctx: DriverContext) -> "FileDriver":
        child = ctx.logger.getChild(cls.metadata.id) if ctx.logger else None
        return cls(ctx.store, ctx.raw_root, logger=child)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self) -> None:
        try:
            self.raw_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DriverError(self.id, f"Cannot create raw directory {self.raw_dir}: {e}") from e
        self.logger.info(f"{self.metadata.name} driver initialized (raw data: {self.raw_dir})")

    def run_fetch(self) -> FetchResult:
        self.logger.info(f"Running {self.metadata.name} fetch...")
        try:
            events = self.parse_data()
            inserted = self.store.add_events(events) if events else 0
        except (DriverError, StorageError) as e:
            self.last_error = str(e)
            raise
        except Exception as e:
            self.last_error = str(e)
            raise DriverError(self.id, f"Fetch failed: {e}") from e

        self.last_pull = datetime.now(timezone.utc)
        self.last_error = None
        self.last_warnings = list(self._warnings)
        self.logger.info(
            f"{self.metadata.name}: parsed {len(events)} events, {inserted} new"
            + (f", {len(self.last_warnings)} warnings" if self.last_warnings else "")
        )
        return FetchResult(new_events=inserted, warnings=self.last_warnings)

    def get_status(self) -> DriverStatus:
        try:
            usage = format_bytes(directory_size(self.raw_dir))
        except OSError as e:
            status = DriverStatus.error(f"Storage probe failed: {e}")
            status.last_pull = self.last_pull
            return status

        if self.last_error:
            health, message = Health.WARN, f"Last run failed: {self.last_error}"
        elif self.last_warnings:
            health, message = Health.WARN, f"Last run finished with {len(self.last_warnings)} warnings"
        elif self.last_pull is None:
            health, message = Health.OK, "Awaiting first run."
        else:
            health, message = Health.OK, "Last run succeeded"

        return DriverStatus(last_pull=self.last_pull, storage_usage=usage, health=health, message=message)

    # =========================================================================
    # Parsing
    # =========================================================================

    def parse_data(self) -> list[Event]:
        self._warnings = []
        events: list[Event] = []
        for path in self.iter_source_files():
            try:
                events.extend(self.parse_file(path))
            except (OSError, ValueError) as e:
                self.warn(f"Skipped {path.name}: {e}")
        return events

    def warn(self, message: str) -> None:
        """Record a non-fatal problem for the current run"""
        self._warnings.append(message)
        self.logger.warning(message)

    @abstractmethod
    def iter_source_files(self) -> Iterable[Path]:
        """Raw files this driver understands, in a stable order"""

    @abstractmethod
    def parse_file(self, path: Path) -> list[Event]:
        """
        Convert one raw file into Events.

        Raises:
            OSError, ValueError: If the file as a whole is unreadable
        """
