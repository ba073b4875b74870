"""
Event Store Paths - Derive all directories from config/env

No hardcoded paths. All paths derived from LIFELOG_DATA_DIR.
"""

import os
from pathlib import Path


class EventStorePaths:
    """
    Centralized path management for the event index and raw artifacts.

    Default root: ~/lifelog_data/
    """

    def __init__(self, data_dir: Path | None = None, raw_dir: Path | None = None):
        """
        Initialize paths from explicit directories or environment.

        Args:
            data_dir: Override data directory (for testing)
            raw_dir: Override raw artifact root (defaults to data_dir/raw)
        """
        self._data_dir = Path(data_dir) if data_dir is not None else get_data_dir()
        self._raw_dir = Path(raw_dir) if raw_dir is not None else self._data_dir / "raw"

    @property
    def data_dir(self) -> Path:
        """Root data directory (LIFELOG_DATA_DIR)"""
        return self._data_dir

    @property
    def raw_dir(self) -> Path:
        """Root of raw source artifacts, one subdirectory per driver"""
        return self._raw_dir

    @property
    def index_db(self) -> Path:
        """DuckDB index file"""
        return self._data_dir / "index.duckdb"

    @property
    def log_dir(self) -> Path:
        return self._data_dir / "logs"


def get_data_dir() -> Path:
    """
    Get the data directory (LIFELOG_DATA_DIR).

    Returns:
        Path to ~/lifelog_data/ or LIFELOG_DATA_DIR env value
    """
    return Path(os.environ.get("LIFELOG_DATA_DIR", str(Path.home() / "lifelog_data")))
