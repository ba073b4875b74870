"""
Data source drivers

Importing this package registers every bundled driver in DRIVER_FACTORIES.
"""

from .base import DRIVER_FACTORIES, Driver, DriverContext, FileDriver, format_bytes, register_driver
from .apple_photos import ApplePhotosDriver
from .google_takeout import GoogleTakeoutDriver
from .spotify import SpotifyDriver


def list_drivers() -> list:
    """List registered driver ids"""
    return list(DRIVER_FACTORIES.keys())


__all__ = [
    "DRIVER_FACTORIES",
    "ApplePhotosDriver",
    "Driver",
    "DriverContext",
    "FileDriver",
    "GoogleTakeoutDriver",
    "SpotifyDriver",
    "format_bytes",
    "list_drivers",
    "register_driver",
]
