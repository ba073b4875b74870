"""
Error taxonomy for the lifelog core.

The boundary layer maps these to responses:
- ValidationError -> bad request
- NotFoundError -> not found
- QueryNotImplementedError -> not supported
- StorageError / DriverError -> logged failure
"""


class LifelogError(Exception):
    """Base class for all lifelog errors"""

    pass


class ValidationError(LifelogError):
    """Raised when filter, time-range or rule input is malformed"""

    pass


class NotFoundError(LifelogError):
    """Raised when a driver id is not registered"""

    pass


class QueryNotImplementedError(LifelogError, NotImplementedError):
    """Raised when an analytics query type is not supported"""

    pass


class StorageError(LifelogError):
    """Raised on schema, connection or transaction failures of the event store"""

    pass


class DriverError(LifelogError):
    """Raised when a driver fails to initialize, parse or persist"""

    def __init__(self, driver_id: str, message: str):
        super().__init__(f"[{driver_id}] {message}")
        self.driver_id = driver_id


class DriverBusyError(DriverError):
    """Raised when a run is requested for a driver that is already running"""

    def __init__(self, driver_id: str):
        super().__init__(driver_id, "a run is already in progress")
