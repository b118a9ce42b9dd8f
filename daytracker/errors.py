"""Exception types shared across the tracker."""


class DaytrackerError(Exception):
    """Base class for tracker errors."""


class FormatError(DaytrackerError, ValueError):
    """A wall-clock string or block definition is malformed."""


class StoreWriteError(DaytrackerError):
    """A status update or history append could not be persisted."""


class NotFoundError(DaytrackerError):
    """A block id is no longer present in the store."""
