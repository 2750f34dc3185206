# backend/weaklink/errors.py


class WeakLinkError(Exception):
    """Base class for errors raised by the break-tracking core."""


class ProbeUnavailable(WeakLinkError):
    """The foreground-app API is missing or usage access was not granted."""


class StoreWriteFailure(WeakLinkError):
    """A break event could not be persisted."""


class WatchListUnavailable(WeakLinkError):
    """The tracked-apps source could not be reached."""


class AggregationConflict(WeakLinkError):
    """Two recomputes for the same group/day kept colliding on upsert."""
