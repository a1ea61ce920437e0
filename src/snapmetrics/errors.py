"""
Error taxonomy shared by every collector.

Collectors are all-or-nothing: any of these aborts the snapshot. The CLI
decides how each kind maps to an exit code.
"""


class SnapshotError(Exception):
    """Base class for anything that stops a snapshot from being produced."""


class TransportError(SnapshotError):
    """Network or auth failure talking to a metrics API or database."""


class NoDataError(SnapshotError):
    """The backend answered fine but had no usable datapoints."""


class QueryError(SnapshotError):
    """The database rejected or failed the statistics query."""


class DecodeError(SnapshotError):
    """Row or response data couldn't be coerced into numbers."""


class UnknownMetricError(SnapshotError):
    """A snapshot carried a key that no graph definition describes."""


class CacheError(SnapshotError):
    """The previous-snapshot cache file couldn't be opened, read or written."""
