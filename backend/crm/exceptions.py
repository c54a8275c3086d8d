"""
Error taxonomy for the CRM sync pipeline.

Per-record problems never abort a pass; only the classes marked as aborts
propagate out of the sync driver and extraction trigger.
"""


class CrmSyncError(Exception):
    """Base class for every CRM sync failure."""


class SourceUnavailableError(CrmSyncError):
    """The CRM could not be reached (network, timeout, 5xx). Aborts the pass."""


class SourceRequestError(CrmSyncError):
    """The CRM rejected a request (4xx other than rate limiting)."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailableError(CrmSyncError):
    """The local database could not be reached. Aborts the pass."""


class SyncConfigurationError(CrmSyncError):
    """Missing or invalid configuration. Aborts before any external call."""


class SyncAlreadyRunningError(CrmSyncError):
    """Another non-stale sync run is still in progress."""


class UnmappableRecordError(CrmSyncError):
    """A source record carries no usable identifier. The record is skipped."""

    def __init__(self, record_id, reason):
        super().__init__(f"Record {record_id}: {reason}")
        self.record_id = record_id
        self.reason = reason


def abort_label(exc):
    """Short prefix telling connectivity aborts apart from configuration ones."""
    if isinstance(exc, (SourceUnavailableError, StoreUnavailableError)):
        return "Connectivity error"
    if isinstance(exc, SyncConfigurationError):
        return "Configuration error"
    if isinstance(exc, SyncAlreadyRunningError):
        return "Sync already running"
    if isinstance(exc, SourceRequestError):
        return "CRM request error"
    return "Sync error"
