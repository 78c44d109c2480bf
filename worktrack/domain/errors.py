"""Domain errors raised by the timer and KPI services."""


class WorkTrackError(Exception):
    """Base class for all errors raised by the core."""


class NotFound(WorkTrackError):
    """The referenced record does not exist or does not belong to the caller."""


class AlreadyStopped(NotFound):
    """The entry exists and is owned by the caller, but it is no longer active."""


class ValidationError(WorkTrackError):
    """Malformed period, date, category or patch input."""


class StorageError(WorkTrackError):
    """Transient failure of the underlying store. Safe to retry at the caller."""


class PartialComputationImpossible(StorageError):
    """Report generation aborted because a required read failed."""
