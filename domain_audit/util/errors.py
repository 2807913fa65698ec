"""Exception taxonomy.

ValidationError and NotFoundError surface to callers immediately.
CollectorError never leaves the orchestrator - it becomes an ``{'error': ...}``
entry in the scan envelope. PersistenceError is recorded on the bulk task that
hit it.
"""


class AuditError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(AuditError):
    """Bad input: empty or oversized domain list, bad format, too few domains."""


class CollectorError(AuditError):
    """A source collector could not produce a result for one category."""

    def __init__(self, category: str, message: str):
        super().__init__(message)
        self.category = category
        self.message = message


class PersistenceError(AuditError):
    """Database or cache write failure."""


class NotFoundError(AuditError):
    """Lookup miss for a job, task or key."""


class AlreadyCompleted(AuditError):
    """A bulk job that already finished was submitted for processing again."""
