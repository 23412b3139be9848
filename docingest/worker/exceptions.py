class JobError(Exception):
    """Base exception for processing-job errors."""


class UnknownJobTypeError(JobError):
    """Raised when a job's type has no registered handler."""


class ActiveJobExistsError(JobError):
    """Raised when an entity already has a PENDING or PROCESSING job of the same type."""
