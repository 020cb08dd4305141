"""Exceptions raised by the workforce."""


class WorkforceError(Exception):
    """Base class for workforce errors."""


class NotFoundError(WorkforceError):
    """Raised when a task id is unknown."""


class InvalidParentError(WorkforceError):
    """Raised when a new task cannot be attached under the requested parent."""


class InvalidStateError(WorkforceError):
    """Raised when an operation is not legal for a task's current status."""


class DestroyedError(WorkforceError):
    """Raised by mutating calls after the workforce has been destroyed."""


class PoolExhaustedError(WorkforceError):
    """Raised by the agent pool when every slot is taken. Not an error for callers."""


class ToolProtocolViolation(WorkforceError):
    """Raised when a worker agent invokes a reserved tool with a malformed payload."""
