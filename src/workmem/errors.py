"""Error taxonomy shared by the stores and tool handlers.

Stores raise these; MCP tool handlers turn them into structured
``{"success": False, "error": ...}`` results. Background pipelines catch
everything and log at warning level instead.
"""


class WorkmemError(Exception):
    """Base class for workmem errors."""

    pass


class ValidationError(WorkmemError):
    """A required field is missing or malformed."""

    pass


class NotFoundError(WorkmemError):
    """An id or key does not exist in the owning store."""

    pass


class CapacityExceededError(WorkmemError):
    """The store is at its hard cap and cannot admit the record."""

    pass


class PersistenceError(WorkmemError):
    """Reading or writing a backing document failed."""

    pass
