"""Error types shared by repositories and services."""


class StorageError(RuntimeError):
    """A read or write against the document store failed."""


class OperationFailedError(RuntimeError):
    """A timer or entry operation could not be persisted.

    Carries the name of the attempted operation (start, stop, create,
    update, delete, duplicate, tick) so callers can report which user
    action failed. The storage error is chained as ``__cause__``.
    """

    def __init__(self, operation: str):
        super().__init__(f"{operation} failed")
        self.operation = operation
