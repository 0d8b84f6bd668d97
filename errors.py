class StoreError(RuntimeError):
    """Raised when a statement against the quote store fails."""


class DatabaseInitError(StoreError):
    """The store could not be opened, created or prepared."""


class DatabaseClosedError(StoreError):
    """An operation was attempted on a closed store handle."""


class ConstraintError(StoreError):
    """A uniqueness, NOT NULL, CHECK or foreign key constraint was violated."""


class DetachedEntityError(StoreError):
    """An entity was committed without being bound to a store."""
