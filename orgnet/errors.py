"""Error types shared across the orgnet package."""


class OrgnetError(RuntimeError):
    """Base class for all orgnet failures."""


class DataError(OrgnetError):
    """A single input record is malformed and has to be skipped."""

    def __init__(self, message: str, record=None):
        super().__init__(message)
        self.record = record


class NotFoundError(OrgnetError):
    """A referenced person/mapping does not exist."""

    def __init__(self, identifier: str, what: str = "mapping"):
        super().__init__(f"{what} not found: {identifier}")
        self.identifier = identifier


class StoreError(OrgnetError):
    """The mapping store rejected or failed a read/write."""


class RenderPreconditionError(OrgnetError):
    """The surface cannot be painted right now (zero-sized or released)."""
