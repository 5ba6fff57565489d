"""Error types raised by indexsync."""


class IndexSyncError(Exception):
    """Base error for index synchronization."""

    pass


class RegistrationError(IndexSyncError):
    """Record type registration is invalid or duplicated."""

    def __init__(self, type_name: str, reason: str) -> None:
        super().__init__(f"Cannot register {type_name}: {reason}")
        self.type_name = type_name
        self.reason = reason


class UnknownRecordTypeError(IndexSyncError, KeyError):
    """Record type was never registered for indexing."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f"Record type not registered for indexing: {type_name}")
        self.type_name = type_name

    def __str__(self) -> str:
        return self.args[0]


class ChangeTrackingUnavailable(IndexSyncError):
    """Record cannot report whether a field changed on its last save."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Change tracking unavailable for field: {field}")
        self.field = field
