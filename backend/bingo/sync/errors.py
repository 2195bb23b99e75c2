class SyncError(Exception):
    """Base exception for the room sync library."""


class MessageError(SyncError, ValueError):
    """Raised when an inbound payload cannot be decoded into a typed message."""
