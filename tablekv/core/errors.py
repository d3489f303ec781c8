"""
tablekv exception hierarchy.

Every error raised by tablekv itself inherits from TableKVError.
Errors coming from the database driver (constraint violations, dead
connections), cancellation and timeouts are NOT wrapped; they reach
the caller exactly as the driver or asyncio raised them.

Usage:
    try:
        await store.update("user/1", profile)
    except NotFoundError as e:
        # Key was never stored
    except TableKVError as e:
        # Any tablekv error
"""


class TableKVError(Exception):
    """Base exception for all tablekv errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Configuration ━━━


class ConfigError(TableKVError):
    """Configuration is invalid, missing, or malformed."""

    pass


# ━━━ Storage ━━━


class StorageError(TableKVError):
    """Store-level failure that did not come straight from the driver."""

    pass


class NotFoundError(StorageError):
    """Update or delete matched zero rows."""

    def __init__(self, key: str, details: dict | None = None):
        self.key = key
        super().__init__(f"Key '{key}' not found", details)


class StoreClosedError(StorageError):
    """Operation attempted on a closed store or statement."""

    pass


class ScanError(StorageError):
    """A row could not be read into the expected column type."""

    def __init__(self, message: str, row: tuple | None = None):
        self.row = row
        super().__init__(message, {"row": row} if row is not None else None)


# ━━━ Values ━━━


class EncodingError(TableKVError):
    """Value failed to encode or decode."""

    pass


# ━━━ Streams ━━━


class ChannelClosedError(TableKVError):
    """Send on a closed channel, double close, or receive past the end."""

    pass
