"""
tablekv — document-store semantics over a single SQL table.

Public API:
    from tablekv import Store, SQLiteDatabase, connect
"""

__version__ = "0.1.0"

# Core
from tablekv.core.config import TableKVConfig
from tablekv.core.errors import (
    ConfigError,
    EncodingError,
    NotFoundError,
    ScanError,
    StorageError,
    StoreClosedError,
    TableKVError,
)

# Store
from tablekv.store.codec import BytesCodec, Codec, JSONCodec, ModelCodec
from tablekv.store.keys import KeyStream
from tablekv.store.sqlite import SQLiteDatabase, connect
from tablekv.store.store import Store

__all__ = [
    # Core
    "TableKVConfig",
    "TableKVError",
    "ConfigError",
    "StorageError",
    "NotFoundError",
    "StoreClosedError",
    "ScanError",
    "EncodingError",
    # Store
    "Store",
    "KeyStream",
    "SQLiteDatabase",
    "connect",
    "Codec",
    "JSONCodec",
    "ModelCodec",
    "BytesCodec",
]
