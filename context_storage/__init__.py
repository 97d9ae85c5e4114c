from __future__ import annotations

from .config import StorageConfig
from .errors import (
    ContextStorageError,
    DecodeError,
    InvalidPathError,
    NotConnectedError,
    ProcedureMissingError,
    TransportError,
)
from .interfaces import ContextStorage, StoreTransport
from .memory_store import MemoryTransport
from .paths import normalize
from .planner import UNSET
from .redis_storage import RedisContextStorage, create_storage
from .settings import Settings, get_settings
from .transport import RedisTransport

__all__ = [
    "ContextStorage",
    "StoreTransport",
    "RedisContextStorage",
    "RedisTransport",
    "MemoryTransport",
    "create_storage",
    "StorageConfig",
    "Settings",
    "get_settings",
    "normalize",
    "UNSET",
    "ContextStorageError",
    "InvalidPathError",
    "NotConnectedError",
    "TransportError",
    "ProcedureMissingError",
    "DecodeError",
]
