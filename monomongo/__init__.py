"""MongoDB connection strings and connection lifecycle observers."""

from .connections import (
    DEFAULT_CONNECT_OPTIONS,
    ConnectionHandle,
    ConnectionState,
    LifecycleEvent,
    LifecycleEventKind,
    MongoConnectionError,
    connect,
    connect_database,
    resolve_options,
)
from .models import DEFAULT_PORT, DatabaseTarget, LocalDatabase, RemoteDatabase
from .termination import TerminationHook
from .uri import build_uri, redact_uri

__version__ = "0.1.0"

__all__ = [
    "ConnectionHandle",
    "ConnectionState",
    "DEFAULT_CONNECT_OPTIONS",
    "DEFAULT_PORT",
    "DatabaseTarget",
    "LifecycleEvent",
    "LifecycleEventKind",
    "LocalDatabase",
    "MongoConnectionError",
    "RemoteDatabase",
    "TerminationHook",
    "build_uri",
    "connect",
    "connect_database",
    "redact_uri",
    "resolve_options",
]
