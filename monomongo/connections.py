"""Connection lifecycle adapter built on the Motor client."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence, Union

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import monitoring
from pymongo.errors import PyMongoError

from .uri import build_uri, redact_uri

if TYPE_CHECKING:
    from .config import Settings

LOG = logging.getLogger(__name__)

# No IPv4-only "family" default: PyMongo has no address-family option and
# rejects unknown keys.
DEFAULT_CONNECT_OPTIONS: Mapping[str, Any] = {
    "autoCreate": True,
    "autoIndex": False,  # don't build declared indexes
    "connectTimeoutMS": 30000,
    "socketTimeoutMS": 45000,
}

# Options consumed by the handle itself; everything else goes to the client.
_HANDLE_OPTIONS = ("autoCreate", "autoIndex")

IndexKeys = Union[str, Sequence[tuple[str, Any]]]


class MongoConnectionError(RuntimeError):
    """Raised when the client cannot establish the initial connection."""


class LifecycleEventKind(str, enum.Enum):
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"
    OPEN = "open"


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """Notification delivered to lifecycle listeners."""

    kind: LifecycleEventKind
    uri: str
    error: BaseException | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


LifecycleListener = Callable[[LifecycleEvent], None]
ErrorCallback = Callable[[BaseException], None]


def resolve_options(options: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Return the option set a connection will use.

    Supplied options replace the defaults entirely, even an empty mapping.
    There is no per-key merge, so passing ``{"socketTimeoutMS": 1000}`` also
    drops ``autoCreate`` and ``connectTimeoutMS``.
    """

    if options is None:
        return dict(DEFAULT_CONNECT_OPTIONS)
    return dict(options)


class _DriverObserver(monitoring.TopologyListener, monitoring.ServerHeartbeatListener):
    """Forward PyMongo monitoring callbacks onto the handle's event loop.

    PyMongo publishes these from its monitor threads, so nothing here touches
    handle state directly.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        sink: Callable[[LifecycleEventKind, BaseException | None], None],
    ) -> None:
        self._loop = loop
        self._sink = sink

    def opened(self, event: monitoring.TopologyOpenedEvent) -> None:
        LOG.debug("Topology opened", extra={"topology_id": str(event.topology_id)})

    def description_changed(self, event: monitoring.TopologyDescriptionChangedEvent) -> None:
        was_known = event.previous_description.has_known_servers
        is_known = event.new_description.has_known_servers
        if is_known and not was_known:
            self._post(LifecycleEventKind.CONNECTED)
        elif was_known and not is_known:
            self._post(LifecycleEventKind.DISCONNECTED)

    def closed(self, event: monitoring.TopologyClosedEvent) -> None:
        LOG.debug("Topology closed", extra={"topology_id": str(event.topology_id)})

    def started(self, event: monitoring.ServerHeartbeatStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.ServerHeartbeatSucceededEvent) -> None:
        pass

    def failed(self, event: monitoring.ServerHeartbeatFailedEvent) -> None:
        self._post(LifecycleEventKind.ERROR, event.reply)

    def _post(self, kind: LifecycleEventKind, error: BaseException | None = None) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._sink, kind, error)


class ConnectionHandle:
    """Owns one Motor client and reports its lifecycle to subscribers.

    Observers are attached when the client is created, before any connection
    attempt. ``open()`` performs the initial connect; ``wait()`` blocks until
    the handle is closed and re-raises the error if the connection failed
    after it was established.
    """

    def __init__(
        self,
        uri: str,
        options: Mapping[str, Any] | None = None,
        *,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._uri = uri
        self._options = resolve_options(options)
        client_options = {
            key: value for key, value in self._options.items() if key not in _HANDLE_OPTIONS
        }
        self._auto_create = bool(self._options.get("autoCreate", False))
        self._auto_index = bool(self._options.get("autoIndex", False))
        self._on_error = on_error
        self._loop = asyncio.get_running_loop()
        self._done: asyncio.Future[None] = self._loop.create_future()
        self._listeners: list[LifecycleListener] = [self._log_event]
        self._declared: dict[str, tuple[IndexKeys, ...]] = {}
        self._state = ConnectionState.DISCONNECTED
        self._opened = False
        self._observer = _DriverObserver(self._loop, self._handle_driver_event)
        try:
            self._client = AsyncIOMotorClient(uri, event_listeners=[self._observer], **client_options)
        except PyMongoError as exc:
            LOG.error("Invalid MongoDB connection settings for %s: %s", redact_uri(uri), exc)
            raise MongoConnectionError(f"Failed to create client for {redact_uri(uri)}: {exc}") from exc

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def client(self) -> AsyncIOMotorClient:
        return self._client

    @property
    def options(self) -> Mapping[str, Any]:
        """Resolved options, including the handle-only ``autoCreate``/``autoIndex``."""

        return dict(self._options)

    @property
    def state(self) -> ConnectionState:
        return self._state

    def subscribe(self, listener: LifecycleListener) -> Callable[[], None]:
        """Subscribe to lifecycle events; returns an unsubscribe handle."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def get_database(self, name: str | None = None) -> AsyncIOMotorDatabase:
        """Return ``name`` or the database named in the connection string."""

        if name:
            return self._client[name]
        return self._client.get_default_database()

    async def declare_collection(
        self,
        name: str,
        indexes: Sequence[IndexKeys] = (),
    ) -> AsyncIOMotorCollection:
        """Register a collection for ``autoCreate``/``autoIndex`` handling.

        Declarations made before ``open()`` are applied once the connection
        is up; later ones are applied immediately.
        """

        self._declared[name] = tuple(indexes)
        if self._opened:
            await self._prepare_collection(name, self._declared[name])
        return self.get_database()[name]

    async def open(self) -> ConnectionHandle:
        """Perform the initial connect and apply collection declarations."""

        if self._state is ConnectionState.DISCONNECTED:
            self._state = ConnectionState.CONNECTING
        safe_uri = redact_uri(self._uri)
        LOG.debug("Connecting to %s", safe_uri)
        try:
            await self._client.admin.command("ping")
            for name, indexes in self._declared.items():
                await self._prepare_collection(name, indexes)
        except PyMongoError as exc:
            LOG.error("MongoDB connection to %s failed: %s", safe_uri, exc)
            self._client.close()
            self._state = ConnectionState.CLOSED
            raise MongoConnectionError(f"Failed to connect to {safe_uri}: {exc}") from exc
        if self._state is ConnectionState.CONNECTING:
            self._state = ConnectionState.CONNECTED
            self._emit(LifecycleEventKind.CONNECTED)
        self._opened = True
        self._emit(LifecycleEventKind.OPEN)
        return self

    async def wait(self) -> None:
        """Wait until the connection closes; re-raise a fatal connection error."""

        await asyncio.shield(self._done)

    def close(self) -> None:
        """Close the client immediately and release anyone waiting on ``wait()``."""

        if self._state is ConnectionState.CLOSED:
            return
        was_connected = self._state is ConnectionState.CONNECTED
        self._client.close()
        self._state = ConnectionState.CLOSED
        if was_connected:
            self._emit(LifecycleEventKind.DISCONNECTED)
        if not self._done.done():
            self._done.set_result(None)

    async def _prepare_collection(self, name: str, indexes: Sequence[IndexKeys]) -> None:
        database = self.get_database()
        if self._auto_create:
            existing = await database.list_collection_names()
            if name not in existing:
                await database.create_collection(name)
                LOG.debug("Created collection", extra={"collection": name})
        if self._auto_index:
            for keys in indexes:
                index_name = await database[name].create_index(keys)
                LOG.debug("Ensured index", extra={"collection": name, "index": index_name})

    def _handle_driver_event(self, kind: LifecycleEventKind, error: BaseException | None) -> None:
        if self._state in (ConnectionState.CLOSED, ConnectionState.FAILED):
            return
        if kind is LifecycleEventKind.CONNECTED:
            if self._state is ConnectionState.CONNECTED:
                return
            self._state = ConnectionState.CONNECTED
        elif kind is LifecycleEventKind.DISCONNECTED:
            if self._state is not ConnectionState.CONNECTED:
                return
            self._state = ConnectionState.DISCONNECTED
        elif kind is LifecycleEventKind.ERROR and not self._opened:
            # open() reports failures of the initial connect itself.
            LOG.warning("MongoDB heartbeat failed while connecting: %s", error)
            return
        elif kind is LifecycleEventKind.ERROR and self._state is ConnectionState.CONNECTED:
            # Per-server failure; other members may still be known. Losing
            # every server arrives as DISCONNECTED right after this.
            LOG.warning("MongoDB server heartbeat failed: %s", error)
            return
        self._emit(kind, error)
        if kind is LifecycleEventKind.ERROR:
            self._fail(error or MongoConnectionError("MongoDB connection error"))

    def _fail(self, error: BaseException) -> None:
        self._state = ConnectionState.FAILED
        if not self._done.done():
            self._done.set_exception(error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                LOG.exception("Connection error callback failed")

    def _emit(self, kind: LifecycleEventKind, error: BaseException | None = None) -> None:
        event = LifecycleEvent(kind=kind, uri=self._uri, error=error)
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                LOG.exception("Lifecycle listener failed", extra={"event": kind.value})

    def _log_event(self, event: LifecycleEvent) -> None:
        if event.kind is LifecycleEventKind.CONNECTED:
            LOG.info("MongoDB connection open to %s", redact_uri(event.uri))
        elif event.kind is LifecycleEventKind.ERROR:
            LOG.error("MongoDB connection error: %s", event.error)
        elif event.kind is LifecycleEventKind.DISCONNECTED:
            LOG.info("MongoDB connection disconnected")
        elif event.kind is LifecycleEventKind.OPEN:
            LOG.info("MongoDB connection is open")


async def connect(
    uri: str,
    options: Mapping[str, Any] | None = None,
    *,
    on_error: ErrorCallback | None = None,
) -> ConnectionHandle:
    """Open a connection to ``uri`` with lifecycle observers attached.

    ``options`` replaces ``DEFAULT_CONNECT_OPTIONS`` wholesale when given.
    Errors after the connection is established are fatal: they are passed to
    ``on_error`` and re-raised from ``ConnectionHandle.wait()``.
    """

    handle = ConnectionHandle(uri, options, on_error=on_error)
    return await handle.open()


async def connect_database(
    settings: "Settings",
    *,
    on_error: ErrorCallback | None = None,
) -> ConnectionHandle:
    """Build the URI for ``settings.database`` and connect to it."""

    return await connect(build_uri(settings.target()), settings.connect_options, on_error=on_error)


__all__ = [
    "ConnectionHandle",
    "ConnectionState",
    "DEFAULT_CONNECT_OPTIONS",
    "ErrorCallback",
    "IndexKeys",
    "LifecycleEvent",
    "LifecycleEventKind",
    "LifecycleListener",
    "MongoConnectionError",
    "connect",
    "connect_database",
    "resolve_options",
]
