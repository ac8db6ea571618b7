"""Shared fakes standing in for the Motor client."""

from __future__ import annotations

from typing import Any

import pytest


class FakeCollection:
    def __init__(self, database: "FakeDatabase", name: str) -> None:
        self.database = database
        self.name = name

    async def create_index(self, keys: Any) -> str:
        self.database.indexes.setdefault(self.name, []).append(keys)
        return f"{self.name}_idx_{len(self.database.indexes[self.name])}"


class FakeDatabase:
    def __init__(self, name: str) -> None:
        self.name = name
        self.collections: list[str] = []
        self.indexes: dict[str, list[Any]] = {}

    async def list_collection_names(self) -> list[str]:
        return list(self.collections)

    async def create_collection(self, name: str) -> FakeCollection:
        self.collections.append(name)
        return FakeCollection(self, name)

    def __getitem__(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)


class _FakeAdmin:
    def __init__(self, client: "FakeMotorClient") -> None:
        self._client = client

    async def command(self, name: str) -> dict[str, float]:
        self._client.commands.append(name)
        if self._client.ping_error is not None:
            raise self._client.ping_error
        return {"ok": 1.0}


class FakeMotorClient:
    def __init__(self, uri: str, *, event_listeners: Any = (), ping_error: Exception | None = None, **kwargs: Any) -> None:
        self.uri = uri
        self.event_listeners = list(event_listeners)
        self.kwargs = kwargs
        self.ping_error = ping_error
        self.commands: list[str] = []
        self.databases: dict[str, FakeDatabase] = {}
        self.closed = False
        self.admin = _FakeAdmin(self)

    @property
    def observer(self) -> Any:
        return self.event_listeners[0]

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase(name))

    def get_default_database(self) -> FakeDatabase:
        path = self.uri.split("://", 1)[-1].split("/", 1)
        name = path[1].split("?", 1)[0] if len(path) > 1 else ""
        return self[name or "test"]

    def close(self) -> None:
        self.closed = True


class FakeMotorFactory:
    """Callable replacing ``AsyncIOMotorClient`` that records each client."""

    def __init__(self) -> None:
        self.clients: list[FakeMotorClient] = []
        self.ping_error: Exception | None = None
        self.construct_error: Exception | None = None

    @property
    def last(self) -> FakeMotorClient:
        return self.clients[-1]

    def __call__(self, uri: str, **kwargs: Any) -> FakeMotorClient:
        if self.construct_error is not None:
            raise self.construct_error
        client = FakeMotorClient(uri, ping_error=self.ping_error, **kwargs)
        self.clients.append(client)
        return client


@pytest.fixture
def fake_motor(monkeypatch: pytest.MonkeyPatch) -> FakeMotorFactory:
    factory = FakeMotorFactory()
    monkeypatch.setattr("monomongo.connections.AsyncIOMotorClient", factory)
    return factory
