"""Shared dataclasses describing where a connection should point."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

DEFAULT_PORT = 27017


@dataclass(frozen=True, slots=True)
class RemoteDatabase:
    """Credential-and-cluster target resolved through an SRV record."""

    username: str
    password: str
    cluster: str
    dbname: str


@dataclass(frozen=True, slots=True)
class LocalDatabase:
    """Host-and-port target for a directly reachable server."""

    hostname: str
    dbname: str
    port: int | None = DEFAULT_PORT


DatabaseTarget = Union[RemoteDatabase, LocalDatabase, str]


__all__ = ["DEFAULT_PORT", "DatabaseTarget", "LocalDatabase", "RemoteDatabase"]
