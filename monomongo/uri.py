"""Connection string construction for each database target shape."""

from __future__ import annotations

from typing import assert_never
from urllib.parse import quote, urlsplit, urlunsplit

from .models import DEFAULT_PORT, DatabaseTarget, LocalDatabase, RemoteDatabase

# Characters encodeURIComponent leaves untouched on top of quote()'s own set.
_USERINFO_SAFE = "!*'()"


def build_uri(target: DatabaseTarget) -> str:
    """Return the MongoDB connection string for ``target``.

    Raw strings are passed through untouched. Field values are never
    validated; a bad host or empty database name surfaces when the driver
    tries to connect.
    """

    if isinstance(target, str):
        return target
    if isinstance(target, RemoteDatabase):
        user = quote(target.username, safe=_USERINFO_SAFE)
        password = quote(target.password, safe=_USERINFO_SAFE)
        return (
            f"mongodb+srv://{user}:{password}@{target.cluster}/{target.dbname}"
            "?retryWrites=true&w=majority"
        )
    if isinstance(target, LocalDatabase):
        port = target.port or DEFAULT_PORT
        return f"mongodb://{target.hostname}:{port}/{target.dbname}"
    assert_never(target)


def redact_uri(uri: str) -> str:
    """Mask the password in ``uri`` so it can be logged."""

    try:
        parts = urlsplit(uri)
    except ValueError:
        return uri
    if not parts.netloc or "@" not in parts.netloc:
        return uri
    userinfo, _, hosts = parts.netloc.rpartition("@")
    if ":" not in userinfo:
        return uri
    user = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{user}:****@{hosts}"))


__all__ = ["build_uri", "redact_uri"]
