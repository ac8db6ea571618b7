"""Settings loading helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any, Mapping, Union

import tomllib

from pydantic import BaseModel, Discriminator, Tag, ValidationError

from .models import DEFAULT_PORT, DatabaseTarget, LocalDatabase, RemoteDatabase

CONFIG_FILE = Path.home() / ".config" / "monomongo" / "config.toml"
CONFIG_ENV_VAR = "MONOMONGO_CONFIG"


class ConfigError(RuntimeError):
    """Raised when the settings file is missing, unreadable, or invalid."""


class RemoteDatabaseConfig(BaseModel):
    """Cluster credentials stored under ``[database]``."""

    username: str
    password: str
    cluster: str
    dbname: str

    def to_target(self) -> RemoteDatabase:
        return RemoteDatabase(
            username=self.username,
            password=self.password,
            cluster=self.cluster,
            dbname=self.dbname,
        )


class LocalDatabaseConfig(BaseModel):
    """Host and port stored under ``[database]``."""

    hostname: str
    port: int | None = DEFAULT_PORT
    dbname: str

    def to_target(self) -> LocalDatabase:
        return LocalDatabase(hostname=self.hostname, port=self.port, dbname=self.dbname)


def _database_kind(value: Any) -> str | None:
    """Pick the union arm: a ``cluster`` key means remote credentials."""

    if isinstance(value, str):
        return "raw"
    if isinstance(value, RemoteDatabaseConfig):
        return "remote"
    if isinstance(value, LocalDatabaseConfig):
        return "local"
    if isinstance(value, Mapping):
        return "remote" if "cluster" in value else "local"
    return None


DatabaseConfig = Annotated[
    Union[
        Annotated[RemoteDatabaseConfig, Tag("remote")],
        Annotated[LocalDatabaseConfig, Tag("local")],
        Annotated[str, Tag("raw")],
    ],
    Discriminator(_database_kind),
]


class Settings(BaseModel):
    """Shape of the settings file: a database target plus client options."""

    database: DatabaseConfig
    connect_options: dict[str, Any] | None = None

    def target(self) -> DatabaseTarget:
        if isinstance(self.database, str):
            return self.database
        return self.database.to_target()


def config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return the settings path, honouring ``MONOMONGO_CONFIG``."""

    env = os.environ if environ is None else environ
    override = env.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def load_config(path: Path | None = None) -> Settings:
    """Load settings from disk.

    There is no usable default database to fall back to, so every
    failure is reported as ``ConfigError``.
    """

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {target}") from exc
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(f"Could not read config file {target}: {exc}") from exc
    try:
        return Settings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {target}: {exc}") from exc


__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIG_FILE",
    "ConfigError",
    "DatabaseConfig",
    "LocalDatabaseConfig",
    "RemoteDatabaseConfig",
    "Settings",
    "config_path",
    "load_config",
]
