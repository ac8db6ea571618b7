"""Tests for the process termination hook."""

from __future__ import annotations

import logging
import os
import signal
from typing import TYPE_CHECKING

import anyio
import pytest

from monomongo.connections import ConnectionState, connect
from monomongo.termination import TerminationHook

if TYPE_CHECKING:
    from conftest import FakeMotorFactory

URI = "mongodb://localhost:27017/app"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _StubHandle:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


@pytest.mark.anyio
async def test_signal_closes_connection_and_wakes_waiters(
    fake_motor: FakeMotorFactory, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)
    handle = await connect(URI)
    exit_codes: list[int] = []

    with TerminationHook(handle, exit=exit_codes.append):
        os.kill(os.getpid(), signal.SIGINT)
        with anyio.fail_after(1):
            await handle.wait()

    assert exit_codes == [0]
    assert fake_motor.last.closed is True
    assert handle.state is ConnectionState.CLOSED
    assert "MongoDB connection disconnected through app termination" in caplog.text


@pytest.mark.anyio
async def test_nothing_is_registered_until_installed(fake_motor: FakeMotorFactory) -> None:
    before = signal.getsignal(signal.SIGINT)
    handle = await connect(URI)
    hook = TerminationHook(handle, exit=lambda code: None)

    assert signal.getsignal(signal.SIGINT) is before
    assert hook.installed is False


@pytest.mark.anyio
async def test_install_is_idempotent_and_uninstall_restores(fake_motor: FakeMotorFactory) -> None:
    before = signal.getsignal(signal.SIGINT)
    hook = TerminationHook(await connect(URI), exit=lambda code: None)

    hook.install()
    installed = signal.getsignal(signal.SIGINT)
    hook.install()

    assert installed is not before
    assert signal.getsignal(signal.SIGINT) == installed
    assert hook.installed is True
    hook.uninstall()
    assert signal.getsignal(signal.SIGINT) is before
    assert hook.installed is False


@pytest.mark.anyio
async def test_one_hook_closes_every_attached_connection(fake_motor: FakeMotorFactory) -> None:
    first = await connect(URI)
    second = await connect("mongodb://localhost:27017/other")
    exit_codes: list[int] = []
    hook = TerminationHook(first, exit=exit_codes.append)
    hook.attach(second)
    hook.attach(second)

    with hook:
        os.kill(os.getpid(), signal.SIGINT)
        with anyio.fail_after(1):
            await first.wait()
            await second.wait()

    assert exit_codes == [0]
    assert all(client.closed for client in fake_motor.clients)
    assert second.state is ConnectionState.CLOSED


@pytest.mark.anyio
async def test_hook_can_watch_other_signals(fake_motor: FakeMotorFactory) -> None:
    handle = await connect(URI)
    exit_codes: list[int] = []

    with TerminationHook(handle, signals=(signal.SIGTERM,), exit=exit_codes.append):
        os.kill(os.getpid(), signal.SIGTERM)
        with anyio.fail_after(1):
            await handle.wait()

    assert exit_codes == [0]
    assert handle.state is ConnectionState.CLOSED


def test_hook_falls_back_to_signal_module_without_a_loop() -> None:
    before = signal.getsignal(signal.SIGINT)
    handle = _StubHandle()
    exit_codes: list[int] = []

    with TerminationHook(handle, exit=exit_codes.append):  # type: ignore[arg-type]
        signal.getsignal(signal.SIGINT)(signal.SIGINT, None)

    assert handle.closed is True
    assert exit_codes == [0]
    assert signal.getsignal(signal.SIGINT) is before
