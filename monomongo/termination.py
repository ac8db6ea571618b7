"""Opt-in process termination hook for open connections."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from types import FrameType, TracebackType
from typing import Any, Callable, Iterable

from .connections import ConnectionHandle

LOG = logging.getLogger(__name__)


class TerminationHook:
    """Close connections and exit the process when a termination signal arrives.

    Nothing is registered until ``install()`` (or entering the hook as a
    context manager). One hook can cover several handles, so creating more
    connections never stacks more signal handlers.
    """

    def __init__(
        self,
        *handles: ConnectionHandle,
        signals: Iterable[int] = (signal.SIGINT,),
        exit: Callable[[int], Any] = sys.exit,
    ) -> None:
        self._handles: list[ConnectionHandle] = list(handles)
        self._signals = tuple(signals)
        self._exit = exit
        self._previous: dict[int, Any] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def installed(self) -> bool:
        return bool(self._previous)

    def attach(self, handle: ConnectionHandle) -> None:
        """Include another connection in the shutdown."""

        if handle not in self._handles:
            self._handles.append(handle)

    def install(self) -> None:
        """Register the signal handlers; calling it again is a no-op."""

        if self._previous:
            return
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        for signum in self._signals:
            self._previous[signum] = signal.getsignal(signum)
            if self._loop is not None:
                try:
                    # Runs on the loop, so closing a handle wakes its waiters.
                    self._loop.add_signal_handler(signum, self._terminate, signum)
                    continue
                except NotImplementedError:
                    pass
            signal.signal(signum, self._handle_signal)
        LOG.debug(
            "Termination hook installed",
            extra={"signals": [signal.Signals(signum).name for signum in self._signals]},
        )

    def uninstall(self) -> None:
        """Restore whatever handlers were registered before ``install()``."""

        for signum, previous in self._previous.items():
            if self._loop is not None and not self._loop.is_closed():
                self._loop.remove_signal_handler(signum)
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()
        self._loop = None

    def __enter__(self) -> TerminationHook:
        self.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.uninstall()

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        self._terminate(signum)

    def _terminate(self, signum: int) -> None:
        for handle in tuple(self._handles):
            handle.close()
        LOG.info(
            "MongoDB connection disconnected through app termination",
            extra={"signal": signal.Signals(signum).name},
        )
        self._exit(0)


__all__ = ["TerminationHook"]
