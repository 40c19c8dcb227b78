# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/guard.py
"""
Process-wide cleanup for an rhv-upload run.

The guard owns the list of running nbdkit instances and the transfers opened
on the engine. It runs once, from whichever comes first: an explicit close(),
interpreter exit (atexit) or a termination signal. It always stops the
daemons; it rolls the engine side back unless the `done` marker exists.

Registration happens with SIGINT/SIGTERM/SIGHUP blocked, and the lists are
replaced rather than mutated, so a signal handler running the guard never
sees a half-updated list.
"""
from __future__ import annotations

import atexit
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ..core.logger import Log
from ..core.signals import GUARDED_SIGNALS, deferred_signals, in_main_thread
from .nbdkit import ExportDaemon

DONE_MARKER = "done"

CancelFn = Callable[[Sequence[str], Sequence[str]], Any]


class ExitGuard:
    def __init__(
        self,
        logger: logging.Logger,
        workdir: Path,
        cancel: Optional[CancelFn] = None,
        *,
        signals: Sequence[signal.Signals] = GUARDED_SIGNALS,
        install_handlers: bool = True,
    ):
        self.logger = logger
        self.workdir = Path(workdir)
        self.cancel = cancel
        self.signals = tuple(signals)
        self.install_handlers = install_handlers

        self._daemons: Tuple[ExportDaemon, ...] = ()
        self._transfer_ids: Tuple[str, ...] = ()
        self._disk_uuids: Tuple[str, ...] = ()
        self._armed = False
        self._running = threading.Lock()
        self._prev_handlers: Dict[signal.Signals, Any] = {}

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def done_marker(self) -> Path:
        return self.workdir / DONE_MARKER

    @property
    def daemons(self) -> Tuple[ExportDaemon, ...]:
        return self._daemons

    @property
    def transfer_ids(self) -> Tuple[str, ...]:
        return self._transfer_ids

    @property
    def disk_uuids(self) -> Tuple[str, ...]:
        return self._disk_uuids

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def arm(self, disk_uuids: Sequence[str], cancel: Optional[CancelFn] = None) -> None:
        if self._armed:
            Log.trace(self.logger, "🛡️ guard already armed")
            return
        with deferred_signals(self.signals):
            if cancel is not None:
                self.cancel = cancel
            self._disk_uuids = tuple(disk_uuids)
            atexit.register(self.run)
            if self.install_handlers and in_main_thread():
                for sig in self.signals:
                    self._prev_handlers[sig] = signal.signal(sig, self._on_signal)
            self._armed = True
        self.logger.debug("Exit guard armed for %d disk(s)", len(self._disk_uuids))

    def disarm(self) -> None:
        """Restore signal handlers and drop the atexit hook (after run())."""
        if not self._armed:
            return
        atexit.unregister(self.run)
        if in_main_thread():
            for sig, prev in self._prev_handlers.items():
                signal.signal(sig, prev)
        self._prev_handlers.clear()
        self._armed = False

    def register_transfer(self, transfer_id: str) -> None:
        with deferred_signals(self.signals):
            self._transfer_ids = self._transfer_ids + (transfer_id,)

    def register_daemon(self, daemon: ExportDaemon) -> None:
        with deferred_signals(self.signals):
            self._daemons = self._daemons + (daemon,)

    def release_daemons(self) -> Tuple[ExportDaemon, ...]:
        """Hand the daemons over to the caller; the guard will not signal them again."""
        with deferred_signals(self.signals):
            daemons, self._daemons = self._daemons, ()
        return daemons

    def run(self) -> None:
        """Stop daemons and roll back unless the run succeeded. Idempotent."""
        if not self._running.acquire(blocking=False):
            return
        try:
            with deferred_signals(self.signals):
                daemons, self._daemons = self._daemons, ()
                transfer_ids, self._transfer_ids = self._transfer_ids, ()
                disk_uuids, self._disk_uuids = self._disk_uuids, ()

                for d in daemons:
                    try:
                        d.terminate()
                    except OSError as e:
                        self.logger.debug("nbdkit[%d] pid=%s: %s", d.index, d.pid, e)
                    try:
                        d.socket.unlink(missing_ok=True)
                    except OSError as e:
                        self.logger.debug("nbdkit[%d] socket %s: %s", d.index, d.socket, e)

                if self.done_marker.exists():
                    Log.trace(self.logger, "🛡️ guard: %s present, no rollback", self.done_marker)
                    return
                if not disk_uuids:
                    return
                if self.cancel is None:
                    self.logger.warning("No cancel handler; disks %s were left on the engine", list(disk_uuids))
                    return
                try:
                    self.cancel(list(transfer_ids), list(disk_uuids))
                except Exception as e:
                    self.logger.error("Rollback failed, disks %s may be left on the engine: %s", list(disk_uuids), e)
                    self.logger.debug("Rollback exception", exc_info=True)
        finally:
            self._running.release()

    def _on_signal(self, signum: int, frame: Any) -> None:
        self.logger.warning("Received %s, cleaning up", signal.Signals(signum).name)
        self.run()
        raise SystemExit(128 + signum)
