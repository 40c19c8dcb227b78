# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/core/signals.py
from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Iterator, Sequence, Tuple

GUARDED_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


def in_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


@contextmanager
def deferred_signals(signals: Sequence[signal.Signals] = GUARDED_SIGNALS) -> Iterator[None]:
    """
    Hold delivery of `signals` until the block exits.

    Python handlers only run on the main thread, so elsewhere this is a no-op.
    """
    if not in_main_thread() or not hasattr(signal, "pthread_sigmask"):
        yield
        return
    old = signal.pthread_sigmask(signal.SIG_BLOCK, set(signals))
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, old)
