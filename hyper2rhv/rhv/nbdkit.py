# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/nbdkit.py
from __future__ import annotations

import logging
import os
import re
import signal
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..core.exceptions import ProcessError
from ..core.logger import Log
from ..core.signals import deferred_signals
from ..core.utils import U

# API_VERSION 2 and the parallel thread model of the python plugin.
NBDKIT_MIN_VERSION: Tuple[int, int, int] = (1, 22, 0)

# Match the number of parallel coroutines in qemu-img.
DEFAULT_THREADS = 8

SELINUX_SOCKET_LABEL = "system_u:object_r:svirt_socket_t:s0"

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def version_string(v: Tuple[int, ...]) -> str:
    return ".".join(str(x) for x in v)


def parse_version(text: str) -> Tuple[int, int, int]:
    """'nbdkit 1.24.0' -> (1, 24, 0)."""
    m = _VERSION_RE.search(text or "")
    if m is None:
        raise ValueError(f"cannot parse nbdkit version from {text!r}")
    return int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)


def parse_config(text: str) -> Dict[str, str]:
    """`nbdkit --dump-config` output: one key=value per line."""
    out: Dict[str, str] = {}
    for line in (text or "").splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip():
            out[key.strip()] = value.strip()
    return out


class Nbdkit:
    """Probes of the installed nbdkit binary."""

    def __init__(self, logger: logging.Logger, binary: str = "nbdkit"):
        self.logger = logger
        self.binary = binary

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        return U.run_cmd(self.logger, [self.binary, *args], capture=True)

    def is_installed(self) -> bool:
        if U.which(self.binary) is None and not Path(self.binary).is_file():
            return False
        try:
            return self._run("--version").returncode == 0
        except OSError:
            return False

    def version(self) -> Tuple[int, int, int]:
        cp = self._run("--version")
        return parse_version(cp.stdout)

    def config(self) -> Dict[str, str]:
        return parse_config(self._run("--dump-config").stdout)

    def dump_plugin(self, plugin: str, *plugin_args: str) -> bool:
        return self._run(plugin, *plugin_args, "--dump-plugin").returncode == 0


@dataclass
class ExportDaemon:
    """One running nbdkit instance exporting disk `index` on `socket`."""
    index: int
    socket: Path
    proc: subprocess.Popen

    @property
    def pid(self) -> int:
        return self.proc.pid

    def alive(self) -> bool:
        return self.proc.poll() is None

    def terminate(self) -> None:
        """SIGTERM; ProcessLookupError if the process is already gone."""
        if self.proc.returncode is not None:
            raise ProcessLookupError(f"pid {self.proc.pid} already exited with status {self.proc.returncode}")
        os.kill(self.proc.pid, signal.SIGTERM)

    def wait(self, timeout: Optional[float] = None) -> int:
        return self.proc.wait(timeout=timeout)


@dataclass
class NbdkitCommand:
    """
    nbdkit command line shared by all disks; per-disk plugin parameters are
    added on a copy via with_params().
    """
    logger: logging.Logger
    plugin: str
    binary: str = "nbdkit"
    threads: int = DEFAULT_THREADS
    selinux_label: Optional[str] = None
    verbose: bool = False
    params: List[Tuple[str, str]] = field(default_factory=list)

    def add_param(self, key: str, value: str) -> "NbdkitCommand":
        self.params.append((key, str(value)))
        return self

    def with_params(self, *pairs: Tuple[str, str]) -> "NbdkitCommand":
        return NbdkitCommand(
            logger=self.logger,
            plugin=self.plugin,
            binary=self.binary,
            threads=self.threads,
            selinux_label=self.selinux_label,
            verbose=self.verbose,
            params=list(self.params) + [(k, str(v)) for k, v in pairs],
        )

    def argv(self, socket: Path) -> List[str]:
        cmd = [self.binary, "--foreground", "--exit-with-parent", "--unix", str(socket), "--threads", str(self.threads)]
        if self.selinux_label:
            cmd += ["--selinux-label", self.selinux_label]
        if self.verbose:
            cmd.append("--verbose")
        cmd.append(self.plugin)
        cmd += [f"{k}={v}" for k, v in self.params]
        return cmd

    def run_unix(
        self,
        index: int,
        socket: Path,
        *,
        timeout: float = 30.0,
        poll_s: float = 0.1,
        on_started: Optional[Callable[[ExportDaemon], None]] = None,
    ) -> ExportDaemon:
        """
        Start nbdkit serving on `socket` and return once the socket exists.

        on_started is called with the new daemon before termination signals
        are let through again, so whoever tracks running daemons never misses
        one.

        Raises ProcessError when nbdkit cannot be executed, exits first, or
        does not bind the socket within `timeout` seconds.
        """
        socket = Path(socket)
        socket.unlink(missing_ok=True)

        cmd = self.argv(socket)
        Log.trace(self.logger, "🧷 nbdkit[%d]: %s", index, U.pretty_cmd(cmd))
        with deferred_signals():
            try:
                proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL)
            except OSError as e:
                raise ProcessError(msg=f"cannot start nbdkit for disk {index}: {e}", cause=e) from e
            daemon = ExportDaemon(index=index, socket=socket, proc=proc)
            if on_started is not None:
                on_started(daemon)

        deadline = time.monotonic() + float(timeout)
        while not socket.exists():
            rc = proc.poll()
            if rc is not None:
                raise ProcessError(
                    msg=f"nbdkit for disk {index} exited with status {rc} before creating {socket}",
                    context={"pid": proc.pid},
                )
            if time.monotonic() >= deadline:
                proc.kill()
                proc.wait()
                raise ProcessError(msg=f"nbdkit for disk {index} did not create {socket} within {timeout}s")
            time.sleep(poll_s)

        # The copy engine may run unprivileged.
        os.chmod(socket, 0o777)
        self.logger.debug("nbdkit[%d] pid=%d listening on %s", index, proc.pid, socket)
        return daemon
