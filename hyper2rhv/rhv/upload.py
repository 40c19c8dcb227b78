# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/upload.py
"""
The rhv-upload output as one object.

    with RhvUpload(logger, options, settings, workdir) as up:
        up.preflight()
        state = up.setup(disks, "guest")
        copy_disks(up.nbd_uris)            # external copy engine
        up.finalize(state, guest_arch="x86_64", build_descriptor=ovf_builder)
        up.mark_done()

Leaving the block without mark_done() cancels the transfers and deletes the
disks on the engine.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from ..core.exceptions import ConfigurationError
from ..core.logger import Log
from ..core.utils import U
from .finalize import OVF_FILE, DescriptorBuilder, FinalizePhase, FinalizeResult
from .guard import DONE_MARKER, ExitGuard
from .helpers import HelperInvoker, HelperScript
from .nbdkit import DEFAULT_THREADS, SELINUX_SOCKET_LABEL, NbdkitCommand
from .options import UploadOptions
from .preflight import EnvironmentPreflight, PreflightReport, have_selinux
from .session import SessionSetup, socket_path
from .state import ConversionState, DiskDescriptor


@dataclass(frozen=True)
class UploadSettings:
    """Local runtime knobs, as opposed to UploadOptions which describe the target."""
    helper_dir: Path
    python: str = "python3"
    nbdkit: str = "nbdkit"
    nbdkit_threads: int = DEFAULT_THREADS
    daemon_start_timeout: float = 30.0
    daemon_stop_timeout: float = 60.0
    keep_workdir_files: bool = False
    verbose: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "UploadSettings":
        helper_dir = data.get("helper_dir")
        if not helper_dir:
            raise ConfigurationError(msg="rhv-upload: helper_dir is not set (use --helper-dir)")
        threads = data.get("nbdkit_threads")
        threads = DEFAULT_THREADS if threads is None else int(threads)
        if threads < 1:
            raise ConfigurationError(msg=f"rhv-upload: nbdkit_threads must be >= 1, got {threads}")
        return cls(
            helper_dir=Path(helper_dir).expanduser(),
            python=str(data.get("python") or "python3"),
            nbdkit=str(data.get("nbdkit") or "nbdkit"),
            nbdkit_threads=threads,
            daemon_start_timeout=float(data.get("daemon_start_timeout") or 30.0),
            daemon_stop_timeout=float(data.get("daemon_stop_timeout") or 60.0),
            keep_workdir_files=bool(data.get("keep_workdir_files", False)),
            verbose=bool(data.get("verbose", False)),
        )


class RhvUpload:
    def __init__(
        self,
        logger: logging.Logger,
        options: UploadOptions,
        settings: UploadSettings,
        workdir: Path,
        *,
        install_signal_handlers: bool = True,
    ):
        self.logger = logger
        self.options = options
        self.settings = settings
        self.workdir = Path(workdir)
        U.ensure_dir(self.workdir)

        self.invoker = HelperInvoker(
            logger=logger,
            helper_dir=settings.helper_dir,
            workdir=self.workdir,
            python=settings.python,
        )
        self.guard = ExitGuard(logger, self.workdir, install_handlers=install_signal_handlers)
        self.state: Optional[ConversionState] = None
        self._closed = False

    def nbdkit_command(self) -> NbdkitCommand:
        cmd = NbdkitCommand(
            logger=self.logger,
            plugin="python",
            binary=self.settings.nbdkit,
            threads=self.settings.nbdkit_threads,
            selinux_label=SELINUX_SOCKET_LABEL if have_selinux() else None,
            verbose=self.settings.verbose,
        )
        return cmd.add_param("script", str(self.invoker.script_path(HelperScript.PLUGIN)))

    def preflight(self) -> PreflightReport:
        return EnvironmentPreflight(
            self.logger,
            helper_dir=self.settings.helper_dir,
            python=self.settings.python,
            nbdkit=self.settings.nbdkit,
        ).verify()

    def setup(self, disks: Sequence[DiskDescriptor], source_name: str) -> ConversionState:
        Log.banner(self.logger, "rhv-upload: setup")
        self.state = SessionSetup(
            self.logger,
            self.options,
            self.invoker,
            self.guard,
            self.nbdkit_command(),
            self.workdir,
            verbose=self.settings.verbose,
            daemon_start_timeout=self.settings.daemon_start_timeout,
        ).run(disks, source_name)
        return self.state

    @property
    def sockets(self) -> List[Path]:
        return self.state.sockets if self.state is not None else []

    @property
    def nbd_uris(self) -> List[str]:
        return self.state.nbd_uris() if self.state is not None else []

    def finalize(
        self,
        state: ConversionState,
        *,
        guest_arch: str,
        build_descriptor: DescriptorBuilder,
        source: Any = None,
        inspect: Any = None,
        target_meta: Any = None,
    ) -> FinalizeResult:
        Log.banner(self.logger, "rhv-upload: finalize")
        return FinalizePhase(
            self.logger,
            self.invoker,
            self.guard,
            self.workdir,
            output_format=self.options.output_format,
            stop_timeout=self.settings.daemon_stop_timeout,
        ).run(
            state,
            guest_arch=guest_arch,
            build_descriptor=build_descriptor,
            source=source,
            inspect=inspect,
            target_meta=target_meta,
        )

    def mark_done(self) -> Path:
        """Declare success: from now on the guard leaves the engine alone."""
        marker = self.workdir / DONE_MARKER
        marker.write_bytes(b"")
        self.logger.debug("Wrote %s", marker)
        return marker

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        sockets = {d.socket for d in self.guard.daemons}
        if self.state is not None:
            sockets.update(socket_path(self.workdir, s.index) for s in self.state.sessions)

        self.guard.run()
        self.guard.disarm()

        for sock in sockets:
            self._unlink(sock)

        if not self.settings.keep_workdir_files:
            paths = list(self.invoker.written) + [self.workdir / OVF_FILE]
            for p in paths:
                self._unlink(Path(p))
            Log.trace(self.logger, "🧹 purged %d workdir file(s)", len(paths))

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning("Could not remove %s: %s", path, e)

    def __enter__(self) -> "RhvUpload":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
