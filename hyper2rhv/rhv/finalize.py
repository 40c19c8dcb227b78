# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/finalize.py
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional

from ..core.exceptions import ConfigurationError, ProcessError
from ..core.logger import Log
from ..core.utils import U
from ..core.uuids import new_uuid, new_uuids
from .guard import ExitGuard
from .helpers import HelperInvoker, HelperScript
from .state import ConversionState

TARGET_OVIRT = "ovirt"
OVF_FILE = "vm.ovf"


@dataclass(frozen=True)
class DescriptorRequest:
    """
    Inputs for the VM descriptor (OVF) generator.

    source, inspect and target_meta are passed through untouched from the
    conversion pipeline.
    """
    source: Any
    inspect: Any
    target_meta: Any
    disk_sizes: List[int]
    sparse: bool
    output_format: str
    output_name: str
    storagedomain_uuid: str
    disk_uuids: List[str]
    volume_uuids: List[str]
    vm_uuid: str
    target: str = TARGET_OVIRT


# Returns the serialized descriptor document.
DescriptorBuilder = Callable[[DescriptorRequest], str]


@dataclass(frozen=True)
class FinalizeResult:
    vm_uuid: str
    volume_uuids: List[str]
    ovf_path: Path


class FinalizePhase:
    def __init__(
        self,
        logger: logging.Logger,
        invoker: HelperInvoker,
        guard: ExitGuard,
        workdir: Path,
        *,
        output_format: str,
        stop_timeout: Optional[float] = 60.0,
    ):
        self.logger = logger
        self.invoker = invoker
        self.guard = guard
        self.workdir = Path(workdir)
        self.output_format = output_format
        self.stop_timeout = stop_timeout

    def check_architecture(self, state: ConversionState, guest_arch: str) -> None:
        if state.cluster_cpu_architecture != guest_arch:
            raise ConfigurationError(
                msg=f"the cluster '{state.cluster_name}' does not support the architecture "
                f"{guest_arch} but {state.cluster_cpu_architecture}"
            )

    def stop_daemons(self, state: ConversionState) -> None:
        """
        SIGTERM every nbdkit and wait for all of them to exit.

        The engine must not see data-plane traffic while the transfers are
        finalized. A daemon that already died is unexpected and fatal.
        """
        sessions = state.active_sessions()
        for s in sessions:
            assert s.daemon is not None
            if not s.daemon.alive():
                raise ProcessError(
                    msg=f"nbdkit for disk {s.index} exited unexpectedly (status {s.daemon.proc.returncode}) "
                    "before the transfers were finalized",
                    context={"transfer_id": s.transfer_id},
                )
            s.daemon.terminate()

        for s in sessions:
            assert s.daemon is not None
            try:
                s.daemon.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired as e:
                raise ProcessError(
                    msg=f"nbdkit for disk {s.index} (pid {s.daemon.pid}) did not exit within "
                    f"{self.stop_timeout}s of SIGTERM; not finalizing",
                    cause=e,
                ) from e
            Log.trace(self.logger, "🛑 nbdkit[%d] pid=%d exited", s.index, s.daemon.pid)

        for s in sessions:
            assert s.daemon is not None
            if s.daemon.alive():
                raise ProcessError(msg=f"nbdkit for disk {s.index} is still running; not finalizing")
            s.daemon = None

        self.guard.release_daemons()

    def run(
        self,
        state: ConversionState,
        *,
        guest_arch: str,
        build_descriptor: DescriptorBuilder,
        source: Any = None,
        inspect: Any = None,
        target_meta: Any = None,
    ) -> FinalizeResult:
        self.check_architecture(state, guest_arch)

        Log.step(self.logger, "Stopping nbdkit instances")
        self.stop_daemons(state)

        params = state.params.extended(transfer_ids=state.transfer_ids, disk_uuids=list(state.disk_uuids))
        Log.step(self.logger, "Finalizing transfers", count=len(state.transfer_ids))
        self.invoker.check(HelperScript.FINALIZE, params, error="failed to finalize the transfers")

        volume_uuids = new_uuids(len(state.disks))
        vm_uuid = new_uuid()

        ovf = build_descriptor(
            DescriptorRequest(
                source=source,
                inspect=inspect,
                target_meta=target_meta,
                disk_sizes=state.disk_sizes,
                sparse=True,
                output_format=self.output_format,
                output_name=state.output_name,
                storagedomain_uuid=state.storagedomain_uuid,
                disk_uuids=list(state.disk_uuids),
                volume_uuids=volume_uuids,
                vm_uuid=vm_uuid,
            )
        )
        ovf_path = self.workdir / OVF_FILE
        U.write_private(ovf_path, ovf)
        self.invoker.written.append(ovf_path)

        Log.step(self.logger, "Creating virtual machine", name=state.output_name, vm_uuid=vm_uuid)
        self.invoker.check(
            HelperScript.CREATEVM,
            params.extended(rhv_cluster_uuid=state.cluster_uuid),
            [str(ovf_path)],
            error="failed to create virtual machine",
        )
        Log.ok(self.logger, f"Virtual machine {state.output_name} created", vm_uuid=vm_uuid)
        return FinalizeResult(vm_uuid=vm_uuid, volume_uuids=volume_uuids, ovf_path=ovf_path)
