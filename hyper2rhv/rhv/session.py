# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/session.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence, Tuple

from ..core.logger import Log
from ..core.utils import U
from ..core.uuids import resolve_disk_uuids
from .cancel import CancelPhase
from .guard import ExitGuard
from .helpers import HelperInvoker, HelperScript
from .nbdkit import NbdkitCommand
from .options import UploadOptions
from .params import JsonParams
from .state import ConversionState, DiskDescriptor, TransferSession

PRECHECK_RESULT = "v2vprecheck.json"
TRANSFER_RESULT = "v2vtransfer.json"


def socket_path(workdir: Path, index: int) -> Path:
    return Path(workdir) / f"out{index}"


def disk_name(output_name: str, index: int) -> str:
    return f"{output_name}-{index:03d}"


class SessionSetup:
    """
    Prepare the engine and the local exporters for the copy.

    Cheap checks run first (precheck, VM name collision) because nothing
    needs undoing until the first transfer is opened. From then on every
    transfer ID and every nbdkit instance is registered with the exit guard
    as soon as it exists.
    """

    def __init__(
        self,
        logger: logging.Logger,
        options: UploadOptions,
        invoker: HelperInvoker,
        guard: ExitGuard,
        nbdkit: NbdkitCommand,
        workdir: Path,
        *,
        verbose: bool = False,
        daemon_start_timeout: float = 30.0,
    ):
        self.logger = logger
        self.options = options
        self.invoker = invoker
        self.guard = guard
        self.nbdkit = nbdkit
        self.workdir = Path(workdir)
        self.verbose = verbose
        self.daemon_start_timeout = daemon_start_timeout

    def _precheck(self, params: JsonParams) -> Tuple[str, str, str]:
        Log.step(self.logger, "Running server prechecks", storage=self.options.output_storage)
        res = self.invoker.check(
            HelperScript.PRECHECK,
            params,
            capture=PRECHECK_RESULT,
            error="failed server prechecks",
        )
        return (
            res.get_str("rhv_storagedomain_uuid"),
            res.get_str("rhv_cluster_uuid"),
            res.get_str("rhv_cluster_cpu_architecture"),
        )

    def run(self, disks: Sequence[DiskDescriptor], source_name: str) -> ConversionState:
        disks = sorted(disks, key=lambda d: d.index)

        # Local validation first: a bad UUID list must not touch the engine.
        disk_uuids = resolve_disk_uuids(len(disks), self.options.rhv_disk_uuids)
        output_name = self.options.resolve_output_name(source_name)

        params = JsonParams.from_options(self.options, verbose=self.verbose)
        sd_uuid, cluster_uuid, cluster_arch = self._precheck(params)
        self.logger.info(
            "Engine: storage domain %s, cluster %s (%s, %s)",
            sd_uuid,
            self.options.cluster_name,
            cluster_uuid,
            cluster_arch,
        )

        params.set("output_name", output_name)

        # Needs the output name, so it cannot be part of the precheck.
        Log.step(self.logger, "Checking that the VM does not exist", name=output_name)
        self.invoker.check(HelperScript.VMCHECK, params, error="failed vmchecks")

        self.guard.arm(disk_uuids, cancel=CancelPhase(self.logger, self.invoker, params).run)

        state = ConversionState(
            output_name=output_name,
            disks=list(disks),
            disk_uuids=list(disk_uuids),
            params=params,
            storagedomain_uuid=sd_uuid,
            cluster_uuid=cluster_uuid,
            cluster_cpu_architecture=cluster_arch,
            cluster_name=self.options.cluster_name,
        )

        for disk, uuid in zip(disks, disk_uuids):
            state.sessions.append(self._open(state, disk, uuid))

        Log.ok(self.logger, f"{len(state.sessions)} transfer(s) ready for copying")
        return state

    def _nbdkit_params(self, disk: DiskDescriptor, destination_url: str, is_ovirt_host: bool) -> List[Tuple[str, str]]:
        pairs = [("size", str(disk.size)), ("url", destination_url)]
        if self.options.rhv_cafile:
            pairs.append(("cafile", self.options.rhv_cafile))
        if not self.options.rhv_verifypeer:
            pairs.append(("insecure", "true"))
        if is_ovirt_host:
            pairs.append(("is_ovirt_host", "true"))
        return pairs

    def _open(self, state: ConversionState, disk: DiskDescriptor, disk_uuid: str) -> TransferSession:
        log = Log.bind(self.logger, disk=disk.index, disk_uuid=disk_uuid)

        disk_params = state.params.extended(
            disk_name=disk_name(state.output_name, disk.index),
            disk_format=self.options.output_format,
            disk_size=disk.size,
            disk_uuid=disk_uuid,
        )
        self.invoker.write_params(self.workdir / f"out.params{disk.index}.json", disk_params)

        log.info("Starting transfer of %s", U.human_bytes(disk.size))
        res = self.invoker.check(
            HelperScript.TRANSFER,
            disk_params,
            capture=TRANSFER_RESULT,
            error="failed to start transfer",
        )
        transfer_id = res.get_str("transfer_id")
        self.guard.register_transfer(transfer_id)
        destination_url = res.get_str("destination_url")
        is_ovirt_host = res.get_bool("is_ovirt_host")

        session = TransferSession(
            disk=disk,
            disk_uuid=disk_uuid,
            transfer_id=transfer_id,
            destination_url=destination_url,
            is_ovirt_host=is_ovirt_host,
        )

        cmd = self.nbdkit.with_params(*self._nbdkit_params(disk, destination_url, is_ovirt_host))
        session.daemon = cmd.run_unix(
            disk.index,
            socket_path(self.workdir, disk.index),
            timeout=self.daemon_start_timeout,
            on_started=self.guard.register_daemon,
        )
        log.info("Transfer %s exported on %s", transfer_id, session.socket)
        return session
