# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .nbdkit import ExportDaemon
from .params import JsonParams


@dataclass(frozen=True)
class DiskDescriptor:
    """One source disk: ordinal index and declared virtual size in bytes."""
    index: int
    size: int


@dataclass
class TransferSession:
    """
    One engine-side image transfer and the nbdkit instance feeding it.

    The session is active while `daemon` is set.
    """
    disk: DiskDescriptor
    disk_uuid: str
    transfer_id: str
    destination_url: str
    is_ovirt_host: bool = False
    daemon: Optional[ExportDaemon] = None

    @property
    def index(self) -> int:
        return self.disk.index

    @property
    def active(self) -> bool:
        return self.daemon is not None

    @property
    def socket(self) -> Optional[Path]:
        return self.daemon.socket if self.daemon is not None else None


@dataclass
class ConversionState:
    """
    Everything setup hands over to finalize.

    storagedomain_uuid, cluster_uuid and cluster_cpu_architecture come from
    the precheck helper and are not modified afterwards.
    """
    output_name: str
    disks: List[DiskDescriptor]
    disk_uuids: List[str]
    params: JsonParams
    storagedomain_uuid: str
    cluster_uuid: str
    cluster_cpu_architecture: str
    cluster_name: str
    sessions: List[TransferSession] = field(default_factory=list)

    @property
    def transfer_ids(self) -> List[str]:
        return [s.transfer_id for s in self.sessions]

    @property
    def disk_sizes(self) -> List[int]:
        return [d.size for d in self.disks]

    @property
    def sockets(self) -> List[Path]:
        return [s.socket for s in self.sessions if s.socket is not None]

    def nbd_uris(self) -> List[str]:
        return [f"nbd+unix:///?socket={p}" for p in self.sockets]

    def active_sessions(self) -> List[TransferSession]:
        return [s for s in self.sessions if s.active]
