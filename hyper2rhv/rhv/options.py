# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/options.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.exceptions import ConfigurationError
from ..core.uuids import validate_uuid

OUTPUT_FORMATS = ("raw", "qcow2")
DEFAULT_CLUSTER = "Default"

OUTPUT_OPTIONS_HELP = """\
Output options (-oo) which can be used with rhv-upload:

  -oo rhv-cafile=CA.PEM           Set 'ca.pem' certificate bundle filename.
  -oo rhv-cluster=CLUSTERNAME     Set RHV cluster name.
  -oo rhv-direct[=true|false]     Use direct transfer mode (default: false).
  -oo rhv-verifypeer[=true|false] Verify server identity (default: false).

You can override the UUIDs of the disks, instead of using autogenerated UUIDs
after their uploads (if you do, you must supply one for each disk):

  -oo rhv-disk-uuid=UUID          Disk UUID
"""


def query_output_options() -> str:
    return OUTPUT_OPTIONS_HELP


def split_output_option(raw: str) -> Tuple[str, str]:
    """'key=value' -> (key, value); a bare 'key' yields an empty value."""
    key, _, value = str(raw).partition("=")
    return key.strip(), value


def _parse_bool(key: str, value: str) -> bool:
    if value == "":
        return True
    if value == "true":
        return True
    if value == "false":
        return False
    raise ConfigurationError(msg=f"rhv-upload: -oo {key}={value}: expected 'true' or 'false'")


@dataclass(frozen=True)
class UploadOptions:
    """
    Parsed once from the command line / config and never mutated.

    password_file holds the path of a file containing the engine password;
    the password itself is only ever read by the helper programs.
    """
    output_conn: str
    password_file: str
    output_storage: str
    output_format: str = "raw"
    rhv_cafile: Optional[str] = None
    rhv_cluster: Optional[str] = None
    rhv_direct: bool = False
    rhv_verifypeer: bool = False
    rhv_disk_uuids: Optional[Tuple[str, ...]] = None
    output_name: Optional[str] = None

    @property
    def cluster_name(self) -> str:
        return self.rhv_cluster or DEFAULT_CLUSTER

    @property
    def insecure(self) -> bool:
        return not self.rhv_verifypeer

    def resolve_output_name(self, source_name: str) -> str:
        name = self.output_name or source_name
        if not name:
            raise ConfigurationError(msg="rhv-upload: no output VM name (use -on or name the source VM)")
        return name

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["rhv_disk_uuids"] = list(self.rhv_disk_uuids) if self.rhv_disk_uuids is not None else None
        return d

    @classmethod
    def from_output_options(
        cls,
        *,
        output_conn: Optional[str],
        output_password: Optional[str],
        output_storage: Optional[str],
        output_format: Optional[str] = None,
        output_name: Optional[str] = None,
        output_options: Iterable[str] = (),
        check_files: bool = True,
    ) -> "UploadOptions":
        if not output_conn:
            raise ConfigurationError(
                msg="rhv-upload: use '-oc' to point to the oVirt or RHV server REST API URL, "
                "which is usually https://servername/ovirt-engine/api"
            )
        if not output_password:
            raise ConfigurationError(
                msg="rhv-upload: output password file was not specified, use '-op' to point to a file "
                "which contains the password used to connect to the oVirt or RHV server"
            )
        if not output_storage:
            raise ConfigurationError(msg="rhv-upload: output storage was not specified, use '-os'")
        if check_files and not Path(output_password).expanduser().is_file():
            raise ConfigurationError(msg=f"rhv-upload: output password file not found: {output_password}")

        fmt = output_format or "raw"
        if fmt not in OUTPUT_FORMATS:
            raise ConfigurationError(
                msg=f"rhv-upload: -of {fmt}: Only output format 'raw' or 'qcow2' is supported. "
                "If the input is in a different format then force one of these output formats "
                "by adding either '-of raw' or '-of qcow2' on the command line."
            )

        cafile: Optional[str] = None
        cluster: Optional[str] = None
        direct = False
        verifypeer = False
        disk_uuids: Optional[List[str]] = None

        for raw in output_options or ():
            key, value = split_output_option(raw)
            if key == "rhv-cafile":
                if cafile is not None:
                    raise ConfigurationError(msg="rhv-upload: -oo rhv-cafile set more than once")
                cafile = value
            elif key == "rhv-cluster":
                if cluster is not None:
                    raise ConfigurationError(msg="rhv-upload: -oo rhv-cluster set more than once")
                cluster = value
            elif key == "rhv-direct":
                direct = _parse_bool(key, value)
            elif key == "rhv-verifypeer":
                verifypeer = _parse_bool(key, value)
            elif key == "rhv-disk-uuid":
                if not validate_uuid(value):
                    raise ConfigurationError(msg=f"rhv-upload: invalid UUID for -oo rhv-disk-uuid: {value!r}")
                disk_uuids = (disk_uuids or []) + [value]
            else:
                raise ConfigurationError(msg=f"rhv-upload: unknown output option '-oo {key}'")

        if check_files and cafile is not None and not Path(cafile).expanduser().is_file():
            raise ConfigurationError(msg=f"rhv-upload: -oo rhv-cafile: file not found: {cafile}")

        return cls(
            output_conn=output_conn,
            password_file=output_password,
            output_storage=output_storage,
            output_format=fmt,
            rhv_cafile=cafile,
            rhv_cluster=cluster,
            rhv_direct=direct,
            rhv_verifypeer=verifypeer,
            rhv_disk_uuids=tuple(disk_uuids) if disk_uuids is not None else None,
            output_name=output_name or None,
        )
