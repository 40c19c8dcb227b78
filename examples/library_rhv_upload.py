#!/usr/bin/env python3
# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Example: upload already-converted disks to RHV/oVirt using the hyper2rhv library.

This example demonstrates:
- Creating the disks and transfers on the engine
- Copying each local image into its NBD socket with qemu-img
- Finalizing the transfers and creating the VM from an OVF descriptor
- Automatic rollback if anything fails before mark_done()

Usage:
    python library_rhv_upload.py ENGINE_URL PASSWORD_FILE STORAGE_DOMAIN HELPER_DIR disk0.qcow2 [disk1.qcow2 ...]
"""

import json
import subprocess
import sys
import tempfile
from pathlib import Path

from hyper2rhv import DescriptorRequest, DiskDescriptor, RhvUpload, UploadOptions, UploadSettings
from hyper2rhv.core.logger import Log

logger = Log.setup(verbose=1)


def virtual_size(image: Path) -> int:
    out = subprocess.run(
        ["qemu-img", "info", "--output=json", str(image)],
        check=True,
        capture_output=True,
        text=True,
    ).stdout
    return int(json.loads(out)["virtual-size"])


def minimal_ovf(req: DescriptorRequest) -> str:
    """Placeholder descriptor; a real pipeline renders a full OVF from the inspected guest."""
    disks = "".join(
        f'<Disk ovf:diskId="{vol}" ovf:size="{size}" ovf:fileRef="{disk}/{vol}" '
        f'ovf:volume-format="{"COW" if req.output_format == "qcow2" else "RAW"}" '
        f'ovf:volume-type="{"Sparse" if req.sparse else "Preallocated"}"/>'
        for disk, vol, size in zip(req.disk_uuids, req.volume_uuids, req.disk_sizes)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<ovf:Envelope xmlns:ovf="http://schemas.dmtf.org/ovf/envelope/1/">'
        f"<Section><Name>{req.output_name}</Name><VmId>{req.vm_uuid}</VmId></Section>"
        f"<DiskSection>{disks}</DiskSection>"
        "</ovf:Envelope>"
    )


def main(argv):
    if len(argv) < 6:
        print(__doc__)
        return 1

    conn, password_file, storage, helper_dir, *images = argv[1:]
    images = [Path(p) for p in images]

    options = UploadOptions.from_output_options(
        output_conn=conn,
        output_password=password_file,
        output_storage=storage,
        output_format="qcow2",
        output_options=["rhv-cluster=Default"],
    )
    settings = UploadSettings(helper_dir=Path(helper_dir))
    disks = [DiskDescriptor(i, virtual_size(p)) for i, p in enumerate(images)]

    with tempfile.TemporaryDirectory(prefix="hyper2rhv-") as workdir:
        with RhvUpload(logger, options, settings, Path(workdir)) as up:
            up.preflight()
            state = up.setup(disks, images[0].stem)

            for image, uri in zip(images, up.nbd_uris):
                subprocess.run(
                    ["qemu-img", "convert", "-n", "-p", "-O", "qcow2", str(image), uri],
                    check=True,
                )

            result = up.finalize(state, guest_arch="x86_64", build_descriptor=minimal_ovf)
            up.mark_done()

    logger.info("Created VM %s (%s)", state.output_name, result.vm_uuid)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
