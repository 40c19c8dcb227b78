# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/__init__.py
"""
hyper2rhv - RHV/oVirt upload output for converted guests

Creates disks on the engine, exposes each one as a local NBD socket for an
external copy engine, then finalizes the transfers and creates the VM. The
engine-side work is done by the rhv-upload-*.py helper programs.

Usage as a library:

    from hyper2rhv import RhvUpload, UploadOptions, UploadSettings, DiskDescriptor

    options = UploadOptions.from_output_options(
        output_conn="https://engine/ovirt-engine/api",
        output_password="/etc/hyper2rhv/engine.pass",
        output_storage="data",
    )
    with RhvUpload(logger, options, UploadSettings(helper_dir=...), workdir) as up:
        state = up.setup([DiskDescriptor(0, 10 * 1024**3)], "guest")
        ...

See examples/library_rhv_upload.py for the full flow.
"""

__version__ = "0.0.1"

from .core.exceptions import (
    ConfigurationError,
    EnvironmentCheckError,
    Fatal,
    Hyper2RhvError,
    ProcessError,
    RemoteRejection,
)
from .rhv import (
    ConversionState,
    DescriptorRequest,
    DiskDescriptor,
    FinalizeResult,
    RhvUpload,
    UploadOptions,
    UploadSettings,
)

__all__ = [
    "__version__",
    "RhvUpload",
    "UploadOptions",
    "UploadSettings",
    "DiskDescriptor",
    "ConversionState",
    "DescriptorRequest",
    "FinalizeResult",
    "Hyper2RhvError",
    "Fatal",
    "EnvironmentCheckError",
    "ConfigurationError",
    "RemoteRejection",
    "ProcessError",
]
