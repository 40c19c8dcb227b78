# SPDX-License-Identifier: LGPL-3.0-or-later
# hyper2rhv/rhv/__init__.py
from .finalize import DescriptorRequest, FinalizeResult
from .helpers import HelperInvoker, HelperResult, HelperScript
from .options import UploadOptions, query_output_options
from .state import ConversionState, DiskDescriptor, TransferSession
from .upload import RhvUpload, UploadSettings

__all__ = [
    "RhvUpload",
    "UploadSettings",
    "UploadOptions",
    "query_output_options",
    "DiskDescriptor",
    "ConversionState",
    "TransferSession",
    "DescriptorRequest",
    "FinalizeResult",
    "HelperInvoker",
    "HelperResult",
    "HelperScript",
]
