# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/params.py
from __future__ import annotations

import json
from typing import Any, Dict, Iterator, Mapping, Optional

from ..core.exceptions import redact
from .options import UploadOptions


class JsonParams:
    """
    The JSON document handed to every helper program.

    One instance is built during setup and grows as phases learn more
    (connection details first, then the output name); per-call additions go
    through extended(), which leaves the shared instance untouched.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    @classmethod
    def from_options(cls, options: UploadOptions, *, verbose: bool = False) -> "JsonParams":
        params = cls(
            {
                "verbose": bool(verbose),
                "output_conn": options.output_conn,
                "output_password": options.password_file,
                "output_storage": options.output_storage,
                "rhv_cafile": options.rhv_cafile,
                "rhv_cluster": options.cluster_name,
                "rhv_direct": bool(options.rhv_direct),
                # The SDK's 'insecure' knob is really a mode number; plain
                # True/False is what the helpers expect.
                "insecure": options.insecure,
            }
        )
        if options.rhv_disk_uuids is not None:
            params.set("rhv_disk_uuids", list(options.rhv_disk_uuids))
        return params

    def set(self, key: str, value: Any) -> "JsonParams":
        self._data[key] = value
        return self

    def extended(self, **extra: Any) -> "JsonParams":
        out = JsonParams(self._data)
        out._data.update(extra)
        return out

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def redacted(self) -> Dict[str, Any]:
        return redact(self._data)

    def to_json(self) -> str:
        return json.dumps(self._data)

    def __repr__(self) -> str:
        return f"JsonParams({self.redacted()!r})"
