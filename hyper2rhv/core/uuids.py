# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/core/uuids.py
"""
Disk, volume and VM identifiers.

Disk UUIDs may come from the caller (one per disk, in disk order) so that a
conversion can be re-run against pre-registered identifiers; everything else
is generated here.
"""
from __future__ import annotations

import re
import uuid
from typing import List, Optional, Sequence

from .exceptions import ConfigurationError

NIL_UUID = "00000000-0000-0000-0000-000000000000"

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def validate_uuid(value: str) -> bool:
    """True for canonical 8-4-4-4-12 hex UUIDs other than the nil UUID."""
    if not isinstance(value, str) or value == NIL_UUID:
        return False
    return _UUID_RE.match(value) is not None


def new_uuid() -> str:
    return str(uuid.uuid4())


def new_uuids(count: int) -> List[str]:
    return [new_uuid() for _ in range(count)]


def resolve_disk_uuids(declared_count: int, supplied: Optional[Sequence[str]] = None) -> List[str]:
    """
    Return one disk UUID per disk, in disk ordinal order.

    Caller-supplied UUIDs are used as given; otherwise fresh random ones are
    generated.
    """
    if supplied is None:
        return new_uuids(declared_count)

    uuids = list(supplied)
    if len(uuids) != declared_count:
        raise ConfigurationError(
            msg=(
                "the number of 'rhv-disk-uuid' output options has to match the "
                f"number of guest disk images (for this guest: {declared_count})"
            ),
            context={"expected": declared_count, "supplied": len(uuids)},
        )

    for u in uuids:
        if not validate_uuid(u):
            raise ConfigurationError(msg=f"invalid UUID for rhv-disk-uuid: {u!r}")
    return uuids
