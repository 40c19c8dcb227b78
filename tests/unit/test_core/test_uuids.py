# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest

from hyper2rhv.core.exceptions import ConfigurationError
from hyper2rhv.core.uuids import NIL_UUID, new_uuid, new_uuids, resolve_disk_uuids, validate_uuid

GOOD = "1b6a5b2e-6a43-4a1c-9b77-2f5b1c9d0e11"


@pytest.mark.unit
class TestValidateUuid:
    @pytest.mark.parametrize(
        "value",
        [GOOD, GOOD.upper(), "ABCDEF01-2345-6789-abcd-ef0123456789"],
    )
    def test_accepts_canonical(self, value):
        assert validate_uuid(value)

    @pytest.mark.parametrize(
        "value",
        [
            NIL_UUID,
            "",
            "not-a-uuid",
            GOOD[:-1],
            GOOD + "0",
            GOOD.replace("-", ""),
            "{" + GOOD + "}",
            "1b6a5b2e-6a43-4a1c-9b77-2f5b1c9d0e1g",
            " " + GOOD,
        ],
    )
    def test_rejects(self, value):
        assert not validate_uuid(value)

    def test_rejects_non_string(self):
        assert not validate_uuid(None)  # type: ignore[arg-type]

    def test_generated_are_valid_and_distinct(self):
        ids = new_uuids(5)
        assert len(set(ids)) == 5
        assert all(validate_uuid(u) for u in ids + [new_uuid()])


@pytest.mark.unit
class TestResolveDiskUuids:
    def test_generates_one_per_disk(self):
        ids = resolve_disk_uuids(3)
        assert len(ids) == 3
        assert len(set(ids)) == 3

    def test_supplied_are_kept_in_order(self):
        supplied = [new_uuid(), new_uuid()]
        assert resolve_disk_uuids(2, supplied) == supplied

    def test_count_mismatch(self):
        with pytest.raises(ConfigurationError) as ei:
            resolve_disk_uuids(3, [new_uuid(), new_uuid()])

        assert "for this guest: 3" in ei.value.msg
        assert ei.value.context == {"expected": 3, "supplied": 2}
        assert ei.value.code == 2

    def test_invalid_supplied(self):
        with pytest.raises(ConfigurationError):
            resolve_disk_uuids(1, ["zzz"])
