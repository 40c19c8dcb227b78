# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/cancel.py
from __future__ import annotations

import logging
from typing import Sequence

from ..core.exceptions import Hyper2RhvError
from .helpers import HelperInvoker, HelperScript
from .params import JsonParams


class CancelPhase:
    """
    Cancel open transfers and delete the disks created for them.

    Only ever runs while unwinding from a failure, so nothing here raises:
    the outcome is returned as a one-line diagnostic and logged.
    """

    def __init__(self, logger: logging.Logger, invoker: HelperInvoker, params: JsonParams):
        self.logger = logger
        self.invoker = invoker
        self.params = params

    def run(self, transfer_ids: Sequence[str], disk_uuids: Sequence[str]) -> str:
        params = self.params.extended(transfer_ids=list(transfer_ids), disk_uuids=list(disk_uuids))
        self.logger.info(
            "Cancelling %d transfer(s) and deleting %d disk(s) on the engine",
            len(transfer_ids),
            len(disk_uuids),
        )
        try:
            res = self.invoker.invoke(HelperScript.CANCEL, params)
        except Hyper2RhvError as e:
            diag = f"cancel helper could not run: {e}"
            self.logger.warning("%s", diag)
            return diag

        if res.ok:
            diag = f"cancelled transfers {list(transfer_ids)}, removed disks {list(disk_uuids)}"
            self.logger.info("%s", diag)
        else:
            diag = (
                f"cancel helper exited with status {res.returncode}; disks {list(disk_uuids)} "
                "may need to be removed manually from the engine"
            )
            self.logger.warning("%s", diag)
        return diag
