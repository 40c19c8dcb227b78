# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/core/utils.py
from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Any, List, Optional, Sequence


class U:
    @staticmethod
    def ensure_dir(p: Path) -> None:
        p.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def which(prog: str) -> Optional[str]:
        from shutil import which as _which
        return _which(prog)

    @staticmethod
    def json_dump(obj: Any) -> str:
        try:
            return json.dumps(obj, indent=2, sort_keys=True, default=str)
        except Exception:
            return repr(obj)

    @staticmethod
    def human_bytes(n: Optional[int]) -> str:
        if n is None:
            return "unknown"
        x = float(n)
        for unit in ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]:
            if x < 1024 or unit == "PiB":
                return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
            x /= 1024
        return f"{n} B"

    @staticmethod
    def pretty_cmd(cmd: Sequence[str]) -> str:
        return " ".join(shlex.quote(str(x)) for x in cmd)

    @staticmethod
    def write_private(path: Path, text: str) -> None:
        """Write text to path, creating it with mode 0600."""
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)

    @staticmethod
    def run_cmd(
        logger: logging.Logger,
        cmd: List[str],
        *,
        capture: bool = False,
        stdout_path: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a command and return its CompletedProcess; a non-zero exit is not an error here.

        - capture=True uses subprocess.run(capture_output=True, text=True)
        - stdout_path redirects stdout into a freshly created 0600 file
          (stderr is left attached to ours so helper diagnostics stay visible)
        """
        pretty = U.pretty_cmd(cmd)
        logger.debug("Running: %s", pretty)

        try:
            if stdout_path is not None:
                fd = os.open(str(stdout_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as out:
                    return subprocess.run(cmd, check=False, stdout=out, text=True)
            return subprocess.run(cmd, check=False, capture_output=capture, text=True)
        except OSError as e:
            logger.error("Command error: %s (%s)", pretty, e)
            raise
