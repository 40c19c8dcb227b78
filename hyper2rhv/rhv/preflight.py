# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/preflight.py
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from ..core.exceptions import EnvironmentCheckError
from ..core.utils import U
from .helpers import HelperScript
from .nbdkit import NBDKIT_MIN_VERSION, Nbdkit, version_string

SDK_MODULE = "ovirtsdk4"

_SELINUX_ENFORCE = Path("/sys/fs/selinux/enforce")


def have_selinux() -> bool:
    """SELinux is enabled when selinuxfs is mounted."""
    return _SELINUX_ENFORCE.exists()


@dataclass
class PreflightReport:
    checks_ran: List[str] = field(default_factory=list)
    notes: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"checks_ran": list(self.checks_ran), "notes": dict(self.notes)}


class EnvironmentPreflight:
    """
    Checks that the helper interpreter, the engine SDK, nbdkit and its python
    plugin are usable, before anything is created on the engine.

    Checks run in order and the first failure raises EnvironmentCheckError
    telling the operator what to install or upgrade.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        helper_dir: Path,
        python: str = "python3",
        nbdkit: str = "nbdkit",
        selinux_enabled: Callable[[], bool] = have_selinux,
    ):
        self.logger = logger
        self.helper_dir = Path(helper_dir)
        self.python = python
        self.nbdkit = Nbdkit(logger, nbdkit)
        self.selinux_enabled = selinux_enabled
        self.report = PreflightReport()
        self._nbdkit_config: Optional[Dict[str, str]] = None

    # ------------------------------------------------------------------
    # checks
    # ------------------------------------------------------------------

    def _python_ok(self, *args: str) -> bool:
        try:
            return U.run_cmd(self.logger, [self.python, *args], capture=True).returncode == 0
        except OSError:
            return False

    def check_python(self) -> None:
        if U.which(self.python) is None and not Path(self.python).is_file():
            raise EnvironmentCheckError(
                msg=f"the Python interpreter '{self.python}' could not be found; install python3 "
                "or point --python at a working interpreter"
            )
        if not self._python_ok("-c", "pass"):
            raise EnvironmentCheckError(msg=f"the Python interpreter '{self.python}' is not working")
        self.report.notes["python"] = self.python

    def check_sdk(self) -> None:
        if not self._python_ok("-c", f"import {SDK_MODULE}"):
            raise EnvironmentCheckError(
                msg=f"the Python module '{SDK_MODULE}' could not be loaded by {self.python}, is it installed? "
                "See previous messages for problems."
            )
        self.report.notes["sdk"] = SDK_MODULE

    def check_nbdkit(self) -> None:
        if not self.nbdkit.is_installed():
            raise EnvironmentCheckError(
                msg="nbdkit is not installed or not working. It is required to upload disks to oVirt/RHV."
            )

    def check_nbdkit_version(self) -> None:
        try:
            version = self.nbdkit.version()
        except ValueError as e:
            raise EnvironmentCheckError(msg=f"cannot determine the nbdkit version: {e}", cause=e) from e
        if version < NBDKIT_MIN_VERSION:
            raise EnvironmentCheckError(
                msg=f"nbdkit is not new enough ({version_string(version)}), you need to upgrade to "
                f"nbdkit >= {version_string(NBDKIT_MIN_VERSION)}"
            )
        self.report.notes["nbdkit_version"] = version_string(version)

    def nbdkit_config(self) -> Dict[str, str]:
        if self._nbdkit_config is None:
            self._nbdkit_config = self.nbdkit.config()
        return self._nbdkit_config

    def check_nbdkit_selinux(self) -> None:
        if not self.selinux_enabled():
            self.report.notes["selinux"] = "disabled"
            return
        if self.nbdkit_config().get("selinux", "no") == "no":
            raise EnvironmentCheckError(
                msg="nbdkit was compiled without SELinux support. You will have to recompile nbdkit with "
                "libselinux-devel installed, or else set SELinux to Permissive mode while doing the conversion."
            )
        self.report.notes["selinux"] = "enabled, nbdkit supports --selinux-label"

    def check_helpers(self) -> None:
        missing = [s.value for s in HelperScript if not (self.helper_dir / s.value).is_file()]
        if missing:
            raise EnvironmentCheckError(
                msg=f"rhv-upload helper programs missing from {self.helper_dir}: {', '.join(missing)}; "
                "set --helper-dir to the directory that contains them"
            )
        self.report.notes["helper_dir"] = str(self.helper_dir)

    def check_nbdkit_plugin(self) -> None:
        plugin = self.helper_dir / HelperScript.PLUGIN.value
        if not self.nbdkit.dump_plugin("python", str(plugin)):
            raise EnvironmentCheckError(
                msg="nbdkit python plugin is not installed or not working. It is required to upload "
                "disks to oVirt/RHV (install the nbdkit python plugin package)."
            )

    # ------------------------------------------------------------------
    # orchestration
    # ------------------------------------------------------------------

    def checks(self) -> List[Tuple[str, Callable[[], None]]]:
        return [
            ("python", self.check_python),
            ("sdk", self.check_sdk),
            ("nbdkit", self.check_nbdkit),
            ("nbdkit version", self.check_nbdkit_version),
            ("selinux", self.check_nbdkit_selinux),
            ("helpers", self.check_helpers),
            ("nbdkit plugin", self.check_nbdkit_plugin),
        ]

    def _run_one(self, name: str, fn: Callable[[], None]) -> None:
        self.report.checks_ran.append(name)
        fn()

    def verify(self) -> PreflightReport:
        checks = self.checks()
        if sys.stderr.isatty():
            with Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TextColumn("{task.completed}/{task.total}"),
                TimeElapsedColumn(),
                transient=True,
            ) as progress:
                task = progress.add_task("Preflight", total=len(checks))
                for name, fn in checks:
                    progress.update(task, description=f"Preflight: {name}")
                    self._run_one(name, fn)
                    progress.update(task, advance=1)
        else:
            for name, fn in checks:
                self.logger.debug("Preflight: %s...", name)
                self._run_one(name, fn)

        self.logger.info("Preflight: OK")
        self.logger.debug("Preflight notes: %s", self.report.notes)
        return self.report
