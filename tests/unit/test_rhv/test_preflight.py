# SPDX-License-Identifier: LGPL-3.0-or-later
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from hyper2rhv.core.exceptions import EnvironmentCheckError
from hyper2rhv.core.utils import U
from hyper2rhv.rhv.helpers import HelperScript
from hyper2rhv.rhv.preflight import EnvironmentPreflight


class FakeHost:
    """Answers the commands preflight runs."""

    def __init__(self, *, sdk=True, version="nbdkit 1.24.0", selinux_build="yes", plugin=True):
        self.sdk = sdk
        self.version = version
        self.selinux_build = selinux_build
        self.plugin = plugin
        self.commands = []

    def run_cmd(self, logger, cmd, **kw):
        self.commands.append(list(cmd))
        rc, out = 0, ""
        if cmd[1:] == ["-c", "import ovirtsdk4"]:
            rc = 0 if self.sdk else 1
        elif cmd[1:] == ["--version"]:
            out = self.version
        elif cmd[1:] == ["--dump-config"]:
            out = f"selinux={self.selinux_build}\n"
        elif cmd[-1] == "--dump-plugin":
            rc = 0 if self.plugin else 1
        return subprocess.CompletedProcess(cmd, rc, stdout=out, stderr="")


class TestEnvironmentPreflight(unittest.TestCase):
    def setUp(self):
        self.logger = Mock()

    def _run(self, host, helper_dir, *, selinux=False):
        pf = EnvironmentPreflight(
            self.logger,
            helper_dir=helper_dir,
            python="python3",
            selinux_enabled=lambda: selinux,
        )
        with patch.object(U, "run_cmd", side_effect=host.run_cmd), \
                patch.object(U, "which", side_effect=lambda p: f"/usr/bin/{p}"), \
                patch("sys.stderr") as stderr:
            stderr.isatty.return_value = False
            return pf, pf.verify()

    def _helpers(self, td):
        d = Path(td)
        for s in HelperScript:
            (d / s.value).write_text("#")
        return d

    def test_all_checks_pass(self):
        with tempfile.TemporaryDirectory() as td:
            host = FakeHost()
            _pf, report = self._run(host, self._helpers(td), selinux=True)

        self.assertEqual(
            report.checks_ran,
            ["python", "sdk", "nbdkit", "nbdkit version", "selinux", "helpers", "nbdkit plugin"],
        )
        self.assertEqual(report.notes["nbdkit_version"], "1.24.0")
        plugin_cmd = host.commands[-1]
        self.assertEqual(plugin_cmd[1:3], ["python", str(Path(td) / "rhv-upload-plugin.py")])

    def test_sdk_missing(self):
        with self.assertRaises(EnvironmentCheckError) as ctx:
            self._run(FakeHost(sdk=False), Path("/nonexistent"))
        self.assertIn("ovirtsdk4", ctx.exception.msg)
        self.assertEqual(ctx.exception.code, 5)

    def test_nbdkit_too_old(self):
        with self.assertRaises(EnvironmentCheckError) as ctx:
            self._run(FakeHost(version="nbdkit 1.20.4"), Path("/nonexistent"))
        self.assertIn("not new enough (1.20.4)", ctx.exception.msg)
        self.assertIn(">= 1.22.0", ctx.exception.msg)

    def test_selinux_without_nbdkit_support(self):
        with self.assertRaises(EnvironmentCheckError) as ctx:
            self._run(FakeHost(selinux_build="no"), Path("/nonexistent"), selinux=True)
        self.assertIn("without SELinux support", ctx.exception.msg)

    def test_selinux_disabled_skips_build_check(self):
        with tempfile.TemporaryDirectory() as td:
            host = FakeHost(selinux_build="no")
            _pf, report = self._run(host, self._helpers(td), selinux=False)

        self.assertEqual(report.notes["selinux"], "disabled")
        self.assertNotIn(["nbdkit", "--dump-config"], host.commands)

    def test_helpers_missing(self):
        with tempfile.TemporaryDirectory() as td:
            (Path(td) / "rhv-upload-plugin.py").write_text("#")
            with self.assertRaises(EnvironmentCheckError) as ctx:
                self._run(FakeHost(), Path(td))
        self.assertIn("rhv-upload-precheck.py", ctx.exception.msg)

    def test_plugin_broken(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(EnvironmentCheckError) as ctx:
                self._run(FakeHost(plugin=False), self._helpers(td))
        self.assertIn("python plugin", ctx.exception.msg)


@pytest.mark.unit
def test_preflight_runs_before_remote_calls(logger, helper_dir, engine):
    """Preflight only probes the local host; no helper program is run."""
    host = FakeHost()
    with patch.object(U, "run_cmd", side_effect=host.run_cmd), \
            patch.object(U, "which", side_effect=lambda p: f"/usr/bin/{p}"):
        EnvironmentPreflight(logger, helper_dir=helper_dir, selinux_enabled=lambda: False).verify()

    assert engine.calls == []
    assert not any("rhv-upload-precheck.py" in " ".join(c) for c in host.commands)
