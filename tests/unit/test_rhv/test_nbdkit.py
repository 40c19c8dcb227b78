# SPDX-License-Identifier: LGPL-3.0-or-later
import os
import signal
import stat
import subprocess
from unittest.mock import Mock, patch

import pytest

from fakes.fake_nbdkit import FakeProcessTable
from hyper2rhv.core.exceptions import ProcessError
from hyper2rhv.core.utils import U
from hyper2rhv.rhv.nbdkit import (
    DEFAULT_THREADS,
    SELINUX_SOCKET_LABEL,
    ExportDaemon,
    Nbdkit,
    NbdkitCommand,
    parse_config,
    parse_version,
)


@pytest.mark.unit
class TestParsing:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("nbdkit 1.24.0\n", (1, 24, 0)),
            ("nbdkit 1.22", (1, 22, 0)),
            ("nbdkit 1.33.7 (nbdkit-1.33.7-1.fc38)", (1, 33, 7)),
        ],
    )
    def test_version(self, text, expected):
        assert parse_version(text) == expected

    def test_version_garbage(self):
        with pytest.raises(ValueError):
            parse_version("nbdkit: command not found")

    def test_config(self):
        text = "bindir=/usr/bin\nselinux=yes\nnot a pair\nversion=1.24.0\n"
        assert parse_config(text) == {"bindir": "/usr/bin", "selinux": "yes", "version": "1.24.0"}


@pytest.mark.unit
class TestNbdkitProbe:
    def test_version_and_plugin(self, logger):
        runs = {
            ("--version",): subprocess.CompletedProcess([], 0, stdout="nbdkit 1.24.0\n"),
            ("python", "/h/rhv-upload-plugin.py", "--dump-plugin"): subprocess.CompletedProcess([], 0, stdout=""),
        }

        def run(lg, cmd, **kw):
            return runs[tuple(cmd[1:])]

        with patch.object(U, "run_cmd", side_effect=run), patch.object(U, "which", return_value="/usr/bin/nbdkit"):
            nb = Nbdkit(logger)
            assert nb.is_installed()
            assert nb.version() == (1, 24, 0)
            assert nb.dump_plugin("python", "/h/rhv-upload-plugin.py")

    def test_not_installed(self, logger):
        with patch.object(U, "which", return_value=None):
            assert not Nbdkit(logger, "nbdkit-missing").is_installed()


@pytest.mark.unit
class TestNbdkitCommand:
    def test_argv(self, logger, tmp_path):
        base = NbdkitCommand(logger, plugin="python").add_param("script", "/h/rhv-upload-plugin.py")
        cmd = base.with_params(("size", 1024), ("url", "https://h/images/t0"), ("insecure", "true"))

        assert cmd.argv(tmp_path / "out0") == [
            "nbdkit",
            "--foreground",
            "--exit-with-parent",
            "--unix",
            str(tmp_path / "out0"),
            "--threads",
            str(DEFAULT_THREADS),
            "python",
            "script=/h/rhv-upload-plugin.py",
            "size=1024",
            "url=https://h/images/t0",
            "insecure=true",
        ]
        # the shared command is left alone
        assert base.params == [("script", "/h/rhv-upload-plugin.py")]

    def test_argv_selinux_and_verbose(self, logger, tmp_path):
        cmd = NbdkitCommand(logger, plugin="python", selinux_label=SELINUX_SOCKET_LABEL, verbose=True)

        argv = cmd.argv(tmp_path / "out0")

        i = argv.index("--selinux-label")
        assert argv[i + 1] == "system_u:object_r:svirt_socket_t:s0"
        assert "--verbose" in argv
        assert argv.index("--verbose") < argv.index("python")

    def test_run_unix_waits_for_socket(self, logger, tmp_path, procs):
        started = []
        sock = tmp_path / "out0"

        d = NbdkitCommand(logger, plugin="python").run_unix(0, sock, on_started=started.append)

        assert started == [d]
        assert d.socket == sock
        assert d.alive()
        assert stat.S_IMODE(os.stat(sock).st_mode) == 0o777

    def test_run_unix_daemon_exits_first(self, logger, tmp_path):
        table = FakeProcessTable(exit_early=1)
        with patch("hyper2rhv.rhv.nbdkit.subprocess.Popen", side_effect=table.popen):
            with pytest.raises(ProcessError, match="exited with status 1") as ei:
                NbdkitCommand(logger, plugin="python").run_unix(0, tmp_path / "out0")
        assert ei.value.code == 4

    def test_run_unix_timeout_kills(self, logger, tmp_path):
        table = FakeProcessTable(bind_socket=False)
        with patch("hyper2rhv.rhv.nbdkit.subprocess.Popen", side_effect=table.popen):
            with pytest.raises(ProcessError, match="did not create"):
                NbdkitCommand(logger, plugin="python").run_unix(0, tmp_path / "out0", timeout=0.05, poll_s=0.01)
        assert [p.returncode for p in table.procs.values()] == [-9]

    def test_run_unix_binary_missing(self, logger, tmp_path):
        with patch("hyper2rhv.rhv.nbdkit.subprocess.Popen", side_effect=FileNotFoundError(2, "nbdkit")):
            with pytest.raises(ProcessError, match="cannot start nbdkit"):
                NbdkitCommand(logger, plugin="python").run_unix(0, tmp_path / "out0")


@pytest.mark.unit
class TestExportDaemon:
    def test_terminate_sends_sigterm(self, tmp_path):
        proc = Mock(pid=4242, returncode=None)
        with patch("hyper2rhv.rhv.nbdkit.os.kill") as kill:
            ExportDaemon(0, tmp_path / "out0", proc).terminate()
        kill.assert_called_once_with(4242, signal.SIGTERM)

    def test_terminate_reaped_process(self, tmp_path):
        proc = Mock(pid=4242, returncode=0)
        with patch("hyper2rhv.rhv.nbdkit.os.kill") as kill:
            with pytest.raises(ProcessLookupError):
                ExportDaemon(0, tmp_path / "out0", proc).terminate()
        kill.assert_not_called()
