# SPDX-License-Identifier: LGPL-3.0-or-later
"""End-to-end runs of the rhv-upload output against a scripted engine."""
import shutil
from unittest.mock import patch

import pytest

from fakes.fake_engine import CLUSTER_UUID, SD_UUID, FakeEngine
from hyper2rhv.core.exceptions import ConfigurationError, RemoteRejection
from hyper2rhv.core.utils import U
from hyper2rhv.rhv.options import UploadOptions
from hyper2rhv.rhv.state import DiskDescriptor
from hyper2rhv.rhv.upload import RhvUpload, UploadSettings

GiB = 1024**3


@pytest.fixture
def options(password_file):
    return UploadOptions.from_output_options(
        output_conn="https://engine.example.com/ovirt-engine/api",
        output_password=str(password_file),
        output_storage="data",
        output_format="qcow2",
        output_name="web01",
    )


@pytest.fixture
def make_upload(logger, options, helper_dir, workdir, no_selinux):
    def make(**settings):
        return RhvUpload(
            logger,
            options,
            UploadSettings(helper_dir=helper_dir, daemon_stop_timeout=0.01, **settings),
            workdir,
            install_signal_handlers=False,
        )

    return make


@pytest.mark.unit
class TestRhvUpload:
    def test_two_disk_conversion(self, make_upload, engine, procs, workdir):
        requests = []

        def build(req):
            requests.append(req)
            return "<ovf/>"

        with make_upload() as up:
            state = up.setup([DiskDescriptor(0, 10 * GiB), DiskDescriptor(1, GiB)], "source-vm")
            uris = up.nbd_uris
            assert len(set(up.sockets)) == 2
            assert all(s.exists() for s in up.sockets)

            res = up.finalize(state, guest_arch="x86_64", build_descriptor=build)
            up.mark_done()

        assert len(state.disk_uuids) == 2
        assert state.transfer_ids == ["t0", "t1"]
        assert len(uris) == 2
        assert len(set(res.volume_uuids)) == 2
        assert res.vm_uuid not in res.volume_uuids

        assert engine.scripts() == [
            "rhv-upload-precheck.py",
            "rhv-upload-vmcheck.py",
            "rhv-upload-transfer.py",
            "rhv-upload-transfer.py",
            "rhv-upload-finalize.py",
            "rhv-upload-createvm.py",
        ]
        t0 = engine.calls_to("rhv-upload-transfer.py")[0]
        assert t0.params["disk_name"] == "web01-000"
        assert t0.params["disk_format"] == "qcow2"

        (req,) = requests
        assert req.storagedomain_uuid == SD_UUID
        assert req.output_name == "web01"
        assert engine.calls_to("rhv-upload-createvm.py")[0].params["rhv_cluster_uuid"] == CLUSTER_UUID

        # the plugin script is handed to nbdkit's python plugin
        argv = procs.argvs()[0]
        assert argv[argv.index("python") + 1].endswith("/rhv-upload-plugin.py")
        assert argv[argv.index("python") + 1].startswith("script=")
        assert "--selinux-label" not in argv

        # success: daemons stopped, nothing cancelled, workdir cleaned
        assert procs.running() == []
        assert engine.calls_to("rhv-upload-cancel.py") == []
        assert (workdir / "done").exists()
        assert sorted(p.name for p in workdir.iterdir()) == ["done"]

    def test_failure_after_setup_rolls_back(self, make_upload, engine, procs, workdir):
        with pytest.raises(RuntimeError):
            with make_upload() as up:
                state = up.setup([DiskDescriptor(0, GiB), DiskDescriptor(1, GiB)], "source-vm")
                raise RuntimeError("copy failed")

        (cancel,) = engine.calls_to("rhv-upload-cancel.py")
        assert cancel.params["transfer_ids"] == ["t0", "t1"]
        assert cancel.params["disk_uuids"] == state.disk_uuids
        assert procs.running() == []
        assert not (workdir / "out0").exists()
        assert not (workdir / "done").exists()

    def test_rollback_problem_does_not_mask_original_error(self, make_upload, engine, procs, workdir):
        with pytest.raises(RuntimeError, match="copy failed"):
            with make_upload() as up:
                up.setup([DiskDescriptor(0, GiB)], "source-vm")
                shutil.rmtree(workdir)
                raise RuntimeError("copy failed")

        assert engine.calls_to("rhv-upload-cancel.py") == []
        assert procs.running() == []

    def test_partial_setup_failure_cleans_up(self, make_upload, procs, workdir):
        eng = FakeEngine(fail_transfer_at=1)
        with patch.object(U, "run_cmd", side_effect=eng.run_cmd):
            with pytest.raises(RemoteRejection):
                with make_upload() as up:
                    up.setup([DiskDescriptor(i, GiB) for i in range(3)], "source-vm")

        (cancel,) = eng.calls_to("rhv-upload-cancel.py")
        assert cancel.params["transfer_ids"] == ["t0"]
        assert len(cancel.params["disk_uuids"]) == 3
        assert procs.running() == []
        assert not (workdir / "out0").exists()

    def test_keep_workdir_files(self, make_upload, engine, procs, workdir):
        with make_upload(keep_workdir_files=True) as up:
            up.setup([DiskDescriptor(0, GiB)], "source-vm")

        names = {p.name for p in workdir.iterdir()}
        assert "out.params0.json" in names
        assert "v2vprecheck.json" in names
        assert "out0" not in names

    def test_close_is_idempotent(self, make_upload, engine, procs):
        up = make_upload()
        up.setup([DiskDescriptor(0, GiB)], "source-vm")

        up.close()
        up.close()

        assert len(engine.calls_to("rhv-upload-cancel.py")) == 1


@pytest.mark.unit
class TestUploadSettings:
    def test_from_mapping(self, tmp_path):
        s = UploadSettings.from_mapping({"helper_dir": str(tmp_path), "nbdkit_threads": 4, "python": None})

        assert s.helper_dir == tmp_path
        assert s.nbdkit_threads == 4
        assert s.python == "python3"
        assert s.daemon_stop_timeout == 60.0

    def test_helper_dir_required(self):
        with pytest.raises(ConfigurationError):
            UploadSettings.from_mapping({})

    @pytest.mark.parametrize("threads", [0, -1, "0"])
    def test_thread_count_must_be_positive(self, tmp_path, threads):
        with pytest.raises(ConfigurationError, match="nbdkit_threads must be >= 1"):
            UploadSettings.from_mapping({"helper_dir": str(tmp_path), "nbdkit_threads": threads})
