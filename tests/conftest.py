# SPDX-License-Identifier: GPL-2.0-or-later
import logging
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

_THIS_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _THIS_DIR.parent

if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

os.environ.setdefault("PYTHONPATH", str(_REPO_ROOT))

from fakes.fake_engine import FakeEngine  # noqa: E402
from fakes.fake_nbdkit import FakeProcessTable  # noqa: E402
from hyper2rhv.core.utils import U  # noqa: E402
from hyper2rhv.rhv.helpers import HelperScript  # noqa: E402


@pytest.fixture
def logger():
    lg = logging.getLogger("rhv-tests")
    lg.setLevel(logging.DEBUG)
    return lg


@pytest.fixture
def workdir(tmp_path):
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def helper_dir(tmp_path):
    d = tmp_path / "helpers"
    d.mkdir()
    for s in HelperScript:
        (d / s.value).write_text("# helper\n", encoding="utf-8")
    return d


@pytest.fixture
def password_file(tmp_path):
    p = tmp_path / "engine.pass"
    p.write_text("secret\n", encoding="utf-8")
    return p


@pytest.fixture
def engine():
    """Default engine; tests needing failures build their own FakeEngine."""
    eng = FakeEngine()
    with patch.object(U, "run_cmd", side_effect=eng.run_cmd):
        yield eng


@pytest.fixture
def procs():
    table = FakeProcessTable()
    with patch("hyper2rhv.rhv.nbdkit.subprocess.Popen", side_effect=table.popen), \
            patch("hyper2rhv.rhv.nbdkit.os.kill", side_effect=table.kill):
        yield table


@pytest.fixture
def no_selinux():
    with patch("hyper2rhv.rhv.upload.have_selinux", return_value=False):
        yield
