# SPDX-License-Identifier: LGPL-3.0-or-later
import json
import logging

import pytest

from hyper2rhv.core.logger import TRACE, EmojiFormatter, JsonFormatter, Log, LogStyle


def _record(msg, *, level=logging.INFO, ctx=None):
    rec = logging.LogRecord("hyper2rhv", level, __file__, 10, msg, (), None)
    if ctx is not None:
        rec.ctx = ctx
    return rec


@pytest.mark.unit
class TestLevels:
    @pytest.mark.parametrize(
        "verbose,quiet,level",
        [
            (0, 0, logging.INFO),
            (2, 0, logging.DEBUG),
            (3, 0, TRACE),
            (0, 1, logging.WARNING),
            (3, 2, logging.ERROR),
        ],
    )
    def test_level_from_flags(self, verbose, quiet, level):
        assert Log._level_from_flags(verbose, quiet) == level

    def test_setup_replaces_handlers(self, tmp_path):
        lg = Log.setup(2, str(tmp_path / "run.log"), logger_name="hyper2rhv.test-setup")
        lg = Log.setup(2, str(tmp_path / "run.log"), logger_name="hyper2rhv.test-setup")

        assert lg.level == logging.DEBUG
        assert len(lg.handlers) == 2
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()


@pytest.mark.unit
class TestFormatters:
    def test_json_formatter_redacts_ctx(self):
        rec = _record("params", ctx={"output_password": "/etc/pw", "disk": 0})

        obj = json.loads(JsonFormatter().format(rec))

        assert obj["msg"] == "params"
        assert obj["ctx"] == {"output_password": "***REDACTED***", "disk": 0}

    def test_emoji_formatter_appends_ctx(self):
        rec = _record("Starting transfer", ctx={"disk": 1})

        line = EmojiFormatter(LogStyle(color=False)).format(rec)

        assert "Starting transfer disk=1" in line
        assert "INFO" in line

    def test_bind_carries_context(self):
        captured = []

        class _H(logging.Handler):
            def emit(self, record):
                captured.append(getattr(record, "ctx", None))

        lg = logging.getLogger("hyper2rhv.test-bind")
        lg.propagate = False
        h = _H()
        lg.addHandler(h)
        try:
            Log.bind(lg, disk=2).warning("x", extra={"ctx": {"transfer_id": "t2"}})
        finally:
            lg.removeHandler(h)

        assert captured == [{"disk": 2, "transfer_id": "t2"}]
