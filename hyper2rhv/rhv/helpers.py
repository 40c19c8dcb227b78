# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/rhv/helpers.py
"""
Running the rhv-upload helper programs.

Each helper is a Python script talking to the engine through its SDK. It gets
one argument, a JSON parameter file, plus optional extra positional
arguments; some of them print a JSON object on stdout. What the helpers do
on the engine side is opaque here: we only sequence them and read back the
fields we need.
"""
from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.exceptions import EnvironmentCheckError, RemoteRejection
from ..core.logger import Log
from ..core.utils import U
from .params import JsonParams


class HelperScript(str, Enum):
    PRECHECK = "rhv-upload-precheck.py"
    VMCHECK = "rhv-upload-vmcheck.py"
    PLUGIN = "rhv-upload-plugin.py"
    TRANSFER = "rhv-upload-transfer.py"
    FINALIZE = "rhv-upload-finalize.py"
    CANCEL = "rhv-upload-cancel.py"
    CREATEVM = "rhv-upload-createvm.py"


ScriptRef = Union[HelperScript, str]


def _script_name(script: ScriptRef) -> str:
    return script.value if isinstance(script, HelperScript) else str(script)


@dataclass(frozen=True)
class HelperResult:
    script: str
    returncode: int
    document: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def _field(self, key: str) -> Any:
        if self.document is None:
            raise RemoteRejection(msg=f"{self.script}: no JSON result was captured")
        if key not in self.document:
            raise RemoteRejection(
                msg=f"{self.script}: JSON result has no field '{key}'",
                context={"fields": sorted(self.document)},
            )
        return self.document[key]

    def get_str(self, key: str) -> str:
        v = self._field(key)
        if not isinstance(v, str):
            raise RemoteRejection(msg=f"{self.script}: field '{key}' is not a string: {v!r}")
        return v

    def get_bool(self, key: str) -> bool:
        v = self._field(key)
        if not isinstance(v, bool):
            raise RemoteRejection(msg=f"{self.script}: field '{key}' is not a boolean: {v!r}")
        return v


@dataclass
class HelperInvoker:
    """
    Writes the parameter document, runs `<python> <script> <params> [args]`
    and optionally captures stdout into a result file parsed as JSON.

    A non-zero exit is returned to the caller, which decides whether it is
    fatal; check() is the shorthand for the callers where it always is.
    """
    logger: logging.Logger
    helper_dir: Path
    workdir: Path
    python: str = "python3"
    written: List[Path] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.helper_dir = Path(self.helper_dir)
        self.workdir = Path(self.workdir)
        self._seq = itertools.count()

    def script_path(self, script: ScriptRef) -> Path:
        return self.helper_dir / _script_name(script)

    def write_params(self, path: Path, params: JsonParams) -> Path:
        U.write_private(path, params.to_json())
        self.written.append(path)
        return path

    def invoke(
        self,
        script: ScriptRef,
        params: JsonParams,
        args: Sequence[str] = (),
        *,
        capture: Optional[str] = None,
    ) -> HelperResult:
        name = _script_name(script)
        stem = name[:-3] if name.endswith(".py") else name
        try:
            params_file = self.write_params(self.workdir / f"{stem}.{next(self._seq)}.params.json", params)
        except OSError as e:
            raise EnvironmentCheckError(msg=f"cannot write parameters for helper {name} in {self.workdir}: {e}", cause=e) from e
        result_file = self.workdir / capture if capture else None

        Log.trace(self.logger, "🧾 %s params: %s", name, params.redacted())
        cmd = [self.python, str(self.script_path(script)), str(params_file), *[str(a) for a in args]]
        try:
            cp = U.run_cmd(self.logger, cmd, stdout_path=result_file)
        except OSError as e:
            raise EnvironmentCheckError(msg=f"cannot run helper {name} with {self.python}: {e}", cause=e) from e

        if result_file is not None:
            self.written.append(result_file)

        if cp.returncode != 0:
            self.logger.debug("%s exited with status %d", name, cp.returncode)
            return HelperResult(script=name, returncode=cp.returncode)

        document = self._parse_result(name, result_file) if result_file is not None else None
        return HelperResult(script=name, returncode=0, document=document)

    def check(
        self,
        script: ScriptRef,
        params: JsonParams,
        args: Sequence[str] = (),
        *,
        capture: Optional[str] = None,
        error: str,
    ) -> HelperResult:
        res = self.invoke(script, params, args, capture=capture)
        if not res.ok:
            raise RemoteRejection(msg=f"{error}, see earlier errors", context={"helper": res.script, "status": res.returncode})
        return res

    def _parse_result(self, name: str, path: Path) -> Dict[str, Any]:
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RemoteRejection(msg=f"{name}: cannot parse JSON result {path}: {e}", cause=e) from e
        if not isinstance(doc, dict):
            raise RemoteRejection(msg=f"{name}: JSON result is not an object: {path}")
        self.logger.debug("%s output parsed as: %s", name, U.json_dump(doc))
        return doc
