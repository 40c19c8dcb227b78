# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/__main__.py
from __future__ import annotations

import argparse
import logging
import sys
import traceback
from typing import Optional, Sequence

from .cli.parser import parse_args_with_config
from .core.exceptions import Fatal, format_exception_for_cli
from .core.utils import U
from .rhv.options import UploadOptions, query_output_options
from .rhv.preflight import EnvironmentPreflight
from .rhv.upload import UploadSettings


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def _safe_log(logger, level: str, msg: str) -> None:
    if logger is None:
        _print_stderr(msg)
        return
    fn = getattr(logger, level, None)
    if callable(fn):
        fn(msg)
    else:
        _print_stderr(msg)


def _options_from_args(args: argparse.Namespace) -> UploadOptions:
    return UploadOptions.from_output_options(
        output_conn=args.output_conn,
        output_password=args.output_password,
        output_storage=args.output_storage,
        output_format=args.output_format,
        output_name=args.output_name,
        output_options=args.output_options or (),
    )


def run_command(logger: logging.Logger, args: argparse.Namespace) -> int:
    if args.cmd == "query-options":
        print(query_output_options(), end="")
        return 0

    if args.cmd == "check-options":
        options = _options_from_args(args)
        print(U.json_dump(options.to_dict()))
        return 0

    if args.cmd == "preflight":
        settings = UploadSettings.from_mapping(vars(args))
        report = EnvironmentPreflight(
            logger,
            helper_dir=settings.helper_dir,
            python=settings.python,
            nbdkit=settings.nbdkit,
        ).verify()
        print(U.json_dump(report.to_dict()))
        return 0

    raise AssertionError(f"unhandled command {args.cmd!r}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    logger: Optional[logging.Logger] = None
    verbose = 0

    # Phase 1: parse (Fatal can happen here, before or after logging exists)
    try:
        args, _conf, logger = parse_args_with_config(argv)
        verbose = args.verbose
    except Fatal as e:
        _safe_log(logger, "error", format_exception_for_cli(e))
        raise SystemExit(e.code)
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        raise SystemExit(130)

    # Phase 2: run the command
    try:
        rc = run_command(logger, args)
    except Fatal as e:
        _safe_log(logger, "error", format_exception_for_cli(e, verbose=verbose))
        rc = e.code
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        rc = 130
    except Exception as e:
        _safe_log(logger, "error", f"💥 UNHANDLED {type(e).__name__}: {e}")
        _safe_log(logger, "debug", traceback.format_exc())
        rc = 1

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
