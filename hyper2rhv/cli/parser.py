# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/cli/parser.py
from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from ..config.config_loader import Config
from ..core.exceptions import ConfigurationError
from ..core.logger import Log, c
from ..core.utils import U
from ..rhv.options import OUTPUT_FORMATS
from .help_texts import COMMANDS_SUMMARY, YAML_EXAMPLE

COMMANDS = ("preflight", "query-options", "check-options")


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    """Raw description formatting plus default values in help."""


def _build_epilog() -> str:
    return (
        c("Commands:\n", "cyan", ["bold"])
        + c(COMMANDS_SUMMARY, "cyan")
        + "\n"
        + c("YAML example:\n", "cyan", ["bold"])
        + c(YAML_EXAMPLE, "cyan")
    )


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    from .. import __version__

    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged normalized config and exit.")
    p.add_argument("--dump-args", action="store_true", help="Print final parsed args and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -v, -vv, -vvv (trace)")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q, -qq")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON logs on stderr.")


def _add_command(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--cmd",
        dest="cmd",
        default=None,
        choices=COMMANDS,
        help="Operation (normally from YAML `cmd:`).",
    )


def _add_output_target(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("RHV/oVirt target")
    g.add_argument("-oc", dest="output_conn", default=None, help="Engine REST API URL, e.g. https://engine/ovirt-engine/api")
    g.add_argument("-op", dest="output_password", default=None, help="File containing the engine password.")
    g.add_argument("-os", dest="output_storage", default=None, help="Storage domain name or UUID.")
    g.add_argument("-of", dest="output_format", default=None, choices=OUTPUT_FORMATS, help="Disk format on the engine (default: raw).")
    g.add_argument("-on", dest="output_name", default=None, help="Name of the VM created on the engine.")
    g.add_argument(
        "-oo",
        dest="output_options",
        action="append",
        default=[],
        metavar="KEY[=VALUE]",
        help="Output option (repeatable); see --cmd query-options.",
    )


def _add_runtime(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Local runtime")
    g.add_argument("--helper-dir", dest="helper_dir", default=None, help="Directory holding the rhv-upload-*.py helpers.")
    g.add_argument("--python", dest="python", default="python3", help="Interpreter used to run the helpers.")
    g.add_argument("--nbdkit", dest="nbdkit", default="nbdkit", help="nbdkit binary.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hyper2rhv",
        description=c("hyper2rhv: upload converted guests to RHV/oVirt", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=_build_epilog(),
    )
    _add_global_config_logging(p)
    _add_command(p)
    _add_output_target(p)
    _add_runtime(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    pre.add_argument("--dump-args", action="store_true")
    return pre


def _load_merged_config(logger: Any, cfgs: Sequence[str]) -> Dict[str, Any]:
    if not cfgs:
        return {}
    expanded = Config.expand_configs(logger, list(cfgs))
    return Config.load_many(logger, expanded)


def validate_args(args: argparse.Namespace) -> None:
    if not args.cmd:
        raise ConfigurationError(msg=f"no command given; use --cmd {{{','.join(COMMANDS)}}} or `cmd:` in YAML")
    if args.cmd not in COMMANDS:
        raise ConfigurationError(msg=f"unknown command {args.cmd!r} (expected one of {', '.join(COMMANDS)})")
    if args.cmd == "preflight" and not args.helper_dir:
        raise ConfigurationError(msg="preflight: --helper-dir (or `helper_dir:` in YAML) is required")


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Phase 0: parse only the flags needed to find config and set up logging
    Phase 1: load and merge config files
    Phase 2: apply config as parser defaults (CLI wins)
    Phase 3: full parse and validation
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()

    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        logger = Log.setup(
            getattr(args0, "verbose", 0),
            getattr(args0, "log_file", None),
            quiet=getattr(args0, "quiet", 0),
            json_logs=getattr(args0, "json_logs", False),
        )

    conf = _load_merged_config(logger, getattr(args0, "config", None) or [])

    if getattr(args0, "dump_config", False):
        print(U.json_dump(conf))
        raise SystemExit(0)

    Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)

    if getattr(args0, "dump_args", False):
        print(U.json_dump(vars(args)))
        raise SystemExit(0)

    validate_args(args)
    return args, conf, logger
