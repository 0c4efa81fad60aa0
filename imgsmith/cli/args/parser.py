# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/cli/args/parser.py
from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from ...config.config_loader import Config
from ...core.exceptions import ExitCode, Fatal
from ...core.logger import Log, c
from ...core.utils import U
from ...storage.layout import LAYOUTS
from ..help_texts import EXIT_CODES, FEATURE_SUMMARY, YAML_EXAMPLE
from .validators import validate_args


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    """Combines raw description formatting with default value display in help."""


def _build_epilog() -> str:
    return (
        c("YAML example:\n", "cyan", ["bold"])
        + c(YAML_EXAMPLE, "cyan")
        + "\n"
        + c("Feature summary:\n", "cyan", ["bold"])
        + c(FEATURE_SUMMARY, "cyan")
        + c("\nExit codes:\n", "cyan", ["bold"])
        + c(EXIT_CODES, "cyan")
    )


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    # Global config/logging (two-phase parse relies on these)
    from ... import __version__

    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file (repeatable; later overrides earlier). Required.",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged config as JSON and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -vv debug, -vvv trace")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q warnings, -qq errors")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON logs on stderr.")


def _add_image_overrides(p: argparse.ArgumentParser) -> None:
    # Overrides for config keys (CLI wins over YAML)
    p.add_argument(
        "--arch",
        dest="arch",
        default=None,
        choices=sorted(LAYOUTS),
        help="Guest architecture (config `arch`; default amd64).",
    )
    p.add_argument(
        "--output-format",
        dest="output_format",
        default=None,
        help="Re-encode output: raw | qcow2 | vhd (config `output_format`).",
    )
    p.add_argument(
        "--kernel-version",
        dest="kernel_version",
        default=None,
        help="Kernel version for initramfs + grub.cfg (config `kernel_version`).",
    )
    p.add_argument(
        "--workdir",
        dest="workdir",
        default=None,
        help="Directory for base/raw/output images (config `workdir`; default .).",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="imgsmith",
        description=c("imgsmith: cloud base-image customizer", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=_build_epilog(),
    )
    _add_global_config_logging(p)
    _add_image_overrides(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    return pre


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Flow:
      Phase 0: parse ONLY global flags needed to locate config/logging
      Phase 1: load+merge config files (at least one is required)
      Phase 2: apply config as defaults onto the parser
      Phase 3: full parse to get final args
      Phase 4: validate overrides
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

    cfgs = getattr(args0, "config", None) or []
    if not cfgs and not any(a in ("-h", "--help", "--version") for a in argv):
        logger.error("No config file given. Usage: imgsmith --config <file.yaml>")
        raise Fatal(code=ExitCode.MISSING_CONFIG, msg="--config is required")

    conf = Config.load_many(logger, cfgs)

    if getattr(args0, "dump_config", False):
        print(U.json_dump(conf))
        raise SystemExit(0)

    # Apply config as defaults so CLI can override.
    Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)

    validate_args(args, conf)

    return args, conf, logger
