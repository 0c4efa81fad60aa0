# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/__main__.py
from __future__ import annotations

import sys
import traceback
from typing import Any, Optional

from .cli.args import merged_config, parse_args_with_config
from .config.config_loader import Config
from .core.exceptions import ExitCode, ImgSmithError, format_exception_for_cli
from .core.sanity_checker import SanityChecker
from .orchestrator.orchestrator import Orchestrator


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def _safe_log(logger: Any, level: str, msg: str) -> None:
    if logger is None:
        _print_stderr(msg)
        return

    fn = getattr(logger, level, None)
    if callable(fn):
        fn(msg)
    else:
        _print_stderr(msg)


def main(argv: Optional[list] = None) -> None:
    logger: Any = None
    verbose = 0

    # Phase 1: parse + load config (missing --config -> 2, bad config -> 3)
    try:
        args, conf, logger = parse_args_with_config(argv)
        verbose = getattr(args, "verbose", 0)
        settings = Config.build_settings(merged_config(args, conf))
    except ImgSmithError as e:
        _safe_log(logger, "error", format_exception_for_cli(e, verbose=verbose))
        raise SystemExit(e.code)
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        raise SystemExit(int(ExitCode.INTERRUPTED))

    # Phase 2: preflight + pipeline
    try:
        SanityChecker(logger).check_all()
        outcome = Orchestrator(logger, settings).run()
        rc = outcome.exit_code
        if outcome.error is not None:
            _safe_log(
                logger,
                "error",
                f"💥 {outcome.failed_stage}: {format_exception_for_cli(outcome.error, verbose=verbose)}",
            )
    except ImgSmithError as e:
        _safe_log(logger, "error", format_exception_for_cli(e, verbose=verbose))
        rc = e.code
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        rc = int(ExitCode.INTERRUPTED)
    except Exception as e:
        # Unexpected exceptions must not fail silently.
        _safe_log(logger, "error", f"💥 UNHANDLED {type(e).__name__}: {e}")
        _safe_log(logger, "debug", traceback.format_exc())
        rc = 1

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
