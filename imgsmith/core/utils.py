# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/core/utils.py
from __future__ import annotations

import json
import shlex
import subprocess
from pathlib import Path
from shutil import which as _which
from typing import Any, Dict, List, Optional, Sequence, Union


class U:
    @staticmethod
    def ensure_dir(p: Path) -> None:
        p.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def which(prog: str) -> Optional[str]:
        return _which(prog)

    @staticmethod
    def json_dump(obj: Any) -> str:
        return json.dumps(obj, indent=2, sort_keys=True, default=str)

    @staticmethod
    def human_bytes(n: Optional[int]) -> str:
        if n is None:
            return "unknown"
        x = float(n)
        for unit in ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]:
            if x < 1024 or unit == "PiB":
                return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
            x /= 1024
        return f"{n} B"

    @staticmethod
    def banner(logger: Any, title: str) -> None:
        line = "─" * max(10, len(title) + 2)
        logger.info(line)
        logger.info(f" {title}")
        logger.info(line)

    @staticmethod
    def pretty_cmd(cmd: Sequence[str]) -> str:
        return " ".join(shlex.quote(str(x)) for x in cmd)

    @staticmethod
    def cmd_output(e: BaseException) -> str:
        """Best diagnostic text carried by a failed command (stderr first)."""
        if isinstance(e, subprocess.CalledProcessError):
            stderr = (e.stderr or "").strip() if isinstance(e.stderr, str) else ""
            stdout = (e.stdout or e.output or "")
            stdout = stdout.strip() if isinstance(stdout, str) else ""
            return stderr or stdout or f"exit status {e.returncode}"
        return str(e)

    @staticmethod
    def run_cmd(
        logger: Any,
        cmd: List[str],
        *,
        check: bool = True,
        capture: bool = True,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a host command to completion. No timeout: a hung tool hangs the run.

        - capture=True collects stdout/stderr as text
        """
        pretty = U.pretty_cmd(cmd)
        logger.debug("Running: %s", pretty)

        try:
            return subprocess.run(
                [str(x) for x in cmd],
                check=check,
                capture_output=capture,
                text=True,
                env=env,
                cwd=str(cwd) if cwd is not None else None,
            )

        except subprocess.CalledProcessError as e:
            stdout = (e.stdout or "").strip()
            stderr = (e.stderr or "").strip()
            if stdout or stderr:
                logger.error(
                    "Command failed: %s%s%s",
                    pretty,
                    f"\nstdout:\n{stdout}" if stdout else "",
                    f"\nstderr:\n{stderr}" if stderr else "",
                )
            else:
                logger.error("Command failed: %s (rc=%s, no output)", pretty, e.returncode)
            raise

        except OSError as e:
            logger.error("Command error: %s (%s)", pretty, e)
            raise
