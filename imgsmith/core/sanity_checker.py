# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/core/sanity_checker.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .exceptions import PrivilegeError, ToolsMissingError
from .utils import U

# Host tools the pipeline shells out to. dpkg and update-initramfs run inside
# the guest through chroot, so they are not looked up on the host.
REQUIRED_TOOLS = ("qemu-img", "losetup", "mount", "umount", "chroot")


@dataclass
class SanityReport:
    is_root: bool = False
    missing_required: List[str] = field(default_factory=list)
    checks_ran: List[str] = field(default_factory=list)
    notes: Dict[str, str] = field(default_factory=dict)

    def ok(self) -> bool:
        return self.is_root and not self.missing_required

    def to_dict(self) -> Dict[str, object]:
        return {
            "ok": self.ok(),
            "is_root": self.is_root,
            "missing_required": list(self.missing_required),
            "checks_ran": list(self.checks_ran),
            "notes": dict(self.notes),
        }


class SanityChecker:
    """
    Preflight checks run before any privileged work:
      - effective uid is root (loop devices, mount and chroot need it)
      - required host tools are on PATH
    """

    def __init__(self, logger: Any, *, tools: tuple = REQUIRED_TOOLS):
        self.logger = logger
        self.tools = tools
        self.report = SanityReport()

    def check_privilege(self) -> None:
        self.report.checks_ran.append("privilege")
        self.report.is_root = os.geteuid() == 0
        if not self.report.is_root:
            raise PrivilegeError(msg="This operation requires root. Re-run with sudo.")

    def check_tools(self) -> None:
        self.report.checks_ran.append("tools")
        self.report.notes["required_tools"] = ", ".join(self.tools)
        missing = [t for t in self.tools if U.which(t) is None]
        self.report.missing_required.extend(missing)
        if missing:
            raise ToolsMissingError(
                msg=f"Missing required tools: {', '.join(missing)}",
                context={"missing": missing},
            )

    def check_all(self) -> SanityReport:
        self.check_privilege()
        self.check_tools()
        self.logger.debug("Sanity report: %s", U.json_dump(self.report.to_dict()))
        return self.report
