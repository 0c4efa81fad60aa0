# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/storage/mount.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, List, Tuple

from ..core.exceptions import MountError, UnmountError
from ..core.utils import U
from .layout import ArchLayout
from .loop_device import LoopDevice

# Mount target of each partition role, relative to the scratch directory.
_TARGETS = {
    "root": "",
    "boot": "boot",
    "esp": "boot/efi",
}


class PartitionMounter:
    """
    Layers the guest partitions onto a scratch directory:

      root -> <scratch>
      boot -> <scratch>/boot        (only when the layout has a boot partition)
      esp  -> <scratch>/boot/efi

    Each target lives on the filesystem mounted before it, so the order is
    fixed. `active` records what is mounted so a failed mount part-way through
    can still be unwound, and teardown is a single recursive umount.
    """

    def __init__(self, logger: Any, layout: ArchLayout):
        self.logger = logger
        self.layout = layout
        self.active: List[Path] = []

    def partitions(self, loop: LoopDevice) -> List[Tuple[str, str]]:
        return [(role, loop.partition(n)) for role, n in self.layout.partitions()]

    def mount(self, loop: LoopDevice, scratch: Path) -> None:
        scratch = Path(scratch)
        for role, dev in self.partitions(loop):
            target = scratch / _TARGETS[role] if _TARGETS[role] else scratch
            if not target.is_dir():
                raise MountError(
                    msg=f"Mount target for {role} partition does not exist: {target}",
                    context={"partition": role, "device": dev, "target": str(target)},
                )
            try:
                U.run_cmd(self.logger, ["mount", dev, str(target)])
            except (subprocess.CalledProcessError, OSError) as e:
                raise MountError(
                    msg=f"Failed to mount {role} partition {dev} on {target}: {U.cmd_output(e)}",
                    cause=e,
                    context={"partition": role, "device": dev, "target": str(target)},
                ) from e
            self.active.append(target)
            self.logger.debug("Mounted %s (%s) on %s", dev, role, target)

    def unmount(self, scratch: Path) -> None:
        if not self.active:
            self.logger.debug("Nothing mounted under %s", scratch)
            return
        try:
            U.run_cmd(self.logger, ["umount", "--recursive", str(scratch)])
        except (subprocess.CalledProcessError, OSError) as e:
            raise UnmountError(
                msg=f"Failed to unmount {scratch}: {U.cmd_output(e)}",
                cause=e,
                context={"mount_path": str(scratch), "active": [str(p) for p in self.active]},
            ) from e
        self.logger.debug("Unmounted %d mount point(s) under %s", len(self.active), scratch)
        self.active.clear()
