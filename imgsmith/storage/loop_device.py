# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/storage/loop_device.py
from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..core.exceptions import AttachError, DetachError
from ..core.utils import U


@dataclass(frozen=True)
class LoopDevice:
    device: str
    image: Path

    def partition(self, number: int) -> str:
        return f"{self.device}p{number}"


class LoopDeviceManager:
    """
    Binds a raw image to a host loop device with partition scanning so the
    `<dev>pN` nodes appear, and releases the binding again.

    At most one binding is live at a time; a second attach while one is live
    is refused instead of producing an independent binding.
    """

    def __init__(self, logger: Any):
        self.logger = logger
        self.device: Optional[LoopDevice] = None

    def attach(self, image: Path) -> LoopDevice:
        image = Path(image)
        if self.device is not None:
            raise AttachError(
                msg=f"Loop device {self.device.device} is still attached; refusing a second attach",
                context={"image": str(image), "device": self.device.device},
            )

        cmd = ["losetup", "--find", "--show", "--partscan", str(image)]
        try:
            cp = U.run_cmd(self.logger, cmd)
        except (subprocess.CalledProcessError, OSError) as e:
            raise AttachError(
                msg=f"Failed to attach loop device: {U.cmd_output(e)}",
                cause=e,
                context={"image": str(image)},
            ) from e

        dev = (cp.stdout or "").strip().splitlines()
        dev_path = dev[-1].strip() if dev else ""
        if not dev_path.startswith("/dev/"):
            raise AttachError(
                msg=f"losetup did not report a loop device (output={cp.stdout!r})",
                context={"image": str(image)},
            )

        self.device = LoopDevice(device=dev_path, image=image)
        self.logger.info("Attached %s to %s", image, dev_path)
        return self.device

    def detach(self) -> None:
        if self.device is None:
            self.logger.debug("No loop device attached; nothing to detach")
            return

        dev = self.device.device
        try:
            U.run_cmd(self.logger, ["losetup", "--detach", dev])
        except (subprocess.CalledProcessError, OSError) as e:
            raise DetachError(
                msg=f"Failed to detach loop device {dev}: {U.cmd_output(e)}",
                cause=e,
                context={"device": dev},
            ) from e

        self.device = None
        self.logger.info("Detached %s", dev)
