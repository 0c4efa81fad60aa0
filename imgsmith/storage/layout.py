# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/storage/layout.py
"""
Static per-architecture disk layout of the supported cloud images.

One table drives partition numbering, whether /boot is a separate partition,
where the boot loader finds kernel artifacts, and the kernel command line.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import ConfigError

DEFAULT_ARCH = "amd64"


@dataclass(frozen=True)
class ArchLayout:
    arch: str
    root_partition: int
    boot_partition: Optional[int]
    esp_partition: int
    # Prefix of kernel/initrd paths as seen from the partition holding them.
    path_prefix: str
    cmdline: str

    @property
    def has_boot_partition(self) -> bool:
        return self.boot_partition is not None

    def kernel_path(self, kernel_version: str) -> str:
        return f"{self.path_prefix}vmlinuz-{kernel_version}"

    def initrd_path(self, kernel_version: str) -> str:
        return f"{self.path_prefix}initrd.img-{kernel_version}"

    def partitions(self) -> List[Tuple[str, int]]:
        """Ordered (role, partition number) pairs in mount order."""
        out = [("root", self.root_partition)]
        if self.has_boot_partition:
            out.append(("boot", self.boot_partition))
        out.append(("esp", self.esp_partition))
        return out


LAYOUTS: Dict[str, ArchLayout] = {
    # Kernel and initrd live under /boot on the root filesystem.
    "amd64": ArchLayout(
        arch="amd64",
        root_partition=1,
        boot_partition=None,
        esp_partition=15,
        path_prefix="boot/",
        cmdline="root=LABEL=cloudimg-rootfs ro",
    ),
    # Dedicated extended-boot partition mounted at /boot.
    "arm64": ArchLayout(
        arch="arm64",
        root_partition=1,
        boot_partition=16,
        esp_partition=15,
        path_prefix="",
        cmdline="root=/dev/vda1 ro console=ttyS0",
    ),
}


def layout_for(arch: Optional[str]) -> ArchLayout:
    key = (arch or DEFAULT_ARCH).strip().lower()
    try:
        return LAYOUTS[key]
    except KeyError:
        raise ConfigError(
            msg=f"Unsupported architecture: {arch!r} (expected one of: {', '.join(sorted(LAYOUTS))})"
        ) from None
