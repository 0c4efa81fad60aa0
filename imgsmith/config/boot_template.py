# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/config/boot_template.py
from __future__ import annotations

from dataclasses import dataclass

from ..storage.layout import ArchLayout

# Rendered with .format_map(); literal braces of the GRUB syntax are doubled.
# Paths are relative to the partition that holds the kernel, which is why the
# layout decides the "boot/" prefix.
GRUB_CFG_TEMPLATE = """\
# Generated by imgsmith
set default=0
set timeout=0

menuentry "Linux" {{
    search --no-floppy --set=root --file /{kernel_path}
    linux /{kernel_path} {cmdline}
    initrd /{initrd_path}
}}
"""

# Location of the rendered document, relative to the guest root.
GRUB_CFG_PATH = "boot/grub/grub.cfg"


@dataclass(frozen=True)
class BootEntry:
    kernel_path: str
    initrd_path: str
    cmdline: str

    @classmethod
    def for_kernel(cls, layout: ArchLayout, kernel_version: str) -> "BootEntry":
        return cls(
            kernel_path=layout.kernel_path(kernel_version),
            initrd_path=layout.initrd_path(kernel_version),
            cmdline=layout.cmdline,
        )


def _validate(entry: BootEntry) -> None:
    if not entry.kernel_path or not entry.initrd_path:
        raise ValueError("kernel/initrd path cannot be empty")
    for value in (entry.kernel_path, entry.initrd_path, entry.cmdline):
        if "\n" in value or "}" in value:
            raise ValueError(f"unsafe value for boot loader configuration: {value!r}")


def render_boot_config(entry: BootEntry) -> str:
    _validate(entry)
    return GRUB_CFG_TEMPLATE.format_map(
        {
            "kernel_path": entry.kernel_path,
            "initrd_path": entry.initrd_path,
            "cmdline": entry.cmdline,
        }
    )
