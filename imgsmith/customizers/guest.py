# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/customizers/guest.py
from __future__ import annotations

import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from ..config.boot_template import GRUB_CFG_PATH, BootEntry, render_boot_config
from ..config.config_loader import CustomizationSpec
from ..core.exceptions import (
    BootSetupError,
    ConfigInjectionError,
    PackageInstallError,
    PackageRemovalError,
)
from ..core.logger import Log
from ..core.utils import U
from ..storage.layout import ArchLayout

# Guest-relative location of the injected cloud-init document.
CLOUD_INIT_PATH = "etc/cloud/cloud.cfg.d/imgsmith.cfg"


# Report model (JSON-friendly)

@dataclass
class GuestCustomizationReport:
    stages_run: List[str] = field(default_factory=list)
    injected_config: str = ""
    removed_packages: List[str] = field(default_factory=list)
    unpacked_packages: List[str] = field(default_factory=list)
    initramfs_mode: str = ""
    boot_config: str = ""
    commands_ran: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stages_run": list(self.stages_run),
            "injected_config": self.injected_config,
            "removed_packages": list(self.removed_packages),
            "unpacked_packages": list(self.unpacked_packages),
            "initramfs_mode": self.initramfs_mode,
            "boot_config": self.boot_config,
            "commands_ran": list(self.commands_ran),
        }


class GuestCustomizer:
    """
    Mutates a mounted guest tree in a fixed order:

      configure        -> cloud-init document into etc/cloud/cloud.cfg.d
      remove-packages  -> dpkg --purge, per package (when listed)
      install-packages -> dpkg --unpack of staged .deb files (when listed)
      boot             -> update-initramfs + grub.cfg (when a kernel is set)

    Commands run inside the guest through chroot. The first failure stops the
    pipeline; later stages never run.
    """

    def __init__(self, logger: Any, spec: CustomizationSpec, layout: ArchLayout):
        self.logger = logger
        self.spec = spec
        self.layout = layout
        self.report = GuestCustomizationReport()

    # chroot helper

    def _chroot(self, root: Path, args: List[str]) -> None:
        cmd = ["chroot", str(root)] + args
        self.report.commands_ran.append(U.pretty_cmd(cmd))
        U.run_cmd(self.logger, cmd)

    # stages

    def run(self, root: Path) -> GuestCustomizationReport:
        root = Path(root)
        self.configure(root)
        if self.spec.remove_packages:
            self.remove_packages(root)
        if self.spec.extra_packages:
            self.install_packages(root)
        if self.spec.kernel_version:
            self.setup_boot(root)
        Log.ok(self.logger, "Guest customization finished", stages=",".join(self.report.stages_run))
        return self.report

    def configure(self, root: Path) -> None:
        src = self.spec.cloud_init_config
        dst = root / CLOUD_INIT_PATH
        Log.step(self.logger, "Injecting cloud-init configuration", src=str(src))
        try:
            U.ensure_dir(dst.parent)
            shutil.copyfile(src, dst)
        except OSError as e:
            raise ConfigInjectionError(
                msg=f"Failed to inject cloud-init config {src}: {e}",
                cause=e,
                context={"src": str(src), "dst": str(dst)},
            ) from e
        self.report.injected_config = "/" + CLOUD_INIT_PATH
        self.report.stages_run.append(ConfigInjectionError.stage)
        self.logger.info(f"Injected cloud-init configuration: /{CLOUD_INIT_PATH}")

    def remove_packages(self, root: Path) -> None:
        Log.step(self.logger, "Removing packages", count=len(self.spec.remove_packages))
        for name in self.spec.remove_packages:
            try:
                self._chroot(root, ["dpkg", "--purge", name])
            except (subprocess.CalledProcessError, OSError) as e:
                raise PackageRemovalError(
                    msg=f"Failed to remove package {name}: {U.cmd_output(e)}",
                    cause=e,
                    context={"package": name},
                ) from e
            self.report.removed_packages.append(name)
            self.logger.info(f"Removed package: {name}")
        self.report.stages_run.append(PackageRemovalError.stage)

    def install_packages(self, root: Path) -> None:
        Log.step(self.logger, "Installing packages", count=len(self.spec.extra_packages))
        guest_tmp = root / "tmp"
        try:
            U.ensure_dir(guest_tmp)
            staging = Path(tempfile.mkdtemp(prefix="imgsmith-pkgs-", dir=str(guest_tmp)))
        except OSError as e:
            raise PackageInstallError(
                msg=f"Failed to create package staging directory under {guest_tmp}: {e}",
                cause=e,
                context={"dir": str(guest_tmp)},
            ) from e

        failed = True
        try:
            staged: List[Path] = []
            for artifact in self.spec.extra_packages:
                try:
                    staged.append(Path(shutil.copy(artifact, staging)))
                except OSError as e:
                    raise PackageInstallError(
                        msg=f"Failed to stage package {artifact}: {e}",
                        cause=e,
                        context={"package": str(artifact)},
                    ) from e

            for artifact, copied in zip(self.spec.extra_packages, staged):
                guest_path = "/" + copied.relative_to(root).as_posix()
                try:
                    self._chroot(root, ["dpkg", "--unpack", guest_path])
                except (subprocess.CalledProcessError, OSError) as e:
                    raise PackageInstallError(
                        msg=f"Failed to install package {artifact.name}: {U.cmd_output(e)}",
                        cause=e,
                        context={"package": str(artifact)},
                    ) from e
                self.report.unpacked_packages.append(artifact.name)
                self.logger.info(f"Unpacked package: {artifact.name}")
            failed = False
        finally:
            try:
                shutil.rmtree(staging)
            except OSError as e:
                if not failed:
                    raise PackageInstallError(
                        msg=f"Failed to remove package staging directory {staging}: {e}",
                        cause=e,
                        context={"dir": str(staging)},
                    ) from e
                self.logger.error(f"Failed to remove package staging directory {staging}: {e}")

        self.report.stages_run.append(PackageInstallError.stage)

    def setup_boot(self, root: Path) -> None:
        version = self.spec.kernel_version
        Log.step(self.logger, "Setting up boot", kernel=version, arch=self.layout.arch)

        mode = "-u" if (root / "boot" / f"initrd.img-{version}").exists() else "-c"
        try:
            self._chroot(root, ["update-initramfs", mode, "-k", version])
        except (subprocess.CalledProcessError, OSError) as e:
            raise BootSetupError(
                msg=f"Failed to generate initramfs for {version}: {U.cmd_output(e)}",
                cause=e,
                context={"kernel_version": version},
            ) from e
        self.report.initramfs_mode = "update" if mode == "-u" else "create"

        dst = root / GRUB_CFG_PATH
        try:
            text = render_boot_config(BootEntry.for_kernel(self.layout, version))
            U.ensure_dir(dst.parent)
            dst.write_text(text, encoding="utf-8")
        except (ValueError, OSError) as e:
            raise BootSetupError(
                msg=f"Failed to write boot loader configuration: {e}",
                cause=e,
                context={"kernel_version": version, "path": "/" + GRUB_CFG_PATH},
            ) from e
        self.report.boot_config = "/" + GRUB_CFG_PATH
        self.report.stages_run.append(BootSetupError.stage)
        self.logger.info(f"Boot configuration written: /{GRUB_CFG_PATH}")
