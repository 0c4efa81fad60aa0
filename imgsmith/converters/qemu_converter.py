# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/converters/qemu_converter.py
from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Union

from ..core.exceptions import ConversionError
from ..core.utils import U

MIB = 1024 * 1024


class ImageFormat(str, Enum):
    RAW = "raw"
    QCOW2 = "qcow2"
    VHD = "vhd"  # fixed-size VHD (qemu-img driver "vpc")

    @property
    def qemu_driver(self) -> str:
        return "vpc" if self is ImageFormat.VHD else self.value

    @property
    def suffix(self) -> str:
        return {ImageFormat.RAW: ".img", ImageFormat.QCOW2: ".qcow2", ImageFormat.VHD: ".vhd"}[self]

    @classmethod
    def parse(cls, name: Union[str, "ImageFormat"]) -> "ImageFormat":
        if isinstance(name, ImageFormat):
            return name
        key = (name or "").strip().lower()
        if key in ("fixed-vhd", "vpc"):
            key = "vhd"
        try:
            return cls(key)
        except ValueError:
            raise ConversionError(
                msg=f"Unsupported image format: {name!r} (expected raw, qcow2 or vhd)"
            ) from None


@dataclass(frozen=True)
class DiskImage:
    path: Path
    fmt: ImageFormat


def mib_aligned(size_bytes: int) -> int:
    """Round up to the next whole MiB; an aligned size maps to itself."""
    if size_bytes < 0:
        raise ValueError(f"negative image size: {size_bytes}")
    return ((size_bytes + MIB - 1) // MIB) * MIB


class Convert:
    """
    qemu-img wrapper:
      - convert between raw / qcow2 / fixed VHD
      - atomic output (.part -> rename)
      - fixed VHD: grow the source to a MiB boundary first, since the
        fixed subformat only accepts MiB-aligned virtual sizes
    """

    @staticmethod
    def convert(
        logger: Any,
        src: Path,
        dst: Path,
        *,
        in_format: Union[str, ImageFormat],
        out_format: Union[str, ImageFormat],
        remove_input: bool = False,
        compress: bool = False,
    ) -> DiskImage:
        src = Path(src)
        dst = Path(dst)
        in_fmt = ImageFormat.parse(in_format)
        out_fmt = ImageFormat.parse(out_format)

        if not src.is_file():
            raise ConversionError(msg=f"Source image file not found: {src}", context={"src": str(src)})

        U.banner(logger, f"Convert {in_fmt.value.upper()} -> {out_fmt.value.upper()}")
        logger.info(f"Converting: {src} -> {dst}")

        if out_fmt is ImageFormat.VHD:
            Convert.align_to_mib(logger, src, fmt=in_fmt)

        tmp_dst = dst.with_name(dst.name + ".part")
        try:
            U.ensure_dir(dst.parent)
            tmp_dst.unlink(missing_ok=True)
        except OSError as e:
            raise ConversionError(
                msg=f"Cannot prepare output location {dst}: {e}",
                cause=e,
                context={"src": str(src), "dst": str(dst)},
            ) from e

        cmd = Convert._build_convert_cmd(
            src=src,
            dst=tmp_dst,
            in_format=in_fmt,
            out_format=out_fmt,
            compress=compress,
        )
        try:
            U.run_cmd(logger, cmd)
        except (subprocess.CalledProcessError, OSError) as e:
            tmp_dst.unlink(missing_ok=True)
            raise ConversionError(
                msg=f"qemu-img convert failed: {U.cmd_output(e)}",
                cause=e,
                context={"src": str(src), "dst": str(dst), "out_format": out_fmt.value},
            ) from e

        try:
            tmp_dst.replace(dst)
        except OSError as e:
            tmp_dst.unlink(missing_ok=True)
            raise ConversionError(
                msg=f"Cannot move converted image into place {dst}: {e}",
                cause=e,
                context={"src": str(src), "dst": str(dst)},
            ) from e
        logger.info(f"Converted image written: {dst}")

        if remove_input:
            try:
                src.unlink()
            except OSError as e:
                raise ConversionError(
                    msg=f"Converted, but failed to remove input {src}: {e}",
                    cause=e,
                    context={"src": str(src)},
                ) from e
            logger.info(f"Removed input image: {src}")

        return DiskImage(path=dst, fmt=out_fmt)

    @staticmethod
    def align_to_mib(logger: Any, path: Path, *, fmt: Union[str, ImageFormat] = ImageFormat.RAW) -> int:
        """Grow `path` to the next MiB boundary; returns the resulting size."""
        size = Convert.virtual_size(logger, path, fmt=fmt)
        aligned = mib_aligned(size)
        if aligned == size:
            logger.debug(f"{path} is already MiB-aligned ({size} bytes)")
            return size
        logger.info(f"Resizing {path}: {size} -> {aligned} bytes ({U.human_bytes(aligned)})")
        Convert.resize(logger, path, aligned, fmt=fmt)
        return aligned

    @staticmethod
    def resize(logger: Any, path: Path, size_bytes: int, *, fmt: Union[str, ImageFormat] = ImageFormat.RAW) -> None:
        drv = ImageFormat.parse(fmt).qemu_driver
        cmd = ["qemu-img", "resize", "-f", drv, str(path), str(int(size_bytes))]
        try:
            U.run_cmd(logger, cmd)
        except (subprocess.CalledProcessError, OSError) as e:
            raise ConversionError(
                msg=f"qemu-img resize failed: {U.cmd_output(e)}",
                cause=e,
                context={"path": str(path), "size": size_bytes},
            ) from e

    @staticmethod
    def virtual_size(logger: Any, path: Path, *, fmt: Union[str, ImageFormat] = ImageFormat.RAW) -> int:
        drv = ImageFormat.parse(fmt).qemu_driver
        cmd = ["qemu-img", "info", "--output=json", "-f", drv, str(path)]
        try:
            cp = U.run_cmd(logger, cmd)
        except (subprocess.CalledProcessError, OSError) as e:
            raise ConversionError(
                msg=f"qemu-img info failed for {path}: {U.cmd_output(e)}",
                cause=e,
                context={"path": str(path)},
            ) from e

        try:
            info = json.loads(cp.stdout or "{}")
            return int(info["virtual-size"])
        except (ValueError, KeyError, TypeError) as e:
            raise ConversionError(
                msg=f"qemu-img info returned no usable virtual-size for {path}",
                cause=e,
                context={"path": str(path)},
            ) from e

    @staticmethod
    def validate(logger: Any, path: Path) -> bool:
        """`qemu-img check`; problems are reported as a warning only."""
        path = Path(path)
        if not path.is_file():
            logger.warning(f"Image file not found for validation: {path}")
            return False
        cp = U.run_cmd(logger, ["qemu-img", "check", str(path)], check=False)
        if cp.returncode == 0:
            logger.info("Image validation: OK (qemu-img check)")
            return True
        logger.warning("Image validation: WARNING (qemu-img check reported issues)")
        logger.debug(f"return code: {cp.returncode}")
        logger.debug("stdout:\n" + (cp.stdout or ""))
        logger.debug("stderr:\n" + (cp.stderr or ""))
        return False

    @staticmethod
    def _build_convert_cmd(
        *,
        src: Path,
        dst: Path,
        in_format: ImageFormat,
        out_format: ImageFormat,
        compress: bool = False,
    ) -> List[str]:
        cmd: List[str] = ["qemu-img", "convert", "-f", in_format.qemu_driver, "-O", out_format.qemu_driver]

        if out_format is ImageFormat.VHD:
            cmd += ["-o", "subformat=fixed,force_size=on"]
        elif out_format is ImageFormat.QCOW2 and compress:
            cmd.append("-c")

        cmd += [str(src), str(dst)]
        return cmd
