# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/orchestrator/orchestrator.py

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from ..converters.fetch import ensure_base_image
from ..converters.qemu_converter import Convert, DiskImage, ImageFormat
from ..config.config_loader import Settings
from ..core.exceptions import (
    CleanupError,
    CustomizationError,
    DownloadError,
    ImgSmithError,
    MountDirError,
)
from ..core.logger import Log
from ..core.release_stack import ReleaseStack
from ..core.utils import U
from ..customizers.guest import GuestCustomizer
from ..storage.layout import layout_for
from ..storage.loop_device import LoopDeviceManager
from ..storage.mount import PartitionMounter


class PipelineState(str, Enum):
    IDLE = "idle"
    IMAGE_READY = "image-ready"
    ATTACHED = "attached"
    MOUNTED = "mounted"
    CUSTOMIZED = "customized"
    UNMOUNTED = "unmounted"
    DETACHED = "detached"
    REENCODED = "reencoded"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineOutcome:
    state: PipelineState
    failed_stage: Optional[str] = None
    error: Optional[ImgSmithError] = None
    cleanup_errors: Tuple[ImgSmithError, ...] = ()
    output_image: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.error is None else self.error.code


class Orchestrator:
    """
    Main pipeline orchestrator.

    IDLE -> IMAGE_READY -> ATTACHED -> MOUNTED -> CUSTOMIZED
         -> UNMOUNTED -> DETACHED -> [REENCODED] -> DONE

    Every acquisition pushes its release onto `releases`; the stack is
    unwound on every path once the guest work is over.
    """

    def __init__(self, logger: logging.Logger, settings: Settings):
        self.logger = logger
        self.settings = settings
        self.layout = layout_for(settings.arch)
        self.state = PipelineState.IDLE

        self.loop = LoopDeviceManager(logger)
        self.mounter = PartitionMounter(logger, self.layout)
        self.customizer = GuestCustomizer(logger, settings.customization, self.layout)
        self.releases = ReleaseStack(logger)

        Log.trace(
            self.logger,
            "🧠 Orchestrator init: arch=%r workdir=%r output_format=%r",
            settings.arch,
            str(settings.workdir),
            settings.output_format,
        )

    def _enter(self, state: PipelineState) -> None:
        Log.trace(self.logger, "state: %s -> %s", self.state.value, state.value)
        self.state = state

    # image preparation

    def prepare_image(self) -> DiskImage:
        s = self.settings
        U.banner(self.logger, "Prepare base image")
        ensure_base_image(self.logger, s.image_url, s.base_image, timeout=s.download_timeout)
        raw = Convert.convert(
            self.logger,
            s.base_image,
            s.raw_image,
            in_format=ImageFormat.QCOW2,
            out_format=ImageFormat.RAW,
        )
        self._enter(PipelineState.IMAGE_READY)
        return raw

    # scratch directory

    def _make_mount_dir(self) -> Path:
        try:
            return Path(tempfile.mkdtemp(prefix="mount"))
        except OSError as e:
            raise MountDirError(msg=f"Failed to create mount directory: {e}", cause=e) from e

    def _remove_mount_dir(self, path: Path) -> None:
        # rmdir only: a still-mounted guest tree makes this fail instead of deleting guest data.
        try:
            path.rmdir()
        except OSError as e:
            raise CleanupError(
                msg=f"Failed to remove mount directory {path}: {e}",
                cause=e,
                context={"mount_path": str(path)},
            ) from e
        self.logger.debug("Removed mount directory %s", path)

    # guest work

    def customize_image(self, raw: DiskImage) -> Tuple[Optional[str], Optional[ImgSmithError], List[ImgSmithError]]:
        """
        attach -> mkdtemp -> mount -> customize, then unwind.
        Returns (failed_stage, primary_error, cleanup_errors).
        """
        log = Log.bind(self.logger, image=str(raw.path))
        stage = "attach"
        primary: Optional[ImgSmithError] = None
        try:
            U.banner(log, "Customize guest")
            loop = self.loop.attach(raw.path)
            self.releases.push("detach", self.loop.detach)
            self._enter(PipelineState.ATTACHED)
            log = log.bind(device=loop.device)

            stage = "mount-dir"
            mount_dir = self._make_mount_dir()
            self.releases.push("remove-mount-dir", lambda: self._remove_mount_dir(mount_dir))
            log = log.bind(mount_path=str(mount_dir))

            stage = "mount"
            # Registered before mounting so a partial mount is still unwound.
            self.releases.push("unmount", lambda: self.mounter.unmount(mount_dir))
            Log.step(log, "Mounting guest partitions")
            self.mounter.mount(loop, mount_dir)
            self._enter(PipelineState.MOUNTED)

            stage = "customize"
            report = self.customizer.run(mount_dir)
            self._enter(PipelineState.CUSTOMIZED)
            log.debug("Customization report: %s", U.json_dump(report.to_dict()))
        except CustomizationError as e:
            primary = e
            stage = str((e.context or {}).get("stage", stage))
            Log.fail(log, f"Guest customization failed: {e}", stage=stage)
        except ImgSmithError as e:
            primary = e
            Log.fail(log, f"{stage} failed: {e}", stage=stage)
        finally:
            cleanup_errors = self.releases.unwind()

        if not cleanup_errors and primary is None:
            self._enter(PipelineState.UNMOUNTED)
            self._enter(PipelineState.DETACHED)
            Log.ok(log, "All resources released")
        elif cleanup_errors:
            Log.warn(log, f"{len(cleanup_errors)} release step(s) failed")

        return (stage if primary is not None else None), primary, cleanup_errors

    # output

    def reencode(self, raw: DiskImage, fmt: ImageFormat) -> DiskImage:
        s = self.settings
        out = s.output_image or s.raw_image.with_suffix(fmt.suffix)
        image = Convert.convert(
            self.logger,
            raw.path,
            out,
            in_format=ImageFormat.RAW,
            out_format=fmt,
            remove_input=not s.keep_raw_image,
            compress=s.compress,
        )
        Convert.validate(self.logger, image.path)
        self._enter(PipelineState.REENCODED)
        return image

    def _failed(
        self,
        stage: str,
        error: ImgSmithError,
        cleanup_errors: Optional[List[ImgSmithError]] = None,
        output_image: Optional[Path] = None,
    ) -> PipelineOutcome:
        self._enter(PipelineState.FAILED)
        return PipelineOutcome(
            state=PipelineState.FAILED,
            failed_stage=stage,
            error=error,
            cleanup_errors=tuple(cleanup_errors or ()),
            output_image=output_image,
        )

    def run(self) -> PipelineOutcome:
        s = self.settings
        Log.step(self.logger, "Starting image customization", url=s.image_url, arch=self.layout.arch)

        try:
            raw = self.prepare_image()
        except ImgSmithError as e:
            stage = "download" if isinstance(e, DownloadError) else "convert"
            Log.fail(self.logger, f"Image preparation failed: {e}", stage=stage)
            return self._failed(stage, e)

        failed_stage, primary, cleanup_errors = self.customize_image(raw)

        if primary is not None:
            for ce in cleanup_errors:
                self.logger.error("Cleanup also failed: %s", ce.user_message(include_context=True))
            return self._failed(failed_stage or "customize", primary, cleanup_errors, raw.path)

        if cleanup_errors:
            first = cleanup_errors[0]
            stage = str((first.context or {}).get("release", "cleanup"))
            return self._failed(stage, first, cleanup_errors, raw.path)

        output = raw
        fmt = s.target_format
        if fmt is not None:
            try:
                output = self.reencode(raw, fmt)
            except ImgSmithError as e:
                Log.fail(self.logger, f"Re-encode failed: {e}", format=fmt.value)
                return self._failed("reencode", e, output_image=raw.path)

        self._enter(PipelineState.DONE)
        Log.ok(self.logger, "Image ready", path=str(output.path), format=output.fmt.value)
        return PipelineOutcome(state=PipelineState.DONE, output_image=output.path)
