# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pipeline ordering, release and exit-code behaviour with every component faked."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from fakes.fake_logger import FakeLogger

from imgsmith.config.config_loader import Config
from imgsmith.converters.qemu_converter import DiskImage, ImageFormat
from imgsmith.core.exceptions import (
    AttachError,
    CleanupError,
    ConversionError,
    DetachError,
    DownloadError,
    ExitCode,
    MountError,
    PackageInstallError,
    UnmountError,
)
from imgsmith.customizers.guest import GuestCustomizationReport
from imgsmith.orchestrator.orchestrator import Orchestrator, PipelineState
from imgsmith.storage.loop_device import LoopDevice

MOD = "imgsmith.orchestrator.orchestrator"


def _fake_convert(logger, src, dst, **kw):
    return DiskImage(path=Path(dst), fmt=ImageFormat.parse(kw["out_format"]))


class Harness:
    """Orchestrator with loop/mount/customize replaced by recording mocks."""

    def __init__(self, tmp_path: Path, **conf):
        self.tmp_path = tmp_path
        self.events = []
        self.mount_dirs = []
        settings = Config.build_settings(
            dict(
                {
                    "image_url": "https://example.org/base.img",
                    "cloudinit_config_path": "cloud.cfg",
                    "workdir": str(tmp_path),
                },
                **conf,
            )
        )
        self.orch = Orchestrator(FakeLogger(), settings)

        self.loop = Mock()
        self.loop.attach.side_effect = self._attach
        self.loop.detach.side_effect = lambda: self.events.append("detach")
        self.mounter = Mock()
        self.mounter.mount.side_effect = lambda loop, path: self.events.append("mount")
        self.mounter.unmount.side_effect = lambda path: self.events.append("unmount")
        self.customizer = Mock()
        self.customizer.run.side_effect = lambda root: self.events.append("customize") or GuestCustomizationReport()

        self.orch.loop = self.loop
        self.orch.mounter = self.mounter
        self.orch.customizer = self.customizer

    def _attach(self, image):
        self.events.append("attach")
        return LoopDevice(device="/dev/loop3", image=Path(image))

    def _mkdtemp(self, prefix=""):
        d = self.tmp_path / f"{prefix}{len(self.mount_dirs)}"
        d.mkdir()
        self.mount_dirs.append(d)
        return str(d)

    def run(self, convert_side_effect=_fake_convert, fetch_side_effect=None):
        with patch(f"{MOD}.ensure_base_image", side_effect=fetch_side_effect) as fetch, patch(
            f"{MOD}.Convert"
        ) as conv, patch(f"{MOD}.tempfile.mkdtemp", side_effect=self._mkdtemp):
            conv.convert.side_effect = convert_side_effect
            self.fetch = fetch
            self.convert = conv.convert
            return self.orch.run()


def _fail(exc):
    def _raise(*a, **k):
        raise exc

    return _raise


@pytest.mark.unit
class TestHappyPath:
    def test_order_and_release(self, tmp_path):
        h = Harness(tmp_path)
        outcome = h.run()

        assert outcome.ok
        assert outcome.exit_code == ExitCode.OK
        assert outcome.state is PipelineState.DONE
        assert outcome.output_image == tmp_path / "base.img"
        assert h.events == ["attach", "mount", "customize", "unmount", "detach"]
        assert not h.mount_dirs[0].exists()
        assert len(h.orch.releases) == 0

    def test_decode_only_without_output_format(self, tmp_path):
        h = Harness(tmp_path)
        h.run()

        h.fetch.assert_called_once()
        assert h.convert.call_count == 1
        _args, kwargs = h.convert.call_args
        assert kwargs["in_format"] is ImageFormat.QCOW2
        assert kwargs["out_format"] is ImageFormat.RAW

    def test_reencode_to_fixed_vhd(self, tmp_path):
        h = Harness(tmp_path, output_format="vhd", keep_raw_image=False)
        outcome = h.run()

        assert outcome.ok
        assert outcome.output_image == tmp_path / "base.vhd"
        args, kwargs = h.convert.call_args
        assert args[1:] == (tmp_path / "base.img", tmp_path / "base.vhd")
        assert kwargs["out_format"] is ImageFormat.VHD
        assert kwargs["remove_input"] is True

    def test_raw_output_format_skips_reencode(self, tmp_path):
        h = Harness(tmp_path, output_format="raw")
        h.run()
        assert h.convert.call_count == 1

    def test_reencode_writes_configured_output_path(self, tmp_path):
        h = Harness(tmp_path, output_format="qcow2", base_image_name="base.qcow2", raw_image_name="work.img")
        outcome = h.run()

        assert outcome.output_image == tmp_path / "work.qcow2"
        args, _kwargs = h.convert.call_args
        assert args[2] == tmp_path / "work.qcow2"
        assert args[2] != h.orch.settings.base_image


@pytest.mark.unit
class TestFailures:
    def test_download_failure(self, tmp_path):
        h = Harness(tmp_path)
        outcome = h.run(fetch_side_effect=_fail(DownloadError(msg="bad status: 404")))

        assert outcome.exit_code == ExitCode.DOWNLOAD
        assert outcome.failed_stage == "download"
        assert h.events == []

    def test_download_storage_failure_is_download_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        settings = Config.build_settings(
            {
                "image_url": "https://example.org/base.img",
                "cloudinit_config_path": "cloud.cfg",
                "workdir": str(blocker / "sub"),
            }
        )
        with patch("imgsmith.converters.fetch.requests.get") as get:
            outcome = Orchestrator(FakeLogger(), settings).run()

        get.assert_not_called()
        assert outcome.exit_code == ExitCode.DOWNLOAD
        assert outcome.failed_stage == "download"
        assert isinstance(outcome.error.cause, OSError)

    def test_decode_failure(self, tmp_path):
        h = Harness(tmp_path)
        outcome = h.run(convert_side_effect=_fail(ConversionError(msg="qemu-img convert failed")))

        assert outcome.exit_code == ExitCode.CONVERSION
        assert outcome.failed_stage == "convert"
        h.loop.attach.assert_not_called()

    def test_attach_failure_releases_nothing(self, tmp_path):
        h = Harness(tmp_path)
        h.loop.attach.side_effect = _fail(AttachError(msg="no free loop device"))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.ATTACH
        assert outcome.failed_stage == "attach"
        assert h.mount_dirs == []
        h.loop.detach.assert_not_called()

    def test_mount_dir_failure_detaches(self, tmp_path):
        h = Harness(tmp_path)
        h._mkdtemp = _fail(OSError(28, "No space left on device"))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.MOUNT_DIR
        assert h.events == ["attach", "detach"]

    def test_mount_failure_unwinds_everything_once(self, tmp_path):
        h = Harness(tmp_path)
        h.mounter.mount.side_effect = _fail(MountError(msg="bad superblock", context={"partition": "esp"}))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.MOUNT
        assert outcome.failed_stage == "mount"
        assert h.events == ["attach", "unmount", "detach"]
        h.customizer.run.assert_not_called()
        assert h.loop.detach.call_count == 1
        assert not h.mount_dirs[0].exists()

    def test_customization_failure_detaches_once(self, tmp_path):
        h = Harness(tmp_path)
        h.customizer.run.side_effect = _fail(PackageInstallError(msg="dpkg failed", context={"package": "b.deb"}))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.CUSTOMIZE
        assert outcome.failed_stage == "install-packages"
        assert outcome.state is PipelineState.FAILED
        assert h.events == ["attach", "mount", "unmount", "detach"]
        assert h.loop.detach.call_count == 1
        assert outcome.output_image == tmp_path / "base.img"

    def test_primary_failure_survives_cleanup_failure(self, tmp_path):
        h = Harness(tmp_path, output_format="qcow2")
        h.customizer.run.side_effect = _fail(PackageInstallError(msg="dpkg failed"))
        h.mounter.unmount.side_effect = _fail(UnmountError(msg="target is busy"))
        outcome = h.run()

        assert isinstance(outcome.error, PackageInstallError)
        assert outcome.exit_code == ExitCode.CUSTOMIZE
        assert [type(e) for e in outcome.cleanup_errors] == [UnmountError]
        h.loop.detach.assert_called_once()
        assert h.convert.call_count == 1

    def test_busy_unmount_is_fatal_and_keeps_mount_dir(self, tmp_path):
        h = Harness(tmp_path, output_format="qcow2")

        def _mount(loop, path):
            h.events.append("mount")
            (Path(path) / "etc").mkdir()

        h.mounter.mount.side_effect = _mount
        h.mounter.unmount.side_effect = _fail(UnmountError(msg="target is busy"))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.UNMOUNT
        assert outcome.failed_stage == "unmount"
        assert [type(e) for e in outcome.cleanup_errors] == [UnmountError, CleanupError]
        assert (h.mount_dirs[0] / "etc").is_dir()
        assert h.events[-1] == "detach"
        assert h.convert.call_count == 1

    def test_unexpected_unmount_exception_still_detaches(self, tmp_path):
        h = Harness(tmp_path)
        h.mounter.unmount.side_effect = _fail(UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.CLEANUP
        assert outcome.failed_stage == "unmount"
        assert [type(e) for e in outcome.cleanup_errors] == [CleanupError]
        assert h.events[-1] == "detach"
        h.loop.detach.assert_called_once()

    def test_detach_failure_without_earlier_failure(self, tmp_path):
        h = Harness(tmp_path)
        h.loop.detach.side_effect = _fail(DetachError(msg="device still referenced"))
        outcome = h.run()

        assert outcome.exit_code == ExitCode.DETACH
        assert outcome.failed_stage == "detach"

    def test_reencode_failure_keeps_raw(self, tmp_path):
        h = Harness(tmp_path, output_format="vhd")
        calls = []

        def _convert(logger, src, dst, **kw):
            calls.append(kw["out_format"])
            if kw["out_format"] is ImageFormat.VHD:
                raise ConversionError(msg="qemu-img resize failed")
            return _fake_convert(logger, src, dst, **kw)

        outcome = h.run(convert_side_effect=_convert)

        assert outcome.exit_code == ExitCode.CONVERSION
        assert outcome.failed_stage == "reencode"
        assert outcome.output_image == tmp_path / "base.img"
        assert calls == [ImageFormat.RAW, ImageFormat.VHD]
