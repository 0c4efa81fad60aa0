# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from imgsmith.__main__ import main
from imgsmith.core.exceptions import ExitCode, PackageInstallError, PrivilegeError
from imgsmith.orchestrator.orchestrator import PipelineOutcome, PipelineState


def _config(tmp_path):
    p = tmp_path / "image.yaml"
    p.write_text(
        f"image_url: https://example.org/base.img\ncloudinit_config_path: cloud.cfg\nworkdir: {tmp_path}\n",
        encoding="utf-8",
    )
    return str(p)


@pytest.mark.unit
class TestMain:
    def test_missing_config(self):
        with pytest.raises(SystemExit) as ei:
            main([])
        assert ei.value.code == ExitCode.MISSING_CONFIG

    def test_invalid_config(self, tmp_path):
        p = tmp_path / "image.yaml"
        p.write_text("cloudinit_config_path: cloud.cfg\n", encoding="utf-8")
        with pytest.raises(SystemExit) as ei:
            main(["--config", str(p)])
        assert ei.value.code == ExitCode.CONFIG

    @patch("imgsmith.__main__.Orchestrator")
    @patch("imgsmith.__main__.SanityChecker")
    def test_privilege_failure(self, checker, orch, tmp_path):
        checker.return_value.check_all.side_effect = PrivilegeError(msg="This operation requires root.")
        with pytest.raises(SystemExit) as ei:
            main(["--config", _config(tmp_path)])

        assert ei.value.code == ExitCode.PRIVILEGE
        orch.assert_not_called()

    @patch("imgsmith.__main__.Orchestrator")
    @patch("imgsmith.__main__.SanityChecker")
    def test_outcome_exit_code(self, _checker, orch, tmp_path):
        orch.return_value.run.return_value = PipelineOutcome(
            state=PipelineState.FAILED,
            failed_stage="install-packages",
            error=PackageInstallError(msg="dpkg failed"),
        )
        with pytest.raises(SystemExit) as ei:
            main(["--config", _config(tmp_path), "--arch", "arm64"])

        assert ei.value.code == ExitCode.CUSTOMIZE
        settings = orch.call_args[0][1]
        assert settings.arch == "arm64"
        assert settings.workdir == Path(tmp_path)

    @patch("imgsmith.__main__.Orchestrator")
    @patch("imgsmith.__main__.SanityChecker")
    def test_success(self, _checker, orch, tmp_path):
        orch.return_value.run.return_value = PipelineOutcome(state=PipelineState.DONE)
        with pytest.raises(SystemExit) as ei:
            main(["--config", _config(tmp_path)])
        assert ei.value.code == 0

    @patch("imgsmith.__main__.Orchestrator")
    @patch("imgsmith.__main__.SanityChecker")
    def test_interrupt(self, _checker, orch, tmp_path):
        orch.return_value.run.side_effect = KeyboardInterrupt
        with pytest.raises(SystemExit) as ei:
            main(["--config", _config(tmp_path)])
        assert ei.value.code == ExitCode.INTERRUPTED
