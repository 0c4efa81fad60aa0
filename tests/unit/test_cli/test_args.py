# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import json

import pytest

from fakes.fake_logger import FakeLogger

from imgsmith.cli.args import build_parser, merged_config, parse_args_with_config
from imgsmith.core.exceptions import ConfigError, ExitCode, Fatal


def _config(tmp_path, text="image_url: https://example.org/base.img\ncloudinit_config_path: cloud.cfg\narch: arm64\n"):
    p = tmp_path / "image.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


@pytest.mark.unit
class TestParseArgs:
    def test_missing_config_is_exit_2(self):
        with pytest.raises(Fatal) as ei:
            parse_args_with_config([], logger=FakeLogger())
        assert ei.value.code == ExitCode.MISSING_CONFIG

    def test_config_values_become_defaults(self, tmp_path):
        args, conf, _logger = parse_args_with_config(["--config", _config(tmp_path)], logger=FakeLogger())

        assert args.arch == "arm64"
        assert conf["image_url"] == "https://example.org/base.img"

    def test_cli_overrides_config(self, tmp_path):
        argv = ["--config", _config(tmp_path), "--arch", "amd64", "--output-format", "qcow2", "--workdir", "/srv/img"]
        args, conf, _logger = parse_args_with_config(argv, logger=FakeLogger())
        merged = merged_config(args, conf)

        assert merged["arch"] == "amd64"
        assert merged["output_format"] == "qcow2"
        assert merged["workdir"] == "/srv/img"
        assert "kernel_version" not in merged

    def test_invalid_output_format(self, tmp_path):
        with pytest.raises(ConfigError):
            parse_args_with_config(["--config", _config(tmp_path), "--output-format", "vmdk"], logger=FakeLogger())

    def test_invalid_kernel_version(self, tmp_path):
        with pytest.raises(ConfigError):
            parse_args_with_config(["--config", _config(tmp_path), "--kernel-version", "5.15 generic"], logger=FakeLogger())

    def test_bad_config_file_is_config_error(self, tmp_path):
        with pytest.raises(ConfigError) as ei:
            parse_args_with_config(["--config", _config(tmp_path, "- not\n- a mapping\n")], logger=FakeLogger())
        assert ei.value.code == ExitCode.CONFIG

    def test_dump_config(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as ei:
            parse_args_with_config(["--config", _config(tmp_path), "--dump-config"], logger=FakeLogger())

        assert ei.value.code == 0
        assert json.loads(capsys.readouterr().out)["arch"] == "arm64"

    def test_help_mentions_exit_codes(self):
        assert "130 interrupted" in build_parser().format_help()
