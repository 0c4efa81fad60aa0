# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/cli/args/validators.py
from __future__ import annotations

import argparse
from typing import Any, Dict

from ...config.config_loader import _require
from ...converters.qemu_converter import ImageFormat
from ...core.exceptions import ConfigError, ConversionError

# argparse dests that override config keys of the same name.
OVERRIDE_KEYS = ("arch", "output_format", "kernel_version", "workdir")


def _merged_get(args: argparse.Namespace, conf: Dict[str, Any], key: str) -> Any:
    """Prefer CLI override if present (non-empty), else config."""
    v = getattr(args, key, None)
    if _require(v):
        return v
    return conf.get(key)


def merged_config(args: argparse.Namespace, conf: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(conf)
    for key in OVERRIDE_KEYS:
        v = _merged_get(args, conf, key)
        if v is not None:
            out[key] = v
    return out


def validate_args(args: argparse.Namespace, conf: Dict[str, Any]) -> None:
    """
    Cheap checks on values the CLI can override; full validation happens when
    Settings are built.
    """
    fmt = _merged_get(args, conf, "output_format")
    if _require(fmt):
        if not isinstance(fmt, str):
            raise ConfigError(msg="output_format must be a string", context={"key": "output_format"})
        try:
            ImageFormat.parse(fmt)
        except ConversionError as e:
            raise ConfigError(msg=e.msg, context={"key": "output_format"}) from None

    kver = _merged_get(args, conf, "kernel_version")
    if _require(kver) and (not isinstance(kver, str) or any(ch.isspace() for ch in kver.strip())):
        raise ConfigError(msg=f"Invalid kernel_version: {kver!r}", context={"key": "kernel_version"})
