# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/cli/args/__init__.py
"""
Argument parsing for the imgsmith CLI.
"""
from __future__ import annotations

from .parser import HelpFormatter, build_parser, parse_args_with_config
from .validators import merged_config, validate_args

__all__ = [
    "HelpFormatter",
    "build_parser",
    "merged_config",
    "parse_args_with_config",
    "validate_args",
]
