# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/orchestrator/__init__.py
"""Pipeline orchestration."""

from .orchestrator import Orchestrator, PipelineOutcome, PipelineState

__all__ = ["Orchestrator", "PipelineOutcome", "PipelineState"]
