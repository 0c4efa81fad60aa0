# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/__init__.py
"""
imgsmith - cloud base-image customizer

Downloads a qcow2 cloud image, decodes it to raw, mounts its partitions
through a loop device, customizes the guest (cloud-init, packages, boot),
releases everything in reverse order and optionally re-encodes the result.

Usage as a library:

    from imgsmith import Config, Orchestrator, Log

    logger = Log.setup(verbose=1)
    settings = Config.build_settings(Config.load_one(logger, "image.yaml"))
    outcome = Orchestrator(logger, settings).run()
"""

__version__ = "0.1.0"

from .config.config_loader import Config, CustomizationSpec, Settings
from .core.logger import Log
from .orchestrator import Orchestrator, PipelineOutcome, PipelineState

__all__ = [
    "__version__",
    "Config",
    "CustomizationSpec",
    "Settings",
    "Log",
    "Orchestrator",
    "PipelineOutcome",
    "PipelineState",
]
