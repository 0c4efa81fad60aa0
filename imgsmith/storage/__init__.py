# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/storage/__init__.py
"""Loop devices, partition layouts and mounts."""

from .layout import ArchLayout, layout_for
from .loop_device import LoopDevice, LoopDeviceManager
from .mount import PartitionMounter

__all__ = ["ArchLayout", "layout_for", "LoopDevice", "LoopDeviceManager", "PartitionMounter"]
