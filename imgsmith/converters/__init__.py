# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/converters/__init__.py
"""Image download and format conversion."""

from .qemu_converter import Convert, DiskImage, ImageFormat

__all__ = ["Convert", "DiskImage", "ImageFormat"]
