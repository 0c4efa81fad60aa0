# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/customizers/__init__.py
"""Guest filesystem customization."""

from .guest import GuestCustomizationReport, GuestCustomizer

__all__ = ["GuestCustomizationReport", "GuestCustomizer"]
