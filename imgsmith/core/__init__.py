# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/core/__init__.py
