# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/config/__init__.py
