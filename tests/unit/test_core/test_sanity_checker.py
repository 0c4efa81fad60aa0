# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import unittest
from unittest.mock import patch

from fakes.fake_logger import FakeLogger

from imgsmith.core.exceptions import ExitCode, PrivilegeError, ToolsMissingError
from imgsmith.core.sanity_checker import REQUIRED_TOOLS, SanityChecker


class TestSanityChecker(unittest.TestCase):
    def setUp(self):
        self.logger = FakeLogger()

    @patch("imgsmith.core.sanity_checker.os.geteuid", return_value=1000)
    def test_non_root_is_refused(self, _euid):
        with self.assertRaises(PrivilegeError) as ctx:
            SanityChecker(self.logger).check_all()
        self.assertEqual(ctx.exception.code, ExitCode.PRIVILEGE)

    @patch("imgsmith.core.sanity_checker.U.which", side_effect=lambda t: None if t == "losetup" else f"/usr/bin/{t}")
    @patch("imgsmith.core.sanity_checker.os.geteuid", return_value=0)
    def test_missing_tool_is_reported(self, _euid, _which):
        checker = SanityChecker(self.logger)
        with self.assertRaises(ToolsMissingError) as ctx:
            checker.check_all()

        self.assertEqual(ctx.exception.context["missing"], ["losetup"])
        self.assertEqual(ctx.exception.code, ExitCode.TOOLS_MISSING)
        self.assertFalse(checker.report.ok())

    @patch("imgsmith.core.sanity_checker.U.which", side_effect=lambda t: f"/usr/bin/{t}")
    @patch("imgsmith.core.sanity_checker.os.geteuid", return_value=0)
    def test_all_present(self, _euid, _which):
        report = SanityChecker(self.logger).check_all()

        self.assertTrue(report.ok())
        self.assertEqual(report.checks_ran, ["privilege", "tools"])
        self.assertIn("chroot", REQUIRED_TOOLS)


if __name__ == "__main__":
    unittest.main()
