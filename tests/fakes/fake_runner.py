# SPDX-License-Identifier: LGPL-3.0-or-later
import subprocess


class RecordingRunner:
    """
    Stand-in for U.run_cmd. Records every command; a command whose joined
    text contains one of `fail_on` raises CalledProcessError, and `stdout`
    maps a substring to the text the matching command prints. `effects`
    maps a substring to a callable run with the command (e.g. to create the
    file a tool would have written).
    """

    def __init__(self, fail_on=(), stdout=None, effects=None, returncode=32):
        self.calls = []
        self.fail_on = list(fail_on)
        self.stdout = dict(stdout or {})
        self.effects = dict(effects or {})
        self.returncode = returncode

    def __call__(self, logger, cmd, **kwargs):
        cmd = [str(x) for x in cmd]
        self.calls.append(cmd)
        text = " ".join(cmd)
        for pattern in self.fail_on:
            if pattern in text:
                raise subprocess.CalledProcessError(
                    self.returncode, cmd, output="", stderr=f"{cmd[0]}: simulated failure"
                )
        for pattern, effect in self.effects.items():
            if pattern in text:
                effect(cmd)
        out = ""
        for pattern, value in self.stdout.items():
            if pattern in text:
                out = value
        return subprocess.CompletedProcess(cmd, 0, stdout=out, stderr="")

    def commands(self, tool=None):
        return [c for c in self.calls if tool is None or tool in c]

    def joined(self):
        return [" ".join(c) for c in self.calls]
