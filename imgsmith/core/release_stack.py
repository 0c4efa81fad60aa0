# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/core/release_stack.py
"""
Explicit stack of release actions.

Every successful acquisition (loop attach, scratch directory, mounts) pushes
the action that undoes it. `unwind()` pops and runs all of them in reverse
order of acquisition, attempting each one even after an earlier one failed,
and hands back the failures instead of raising the first one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List

from .exceptions import CleanupError, ImgSmithError


@dataclass(frozen=True)
class ReleaseAction:
    name: str
    fn: Callable[[], None]


class ReleaseStack:
    def __init__(self, logger: Any):
        self.logger = logger
        self._actions: List[ReleaseAction] = []

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def pending(self) -> List[str]:
        """Names of pending actions, in the order they will run."""
        return [a.name for a in reversed(self._actions)]

    def push(self, name: str, fn: Callable[[], None]) -> None:
        self.logger.debug("Registered release action: %s", name)
        self._actions.append(ReleaseAction(name=name, fn=fn))

    def unwind(self) -> List[ImgSmithError]:
        errors: List[ImgSmithError] = []
        while self._actions:
            action = self._actions.pop()
            self.logger.debug("Releasing: %s", action.name)
            try:
                action.fn()
            except ImgSmithError as e:
                e.with_context(release=action.name)
                self.logger.error("Release step %r failed: %s", action.name, e)
                errors.append(e)
            except OSError as e:
                err = CleanupError(msg=f"{action.name} failed: {e}", cause=e, context={"release": action.name})
                self.logger.error("Release step %r failed: %s", action.name, e)
                errors.append(err)
            except Exception as e:
                err = CleanupError(
                    msg=f"{action.name} failed: {type(e).__name__}: {e}",
                    cause=e,
                    context={"release": action.name},
                )
                self.logger.error("Release step %r failed unexpectedly: %s", action.name, e)
                errors.append(err)
        return errors
