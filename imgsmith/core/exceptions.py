# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar, Dict, Optional


class ExitCode(IntEnum):
    OK = 0

    PRIVILEGE = 1
    MISSING_CONFIG = 2
    CONFIG = 3
    DOWNLOAD = 4
    CONVERSION = 5
    ATTACH = 6
    MOUNT_DIR = 7
    MOUNT = 8
    CUSTOMIZE = 9
    UNMOUNT = 10
    DETACH = 11
    TOOLS_MISSING = 12
    CLEANUP = 13

    INTERRUPTED = 130


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return default


def _clamp_exit_code(code: int) -> int:
    # Exit codes are 0..255.
    if code < 0:
        return 1
    if code > 255:
        return 255
    return code


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    return ", ".join(f"{k}={ctx.get(k)!r}" for k in sorted(ctx.keys()))


@dataclass(eq=False)
class ImgSmithError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what users see)
      - an exit code selected by the error kind
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _clamp_exit_code(_safe_int(self.code, default=1))
        self.msg = _one_line(self.msg) or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        self.args = (self.msg,)

    def with_context(self, **ctx: Any) -> "ImgSmithError":
        if self.context is None:
            self.context = {}
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        parts = [self.msg or self.__class__.__name__]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context))}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": self.context or {},
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(ImgSmithError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


@dataclass(eq=False)
class PrivilegeError(ImgSmithError):
    code: int = ExitCode.PRIVILEGE


@dataclass(eq=False)
class ConfigError(ImgSmithError):
    code: int = ExitCode.CONFIG


@dataclass(eq=False)
class DownloadError(ImgSmithError):
    code: int = ExitCode.DOWNLOAD


@dataclass(eq=False)
class ConversionError(ImgSmithError):
    code: int = ExitCode.CONVERSION


@dataclass(eq=False)
class AttachError(ImgSmithError):
    code: int = ExitCode.ATTACH


@dataclass(eq=False)
class DetachError(ImgSmithError):
    code: int = ExitCode.DETACH


@dataclass(eq=False)
class MountDirError(ImgSmithError):
    code: int = ExitCode.MOUNT_DIR


@dataclass(eq=False)
class MountError(ImgSmithError):
    code: int = ExitCode.MOUNT


@dataclass(eq=False)
class UnmountError(ImgSmithError):
    """A mount point under the scratch tree stayed busy; host state leaked."""
    code: int = ExitCode.UNMOUNT


@dataclass(eq=False)
class CleanupError(ImgSmithError):
    code: int = ExitCode.CLEANUP


@dataclass(eq=False)
class ToolsMissingError(ImgSmithError):
    code: int = ExitCode.TOOLS_MISSING


@dataclass(eq=False)
class CustomizationError(ImgSmithError):
    """
    Any guest-mutation stage failure. `stage` names the pipeline stage.
    """
    code: int = ExitCode.CUSTOMIZE
    stage: ClassVar[str] = "customize"

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.context is None:
            self.context = {}
        self.context.setdefault("stage", self.stage)


class ConfigInjectionError(CustomizationError):
    stage = "configure"


class PackageRemovalError(CustomizationError):
    stage = "remove-packages"


class PackageInstallError(CustomizationError):
    stage = "install-packages"


class BootSetupError(CustomizationError):
    stage = "boot"


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, ImgSmithError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
