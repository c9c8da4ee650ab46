# SPDX-License-Identifier: LGPL-3.0-or-later
# utmbuilder/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _check_exit_code(code: int) -> int:
    if code < 0 or code > 255:
        raise ValueError(f"exit code out of range 0..255: {code}")
    return code


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "secret",
    "token",
    "apikey",
    "api_key",
    "auth",
    "cookie",
    "bearer",
    "private",
)

REDACTED = "***REDACTED***"


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: (REDACTED if _is_secret_key(str(k)) else _redact(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_redact(v) for v in obj]
    return obj


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    red = _redact(ctx)
    return ", ".join(f"{k}={red[k]!r}" for k in sorted(red.keys()))


@dataclass(eq=False)
class UtmBuilderError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what operators see)
      - exit code validated to 0..255
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _check_exit_code(_safe_int(self.code, default=1))
        self.msg = (self.msg or "").strip() or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        self.args = (self.msg,)

    def with_context(self, **ctx: Any) -> "UtmBuilderError":
        if self.context is None:
            self.context = {}
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
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
            "context": _redact(self.context or {}),
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(UtmBuilderError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


class ConfigError(UtmBuilderError):
    """
    Invalid build configuration: unknown interface, unusable URL template,
    missing guest additions URL. Never retried.
    """
    pass


class DriverError(UtmBuilderError):
    """An automation script or hypervisor query failed."""
    pass


class DownloadError(UtmBuilderError):
    """Artifact download failed (network, resume, missing source)."""
    pass


class ChecksumError(DownloadError):
    pass


class StateError(UtmBuilderError):
    """
    Misuse of the shared build state. These are programming errors: a step
    read a key no earlier step wrote, or a value of the wrong type.
    """
    pass


class StateKeyError(StateError):
    pass


class StateTypeError(StateError):
    pass


class BuildCancelled(UtmBuilderError):
    """The build context was cancelled while a step was running."""
    pass


class RunnerError(UtmBuilderError):
    pass


def wrap_config(msg: str, exc: Optional[BaseException] = None, code: int = 2, **context: Any) -> ConfigError:
    return ConfigError(code=code, msg=msg, cause=exc, context=context or None)


def wrap_driver(msg: str, exc: Optional[BaseException] = None, code: int = 40, **context: Any) -> DriverError:
    return DriverError(code=code, msg=msg, cause=exc, context=context or None)


def wrap_download(msg: str, exc: Optional[BaseException] = None, code: int = 50, **context: Any) -> DownloadError:
    return DownloadError(code=code, msg=msg, cause=exc, context=context or None)


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, UtmBuilderError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
