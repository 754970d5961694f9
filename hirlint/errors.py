# hirlint/errors.py
"""
hirlint error types.

The analysis core never raises: unsupported shapes are skipped and simply
contribute nothing.  Everything *around* the core (reading HIR dumps,
parsing path text, loading configuration) can fail, and does so through the
hierarchy below so the CLI can map failures to a single exit code and a
readable, located message.

Error hierarchy:
────────────────
┌───────────────────────────────────────────────────────────────┐
│  HirlintError (base)                                          │
│  ├── DumpError                                                │
│  │   ├── DumpSyntaxError  - text is not a valid S-expression  │
│  │   └── DumpShapeError   - valid S-expression, wrong shape   │
│  ├── PathSyntaxError      - path text rejected by the grammar │
│  └── ConfigError          - bad configuration file or value   │
└───────────────────────────────────────────────────────────────┘

Error codes:
────────────
HIRLINT-NNNN, where NNNN falls in:
  - 1000-1999: dump syntax
  - 2000-2999: dump shape
  - 3000-3999: path syntax
  - 4000-4999: configuration
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Dict, Optional


@unique
class ErrorCode(Enum):
    """Stable error codes, grouped by range."""

    DUMP_SYNTAX = 1000
    DUMP_EMPTY = 1001
    DUMP_UNREADABLE = 1002

    DUMP_UNEXPECTED_FORM = 2000
    DUMP_MISSING_FIELD = 2001
    DUMP_BAD_ATOM = 2002
    DUMP_UNKNOWN_KEYWORD = 2003

    PATH_SYNTAX = 3000

    CONFIG_UNREADABLE = 4000
    CONFIG_UNKNOWN_KEY = 4001
    CONFIG_BAD_VALUE = 4002

    @property
    def code(self) -> str:
        return f"HIRLINT-{self.value:04d}"

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class SourceSpan:
    """Where an error was detected (file / line / column, all optional)."""

    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"
        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))
        return ":".join(parts)


class HirlintError(Exception):
    """
    Base exception for all hirlint errors.

    Carries a code, an optional location and an optional hint, and renders
    itself GCC-style: ``file:line:col: error[HIRLINT-NNNN]: message``.
    """

    default_code: ErrorCode = ErrorCode.DUMP_SYNTAX

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.span = span or SourceSpan()
        self.hint = hint

    def to_gcc_format(self) -> str:
        main = f"{self.span}: error[{self.code}]: {self.message}"
        if self.hint:
            return f"{main}\nhint: {self.hint}"
        return main

    def to_json(self) -> Dict[str, Any]:
        return {
            "code": self.code.code,
            "message": self.message,
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
            },
            "hint": self.hint,
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ───────────────────────────────────────────────────────────────────────
# DUMP ERRORS
# ───────────────────────────────────────────────────────────────────────

class DumpError(HirlintError):
    """Base class for failures reading a HIR dump."""


class DumpSyntaxError(DumpError):
    """The dump text is not a well-formed S-expression document."""

    default_code = ErrorCode.DUMP_SYNTAX


class DumpShapeError(DumpError):
    """A form in the dump does not have the shape its head symbol requires."""

    default_code = ErrorCode.DUMP_UNEXPECTED_FORM


# ───────────────────────────────────────────────────────────────────────
# PATH / CONFIG ERRORS
# ───────────────────────────────────────────────────────────────────────

class PathSyntaxError(HirlintError):
    """Path text (``State::A``, ``Vec<u8>``) rejected by the path grammar."""

    default_code = ErrorCode.PATH_SYNTAX

    def __init__(self, text: str, reason: str = "", span: Optional[SourceSpan] = None) -> None:
        message = f"invalid path {text!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, span=span)
        self.text = text
        self.reason = reason


class ConfigError(HirlintError):
    """Invalid configuration file or value."""

    default_code = ErrorCode.CONFIG_BAD_VALUE


__all__ = [
    "ErrorCode",
    "SourceSpan",
    "HirlintError",
    "DumpError",
    "DumpSyntaxError",
    "DumpShapeError",
    "PathSyntaxError",
    "ConfigError",
]
