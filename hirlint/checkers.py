"""
hirlint/checkers.py
═══════════════════

Runs lint rules over loaded crates and turns their findings into
addon-style diagnostics.

Flow for one crate::

    Crate ──► CheckerRunner.run()
                │  for each selected Checker class:
                │     configure → collect_evidence → diagnose → report
                │                       │                        │
                │            pipeline.analyze_blocks     SuppressionManager
                ▼
            CheckerRunResults  ──►  JSON lines / GCC text / summary

The only rule shipped is :class:`NotUsingAssociatedTypeChecker`
(error id ``notUsingAssociatedType``).  Suppressions come from three
places: ``(suppress ID :line N)`` marks in the dump, per-file patterns and
global ids; ``*`` stands for every id.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
    Union,
)

from .equivalence import GenericArgPolicy
from .hir import Crate
from .hir_dump import load_dump_file
from .pipeline import AnalysisResult, Finding, analyze_blocks

logger = logging.getLogger(__name__)

ADDON_NAME = "hirlint"
WILDCARD = "*"
INTERNAL_ERROR_ID = "checkerInternalError"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTICS
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    """Severity names understood by cppcheck-style consumers."""
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    PERFORMANCE = "performance"
    PORTABILITY = "portability"
    INFORMATION = "information"


@dataclass(frozen=True)
class SourceLocation:
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        parts = [self.file, str(self.line)]
        if self.column:
            parts.append(str(self.column))
        return ":".join(parts)


@dataclass(frozen=True)
class Diagnostic:
    """
    One reported problem.

    ``evidence`` is not serialised; it carries the structured facts behind
    the message (binding name, concrete type, occurrence kind, ...) for
    callers using the Python API.
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceLocation
    byte_span: Tuple[int, int] = (0, 0)
    checker_name: str = ""
    addon: str = ADDON_NAME
    extra: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        loc = self.location
        return {
            "file": loc.file,
            "linenr": loc.line,
            "column": loc.column,
            "byteSpan": list(self.byte_span),
            "severity": self.severity.value,
            "message": self.message,
            "addon": self.addon,
            "errorId": self.error_id,
            "extra": self.extra,
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """``file:line:col: severity: message [errorId]``"""
        return f"{self.location}: {self.severity.value}: {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSIONS
# ═════════════════════════════════════════════════════════════════════════

def _covers(ids: Iterable[str], error_id: str) -> bool:
    ids = set(ids)
    return error_id in ids or WILDCARD in ids


class SuppressionManager:
    """
    Decides whether a diagnostic is silenced.

    An inline mark at ``file:N`` covers findings on line ``N`` and on line
    ``N + 1`` (a mark written on the line above the code).  File patterns
    match by exact name, path suffix or ``fnmatch`` glob.

    >>> sm = SuppressionManager()
    >>> sm.load_inline_suppressions(crate)
    >>> sm.add_file_suppression("notUsingAssociatedType", "generated/*.rs")
    >>> kept = sm.filter_diagnostics(diagnostics)
    """

    def __init__(self) -> None:
        self._marks: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        self._patterns: Dict[str, Set[str]] = defaultdict(set)
        self._global: Set[str] = set()
        # Crates may be loaded into one manager from several threads.
        self._lock = threading.Lock()

    def load_inline_suppressions(self, crate: Crate) -> int:
        """Register a crate's ``(suppress ...)`` marks; returns their count."""
        with self._lock:
            for mark in crate.suppressions:
                self._marks[(mark.file, mark.line)].add(mark.error_id)
        if crate.suppressions:
            logger.debug("%s: %d inline suppression(s)", crate.file, len(crate.suppressions))
        return len(crate.suppressions)

    def add_inline_suppression(self, error_id: str, file: str, line: int) -> None:
        with self._lock:
            self._marks[(file, line)].add(error_id)

    def add_file_suppression(self, error_id: str, file_pattern: str) -> None:
        with self._lock:
            self._patterns[file_pattern].add(error_id)

    def add_global_suppression(self, error_id: str) -> None:
        with self._lock:
            self._global.add(error_id)

    @staticmethod
    def _file_matches(pattern: str, file: str) -> bool:
        return file == pattern or file.endswith(pattern) or fnmatch.fnmatch(file, pattern)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        error_id = diag.error_id
        if _covers(self._global, error_id):
            return True
        loc = diag.location
        for line in (loc.line, loc.line - 1):
            if _covers(self._marks.get((loc.file, line), ()), error_id):
                return True
        return any(
            _covers(ids, error_id) and self._file_matches(pattern, loc.file)
            for pattern, ids in self._patterns.items()
        )

    def filter_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER BASE CLASS AND CONTEXT
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """
    State shared by the checkers run over one crate.

    ``analyses`` holds results a checker publishes for later checkers (the
    built-in rule stores its :class:`~hirlint.pipeline.AnalysisResult`
    under ``"associated_types"``).  ``cancel`` is the run-wide stop flag.
    """
    crate: Crate
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    analyses: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
    cancel: Optional[threading.Event] = None

    def set_analysis(self, name: str, result: Any) -> None:
        self.analyses[name] = result

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


class Checker(ABC):
    """
    A lint rule.

    The runner creates a fresh instance per crate and calls, in order,
    :meth:`configure`, :meth:`collect_evidence`, :meth:`diagnose` and
    :meth:`report`.  Subclasses set the class attributes and implement the
    two abstract phases; :meth:`emit` records a diagnostic.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    error_ids: ClassVar[FrozenSet[str]] = frozenset()
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def configure(self, ctx: CheckerContext) -> None:
        pass

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def emit(self, error_id: str, message: str, location: SourceLocation, **details: Any) -> None:
        """Record a diagnostic; ``details`` are extra :class:`Diagnostic` fields."""
        details.setdefault("severity", self.default_severity)
        self._diagnostics.append(Diagnostic(
            error_id=error_id,
            message=message,
            location=location,
            checker_name=self.name,
            **details,
        ))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """Checker classes by name."""

    def __init__(self) -> None:
        self._by_name: Dict[str, Type[Checker]] = {}

    def register(self, checker_cls: Type[Checker]) -> None:
        if checker_cls.name in self._by_name:
            logger.debug("checker %s re-registered", checker_cls.name)
        self._by_name[checker_cls.name] = checker_cls

    def get_all(self) -> List[Type[Checker]]:
        return list(self._by_name.values())

    def get_by_name(self, name: str) -> Optional[Type[Checker]]:
        return self._by_name.get(name)

    @property
    def names(self) -> List[str]:
        return sorted(self._by_name)


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — BUILT-IN RULE
# ═════════════════════════════════════════════════════════════════════════

class NotUsingAssociatedTypeChecker(Checker):
    """
    Flags concrete types used inside an implementation block where the
    block's associated type could be named instead.

    Given::

        impl Trait for Owner {
            type Associated = State;
            fn f(&self, a: &Self::Associated) {
                match a { State::A => {} ... }
            }
        }

    each ``State::A`` arm is reported: ``Self::Associated::A`` keeps the
    method correct if the binding ever changes.

    Options: ``generic_policy`` (``"lenient"`` or ``"strict"``) and
    ``workers`` (threads used across implementation blocks).
    """

    name: ClassVar[str] = "not-using-associated-type"
    description: ClassVar[str] = (
        "Concrete type used where an associated type could be used instead"
    )
    error_ids: ClassVar[FrozenSet[str]] = frozenset({"notUsingAssociatedType"})

    def __init__(self) -> None:
        super().__init__()
        self._policy = GenericArgPolicy.LENIENT
        self._workers = 1
        self._result: Optional[AnalysisResult] = None

    def configure(self, ctx: CheckerContext) -> None:
        self._policy = GenericArgPolicy(ctx.get_option("generic_policy", "lenient"))
        self._workers = max(1, int(ctx.get_option("workers", 1)))

    def collect_evidence(self, ctx: CheckerContext) -> None:
        self._result = analyze_blocks(
            ctx.crate.impls,
            policy=self._policy,
            workers=self._workers,
            cancel=ctx.cancel,
        )
        ctx.set_analysis("associated_types", self._result)
        ctx.stats[f"{self.name}_blocks"] = len(self._result.blocks_analyzed)
        ctx.stats[f"{self.name}_cancelled"] = self._result.cancelled

    def diagnose(self, ctx: CheckerContext) -> None:
        if self._result is None:
            return
        for finding in self._result.findings:
            self._report_finding(finding)

    def _report_finding(self, finding: Finding) -> None:
        binding = finding.binding
        occurrence = finding.occurrence
        self.emit(
            "notUsingAssociatedType",
            finding.message,
            SourceLocation(finding.file, finding.line, finding.column),
            byte_span=finding.byte_span,
            extra=f"consider {finding.suggestion} instead of {binding.target}",
            evidence={
                "associated": binding.name,
                "concrete": str(binding.target),
                "occurrence": str(occurrence.reference),
                "kind": occurrence.kind.name.lower(),
                "function": occurrence.function,
            },
        )


_DEFAULT_REGISTRY = CheckerRegistry()
_DEFAULT_REGISTRY.register(NotUsingAssociatedTypeChecker)


def default_registry() -> CheckerRegistry:
    return _DEFAULT_REGISTRY


# ═════════════════════════════════════════════════════════════════════════
#  PART 6 — RESULTS AND RUNNER
# ═════════════════════════════════════════════════════════════════════════

def _add_stats(into: Dict[str, Any], more: Dict[str, Any]) -> None:
    """Sum numeric counters; anything else (flags, labels) is overwritten."""
    for key, value in more.items():
        numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
        if numeric and key in into:
            into[key] += value
        else:
            into[key] = value


@dataclass
class CheckerRunResults:
    """
    Diagnostics from one run, over one crate or (after :meth:`merge`)
    several.  ``cancelled`` is set when any crate stopped early.
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)
    cancelled: bool = False

    def by_severity(self, severity: DiagnosticSeverity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is severity]

    @property
    def error_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.ERROR))

    @property
    def warning_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.WARNING))

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        lines = [
            f"Checker run complete: {self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings)"
        ]
        for name in self.checker_names:
            found = len(self.diagnostics_by_checker.get(name, ()))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0.0)
            lines.append(f"  {name}: {found} findings ({elapsed:.1f}ms)")
        if self.cancelled:
            lines.append("  (run cancelled; results are partial)")
        return "\n".join(lines)

    def merge(self, other: CheckerRunResults) -> None:
        """Fold another run (usually the next crate) into this one."""
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_checker.items():
            self.diagnostics_by_checker[name].extend(diags)
        _add_stats(self.stats, other.stats)
        self.checker_names.extend(n for n in other.checker_names if n not in self.checker_names)
        self.cancelled = self.cancelled or other.cancelled


class CheckerRunner:
    """
    Runs the selected checkers over crates.

    ``suppressions`` is shared by every crate the runner sees (inline marks
    accumulate as crates load), ``options`` reach checkers through
    :class:`CheckerContext`, and ``cancel`` stops work between blocks and
    between crates.

    >>> results = CheckerRunner().run(crate)
    >>> print(results.summary())
    """

    def __init__(
        self,
        registry: Optional[CheckerRegistry] = None,
        suppressions: Optional[SuppressionManager] = None,
        options: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.registry = registry or _DEFAULT_REGISTRY
        self.suppressions = suppressions or SuppressionManager()
        self.options = options or {}
        self.cancel = cancel

    def _select(self, checkers: Optional[Sequence[str]]) -> List[Type[Checker]]:
        if checkers is None:
            return self.registry.get_all()
        selected = []
        for name in checkers:
            cls = self.registry.get_by_name(name)
            if cls is None:
                logger.warning("unknown checker %r ignored", name)
            else:
                selected.append(cls)
        return selected

    def _run_one(self, cls: Type[Checker], ctx: CheckerContext) -> List[Diagnostic]:
        checker = cls()
        try:
            checker.configure(ctx)
            checker.collect_evidence(ctx)
            checker.diagnose(ctx)
            return checker.report(ctx)
        except Exception as exc:
            # A broken rule becomes a diagnostic; the other rules still run.
            logger.exception("checker %s failed on %s", cls.name, ctx.crate.file)
            return [Diagnostic(
                error_id=INTERNAL_ERROR_ID,
                message=f"Checker '{cls.name}' failed: {exc}",
                severity=DiagnosticSeverity.INFORMATION,
                location=SourceLocation(file=ctx.crate.file),
                checker_name=cls.name,
            )]

    def run(self, crate: Crate, checkers: Optional[Sequence[str]] = None) -> CheckerRunResults:
        """Run ``checkers`` (default: every enabled one) over one crate."""
        results = CheckerRunResults()
        self.suppressions.load_inline_suppressions(crate)
        ctx = CheckerContext(
            crate=crate,
            suppressions=self.suppressions,
            options=self.options,
            cancel=self.cancel,
        )

        for cls in self._select(checkers):
            started = time.monotonic()
            diags = self._run_one(cls, ctx)
            results.stats[f"{cls.name}_elapsed_ms"] = (time.monotonic() - started) * 1000.0
            results.checker_names.append(cls.name)
            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[cls.name] = diags
            if ctx.stats.get(f"{cls.name}_cancelled"):
                results.cancelled = True

        results.stats.update(ctx.stats)
        logger.debug("%s: %d diagnostic(s)", crate.file, results.total_count)
        return results

    def run_crates(
        self,
        crates: Iterable[Crate],
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """Run over several crates in turn; a set cancel flag stops before the next."""
        combined = CheckerRunResults()
        for crate in crates:
            if self.cancel is not None and self.cancel.is_set():
                combined.cancelled = True
                break
            combined.merge(self.run(crate, checkers=checkers))
        return combined


def run_dumps(
    dump_files: Sequence[Union[str, Path]],
    runner: Optional[CheckerRunner] = None,
    checkers: Optional[Sequence[str]] = None,
) -> CheckerRunResults:
    """
    Load HIR dump files one at a time and run the checkers over each.

    A cancelled run does not read the remaining files.  Raises
    :class:`~hirlint.errors.DumpError` or
    :class:`~hirlint.errors.PathSyntaxError` for an unreadable dump.
    """
    runner = runner or CheckerRunner()
    return runner.run_crates((load_dump_file(p) for p in dump_files), checkers=checkers)


__all__ = [
    "ADDON_NAME",
    "INTERNAL_ERROR_ID",
    "Diagnostic",
    "DiagnosticSeverity",
    "SourceLocation",
    "SuppressionManager",
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    "NotUsingAssociatedTypeChecker",
    "CheckerRunner",
    "CheckerRunResults",
    "default_registry",
    "run_dumps",
]
