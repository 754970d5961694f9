# tests/test_checkers.py
"""
Tests for the checker framework: diagnostics, suppressions, registry, runner.
"""

import json
import threading

import pytest

from hirlint.checkers import (
    Checker,
    CheckerRegistry,
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    NotUsingAssociatedTypeChecker,
    SourceLocation,
    SuppressionManager,
    default_registry,
    run_dumps,
)
from hirlint.errors import DumpError
from hirlint.hir_dump import load_dump
from tests.conftest import STATE_DUMP

ERROR_ID = "notUsingAssociatedType"
CHECKER = NotUsingAssociatedTypeChecker.name


def _diag(file="src/a.rs", line=10, error_id=ERROR_ID):
    return Diagnostic(
        error_id=error_id,
        message="m",
        severity=DiagnosticSeverity.WARNING,
        location=SourceLocation(file, line, 5),
    )


def _with_marks(*marks):
    """STATE_DUMP with extra top-level (suppress ...) forms."""
    head, _, rest = STATE_DUMP.partition('(crate "src/state.rs"')
    return load_dump(f'{head}(crate "src/state.rs" {" ".join(marks)}{rest}')


class _ExplodingChecker(Checker):
    name = "exploding"
    error_ids = frozenset({"boom"})

    def collect_evidence(self, ctx):
        raise RuntimeError("kaboom")

    def diagnose(self, ctx):
        pass


class TestDiagnostic:

    def test_json_keys(self):
        data = _diag().to_json()
        assert set(data) == {
            "file", "linenr", "column", "byteSpan", "severity",
            "message", "addon", "errorId", "extra",
        }
        assert data["addon"] == "hirlint"
        assert json.loads(_diag().to_json_str()) == data

    def test_gcc_format(self):
        assert _diag().to_gcc_format() == "src/a.rs:10:5: warning: m [notUsingAssociatedType]"

    def test_location_without_column(self):
        assert str(SourceLocation("a.rs", 3)) == "a.rs:3"


class TestSuppressionManager:

    def test_inline_same_line_and_line_above(self):
        sm = SuppressionManager()
        sm.add_inline_suppression(ERROR_ID, "src/a.rs", 9)
        assert sm.is_suppressed(_diag(line=9))
        assert sm.is_suppressed(_diag(line=10))
        assert not sm.is_suppressed(_diag(line=11))
        assert not sm.is_suppressed(_diag(file="src/b.rs", line=10))

    def test_inline_other_id(self):
        sm = SuppressionManager()
        sm.add_inline_suppression("somethingElse", "src/a.rs", 10)
        assert not sm.is_suppressed(_diag())

    def test_wildcard(self):
        sm = SuppressionManager()
        sm.add_inline_suppression("*", "src/a.rs", 10)
        assert sm.is_suppressed(_diag())

    def test_global(self):
        sm = SuppressionManager()
        sm.add_global_suppression(ERROR_ID)
        assert sm.is_suppressed(_diag())
        assert not sm.is_suppressed(_diag(error_id="other"))

    @pytest.mark.parametrize("pattern", ["src/a.rs", "a.rs", "src/*.rs", "*.rs"])
    def test_file_patterns(self, pattern):
        sm = SuppressionManager()
        sm.add_file_suppression(ERROR_ID, pattern)
        assert sm.is_suppressed(_diag())

    def test_file_pattern_miss(self):
        sm = SuppressionManager()
        sm.add_file_suppression(ERROR_ID, "generated/*.rs")
        assert not sm.is_suppressed(_diag())

    def test_load_from_crate(self):
        crate = _with_marks(f"(suppress {ERROR_ID} :line 11)")
        sm = SuppressionManager()
        assert sm.load_inline_suppressions(crate) == 1
        assert sm.is_suppressed(_diag(file="src/state.rs", line=12))


class TestCheckerRegistry:

    def test_default_registry(self):
        registry = default_registry()
        assert registry.names == [CHECKER]
        assert registry.get_all() == [NotUsingAssociatedTypeChecker]

    def test_register_replaces_same_name(self):
        registry = CheckerRegistry()
        registry.register(NotUsingAssociatedTypeChecker)
        registry.register(NotUsingAssociatedTypeChecker)
        assert registry.get_all() == [NotUsingAssociatedTypeChecker]
        assert registry.get_by_name(CHECKER) is NotUsingAssociatedTypeChecker
        assert registry.get_by_name("nope") is None


class TestCheckerRunner:

    def test_findings_become_warnings(self, state_crate):
        results = CheckerRunner().run(state_crate)
        assert results.checker_names == [CHECKER]
        assert results.warning_count == 3
        assert [d.location.line for d in results.diagnostics] == [12, 13, 14]
        first = results.diagnostics[0]
        assert first.error_id == ERROR_ID
        assert first.severity is DiagnosticSeverity.WARNING
        assert first.byte_span == (210, 224)
        assert first.extra == "consider Self::Associated instead of State"
        assert first.evidence == {
            "associated": "Associated",
            "concrete": "State",
            "occurrence": "State::A",
            "kind": "pattern",
            "function": "f",
        }

    def test_inline_suppression(self):
        crate = _with_marks(f"(suppress {ERROR_ID} :line 11)")
        results = CheckerRunner().run(crate)
        assert [d.location.line for d in results.diagnostics] == [13, 14]

    def test_global_suppression(self, state_crate):
        sm = SuppressionManager()
        sm.add_global_suppression(ERROR_ID)
        assert CheckerRunner(suppressions=sm).run(state_crate).total_count == 0

    def test_file_suppression(self, state_crate, value_crate):
        sm = SuppressionManager()
        sm.add_file_suppression(ERROR_ID, "src/state.rs")
        runner = CheckerRunner(suppressions=sm)
        assert runner.run(state_crate).total_count == 0
        assert runner.run(value_crate).total_count == 1

    def test_options_reach_checker(self, state_crate):
        results = CheckerRunner(options={"generic_policy": "strict", "workers": 2}).run(state_crate)
        assert results.warning_count == 3
        assert results.stats[f"{CHECKER}_blocks"] == 1

    def test_failing_checker_reported(self, state_crate):
        registry = CheckerRegistry()
        registry.register(_ExplodingChecker)
        results = CheckerRunner(registry=registry).run(state_crate)
        (diag,) = results.diagnostics
        assert diag.error_id == "checkerInternalError"
        assert diag.severity is DiagnosticSeverity.INFORMATION
        assert "kaboom" in diag.message
        assert diag.location.file == "src/state.rs"

    def test_unknown_checker_ignored(self, state_crate):
        results = CheckerRunner().run(state_crate, checkers=["no-such-checker"])
        assert results.checker_names == []
        assert results.total_count == 0

    def test_cancelled_run(self, state_crate):
        cancel = threading.Event()
        cancel.set()
        results = CheckerRunner(cancel=cancel).run(state_crate)
        assert results.cancelled
        assert results.total_count == 0

    def test_run_crates_stops_when_cancelled(self, state_crate, value_crate):
        cancel = threading.Event()
        cancel.set()
        results = CheckerRunner(cancel=cancel).run_crates([state_crate, value_crate])
        assert results.cancelled
        assert results.checker_names == []


class TestRunResults:

    def test_merge(self, state_crate, value_crate):
        runner = CheckerRunner()
        combined = runner.run(state_crate)
        combined.merge(runner.run(value_crate))
        assert combined.total_count == 4
        assert len(combined.diagnostics_by_checker[CHECKER]) == 4
        assert combined.checker_names == [CHECKER]
        assert combined.stats[f"{CHECKER}_blocks"] == 2
        assert [d.location.file for d in combined.diagnostics].count("src/value.rs") == 1

    def test_summary(self, state_crate):
        results = CheckerRunner().run(state_crate)
        text = results.summary()
        assert text.startswith("Checker run complete: 3 diagnostics (0 errors, 3 warnings)")
        assert f"{CHECKER}: 3 findings" in text
        assert "cancelled" not in text

    def test_summary_marks_partial_runs(self):
        results = CheckerRunResults(cancelled=True)
        assert results.summary().endswith("(run cancelled; results are partial)")

    def test_output_formats(self, state_crate):
        results = CheckerRunner().run(state_crate)
        lines = results.to_json_lines().splitlines()
        assert [json.loads(line)["linenr"] for line in lines] == [12, 13, 14]
        assert results.to_gcc_format().splitlines()[0].startswith("src/state.rs:12:13: warning:")
        assert len(results.by_severity(DiagnosticSeverity.WARNING)) == 3


class TestRunDumps:

    def test_several_files(self, state_dump_path, value_dump_path):
        results = run_dumps([state_dump_path, value_dump_path])
        assert results.total_count == 4
        assert {d.location.file for d in results.diagnostics} == {"src/state.rs", "src/value.rs"}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(DumpError):
            run_dumps([tmp_path / "absent.hir"])
