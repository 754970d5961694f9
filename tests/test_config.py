# tests/test_config.py
"""
Tests for configuration loading and layering.
"""

import json
import logging

import pytest

from hirlint.checkers import Diagnostic, DiagnosticSeverity, SourceLocation
from hirlint.config import (
    DEFAULT_CONFIG_NAME,
    LintConfig,
    discover_config,
    from_mapping,
    load_config,
)
from hirlint.errors import ConfigError, ErrorCode


def _write(tmp_path, data, name="cfg.json"):
    path = tmp_path / name
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


class TestFromMapping:

    def test_defaults(self):
        config = from_mapping({})
        assert config == LintConfig()
        assert config.generic_policy == "lenient"
        assert config.workers == 1
        assert config.checkers is None
        assert config.output_format == "gcc"

    def test_all_keys(self):
        config = from_mapping({
            "generic_policy": "strict",
            "workers": 4,
            "checkers": ["not-using-associated-type"],
            "suppress": ["x"],
            "file_suppressions": {"gen/*.rs": ["notUsingAssociatedType"]},
            "output_format": "json",
        })
        assert config.generic_policy == "strict"
        assert config.workers == 4
        assert config.checkers == ["not-using-associated-type"]
        assert config.file_suppressions == {"gen/*.rs": ["notUsingAssociatedType"]}

    def test_unknown_key(self):
        with pytest.raises(ConfigError) as info:
            from_mapping({"polcy": "strict"}, "cfg.json")
        assert info.value.code is ErrorCode.CONFIG_UNKNOWN_KEY
        assert "polcy" in info.value.message
        assert "generic_policy" in info.value.hint
        assert info.value.span.file == "cfg.json"

    @pytest.mark.parametrize("data", [
        {"workers": "4"},
        {"workers": True},
        {"checkers": "not-using-associated-type"},
        {"suppress": [1]},
        {"file_suppressions": ["*.rs"]},
        {"file_suppressions": {"*.rs": "id"}},
    ])
    def test_wrong_types(self, data):
        with pytest.raises(ConfigError) as info:
            from_mapping(data)
        assert info.value.code is ErrorCode.CONFIG_BAD_VALUE

    @pytest.mark.parametrize("data", [
        {"generic_policy": "loose"},
        {"output_format": "xml"},
        {"workers": 0},
    ])
    def test_bad_values(self, data):
        with pytest.raises(ConfigError):
            from_mapping(data)

    def test_null_checkers_means_all(self):
        assert from_mapping({"checkers": None}).checkers is None


class TestLoadConfig:

    def test_load(self, tmp_path):
        config = load_config(_write(tmp_path, {"workers": 2}))
        assert config.workers == 2

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigError) as info:
            load_config(tmp_path / "nope.json")
        assert info.value.code is ErrorCode.CONFIG_UNREADABLE

    def test_invalid_json_located(self, tmp_path):
        with pytest.raises(ConfigError) as info:
            load_config(_write(tmp_path, '{\n  "workers": ,\n}'))
        assert info.value.code is ErrorCode.CONFIG_UNREADABLE
        assert info.value.span.line == 2

    def test_not_an_object(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "[1, 2]"))

    def test_warnings_logged(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="hirlint.config"):
            load_config(_write(tmp_path, {"checkers": []}))
        assert "nothing will run" in caplog.text

    def test_discover(self, tmp_path):
        assert discover_config(tmp_path) is None
        path = _write(tmp_path, {}, DEFAULT_CONFIG_NAME)
        assert discover_config(tmp_path) == path


class TestLintConfig:

    def test_merged_skips_none(self):
        base = LintConfig(workers=3)
        merged = base.merged(workers=None, generic_policy="strict")
        assert merged.workers == 3
        assert merged.generic_policy == "strict"
        assert base.generic_policy == "lenient"

    def test_validate(self):
        assert LintConfig().validate() == []
        warnings = LintConfig(file_suppressions={"*.rs": []}, workers=100).validate()
        assert len(warnings) == 2

    def test_to_options(self):
        assert LintConfig(generic_policy="strict", workers=2).to_options() == {
            "generic_policy": "strict",
            "workers": 2,
        }

    def test_build_suppressions(self):
        config = LintConfig(
            suppress=["globalId"],
            file_suppressions={"gen/*.rs": ["notUsingAssociatedType"]},
        )
        sm = config.build_suppressions()

        def diag(error_id, file):
            return Diagnostic(error_id, "m", DiagnosticSeverity.WARNING, SourceLocation(file, 1))

        assert sm.is_suppressed(diag("globalId", "src/a.rs"))
        assert sm.is_suppressed(diag("notUsingAssociatedType", "gen/x.rs"))
        assert not sm.is_suppressed(diag("notUsingAssociatedType", "src/a.rs"))
