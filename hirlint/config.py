"""hirlint/config.py – lint configuration.

Settings come from three layers, later ones winning:

1. :class:`LintConfig` defaults;
2. a JSON file (``--config FILE``, or ``hirlint.json`` in the working
   directory when present);
3. command-line flags.

Example ``hirlint.json``::

    {
        "generic_policy": "strict",
        "workers": 4,
        "checkers": ["not-using-associated-type"],
        "suppress": [],
        "file_suppressions": {"generated/*.rs": ["notUsingAssociatedType"]},
        "output_format": "gcc"
    }
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .checkers import SuppressionManager
from .errors import ConfigError, ErrorCode, SourceSpan

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "hirlint.json"

GENERIC_POLICIES = ("lenient", "strict")
OUTPUT_FORMATS = ("gcc", "json", "summary")


@dataclass
class LintConfig:
    """Tuning knobs for a lint run."""
    generic_policy: str = "lenient"
    workers: int = 1
    checkers: Optional[List[str]] = None
    suppress: List[str] = field(default_factory=list)
    file_suppressions: Dict[str, List[str]] = field(default_factory=dict)
    output_format: str = "gcc"

    def check(self, source: str = "") -> None:
        """Raise ConfigError for values no run can use."""
        span = SourceSpan(source) if source else None
        if self.generic_policy not in GENERIC_POLICIES:
            raise ConfigError(
                f"generic_policy must be one of {', '.join(GENERIC_POLICIES)}, "
                f"got {self.generic_policy!r}",
                span=span,
            )
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"output_format must be one of {', '.join(OUTPUT_FORMATS)}, "
                f"got {self.output_format!r}",
                span=span,
            )
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}", span=span)

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.checkers is not None and not self.checkers:
            warnings.append("checkers is an empty list: nothing will run")
        for pattern, ids in self.file_suppressions.items():
            if not ids:
                warnings.append(f"file_suppressions[{pattern!r}] lists no error ids")
        if self.workers > 64:
            warnings.append(f"workers={self.workers} is unusually high")
        return warnings

    def merged(self, **overrides: Any) -> LintConfig:
        """Copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def to_options(self) -> Dict[str, Any]:
        """Options dict handed to checkers through CheckerContext."""
        return {"generic_policy": self.generic_policy, "workers": self.workers}

    def build_suppressions(self) -> SuppressionManager:
        sm = SuppressionManager()
        for error_id in self.suppress:
            sm.add_global_suppression(error_id)
        for pattern, ids in self.file_suppressions.items():
            for error_id in ids:
                sm.add_file_suppression(error_id, pattern)
        return sm


# ═══════════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════════

def _expect(value: Any, kind: type, key: str, source: str) -> Any:
    if isinstance(value, bool) and kind is not bool:
        raise ConfigError(f"{key} must be {kind.__name__}, got bool",
                          span=SourceSpan(source))
    if not isinstance(value, kind):
        raise ConfigError(
            f"{key} must be {kind.__name__}, got {type(value).__name__}",
            span=SourceSpan(source),
        )
    return value


def _string_list(value: Any, key: str, source: str) -> List[str]:
    _expect(value, list, key, source)
    for item in value:
        _expect(item, str, f"{key}[]", source)
    return list(value)


def from_mapping(data: Mapping[str, Any], source: str = "<config>") -> LintConfig:
    """Build a LintConfig from decoded JSON, rejecting unknown keys."""
    known = {f.name for f in dataclasses.fields(LintConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"unknown configuration key(s): {', '.join(unknown)}",
            code=ErrorCode.CONFIG_UNKNOWN_KEY,
            span=SourceSpan(source),
            hint=f"valid keys are {', '.join(sorted(known))}",
        )

    values: Dict[str, Any] = {}
    if "generic_policy" in data:
        values["generic_policy"] = _expect(data["generic_policy"], str, "generic_policy", source)
    if "workers" in data:
        values["workers"] = _expect(data["workers"], int, "workers", source)
    if "checkers" in data and data["checkers"] is not None:
        values["checkers"] = _string_list(data["checkers"], "checkers", source)
    if "suppress" in data:
        values["suppress"] = _string_list(data["suppress"], "suppress", source)
    if "file_suppressions" in data:
        raw = _expect(data["file_suppressions"], dict, "file_suppressions", source)
        values["file_suppressions"] = {
            str(pattern): _string_list(ids, f"file_suppressions[{pattern!r}]", source)
            for pattern, ids in raw.items()
        }
    if "output_format" in data:
        values["output_format"] = _expect(data["output_format"], str, "output_format", source)

    config = LintConfig(**values)
    config.check(source)
    return config


def load_config(path: Union[str, Path]) -> LintConfig:
    """Read a JSON configuration file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"cannot read configuration: {exc.strerror or exc}",
            code=ErrorCode.CONFIG_UNREADABLE,
            span=SourceSpan(str(path)),
        ) from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"invalid JSON: {exc.msg}",
            code=ErrorCode.CONFIG_UNREADABLE,
            span=SourceSpan(str(path), exc.lineno, exc.colno),
        ) from exc
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a JSON object", span=SourceSpan(str(path)))
    config = from_mapping(data, str(path))
    for warning in config.validate():
        logger.warning("%s: %s", path, warning)
    logger.debug("loaded configuration from %s: %s", path, config)
    return config


def discover_config(directory: Union[str, Path, None] = None) -> Optional[Path]:
    """``hirlint.json`` in ``directory`` (default: cwd) when it exists."""
    candidate = Path(directory or Path.cwd()) / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "GENERIC_POLICIES",
    "OUTPUT_FORMATS",
    "LintConfig",
    "from_mapping",
    "load_config",
    "discover_config",
]
