"""
hirlint — Lints over name-resolved syntax-tree (HIR) dumps
==========================================================

The one built-in lint reports concrete types written inside an
implementation block where the block's associated type could be named
instead::

    impl Trait for Owner {
        type Associated = State;
        fn f(&self, a: &Self::Associated) {
            match a { State::A => {} }      // ← Self::Associated::A
        }
    }

Core modules
------------
hir
    Tree node types: type references, types, patterns, expressions, items.
paths
    parsimonious grammar for textual type references.
hir_dump
    S-expression HIR dump reader producing :class:`hir.Crate`.
collection
    COLLECT phase: associated-type bindings and the type-reference index.
walker
    Occurrence traversal of method bodies.
equivalence
    Structural path equivalence under a generic-argument policy.
pipeline
    Per-block analysis and the (optionally threaded) multi-block driver.
checkers
    Checker framework, suppressions, diagnostics and the built-in lint.
config
    JSON configuration file support.

Quick start
-----------
>>> from hirlint import load_dump, analyze_blocks
>>> crate = load_dump(open("lib.rs.hir").read(), "lib.rs.hir")
>>> for finding in analyze_blocks(crate.impls).findings:
...     print(finding.file, finding.line, finding.suggestion)
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Re-exported names, by submodule, in dependency order
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "HirlintError",
        "DumpError",
        "DumpSyntaxError",
        "DumpShapeError",
        "PathSyntaxError",
        "ConfigError",
    ],
    "hir": [
        "Res",
        "Span",
        "PathSegment",
        "SelfQualified",
        "TypeRelative",
        "SpecialForm",
        "ImplBlock",
        "Crate",
    ],
    "paths": [
        "parse_type_reference",
        "parse_generic_arg",
    ],
    "hir_dump": [
        "load_dump",
        "load_dump_file",
    ],
    "collection": [
        "AssociatedTypeBinding",
        "TypeReferenceIndex",
        "scan",
        "build_index",
    ],
    "walker": [
        "Occurrence",
        "OccurrenceKind",
        "traverse",
    ],
    "equivalence": [
        "GenericArgPolicy",
        "paths_equivalent",
        "first_match",
    ],
    "pipeline": [
        "Finding",
        "AnalysisResult",
        "analyze_block",
        "analyze_blocks",
    ],
    "checkers": [
        "Diagnostic",
        "CheckerRunner",
        "NotUsingAssociatedTypeChecker",
        "run_dumps",
    ],
    "config": [
        "LintConfig",
        "load_config",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    mod = importlib.import_module(f"{__name__}.{module_rel_name}")
    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(f"hirlint.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

# ---------------------------------------------------------------------------
# Static type checkers cannot see the setattr() bindings above
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .checkers import CheckerRunner, Diagnostic, NotUsingAssociatedTypeChecker, run_dumps
    from .collection import AssociatedTypeBinding, TypeReferenceIndex, build_index, scan
    from .config import LintConfig, load_config
    from .equivalence import GenericArgPolicy, first_match, paths_equivalent
    from .errors import (
        ConfigError,
        DumpError,
        DumpShapeError,
        DumpSyntaxError,
        HirlintError,
        PathSyntaxError,
    )
    from .hir import Crate, ImplBlock, PathSegment, Res, SelfQualified, Span, SpecialForm, TypeRelative
    from .hir_dump import load_dump, load_dump_file
    from .paths import parse_generic_arg, parse_type_reference
    from .pipeline import AnalysisResult, Finding, analyze_block, analyze_blocks
    from .walker import Occurrence, OccurrenceKind, traverse
