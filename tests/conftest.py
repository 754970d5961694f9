# tests/conftest.py
"""
Shared HIR dump sources, tree builders and fixtures.
"""

import pytest

from hirlint.hir import (
    AssocFnItem,
    AssocTypeItem,
    Block,
    ImplBlock,
    Param,
    PathTy,
    RefTy,
    Res,
    Span,
)
from hirlint.hir_dump import load_dump
from hirlint.paths import parse_type_reference


# ─────────────────────────────────────────────────────────────────────
# Dump sources
# ─────────────────────────────────────────────────────────────────────

# `type Associated = State;` with one method matching its parameter
# against every variant (3 findings) and a sibling method whose parameter
# is declared as `&State` directly (no findings).
STATE_DUMP = '''
;; enum State { A, B, C }
(crate "src/state.rs"
  (enum State)
  (impl :span (8 1 100 700) :trait "Trait" :self-ty "Owner"
    (type Associated (path "State") :span (9 5 120 146))
    (fn f
      (param (binding self) (ref "Self"))
      (param (binding a) (ref (relative "Self" "Associated")))
      (block :span (10 45 180 330)
        (match (path "a" :res local :span (11 15 196 197))
          (arm (path-pat (path "State::A" :res variant)) (block) :span (12 13 210 224))
          (arm (path-pat (path "State::B" :res variant)) (block) :span (13 13 238 252))
          (arm (path-pat (path "State::C" :res variant)) (block) :span (14 13 266 280)))))
    (fn g
      (param (binding self) (ref "Self"))
      (param (binding b) (ref "State"))
      (block
        (match (path "b" :res local)
          (arm (path-pat (path "State::A" :res variant)) (block) :span (20 13 410 424))
          (arm (path-pat (path "State::B" :res variant)) (block) :span (21 13 438 452))
          (arm (path-pat (path "State::C" :res variant)) (block) :span (22 13 466 480)))))))
'''

# `type Associated = Value;` where `Value(u32)` is destructured in the
# parameter list.
VALUE_DUMP = '''
(crate "src/value.rs"
  (struct Value)
  (impl :trait "Trait" :self-ty "Owner"
    (type Associated (path "Value"))
    (fn f
      (param (binding self) (ref "Self"))
      (param (tuple-struct (path "Value::Value" :res variant) (binding _state))
             (ref (path "Self::Associated"))
             :span (30 10 400 420))
      (block))))
'''

# Every position a concrete path can be written in a body.
BODY_DUMP = '''
(crate "src/body.rs"
  (impl :self-ty "Owner" :trait "Trait"
    (type Associated "State")
    (fn build :ret "State"
      (block
        (let (binding x) :ty "State" :init (path "State::A" :res variant :span (3 22 30 38))
             :span (3 9 17 22))
        (let (binding y) :init (call (path "State::new" :res assoc-item :span (4 17 50 60)))
             :span (4 9 42 43))
        (let (binding z) :init (path "Self::Associated::B" :res variant :span (5 17 70 89)))
        (semi (cast (path "x" :res local) (path "u8") :span (6 9 95 105)))
        (tail (path "x" :res local))))))
'''


# ─────────────────────────────────────────────────────────────────────
# Tree builders
# ─────────────────────────────────────────────────────────────────────

def path_ty(text, res=None, span=None):
    return PathTy(parse_type_reference(text, res=res), span=span or Span())


def assoc_type(name, text, res=None):
    return AssocTypeItem(name, path_ty(text, res=res))


def method(name, *params, body=None, stmts=(), tail=None):
    """AssocFnItem from (pattern, type) pairs and a body."""
    return AssocFnItem(
        name,
        tuple(Param(pat, ty) for pat, ty in params),
        body or Block(tuple(stmts), tail),
    )


def ref_to(ty):
    return RefTy(ty)


def impl_block(*items, trait="Trait", self_ty="Owner", span=None):
    return ImplBlock(
        items=tuple(items),
        trait_ref=parse_type_reference(trait) if trait else None,
        self_ty=path_ty(self_ty) if self_ty else None,
        span=span or Span(),
    )


def self_associated(name="Associated"):
    """``&Self::<name>`` parameter type."""
    return RefTy(path_ty(f"Self::{name}"))


# ─────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def state_crate():
    return load_dump(STATE_DUMP, "state.hir")


@pytest.fixture
def value_crate():
    return load_dump(VALUE_DUMP, "value.hir")


@pytest.fixture
def body_crate():
    return load_dump(BODY_DUMP, "body.hir")


@pytest.fixture
def dump_file(tmp_path):
    """Write dump text to a file and return its path."""
    def _write(text, name="crate.hir"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def state_dump_path(dump_file):
    return dump_file(STATE_DUMP, "state.hir")


@pytest.fixture
def value_dump_path(dump_file):
    return dump_file(VALUE_DUMP, "value.hir")


__all__ = [
    "STATE_DUMP", "VALUE_DUMP", "BODY_DUMP",
    "path_ty", "assoc_type", "method", "ref_to", "impl_block",
    "self_associated", "Res",
]
