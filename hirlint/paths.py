"""
paths.py — path-text grammar
============================

HIR dumps spell paths as text (``State::A``, ``Vec<u32>``,
``<T as Iterator>::Item``, ``Self::Associated``).  This module turns that
text into the :data:`~hirlint.hir.TypeReference` union.

Usage::

    from hirlint.paths import parse_type_reference
    from hirlint.hir import Res

    ref = parse_type_reference("State::A", res=Res.VARIANT)
    # SelfQualified(qualifier=None,
    #               segments=(PathSegment('State'), PathSegment('A')))

Shape rules
-----------
* ``A::B::C``                 → ``SelfQualified(None, (A, B, C))``
* ``<Q as a::Tr>::Item``      → ``SelfQualified(Q, (a, Tr, Item))``
* ``<Q>::member``             → ``TypeRelative(Q, member)``
* ``Self::X::Y``              → ``TypeRelative(TypeRelative(Self, X), Y)``

Generic arguments that are paths stay structured; anything else (references,
tuples, arrays, lifetimes, consts, ``_``, ``Name = Ty`` bindings, trait
objects) becomes an :class:`~hirlint.hir.OpaqueArg` holding canonical text.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import List, Optional, Tuple

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from .errors import PathSyntaxError
from .hir import (
    GenericArg,
    OpaqueArg,
    PathSegment,
    Res,
    SelfQualified,
    TypeReference,
    TypeRelative,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — PATH GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

PATH_GRAMMAR = Grammar(r'''
    # ─────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────

    type_path       = ws type_ref ws
    generic_arg     = ws arg ws
    path_segment    = ws segment ws

    # ─────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────

    type_ref        = qualified_path / plain_path
    qualified_path  = "<" ws ty ws as_trait? ">" members
    as_trait        = "as" ws1 plain_path ws
    members         = member+
    plain_path      = leading_sep? segment more_members
    more_members    = member*
    member          = ws "::" ws segment
    leading_sep     = "::"
    segment         = ident generic_args?

    # ─────────────────────────────────────────────────────────────
    # Generic arguments
    # ─────────────────────────────────────────────────────────────

    generic_args    = turbofish? ws "<" ws arg_list? ws ">"
    turbofish       = "::"
    arg_list        = arg more_args trailing_comma?
    more_args       = next_arg*
    next_arg        = ws "," ws arg
    trailing_comma  = ws ","
    arg             = infer_ty / lifetime / const_arg / binding_arg
                    / opaque_ty / type_ref
    binding_arg     = ident ws "=" ws ty
    const_arg       = ~r"-?[0-9]+" / ~r"\{[^{}]*\}"

    # ─────────────────────────────────────────────────────────────
    # Types in argument position
    # ─────────────────────────────────────────────────────────────

    ty              = infer_ty / opaque_ty / type_ref
    opaque_ty       = ref_ty / ptr_ty / tuple_ty / array_ty / never_ty
                    / dyn_ty / fn_ptr_ty
    ref_ty          = "&" ws lifetime_ws? mut_kw? ty
    lifetime_ws     = lifetime ws
    mut_kw          = "mut" ws1
    ptr_ty          = "*" ws ptr_kind ws1 ty
    ptr_kind        = "const" / "mut"
    tuple_ty        = "(" ws ty_list? ws ")"
    ty_list         = ty more_tys trailing_comma?
    more_tys        = next_ty*
    next_ty         = ws "," ws ty
    array_ty        = "[" ws ty ws array_len? "]"
    array_len       = ";" ws ~r"[^\]]+"
    never_ty        = "!"
    dyn_ty          = dyn_kw ws1 plain_path more_bounds
    dyn_kw          = "dyn" / "impl"
    more_bounds     = next_bound*
    next_bound      = ws "+" ws bound
    bound           = lifetime / plain_path
    fn_ptr_ty       = "fn" ws "(" ws ty_list? ws ")" ret_ty?
    ret_ty          = ws "->" ws ty

    # ─────────────────────────────────────────────────────────────
    # Lexical
    # ─────────────────────────────────────────────────────────────

    infer_ty        = ~r"_(?!\w)"u
    lifetime        = ~r"'[^\W\d]\w*"u
    ident           = ~r"(?:r#)?(?!_(?!\w))[^\W\d]\w*"u
    ws              = ~r"\s*"
    ws1             = ~r"\s+"
''')


_SPACE_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r" ?([<>(),;\[\]&*=:!+{}]) ?")


def canonical_text(text: str) -> str:
    """Whitespace-normalised spelling used for opaque generic arguments."""
    return _PUNCT_RE.sub(r"\1", _SPACE_RE.sub(" ", text.strip()))


def _optional(value):
    """Unwrap the visited form of an ``x?`` term: the value, or None."""
    if isinstance(value, list) and value:
        return value[0]
    return None


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — PARSE TREE → TypeReference
# ═══════════════════════════════════════════════════════════════════

class PathBuilder(NodeVisitor):
    """Transforms a parsimonious parse tree into TypeReference values."""

    unwrapped_exceptions = (PathSyntaxError,)

    def generic_visit(self, node, visited_children):
        """Default: children when there are any, else the node itself."""
        return visited_children or node

    # ── entry points ──────────────────────────────────────────────

    def visit_type_path(self, node, visited_children):
        _, ref, _ = visited_children
        return ref

    def visit_generic_arg(self, node, visited_children):
        _, arg, _ = visited_children
        return arg

    def visit_path_segment(self, node, visited_children):
        _, segment, _ = visited_children
        return segment

    # ── paths ─────────────────────────────────────────────────────

    def visit_type_ref(self, node, visited_children):
        return visited_children[0]

    def visit_qualified_path(self, node, visited_children):
        _, _, qself, _, as_trait, _, members = visited_children
        trait = _optional(as_trait)
        if trait is None:
            ref = qself
            for segment in members:
                ref = TypeRelative(ref, segment)
            return ref
        return SelfQualified(qualifier=qself, segments=trait + tuple(members))

    def visit_as_trait(self, node, visited_children):
        _, _, trait, _ = visited_children
        if not isinstance(trait, SelfQualified) or trait.qualifier is not None:
            raise PathSyntaxError(node.full_text, f"unsupported trait path {node.text.strip()!r}")
        return trait.segments

    def visit_members(self, node, visited_children):
        return list(visited_children)

    def visit_more_members(self, node, visited_children):
        return list(visited_children)

    def visit_member(self, node, visited_children):
        return visited_children[-1]

    def visit_plain_path(self, node, visited_children):
        leading, first, rest = visited_children
        segments: List[PathSegment] = [first, *rest]
        if isinstance(leading, list):
            segments.insert(0, PathSegment(""))
        return _fold_self(tuple(segments))

    def visit_segment(self, node, visited_children):
        name, args = visited_children
        return PathSegment(name, _optional(args))

    def visit_ident(self, node, visited_children):
        return node.text

    # ── generic arguments ─────────────────────────────────────────

    def visit_generic_args(self, node, visited_children):
        _, _, _, _, arg_list, _, _ = visited_children
        args = _optional(arg_list)
        return tuple(args) if args else ()

    def visit_arg_list(self, node, visited_children):
        first, rest, _ = visited_children
        return [first, *rest]

    def visit_more_args(self, node, visited_children):
        return list(visited_children)

    def visit_next_arg(self, node, visited_children):
        return visited_children[-1]

    def visit_arg(self, node, visited_children):
        return visited_children[0]

    def visit_ty(self, node, visited_children):
        return visited_children[0]

    def visit_binding_arg(self, node, visited_children):
        return OpaqueArg(canonical_text(node.text))

    def visit_const_arg(self, node, visited_children):
        return OpaqueArg(canonical_text(node.text))

    def visit_opaque_ty(self, node, visited_children):
        return OpaqueArg(canonical_text(node.text))

    def visit_lifetime(self, node, visited_children):
        return OpaqueArg(node.text)

    def visit_infer_ty(self, node, visited_children):
        return OpaqueArg("_")


def _fold_self(segments: Tuple[PathSegment, ...]) -> TypeReference:
    """``Self::A::B`` is type-relative on ``Self``; other paths are resolved."""
    head = segments[0]
    if head.name != "Self" or head.args is not None:
        return SelfQualified(None, segments)
    ref: TypeReference = SelfQualified(None, segments[:1], res=Res.SELF_TY)
    for segment in segments[1:]:
        ref = TypeRelative(ref, segment)
    return ref


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def _parse(rule: str, text: str):
    try:
        tree = PATH_GRAMMAR[rule].parse(text)
    except ParseError as exc:
        raise PathSyntaxError(text, f"unexpected input at column {exc.pos + 1}") from exc
    return PathBuilder().visit(tree)


def with_res(ref: TypeReference, res: Res) -> TypeReference:
    """Return ``ref`` with its outermost resolution replaced."""
    if isinstance(ref, (SelfQualified, TypeRelative)):
        return dataclasses.replace(ref, res=res)
    return ref


def parse_type_reference(text: str, res: Optional[Res] = None) -> TypeReference:
    """
    Parse path text into a TypeReference.

    ``res`` records what the whole path resolves to; when omitted the path
    keeps the parser's default (``SELF_TY`` for a bare ``Self``, ``TYPE``
    otherwise).

    Raises:
        PathSyntaxError: the text is not a path.
    """
    ref = _parse("type_path", text)
    if res is not None:
        ref = with_res(ref, res)
    logger.debug("parsed path %r -> %r", text, ref)
    return ref


def parse_generic_arg(text: str) -> GenericArg:
    """Parse one generic argument (a path or any opaque type form)."""
    return _parse("generic_arg", text)


def parse_segment(text: str) -> PathSegment:
    """Parse a single segment such as ``new`` or ``Item<T>``."""
    return _parse("path_segment", text)


__all__ = [
    "PATH_GRAMMAR",
    "PathBuilder",
    "canonical_text",
    "parse_type_reference",
    "parse_generic_arg",
    "parse_segment",
    "with_res",
]
