"""hirlint/walker.py – lazy traversal of method bodies.

:func:`traverse` returns a :class:`BodyOccurrences` for one method.  It is a
finite, restartable iterable: each ``iter()`` re-walks the body from the
start with its own local scope table, so two iterations (or two threads)
never share state.

What is reported
----------------
* parameter patterns, with the parameter's declared type as subject
  (the parameter *types* belong to the signature and are not reported);
* match scrutinees and arm patterns, ``if let`` / ``while let`` patterns
  and ``let`` statement patterns, each with the type of the matched value
  as subject when it can be read off syntactically;
* ``let`` annotations, closure parameter annotations and cast targets;
* struct-literal paths and every path expression;
* path-shaped generic arguments inside any of the above, as nested
  ANNOTATION occurrences at the enclosing span.

Nested items and macro invocations are opaque.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional

from .hir import (
    ArrayExpr,
    ArrayTy,
    AssocFnItem,
    BinaryExpr,
    BindingPat,
    Block,
    BlockExpr,
    CallExpr,
    CastExpr,
    ClosureExpr,
    Expr,
    ExprStmt,
    FieldExpr,
    ForExpr,
    IfExpr,
    ImplBlock,
    IndexExpr,
    InferTy,
    ItemStmt,
    JumpExpr,
    LetExpr,
    LetStmt,
    LitExpr,
    LitPat,
    LoopExpr,
    MacroExpr,
    MatchExpr,
    MethodCallExpr,
    NeverTy,
    OpaqueTy,
    OrPat,
    Pat,
    PathExpr,
    PathPat,
    PathTy,
    RefPat,
    RefTy,
    Res,
    SelfQualified,
    SlicePat,
    SliceTy,
    Span,
    SpecialForm,
    StructExpr,
    StructPat,
    TupleExpr,
    TuplePat,
    TupleStructPat,
    TupleTy,
    Ty,
    TypeReference,
    TypeRelative,
    UnaryExpr,
    WhileExpr,
    WildPat,
)

logger = logging.getLogger(__name__)


class OccurrenceKind(Enum):
    PATTERN = auto()
    EXPRESSION = auto()
    ANNOTATION = auto()


@dataclass(frozen=True, slots=True)
class Occurrence:
    """One type-path use inside a method body."""

    reference: TypeReference
    kind: OccurrenceKind
    span: Span
    subject: Optional[Ty] = None
    function: str = ""


class BodyOccurrences:
    """Restartable sequence of the occurrences in one method body."""

    __slots__ = ("method",)

    def __init__(self, method: AssocFnItem) -> None:
        self.method = method

    def __iter__(self) -> Iterator[Occurrence]:
        return _BodyWalk(self.method.name).walk(self.method)

    def __repr__(self) -> str:
        return f"BodyOccurrences(fn {self.method.name})"


def traverse(method: AssocFnItem) -> BodyOccurrences:
    return BodyOccurrences(method)


def method_bodies(block: ImplBlock) -> List[BodyOccurrences]:
    """One occurrence sequence per method of ``block``, in source order."""
    return [traverse(m) for m in block.methods]


def _peel_one(ty: Optional[Ty]) -> Optional[Ty]:
    return ty.inner if isinstance(ty, RefTy) else ty


class _BodyWalk:
    """State for a single pass over one body: the function name and a
    stack of scopes mapping local names to their declared types."""

    def __init__(self, function: str) -> None:
        self.function = function
        self._scopes: List[Dict[str, Optional[Ty]]] = []

    # ── scopes ──────────────────────────────────────────────────────

    def _push(self) -> None:
        self._scopes.append({})

    def _pop(self) -> None:
        self._scopes.pop()

    def _declare(self, name: str, ty: Optional[Ty]) -> None:
        self._scopes[-1][name] = ty

    def _lookup(self, name: str) -> Optional[Ty]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def _bind(self, pat: Pat, ty: Optional[Ty]) -> None:
        """Record the names a pattern introduces, typed where known."""
        if isinstance(pat, BindingPat):
            self._declare(pat.name, ty)
            if pat.sub is not None:
                self._bind(pat.sub, ty)
        elif isinstance(pat, RefPat):
            self._bind(pat.inner, _peel_one(ty))
        elif isinstance(pat, OrPat):
            if pat.alts:
                self._bind(pat.alts[0], ty)
        elif isinstance(pat, TuplePat):
            elem_tys = self._tuple_elems(ty, len(pat.elems))
            for elem, elem_ty in zip(pat.elems, elem_tys):
                self._bind(elem, elem_ty)
        elif isinstance(pat, TupleStructPat):
            for elem in pat.elems:
                self._bind(elem, None)
        elif isinstance(pat, StructPat):
            for field in pat.fields:
                self._bind(field.pat, None)
        elif isinstance(pat, SlicePat):
            for elem in pat.elems:
                self._bind(elem, None)

    @staticmethod
    def _tuple_elems(ty: Optional[Ty], arity: int) -> List[Optional[Ty]]:
        ty = _peel_one(ty)
        if isinstance(ty, TupleTy) and len(ty.elems) == arity:
            return list(ty.elems)
        return [None] * arity

    def _subject_of(self, expr: Optional[Expr]) -> Optional[Ty]:
        """Declared type of an expression, when it is a tracked local."""
        if isinstance(expr, UnaryExpr):
            inner = self._subject_of(expr.operand)
            if expr.op == "*":
                return _peel_one(inner)
            if expr.op in ("&", "&mut"):
                return inner
            return None
        if isinstance(expr, PathExpr):
            ref = expr.ref
            if (isinstance(ref, SelfQualified) and ref.res is Res.LOCAL
                    and ref.qualifier is None and len(ref.segments) == 1):
                return self._lookup(ref.segments[0].name)
            return None
        if isinstance(expr, BlockExpr) and not expr.block.stmts:
            return self._subject_of(expr.block.tail)
        return None

    # ── occurrences ─────────────────────────────────────────────────

    def _occurrence(self, ref: TypeReference, kind: OccurrenceKind, span: Span,
                    subject: Optional[Ty] = None) -> Iterator[Occurrence]:
        yield Occurrence(ref, kind, span, subject, self.function)
        yield from self._nested(ref, span)

    def _nested(self, ref: TypeReference, span: Span) -> Iterator[Occurrence]:
        """Path-shaped generic arguments, qualifiers and bases."""
        if isinstance(ref, SelfQualified):
            inner = [ref.qualifier] if ref.qualifier is not None else []
            for segment in ref.segments:
                inner.extend(segment.args or ())
        elif isinstance(ref, TypeRelative):
            inner = [ref.base, *(ref.segment.args or ())]
        else:
            return
        for arg in inner:
            if isinstance(arg, (SelfQualified, TypeRelative, SpecialForm)):
                yield from self._occurrence(arg, OccurrenceKind.ANNOTATION, span)

    # ── entry point ─────────────────────────────────────────────────

    def walk(self, method: AssocFnItem) -> Iterator[Occurrence]:
        logger.debug("walking fn %s", method.name)
        self._push()
        try:
            for param in method.params:
                yield from self._pat(param.pat, param.ty)
                self._bind(param.pat, param.ty)
            yield from self._block(method.body)
        finally:
            self._pop()

    # ── types ───────────────────────────────────────────────────────

    def _ty(self, ty: Optional[Ty]) -> Iterator[Occurrence]:
        if isinstance(ty, PathTy):
            yield from self._occurrence(ty.ref, OccurrenceKind.ANNOTATION, ty.span)
        elif isinstance(ty, RefTy):
            yield from self._ty(ty.inner)
        elif isinstance(ty, TupleTy):
            for elem in ty.elems:
                yield from self._ty(elem)
        elif isinstance(ty, (SliceTy, ArrayTy)):
            yield from self._ty(ty.elem)
        elif isinstance(ty, (InferTy, NeverTy, OpaqueTy)) or ty is None:
            return

    # ── patterns ────────────────────────────────────────────────────

    def _pat(self, pat: Pat, subject: Optional[Ty]) -> Iterator[Occurrence]:
        if isinstance(pat, (WildPat, LitPat)):
            return
        if isinstance(pat, BindingPat):
            if pat.sub is not None:
                yield from self._pat(pat.sub, subject)
        elif isinstance(pat, PathPat):
            yield from self._occurrence(pat.ref, OccurrenceKind.PATTERN, pat.span, subject)
        elif isinstance(pat, TupleStructPat):
            yield from self._occurrence(pat.ref, OccurrenceKind.PATTERN, pat.span, subject)
            for elem in pat.elems:
                yield from self._pat(elem, None)
        elif isinstance(pat, StructPat):
            yield from self._occurrence(pat.ref, OccurrenceKind.PATTERN, pat.span, subject)
            for field in pat.fields:
                yield from self._pat(field.pat, None)
        elif isinstance(pat, TuplePat):
            elem_tys = self._tuple_elems(subject, len(pat.elems))
            for elem, elem_ty in zip(pat.elems, elem_tys):
                yield from self._pat(elem, elem_ty)
        elif isinstance(pat, SlicePat):
            for elem in pat.elems:
                yield from self._pat(elem, None)
        elif isinstance(pat, RefPat):
            yield from self._pat(pat.inner, _peel_one(subject))
        elif isinstance(pat, OrPat):
            for alt in pat.alts:
                yield from self._pat(alt, subject)

    # ── statements and blocks ───────────────────────────────────────

    def _block(self, block: Block) -> Iterator[Occurrence]:
        self._push()
        try:
            for stmt in block.stmts:
                if isinstance(stmt, LetStmt):
                    yield from self._let(stmt)
                elif isinstance(stmt, ExprStmt):
                    yield from self._expr(stmt.expr)
                elif isinstance(stmt, ItemStmt):
                    continue
            if block.tail is not None:
                yield from self._expr(block.tail)
        finally:
            self._pop()

    def _let(self, stmt: LetStmt) -> Iterator[Occurrence]:
        yield from self._ty(stmt.ty)
        if stmt.init is not None:
            yield from self._expr(stmt.init)
        subject = stmt.ty if stmt.ty is not None else self._subject_of(stmt.init)
        yield from self._pat(stmt.pat, subject)
        if stmt.else_block is not None:
            yield from self._block(stmt.else_block)
        self._bind(stmt.pat, subject)

    # ── expressions ─────────────────────────────────────────────────

    def _exprs(self, exprs) -> Iterator[Occurrence]:
        for expr in exprs:
            yield from self._expr(expr)

    def _expr(self, expr: Optional[Expr]) -> Iterator[Occurrence]:
        if expr is None or isinstance(expr, (LitExpr, MacroExpr)):
            return
        if isinstance(expr, PathExpr):
            yield from self._occurrence(expr.ref, OccurrenceKind.EXPRESSION, expr.span)
        elif isinstance(expr, CallExpr):
            yield from self._expr(expr.func)
            yield from self._exprs(expr.args)
        elif isinstance(expr, MethodCallExpr):
            yield from self._expr(expr.receiver)
            yield from self._exprs(expr.args)
        elif isinstance(expr, StructExpr):
            yield from self._occurrence(expr.ref, OccurrenceKind.EXPRESSION, expr.span)
            yield from self._exprs(f.value for f in expr.fields)
            yield from self._expr(expr.base)
        elif isinstance(expr, MatchExpr):
            yield from self._match(expr)
        elif isinstance(expr, IfExpr):
            self._push()
            try:
                yield from self._expr(expr.cond)
                yield from self._expr(expr.then)
            finally:
                self._pop()
            yield from self._expr(expr.else_)
        elif isinstance(expr, LetExpr):
            yield from self._expr(expr.init)
            subject = self._subject_of(expr.init)
            yield from self._pat(expr.pat, subject)
            self._bind(expr.pat, subject)
        elif isinstance(expr, LoopExpr):
            yield from self._block(expr.body)
        elif isinstance(expr, WhileExpr):
            self._push()
            try:
                yield from self._expr(expr.cond)
                yield from self._block(expr.body)
            finally:
                self._pop()
        elif isinstance(expr, ForExpr):
            yield from self._expr(expr.iter)
            self._push()
            try:
                yield from self._pat(expr.pat, None)
                self._bind(expr.pat, None)
                yield from self._block(expr.body)
            finally:
                self._pop()
        elif isinstance(expr, BlockExpr):
            yield from self._block(expr.block)
        elif isinstance(expr, ClosureExpr):
            yield from self._closure(expr)
        elif isinstance(expr, CastExpr):
            yield from self._expr(expr.expr)
            yield from self._ty(expr.ty)
        elif isinstance(expr, UnaryExpr):
            yield from self._expr(expr.operand)
        elif isinstance(expr, BinaryExpr):
            yield from self._expr(expr.lhs)
            yield from self._expr(expr.rhs)
        elif isinstance(expr, FieldExpr):
            yield from self._expr(expr.base)
        elif isinstance(expr, IndexExpr):
            yield from self._expr(expr.base)
            yield from self._expr(expr.index)
        elif isinstance(expr, (TupleExpr, ArrayExpr)):
            yield from self._exprs(expr.elems)
        elif isinstance(expr, JumpExpr):
            yield from self._expr(expr.value)
        else:
            logger.debug("fn %s: skipping unknown expression node %s",
                         self.function, type(expr).__name__)

    def _match(self, expr: MatchExpr) -> Iterator[Occurrence]:
        yield from self._expr(expr.scrutinee)
        subject = self._subject_of(expr.scrutinee)
        for arm in expr.arms:
            self._push()
            try:
                yield from self._pat(arm.pat, subject)
                self._bind(arm.pat, subject)
                yield from self._expr(arm.guard)
                yield from self._expr(arm.body)
            finally:
                self._pop()

    def _closure(self, expr: ClosureExpr) -> Iterator[Occurrence]:
        self._push()
        try:
            for param in expr.params:
                yield from self._ty(param.ty)
                yield from self._pat(param.pat, param.ty)
                self._bind(param.pat, param.ty)
            yield from self._expr(expr.body)
        finally:
            self._pop()


__all__ = [
    "OccurrenceKind",
    "Occurrence",
    "BodyOccurrences",
    "traverse",
    "method_bodies",
]
