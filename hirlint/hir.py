"""hirlint/hir.py – name-resolved syntax tree (HIR) model.

The analysis core never sees source text.  A host driver (a compiler plugin,
or the dump loader in :mod:`hirlint.hir_dump`) hands it a tree of the frozen
dataclasses defined here, one :class:`Crate` per compilation unit.

Design invariants
-----------------
* Every node is a frozen dataclass; children are tuples, never lists.
* Path shapes form a *closed* tagged union, :data:`TypeReference`
  (``SelfQualified`` / ``TypeRelative`` / ``SpecialForm``).  Consumers
  dispatch on it with exhaustive ``isinstance`` chains; the set mirrors the
  host grammar and does not grow.
* Type references carry no spans, so ``==`` on them is structural equality.
  The resolution (:class:`Res`) recorded by the host is excluded from
  equality; it only tells consumers *what* a path names.
* Spans live on the tree nodes that own a reference (``PathTy``,
  ``PathPat``, ``PathExpr`` ...).

Module layout
-------------
§1  Spans and resolutions
§2  Type references (the path-shape union)
§3  Types
§4  Patterns
§5  Expressions, statements, blocks
§6  Items and crates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Tuple, Union

# ════════════════════════════════════════════════════════════════════════
# §1  Spans and resolutions
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Span:
    """Source range of a node: 1-based line/column plus byte offsets."""

    file: str = "<unknown>"
    line: int = 0
    column: int = 0
    lo: int = 0
    hi: int = 0

    @property
    def byte_span(self) -> Tuple[int, int]:
        return (self.lo, self.hi)

    def sort_key(self) -> Tuple[str, int, int, int, int]:
        return (self.file, self.lo, self.hi, self.line, self.column)

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


class Res(Enum):
    """What a path resolves to, as recorded by the host's name resolver."""

    TYPE = auto()        # struct, enum, union, alias, primitive, foreign type
    VARIANT = auto()     # enum variant or its constructor
    ASSOC_ITEM = auto()  # associated fn / const reached through a type
    SELF_TY = auto()     # `Self`
    TY_PARAM = auto()    # generic type parameter
    LOCAL = auto()       # local variable
    ERR = auto()         # unresolved

    @property
    def is_value_member(self) -> bool:
        """True when the path's last segment is a member of a type."""
        return self in (Res.VARIANT, Res.ASSOC_ITEM)


# ════════════════════════════════════════════════════════════════════════
# §2  Type references
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OpaqueArg:
    """A generic argument that is not a path (``&'a str``, ``(u8, u8)``,
    ``'a``, ``3``, ``_``), kept as canonical text."""

    text: str

    @property
    def is_infer(self) -> bool:
        return self.text == "_"

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class PathSegment:
    """One ``::``-separated segment.  ``args`` is None when no generic
    argument list was written at all."""

    name: str
    args: Optional[Tuple["GenericArg", ...]] = None

    def __str__(self) -> str:
        if self.args is None:
            return self.name
        return f"{self.name}<{', '.join(str(a) for a in self.args)}>"


@dataclass(frozen=True, slots=True)
class SelfQualified:
    """A resolved path, optionally with an explicit owner-type qualifier.

    ``State::A``                     → qualifier None
    ``<Vec<u8> as IntoIterator>::IntoIter`` → qualifier ``Vec<u8>``
    """

    qualifier: Optional["GenericArg"]
    segments: Tuple[PathSegment, ...]
    res: Res = field(default=Res.TYPE, compare=False)

    def __str__(self) -> str:
        path = "::".join(str(s) for s in self.segments)
        if self.qualifier is None:
            return path
        trait = "::".join(str(s) for s in self.segments[:-1])
        return f"<{self.qualifier} as {trait}>::{self.segments[-1]}"


@dataclass(frozen=True, slots=True)
class TypeRelative:
    """A member reached through a type: ``Self::Item``, ``T::Item``,
    ``<Vec<u8>>::new``."""

    base: "GenericArg"
    segment: PathSegment
    res: Res = field(default=Res.TYPE, compare=False)

    def __str__(self) -> str:
        base = self.base
        if isinstance(base, TypeRelative) or (
            isinstance(base, SelfQualified)
            and base.qualifier is None
            and all(s.args is None for s in base.segments)
        ):
            return f"{base}::{self.segment}"
        return f"<{base}>::{self.segment}"


@dataclass(frozen=True, slots=True)
class SpecialForm:
    """A language-item path (``Range``, ``RangeInclusive`` ...) or path text
    the path grammar could not read: opaque."""

    tag: str

    def __str__(self) -> str:
        return f"lang-item({self.tag})"


TypeReference = Union[SelfQualified, TypeRelative, SpecialForm]
GenericArg = Union[SelfQualified, TypeRelative, SpecialForm, OpaqueArg]

TYPE_REFERENCE_VARIANTS = (SelfQualified, TypeRelative, SpecialForm)


# ════════════════════════════════════════════════════════════════════════
# §3  Types
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PathTy:
    ref: TypeReference
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return str(self.ref)


@dataclass(frozen=True, slots=True)
class RefTy:
    inner: "Ty"
    mutable: bool = False
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return f"&{'mut ' if self.mutable else ''}{self.inner}"


@dataclass(frozen=True, slots=True)
class TupleTy:
    elems: Tuple["Ty", ...] = ()
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return f"({', '.join(str(e) for e in self.elems)})"


@dataclass(frozen=True, slots=True)
class SliceTy:
    elem: "Ty"
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return f"[{self.elem}]"


@dataclass(frozen=True, slots=True)
class ArrayTy:
    elem: "Ty"
    length: str = "_"
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return f"[{self.elem}; {self.length}]"


@dataclass(frozen=True, slots=True)
class InferTy:
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return "_"


@dataclass(frozen=True, slots=True)
class NeverTy:
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return "!"


@dataclass(frozen=True, slots=True)
class OpaqueTy:
    """Any other type form (fn pointers, trait objects ...)."""

    text: str
    span: Span = field(default_factory=Span)

    def __str__(self) -> str:
        return self.text


Ty = Union[PathTy, RefTy, TupleTy, SliceTy, ArrayTy, InferTy, NeverTy, OpaqueTy]


# ════════════════════════════════════════════════════════════════════════
# §4  Patterns
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class WildPat:
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class BindingPat:
    name: str
    sub: Optional["Pat"] = None
    by_ref: bool = False
    mutable: bool = False
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class PathPat:
    """Unit variant / constant pattern: ``State::A``."""

    ref: TypeReference
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class TupleStructPat:
    """``Value::Value(x)``."""

    ref: TypeReference
    elems: Tuple["Pat", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class FieldPat:
    name: str
    pat: "Pat"


@dataclass(frozen=True, slots=True)
class StructPat:
    """``State::E { x, .. }``."""

    ref: TypeReference
    fields: Tuple[FieldPat, ...] = ()
    rest: bool = False
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class TuplePat:
    elems: Tuple["Pat", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class SlicePat:
    elems: Tuple["Pat", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class RefPat:
    inner: "Pat"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class OrPat:
    alts: Tuple["Pat", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class LitPat:
    text: str
    span: Span = field(default_factory=Span)


Pat = Union[
    WildPat, BindingPat, PathPat, TupleStructPat, StructPat,
    TuplePat, SlicePat, RefPat, OrPat, LitPat,
]


# ════════════════════════════════════════════════════════════════════════
# §5  Expressions, statements, blocks
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PathExpr:
    ref: TypeReference
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class LitExpr:
    text: str
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class CallExpr:
    func: "Expr"
    args: Tuple["Expr", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class MethodCallExpr:
    receiver: "Expr"
    method: str
    args: Tuple["Expr", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class FieldInit:
    name: str
    value: "Expr"


@dataclass(frozen=True, slots=True)
class StructExpr:
    ref: TypeReference
    fields: Tuple[FieldInit, ...] = ()
    base: Optional["Expr"] = None
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class Arm:
    pat: Pat
    body: "Expr"
    guard: Optional["Expr"] = None
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class MatchExpr:
    scrutinee: "Expr"
    arms: Tuple[Arm, ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class IfExpr:
    cond: "Expr"
    then: "Expr"
    else_: Optional["Expr"] = None
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class LetExpr:
    """``let PAT = INIT`` in condition position (``if let`` / ``while let``)."""

    pat: Pat
    init: "Expr"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class LoopExpr:
    body: "Block"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class WhileExpr:
    cond: "Expr"
    body: "Block"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class ForExpr:
    pat: Pat
    iter: "Expr"
    body: "Block"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class BlockExpr:
    block: "Block"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class ClosureParam:
    pat: Pat
    ty: Optional[Ty] = None


@dataclass(frozen=True, slots=True)
class ClosureExpr:
    params: Tuple[ClosureParam, ...]
    body: "Expr"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class CastExpr:
    expr: "Expr"
    ty: Ty
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class UnaryExpr:
    """``op`` is one of ``&``, ``&mut``, ``*``, ``-``, ``!``."""

    op: str
    operand: "Expr"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class BinaryExpr:
    op: str
    lhs: "Expr"
    rhs: "Expr"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class FieldExpr:
    base: "Expr"
    name: str
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class IndexExpr:
    base: "Expr"
    index: "Expr"
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class TupleExpr:
    elems: Tuple["Expr", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class ArrayExpr:
    elems: Tuple["Expr", ...] = ()
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class JumpExpr:
    """``return`` / ``break`` / ``continue`` with an optional value."""

    kind: str
    value: Optional["Expr"] = None
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class MacroExpr:
    """Macro invocation; its expansion is opaque to the lint."""

    name: str
    span: Span = field(default_factory=Span)


Expr = Union[
    PathExpr, LitExpr, CallExpr, MethodCallExpr, StructExpr, MatchExpr,
    IfExpr, LetExpr, LoopExpr, WhileExpr, ForExpr, BlockExpr, ClosureExpr,
    CastExpr, UnaryExpr, BinaryExpr, FieldExpr, IndexExpr, TupleExpr,
    ArrayExpr, JumpExpr, MacroExpr,
]


@dataclass(frozen=True, slots=True)
class LetStmt:
    pat: Pat
    ty: Optional[Ty] = None
    init: Optional[Expr] = None
    else_block: Optional["Block"] = None
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class ExprStmt:
    expr: Expr
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class ItemStmt:
    """A nested item; its body is analysed on its own, never inline."""

    span: Span = field(default_factory=Span)


Stmt = Union[LetStmt, ExprStmt, ItemStmt]


@dataclass(frozen=True, slots=True)
class Block:
    stmts: Tuple[Stmt, ...] = ()
    tail: Optional[Expr] = None
    span: Span = field(default_factory=Span)


# ════════════════════════════════════════════════════════════════════════
# §6  Items and crates
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Param:
    pat: Pat
    ty: Ty
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class AssocTypeItem:
    """``type Name = Ty;`` inside an impl."""

    name: str
    ty: Ty
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class AssocFnItem:
    name: str
    params: Tuple[Param, ...]
    body: Block
    ret: Optional[Ty] = None
    span: Span = field(default_factory=Span)


@dataclass(frozen=True, slots=True)
class AssocConstItem:
    name: str
    ty: Ty
    value: Optional[Expr] = None
    span: Span = field(default_factory=Span)


ImplItem = Union[AssocTypeItem, AssocFnItem, AssocConstItem]


@dataclass(frozen=True, slots=True)
class ImplBlock:
    """One ``impl [Trait for] Type { ... }`` block, members in source order."""

    items: Tuple[ImplItem, ...]
    trait_ref: Optional[TypeReference] = None
    self_ty: Optional[Ty] = None
    span: Span = field(default_factory=Span)

    @property
    def is_trait_impl(self) -> bool:
        return self.trait_ref is not None

    @property
    def methods(self) -> Tuple[AssocFnItem, ...]:
        return tuple(i for i in self.items if isinstance(i, AssocFnItem))

    @property
    def associated_types(self) -> Tuple[AssocTypeItem, ...]:
        return tuple(i for i in self.items if isinstance(i, AssocTypeItem))

    def describe(self) -> str:
        self_ty = str(self.self_ty) if self.self_ty is not None else "?"
        if self.trait_ref is None:
            return f"impl {self_ty}"
        return f"impl {self.trait_ref} for {self_ty}"


@dataclass(frozen=True, slots=True)
class SuppressionMark:
    """An inline suppression recorded by the host (from a source comment
    or attribute) at ``file:line``."""

    error_id: str
    file: str
    line: int


@dataclass(frozen=True, slots=True)
class Crate:
    """One compilation unit."""

    file: str
    impls: Tuple[ImplBlock, ...] = ()
    suppressions: Tuple[SuppressionMark, ...] = ()


__all__ = [
    # §1
    "Span", "Res",
    # §2
    "OpaqueArg", "PathSegment", "SelfQualified", "TypeRelative",
    "SpecialForm", "TypeReference", "GenericArg", "TYPE_REFERENCE_VARIANTS",
    # §3
    "PathTy", "RefTy", "TupleTy", "SliceTy", "ArrayTy", "InferTy",
    "NeverTy", "OpaqueTy", "Ty",
    # §4
    "WildPat", "BindingPat", "PathPat", "TupleStructPat", "FieldPat",
    "StructPat", "TuplePat", "SlicePat", "RefPat", "OrPat", "LitPat", "Pat",
    # §5
    "PathExpr", "LitExpr", "CallExpr", "MethodCallExpr", "FieldInit",
    "StructExpr", "Arm", "MatchExpr", "IfExpr", "LetExpr", "LoopExpr",
    "WhileExpr", "ForExpr", "BlockExpr", "ClosureParam", "ClosureExpr",
    "CastExpr", "UnaryExpr", "BinaryExpr", "FieldExpr", "IndexExpr",
    "TupleExpr", "ArrayExpr", "JumpExpr", "MacroExpr", "Expr",
    "LetStmt", "ExprStmt", "ItemStmt", "Stmt", "Block",
    # §6
    "Param", "AssocTypeItem", "AssocFnItem", "AssocConstItem", "ImplItem",
    "ImplBlock", "SuppressionMark", "Crate",
]
