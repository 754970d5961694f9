"""hirlint/collection.py – associated-type bindings and their index.

COLLECT phase of the lint, run once per implementation block:

* :func:`scan` extracts ``type Name = Concrete;`` bindings from a block;
* :func:`build_index` normalises each binding's target into a lookup key
  and freezes the result into an immutable :class:`TypeReferenceIndex`.

The SCAN phase (:mod:`hirlint.walker`, :mod:`hirlint.equivalence`) only
ever sees a finished index, so collection always completes before any body
of the same block is examined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

from .hir import (
    AssocTypeItem,
    GenericArg,
    ImplBlock,
    OpaqueArg,
    PathTy,
    Res,
    SelfQualified,
    Span,
    SpecialForm,
    TypeReference,
    TypeRelative,
)

logger = logging.getLogger(__name__)

# Resolutions that never denote a concrete type on the right-hand side of
# an associated-type binding.
_NON_CONCRETE = frozenset({Res.TY_PARAM, Res.SELF_TY, Res.ERR, Res.LOCAL})

PathKey = Tuple[object, ...]


@dataclass(frozen=True, slots=True)
class AssociatedTypeBinding:
    """``type <name> = <target>;`` where the target is a concrete path."""

    name: str
    target: TypeReference
    span: Span

    def __str__(self) -> str:
        return f"type {self.name} = {self.target}"


# ═══════════════════════════════════════════════════════════════════════
#  ImplementationScanner
# ═══════════════════════════════════════════════════════════════════════

def _concrete_target(item: AssocTypeItem) -> Optional[TypeReference]:
    ty = item.ty
    if not isinstance(ty, PathTy):
        return None
    ref = ty.ref
    if isinstance(ref, SpecialForm):
        return ref
    if ref.res in _NON_CONCRETE:
        return None
    return ref


def scan(block: ImplBlock) -> Tuple[AssociatedTypeBinding, ...]:
    """Extract the associated-type bindings of one block, in source order.

    Members whose right-hand side is not a concrete path type (generic
    parameters, ``Self``, ``_``, references, tuples ...) contribute nothing.
    When a name is defined twice the first definition wins.
    """
    bindings: List[AssociatedTypeBinding] = []
    seen = set()
    for item in block.items:
        if not isinstance(item, AssocTypeItem):
            continue
        if item.name in seen:
            logger.debug("%s: duplicate associated type %s ignored", item.span, item.name)
            continue
        seen.add(item.name)
        target = _concrete_target(item)
        if target is None:
            logger.debug("%s: associated type %s = %s is not a concrete path",
                         item.span, item.name, item.ty)
            continue
        bindings.append(AssociatedTypeBinding(item.name, target, item.span))
    return tuple(bindings)


# ═══════════════════════════════════════════════════════════════════════
#  Normalisation
# ═══════════════════════════════════════════════════════════════════════

def path_identity(ref: GenericArg) -> Optional[PathKey]:
    """Normalised identity of a path: variant, qualifier/base and segment
    names, generic arguments excluded.  None when the shape has no
    identity (language items, empty paths)."""
    if isinstance(ref, SelfQualified):
        if not ref.segments:
            return None
        qualifier = None
        if ref.qualifier is not None:
            qualifier = path_identity(ref.qualifier)
            if qualifier is None:
                return None
        return ("resolved", qualifier, tuple(s.name for s in ref.segments))
    if isinstance(ref, TypeRelative):
        base = path_identity(ref.base)
        if base is None:
            return None
        return ("relative", base, ref.segment.name)
    if isinstance(ref, OpaqueArg):
        return ("opaque", ref.text)
    return None


def type_portion(ref: TypeReference) -> Optional[TypeReference]:
    """The part of an occurrence that names a type.

    A trailing variant or associated-item segment is dropped
    (``State::A`` → ``State``); paths that name a type are returned as
    they are; anything else has no type portion.
    """
    if isinstance(ref, SelfQualified):
        if ref.res is Res.TYPE:
            return ref
        if ref.res.is_value_member and len(ref.segments) >= 2:
            return SelfQualified(ref.qualifier, ref.segments[:-1])
        return None
    if isinstance(ref, TypeRelative):
        if ref.res is Res.TYPE:
            return ref
        if ref.res.is_value_member and isinstance(ref.base, TypeRelative):
            return ref.base
        return None
    return None


# ═══════════════════════════════════════════════════════════════════════
#  TypeReferenceIndex
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class IndexedBinding:
    binding: AssociatedTypeBinding
    key: Optional[PathKey]

    @property
    def supported(self) -> bool:
        return self.key is not None


class TypeReferenceIndex:
    """Immutable lookup from normalised path identity to bindings.

    Bindings sharing a key keep registration order, so the first
    registered binding is the first candidate.
    """

    __slots__ = ("_entries", "_by_key", "_names")

    def __init__(self, entries: Sequence[IndexedBinding]) -> None:
        self._entries: Tuple[IndexedBinding, ...] = tuple(entries)
        grouped: Dict[PathKey, List[IndexedBinding]] = {}
        for entry in self._entries:
            if entry.key is not None:
                grouped.setdefault(entry.key, []).append(entry)
        self._by_key: Dict[PathKey, Tuple[IndexedBinding, ...]] = {
            key: tuple(group) for key, group in grouped.items()
        }
        self._names: FrozenSet[str] = frozenset(e.binding.name for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[IndexedBinding]:
        return iter(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    @property
    def names(self) -> FrozenSet[str]:
        return self._names

    @property
    def supported(self) -> Tuple[IndexedBinding, ...]:
        return tuple(e for e in self._entries if e.key is not None)

    @property
    def unsupported(self) -> Tuple[IndexedBinding, ...]:
        return tuple(e for e in self._entries if e.key is None)

    def candidates(self, ref: TypeReference) -> Tuple[IndexedBinding, ...]:
        """Bindings whose target shares the occurrence's type identity."""
        portion = type_portion(ref)
        if portion is None:
            return ()
        key = path_identity(portion)
        if key is None:
            return ()
        return self._by_key.get(key, ())

    def __repr__(self) -> str:
        return (f"TypeReferenceIndex({len(self.supported)} supported, "
                f"{len(self.unsupported)} unsupported)")


def build_index(bindings: Sequence[AssociatedTypeBinding]) -> TypeReferenceIndex:
    """Normalise every binding target and freeze the result."""
    entries = []
    for binding in bindings:
        key = path_identity(binding.target)
        if key is None:
            logger.debug("%s: binding %s has no normalisable target, it never matches",
                         binding.span, binding.name)
        entries.append(IndexedBinding(binding, key))
    return TypeReferenceIndex(entries)


def collect(block: ImplBlock) -> TypeReferenceIndex:
    """COLLECT phase: scan a block and index its bindings."""
    return build_index(scan(block))


__all__ = [
    "AssociatedTypeBinding",
    "IndexedBinding",
    "TypeReferenceIndex",
    "PathKey",
    "scan",
    "build_index",
    "collect",
    "path_identity",
    "type_portion",
]
