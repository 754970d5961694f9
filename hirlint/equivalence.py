"""hirlint/equivalence.py – structural equivalence of an occurrence and a binding.

An occurrence matches a binding when, after dropping a trailing variant or
associated-item segment from the occurrence, both paths

* have the same shape (``SelfQualified`` vs ``TypeRelative``),
* carry equivalent self-qualifiers (both absent, or both present and
  equivalent; for type-relative paths the bases play that role), and
* have exactly equal segment names, with generic arguments compared under
  a :class:`GenericArgPolicy`.

Pattern occurrences additionally require that the value being matched is
declared through the binding's associated name (``Self::Name``), which is
what makes ``match source { State::A => ... }`` on a ``&Self::Associated``
reportable while the same match on a concrete ``State`` parameter is not.
The comparison is purely syntactic; no type inference is performed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Tuple

from .collection import AssociatedTypeBinding, IndexedBinding, TypeReferenceIndex, type_portion
from .hir import (
    GenericArg,
    OpaqueArg,
    PathSegment,
    PathTy,
    RefTy,
    Res,
    SelfQualified,
    SpecialForm,
    Ty,
    TypeReference,
    TypeRelative,
)
from .walker import Occurrence, OccurrenceKind

logger = logging.getLogger(__name__)


class GenericArgPolicy(Enum):
    """How generic argument lists are compared.

    LENIENT
        If either side wrote no argument list, accept.  If either side
        contains an inferred ``_`` argument, compare arity only.
        Otherwise compare argument by argument, recursively lenient.
    STRICT
        Argument lists must be structurally equal; writing no list is the
        same as writing an empty one.
    """

    LENIENT = "lenient"
    STRICT = "strict"


# Resolutions an occurrence can carry without ever naming a concrete type.
_NEVER_MATCHES = frozenset({Res.LOCAL, Res.ERR, Res.SELF_TY, Res.TY_PARAM})


# ═══════════════════════════════════════════════════════════════════════
#  Associated-name routing
# ═══════════════════════════════════════════════════════════════════════

def is_self(ref: GenericArg) -> bool:
    return (
        isinstance(ref, SelfQualified)
        and ref.qualifier is None
        and len(ref.segments) == 1
        and ref.segments[0].name == "Self"
    )


def routed_associated_name(ref: GenericArg) -> Optional[str]:
    """Name of the associated type a path is written through, if any.

    ``Self::Associated``                → ``Associated``
    ``Self::Associated::A``             → ``Associated``
    ``<Self as Trait>::Associated``     → ``Associated``
    ``State::A``                        → None
    """
    if isinstance(ref, TypeRelative):
        if is_self(ref.base):
            return ref.segment.name
        return routed_associated_name(ref.base)
    if isinstance(ref, SelfQualified) and ref.qualifier is not None and is_self(ref.qualifier):
        if ref.res.is_value_member and len(ref.segments) >= 3:
            return ref.segments[-2].name
        return ref.segments[-1].name
    return None


def peel_refs(ty: Optional[Ty]) -> Optional[Ty]:
    while isinstance(ty, RefTy):
        ty = ty.inner
    return ty


def subject_associated_name(subject: Optional[Ty]) -> Optional[str]:
    """Associated name the subject type is declared through, refs peeled."""
    subject = peel_refs(subject)
    if isinstance(subject, PathTy):
        return routed_associated_name(subject.ref)
    return None


# ═══════════════════════════════════════════════════════════════════════
#  Generic arguments
# ═══════════════════════════════════════════════════════════════════════

def _has_infer(args: Tuple[GenericArg, ...]) -> bool:
    return any(isinstance(a, OpaqueArg) and a.is_infer for a in args)


def args_equivalent(left: Optional[Tuple[GenericArg, ...]],
                    right: Optional[Tuple[GenericArg, ...]],
                    policy: GenericArgPolicy) -> bool:
    if policy is GenericArgPolicy.STRICT:
        left, right = left or (), right or ()
        return len(left) == len(right) and all(
            arg_equivalent(a, b, policy) for a, b in zip(left, right)
        )
    if left is None or right is None:
        return True
    if len(left) != len(right):
        return False
    if _has_infer(left) or _has_infer(right):
        return True
    return all(arg_equivalent(a, b, policy) for a, b in zip(left, right))


def arg_equivalent(left: GenericArg, right: GenericArg, policy: GenericArgPolicy) -> bool:
    """Equivalence of a single generic argument (or qualifier / base)."""
    if policy is GenericArgPolicy.LENIENT and (
        (isinstance(left, OpaqueArg) and left.is_infer)
        or (isinstance(right, OpaqueArg) and right.is_infer)
    ):
        return True
    if isinstance(left, OpaqueArg) or isinstance(right, OpaqueArg):
        return left == right
    if isinstance(left, SpecialForm) or isinstance(right, SpecialForm):
        return left == right
    return paths_equivalent(left, right, policy)


# ═══════════════════════════════════════════════════════════════════════
#  The three checks
# ═══════════════════════════════════════════════════════════════════════

def variant_check(occurrence: TypeReference, target: TypeReference) -> bool:
    """Same TypeReference variant as written; language items never pass."""
    if isinstance(occurrence, SpecialForm) or isinstance(target, SpecialForm):
        return False
    return type(occurrence) is type(target)


def qualifier_check(occurrence: TypeReference, target: TypeReference,
                    policy: GenericArgPolicy) -> bool:
    if isinstance(occurrence, SelfQualified) and isinstance(target, SelfQualified):
        if occurrence.qualifier is None and target.qualifier is None:
            return True
        if occurrence.qualifier is None or target.qualifier is None:
            return False
        return arg_equivalent(occurrence.qualifier, target.qualifier, policy)
    if isinstance(occurrence, TypeRelative) and isinstance(target, TypeRelative):
        return arg_equivalent(occurrence.base, target.base, policy)
    return False


def _segment_equivalent(left: PathSegment, right: PathSegment, policy: GenericArgPolicy) -> bool:
    return left.name == right.name and args_equivalent(left.args, right.args, policy)


def segment_check(occurrence: TypeReference, target: TypeReference,
                  policy: GenericArgPolicy) -> bool:
    if isinstance(occurrence, SelfQualified) and isinstance(target, SelfQualified):
        return len(occurrence.segments) == len(target.segments) and all(
            _segment_equivalent(a, b, policy)
            for a, b in zip(occurrence.segments, target.segments)
        )
    if isinstance(occurrence, TypeRelative) and isinstance(target, TypeRelative):
        return _segment_equivalent(occurrence.segment, target.segment, policy)
    return False


def paths_equivalent(left: TypeReference, right: TypeReference,
                     policy: GenericArgPolicy = GenericArgPolicy.LENIENT) -> bool:
    """Variant, qualifier and segment checks on two type-naming paths."""
    return (
        variant_check(left, right)
        and qualifier_check(left, right, policy)
        and segment_check(left, right, policy)
    )


# ═══════════════════════════════════════════════════════════════════════
#  EquivalenceMatcher
# ═══════════════════════════════════════════════════════════════════════

def matches(occurrence: Occurrence, indexed: IndexedBinding,
            policy: GenericArgPolicy = GenericArgPolicy.LENIENT) -> bool:
    """True when ``occurrence`` could be written as ``Self::<binding name>``."""
    if not indexed.supported:
        return False
    ref = occurrence.reference
    if isinstance(ref, SpecialForm):
        return False
    if ref.res in _NEVER_MATCHES:
        return False
    if routed_associated_name(ref) is not None:
        return False
    binding = indexed.binding
    if occurrence.kind is OccurrenceKind.PATTERN:
        if subject_associated_name(occurrence.subject) != binding.name:
            return False
    portion = type_portion(ref)
    if portion is None:
        return False
    return paths_equivalent(portion, binding.target, policy)


def first_match(occurrence: Occurrence, index: TypeReferenceIndex,
                policy: GenericArgPolicy = GenericArgPolicy.LENIENT
                ) -> Optional[AssociatedTypeBinding]:
    """The first registered binding the occurrence matches, if any."""
    for candidate in index.candidates(occurrence.reference):
        if matches(occurrence, candidate, policy):
            return candidate.binding
    return None


__all__ = [
    "GenericArgPolicy",
    "is_self",
    "routed_associated_name",
    "subject_associated_name",
    "peel_refs",
    "args_equivalent",
    "arg_equivalent",
    "variant_check",
    "qualifier_check",
    "segment_check",
    "paths_equivalent",
    "matches",
    "first_match",
]
