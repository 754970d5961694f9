"""hirlint/hir_dump.py – HIR dump (S-expression) → :mod:`hirlint.hir` loader.

A host driver that has run name resolution writes each compilation unit as a
text S-expression document; this module reads it back into the frozen tree
the analysis core consumes.

Design principles
-----------------
* **Two stages** – ``sexpdata`` turns text into nested :class:`Form`
  lists of :class:`~sexpdata.Symbol`, ``str`` and ``int`` atoms; a
  recursive-descent reader then maps forms onto HIR nodes.
* **Head-symbol dispatch** – every list ``(tag ...)`` is dispatched on
  ``tag`` to a dedicated reader method registered with ``@_register``.
* **Fail-fast with location** – malformed input raises
  :class:`~hirlint.errors.DumpSyntaxError` or
  :class:`~hirlint.errors.DumpShapeError` naming the dump file and line.
* **No shared state** – each load builds its own :class:`_HirReader`, so
  dumps can be read from several threads at once.

Surface syntax (overview)
-------------------------
::

    ;; top level: one crate per dump
    (crate "src/lib.rs"
      (suppress notUsingAssociatedType :line 40)
      (impl :span (12 1 250 890) :trait "Trait" :self-ty "Owner"
        (type Associated (path "State"))
        (fn name (param PAT TY) ... (block STMT ...) [:ret TY])
        (const NAME TY [EXPR]))
      (struct State))                      ;; other items are skipped

    ;; paths (usable as types, expressions and pattern paths)
    (path "State::A" :res variant)
    (relative "Self" "Associated")
    (lang-item Range)

``:span (line column lo hi)`` may be attached to any node; nodes without one
inherit the span of their parent.  In type position a bare string is
shorthand for ``(path "...")``.
"""

from __future__ import annotations

import bisect
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

import sexpdata
from sexpdata import Symbol

from . import hir as H
from .errors import (
    DumpError,
    DumpShapeError,
    DumpSyntaxError,
    ErrorCode,
    PathSyntaxError,
    SourceSpan,
)
from .paths import parse_generic_arg, parse_segment, parse_type_reference

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
#  PART 1 — S-expression reader
# ═══════════════════════════════════════════════════════════════════════

# Strings and ``;`` comments are matched whole so parentheses inside them
# are not counted.
_PAREN_RE = re.compile(r'"(?:[^"\\]|\\[\s\S])*"?|;[^\n]*|[()]')


class Form(list):
    """A parenthesised list that remembers the dump line it opened on."""

    __slots__ = ("line",)

    def __init__(self, items=(), line: int = 0) -> None:
        super().__init__(items)
        self.line = line


Sexp = Union[Form, Symbol, str, int]


def _paren_lines(text: str) -> Tuple[List[int], int]:
    """Return the line of every ``(`` in document order, and the line of
    the first unbalanced parenthesis (``0`` when they balance)."""
    breaks = [m.start() for m in re.finditer("\n", text)]
    opened: List[int] = []
    stack: List[int] = []
    stray = 0
    for m in _PAREN_RE.finditer(text):
        token = m.group()
        if token == "(":
            line = bisect.bisect_right(breaks, m.start()) + 1
            opened.append(line)
            stack.append(line)
        elif token == ")":
            if stack:
                stack.pop()
            elif not stray:
                stray = bisect.bisect_right(breaks, m.start()) + 1
    return opened, stray or (stack[-1] if stack else 0)


def _attach_lines(value: Any, lines) -> Sexp:
    if isinstance(value, list):
        line = next(lines, 0)
        return Form([_attach_lines(item, lines) for item in value], line=line)
    return value


def read_sexp(text: str, name: str = "<dump>") -> List[Sexp]:
    """Parse S-expression text into a list of top-level values.

    Lists come back as :class:`Form` carrying their opening line; bare
    atoms are :class:`sexpdata.Symbol`, quoted ones plain ``str``.
    """
    opened, unbalanced = _paren_lines(text)
    # sexpdata reads one expression; wrap the document to read them all.
    try:
        raw = sexpdata.loads(f"({text}\n)", nil=None, true=None, false=None)
    except Exception as exc:
        logger.debug("%s: sexpdata: %s", name, exc)
        raise DumpSyntaxError(
            "malformed S-expression",
            span=SourceSpan(name, unbalanced or 1),
            hint="check for unbalanced parentheses or an unterminated string",
        ) from exc
    lines = iter(opened)
    return [_attach_lines(value, lines) for value in raw]


# ═══════════════════════════════════════════════════════════════════════
#  PART 2 — Dispatch registry
# ═══════════════════════════════════════════════════════════════════════

# Maps a head-symbol string to a reader method.
# Populated by the ``@_register`` decorator below.

_TY_DISPATCH: Dict[str, Callable[..., H.Ty]] = {}
_PAT_DISPATCH: Dict[str, Callable[..., H.Pat]] = {}
_EXPR_DISPATCH: Dict[str, Callable[..., H.Expr]] = {}
_STMT_DISPATCH: Dict[str, Callable[..., H.Stmt]] = {}
_IMPL_ITEM_DISPATCH: Dict[str, Callable[..., H.ImplItem]] = {}


def _register(table: dict, tag: str):
    """Decorator: register a reader method under *tag* in *table*."""
    def deco(fn):
        table[tag] = fn
        return fn
    return deco


_PATH_HEADS = frozenset({"path", "relative", "lang-item"})

# Top-level items that carry nothing the lint looks at.
_IGNORED_ITEMS = frozenset({
    "struct", "enum", "union", "trait", "fn", "mod", "use", "static",
    "const", "type", "extern", "macro",
})

_RES_NAMES: Dict[str, H.Res] = {
    "type": H.Res.TYPE,
    "variant": H.Res.VARIANT,
    "assoc-item": H.Res.ASSOC_ITEM,
    "self-ty": H.Res.SELF_TY,
    "ty-param": H.Res.TY_PARAM,
    "local": H.Res.LOCAL,
    "err": H.Res.ERR,
}


# ═══════════════════════════════════════════════════════════════════════
#  PART 3 — Form → HIR reader
# ═══════════════════════════════════════════════════════════════════════

class _HirReader:
    """Recursive-descent reader for one dump document."""

    def __init__(self, dump_name: str) -> None:
        self.dump_name = dump_name
        self.file = dump_name

    # ── helpers ─────────────────────────────────────────────────────

    def _error(self, at: Any, message: str,
               code: ErrorCode = ErrorCode.DUMP_UNEXPECTED_FORM) -> DumpShapeError:
        line = at.line if isinstance(at, Form) else 0
        return DumpShapeError(message, code=code, span=SourceSpan(self.dump_name, line))

    def _head(self, value: Sexp) -> str:
        if not isinstance(value, Form) or not value or not isinstance(value[0], Symbol):
            raise self._error(value, f"expected a (tag ...) form, got {value!r}")
        return str(value[0])

    def _split(self, form: Form, allowed: FrozenSet[str] = frozenset(),
               flags: FrozenSet[str] = frozenset()) -> Tuple[List[Sexp], Dict[str, Sexp]]:
        """Separate positional elements from ``:keyword value`` pairs."""
        positional: List[Sexp] = []
        keywords: Dict[str, Sexp] = {}
        items = iter(form[1:])
        for item in items:
            if isinstance(item, Symbol) and item.startswith(":") and len(item) > 1:
                key = str(item)[1:]
                if key not in allowed and key not in flags:
                    raise self._error(
                        form, f"unknown keyword {item} in ({form[0]} ...)",
                        ErrorCode.DUMP_UNKNOWN_KEYWORD,
                    )
                if key in keywords:
                    raise self._error(form, f"duplicate keyword {item} in ({form[0]} ...)")
                if key in flags:
                    keywords[key] = True
                    continue
                try:
                    keywords[key] = next(items)
                except StopIteration:
                    raise self._error(
                        form, f"keyword {item} has no value",
                        ErrorCode.DUMP_MISSING_FIELD,
                    ) from None
            else:
                positional.append(item)
        return positional, keywords

    def _arity(self, form: Form, positional: List[Sexp], low: int,
               high: Optional[int] = None) -> None:
        count = len(positional)
        if count < low:
            raise self._error(
                form, f"({form[0]} ...) needs at least {low} argument(s), got {count}",
                ErrorCode.DUMP_MISSING_FIELD,
            )
        if high is not None and count > high:
            raise self._error(
                form, f"({form[0]} ...) takes at most {high} argument(s), got {count}",
            )

    def _text(self, form: Form, value: Sexp) -> str:
        """Coerce a string or symbol atom to ``str``."""
        if isinstance(value, str):
            return str(value)
        raise self._error(
            form, f"expected a string or symbol in ({form[0]} ...), got {value!r}",
            ErrorCode.DUMP_BAD_ATOM,
        )

    def _int(self, form: Form, value: Sexp) -> int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise self._error(
            form, f"expected an integer in ({form[0]} ...), got {value!r}",
            ErrorCode.DUMP_BAD_ATOM,
        )

    def _span(self, form: Form, keywords: Dict[str, Sexp], outer: H.Span) -> H.Span:
        raw = keywords.get("span")
        if raw is None:
            return outer
        if not isinstance(raw, Form) or len(raw) not in (2, 4):
            raise self._error(
                form, f":span must be (line column) or (line column lo hi), got {raw!r}",
                ErrorCode.DUMP_BAD_ATOM,
            )
        numbers = [self._int(form, v) for v in raw]
        line, column = numbers[0], numbers[1]
        lo, hi = (numbers[2], numbers[3]) if len(numbers) == 4 else (0, 0)
        return H.Span(self.file, line, column, lo, hi)

    def _res(self, form: Form, keywords: Dict[str, Sexp]) -> Optional[H.Res]:
        raw = keywords.get("res")
        if raw is None:
            return None
        res = _RES_NAMES.get(str(raw)) if isinstance(raw, str) else None
        if res is None:
            raise self._error(
                form, f"unknown resolution {raw!r} (expected one of {', '.join(_RES_NAMES)})",
                ErrorCode.DUMP_BAD_ATOM,
            )
        return res

    def _path_text(self, form: Form, text: str, res: Optional[H.Res] = None) -> H.TypeReference:
        """Parse path text.  Text the path grammar rejects is kept as a
        :class:`~hirlint.hir.SpecialForm`, which never matches a binding."""
        try:
            return parse_type_reference(text, res=res)
        except PathSyntaxError as exc:
            logger.debug("%s:%d: unsupported path %r: %s",
                         self.dump_name, form.line, text, exc.reason)
            return H.SpecialForm(text)

    # ── crate ───────────────────────────────────────────────────────

    def read_crate(self, values: List[Sexp]) -> H.Crate:
        if not values:
            raise DumpSyntaxError(
                "dump is empty", code=ErrorCode.DUMP_EMPTY,
                span=SourceSpan(self.dump_name),
            )
        if len(values) != 1:
            raise self._error(values[1], "a dump holds exactly one (crate ...) form")
        form = values[0]
        if self._head(form) != "crate":
            raise self._error(form, f"expected (crate ...), got ({form[0]} ...)")
        positional, _ = self._split(form)
        self._arity(form, positional, 1)
        self.file = self._text(form, positional[0])

        impls: List[H.ImplBlock] = []
        marks: List[H.SuppressionMark] = []
        for item in positional[1:]:
            tag = self._head(item)
            if tag == "impl":
                impls.append(self._impl(item))
            elif tag == "suppress":
                marks.append(self._suppress(item))
            elif tag in _IGNORED_ITEMS:
                logger.debug("%s:%d: skipping top-level (%s ...)", self.dump_name, item.line, tag)
            else:
                raise self._error(item, f"unknown top-level item ({tag} ...)")
        logger.debug("%s: read %d impl block(s), %d suppression(s)",
                     self.dump_name, len(impls), len(marks))
        return H.Crate(file=self.file, impls=tuple(impls), suppressions=tuple(marks))

    def _suppress(self, form: Form) -> H.SuppressionMark:
        positional, kw = self._split(form, allowed=frozenset({"line", "file"}))
        self._arity(form, positional, 1, 1)
        if "line" not in kw:
            raise self._error(form, "(suppress ...) needs :line", ErrorCode.DUMP_MISSING_FIELD)
        file = self._text(form, kw["file"]) if "file" in kw else self.file
        return H.SuppressionMark(
            error_id=self._text(form, positional[0]),
            file=file,
            line=self._int(form, kw["line"]),
        )

    # ── impl blocks ─────────────────────────────────────────────────

    def _impl(self, form: Form) -> H.ImplBlock:
        positional, kw = self._split(form, allowed=frozenset({"span", "trait", "self-ty"}))
        span = self._span(form, kw, H.Span(self.file))
        trait_ref = None
        if "trait" in kw:
            trait_ref = self._path_text(form, self._text(form, kw["trait"]))
        self_ty = self._ty(kw["self-ty"], span, form) if "self-ty" in kw else None
        items = []
        for item in positional:
            tag = self._head(item)
            reader = _IMPL_ITEM_DISPATCH.get(tag)
            if reader is None:
                raise self._error(item, f"unknown impl member ({tag} ...)")
            items.append(reader(self, item, span))
        return H.ImplBlock(items=tuple(items), trait_ref=trait_ref, self_ty=self_ty, span=span)

    @_register(_IMPL_ITEM_DISPATCH, "type")
    def _assoc_type(self, form: Form, outer: H.Span) -> H.AssocTypeItem:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.AssocTypeItem(
            name=self._text(form, positional[0]),
            ty=self._ty(positional[1], span, form),
            span=span,
        )

    @_register(_IMPL_ITEM_DISPATCH, "fn")
    def _assoc_fn(self, form: Form, outer: H.Span) -> H.AssocFnItem:
        positional, kw = self._split(form, allowed=frozenset({"span", "ret"}))
        self._arity(form, positional, 2)
        span = self._span(form, kw, outer)
        name = self._text(form, positional[0])
        *param_forms, body_form = positional[1:]
        if not isinstance(body_form, Form) or self._head(body_form) != "block":
            raise self._error(form, f"fn {name} must end with its (block ...) body",
                              ErrorCode.DUMP_MISSING_FIELD)
        params = tuple(self._param(p, span) for p in param_forms)
        ret = self._ty(kw["ret"], span, form) if "ret" in kw else None
        return H.AssocFnItem(
            name=name, params=params, body=self._block(body_form, span), ret=ret, span=span,
        )

    @_register(_IMPL_ITEM_DISPATCH, "const")
    def _assoc_const(self, form: Form, outer: H.Span) -> H.AssocConstItem:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 3)
        span = self._span(form, kw, outer)
        value = self._expr(positional[2], span) if len(positional) == 3 else None
        return H.AssocConstItem(
            name=self._text(form, positional[0]),
            ty=self._ty(positional[1], span, form),
            value=value,
            span=span,
        )

    def _param(self, form: Sexp, outer: H.Span) -> H.Param:
        if self._head(form) != "param":
            raise self._error(form, f"expected (param PAT TY), got ({form[0]} ...)")
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.Param(
            pat=self._pat(positional[0], span),
            ty=self._ty(positional[1], span, form),
            span=span,
        )

    # ── paths ───────────────────────────────────────────────────────

    def _path(self, value: Sexp, outer: H.Span, parent: Optional[Form] = None
              ) -> Tuple[H.TypeReference, H.Span]:
        """Read a path form (or bare path text) into ``(reference, span)``."""
        if isinstance(value, str):
            return self._path_text(parent if parent is not None else Form(), str(value)), outer
        tag = self._head(value)
        if tag == "path":
            positional, kw = self._split(value, allowed=frozenset({"span", "res"}))
            self._arity(value, positional, 1, 1)
            ref = self._path_text(value, self._text(value, positional[0]), self._res(value, kw))
            return ref, self._span(value, kw, outer)
        if tag == "relative":
            positional, kw = self._split(value, allowed=frozenset({"span", "res"}))
            self._arity(value, positional, 2, 2)
            base_text = self._text(value, positional[0])
            member_text = self._text(value, positional[1])
            try:
                base = parse_generic_arg(base_text)
                member = parse_segment(member_text)
            except PathSyntaxError as exc:
                logger.debug("%s:%d: unsupported path %r: %s",
                             self.dump_name, value.line, exc.text, exc.reason)
                return H.SpecialForm(f"{base_text}::{member_text}"), self._span(value, kw, outer)
            ref = H.TypeRelative(base, member, res=self._res(value, kw) or H.Res.TYPE)
            return ref, self._span(value, kw, outer)
        if tag == "lang-item":
            positional, kw = self._split(value, allowed=frozenset({"span"}))
            self._arity(value, positional, 1, 1)
            return H.SpecialForm(self._text(value, positional[0])), self._span(value, kw, outer)
        raise self._error(value, f"expected a path form, got ({tag} ...)")

    # ── types ───────────────────────────────────────────────────────

    def _ty(self, value: Sexp, outer: H.Span, parent: Optional[Form] = None) -> H.Ty:
        if isinstance(value, str):
            ref, span = self._path(value, outer, parent)
            return H.PathTy(ref, span)
        tag = self._head(value)
        if tag in _PATH_HEADS:
            ref, span = self._path(value, outer)
            return H.PathTy(ref, span)
        reader = _TY_DISPATCH.get(tag)
        if reader is None:
            raise self._error(value, f"unknown type form ({tag} ...)")
        return reader(self, value, outer)

    @_register(_TY_DISPATCH, "ref")
    def _ref_ty(self, form: Form, outer: H.Span) -> H.RefTy:
        positional, kw = self._split(form, allowed=frozenset({"span"}), flags=frozenset({"mut"}))
        self._arity(form, positional, 1, 1)
        span = self._span(form, kw, outer)
        return H.RefTy(self._ty(positional[0], span, form), mutable="mut" in kw, span=span)

    @_register(_TY_DISPATCH, "tuple")
    def _tuple_ty(self, form: Form, outer: H.Span) -> H.TupleTy:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        span = self._span(form, kw, outer)
        return H.TupleTy(tuple(self._ty(t, span, form) for t in positional), span=span)

    @_register(_TY_DISPATCH, "slice")
    def _slice_ty(self, form: Form, outer: H.Span) -> H.SliceTy:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        span = self._span(form, kw, outer)
        return H.SliceTy(self._ty(positional[0], span, form), span=span)

    @_register(_TY_DISPATCH, "array")
    def _array_ty(self, form: Form, outer: H.Span) -> H.ArrayTy:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        length = positional[1]
        return H.ArrayTy(
            self._ty(positional[0], span, form),
            length=str(length) if isinstance(length, (int, str)) else "_",
            span=span,
        )

    @_register(_TY_DISPATCH, "infer")
    def _infer_ty(self, form: Form, outer: H.Span) -> H.InferTy:
        _, kw = self._split(form, allowed=frozenset({"span"}))
        return H.InferTy(span=self._span(form, kw, outer))

    @_register(_TY_DISPATCH, "never")
    def _never_ty(self, form: Form, outer: H.Span) -> H.NeverTy:
        _, kw = self._split(form, allowed=frozenset({"span"}))
        return H.NeverTy(span=self._span(form, kw, outer))

    @_register(_TY_DISPATCH, "opaque")
    def _opaque_ty(self, form: Form, outer: H.Span) -> H.OpaqueTy:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        return H.OpaqueTy(self._text(form, positional[0]), span=self._span(form, kw, outer))

    # ── patterns ────────────────────────────────────────────────────

    def _pat(self, value: Sexp, outer: H.Span) -> H.Pat:
        tag = self._head(value)
        reader = _PAT_DISPATCH.get(tag)
        if reader is None:
            raise self._error(value, f"unknown pattern form ({tag} ...)")
        return reader(self, value, outer)

    def _pat_path(self, form: Form, value: Sexp, kw: Dict[str, Sexp],
                  outer: H.Span) -> Tuple[H.TypeReference, H.Span]:
        """Pattern paths take the pattern's own span, else the path's."""
        ref, path_span = self._path(value, outer, form)
        return ref, self._span(form, kw, path_span)

    @_register(_PAT_DISPATCH, "wild")
    def _wild(self, form: Form, outer: H.Span) -> H.WildPat:
        _, kw = self._split(form, allowed=frozenset({"span"}))
        return H.WildPat(span=self._span(form, kw, outer))

    @_register(_PAT_DISPATCH, "binding")
    def _binding(self, form: Form, outer: H.Span) -> H.BindingPat:
        positional, kw = self._split(
            form, allowed=frozenset({"span"}), flags=frozenset({"ref", "mut"}),
        )
        self._arity(form, positional, 1, 2)
        span = self._span(form, kw, outer)
        sub = self._pat(positional[1], span) if len(positional) == 2 else None
        return H.BindingPat(
            name=self._text(form, positional[0]),
            sub=sub,
            by_ref="ref" in kw,
            mutable="mut" in kw,
            span=span,
        )

    @_register(_PAT_DISPATCH, "path-pat")
    def _path_pat(self, form: Form, outer: H.Span) -> H.PathPat:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        ref, span = self._pat_path(form, positional[0], kw, outer)
        return H.PathPat(ref, span=span)

    @_register(_PAT_DISPATCH, "tuple-struct")
    def _tuple_struct(self, form: Form, outer: H.Span) -> H.TupleStructPat:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1)
        ref, span = self._pat_path(form, positional[0], kw, outer)
        elems = tuple(self._pat(p, span) for p in positional[1:])
        return H.TupleStructPat(ref, elems, span=span)

    @_register(_PAT_DISPATCH, "struct-pat")
    def _struct_pat(self, form: Form, outer: H.Span) -> H.StructPat:
        positional, kw = self._split(form, allowed=frozenset({"span"}), flags=frozenset({"rest"}))
        self._arity(form, positional, 1)
        ref, span = self._pat_path(form, positional[0], kw, outer)
        fields = []
        for field_form in positional[1:]:
            if self._head(field_form) != "field":
                raise self._error(field_form, "expected (field NAME PAT)")
            parts, _ = self._split(field_form)
            self._arity(field_form, parts, 2, 2)
            fields.append(H.FieldPat(self._text(field_form, parts[0]), self._pat(parts[1], span)))
        return H.StructPat(ref, tuple(fields), rest="rest" in kw, span=span)

    def _pat_list(self, form: Form, outer: H.Span) -> Tuple[Tuple[H.Pat, ...], H.Span]:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        span = self._span(form, kw, outer)
        return tuple(self._pat(p, span) for p in positional), span

    @_register(_PAT_DISPATCH, "tuple-pat")
    def _tuple_pat(self, form: Form, outer: H.Span) -> H.TuplePat:
        elems, span = self._pat_list(form, outer)
        return H.TuplePat(elems, span=span)

    @_register(_PAT_DISPATCH, "slice-pat")
    def _slice_pat(self, form: Form, outer: H.Span) -> H.SlicePat:
        elems, span = self._pat_list(form, outer)
        return H.SlicePat(elems, span=span)

    @_register(_PAT_DISPATCH, "or-pat")
    def _or_pat(self, form: Form, outer: H.Span) -> H.OrPat:
        alts, span = self._pat_list(form, outer)
        if len(alts) < 2:
            raise self._error(form, "(or-pat ...) needs at least two alternatives",
                              ErrorCode.DUMP_MISSING_FIELD)
        return H.OrPat(alts, span=span)

    @_register(_PAT_DISPATCH, "ref-pat")
    def _ref_pat(self, form: Form, outer: H.Span) -> H.RefPat:
        positional, kw = self._split(form, allowed=frozenset({"span"}), flags=frozenset({"mut"}))
        self._arity(form, positional, 1, 1)
        span = self._span(form, kw, outer)
        return H.RefPat(self._pat(positional[0], span), span=span)

    @_register(_PAT_DISPATCH, "lit-pat")
    def _lit_pat(self, form: Form, outer: H.Span) -> H.LitPat:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        return H.LitPat(str(positional[0]), span=self._span(form, kw, outer))

    # ── expressions ─────────────────────────────────────────────────

    def _expr(self, value: Sexp, outer: H.Span) -> H.Expr:
        tag = self._head(value)
        if tag in _PATH_HEADS:
            ref, span = self._path(value, outer)
            return H.PathExpr(ref, span=span)
        if tag == "block":
            block = self._block(value, outer)
            return H.BlockExpr(block, span=block.span)
        reader = _EXPR_DISPATCH.get(tag)
        if reader is None:
            raise self._error(value, f"unknown expression form ({tag} ...)")
        return reader(self, value, outer)

    def _exprs(self, values: List[Sexp], outer: H.Span) -> Tuple[H.Expr, ...]:
        return tuple(self._expr(v, outer) for v in values)

    @_register(_EXPR_DISPATCH, "lit")
    def _lit(self, form: Form, outer: H.Span) -> H.LitExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        return H.LitExpr(str(positional[0]), span=self._span(form, kw, outer))

    @_register(_EXPR_DISPATCH, "call")
    def _call(self, form: Form, outer: H.Span) -> H.CallExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1)
        span = self._span(form, kw, outer)
        return H.CallExpr(
            self._expr(positional[0], span), self._exprs(positional[1:], span), span=span,
        )

    @_register(_EXPR_DISPATCH, "method-call")
    def _method_call(self, form: Form, outer: H.Span) -> H.MethodCallExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2)
        span = self._span(form, kw, outer)
        return H.MethodCallExpr(
            receiver=self._expr(positional[0], span),
            method=self._text(form, positional[1]),
            args=self._exprs(positional[2:], span),
            span=span,
        )

    @_register(_EXPR_DISPATCH, "struct-expr")
    def _struct_expr(self, form: Form, outer: H.Span) -> H.StructExpr:
        positional, kw = self._split(form, allowed=frozenset({"span", "base"}))
        self._arity(form, positional, 1)
        ref, path_span = self._path(positional[0], outer, form)
        span = self._span(form, kw, path_span)
        fields = []
        for field_form in positional[1:]:
            if self._head(field_form) != "field":
                raise self._error(field_form, "expected (field NAME EXPR)")
            parts, _ = self._split(field_form)
            self._arity(field_form, parts, 2, 2)
            fields.append(H.FieldInit(self._text(field_form, parts[0]), self._expr(parts[1], span)))
        base = self._expr(kw["base"], span) if "base" in kw else None
        return H.StructExpr(ref, tuple(fields), base=base, span=span)

    @_register(_EXPR_DISPATCH, "match")
    def _match(self, form: Form, outer: H.Span) -> H.MatchExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1)
        span = self._span(form, kw, outer)
        scrutinee = self._expr(positional[0], span)
        arms = tuple(self._arm(a, span) for a in positional[1:])
        return H.MatchExpr(scrutinee, arms, span=span)

    def _arm(self, form: Sexp, outer: H.Span) -> H.Arm:
        if self._head(form) != "arm":
            raise self._error(form, f"expected (arm PAT EXPR), got ({form[0]} ...)")
        positional, kw = self._split(form, allowed=frozenset({"span", "guard"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        guard = self._expr(kw["guard"], span) if "guard" in kw else None
        return H.Arm(
            pat=self._pat(positional[0], span),
            body=self._expr(positional[1], span),
            guard=guard,
            span=span,
        )

    @_register(_EXPR_DISPATCH, "if")
    def _if(self, form: Form, outer: H.Span) -> H.IfExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 3)
        span = self._span(form, kw, outer)
        else_ = self._expr(positional[2], span) if len(positional) == 3 else None
        return H.IfExpr(
            self._expr(positional[0], span), self._expr(positional[1], span), else_, span=span,
        )

    @_register(_EXPR_DISPATCH, "let-expr")
    def _let_expr(self, form: Form, outer: H.Span) -> H.LetExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.LetExpr(self._pat(positional[0], span), self._expr(positional[1], span), span=span)

    @_register(_EXPR_DISPATCH, "loop")
    def _loop(self, form: Form, outer: H.Span) -> H.LoopExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        span = self._span(form, kw, outer)
        return H.LoopExpr(self._block(positional[0], span), span=span)

    @_register(_EXPR_DISPATCH, "while")
    def _while(self, form: Form, outer: H.Span) -> H.WhileExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.WhileExpr(
            self._expr(positional[0], span), self._block(positional[1], span), span=span,
        )

    @_register(_EXPR_DISPATCH, "for")
    def _for(self, form: Form, outer: H.Span) -> H.ForExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 3, 3)
        span = self._span(form, kw, outer)
        return H.ForExpr(
            pat=self._pat(positional[0], span),
            iter=self._expr(positional[1], span),
            body=self._block(positional[2], span),
            span=span,
        )

    @_register(_EXPR_DISPATCH, "closure")
    def _closure(self, form: Form, outer: H.Span) -> H.ClosureExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1)
        span = self._span(form, kw, outer)
        params = []
        for param_form in positional[:-1]:
            if self._head(param_form) != "cparam":
                raise self._error(param_form, "expected (cparam PAT [TY])")
            parts, _ = self._split(param_form)
            self._arity(param_form, parts, 1, 2)
            ty = self._ty(parts[1], span, param_form) if len(parts) == 2 else None
            params.append(H.ClosureParam(self._pat(parts[0], span), ty))
        return H.ClosureExpr(tuple(params), self._expr(positional[-1], span), span=span)

    @_register(_EXPR_DISPATCH, "cast")
    def _cast(self, form: Form, outer: H.Span) -> H.CastExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.CastExpr(self._expr(positional[0], span), self._ty(positional[1], span, form), span=span)

    @_register(_EXPR_DISPATCH, "unary")
    def _unary(self, form: Form, outer: H.Span) -> H.UnaryExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.UnaryExpr(self._text(form, positional[0]), self._expr(positional[1], span), span=span)

    @_register(_EXPR_DISPATCH, "binary")
    def _binary(self, form: Form, outer: H.Span) -> H.BinaryExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 3, 3)
        span = self._span(form, kw, outer)
        return H.BinaryExpr(
            self._text(form, positional[0]),
            self._expr(positional[1], span),
            self._expr(positional[2], span),
            span=span,
        )

    @_register(_EXPR_DISPATCH, "field")
    def _field(self, form: Form, outer: H.Span) -> H.FieldExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.FieldExpr(self._expr(positional[0], span), self._text(form, positional[1]), span=span)

    @_register(_EXPR_DISPATCH, "index")
    def _index(self, form: Form, outer: H.Span) -> H.IndexExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 2, 2)
        span = self._span(form, kw, outer)
        return H.IndexExpr(self._expr(positional[0], span), self._expr(positional[1], span), span=span)

    @_register(_EXPR_DISPATCH, "tuple-expr")
    def _tuple_expr(self, form: Form, outer: H.Span) -> H.TupleExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        span = self._span(form, kw, outer)
        return H.TupleExpr(self._exprs(positional, span), span=span)

    @_register(_EXPR_DISPATCH, "array-expr")
    def _array_expr(self, form: Form, outer: H.Span) -> H.ArrayExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        span = self._span(form, kw, outer)
        return H.ArrayExpr(self._exprs(positional, span), span=span)

    def _jump(self, form: Form, outer: H.Span, with_value: bool) -> H.JumpExpr:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 0, 1 if with_value else 0)
        span = self._span(form, kw, outer)
        value = self._expr(positional[0], span) if positional else None
        return H.JumpExpr(str(form[0]), value, span=span)

    @_register(_EXPR_DISPATCH, "return")
    def _return(self, form: Form, outer: H.Span) -> H.JumpExpr:
        return self._jump(form, outer, with_value=True)

    @_register(_EXPR_DISPATCH, "break")
    def _break(self, form: Form, outer: H.Span) -> H.JumpExpr:
        return self._jump(form, outer, with_value=True)

    @_register(_EXPR_DISPATCH, "continue")
    def _continue(self, form: Form, outer: H.Span) -> H.JumpExpr:
        return self._jump(form, outer, with_value=False)

    @_register(_EXPR_DISPATCH, "macro")
    def _macro(self, form: Form, outer: H.Span) -> H.MacroExpr:
        # Arguments after the name are the unexpanded token stream: ignored.
        if len(form) < 2:
            raise self._error(form, "(macro NAME ...) needs a name", ErrorCode.DUMP_MISSING_FIELD)
        span = outer
        rest = list(form[2:])
        for key, value in zip(rest, rest[1:]):
            if isinstance(key, Symbol) and str(key) == ":span":
                span = self._span(form, {"span": value}, outer)
                break
        return H.MacroExpr(self._text(form, form[1]), span=span)

    # ── blocks and statements ───────────────────────────────────────

    def _block(self, value: Sexp, outer: H.Span) -> H.Block:
        if self._head(value) != "block":
            raise self._error(value, f"expected (block ...), got ({value[0]} ...)")
        positional, kw = self._split(value, allowed=frozenset({"span"}))
        span = self._span(value, kw, outer)
        stmts: List[H.Stmt] = []
        tail: Optional[H.Expr] = None
        last = len(positional) - 1
        for index, item in enumerate(positional):
            tag = self._head(item)
            if tag == "tail":
                if index != last:
                    raise self._error(item, "(tail ...) must be the last element of a block")
                parts, _ = self._split(item)
                self._arity(item, parts, 1, 1)
                tail = self._expr(parts[0], span)
            elif tag in _STMT_DISPATCH:
                stmts.append(_STMT_DISPATCH[tag](self, item, span))
            elif index == last:
                tail = self._expr(item, span)
            else:
                expr = self._expr(item, span)
                stmts.append(H.ExprStmt(expr, span=span))
        return H.Block(tuple(stmts), tail, span=span)

    @_register(_STMT_DISPATCH, "let")
    def _let(self, form: Form, outer: H.Span) -> H.LetStmt:
        positional, kw = self._split(form, allowed=frozenset({"span", "ty", "init", "else"}))
        self._arity(form, positional, 1, 1)
        span = self._span(form, kw, outer)
        return H.LetStmt(
            pat=self._pat(positional[0], span),
            ty=self._ty(kw["ty"], span, form) if "ty" in kw else None,
            init=self._expr(kw["init"], span) if "init" in kw else None,
            else_block=self._block(kw["else"], span) if "else" in kw else None,
            span=span,
        )

    @_register(_STMT_DISPATCH, "semi")
    def _semi(self, form: Form, outer: H.Span) -> H.ExprStmt:
        positional, kw = self._split(form, allowed=frozenset({"span"}))
        self._arity(form, positional, 1, 1)
        span = self._span(form, kw, outer)
        return H.ExprStmt(self._expr(positional[0], span), span=span)

    @_register(_STMT_DISPATCH, "item")
    def _item(self, form: Form, outer: H.Span) -> H.ItemStmt:
        # Nested items are opaque: everything after the head is skipped.
        return H.ItemStmt(span=outer)


# ═══════════════════════════════════════════════════════════════════════
#  PART 4 — Public API
# ═══════════════════════════════════════════════════════════════════════

def load_dump(text: str, name: str = "<dump>") -> H.Crate:
    """
    Read one HIR dump document.

    Args:
        text: the S-expression text.
        name: dump file name, used in error locations.

    Raises:
        DumpSyntaxError: the text is not a valid S-expression document.
        DumpShapeError: a form does not have the shape its head requires.

    Path text the path grammar rejects does not raise: it is read as a
    :class:`~hirlint.hir.SpecialForm` and never reported.
    """
    return _HirReader(name).read_crate(read_sexp(text, name))


def load_dump_file(path: Union[str, Path]) -> H.Crate:
    """Read a HIR dump from disk."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DumpError(
            f"cannot read dump: {getattr(exc, 'strerror', None) or exc}",
            code=ErrorCode.DUMP_UNREADABLE,
            span=SourceSpan(str(path)),
        ) from exc
    logger.info("loading %s (%d bytes)", path, len(text))
    return load_dump(text, str(path))


__all__ = [
    "Symbol",
    "Form",
    "read_sexp",
    "load_dump",
    "load_dump_file",
]
