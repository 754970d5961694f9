# tests/test_hir_dump.py
"""
Tests for the HIR dump reader: S-expression text → Crate.
"""

import logging

import pytest

from hirlint.errors import (
    DumpError,
    DumpShapeError,
    DumpSyntaxError,
    ErrorCode,
)
from hirlint.hir import (
    ArrayTy,
    AssocConstItem,
    AssocFnItem,
    AssocTypeItem,
    BindingPat,
    ExprStmt,
    ItemStmt,
    LetStmt,
    MacroExpr,
    MatchExpr,
    PathPat,
    PathTy,
    RefTy,
    Res,
    Span,
    SpecialForm,
    StructPat,
    TupleStructPat,
    TypeRelative,
)
from hirlint.hir_dump import Form, Symbol, load_dump, load_dump_file, read_sexp


def _crate(*members, items=""):
    """Wrap impl members in a minimal crate document."""
    return f'(crate "src/lib.rs" {items} (impl {" ".join(members)}))'


def _body(*forms):
    return _crate(f'(fn f (block {" ".join(forms)}))')


class TestReadSexp:

    def test_atoms(self):
        (form,) = read_sexp('(a "b c" 12 -3 :k &mut)')
        assert isinstance(form, Form)
        assert form == [Symbol("a"), "b c", 12, -3, Symbol(":k"), Symbol("&mut")]
        assert isinstance(form[0], Symbol)
        assert not isinstance(form[1], Symbol)

    def test_comments_and_lines(self):
        forms = read_sexp('; header\n(a)\n\n  (b ; trailing\n  c)')
        assert [f.line for f in forms] == [2, 4]
        assert forms[1] == [Symbol("b"), Symbol("c")]

    def test_lines_of_late_forms(self):
        text = "(a)\n" * 499 + '(b "(" ; (\n  (c))'
        forms = read_sexp(text)
        assert len(forms) == 500
        assert forms[-1].line == 500
        assert forms[-1][1] == "("
        assert forms[-1][2].line == 501

    def test_string_escapes(self):
        (form,) = read_sexp(r'(s "say \"hi\"")')
        assert form[1] == 'say "hi"'

    def test_nested_lists(self):
        (form,) = read_sexp("(a (b (c)) ())")
        assert form[1][1] == [Symbol("c")]
        assert form[2] == []

    def test_unbalanced(self):
        with pytest.raises(DumpSyntaxError) as info:
            read_sexp("(a (b)", "bad.hir")
        assert info.value.span.file == "bad.hir"
        assert info.value.span.line == 1
        assert info.value.hint

    def test_stray_close_located(self):
        with pytest.raises(DumpSyntaxError) as info:
            read_sexp("(a)\n\n(b))", "bad.hir")
        assert info.value.span.line == 3


class TestScenarioDumps:

    def test_crate_shape(self, state_crate):
        assert state_crate.file == "src/state.rs"
        assert len(state_crate.impls) == 1
        block = state_crate.impls[0]
        assert block.describe() == "impl Trait for Owner"
        assert block.span == Span("src/state.rs", 8, 1, 100, 700)
        assert [type(i) for i in block.items] == [AssocTypeItem, AssocFnItem, AssocFnItem]

    def test_associated_type(self, state_crate):
        item = state_crate.impls[0].associated_types[0]
        assert item.name == "Associated"
        assert isinstance(item.ty, PathTy)
        assert str(item.ty) == "State"
        assert item.span.line == 9

    def test_parameter_types(self, state_crate):
        f = state_crate.impls[0].methods[0]
        self_param, a_param = f.params
        assert self_param.ty.inner.ref.res is Res.SELF_TY
        assert isinstance(a_param.ty, RefTy)
        assert isinstance(a_param.ty.inner.ref, TypeRelative)
        assert str(a_param.ty) == "&Self::Associated"

    def test_arm_patterns_take_arm_span(self, state_crate):
        match = state_crate.impls[0].methods[0].body.tail
        assert isinstance(match, MatchExpr)
        assert len(match.arms) == 3
        first = match.arms[0].pat
        assert isinstance(first, PathPat)
        assert first.ref.res is Res.VARIANT
        assert first.span == Span("src/state.rs", 12, 13, 210, 224)

    def test_spans_inherit_from_parent(self, state_crate):
        g = state_crate.impls[0].methods[1]
        assert g.span == state_crate.impls[0].span
        assert g.body.span == g.span

    def test_tuple_struct_parameter(self, value_crate):
        param = value_crate.impls[0].methods[0].params[1]
        assert isinstance(param.pat, TupleStructPat)
        assert param.pat.span == Span("src/value.rs", 30, 10, 400, 420)
        assert param.pat.elems == (BindingPat("_state", span=param.pat.span),)

    def test_other_items_skipped(self, value_crate):
        assert len(value_crate.impls) == 1


class TestForms:

    def test_bare_string_is_path_type(self):
        crate = load_dump(_crate('(type A "Vec<u8>")'))
        ty = crate.impls[0].items[0].ty
        assert isinstance(ty, PathTy)
        assert ty.ref.segments[0].name == "Vec"

    def test_lang_item(self):
        crate = load_dump(_crate("(type R (lang-item Range))"))
        assert crate.impls[0].items[0].ty.ref == SpecialForm("Range")

    def test_relative_path(self):
        crate = load_dump(_crate('(type A (relative "Vec<u8>" "new" :res assoc-item))'))
        ref = crate.impls[0].items[0].ty.ref
        assert isinstance(ref, TypeRelative)
        assert ref.res is Res.ASSOC_ITEM
        assert str(ref) == "<Vec<u8>>::new"

    def test_array_type(self):
        ty = load_dump(_crate('(type A (array "u8" 4))')).impls[0].items[0].ty
        assert isinstance(ty, ArrayTy)
        assert ty.length == "4"
        assert str(ty.elem) == "u8"

    def test_const_member(self):
        crate = load_dump(_crate('(const N "usize" (lit 3))'))
        item = crate.impls[0].items[0]
        assert isinstance(item, AssocConstItem)
        assert item.value.text == "3"

    def test_statements(self):
        crate = load_dump(_body(
            '(let (binding x :mut) :ty "u8" :init (lit 1))',
            '(semi (macro println! "{}" x :span (5 9 1 2)))',
            '(item (fn nested))',
            '(path "x" :res local)',
        ))
        body = crate.impls[0].methods[0].body
        let, semi, item = body.stmts
        assert isinstance(let, LetStmt) and let.pat.mutable
        assert isinstance(semi, ExprStmt)
        assert isinstance(semi.expr, MacroExpr)
        assert semi.expr.name == "println!"
        assert semi.expr.span.line == 5
        assert isinstance(item, ItemStmt)
        assert body.tail.ref.res is Res.LOCAL

    def test_bare_expression_before_last_is_statement(self):
        crate = load_dump(_body('(path "a" :res local)', '(path "b" :res local)'))
        body = crate.impls[0].methods[0].body
        assert len(body.stmts) == 1
        assert str(body.tail.ref) == "b"

    def test_struct_pattern(self):
        crate = load_dump(_body(
            '(let (struct-pat (path "State::E" :res variant) (field x (binding x)) :rest))',
        ))
        pat = crate.impls[0].methods[0].body.stmts[0].pat
        assert isinstance(pat, StructPat)
        assert pat.rest
        assert pat.fields[0].name == "x"

    def test_suppression_marks(self):
        crate = load_dump(
            '(crate "src/x.rs" (suppress notUsingAssociatedType :line 40)'
            ' (suppress "*" :line 2 :file "gen.rs"))'
        )
        first, second = crate.suppressions
        assert (first.error_id, first.file, first.line) == ("notUsingAssociatedType", "src/x.rs", 40)
        assert (second.error_id, second.file) == ("*", "gen.rs")


class TestDumpErrors:

    def test_empty_document(self):
        with pytest.raises(DumpSyntaxError) as info:
            load_dump("; nothing here\n", "empty.hir")
        assert info.value.code is ErrorCode.DUMP_EMPTY

    def test_two_crates(self):
        with pytest.raises(DumpShapeError):
            load_dump('(crate "a.rs") (crate "b.rs")')

    def test_not_a_crate(self):
        with pytest.raises(DumpShapeError):
            load_dump('(module "a.rs")')

    def test_unknown_top_level(self):
        with pytest.raises(DumpShapeError) as info:
            load_dump('(crate "a.rs"\n (widget))', "w.hir")
        assert info.value.code is ErrorCode.DUMP_UNEXPECTED_FORM
        assert info.value.span.line == 2

    def test_unknown_keyword(self):
        with pytest.raises(DumpShapeError) as info:
            load_dump('(crate "a.rs" (impl :colour red))')
        assert info.value.code is ErrorCode.DUMP_UNKNOWN_KEYWORD

    def test_keyword_without_value(self):
        with pytest.raises(DumpShapeError) as info:
            load_dump('(crate "a.rs" (impl :trait))')
        assert info.value.code is ErrorCode.DUMP_MISSING_FIELD

    def test_bad_resolution(self):
        with pytest.raises(DumpShapeError) as info:
            load_dump(_crate('(type A (path "X" :res bogus))'))
        assert info.value.code is ErrorCode.DUMP_BAD_ATOM

    def test_bad_span(self):
        with pytest.raises(DumpShapeError) as info:
            load_dump(_crate('(type A "X" :span (1 2 3))'))
        assert info.value.code is ErrorCode.DUMP_BAD_ATOM

    def test_fn_without_body(self):
        with pytest.raises(DumpShapeError) as info:
            load_dump(_crate('(fn f (param (binding a) "u8"))'))
        assert info.value.code is ErrorCode.DUMP_MISSING_FIELD

    def test_tail_must_be_last(self):
        with pytest.raises(DumpShapeError):
            load_dump(_body('(tail (lit 1))', '(lit 2)'))

    def test_unknown_expression(self):
        with pytest.raises(DumpShapeError):
            load_dump(_body("(teleport)"))

    def test_unparsable_path_kept_opaque(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="hirlint.hir_dump"):
            crate = load_dump(_crate('(type A "State::")'), "p.hir")
        assert crate.impls[0].items[0].ty.ref == SpecialForm("State::")
        assert "unsupported path 'State::'" in caplog.text

    def test_unparsable_relative_path_kept_opaque(self):
        crate = load_dump(_crate('(type A (relative "Vec<u8" "new"))'))
        assert crate.impls[0].items[0].ty.ref == SpecialForm("Vec<u8::new")

    def test_raw_and_unicode_identifiers(self):
        crate = load_dump(_crate('(type A "État::r#match")'))
        ref = crate.impls[0].items[0].ty.ref
        assert [s.name for s in ref.segments] == ["État", "r#match"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(DumpError) as info:
            load_dump_file(tmp_path / "absent.hir")
        assert info.value.code is ErrorCode.DUMP_UNREADABLE

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "latin1.hir"
        path.write_bytes(b'(crate "src/lib.rs" \xff)')
        with pytest.raises(DumpError) as info:
            load_dump_file(path)
        assert info.value.code is ErrorCode.DUMP_UNREADABLE
        assert info.value.span.file == str(path)

    def test_load_from_file(self, state_dump_path):
        crate = load_dump_file(state_dump_path)
        assert crate.file == "src/state.rs"
