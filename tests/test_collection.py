# tests/test_collection.py
"""
Tests for the COLLECT phase: associated-type bindings and the index.
"""

import pytest

from hirlint.collection import (
    AssociatedTypeBinding,
    TypeReferenceIndex,
    build_index,
    collect,
    path_identity,
    scan,
    type_portion,
)
from hirlint.hir import (
    AssocConstItem,
    AssocTypeItem,
    OpaqueArg,
    PathTy,
    RefTy,
    Res,
    Span,
    SpecialForm,
    TupleTy,
)
from hirlint.paths import parse_type_reference
from tests.conftest import assoc_type, impl_block, method, path_ty


def _ref(text, res=None):
    return parse_type_reference(text, res=res)


class TestScan:

    def test_concrete_binding(self):
        block = impl_block(assoc_type("Associated", "State"))
        (binding,) = scan(block)
        assert binding.name == "Associated"
        assert binding.target == _ref("State")
        assert str(binding) == "type Associated = State"

    def test_source_order(self):
        block = impl_block(assoc_type("A", "State"), method("f"), assoc_type("B", "Value"))
        assert [b.name for b in scan(block)] == ["A", "B"]

    @pytest.mark.parametrize("item", [
        AssocTypeItem("A", path_ty("T", res=Res.TY_PARAM)),
        AssocTypeItem("A", path_ty("Self")),
        AssocTypeItem("A", path_ty("Missing", res=Res.ERR)),
        AssocTypeItem("A", RefTy(path_ty("State"))),
        AssocTypeItem("A", TupleTy((path_ty("u8"), path_ty("u8")))),
    ])
    def test_non_concrete_targets_skipped(self, item):
        assert scan(impl_block(item)) == ()

    def test_only_associated_types(self):
        block = impl_block(AssocConstItem("N", path_ty("usize")), method("f"))
        assert scan(block) == ()

    def test_first_definition_wins(self):
        block = impl_block(assoc_type("A", "State"), assoc_type("A", "Value"))
        (binding,) = scan(block)
        assert binding.target == _ref("State")

    def test_non_concrete_first_definition_still_claims_name(self):
        block = impl_block(assoc_type("A", "T", res=Res.TY_PARAM), assoc_type("A", "State"))
        assert scan(block) == ()

    def test_language_item_kept(self):
        block = impl_block(AssocTypeItem("R", PathTy(SpecialForm("Range"))))
        (binding,) = scan(block)
        assert binding.target == SpecialForm("Range")

    def test_trait_impl_not_required(self):
        block = impl_block(assoc_type("A", "State"), trait=None)
        assert len(scan(block)) == 1


class TestNormalisation:

    def test_generic_arguments_excluded_from_identity(self):
        assert path_identity(_ref("Vec<u8>")) == path_identity(_ref("Vec<u16>"))
        assert path_identity(_ref("Vec")) == path_identity(_ref("Vec<u8>"))

    def test_module_path_is_exact(self):
        assert path_identity(_ref("a::State")) != path_identity(_ref("b::State"))
        assert path_identity(_ref("a::State")) != path_identity(_ref("State"))

    def test_variant_distinguished(self):
        assert path_identity(_ref("<T as Tr>::Out")) != path_identity(_ref("T::Out"))
        assert path_identity(_ref("<T>::Out")) != path_identity(_ref("T::Out"))

    def test_opaque_and_special(self):
        assert path_identity(OpaqueArg("&str")) == ("opaque", "&str")
        assert path_identity(SpecialForm("Range")) is None

    def test_type_portion_drops_variant(self):
        assert type_portion(_ref("State::A", Res.VARIANT)) == _ref("State")
        assert type_portion(_ref("m::State::new", Res.ASSOC_ITEM)) == _ref("m::State")

    def test_type_portion_of_type_is_itself(self):
        ref = _ref("Vec<u8>")
        assert type_portion(ref) is ref

    @pytest.mark.parametrize("ref", [
        _ref("x", Res.LOCAL),
        _ref("A", Res.VARIANT),
        _ref("T", Res.TY_PARAM),
        SpecialForm("Range"),
    ])
    def test_no_type_portion(self, ref):
        assert type_portion(ref) is None

    def test_type_portion_of_relative_member(self):
        ref = _ref("Self::Associated::A", Res.VARIANT)
        assert type_portion(ref) == ref.base
        assert type_portion(_ref("<T>::new", Res.ASSOC_ITEM)) is None


class TestTypeReferenceIndex:

    def _binding(self, name, text):
        return AssociatedTypeBinding(name, _ref(text), Span())

    def test_candidates_by_type_portion(self):
        state = self._binding("A", "State")
        value = self._binding("B", "Value")
        index = build_index([state, value])
        (entry,) = index.candidates(_ref("State::Idle", Res.VARIANT))
        assert entry.binding is state
        assert index.candidates(_ref("Other::Idle", Res.VARIANT)) == ()

    def test_shared_key_keeps_registration_order(self):
        first = self._binding("First", "Vec<u8>")
        second = self._binding("Second", "Vec<u16>")
        index = build_index([first, second])
        assert [e.binding.name for e in index.candidates(_ref("Vec"))] == ["First", "Second"]

    def test_unsupported_entries(self):
        special = AssociatedTypeBinding("R", SpecialForm("Range"), Span())
        index = build_index([special, self._binding("A", "State")])
        assert [e.binding.name for e in index.unsupported] == ["R"]
        assert [e.binding.name for e in index.supported] == ["A"]
        assert len(index) == 2
        assert index.names == frozenset({"R", "A"})

    def test_empty_index(self):
        index = build_index([])
        assert not index
        assert len(index) == 0
        assert list(index) == []
        assert index.candidates(_ref("State")) == ()

    def test_index_has_no_instance_dict(self):
        index = build_index([self._binding("A", "State")])
        with pytest.raises(AttributeError):
            index.extra = 1

    def test_collect(self):
        block = impl_block(assoc_type("Associated", "State"))
        index = collect(block)
        assert isinstance(index, TypeReferenceIndex)
        assert index.names == frozenset({"Associated"})
