from __future__ import annotations

from collections.abc import Callable

import pytest

import variantgen
from variantgen import ExtractOptions, Metadata, MetadataCategory


def _derive(*traits: str) -> Metadata:
    return Metadata(MetadataCategory.DERIVE, f"#[derive({', '.join(traits)})]", traits)


def _texts(metadata: tuple[Metadata, ...] | None) -> list[str]:
    assert metadata is not None
    return [entry.text for entry in metadata]


# ===--- Attribute resolution ---=== #


def test_only_derive_metadata_is_forwarded_from_the_union(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union(
        """\
        /// Enum docs are not forwarded
        #[extract_variant]
        #[derive(D1, D2)]
        #[serde(tag = "kind")]
        enum Value {
            A,
            #[variant_attrs(#[derive(Eq)] #[repr(C)])]
            B(i32),
            C { x: u8 },
        }
        """
    )

    resolved = {
        variant.name: variantgen.resolve_attributes(variant, union.metadata)
        for variant in union.variants
    }

    assert _texts(resolved["A"]) == ["#[derive(D1, D2)]"]
    assert _texts(resolved["B"]) == ["#[derive(Eq, D1, D2)]", "#[repr(C)]"]
    assert _texts(resolved["C"]) == ["#[derive(D1, D2)]"]
    for metadata in resolved.values():
        assert all("serde" not in entry.text for entry in metadata)
        assert all("Enum docs" not in entry.text for entry in metadata)


def test_excluded_variant_resolves_to_none(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union(
        """\
        #[derive(Debug)]
        enum Value {
            #[exclude]
            #[variant_attrs(#[derive(Eq)])]
            A,
        }
        """
    )

    assert variantgen.resolve_attributes(union.variants[0], union.metadata) is None


def test_variant_docs_come_first_and_duplicates_are_dropped(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union(
        """\
        #[derive(Debug, Clone)]
        #[derive(Clone, PartialEq)]
        enum Value {
            /// A variant of Value
            #[variant_attrs(
                #[derive(Debug, Hash)]
                #[allow(dead_code)]
                #[allow( dead_code )]
            )]
            A,
        }
        """
    )

    resolved = variantgen.resolve_attributes(union.variants[0], union.metadata)

    assert _texts(resolved) == [
        "/// A variant of Value",
        "#[derive(Debug, Hash, Clone, PartialEq)]",
        "#[allow(dead_code)]",
    ]
    assert resolved[1].traits == ("Debug", "Hash", "Clone", "PartialEq")


def test_merge_metadata_omits_empty_derive() -> None:
    merged = variantgen.merge_metadata([_derive()])

    assert merged == ()


# ===--- Name resolution ---=== #


def test_resolve_record_name_applies_prefix_and_suffix() -> None:
    options = ExtractOptions(prefix="My", suffix="Struct")

    assert variantgen.resolve_record_name("Int", options) == "MyIntStruct"
    assert variantgen.resolve_record_name("Int", ExtractOptions()) == "Int"


def test_resolve_generated_names_is_deterministic_and_skips_excluded(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union("enum Value { Int(i64), #[exclude] Float(f64), Str(String) }")
    options = ExtractOptions(prefix="My", suffix="Struct")

    first = variantgen.resolve_generated_names(union, options)
    second = variantgen.resolve_generated_names(union, options)

    assert first == second
    assert first.names == (("Int", "MyIntStruct"), ("Str", "MyStrStruct"))
    assert first.identifier_for("Str") == "MyStrStruct"


def test_generated_name_equal_to_union_name_collides(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union("enum Value { Value(i32), Other }")

    with pytest.raises(variantgen.GenerateError) as exc_info:
        variantgen.resolve_generated_names(union, ExtractOptions())

    assert exc_info.value.code == "NAME_COLLISION"
    assert "collides with enum `Value`" in exc_info.value.message


def test_prefix_can_produce_collision_with_union_name(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union("enum MyValue { Value(i32) }")

    with pytest.raises(variantgen.GenerateError) as exc_info:
        variantgen.resolve_generated_names(union, ExtractOptions(prefix="My"))

    assert exc_info.value.code == "NAME_COLLISION"


def test_excluded_variant_does_not_collide(
    read_union: Callable[[str], variantgen.UnionDeclaration],
) -> None:
    union = read_union("enum Value { #[exclude] Value(i32), Other }")

    names = variantgen.resolve_generated_names(union, ExtractOptions())

    assert names.names == (("Other", "Other"),)


def test_colliding_generated_names_are_rejected() -> None:
    shape = variantgen.Shape(variantgen.ShapeKind.UNIT)
    union = variantgen.UnionDeclaration(
        name="E",
        visibility="",
        variants=(
            variantgen.VariantDescriptor("A", shape),
            variantgen.VariantDescriptor("A", shape, index=5),
        ),
    )

    with pytest.raises(variantgen.GenerateError) as exc_info:
        variantgen.resolve_generated_names(union, ExtractOptions())

    assert exc_info.value.code == "NAME_COLLISION"
    assert exc_info.value.index == 5
