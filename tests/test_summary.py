from __future__ import annotations

from pathlib import Path

import pytest

import variantgen


def _make_summary(**overrides: object) -> variantgen.GenerationSummary:
    fields: dict[str, object] = {
        "source_label": "src/value.rs",
        "output_label": "build/value.rs",
        "status": "generated",
        "unions": 2,
        "bound_records": 1,
        "records": 5,
        "conversions": 6,
        "excluded": (),
        "line_count": 1234,
    }
    fields.update(overrides)
    return variantgen.GenerationSummary(**fields)


def test_build_generation_summary_counts_blocks() -> None:
    source = (
        "pub enum Shape { Coord(i32, i32), Origin }\n"
        "#[extract_variant]\n"
        "enum Value { Int(i64), #[exclude] Float(f64), Str(String) }\n"
        "#[extract_variant(no_impl)]\n"
        "enum Flag { On, Off }\n"
        "#[variant_of(Shape, Coord)]\n"
        "struct Pair(i32, i32);\n"
    )
    rendered = variantgen.render_source(source)
    result = variantgen.WriteResult(Path("build/out.rs"), "generated", 42, 900)

    summary = variantgen.build_generation_summary("src/in.rs", rendered, result)

    assert summary == variantgen.GenerationSummary(
        source_label="src/in.rs",
        output_label="build/out.rs",
        status="generated",
        unions=2,
        bound_records=1,
        records=4,
        conversions=3,
        excluded=("Value::Float",),
        line_count=42,
    )


def test_format_generation_summary_layout() -> None:
    text = variantgen.format_generation_summary(_make_summary())

    assert text == (
        "variantgen 0.3.0 (generated):\n"
        "\n"
        "  Source:     src/value.rs\n"
        "  Output:     build/value.rs\n"
        "\n"
        "  Declarations:\n"
        "    Enums:               2\n"
        "    Bound structs:       1\n"
        "\n"
        "  Generated:\n"
        "    Structs:             5\n"
        "    Conversions:         6\n"
        "\n"
        "  Total: 1,234 lines\n"
    )


def test_format_generation_summary_lists_excluded_variants() -> None:
    text = variantgen.format_generation_summary(
        _make_summary(excluded=("Value::Float", "Value::Str"))
    )

    assert "    Excluded:            2  (Value::Float, Value::Str)\n" in text
    assert text.endswith("lines\n")


def test_print_generation_summary_writes_formatted_text(
    capsys: pytest.CaptureFixture[str],
) -> None:
    summary = _make_summary(status="unchanged")

    variantgen.print_generation_summary(summary)

    assert capsys.readouterr().out == variantgen.format_generation_summary(summary)
