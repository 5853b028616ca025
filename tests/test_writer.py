from __future__ import annotations

from pathlib import Path

import pytest

import variantgen

SOURCE = "#[extract_variant]\nenum E { A, B(i32) }\n"


def test_format_file_header_without_schema_files() -> None:
    lines = variantgen.format_file_header("src/e.rs", [], "abc123")

    assert lines == [
        "// x-------------------------------------------x //",
        "// | Generated by variantgen 0.3.0",
        "// | Source: src/e.rs",
        "// | Digest: abc123",
        "// x-------------------------------------------x //",
    ]


def test_format_file_header_lists_schema_files_in_order() -> None:
    lines = variantgen.format_file_header("src/e.rs", ["src/b.rs", "src/a.rs"], "abc123")

    assert lines[3] == "// | Schema: src/b.rs, src/a.rs"
    assert lines[4] == "// | Digest: abc123"


def test_compute_digest_is_deterministic_and_covers_schema_text() -> None:
    first = variantgen.compute_digest(SOURCE, ["enum S { X }"])
    second = variantgen.compute_digest(SOURCE, ["enum S { X }"])

    assert first == second
    assert len(first) == 64
    assert first != variantgen.compute_digest(SOURCE)
    assert first != variantgen.compute_digest(SOURCE, ["enum S { Y }"])


def test_render_file_puts_header_before_transformed_source() -> None:
    content, rendered = variantgen.render_file("src/e.rs", SOURCE)

    header, body = content.split("\n\n", 1)
    assert header.splitlines() == variantgen.format_file_header(
        "src/e.rs", [], variantgen.compute_digest(SOURCE)
    )
    assert body == rendered.text
    assert body.startswith("enum E { A, B(i32) }\n")
    assert "// <variantgen: E>" in body


def test_render_file_uses_schema_sources_for_binding() -> None:
    source = "#[variant_of(S)]\nstruct X;\n"

    content, rendered = variantgen.render_file(
        "src/x.rs", source, [("src/s.rs", "pub enum S { X }\n")]
    )

    assert "// | Schema: src/s.rs" in content
    assert rendered.blocks[0].bindings[0].union == "S"
    assert "impl ::std::convert::From<X> for S {" in content


def test_write_output_creates_parents_then_reports_unchanged(tmp_path: Path) -> None:
    path = tmp_path / "build" / "nested" / "e.rs"
    content = "line one\nline two\n"

    first = variantgen.write_output(path, content)
    mtime = path.stat().st_mtime_ns
    second = variantgen.write_output(path, content)

    assert first == variantgen.WriteResult(path, "generated", 2, len(content))
    assert second.status == "unchanged"
    assert path.stat().st_mtime_ns == mtime
    assert path.read_text(encoding="utf-8") == content


def test_write_output_overwrites_different_content(tmp_path: Path) -> None:
    path = tmp_path / "e.rs"
    path.write_text("old\n", encoding="utf-8")

    result = variantgen.write_output(path, "new\n")

    assert result.status == "generated"
    assert path.read_text(encoding="utf-8") == "new\n"


def test_check_output_reports_missing_stale_and_up_to_date(tmp_path: Path) -> None:
    path = tmp_path / "e.rs"

    assert variantgen.check_output(path, "x\n").status == "missing"
    assert not path.exists()

    path.write_text("y\n", encoding="utf-8")
    assert variantgen.check_output(path, "x\n").status == "stale"
    assert path.read_text(encoding="utf-8") == "y\n"

    path.write_text("x\n", encoding="utf-8")
    assert variantgen.check_output(path, "x\n").status == "up-to-date"


def test_format_error_points_at_line_and_column() -> None:
    text = "enum E {\n    A(i32, b: u8),\n}\n"
    err = variantgen.GenerateError(
        "UNSUPPORTED_SHAPE", "named and unnamed fields cannot be mixed", text.index("b:")
    )

    message = variantgen.format_error(Path("src/e.rs"), text, err)

    assert message == (
        "src/e.rs:2:12: error [UNSUPPORTED_SHAPE]: named and unnamed fields cannot be mixed"
    )


def test_render_file_attributes_schema_scan_errors_to_the_schema_file() -> None:
    schema_text = 'pub enum S { X }\nconst BAD: &str = "never closed;\n'

    with pytest.raises(variantgen.GenerateError) as exc_info:
        variantgen.render_file("src/x.rs", "struct Plain;\n", [("src/s.rs", schema_text)])

    err = exc_info.value
    assert err.code == "PARSE_ERROR"
    assert err.source == "src/s.rs"
    assert variantgen.line_col(schema_text, err.index) == (2, 19)


def test_render_file_errors_in_input_have_no_source() -> None:
    with pytest.raises(variantgen.GenerateError) as exc_info:
        variantgen.render_file("src/x.rs", "#[extract_variant]\nenum E<T> { A(T) }\n")

    assert exc_info.value.source is None
