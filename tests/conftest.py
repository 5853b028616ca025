import argparse
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import variantgen  # noqa: E402


VALUE_SOURCE = textwrap.dedent(
    """\
    #[extract_variant]
    #[derive(Debug, Clone, PartialEq)]
    pub enum Value {
        Int(i64),
        Float(f64),
        Str(String),
    }
    """
)

SHAPE_SOURCE = textwrap.dedent(
    """\
    pub enum Shape {
        Coord(i32, i32),
        Origin,
    }
    """
)


@pytest.fixture
def write_rust(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write_rust(name: str, source: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write_rust


@pytest.fixture
def existing_paths(write_rust: Callable[[str, str], Path], tmp_path: Path) -> dict[str, Path]:
    return {
        "input": write_rust("src/value.rs", VALUE_SOURCE),
        "schema": write_rust("src/shape.rs", SHAPE_SOURCE),
        "output": tmp_path / "build" / "value.rs",
    }


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "input": existing_paths["input"],
            "output": existing_paths["output"],
            "schema": None,
            "check": False,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def read_union() -> Callable[[str], variantgen.UnionDeclaration]:
    def _read_union(source: str) -> variantgen.UnionDeclaration:
        text = textwrap.dedent(source)
        items = [item for item in variantgen.scan_items(text) if item.kind == "enum"]
        assert len(items) == 1, f"expected exactly one enum, found {len(items)}"
        return variantgen.read_union(text, items[0])

    return _read_union


@pytest.fixture
def read_record() -> Callable[[str], variantgen.RecordDeclaration]:
    def _read_record(source: str) -> variantgen.RecordDeclaration:
        text = textwrap.dedent(source)
        items = [item for item in variantgen.scan_items(text) if item.kind == "struct"]
        assert len(items) == 1, f"expected exactly one struct, found {len(items)}"
        return variantgen.read_record(text, items[0])

    return _read_record
