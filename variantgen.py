"""Enum variant extraction generator for Rust sources.

Reads Rust source containing `#[extract_variant]` enums and
`#[variant_of(...)]` structs, and writes the same source back out with
generated declarations inserted after each annotated item:

- every variant of an `#[extract_variant]` enum becomes a standalone struct
  with `From`, `TryFrom` and `Variant` impls against the enum;
- a hand-written `#[variant_of(Enum)]` struct gets the same three impls
  against the matching enum variant.

Usage:
    python variantgen.py --in src/shapes.rs --out build/shapes.rs
"""

import argparse
import hashlib
import re
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import NamedTuple

GENERATOR_NAME = "variantgen"
GENERATOR_VERSION = "0.3.0"
MARKER_TRAIT = "::variant_traits::Variant"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    input_path: Path
    output_path: Path
    schema_paths: tuple[Path, ...]
    check: bool


VALID_CONFIG_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "SAME_INPUT_OUTPUT",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_CONFIG_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def validate_path_exists(path: Path, flag: str, suggestion: str | None = None) -> Path:
    if path.is_file():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing Rust source file for this flag.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract Rust enum variants into standalone structs"
    )
    parser.add_argument(
        "--in", dest="input", type=Path, required=True, help="Rust source to transform"
    )
    parser.add_argument(
        "--out", dest="output", type=Path, required=True, help="Generated Rust source"
    )
    parser.add_argument(
        "--schema",
        action="append",
        type=Path,
        default=None,
        help="Extra source scanned for #[variant_of] target enums (repeatable)",
    )
    parser.add_argument(
        "--check", action="store_true", default=False, help="Check output is up to date"
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    input_path = validate_path_exists(args.input, "--in")
    schema_paths = tuple(
        validate_path_exists(
            path,
            "--schema",
            "Pass the Rust file that declares the enum named in #[variant_of].",
        )
        for path in (args.schema or [])
    )

    if args.output.resolve() == input_path.resolve():
        raise ConfigError(
            "SAME_INPUT_OUTPUT",
            f"--out must differ from --in: {args.output}",
            "Write the generated source to a separate file, e.g. under build/.",
        )

    return GenerateConfig(
        input_path=input_path,
        output_path=args.output,
        schema_paths=schema_paths,
        check=bool(args.check),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    return validate_config(parse_args(argv))


# ===--- Generation errors ---=== #


VALID_ERROR_CODES = {
    "PARSE_ERROR",
    "UNSUPPORTED_SHAPE",
    "FIELD_MISMATCH",
    "UNKNOWN_VARIANT",
    "UNKNOWN_UNION",
    "NAME_COLLISION",
    "DUPLICATE_ATTRIBUTE",
    "INVALID_PARAMETER",
}


class GenerateError(Exception):
    """A failure found while transforming one annotated declaration.

    Every failure aborts the whole file: nothing is written.

    Attributes:
        code: One of VALID_ERROR_CODES.
        message: Human-readable description.
        index: Offset into the source text of the offending declaration or
            attribute. format_error turns it into a path:line:col location.
        source: Label of the --schema file the offset points into, or None
            when it points into the input file.
    """

    def __init__(
        self, code: str, message: str, index: int = 0, source: str | None = None
    ):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown generate error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.index = index
        self.source = source


def line_col(text: str, index: int) -> tuple[int, int]:
    line = text.count("\n", 0, index) + 1
    line_start = text.rfind("\n", 0, index)
    col = index - line_start
    return line, col


def format_error(path: Path, text: str, error: GenerateError) -> str:
    line, col = line_col(text, error.index)
    return f"{path}:{line}:{col}: error [{error.code}]: {error.message}"


# ===--- Source scanning ---=== #

_IDENT_RE = re.compile(r"(?:r#)?[A-Za-z_]\w*")
_PLAIN_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_ATTR_PATH_RE = re.compile(r"[A-Za-z_]\w*(?:\s*::\s*[A-Za-z_]\w*)*")
_CHAR_LITERAL_RE = re.compile(
    r"'(?:\\(?:x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]{1,6}\}|.)|[^\\'\n])'"
)
_RAW_STRING_RE = re.compile(r'b?r(#*)"')
_VISIBILITY_SCOPE_RE = re.compile(r"\(\s*(?:crate|self|super|in\s+[\w:\s]+?)\s*\)")
_TYPE_TOKEN_RE = re.compile(r"'?[A-Za-z_]\w*|\d[\w.]*|::|->|=>|\S")
_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_ITEM_KEYWORDS = ("enum", "struct")


def _at_word_start(text: str, i: int) -> bool:
    return i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")


def _starts_keyword(text: str, i: int, keywords: Sequence[str]) -> bool:
    if not _at_word_start(text, i):
        return False
    m = _IDENT_RE.match(text, i)
    return bool(m) and m.group(0) in keywords


def is_doc_comment(text: str, i: int) -> bool:
    if text.startswith("///", i):
        return not text.startswith("////", i)
    if text.startswith("/**", i):
        return not (text.startswith("/***", i) or text.startswith("/**/", i))
    return False


def skip_comment_or_literal(text: str, i: int) -> int | None:
    """Return the index just past a comment or literal starting at `i`.

    Returns None when nothing of the kind starts at `i`. Block comments
    nest. A lone `'` is a lifetime tick and is skipped on its own.
    """
    if text.startswith("//", i):
        j = text.find("\n", i)
        return len(text) if j == -1 else j + 1
    if text.startswith("/*", i):
        depth = 0
        j = i
        n = len(text)
        while j < n:
            if text.startswith("/*", j):
                depth += 1
                j += 2
            elif text.startswith("*/", j):
                depth -= 1
                j += 2
                if depth == 0:
                    return j
            else:
                j += 1
        raise GenerateError("PARSE_ERROR", "unterminated block comment", i)

    ch = text[i]
    if ch in "br" and _at_word_start(text, i):
        m = _RAW_STRING_RE.match(text, i)
        if m:
            closing = '"' + m.group(1)
            j = text.find(closing, m.end())
            if j == -1:
                raise GenerateError("PARSE_ERROR", "unterminated raw string literal", i)
            return j + len(closing)
    if ch == '"':
        j = i + 1
        n = len(text)
        while j < n:
            if text[j] == "\\":
                j += 2
                continue
            if text[j] == '"':
                return j + 1
            j += 1
        raise GenerateError("PARSE_ERROR", "unterminated string literal", i)
    if ch == "'":
        m = _CHAR_LITERAL_RE.match(text, i)
        return m.end() if m else i + 1
    return None


def skip_trivia(text: str, i: int, keep_docs: bool = False) -> int:
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
            continue
        if text.startswith("//", i) or text.startswith("/*", i):
            if keep_docs and is_doc_comment(text, i):
                return i
            i = skip_comment_or_literal(text, i)
            continue
        return i
    return i


def parse_identifier(text: str, i: int) -> tuple[str, int]:
    m = _IDENT_RE.match(text, i)
    if not m:
        raise GenerateError("PARSE_ERROR", "expected identifier", i)
    return m.group(0), m.end()


def find_matching(text: str, open_index: int) -> int:
    """Return the index of the bracket closing the one at `open_index`."""
    opener = text[open_index] if open_index < len(text) else ""
    if opener not in _CLOSERS:
        raise GenerateError(
            "PARSE_ERROR", f"expected an opening bracket, found {opener!r}", open_index
        )

    stack: list[str] = []
    i = open_index
    n = len(text)
    while i < n:
        skipped = skip_comment_or_literal(text, i)
        if skipped is not None:
            i = skipped
            continue
        ch = text[i]
        if ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ")]}":
            if not stack or stack[-1] != ch:
                raise GenerateError("PARSE_ERROR", f"unbalanced {ch!r}", i)
            stack.pop()
            if not stack:
                return i
        i += 1
    raise GenerateError("PARSE_ERROR", f"unclosed {opener!r}", open_index)


def split_top_level(text: str, start: int, end: int) -> list[tuple[int, int]]:
    """Split text[start:end] at commas outside any bracket or generic list.

    Returns (start, end) spans; spans holding only whitespace or comments
    are dropped, so trailing commas are accepted.
    """
    spans: list[tuple[int, int]] = []
    depth = 0
    angle = 0
    piece_start = start
    i = start
    while i < end:
        skipped = skip_comment_or_literal(text, i)
        if skipped is not None:
            i = skipped
            continue
        ch = text[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "<" and depth == 0:
            angle += 1
        elif ch == ">" and depth == 0 and text[i - 1] not in "-=":
            angle = max(angle - 1, 0)
        elif ch == "," and depth == 0 and angle == 0:
            spans.append((piece_start, i))
            piece_start = i + 1
        i += 1
    spans.append((piece_start, end))
    return [(s, e) for s, e in spans if skip_trivia(text, s) < e]


def strip_comments(text: str, start: int, end: int) -> str:
    pieces: list[str] = []
    i = start
    while i < end:
        if text.startswith("//", i) or text.startswith("/*", i):
            i = min(skip_comment_or_literal(text, i), end)
            pieces.append(" ")
            continue
        skipped = skip_comment_or_literal(text, i)
        j = min(skipped, end) if skipped is not None else i + 1
        pieces.append(text[i:j])
        i = j
    return "".join(pieces)


@dataclass(frozen=True)
class Attribute:
    """One outer attribute or doc comment in the source.

    Attributes:
        path: Attribute path with whitespace removed, e.g. "derive" or
            "serde". Doc comments use "doc".
        text: The attribute exactly as written, e.g. "#[derive(Debug)]" or
            "/// A point".
        start: Offset of the first character.
        end: Offset just past the last character.
        args: Text between the parentheses of `#[path(args)]`, or None.
        args_start: Offset of args in the source, -1 when args is None.
    """

    path: str
    text: str
    start: int
    end: int
    args: str | None = None
    args_start: int = -1


def parse_doc_comment(text: str, i: int) -> Attribute:
    end = skip_comment_or_literal(text, i)
    if text.startswith("///", i) and text[end - 1 : end] == "\n":
        end -= 1
    raw = text[i:end].rstrip()
    return Attribute(path="doc", text=raw, start=i, end=i + len(raw))


def parse_attribute(text: str, i: int) -> Attribute:
    close = find_matching(text, i + 1)
    j = skip_trivia(text, i + 2)
    m = _ATTR_PATH_RE.match(text, j, close)
    if not m:
        raise GenerateError("PARSE_ERROR", "expected attribute path", j)
    path = re.sub(r"\s+", "", m.group(0))

    args = None
    args_start = -1
    k = skip_trivia(text, m.end())
    if k < close and text[k] == "(":
        args_close = find_matching(text, k)
        args = text[k + 1 : args_close]
        args_start = k + 1

    return Attribute(
        path=path,
        text=text[i : close + 1],
        start=i,
        end=close + 1,
        args=args,
        args_start=args_start,
    )


def read_prelude(text: str, i: int) -> tuple[list[Attribute], int]:
    """Read the doc comments and outer attributes that start at `i`."""
    attrs: list[Attribute] = []
    while True:
        i = skip_trivia(text, i, keep_docs=True)
        if is_doc_comment(text, i):
            attrs.append(parse_doc_comment(text, i))
        elif text.startswith("#[", i):
            attrs.append(parse_attribute(text, i))
        else:
            return attrs, i
        i = attrs[-1].end


def read_visibility(text: str, i: int) -> tuple[str, int]:
    m = _IDENT_RE.match(text, i)
    if not m or m.group(0) != "pub":
        return "", i
    j = skip_trivia(text, m.end())
    scope = _VISIBILITY_SCOPE_RE.match(text, j)
    if scope:
        return "pub" + " ".join(scope.group(0).split()), scope.end()
    return "pub", m.end()


@dataclass(frozen=True)
class SourceItem:
    """An `enum` or `struct` declaration found by scan_items.

    Only the head of the item is read here; its body is parsed on demand
    by read_union or read_record.

    Attributes:
        kind: "enum" or "struct".
        name: Declared identifier.
        attrs: Doc comments and outer attributes preceding the item.
        visibility: Visibility as written ("", "pub", "pub(crate)", ...).
        start: Offset of the first doc comment, attribute or keyword.
        body_index: Offset just past the identifier.
        module: Names of the inline `mod` blocks enclosing the item,
            outermost first.
    """

    kind: str
    name: str
    attrs: tuple[Attribute, ...]
    visibility: str
    start: int
    body_index: int
    module: tuple[str, ...] = ()

    @property
    def path(self) -> tuple[str, ...]:
        return (*self.module, self.name)


def attrs_named(attrs: Sequence[Attribute], path: str) -> list[Attribute]:
    return [attr for attr in attrs if attr.path == path]


def read_item(
    text: str, start: int, module: tuple[str, ...] = ()
) -> tuple[SourceItem | None, int]:
    attrs, i = read_prelude(text, start)
    visibility, i = read_visibility(text, i)
    i = skip_trivia(text, i)
    m = _IDENT_RE.match(text, i)
    if not m or m.group(0) not in _ITEM_KEYWORDS:
        return None, max(i, start + 1)

    j = skip_trivia(text, m.end())
    name_match = _IDENT_RE.match(text, j)
    if not name_match:
        return None, m.end()

    item = SourceItem(
        kind=m.group(0),
        name=name_match.group(0),
        attrs=tuple(attrs),
        visibility=visibility,
        start=start,
        body_index=name_match.end(),
        module=module,
    )
    return item, name_match.end()


def scan_items(text: str) -> list[SourceItem]:
    """Find every enum and struct declaration, including ones nested in modules."""
    items: list[SourceItem] = []
    # (name, offset of closing brace) for each open inline module
    modules: list[tuple[str, int]] = []
    i = 0
    n = len(text)
    while i < n:
        while modules and i > modules[-1][1]:
            modules.pop()
        if _starts_keyword(text, i, ("mod",)):
            j = skip_trivia(text, i + 3)
            m = _IDENT_RE.match(text, j)
            if m and text.startswith("{", skip_trivia(text, m.end())):
                body = skip_trivia(text, m.end())
                modules.append((m.group(0), find_matching(text, body)))
                i = body + 1
            else:
                i += 3
            continue
        if (
            is_doc_comment(text, i)
            or text.startswith("#[", i)
            or _starts_keyword(text, i, ("pub", *_ITEM_KEYWORDS))
        ):
            item, i = read_item(text, i, tuple(name for name, _ in modules))
            if item is not None:
                items.append(item)
            continue
        skipped = skip_comment_or_literal(text, i)
        i = skipped if skipped is not None else i + 1
    return items


# ===--- Schema model ---=== #


@dataclass(frozen=True)
class FieldType:
    """An uninterpreted field type.

    Compared by tokens, so `Vec< u8 >` equals `Vec<u8>`; rendered as written
    with runs of whitespace collapsed.
    """

    tokens: tuple[str, ...]
    text: str = field(default="", compare=False)


def parse_field_type(raw: str) -> FieldType:
    return FieldType(tokens=tuple(_TYPE_TOKEN_RE.findall(raw)), text=" ".join(raw.split()))


@dataclass(frozen=True)
class Field:
    name: str | None
    type: FieldType
    attrs: tuple[str, ...] = field(default=(), compare=False)


class ShapeKind(Enum):
    UNIT = "unit"
    POSITIONAL = "positional"
    NAMED = "named"


@dataclass(frozen=True)
class Shape:
    kind: ShapeKind
    fields: tuple[Field, ...] = ()


class MetadataCategory(Enum):
    DERIVE = "derive"
    DOC = "doc"
    OTHER = "other"


@dataclass(frozen=True)
class Metadata:
    """One attribute attached to a declaration, tagged by category.

    Only DERIVE entries on an enum are forwarded to its extracted structs.

    Attributes:
        category: DERIVE for `#[derive(...)]`, DOC for doc comments and
            `#[doc = ...]`, OTHER for everything else.
        text: The attribute as written.
        traits: Derived trait paths for DERIVE entries, empty otherwise.
    """

    category: MetadataCategory
    text: str
    traits: tuple[str, ...] = ()


def classify_metadata(attr: Attribute) -> Metadata:
    if attr.path == "doc":
        return Metadata(MetadataCategory.DOC, attr.text)
    if attr.path == "derive" and attr.args is not None:
        traits = tuple(
            re.sub(r"\s+", "", strip_comments(attr.args, s, e))
            for s, e in split_top_level(attr.args, 0, len(attr.args))
        )
        return Metadata(MetadataCategory.DERIVE, attr.text, traits)
    return Metadata(MetadataCategory.OTHER, attr.text)


@dataclass(frozen=True)
class VariantDescriptor:
    """One enum variant, normalized.

    Attributes:
        name: Variant identifier, unique within its enum.
        shape: Field layout.
        metadata: Variant-local entries: the variant's own doc comments and
            every attribute listed in its `#[variant_attrs(...)]`.
        excluded: True when the variant carries `#[exclude]`.
        index: Offset of the variant in the source, for error locations.
        directive_spans: Source spans of `#[exclude]` / `#[variant_attrs]`.
    """

    name: str
    shape: Shape
    metadata: tuple[Metadata, ...] = ()
    excluded: bool = False
    index: int = 0
    directive_spans: tuple[tuple[int, int], ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class UnionDeclaration:
    """A parsed enum. Never modified by generation.

    Attributes:
        name: Enum identifier.
        visibility: Visibility as written; extracted structs reuse it.
        variants: Variants in declaration order.
        metadata: Enum-level attributes, excluding the generator's own.
        start: Offset of the first attribute or keyword.
        end: Offset just past the closing brace.
        directive_spans: Source spans of every generator-owned attribute on
            the enum and its variants, removed from the re-emitted source.
        derive_edits: (start, end, replacement) edits dropping the
            `extract_variant` trait from `#[derive(...)]` attributes.
    """

    name: str
    visibility: str
    variants: tuple[VariantDescriptor, ...]
    metadata: tuple[Metadata, ...] = ()
    start: int = 0
    end: int = 0
    directive_spans: tuple[tuple[int, int], ...] = field(default=(), compare=False)
    derive_edits: tuple[tuple[int, int, str], ...] = field(default=(), compare=False)

    def find_variant(self, name: str) -> VariantDescriptor | None:
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None


@dataclass(frozen=True)
class RecordDeclaration:
    name: str
    visibility: str
    shape: Shape
    metadata: tuple[Metadata, ...] = ()
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class ExtractOptions:
    prefix: str = ""
    suffix: str = ""
    no_impl: bool = False


# ===--- Schema reader ---=== #

UNION_DIRECTIVES = frozenset({"extract_variant", "prefix", "suffix", "no_impl"})
VARIANT_DIRECTIVES = frozenset({"variant_attrs", "exclude"})
RECORD_DIRECTIVES = frozenset({"variant_of"})
EXTRACT_DERIVE = "extract_variant"
BIND_DERIVE = "Variant"

_NAMED_FIELD_RE = re.compile(r"((?:r#)?[A-Za-z_]\w*)\s*:(?!:)")
_OPTION_RE = re.compile(r"\s*([A-Za-z_]\w*)\s*(?:\(([^()]*)\))?\s*,?")
_VARIANT_OF_RE = re.compile(
    r"\s*((?:::\s*)?[A-Za-z_]\w*(?:\s*::\s*[A-Za-z_]\w*)*)\s*"
    r"(?:,\s*([A-Za-z_]\w*)\s*)?,?\s*"
)
_PATH_ROOTS = frozenset({"", "crate", "self", "super"})


def read_fields(
    text: str, open_index: int, close_index: int, named: bool
) -> tuple[Field, ...]:
    fields: list[Field] = []
    for start, end in split_top_level(text, open_index + 1, close_index):
        attrs, i = read_prelude(text, start)
        _, i = read_visibility(text, i)
        i = skip_trivia(text, i)
        if i >= end:
            raise GenerateError("PARSE_ERROR", "expected field after attributes", start)

        m = _NAMED_FIELD_RE.match(text, i, end)
        if named != bool(m):
            raise GenerateError(
                "UNSUPPORTED_SHAPE", "named and unnamed fields cannot be mixed", i
            )
        type_start = m.end() if m else i
        raw_type = strip_comments(text, type_start, end).strip()
        if not raw_type:
            raise GenerateError("PARSE_ERROR", "expected field type", type_start)

        fields.append(
            Field(
                name=m.group(1) if m else None,
                type=parse_field_type(raw_type),
                attrs=tuple(attr.text for attr in attrs),
            )
        )
    return tuple(fields)


def classify_shape(fields: Sequence[Field], index: int = 0) -> Shape:
    if not fields:
        return Shape(ShapeKind.UNIT)
    named = [member.name is not None for member in fields]
    if all(named):
        return Shape(ShapeKind.NAMED, tuple(fields))
    if not any(named):
        return Shape(ShapeKind.POSITIONAL, tuple(fields))
    raise GenerateError("UNSUPPORTED_SHAPE", "named and unnamed fields cannot be mixed", index)


def read_variant_attrs(text: str, attr: Attribute) -> list[Metadata]:
    if attr.args is None:
        raise GenerateError(
            "PARSE_ERROR", "`variant_attrs` expects a list of attributes", attr.start
        )
    args_end = attr.args_start + len(attr.args)
    inner, i = read_prelude(text, attr.args_start)
    if skip_trivia(text, i) < args_end:
        raise GenerateError(
            "PARSE_ERROR", "expected `#[...]` inside `variant_attrs`", i
        )
    return [classify_metadata(entry) for entry in inner]


def read_variant(text: str, start: int, end: int) -> VariantDescriptor:
    attrs, i = read_prelude(text, start)
    index = i
    name, i = parse_identifier(text, i)
    i = skip_trivia(text, i)

    fields: tuple[Field, ...] = ()
    if i < end and text[i] in "({":
        close = find_matching(text, i)
        fields = read_fields(text, i, close, named=text[i] == "{")
        i = skip_trivia(text, close + 1)
    if i < end and text[i] != "=":
        raise GenerateError("PARSE_ERROR", f"unexpected tokens after variant `{name}`", i)

    metadata: list[Metadata] = []
    spans: list[tuple[int, int]] = []
    excluded = False
    has_variant_attrs = False
    for attr in attrs:
        if attr.path == "exclude":
            excluded = True
            spans.append((attr.start, attr.end))
        elif attr.path == "variant_attrs":
            if has_variant_attrs:
                raise GenerateError(
                    "DUPLICATE_ATTRIBUTE", "duplicate #[variant_attrs] attribute", attr.start
                )
            has_variant_attrs = True
            metadata.extend(read_variant_attrs(text, attr))
            spans.append((attr.start, attr.end))
        elif attr.path == "doc":
            metadata.append(classify_metadata(attr))

    return VariantDescriptor(
        name=name,
        shape=classify_shape(fields, index),
        metadata=tuple(metadata),
        excluded=excluded,
        index=index,
        directive_spans=tuple(spans),
    )


def build_variant_model(
    text: str, open_index: int, close_index: int
) -> tuple[VariantDescriptor, ...]:
    """Read the variants between an enum's braces, in declaration order.

    Raises:
        GenerateError: NAME_COLLISION when two variants share a name,
            UNSUPPORTED_SHAPE for mixed field lists, PARSE_ERROR otherwise.
    """
    variants: list[VariantDescriptor] = []
    seen: set[str] = set()
    for start, end in split_top_level(text, open_index + 1, close_index):
        variant = read_variant(text, start, end)
        if variant.name in seen:
            raise GenerateError(
                "NAME_COLLISION", f"duplicate variant `{variant.name}`", variant.index
            )
        seen.add(variant.name)
        variants.append(variant)
    return tuple(variants)


def marker_derive_edit(
    text: str, attr: Attribute, trait: str
) -> tuple[int, int, str] | None:
    """Edit dropping `trait` from a `#[derive(...)]` attribute.

    Returns None when `attr` does not derive `trait`. The attribute is
    removed entirely when `trait` is its only entry.
    """
    entry = classify_metadata(attr)
    if entry.category is not MetadataCategory.DERIVE:
        return None
    rest = [name for name in entry.traits if name.split("::")[-1] != trait]
    if len(rest) == len(entry.traits):
        return None
    if not rest:
        return strip_span(text, attr.start, attr.end)
    return attr.start, attr.end, f"#[derive({', '.join(rest)})]"


def is_extract_target(text: str, item: SourceItem) -> bool:
    """True for an enum marked `#[extract_variant]` or `#[derive(extract_variant)]`."""
    return item.kind == "enum" and any(
        attr.path == EXTRACT_DERIVE or marker_derive_edit(text, attr, EXTRACT_DERIVE)
        for attr in item.attrs
    )


def read_union(text: str, item: SourceItem) -> UnionDeclaration:
    """Parse an enum item into a UnionDeclaration.

    Generic and lifetime parameters are rejected before any variant is read.

    Raises:
        GenerateError: UNSUPPORTED_SHAPE for `enum Name<...>`, or any error
            raised by build_variant_model.
    """
    i = skip_trivia(text, item.body_index)
    if text.startswith("<", i):
        raise GenerateError(
            "UNSUPPORTED_SHAPE",
            f"enum `{item.name}` has generic or lifetime parameters, "
            "which are not supported",
            i,
        )
    if not text.startswith("{", i):
        raise GenerateError("PARSE_ERROR", f"expected `{{` after enum `{item.name}`", i)
    close = find_matching(text, i)
    variants = build_variant_model(text, i, close)

    spans = [(attr.start, attr.end) for attr in item.attrs if attr.path in UNION_DIRECTIVES]
    for variant in variants:
        spans.extend(variant.directive_spans)

    metadata: list[Metadata] = []
    derive_edits: list[tuple[int, int, str]] = []
    for attr in item.attrs:
        if attr.path in UNION_DIRECTIVES:
            continue
        edit = marker_derive_edit(text, attr, EXTRACT_DERIVE)
        if edit is not None:
            # traits sharing a derive with the marker are not forwarded
            derive_edits.append(edit)
        else:
            metadata.append(classify_metadata(attr))

    return UnionDeclaration(
        name=item.name,
        visibility=item.visibility,
        variants=variants,
        metadata=tuple(metadata),
        start=item.start,
        end=close + 1,
        directive_spans=tuple(spans),
        derive_edits=tuple(derive_edits),
    )


def read_record(text: str, item: SourceItem) -> RecordDeclaration:
    i = skip_trivia(text, item.body_index)
    if text.startswith("<", i):
        raise GenerateError(
            "UNSUPPORTED_SHAPE",
            f"struct `{item.name}` has generic or lifetime parameters, "
            "which are not supported",
            i,
        )

    fields: tuple[Field, ...] = ()
    if text.startswith(";", i):
        end = i + 1
    elif text.startswith("(", i):
        close = find_matching(text, i)
        fields = read_fields(text, i, close, named=False)
        j = skip_trivia(text, close + 1)
        if not text.startswith(";", j):
            raise GenerateError("PARSE_ERROR", f"expected `;` after struct `{item.name}`", j)
        end = j + 1
    elif text.startswith("{", i):
        close = find_matching(text, i)
        fields = read_fields(text, i, close, named=True)
        end = close + 1
    else:
        raise GenerateError("PARSE_ERROR", f"expected struct body for `{item.name}`", i)

    return RecordDeclaration(
        name=item.name,
        visibility=item.visibility,
        shape=classify_shape(fields, i),
        metadata=tuple(
            classify_metadata(attr)
            for attr in item.attrs
            if attr.path not in RECORD_DIRECTIVES
        ),
        start=item.start,
        end=end,
    )


def _option_value(name: str, value: str | None, index: int) -> str | None:
    if name in ("prefix", "suffix"):
        if value is None or not _PLAIN_IDENT_RE.fullmatch(value.strip()):
            raise GenerateError(
                "INVALID_PARAMETER", f"`{name}` expects an identifier, e.g. {name}(My)", index
            )
        return value.strip()
    if name == "no_impl":
        if value is not None:
            raise GenerateError("INVALID_PARAMETER", "`no_impl` takes no arguments", index)
        return None
    raise GenerateError("INVALID_PARAMETER", f"invalid parameter name `{name}`", index)


def read_option_list(attr: Attribute) -> list[tuple[str, str | None, int]]:
    options: list[tuple[str, str | None, int]] = []
    args = attr.args or ""
    pos = 0
    while args[pos:].strip():
        m = _OPTION_RE.match(args, pos)
        if not m or m.end() == pos:
            raise GenerateError(
                "PARSE_ERROR", "malformed `extract_variant` options", attr.args_start + pos
            )
        options.append((m.group(1), m.group(2), attr.args_start + m.start(1)))
        pos = m.end()
    return options


def read_extract_options(attrs: Sequence[Attribute]) -> ExtractOptions:
    """Collect prefix/suffix/no_impl from an enum's attributes.

    Options may be given inside `#[extract_variant(...)]` or as standalone
    `#[prefix(..)]`, `#[suffix(..)]`, `#[no_impl]` attributes, but each at
    most once.

    Raises:
        GenerateError: DUPLICATE_ATTRIBUTE for a repeated option or a second
            `#[extract_variant]`, INVALID_PARAMETER for an unknown option or
            a malformed argument.
    """
    found: dict[str, str | None] = {}

    def _fill(name: str, value: str | None, index: int) -> None:
        if name in found:
            raise GenerateError("DUPLICATE_ATTRIBUTE", f"duplicate `{name}` option", index)
        found[name] = _option_value(name, value, index)

    markers = attrs_named(attrs, "extract_variant")
    if len(markers) > 1:
        raise GenerateError(
            "DUPLICATE_ATTRIBUTE", "duplicate #[extract_variant] attribute", markers[1].start
        )

    for attr in attrs:
        if attr.path == "extract_variant":
            for name, value, index in read_option_list(attr):
                _fill(name, value, index)
        elif attr.path in ("prefix", "suffix", "no_impl"):
            _fill(attr.path, attr.args, attr.start)

    return ExtractOptions(
        prefix=found.get("prefix") or "",
        suffix=found.get("suffix") or "",
        no_impl="no_impl" in found,
    )


def read_variant_of(item: SourceItem) -> tuple[str, str | None, Attribute]:
    """Return (enum path, explicit variant name or None, the attribute)."""
    attrs = attrs_named(item.attrs, "variant_of")
    if len(attrs) > 1:
        raise GenerateError(
            "DUPLICATE_ATTRIBUTE", "duplicate #[variant_of] attribute", attrs[1].start
        )
    attr = attrs[0]
    m = _VARIANT_OF_RE.fullmatch(attr.args or "")
    if attr.args is None or not m:
        raise GenerateError(
            "INVALID_PARAMETER",
            "expected #[variant_of(Enum)] or #[variant_of(Enum, Variant)]",
            attr.start,
        )
    return re.sub(r"\s+", "", m.group(1)), m.group(2), attr


@dataclass(frozen=True)
class UnionSource:
    """An enum declaration that a `#[variant_of]` struct may refer to.

    Attributes:
        label: Path of the file the enum was found in.
        text: Full text of that file.
        item: The enum's SourceItem.
    """

    label: str
    text: str
    item: SourceItem


def collect_union_sources(label: str, text: str) -> list[UnionSource]:
    return [UnionSource(label, text, item) for item in scan_items(text) if item.kind == "enum"]


def resolve_union(
    union_path: str,
    local: Sequence[UnionSource],
    schema: Sequence[UnionSource],
    index: int,
) -> UnionDeclaration:
    """Find and parse the enum a `#[variant_of]` path refers to.

    Candidates share the path's last segment. When there are several, the
    ones whose module path ends with the written path are kept. Enums from
    the input file win over enums from schema files. Errors in a schema
    file are reported at the binding site, naming the file.
    """
    segments = tuple(union_path.split("::"))
    while segments[:-1] and segments[0] in _PATH_ROOTS:
        segments = segments[1:]
    name = segments[-1]
    for scope in (local, schema):
        matches = [source for source in scope if source.item.name == name]
        if len(matches) > 1:
            matches = [
                source for source in matches
                if source.item.path[-len(segments):] == segments
            ] or matches
        if len(matches) > 1:
            declared = ", ".join(
                sorted(f"{source.label}: {'::'.join(source.item.path)}" for source in matches)
            )
            raise GenerateError(
                "UNKNOWN_UNION",
                f"enum path `{union_path}` is ambiguous ({declared})",
                index,
            )
        if not matches:
            continue
        source = matches[0]
        if scope is local:
            return read_union(source.text, source.item)
        try:
            return read_union(source.text, source.item)
        except GenerateError as err:
            raise GenerateError(
                err.code, f"{err.message} (enum `{name}` in {source.label})", index
            ) from err
    raise GenerateError("UNKNOWN_UNION", f"cannot find enum `{union_path}`", index)


def describe_shape_mismatch(expected: Shape, actual: Shape) -> str | None:
    if expected.kind is not actual.kind:
        return f"expected a {expected.kind.value} shape, found {actual.kind.value}"
    if len(expected.fields) != len(actual.fields):
        return f"expected {len(expected.fields)} fields, found {len(actual.fields)}"
    for position, (want, got) in enumerate(zip(expected.fields, actual.fields)):
        if want.name != got.name:
            return f"field {position}: expected name `{want.name}`, found `{got.name}`"
        if want.type != got.type:
            return (
                f"field {position}: expected type `{want.type.text}`, "
                f"found `{got.type.text}`"
            )
    return None


def match_variant(
    record: RecordDeclaration, union: UnionDeclaration, variant_name: str, index: int
) -> VariantDescriptor:
    """Check that a hand-written struct mirrors the named variant exactly.

    Raises:
        GenerateError: UNKNOWN_VARIANT when the enum has no such variant,
            FIELD_MISMATCH when field count, order, names or types differ.
    """
    variant = union.find_variant(variant_name)
    if variant is None:
        raise GenerateError(
            "UNKNOWN_VARIANT", f"enum `{union.name}` has no variant `{variant_name}`", index
        )
    mismatch = describe_shape_mismatch(variant.shape, record.shape)
    if mismatch is not None:
        raise GenerateError(
            "FIELD_MISMATCH",
            f"struct `{record.name}` does not match `{union.name}::{variant_name}`: {mismatch}",
            index,
        )
    return variant


# ===--- Attribute resolution ---=== #


def merge_metadata(entries: Sequence[Metadata]) -> tuple[Metadata, ...]:
    """Merge metadata into the order it is emitted in: docs, derive, others.

    All DERIVE entries collapse into one `#[derive(...)]` with each trait
    once, in first-seen order. Other attributes are kept once each.
    """
    docs = [entry for entry in entries if entry.category is MetadataCategory.DOC]
    traits: list[str] = []
    others: list[Metadata] = []
    seen_others: set[str] = set()
    for entry in entries:
        if entry.category is MetadataCategory.DERIVE:
            traits.extend(t for t in entry.traits if t not in traits)
        elif entry.category is MetadataCategory.OTHER:
            key = re.sub(r"\s+", "", entry.text)
            if key not in seen_others:
                seen_others.add(key)
                others.append(entry)

    merged = list(docs)
    if traits:
        merged.append(
            Metadata(MetadataCategory.DERIVE, f"#[derive({', '.join(traits)})]", tuple(traits))
        )
    merged.extend(others)
    return tuple(merged)


def resolve_attributes(
    variant: VariantDescriptor, union_metadata: Sequence[Metadata]
) -> tuple[Metadata, ...] | None:
    """Compute the attributes of the struct extracted from `variant`.

    Returns None for an excluded variant. Otherwise the variant's own
    entries are kept and, from the enum, only DERIVE entries are added.
    """
    if variant.excluded:
        return None
    forwarded = [
        entry for entry in union_metadata if entry.category is MetadataCategory.DERIVE
    ]
    return merge_metadata([*variant.metadata, *forwarded])


# ===--- Name resolution ---=== #


@dataclass(frozen=True)
class GeneratedNameSet:
    """Struct identifiers chosen for one enum, in variant order."""

    union: str
    names: tuple[tuple[str, str], ...]

    def identifier_for(self, variant: str) -> str:
        return dict(self.names)[variant]


def resolve_record_name(variant_name: str, options: ExtractOptions) -> str:
    return f"{options.prefix}{variant_name}{options.suffix}"


def resolve_generated_names(
    union: UnionDeclaration, options: ExtractOptions
) -> GeneratedNameSet:
    """Name every non-excluded variant's struct.

    Raises:
        GenerateError: NAME_COLLISION when a name equals the enum's own
            identifier or another generated name.
    """
    owners: dict[str, str] = {}
    names: list[tuple[str, str]] = []
    for variant in union.variants:
        if variant.excluded:
            continue
        identifier = resolve_record_name(variant.name, options)
        if identifier == union.name:
            raise GenerateError(
                "NAME_COLLISION",
                f"struct `{identifier}` for variant `{variant.name}` "
                f"collides with enum `{union.name}`",
                variant.index,
            )
        if identifier in owners:
            raise GenerateError(
                "NAME_COLLISION",
                f"struct `{identifier}` for variant `{variant.name}` collides with "
                f"the struct generated for variant `{owners[identifier]}`",
                variant.index,
            )
        owners[identifier] = variant.name
        names.append((variant.name, identifier))
    return GeneratedNameSet(union=union.name, names=tuple(names))


# ===--- Record emission ---=== #


def emit_record(
    variant: VariantDescriptor,
    identifier: str,
    metadata: tuple[Metadata, ...],
    visibility: str,
) -> RecordDeclaration:
    return RecordDeclaration(
        name=identifier,
        visibility=visibility,
        shape=variant.shape,
        metadata=metadata,
    )


def render_record(record: RecordDeclaration) -> list[str]:
    """Render a struct declaration; every field is made `pub`."""
    lines: list[str] = []
    for entry in record.metadata:
        lines.extend(entry.text.splitlines())

    vis = f"{record.visibility} " if record.visibility else ""
    head = f"{vis}struct {record.name}"
    shape = record.shape

    if shape.kind is ShapeKind.UNIT:
        lines.append(f"{head};")
    elif shape.kind is ShapeKind.POSITIONAL:
        if any(member.attrs for member in shape.fields):
            lines.append(f"{head}(")
            for member in shape.fields:
                lines.extend(f"    {attr}" for attr in member.attrs)
                lines.append(f"    pub {member.type.text},")
            lines.append(");")
        else:
            parts = ", ".join(f"pub {member.type.text}" for member in shape.fields)
            lines.append(f"{head}({parts});")
    else:
        lines.append(f"{head} {{")
        for member in shape.fields:
            lines.extend(f"    {attr}" for attr in member.attrs)
            lines.append(f"    pub {member.name}: {member.type.text},")
        lines.append("}")
    return lines


# ===--- Conversion emission ---=== #


@dataclass(frozen=True)
class ConversionBinding:
    """A (struct, enum, variant) triple that gets From/TryFrom/Variant impls.

    Attributes:
        record: Struct identifier.
        union: Enum path as it appears in generated code.
        variant: Variant identifier.
        shape: Field layout shared by the struct and the variant.
    """

    record: str
    union: str
    variant: str
    shape: Shape


def emit_conversions(
    record: RecordDeclaration, union_path: str, variant_name: str
) -> ConversionBinding:
    return ConversionBinding(
        record=record.name, union=union_path, variant=variant_name, shape=record.shape
    )


def field_pattern(shape: Shape) -> str:
    # `Name {}` is valid for unit, empty tuple and empty braced forms alike.
    if shape.kind is ShapeKind.NAMED:
        return " { " + ", ".join(member.name for member in shape.fields) + " }"
    if shape.kind is ShapeKind.POSITIONAL:
        return "(" + ", ".join(f"_{i}" for i in range(len(shape.fields))) + ")"
    return " {}"


def render_conversions(binding: ConversionBinding) -> list[str]:
    record, union, variant = binding.record, binding.union, binding.variant
    pattern = field_pattern(binding.shape)
    return [
        f"impl ::std::convert::From<{record}> for {union} {{",
        f"    fn from({record}{pattern}: {record}) -> Self {{",
        f"        Self::{variant}{pattern}",
        "    }",
        "}",
        f"impl ::std::convert::TryFrom<{union}> for {record} {{",
        f"    type Error = {union};",
        f"    fn try_from(value: {union}) -> ::std::result::Result<Self, Self::Error> {{",
        f"        if let {union}::{variant}{pattern} = value {{ Ok({record}{pattern}) }} "
        "else { Err(value) }",
        "    }",
        "}",
        f"impl {MARKER_TRAIT}<{union}> for {record} {{}}",
    ]


# ===--- Orchestration ---=== #


@dataclass(frozen=True)
class GeneratedBlock:
    """Everything generated for one annotated declaration.

    Attributes:
        kind: "extract" for an `#[extract_variant]` enum, "bind" for a
            `#[variant_of]` struct.
        target: Identifier of the annotated declaration.
        records: Extracted structs, in variant order. Empty for "bind".
        bindings: Conversion impls to emit. Empty under `no_impl`.
        excluded: Names of variants skipped by `#[exclude]`.
    """

    kind: str
    target: str
    records: tuple[RecordDeclaration, ...] = ()
    bindings: tuple[ConversionBinding, ...] = ()
    excluded: tuple[str, ...] = ()


def extract_all(union: UnionDeclaration, options: ExtractOptions) -> GeneratedBlock:
    """Extract every non-excluded variant of `union` into its own struct.

    All-or-nothing: the first failing variant aborts the whole enum.
    """
    names = resolve_generated_names(union, options)
    records: list[RecordDeclaration] = []
    bindings: list[ConversionBinding] = []
    excluded: list[str] = []

    for variant in union.variants:
        metadata = resolve_attributes(variant, union.metadata)
        if metadata is None:
            excluded.append(variant.name)
            continue
        record = emit_record(
            variant, names.identifier_for(variant.name), metadata, union.visibility
        )
        records.append(record)
        if not options.no_impl:
            bindings.append(emit_conversions(record, union.name, variant.name))

    return GeneratedBlock(
        kind="extract",
        target=union.name,
        records=tuple(records),
        bindings=tuple(bindings),
        excluded=tuple(excluded),
    )


def bind_one(
    record: RecordDeclaration,
    union: UnionDeclaration,
    union_path: str,
    variant_name: str | None = None,
    index: int = 0,
) -> GeneratedBlock:
    """Bind an existing struct to a variant; the variant defaults to the struct's name."""
    name = variant_name or record.name
    match_variant(record, union, name, index)
    return GeneratedBlock(
        kind="bind",
        target=record.name,
        bindings=(emit_conversions(record, union_path, name),),
    )


def render_block(block: GeneratedBlock) -> list[str]:
    groups: list[list[str]] = []
    bound = {binding.record: binding for binding in block.bindings}
    for record in block.records:
        group = render_record(record)
        binding = bound.pop(record.name, None)
        if binding is not None:
            group.extend(render_conversions(binding))
        groups.append(group)
    for binding in bound.values():
        groups.append(render_conversions(binding))

    lines = [f"// <{GENERATOR_NAME}: {block.target}>"]
    for position, group in enumerate(groups):
        if position:
            lines.append("")
        lines.extend(group)
    lines.append(f"// </{GENERATOR_NAME}: {block.target}>")
    return lines


def line_indent(text: str, index: int) -> str:
    line_start = text.rfind("\n", 0, index) + 1
    m = re.match(r"[ \t]*", text[line_start:index])
    return m.group(0) if m else ""


def strip_span(text: str, start: int, end: int) -> tuple[int, int, str]:
    """Edit removing an attribute; its whole line goes when nothing else is on it."""
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", end)
    if line_end == -1:
        line_end = len(text)
    if not text[line_start:start].strip() and not text[end:line_end].strip():
        return line_start, min(line_end + 1, len(text)), ""
    j = end
    while j < len(text) and text[j] in " \t":
        j += 1
    return start, j, ""


def apply_edits(text: str, edits: Sequence[tuple[int, int, str]]) -> str:
    pieces: list[str] = []
    cursor = 0
    for start, end, replacement in sorted(edits, key=lambda edit: (edit[0], edit[1])):
        pieces.append(text[cursor:start])
        pieces.append(replacement)
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


class RenderedSource(NamedTuple):
    text: str
    blocks: tuple[GeneratedBlock, ...]


def render_source(
    text: str,
    schema_unions: Sequence[UnionSource] = (),
    label: str = "<source>",
) -> RenderedSource:
    """Transform one source file.

    Every `#[extract_variant]` enum and `#[variant_of]` struct gets its
    generated code inserted right after it, and the generator's own
    attributes are removed. All other text passes through unchanged.

    Args:
        text: Rust source.
        schema_unions: Enums from other files that `#[variant_of]` may name.
        label: Name of the source file, used in error messages.

    Returns:
        RenderedSource with the transformed text and one GeneratedBlock per
        annotated declaration, in source order.

    Raises:
        GenerateError: On the first failure; nothing is rendered.
    """
    items = scan_items(text)
    local_unions = [UnionSource(label, text, item) for item in items if item.kind == "enum"]
    edits: list[tuple[int, int, str]] = []
    blocks: list[GeneratedBlock] = []

    for item in items:
        if is_extract_target(text, item):
            union = read_union(text, item)
            block = extract_all(union, read_extract_options(item.attrs))
            spans = union.directive_spans
            edits.extend(union.derive_edits)
            end = union.end
        elif item.kind == "struct" and attrs_named(item.attrs, "variant_of"):
            union_path, variant_name, attr = read_variant_of(item)
            record = read_record(text, item)
            union = resolve_union(union_path, local_unions, schema_unions, attr.start)
            block = bind_one(record, union, union_path, variant_name, attr.start)
            spans = ((attr.start, attr.end),)
            for derive in item.attrs:
                edit = marker_derive_edit(text, derive, BIND_DERIVE)
                if edit is not None:
                    edits.append(edit)
            end = record.end
        else:
            continue

        edits.extend(strip_span(text, start, stop) for start, stop in spans)
        indent = line_indent(text, item.start)
        inserted = "\n".join(f"{indent}{line}" if line else "" for line in render_block(block))
        edits.append((end, end, "\n\n" + inserted))
        blocks.append(block)

    return RenderedSource(text=apply_edits(text, edits), blocks=tuple(blocks))


# ===--- File rendering and writing ---=== #

_HEADER_BORDER = "// x-------------------------------------------x //"


def compute_digest(source_text: str, schema_texts: Sequence[str] = ()) -> str:
    h = hashlib.sha256()
    h.update(GENERATOR_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(source_text.encode("utf-8"))
    for schema_text in schema_texts:
        h.update(b"\x00")
        h.update(schema_text.encode("utf-8"))
    return h.hexdigest()


def format_file_header(
    source_label: str, schema_labels: Sequence[str], digest: str
) -> list[str]:
    """Return the boxed comment block at the top of every generated file.

    Output format:
        // x-------------------------------------------x //
        // | Generated by variantgen 0.3.0
        // | Source: src/shapes.rs
        // | Schema: src/other.rs, src/more.rs
        // | Digest: <sha256>
        // x-------------------------------------------x //

    The Schema line is omitted when no schema files were given.
    """
    lines = [
        _HEADER_BORDER,
        f"// | Generated by {GENERATOR_NAME} {GENERATOR_VERSION}",
        f"// | Source: {source_label}",
    ]
    if schema_labels:
        lines.append(f"// | Schema: {', '.join(schema_labels)}")
    lines.append(f"// | Digest: {digest}")
    lines.append(_HEADER_BORDER)
    return lines


def render_file(
    source_label: str,
    text: str,
    schema_sources: Sequence[tuple[str, str]] = (),
) -> tuple[str, RenderedSource]:
    """Render the complete output file for one input source.

    Args:
        source_label: Input path as shown in the header and errors.
        text: Input source text.
        schema_sources: (label, text) pairs for each --schema file.

    Returns:
        (file content, RenderedSource). Content is header, blank line, then
        the transformed source.

    Raises:
        GenerateError: From render_source, or from scanning a schema file;
            the latter carries that file's label in `source`.
    """
    unions: list[UnionSource] = []
    for schema_label, schema_text in schema_sources:
        try:
            unions.extend(collect_union_sources(schema_label, schema_text))
        except GenerateError as err:
            raise GenerateError(err.code, err.message, err.index, schema_label) from err
    rendered = render_source(text, unions, source_label)
    digest = compute_digest(text, [schema_text for _, schema_text in schema_sources])
    header = format_file_header(
        source_label, [schema_label for schema_label, _ in schema_sources], digest
    )
    return "\n".join(header) + "\n\n" + rendered.text, rendered


@dataclass(frozen=True)
class WriteResult:
    """Outcome of writing or checking the output file.

    Attributes:
        path: Output path.
        status: "generated" or "unchanged" when writing; "up-to-date",
            "stale" or "missing" when checking.
        line_count: Newline characters in the rendered content.
        byte_count: UTF-8 bytes in the rendered content.
    """

    path: Path
    status: str
    line_count: int
    byte_count: int


def _write_result(path: Path, status: str, content: str) -> WriteResult:
    return WriteResult(
        path=path,
        status=status,
        line_count=content.count("\n"),
        byte_count=len(content.encode("utf-8")),
    )


def write_output(path: Path, content: str) -> WriteResult:
    """Write content unless the file already holds exactly that content."""
    if path.exists() and path.read_text(encoding="utf-8") == content:
        return _write_result(path, "unchanged", content)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return _write_result(path, "generated", content)


def check_output(path: Path, content: str) -> WriteResult:
    if not path.exists():
        return _write_result(path, "missing", content)
    if path.read_text(encoding="utf-8") != content:
        return _write_result(path, "stale", content)
    return _write_result(path, "up-to-date", content)


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    """Data for the post-generation console report.

    Attributes:
        source_label: Input path.
        output_label: Output path.
        status: WriteResult status.
        unions: Number of `#[extract_variant]` enums.
        bound_records: Number of `#[variant_of]` structs.
        records: Number of extracted structs.
        conversions: Number of From/TryFrom/Variant impl sets.
        excluded: "Enum::Variant" for every excluded variant.
        line_count: Lines in the output file.
    """

    source_label: str
    output_label: str
    status: str
    unions: int
    bound_records: int
    records: int
    conversions: int
    excluded: tuple[str, ...]
    line_count: int


def build_generation_summary(
    source_label: str, rendered: RenderedSource, result: WriteResult
) -> GenerationSummary:
    extract_blocks = [block for block in rendered.blocks if block.kind == "extract"]
    return GenerationSummary(
        source_label=source_label,
        output_label=str(result.path),
        status=result.status,
        unions=len(extract_blocks),
        bound_records=len(rendered.blocks) - len(extract_blocks),
        records=sum(len(block.records) for block in rendered.blocks),
        conversions=sum(len(block.bindings) for block in rendered.blocks),
        excluded=tuple(
            f"{block.target}::{name}" for block in extract_blocks for name in block.excluded
        ),
        line_count=result.line_count,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary; the result ends with exactly one newline."""
    lines: list[str] = [
        f"{GENERATOR_NAME} {GENERATOR_VERSION} ({summary.status}):",
        "",
        f"  Source:     {summary.source_label}",
        f"  Output:     {summary.output_label}",
        "",
        "  Declarations:",
        f"    {'Enums:':<16}{summary.unions:>6}",
        f"    {'Bound structs:':<16}{summary.bound_records:>6}",
        "",
        "  Generated:",
        f"    {'Structs:':<16}{summary.records:>6}",
        f"    {'Conversions:':<16}{summary.conversions:>6}",
    ]
    if summary.excluded:
        excluded = ", ".join(summary.excluded)
        lines.append(f"    {'Excluded:':<16}{len(summary.excluded):>6}  ({excluded})")
    lines.append("")
    lines.append(f"  Total: {summary.line_count:,} lines")
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Main generation ---=== #


def run_generate(config: GenerateConfig) -> int:
    """Run one generation (or --check) for a validated config.

    Returns:
        Process exit status: 0 on success, 1 on a generation error or a
        failed check.

    Raises:
        OSError: Input not readable or output not writable.
        UnicodeDecodeError: Input is not UTF-8.
    """
    source_label = config.input_path.as_posix()
    print(f"Parsing: {source_label}")
    text = config.input_path.read_text(encoding="utf-8")
    schema_sources = [
        (path.as_posix(), path.read_text(encoding="utf-8")) for path in config.schema_paths
    ]
    if schema_sources:
        print(f"  Schema: {len(schema_sources)} files")

    try:
        content, rendered = render_file(source_label, text, schema_sources)
    except GenerateError as err:
        error_path, error_text = config.input_path, text
        if err.source is not None:
            error_path, error_text = Path(err.source), dict(schema_sources)[err.source]
        print(format_error(error_path, error_text, err), file=sys.stderr)
        return 1

    extract_count = sum(1 for block in rendered.blocks if block.kind == "extract")
    print(
        f"  Declarations: {extract_count} enums, "
        f"{len(rendered.blocks) - extract_count} bound structs"
    )

    if config.check:
        result = check_output(config.output_path, content)
        if result.status == "missing":
            print(f"{result.path} is missing (run {GENERATOR_NAME})", file=sys.stderr)
            return 1
        if result.status == "stale":
            print(f"{result.path} is out of date (run {GENERATOR_NAME})", file=sys.stderr)
            return 1
        print(f"up-to-date: {result.path}")
        return 0

    result = write_output(config.output_path, content)
    print(f"{result.status}: {result.path}")
    print_generation_summary(build_generation_summary(source_label, rendered, result))
    return 0


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        status = run_generate(config)
    except (OSError, UnicodeDecodeError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    if status:
        raise SystemExit(status)


if __name__ == "__main__":
    main()
