"""Rust syntax trees: tree-sitter parsing, item classification and traversal helpers."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tree_sitter import Language, Parser

from hyp.errors import ParseError

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator

    from tree_sitter import Node as TSNode
    from tree_sitter import Tree as TSTree

# ---------------------------------------------------------------------------
# Item kinds
# ---------------------------------------------------------------------------


class ItemKind(enum.Enum):
    """Syntax-node categories a checker may subscribe to.

    Values are the tree-sitter-rust node types the kinds are read from.
    """

    FUNCTION = "function_item"
    STRUCT = "struct_item"
    ENUM = "enum_item"
    TRAIT = "trait_item"
    IMPL = "impl_item"
    MODULE = "mod_item"
    CONST = "const_item"
    STATIC = "static_item"
    UNION = "union_item"
    TYPE_ALIAS = "type_item"
    USE = "use_declaration"

    @classmethod
    def from_node_type(cls, node_type: str) -> ItemKind | None:
        return _KIND_BY_NODE_TYPE.get(node_type)


_KIND_BY_NODE_TYPE: dict[str, ItemKind] = {kind.value: kind for kind in ItemKind}

# Items whose bodies hold further items the traversal opens.
_CONTAINER_KINDS: frozenset[ItemKind] = frozenset({ItemKind.MODULE, ItemKind.IMPL, ItemKind.TRAIT})

_COMMENT_TYPES: frozenset[str] = frozenset({"line_comment", "block_comment"})

# `#[test]`, `#[cfg(test)]`, `#[cfg(all(test, unix))]`, ... matched with whitespace removed.
_TEST_ATTR_RE = re.compile(r"^#!?\[(?:test|cfg\((?P<predicate>.*)\))\]$", re.DOTALL)
# A bare `test` predicate, not quoted and not directly negated by `not(...)`.
_TEST_PREDICATE_RE = re.compile(r"(?<!not\()(?<!\")\btest\b")

# ---------------------------------------------------------------------------
# Language loading
# ---------------------------------------------------------------------------

_LANGUAGE_CACHE: dict[str, Language] = {}


def get_language() -> Language:
    """Return the tree-sitter Rust language, loading the grammar once."""
    language = _LANGUAGE_CACHE.get("rust")
    if language is None:
        import tree_sitter_rust as tsrust

        language = Language(tsrust.language())
        _LANGUAGE_CACHE["rust"] = language
    return language


def clear_cache() -> None:
    """Forget the loaded grammar (useful for testing)."""
    _LANGUAGE_CACHE.clear()


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyntaxTree:
    """A parsed Rust source file."""

    tree: TSTree
    source: bytes

    @property
    def root(self) -> TSNode:
        return self.tree.root_node


@dataclass(frozen=True)
class SyntaxItem:
    """One item of a syntax tree handed to checkers.

    ``node`` is the item's own tree-sitter node; checkers may walk the
    subtree under it but nothing outside it.
    """

    kind: ItemKind
    node: TSNode
    name: str | None
    attributes: tuple[str, ...] = ()
    is_test: bool = False

    @property
    def line(self) -> int:
        return self.node.start_point.row + 1

    @property
    def column(self) -> int:
        return self.node.start_point.column + 1

    @property
    def end_line(self) -> int:
        return self.node.end_point.row + 1

    @property
    def text(self) -> str:
        return node_text(self.node)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_source(source: str | bytes, *, file_path: str | None = None) -> SyntaxTree:
    """Parse Rust *source* into a :class:`SyntaxTree`.

    tree-sitter always produces a tree; one that contains ``ERROR`` or
    missing nodes is rejected with :class:`~hyp.errors.ParseError` pointing
    at the first such node.  Bytes that are not valid UTF-8 are rejected the
    same way, before parsing.
    """
    if isinstance(source, str):
        content = source.encode("utf-8")
    else:
        content = source
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as exc:
            line = content.count(b"\n", 0, exc.start) + 1
            column = exc.start - (content.rfind(b"\n", 0, exc.start) + 1) + 1
            msg = f"invalid UTF-8 byte 0x{content[exc.start]:02x}"
            raise ParseError(msg, file_path=file_path, line=line, column=column) from exc

    parser = Parser(get_language())
    tree = parser.parse(content)

    root = tree.root_node
    if root.has_error:
        bad = _first_error(root)
        line, column = node_position(bad) if bad is not None else (None, None)
        msg = "syntax error" if bad is None or not bad.is_missing else f"missing {bad.type}"
        raise ParseError(msg, file_path=file_path, line=line, column=column)

    return SyntaxTree(tree=tree, source=content)


def _first_error(node: TSNode) -> TSNode | None:
    """Depth-first search for the first ``ERROR`` or missing node."""
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_error(child)
            if found is not None:
                return found
    return None


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def node_text(node: TSNode) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text else ""


def node_position(node: TSNode) -> tuple[int, int]:
    """Return the 1-based ``(line, column)`` where *node* starts."""
    return node.start_point.row + 1, node.start_point.column + 1


def walk(node: TSNode, node_types: Collection[str] | None = None) -> Iterator[TSNode]:
    """Yield *node* and its descendants depth-first, in source order.

    When *node_types* is given only nodes of those types are yielded, but
    the whole subtree is still visited.
    """
    stack = [node]
    while stack:
        current = stack.pop()
        if node_types is None or current.type in node_types:
            yield current
        stack.extend(reversed(current.children))


def is_test_attribute(text: str) -> bool:
    """Return True for ``#[test]`` and ``#[cfg(...test...)]`` style attributes.

    ``#[cfg(not(test))]`` marks code compiled outside tests, so a ``test``
    wrapped directly in ``not(...)`` does not count.
    """
    match = _TEST_ATTR_RE.match("".join(text.split()))
    if match is None:
        return False
    predicate = match.group("predicate")
    return predicate is None or bool(_TEST_PREDICATE_RE.search(predicate))


def _item_name(node: TSNode, kind: ItemKind) -> str | None:
    if kind is ItemKind.IMPL:
        name_node = node.child_by_field_name("type")
    elif kind is ItemKind.USE:
        name_node = node.child_by_field_name("argument")
    else:
        name_node = node.child_by_field_name("name")
    return node_text(name_node) if name_node is not None else None


def iter_items(tree: SyntaxTree, *, include_tests: bool = True) -> Iterator[SyntaxItem]:
    """Yield every item of *tree* in source order.

    Module, impl and trait bodies are opened so nested items are yielded
    after their container; function bodies are not.  Outer attributes
    (``#[...]``) preceding an item are attached to it.  Items marked as tests,
    items nested in a test item, and every item of a container carrying an
    inner ``#![cfg(test)]`` are flagged ``is_test``; with
    ``include_tests=False`` they are skipped together with their contents.
    """
    yield from _iter_container(tree.root.children, in_test=False, include_tests=include_tests)


def _iter_container(
    children: list[TSNode], *, in_test: bool, include_tests: bool
) -> Iterator[SyntaxItem]:
    if not in_test:
        in_test = any(
            child.type == "inner_attribute_item" and is_test_attribute(node_text(child))
            for child in children
        )

    pending_attributes: list[str] = []
    for child in children:
        if child.type == "attribute_item":
            pending_attributes.append(node_text(child))
            continue
        if child.type in _COMMENT_TYPES:
            continue

        kind = ItemKind.from_node_type(child.type)
        if kind is None:
            pending_attributes = []
            continue

        attributes = tuple(pending_attributes)
        pending_attributes = []
        is_test = in_test or any(is_test_attribute(attr) for attr in attributes)
        if is_test and not include_tests:
            continue

        yield SyntaxItem(
            kind=kind,
            node=child,
            name=_item_name(child, kind),
            attributes=attributes,
            is_test=is_test,
        )

        if kind in _CONTAINER_KINDS:
            body = child.child_by_field_name("body")
            if body is not None:
                yield from _iter_container(
                    body.children, in_test=is_test, include_tests=include_tests
                )
