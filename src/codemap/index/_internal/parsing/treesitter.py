"""Tree-sitter parser adapter for TypeScript and JavaScript.

Design:
- Grammars come from tree-sitter-typescript. ``.tsx``/``.jsx`` parse with the
  TSX grammar, every other extension with the TypeScript grammar (a superset
  of plain JavaScript).
- Parsing is error tolerant: tree-sitter always yields a tree, and broken
  regions show up as ERROR/MISSING nodes that the extractor skips over.
- Callers see ``SyntaxNode`` wrappers and the closed ``NodeKind`` enum only.
  Node types outside the enum surface as ``kind is None``.
- ``tree_sitter.Parser`` is not thread-safe; each thread gets its own.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Any

import structlog
import tree_sitter
import tree_sitter_typescript

from codemap.core.errors import ParseError

logger = structlog.get_logger()

SUPPORTED_LANGUAGES: frozenset[str] = frozenset({"typescript", "javascript"})

_TSX_EXTENSIONS: frozenset[str] = frozenset({".tsx", ".jsx"})


class Dialect(str, Enum):
    """Grammar variant used for a file."""

    TYPESCRIPT = "typescript"
    TSX = "tsx"


class NodeKind(str, Enum):
    """Every node type the extractor inspects."""

    PROGRAM = "program"
    ERROR = "ERROR"

    # Module syntax
    IMPORT_STATEMENT = "import_statement"
    IMPORT_CLAUSE = "import_clause"
    NAMED_IMPORTS = "named_imports"
    IMPORT_SPECIFIER = "import_specifier"
    NAMESPACE_IMPORT = "namespace_import"
    EXPORT_STATEMENT = "export_statement"
    EXPORT_CLAUSE = "export_clause"
    EXPORT_SPECIFIER = "export_specifier"
    NAMESPACE_EXPORT = "namespace_export"

    # Declarations
    FUNCTION_DECLARATION = "function_declaration"
    GENERATOR_FUNCTION_DECLARATION = "generator_function_declaration"
    LEXICAL_DECLARATION = "lexical_declaration"
    VARIABLE_DECLARATION = "variable_declaration"
    VARIABLE_DECLARATOR = "variable_declarator"
    CLASS_DECLARATION = "class_declaration"
    ABSTRACT_CLASS_DECLARATION = "abstract_class_declaration"
    INTERFACE_DECLARATION = "interface_declaration"
    TYPE_ALIAS_DECLARATION = "type_alias_declaration"
    ENUM_DECLARATION = "enum_declaration"

    # Expression values
    CLASS = "class"
    ARROW_FUNCTION = "arrow_function"
    FUNCTION_EXPRESSION = "function_expression"
    GENERATOR_FUNCTION = "generator_function"

    # Class members and clauses
    CLASS_BODY = "class_body"
    CLASS_HERITAGE = "class_heritage"
    EXTENDS_CLAUSE = "extends_clause"
    IMPLEMENTS_CLAUSE = "implements_clause"
    EXTENDS_TYPE_CLAUSE = "extends_type_clause"
    METHOD_DEFINITION = "method_definition"
    ABSTRACT_METHOD_SIGNATURE = "abstract_method_signature"
    PUBLIC_FIELD_DEFINITION = "public_field_definition"
    ACCESSIBILITY_MODIFIER = "accessibility_modifier"
    OVERRIDE_MODIFIER = "override_modifier"

    # Leaves
    IDENTIFIER = "identifier"
    STRING = "string"
    STRING_FRAGMENT = "string_fragment"

    # Keywords and punctuation
    DEFAULT = "default"
    ASYNC = "async"
    STATIC = "static"
    ABSTRACT = "abstract"
    READONLY = "readonly"
    CONST = "const"
    GET = "get"
    SET = "set"
    STAR = "*"


_KIND_BY_TYPE: dict[str, NodeKind] = {kind.value: kind for kind in NodeKind}


class SyntaxNode:
    """Read-only view over a tree-sitter node."""

    __slots__ = ("_node",)

    def __init__(self, node: Any) -> None:
        self._node = node

    @property
    def kind(self) -> NodeKind | None:
        return _KIND_BY_TYPE.get(self._node.type)

    @property
    def type_name(self) -> str:
        """Raw grammar node type, for logging."""
        return str(self._node.type)

    @property
    def text(self) -> str:
        raw = self._node.text
        return raw.decode("utf-8", errors="replace") if raw is not None else ""

    @property
    def start_line(self) -> int:
        """1-indexed first line of the node."""
        return int(self._node.start_point[0]) + 1

    @property
    def end_line(self) -> int:
        """1-indexed last line of the node (inclusive)."""
        return int(self._node.end_point[0]) + 1

    @property
    def start_byte(self) -> int:
        return int(self._node.start_byte)

    @property
    def is_missing(self) -> bool:
        return bool(self._node.is_missing)

    @property
    def children(self) -> list[SyntaxNode]:
        return [SyntaxNode(child) for child in self._node.children]

    def field(self, name: str) -> SyntaxNode | None:
        child = self._node.child_by_field_name(name)
        return SyntaxNode(child) if child is not None else None

    def field_text(self, name: str) -> str | None:
        child = self.field(name)
        return child.text if child is not None else None

    def child_of_kind(self, kind: NodeKind) -> SyntaxNode | None:
        """First direct child of the given kind."""
        for child in self._node.children:
            if child.type == kind.value:
                return SyntaxNode(child)
        return None

    def children_of_kind(self, kind: NodeKind) -> list[SyntaxNode]:
        return [SyntaxNode(child) for child in self._node.children if child.type == kind.value]

    def has_child(self, kind: NodeKind) -> bool:
        return any(child.type == kind.value for child in self._node.children)

    def descendants_of_kind(self, kind: NodeKind) -> Iterator[SyntaxNode]:
        """All nodes of the given kind below (and including) this one, pre-order."""
        stack = [self._node]
        while stack:
            node = stack.pop()
            if node.type == kind.value:
                yield SyntaxNode(node)
            stack.extend(reversed(node.children))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SyntaxNode) and self._node == other._node

    def __hash__(self) -> int:
        return hash((self._node.start_byte, self._node.end_byte, self._node.type))

    def __repr__(self) -> str:
        return f"SyntaxNode({self._node.type}, line={self.start_line})"


@dataclass
class ParsedSource:
    """Result of parsing one file."""

    root: SyntaxNode
    language: str
    dialect: Dialect
    error_count: int
    tree: Any = None  # tree_sitter.Tree, kept alive for the root node


def dialect_for(path: str) -> Dialect:
    """Pick the grammar variant from the file extension."""
    suffix = PurePosixPath(path).suffix.lower()
    return Dialect.TSX if suffix in _TSX_EXTENSIONS else Dialect.TYPESCRIPT


class TreeSitterParser:
    """
    Thread-safe parser facade.

    Usage::

        parser = TreeSitterParser()
        parsed = parser.parse(content, "typescript", "src/app.tsx")
        for node in parsed.root.descendants_of_kind(NodeKind.IMPORT_STATEMENT):
            ...
    """

    _languages: dict[Dialect, Any] = {}
    _languages_lock = threading.Lock()

    def __init__(self) -> None:
        self._local = threading.local()

    @classmethod
    def _get_language(cls, dialect: Dialect) -> Any:
        with cls._languages_lock:
            lang = cls._languages.get(dialect)
            if lang is None:
                if dialect is Dialect.TSX:
                    lang = tree_sitter.Language(tree_sitter_typescript.language_tsx())
                else:
                    lang = tree_sitter.Language(tree_sitter_typescript.language_typescript())
                cls._languages[dialect] = lang
            return lang

    def _thread_parser(self) -> tree_sitter.Parser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = tree_sitter.Parser()
            self._local.parser = parser
        return parser

    def parse(self, content: bytes | str, language: str, path: str) -> ParsedSource:
        """
        Parse file content.

        Args:
            content: File content; str is encoded as UTF-8.
            language: Language tag from configuration.
            path: File path, used only to choose the dialect.

        Returns:
            ParsedSource with the root node and an error-node count.

        Raises:
            ParseError: If no grammar exists for the language tag.
        """
        if language not in SUPPORTED_LANGUAGES:
            raise ParseError.unsupported_language(path, language)

        if isinstance(content, str):
            content = content.encode("utf-8")

        dialect = dialect_for(path)
        parser = self._thread_parser()
        parser.language = self._get_language(dialect)
        tree = parser.parse(content)

        error_count = 0
        if tree.root_node.has_error:
            error_count = _count_error_nodes(tree.root_node)
            logger.debug("parse_errors", path=path, error_count=error_count)

        return ParsedSource(
            root=SyntaxNode(tree.root_node),
            language=language,
            dialect=dialect,
            error_count=error_count,
            tree=tree,
        )


def _count_error_nodes(root: Any) -> int:
    count = 0
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            count += 1
        stack.extend(node.children)
    return count
