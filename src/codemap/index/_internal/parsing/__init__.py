"""Tree-sitter parsing."""

from codemap.index._internal.parsing.treesitter import (
    SUPPORTED_LANGUAGES,
    Dialect,
    NodeKind,
    ParsedSource,
    SyntaxNode,
    TreeSitterParser,
    dialect_for,
)

__all__ = [
    "SUPPORTED_LANGUAGES",
    "Dialect",
    "NodeKind",
    "ParsedSource",
    "SyntaxNode",
    "TreeSitterParser",
    "dialect_for",
]
