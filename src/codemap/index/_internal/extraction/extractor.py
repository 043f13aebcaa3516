"""Symbol, import and export extraction for one TypeScript/JavaScript file.

``extract`` is a pure function of (content, path, language): no I/O and no
shared mutable state, so the indexer runs it on worker threads.

Symbols are collected from module-level declarations in source order, a
class immediately followed by its members. Each symbol carries its ordinal
in that sequence; members point at their class through ``parent_ordinal``
and exports point at symbols through ``symbol_ordinal``. The indexer maps
ordinals to row ids while inserting.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from codemap.index._internal.parsing import NodeKind, SyntaxNode, TreeSitterParser
from codemap.index.models import SymbolKind

MAX_SIGNATURE_LENGTH = 100

_DECLARATION_KINDS: frozenset[NodeKind] = frozenset(
    {
        NodeKind.FUNCTION_DECLARATION,
        NodeKind.GENERATOR_FUNCTION_DECLARATION,
        NodeKind.LEXICAL_DECLARATION,
        NodeKind.VARIABLE_DECLARATION,
        NodeKind.CLASS_DECLARATION,
        NodeKind.ABSTRACT_CLASS_DECLARATION,
        NodeKind.INTERFACE_DECLARATION,
        NodeKind.TYPE_ALIAS_DECLARATION,
        NodeKind.ENUM_DECLARATION,
    }
)

_FUNCTION_VALUE_KINDS: frozenset[NodeKind] = frozenset(
    {NodeKind.ARROW_FUNCTION, NodeKind.FUNCTION_EXPRESSION, NodeKind.GENERATOR_FUNCTION}
)

# ``export default function f() {}`` may surface as a named expression value
_NAMED_DEFAULT_VALUE_KINDS: frozenset[NodeKind] = frozenset(
    {NodeKind.FUNCTION_EXPRESSION, NodeKind.GENERATOR_FUNCTION, NodeKind.CLASS}
)

_METHOD_MODIFIER_KINDS: frozenset[NodeKind] = frozenset(
    {
        NodeKind.ACCESSIBILITY_MODIFIER,
        NodeKind.OVERRIDE_MODIFIER,
        NodeKind.STATIC,
        NodeKind.ABSTRACT,
        NodeKind.READONLY,
        NodeKind.ASYNC,
        NodeKind.GET,
        NodeKind.SET,
    }
)


@dataclass
class ExtractedSymbol:
    ordinal: int
    name: str
    kind: SymbolKind
    line_start: int
    line_end: int
    signature: str | None = None
    exported: bool = False
    is_default: bool = False
    parent_ordinal: int | None = None


@dataclass
class ExtractedImport:
    imported_name: str
    source: str  # raw module specifier as written
    is_external: bool
    line: int
    local_alias: str | None = None
    package_name: str | None = None


@dataclass
class ExtractedExport:
    exported_name: str
    line: int
    local_name: str | None = None
    symbol_ordinal: int | None = None
    is_reexport: bool = False
    source_path: str | None = None


@dataclass
class ExtractionResult:
    """Result of extracting one file."""

    symbols: list[ExtractedSymbol] = field(default_factory=list)
    imports: list[ExtractedImport] = field(default_factory=list)
    exports: list[ExtractedExport] = field(default_factory=list)
    has_default_export: bool = False
    error_count: int = 0  # ERROR/MISSING nodes in the parse tree


_default_parser: TreeSitterParser | None = None


def _get_parser() -> TreeSitterParser:
    global _default_parser
    if _default_parser is None:
        _default_parser = TreeSitterParser()
    return _default_parser


def extract(
    content: str | bytes,
    path: str,
    language: str,
    *,
    parser: TreeSitterParser | None = None,
) -> ExtractionResult:
    """Extract symbols, imports and exports from one file's content.

    Raises:
        ParseError: If the language tag has no grammar.
    """
    parsed = (parser or _get_parser()).parse(content, language, path)
    collector = _FileCollector()
    collector.collect(parsed.root)
    exports = collector.exports
    return ExtractionResult(
        symbols=collector.symbols,
        imports=collector.imports,
        exports=exports,
        has_default_export=any(e.exported_name == "default" for e in exports),
        error_count=parsed.error_count,
    )


# ============================================================================
# Text helpers
# ============================================================================


def cap_signature(text: str) -> str:
    """Truncate to MAX_SIGNATURE_LENGTH, marking the cut with '...'."""
    if len(text) > MAX_SIGNATURE_LENGTH:
        return text[: MAX_SIGNATURE_LENGTH - 3] + "..."
    return text


def _first_line(text: str) -> str:
    return cap_signature(text.splitlines()[0].strip() if text else "")


def _collapse(text: str) -> str:
    """Single-line form of synthesized signatures (parameter lists may span lines)."""
    return cap_signature(" ".join(text.split()))


def _string_value(node: SyntaxNode) -> str:
    fragment = node.child_of_kind(NodeKind.STRING_FRAGMENT)
    if fragment is not None:
        return fragment.text
    return node.text.strip("'\"`")


def _binding_name(node: SyntaxNode | None) -> str | None:
    if node is None:
        return None
    if node.kind is NodeKind.STRING:
        return _string_value(node)
    return node.text


def package_name(specifier: str) -> str:
    """Package a bare specifier belongs to: ``@scope/name`` or the first segment."""
    segments = specifier.split("/")
    if specifier.startswith("@") and len(segments) >= 2:
        return "/".join(segments[:2])
    return segments[0]


def is_external_specifier(specifier: str) -> bool:
    return not specifier.startswith((".", "/"))


def _return_suffix(node: SyntaxNode) -> str:
    annotation = node.field_text("return_type")
    if not annotation:
        return ""
    return ": " + annotation.lstrip().removeprefix(":").strip()


def _wrapped_declaration(export_stmt: SyntaxNode) -> SyntaxNode | None:
    declaration = export_stmt.field("declaration")
    if declaration is not None:
        return declaration
    for child in export_stmt.children:
        if child.kind in _DECLARATION_KINDS:
            return child
    value = export_stmt.field("value")
    if (
        value is not None
        and value.kind in _NAMED_DEFAULT_VALUE_KINDS
        and value.field("name") is not None
    ):
        return value
    return None


# ============================================================================
# Collector
# ============================================================================


class _FileCollector:
    """Single-use accumulator for one syntax tree."""

    def __init__(self) -> None:
        self.symbols: list[ExtractedSymbol] = []
        self.imports: list[ExtractedImport] = []
        self.exports: list[ExtractedExport] = []
        # declaration start byte -> ordinals of the symbols it declared
        self._by_declaration: dict[int, list[int]] = {}

    def collect(self, root: SyntaxNode) -> None:
        top_level = root.children

        for node in top_level:
            if node.kind is NodeKind.EXPORT_STATEMENT:
                declaration = _wrapped_declaration(node)
                if declaration is not None:
                    self._declaration(declaration, export_stmt=node)
            elif node.kind in _DECLARATION_KINDS:
                self._declaration(node, export_stmt=None)

        # Exports resolve against the complete symbol list (declarations hoist).
        for node in top_level:
            if node.kind is NodeKind.EXPORT_STATEMENT:
                self._export_statement(node)

        for node in root.descendants_of_kind(NodeKind.IMPORT_STATEMENT):
            self._import_statement(node)

    # -- symbols -------------------------------------------------------------

    def _add_symbol(
        self,
        name: str,
        kind: SymbolKind,
        node: SyntaxNode,
        signature: str | None,
        *,
        exported: bool = False,
        is_default: bool = False,
        parent_ordinal: int | None = None,
        declaration: SyntaxNode | None = None,
    ) -> int:
        ordinal = len(self.symbols)
        self.symbols.append(
            ExtractedSymbol(
                ordinal=ordinal,
                name=name,
                kind=kind,
                line_start=node.start_line,
                line_end=node.end_line,
                signature=signature,
                exported=exported,
                is_default=is_default and exported,
                parent_ordinal=parent_ordinal,
            )
        )
        if declaration is not None:
            self._by_declaration.setdefault(declaration.start_byte, []).append(ordinal)
        return ordinal

    def _declaration(self, node: SyntaxNode, export_stmt: SyntaxNode | None) -> None:
        exported = export_stmt is not None
        is_default = export_stmt is not None and export_stmt.has_child(NodeKind.DEFAULT)
        kind = node.kind

        if kind in (
            NodeKind.FUNCTION_DECLARATION,
            NodeKind.GENERATOR_FUNCTION_DECLARATION,
            NodeKind.FUNCTION_EXPRESSION,
            NodeKind.GENERATOR_FUNCTION,
        ):
            self._function(node, exported, is_default)
        elif kind in (NodeKind.LEXICAL_DECLARATION, NodeKind.VARIABLE_DECLARATION):
            self._variables(node, exported)
        elif kind in (
            NodeKind.CLASS_DECLARATION,
            NodeKind.ABSTRACT_CLASS_DECLARATION,
            NodeKind.CLASS,
        ):
            self._class(node, exported, is_default)
        elif kind is NodeKind.INTERFACE_DECLARATION:
            self._interface(node, exported)
        elif kind is NodeKind.TYPE_ALIAS_DECLARATION:
            name = node.field_text("name")
            if name:
                self._add_symbol(
                    name,
                    SymbolKind.TYPE,
                    node,
                    _first_line(node.text),
                    exported=exported,
                    is_default=is_default,
                    declaration=node,
                )
        elif kind is NodeKind.ENUM_DECLARATION:
            name = node.field_text("name")
            if name:
                keyword = "const enum" if node.has_child(NodeKind.CONST) else "enum"
                self._add_symbol(
                    name,
                    SymbolKind.ENUM,
                    node,
                    f"{keyword} {name}",
                    exported=exported,
                    is_default=is_default,
                    declaration=node,
                )

    def _function(self, node: SyntaxNode, exported: bool, is_default: bool) -> None:
        name = node.field_text("name")
        if not name:
            return
        keyword = "function"
        if node.kind in (
            NodeKind.GENERATOR_FUNCTION_DECLARATION,
            NodeKind.GENERATOR_FUNCTION,
        ) or node.has_child(NodeKind.STAR):
            keyword = "function*"
        if node.has_child(NodeKind.ASYNC):
            keyword = "async " + keyword
        signature = (
            f"{keyword} {name}{node.field_text('type_parameters') or ''}"
            f"{node.field_text('parameters') or '()'}{_return_suffix(node)}"
        )
        self._add_symbol(
            name,
            SymbolKind.FUNCTION,
            node,
            _collapse(signature),
            exported=exported,
            is_default=is_default,
            declaration=node,
        )

    def _variables(self, node: SyntaxNode, exported: bool) -> None:
        signature = _first_line(node.text)
        for declarator in node.children_of_kind(NodeKind.VARIABLE_DECLARATOR):
            name_node = declarator.field("name")
            # Destructuring patterns bind no single name
            if name_node is None or name_node.kind is not NodeKind.IDENTIFIER:
                continue
            value = declarator.field("value")
            kind = (
                SymbolKind.FUNCTION
                if value is not None and value.kind in _FUNCTION_VALUE_KINDS
                else SymbolKind.VARIABLE
            )
            self._add_symbol(
                name_node.text,
                kind,
                node,
                signature,
                exported=exported,
                declaration=node,
            )

    def _class(self, node: SyntaxNode, exported: bool, is_default: bool) -> None:
        name = node.field_text("name")
        if not name:
            return
        keyword = "abstract class" if node.kind is NodeKind.ABSTRACT_CLASS_DECLARATION else "class"
        parts = [f"{keyword} {name}{node.field_text('type_parameters') or ''}"]
        heritage = node.child_of_kind(NodeKind.CLASS_HERITAGE) or node
        for clause_kind in (NodeKind.EXTENDS_CLAUSE, NodeKind.IMPLEMENTS_CLAUSE):
            clause = heritage.child_of_kind(clause_kind)
            if clause is not None:
                parts.append(clause.text)

        class_ordinal = self._add_symbol(
            name,
            SymbolKind.CLASS,
            node,
            _collapse(" ".join(parts)),
            exported=exported,
            is_default=is_default,
            declaration=node,
        )

        body = node.field("body") or node.child_of_kind(NodeKind.CLASS_BODY)
        if body is None:
            return
        for member in body.children:
            if member.kind in (NodeKind.METHOD_DEFINITION, NodeKind.ABSTRACT_METHOD_SIGNATURE):
                name_node = member.field("name")
                if name_node is None:
                    continue
                self._add_symbol(
                    name_node.text,
                    SymbolKind.METHOD,
                    member,
                    _method_signature(member, name_node),
                    parent_ordinal=class_ordinal,
                )
            elif member.kind is NodeKind.PUBLIC_FIELD_DEFINITION:
                name_node = member.field("name")
                if name_node is None:
                    continue
                self._add_symbol(
                    name_node.text,
                    SymbolKind.PROPERTY,
                    member,
                    _first_line(member.text),
                    parent_ordinal=class_ordinal,
                )

    def _interface(self, node: SyntaxNode, exported: bool) -> None:
        name = node.field_text("name")
        if not name:
            return
        parts = [f"interface {name}{node.field_text('type_parameters') or ''}"]
        extends = node.child_of_kind(NodeKind.EXTENDS_TYPE_CLAUSE)
        if extends is not None:
            parts.append(extends.text)
        # Interfaces are never recorded as default exports
        self._add_symbol(
            name,
            SymbolKind.INTERFACE,
            node,
            _collapse(" ".join(parts)),
            exported=exported,
            declaration=node,
        )

    def _first_symbol_named(self, name: str | None) -> int | None:
        if not name:
            return None
        for symbol in self.symbols:
            if symbol.parent_ordinal is None and symbol.name == name:
                return symbol.ordinal
        return None

    # -- exports -------------------------------------------------------------

    def _export_statement(self, stmt: SyntaxNode) -> None:
        line = stmt.start_line
        source_node = stmt.field("source")
        source = _string_value(source_node) if source_node is not None else None
        is_reexport = source is not None

        if stmt.has_child(NodeKind.DEFAULT):
            local_name, ordinal = self._default_target(stmt)
            self.exports.append(
                ExtractedExport(
                    exported_name="default",
                    line=line,
                    local_name=local_name,
                    symbol_ordinal=ordinal,
                    is_reexport=is_reexport,
                    source_path=source,
                )
            )
            return

        clause = stmt.child_of_kind(NodeKind.EXPORT_CLAUSE)
        if clause is not None:
            for spec in clause.children_of_kind(NodeKind.EXPORT_SPECIFIER):
                local = _binding_name(spec.field("name"))
                if not local:
                    continue
                exported_name = _binding_name(spec.field("alias")) or local
                self.exports.append(
                    ExtractedExport(
                        exported_name=exported_name,
                        line=spec.start_line,
                        local_name=local if local != exported_name else None,
                        # Name match only, whether or not the clause has a source
                        symbol_ordinal=self._first_symbol_named(local),
                        is_reexport=is_reexport,
                        source_path=source,
                    )
                )
            return

        if stmt.has_child(NodeKind.NAMESPACE_EXPORT) or stmt.has_child(NodeKind.STAR):
            if source is not None:
                self.exports.append(
                    ExtractedExport(
                        exported_name="*",
                        line=line,
                        is_reexport=True,
                        source_path=source,
                    )
                )
            return

        declaration = _wrapped_declaration(stmt)
        if declaration is None:
            return
        ordinals = self._by_declaration.get(declaration.start_byte)
        if ordinals:
            for ordinal in ordinals:
                self.exports.append(
                    ExtractedExport(
                        exported_name=self.symbols[ordinal].name,
                        line=line,
                        symbol_ordinal=ordinal,
                    )
                )
            return
        # Declarations outside the symbol model (namespaces, ambient declarations)
        name = declaration.field_text("name")
        if name:
            self.exports.append(ExtractedExport(exported_name=name, line=line))

    def _default_target(self, stmt: SyntaxNode) -> tuple[str | None, int | None]:
        """Local name and symbol ordinal behind an ``export default``."""
        declaration = _wrapped_declaration(stmt)
        if declaration is not None:
            ordinals = self._by_declaration.get(declaration.start_byte)
            if ordinals:
                return self.symbols[ordinals[0]].name, ordinals[0]
            return declaration.field_text("name"), None
        value = stmt.field("value")
        if value is not None and value.kind is NodeKind.IDENTIFIER:
            return value.text, self._first_symbol_named(value.text)
        return None, None

    # -- imports -------------------------------------------------------------

    def _import_statement(self, stmt: SyntaxNode) -> None:
        source_node = stmt.field("source")
        if source_node is None:
            return
        specifier = _string_value(source_node)
        external = is_external_specifier(specifier)
        package = package_name(specifier) if external else None
        line = stmt.start_line

        def add(imported_name: str, alias: str | None) -> None:
            self.imports.append(
                ExtractedImport(
                    imported_name=imported_name,
                    source=specifier,
                    is_external=external,
                    line=line,
                    local_alias=alias,
                    package_name=package,
                )
            )

        clause = stmt.child_of_kind(NodeKind.IMPORT_CLAUSE)
        if clause is None:
            add("*", None)  # side-effect import
            return

        for child in clause.children:
            if child.kind is NodeKind.IDENTIFIER:
                add("default", child.text)
            elif child.kind is NodeKind.NAMED_IMPORTS:
                for spec in child.children_of_kind(NodeKind.IMPORT_SPECIFIER):
                    name = _binding_name(spec.field("name"))
                    if not name:
                        continue
                    alias = _binding_name(spec.field("alias"))
                    add(name, alias if alias and alias != name else None)
            elif child.kind is NodeKind.NAMESPACE_IMPORT:
                ident = child.child_of_kind(NodeKind.IDENTIFIER)
                add("*", ident.text if ident is not None else None)


def _method_signature(member: SyntaxNode, name_node: SyntaxNode) -> str:
    modifiers: list[str] = []
    generator = False
    for child in member.children:
        if child.start_byte >= name_node.start_byte:
            break
        if child.kind in _METHOD_MODIFIER_KINDS:
            modifiers.append(child.text)
        elif child.kind is NodeKind.STAR:
            generator = True
    head = ("*" if generator else "") + name_node.text
    signature = (
        f"{head}{member.field_text('type_parameters') or ''}"
        f"{member.field_text('parameters') or '()'}{_return_suffix(member)}"
    )
    return _collapse(" ".join([*modifiers, signature]))
