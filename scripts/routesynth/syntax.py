"""tree-sitter access for TypeScript / TSX sources.

Wraps one parsed file as a ``SourceUnit`` and indexes its top-level
declarations (variables, functions, imports, export aliases) on first use.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from utils import hash_bytes

from .constants import MAX_SOURCE_BYTES, TSX_EXTS

FUNCTION_NODES = {
    "arrow_function",
    "function_expression",
    "function",
    "generator_function",
}
DECLARATION_NODES = {
    "function_declaration",
    "generator_function_declaration",
    "method_definition",
    "class_declaration",
    "class",
}
TYPE_DECLARATION_NODES = {
    "type_alias_declaration",
    "interface_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "enum_declaration",
}
WRAPPER_NODES = {
    "parenthesized_expression",
    "as_expression",
    "satisfies_expression",
    "non_null_expression",
    "type_assertion",
}

_PARSERS: Dict[str, Parser] = {}


def _get_parser(dialect: str) -> Parser:
    parser = _PARSERS.get(dialect)
    if parser is None:
        if dialect == "tsx":
            language = Language(tree_sitter_typescript.language_tsx())
        else:
            language = Language(tree_sitter_typescript.language_typescript())
        parser = Parser(language)
        _PARSERS[dialect] = parser
    return parser


def dialect_for_path(path: str) -> str:
    return "tsx" if path.endswith(TSX_EXTS) else "ts"


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"`":
        return text[1:-1]
    return text


def named(node: Optional[Node]) -> List[Node]:
    """Named children without comments."""
    if node is None:
        return []
    return [child for child in node.named_children if child.type != "comment"]


def first_named(node: Optional[Node]) -> Optional[Node]:
    children = named(node)
    return children[0] if children else None


def is_async(node: Node) -> bool:
    return any(child.type == "async" for child in node.children)


def unwrap(node: Node) -> Node:
    """Strip parentheses, ``as``/``satisfies`` casts, ``!`` and ``<T>x``."""
    current = node
    while current.type in WRAPPER_NODES:
        children = named(current)
        if not children:
            break
        if current.type == "type_assertion":
            inner = children[-1]
        else:
            inner = children[0]
        if inner is current:
            break
        current = inner
    return current


def literal_string(node: Optional[Node]) -> Optional[str]:
    """Value of a plain string literal, or a template without substitutions."""
    if node is None:
        return None
    if node.type == "string":
        return strip_quotes(node_text(node))
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            return None
        return strip_quotes(node_text(node))
    return None


def property_key(node: Optional[Node]) -> Optional[str]:
    """Stable name of an object key; ``None`` for computed keys."""
    if node is None:
        return None
    if node.type in {"property_identifier", "identifier", "private_property_identifier"}:
        return node_text(node)
    if node.type == "string":
        return strip_quotes(node_text(node))
    if node.type == "number":
        return node_text(node)
    return None


def walk(node: Node) -> Iterator[Node]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def return_expressions(function: Node) -> List[Node]:
    """Expressions returned by ``function`` itself, skipping nested functions."""
    body = function.child_by_field_name("body")
    if body is None:
        return []
    if body.type != "statement_block":
        return [body]
    results: List[Node] = []
    stack = list(reversed(body.children))
    while stack:
        current = stack.pop()
        if current.type in FUNCTION_NODES or current.type in DECLARATION_NODES:
            continue
        if current.type == "return_statement":
            expr = first_named(current)
            if expr is not None:
                results.append(expr)
            continue
        stack.extend(reversed(current.children))
    return results


def has_bare_return(function: Node) -> bool:
    body = function.child_by_field_name("body")
    if body is None or body.type != "statement_block":
        return False
    stack = list(body.children)
    while stack:
        current = stack.pop()
        if current.type in FUNCTION_NODES or current.type in DECLARATION_NODES:
            continue
        if current.type == "return_statement" and first_named(current) is None:
            return True
        stack.extend(current.children)
    return False


NAMESPACE = "*"


@dataclass
class ImportBinding:
    source: str
    imported: str

    @property
    def is_namespace(self) -> bool:
        return self.imported == NAMESPACE


@dataclass
class SourceUnit:
    path: str
    source: bytes
    tree: Tree
    content_hash: str
    _variables: Dict[str, List[Node]] = field(default_factory=dict, repr=False)
    _functions: Dict[str, List[Node]] = field(default_factory=dict, repr=False)
    _imports: Dict[str, ImportBinding] = field(default_factory=dict, repr=False)
    _exports: Dict[str, str] = field(default_factory=dict, repr=False)
    _types: Set[str] = field(default_factory=set, repr=False)
    _default: Optional[Node] = field(default=None, repr=False)
    _indexed: bool = field(default=False, repr=False)

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def variables(self, name: str) -> List[Node]:
        self._index()
        return self._variables.get(name, [])

    def functions(self, name: str) -> List[Node]:
        self._index()
        return self._functions.get(name, [])

    def import_binding(self, name: str) -> Optional[ImportBinding]:
        self._index()
        return self._imports.get(name)

    def declares_type(self, name: str) -> bool:
        """True for a top-level type alias, interface, class or enum called ``name``."""
        self._index()
        return name in self._types

    def default_export(self) -> Optional[Node]:
        """Expression or function declaration behind ``export default``."""
        self._index()
        return self._default

    def local_for_export(self, name: str) -> Optional[str]:
        """Local name behind an exported name (``export { a as b }`` maps b to a)."""
        self._index()
        return self._exports.get(name)

    def _index(self) -> None:
        if self._indexed:
            return
        self._indexed = True
        for statement in named(self.root):
            declaration = statement
            exported = False
            if statement.type == "export_statement":
                inner = statement.child_by_field_name("declaration")
                is_default = any(child.type == "default" for child in statement.children)
                if is_default and self._default is None:
                    self._default = inner if inner is not None else statement.child_by_field_name("value")
                if inner is None:
                    self._index_export_clause(statement)
                    continue
                declaration = inner
                exported = True
            if statement.type == "import_statement":
                self._index_import(statement)
                continue
            if declaration.type in {"lexical_declaration", "variable_declaration"}:
                for declarator in named(declaration):
                    if declarator.type != "variable_declarator":
                        continue
                    name_node = declarator.child_by_field_name("name")
                    if name_node is None or name_node.type != "identifier":
                        continue
                    name = node_text(name_node)
                    self._variables.setdefault(name, []).append(declarator)
                    if exported:
                        self._exports.setdefault(name, name)
            elif declaration.type in {"function_declaration", "generator_function_declaration"}:
                name = node_text(declaration.child_by_field_name("name"))
                if name:
                    self._functions.setdefault(name, []).append(declaration)
                    if exported:
                        self._exports.setdefault(name, name)
            elif declaration.type in TYPE_DECLARATION_NODES:
                name = node_text(declaration.child_by_field_name("name"))
                if name:
                    self._types.add(name)

    def _index_import(self, statement: Node) -> None:
        source = literal_string(statement.child_by_field_name("source"))
        if source is None:
            return
        for clause in named(statement):
            if clause.type != "import_clause":
                continue
            for part in named(clause):
                if part.type == "identifier":
                    self._imports[node_text(part)] = ImportBinding(source, "default")
                elif part.type == "namespace_import":
                    local = first_named(part)
                    if local is not None:
                        self._imports[node_text(local)] = ImportBinding(source, NAMESPACE)
                elif part.type == "named_imports":
                    for spec in named(part):
                        if spec.type != "import_specifier":
                            continue
                        imported = node_text(spec.child_by_field_name("name"))
                        alias = spec.child_by_field_name("alias")
                        local = node_text(alias) if alias is not None else imported
                        if local:
                            self._imports[local] = ImportBinding(source, imported)

    def _index_export_clause(self, statement: Node) -> None:
        source = literal_string(statement.child_by_field_name("source"))
        for clause in named(statement):
            if clause.type != "export_clause":
                continue
            for spec in named(clause):
                if spec.type != "export_specifier":
                    continue
                local = node_text(spec.child_by_field_name("name"))
                alias = spec.child_by_field_name("alias")
                exported = node_text(alias) if alias is not None else local
                if not local:
                    continue
                if source is not None:
                    # re-export: route the exported name through a synthetic import
                    self._imports.setdefault(exported, ImportBinding(source, local))
                    self._exports.setdefault(exported, exported)
                else:
                    self._exports.setdefault(exported, local)


def parse_source(path: str, data: bytes, warnings: List[str]) -> Optional[SourceUnit]:
    if len(data) > MAX_SOURCE_BYTES:
        warnings.append(f"Skipping {path}: file too large ({len(data)} bytes)")
        return None
    tree = _get_parser(dialect_for_path(path)).parse(data)
    if tree.root_node.has_error:
        row = _first_error_row(tree.root_node)
        where = f" near line {row + 1}" if row is not None else ""
        warnings.append(f"Skipping {path}: parse errors{where}")
        return None
    return SourceUnit(path=path, source=data, tree=tree, content_hash=hash_bytes(data))


def _first_error_row(node: Node) -> Optional[int]:
    for current in walk(node):
        if current.type == "ERROR" or current.is_missing:
            return current.start_point[0]
    return None


def read_source(root: Path, path: str, warnings: List[str]) -> Optional[bytes]:
    try:
        return (root / path).read_bytes()
    except OSError as exc:
        warnings.append(f"Skipping {path}: {exc.strerror or exc}")
        return None


async def aread_source(root: Path, path: str, warnings: List[str]) -> Optional[bytes]:
    return await asyncio.to_thread(read_source, root, path, warnings)


def load_unit(root: Path, path: str, warnings: List[str]) -> Optional[SourceUnit]:
    data = read_source(root, path, warnings)
    if data is None:
        return None
    return parse_source(path, data, warnings)


def parse_text(path: str, text: str) -> Tuple[Optional[SourceUnit], List[str]]:
    """Parse in-memory source (handy for tests and editor integrations)."""
    warnings: List[str] = []
    unit = parse_source(path, text.encode("utf-8"), warnings)
    return unit, warnings
