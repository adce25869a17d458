"""Static reduction of expressions to object literals.

Follows variable aliases, pass-through helper calls, function returns,
property accesses and (within the scanned set) imports until an object
literal turns up. Every step is guarded by a visited set keyed by
``(file, text)`` so self-referential aliasing terminates.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from tree_sitter import Node

from .constants import DEFAULT_PASS_THROUGH
from .project import SourceProject
from .syntax import (
    FUNCTION_NODES,
    SourceUnit,
    literal_string,
    named,
    node_text,
    property_key,
    return_expressions,
    unwrap,
)

Visited = Set[Tuple[str, str]]


@dataclass(frozen=True)
class ResolvedObject:
    node: Node
    unit: SourceUnit

    @property
    def key(self) -> Tuple[str, str]:
        return (self.unit.path, node_text(self.node))


def callee_name(call: Node) -> Optional[str]:
    """Dotted name of a call's callee (``merge``, ``Object.assign``), else ``None``."""
    function = call.child_by_field_name("function")
    if function is None:
        return None
    function = unwrap(function)
    if function.type == "identifier":
        return node_text(function)
    if function.type == "member_expression":
        parts: List[str] = []
        current: Optional[Node] = function
        while current is not None and current.type == "member_expression":
            prop = current.child_by_field_name("property")
            if prop is None:
                return None
            parts.append(node_text(prop))
            current = current.child_by_field_name("object")
        if current is None or current.type not in {"identifier", "this"}:
            return None
        parts.append(node_text(current))
        return ".".join(reversed(parts))
    return None


def call_arguments(call: Node) -> List[Node]:
    return named(call.child_by_field_name("arguments"))


def member_name(node: Node) -> Optional[str]:
    """Property read by ``a.b`` or ``a["b"]``; ``None`` for computed access."""
    if node.type == "member_expression":
        prop = node.child_by_field_name("property")
        if prop is None or prop.type not in {"property_identifier", "private_property_identifier"}:
            return None
        return node_text(prop)
    index = node.child_by_field_name("index")
    return literal_string(unwrap(index)) if index is not None else None


def find_property(obj: Node, name: str) -> Optional[Node]:
    """Last own ``name`` entry of an object literal (pair or shorthand)."""
    found: Optional[Node] = None
    for entry in named(obj):
        if entry.type == "pair":
            if property_key(entry.child_by_field_name("key")) == name:
                value = entry.child_by_field_name("value")
                if value is not None:
                    found = value
        elif entry.type == "shorthand_property_identifier":
            if node_text(entry) == name:
                found = entry
    return found


class ExpressionResolver:
    def __init__(
        self,
        project: SourceProject,
        *,
        pass_through: Iterable[str] = DEFAULT_PASS_THROUGH,
        warnings: Optional[List[str]] = None,
    ) -> None:
        self.project = project
        self.pass_through = frozenset(pass_through)
        self.warnings = warnings if warnings is not None else []
        self.dependencies: Set[str] = set()
        # (importer, specifier) pairs that pointed outside the scanned files
        self.unresolved_imports: Set[Tuple[str, str]] = set()

    def resolve(self, node: Node, unit: SourceUnit) -> Optional[ResolvedObject]:
        """Reduce ``node`` to an object literal; ``None`` when it can't be done statically."""
        visited: Visited = set()
        return self._resolve(node, unit, visited)

    def _resolve(self, node: Node, unit: SourceUnit, visited: Visited) -> Optional[ResolvedObject]:
        node = unwrap(node)
        key = (unit.path, node_text(node))
        if key in visited:
            return None
        visited.add(key)
        self.dependencies.add(unit.path)

        kind = node.type
        if kind == "object":
            return ResolvedObject(node, unit)
        if kind in {"identifier", "shorthand_property_identifier"}:
            return self._resolve_identifier(node_text(node), unit, visited)
        if kind == "call_expression":
            return self._resolve_call(node, unit, visited)
        if kind in {"member_expression", "subscript_expression"}:
            name = member_name(node)
            if name is None:
                return None
            base = node.child_by_field_name("object")
            target = self._follow_namespace(base, name, unit, visited)
            if target is not None:
                return self._resolve_target(target, visited)
            return self._resolve_member(base, name, unit, visited)
        return None

    def _resolve_identifier(self, name: str, unit: SourceUnit, visited: Visited) -> Optional[ResolvedObject]:
        for declarator in unit.variables(name):
            value = declarator.child_by_field_name("value")
            if value is not None:
                return self._resolve(value, unit, visited)
        for function in unit.functions(name):
            resolved = self._resolve_returns(function, unit, visited)
            if resolved is not None:
                return resolved
        target = self._follow_import(name, unit, visited)
        if target is None:
            return None
        return self._resolve_target(target, visited)

    def _resolve_target(self, target: Tuple[Node, SourceUnit], visited: Visited) -> Optional[ResolvedObject]:
        """Routes behind an exported declaration; a function stands for what it returns."""
        target_node, target_unit = target
        if target_node.type in {"function_declaration", "generator_function_declaration"}:
            return self._resolve_returns(target_node, target_unit, visited)
        return self._resolve(target_node, target_unit, visited)

    def _resolve_call(self, call: Node, unit: SourceUnit, visited: Visited) -> Optional[ResolvedObject]:
        name = callee_name(call)
        args = call_arguments(call)
        if name in self.pass_through and args:
            return self._resolve(args[0], unit, visited)
        function = unwrap(call.child_by_field_name("function"))
        if function.type == "member_expression":
            member = member_name(function)
            if member is None:
                return None
            target = self._follow_namespace(function.child_by_field_name("object"), member, unit, visited)
            return self._call_target(target, visited) if target is not None else None
        if function.type != "identifier":
            return None
        return self._resolve_callable(node_text(function), unit, visited)

    def _resolve_callable(self, name: str, unit: SourceUnit, visited: Visited) -> Optional[ResolvedObject]:
        for function in unit.functions(name):
            resolved = self._resolve_returns(function, unit, visited)
            if resolved is not None:
                return resolved
        for declarator in unit.variables(name):
            value = declarator.child_by_field_name("value")
            if value is not None and unwrap(value).type in FUNCTION_NODES:
                return self._resolve_returns(unwrap(value), unit, visited)
        target = self._follow_import(name, unit, visited)
        if target is None:
            return None
        return self._call_target(target, visited)

    def _call_target(self, target: Tuple[Node, SourceUnit], visited: Visited) -> Optional[ResolvedObject]:
        target_node, target_unit = target
        target_node = unwrap(target_node)
        if target_node.type in FUNCTION_NODES or target_node.type in {
            "function_declaration",
            "generator_function_declaration",
        }:
            return self._resolve_returns(target_node, target_unit, visited)
        if target_node.type == "identifier":
            return self._resolve_callable(node_text(target_node), target_unit, visited)
        return None

    def _resolve_member(
        self,
        base: Optional[Node],
        name: str,
        unit: SourceUnit,
        visited: Visited,
    ) -> Optional[ResolvedObject]:
        if base is None:
            return None
        resolved = self._resolve(base, unit, visited)
        if resolved is None:
            return None
        value = find_property(resolved.node, name)
        if value is None:
            return None
        return self._resolve(value, resolved.unit, visited)

    def _resolve_returns(self, function: Node, unit: SourceUnit, visited: Visited) -> Optional[ResolvedObject]:
        for expr in return_expressions(function):
            resolved = self._resolve(expr, unit, visited)
            if resolved is not None:
                return resolved
        return None

    def _follow_import(self, name: str, unit: SourceUnit, visited: Visited) -> Optional[Tuple[Node, SourceUnit]]:
        """Declaration behind an imported ``name``, looked up in the exporting file."""
        binding = unit.import_binding(name)
        if binding is None or binding.is_namespace:
            return None
        return self._follow_export(binding.source, binding.imported, name, unit, visited)

    def _follow_namespace(
        self,
        base: Optional[Node],
        member: str,
        unit: SourceUnit,
        visited: Visited,
    ) -> Optional[Tuple[Node, SourceUnit]]:
        """Declaration behind ``ns.member`` when ``ns`` comes from ``import * as ns``."""
        if base is None:
            return None
        base = unwrap(base)
        if base.type != "identifier":
            return None
        name = node_text(base)
        if unit.variables(name) or unit.functions(name):
            return None
        binding = unit.import_binding(name)
        if binding is None or not binding.is_namespace:
            return None
        return self._follow_export(binding.source, member, f"{name}.{member}", unit, visited)

    def _follow_export(
        self,
        source: str,
        exported: str,
        name: str,
        unit: SourceUnit,
        visited: Visited,
    ) -> Optional[Tuple[Node, SourceUnit]]:
        target_path = self.project.resolve_import(source, unit.path)
        if target_path is None:
            self.unresolved_imports.add((unit.path, source))
            self.warnings.append(
                f"{unit.path}: '{name}' comes from '{source}', which is outside the scanned files"
            )
            return None
        key = (target_path, f"export {exported}")
        if key in visited:
            return None
        visited.add(key)
        self.dependencies.add(target_path)
        target = self.project.unit(target_path, self.warnings)
        if target is None:
            return None
        local = target.local_for_export(exported)
        if exported == "default" and local is None:
            default = target.default_export()
            return (default, target) if default is not None else None
        local = local or exported
        nested = target.import_binding(local)
        if not target.variables(local) and not target.functions(local) and nested is not None:
            return self._follow_import(local, target, visited)
        for declarator in target.variables(local):
            value = declarator.child_by_field_name("value")
            if value is not None:
                return value, target
        for function in target.functions(local):
            return function, target
        return None
