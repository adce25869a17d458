from __future__ import annotations

from typing import List, Optional, Tuple

from tree_sitter import Node

from ir import RouteInfo

from .inference import param_text, return_type
from .syntax import FUNCTION_NODES, SourceUnit, named, node_text, property_key, strip_quotes

ACCESSOR_TOKENS = {"get", "set"}


def _handler_for(entry: Node, where: str, warnings: List[str]) -> Optional[Tuple[str, Node]]:
    """(path, handler) for one own entry of a routes object, or ``None`` to skip it."""
    if entry.type == "method_definition":
        name_node = entry.child_by_field_name("name")
        path = property_key(name_node)
        if path is None:
            warnings.append(f"{where}: skipping computed route key {node_text(name_node)}")
            return None
        if any(child.type in ACCESSOR_TOKENS for child in entry.children):
            warnings.append(f"{where}: skipping accessor route: {path}")
            return None
        return path, entry
    if entry.type == "pair":
        key = entry.child_by_field_name("key")
        path = property_key(key)
        if path is None:
            warnings.append(f"{where}: skipping computed route key {node_text(key)}")
            return None
        value = entry.child_by_field_name("value")
        if value is None or value.type not in FUNCTION_NODES:
            warnings.append(f"{where}: skipping non-function property: {path}")
            return None
        return path, value
    if entry.type == "shorthand_property_identifier":
        warnings.append(f"{where}: skipping non-function property: {node_text(entry)}")
    return None


def extract_routes(
    obj: Node,
    file: str,
    *,
    unit: Optional[SourceUnit] = None,
    warnings: Optional[List[str]] = None,
    module_dir: str = ".",
) -> List[RouteInfo]:
    """RouteInfo for every function-valued own entry of ``obj``; spreads are left alone.

    ``module_dir`` is where the generated module lives; type names the handler
    file declares or imports are written relative to it.
    """
    if warnings is None:
        warnings = []
    if obj.type != "object":
        return []
    where = unit.path if unit is not None else file
    routes: List[RouteInfo] = []
    for entry in named(obj):
        found = _handler_for(entry, where, warnings)
        if found is None:
            continue
        path, handler = found
        path = strip_quotes(path)
        if not path:
            warnings.append(f"{where}: skipping empty route key")
            continue
        routes.append(
            RouteInfo(
                path=path,
                file=file,
                param_text=param_text(handler),
                return_type=return_type(handler, unit, module_dir=module_dir),
            )
        )
    return routes
