from __future__ import annotations

from typing import List, Optional, Set, Tuple

from ir import RouteInfo

from .extractor import extract_routes
from .resolver import ExpressionResolver, ResolvedObject
from .syntax import first_named, named, node_text


def aggregate_routes(
    obj: ResolvedObject,
    file: str,
    resolver: ExpressionResolver,
    *,
    warnings: Optional[List[str]] = None,
    module_dir: str = ".",
) -> List[RouteInfo]:
    """Flatten spreads depth-first in source order, then append the literal's own routes.

    Later entries override earlier ones once merged into the route table, which
    matches ``{...a, ...b, x}`` object semantics. Duplicates are kept here.
    """
    if warnings is None:
        warnings = []
    routes: List[RouteInfo] = []
    visited: Set[Tuple[str, str]] = set()

    def visit(current: ResolvedObject) -> None:
        if current.key in visited:
            return
        visited.add(current.key)
        for entry in named(current.node):
            if entry.type != "spread_element":
                continue
            target = first_named(entry)
            if target is None:
                continue
            resolved = resolver.resolve(target, current.unit)
            if resolved is None:
                warnings.append(f"{current.unit.path}: cannot resolve spread ...{node_text(target)}")
                continue
            visit(resolved)
        routes.extend(
            extract_routes(current.node, file, unit=current.unit, warnings=warnings, module_dir=module_dir)
        )

    visit(obj)
    return routes
