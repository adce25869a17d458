from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from tree_sitter import Node

from ir import RouterDefinition, ScanResult

from .aggregator import aggregate_routes
from .discovery import list_source_files
from .project import SourceProject
from .repo_config import SynthOptions, load_tsconfig_paths
from .resolver import ExpressionResolver, call_arguments, find_property
from .syntax import SourceUnit, literal_string, node_text, unwrap, walk


def _callee_matches(call: Node, names: Set[str]) -> bool:
    function = call.child_by_field_name("function")
    if function is None:
        return False
    function = unwrap(function)
    if function.type == "identifier":
        return node_text(function) in names
    if function.type == "member_expression":
        prop = function.child_by_field_name("property")
        return prop is not None and node_text(prop) in names
    return False


def find_call_sites(unit: SourceUnit, names: Sequence[str]) -> List[Node]:
    """Calls to route-publishing constructs, in source order."""
    wanted = set(names)
    return [
        node
        for node in walk(unit.root)
        if node.type == "call_expression" and _callee_matches(node, wanted)
    ]


def router_group(call: Node, unit: SourceUnit, resolver: ExpressionResolver) -> Optional[str]:
    """Literal ``group`` option passed as the second argument, if any."""
    args = call_arguments(call)
    if len(args) < 2:
        return None
    resolved = resolver.resolve(args[1], unit)
    if resolved is None:
        return None
    value = find_property(resolved.node, "group")
    if value is None:
        return None
    return literal_string(unwrap(value))


def scan_unit(
    unit: SourceUnit,
    project: SourceProject,
    options: SynthOptions,
    warnings: List[str],
) -> ScanResult:
    resolver = ExpressionResolver(project, pass_through=options.helper_names(), warnings=warnings)
    definitions: List[RouterDefinition] = []
    for call in find_call_sites(unit, options.router_names()):
        where = f"{unit.path}:{call.start_point[0] + 1}"
        args = call_arguments(call)
        if not args:
            warnings.append(f"{where}: {node_text(call.child_by_field_name('function'))}() has no routes argument")
            definitions.append(RouterDefinition(group=None, routes=(), file=unit.path, routes_source=""))
            continue
        routes_node = args[0]
        resolved = resolver.resolve(routes_node, unit)
        if resolved is None:
            warnings.append(f"{where}: cannot resolve routes argument {node_text(routes_node)}")
            routes = []
        else:
            routes = aggregate_routes(
                resolved, unit.path, resolver, warnings=warnings, module_dir=options.module_dir()
            )
        definitions.append(
            RouterDefinition(
                group=router_group(call, unit, resolver),
                routes=tuple(routes),
                file=unit.path,
                routes_source=node_text(routes_node),
            )
        )
    dependencies = sorted(resolver.dependencies - {unit.path})
    return ScanResult(
        file=unit.path,
        definitions=definitions,
        dependencies=dependencies,
        content_hash=unit.content_hash,
        unresolved_imports=sorted(resolver.unresolved_imports),
    )


def scan_files(
    project: SourceProject,
    files: Iterable[str],
    options: SynthOptions,
    warnings: List[str],
) -> Dict[str, ScanResult]:
    """Scan ``files`` one at a time in sorted order; unreadable files are skipped."""
    results: Dict[str, ScanResult] = {}
    for path in sorted(set(files)):
        unit = project.unit(path, warnings)
        if unit is None:
            continue
        results[path] = scan_unit(unit, project, options, warnings)
    return results


def scan(
    root: Path,
    options: Optional[SynthOptions] = None,
    *,
    warnings: Optional[List[str]] = None,
) -> List[RouterDefinition]:
    """One RouterDefinition per call-site across every file the include globs select."""
    options = options or SynthOptions()
    if warnings is None:
        warnings = []
    files = list_source_files(root, options.include, exclude=options.exclude, quiet=True)
    alias_config = load_tsconfig_paths(root, warnings, names=(options.tsconfig,))
    project = SourceProject(root, files, alias_config=alias_config)
    results = scan_files(project, files, options, warnings)
    return [definition for path in sorted(results) for definition in results[path].definitions]
