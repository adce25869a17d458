"""Incremental route builder.

Owns the global route table and the rendered module text. ``init`` does one
full scan; afterwards file events re-scan only the changed file plus the
files whose resolution read it. The only suspension point of an event is
the file read, so each event takes a per-file ticket before reading and the
table is touched only if that ticket is still the newest one for the file.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from ir import RouteInfo, RouterDefinition, ScanResult
from utils import hash_bytes, progress

from .constants import EVENT_ALIASES, EVENT_KINDS
from .discovery import is_included, list_source_files, relative_to_root
from .project import SourceProject
from .render import render_module
from .repo_config import SynthOptions, load_tsconfig_paths
from .scanner import scan_files, scan_unit
from .syntax import SourceUnit, aread_source, parse_source
from .table import RouteTable

UNINITIALIZED = "uninitialized"
READY = "ready"
STALE = "stale"


class BuilderStateError(RuntimeError):
    pass


class RouteBuilder:
    def __init__(
        self,
        root: Path,
        options: Optional[SynthOptions] = None,
        *,
        warnings: Optional[List[str]] = None,
        quiet: bool = True,
    ) -> None:
        self.root = Path(root)
        self.options = options or SynthOptions()
        self.warnings = warnings if warnings is not None else []
        self.quiet = quiet
        self.state = UNINITIALIZED
        self.table = RouteTable(self.options.conflicts)
        self.project = SourceProject(self.root, lazy=False)
        self._results: Dict[str, ScanResult] = {}
        self._tickets: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._listeners: List[Callable[[], None]] = []
        self._content: Optional[str] = None

    # -- lifecycle ---------------------------------------------------------

    async def init(self) -> None:
        """Full scan of the include set. Safe to call again; it starts over."""
        files = await asyncio.to_thread(
            list_source_files,
            self.root,
            self.options.include,
            exclude=self.options.exclude,
            quiet=self.quiet,
        )
        alias_config = load_tsconfig_paths(self.root, self.warnings, names=(self.options.tsconfig,))
        project = SourceProject(self.root, files, alias_config=alias_config, lazy=False)
        for path in files:
            data = await aread_source(self.root, path, self.warnings)
            if data is None:
                project.discard(path)
                continue
            unit = parse_source(path, data, self.warnings)
            if unit is not None:
                project.add(unit)
        async with self._lock:
            before = self.table.snapshot() if self.state != UNINITIALIZED else None
            self.project = project
            self._results = scan_files(project, project.files, self.options, self.warnings)
            self.table = RouteTable(self.options.conflicts)
            for result in self._results.values():
                self.table.insert(result)
            self.table.settle(None, self.warnings)
            self._content = None
            self.state = READY
            changed = before is not None and before != self.table.snapshot()
        if not self.quiet:
            progress(f"Indexed {len(self.table)} routes from {len(self._results)} files", done=True)
        if changed:
            self._invalidate()

    def update(self) -> str:
        """Render the module from the current table and cache it."""
        self._require_init("update")
        self._content = render_module(self.table, self.options)
        self.state = READY
        return self._content

    def get_virtual_module_content(self) -> str:
        self._require_init("get_virtual_module_content")
        if self._content is None or self.state == STALE:
            return self.update()
        return self._content

    def on_invalidate(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to table changes; call the returned function to unsubscribe."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # -- accessors -----------------------------------------------------------

    def routes(self) -> List[RouteInfo]:
        return self.table.entries()

    def definitions(self) -> List[RouterDefinition]:
        return [
            definition
            for path in sorted(self._results)
            for definition in self._results[path].definitions
        ]

    def dependents_of(self, path: str) -> Set[str]:
        """Files whose last scan read ``path`` while resolving routes."""
        return {
            file
            for file, result in self._results.items()
            if file != path and path in result.dependencies
        }

    # -- file events -------------------------------------------------------

    async def handle_file_event(self, path: str, kind: str) -> bool:
        """Apply one add/change/remove event; returns True when the table changed."""
        self._require_init("handle_file_event")
        kind = EVENT_ALIASES.get(kind, kind)
        if kind not in EVENT_KINDS:
            raise ValueError(f"unknown file event kind: {kind}")
        rel = relative_to_root(self.root, path)
        if rel is None or not is_included(rel, self.options.include, self.options.exclude):
            return False

        ticket = self._tickets.get(rel, 0) + 1
        self._tickets[rel] = ticket

        warnings: List[str] = []
        data: Optional[bytes] = None
        if kind != "remove":
            data = await aread_source(self.root, rel, warnings)
        if self._tickets.get(rel) != ticket:
            return False

        async with self._lock:
            if self._tickets.get(rel) != ticket:
                return False
            previous = self.project.cached(rel)
            if data is not None and previous is not None and previous.content_hash == hash_bytes(data):
                return False
            unit = parse_source(rel, data, warnings) if data is not None else None
            before = self.table.snapshot()
            targets = self._apply_to_project(rel, data, unit)
            for target in sorted(targets):
                self._rescan(target, warnings)
            changed = before != self.table.snapshot()
            self.warnings.extend(warnings)
            if changed:
                self._content = None
                self.state = STALE
        if changed:
            self._invalidate()
        return changed

    def _apply_to_project(self, rel: str, data: Optional[bytes], unit: Optional[SourceUnit]) -> Set[str]:
        """Swap ``rel`` in the project; returns every file that has to be re-scanned."""
        added = rel not in self.project.files
        targets = {rel} | self.dependents_of(rel)
        if data is None:
            self.project.discard(rel)
        elif unit is None:
            # unparseable: stays in the set, contributes nothing until fixed
            self.project.files.add(rel)
            self.project.forget(rel)
        else:
            self.project.add(unit)
        if added and unit is not None:
            targets |= self._waiting_on(rel)
        return targets

    def _waiting_on(self, rel: str) -> Set[str]:
        """Files with an import that did not resolve before and resolves to ``rel`` now."""
        waiting: Set[str] = set()
        for file, result in self._results.items():
            for importer, specifier in result.unresolved_imports:
                if self.project.resolve_import(specifier, importer) == rel:
                    waiting.add(file)
        return waiting

    def _rescan(self, target: str, warnings: List[str]) -> None:
        unit = self.project.cached(target)
        if unit is None:
            self._results.pop(target, None)
            self.table.replace(target, None, warnings)
            return
        result = scan_unit(unit, self.project, self.options, warnings)
        self._results[target] = result
        self.table.replace(target, result, warnings)

    # -- helpers -------------------------------------------------------------

    def _require_init(self, operation: str) -> None:
        if self.state == UNINITIALIZED:
            raise BuilderStateError(f"{operation}() called before init()")

    def _invalidate(self) -> None:
        for callback in list(self._listeners):
            callback()
