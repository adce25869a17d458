from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .imports import resolve_ts_module
from .syntax import SourceUnit, load_unit


class SourceProject:
    """Parsed units of the scanned file set, keyed by relative path.

    Cross-file lookups only ever see files inside ``files``; anything else is
    outside the scan set and therefore unresolvable.
    """

    def __init__(
        self,
        root: Path,
        files: Iterable[str] = (),
        *,
        alias_config: Optional[Dict[str, object]] = None,
        lazy: bool = True,
    ) -> None:
        self.root = root
        self.lazy = lazy
        self.files: Set[str] = set(files)
        self.alias_config = alias_config or {}
        self._units: Dict[str, SourceUnit] = {}

    def add(self, unit: SourceUnit) -> None:
        self.files.add(unit.path)
        self._units[unit.path] = unit

    def forget(self, path: str) -> None:
        self._units.pop(path, None)

    def discard(self, path: str) -> None:
        self.files.discard(path)
        self._units.pop(path, None)

    def cached(self, path: str) -> Optional[SourceUnit]:
        return self._units.get(path)

    def unit(self, path: str, warnings: Optional[List[str]] = None) -> Optional[SourceUnit]:
        """Unit for ``path``, parsing it on first use if it belongs to the set."""
        if path not in self.files:
            return None
        unit = self._units.get(path)
        if unit is None and self.lazy:
            unit = load_unit(self.root, path, warnings if warnings is not None else [])
            if unit is not None:
                self._units[path] = unit
        return unit

    def resolve_import(self, module: str, importer: str) -> Optional[str]:
        return resolve_ts_module(
            module,
            importer,
            self.files,
            alias_config=self.alias_config,
        )
