from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from ir import RouteInfo, ScanResult

from .constants import CONFLICT_POLICIES


@dataclass(frozen=True)
class Contribution:
    route: RouteInfo
    group: Optional[str]


Snapshot = Tuple[Tuple[RouteInfo, ...], Tuple[Tuple[str, Tuple[str, ...]], ...]]


class RouteTable:
    """Global path -> RouteInfo mapping with a reverse index from file to paths.

    Each file's contributions are stored separately so a file can be retracted
    and re-inserted without touching anyone else. Inside one file the last
    declaration of a path wins, which is how object spreads override. Across
    files the ``policy`` decides, comparing files in sorted path order, so the
    outcome never depends on the order events arrived in.
    """

    def __init__(self, policy: str = "last") -> None:
        if policy not in CONFLICT_POLICIES:
            raise ValueError(f"unknown conflict policy: {policy}")
        self.policy = policy
        self._contributions: Dict[str, Dict[str, List[Contribution]]] = {}
        self._paths_by_file: Dict[str, Set[str]] = {}
        self._winners: Dict[str, RouteInfo] = {}
        self._conflicts: Dict[str, Tuple[str, ...]] = {}

    def __len__(self) -> int:
        return len(self._winners)

    def __contains__(self, path: str) -> bool:
        return path in self._winners

    def paths_for(self, file: str) -> Set[str]:
        return set(self._paths_by_file.get(file, set()))

    def get(self, path: str) -> Optional[RouteInfo]:
        return self._winners.get(path)

    def entries(self) -> List[RouteInfo]:
        return [self._winners[path] for path in sorted(self._winners)]

    def groups(self) -> Dict[str, List[str]]:
        """Group name -> sorted paths declared under it, across all files."""
        grouped: Dict[str, Set[str]] = {}
        for path, by_file in self._contributions.items():
            for items in by_file.values():
                for item in items:
                    if item.group:
                        grouped.setdefault(item.group, set()).add(path)
        return {name: sorted(paths) for name, paths in sorted(grouped.items())}

    def snapshot(self) -> Snapshot:
        groups = tuple((name, tuple(paths)) for name, paths in self.groups().items())
        return tuple(self.entries()), groups

    def retract(self, file: str) -> Set[str]:
        """Drop everything ``file`` contributes; returns the paths it touched."""
        paths = self._paths_by_file.pop(file, set())
        for path in paths:
            by_file = self._contributions.get(path)
            if by_file is None:
                continue
            by_file.pop(file, None)
            if not by_file:
                del self._contributions[path]
        return paths

    def insert(self, result: ScanResult) -> Set[str]:
        """Add one file's scan result; returns the paths it contributes."""
        paths: Set[str] = set()
        for definition in result.definitions:
            for route in definition.routes:
                by_file = self._contributions.setdefault(route.path, {})
                by_file.setdefault(result.file, []).append(
                    Contribution(route=route, group=definition.group)
                )
                paths.add(route.path)
        if paths:
            self._paths_by_file[result.file] = paths
        return paths

    def replace(self, file: str, result: Optional[ScanResult], warnings: Optional[List[str]] = None) -> None:
        """Retract ``file`` then insert ``result`` (``None`` means the file is gone)."""
        touched = self.retract(file)
        if result is not None:
            touched |= self.insert(result)
        self.settle(touched, warnings)

    def settle(self, paths: Optional[Set[str]] = None, warnings: Optional[List[str]] = None) -> None:
        """Recompute winners for ``paths`` (every path when ``None``)."""
        if warnings is None:
            warnings = []
        if paths is None:
            paths = set(self._contributions) | set(self._winners)
        for path in sorted(paths):
            by_file = self._contributions.get(path)
            if not by_file:
                self._winners.pop(path, None)
                self._conflicts.pop(path, None)
                continue
            ordered = sorted(by_file)
            # within one file the latest declaration always stands
            candidates = [(file, by_file[file][-1].route) for file in ordered]
            winner_file, winner = candidates[-1] if self.policy == "last" else candidates[0]
            self._winners[path] = winner
            self._note_conflict(path, winner_file, candidates, warnings)

    def _note_conflict(
        self,
        path: str,
        winner_file: str,
        candidates: List[Tuple[str, RouteInfo]],
        warnings: List[str],
    ) -> None:
        signatures = {(route.param_text, route.return_type) for _, route in candidates}
        if len(candidates) < 2 or len(signatures) < 2:
            self._conflicts.pop(path, None)
            return
        files = tuple(file for file, _ in candidates)
        if self._conflicts.get(path) == files:
            return
        self._conflicts[path] = files
        others = ", ".join(file for file in files if file != winner_file)
        warnings.append(
            f"route '{path}' declared with different signatures in {winner_file} and {others}; "
            f"using {winner_file} ({self.policy} wins)"
        )
