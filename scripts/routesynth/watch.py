from __future__ import annotations

from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchfiles import Change, DefaultFilter, awatch

from .builder import RouteBuilder
from .constants import EXCLUDE_DIRS, SCAN_EXTS

CHANGE_KINDS = {
    Change.added: "add",
    Change.modified: "change",
    Change.deleted: "remove",
}


class SourceFilter(DefaultFilter):
    """Only script sources, never generated output or dependency folders."""

    def __init__(self) -> None:
        super().__init__(ignore_dirs=tuple(sorted(EXCLUDE_DIRS)))

    def __call__(self, change: Change, path: str) -> bool:
        if not super().__call__(change, path):
            return False
        return path.endswith(SCAN_EXTS) and not path.endswith(".d.ts")


async def watch_builder(
    builder: RouteBuilder,
    *,
    on_change: Optional[Callable[[], Awaitable[None]]] = None,
    stop_event=None,
) -> None:
    """Feed filesystem changes under the builder's root into the builder.

    ``on_change`` runs after every batch that changed the route table.
    """
    root = Path(builder.root)
    async for changes in awatch(root, watch_filter=SourceFilter(), stop_event=stop_event):
        changed = False
        for change, path in sorted(changes, key=lambda item: item[1]):
            kind = CHANGE_KINDS.get(change)
            if kind is None:
                continue
            if await builder.handle_file_event(path, kind):
                changed = True
        if changed and on_change is not None:
            await on_change()
