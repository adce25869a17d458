from __future__ import annotations

from typing import Callable, List, Optional

from .builder import RouteBuilder


class VirtualModulePlugin:
    """Host-agnostic shape of a bundler plugin serving the generated module.

    ``resolve_id`` maps the public module name to an internal id prefixed with
    ``\\0`` (so other resolvers leave it alone) and ``load`` serves the builder's
    current text for that id. When an external ``builder`` is passed the plugin
    leaves its lifecycle to the caller.
    """

    def __init__(self, builder: RouteBuilder, module_name: Optional[str] = None, *, external: bool = False) -> None:
        self.builder = builder
        self.module_name = module_name or builder.options.module_name
        self.module_id = "\0" + self.module_name
        self.external = external
        self._unsubscribe: List[Callable[[], None]] = []

    @property
    def name(self) -> str:
        return self.module_name

    async def build_start(self) -> None:
        if not self.external:
            await self.builder.init()
            self.builder.update()

    def resolve_id(self, module_id: str) -> Optional[str]:
        if module_id == self.module_name:
            return self.module_id
        return None

    def load(self, module_id: str) -> Optional[str]:
        if module_id == self.module_id:
            return self.builder.get_virtual_module_content()
        return None

    def configure_server(self, invalidate: Callable[[str], None]) -> Callable[[], None]:
        """Call ``invalidate(module_id)`` whenever the routes change."""
        unsubscribe = self.builder.on_invalidate(lambda: invalidate(self.module_id))
        self._unsubscribe.append(unsubscribe)
        return unsubscribe

    async def handle_watch_event(self, path: str, kind: str) -> bool:
        if self.external:
            return False
        return await self.builder.handle_file_event(path, kind)

    def close(self) -> None:
        while self._unsubscribe:
            self._unsubscribe.pop()()
