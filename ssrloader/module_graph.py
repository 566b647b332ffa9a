"""Module graph store for the dev server.

Keeps one :class:`ModuleNode` per module url.  The SSR loader stores the
module's export namespace and cached transform result on the node; the
transform pipeline records import edges so a change to one file can
invalidate every module that (transitively) imported it.

Usage::

    graph = ModuleGraph("/path/to/project")
    node = await graph.ensure_entry_from_url("/src/app.py")
    node.file            # "/path/to/project/src/app.py"
    graph.invalidate_module(node)
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from ssrloader import utils

if TYPE_CHECKING:
    from ssrloader.namespace import ModuleNamespace
    from ssrloader.transform import TransformResult

log = logging.getLogger("ssrloader.module_graph")


class ModuleStatus(Enum):
    """Instantiation state of a module."""
    UNLOADED = "unloaded"
    INSTANTIATING = "instantiating"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(eq=False)
class ModuleNode:
    """Per-url record shared by the graph, the transform pipeline and the loader."""
    url: str
    file: str | None = None
    ssr_module: ModuleNamespace | None = None
    ssr_transform_result: TransformResult | None = None
    status: ModuleStatus = ModuleStatus.UNLOADED
    importers: set[ModuleNode] = field(default_factory=set, repr=False)
    imported_modules: set[ModuleNode] = field(default_factory=set, repr=False)
    last_invalidated: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "file": self.file,
            "status": self.status.value,
            "importers": sorted(m.url for m in self.importers),
            "imported_modules": sorted(m.url for m in self.imported_modules),
        }


class ModuleGraph:
    """Url-keyed registry of :class:`ModuleNode` records."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)
        self.url_to_module_map: dict[str, ModuleNode] = {}
        self.file_to_modules_map: dict[str, set[ModuleNode]] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def ensure_entry_from_url(self, url: str) -> ModuleNode:
        """Return the node for *url*, creating it on first access."""
        url = utils.normalize_url(url)
        node = self.url_to_module_map.get(url)
        if node is not None:
            return node

        node = ModuleNode(url=url, file=self._file_for(url))
        self.url_to_module_map[url] = node
        if node.file:
            self.file_to_modules_map.setdefault(node.file, set()).add(node)
        log.debug("Added %s to module graph (file=%s)", url, node.file)
        return node

    def get_module_by_url(self, url: str) -> ModuleNode | None:
        return self.url_to_module_map.get(utils.normalize_url(url))

    def get_modules_by_file(self, file: str) -> set[ModuleNode]:
        return set(self.file_to_modules_map.get(os.path.abspath(file), set()))

    def _file_for(self, url: str) -> str | None:
        if url.startswith("\0") or utils.is_external(url):
            return None
        path = utils.url_to_file(url, self.root)
        return path if os.path.isfile(path) else None

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    async def update_module_imports(self, node: ModuleNode, deps: Iterable[str]) -> None:
        """Replace the internal import edges of *node* with *deps*."""
        for old in node.imported_modules:
            old.importers.discard(node)
        node.imported_modules = set()

        for dep in deps:
            if utils.is_external(dep):
                continue
            imported = await self.ensure_entry_from_url(
                utils.normalize_url(dep, node.url)
            )
            node.imported_modules.add(imported)
            imported.importers.add(node)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate_module(
        self,
        node: ModuleNode,
        seen: set[ModuleNode] | None = None,
    ) -> list[str]:
        """Drop cached state of *node* and of every module importing it.

        Returns the urls that were invalidated.
        """
        seen = set() if seen is None else seen
        if node in seen:
            return []
        seen.add(node)

        node.ssr_module = None
        node.ssr_transform_result = None
        node.status = ModuleStatus.UNLOADED
        node.last_invalidated = time.time()

        invalidated = [node.url]
        for importer in list(node.importers):
            invalidated.extend(self.invalidate_module(importer, seen))
        return invalidated

    def invalidate_all(self) -> int:
        seen: set[ModuleNode] = set()
        for node in list(self.url_to_module_map.values()):
            self.invalidate_module(node, seen)
        log.info("Invalidated %d module(s)", len(seen))
        return len(seen)

    def clear(self) -> None:
        self.url_to_module_map.clear()
        self.file_to_modules_map.clear()

    # ------------------------------------------------------------------
    # Locator maps
    # ------------------------------------------------------------------

    def original_position(self, url: str, line: int) -> tuple[str, int] | None:
        """Map generated *line* of module *url* to ``(file, original_line)``."""
        node = self.url_to_module_map.get(url)
        if node is None or node.ssr_transform_result is None:
            return None
        line_map = node.ssr_transform_result.line_map
        if not line_map or line < 1:
            return None
        original = line_map[min(line, len(line_map)) - 1]
        return node.file or node.url, original

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        counts: dict[str, int] = {s.value: 0 for s in ModuleStatus}
        for node in self.url_to_module_map.values():
            counts[node.status.value] += 1
        return {
            "root": self.root,
            "total_modules": len(self.url_to_module_map),
            "by_status": counts,
        }
