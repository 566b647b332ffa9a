"""Per-module binding surface injected into SSR-executed code.

Every instantiated module receives its own :class:`ModuleBindings`,
whose callables close over the module's url, export namespace and call
stack.  :meth:`ModuleBindings.as_globals` lays them out under the names
the transform pipeline emits.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ssrloader import utils
from ssrloader.constants import (
    DEFAULT_EXPORT_KEY,
    SSR_DYNAMIC_IMPORT_KEY,
    SSR_EXPORT_ALL_KEY,
    SSR_GLOBAL_KEY,
    SSR_IMPORT_KEY,
    SSR_IMPORT_META_KEY,
    SSR_MODULE_EXPORTS_KEY,
)
from ssrloader.namespace import ModuleNamespace, export_names, read_export

if TYPE_CHECKING:
    from ssrloader.module_graph import ModuleNode
    from ssrloader.module_loader import SSRContext, SSRModuleLoader

log = logging.getLogger("ssrloader.bindings")


def _retrieve_exception(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        log.debug("Dynamic import failed: %r", future.exception())


@dataclass(frozen=True)
class ImportMeta:
    """Metadata about the executing module (``__ssr_import_meta__``)."""
    url: str
    file: str | None = None


class ModuleBindings:
    """Import/export callables for one module instantiation."""

    def __init__(
        self,
        loader: SSRModuleLoader,
        node: ModuleNode,
        namespace: ModuleNamespace,
        context: SSRContext,
        url_stack: tuple[str, ...],
    ) -> None:
        self.loader = loader
        self.node = node
        self.namespace = namespace
        self.context = context
        self.url_stack = url_stack
        self.import_meta = ImportMeta(url=node.url, file=node.file)

    @property
    def url(self) -> str:
        return self.node.url

    def _require(self, dep: str) -> Any:
        return self.loader.resolver.load(dep, self.node.file, self.loader.root)

    def ssr_import(self, dep: str) -> Any:
        """Static import: externals load natively, internals are already instantiated."""
        if utils.is_external(dep):
            return self._require(dep)
        return self.loader.namespace_for(utils.normalize_url(dep, self.url))

    def ssr_dynamic_import(self, dep: str) -> asyncio.Future:
        """Dynamic import: always returns an awaitable namespace."""
        if utils.is_external(dep):
            future = asyncio.get_running_loop().create_future()
            try:
                future.set_result(self._require(dep))
            except Exception as exc:
                future.set_exception(exc)
        else:
            future = asyncio.ensure_future(
                self.loader.load(
                    utils.normalize_url(dep, self.url),
                    self.context,
                    self.url_stack + (self.url,),
                )
            )
        # the caller may never await it
        future.add_done_callback(_retrieve_exception)
        return future

    def ssr_export_all(self, source: Any) -> None:
        """Re-export every export of *source* except ``default`` as a live binding."""
        for key in export_names(source):
            if key == DEFAULT_EXPORT_KEY:
                continue
            self.namespace.define(key, lambda k=key: read_export(source, k))

    def as_globals(self) -> dict[str, Any]:
        return {
            SSR_GLOBAL_KEY: self.context.global_,
            SSR_MODULE_EXPORTS_KEY: self.namespace,
            SSR_IMPORT_META_KEY: self.import_meta,
            SSR_IMPORT_KEY: self.ssr_import,
            SSR_DYNAMIC_IMPORT_KEY: self.ssr_dynamic_import,
            SSR_EXPORT_ALL_KEY: self.ssr_export_all,
        }
