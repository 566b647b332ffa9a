"""
SSRModuleLoader — on-demand instantiation of transformed modules.

Loads a module url into a live :class:`ModuleNamespace`, instantiating
its internal dependencies first (sequentially, depth-first) and wiring
the import/export binding surface into the executed code.  Concurrent
requests for the same url share one instantiation; cyclic imports are
answered with the partially populated namespace of the module that is
still instantiating.

Usage::

    loader = SSRModuleLoader(server)
    ns = await loader.load("/src/app.py")
    ns["render"]("/")
"""

from __future__ import annotations

import asyncio
import builtins
import linecache
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ssrloader import utils
from ssrloader.bindings import ModuleBindings
from ssrloader.errors import TransformFailure
from ssrloader.module_graph import ModuleNode, ModuleStatus
from ssrloader.namespace import ModuleNamespace
from ssrloader.stacktrace import ssr_rewrite_stacktrace

if TYPE_CHECKING:
    from ssrloader.module_graph import ModuleGraph
    from ssrloader.resolver import ExternalResolver
    from ssrloader.server import DevServer
    from ssrloader.transform import TransformResult

log = logging.getLogger("ssrloader.module_loader")


@dataclass
class SSRContext:
    """Per-load context; ``global_`` is exposed to modules as ``__ssr_global__``."""
    global_: Any = builtins


class SSRModuleLoader:
    """Instantiate SSR modules for one :class:`DevServer` session."""

    def __init__(self, server: DevServer) -> None:
        self.server = server
        self._pending: dict[str, asyncio.Task] = {}
        self._instantiating: dict[str, ModuleNamespace] = {}
        self._loads = 0
        self._instantiations = 0
        self._failures = 0

    @property
    def graph(self) -> ModuleGraph:
        return self.server.module_graph

    @property
    def resolver(self) -> ExternalResolver:
        return self.server.resolver

    @property
    def root(self) -> str:
        return self.graph.root

    # ------------------------------------------------------------------
    # Loader front
    # ------------------------------------------------------------------

    async def load(
        self,
        url: str,
        context: SSRContext | None = None,
        url_stack: tuple[str, ...] = (),
    ) -> ModuleNamespace:
        """Return the namespace of *url*, instantiating it if needed.

        Args:
            url: Module url, possibly wrapped as a virtual id or carrying
                a query string.
            context: Shared global object for the executed code.
            url_stack: Urls currently being instantiated on this import
                chain, outermost first.
        """
        if context is None:
            context = SSRContext()
        self._loads += 1

        node = await self.graph.ensure_entry_from_url(utils.clean_url(utils.unwrap_id(url)))

        # cycle: hand back the namespace before it is populated
        if node.url in url_stack:
            return self.namespace_for(node.url)

        pending = self._pending.get(node.url)
        if pending is not None:
            return await pending

        task = asyncio.ensure_future(self.instantiate_module(node.url, context, url_stack))
        self._pending[node.url] = task

        def _forget(t: asyncio.Task, url: str = node.url) -> None:
            if self._pending.get(url) is t:
                del self._pending[url]
            if not t.cancelled():
                t.exception()

        task.add_done_callback(_forget)
        return await task

    # ------------------------------------------------------------------
    # Instantiator
    # ------------------------------------------------------------------

    async def instantiate_module(
        self,
        url: str,
        context: SSRContext | None = None,
        url_stack: tuple[str, ...] = (),
    ) -> ModuleNamespace:
        """Transform, link and execute *url* into a fresh namespace."""
        if context is None:
            context = SSRContext()
        node = await self.graph.ensure_entry_from_url(url)
        if node.ssr_module is not None and node.ssr_module.frozen:
            return node.ssr_module

        namespace = ModuleNamespace(node.url)
        node.ssr_module = namespace
        node.status = ModuleStatus.INSTANTIATING
        self._instantiating[node.url] = namespace
        self._instantiations += 1

        try:
            result = node.ssr_transform_result
            if result is None:
                result = await self.server.transform_request(node.url, ssr=True)
            if result is None:
                raise TransformFailure(node.url)

            # sequential, depth-first: parallel branches would race on cycles
            stack = url_stack + (node.url,)
            for dep in result.deps:
                if not utils.is_external(dep):
                    await self.load(utils.normalize_url(dep, node.url), context, stack)

            bindings = ModuleBindings(self, node, namespace, context, url_stack)
            self._evaluate(node, result, bindings)
        except Exception:
            if node.ssr_module is namespace:
                node.status = ModuleStatus.FAILED
            self._failures += 1
            raise
        finally:
            if self._instantiating.get(node.url) is namespace:
                del self._instantiating[node.url]

        namespace.freeze()
        # invalidated while instantiating: the next load starts over
        if node.ssr_module is namespace:
            node.status = ModuleStatus.COMPLETE
        log.debug("Instantiated %s (%d exports)", node.url, len(namespace))
        return namespace

    def _evaluate(self, node: ModuleNode, result: TransformResult, bindings: ModuleBindings) -> None:
        filename = node.url
        linecache.cache[filename] = (
            len(result.code),
            None,
            result.code.splitlines(True),
            filename,
        )
        module_globals: dict[str, Any] = {
            "__name__": node.url,
            "__file__": node.file or node.url,
            "__builtins__": builtins,
        }
        module_globals.update(bindings.as_globals())

        try:
            code = compile(result.code, filename, "exec")
            exec(code, module_globals)
        except Exception as exc:
            stack = ssr_rewrite_stacktrace(exc, self.graph)
            exc.ssr_stacktrace = stack
            log.error(
                "Error when evaluating SSR module %s:\n%s",
                node.url,
                stack,
                extra={"module_url": node.url},
            )
            raise

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Cancel and forget every in-flight instantiation."""
        for task in list(self._pending.values()):
            if not task.done():
                task.cancel()
        self._pending.clear()
        self._instantiating.clear()

    def namespace_for(self, url: str) -> ModuleNamespace | None:
        """Namespace of *url*: the one being populated, else the recorded one."""
        namespace = self._instantiating.get(url)
        if namespace is not None:
            return namespace
        node = self.graph.url_to_module_map.get(url)
        return node.ssr_module if node is not None else None

    def pending_urls(self) -> list[str]:
        return sorted(self._pending)

    def stats(self) -> dict[str, Any]:
        return {
            "loads": self._loads,
            "instantiations": self._instantiations,
            "failures": self._failures,
            "pending": len(self._pending),
        }
