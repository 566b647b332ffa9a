"""
DevServer — one SSR dev-server session.

Owns the module graph, the external resolver, the SSR loader and,
optionally, the file watcher.  Everything cached during the session
(pending loads, resolutions, the graph itself) is dropped on
:meth:`DevServer.close`.

Usage::

    async with DevServer(ServerConfig(root="./site")) as server:
        ns = await server.ssr_load_module("/entry_server.py")
        html = ns["render"]("/")
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ssrloader.app_config import ServerConfig
from ssrloader.errors import ConfigError
from ssrloader.hot_reload import ModuleWatcher
from ssrloader.module_graph import ModuleGraph
from ssrloader.module_loader import SSRContext, SSRModuleLoader
from ssrloader.namespace import ModuleNamespace
from ssrloader.resolver import ExternalResolver
from ssrloader.transform import TransformResult, transform_request

log = logging.getLogger("ssrloader.server")


class DevServer:
    """Module graph, resolver, loader and watcher for one project root."""

    def __init__(self, config: Optional[ServerConfig] = None) -> None:
        self.config = config or ServerConfig()
        self.module_graph = ModuleGraph(self.config.abs_root)
        self.resolver = ExternalResolver(package_dirs=self.config.package_dirs)
        self.loader = SSRModuleLoader(self)
        self.watcher: Optional[ModuleWatcher] = None
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "DevServer":
        """Validate the configuration and start the watcher if enabled.

        Raises:
            ConfigError: the configuration failed validation.
        """
        if self._started:
            return self
        errors = self.config.validate()
        if errors:
            raise ConfigError(errors)

        if self.config.watch:
            self.watcher = ModuleWatcher(
                self.module_graph, poll_interval=self.config.poll_interval)
            self.watcher.start()

        self._started = True
        log.info("SSR dev server started (root=%s)", self.module_graph.root)
        return self

    async def close(self) -> None:
        """Stop the watcher and drop every session cache."""
        if self.watcher is not None:
            await self.watcher.stop()
            self.watcher = None
        self.loader.clear()
        self.resolver.clear()
        self.module_graph.clear()
        self._started = False
        log.info("SSR dev server closed")

    @property
    def started(self) -> bool:
        return self._started

    async def __aenter__(self) -> "DevServer":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    async def transform_request(self, url: str, *, ssr: bool = True) -> Optional[TransformResult]:
        return await transform_request(url, self, ssr=ssr)

    async def ssr_load_module(
        self,
        url: str,
        context: Optional[SSRContext] = None,
    ) -> ModuleNamespace:
        """Load *url* and return its frozen export namespace."""
        return await self.loader.load(url, context)

    def invalidate_all(self) -> int:
        """Invalidate every module and forget memoized resolutions."""
        self.resolver.clear()
        return self.module_graph.invalidate_all()

    def stats(self) -> dict[str, Any]:
        return {
            "root": self.module_graph.root,
            "started": self._started,
            "graph": self.module_graph.stats(),
            "loader": self.loader.stats(),
            "resolver": self.resolver.stats(),
            "watcher": self.watcher.stats if self.watcher else None,
        }
