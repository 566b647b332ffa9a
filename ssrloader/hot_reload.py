#!/usr/bin/env python3
# -------------------------------------------------------------------------------
# Name:         hot_reload
# Purpose:      Source watcher for the SSR dev server.
#               Polls the files behind the module graph and invalidates
#               changed modules (and their importers) so the next SSR
#               load re-executes them.
# -------------------------------------------------------------------------------

"""
SSR Module Watcher

Watches every file that backs a module in the graph.  Supports:

    - File modification detection (polling-based, no external deps)
    - Invalidation of the changed module and everything importing it
    - Callback hooks for invalidations and errors
    - Invalidation history

Usage::

    from ssrloader.hot_reload import ModuleWatcher

    watcher = ModuleWatcher(server.module_graph, poll_interval=1.0)
    watcher.on_reload(lambda path, urls: print(f"{path} changed: {urls}"))
    watcher.start()          # inside a running event loop

    # Later
    await watcher.stop()
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ssrloader.module_graph import ModuleGraph

log = logging.getLogger("ssrloader.hot_reload")


@dataclass
class FileState:
    """Tracked state of a source file."""
    filepath: str
    last_modified: float = 0.0
    last_size: int = 0
    invalidation_count: int = 0
    last_error: Optional[str] = None


@dataclass
class ReloadEvent:
    """Record of one invalidation caused by a file change."""
    filepath: str
    timestamp: float
    success: bool
    urls: list[str] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: float = 0.0


class ModuleWatcher:
    """Watches module-graph files and invalidates modified modules.

    Uses polling (os.stat) to detect file changes; newly loaded modules
    are picked up on every poll.
    """

    def __init__(self, graph: ModuleGraph, *,
                 poll_interval: float = 1.0) -> None:
        """
        Args:
            graph: Module graph whose files are watched.
            poll_interval: Seconds between file checks.
        """
        self.graph = graph
        self.poll_interval = poll_interval

        self._states: dict[str, FileState] = {}
        self._history: list[ReloadEvent] = []
        self._callbacks: list[Callable] = []
        self._error_callbacks: list[Callable] = []

        self._task: Optional[asyncio.Task] = None
        self._running = False

        self._scan_files()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the polling task on the running event loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._watch_loop(), name="ssr-module-watcher")
        log.info("Module watcher started: %s (interval=%.1fs)",
                 self.graph.root, self.poll_interval)

    async def stop(self) -> None:
        """Stop the polling task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("Module watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_reload(self, callback: Callable) -> None:
        """Register a callback for invalidations.

        Callback signature: (filepath: str, urls: list[str]) -> None
        """
        self._callbacks.append(callback)

    def on_error(self, callback: Callable) -> None:
        """Register a callback for watch errors.

        Callback signature: (filepath: str, error: str) -> None
        """
        self._error_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    def check_now(self) -> list[str]:
        """Check for changes immediately. Returns the invalidated urls."""
        return self._check_changes()

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def tracked_files(self) -> list[str]:
        return sorted(self._states.keys())

    def get_state(self, filepath: str) -> Optional[FileState]:
        return self._states.get(os.path.abspath(filepath))

    def get_history(self, limit: int = 50) -> list[ReloadEvent]:
        """Get invalidation history, most recent first."""
        return list(reversed(self._history[-limit:]))

    @property
    def stats(self) -> dict:
        total = sum(s.invalidation_count for s in self._states.values())
        errors = sum(1 for s in self._states.values() if s.last_error)
        return {
            "files_tracked": len(self._states),
            "total_invalidations": total,
            "files_with_errors": errors,
            "is_running": self._running,
            "poll_interval": self.poll_interval,
            "history_length": len(self._history),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _scan_files(self) -> None:
        """Start tracking files that entered the graph since the last scan."""
        for filepath in list(self.graph.file_to_modules_map):
            if filepath in self._states:
                continue
            try:
                stat = os.stat(filepath)
            except OSError:
                continue
            self._states[filepath] = FileState(
                filepath=filepath,
                last_modified=stat.st_mtime,
                last_size=stat.st_size,
            )

    async def _watch_loop(self) -> None:
        while self._running:
            try:
                self._check_changes()
            except Exception as e:
                log.error("Watch loop error: %s", e)
            await asyncio.sleep(self.poll_interval)

    def _check_changes(self) -> list[str]:
        """Check all tracked files for modifications."""
        invalidated: list[str] = []

        self._scan_files()

        for filepath, state in list(self._states.items()):
            try:
                stat = os.stat(filepath)
            except FileNotFoundError:
                log.info("Source file removed: %s", filepath)
                invalidated.extend(self._invalidate(state))
                del self._states[filepath]
                continue
            except OSError as e:
                self._record_failure(state, str(e))
                continue

            if (stat.st_mtime > state.last_modified or
                    stat.st_size != state.last_size):
                log.info("Change detected: %s (mtime %.0f -> %.0f)",
                         filepath, state.last_modified, stat.st_mtime)
                state.last_modified = stat.st_mtime
                state.last_size = stat.st_size
                invalidated.extend(self._invalidate(state))

        return invalidated

    def _invalidate(self, state: FileState) -> list[str]:
        """Invalidate every graph node backed by *state*'s file."""
        start = time.time()
        seen: set = set()
        urls: list[str] = []
        for node in self.graph.get_modules_by_file(state.filepath):
            urls.extend(self.graph.invalidate_module(node, seen))

        state.invalidation_count += 1
        state.last_error = None
        duration = (time.time() - start) * 1000
        self._history.append(ReloadEvent(
            filepath=state.filepath,
            timestamp=time.time(),
            success=True,
            urls=urls,
            duration_ms=duration,
        ))
        log.info("Invalidated %d module(s) after change to %s",
                 len(urls), state.filepath)

        for cb in self._callbacks:
            try:
                cb(state.filepath, urls)
            except Exception as e:
                log.debug("Reload callback error: %s", e)
        return urls

    def _record_failure(self, state: FileState, error: str) -> None:
        state.last_error = error
        self._history.append(ReloadEvent(
            filepath=state.filepath,
            timestamp=time.time(),
            success=False,
            error=error,
        ))
        log.error("Failed to check %s: %s", state.filepath, error)

        for cb in self._error_callbacks:
            try:
                cb(state.filepath, error)
            except Exception as e:
                log.debug("error callback cb(filepath, error) failed: %s", e)

    def trim_history(self, keep: int = 100) -> int:
        """Trim history to the last N entries. Returns removed count."""
        if len(self._history) <= keep:
            return 0
        removed = len(self._history) - keep
        self._history = self._history[-keep:]
        return removed
