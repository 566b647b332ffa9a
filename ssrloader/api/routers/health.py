"""
Health check router for the SSR dev server.

Endpoints:
  GET /__ssr/health - Liveness plus loader statistics
"""

from __future__ import annotations

import platform
import time
from typing import Any

from fastapi import APIRouter, Depends

from ssrloader.__version__ import __version__
from ssrloader.api.dependencies import get_server
from ssrloader.server import DevServer

router = APIRouter()

_startup_time = time.time()


@router.get(
    "/health",
    summary="Dev server health",
    description="Returns 200 while the SSR session is running.",
)
async def health(server: DevServer = Depends(get_server)) -> dict[str, Any]:
    graph = server.module_graph
    loaded = sum(1 for node in graph.url_to_module_map.values() if node.ssr_module is not None)
    return {
        "status": "up",
        "version": __version__,
        "root": graph.root,
        "modules_loaded": loaded,
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "python_version": platform.python_version(),
        "stats": server.stats(),
    }
