"""
SSR router: module graph inspection, invalidation and page rendering.

Endpoints:
  GET  /__ssr/modules     - Module graph listing
  POST /__ssr/invalidate  - Invalidate every module
  GET  /{path}            - Render ``path`` through the entry module
"""

from __future__ import annotations

import inspect
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from ssrloader.api.dependencies import get_server
from ssrloader.server import DevServer

log = logging.getLogger("ssrloader.api.ssr")

router = APIRouter()
render_router = APIRouter()


class ModuleInfo(BaseModel):
    url: str
    file: str | None = None
    status: str
    importers: list[str] = []
    imported_modules: list[str] = []


class ModuleListResponse(BaseModel):
    total: int
    modules: list[ModuleInfo]


class InvalidateResponse(BaseModel):
    invalidated: int


@router.get("/modules", response_model=ModuleListResponse, summary="List graph modules")
async def list_modules(server: DevServer = Depends(get_server)) -> ModuleListResponse:
    nodes = sorted(server.module_graph.url_to_module_map.values(), key=lambda n: n.url)
    return ModuleListResponse(
        total=len(nodes),
        modules=[ModuleInfo(**node.to_dict()) for node in nodes],
    )


@router.post("/invalidate", response_model=InvalidateResponse, summary="Invalidate all modules")
async def invalidate(server: DevServer = Depends(get_server)) -> InvalidateResponse:
    return InvalidateResponse(invalidated=server.invalidate_all())


@render_router.get("/{path:path}", response_class=HTMLResponse, include_in_schema=False)
async def render_page(
    path: str,
    request: Request,
    server: DevServer = Depends(get_server),
) -> HTMLResponse:
    """Load the entry module and return what its ``render(url)`` produces."""
    entry = server.config.entry
    namespace = await server.ssr_load_module(entry)
    render = namespace.get("render")
    if not callable(render):
        raise HTTPException(
            status_code=500,
            detail=f"Entry module {entry} does not export a render(url) function",
        )

    url = "/" + path
    if request.url.query:
        url += "?" + request.url.query

    html = render(url)
    if inspect.isawaitable(html):
        html = await html
    log.debug(
        "Rendered %s via %s", url, entry,
        extra={"request_path": url, "module_url": entry},
    )
    return HTMLResponse(content=str(html))
