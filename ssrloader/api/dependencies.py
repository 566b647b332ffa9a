"""
Dependencies for the SSR HTTP surface.
"""
from fastapi import HTTPException, Request, status

from ssrloader.server import DevServer


def get_server(request: Request) -> DevServer:
    """The dev-server session created by the app lifespan."""
    server = getattr(request.app.state, "server", None)
    if server is None or not server.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SSR dev server is not running",
        )
    return server
