"""SSR dev server HTTP package.

Contains the FastAPI application factory, routers and error handlers
for the ``/__ssr/`` endpoints and page rendering.
"""

from __future__ import annotations
