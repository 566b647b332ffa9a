"""ssrloader - server-side rendering module loader for a Python dev server.

This package contains:
- The SSR module loader (on-demand instantiation with live bindings)
- The import-rewriting transform pipeline
- The module graph store and source watcher
- A FastAPI dev server surface
"""

from .__version__ import __version__
from .app_config import ServerConfig
from .errors import (
    ConfigError,
    FrozenNamespaceError,
    ResolutionFailure,
    SSRLoaderError,
    TransformFailure,
)
from .module_graph import ModuleGraph, ModuleNode, ModuleStatus
from .module_loader import SSRContext, SSRModuleLoader
from .namespace import ModuleNamespace
from .resolver import ExternalResolver, InteropModule
from .server import DevServer
from .transform import TransformResult, ssr_transform

__all__ = [
    "__version__",
    "ConfigError",
    "DevServer",
    "ExternalResolver",
    "FrozenNamespaceError",
    "InteropModule",
    "ModuleGraph",
    "ModuleNamespace",
    "ModuleNode",
    "ModuleStatus",
    "ResolutionFailure",
    "SSRContext",
    "SSRLoaderError",
    "SSRModuleLoader",
    "ServerConfig",
    "TransformFailure",
    "TransformResult",
    "ssr_transform",
]
