"""External dependency resolution for SSR modules.

Bare specifiers (``leftpad``, ``markupsafe``, ``pkg/sub``) found in SSR
module code are not instantiated by the loader.  They are located with
the interpreter's own path search, loaded by ``importlib`` and handed
back wrapped in an :class:`InteropModule` so that ``default`` means the
same thing whichever export convention the dependency was written in.

Two conventions exist:

* **namespace convention**: the module sets ``__es_module__ = True`` and
  exposes its default export as a ``default`` attribute;
* **legacy convention**: the module's whole value *is* its export.  A
  module may even replace itself in ``sys.modules`` with a single object
  (a function, a class instance), and that object becomes the default.

Resolution results are memoized per ``(dep_id, importer, root)`` for the
lifetime of the resolver, which is owned by one dev-server session.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
import os
import sys
from types import ModuleType
from typing import Any, Iterable

from ssrloader import utils
from ssrloader.constants import BUILTIN_PREFIX, DEFAULT_EXPORT_KEY
from ssrloader.namespace import export_names, is_es_module, read_export

log = logging.getLogger("ssrloader.resolver")

ResolveKey = tuple[str, "str | None", str]


class InteropModule:
    """Read-only adapter over a natively loaded module.

    ``get("default")`` yields the interop-resolved default export; every
    other key is read straight from the wrapped module.
    """

    __slots__ = ("_raw", "_default")

    def __init__(self, raw: Any) -> None:
        object.__setattr__(self, "_raw", raw)
        default = getattr(raw, DEFAULT_EXPORT_KEY, None) if is_es_module(raw) else raw
        object.__setattr__(self, "_default", default)

    @property
    def raw(self) -> Any:
        """The module object exactly as the import system returned it."""
        return self._raw

    def get(self, key: str, *default: Any) -> Any:
        if key == DEFAULT_EXPORT_KEY:
            return self._default
        try:
            return read_export(self._raw, key)
        except (AttributeError, KeyError):
            if default:
                return default[0]
            raise

    def export_names(self) -> list[str]:
        return export_names(self._raw)

    def __getitem__(self, key: str) -> Any:
        try:
            return self.get(key)
        except AttributeError:
            raise KeyError(key) from None

    def __getattr__(self, key: str) -> Any:
        if key in InteropModule.__slots__:
            raise AttributeError(key)
        try:
            return self.get(key)
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"external module {self!r} is read-only")

    def __contains__(self, key: object) -> bool:
        if key == DEFAULT_EXPORT_KEY:
            return True
        return key in self.export_names()

    def __iter__(self):
        return iter(self.export_names())

    def __dir__(self) -> list[str]:
        return sorted(set(self.export_names()) | {DEFAULT_EXPORT_KEY})

    def __repr__(self) -> str:
        name = getattr(self._raw, "__name__", type(self._raw).__name__)
        return f"<InteropModule {name}>"


class ExternalResolver:
    """Resolve and load bare specifiers, memoizing resolutions.

    Usage::

        resolver = ExternalResolver(package_dirs=("__pypackages__",))
        path = resolver.resolve("leftpad", "/proj/src/app.py", "/proj")
        mod = resolver.load("leftpad", "/proj/src/app.py", "/proj")
        mod.default("7", 3, "0")
    """

    def __init__(self, package_dirs: Iterable[str] = ()) -> None:
        self.package_dirs = tuple(package_dirs)
        self._cache: dict[ResolveKey, str] = {}
        # require-cache equivalent: resolved location -> loaded object
        self._modules: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, dep_id: str, importer: str | None, root: str) -> str:
        """Absolute location of *dep_id* as seen from *importer*.

        Raises:
            ResolutionFailure: the dependency cannot be found.  Failures
                are not cached.
        """
        key = (dep_id, importer, root)
        cached = self._cache.get(key)
        if cached:
            return cached

        if importer and os.path.isfile(utils.clean_url(importer)):
            resolve_dir = os.path.dirname(importer)
        else:
            resolve_dir = root

        resolved = utils.resolve_from(
            dep_id,
            resolve_dir,
            implicit=True,
            package_dirs=self.package_dirs,
        )
        self._cache[key] = resolved
        log.debug("Resolved %s from %s -> %s", dep_id, resolve_dir, resolved)
        return resolved

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, dep_id: str, importer: str | None, root: str) -> InteropModule:
        """Resolve, natively load and interop-wrap *dep_id*."""
        location = self.resolve(dep_id, importer, root)
        name = utils.module_name_for(dep_id)
        parent = None
        if "." in name:
            # parent packages must exist before a submodule executes
            parent = self.load(name.rpartition(".")[0], importer, root).raw
        raw = self._require(name, location)
        child = name.rpartition(".")[2]
        if isinstance(parent, ModuleType) and not hasattr(parent, child):
            setattr(parent, child, raw)
        return InteropModule(raw)

    def _require(self, name: str, location: str) -> Any:
        if location in self._modules:
            return self._modules[location]

        if location.startswith(BUILTIN_PREFIX):
            raw = importlib.import_module(name)
        else:
            existing = sys.modules.get(name)
            if existing is not None and _same_file(existing, location):
                raw = existing
            else:
                raw = self._exec_file(name, location)

        self._modules[location] = raw
        return raw

    @staticmethod
    def _exec_file(name: str, location: str) -> Any:
        search = [os.path.dirname(location)] if utils.is_package_file(location) else None
        spec = importlib.util.spec_from_file_location(
            name, location, submodule_search_locations=search
        )
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load {name} from {location}", name=name, path=location)

        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            if sys.modules.get(name) is module:
                del sys.modules[name]
            raise
        log.debug("Loaded external module %s from %s", name, location)
        # the module may have replaced itself with its sole export
        return sys.modules.get(name, module)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Forget every memoized resolution and loaded location."""
        self._cache.clear()
        self._modules.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "cached_resolutions": len(self._cache),
            "loaded_modules": len(self._modules),
            "package_dirs": list(self.package_dirs),
        }


def _same_file(module: Any, location: str) -> bool:
    path = getattr(module, "__file__", None)
    if not path:
        return False
    try:
        return os.path.samefile(path, location)
    except OSError:
        return False
