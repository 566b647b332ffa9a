"""Export namespaces for SSR-executed modules.

A :class:`ModuleNamespace` is the object a module body populates with its
public bindings.  Every export is held in an indirection table mapping the
exported name to a binding: either a plain value stored by assignment, or a
getter that re-reads the value from its source every time it is accessed.
Getters are what keep re-exports and cyclic imports live.

Namespaces are mutable while their module is instantiating and become
read-only once :meth:`ModuleNamespace.freeze` is called::

    ns = ModuleNamespace("/src/a.py")
    ns.x = 1
    ns.define("y", lambda: other["y"])
    ns.freeze()
    ns.x = 2        # FrozenNamespaceError
"""

from __future__ import annotations

from collections.abc import Mapping
from types import ModuleType
from typing import Any, Callable, Iterator

from ssrloader.constants import ES_MODULE_FLAG
from ssrloader.errors import FrozenNamespaceError


class _Binding:
    """One entry of the export table."""

    __slots__ = ("value", "getter")

    def __init__(self, value: Any = None, getter: Callable[[], Any] | None = None) -> None:
        self.value = value
        self.getter = getter

    @property
    def live(self) -> bool:
        return self.getter is not None

    @property
    def bound(self) -> bool:
        """False while a live binding points at a name its module never assigned."""
        if self.getter is None:
            return True
        try:
            self.getter()
        except (NameError, KeyError):
            return False
        return True

    def read(self) -> Any:
        if self.getter is not None:
            return self.getter()
        return self.value


class ModuleNamespace(Mapping):
    """Export object of one SSR module.

    Exports are reachable by item access (``ns["x"]``) and, for names that
    do not collide with the methods below, by attribute access (``ns.x``).
    Iteration yields exported names only; the ``__es_module__`` interop flag
    and the ``tag`` marker are class attributes and never enumerated.
    """

    __slots__ = ("_url", "_exports", "_frozen")

    tag = "Module"
    __es_module__ = True

    def __init__(self, url: str = "") -> None:
        object.__setattr__(self, "_url", url)
        object.__setattr__(self, "_exports", {})
        object.__setattr__(self, "_frozen", False)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def frozen(self) -> bool:
        """Whether the owning module finished instantiating."""
        return self._frozen

    def freeze(self) -> None:
        """Forbid any further addition, removal or reassignment of exports."""
        object.__setattr__(self, "_frozen", True)

    def _check_mutable(self, name: str) -> None:
        if self._frozen:
            raise FrozenNamespaceError(self._url, name)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def define(self, name: str, getter: Callable[[], Any]) -> None:
        """Export *name* as a live binding read through *getter*."""
        self._check_mutable(name)
        self._exports[name] = _Binding(getter=getter)

    def is_live(self, name: str) -> bool:
        return self._exports[name].live

    def __setitem__(self, name: str, value: Any) -> None:
        self._check_mutable(name)
        self._exports[name] = _Binding(value=value)

    def __delitem__(self, name: str) -> None:
        self._check_mutable(name)
        del self._exports[name]

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def __getitem__(self, name: str) -> Any:
        binding = self._exports[name]
        try:
            return binding.read()
        except NameError:
            # conditional, annotation-only or deleted name
            raise KeyError(name) from None

    def __getattr__(self, name: str) -> Any:
        # only reached when normal attribute lookup failed
        if name in ModuleNamespace.__slots__ or (
            name.startswith("__") and name.endswith("__")
        ):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(
                f"module {self._url!r} has no export {name!r}"
            ) from None

    def __iter__(self) -> Iterator[str]:
        return iter([name for name, binding in list(self._exports.items()) if binding.bound])

    def __len__(self) -> int:
        return len(list(self))

    def __contains__(self, name: object) -> bool:
        binding = self._exports.get(name)
        return binding is not None and binding.bound

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self))

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "instantiating"
        return f"<{self.tag} {self._url!r} exports={list(self)} {state}>"

    # Mapping would make namespaces compare by content; keep identity.
    __eq__ = object.__eq__
    __hash__ = object.__hash__


# ---------------------------------------------------------------------------
# Generic access to anything a module body may receive as a namespace
# ---------------------------------------------------------------------------

def is_es_module(obj: Any) -> bool:
    """Whether *obj* was authored under the namespace (``default``) convention."""
    try:
        return getattr(obj, ES_MODULE_FLAG, False) is True
    except Exception:
        return False


def export_names(obj: Any) -> list[str]:
    """Enumerable export names of a namespace, interop wrapper, module or mapping."""
    if isinstance(obj, Mapping):
        return [k for k in obj.keys() if isinstance(k, str)]
    if hasattr(obj, "export_names"):
        return list(obj.export_names())
    if isinstance(obj, ModuleType):
        public = getattr(obj, "__all__", None)
        if public is not None:
            return list(public)
    names = getattr(obj, "__dict__", {})
    return [k for k in names if not k.startswith("_")]


def read_export(obj: Any, name: str) -> Any:
    """Read export *name* from *obj* the way :func:`export_names` found it."""
    if isinstance(obj, Mapping) or hasattr(obj, "export_names"):
        return obj[name]
    return getattr(obj, name)
