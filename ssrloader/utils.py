"""URL and path helpers for the SSR loader.

Module identifiers are POSIX-style urls rooted at the project root
(``/src/app.py``).  Virtual modules arrive wrapped in the ``/@id/``
prefix with NUL bytes replaced by a placeholder, the same way browsers
receive them.
"""

from __future__ import annotations

import importlib.machinery
import os
import posixpath
import sys
from typing import Iterable

from ssrloader.constants import (
    BUILTIN_PREFIX,
    NULL_BYTE_PLACEHOLDER,
    PACKAGE_INIT,
    VALID_ID_PREFIX,
)
from ssrloader.errors import ResolutionFailure


def unwrap_id(url: str) -> str:
    """Strip the virtual-module prefix and restore NUL bytes."""
    if url.startswith(VALID_ID_PREFIX):
        return url[len(VALID_ID_PREFIX):].replace(NULL_BYTE_PLACEHOLDER, "\0")
    return url


def clean_url(url: str) -> str:
    """Drop any query string or hash from *url*."""
    for sep in ("?", "#"):
        idx = url.find(sep)
        if idx != -1:
            url = url[:idx]
    return url


def is_external(dep: str) -> bool:
    """Bare package specifiers are external; relative/absolute paths are not."""
    return not dep.startswith((".", "/"))


def normalize_url(url: str, importer: str | None = None) -> str:
    """Bring *url* to canonical form.

    Relative urls are joined onto the directory of *importer* (or the
    root when there is none); ``.`` and ``..`` segments are collapsed.
    External specifiers and virtual ids are returned unwrapped but
    otherwise untouched.
    """
    url = unwrap_id(url)
    if url.startswith("\0") or is_external(url):
        return url
    if url.startswith("."):
        base = posixpath.dirname(clean_url(importer)) if importer else "/"
        url = posixpath.join(base or "/", url)
    normalized = posixpath.normpath(url)
    # normpath keeps a leading "//"
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def url_to_file(url: str, root: str) -> str:
    """Map a root-relative url to a filesystem path under *root*."""
    rel = clean_url(url).lstrip("/")
    return os.path.normpath(os.path.join(root, *rel.split("/")))


def file_to_url(file: str, root: str) -> str:
    """Inverse of :func:`url_to_file`."""
    rel = os.path.relpath(os.path.abspath(file), os.path.abspath(root))
    return "/" + rel.replace(os.sep, "/")


def module_name_for(dep_id: str) -> str:
    """Dotted Python module name for a bare specifier (``a/b`` -> ``a.b``)."""
    return dep_id.strip("/").replace("/", ".")


def _ancestors(directory: str) -> Iterable[str]:
    current = os.path.abspath(directory)
    while True:
        yield current
        parent = os.path.dirname(current)
        if parent == current:
            return
        current = parent


def search_paths(basedir: str, package_dirs: Iterable[str] = ()) -> list[str]:
    """Directories searched for a bare specifier starting at *basedir*.

    Local package directories of every ancestor come first (nearest
    wins), followed by the interpreter's own ``sys.path``.
    """
    paths: list[str] = []
    for directory in _ancestors(basedir):
        for pkg_dir in package_dirs:
            candidate = os.path.join(directory, pkg_dir)
            if os.path.isdir(candidate):
                paths.append(candidate)
    for entry in sys.path:
        entry = os.path.abspath(entry or os.getcwd())
        if entry not in paths:
            paths.append(entry)
    return paths


def resolve_from(
    dep_id: str,
    basedir: str,
    *,
    implicit: bool = True,
    package_dirs: Iterable[str] = (),
) -> str:
    """Locate the module named by *dep_id* searching from *basedir*.

    With *implicit* resolution a package resolves to its ``__init__.py``
    and a suffix-less name to the first module file the import system
    recognises.  Without it, the last segment must name a file with an
    explicit suffix.

    Returns an absolute path, or ``builtin:<name>`` for modules compiled
    into the interpreter.

    Raises:
        ResolutionFailure: nothing matched.
    """
    name = module_name_for(dep_id)
    if name in sys.builtin_module_names:
        return BUILTIN_PREFIX + name

    paths = search_paths(basedir, package_dirs)

    if not implicit:
        rel = dep_id.strip("/")
        for path in paths:
            candidate = os.path.join(path, *rel.split("/"))
            if os.path.isfile(candidate):
                return os.path.abspath(candidate)
        raise ResolutionFailure(dep_id, basedir)

    parts = name.split(".")
    spec = importlib.machinery.PathFinder.find_spec(parts[0], paths)
    for depth in range(1, len(parts)):
        if spec is None or not spec.submodule_search_locations:
            spec = None
            break
        spec = importlib.machinery.PathFinder.find_spec(
            ".".join(parts[: depth + 1]),
            list(spec.submodule_search_locations),
        )

    if spec is None:
        raise ResolutionFailure(dep_id, basedir)
    if spec.has_location and spec.origin:
        return os.path.abspath(spec.origin)
    if spec.submodule_search_locations:
        # namespace package: no file of its own
        return BUILTIN_PREFIX + name
    raise ResolutionFailure(dep_id, basedir)


def is_package_file(path: str) -> bool:
    return os.path.basename(path) == PACKAGE_INIT
