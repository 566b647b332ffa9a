"""SSR transform pipeline.

Turns a Python source file into code runnable by the SSR loader plus the
list of modules it depends on.  Import statements become calls to the
binding surface injected by the loader:

==============================  ===========================================
source                          transformed
==============================  ===========================================
``import json``                 ``json = __ssr_import__('json')``
``from .b import x``            ``__ssr_import_0__ = __ssr_import__('/src/b.py')``
                                and every use of ``x`` reads
                                ``__ssr_import_0__['x']``
``from .b import *``            ``__ssr_export_all__(__ssr_import__('/src/b.py'))``
``from . import c``              ``c = __ssr_import__('/src/c.py')`` when
                                ``/src/c.py`` is a module, otherwise a live
                                read of ``c`` from ``/src/__init__.py``
==============================  ===========================================

Top-level imports are hoisted (after ``__future__`` imports), followed by
one ``__ssr_exports__.define(name, lambda: name)`` per exported name, so a
module's exports exist as live bindings before its body runs.  That is
what lets a module taking part in an import cycle observe values the other
side assigns later.

Exports are the names listed in a literal ``__all__``, or otherwise every
public name bound at module level.
"""

from __future__ import annotations

import ast
import asyncio
import logging
import os
import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from ssrloader import utils
from ssrloader.constants import (
    PACKAGE_INIT,
    SOURCE_SUFFIX,
    SSR_EXPORT_ALL_KEY,
    SSR_IMPORT_KEY,
    SSR_IMPORT_TEMP_PREFIX,
    SSR_MODULE_EXPORTS_KEY,
)

if TYPE_CHECKING:
    from ssrloader.server import DevServer

log = logging.getLogger("ssrloader.transform")


@dataclass
class TransformResult:
    """Executable code, its dependencies and a generated->original line map."""
    code: str
    deps: list[str] = field(default_factory=list)
    line_map: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Statement builders
# ---------------------------------------------------------------------------

def _stmt(source: str, origin: ast.AST | None = None) -> ast.stmt:
    node = ast.parse(source).body[0]
    if origin is not None:
        for child in ast.walk(node):
            ast.copy_location(child, origin)
    return node


def _import_call(spec: str) -> str:
    return f"{SSR_IMPORT_KEY}({spec!r})"


# ---------------------------------------------------------------------------
# Scope analysis
# ---------------------------------------------------------------------------

_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)
_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)


def _bound_names(stmts: Iterable[ast.stmt]) -> dict[str, int]:
    """Names bound in this scope (not in nested ones) -> first binding line."""
    bound: dict[str, int] = {}

    def add(name: str, node: ast.AST) -> None:
        bound.setdefault(name, getattr(node, "lineno", 1))

    def visit(node: ast.AST) -> None:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            add(node.name, node)
            for dec in node.decorator_list:
                visit(dec)
            return
        if isinstance(node, (ast.Lambda, *_COMPREHENSIONS)):
            return
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                if alias.name != "*":
                    add(alias.asname or alias.name.split(".")[0], node)
            return
        if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            add(node.id, node)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            add(node.name, node)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            return
        for child in ast.iter_child_nodes(node):
            visit(child)

    for stmt in stmts:
        visit(stmt)
    return bound


def _declared(stmts: Iterable[ast.stmt], kind: type) -> set[str]:
    """Names declared ``global``/``nonlocal`` directly in this scope."""
    names: set[str] = set()

    def visit(node: ast.AST) -> None:
        if isinstance(node, kind):
            names.update(node.names)
        if isinstance(node, _SCOPE_NODES):
            return
        for child in ast.iter_child_nodes(node):
            visit(child)

    for stmt in stmts:
        visit(stmt)
    return names


def _all_global_declarations(tree: ast.AST) -> set[str]:
    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Global):
            names.update(node.names)
    return names


def _param_names(args: ast.arguments) -> set[str]:
    params = [*args.posonlyargs, *args.args, *args.kwonlyargs]
    if args.vararg:
        params.append(args.vararg)
    if args.kwarg:
        params.append(args.kwarg)
    return {a.arg for a in params}


class _LiveBindingRewriter(ast.NodeTransformer):
    """Replace free references to imported names with namespace reads."""

    def __init__(self, live: dict[str, tuple[str, str]]) -> None:
        self.live = live
        # (shadowed names, is_class_scope)
        self._scopes: list[tuple[frozenset, bool]] = []

    def _shadowed(self, name: str) -> bool:
        innermost = True
        for names, is_class in reversed(self._scopes):
            # class bodies are not visible from functions nested in them
            if is_class and not innermost:
                continue
            if name in names:
                return True
            innermost = False
        return False

    def _visit_in_scope(self, nodes: Iterable[ast.AST], names: set[str], is_class: bool = False) -> None:
        self._scopes.append((frozenset(names), is_class))
        try:
            for node in nodes:
                self.visit(node)
        finally:
            self._scopes.pop()

    def _visit_body(self, owner: ast.AST, attr: str, names: set[str], is_class: bool = False) -> None:
        self._scopes.append((frozenset(names), is_class))
        try:
            setattr(owner, attr, [self.visit(stmt) for stmt in getattr(owner, attr)])
        finally:
            self._scopes.pop()

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST:
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.args = self._visit_signature(node.args)
        if node.returns is not None:
            node.returns = self.visit(node.returns)
        local = (_param_names(node.args) | set(_bound_names(node.body))) - _declared(node.body, ast.Global)
        self._visit_body(node, "body", local)
        return node

    def _visit_signature(self, args: ast.arguments) -> ast.arguments:
        args.defaults = [self.visit(d) for d in args.defaults]
        args.kw_defaults = [self.visit(d) if d is not None else None for d in args.kw_defaults]
        for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs, args.vararg, args.kwarg]:
            if arg is not None and arg.annotation is not None:
                arg.annotation = self.visit(arg.annotation)
        return args

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        node.args = self._visit_signature(node.args)
        self._scopes.append((frozenset(_param_names(node.args)), False))
        try:
            node.body = self.visit(node.body)
        finally:
            self._scopes.pop()
        return node

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.bases = [self.visit(b) for b in node.bases]
        node.keywords = [self.visit(k) for k in node.keywords]
        self._visit_body(node, "body", set(_bound_names(node.body)), is_class=True)
        return node

    def _visit_comprehension(self, node: ast.AST) -> ast.AST:
        targets: set[str] = set()
        for gen in node.generators:
            targets.update(
                n.id for n in ast.walk(gen.target) if isinstance(n, ast.Name)
            )
        self._scopes.append((frozenset(targets), False))
        try:
            return self.generic_visit(node)
        finally:
            self._scopes.pop()

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def visit_Name(self, node: ast.Name) -> ast.AST:
        if not isinstance(node.ctx, ast.Load) or node.id not in self.live:
            return node
        if self._shadowed(node.id):
            return node
        temp, attr = self.live[node.id]
        read = ast.parse(f"{temp}[{attr!r}]", mode="eval").body
        for child in ast.walk(read):
            ast.copy_location(child, node)
        return read


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------

class _ImportRewriter:
    """Shared state while rewriting the imports of one module."""

    def __init__(self, url: str, root: str | None) -> None:
        self.url = url
        self.root = root
        self.deps: list[str] = []
        self._temps = 0

    def add_dep(self, spec: str) -> str:
        if spec not in self.deps:
            self.deps.append(spec)
        return spec

    def next_temp(self) -> str:
        temp = f"{SSR_IMPORT_TEMP_PREFIX}{self._temps}__"
        self._temps += 1
        return temp

    def package_dir(self, level: int) -> str:
        """Root-absolute url of the package a relative import of *level* starts from."""
        base = posixpath.dirname(self.url) or "/"
        for _ in range(level - 1):
            base = posixpath.dirname(base) or "/"
        return utils.normalize_url(base)

    def relative_url(self, level: int, module: str | None) -> str:
        """Root-absolute url of a relative import target."""
        base = self.package_dir(level)
        path = posixpath.join(base, *module.split(".")) if module else base
        return self._with_suffix(utils.normalize_url(path))

    def _with_suffix(self, path: str) -> str:
        if self.root is not None:
            as_package = utils.url_to_file(path, self.root)
            if not os.path.isfile(as_package + SOURCE_SUFFIX) and os.path.isdir(as_package):
                return posixpath.join(path, PACKAGE_INIT)
        return path + SOURCE_SUFFIX

    def _exists(self, url: str) -> bool:
        return self.root is not None and os.path.isfile(utils.url_to_file(url, self.root))

    def submodule_url(self, package: str, name: str) -> str | None:
        """Url of submodule *name* of the package directory *package*, if it exists."""
        path = posixpath.join(package, name)
        for candidate in (path + SOURCE_SUFFIX, posixpath.join(path, PACKAGE_INIT)):
            if self._exists(candidate):
                return candidate
        return None

    def from_targets(
        self, node: ast.ImportFrom
    ) -> tuple[str | None, list[tuple[ast.alias, str | None]]]:
        """Split ``from X import a, b`` into X's url and a submodule url per name.

        A name maps to a submodule url when it is a module of package X
        rather than an attribute of X.  Without a project root there is no
        way to tell, so ``from . import b`` is taken to name a module and
        ``from .pkg import b`` an attribute.
        """
        if not node.level:
            return node.module or "", [(alias, None) for alias in node.names]

        if node.module is None:
            package = self.package_dir(node.level)
            init = posixpath.join(package, PACKAGE_INIT)
            has_init = self._exists(init)
            targets = []
            for alias in node.names:
                sub = None
                if alias.name != "*":
                    sub = self.submodule_url(package, alias.name)
                    if sub is None and not has_init:
                        sub = posixpath.join(package, alias.name) + SOURCE_SUFFIX
                targets.append((alias, sub))
            needs_init = has_init or any(sub is None for _, sub in targets)
            return (init if needs_init else None), targets

        spec = self.relative_url(node.level, node.module)
        if posixpath.basename(spec) != PACKAGE_INIT:
            return spec, [(alias, None) for alias in node.names]
        package = posixpath.dirname(spec)
        return spec, [
            (alias, None if alias.name == "*" else self.submodule_url(package, alias.name))
            for alias in node.names
        ]

    def import_statements(self, node: ast.Import) -> list[ast.stmt]:
        out: list[ast.stmt] = []
        for alias in node.names:
            spec = self.add_dep(alias.name)
            if alias.asname:
                out.append(_stmt(f"{alias.asname} = {_import_call(spec)}", node))
            elif "." in alias.name:
                top = alias.name.split(".")[0]
                out.append(_stmt(_import_call(spec), node))
                out.append(_stmt(f"{top} = {_import_call(self.add_dep(top))}", node))
            else:
                out.append(_stmt(f"{alias.name} = {_import_call(spec)}", node))
        return out

    def from_statements(
        self, node: ast.ImportFrom, live: dict[str, tuple[str, str]] | None = None
    ) -> list[ast.stmt]:
        """Bind the names of ``from X import ...``.

        Submodules are bound to their namespace.  Attributes are recorded in
        *live* as ``(temp, name)`` reads of X when *live* is given, and bound
        by value otherwise.
        """
        spec, targets = self.from_targets(node)
        if spec is not None:
            self.add_dep(spec)
        out: list[ast.stmt] = []
        temp = None
        for alias, sub in targets:
            local = alias.asname or alias.name
            if alias.name == "*":
                out.append(_stmt(f"{SSR_EXPORT_ALL_KEY}({_import_call(spec)})", node))
            elif sub is not None:
                out.append(_stmt(f"{local} = {_import_call(self.add_dep(sub))}", node))
            elif live is None:
                out.append(_stmt(f"{local} = {_import_call(spec)}[{alias.name!r}]", node))
            else:
                if temp is None:
                    temp = self.next_temp()
                    out.append(_stmt(f"{temp} = {_import_call(spec)}", node))
                live[local] = (temp, alias.name)
        return out


class _NestedImportRewriter(ast.NodeTransformer):
    """Rewrite imports that are not direct children of the module body."""

    def __init__(self, imports: _ImportRewriter) -> None:
        self.imports = imports

    def visit_Import(self, node: ast.Import) -> list[ast.stmt]:
        return self.imports.import_statements(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> list[ast.stmt] | ast.AST:
        if node.module == "__future__":
            return node
        return self.imports.from_statements(node)


def _literal_all(tree: ast.Module) -> list[str] | None:
    for stmt in tree.body:
        if (
            isinstance(stmt, ast.Assign)
            and any(isinstance(t, ast.Name) and t.id == "__all__" for t in stmt.targets)
            and isinstance(stmt.value, (ast.List, ast.Tuple))
            and all(isinstance(e, ast.Constant) and isinstance(e.value, str) for e in stmt.value.elts)
        ):
            return [e.value for e in stmt.value.elts]
    return None


def _statement_start(stmt: ast.stmt) -> int:
    lines = [stmt.lineno] + [d.lineno for d in getattr(stmt, "decorator_list", [])]
    return min(lines)


def ssr_transform(source: str, url: str, root: str | None = None) -> TransformResult:
    """Rewrite module *source* (served at *url*) for SSR execution.

    *root* is the project root; when given, relative imports of packages
    resolve to their ``__init__.py``, and ``from .pkg import name`` binds the
    submodule ``pkg/name.py`` when that file exists instead of reading
    ``name`` off the package.

    Raises:
        SyntaxError: *source* is not valid Python.
    """
    tree = ast.parse(source, filename=url)
    imports = _ImportRewriter(url, root)

    future: list[ast.stmt] = []
    hoisted: list[ast.stmt] = []
    body: list[ast.stmt] = []
    live: dict[str, tuple[str, str]] = {}
    live_origin: dict[str, ast.stmt] = {}

    for stmt in tree.body:
        if isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__":
            future.append(stmt)
        elif isinstance(stmt, ast.Import):
            hoisted.extend(imports.import_statements(stmt))
            for alias in stmt.names:
                live.pop(alias.asname or alias.name.split(".")[0], None)
        elif isinstance(stmt, ast.ImportFrom):
            added: dict[str, tuple[str, str]] = {}
            hoisted.extend(imports.from_statements(stmt, added))
            for alias in stmt.names:
                live.pop(alias.asname or alias.name, None)
            for local in added:
                live_origin[local] = stmt
            live.update(added)
        else:
            body.append(stmt)

    # names rebound at module level lose their live binding
    rebound = set(_bound_names(body)) | _all_global_declarations(tree)
    for name in sorted(set(live) & rebound):
        temp, attr = live.pop(name)
        hoisted.append(_stmt(f"{name} = {temp}[{attr!r}]", live_origin[name]))

    nested = _NestedImportRewriter(imports)
    body = [nested.visit(stmt) for stmt in body]
    flat_body: list[ast.stmt] = []
    for stmt in body:
        flat_body.extend(stmt if isinstance(stmt, list) else [stmt])

    bound = _bound_names(tree.body)
    exported = _literal_all(tree)
    if exported is None:
        exported = [n for n in bound if not n.startswith("_")]
    defines = [
        _stmt(f"{SSR_MODULE_EXPORTS_KEY}.define({name!r}, lambda: {name})")
        for name in exported
    ]
    for name, stmt in zip(exported, defines):
        line = bound.get(name, 1)
        for child in ast.walk(stmt):
            child.lineno = child.end_lineno = line

    rewriter = _LiveBindingRewriter(live)
    defines = [rewriter.visit(stmt) for stmt in defines]
    flat_body = [rewriter.visit(stmt) for stmt in flat_body]

    statements = future + hoisted + defines + flat_body
    module = ast.fix_missing_locations(ast.Module(body=statements, type_ignores=[]))

    lines: list[str] = []
    line_map: list[int] = []
    for stmt in module.body:
        start = _statement_start(stmt)
        end = max(getattr(stmt, "end_lineno", start) or start, start)
        chunk = ast.unparse(stmt).splitlines() or [""]
        lines.extend(chunk)
        line_map.extend(min(start + offset, end) for offset in range(len(chunk)))

    code = "\n".join(lines) + "\n"
    return TransformResult(code=code, deps=imports.deps, line_map=line_map)


# ---------------------------------------------------------------------------
# Request entry point
# ---------------------------------------------------------------------------

def _read_source(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


async def transform_request(
    url: str,
    server: DevServer,
    *,
    ssr: bool = True,
) -> TransformResult | None:
    """Transform the module served at *url*.

    Returns ``None`` when no source file backs the url.  With *ssr* the
    result is cached on the module node and the node's import edges are
    refreshed.

    Raises:
        SyntaxError: the source does not parse.
    """
    graph = server.module_graph
    node = await graph.ensure_entry_from_url(url)
    if node.file is None:
        log.debug("No source file for %s", node.url)
        return None

    try:
        source = await asyncio.to_thread(_read_source, node.file)
    except OSError as exc:
        log.warning("Failed to read %s: %s", node.file, exc)
        return None

    result = ssr_transform(source, node.url, root=graph.root)
    if ssr:
        node.ssr_transform_result = result
        await graph.update_module_imports(node, result.deps)
    log.debug("Transformed %s (%d deps)", node.url, len(result.deps))
    return result
