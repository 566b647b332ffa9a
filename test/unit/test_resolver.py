"""Tests for ssrloader.resolver — external resolution and interop."""
from __future__ import annotations

import os
from unittest import mock

import pytest

from ssrloader import utils
from ssrloader.errors import ResolutionFailure
from ssrloader.resolver import ExternalResolver, InteropModule

LEGACY_SELF_REPLACING = """
import sys

def leftpad(s, n, ch=" "):
    return ch * (n - len(s)) + s

sys.modules[__name__] = leftpad
"""

NAMESPACE_CONVENTION = """
__es_module__ = True

def default():
    return "default export"

helper = 42
"""

PLAIN_LEGACY = """
VALUE = 7

def double(x):
    return x * 2
"""


@pytest.fixture
def resolver():
    return ExternalResolver(package_dirs=("__pypackages__",))


@pytest.fixture
def importer(project):
    return str(project.write("/src/app.py", "x = 1\n"))


class TestResolve:

    def test_resolves_from_importer_directory(self, project, resolver, importer):
        project.write("/src/__pypackages__/leftpad.py", LEGACY_SELF_REPLACING)
        resolved = resolver.resolve("leftpad", importer, str(project.root))
        assert resolved == project.path("/src/__pypackages__/leftpad.py")

    def test_falls_back_to_root_when_importer_missing(self, project, resolver):
        project.write("/__pypackages__/rootpkg.py", PLAIN_LEGACY)
        resolved = resolver.resolve("rootpkg", None, str(project.root))
        assert resolved == project.path("/__pypackages__/rootpkg.py")
        resolved = resolver.resolve("rootpkg", "/nonexistent/file.py", str(project.root))
        assert resolved == project.path("/__pypackages__/rootpkg.py")

    def test_importer_query_string_ignored_for_existence(self, project, resolver, importer):
        project.write("/src/__pypackages__/querydep.py", PLAIN_LEGACY)
        resolved = resolver.resolve("querydep", importer + "?t=1", str(project.root))
        assert resolved == project.path("/src/__pypackages__/querydep.py")

    def test_memoized_per_key(self, project, resolver, importer):
        project.write("/src/__pypackages__/memo.py", PLAIN_LEGACY)
        with mock.patch(
            "ssrloader.resolver.utils.resolve_from", wraps=utils.resolve_from
        ) as resolve_from:
            first = resolver.resolve("memo", importer, str(project.root))
            second = resolver.resolve("memo", importer, str(project.root))
        assert first == second
        assert resolve_from.call_count == 1

    def test_different_importer_is_a_different_key(self, project, resolver, importer):
        project.write("/src/__pypackages__/memo2.py", PLAIN_LEGACY)
        other = str(project.write("/src/other.py", "y = 2\n"))
        with mock.patch(
            "ssrloader.resolver.utils.resolve_from", wraps=utils.resolve_from
        ) as resolve_from:
            resolver.resolve("memo2", importer, str(project.root))
            resolver.resolve("memo2", other, str(project.root))
        assert resolve_from.call_count == 2

    def test_failure_is_not_cached(self, project, resolver, importer):
        with pytest.raises(ResolutionFailure) as excinfo:
            resolver.resolve("latecomer", importer, str(project.root))
        assert excinfo.value.resolve_dir == os.path.dirname(importer)
        assert resolver.stats()["cached_resolutions"] == 0

        project.write("/src/__pypackages__/latecomer.py", PLAIN_LEGACY)
        assert resolver.resolve("latecomer", importer, str(project.root)).endswith("latecomer.py")

    def test_clear_forgets_resolutions(self, project, resolver, importer):
        project.write("/src/__pypackages__/cleared.py", PLAIN_LEGACY)
        resolver.resolve("cleared", importer, str(project.root))
        resolver.clear()
        assert resolver.stats()["cached_resolutions"] == 0


class TestLoadInterop:

    def test_legacy_sole_export_becomes_default(self, project, resolver, importer):
        project.write("/src/__pypackages__/leftpad.py", LEGACY_SELF_REPLACING)
        mod = resolver.load("leftpad", importer, str(project.root))
        assert isinstance(mod, InteropModule)
        assert callable(mod.get("default"))
        assert mod.get("default")("7", 3, "0") == "007"
        assert mod["default"] is mod.default

    def test_namespace_convention_default(self, project, resolver, importer):
        project.write("/src/__pypackages__/esdep.py", NAMESPACE_CONVENTION)
        mod = resolver.load("esdep", importer, str(project.root))
        assert mod.get("default")() == "default export"
        assert mod.helper == 42
        assert "helper" in mod

    def test_plain_module_default_is_module_itself(self, project, resolver, importer):
        project.write("/src/__pypackages__/plain.py", PLAIN_LEGACY)
        mod = resolver.load("plain", importer, str(project.root))
        assert mod.get("default") is mod.raw
        assert mod.get("double")(4) == 8
        assert sorted(mod) == ["VALUE", "double"]

    def test_missing_key(self, project, resolver, importer):
        project.write("/src/__pypackages__/plain2.py", PLAIN_LEGACY)
        mod = resolver.load("plain2", importer, str(project.root))
        with pytest.raises(KeyError):
            mod["nope"]
        with pytest.raises(AttributeError):
            mod.nope
        assert mod.get("nope", None) is None

    def test_interop_is_read_only(self, project, resolver, importer):
        project.write("/src/__pypackages__/plain3.py", PLAIN_LEGACY)
        mod = resolver.load("plain3", importer, str(project.root))
        with pytest.raises(AttributeError):
            mod.VALUE = 8

    def test_module_executes_once_per_session(self, project, resolver, importer):
        project.write("/src/__pypackages__/counter.py", """
            import builtins
            builtins.__ssr_counter_runs__ = getattr(builtins, "__ssr_counter_runs__", 0) + 1
        """)
        import builtins
        try:
            resolver.load("counter", importer, str(project.root))
            resolver.load("counter", importer, str(project.root))
            assert builtins.__ssr_counter_runs__ == 1
        finally:
            del builtins.__ssr_counter_runs__

    def test_submodule_loads_parent_first(self, project, resolver, importer):
        project.write("/src/__pypackages__/kit/__init__.py", "NAME = 'kit'\n")
        project.write("/src/__pypackages__/kit/text.py", "def shout(s):\n    return s.upper()\n")
        mod = resolver.load("kit/text", importer, str(project.root))
        assert mod.shout("hi") == "HI"
        parent = resolver.load("kit", importer, str(project.root))
        assert parent.text.shout("a") == "A"

    def test_stdlib_module(self, project, resolver, importer):
        mod = resolver.load("json", importer, str(project.root))
        assert mod.dumps({"a": 1}) == '{"a": 1}'

    def test_builtin_module(self, project, resolver, importer):
        import sys
        mod = resolver.load("sys", importer, str(project.root))
        assert mod.raw is sys

    def test_failing_module_is_removed_from_sys_modules(self, project, resolver, importer):
        import sys
        project.write("/src/__pypackages__/broken_dep.py", "raise RuntimeError('boom')\n")
        with pytest.raises(RuntimeError):
            resolver.load("broken_dep", importer, str(project.root))
        assert "broken_dep" not in sys.modules
