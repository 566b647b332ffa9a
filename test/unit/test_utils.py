"""Tests for ssrloader.utils."""
from __future__ import annotations

import importlib
import os
import tempfile
import unittest

from ssrloader import utils
from ssrloader.errors import ResolutionFailure


class TestUrlHelpers(unittest.TestCase):

    def test_unwrap_id(self):
        self.assertEqual(utils.unwrap_id("/@id/virtual:foo"), "virtual:foo")
        self.assertEqual(utils.unwrap_id("/@id/__x00__virtual"), "\0virtual")
        self.assertEqual(utils.unwrap_id("/src/a.py"), "/src/a.py")

    def test_clean_url(self):
        self.assertEqual(utils.clean_url("/a.py?t=123"), "/a.py")
        self.assertEqual(utils.clean_url("/a.py#frag"), "/a.py")
        self.assertEqual(utils.clean_url("/a.py"), "/a.py")

    def test_is_external(self):
        self.assertTrue(utils.is_external("leftpad"))
        self.assertTrue(utils.is_external("pkg/sub"))
        self.assertFalse(utils.is_external("./b.py"))
        self.assertFalse(utils.is_external("../b.py"))
        self.assertFalse(utils.is_external("/src/b.py"))

    def test_normalize_url(self):
        self.assertEqual(utils.normalize_url("/src/./a.py"), "/src/a.py")
        self.assertEqual(utils.normalize_url("/src/lib/../a.py"), "/src/a.py")
        self.assertEqual(utils.normalize_url("//src/a.py"), "/src/a.py")
        self.assertEqual(utils.normalize_url("/@id/virtual"), "virtual")

    def test_normalize_relative_to_importer(self):
        self.assertEqual(utils.normalize_url("./b.py", "/src/a.py"), "/src/b.py")
        self.assertEqual(utils.normalize_url("../b.py", "/src/lib/a.py"), "/src/b.py")
        self.assertEqual(utils.normalize_url("./b.py"), "/b.py")

    def test_url_file_round_trip(self):
        root = os.path.abspath("/tmp/project")
        path = utils.url_to_file("/src/a.py?x=1", root)
        self.assertEqual(path, os.path.join(root, "src", "a.py"))
        self.assertEqual(utils.file_to_url(path, root), "/src/a.py")

    def test_module_name_for(self):
        self.assertEqual(utils.module_name_for("pkg/sub"), "pkg.sub")
        self.assertEqual(utils.module_name_for("leftpad"), "leftpad")


class TestResolveFrom(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.packages = os.path.join(self.tmpdir, "__pypackages__")
        os.makedirs(os.path.join(self.packages, "toolkit"))
        with open(os.path.join(self.packages, "padder.py"), "w") as f:
            f.write("def pad(s): return s\n")
        with open(os.path.join(self.packages, "toolkit", "__init__.py"), "w") as f:
            f.write("")
        with open(os.path.join(self.packages, "toolkit", "strings.py"), "w") as f:
            f.write("")
        self.srcdir = os.path.join(self.tmpdir, "src", "deep")
        os.makedirs(self.srcdir)
        importlib.invalidate_caches()

    def tearDown(self):
        import shutil
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _resolve(self, dep_id, **kwargs):
        return utils.resolve_from(
            dep_id, self.srcdir, package_dirs=("__pypackages__",), **kwargs)

    def test_module_file(self):
        self.assertEqual(self._resolve("padder"), os.path.join(self.packages, "padder.py"))

    def test_package_resolves_to_init(self):
        self.assertEqual(
            self._resolve("toolkit"),
            os.path.join(self.packages, "toolkit", "__init__.py"),
        )

    def test_submodule(self):
        self.assertEqual(
            self._resolve("toolkit/strings"),
            os.path.join(self.packages, "toolkit", "strings.py"),
        )

    def test_explicit_file_without_implicit(self):
        self.assertEqual(
            self._resolve("padder.py", implicit=False),
            os.path.join(self.packages, "padder.py"),
        )
        with self.assertRaises(ResolutionFailure):
            self._resolve("padder", implicit=False)

    def test_builtin(self):
        self.assertEqual(self._resolve("sys"), "builtin:sys")

    def test_not_found(self):
        with self.assertRaises(ResolutionFailure) as ctx:
            self._resolve("definitely_not_a_module_xyz")
        self.assertIsInstance(ctx.exception, ModuleNotFoundError)
        self.assertEqual(ctx.exception.dep_id, "definitely_not_a_module_xyz")
        self.assertEqual(ctx.exception.resolve_dir, self.srcdir)
        self.assertIn("Cannot find module 'definitely_not_a_module_xyz'", str(ctx.exception))

    def test_search_paths_nearest_first(self):
        inner = os.path.join(self.tmpdir, "src", "__pypackages__")
        os.makedirs(inner)
        paths = utils.search_paths(self.srcdir, ("__pypackages__",))
        self.assertLess(paths.index(inner), paths.index(self.packages))


if __name__ == "__main__":
    unittest.main()
