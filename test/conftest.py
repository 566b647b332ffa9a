"""Shared fixtures for the ssrloader test-suite."""
from __future__ import annotations

import importlib
import sys
import textwrap
from pathlib import Path
from types import ModuleType

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ssrloader.app_config import ServerConfig  # noqa: E402
from ssrloader.server import DevServer  # noqa: E402


class Project:
    """A throwaway project root populated with module sources."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def write(self, url: str, source: str) -> Path:
        """Write *source* (dedented) to the file backing *url*."""
        path = self.root.joinpath(*url.strip("/").split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
        importlib.invalidate_caches()
        return path

    def path(self, url: str) -> str:
        return str(self.root.joinpath(*url.strip("/").split("/")))


@pytest.fixture
def project(tmp_path) -> Project:
    root = tmp_path / "project"
    root.mkdir()
    return Project(root)


@pytest.fixture
def server(project) -> DevServer:
    """A dev-server session over ``project`` with the watcher disabled."""
    return DevServer(ServerConfig(root=str(project.root), watch=False))


@pytest.fixture(autouse=True)
def _restore_sys_modules(tmp_path_factory):
    """Drop modules that tests loaded from their temporary package dirs."""
    base = str(tmp_path_factory.getbasetemp())
    before = set(sys.modules)
    yield
    for name in set(sys.modules) - before:
        module = sys.modules.get(name)
        location = getattr(module, "__file__", None) or ""
        if not isinstance(module, ModuleType) or location.startswith(base):
            del sys.modules[name]


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo ``configure_logging`` so caplog sees records again."""
    from ssrloader.logging_config import reset_logging

    yield
    reset_logging()
