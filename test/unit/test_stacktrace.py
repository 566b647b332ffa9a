"""Tests for ssrloader.stacktrace."""
from __future__ import annotations

import pytest

from ssrloader.stacktrace import ssr_rewrite_stacktrace


def _raise_plain():
    raise KeyError("plain")


class TestRewrite:

    @pytest.mark.asyncio
    async def test_frames_point_at_source_file(self, project, server):
        path = project.write("/src/bad.py", """
            import json


            def explode():
                return {}["missing"]
        """)
        ns = await server.loader.load("/src/bad.py")
        try:
            ns["explode"]()
        except KeyError as exc:
            stack = ssr_rewrite_stacktrace(exc, server.module_graph)

        assert f'File "{path}", line 5' in stack
        assert 'File "/src/bad.py"' not in stack
        assert "KeyError: 'missing'" in stack

    def test_unrelated_frames_untouched(self, server):
        try:
            _raise_plain()
        except KeyError as exc:
            stack = ssr_rewrite_stacktrace(exc, server.module_graph)
        assert __file__ in stack
        assert "_raise_plain" in stack
