"""Map tracebacks of SSR-executed modules back to their source files.

Transformed modules are compiled with their url as filename, so their
frames read ``File "/src/app.py", line 12`` where 12 is a line of the
generated code.  :func:`ssr_rewrite_stacktrace` replaces those with the
file on disk and the matching line of the original source.
"""

from __future__ import annotations

import re
import traceback
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ssrloader.module_graph import ModuleGraph

_FRAME_RE = re.compile(r'File "(?P<url>[^"]+)", line (?P<line>\d+)')


def ssr_rewrite_stacktrace(exc: BaseException, graph: ModuleGraph) -> str:
    """Formatted traceback of *exc* with SSR frames pointing at original sources."""
    text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    def _rewrite(match: re.Match) -> str:
        position = graph.original_position(match.group("url"), int(match.group("line")))
        if position is None:
            return match.group(0)
        file, line = position
        return f'File "{file}", line {line}'

    return _FRAME_RE.sub(_rewrite, text)
