"""JSON path handling for the execution document.

Step Functions reads and writes the execution document through a small
JSONPath subset.  This module parses that subset into segment tuples so
the chain can check, before anything is deployed, that every path a step
reads was written by an earlier step.

Supported forms::

    $                   the whole document
    $.cluster.Id        dotted member access
    $.items[0].name     member access with list indexes
    $$.Execution.Id     context object (always readable)
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence, Tuple

from emrc_workflow.errors import WorkflowValidationError

ROOT = "$"
CONTEXT_PREFIX = "$$"

_SEGMENT_RE = re.compile(r"\.([A-Za-z_][A-Za-z0-9_\-]*)|\[(\d+)\]")

Segments = Tuple[str, ...]


def parse_path(path: str) -> Segments:
    """Split *path* into segments.

    ``$`` parses to ``()``; ``$.cluster.Id`` to ``("cluster", "Id")``;
    list indexes become ``"[n]"`` segments.  Context paths keep a leading
    ``"$$"`` segment so they never collide with document paths.

    Raises :class:`WorkflowValidationError` for anything else.
    """
    if not isinstance(path, str) or not path:
        raise WorkflowValidationError(f"Invalid JSON path: {path!r}")

    if path.startswith(CONTEXT_PREFIX):
        head: Segments = (CONTEXT_PREFIX,)
        rest = path[len(CONTEXT_PREFIX):]
    elif path.startswith(ROOT):
        head = ()
        rest = path[len(ROOT):]
    else:
        raise WorkflowValidationError(
            f"JSON path '{path}' must start with '$'"
        )

    segments = list(head)
    pos = 0
    while pos < len(rest):
        m = _SEGMENT_RE.match(rest, pos)
        if m is None:
            raise WorkflowValidationError(
                f"Invalid JSON path '{path}' near '{rest[pos:]}'"
            )
        segments.append(m.group(1) if m.group(1) is not None else f"[{m.group(2)}]")
        pos = m.end()

    if head and len(segments) == 1:
        raise WorkflowValidationError(
            f"Context path '{path}' must name a field"
        )
    return tuple(segments)


def format_path(segments: Sequence[str]) -> str:
    """Inverse of :func:`parse_path`."""
    out = ROOT
    for seg in segments:
        if seg == CONTEXT_PREFIX:
            out = CONTEXT_PREFIX
        elif seg.startswith("["):
            out += seg
        else:
            out += "." + seg
    return out


def is_context_path(path: str) -> bool:
    return path.startswith(CONTEXT_PREFIX)


def is_prefix(prefix: Segments, segments: Segments) -> bool:
    """True when *prefix* is a (non-strict) prefix of *segments*."""
    return len(prefix) <= len(segments) and segments[: len(prefix)] == prefix


def find_writer(
    read: Segments,
    written: Iterable[Tuple[Segments, Optional[str]]],
) -> Optional[Tuple[Segments, Optional[str]]]:
    """Return the most specific ``(path, writer)`` whose path covers *read*.

    *written* pairs each written path with the name of the step that wrote
    it (``None`` for execution input).  Later entries win over earlier
    entries of the same length, matching the order writes happen at run
    time.
    """
    best: Optional[Tuple[Segments, Optional[str]]] = None
    for path, writer in written:
        if is_prefix(path, read):
            if best is None or len(path) >= len(best[0]):
                best = (path, writer)
    return best
