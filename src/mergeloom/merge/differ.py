"""Line differencing with Myers' O(ND) algorithm.

The edit script is deterministic: common prefix and suffix are kept
verbatim, the greedy search always prefers a deletion over an
insertion when both reach the same diagonal, and every change run is
normalized to "delete block, then insert block". Repeated runs over
the same input therefore produce identical hunk boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EditOp(str, Enum):
    KEEP = "keep"
    INSERT = "insert"
    DELETE = "delete"


@dataclass
class Edit:
    """A run of lines sharing one operation."""

    op: EditOp
    lines: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Change:
    """Replace ``a[start:end]`` with ``lines`` (start == end inserts)."""

    start: int
    end: int
    lines: list[str]

    @property
    def is_insertion(self) -> bool:
        return self.start == self.end


EditScript = list[Edit]


def _shortest_path(a: list[str], b: list[str]) -> list[tuple[EditOp, str]]:
    """Myers greedy search plus backtrack over the saved frontiers."""
    n, m = len(a), len(b)
    if n == 0:
        return [(EditOp.INSERT, line) for line in b]
    if m == 0:
        return [(EditOp.DELETE, line) for line in a]

    offset = n + m + 1
    v = [0] * (2 * offset + 1)
    trace: list[list[int]] = []

    for d in range(n + m + 1):
        trace.append(v.copy())
        found = False
        for k in range(-d, d + 1, 2):
            # Step down (insert) only when it gets strictly further
            if k == -d or (k != d and v[offset + k - 1] < v[offset + k + 1]):
                x = v[offset + k + 1]
            else:
                x = v[offset + k - 1] + 1
            y = x - k
            while x < n and y < m and a[x] == b[y]:
                x += 1
                y += 1
            v[offset + k] = x
            if x >= n and y >= m:
                found = True
                break
        if found:
            break

    ops: list[tuple[EditOp, str]] = []
    x, y = n, m
    for d in range(len(trace) - 1, -1, -1):
        frontier = trace[d]
        k = x - y
        if k == -d or (k != d and frontier[offset + k - 1] < frontier[offset + k + 1]):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = frontier[offset + prev_k]
        prev_y = prev_x - prev_k

        while x > prev_x and y > prev_y:
            ops.append((EditOp.KEEP, a[x - 1]))
            x -= 1
            y -= 1
        if d > 0:
            if x == prev_x:
                ops.append((EditOp.INSERT, b[y - 1]))
            else:
                ops.append((EditOp.DELETE, a[x - 1]))
        x, y = prev_x, prev_y

    ops.reverse()
    return ops


def _coalesce(ops: list[tuple[EditOp, str]]) -> EditScript:
    """Group single-line ops into runs, deletions before insertions."""
    script: EditScript = []
    deleted: list[str] = []
    inserted: list[str] = []

    def flush_change():
        if deleted:
            script.append(Edit(EditOp.DELETE, deleted.copy()))
            deleted.clear()
        if inserted:
            script.append(Edit(EditOp.INSERT, inserted.copy()))
            inserted.clear()

    for op, line in ops:
        if op is EditOp.KEEP:
            flush_change()
            if script and script[-1].op is EditOp.KEEP:
                script[-1].lines.append(line)
            else:
                script.append(Edit(EditOp.KEEP, [line]))
        elif op is EditOp.DELETE:
            deleted.append(line)
        else:
            inserted.append(line)
    flush_change()
    return script


def diff(a: list[str], b: list[str]) -> EditScript:
    """Edit script turning ``a`` into ``b``."""
    prefix = 0
    limit = min(len(a), len(b))
    while prefix < limit and a[prefix] == b[prefix]:
        prefix += 1

    suffix = 0
    limit -= prefix
    while suffix < limit and a[-1 - suffix] == b[-1 - suffix]:
        suffix += 1

    middle = _shortest_path(
        a[prefix:len(a) - suffix], b[prefix:len(b) - suffix]
    )
    ops = (
        [(EditOp.KEEP, line) for line in a[:prefix]]
        + middle
        + [(EditOp.KEEP, line) for line in a[len(a) - suffix:]]
    )
    return _coalesce(ops)


def apply(a: list[str], script: EditScript) -> list[str]:
    """Replay a script against ``a``.

    Raises:
        ValueError: If kept or deleted lines do not match ``a``
    """
    out: list[str] = []
    pos = 0
    for edit in script:
        if edit.op is EditOp.INSERT:
            out.extend(edit.lines)
            continue
        end = pos + len(edit.lines)
        if a[pos:end] != edit.lines:
            raise ValueError(f"edit script does not match input at line {pos}")
        if edit.op is EditOp.KEEP:
            out.extend(edit.lines)
        pos = end
    if pos != len(a):
        raise ValueError(f"edit script stops at line {pos} of {len(a)}")
    return out


def changes(script: EditScript) -> list[Change]:
    """Collapse a script into changes addressed by ``a`` positions."""
    result: list[Change] = []
    pos = 0
    current: Change | None = None
    for edit in script:
        if edit.op is EditOp.KEEP:
            if current is not None:
                result.append(current)
                current = None
            pos += len(edit.lines)
            continue
        if current is None:
            current = Change(pos, pos, [])
        if edit.op is EditOp.DELETE:
            pos += len(edit.lines)
            current = Change(current.start, pos, current.lines)
        else:
            current = Change(current.start, current.end, current.lines + edit.lines)
    if current is not None:
        result.append(current)
    return result
