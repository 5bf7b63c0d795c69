"""Three-way line merge in the style of diff3.

Both sides are diffed against the ancestor. Changes from either side
that overlap or touch in ancestor coordinates are grouped into one
region; everything between regions is shared context. A region only
one side touched resolves to that side, a region both sides changed
to the same lines resolves to that result, and anything else is a
conflict.
"""

from __future__ import annotations

from mergeloom.core.errors import DiffFailure
from mergeloom.core.log import logger
from mergeloom.merge.differ import Change, changes, diff
from mergeloom.merge.models import (
    ConflictFile,
    FileChange,
    HunkKind,
    MergeHunk,
    split_lines,
)


def _render(ancestor: list[str], start: int, end: int, group: list[Change]) -> list[str]:
    """One side's version of ``ancestor[start:end]``."""
    out: list[str] = []
    pos = start
    for change in group:
        out.extend(ancestor[pos:change.start])
        out.extend(change.lines)
        pos = change.end
    out.extend(ancestor[pos:end])
    return out


def _context(lines: list[str]) -> MergeHunk:
    return MergeHunk(
        kind=HunkKind.CLEAN,
        ancestor_lines=lines,
        ours_lines=lines,
        theirs_lines=lines,
        resolved_lines=lines,
    )


def merge(
    ancestor: list[str], ours: list[str], theirs: list[str]
) -> list[MergeHunk]:
    """Merge two descendants of ``ancestor`` into ordered hunks.

    Concatenating any one side's lines across the returned hunks
    reproduces that side exactly.
    """
    ours_changes = changes(diff(ancestor, ours))
    theirs_changes = changes(diff(ancestor, theirs))

    hunks: list[MergeHunk] = []
    pos = 0
    i = j = 0
    while i < len(ours_changes) or j < len(theirs_changes):
        starts = []
        if i < len(ours_changes):
            starts.append(ours_changes[i].start)
        if j < len(theirs_changes):
            starts.append(theirs_changes[j].start)
        region_start = region_end = min(starts)

        ours_group: list[Change] = []
        theirs_group: list[Change] = []
        grew = True
        while grew:
            grew = False
            while i < len(ours_changes) and ours_changes[i].start <= region_end:
                ours_group.append(ours_changes[i])
                region_end = max(region_end, ours_changes[i].end)
                i += 1
                grew = True
            while j < len(theirs_changes) and theirs_changes[j].start <= region_end:
                theirs_group.append(theirs_changes[j])
                region_end = max(region_end, theirs_changes[j].end)
                j += 1
                grew = True

        if region_start > pos:
            hunks.append(_context(ancestor[pos:region_start]))

        base_lines = ancestor[region_start:region_end]
        ours_lines = _render(ancestor, region_start, region_end, ours_group)
        theirs_lines = _render(ancestor, region_start, region_end, theirs_group)

        if not theirs_group:
            resolved = ours_lines
        elif not ours_group:
            resolved = theirs_lines
        elif ours_lines == theirs_lines:
            resolved = ours_lines
        else:
            resolved = None

        hunks.append(MergeHunk(
            kind=HunkKind.CLEAN if resolved is not None else HunkKind.CONFLICT,
            ancestor_lines=base_lines,
            ours_lines=ours_lines,
            theirs_lines=theirs_lines,
            resolved_lines=resolved,
        ))
        pos = region_end

    if pos < len(ancestor):
        hunks.append(_context(ancestor[pos:]))

    return hunks


def decode_revision(path: str, data: bytes | None) -> list[str] | None:
    """Decode one revision into lines; None stays None (absent file).

    Raises:
        DiffFailure: For binary or non-UTF-8 content
    """
    if data is None:
        return None
    if b"\0" in data:
        raise DiffFailure(path, "binary content")
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DiffFailure(
            path, f"not valid UTF-8 ({e.reason} at byte {e.start})"
        ) from e
    return split_lines(text)


def merge_file(
    path: str,
    ancestor: bytes | None,
    ours: bytes | None,
    theirs: bytes | None,
    merge_base_sha: str,
) -> ConflictFile:
    """Merge one path; ``None`` means the file is absent on that side.

    A file absent from the ancestor is an addition and merges against
    an empty ancestor. A file deleted on one side surfaces as a single
    whole-file hunk: clean when the other side left it untouched,
    otherwise a delete/modify conflict.

    Raises:
        DiffFailure: If any revision is binary or not UTF-8
    """
    base_lines = decode_revision(path, ancestor)
    ours_lines = decode_revision(path, ours)
    theirs_lines = decode_revision(path, theirs)

    if base_lines is not None and (ours_lines is None or theirs_lines is None):
        if ours_lines is None and theirs_lines is None:
            change = FileChange.DELETED_BY_OURS
            kept = []
        elif ours_lines is None:
            change = FileChange.DELETED_BY_OURS
            kept = theirs_lines
        else:
            change = FileChange.DELETED_BY_THEIRS
            kept = ours_lines

        untouched = kept == base_lines or not kept and ours_lines == theirs_lines
        hunk = MergeHunk(
            kind=HunkKind.CLEAN if untouched else HunkKind.CONFLICT,
            ancestor_lines=base_lines,
            ours_lines=ours_lines or [],
            theirs_lines=theirs_lines or [],
            resolved_lines=[] if untouched else None,
        )
        if not untouched:
            logger.info(
                f"Delete/modify conflict in {path}",
                path=path,
                change=change.value,
            )
        return ConflictFile(
            path=path,
            merge_base_sha=merge_base_sha,
            hunks=[hunk],
            change=change,
            in_theirs=theirs_lines is not None,
        )

    hunks = merge(base_lines or [], ours_lines or [], theirs_lines or [])
    conflict_file = ConflictFile(
        path=path,
        merge_base_sha=merge_base_sha,
        hunks=hunks,
        in_theirs=theirs_lines is not None,
    )
    logger.debug(
        f"Merged {path}",
        path=path,
        hunks=len(hunks),
        conflicts=len(conflict_file.conflict_indices()),
    )
    return conflict_file
