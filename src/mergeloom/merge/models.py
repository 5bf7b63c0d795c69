"""Hunk and file models produced by the three-way merger."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


def split_lines(text: str) -> list[str]:
    """Split text into lines that keep their ``\\n`` terminator.

    ``"".join(split_lines(text)) == text`` for every input; a final
    line without a newline stays unterminated.
    """
    if not text:
        return []
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def join_lines(lines: list[str]) -> str:
    return "".join(lines)


class HunkKind(str, Enum):
    CLEAN = "clean"
    CONFLICT = "conflict"


class FileChange(str, Enum):
    """How the two sides changed a file relative to the merge base."""

    CONTENT = "content"
    DELETED_BY_OURS = "deleted_by_ours"
    DELETED_BY_THEIRS = "deleted_by_theirs"


class MergeHunk(BaseModel):
    """One contiguous region of a three-way diff.

    Clean hunks carry the lines the merger chose; conflict hunks carry
    ``resolved_lines=None`` until a resolution supplies them.
    """

    model_config = ConfigDict(frozen=True)

    kind: HunkKind
    ancestor_lines: list[str] = Field(default_factory=list)
    ours_lines: list[str] = Field(default_factory=list)
    theirs_lines: list[str] = Field(default_factory=list)
    resolved_lines: list[str] | None = None

    @model_validator(mode="after")
    def _check_resolved(self) -> "MergeHunk":
        if self.kind is HunkKind.CLEAN and self.resolved_lines is None:
            raise ValueError("clean hunk needs resolved_lines")
        if self.kind is HunkKind.CONFLICT and self.resolved_lines is not None:
            raise ValueError("conflict hunk cannot carry resolved_lines")
        return self

    @property
    def is_conflict(self) -> bool:
        return self.kind is HunkKind.CONFLICT


class ConflictFile(BaseModel):
    """Three-way merge result for one path."""

    path: str
    merge_base_sha: str
    hunks: list[MergeHunk] = Field(default_factory=list)
    change: FileChange = FileChange.CONTENT
    in_theirs: bool = Field(
        default=True,
        description=(
            "Path exists on the head side, i.e. in the tree the merge "
            "commit is built on"
        ),
    )

    @computed_field
    @property
    def auto_resolved(self) -> bool:
        return not any(hunk.is_conflict for hunk in self.hunks)

    @property
    def is_delete_conflict(self) -> bool:
        """Deleted on one side, modified on the other."""
        return self.change is not FileChange.CONTENT and not self.auto_resolved

    def conflict_indices(self) -> list[int]:
        return [i for i, hunk in enumerate(self.hunks) if hunk.is_conflict]

    def side(self, name: str, /) -> str:
        """Reconstruct one revision ("ancestor", "ours" or "theirs")."""
        attr = f"{name}_lines"
        return join_lines([line for hunk in self.hunks for line in getattr(hunk, attr)])
