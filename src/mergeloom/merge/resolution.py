"""Per-hunk and per-file resolution state."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator

from mergeloom.core.log import logger
from mergeloom.merge.models import ConflictFile


class HunkStatus(str, Enum):
    PENDING = "pending"
    AUTO = "auto"
    ACCEPTED_OURS = "accepted_ours"
    ACCEPTED_THEIRS = "accepted_theirs"
    ACCEPTED_BOTH = "accepted_both"
    CUSTOM = "custom"


class FileStatus(str, Enum):
    AUTO_RESOLVED = "auto_resolved"
    PENDING = "pending"
    RESOLVED = "resolved"


class HunkResolution(BaseModel):
    status: HunkStatus = HunkStatus.PENDING
    resolved_lines: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _pending_is_empty(self) -> "HunkResolution":
        if self.status is HunkStatus.PENDING and self.resolved_lines:
            raise ValueError("pending hunk cannot carry resolved lines")
        return self

    @property
    def is_pending(self) -> bool:
        return self.status is HunkStatus.PENDING


class FileResolution(BaseModel):
    """Resolution of every hunk of one ConflictFile.

    Transitions may be applied in any order and any number of times;
    the most recent one for a hunk wins. ``status`` is recomputed
    after each of them.
    """

    file: ConflictFile
    hunk_resolutions: list[HunkResolution]
    status: FileStatus = FileStatus.PENDING

    @classmethod
    def for_file(cls, file: ConflictFile) -> FileResolution:
        """Initial state: clean hunks auto, conflict hunks pending."""
        hunks = [
            HunkResolution()
            if hunk.is_conflict
            else HunkResolution(
                status=HunkStatus.AUTO, resolved_lines=list(hunk.resolved_lines)
            )
            for hunk in file.hunks
        ]
        resolution = cls(file=file, hunk_resolutions=hunks)
        resolution._recompute()
        return resolution

    @property
    def path(self) -> str:
        return self.file.path

    def accept_ours(self, index: int) -> None:
        self._set(index, HunkStatus.ACCEPTED_OURS, self._hunk(index).ours_lines)

    def accept_theirs(self, index: int) -> None:
        self._set(index, HunkStatus.ACCEPTED_THEIRS, self._hunk(index).theirs_lines)

    def accept_both(self, index: int) -> None:
        hunk = self._hunk(index)
        self._set(index, HunkStatus.ACCEPTED_BOTH, hunk.ours_lines + hunk.theirs_lines)

    def edit_custom(self, index: int, lines: list[str]) -> None:
        self._set(index, HunkStatus.CUSTOM, lines)

    def accept_all_ours(self) -> None:
        for index in self.file.conflict_indices():
            self.accept_ours(index)

    def accept_all_theirs(self) -> None:
        for index in self.file.conflict_indices():
            self.accept_theirs(index)

    def pending_indices(self) -> list[int]:
        return [
            i for i, resolution in enumerate(self.hunk_resolutions)
            if resolution.is_pending
        ]

    def resolved_lines(self) -> list[str]:
        """Concatenated file content; only meaningful once nothing is pending."""
        return [
            line
            for resolution in self.hunk_resolutions
            for line in resolution.resolved_lines
        ]

    def _hunk(self, index: int):
        if not 0 <= index < len(self.file.hunks):
            raise IndexError(
                f"{self.path} has {len(self.file.hunks)} hunks, no hunk {index}"
            )
        return self.file.hunks[index]

    def _set(self, index: int, status: HunkStatus, lines: list[str]) -> None:
        self.hunk_resolutions[index] = HunkResolution(
            status=status, resolved_lines=list(lines)
        )
        self._recompute()
        logger.debug(
            f"Hunk {index} of {self.path} -> {status.value}",
            path=self.path,
            hunk=index,
            file_status=self.status.value,
        )

    def _recompute(self) -> None:
        statuses = [resolution.status for resolution in self.hunk_resolutions]
        if HunkStatus.PENDING in statuses:
            self.status = FileStatus.PENDING
        elif self.file.auto_resolved and all(s is HunkStatus.AUTO for s in statuses):
            self.status = FileStatus.AUTO_RESOLVED
        else:
            self.status = FileStatus.RESOLVED
