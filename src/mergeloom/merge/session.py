"""One merge between a pull request's base and head branches.

A MergeSession owns every ConflictFile the merger produced and the
FileResolution tracking each of them. It is built by
``mergeloom.git.fetch.open_session`` and consumed by
``mergeloom.merge.commit.commit_session``. Once the head branch moves
underneath it the session is invalidated and must be reopened.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from mergeloom.core.errors import (
    MalformedResolution,
    ResolutionIncomplete,
    SessionInvalidated,
)
from mergeloom.core.log import logger
from mergeloom.git.objects import ResolvedFile
from mergeloom.merge.models import ConflictFile, FileChange, join_lines
from mergeloom.merge.resolution import FileResolution, FileStatus, HunkStatus

_DELETING_STATUS = {
    FileChange.DELETED_BY_OURS: HunkStatus.ACCEPTED_OURS,
    FileChange.DELETED_BY_THEIRS: HunkStatus.ACCEPTED_THEIRS,
}


class MergeSession(BaseModel):
    base_branch: str
    head_branch: str
    ours_sha: str = Field(description="Tip of the base branch")
    theirs_sha: str = Field(
        description="Tip of the head branch; expected old value of its ref"
    )
    merge_base_sha: str
    files: list[ConflictFile] = Field(default_factory=list)
    resolutions: dict[str, FileResolution] = Field(default_factory=dict)
    failures: dict[str, str] = Field(default_factory=dict)
    invalid_reason: str | None = None
    commit_sha: str | None = None

    def add_file(self, file: ConflictFile) -> None:
        self._check_valid()
        self.files.append(file)
        self.resolutions[file.path] = FileResolution.for_file(file)

    def record_failure(self, path: str, reason: str) -> None:
        self._check_valid()
        self.failures[path] = reason
        logger.warn(f"Cannot merge {path}: {reason}", path=path)

    # Transitions

    def accept_ours(self, path: str, index: int) -> None:
        self.resolution(path).accept_ours(index)

    def accept_theirs(self, path: str, index: int) -> None:
        self.resolution(path).accept_theirs(index)

    def accept_both(self, path: str, index: int) -> None:
        self.resolution(path).accept_both(index)

    def edit_custom(self, path: str, index: int, lines: list[str]) -> None:
        self.resolution(path).edit_custom(index, lines)

    def accept_all_ours(self, path: str) -> None:
        self.resolution(path).accept_all_ours()

    def accept_all_theirs(self, path: str) -> None:
        self.resolution(path).accept_all_theirs()

    def resolution(self, path: str) -> FileResolution:
        self._check_valid()
        try:
            return self.resolutions[path]
        except KeyError:
            raise MalformedResolution(path, "not part of this merge") from None

    # Queries

    @property
    def is_valid(self) -> bool:
        return self.invalid_reason is None

    @property
    def conflict_files(self) -> list[ConflictFile]:
        return [f for f in self.files if not f.auto_resolved]

    @property
    def auto_files(self) -> list[ConflictFile]:
        return [f for f in self.files if f.auto_resolved]

    @property
    def resolved_count(self) -> int:
        return sum(
            1 for f in self.conflict_files
            if self.resolutions[f.path].status is FileStatus.RESOLVED
        )

    @property
    def all_resolved(self) -> bool:
        conflicts = self.conflict_files
        return bool(conflicts) and self.resolved_count == len(conflicts)

    @property
    def pending_hunks(self) -> list[tuple[str, int]]:
        return [
            (f.path, index)
            for f in self.files
            for index in self.resolutions[f.path].pending_indices()
        ]

    def final_content(self, path: str) -> bytes | None:
        """Resolved bytes for ``path``, or None when it resolves to a deletion.

        Raises:
            ResolutionIncomplete: If a hunk of the file is still pending
        """
        resolution = self.resolution(path)
        if resolution.status is FileStatus.PENDING:
            raise ResolutionIncomplete(f"{path} still has pending hunks")

        file = resolution.file
        if file.change is not FileChange.CONTENT:
            status = resolution.hunk_resolutions[0].status
            if status in (HunkStatus.AUTO, _DELETING_STATUS[file.change]):
                return None
        return join_lines(resolution.resolved_lines()).encode("utf-8")

    def materialize(self) -> tuple[list[ResolvedFile], list[str]]:
        """Files to write and paths to delete, relative to the head tree.

        Raises:
            ResolutionIncomplete: If any file is pending
        """
        self._check_valid()
        resolved: list[ResolvedFile] = []
        deleted: list[str] = []
        for file in self.files:
            content = self.final_content(file.path)
            if content is None:
                if file.in_theirs:
                    deleted.append(file.path)
                continue
            resolved.append(
                ResolvedFile(path=file.path, content=content, create=not file.in_theirs)
            )
        return resolved, deleted

    # Lifecycle

    def invalidate(self, reason: str) -> None:
        self.invalid_reason = reason
        logger.warn(
            "Merge session invalidated",
            head_branch=self.head_branch,
            reason=reason,
        )

    def mark_committed(self, commit_sha: str) -> None:
        self._check_valid()
        self.commit_sha = commit_sha

    def _check_valid(self) -> None:
        if self.invalid_reason is not None:
            raise SessionInvalidated(
                f"Session for '{self.head_branch}' is invalid: "
                f"{self.invalid_reason}; reopen it"
            )
