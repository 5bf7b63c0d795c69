"""Turn a fully resolved session into a merge commit on the head branch."""

from __future__ import annotations

from mergeloom.core.errors import RefConflict, ResolutionIncomplete
from mergeloom.core.log import logger
from mergeloom.git.builder import build_commit
from mergeloom.git.objects import Signature
from mergeloom.git.refs import advance_ref
from mergeloom.git.store import ObjectStore
from mergeloom.merge.session import MergeSession

DEFAULT_MESSAGE = "Merge branch '{base_branch}' into {head_branch}"


def check_ready(session: MergeSession) -> None:
    """Raise ResolutionIncomplete unless the session can be committed."""
    if session.failures:
        raise ResolutionIncomplete(
            f"{len(session.failures)} file(s) could not be merged: "
            + ", ".join(sorted(session.failures))
        )
    if not session.conflict_files:
        raise ResolutionIncomplete("no conflicts to resolve")
    if not session.all_resolved:
        pending = session.pending_hunks
        raise ResolutionIncomplete(
            f"{len(pending)} hunk(s) still pending in "
            f"{len({path for path, _ in pending})} file(s)"
        )


async def commit_session(
    store: ObjectStore,
    session: MergeSession,
    author: Signature,
    message: str | None = None,
) -> str:
    """Build the merge commit and advance the head branch to it.

    The commit sits on the head commit's tree with parents
    ``[head, base]``. If the head branch moved since the session was
    opened, the session is invalidated and RefConflict propagates.

    Raises:
        ResolutionIncomplete: If hunks are pending or files failed
        MalformedResolution: If a resolved path does not fit the tree
        RefConflict: If the head branch moved
        ObjectStoreError: If the store fails
        SessionInvalidated: If the session was already invalidated
    """
    check_ready(session)
    resolved_files, deleted_paths = session.materialize()
    message = (message or DEFAULT_MESSAGE).format(
        base_branch=session.base_branch, head_branch=session.head_branch
    )

    with logger.span(
        f"Committing resolution of {session.head_branch}",
        files=len(resolved_files),
        deletions=len(deleted_paths),
    ):
        head_commit = await store.get_commit(session.theirs_sha)
        commit_id = await build_commit(
            store,
            head_commit.tree_id,
            resolved_files,
            deleted_paths,
            parents=[session.theirs_sha, session.ours_sha],
            author=author,
            message=message,
        )
        try:
            await advance_ref(store, session.head_branch, session.theirs_sha, commit_id)
        except RefConflict as e:
            session.invalidate(str(e))
            raise

        session.mark_committed(commit_id)
        return commit_id
