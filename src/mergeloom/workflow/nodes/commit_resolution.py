"""CommitResolution node - write the merge commit and move the head branch."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from mergeloom.core.config import State
from mergeloom.core.errors import RefConflict
from mergeloom.core.log import logger
from mergeloom.git.objects import Signature
from mergeloom.merge.commit import commit_session


@dataclass
class CommitResolution(BaseNode[State, None, int]):
    """Commit a fully resolved session."""

    async def run(self, ctx: GraphRunContext[State]) -> End[int]:
        """Build the merge commit and advance the head branch.

        Returns:
            End[int]: 0 when committed, 2 when the head branch moved
        """
        merge_config = ctx.state.config.merge
        merge_state = ctx.state.runtime.merge
        session = merge_state.session

        author = Signature(
            name=merge_config.author_name,
            email=merge_config.author_email,
        )
        try:
            commit_sha = await commit_session(
                merge_state.store,
                session,
                author=author,
                message=merge_config.message,
            )
        except RefConflict as e:
            merge_state.status = "conflict"
            logger.error(
                f"{e}; the pull request changed while it was being "
                "resolved. Run again to resolve the new revision."
            )
            return End(2)

        merge_state.status = "committed"
        merge_state.commit_sha = commit_sha
        logger.info(
            f"Committed {commit_sha} to {session.head_branch}",
            resolved_files=session.resolved_count,
        )
        return End(0)
