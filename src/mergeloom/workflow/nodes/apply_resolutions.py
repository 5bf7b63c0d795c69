"""ApplyResolutions node - resolve conflicts from configuration."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from mergeloom.core.config import State
from mergeloom.core.log import logger
from mergeloom.merge.plan import apply_plan, apply_strategy, load_plan
from mergeloom.workflow.nodes.commit_resolution import CommitResolution


@dataclass
class ApplyResolutions(BaseNode[State, None, int]):
    """Apply the resolutions file, then the fallback strategy."""

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> CommitResolution | End[int]:
        """Resolve what configuration decides and check readiness.

        Returns:
            CommitResolution when every conflict is resolved,
            End(0) when there is nothing to resolve, End(1) otherwise
        """
        resolve = ctx.state.config.resolve
        merge_state = ctx.state.runtime.merge
        session = merge_state.session

        if resolve.resolutions_file:
            plan = load_plan(resolve.resolutions_file)
            merge_state.resolved_hunks += apply_plan(session, plan)
        merge_state.resolved_hunks += apply_strategy(session, resolve.strategy)

        if session.failures:
            for path, reason in sorted(session.failures.items()):
                logger.error(f"Cannot merge {path}: {reason}")
            merge_state.status = "failed"
            return End(1)

        if not session.conflict_files:
            logger.info(
                f"{session.head_branch} merges cleanly with "
                f"{session.base_branch}; nothing to resolve"
            )
            merge_state.status = "clean"
            return End(0)

        if not session.all_resolved:
            for path, index in session.pending_hunks:
                logger.warn(f"Unresolved conflict in {path} (hunk {index})")
            merge_state.status = "pending_hunks"
            return End(1)

        return CommitResolution()
