"""OpenSession node - read both branches and merge every changed file."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergeloom.core.config import State
from mergeloom.git.fetch import open_session
from mergeloom.workflow.nodes.apply_resolutions import ApplyResolutions
from mergeloom.workflow.nodes.summarize import Summarize


@dataclass
class OpenSession(BaseNode[State]):
    """Open a merge session for the configured branches."""

    summarize: bool = False
    show_clean: bool = False

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> ApplyResolutions | Summarize:
        """Capture both tips, find the merge base and merge.

        Returns:
            Summarize for ``show``, ApplyResolutions for ``resolve``
        """
        config = ctx.state.config
        merge_state = ctx.state.runtime.merge

        if merge_state.store is None:
            merge_state.store = config.store.open(config.commands)

        merge_state.session = await open_session(
            merge_state.store,
            config.merge.base_branch,
            config.merge.head_branch,
            concurrency=config.store.concurrency,
        )
        merge_state.status = "opened"

        if self.summarize:
            return Summarize(show_clean=self.show_clean)
        return ApplyResolutions()
