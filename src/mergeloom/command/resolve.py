"""Resolve command - apply resolutions and commit the merge."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from mergeloom.core.log import logger


class ResolveCommand(BaseModel):
    """Resolve conflicts from configuration and commit the merge.

    The resolutions file is applied first, then the strategy to every
    hunk still pending. When nothing is pending a merge commit
    [head, base] is written and the head branch is moved to it with
    compare-and-swap.

    Exit codes: 0 committed (or nothing to resolve), 1 conflicts left
    or a file could not be merged, 2 the head branch moved meanwhile.
    """

    strategy: Literal["none", "ours", "theirs", "both"] | None = Field(
        default=None,
        description="Override config.resolve.strategy",
    )
    resolutions: Path | None = Field(
        default=None,
        description="Override config.resolve.resolutions_file",
    )
    message: str | None = Field(
        default=None,
        description="Override config.merge.message",
    )

    async def run_workflow(self, state: "State") -> int:  # noqa: F821
        """Run OpenSession → ApplyResolutions → CommitResolution.

        Returns:
            Exit code
        """
        from mergeloom.command.run import run_graph
        from mergeloom.workflow.nodes.open_session import OpenSession

        if self.strategy is not None:
            state.config.resolve.strategy = self.strategy
        if self.resolutions is not None:
            state.config.resolve.resolutions_file = self.resolutions
        if self.message is not None:
            state.config.merge.message = self.message

        exit_code = await run_graph(state, OpenSession())
        logger.info(
            f"Resolve finished: {state.runtime.merge.status}",
            exit_code=exit_code,
        )
        return exit_code
