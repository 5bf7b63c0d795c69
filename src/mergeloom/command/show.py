"""Show command - print conflicts without changing anything."""

from pydantic import BaseModel, Field


class ShowCommand(BaseModel):
    """Open a merge session and print every file with conflicts.

    Conflict hunks are printed with git-style markers. Nothing is
    written to the repository.
    """

    show_clean: bool = Field(
        default=False,
        alias="show-clean",
        description="Also list files that merged without conflicts",
    )

    async def run_workflow(self, state: "State") -> int:  # noqa: F821
        """Run OpenSession → Summarize.

        Returns:
            Exit code (0=success, 1=error)
        """
        from mergeloom.command.run import run_graph
        from mergeloom.workflow.nodes.open_session import OpenSession

        return await run_graph(
            state, OpenSession(summarize=True, show_clean=self.show_clean)
        )
