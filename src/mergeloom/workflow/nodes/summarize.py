"""Summarize node - print the state of every file in the session."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from mergeloom.core.config import State
from mergeloom.merge.models import FileChange
from mergeloom.merge.session import MergeSession


def _block(marker: str, lines: list[str]) -> list[str]:
    body = [line if line.endswith("\n") else line + "\n" for line in lines]
    return [marker + "\n", *body]


def format_session(session: MergeSession, show_clean: bool = False) -> str:
    """Plain-text report: one line per file, then its conflict hunks.

    Conflicts are shown with git-style markers; ``ours`` is the base
    branch and ``theirs`` the pull request branch.
    """
    out = [
        f"Merging {session.base_branch} ({session.ours_sha[:12]}) into "
        f"{session.head_branch} ({session.theirs_sha[:12]}), "
        f"merge base {session.merge_base_sha[:12]}\n",
        f"{len(session.conflict_files)} file(s) with conflicts, "
        f"{session.resolved_count} resolved, "
        f"{len(session.auto_files)} merged cleanly\n",
    ]

    for path, reason in sorted(session.failures.items()):
        out.append(f"\n{path}: cannot merge ({reason})\n")

    for file in session.files:
        resolution = session.resolutions[file.path]
        if file.auto_resolved and not show_clean:
            continue
        label = resolution.status.value
        if file.change is not FileChange.CONTENT:
            label += f", {file.change.value.replace('_', ' ')}"
        out.append(f"\n{file.path}: {label}\n")

        for number, index in enumerate(file.conflict_indices(), start=1):
            hunk = file.hunks[index]
            status = resolution.hunk_resolutions[index].status.value
            out.append(f"--- conflict {number} (hunk {index}, {status})\n")
            out += _block(f"<<<<<<< ours ({session.base_branch})", hunk.ours_lines)
            out += _block("=======", hunk.theirs_lines)
            out.append(f">>>>>>> theirs ({session.head_branch})\n")

    return "".join(out)


@dataclass
class Summarize(BaseNode[State, None, int]):
    """Report the opened session without changing anything."""

    show_clean: bool = False

    async def run(self, ctx: GraphRunContext[State]) -> End[int]:
        session = ctx.state.runtime.merge.session
        print(format_session(session, show_clean=self.show_clean), end="")
        return End(0)
