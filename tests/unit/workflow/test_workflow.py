"""End-to-end tests of the show and resolve workflows on an in-memory store."""

import asyncio

import pytest
from pydantic_settings import CliApp

from mergeloom.cli import CliState
from mergeloom.command.resolve import ResolveCommand
from mergeloom.command.show import ShowCommand
from mergeloom.core.config import State
from mergeloom.git.fetch import open_session
from mergeloom.git.store import MemoryObjectStore
from mergeloom.workflow.nodes.summarize import format_session


@pytest.fixture
def make_state(tmp_path, monkeypatch, mock_argv):
    """State for main <- feature whose store is the given MemoryObjectStore."""
    monkeypatch.chdir(tmp_path)

    def make(store, **resolve):
        state = State(config={
            "log_root": str(tmp_path / "logs"),
            "merge": {"base_branch": "main", "head_branch": "feature"},
            "resolve": resolve,
        })
        state.runtime.merge.store = store
        return state

    return make


def _resolve(state, **options):
    return asyncio.run(ResolveCommand(**options).run_workflow(state))


class TestResolve:
    def test_pending_conflicts_exit_1(self, pr_repo, make_state):
        state = make_state(pr_repo.store)

        assert _resolve(state) == 1
        assert state.runtime.merge.status == "pending_hunks"
        assert pr_repo.store.refs()["feature"] == pr_repo.theirs

    def test_strategy_commits(self, pr_repo, make_state):
        state = make_state(pr_repo.store)

        assert _resolve(state, strategy="theirs") == 0

        merge_state = state.runtime.merge
        assert merge_state.status == "committed"
        assert merge_state.resolved_hunks == 1
        assert pr_repo.store.refs()["feature"] == merge_state.commit_sha

        commit = asyncio.run(pr_repo.store.get_commit(merge_state.commit_sha))
        assert commit.parent_ids == (pr_repo.theirs, pr_repo.ours)
        assert commit.author.name == "mergeloom"
        assert commit.message == "Merge branch 'main' into feature\n"

    def test_resolutions_file(self, pr_repo, make_state, tmp_path):
        plan = tmp_path / "resolutions.yaml"
        plan.write_text("README.md:\n  1:\n    custom: \"line two, merged\\n\"\n")
        state = make_state(pr_repo.store, resolutions_file=str(plan))

        assert _resolve(state, message="Resolve {head_branch}") == 0

        files = pr_repo.files(state.runtime.merge.commit_sha)
        assert files["README.md"] == b"title\nline two, merged\nfooter\n"
        commit = asyncio.run(pr_repo.store.get_commit(state.runtime.merge.commit_sha))
        assert commit.message == "Resolve feature\n"

    def test_head_moved_exit_2(self, pr_repo, make_state, monkeypatch):
        store = pr_repo.store
        pushed = pr_repo.commit({"README.md": "pushed\n"}, parents=[pr_repo.theirs])
        original = store.update_ref

        async def racing_update(branch, expected_old, new):
            store.set_ref(branch, pushed)
            await original(branch, expected_old, new)

        monkeypatch.setattr(store, "update_ref", racing_update)
        state = make_state(store, strategy="ours")

        assert _resolve(state) == 2
        assert state.runtime.merge.status == "conflict"
        assert not state.runtime.merge.session.is_valid
        assert store.refs()["feature"] == pushed

    def test_clean_merge_exit_0(self, repo, make_state):
        base = repo.commit({"a.txt": "1\n", "b.txt": "1\n"})
        repo.branch("main", repo.commit({"a.txt": "2\n", "b.txt": "1\n"}, parents=[base]))
        repo.branch("feature", repo.commit({"a.txt": "1\n", "b.txt": "2\n"}, parents=[base]))
        state = make_state(repo.store, strategy="ours")

        assert _resolve(state) == 0
        assert state.runtime.merge.status == "clean"
        assert state.runtime.merge.commit_sha is None

    def test_unmergeable_file_exit_1(self, repo, make_state):
        base = repo.commit({"logo.bin": b"\x00a"})
        repo.branch("main", repo.commit({"logo.bin": b"\x00b"}, parents=[base]))
        repo.branch("feature", repo.commit({"logo.bin": b"\x00c"}, parents=[base]))
        state = make_state(repo.store, strategy="theirs")

        assert _resolve(state) == 1
        assert state.runtime.merge.status == "failed"

    def test_missing_branch_exit_1(self, store, make_state):
        state = make_state(store)

        assert _resolve(state) == 1
        assert state.runtime.merge.status == "failed"

    @pytest.mark.parametrize("has_branches", [True, False])
    def test_store_is_closed_after_run(self, pr_repo, make_state, monkeypatch, has_branches):
        target = pr_repo.store if has_branches else MemoryObjectStore()
        closed = []

        async def aclose():
            closed.append(True)

        monkeypatch.setattr(target, "aclose", aclose)
        state = make_state(target, strategy="theirs")

        _resolve(state)

        assert closed == [True]


class TestShow:
    def test_prints_conflicts(self, pr_repo, make_state, capsys):
        state = make_state(pr_repo.store)

        exit_code = asyncio.run(ShowCommand().run_workflow(state))

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "README.md: pending" in out
        assert (
            "<<<<<<< ours (main)\n"
            "line two from main\n"
            "=======\n"
            "line two from feature\n"
            ">>>>>>> theirs (feature)\n"
        ) in out
        assert "docs/guide.md" not in out
        assert pr_repo.store.refs()["feature"] == pr_repo.theirs

    def test_format_session_with_clean_files(self, pr_repo):
        session = asyncio.run(open_session(pr_repo.store, "main", "feature"))
        session.accept_ours("README.md", 1)

        report = format_session(session, show_clean=True)

        assert "1 file(s) with conflicts, 1 resolved, 1 merged cleanly" in report
        assert "docs/guide.md: auto_resolved" in report
        assert "(hunk 1, accepted_ours)" in report


def test_cli_reports_missing_branches(make_state):
    with pytest.raises(SystemExit) as excinfo:
        CliApp.run(CliState, cli_args=[
            "--config.merge.base_branch", "main",
            "--config.merge.head_branch", "feature",
            "--config.store.backend", "memory",
            "show",
        ])

    assert excinfo.value.code == 1


def test_workflow_graph_holds_every_node():
    from mergeloom.workflow.graph import create_workflow

    workflow = create_workflow()

    assert set(workflow.node_defs) == {
        "OpenSession", "ApplyResolutions", "CommitResolution", "Summarize"
    }
