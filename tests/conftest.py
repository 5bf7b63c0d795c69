"""Pytest configuration and fixtures for mergeloom tests."""

import asyncio
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mergeloom.core.log import ConsoleSink, setup_logger
from mergeloom.git.objects import (
    FILE_MODE,
    TREE_MODE,
    Commit,
    ObjectKind,
    Signature,
    TreeEntry,
)
from mergeloom.git.store import MemoryObjectStore


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Console-only logging for the whole test session."""
    test_log_root = Path(tempfile.gettempdir()) / "mergeloom-tests"
    setup_logger(
        log_root=test_log_root,
        session_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture
def mock_argv():
    """Replace sys.argv so pytest's own arguments are not parsed."""
    original = sys.argv.copy()
    sys.argv = ["mergeloom"]
    yield
    sys.argv = original


class RepoBuilder:
    """Writes commits of plain text files into an ObjectStore."""

    def __init__(self, store):
        self.store = store
        self._tick = 0

    def signature(self) -> Signature:
        self._tick += 1
        return Signature(
            name="Test Author",
            email="author@example.com",
            timestamp=datetime.fromtimestamp(1_700_000_000 + self._tick, timezone.utc),
        )

    async def _write_tree(self, files: dict[str, bytes]) -> str:
        blobs: dict[str, bytes] = {}
        dirs: dict[str, dict[str, bytes]] = {}
        for path, content in files.items():
            head, _, rest = path.partition("/")
            if rest:
                dirs.setdefault(head, {})[rest] = content
            else:
                blobs[head] = content

        entries = []
        for name, content in blobs.items():
            entries.append(TreeEntry(
                name=name,
                mode=FILE_MODE,
                kind=ObjectKind.BLOB,
                object_id=await self.store.create_blob(content),
            ))
        for name, nested in dirs.items():
            entries.append(TreeEntry(
                name=name,
                mode=TREE_MODE,
                kind=ObjectKind.TREE,
                object_id=await self._write_tree(nested),
            ))
        return await self.store.create_tree(entries)

    async def commit_async(self, files, parents=(), message="commit") -> str:
        encoded = {
            path: content.encode() if isinstance(content, str) else content
            for path, content in files.items()
        }
        tree_id = await self._write_tree(encoded)
        signature = self.signature()
        return await self.store.create_commit(Commit(
            tree_id=tree_id,
            parent_ids=tuple(parents),
            author=signature,
            committer=signature,
            message=message,
        ))

    def commit(self, files, parents=(), message="commit") -> str:
        return asyncio.run(self.commit_async(files, parents, message))

    def branch(self, name: str, commit_id: str) -> None:
        self.store.set_ref(name, commit_id)

    def files(self, commit_id: str) -> dict[str, bytes]:
        """Path -> content of every blob in a commit."""
        from mergeloom.git.fetch import flatten_tree

        async def read():
            commit = await self.store.get_commit(commit_id)
            entries = await flatten_tree(self.store, commit.tree_id)
            return {
                path: await self.store.get_blob(entry.object_id)
                for path, entry in entries.items()
            }

        return asyncio.run(read())


@pytest.fixture
def store():
    return MemoryObjectStore()


@pytest.fixture
def repo(store):
    return RepoBuilder(store)


@pytest.fixture
def pr_repo(repo):
    """Base branch 'main' and pull request branch 'feature' off one commit.

    README.md conflicts on its second line, docs/guide.md changes only
    on main, src/app.py changes only on feature.
    """
    base = repo.commit({
        "README.md": "title\nline two\nfooter\n",
        "docs/guide.md": "guide\n",
        "src/app.py": "print('v1')\n",
    }, message="initial")
    ours = repo.commit({
        "README.md": "title\nline two from main\nfooter\n",
        "docs/guide.md": "guide\nmore guide\n",
        "src/app.py": "print('v1')\n",
    }, parents=[base], message="main work")
    theirs = repo.commit({
        "README.md": "title\nline two from feature\nfooter\n",
        "docs/guide.md": "guide\n",
        "src/app.py": "print('v2')\n",
    }, parents=[base], message="feature work")
    repo.branch("main", ours)
    repo.branch("feature", theirs)
    repo.base, repo.ours, repo.theirs = base, ours, theirs
    return repo
