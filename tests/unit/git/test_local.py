"""Tests for the git plumbing store against a real repository."""

import asyncio
import shutil

import pytest

from mergeloom.core.errors import ObjectStoreError, RefConflict
from mergeloom.core.runner import Runner
from mergeloom.git.local import LocalGitStore
from mergeloom.git.objects import FILE_MODE, TREE_MODE, Commit, ObjectKind, Signature, TreeEntry
from mergeloom.git.store import MemoryObjectStore

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

SIGNATURE = Signature.parse("Test Author <author@example.com> 1700000000 +0200")


@pytest.fixture
def git_store(tmp_path):
    Runner().execute("git init -q", cwd=tmp_path)
    return LocalGitStore(tmp_path)


async def _write(store):
    blob = await store.create_blob(b"hello\nworld\n")
    sub = await store.create_tree([
        TreeEntry(name="inner.txt", mode=FILE_MODE, kind=ObjectKind.BLOB, object_id=blob),
    ])
    root = await store.create_tree([
        TreeEntry(name="dir", mode=TREE_MODE, kind=ObjectKind.TREE, object_id=sub),
        TreeEntry(name="top.txt", mode=FILE_MODE, kind=ObjectKind.BLOB, object_id=blob),
    ])
    commit = await store.create_commit(Commit(
        tree_id=root, author=SIGNATURE, committer=SIGNATURE, message="first\n"
    ))
    return blob, root, commit


def test_ids_agree_with_memory_store(git_store):
    assert asyncio.run(_write(git_store)) == asyncio.run(_write(MemoryObjectStore()))


def test_reads_back_what_was_written(git_store):
    blob, root, commit_id = asyncio.run(_write(git_store))

    assert asyncio.run(git_store.get_blob(blob)) == b"hello\nworld\n"

    tree = asyncio.run(git_store.get_tree(root))
    assert [e.name for e in tree.entries] == ["dir", "top.txt"]
    assert tree.get("dir").mode == TREE_MODE
    assert tree.id == root

    commit = asyncio.run(git_store.get_commit(commit_id))
    assert commit.tree_id == root
    assert commit.parent_ids == ()
    assert commit.author == SIGNATURE
    assert commit.message == "first\n"
    assert commit.id == commit_id


def test_compare_and_swap(git_store, tmp_path):
    _, root, first = asyncio.run(_write(git_store))
    second = asyncio.run(git_store.create_commit(Commit(
        tree_id=root, parent_ids=(first,), author=SIGNATURE, committer=SIGNATURE,
        message="second\n",
    )))
    Runner().execute(f"git update-ref refs/heads/main {first}", cwd=tmp_path)

    assert asyncio.run(git_store.get_ref("main")) == first

    with pytest.raises(RefConflict):
        asyncio.run(git_store.update_ref("main", second, second))
    assert asyncio.run(git_store.get_ref("main")) == first

    asyncio.run(git_store.update_ref("main", first, second))
    assert asyncio.run(git_store.get_ref("main")) == second


def test_missing_branch(git_store):
    with pytest.raises(ObjectStoreError) as excinfo:
        asyncio.run(git_store.get_ref("nope"))
    assert excinfo.value.status_code == 404
