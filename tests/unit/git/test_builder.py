"""Tests for building merge commits on top of an existing tree."""

import asyncio

import pytest

from mergeloom.core.errors import MalformedResolution
from mergeloom.git.builder import build_commit
from mergeloom.git.fetch import lookup_path
from mergeloom.git.objects import EXECUTABLE_MODE, ObjectKind, ResolvedFile, TreeEntry


@pytest.fixture
def base(repo):
    commit_id = repo.commit({
        "top.txt": "top\n",
        "lib/a.py": "a = 1\n",
        "lib/b.py": "b = 1\n",
        "docs/deep/guide.md": "guide\n",
        "vendor/only.txt": "only\n",
    })
    repo.base = commit_id
    repo.base_tree = asyncio.run(repo.store.get_commit(commit_id)).tree_id
    return repo


def _build(repo, resolved=(), deleted=(), parents=None):
    return asyncio.run(build_commit(
        repo.store,
        repo.base_tree,
        list(resolved),
        list(deleted),
        parents=parents if parents is not None else [repo.base],
        author=repo.signature(),
        message="merge",
    ))


def _entry(repo, commit_id, path):
    async def find():
        commit = await repo.store.get_commit(commit_id)
        return await lookup_path(repo.store, commit.tree_id, path)
    return asyncio.run(find())


def test_only_touched_paths_change(base):
    commit_id = _build(base, [ResolvedFile(path="lib/a.py", content=b"a = 2\n")])

    files = base.files(commit_id)
    assert files["lib/a.py"] == b"a = 2\n"
    assert files["lib/b.py"] == b"b = 1\n"
    for untouched in ("top.txt", "docs", "vendor", "lib/b.py"):
        assert _entry(base, commit_id, untouched) == _entry(base, base.base, untouched)
    assert _entry(base, commit_id, "lib") != _entry(base, base.base, "lib")


def test_rebuilding_base_content_reproduces_tree(base):
    commit_id = _build(base, [ResolvedFile(path="docs/deep/guide.md", content=b"guide\n")])

    commit = asyncio.run(base.store.get_commit(commit_id))
    assert commit.tree_id == base.base_tree


def test_no_changes_reuses_base_tree(base):
    commit_id = _build(base)
    assert asyncio.run(base.store.get_commit(commit_id)).tree_id == base.base_tree


def test_parents_in_order(base):
    other = base.commit({"x.txt": "x\n"})
    commit_id = _build(base, parents=[base.base, other])
    assert asyncio.run(base.store.get_commit(commit_id)).parent_ids == (base.base, other)


def test_unknown_path_writes_nothing(base):
    objects = base.store.object_count

    with pytest.raises(MalformedResolution) as excinfo:
        _build(base, [
            ResolvedFile(path="lib/a.py", content=b"changed\n"),
            ResolvedFile(path="lib/missing.py", content=b"new\n"),
        ])

    assert excinfo.value.path == "lib/missing.py"
    assert base.store.object_count == objects


@pytest.mark.parametrize("path,reason", [
    ("top.txt/inner", "not a directory in base tree"),
    ("lib", "is a directory in base tree"),
    ("lib//a.py", "invalid path"),
])
def test_paths_that_do_not_fit(base, path, reason):
    with pytest.raises(MalformedResolution) as excinfo:
        _build(base, [ResolvedFile(path=path, content=b"x\n")])
    assert excinfo.value.reason == reason


def test_created_paths_add_directories(base):
    commit_id = _build(base, [
        ResolvedFile(path="new/dir/file.txt", content=b"new\n", create=True),
        ResolvedFile(path="lib/c.py", content=b"c = 1\n", create=True),
    ])

    files = base.files(commit_id)
    assert files["new/dir/file.txt"] == b"new\n"
    assert files["lib/c.py"] == b"c = 1\n"


def test_deleting_last_file_drops_directories(base):
    commit_id = _build(base, deleted=["vendor/only.txt", "docs/deep/guide.md"])

    files = base.files(commit_id)
    assert "vendor/only.txt" not in files
    assert _entry(base, commit_id, "vendor") is None
    assert _entry(base, commit_id, "docs") is None


def test_deleting_unknown_path_fails(base):
    with pytest.raises(MalformedResolution):
        _build(base, deleted=["lib/ghost.py"])


def test_same_path_twice(base):
    with pytest.raises(MalformedResolution):
        _build(
            base,
            [ResolvedFile(path="top.txt", content=b"x\n")],
            deleted=["top.txt"],
        )


def test_existing_mode_is_kept(repo):
    async def seed():
        blob = await repo.store.create_blob(b"#!/bin/sh\n")
        tree = await repo.store.create_tree([TreeEntry(
            name="run.sh", mode=EXECUTABLE_MODE, kind=ObjectKind.BLOB, object_id=blob
        )])
        return tree

    repo.base_tree = asyncio.run(seed())
    repo.base = None
    commit_id = _build(repo, [ResolvedFile(path="run.sh", content=b"#!/bin/sh\nexit 0\n")], parents=[])

    assert _entry(repo, commit_id, "run.sh").mode == EXECUTABLE_MODE
