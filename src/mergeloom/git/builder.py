"""Build the object graph of a merge commit on top of an existing tree.

Only directories along touched paths are rewritten; every other
subtree keeps its object id. All paths are checked against the base
tree before the first object is written.
"""

from __future__ import annotations

import asyncio

from mergeloom.core.errors import MalformedResolution
from mergeloom.core.log import logger
from mergeloom.git.objects import (
    FILE_MODE,
    TREE_MODE,
    Commit,
    ObjectKind,
    ResolvedFile,
    Signature,
    Tree,
    TreeEntry,
)
from mergeloom.git.store import ObjectStore

# Directory node: name -> child node, ResolvedFile, or None for a deletion
Node = dict


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def _nest(resolved_files: list[ResolvedFile], deleted_paths: list[str]) -> Node:
    root: Node = {}
    changes = [(f.path, f) for f in resolved_files] + [(p, None) for p in deleted_paths]
    for path, change in changes:
        parts = path.split("/")
        if any(part in ("", ".", "..") for part in parts):
            raise MalformedResolution(path, "invalid path")
        node = root
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise MalformedResolution(path, "parent is also a touched file")
            node = child
        if parts[-1] in node:
            reason = (
                "also a parent of touched files"
                if isinstance(node[parts[-1]], dict)
                else "path touched twice"
            )
            raise MalformedResolution(path, reason)
        node[parts[-1]] = change
    return root


async def _validate(
    store: ObjectStore, tree: Tree | None, node: Node, prefix: str,
    loaded: dict[str, Tree | None],
) -> None:
    """Check every touched path and load the trees along the way (reads only)."""
    loaded[prefix] = tree
    pending = []
    for name, child in node.items():
        path = _join(prefix, name)
        entry = tree.get(name) if tree is not None else None
        if isinstance(child, dict):
            if entry is None:
                pending.append(_validate(store, None, child, path, loaded))
            elif not entry.is_tree:
                raise MalformedResolution(path, "not a directory in base tree")
            else:
                pending.append(_load_and_validate(store, entry.object_id, child, path, loaded))
        elif entry is None:
            if child is None or not child.create:
                raise MalformedResolution(path)
        elif entry.is_tree:
            raise MalformedResolution(path, "is a directory in base tree")
    await asyncio.gather(*pending)


async def _load_and_validate(
    store: ObjectStore, tree_id: str, node: Node, prefix: str,
    loaded: dict[str, Tree | None],
) -> None:
    tree = await store.get_tree(tree_id)
    await _validate(store, tree, node, prefix, loaded)


async def _write_tree(
    store: ObjectStore, node: Node, prefix: str,
    loaded: dict[str, Tree | None], blob_ids: dict[str, str],
) -> str | None:
    """Rewrite one directory, children first; None if it ends up empty."""
    tree = loaded[prefix]
    entries = {e.name: e for e in tree.entries} if tree is not None else {}

    subdirs = [(name, child) for name, child in node.items() if isinstance(child, dict)]
    subtree_ids = await asyncio.gather(*(
        _write_tree(store, child, _join(prefix, name), loaded, blob_ids)
        for name, child in subdirs
    ))
    for (name, _), subtree_id in zip(subdirs, subtree_ids):
        if subtree_id is None:
            entries.pop(name, None)
        else:
            entries[name] = TreeEntry(
                name=name, mode=TREE_MODE, kind=ObjectKind.TREE, object_id=subtree_id
            )

    for name, child in node.items():
        if isinstance(child, dict):
            continue
        if child is None:
            entries.pop(name)
            continue
        existing = entries.get(name)
        entries[name] = TreeEntry(
            name=name,
            mode=existing.mode if existing is not None else FILE_MODE,
            kind=ObjectKind.BLOB,
            object_id=blob_ids[child.path],
        )

    if not entries and prefix:
        return None
    return await store.create_tree(list(entries.values()))


async def build_commit(
    store: ObjectStore,
    base_tree_id: str,
    resolved_files: list[ResolvedFile],
    deleted_paths: list[str],
    parents: list[str],
    author: Signature,
    message: str,
    committer: Signature | None = None,
) -> str:
    """Write blobs, trees and a commit; return the commit id.

    Args:
        store: Destination object store
        base_tree_id: Tree the resolved files are applied to
        resolved_files: New content per path; ``create`` allows paths
            missing from the base tree
        deleted_paths: Paths removed from the base tree
        parents: Parent commit ids, first parent first
        author: Author signature (also the committer by default)
        message: Commit message

    Raises:
        MalformedResolution: If a path does not fit the base tree;
            nothing has been written at that point
        ObjectStoreError: If the store fails
    """
    with logger.span(
        "Building commit",
        base_tree=base_tree_id,
        files=len(resolved_files),
        deletions=len(deleted_paths),
    ):
        changes = _nest(resolved_files, deleted_paths)
        loaded: dict[str, Tree | None] = {}
        await _load_and_validate(store, base_tree_id, changes, "", loaded)

        blob_ids = dict(zip(
            (f.path for f in resolved_files),
            await asyncio.gather(*(store.create_blob(f.content) for f in resolved_files)),
        ))
        tree_id = (
            await _write_tree(store, changes, "", loaded, blob_ids)
            if changes else base_tree_id
        )

        commit_id = await store.create_commit(Commit(
            tree_id=tree_id,
            parent_ids=tuple(parents),
            author=author,
            committer=committer or author,
            message=message,
        ))
        logger.info(
            f"Created commit {commit_id}",
            tree=tree_id,
            parents=list(parents),
        )
        return commit_id
