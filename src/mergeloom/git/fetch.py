"""Load a merge session from an object store."""

from __future__ import annotations

import asyncio

from mergeloom.core.errors import DiffFailure, MergeloomError
from mergeloom.core.log import logger
from mergeloom.git.objects import BLOB_MODES, Tree, TreeEntry
from mergeloom.git.store import ObjectStore
from mergeloom.merge.session import MergeSession
from mergeloom.merge.three_way import merge_file

DEFAULT_CONCURRENCY = 8


class TreeCache:
    """Reads each tree from the underlying store at most once.

    Tree ids are content hashes, so a cached tree never goes stale.
    Concurrent readers of the same id share one pending read.
    """

    def __init__(self, store: ObjectStore):
        self.store = store
        self._trees: dict[str, asyncio.Future[Tree]] = {}

    def get_tree(self, object_id: str) -> asyncio.Future[Tree]:
        tree = self._trees.get(object_id)
        if tree is None:
            tree = asyncio.ensure_future(self.store.get_tree(object_id))
            self._trees[object_id] = tree
        return tree

    def __len__(self) -> int:
        return len(self._trees)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


async def flatten_tree(
    store: ObjectStore | TreeCache, tree_id: str, prefix: str = ""
) -> dict[str, TreeEntry]:
    """Every non-tree entry below ``tree_id``, keyed by full path."""
    tree = await store.get_tree(tree_id)
    result: dict[str, TreeEntry] = {}
    subtrees = []
    for entry in tree.entries:
        path = _join(prefix, entry.name)
        if entry.is_tree:
            subtrees.append(flatten_tree(store, entry.object_id, path))
        else:
            result[path] = entry
    for nested in await asyncio.gather(*subtrees):
        result.update(nested)
    return result


async def changed_paths(
    store: ObjectStore | TreeCache, old_tree_id: str, new_tree_id: str, prefix: str = ""
) -> list[str]:
    """Paths of regular files added, removed or modified between two trees.

    Subtrees with equal ids are never read. Submodules, symlinks and
    entries that switch between file and directory are skipped with
    a warning.
    """
    if old_tree_id == new_tree_id:
        return []
    old_tree, new_tree = await asyncio.gather(
        store.get_tree(old_tree_id), store.get_tree(new_tree_id)
    )

    paths: list[str] = []
    nested = []
    names = sorted({e.name for e in old_tree.entries} | {e.name for e in new_tree.entries})
    for name in names:
        old, new = old_tree.get(name), new_tree.get(name)
        path = _join(prefix, name)
        if old is not None and new is not None and old.object_id == new.object_id:
            continue

        present = [entry for entry in (old, new) if entry is not None]
        if all(entry.is_tree for entry in present):
            if old is None:
                nested.append(_tree_paths(store, new.object_id, path))
            elif new is None:
                nested.append(_tree_paths(store, old.object_id, path))
            else:
                nested.append(changed_paths(store, old.object_id, new.object_id, path))
        elif all(entry.mode in BLOB_MODES for entry in present):
            paths.append(path)
        else:
            logger.warn(
                f"Skipping {path}: not a regular file on both sides",
                path=path,
                modes=[entry.mode for entry in present],
            )

    for group in await asyncio.gather(*nested):
        paths.extend(group)
    return sorted(paths)


async def _tree_paths(store: ObjectStore | TreeCache, tree_id: str, prefix: str) -> list[str]:
    entries = await flatten_tree(store, tree_id, prefix)
    return [path for path, entry in entries.items() if entry.mode in BLOB_MODES]


async def lookup_path(
    store: ObjectStore | TreeCache, tree_id: str, path: str
) -> TreeEntry | None:
    """Entry at ``path`` under ``tree_id``, or None if any component is missing."""
    *dirs, leaf = path.split("/")
    for name in dirs:
        entry = (await store.get_tree(tree_id)).get(name)
        if entry is None or not entry.is_tree:
            return None
        tree_id = entry.object_id
    return (await store.get_tree(tree_id)).get(leaf)


async def find_merge_base(store: ObjectStore, ours: str, theirs: str) -> str:
    """Nearest common ancestor of two commits.

    Both histories are walked breadth-first in lockstep. Among common
    ancestors the one with the smallest combined distance wins; ties go
    to the one reached first from ``theirs``.

    Raises:
        MergeloomError: If the commits share no history
    """
    dist = {"ours": {ours: 0}, "theirs": {theirs: 0}}
    frontier = {"ours": [ours], "theirs": [theirs]}
    order = {theirs: 0}
    best: tuple[int, int, str] | None = None

    def consider(sha: str):
        nonlocal best
        if sha in dist["ours"] and sha in dist["theirs"]:
            key = (dist["ours"][sha] + dist["theirs"][sha], order[sha], sha)
            if best is None or key < best:
                best = key

    consider(ours)
    depth = 0
    while frontier["ours"] or frontier["theirs"]:
        # Later discoveries have a combined distance above depth
        if best is not None and best[0] <= depth:
            break
        depth += 1
        for side in ("theirs", "ours"):
            commits = await asyncio.gather(
                *(store.get_commit(sha) for sha in frontier[side])
            )
            reached = []
            for commit in commits:
                for parent in commit.parent_ids:
                    if parent in dist[side]:
                        continue
                    dist[side][parent] = depth
                    if side == "theirs":
                        order[parent] = len(order)
                    reached.append(parent)
                    consider(parent)
            frontier[side] = reached

    if best is None:
        raise MergeloomError(f"{ours} and {theirs} share no history")
    logger.debug(
        f"Merge base {best[2]}",
        ours=ours,
        theirs=theirs,
        distance=best[0],
    )
    return best[2]


async def open_session(
    store: ObjectStore,
    base_branch: str,
    head_branch: str,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> MergeSession:
    """Capture both branch tips and merge every path the base branch changed.

    ``ours`` is the base branch and ``theirs`` the pull request head.
    Paths the head already matches need no merge and are left out.
    Files that cannot be diffed are recorded in ``session.failures``.
    At most ``concurrency`` files are loaded at once, and every tree is
    read once per session.
    """
    with logger.span(
        f"Opening merge of {base_branch} into {head_branch}",
        base_branch=base_branch,
        head_branch=head_branch,
    ):
        ours_sha, theirs_sha = await asyncio.gather(
            store.get_ref(base_branch), store.get_ref(head_branch)
        )
        base_sha = await find_merge_base(store, ours_sha, theirs_sha)
        base_commit, ours_commit, theirs_commit = await asyncio.gather(
            store.get_commit(base_sha),
            store.get_commit(ours_sha),
            store.get_commit(theirs_sha),
        )
        trees = (base_commit.tree_id, ours_commit.tree_id, theirs_commit.tree_id)

        session = MergeSession(
            base_branch=base_branch,
            head_branch=head_branch,
            ours_sha=ours_sha,
            theirs_sha=theirs_sha,
            merge_base_sha=base_sha,
        )

        tree_cache = TreeCache(store)
        limit = asyncio.Semaphore(max(1, concurrency))

        async def load(path: str):
            async with limit:
                return await _load(path)

        async def _load(path: str):
            entries = await asyncio.gather(
                *(lookup_path(tree_cache, tree_id, path) for tree_id in trees)
            )
            _, ours_entry, theirs_entry = entries
            if ours_entry is None and theirs_entry is None:
                return None
            if (
                ours_entry is not None
                and theirs_entry is not None
                and ours_entry.object_id == theirs_entry.object_id
            ):
                return None
            if any(e is not None and e.mode not in BLOB_MODES for e in entries):
                logger.warn(f"Skipping {path}: not a regular file on every side", path=path)
                return None

            contents = await asyncio.gather(*(
                store.get_blob(e.object_id) if e is not None else _absent()
                for e in entries
            ))
            try:
                return merge_file(path, *contents, merge_base_sha=base_sha)
            except DiffFailure as e:
                return e

        paths = await changed_paths(tree_cache, base_commit.tree_id, ours_commit.tree_id)
        results = await asyncio.gather(*(load(path) for path in paths))
        for path, result in zip(paths, results):
            if isinstance(result, DiffFailure):
                session.record_failure(path, result.reason)
            elif result is not None:
                session.add_file(result)

        logger.info(
            f"Opened merge of {base_branch} into {head_branch}",
            files=len(session.files),
            conflicts=len(session.conflict_files),
            failures=len(session.failures),
            merge_base=base_sha,
            trees_read=len(tree_cache),
        )
        return session


async def _absent() -> None:
    return None
