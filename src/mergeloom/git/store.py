"""Object and ref store interface plus an in-memory implementation."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mergeloom.core.errors import ObjectStoreError, RefConflict
from mergeloom.core.log import logger
from mergeloom.git.objects import (
    SUBMODULE_MODE,
    Blob,
    Commit,
    ObjectKind,
    Tree,
    TreeEntry,
)


@runtime_checkable
class ObjectStore(Protocol):
    """Content-addressed object store with compare-and-swap branch refs.

    Every method may raise ObjectStoreError. ``update_ref`` raises
    RefConflict, without changing anything, when the branch is not at
    ``expected_old``.
    """

    async def get_blob(self, object_id: str) -> bytes: ...

    async def get_tree(self, object_id: str) -> Tree: ...

    async def get_commit(self, object_id: str) -> Commit: ...

    async def create_blob(self, content: bytes) -> str: ...

    async def create_tree(self, entries: list[TreeEntry]) -> str: ...

    async def create_commit(self, commit: Commit) -> str: ...

    async def get_ref(self, branch: str) -> str: ...

    async def update_ref(self, branch: str, expected_old: str, new: str) -> None: ...

    async def aclose(self) -> None: ...


class MemoryObjectStore:
    """In-process store computing real git object ids.

    Used for tests and dry runs. Writing an object that already exists
    is a no-op returning the same id.
    """

    def __init__(self):
        self._objects: dict[str, Blob | Tree | Commit] = {}
        self._refs: dict[str, str] = {}

    @property
    def object_count(self) -> int:
        return len(self._objects)

    def set_ref(self, branch: str, commit_id: str) -> None:
        """Point a branch anywhere, without CAS (seeding only)."""
        self._refs[branch] = commit_id

    def refs(self) -> dict[str, str]:
        return dict(self._refs)

    def _get(self, object_id: str, kind: ObjectKind):
        obj = self._objects.get(object_id)
        if obj is None:
            raise ObjectStoreError(f"{kind.value} {object_id} not found", 404)
        expected = {ObjectKind.BLOB: Blob, ObjectKind.TREE: Tree, ObjectKind.COMMIT: Commit}[kind]
        if not isinstance(obj, expected):
            raise ObjectStoreError(f"{object_id} is not a {kind.value}", 422)
        return obj

    def _put(self, obj: Blob | Tree | Commit, kind: ObjectKind) -> str:
        object_id = obj.id
        self._objects.setdefault(object_id, obj)
        logger.spew(f"Stored {kind.value} {object_id}", object_id=object_id)
        return object_id

    async def get_blob(self, object_id: str) -> bytes:
        return self._get(object_id, ObjectKind.BLOB).content

    async def get_tree(self, object_id: str) -> Tree:
        return self._get(object_id, ObjectKind.TREE)

    async def get_commit(self, object_id: str) -> Commit:
        return self._get(object_id, ObjectKind.COMMIT)

    async def create_blob(self, content: bytes) -> str:
        return self._put(Blob(content=content), ObjectKind.BLOB)

    async def create_tree(self, entries: list[TreeEntry]) -> str:
        for entry in entries:
            if entry.mode == SUBMODULE_MODE:
                continue
            self._get(entry.object_id, entry.kind)
        try:
            tree = Tree(entries=tuple(entries))
        except ValueError as e:
            raise ObjectStoreError(f"invalid tree: {e}", 422) from e
        return self._put(tree, ObjectKind.TREE)

    async def create_commit(self, commit: Commit) -> str:
        self._get(commit.tree_id, ObjectKind.TREE)
        for parent in commit.parent_ids:
            self._get(parent, ObjectKind.COMMIT)
        return self._put(commit, ObjectKind.COMMIT)

    async def get_ref(self, branch: str) -> str:
        try:
            return self._refs[branch]
        except KeyError:
            raise ObjectStoreError(f"branch '{branch}' not found", 404) from None

    async def update_ref(self, branch: str, expected_old: str, new: str) -> None:
        current = await self.get_ref(branch)
        if current != expected_old:
            raise RefConflict(branch, expected_old, current)
        self._get(new, ObjectKind.COMMIT)
        self._refs[branch] = new
        logger.debug(f"Moved {branch} to {new}", branch=branch, old=expected_old)

    async def aclose(self) -> None:
        pass
