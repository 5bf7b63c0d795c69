"""Object store backed by a local repository through git plumbing."""

from __future__ import annotations

import asyncio
import re
import shlex
import tempfile
import threading
from pathlib import Path

from mergeloom.core.errors import ObjectStoreError, RefConflict
from mergeloom.core.log import logger
from mergeloom.core.runner import Runner
from mergeloom.git.objects import Commit, ObjectKind, Signature, Tree, TreeEntry

# Used when config.commands["git"] lacks an entry
DEFAULT_COMMANDS = {
    "hash_object": "git hash-object -w --no-filters -- {file}",
    "cat_blob": "git cat-file blob {object} > {file}",
    "cat_commit": "git cat-file commit {object}",
    "ls_tree": "git ls-tree -z --full-tree {object}",
    "mktree": "git mktree -z",
    "commit_tree": "git commit-tree {tree} {parents} -F {file}",
    "rev_parse": "git rev-parse --verify --quiet {ref}",
    "update_ref": "git update-ref {ref} {new} {old}",
}

_LOCK_FAILURE = re.compile(r"cannot lock ref|but expected", re.I)
_ACTUAL_SHA = re.compile(r"is at ([0-9a-f]{40})")


class LocalGitStore:
    """ObjectStore over a repository on disk.

    Commands run one at a time through Runner in a worker thread; they
    share the invoke context and its working directory.
    """

    def __init__(
        self,
        workdir: Path,
        runner: Runner | None = None,
        commands: dict[str, str] | None = None,
        timeout: int | None = None,
    ):
        self.workdir = Path(workdir)
        self.runner = runner or Runner()
        self.commands = {**DEFAULT_COMMANDS, **(commands or {})}
        self.timeout = timeout
        self._lock = threading.Lock()

    def _execute(self, command: str, stdin: str | None, env: dict[str, str] | None):
        with self._lock:
            return self.runner.execute(
                command,
                cwd=self.workdir,
                timeout=self.timeout,
                stdin=stdin,
                check=False,
                env=env,
            )

    async def _git(
        self,
        name: str,
        stdin: str | None = None,
        env: dict[str, str] | None = None,
        **fields: str,
    ):
        command = self.commands[name].format(**fields)
        result = await asyncio.to_thread(self._execute, command, stdin, env)
        logger.spew(f"git {name} exited {result.exited}", command=command)
        return result

    def _fail(self, name: str, result, status_code: int | None = None):
        raise ObjectStoreError(
            f"git {name} failed ({result.exited}): {result.stderr.strip()}",
            status_code,
        )

    async def get_blob(self, object_id: str) -> bytes:
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "blob"
            result = await self._git(
                "cat_blob",
                object=shlex.quote(object_id),
                file=shlex.quote(str(out)),
            )
            if result.exited != 0:
                self._fail("cat_blob", result, 404)
            return out.read_bytes()

    async def get_tree(self, object_id: str) -> Tree:
        result = await self._git("ls_tree", object=shlex.quote(object_id))
        if result.exited != 0:
            self._fail("ls_tree", result, 404)

        entries = []
        for record in result.stdout.split("\0"):
            if not record:
                continue
            meta, _, name = record.partition("\t")
            mode, kind, entry_id = meta.split()
            entries.append(
                TreeEntry(name=name, mode=mode, kind=ObjectKind(kind), object_id=entry_id)
            )
        return Tree(entries=tuple(entries))

    async def get_commit(self, object_id: str) -> Commit:
        result = await self._git("cat_commit", object=shlex.quote(object_id))
        if result.exited != 0:
            self._fail("cat_commit", result, 404)

        header, _, message = result.stdout.partition("\n\n")
        fields: dict[str, list[str]] = {}
        for line in header.splitlines():
            key, _, value = line.partition(" ")
            fields.setdefault(key, []).append(value)
        return Commit(
            tree_id=fields["tree"][0],
            parent_ids=tuple(fields.get("parent", [])),
            author=Signature.parse(fields["author"][0]),
            committer=Signature.parse(fields["committer"][0]),
            message=message,
        )

    async def create_blob(self, content: bytes) -> str:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "blob"
            path.write_bytes(content)
            result = await self._git("hash_object", file=shlex.quote(str(path)))
        if result.exited != 0:
            self._fail("hash_object", result)
        object_id = result.stdout.strip()
        logger.spew(f"Wrote blob {object_id}", size=len(content))
        return object_id

    async def create_tree(self, entries: list[TreeEntry]) -> str:
        listing = "".join(
            f"{entry.mode} {entry.kind.value} {entry.object_id}\t{entry.name}\0"
            for entry in entries
        )
        result = await self._git("mktree", stdin=listing)
        if result.exited != 0:
            self._fail("mktree", result, 422)
        return result.stdout.strip()

    async def create_commit(self, commit: Commit) -> str:
        env = {
            "GIT_AUTHOR_NAME": commit.author.name,
            "GIT_AUTHOR_EMAIL": commit.author.email,
            "GIT_AUTHOR_DATE": f"@{commit.author.git_date}",
            "GIT_COMMITTER_NAME": commit.committer.name,
            "GIT_COMMITTER_EMAIL": commit.committer.email,
            "GIT_COMMITTER_DATE": f"@{commit.committer.git_date}",
        }
        parents = " ".join(f"-p {shlex.quote(p)}" for p in commit.parent_ids)
        with tempfile.TemporaryDirectory() as tmp:
            msgfile = Path(tmp) / "message"
            msgfile.write_text(commit.message, encoding="utf-8")
            result = await self._git(
                "commit_tree",
                env=env,
                tree=shlex.quote(commit.tree_id),
                parents=parents,
                file=shlex.quote(str(msgfile)),
            )
        if result.exited != 0:
            self._fail("commit_tree", result, 422)
        return result.stdout.strip()

    async def get_ref(self, branch: str) -> str:
        ref = shlex.quote(f"refs/heads/{branch}^{{commit}}")
        result = await self._git("rev_parse", ref=ref)
        if result.exited != 0:
            raise ObjectStoreError(f"branch '{branch}' not found", 404)
        return result.stdout.strip()

    async def update_ref(self, branch: str, expected_old: str, new: str) -> None:
        result = await self._git(
            "update_ref",
            ref=shlex.quote(f"refs/heads/{branch}"),
            new=shlex.quote(new),
            old=shlex.quote(expected_old),
        )
        if result.exited == 0:
            logger.debug(f"Moved {branch} to {new}", branch=branch, old=expected_old)
            return
        if _LOCK_FAILURE.search(result.stderr):
            match = _ACTUAL_SHA.search(result.stderr)
            raise RefConflict(branch, expected_old, match.group(1) if match else None)
        self._fail("update_ref", result)

    async def aclose(self) -> None:
        pass
