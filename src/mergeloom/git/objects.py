"""Git object model and canonical serialization.

Object ids are computed exactly as git does: SHA-1 over
``"<type> <size>\\0"`` followed by the object body, so a store can
compute ids locally and agree with any git implementation.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ObjectKind(str, Enum):
    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"


FILE_MODE = "100644"
EXECUTABLE_MODE = "100755"
SYMLINK_MODE = "120000"
TREE_MODE = "040000"
SUBMODULE_MODE = "160000"

BLOB_MODES = frozenset({FILE_MODE, EXECUTABLE_MODE})


def object_id(kind: ObjectKind, body: bytes) -> str:
    header = f"{kind.value} {len(body)}".encode()
    return hashlib.sha1(header + b"\x00" + body).hexdigest()


def normalize_mode(mode: str) -> str:
    """Six-digit mode; git writes trees as "40000" in tree bodies."""
    return mode.rjust(6, "0")


class Signature(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(microsecond=0)
    )

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def git_date(self) -> str:
        """``"<epoch seconds> +hhmm"``, the raw form git stores."""
        offset = self.timestamp.utcoffset() or timedelta(0)
        minutes = int(offset.total_seconds()) // 60
        sign = "-" if minutes < 0 else "+"
        hours, minutes = divmod(abs(minutes), 60)
        return f"{int(self.timestamp.timestamp())} {sign}{hours:02d}{minutes:02d}"

    def to_git(self) -> str:
        return f"{self.name} <{self.email}> {self.git_date}"

    @classmethod
    def parse(cls, text: str) -> Signature:
        """Parse ``"Name <email> 1700000000 +0100"``."""
        ident, _, date = text.rpartition(">")
        name, _, email = ident.partition("<")
        seconds, zone = date.split()
        sign = -1 if zone.startswith("-") else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[3:5])) * sign
        return cls(
            name=name.strip(),
            email=email.strip(),
            timestamp=datetime.fromtimestamp(int(seconds), timezone(offset)),
        )


class TreeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    mode: str
    kind: ObjectKind
    object_id: str

    @field_validator("mode")
    @classmethod
    def _six_digits(cls, value: str) -> str:
        return normalize_mode(value)

    @field_validator("name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        if not value or "/" in value or value in (".", ".."):
            raise ValueError(f"invalid tree entry name: {value!r}")
        return value

    @property
    def is_tree(self) -> bool:
        return self.kind is ObjectKind.TREE

    @property
    def sort_key(self) -> bytes:
        # Directories compare as if their name ended in "/"
        return (self.name + "/" if self.is_tree else self.name).encode()


class Tree(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: tuple[TreeEntry, ...] = ()

    @field_validator("entries")
    @classmethod
    def _git_order(cls, value: tuple[TreeEntry, ...]) -> tuple[TreeEntry, ...]:
        names = [entry.name for entry in value]
        if len(names) != len(set(names)):
            raise ValueError("duplicate tree entry names")
        return tuple(sorted(value, key=lambda entry: entry.sort_key))

    def get(self, name: str) -> TreeEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def serialize(self) -> bytes:
        return b"".join(
            f"{entry.mode.lstrip('0')} {entry.name}".encode()
            + b"\x00"
            + bytes.fromhex(entry.object_id)
            for entry in self.entries
        )

    @property
    def id(self) -> str:
        return object_id(ObjectKind.TREE, self.serialize())


class Commit(BaseModel):
    model_config = ConfigDict(frozen=True)

    tree_id: str
    parent_ids: tuple[str, ...] = ()
    author: Signature
    committer: Signature
    message: str

    @field_validator("parent_ids")
    @classmethod
    def _at_most_two(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(value) > 2:
            raise ValueError("a merge commit has at most two parents")
        return value

    @field_validator("message")
    @classmethod
    def _terminated(cls, value: str) -> str:
        return value if value.endswith("\n") else value + "\n"

    def serialize(self) -> bytes:
        lines = [f"tree {self.tree_id}"]
        lines += [f"parent {parent}" for parent in self.parent_ids]
        lines.append(f"author {self.author.to_git()}")
        lines.append(f"committer {self.committer.to_git()}")
        return ("\n".join(lines) + "\n\n" + self.message).encode()

    @property
    def id(self) -> str:
        return object_id(ObjectKind.COMMIT, self.serialize())


class Blob(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: bytes

    @property
    def id(self) -> str:
        return object_id(ObjectKind.BLOB, self.content)


class ResolvedFile(BaseModel):
    """Final content for one path of the merge commit."""

    path: str
    content: bytes
    create: bool = Field(
        default=False,
        description="Path may be absent from the base tree and is added",
    )
