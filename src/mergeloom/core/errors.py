"""Error taxonomy for merge sessions and object store access."""

from __future__ import annotations


class MergeloomError(Exception):
    """Base class for every error mergeloom raises on purpose."""


class DiffFailure(MergeloomError):
    """A file's revisions cannot be diffed (binary or not UTF-8).

    Aborts the merge of that one file; other files are unaffected.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot diff {path}: {reason}")
        self.path = path
        self.reason = reason


class MalformedResolution(MergeloomError):
    """A touched path does not fit the base tree.

    Raised before any object is written, so the commit attempt
    leaves no trace on the branch.
    """

    def __init__(self, path: str, reason: str = "path not found under base tree"):
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class ObjectStoreError(MergeloomError):
    """The object or ref store failed (network, auth, missing object)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RefConflict(MergeloomError):
    """Compare-and-swap on a branch was rejected.

    The branch moved since the session captured it. The session must
    be discarded and reopened from fresh revisions.
    """

    def __init__(self, branch: str, expected: str, actual: str | None = None):
        detail = f"expected {expected}"
        if actual:
            detail += f", found {actual}"
        super().__init__(f"Branch '{branch}' moved ({detail})")
        self.branch = branch
        self.expected = expected
        self.actual = actual


class ResolutionIncomplete(MergeloomError):
    """Commit requested before every conflict was resolved."""


class SessionInvalidated(MergeloomError):
    """Operation attempted on a session that must be reopened."""


__all__ = [
    "MergeloomError",
    "DiffFailure",
    "MalformedResolution",
    "ObjectStoreError",
    "RefConflict",
    "ResolutionIncomplete",
    "SessionInvalidated",
]
