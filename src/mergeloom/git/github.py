"""Object store backed by the GitHub git data REST API.

Requests pass through a concurrency limiter. Reads and object creation
are retried with exponential backoff on timeouts, connection errors,
5xx responses and rate limits; a rate limited response is retried
after the wait GitHub asks for. Authentication failures and ref
updates are never retried.
"""

from __future__ import annotations

import asyncio
import base64
import time
from datetime import datetime
from typing import Any
from urllib.parse import quote

import aiohttp

from mergeloom.core.errors import ObjectStoreError, RefConflict
from mergeloom.core.log import logger
from mergeloom.git.objects import Commit, ObjectKind, Signature, Tree, TreeEntry

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class GitHubStore:
    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        max_concurrency: int = 8,
        max_rate_limit_wait: float = 60.0,
        session: aiohttp.ClientSession | None = None,
    ):
        if not owner or not repo:
            raise ValueError("owner and repo are required")
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.max_rate_limit_wait = max_rate_limit_wait
        self._limiter = asyncio.Semaphore(max(1, max_concurrency))
        self._session = session
        self._owns_session = session is None

    def _url(self, endpoint: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/{endpoint.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    @staticmethod
    def _rate_limit_wait(response: aiohttp.ClientResponse) -> float | None:
        """Seconds GitHub asks us to wait, or None if not rate limited.

        Secondary limits send ``Retry-After``; an exhausted primary
        limit sends ``X-RateLimit-Remaining: 0`` and the reset time.
        """
        if response.status not in (403, 429):
            return None
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                return None
        if response.headers.get("X-RateLimit-Remaining") == "0":
            try:
                reset = float(response.headers.get("X-RateLimit-Reset", ""))
            except ValueError:
                return 0.0
            return max(0.0, reset - time.time())
        return None

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> Any:
        """Send one API request and return the decoded JSON body.

        Raises:
            ObjectStoreError: On any error response or after the last
                retry; ``status_code`` carries the HTTP status
        """
        attempts = self.max_retries if retry else 1
        for attempt in range(1, attempts + 1):
            logger.spew(
                f"GitHub {method} {endpoint} (attempt {attempt}/{attempts})",
                method=method,
                endpoint=endpoint,
            )
            delay = self.backoff * 2 ** (attempt - 1)
            try:
                async with self._limiter, self._client().request(
                    method, self._url(endpoint), json=data, headers=self._headers()
                ) as response:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError:
                        body = await response.text()

                    if response.status < 400:
                        return body

                    message = (
                        body.get("message", str(body))
                        if isinstance(body, dict) else str(body)
                    )
                    wait = self._rate_limit_wait(response)
                    if wait is not None:
                        if attempt == attempts or wait > self.max_rate_limit_wait:
                            raise ObjectStoreError(
                                f"GitHub rate limit exceeded on {method} "
                                f"{endpoint} (reset in {wait:.0f}s): {message}",
                                response.status,
                            )
                        delay = max(delay, wait)
                    elif response.status in (401, 403):
                        raise ObjectStoreError(
                            f"GitHub authentication failed: {message}",
                            response.status,
                        )
                    elif response.status not in _RETRYABLE_STATUS or attempt == attempts:
                        raise ObjectStoreError(
                            f"GitHub {method} {endpoint} failed "
                            f"({response.status}): {message}",
                            response.status,
                        )
                    failure = f"status {response.status}: {message}"
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                if attempt == attempts:
                    raise ObjectStoreError(
                        f"GitHub {method} {endpoint} failed after "
                        f"{attempts} attempts: {e!r}"
                    ) from e
                failure = repr(e)

            logger.warn(
                f"GitHub {method} {endpoint} failed, retrying in {delay}s",
                failure=failure,
                attempt=attempt,
            )
            await asyncio.sleep(delay)

        # Unreachable: the last attempt either returns or raises
        raise ObjectStoreError(f"GitHub {method} {endpoint} failed")

    @staticmethod
    def _signature(data: dict[str, str]) -> Signature:
        return Signature(
            name=data["name"],
            email=data["email"],
            timestamp=datetime.fromisoformat(data["date"].replace("Z", "+00:00")),
        )

    @staticmethod
    def _identity(signature: Signature) -> dict[str, str]:
        return {
            "name": signature.name,
            "email": signature.email,
            "date": signature.timestamp.isoformat(),
        }

    async def get_blob(self, object_id: str) -> bytes:
        body = await self._request("GET", f"git/blobs/{object_id}")
        if body.get("encoding") == "base64":
            return base64.b64decode(body["content"])
        return body["content"].encode("utf-8")

    async def get_tree(self, object_id: str) -> Tree:
        body = await self._request("GET", f"git/trees/{object_id}")
        return Tree(entries=tuple(
            TreeEntry(
                name=item["path"],
                mode=item["mode"],
                kind=ObjectKind(item["type"]),
                object_id=item["sha"],
            )
            for item in body["tree"]
        ))

    async def get_commit(self, object_id: str) -> Commit:
        body = await self._request("GET", f"git/commits/{object_id}")
        return Commit(
            tree_id=body["tree"]["sha"],
            parent_ids=tuple(parent["sha"] for parent in body.get("parents", [])),
            author=self._signature(body["author"]),
            committer=self._signature(body["committer"]),
            message=body["message"],
        )

    async def create_blob(self, content: bytes) -> str:
        body = await self._request("POST", "git/blobs", {
            "content": base64.b64encode(content).decode("ascii"),
            "encoding": "base64",
        })
        return body["sha"]

    async def create_tree(self, entries: list[TreeEntry]) -> str:
        body = await self._request("POST", "git/trees", {
            "tree": [
                {
                    "path": entry.name,
                    "mode": entry.mode,
                    "type": entry.kind.value,
                    "sha": entry.object_id,
                }
                for entry in entries
            ],
        })
        return body["sha"]

    async def create_commit(self, commit: Commit) -> str:
        body = await self._request("POST", "git/commits", {
            "message": commit.message,
            "tree": commit.tree_id,
            "parents": list(commit.parent_ids),
            "author": self._identity(commit.author),
            "committer": self._identity(commit.committer),
        })
        return body["sha"]

    async def get_ref(self, branch: str) -> str:
        body = await self._request("GET", f"git/ref/heads/{quote(branch)}")
        return body["object"]["sha"]

    async def update_ref(self, branch: str, expected_old: str, new: str) -> None:
        """Move a branch from ``expected_old`` to ``new``.

        The REST API has no compare-and-swap, so the tip is checked
        first and the update itself is non-forced: a branch that moved
        in between makes the update a non-fast-forward, which GitHub
        rejects with 422.
        """
        current = await self.get_ref(branch)
        if current != expected_old:
            raise RefConflict(branch, expected_old, current)
        try:
            await self._request(
                "PATCH",
                f"git/refs/heads/{quote(branch)}",
                {"sha": new, "force": False},
                retry=False,
            )
        except ObjectStoreError as e:
            if e.status_code in (409, 422):
                raise RefConflict(branch, expected_old) from e
            raise
        logger.debug(f"Moved {branch} to {new}", branch=branch, old=expected_old)

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
