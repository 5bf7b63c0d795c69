"""Compare-and-swap branch updates."""

from __future__ import annotations

from mergeloom.core.errors import ObjectStoreError, RefConflict
from mergeloom.core.log import logger
from mergeloom.git.store import ObjectStore


async def advance_ref(
    store: ObjectStore, branch: str, expected_old_sha: str, new_commit_id: str
) -> None:
    """Point ``branch`` at ``new_commit_id`` if it is still at ``expected_old_sha``.

    Exactly one store call; nothing is retried.

    Raises:
        RefConflict: If the branch moved; the branch is unchanged
        ObjectStoreError: If the store fails
    """
    try:
        await store.update_ref(branch, expected_old_sha, new_commit_id)
    except RefConflict as e:
        logger.warn(
            f"Branch {branch} moved, not updated",
            branch=branch,
            expected=expected_old_sha,
            actual=e.actual,
        )
        raise
    except ObjectStoreError as e:
        logger.error(
            f"Updating {branch} failed: {e}",
            branch=branch,
            status_code=e.status_code,
        )
        raise

    logger.info(
        f"Advanced {branch} to {new_commit_id}",
        branch=branch,
        old=expected_old_sha,
        new=new_commit_id,
    )
