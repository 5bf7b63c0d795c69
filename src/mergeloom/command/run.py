"""Shared driver for command workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mergeloom.core.errors import MergeloomError
from mergeloom.core.log import logger

if TYPE_CHECKING:
    from mergeloom.core.config import State


async def run_graph(state: State, start) -> int:
    """Run the workflow from ``start`` and return its exit code.

    Errors mergeloom raises on purpose are logged and exit 1; the
    store opened by the workflow is closed either way.
    """
    from mergeloom.workflow.graph import create_workflow

    workflow = create_workflow()
    try:
        async with workflow.iter(start, state=state) as run:
            async for _node in run:
                pass
        return run.result.output
    except MergeloomError as e:
        state.runtime.merge.status = "failed"
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        store = state.runtime.merge.store
        if store is not None:
            await store.aclose()
