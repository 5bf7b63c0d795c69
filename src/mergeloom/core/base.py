"""Base classes for configuration and runtime models.

Everything mergeloom loads from YAML/env/CLI derives from BaseConfig,
and everything that mutates while a merge session runs derives from
BaseState. Both share BaseCloseable, so closing the top-level State
closes the logger sinks underneath it. Object stores are async and
are closed with aclose() by the command that opened them.

Kept apart from config.py so that log.py can import it without a
cycle.
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

# ============================================================
# CLOSEABLE PROTOCOL AND BASE CLASS
# ============================================================

@runtime_checkable
class Closeable(Protocol):
    """Anything holding a resource released by close()."""

    def close(self) -> None:
        """Release resources."""
        ...


class BaseCloseable(BaseModel):
    """Pydantic model that closes its Closeable fields on close().

    The cascade runs Config → Logger → Sink. A failing child does not
    stop the remaining children from being closed.
    """

    def close(self):
        """Close every field that implements Closeable."""
        for field_name in self.__class__.model_fields:
            child = getattr(self, field_name, None)
            if child is None:
                continue

            if isinstance(child, Closeable):
                try:
                    child.close()
                except Exception as e:
                    # Logger may already be gone at this point
                    msg = f"Warning: Error closing {field_name}: {e}"
                    print(msg, file=sys.stderr)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


# ============================================================
# SEMANTIC MARKERS
# ============================================================

class BaseConfig(BaseCloseable):
    """Configuration section (loaded from YAML/env/CLI)."""
    pass


class BaseState(BaseCloseable):
    """Runtime section (mutated while a workflow runs)."""
    pass


__all__ = ["Closeable", "BaseCloseable", "BaseConfig", "BaseState"]
