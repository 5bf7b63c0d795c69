"""Scripted resolutions: a YAML resolutions file and bulk strategies.

A resolutions file maps paths to either one choice for every conflict
of the file, or a mapping from conflict number (1-based, counting
conflict hunks only) to a choice::

    src/app.py: theirs
    README.md:
      1: ours
      2:
        custom: |
          merged line
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Union

import yaml
from pydantic import BaseModel, RootModel, ValidationError

from mergeloom.core.errors import MalformedResolution
from mergeloom.core.log import logger
from mergeloom.merge.models import split_lines
from mergeloom.merge.session import MergeSession

Choice = Literal["ours", "theirs", "both"]


class CustomText(BaseModel):
    custom: str


HunkChoice = Union[Choice, CustomText]
FilePlan = Union[Choice, dict[int, HunkChoice]]


class ResolutionPlan(RootModel[dict[str, FilePlan]]):
    pass


def load_plan(path: Path) -> ResolutionPlan:
    """Read a resolutions file.

    Raises:
        MalformedResolution: If the file does not have the expected shape
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    try:
        return ResolutionPlan.model_validate(data)
    except ValidationError as e:
        raise MalformedResolution(str(path), f"invalid resolutions file ({e.error_count()} errors)") from e


def _apply(session: MergeSession, path: str, index: int, choice: HunkChoice) -> None:
    if isinstance(choice, CustomText):
        session.edit_custom(path, index, split_lines(choice.custom))
    elif choice == "ours":
        session.accept_ours(path, index)
    elif choice == "theirs":
        session.accept_theirs(path, index)
    else:
        session.accept_both(path, index)


def apply_plan(session: MergeSession, plan: ResolutionPlan) -> int:
    """Apply every choice in ``plan``; returns the number of hunks touched.

    Raises:
        MalformedResolution: For a path or conflict number not in the session
    """
    touched = 0
    for path, file_plan in plan.root.items():
        conflicts = session.resolution(path).file.conflict_indices()
        if isinstance(file_plan, str):
            choices = {index: file_plan for index in conflicts}
        else:
            choices = {}
            for number, choice in file_plan.items():
                if not 1 <= number <= len(conflicts):
                    raise MalformedResolution(
                        path, f"conflict {number} out of range 1..{len(conflicts)}"
                    )
                choices[conflicts[number - 1]] = choice
        for index, choice in choices.items():
            _apply(session, path, index, choice)
        touched += len(choices)
    logger.debug("Applied resolutions file", hunks=touched, files=len(plan.root))
    return touched


def apply_strategy(session: MergeSession, strategy: str) -> int:
    """Resolve every still-pending hunk the same way ("none" does nothing)."""
    if strategy == "none":
        return 0
    pending = session.pending_hunks
    for path, index in pending:
        _apply(session, path, index, strategy)
    if pending:
        logger.info(
            f"Resolved {len(pending)} pending hunk(s) with strategy '{strategy}'",
            strategy=strategy,
        )
    return len(pending)
