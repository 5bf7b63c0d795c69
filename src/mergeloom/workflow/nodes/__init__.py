"""Workflow nodes for graph state machine."""

from mergeloom.workflow.nodes.apply_resolutions import ApplyResolutions
from mergeloom.workflow.nodes.commit_resolution import CommitResolution
from mergeloom.workflow.nodes.open_session import OpenSession
from mergeloom.workflow.nodes.summarize import Summarize

__all__ = [
    "OpenSession",
    "ApplyResolutions",
    "CommitResolution",
    "Summarize",
]
