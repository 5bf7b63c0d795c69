"""Graph workflow definition."""

from pydantic_graph import Graph

from mergeloom.core.config import State
from mergeloom.core.log import logger


def create_workflow():
    """Create the merge workflow graph.

    OpenSession → ApplyResolutions → CommitResolution
    OpenSession → Summarize

    Returns:
        Graph workflow with State as state_type
    """
    logger.debug("Building workflow graph")

    # Nodes reference each other by name; resolve them here
    from mergeloom.workflow.nodes.apply_resolutions import ApplyResolutions
    from mergeloom.workflow.nodes.commit_resolution import CommitResolution
    from mergeloom.workflow.nodes.open_session import OpenSession
    from mergeloom.workflow.nodes.summarize import Summarize

    return Graph(
        nodes=(
            OpenSession,
            ApplyResolutions,
            CommitResolution,
            Summarize,
        ),
        state_type=State,
    )
