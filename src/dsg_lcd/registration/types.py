"""Value types passed through loop-closure registration.

All of these are transient: a registration input exists for one solve call
and the solutions are returned to the caller by value.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..pose import SE3
from ..scene_graph import NodeId


@dataclass
class DsgRegistrationInput:
    """One loop-closure candidate.

    Attributes:
        query_nodes: Node ids of the recent (query) segment
        match_nodes: Node ids of the historically matched segment
        match_root: Node whose dynamic child anchors the matched segment
    """

    query_nodes: set[NodeId] = field(default_factory=set)
    match_nodes: set[NodeId] = field(default_factory=set)
    match_root: NodeId = 0


@dataclass
class LayerRegistrationProblem:
    """Frame-local registration between two node sets of one layer."""

    src_nodes: set[NodeId] = field(default_factory=set)
    dest_nodes: set[NodeId] = field(default_factory=set)


@dataclass
class LayerRegistrationSolution:
    """Result of registering two node sets in a local frame.

    Attributes:
        valid: Whether the estimator produced a transform
        dest_T_src: Estimated transform (local working frame)
        inliers: Node correspondences (src_id, dest_id) judged consistent
    """

    valid: bool = False
    dest_T_src: SE3 = field(default_factory=SE3.identity)
    inliers: list[tuple[NodeId, NodeId]] = field(default_factory=list)


@dataclass
class AgentNodePose:
    """Global pose of a trajectory node.

    Attributes:
        valid: False if the node has no associated dynamic node
        world_T_body: Pose of the agent body in the world frame
        id: Id of the dynamic node the pose was read from
    """

    valid: bool = False
    world_T_body: SE3 = field(default_factory=SE3.identity)
    id: NodeId = 0


@dataclass
class DsgRegistrationSolution:
    """Registration result handed to the pose-graph back end.

    Attributes:
        valid: Whether the registration succeeded
        from_node: Dynamic node id of the query pose
        to_node: Dynamic node id of the matched pose
        to_T_from: Relative transform between the two pose frames
        level: Quality indicator, -1 if unscored
    """

    valid: bool = False
    from_node: NodeId = 0
    to_node: NodeId = 0
    to_T_from: SE3 = field(default_factory=SE3.identity)
    level: int = -1
