"""Express a layer registration between two global trajectory poses.

The layer solver estimates ``dest_T_src`` between node positions. The pose
graph back end needs the relative transform between the query keyframe and
the matched keyframe instead:

    to_T_from = world_T_to^-1 @ dest_T_src @ world_T_from
"""

from __future__ import annotations

import logging

from ..pose import SE3
from ..scene_graph import AgentNodeAttributes, DynamicSceneGraph, NodeId, SceneGraphNode
from .types import AgentNodePose, DsgRegistrationSolution, LayerRegistrationSolution

logger = logging.getLogger(__name__)


def _pose_from_node(node: SceneGraphNode) -> AgentNodePose:
    attrs = node.attributes
    if not isinstance(attrs, AgentNodeAttributes):
        return AgentNodePose()

    world_T_body = SE3.from_quaternion(attrs.world_R_body, attrs.position)
    return AgentNodePose(valid=True, world_T_body=world_T_body, id=node.id)


def get_agent_pose(graph: DynamicSceneGraph, root_id: NodeId) -> AgentNodePose:
    """Read the pose of the first dynamic child of a node.

    Args:
        graph: Scene graph
        root_id: Static node anchoring a trajectory segment

    Returns:
        AgentNodePose, invalid if the node is missing or has no dynamic child
    """
    root_node = graph.get_node(root_id)
    if root_node is None:
        return AgentNodePose()

    for child_id in sorted(root_node.children):
        if graph.is_dynamic(child_id):
            return _pose_from_node(graph.get_node(child_id))

    return AgentNodePose()


def get_query_pose(graph: DynamicSceneGraph, query_id: NodeId) -> AgentNodePose:
    """Read the pose of a query node.

    The query id may be the agent node itself or a static node with an agent
    child.
    """
    node = graph.get_dynamic_node(query_id)
    if node is not None:
        return _pose_from_node(node)
    return get_agent_pose(graph, query_id)


def get_full_solution_from_layer(
    graph: DynamicSceneGraph,
    solution: LayerRegistrationSolution,
    query_agent_id: NodeId,
    match_root: NodeId,
) -> DsgRegistrationSolution:
    """Convert a layer registration into a transform between trajectory poses.

    Args:
        graph: Scene graph
        solution: Local registration result
        query_agent_id: Query keyframe (or node with a keyframe child)
        match_root: Node whose dynamic child anchors the matched segment

    Returns:
        DsgRegistrationSolution between the two dynamic node ids, invalid if
        the layer solution is invalid or either pose can't be resolved
    """
    if not solution.valid or not solution.inliers:
        return DsgRegistrationSolution()

    from_pose_info = get_query_pose(graph, query_agent_id)
    to_pose_info = get_agent_pose(graph, match_root)

    if not from_pose_info.valid or not to_pose_info.valid:
        logger.debug(
            f"Unresolved pose: query {query_agent_id} valid={from_pose_info.valid}, "
            f"match root {match_root} valid={to_pose_info.valid}"
        )
        return DsgRegistrationSolution()

    logger.debug(f"world_T_from: {from_pose_info.world_T_body}")
    logger.debug(f"world_T_to: {to_pose_info.world_T_body}")
    logger.debug(f"dest_T_src: {solution.dest_T_src}")

    to_T_from = (
        to_pose_info.world_T_body.inverse()
        @ solution.dest_T_src
        @ from_pose_info.world_T_body
    )
    logger.debug(f"to_T_from: {to_T_from}")

    return DsgRegistrationSolution(
        valid=True,
        from_node=from_pose_info.id,
        to_node=to_pose_info.id,
        to_T_from=to_T_from,
        level=-1,
    )
