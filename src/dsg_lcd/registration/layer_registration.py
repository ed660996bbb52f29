"""Register two node sets of one scene graph layer by node position."""

from __future__ import annotations

import logging

import numpy as np

from ..scene_graph import NodeId, SceneGraphLayer, SemanticNodeAttributes
from .robust_solver import RobustRegistrationSolver
from .types import LayerRegistrationProblem, LayerRegistrationSolution

logger = logging.getLogger(__name__)


def _collect_nodes(
    layer: SceneGraphLayer, node_ids: set[NodeId]
) -> tuple[list[NodeId], np.ndarray]:
    """Return sorted ids present in the layer and their positions."""
    ids = []
    for node_id in sorted(node_ids):
        if layer.has_node(node_id):
            ids.append(node_id)
        else:
            logger.debug(f"Node {node_id} not in layer {layer.id}, skipping")

    positions = np.array(
        [layer.get_node(node_id).attributes.position for node_id in ids],
        dtype=np.float64,
    ).reshape(-1, 3)
    return ids, positions


def _solve(
    solver: RobustRegistrationSolver,
    src_ids: list[NodeId],
    src_points: np.ndarray,
    dest_ids: list[NodeId],
    dest_points: np.ndarray,
    candidates: list[tuple[int, int]] | None,
) -> LayerRegistrationSolution:
    result = solver.solve(src_points, dest_points, candidates)
    if not result.valid or not result.inliers:
        return LayerRegistrationSolution()

    inliers = [(src_ids[i], dest_ids[j]) for i, j in result.inliers]
    return LayerRegistrationSolution(
        valid=True, dest_T_src=result.dest_T_src, inliers=inliers
    )


def register_dsg_layer_pairwise(
    solver: RobustRegistrationSolver,
    problem: LayerRegistrationProblem,
    layer: SceneGraphLayer,
) -> LayerRegistrationSolution:
    """Register using every source/destination pair as a candidate.

    Args:
        solver: Robust estimator
        problem: Source and destination node sets
        layer: Layer holding the nodes

    Returns:
        LayerRegistrationSolution in the layer's (world) coordinates
    """
    src_ids, src_points = _collect_nodes(layer, problem.src_nodes)
    dest_ids, dest_points = _collect_nodes(layer, problem.dest_nodes)
    if not src_ids or not dest_ids:
        return LayerRegistrationSolution()

    return _solve(solver, src_ids, src_points, dest_ids, dest_points, None)


def register_dsg_layer_semantic(
    solver: RobustRegistrationSolver,
    problem: LayerRegistrationProblem,
    layer: SceneGraphLayer,
) -> LayerRegistrationSolution:
    """Register using only pairs with equal semantic labels as candidates.

    Nodes without semantic attributes are never matched.

    Args:
        solver: Robust estimator
        problem: Source and destination node sets
        layer: Layer holding the nodes

    Returns:
        LayerRegistrationSolution in the layer's (world) coordinates
    """
    src_ids, src_points = _collect_nodes(layer, problem.src_nodes)
    dest_ids, dest_points = _collect_nodes(layer, problem.dest_nodes)

    dest_by_label: dict[int, list[int]] = {}
    for j, node_id in enumerate(dest_ids):
        attrs = layer.get_node(node_id).attributes
        if isinstance(attrs, SemanticNodeAttributes):
            dest_by_label.setdefault(attrs.semantic_label, []).append(j)

    candidates = []
    for i, node_id in enumerate(src_ids):
        attrs = layer.get_node(node_id).attributes
        if not isinstance(attrs, SemanticNodeAttributes):
            continue
        for j in dest_by_label.get(attrs.semantic_label, []):
            candidates.append((i, j))

    if not candidates:
        return LayerRegistrationSolution()

    return _solve(solver, src_ids, src_points, dest_ids, dest_points, candidates)
