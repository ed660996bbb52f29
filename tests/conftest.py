"""Shared scene graph fixtures for registration tests."""

import numpy as np
import pytest

from dsg_lcd.pose import SE3
from dsg_lcd.registration import DsgRegistrationInput
from dsg_lcd.scene_graph import (
    AgentNodeAttributes,
    DsgLayers,
    DynamicSceneGraph,
    NodeSymbol,
    PlaceNodeAttributes,
)

# Non-degenerate tetrahedron with well separated pairwise distances
PLACE_POSITIONS = np.array(
    [
        [0.0, 0.0, 0.0],
        [2.0, 0.0, 0.0],
        [0.0, 3.0, 0.0],
        [0.0, 0.0, 5.0],
    ]
)
QUERY_PLACES = [101, 102, 103, 104]
MATCH_PLACES = [201, 202, 203, 204]
QUERY_AGENT = int(NodeSymbol("a", 10))
MATCH_AGENT = int(NodeSymbol("a", 2))
QUERY_TIMESTAMP = 1000


def agent_attributes(world_T_body: SE3, external_key: int = 0) -> AgentNodeAttributes:
    """Build agent attributes holding a world pose."""
    return AgentNodeAttributes(
        position=world_T_body.translation,
        world_R_body=world_T_body.to_quaternion(),
        external_key=external_key,
    )


def build_loop_graph(
    query_positions: np.ndarray,
    match_positions: np.ndarray,
    world_T_query: SE3 | None = None,
    world_T_match: SE3 | None = None,
    with_match_agent: bool = True,
    query_labels: list[int] | None = None,
    match_labels: list[int] | None = None,
) -> DynamicSceneGraph:
    """Build a graph with query/match places and their keyframes.

    The query keyframe hangs off the first query place and the match
    keyframe off the first match place (the match root).
    """
    graph = DynamicSceneGraph()
    query_labels = query_labels or [0] * len(query_positions)
    match_labels = match_labels or [0] * len(match_positions)

    for node_id, position, label in zip(QUERY_PLACES, query_positions, query_labels):
        graph.emplace_node(
            DsgLayers.PLACES,
            node_id,
            PlaceNodeAttributes(position=position, semantic_label=label),
        )
    for node_id, position, label in zip(MATCH_PLACES, match_positions, match_labels):
        graph.emplace_node(
            DsgLayers.PLACES,
            node_id,
            PlaceNodeAttributes(position=position, semantic_label=label),
        )

    graph.emplace_dynamic_node(
        DsgLayers.AGENTS,
        QUERY_AGENT,
        QUERY_TIMESTAMP,
        agent_attributes(world_T_query or SE3.identity()),
    )
    graph.insert_edge(QUERY_PLACES[0], QUERY_AGENT)

    if with_match_agent:
        graph.emplace_dynamic_node(
            DsgLayers.AGENTS,
            MATCH_AGENT,
            10,
            agent_attributes(world_T_match or SE3.identity()),
        )
        graph.insert_edge(MATCH_PLACES[0], MATCH_AGENT)

    return graph


@pytest.fixture
def loop_graph() -> DynamicSceneGraph:
    """Match places are the query places shifted by (1, 0, 0)."""
    return build_loop_graph(PLACE_POSITIONS, PLACE_POSITIONS + np.array([1.0, 0.0, 0.0]))


@pytest.fixture
def loop_input() -> DsgRegistrationInput:
    return DsgRegistrationInput(
        query_nodes=set(QUERY_PLACES),
        match_nodes=set(MATCH_PLACES),
        match_root=MATCH_PLACES[0],
    )
