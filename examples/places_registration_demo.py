#!/usr/bin/env python3
"""Demo script for places-layer loop-closure registration.

Builds a synthetic scene graph where a robot revisits a set of places with
drifted odometry, then registers the query places against the matched
places and prints the loop-closure constraint between the two keyframes.

Usage:
    python examples/places_registration_demo.py
"""

import logging
from pathlib import Path

import numpy as np

from dsg_lcd import (
    SE3,
    AgentNodeAttributes,
    DsgLayers,
    DsgRegistrationInput,
    DynamicSceneGraph,
    ElapsedTimeRecorder,
    NodeSymbol,
    PlaceNodeAttributes,
    load_registration_config,
    make_registration_solvers,
)


def add_keyframe(graph: DynamicSceneGraph, index: int, parent: int, world_T_body: SE3) -> int:
    """Add an agent keyframe below a place and return its id."""
    node_id = int(NodeSymbol("a", index))
    attrs = AgentNodeAttributes(
        position=world_T_body.translation,
        world_R_body=world_T_body.to_quaternion(),
        external_key=int(NodeSymbol("k", index)),
    )
    graph.emplace_dynamic_node(DsgLayers.AGENTS, node_id, index * 100_000_000, attrs)
    graph.insert_edge(parent, node_id)
    return node_id


def main() -> None:
    """Run the places registration demo."""
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    rng = np.random.default_rng(0)

    config_path = Path(__file__).parent.parent / "config" / "lcd_registration.yaml"
    config = load_registration_config(config_path)

    # Places seen the first time around
    match_positions = rng.uniform(-10.0, 10.0, size=(12, 3))
    match_positions[:, 2] = rng.uniform(0.0, 2.0, size=12)

    # Odometry drift between the two visits
    drift = SE3.from_rvec_tvec(np.array([0.0, 0.0, 0.15]), np.array([0.8, -0.4, 0.05]))

    # Revisit sees 9 of the places (with noise) and 3 new ones
    query_positions = drift.transform_points(match_positions[:9])
    query_positions += rng.normal(0.0, 0.02, size=query_positions.shape)
    query_positions = np.vstack([query_positions, rng.uniform(-10.0, 10.0, size=(3, 3))])

    graph = DynamicSceneGraph()
    match_ids = [int(NodeSymbol("p", i)) for i in range(len(match_positions))]
    query_ids = [int(NodeSymbol("p", 100 + i)) for i in range(len(query_positions))]
    for node_id, position in zip(match_ids, match_positions):
        graph.emplace_node(DsgLayers.PLACES, node_id, PlaceNodeAttributes(position=position))
    for node_id, position in zip(query_ids, query_positions):
        graph.emplace_node(DsgLayers.PLACES, node_id, PlaceNodeAttributes(position=position))

    add_keyframe(graph, 1, match_ids[0], SE3.identity())
    query_agent = add_keyframe(graph, 50, query_ids[0], drift)

    print("=" * 60)
    print("PLACES REGISTRATION")
    print("=" * 60)
    print(f"  Query places:  {len(query_ids)}")
    print(f"  Match places:  {len(match_ids)}")
    print(f"  True drift:    {drift}")
    print()

    recorder = ElapsedTimeRecorder()
    solvers = make_registration_solvers(config, timer=recorder)
    match = DsgRegistrationInput(
        query_nodes=set(query_ids), match_nodes=set(match_ids), match_root=match_ids[0]
    )
    solution = solvers[DsgLayers.PLACES].solve(graph, match, query_agent)

    if not solution.valid:
        print("Registration failed")
        return

    print(f"  From keyframe: {NodeSymbol(solution.from_node).label}")
    print(f"  To keyframe:   {NodeSymbol(solution.to_node).label}")
    print(f"  to_T_from:     {solution.to_T_from}")
    print()
    print("Timing:")
    print(recorder.summary())


if __name__ == "__main__":
    main()
