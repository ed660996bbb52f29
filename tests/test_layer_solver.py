"""Tests for places-layer loop-closure registration."""

import numpy as np
import pytest
import yaml

from conftest import (
    MATCH_AGENT,
    MATCH_PLACES,
    PLACE_POSITIONS,
    QUERY_AGENT,
    QUERY_PLACES,
    QUERY_TIMESTAMP,
    build_loop_graph,
)
from dsg_lcd.pose import SE3
from dsg_lcd.registration import (
    DsgLayerSolver,
    DsgRegistrationInput,
    LayerRegistrationConfig,
    LayerRegistrationProblem,
    RobustRegistrationSolver,
    register_dsg_layer_pairwise,
    register_dsg_layer_semantic,
)
from dsg_lcd.scene_graph import DsgLayers, DynamicSceneGraph, PlaceNodeAttributes
from dsg_lcd.timing import ElapsedTimeRecorder

SHIFT = np.array([1.0, 0.0, 0.0])


def make_solver(**kwargs) -> DsgLayerSolver:
    return DsgLayerSolver(DsgLayers.PLACES, LayerRegistrationConfig(**kwargs))


class TestLayerRegistration:
    """Tests for the frame-local layer registration functions."""

    def test_pairwise_translation(self, loop_graph):
        """Test pairwise registration of translated places."""
        problem = LayerRegistrationProblem(
            src_nodes=set(QUERY_PLACES), dest_nodes=set(MATCH_PLACES)
        )
        layer = loop_graph.get_layer(DsgLayers.PLACES)

        solution = register_dsg_layer_pairwise(RobustRegistrationSolver(), problem, layer)

        assert solution.valid
        np.testing.assert_allclose(solution.dest_T_src.translation, SHIFT, atol=1e-6)
        assert sorted(solution.inliers) == list(zip(QUERY_PLACES, MATCH_PLACES))

    def test_missing_nodes_are_skipped(self, loop_graph):
        """Test that ids missing from the layer are ignored."""
        problem = LayerRegistrationProblem(
            src_nodes=set(QUERY_PLACES) | {999}, dest_nodes=set(MATCH_PLACES)
        )
        layer = loop_graph.get_layer(DsgLayers.PLACES)
        solution = register_dsg_layer_pairwise(RobustRegistrationSolver(), problem, layer)
        assert solution.valid
        assert len(solution.inliers) == 4

    def test_pairwise_large_segment(self):
        """Test that 64 places shifted by a translation register pairwise."""
        rng = np.random.default_rng(7)
        positions = rng.uniform(0.0, 50.0, size=(64, 3))
        graph = DynamicSceneGraph()
        for i, position in enumerate(positions):
            graph.emplace_node(DsgLayers.PLACES, 1000 + i, PlaceNodeAttributes(position=position))
            graph.emplace_node(
                DsgLayers.PLACES, 2000 + i, PlaceNodeAttributes(position=position + SHIFT)
            )
        problem = LayerRegistrationProblem(
            src_nodes=set(range(1000, 1064)), dest_nodes=set(range(2000, 2064))
        )
        layer = graph.get_layer(DsgLayers.PLACES)

        solution = register_dsg_layer_pairwise(RobustRegistrationSolver(), problem, layer)

        assert solution.valid
        np.testing.assert_allclose(solution.dest_T_src.translation, SHIFT, atol=1e-6)
        assert len(solution.inliers) == 64

    def test_semantic_labels_prune_candidates(self):
        """Test semantic registration with matching labels."""
        labels = [1, 2, 3, 4]
        graph = build_loop_graph(
            PLACE_POSITIONS, PLACE_POSITIONS + SHIFT, query_labels=labels, match_labels=labels
        )
        problem = LayerRegistrationProblem(
            src_nodes=set(QUERY_PLACES), dest_nodes=set(MATCH_PLACES)
        )
        layer = graph.get_layer(DsgLayers.PLACES)

        solution = register_dsg_layer_semantic(RobustRegistrationSolver(), problem, layer)

        assert solution.valid
        assert sorted(solution.inliers) == list(zip(QUERY_PLACES, MATCH_PLACES))

    def test_semantic_labels_without_overlap(self):
        """Test that disjoint labels leave nothing to register."""
        graph = build_loop_graph(
            PLACE_POSITIONS,
            PLACE_POSITIONS + SHIFT,
            query_labels=[1, 2, 3, 4],
            match_labels=[5, 6, 7, 8],
        )
        problem = LayerRegistrationProblem(
            src_nodes=set(QUERY_PLACES), dest_nodes=set(MATCH_PLACES)
        )
        layer = graph.get_layer(DsgLayers.PLACES)

        solution = register_dsg_layer_semantic(RobustRegistrationSolver(), problem, layer)
        assert not solution.valid


class TestDsgLayerSolver:
    """Test suite for DsgLayerSolver."""

    def test_translation_scenario(self, loop_graph, loop_input):
        """Test the full solve of a translated places loop."""
        solution = make_solver().solve(loop_graph, loop_input, QUERY_AGENT)

        assert solution.valid
        assert solution.from_node == QUERY_AGENT
        assert solution.to_node == MATCH_AGENT
        assert solution.level == -1
        np.testing.assert_allclose(solution.to_T_from.translation, SHIFT, atol=1e-6)
        np.testing.assert_allclose(solution.to_T_from.rotation, np.eye(3), atol=1e-9)

    @pytest.mark.parametrize("num_query,num_match", [(3, 4), (4, 3), (0, 4)])
    def test_small_sets_skip_estimator(self, loop_graph, monkeypatch, num_query, num_match):
        """Test that sets of 3 or fewer nodes never reach the estimator."""

        def fail(*args, **kwargs):
            raise AssertionError("estimator must not run")

        monkeypatch.setattr(RobustRegistrationSolver, "solve", fail)
        match = DsgRegistrationInput(
            query_nodes=set(QUERY_PLACES[:num_query]),
            match_nodes=set(MATCH_PLACES[:num_match]),
            match_root=MATCH_PLACES[0],
        )

        assert not make_solver().solve(loop_graph, match, QUERY_AGENT).valid

    def test_unresolved_match_pose(self, loop_input):
        """Test that a match root without a keyframe is invalid."""
        graph = build_loop_graph(
            PLACE_POSITIONS, PLACE_POSITIONS + SHIFT, with_match_agent=False
        )
        layer = graph.get_layer(DsgLayers.PLACES)
        problem = LayerRegistrationProblem(
            src_nodes=loop_input.query_nodes, dest_nodes=loop_input.match_nodes
        )
        assert register_dsg_layer_pairwise(RobustRegistrationSolver(), problem, layer).valid

        assert not make_solver().solve(graph, loop_input, QUERY_AGENT).valid

    def test_unresolved_query_pose(self, loop_graph, loop_input):
        """Test that an unknown query node is invalid."""
        # a place without a keyframe child can't stand in for the query
        solution = make_solver().solve(loop_graph, loop_input, QUERY_PLACES[1])
        assert not solution.valid

    def test_query_resolved_through_place(self, loop_graph, loop_input):
        """Test that a place query resolves to its keyframe."""
        solution = make_solver().solve(loop_graph, loop_input, QUERY_PLACES[0])
        assert solution.valid
        assert solution.from_node == QUERY_AGENT

    def test_missing_layer(self, loop_graph, loop_input):
        """Test solving for a layer the graph doesn't have."""
        solver = DsgLayerSolver(DsgLayers.BUILDINGS + 10, LayerRegistrationConfig())
        assert not solver.solve(loop_graph, loop_input, QUERY_AGENT).valid

    def test_repeated_solve_is_stable(self, loop_graph, loop_input):
        """Test that solving twice gives the same solution."""
        solver = make_solver()
        first = solver.solve(loop_graph, loop_input, QUERY_AGENT)
        second = solver.solve(loop_graph, loop_input, QUERY_AGENT)

        assert first.valid and second.valid
        assert first.to_T_from.is_close(second.to_T_from, atol=1e-9)

    def test_composes_with_keyframe_poses(self, loop_input):
        """Test that the layer transform is composed with keyframe poses."""
        world_T_query = SE3.from_rvec_tvec(np.array([0.0, 0.0, 0.4]), [3.0, 1.0, 0.0])
        world_T_match = SE3.from_rvec_tvec(np.array([0.0, 0.0, -0.2]), [1.0, 5.0, 0.0])
        graph = build_loop_graph(
            PLACE_POSITIONS,
            PLACE_POSITIONS + SHIFT,
            world_T_query=world_T_query,
            world_T_match=world_T_match,
        )

        solution = make_solver().solve(graph, loop_input, QUERY_AGENT)

        dest_T_src = SE3(rotation=np.eye(3), translation=SHIFT)
        expected = world_T_match.inverse() @ dest_T_src @ world_T_query
        assert solution.valid
        assert solution.to_T_from.is_close(expected, atol=1e-6)

    def test_records_timing(self, loop_graph, loop_input):
        """Test that every solve is timed."""
        recorder = ElapsedTimeRecorder()
        solver = DsgLayerSolver(DsgLayers.PLACES, LayerRegistrationConfig(), timer=recorder)

        solver.solve(loop_graph, loop_input, QUERY_AGENT)

        samples = recorder.samples("lcd/places_registration")
        assert len(samples) == 1
        assert samples[0].timestamp == QUERY_TIMESTAMP

    def test_writes_registration_record(self, loop_graph, loop_input, tmp_path):
        """Test that records are written when enabled."""
        solver = make_solver(
            log_registration_problem=True, registration_output_path=str(tmp_path)
        )

        solver.solve(loop_graph, loop_input, QUERY_AGENT)
        solver.solve(loop_graph, loop_input, QUERY_AGENT)

        assert (tmp_path / "places_registration_0.yaml").exists()
        with open(tmp_path / "places_registration_1.yaml") as f:
            record = yaml.safe_load(f)
        assert record["query_id"] == QUERY_AGENT
        assert record["match_id"] == MATCH_AGENT
        assert record["solution_valid"] is True
        np.testing.assert_allclose(record["dest_t_src"], SHIFT, atol=1e-6)

    def test_record_failure_keeps_solution(self, loop_graph, loop_input, tmp_path):
        """Test that a failed record write leaves the solution valid."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        solver = make_solver(
            log_registration_problem=True, registration_output_path=str(blocker)
        )

        solution = solver.solve(loop_graph, loop_input, QUERY_AGENT)

        assert solution.valid
        assert solver.registration_logger.counter.value == 1
