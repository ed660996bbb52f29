"""Registration strategies producing loop-closure constraints.

A solver turns a loop-closure candidate into a ``DsgRegistrationSolution``
between two keyframes:

- DsgLayerSolver: registers the node positions of one layer with the robust
  estimator and composes the result with the keyframes' global poses.
- DsgAgentSolver: asks the external frame registration service to register
  two keyframes directly.

Callers keep one solver per layer (see ``make_registration_solvers``).
Failures are reported as invalid solutions, never raised.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from ..pose import SE3
from ..scene_graph import (
    AgentNodeAttributes,
    DsgLayers,
    DynamicSceneGraph,
    LayerId,
    NodeId,
    NodeSymbol,
)
from ..timing import ElapsedTimeRecorder, ScopedTimer
from .config import LayerRegistrationConfig, LcdRegistrationConfig, RobustSolverParams
from .diagnostics import RegistrationCounter, RegistrationLogger
from .frame_registration import FrameRegistrationRequest, FrameRegistrationService
from .layer_registration import register_dsg_layer_pairwise, register_dsg_layer_semantic
from .pose_composition import get_full_solution_from_layer
from .robust_solver import RobustRegistrationSolver
from .types import (
    DsgRegistrationInput,
    DsgRegistrationSolution,
    LayerRegistrationProblem,
)

logger = logging.getLogger(__name__)

# Fewer nodes than this can't constrain a transform in the presence of outliers
MIN_LAYER_NODES = 4


def _get_timestamp(graph: DynamicSceneGraph, node_id: NodeId) -> int | None:
    node = graph.get_dynamic_node(node_id)
    return None if node is None else node.timestamp


class DsgRegistrationSolver(ABC):
    """Registration strategy for one kind of loop-closure candidate."""

    @abstractmethod
    def solve(
        self,
        dsg: DynamicSceneGraph,
        match: DsgRegistrationInput,
        query_agent_id: NodeId,
    ) -> DsgRegistrationSolution:
        """Register a loop-closure candidate.

        Args:
            dsg: Scene graph
            match: Query and matched node sets
            query_agent_id: Keyframe that triggered the query

        Returns:
            DsgRegistrationSolution (invalid on failure)
        """


class DsgLayerSolver(DsgRegistrationSolver):
    """Robust registration of the nodes of one scene graph layer."""

    def __init__(
        self,
        layer_id: LayerId,
        config: LayerRegistrationConfig,
        params: RobustSolverParams | None = None,
        counter: RegistrationCounter | None = None,
        timer: ElapsedTimeRecorder | None = None,
    ) -> None:
        """Initialize the layer solver.

        Args:
            layer_id: Layer whose nodes are registered
            config: Layer registration settings
            params: Robust estimator parameters
            counter: Diagnostic record counter (shareable between solvers)
            timer: Recorder receiving solve timings
        """
        self.layer_id = layer_id
        self.config = config
        self.solver = RobustRegistrationSolver(params)
        self.timer = timer

        layer_str = DsgLayers.layer_id_to_string(layer_id)
        self.timer_prefix = f"lcd/{layer_str}_registration"

        self.registration_logger: RegistrationLogger | None = None
        if config.log_registration_problem:
            log_prefix = Path(config.registration_output_path) / f"{layer_str}_registration_"
            self.registration_logger = RegistrationLogger(log_prefix, counter)

    def solve(
        self,
        dsg: DynamicSceneGraph,
        match: DsgRegistrationInput,
        query_agent_id: NodeId,
    ) -> DsgRegistrationSolution:
        timestamp = _get_timestamp(dsg, query_agent_id)
        with ScopedTimer(self.timer_prefix, timestamp, self.timer):
            if (
                len(match.query_nodes) < MIN_LAYER_NODES
                or len(match.match_nodes) < MIN_LAYER_NODES
            ):
                return DsgRegistrationSolution()

            layer = dsg.get_layer(self.layer_id)
            if layer is None:
                logger.error(f"Scene graph has no layer {self.layer_id}")
                return DsgRegistrationSolution()

            problem = LayerRegistrationProblem(
                src_nodes=set(match.query_nodes), dest_nodes=set(match.match_nodes)
            )
            if self.config.use_pairwise_registration:
                solution = register_dsg_layer_pairwise(self.solver, problem, layer)
            else:
                solution = register_dsg_layer_semantic(self.solver, problem, layer)

            if self.registration_logger is not None:
                self.registration_logger.log(dsg, solution, match, query_agent_id)

            return get_full_solution_from_layer(
                dsg, solution, query_agent_id, match.match_root
            )


def get_frame_id_from_node(graph: DynamicSceneGraph, node_id: NodeId) -> int | None:
    """Frame id of a keyframe node, decoded from its external key."""
    node = graph.get_node(node_id)
    if node is None or not isinstance(node.attributes, AgentNodeAttributes):
        return None
    return NodeSymbol(node.attributes.external_key).category_id


class DsgAgentSolver(DsgRegistrationSolver):
    """Keyframe registration delegated to the frame registration service.

    The service reports ``match_T_query`` directly, so the result is not
    composed with the keyframes' global poses.
    """

    timer_name = "lcd/register_agent"

    def __init__(
        self,
        service: FrameRegistrationService,
        timer: ElapsedTimeRecorder | None = None,
    ) -> None:
        self.service = service
        self.timer = timer

    def solve(
        self,
        dsg: DynamicSceneGraph,
        match: DsgRegistrationInput,
        query_agent_id: NodeId,
    ) -> DsgRegistrationSolution:
        if not match.query_nodes or not match.match_nodes:
            return DsgRegistrationSolution()

        if not self.service.exists():
            logger.error("Frame registration service missing!")
            return DsgRegistrationSolution()

        # at the agent level, match sets are one node each
        query_id = min(match.query_nodes)
        match_id = min(match.match_nodes)
        query_label = NodeSymbol(query_id).label
        match_label = NodeSymbol(match_id).label

        query_frame = get_frame_id_from_node(dsg, query_id)
        match_frame = get_frame_id_from_node(dsg, match_id)
        if query_frame is None or match_frame is None:
            logger.error(f"Missing keyframe for {query_label} -> {match_label}")
            return DsgRegistrationSolution()

        request = FrameRegistrationRequest(query=query_frame, match=match_frame)
        timestamp = _get_timestamp(dsg, query_id)
        with ScopedTimer(self.timer_name, timestamp, self.timer):
            response = self.service.call(request)

        if response is None:
            logger.error("Frame registration service failed!")
            return DsgRegistrationSolution()

        logger.debug(f"Visual registration request: {request}")
        logger.debug(f"Visual registration response: {response}")

        if not response.valid:
            logger.info(f"registration failed: {query_label} -> {match_label}")
            return DsgRegistrationSolution()

        match_T_query = SE3.from_quaternion(response.match_q_query, response.match_t_query)
        logger.info(f"registration worked {query_label} -> {match_label}")
        return DsgRegistrationSolution(
            valid=True,
            from_node=query_id,
            to_node=match_id,
            to_T_from=match_T_query,
            level=-1,
        )


def make_registration_solvers(
    config: LcdRegistrationConfig,
    service: FrameRegistrationService | None = None,
    timer: ElapsedTimeRecorder | None = None,
) -> dict[LayerId, DsgRegistrationSolver]:
    """Build the configured solvers keyed by layer id.

    Layer solvers share one diagnostic record counter. The agent solver is
    keyed by ``DsgLayers.AGENTS`` and replaces any objects-layer solver, as
    the two layers share an id.

    Args:
        config: Registration settings
        service: Frame registration service (required for agent registration)
        timer: Recorder receiving solve timings

    Returns:
        Solvers keyed by layer id

    Raises:
        ValueError: If agent registration is enabled without a service
    """
    counter = RegistrationCounter()
    solvers: dict[LayerId, DsgRegistrationSolver] = {}
    for layer_id, layer_config in config.layers.items():
        solvers[layer_id] = DsgLayerSolver(
            layer_id, layer_config, config.solver, counter=counter, timer=timer
        )

    if config.enable_agent_registration:
        if service is None:
            raise ValueError("service required when enable_agent_registration=True")
        if DsgLayers.AGENTS in solvers:
            logger.warning("Agent registration replaces the objects layer solver")
        solvers[DsgLayers.AGENTS] = DsgAgentSolver(service, timer=timer)

    return solvers
