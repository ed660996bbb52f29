"""Loop-closure registration over the scene graph.

Given a loop-closure candidate (a query node set and a matched node set),
compute the relative transform between the query keyframe and the matched
keyframe for the pose-graph back end.

Key components:
- DsgLayerSolver: Correspondence-free robust registration of layer nodes
- DsgAgentSolver: Keyframe registration through an external service
- RobustRegistrationSolver: Max-clique outlier rejection + closed-form fit
- get_full_solution_from_layer: Composition with global keyframe poses
- RegistrationLogger: Per-attempt diagnostic records
"""

from .config import (
    LayerRegistrationConfig,
    LcdRegistrationConfig,
    RobustSolverParams,
    config_from_dict,
    load_registration_config,
)
from .diagnostics import RegistrationCounter, RegistrationLogger
from .frame_registration import (
    FrameRegistrationRequest,
    FrameRegistrationResponse,
    FrameRegistrationService,
    FrameRegistrationShutdownMessage,
    QueueFrameRegistrationClient,
    serve_frame_registration,
)
from .layer_registration import register_dsg_layer_pairwise, register_dsg_layer_semantic
from .pose_composition import get_agent_pose, get_full_solution_from_layer, get_query_pose
from .robust_solver import (
    RobustRegistrationResult,
    RobustRegistrationSolver,
    estimate_rigid_transform,
)
from .solvers import (
    DsgAgentSolver,
    DsgLayerSolver,
    DsgRegistrationSolver,
    make_registration_solvers,
)
from .types import (
    AgentNodePose,
    DsgRegistrationInput,
    DsgRegistrationSolution,
    LayerRegistrationProblem,
    LayerRegistrationSolution,
)

__all__ = [
    # Types
    "DsgRegistrationInput",
    "DsgRegistrationSolution",
    "LayerRegistrationProblem",
    "LayerRegistrationSolution",
    "AgentNodePose",
    # Config
    "RobustSolverParams",
    "LayerRegistrationConfig",
    "LcdRegistrationConfig",
    "config_from_dict",
    "load_registration_config",
    # Solvers
    "DsgRegistrationSolver",
    "DsgLayerSolver",
    "DsgAgentSolver",
    "make_registration_solvers",
    # Estimation
    "RobustRegistrationSolver",
    "RobustRegistrationResult",
    "estimate_rigid_transform",
    "register_dsg_layer_pairwise",
    "register_dsg_layer_semantic",
    # Pose composition
    "get_agent_pose",
    "get_query_pose",
    "get_full_solution_from_layer",
    # Diagnostics
    "RegistrationCounter",
    "RegistrationLogger",
    # Frame registration service
    "FrameRegistrationService",
    "FrameRegistrationRequest",
    "FrameRegistrationResponse",
    "FrameRegistrationShutdownMessage",
    "QueueFrameRegistrationClient",
    "serve_frame_registration",
]
