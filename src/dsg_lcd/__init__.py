"""DSG LCD - loop-closure registration for dynamic scene graphs."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .pose import SE3
from .scene_graph import (
    AgentNodeAttributes,
    DsgLayers,
    DynamicSceneGraph,
    NodeSymbol,
    PlaceNodeAttributes,
)
from .registration import (
    DsgAgentSolver,
    DsgLayerSolver,
    DsgRegistrationInput,
    DsgRegistrationSolution,
    LcdRegistrationConfig,
    load_registration_config,
    make_registration_solvers,
)
from .timing import ElapsedTimeRecorder, ScopedTimer

__all__ = [
    "__version__",
    # Pose
    "SE3",
    # Scene graph
    "DynamicSceneGraph",
    "DsgLayers",
    "NodeSymbol",
    "PlaceNodeAttributes",
    "AgentNodeAttributes",
    # Registration
    "DsgRegistrationInput",
    "DsgRegistrationSolution",
    "DsgLayerSolver",
    "DsgAgentSolver",
    "LcdRegistrationConfig",
    "load_registration_config",
    "make_registration_solvers",
    # Timing
    "ElapsedTimeRecorder",
    "ScopedTimer",
]
