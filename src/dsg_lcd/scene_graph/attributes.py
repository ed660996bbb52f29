"""Typed node and edge attributes stored in the scene graph."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

import numpy as np


@dataclass
class NodeAttributes:
    """Base attributes shared by all nodes.

    Attributes:
        position: 3D position of the node in the world frame
    """

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).flatten()
        if self.position.shape != (3,):
            raise ValueError(f"Position must be (3,), got {self.position.shape}")

    def clone(self) -> NodeAttributes:
        """Return a deep copy of the attributes."""
        return copy.deepcopy(self)


@dataclass
class SemanticNodeAttributes(NodeAttributes):
    """Attributes for nodes carrying a semantic category.

    Attributes:
        name: Optional display name
        semantic_label: Integer semantic class of the node
    """

    name: str = ""
    semantic_label: int = 0


@dataclass
class PlaceNodeAttributes(SemanticNodeAttributes):
    """Attributes of a free-space place extracted from a distance field.

    Attributes:
        distance: Distance from the place to the nearest obstacle
        num_basis_points: Number of obstacle points equidistant to the place
    """

    distance: float = 0.0
    num_basis_points: int = 0


@dataclass
class AgentNodeAttributes(NodeAttributes):
    """Attributes of a time-indexed agent (keyframe) node.

    Attributes:
        world_R_body: Body orientation in the world frame as a (w, x, y, z)
            quaternion
        external_key: Key of the keyframe in the external odometry system,
            encoded as a ``NodeSymbol``
    """

    world_R_body: np.ndarray = field(
        default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0])
    )
    external_key: int = 0

    def __post_init__(self) -> None:
        super().__post_init__()
        self.world_R_body = np.asarray(self.world_R_body, dtype=np.float64).flatten()
        if self.world_R_body.shape != (4,):
            raise ValueError(
                f"world_R_body must be a (4,) quaternion, got {self.world_R_body.shape}"
            )


@dataclass
class EdgeAttributes:
    """Attributes of an edge between two nodes."""

    weight: float = 1.0
