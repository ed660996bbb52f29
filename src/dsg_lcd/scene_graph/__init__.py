"""In-memory dynamic scene graph used by loop-closure registration.

Key components:
- DynamicSceneGraph: Static layers plus time-indexed agent layers
- SceneGraphLayer / SceneGraphNode: Layer and node containers
- Node attributes: Place, agent and semantic attributes
- NodeSymbol: Category character + index node keys
"""

from .attributes import (
    AgentNodeAttributes,
    EdgeAttributes,
    NodeAttributes,
    PlaceNodeAttributes,
    SemanticNodeAttributes,
)
from .graph import (
    DsgLayers,
    DynamicSceneGraph,
    LayerId,
    NodeId,
    SceneGraphLayer,
    SceneGraphNode,
)
from .node_symbol import NodeSymbol, display_node_symbols

__all__ = [
    # Graph
    "DynamicSceneGraph",
    "SceneGraphLayer",
    "SceneGraphNode",
    "DsgLayers",
    "NodeId",
    "LayerId",
    # Attributes
    "NodeAttributes",
    "SemanticNodeAttributes",
    "PlaceNodeAttributes",
    "AgentNodeAttributes",
    "EdgeAttributes",
    # Keys
    "NodeSymbol",
    "display_node_symbols",
]
