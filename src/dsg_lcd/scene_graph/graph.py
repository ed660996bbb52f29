"""Layered dynamic scene graph.

The scene graph stores static layers (objects, places, rooms, buildings) and
dynamic, time-indexed layers (agent keyframes). Nodes in different layers are
linked by parent/child relations where the node in the higher layer is the
parent; nodes in the same layer are linked by weighted edges.

The registration code only reads from the graph. Construction helpers are
provided for the mapping front end (e.g. importing a places layer produced by
a distance-field extraction) and for tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

from .attributes import EdgeAttributes, NodeAttributes

logger = logging.getLogger(__name__)

NodeId = int
LayerId = int


class DsgLayers:
    """Layer ids of the scene graph hierarchy.

    Agents share their layer id with objects but live in a separate dynamic
    layer.
    """

    MESH = 1
    OBJECTS = 2
    AGENTS = 2
    PLACES = 3
    ROOMS = 4
    BUILDINGS = 5

    STATIC = (OBJECTS, PLACES, ROOMS, BUILDINGS)

    _NAMES = {
        MESH: "mesh",
        OBJECTS: "objects",
        PLACES: "places",
        ROOMS: "rooms",
        BUILDINGS: "buildings",
    }

    @classmethod
    def layer_id_to_string(cls, layer_id: LayerId) -> str:
        """Return the lower-case name of a layer (``"unknown"`` if unrecognized)."""
        return cls._NAMES.get(layer_id, "unknown")

    @classmethod
    def string_to_layer_id(cls, name: str) -> LayerId:
        """Return the layer id for a layer name.

        Raises:
            KeyError: If the name is not a known layer
        """
        for layer_id, layer_name in cls._NAMES.items():
            if layer_name == name.lower():
                return layer_id
        raise KeyError(f"Unknown layer name: {name}")


@dataclass
class SceneGraphNode:
    """A node of the scene graph.

    Attributes:
        id: Unique node id
        layer: Layer the node belongs to
        attributes: Typed node attributes
        timestamp: Timestamp in nanoseconds (dynamic nodes only)
        parent: Parent node id in the layer above, if any
        children: Child node ids in layers below
        siblings: Neighbor node ids in the same layer
    """

    id: NodeId
    layer: LayerId
    attributes: NodeAttributes
    timestamp: int | None = None
    parent: NodeId | None = None
    children: set[NodeId] = field(default_factory=set)
    siblings: set[NodeId] = field(default_factory=set)

    @property
    def is_dynamic(self) -> bool:
        """Whether the node is a time-indexed (dynamic) node."""
        return self.timestamp is not None

    def has_parent(self) -> bool:
        return self.parent is not None


def _edge_key(source: NodeId, target: NodeId) -> tuple[NodeId, NodeId]:
    return (source, target) if source <= target else (target, source)


class SceneGraphLayer:
    """Nodes and intra-layer edges of a single layer."""

    def __init__(self, layer_id: LayerId) -> None:
        self.id = layer_id
        self._nodes: dict[NodeId, SceneGraphNode] = {}
        self._edges: dict[tuple[NodeId, NodeId], EdgeAttributes] = {}

    def nodes(self) -> dict[NodeId, SceneGraphNode]:
        """Return the layer's nodes keyed by id."""
        return self._nodes

    def edges(self) -> dict[tuple[NodeId, NodeId], EdgeAttributes]:
        """Return the layer's edges keyed by (source, target) with source <= target."""
        return self._edges

    def has_node(self, node_id: NodeId) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: NodeId) -> SceneGraphNode | None:
        return self._nodes.get(node_id)

    def has_edge(self, source: NodeId, target: NodeId) -> bool:
        return _edge_key(source, target) in self._edges

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    @property
    def num_edges(self) -> int:
        return len(self._edges)

    def __iter__(self) -> Iterator[SceneGraphNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def _add_node(self, node: SceneGraphNode) -> None:
        self._nodes[node.id] = node

    def _add_edge(self, source: NodeId, target: NodeId, info: EdgeAttributes) -> bool:
        key = _edge_key(source, target)
        if key in self._edges:
            return False

        self._edges[key] = info
        self._nodes[source].siblings.add(target)
        self._nodes[target].siblings.add(source)
        return True


class DynamicSceneGraph:
    """Scene graph with static layers and time-indexed dynamic layers."""

    def __init__(self, layer_ids: tuple[LayerId, ...] = DsgLayers.STATIC) -> None:
        """Initialize an empty graph.

        Args:
            layer_ids: Ids of the static layers to create
        """
        self._layers: dict[LayerId, SceneGraphLayer] = {
            layer_id: SceneGraphLayer(layer_id) for layer_id in layer_ids
        }
        self._dynamic_layers: dict[LayerId, SceneGraphLayer] = {}
        # node id -> layer holding it
        self._node_lookup: dict[NodeId, SceneGraphLayer] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def emplace_node(
        self, layer_id: LayerId, node_id: NodeId, attributes: NodeAttributes
    ) -> bool:
        """Add a static node.

        Returns:
            False if the layer doesn't exist or the id is already taken
        """
        layer = self._layers.get(layer_id)
        if layer is None or node_id in self._node_lookup:
            return False

        layer._add_node(SceneGraphNode(id=node_id, layer=layer_id, attributes=attributes))
        self._node_lookup[node_id] = layer
        return True

    def emplace_dynamic_node(
        self,
        layer_id: LayerId,
        node_id: NodeId,
        timestamp: int,
        attributes: NodeAttributes,
    ) -> bool:
        """Add a time-indexed node, creating the dynamic layer if needed.

        Args:
            layer_id: Layer id of the dynamic layer (e.g. ``DsgLayers.AGENTS``)
            node_id: Unique node id
            timestamp: Timestamp in nanoseconds
            attributes: Node attributes

        Returns:
            False if the id is already taken
        """
        if node_id in self._node_lookup:
            return False

        layer = self._dynamic_layers.setdefault(layer_id, SceneGraphLayer(layer_id))
        layer._add_node(
            SceneGraphNode(
                id=node_id, layer=layer_id, attributes=attributes, timestamp=timestamp
            )
        )
        self._node_lookup[node_id] = layer
        return True

    def insert_edge(
        self,
        source: NodeId,
        target: NodeId,
        info: EdgeAttributes | None = None,
    ) -> bool:
        """Connect two nodes.

        Nodes of the same layer get a weighted sibling edge. Nodes of
        different layers get a parent/child relation where the node in the
        higher layer becomes the parent.

        Returns:
            False if either node is missing, the edge already exists, the
            child already has a parent, or the nodes can't be related
        """
        source_node = self.get_node(source)
        target_node = self.get_node(target)
        if source_node is None or target_node is None or source == target:
            return False

        source_layer = self._node_lookup[source]
        target_layer = self._node_lookup[target]
        if source_layer is target_layer:
            return source_layer._add_edge(source, target, info or EdgeAttributes())

        if source_node.layer == target_node.layer:
            # same layer id, one static and one dynamic: no hierarchy between them
            return False

        if source_node.layer > target_node.layer:
            parent, child = source_node, target_node
        else:
            parent, child = target_node, source_node

        if child.has_parent():
            return False

        child.parent = parent.id
        parent.children.add(child.id)
        return True

    def merge_places_layer(self, places: SceneGraphLayer) -> int:
        """Import an externally computed places layer.

        Copies every node (with a copy of its attributes) and every edge
        (with its weight) into the PLACES layer. Nodes whose id is already in
        the graph are left untouched.

        Args:
            places: Places layer produced by the volumetric mapping service

        Returns:
            Number of nodes added
        """
        num_added = 0
        for node_id, node in places.nodes().items():
            if self.emplace_node(DsgLayers.PLACES, node_id, node.attributes.clone()):
                num_added += 1
            else:
                logger.debug(f"Skipping existing place node {node_id}")

        for (source, target), info in places.edges().items():
            self.insert_edge(source, target, EdgeAttributes(weight=info.weight))

        logger.info(
            f"Merged places layer: {num_added} new nodes, "
            f"{places.num_edges} edges"
        )
        return num_added

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_node(self, node_id: NodeId) -> bool:
        return node_id in self._node_lookup

    def is_dynamic(self, node_id: NodeId) -> bool:
        node = self.get_node(node_id)
        return node is not None and node.is_dynamic

    def get_node(self, node_id: NodeId) -> SceneGraphNode | None:
        """Look up any node (static or dynamic) by id."""
        layer = self._node_lookup.get(node_id)
        if layer is None:
            return None
        return layer.get_node(node_id)

    def get_dynamic_node(self, node_id: NodeId) -> SceneGraphNode | None:
        """Look up a dynamic node by id (None for missing or static nodes)."""
        node = self.get_node(node_id)
        if node is None or not node.is_dynamic:
            return None
        return node

    def get_layer(self, layer_id: LayerId) -> SceneGraphLayer | None:
        """Return a static layer by id."""
        return self._layers.get(layer_id)

    def get_dynamic_layer(self, layer_id: LayerId) -> SceneGraphLayer | None:
        """Return a dynamic layer by id."""
        return self._dynamic_layers.get(layer_id)

    def has_edge(self, source: NodeId, target: NodeId) -> bool:
        source_node = self.get_node(source)
        target_node = self.get_node(target)
        if source_node is None or target_node is None:
            return False

        if source_node.parent == target or target_node.parent == source:
            return True
        return self._node_lookup[source].has_edge(source, target)

    @property
    def num_nodes(self) -> int:
        return len(self._node_lookup)
