"""Tests for the scene graph and node symbols."""

import numpy as np
import pytest

from dsg_lcd.scene_graph import (
    AgentNodeAttributes,
    DsgLayers,
    DynamicSceneGraph,
    EdgeAttributes,
    NodeSymbol,
    PlaceNodeAttributes,
    SceneGraphLayer,
    display_node_symbols,
)
from dsg_lcd.scene_graph.graph import SceneGraphNode


class TestNodeSymbol:
    """Test suite for NodeSymbol."""

    def test_encoding(self):
        """Test encoding a category and index."""
        symbol = NodeSymbol("a", 5)
        assert symbol.category == "a"
        assert symbol.category_id == 5
        assert symbol.label == "a5"
        assert int(symbol) == (ord("a") << 56) | 5

    def test_decode_from_key(self):
        """Test decoding a symbol from its integer key."""
        key = int(NodeSymbol("p", 1234))
        symbol = NodeSymbol(key)
        assert symbol == NodeSymbol("p", 1234)
        assert symbol.category_id == 1234

    def test_plain_integer_label(self):
        """Test the label of a key without a printable category."""
        assert NodeSymbol(101).label == "101"

    def test_invalid_arguments(self):
        """Test that malformed symbols are rejected."""
        with pytest.raises(ValueError):
            NodeSymbol("ab", 1)
        with pytest.raises(ValueError):
            NodeSymbol("a")
        with pytest.raises(ValueError):
            NodeSymbol("a", -1)

    def test_display(self):
        """Test formatting a set of node ids."""
        ids = {int(NodeSymbol("p", 2)), int(NodeSymbol("p", 1))}
        assert display_node_symbols(ids) == "[p1, p2]"


class TestDsgLayers:
    def test_names(self):
        """Test converting between layer ids and names."""
        assert DsgLayers.layer_id_to_string(DsgLayers.PLACES) == "places"
        assert DsgLayers.string_to_layer_id("Objects") == DsgLayers.OBJECTS
        assert DsgLayers.layer_id_to_string(42) == "unknown"
        with pytest.raises(KeyError):
            DsgLayers.string_to_layer_id("hallways")


class TestDynamicSceneGraph:
    """Test suite for DynamicSceneGraph."""

    def test_emplace_node(self):
        """Test adding static nodes."""
        graph = DynamicSceneGraph()
        assert graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        assert not graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        assert not graph.emplace_node(99, 2, PlaceNodeAttributes())
        assert graph.has_node(1)
        assert graph.get_node(1).layer == DsgLayers.PLACES
        assert graph.get_node(2) is None
        assert graph.num_nodes == 1

    def test_dynamic_nodes(self):
        """Test adding dynamic agent nodes."""
        graph = DynamicSceneGraph()
        graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        assert graph.emplace_dynamic_node(DsgLayers.AGENTS, 7, 100, AgentNodeAttributes())

        assert graph.is_dynamic(7)
        assert not graph.is_dynamic(1)
        assert graph.get_dynamic_node(7).timestamp == 100
        assert graph.get_dynamic_node(1) is None
        assert graph.get_dynamic_layer(DsgLayers.AGENTS).num_nodes == 1

    def test_interlayer_edge_sets_parent(self):
        """Test that an edge between layers sets the parent."""
        graph = DynamicSceneGraph()
        graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        graph.emplace_node(DsgLayers.ROOMS, 2, PlaceNodeAttributes())
        graph.emplace_dynamic_node(DsgLayers.AGENTS, 3, 0, AgentNodeAttributes())

        assert graph.insert_edge(3, 1)
        assert graph.insert_edge(1, 2)
        assert graph.get_node(3).parent == 1
        assert graph.get_node(1).children == {3}
        assert graph.get_node(1).parent == 2
        assert graph.has_edge(1, 3)

    def test_child_has_single_parent(self):
        """Test that a node can't have two parents."""
        graph = DynamicSceneGraph()
        graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        graph.emplace_node(DsgLayers.PLACES, 2, PlaceNodeAttributes())
        graph.emplace_dynamic_node(DsgLayers.AGENTS, 3, 0, AgentNodeAttributes())

        assert graph.insert_edge(1, 3)
        assert not graph.insert_edge(2, 3)

    def test_intralayer_edge(self):
        """Test that an edge within a layer links siblings."""
        graph = DynamicSceneGraph()
        graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        graph.emplace_node(DsgLayers.PLACES, 2, PlaceNodeAttributes())

        assert graph.insert_edge(1, 2, EdgeAttributes(weight=0.5))
        assert not graph.insert_edge(2, 1)
        layer = graph.get_layer(DsgLayers.PLACES)
        assert layer.edges()[(1, 2)].weight == 0.5
        assert graph.get_node(1).siblings == {2}

    def test_rejects_edges_to_missing_nodes(self):
        """Test that edges need both endpoints."""
        graph = DynamicSceneGraph()
        graph.emplace_node(DsgLayers.PLACES, 1, PlaceNodeAttributes())
        assert not graph.insert_edge(1, 2)
        assert not graph.insert_edge(1, 1)

    def test_merge_places_layer(self):
        """Test merging a places layer into the graph."""
        places = SceneGraphLayer(DsgLayers.PLACES)
        for node_id in (10, 11, 12):
            attrs = PlaceNodeAttributes(position=[node_id, 0.0, 0.0], distance=0.3)
            places._add_node(SceneGraphNode(id=node_id, layer=DsgLayers.PLACES, attributes=attrs))
        places._add_edge(10, 11, EdgeAttributes(weight=2.0))
        places._add_edge(11, 12, EdgeAttributes(weight=3.0))

        graph = DynamicSceneGraph()
        graph.emplace_node(DsgLayers.PLACES, 10, PlaceNodeAttributes())

        assert graph.merge_places_layer(places) == 2
        layer = graph.get_layer(DsgLayers.PLACES)
        assert layer.num_nodes == 3
        assert layer.num_edges == 2
        assert layer.edges()[(11, 12)].weight == 3.0

        # attributes are copied, not shared
        places.get_node(11).attributes.position[0] = -1.0
        np.testing.assert_array_equal(layer.get_node(11).attributes.position, [11.0, 0.0, 0.0])
        # existing nodes are kept
        np.testing.assert_array_equal(layer.get_node(10).attributes.position, np.zeros(3))
