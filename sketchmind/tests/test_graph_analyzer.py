"""
Tests for structural graph analysis.
"""

import math

import pytest

from sketchmind.analysis.graph_analyzer import GraphAnalyzer, analyze_graph
from sketchmind.analysis.models import GraphEdge
from sketchmind.errors import NodeNotFoundError

from .helpers import make_node


def test_direct_relationship_strength(revenue_graph):
    analyzer = GraphAnalyzer(revenue_graph.nodes, revenue_graph.edges)
    insight = analyzer.analyze_relationship("1", "2")
    assert insight.directly_connected is True
    assert insight.relationship_strength == 1.0
    assert insight.path_length == 1
    assert insight.source_label == "Revenue"
    assert insight.shortest_path.edges[0].label == "funds"


def test_indirect_relationship(chain_graph):
    analyzer = GraphAnalyzer(chain_graph.nodes, chain_graph.edges)
    insight = analyzer.analyze_relationship("a", "c")
    assert insight.directly_connected is False
    assert insight.common_neighbors == ["b"]
    assert insight.shortest_path.path == ["a", "b", "c"]
    assert insight.relationship_strength == pytest.approx(1 / 3 + 0.1)


def test_unreachable_relationship(chain_graph):
    analyzer = GraphAnalyzer(chain_graph.nodes, chain_graph.edges)
    insight = analyzer.analyze_relationship("a", "d")
    assert insight.shortest_path is None
    assert math.isinf(insight.path_length)
    assert insight.relationship_strength == 0.0


def test_unknown_node_raises(chain_graph):
    analyzer = GraphAnalyzer(chain_graph.nodes, chain_graph.edges)
    with pytest.raises(NodeNotFoundError):
        analyzer.analyze_relationship("a", "missing")


def test_paths(chain_graph):
    analyzer = GraphAnalyzer(chain_graph.nodes, chain_graph.edges)
    assert analyzer.find_path("a", "c").length == 2
    assert analyzer.find_path("a", "d") is None
    assert analyzer.find_path("a", "a").length == 0
    paths = analyzer.find_all_paths("a", "c")
    assert [p.path for p in paths] == [["a", "b", "c"]]


def test_all_paths_shortest_first():
    nodes = [make_node(i, i) for i in "abcd"]
    edges = [
        GraphEdge(id="1", source="a", target="b"),
        GraphEdge(id="2", source="b", target="c"),
        GraphEdge(id="3", source="c", target="d"),
        GraphEdge(id="4", source="a", target="d"),
    ]
    paths = GraphAnalyzer(nodes, edges).find_all_paths("a", "d")
    assert [p.length for p in paths] == [1, 3]
    assert GraphAnalyzer(nodes, edges).find_all_paths("a", "d", max_depth=1)[0].path == ["a", "d"]


def test_centrality_metrics(chain_graph):
    analyzer = GraphAnalyzer(chain_graph.nodes, chain_graph.edges)
    assert analyzer.degree("b") == 2
    assert analyzer.betweenness("b") == pytest.approx(0.5)
    assert analyzer.betweenness("a") == 0.0
    assert analyzer.closeness("b") == pytest.approx(1.0)
    assert analyzer.closeness("d") == 0.0
    assert analyzer.central_nodes(1)[0].node_id == "b"


def test_structure(chain_graph):
    analysis = analyze_graph(chain_graph.nodes, chain_graph.edges)
    assert analysis.isolated_nodes == ["d"]
    # the isolated node already splits the rest, so every removal leaves more than one piece
    assert analysis.bridge_nodes == ["a", "b", "c"]
    assert len(analysis.clusters) == 1
    cluster = analysis.clusters[0]
    assert cluster.size == 3
    assert cluster.central_node == "b"
    assert cluster.density == pytest.approx(2 / 3)
    assert analysis.density == pytest.approx(2 / 6)
    assert analysis.average_path_length == pytest.approx((1 + 2 + 1) / 3)
    assert analysis.betweenness_skipped is False


def test_bridge_nodes_on_connected_chain(chain_graph):
    nodes = chain_graph.nodes[:3]
    assert GraphAnalyzer(nodes, chain_graph.edges).bridge_nodes() == ["b"]


def test_oversized_graph_uses_articulation_points(chain_graph):
    analyzer = GraphAnalyzer(chain_graph.nodes, chain_graph.edges, max_nodes=2)
    analysis = analyzer.analyze()
    assert analysis.betweenness_skipped is True
    assert all(m.betweenness == 0.0 for m in analysis.central_nodes)
    assert analysis.bridge_nodes == ["b"]


def test_clusters_keep_node_order_and_sort_by_size():
    nodes = [make_node(nid, nid.upper()) for nid in ["p", "x", "q", "y", "z", "r"]]
    edges = [
        GraphEdge(id="1", source="q", target="p"),
        GraphEdge(id="2", source="z", target="x"),
        GraphEdge(id="3", source="y", target="z"),
    ]
    clusters = GraphAnalyzer(nodes, edges).clusters()
    assert [c.nodes for c in clusters] == [["x", "y", "z"], ["p", "q"]]
    assert clusters[0].central_node == "z"
    # three components to begin with, so every removal leaves more than one piece
    assert GraphAnalyzer(nodes, edges).bridge_nodes() == ["p", "x", "q", "y", "z", "r"]


def test_dangling_edges_ignored():
    nodes = [make_node("a", "A"), make_node("b", "B")]
    edges = [
        GraphEdge(id="1", source="a", target="ghost"),
        GraphEdge(id="2", source="a", target="b"),
    ]
    analyzer = GraphAnalyzer(nodes, edges)
    assert analyzer.degree("a") == 1
    assert analyzer.density() == 1.0


def test_empty_graph():
    analysis = analyze_graph([], [])
    assert analysis.central_nodes == []
    assert analysis.density == 0.0
    assert analysis.average_path_length == 0.0


def test_analysis_is_reproducible(chain_graph):
    first = analyze_graph(chain_graph.nodes, chain_graph.edges)
    second = analyze_graph(chain_graph.nodes, chain_graph.edges)
    assert first == second
