"""Render the canvas graph as a bounded text block for model prompts.

Node labels carry most of the meaning on a canvas, so they are reproduced
verbatim. Edge labels describe the relationship and are shown with the edge.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .graph_analyzer import DEFAULT_MAX_ANALYSIS_NODES, GraphAnalysis, GraphAnalyzer
from .models import GraphEdge, GraphNode

EMPTY_CANVAS_TEXT = "CANVAS STRUCTURE:\n- Canvas is empty (no nodes or edges)"


@dataclass(frozen=True)
class SerializeOptions:
    include_positions: bool = True
    include_tags: bool = True
    max_nodes: int | None = None
    prioritized_ids: Sequence[str] = field(default_factory=tuple)
    include_analysis: bool = True
    max_analysis_nodes: int = DEFAULT_MAX_ANALYSIS_NODES


def select_nodes(nodes: Sequence[GraphNode], options: SerializeOptions) -> list[GraphNode]:
    """Prioritized nodes first, then the rest in original order, capped at max_nodes."""
    ordered = list(nodes)
    if options.prioritized_ids:
        wanted = set(options.prioritized_ids)
        ordered = [n for n in nodes if n.id in wanted] + [n for n in nodes if n.id not in wanted]
    if options.max_nodes is not None and options.max_nodes >= 0 and len(ordered) > options.max_nodes:
        ordered = ordered[:options.max_nodes]
    return ordered


def select_edges(edges: Sequence[GraphEdge], included: Sequence[GraphNode]) -> list[GraphEdge]:
    ids = {n.id for n in included}
    return [e for e in edges if e.source in ids and e.target in ids]


def format_node(node: GraphNode, index: int, options: SerializeOptions) -> str:
    label = node.display_label
    lines = label.split("\n")
    text = f'  * Node {index + 1} [ID: "{node.id}", Type: {node.shape.value}'
    if len(lines) > 1:
        text += "\n    Content/Label:\n" + "\n".join(f'      "{line}"' for line in lines)
    else:
        text += f', Label/Content: "{label}"'
    if options.include_tags and node.tags:
        text += "\n    Tags: [" + ", ".join(f'"{t}"' for t in node.tags) + "]"
    if options.include_positions:
        text += f"\n    Position: ({round(node.position.x)}, {round(node.position.y)})"
    return text + "]"


def format_edge(edge: GraphEdge, index: int, labels: dict[str, str]) -> str:
    source = labels.get(edge.source, edge.source)
    target = labels.get(edge.target, edge.target)
    text = f'  * Edge {index + 1}: "{source}" → "{target}"'
    if edge.label:
        text += f'\n    Relationship: "{edge.label}"'
    return text


def format_analysis(analysis: GraphAnalysis, nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> list[str]:
    labels = {n.id: n.display_label for n in nodes}
    lines = ["", "- Graph Analysis:"]
    lines.append(f"  * Total: {len(nodes)} nodes, {len(edges)} edges")
    lines.append(f"  * Graph Density: {analysis.density * 100:.1f}%")
    lines.append(f"  * Average Path Length: {analysis.average_path_length:.2f}")

    if analysis.central_nodes:
        lines.append("  * Central nodes (by centrality):")
        for m in analysis.central_nodes[:5]:
            lines.append(f'    - "{m.label}" (Degree: {m.degree}, Betweenness: {m.betweenness:.2f})')

    if analysis.isolated_nodes:
        lines.append(f"  * Isolated nodes: {len(analysis.isolated_nodes)}")
        if len(analysis.isolated_nodes) <= 5:
            for nid in analysis.isolated_nodes:
                lines.append(f'    - "{labels.get(nid, nid)}"')

    if analysis.clusters:
        lines.append(f"  * Clusters: {len(analysis.clusters)} groups")
        for idx, cluster in enumerate(analysis.clusters[:3]):
            central = labels.get(cluster.central_node, "N/A")
            lines.append(
                f"    - Cluster {idx + 1}: {cluster.size} nodes, "
                f'Density: {cluster.density * 100:.1f}%, Central: "{central}"'
            )

    if analysis.bridge_nodes:
        lines.append(f"  * Bridge nodes (critical): {len(analysis.bridge_nodes)}")
        for nid in analysis.bridge_nodes[:3]:
            if nid in labels:
                lines.append(f'    - "{labels[nid]}"')

    if not edges:
        lines.append("  * All nodes are disconnected")
    return lines


def serialize_graph(nodes: Sequence[GraphNode], edges: Sequence[GraphEdge],
                    options: SerializeOptions | None = None,
                    analysis: GraphAnalysis | None = None) -> str:
    """Deterministic text description of the graph.

    ``analysis`` may be passed in when the caller already computed it for the
    full graph; otherwise it is computed here when requested.
    """
    options = options or SerializeOptions()
    if not nodes and not edges:
        return EMPTY_CANVAS_TEXT

    included = select_nodes(nodes, options)
    shown_edges = select_edges(edges, included)
    labels = {n.id: n.display_label for n in nodes}

    lines = [
        "CANVAS STRUCTURE:",
        "NOTE: Node labels contain the main content/text for each node. Edge labels describe relationships.",
        "Pay close attention to the full text in node labels and edge labels to understand context and relationships.",
        "",
        f"- Nodes ({len(nodes)} total, showing {len(included)}):",
    ]
    lines.extend(format_node(node, i, options) for i, node in enumerate(included))
    if len(nodes) > len(included):
        lines.append(f"  ... ({len(nodes) - len(included)} more nodes not shown)")

    lines.append("")
    lines.append(f"- Edges ({len(edges)} total, showing {len(shown_edges)}):")
    if shown_edges:
        lines.extend(format_edge(edge, i, labels) for i, edge in enumerate(shown_edges))
    else:
        lines.append("  * No edges connecting the shown nodes")
    if len(edges) > len(shown_edges):
        lines.append(f"  ... ({len(edges) - len(shown_edges)} more edges not shown)")

    if options.include_analysis:
        if analysis is None:
            analysis = GraphAnalyzer(nodes, edges, max_nodes=options.max_analysis_nodes).analyze()
        lines.extend(format_analysis(analysis, nodes, edges))

    return "\n".join(lines).strip()


def canvas_summary(nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> str:
    """One-line description of the canvas for status displays."""
    if not nodes:
        return "Empty canvas"
    analyzer = GraphAnalyzer(nodes, edges)
    summary = f"Canvas with {len(nodes)} nodes and {len(edges)} edges"
    connected = [nid for nid in (n.id for n in nodes) if analyzer.degree(nid) > 0]
    if connected:
        top = max(connected, key=analyzer.degree)
        summary += f'. Main focus: "{analyzer.label(top)}" ({analyzer.degree(top)} connections)'
    clusters = analyzer.clusters()
    if clusters:
        summary += f". {len(clusters)} connected groups"
    isolated = analyzer.isolated_nodes()
    if isolated:
        summary += f". {len(isolated)} isolated nodes"
    return summary
