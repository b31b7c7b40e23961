"""
Structural analysis of the canvas graph.

Edges are treated as undirected for connectivity. All traversals follow the
insertion order of nodes and edges so results are reproducible run to run.
Betweenness and the naive bridge test are cubic/quadratic; graphs above
``max_nodes`` skip betweenness and use networkx articulation points instead.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence

import networkx as nx
from pydantic import BaseModel, Field

from ..errors import NodeNotFoundError
from .models import GraphEdge, GraphNode

DEFAULT_MAX_ANALYSIS_NODES = 150


class PathResult(BaseModel):
    path: list[str]
    edges: list[GraphEdge] = Field(default_factory=list)
    length: int


class CentralityMetrics(BaseModel):
    node_id: str
    label: str
    degree: int
    betweenness: float
    closeness: float

    @property
    def score(self) -> float:
        return 0.4 * self.degree + 0.4 * self.betweenness + 0.2 * self.closeness


class Cluster(BaseModel):
    id: str
    nodes: list[str]
    size: int
    density: float
    central_node: str


class RelationshipInsight(BaseModel):
    source_id: str
    target_id: str
    source_label: str
    target_label: str
    shortest_path: PathResult | None = None
    path_length: float
    directly_connected: bool
    common_neighbors: list[str] = Field(default_factory=list)
    relationship_strength: float


class GraphAnalysis(BaseModel):
    central_nodes: list[CentralityMetrics] = Field(default_factory=list)
    clusters: list[Cluster] = Field(default_factory=list)
    isolated_nodes: list[str] = Field(default_factory=list)
    bridge_nodes: list[str] = Field(default_factory=list)
    average_path_length: float = 0.0
    density: float = 0.0
    betweenness_skipped: bool = False


class GraphAnalyzer:
    """Read-only analysis over one snapshot of nodes and edges."""

    def __init__(self, nodes: Sequence[GraphNode], edges: Sequence[GraphEdge],
                 max_nodes: int = DEFAULT_MAX_ANALYSIS_NODES):
        self.nodes = list(nodes)
        self.max_nodes = max_nodes
        self._by_id: dict[str, GraphNode] = {}
        for node in self.nodes:
            self._by_id.setdefault(node.id, node)
        # Only edges between known, distinct nodes take part in the analysis
        self.edges = [
            e for e in edges
            if e.source in self._by_id and e.target in self._by_id and e.source != e.target
        ]
        self._adj: dict[str, dict[str, None]] = {nid: {} for nid in self._by_id}
        for e in self.edges:
            self._adj[e.source][e.target] = None
            self._adj[e.target][e.source] = None
        self._pairs = {frozenset((e.source, e.target)) for e in self.edges}
        self._graph = nx.Graph()
        self._graph.add_nodes_from(self._by_id)
        self._graph.add_edges_from((e.source, e.target) for e in self.edges)
        self._order = {nid: i for i, nid in enumerate(self._by_id)}
        self._bfs_cache: dict[str, dict[str, str | None]] = {}

    @property
    def oversized(self) -> bool:
        return len(self._by_id) > self.max_nodes

    def label(self, node_id: str) -> str:
        node = self._by_id.get(node_id)
        return node.display_label if node else node_id

    def neighbors(self, node_id: str) -> list[str]:
        return list(self._adj.get(node_id, {}))

    def degree(self, node_id: str) -> int:
        return len(self._adj.get(node_id, {}))

    # Paths

    def _bfs_parents(self, source: str) -> dict[str, str | None]:
        cached = self._bfs_cache.get(source)
        if cached is not None:
            return cached
        parents: dict[str, str | None] = {source: None}
        queue = deque([source])
        while queue:
            current = queue.popleft()
            for nb in self._adj.get(current, {}):
                if nb not in parents:
                    parents[nb] = current
                    queue.append(nb)
        self._bfs_cache[source] = parents
        return parents

    def _edge_between(self, a: str, b: str) -> GraphEdge | None:
        for e in self.edges:
            if (e.source == a and e.target == b) or (e.source == b and e.target == a):
                return e
        return None

    def _path_result(self, path: list[str]) -> PathResult:
        edges = []
        for a, b in zip(path, path[1:]):
            edge = self._edge_between(a, b)
            if edge is not None:
                edges.append(edge)
        return PathResult(path=path, edges=edges, length=len(path) - 1)

    def _shortest_ids(self, source: str, target: str) -> list[str] | None:
        if source == target:
            return [source] if source in self._adj else None
        parents = self._bfs_parents(source) if source in self._adj else {}
        if target not in parents:
            return None
        path = [target]
        while path[-1] != source:
            path.append(parents[path[-1]])
        path.reverse()
        return path

    def find_path(self, source: str, target: str) -> PathResult | None:
        """Shortest path by BFS, or None when unreachable."""
        ids = self._shortest_ids(source, target)
        return self._path_result(ids) if ids else None

    def find_all_paths(self, source: str, target: str, max_depth: int = 5) -> list[PathResult]:
        """Every simple path up to ``max_depth`` hops, shortest first."""
        if source == target:
            return [PathResult(path=[source], length=0)] if source in self._adj else []
        found: list[list[str]] = []
        visited = {source}

        def dfs(current: str, path: list[str], depth: int) -> None:
            if depth > max_depth:
                return
            if current == target:
                found.append(list(path))
                return
            for nb in self._adj.get(current, {}):
                if nb not in visited:
                    visited.add(nb)
                    path.append(nb)
                    dfs(nb, path, depth + 1)
                    path.pop()
                    visited.discard(nb)

        dfs(source, [source], 0)
        found.sort(key=len)
        return [self._path_result(p) for p in found]

    # Centrality

    def betweenness(self, node_id: str) -> float:
        ids = list(self._by_id)
        total = 0.0
        for i, a in enumerate(ids):
            if a == node_id:
                continue
            for b in ids[i + 1:]:
                if b == node_id:
                    continue
                path = self._shortest_ids(a, b)
                if path and node_id in path:
                    total += 1.0 / (len(path) - 1)
        return total

    def closeness(self, node_id: str) -> float:
        parents = self._bfs_parents(node_id)
        distances = self._distances(node_id, parents)
        reachable = [d for nid, d in distances.items() if nid != node_id]
        if not reachable:
            return 0.0
        return len(reachable) / sum(reachable)

    def _distances(self, source: str, parents: dict[str, str | None]) -> dict[str, int]:
        dist = {source: 0}
        # parents is in BFS discovery order, so each parent is resolved first
        for nid, parent in parents.items():
            if parent is not None:
                dist[nid] = dist[parent] + 1
        return dist

    def centrality(self) -> list[CentralityMetrics]:
        skip = self.oversized
        return [
            CentralityMetrics(
                node_id=nid,
                label=self.label(nid),
                degree=self.degree(nid),
                betweenness=0.0 if skip else self.betweenness(nid),
                closeness=self.closeness(nid),
            )
            for nid in self._by_id
        ]

    def central_nodes(self, top_n: int = 5) -> list[CentralityMetrics]:
        ranked = sorted(self.centrality(), key=lambda m: m.score, reverse=True)
        return ranked[:top_n]

    # Structure

    def _components(self, excluded: str | None = None) -> list[list[str]]:
        """Connected components, members in node order."""
        graph = self._graph
        if excluded is not None:
            graph = graph.subgraph(n for n in self._by_id if n != excluded)
        return [sorted(c, key=self._order.__getitem__) for c in nx.connected_components(graph)]

    def clusters(self) -> list[Cluster]:
        clusters = []
        for component in self._components():
            if len(component) < 2:
                continue
            members = set(component)
            inner = sum(1 for pair in self._pairs if pair <= members)
            max_edges = len(component) * (len(component) - 1) / 2
            central = max(component, key=self.degree)
            clusters.append(Cluster(
                id=f"cluster-{len(clusters) + 1}",
                nodes=component,
                size=len(component),
                density=inner / max_edges if max_edges else 0.0,
                central_node=central,
            ))
        clusters.sort(key=lambda c: c.size, reverse=True)
        return clusters

    def isolated_nodes(self) -> list[str]:
        return [nid for nid in self._by_id if not self._adj[nid]]

    def bridge_nodes(self) -> list[str]:
        """Nodes whose removal leaves the rest of the graph in more than one piece."""
        if self.oversized:
            points = set(nx.articulation_points(self._graph))
            return [nid for nid in self._by_id if nid in points]
        if len(self._by_id) < 2:
            return []
        return [nid for nid in self._by_id if len(self._components(excluded=nid)) > 1]

    def average_path_length(self) -> float:
        total = 0
        count = 0
        ids = list(self._by_id)
        for i, a in enumerate(ids):
            dist = self._distances(a, self._bfs_parents(a))
            for b in ids[i + 1:]:
                if b in dist:
                    total += dist[b]
                    count += 1
        return total / count if count else 0.0

    def density(self) -> float:
        n = len(self._by_id)
        max_edges = n * (n - 1) / 2
        return len(self._pairs) / max_edges if max_edges else 0.0

    def analyze(self, top_n: int = 5) -> GraphAnalysis:
        return GraphAnalysis(
            central_nodes=self.central_nodes(top_n),
            clusters=self.clusters(),
            isolated_nodes=self.isolated_nodes(),
            bridge_nodes=self.bridge_nodes(),
            average_path_length=self.average_path_length(),
            density=self.density(),
            betweenness_skipped=self.oversized,
        )

    def analyze_relationship(self, source_id: str, target_id: str) -> RelationshipInsight:
        for nid in (source_id, target_id):
            if nid not in self._by_id:
                raise NodeNotFoundError(nid)
        source_nb = self._adj[source_id]
        target_nb = self._adj[target_id]
        direct = target_id in source_nb
        common = [nid for nid in source_nb if nid in target_nb]
        path = self.find_path(source_id, target_id)

        strength = 0.0
        if direct:
            strength = 1.0
        elif path is not None:
            strength = 1.0 / (path.length + 1)
        strength += 0.1 * len(common)

        return RelationshipInsight(
            source_id=source_id,
            target_id=target_id,
            source_label=self.label(source_id),
            target_label=self.label(target_id),
            shortest_path=path,
            path_length=path.length if path is not None else float("inf"),
            directly_connected=direct,
            common_neighbors=common,
            relationship_strength=min(1.0, strength),
        )


def analyze_graph(nodes: Iterable[GraphNode], edges: Iterable[GraphEdge],
                  max_nodes: int = DEFAULT_MAX_ANALYSIS_NODES) -> GraphAnalysis:
    """Convenience wrapper returning the full structural summary."""
    return GraphAnalyzer(list(nodes), list(edges), max_nodes=max_nodes).analyze()
