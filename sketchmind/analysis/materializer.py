"""
Turn validated node/edge proposals into concrete graph elements.

Placement never fails: every adjustment (overlap avoidance, clamping,
unresolved references) is reported as a warning. Edges that cannot be
resolved are dropped with an error entry.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pydantic import BaseModel, Field

from .models import EdgeSpec, GraphEdge, GraphNode, LabelUpdate, NodeSpec, NodeUpdateSpec, Point

NODE_WIDTH = 150
NODE_HEIGHT = 80
NODE_PADDING = 20
CHAR_WIDTH = 8
LABEL_MARGIN = 40
DEFAULT_SPACING = 150
CANVAS_CENTER = Point(x=400, y=300)
SPIRAL_ATTEMPTS = 20
SPIRAL_STEP_DEGREES = 30
SPIRAL_GROWTH = 10
GRID_THRESHOLD = 3
CARDINAL_MAJOR = 100
CARDINAL_MINOR = 50


class CanvasBounds(BaseModel):
    min_x: float | None = None
    max_x: float | None = None
    min_y: float | None = None
    max_y: float | None = None

    def clamp(self, p: Point) -> Point:
        x, y = p.x, p.y
        if self.min_x is not None:
            x = max(self.min_x, x)
        if self.max_x is not None:
            x = min(self.max_x, x)
        if self.min_y is not None:
            y = max(self.min_y, y)
        if self.max_y is not None:
            y = min(self.max_y, y)
        return Point(x=x, y=y)

    def contains(self, p: Point) -> bool:
        return self.clamp(p) == p

    @property
    def center(self) -> Point:
        min_x = 0 if self.min_x is None else self.min_x
        max_x = 800 if self.max_x is None else self.max_x
        min_y = 0 if self.min_y is None else self.min_y
        max_y = 600 if self.max_y is None else self.max_y
        return Point(x=(min_x + max_x) / 2, y=(min_y + max_y) / 2)


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float = NODE_HEIGHT

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def conflicts(self, other: Box, padding: float = NODE_PADDING) -> bool:
        """True unless the boxes are at least ``padding`` apart on some axis."""
        gap_x = max(other.x - self.right, self.x - other.right)
        gap_y = max(other.y - self.bottom, self.y - other.bottom)
        return gap_x < padding and gap_y < padding


def label_width(label: str) -> float:
    longest = max((len(line) for line in label.split("\n")), default=0)
    return max(NODE_WIDTH, longest * CHAR_WIDTH + LABEL_MARGIN)


def node_box(node: GraphNode) -> Box:
    return Box(node.position.x, node.position.y, label_width(node.label))


def box_at(position: Point, label: str) -> Box:
    return Box(position.x, position.y, label_width(label))


def _norm(text: str) -> str:
    return text.strip().lower()


class NodeResolver:
    """Resolves a reference to a node: exact id first, then case-insensitive label.

    Existing nodes take precedence over nodes created in the current batch.
    """

    def __init__(self, existing: Iterable[GraphNode] = ()):
        self.existing: list[GraphNode] = list(existing)
        self.created: list[GraphNode] = []
        self._existing_ids = {n.id: n for n in self.existing}
        self._created_ids: dict[str, GraphNode] = {}

    def add(self, node: GraphNode) -> None:
        self.created.append(node)
        self._created_ids[node.id] = node

    def resolve(self, reference: str | None) -> GraphNode | None:
        if not reference or not reference.strip():
            return None
        ref = reference.strip()
        for ids in (self._existing_ids, self._created_ids):
            if ref in ids:
                return ids[ref]
        key = _norm(ref)
        for pool in (self.existing, self.created):
            for node in pool:
                if node.label and _norm(node.label) == key:
                    return node
        return None

    def all_nodes(self) -> list[GraphNode]:
        return self.existing + self.created


class MaterializeResult(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    next_id_counter: int
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def cardinal_direction(offset: Point | None) -> str | None:
    """Name the side an offset points to when it is clearly along one axis."""
    if offset is None:
        return "right"
    if offset.x > CARDINAL_MAJOR and abs(offset.y) < CARDINAL_MINOR:
        return "right"
    if offset.x < -CARDINAL_MAJOR and abs(offset.y) < CARDINAL_MINOR:
        return "left"
    if offset.y > CARDINAL_MAJOR and abs(offset.x) < CARDINAL_MINOR:
        return "below"
    if offset.y < -CARDINAL_MAJOR and abs(offset.x) < CARDINAL_MINOR:
        return "above"
    return None


def touching_position(ref: GraphNode, direction: str, label: str) -> Point:
    """Place a box on one side of ``ref`` separated by exactly the padding."""
    ref_box = node_box(ref)
    if direction == "left":
        return Point(x=ref_box.x - label_width(label) - NODE_PADDING, y=ref_box.y)
    if direction == "below":
        return Point(x=ref_box.x, y=ref_box.bottom + NODE_PADDING)
    if direction == "above":
        return Point(x=ref_box.x, y=ref_box.y - NODE_HEIGHT - NODE_PADDING)
    return Point(x=ref_box.right + NODE_PADDING, y=ref_box.y)


class _Placer:
    def __init__(self, resolver: NodeResolver, spacing: float, bounds: CanvasBounds | None):
        self.resolver = resolver
        self.spacing = spacing
        self.bounds = bounds
        self.boxes: list[Box] = [node_box(n) for n in resolver.existing]

    def clamp(self, p: Point) -> Point:
        return self.bounds.clamp(p) if self.bounds else p

    def center(self) -> Point:
        return self.bounds.center if self.bounds else CANVAS_CENTER

    def has_conflict(self, position: Point, label: str) -> bool:
        candidate = box_at(position, label)
        return any(candidate.conflicts(b) for b in self.boxes)

    def rightmost(self) -> Box | None:
        return max(self.boxes, key=lambda b: b.right, default=None)

    def centroid_position(self) -> Point:
        nodes = self.resolver.all_nodes()
        if not nodes:
            return self.center()
        cx = sum(n.position.x for n in nodes) / len(nodes)
        cy = sum(n.position.y for n in nodes) / len(nodes)
        return self.clamp(Point(x=cx + self.spacing, y=cy))

    def grid_origin(self) -> Point:
        right = self.rightmost()
        if right is None:
            return self.center()
        return Point(x=right.right + NODE_PADDING * 2, y=right.y)

    def avoid_overlap(self, position: Point, label: str) -> Point:
        for attempt in range(SPIRAL_ATTEMPTS):
            angle = math.radians(attempt * SPIRAL_STEP_DEGREES)
            distance = NODE_WIDTH + NODE_PADDING + attempt * SPIRAL_GROWTH
            candidate = self.clamp(Point(
                x=position.x + math.cos(angle) * distance,
                y=position.y + math.sin(angle) * distance,
            ))
            if not self.has_conflict(candidate, label):
                return candidate
        right = self.rightmost()
        if right is None:
            return position
        return self.clamp(Point(x=right.right + NODE_PADDING, y=right.y))

    def commit(self, node: GraphNode) -> None:
        self.boxes.append(node_box(node))
        self.resolver.add(node)


def _next_id(counter: int, used: set[str]) -> tuple[str, int]:
    while str(counter) in used:
        counter += 1
    return str(counter), counter + 1


def materialize(nodes: Sequence[NodeSpec], edges: Sequence[EdgeSpec],
                existing_nodes: Sequence[GraphNode], existing_edges: Sequence[GraphEdge],
                id_counter: int, default_spacing: float = DEFAULT_SPACING,
                canvas_bounds: CanvasBounds | None = None) -> MaterializeResult:
    """Place proposed nodes without overlap and resolve proposed edges."""
    resolver = NodeResolver(existing_nodes)
    placer = _Placer(resolver, default_spacing, canvas_bounds)
    errors: list[str] = []
    warnings: list[str] = []
    used_ids = {n.id for n in existing_nodes}
    counter = id_counter

    unpositioned = [spec for spec in nodes if not spec.has_position_hint]
    use_grid = len(unpositioned) >= GRID_THRESHOLD
    grid_origin = placer.grid_origin() if use_grid else None
    columns = math.ceil(math.sqrt(len(unpositioned))) if use_grid else 0
    column_width = max((label_width(s.label) for s in unpositioned), default=NODE_WIDTH) + NODE_PADDING
    grid_index = 0

    created: list[GraphNode] = []
    for spec in nodes:
        label = spec.label.strip()
        if not label:
            errors.append("Node missing label, skipping")
            continue

        position: Point | None = None
        if spec.position is not None:
            position = placer.clamp(spec.position)
        elif spec.relative is not None:
            ref = resolver.resolve(spec.relative.relative_to)
            if ref is None:
                warnings.append(
                    f'Could not resolve "{spec.relative.relative_to}" for node "{label}", placing automatically'
                )
            else:
                direction = cardinal_direction(spec.relative.offset)
                if direction is not None:
                    position = touching_position(ref, direction, label)
                else:
                    offset = spec.relative.offset
                    position = Point(x=ref.position.x + offset.x, y=ref.position.y + offset.y)
                position = placer.clamp(position)
        elif use_grid:
            row, col = divmod(grid_index, columns)
            grid_index += 1
            position = placer.clamp(Point(
                x=grid_origin.x + col * column_width,
                y=grid_origin.y + row * (NODE_HEIGHT + NODE_PADDING),
            ))
        if position is None:
            position = placer.centroid_position()

        if placer.has_conflict(position, label):
            position = placer.avoid_overlap(position, label)
            warnings.append(f'Adjusted position for node "{label}" to avoid overlap')
            if placer.has_conflict(position, label):
                warnings.append(f'Node "{label}" still overlaps after adjustment within canvas bounds')
        if canvas_bounds and not canvas_bounds.contains(position):
            position = canvas_bounds.clamp(position)
            warnings.append(f'Clamped position for node "{label}" to canvas bounds')

        node_id, counter = _next_id(counter, used_ids)
        used_ids.add(node_id)
        node = GraphNode(id=node_id, shape=spec.shape, label=label, tags=list(spec.tags), position=position)
        placer.commit(node)
        created.append(node)

    new_edges = _resolve_edges(edges, resolver, existing_edges, errors, warnings)
    return MaterializeResult(
        nodes=created, edges=new_edges, next_id_counter=counter, errors=errors, warnings=warnings,
    )


def _resolve_edges(edges: Sequence[EdgeSpec], resolver: NodeResolver,
                   existing_edges: Sequence[GraphEdge], errors: list[str],
                   warnings: list[str]) -> list[GraphEdge]:
    existing_pairs = {(e.source, e.target) for e in existing_edges}
    used_ids = {e.id for e in existing_edges}
    batch_pairs: set[tuple[str, str]] = set()
    result: list[GraphEdge] = []

    for spec in edges:
        source = resolver.resolve(spec.source)
        if source is None:
            errors.append(f'Cannot resolve source node: "{spec.source}"')
            continue
        target = resolver.resolve(spec.target)
        if target is None:
            errors.append(f'Cannot resolve target node: "{spec.target}"')
            continue
        if source.id == target.id:
            warnings.append(f'Skipping self-referencing edge from "{spec.source}"')
            continue
        pair = (source.id, target.id)
        if pair in batch_pairs:
            warnings.append(f'Duplicate edge from "{spec.source}" to "{spec.target}", skipping')
            continue
        if pair in existing_pairs:
            warnings.append(f'Edge from "{spec.source}" to "{spec.target}" already exists, skipping')
            continue
        batch_pairs.add(pair)

        edge_id = base = f"e{source.id}-{target.id}"
        suffix = 2
        while edge_id in used_ids:
            edge_id = f"{base}-{suffix}"
            suffix += 1
        used_ids.add(edge_id)
        result.append(GraphEdge(id=edge_id, source=source.id, target=target.id, label=spec.label))
    return result


def resolve_label_updates(updates: Sequence[NodeUpdateSpec],
                          existing_nodes: Sequence[GraphNode]) -> tuple[list[LabelUpdate], list[str]]:
    """Resolve rename targets with the same id-then-label lookup used for edges."""
    resolver = NodeResolver(existing_nodes)
    resolved: list[LabelUpdate] = []
    errors: list[str] = []
    for update in updates:
        node = resolver.resolve(update.node_id) or resolver.resolve(update.node_label)
        if node is None:
            errors.append(f'Cannot resolve node to update: "{update.reference}"')
            continue
        resolved.append(LabelUpdate(node_id=node.id, old_label=node.label, new_label=update.new_label))
    return resolved, errors
