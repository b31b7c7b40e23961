"""Builders shared by several test modules."""

from sketchmind.analysis.models import GraphNode, Point


def make_node(node_id, label, x=0.0, y=0.0, **kwargs):
    return GraphNode(id=node_id, label=label, position=Point(x=x, y=y), **kwargs)
