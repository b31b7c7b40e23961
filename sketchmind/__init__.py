"""Natural-language-to-diagram pipeline."""

from .analysis.models import Graph, GraphEdge, GraphNode, Intent, ShapeKind
from .analysis.pipeline import ConversationPipeline, ConversationSession, ConversationState, PipelineResult
from .utils.config_loader import load_config

__version__ = "0.1.0"

__all__ = [
    "ConversationPipeline",
    "ConversationSession",
    "ConversationState",
    "Graph",
    "GraphEdge",
    "GraphNode",
    "Intent",
    "PipelineResult",
    "ShapeKind",
    "load_config",
]
