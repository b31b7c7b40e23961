"""Pydantic models shared by every pipeline stage."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator


class ShapeKind(str, Enum):
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    DIAMOND = "diamond"
    TRIANGLE = "triangle"

    @classmethod
    def coerce(cls, value: object) -> ShapeKind:
        """Return the matching member, or the default shape for anything else."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.RECTANGLE


class Intent(str, Enum):
    ADD_NODES = "ADD_NODES"
    QUERY_RELATIONSHIPS = "QUERY_RELATIONSHIPS"
    EXPLORE_STRUCTURE = "EXPLORE_STRUCTURE"
    SIMULATE = "SIMULATE"
    MODIFY = "MODIFY"
    CLARIFICATION_NEEDED = "CLARIFICATION_NEEDED"
    UNKNOWN = "UNKNOWN"


class Point(BaseModel):
    x: float
    y: float


class GraphNode(BaseModel):
    """A shape on the canvas. The label is the node's semantic content."""
    id: str
    shape: ShapeKind = ShapeKind.RECTANGLE
    label: str = ""
    tags: list[str] = Field(default_factory=list)
    position: Point = Field(default_factory=lambda: Point(x=0, y=0))

    @property
    def display_label(self) -> str:
        return self.label or self.id or "Unnamed Node"


class GraphEdge(BaseModel):
    """A connector between two nodes with an optional relationship label."""
    id: str
    source: str
    target: str
    label: str | None = None

    @model_validator(mode="after")
    def _reject_self_edge(self) -> GraphEdge:
        if self.source == self.target:
            raise ValueError(f"Self-edge on node {self.source!r} is not allowed")
        return self


class Graph(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ClassificationResult(BaseModel):
    intent: Intent
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


# Proposals coming back from the model

class RelativePosition(BaseModel):
    relative_to: str
    offset: Point | None = None


class NodeSpec(BaseModel):
    label: str
    shape: ShapeKind = ShapeKind.RECTANGLE
    position: Point | None = None
    relative: RelativePosition | None = None
    tags: list[str] = Field(default_factory=list)

    @property
    def has_position_hint(self) -> bool:
        return self.position is not None or self.relative is not None


class EdgeSpec(BaseModel):
    source: str
    target: str
    label: str | None = None


class NodeUpdateSpec(BaseModel):
    node_id: str | None = None
    node_label: str | None = None
    new_label: str

    @property
    def reference(self) -> str:
        return self.node_id or self.node_label or ""


class AddAction(BaseModel):
    kind: Literal["add"] = "add"
    nodes: list[NodeSpec]
    edges: list[EdgeSpec] = Field(default_factory=list)
    explanation: str = ""


class AnswerAction(BaseModel):
    kind: Literal["answer"] = "answer"
    text: str


class ClarifyAction(BaseModel):
    kind: Literal["clarify"] = "clarify"
    questions: list[str]
    context: str = ""


class UpdateAction(BaseModel):
    kind: Literal["update"] = "update"
    node_updates: list[NodeUpdateSpec]
    explanation: str = ""


class ErrorAction(BaseModel):
    kind: Literal["error"] = "error"
    message: str


class ComplexityWarningAction(BaseModel):
    kind: Literal["complexity_warning"] = "complexity_warning"
    message: str


ParsedAction = Annotated[
    Union[AddAction, AnswerAction, ClarifyAction, UpdateAction, ErrorAction, ComplexityWarningAction],
    Field(discriminator="kind"),
]


class ValidationDropped(BaseModel):
    """A single entry discarded while validating an otherwise usable reply."""
    entry: Literal["node", "edge", "question", "update"]
    index: int
    reason: str


# Budget and conversation state

WarningLevel = Literal["none", "info", "warning", "critical"]


class ElementCounts(BaseModel):
    messages: int = 0
    nodes: int = 0
    edges: int = 0


class ContextWarning(BaseModel):
    level: WarningLevel
    token_count: int
    token_limit: int
    percentage: float
    message: str
    included: ElementCounts = Field(default_factory=ElementCounts)
    truncated: ElementCounts = Field(default_factory=ElementCounts)

    @property
    def blocks_send(self) -> bool:
        return self.level == "critical"


class ClarificationState(BaseModel):
    questions: list[str]
    context: str = ""
    original_intent: Intent
    original_utterance: str
    answers: dict[int, str] = Field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return all(self.answers.get(i, "").strip() for i in range(len(self.questions)))

    def next_unanswered(self) -> int | None:
        for i in range(len(self.questions)):
            if not self.answers.get(i, "").strip():
                return i
        return None

    def with_answer(self, index: int, answer: str) -> ClarificationState:
        if index < 0 or index >= len(self.questions):
            raise IndexError(f"No clarification question at index {index}")
        answers = dict(self.answers)
        answers[index] = answer.strip()
        return self.model_copy(update={"answers": answers})

    def resumed_utterance(self) -> str:
        pairs = "\n".join(
            f"Q{i + 1}: {q}\nA{i + 1}: {self.answers.get(i, '')}"
            for i, q in enumerate(self.questions)
        )
        return f"{self.original_utterance}\n\n[Clarification Answers]\n{pairs}"


class LabelUpdate(BaseModel):
    node_id: str
    old_label: str
    new_label: str
