"""
Turn raw model text into exactly one ParsedAction.

Envelope problems (no usable payload) become an ErrorAction; problems with
individual entries drop that entry and are reported as ValidationDropped
records next to the action. Nothing in here raises.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from ..utils.json_utils import extract_json_object
from .models import (
    AddAction,
    AnswerAction,
    ClarifyAction,
    EdgeSpec,
    ErrorAction,
    NodeSpec,
    NodeUpdateSpec,
    ParsedAction,
    Point,
    RelativePosition,
    ShapeKind,
    UpdateAction,
    ValidationDropped,
)

logger = logging.getLogger(__name__)

DEFAULT_CLARIFY_CONTEXT = "I need more information to help you."


@dataclass
class ParseOutcome:
    action: ParsedAction
    dropped: list[ValidationDropped] = field(default_factory=list)


def _text(value: Any) -> str | None:
    """Stripped non-empty string, else None."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _point(value: Any) -> Point | None:
    if not isinstance(value, dict):
        return None
    x, y = _number(value.get("x")), _number(value.get("y"))
    if x is None or y is None:
        return None
    return Point(x=x, y=y)


def validate_node(raw: Any) -> tuple[NodeSpec | None, str | None]:
    """Returns (spec, None) or (None, reason)."""
    if not isinstance(raw, dict):
        return None, "node entry is not an object"
    label = _text(raw.get("label"))
    if label is None:
        return None, "missing or non-string label"

    relative = None
    rel = raw.get("positionRelative", raw.get("relativePosition"))
    if isinstance(rel, dict):
        ref = _text(rel.get("relativeTo"))
        if ref is not None:
            relative = RelativePosition(relative_to=ref, offset=_point(rel.get("offset")))

    tags = raw.get("tags")
    return NodeSpec(
        label=label,
        shape=ShapeKind.coerce(raw.get("type", raw.get("shape"))),
        position=_point(raw.get("position")),
        relative=relative,
        tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
    ), None


def validate_edge(raw: Any) -> tuple[EdgeSpec | None, str | None]:
    if not isinstance(raw, dict):
        return None, "edge entry is not an object"
    source, target = _text(raw.get("source")), _text(raw.get("target"))
    if source is None or target is None:
        return None, "missing or non-string source/target"
    return EdgeSpec(source=source, target=target, label=_text(raw.get("label"))), None


def validate_update(raw: Any) -> tuple[NodeUpdateSpec | None, str | None]:
    if not isinstance(raw, dict):
        return None, "update entry is not an object"
    node_id, node_label = _text(raw.get("nodeId")), _text(raw.get("nodeLabel"))
    new_label = _text(raw.get("newLabel"))
    if node_id is None and node_label is None:
        return None, "missing nodeId/nodeLabel"
    if new_label is None:
        return None, "missing or empty newLabel"
    return NodeUpdateSpec(node_id=node_id, node_label=node_label, new_label=new_label), None


def _collect(items: Any, validator, entry: str) -> tuple[list, list[ValidationDropped]]:
    valid, dropped = [], []
    for index, raw in enumerate(items if isinstance(items, list) else []):
        spec, reason = validator(raw)
        if spec is None:
            dropped.append(ValidationDropped(entry=entry, index=index, reason=reason))
        else:
            valid.append(spec)
    return valid, dropped


def _parse_add(data: dict) -> ParseOutcome:
    if not isinstance(data.get("nodes"), list):
        return ParseOutcome(ErrorAction(message="Invalid ADD response: missing or invalid nodes array"))
    nodes, dropped = _collect(data["nodes"], validate_node, "node")
    if not nodes:
        return ParseOutcome(ErrorAction(message="Invalid ADD response: no valid nodes found"), dropped)
    edges, dropped_edges = _collect(data.get("edges"), validate_edge, "edge")
    explanation = _text(data.get("explanation"))
    if explanation is None:
        explanation = f"Added {len(nodes)} node(s)" + (f" and {len(edges)} edge(s)" if edges else "")
    return ParseOutcome(AddAction(nodes=nodes, edges=edges, explanation=explanation), dropped + dropped_edges)


def _parse_answer(data: dict, raw_text: str) -> ParseOutcome:
    text = _text(data.get("response")) or raw_text.strip()
    if not text:
        return ParseOutcome(ErrorAction(message="Invalid ANSWER response: empty response"))
    return ParseOutcome(AnswerAction(text=text))


def _parse_clarify(data: dict) -> ParseOutcome:
    raw_questions = data.get("questions")
    if not isinstance(raw_questions, list):
        return ParseOutcome(ErrorAction(message="Invalid CLARIFY response: missing or invalid questions array"))
    questions, dropped = [], []
    for index, q in enumerate(raw_questions):
        text = _text(q)
        if text is None:
            dropped.append(ValidationDropped(entry="question", index=index, reason="empty or non-string question"))
        else:
            questions.append(text)
    if not questions:
        return ParseOutcome(ErrorAction(message="Invalid CLARIFY response: no valid questions found"), dropped)
    context = _text(data.get("context")) or DEFAULT_CLARIFY_CONTEXT
    return ParseOutcome(ClarifyAction(questions=questions, context=context), dropped)


def _parse_update(data: dict) -> ParseOutcome:
    if not isinstance(data.get("nodeUpdates"), list):
        return ParseOutcome(ErrorAction(message="Invalid UPDATE response: missing or invalid nodeUpdates array"))
    updates, dropped = _collect(data["nodeUpdates"], validate_update, "update")
    if not updates:
        return ParseOutcome(ErrorAction(message="Invalid UPDATE response: no valid node updates found"), dropped)
    explanation = _text(data.get("explanation")) or f"Updated {len(updates)} node(s)"
    return ParseOutcome(UpdateAction(node_updates=updates, explanation=explanation), dropped)


def _dispatch(data: dict, raw_text: str) -> ParseOutcome:
    action = data.get("action")
    kind = action.strip().lower() if isinstance(action, str) else ""
    if kind == "add":
        return _parse_add(data)
    if kind == "answer":
        return _parse_answer(data, raw_text)
    if kind == "clarify":
        return _parse_clarify(data)
    if kind == "update":
        return _parse_update(data)
    if "response" in data:
        return _parse_answer(data, raw_text)
    if "nodes" in data:
        return _parse_add(data)
    if kind:
        return ParseOutcome(ErrorAction(message=f"Unknown action type: {kind}"))
    return ParseOutcome(ErrorAction(message="Invalid response: missing or invalid action field"))


def parse_response(text: str | None) -> ParseOutcome:
    """Parse a model reply into one action plus any dropped entries."""
    if not isinstance(text, str) or not text.strip():
        return ParseOutcome(ErrorAction(message="Invalid response: empty reply"))

    data = extract_json_object(text)
    if data is None:
        return ParseOutcome(AnswerAction(text=text.strip()))

    try:
        outcome = _dispatch(data, text)
    except ValueError as e:
        # pydantic ValidationError subclasses ValueError
        logger.warning("Reply payload failed validation: %s", e)
        return ParseOutcome(ErrorAction(message="Invalid response: payload failed validation"))

    for d in outcome.dropped:
        logger.warning("Dropped %s #%d from reply: %s", d.entry, d.index, d.reason)
    return outcome


def parse_action(text: str | None) -> ParsedAction:
    return parse_response(text).action
