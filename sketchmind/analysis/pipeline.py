"""
Conversation pipeline: utterance plus graph in, proposed changes out.

classify -> serialize + budget -> build prompt -> call model (under deadline)
-> parse -> materialize. Every terminal outcome comes back as an action so the
caller can show it as an assistant message.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any

from ..errors import (
    ComplexityLimitError,
    ConcurrentSendError,
    DeadlineExceededError,
    ResponseFormatError,
    SketchMindError,
    user_message,
)
from ..llm.unified_client import UnifiedLLMClient
from .context_budget import ContextBudgetManager
from .context_serializer import SerializeOptions
from .graph_analyzer import DEFAULT_MAX_ANALYSIS_NODES
from .intent_classifier import classify_intent
from .materializer import DEFAULT_SPACING, CanvasBounds, materialize, resolve_label_updates
from .models import (
    AddAction,
    AnswerAction,
    ClarificationState,
    ClarifyAction,
    ClassificationResult,
    ComplexityWarningAction,
    ContextWarning,
    ConversationMessage,
    ErrorAction,
    Graph,
    GraphEdge,
    GraphNode,
    Intent,
    LabelUpdate,
    ParsedAction,
    UpdateAction,
)
from .prompt_builder import MAX_NODES_PER_REQUEST, build_prompt, build_system_instructions
from .response_parser import parse_response

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_MESSAGES = 15

_NUMBER_WORDS = {
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    "thirteen": 13, "fourteen": 14, "fifteen": 15, "sixteen": 16, "seventeen": 17,
    "eighteen": 18, "nineteen": 19, "twenty": 20, "dozen": 12, "thirty": 30, "fifty": 50,
}
_QUANTIFIERS = re.compile(r"\b(all|every|as many)\b")
_WORD = re.compile(r"[a-z]+|\d+")


class ConversationState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    APPLIED = "applied"
    AWAITING_CLARIFICATION = "awaiting_clarification"


@dataclass
class PipelineResult:
    action: ParsedAction | None = None
    warning: ContextWarning | None = None
    clarification_state: ClarificationState | None = None
    new_nodes: list[GraphNode] = field(default_factory=list)
    new_edges: list[GraphEdge] = field(default_factory=list)
    label_updates: list[LabelUpdate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    next_node_id: int | None = None
    state: ConversationState = ConversationState.IDLE
    blocked: bool = False
    error: str | None = None
    intent: ClassificationResult | None = None


def explicitly_requests_more(text: str, ceiling: int = MAX_NODES_PER_REQUEST) -> bool:
    """True when the user asked for more than ``ceiling`` items in so many words."""
    lowered = text.lower()
    if _QUANTIFIERS.search(lowered):
        return True
    for token in _WORD.findall(lowered):
        value = int(token) if token.isdigit() else _NUMBER_WORDS.get(token)
        if value is not None and value > ceiling:
            return True
    return False


def default_node_counter(nodes: Sequence[GraphNode]) -> int:
    numeric = [int(n.id) for n in nodes if n.id.isdigit()]
    return max(numeric) + 1 if numeric else len(nodes) + 1


def clarification_message(action: ClarifyAction) -> str:
    numbered = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(action.questions))
    return f"I need some clarification:\n\n{numbered}\n\n{action.context}"


class ConversationPipeline:
    """Runs one send from utterance to proposed graph changes."""

    def __init__(self, client: UnifiedLLMClient, budget: ContextBudgetManager | None = None,
                 config: dict[str, Any] | None = None, debug_logger=None):
        cfg = config if isinstance(config, dict) else {}
        self.client = client
        self.budget = budget or ContextBudgetManager.from_config(cfg)
        self.debug_logger = debug_logger
        self.history_messages = int(cfg.get("context", {}).get("history_messages", DEFAULT_HISTORY_MESSAGES))
        self.max_analysis_nodes = int(cfg.get("analysis", {}).get("max_analysis_nodes", DEFAULT_MAX_ANALYSIS_NODES))
        self.default_spacing = float(cfg.get("layout", {}).get("default_spacing", DEFAULT_SPACING))
        self.node_ceiling = int(cfg.get("analysis", {}).get("max_nodes_per_request", MAX_NODES_PER_REQUEST))

    @classmethod
    def from_config(cls, cfg: dict[str, Any], profile: str = "assistant", debug_logger=None,
                    provider=None, conversation_id: str | None = None) -> ConversationPipeline:
        client = UnifiedLLMClient(cfg, profile=profile, debug_logger=debug_logger,
                                  provider=provider, conversation_id=conversation_id)
        return cls(client, config=cfg, debug_logger=debug_logger)

    def _event(self, event_type: str, message: str, details: dict | None = None) -> None:
        if self.debug_logger:
            self.debug_logger.log_event(event_type, message, details)

    def process(self, utterance: str, graph: Graph | None = None,
                history: Sequence[ConversationMessage] = (),
                selected_node_ids: Sequence[str] = (),
                clarification_state: ClarificationState | None = None,
                previous_intent: Intent | None = None,
                node_id_counter: int | None = None,
                canvas_bounds: CanvasBounds | None = None) -> PipelineResult:
        graph = graph or Graph()
        text = (utterance or "").strip()

        if clarification_state is not None:
            state = clarification_state
            index = state.next_unanswered()
            if text and index is not None:
                state = state.with_answer(index, text)
            if not state.is_complete:
                return PipelineResult(clarification_state=state, state=ConversationState.AWAITING_CLARIFICATION)
            self._event("Clarification", "All questions answered, resuming", {"answers": state.answers})
            text = state.resumed_utterance()
            classification = ClassificationResult(
                intent=state.original_intent, confidence=1.0, reasoning="Resumed after clarification",
            )
        elif not text:
            return PipelineResult(warnings=["Empty message, nothing to send"])
        else:
            classification = classify_intent(text, previous_intent)

        result = PipelineResult(intent=classification)
        intent = classification.intent

        budget = self.budget.manage(
            build_system_instructions(intent),
            list(history)[-self.history_messages:] if self.history_messages > 0 else [],
            graph.nodes,
            graph.edges,
            SerializeOptions(prioritized_ids=tuple(selected_node_ids), max_analysis_nodes=self.max_analysis_nodes),
        )
        result.warning = budget.warning
        if budget.warning is not None and budget.warning.level in ("warning", "critical"):
            self._event("Context", budget.warning.message, budget.warning.model_dump())
        if not budget.can_send:
            result.blocked = True
            result.action = ErrorAction(message=budget.warning.message)
            result.error = budget.warning.message
            return result

        request = build_prompt(
            intent, budget.context, budget.messages, text,
            max_tokens=self.client.max_tokens, temperature=self.client.temperature,
        )
        try:
            reply = self.client.complete(request)
        except DeadlineExceededError as e:
            result.action = ComplexityWarningAction(message=e.user_message)
            result.error = str(e)
            return result
        except SketchMindError as e:
            result.action = ErrorAction(message=user_message(e))
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception("Unexpected failure calling the model")
            result.action = ErrorAction(message=user_message(e))
            result.error = f"{e.__class__.__name__}: {e}"
            return result
        if reply.error:
            result.action = ErrorAction(message=reply.error)
            result.error = reply.error
            return result

        outcome = parse_response(reply.content)
        result.warnings.extend(f"Dropped {d.entry} #{d.index}: {d.reason}" for d in outcome.dropped)
        return self._apply(outcome.action, result, text, graph, node_id_counter, canvas_bounds)

    def _apply(self, action: ParsedAction, result: PipelineResult, text: str, graph: Graph,
               node_id_counter: int | None, canvas_bounds: CanvasBounds | None) -> PipelineResult:
        if isinstance(action, AddAction):
            if len(action.nodes) > self.node_ceiling and not explicitly_requests_more(text, self.node_ceiling):
                limit = ComplexityLimitError(len(action.nodes), self.node_ceiling)
                logger.info("Withheld proposal: %s", limit)
                result.action = ComplexityWarningAction(message=limit.user_message)
                return result
            counter = node_id_counter if node_id_counter is not None else default_node_counter(graph.nodes)
            placed = materialize(
                action.nodes, action.edges, graph.nodes, graph.edges, counter,
                default_spacing=self.default_spacing, canvas_bounds=canvas_bounds,
            )
            result.new_nodes = placed.nodes
            result.new_edges = placed.edges
            result.next_node_id = placed.next_id_counter
            result.errors.extend(placed.errors)
            result.warnings.extend(placed.warnings)
            result.state = ConversationState.APPLIED
        elif isinstance(action, UpdateAction):
            updates, errors = resolve_label_updates(action.node_updates, graph.nodes)
            result.label_updates = updates
            result.errors.extend(errors)
            result.state = ConversationState.APPLIED
        elif isinstance(action, ClarifyAction):
            result.clarification_state = ClarificationState(
                questions=action.questions,
                context=action.context,
                original_intent=result.intent.intent,
                original_utterance=text,
            )
            result.state = ConversationState.AWAITING_CLARIFICATION
            self._event("Clarification", "Model asked for clarification", {"questions": action.questions})
        elif isinstance(action, AnswerAction):
            result.state = ConversationState.APPLIED
        elif isinstance(action, ErrorAction):
            logger.warning("Unusable reply: %s", action.message)
            result.error = action.message
            action = ErrorAction(message=ResponseFormatError.user_message)
        result.action = action
        return result


class ConversationSession:
    """Single-flight wrapper holding one conversation's state between sends."""

    def __init__(self, pipeline: ConversationPipeline):
        self.pipeline = pipeline
        self.state = ConversationState.IDLE
        self.clarification: ClarificationState | None = None
        self.previous_intent: Intent | None = None
        self._lock = Lock()

    def _run(self, utterance: str, graph: Graph | None,
             pending_answer: tuple[int, str] | None = None, **kwargs) -> PipelineResult:
        if not self._lock.acquire(blocking=False):
            raise ConcurrentSendError("A send is already in flight for this conversation")
        try:
            if pending_answer is not None:
                if self.clarification is None:
                    raise ValueError("No clarification is pending")
                index, text = pending_answer
                self.clarification = self.clarification.with_answer(index, text)
            resuming = self.clarification is not None
            self.state = ConversationState.PROCESSING
            try:
                result = self.pipeline.process(
                    utterance, graph,
                    clarification_state=self.clarification,
                    previous_intent=self.previous_intent,
                    **kwargs,
                )
            except Exception:
                self.state = ConversationState.AWAITING_CLARIFICATION if resuming else ConversationState.IDLE
                raise
            self.state = result.state
            self.clarification = result.clarification_state
            if isinstance(result.action, ClarifyAction):
                self.previous_intent = Intent.CLARIFICATION_NEEDED
            elif result.intent is not None:
                self.previous_intent = result.intent.intent
            return result
        finally:
            self._lock.release()

    def send(self, utterance: str, graph: Graph | None = None, **kwargs) -> PipelineResult:
        """Process a user message. While awaiting clarification it answers the next open question."""
        return self._run(utterance, graph, **kwargs)

    def answer(self, index: int, answer: str, graph: Graph | None = None, **kwargs) -> PipelineResult:
        """Answer a specific pending question; resumes the request once all are answered."""
        return self._run("", graph, pending_answer=(index, answer), **kwargs)

    def cancel(self) -> None:
        """Drop a pending clarification and return to idle."""
        self.clarification = None
        self.state = ConversationState.IDLE
