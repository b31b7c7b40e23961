"""Context window management: token accounting, warnings and truncation."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..llm.tokenization import TokenCache, TokenEstimator
from .context_serializer import SerializeOptions, select_nodes, serialize_graph
from .graph_analyzer import GraphAnalyzer
from .models import ContextWarning, ConversationMessage, ElementCounts, GraphEdge, GraphNode, WarningLevel

logger = logging.getLogger(__name__)

REQUEST_OVERHEAD_TOKENS = 100
HISTORY_SHARE = 0.3


@dataclass(frozen=True)
class ContextLimits:
    """Token thresholds over one context window."""
    context_window: int = 200_000
    soft_limit: int = 150_000
    warning_limit: int = 180_000
    hard_limit: int = 190_000
    response_reserve: int = 20_000
    node_token_cost: int = 50
    edge_token_cost: int = 30
    context_overhead: int = 200

    def __post_init__(self):
        if not (0 < self.soft_limit <= self.warning_limit <= self.hard_limit <= self.context_window):
            raise ValueError("limits must satisfy 0 < soft <= warning <= hard <= context_window")

    @classmethod
    def for_window(cls, context_window: int, **overrides: Any) -> ContextLimits:
        """Derive thresholds as 75/90/95% of the window with a 10% reply reserve."""
        values = {
            "context_window": context_window,
            "soft_limit": int(context_window * 0.75),
            "warning_limit": int(context_window * 0.90),
            "hard_limit": int(context_window * 0.95),
            "response_reserve": int(context_window * 0.10),
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_config(cls, cfg: dict[str, Any] | None) -> ContextLimits:
        ctx = (cfg or {}).get("context", {}) if isinstance(cfg, dict) else {}
        extras = {k: int(ctx[k]) for k in ("node_token_cost", "edge_token_cost", "context_overhead") if k in ctx}
        window = int(ctx.get("context_window", cls.context_window))
        if any(k in ctx for k in ("soft_limit", "warning_limit", "hard_limit", "response_reserve")):
            derived = cls.for_window(window)
            return cls(
                context_window=window,
                soft_limit=int(ctx.get("soft_limit", derived.soft_limit)),
                warning_limit=int(ctx.get("warning_limit", derived.warning_limit)),
                hard_limit=int(ctx.get("hard_limit", derived.hard_limit)),
                response_reserve=int(ctx.get("response_reserve", derived.response_reserve)),
                **extras,
            )
        if window == cls.context_window:
            return cls(**extras)
        return cls.for_window(window, **extras)

    def level_for(self, tokens: int) -> WarningLevel:
        if tokens >= self.hard_limit:
            return "critical"
        if tokens >= self.warning_limit:
            return "warning"
        if tokens >= self.soft_limit:
            return "info"
        return "none"


@dataclass
class TokenBreakdown:
    total: int
    system: int
    messages: int
    context: int
    overhead: int = REQUEST_OVERHEAD_TOKENS


@dataclass
class BudgetResult:
    messages: list[ConversationMessage]
    context: str
    tokens: TokenBreakdown
    warning: ContextWarning | None = None
    included_nodes: int = 0
    included_edges: int = 0
    dropped_messages: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def can_send(self) -> bool:
        return self.warning is None or not self.warning.blocks_send


def _warning_message(level: WarningLevel, tokens: int, percentage: float) -> str:
    if level == "critical":
        return (
            f"Context limit nearly reached ({round(percentage)}%). The request cannot be sent. "
            "Simplify the canvas, select fewer nodes, or start a new conversation."
        )
    if level == "warning":
        return (
            f"Approaching context limit ({round(percentage)}%). "
            "Older messages were truncated and the canvas was summarized."
        )
    if level == "info":
        return f"Large canvas detected. Using ~{round(tokens / 1000)}k tokens. Some context may be summarized."
    return ""


class ContextBudgetManager:
    """Keeps the outgoing request under the configured context window."""

    def __init__(self, limits: ContextLimits | None = None, estimator: TokenEstimator | None = None):
        self.limits = limits or ContextLimits()
        self.estimator = estimator or TokenEstimator(TokenCache())

    @classmethod
    def from_config(cls, cfg: dict[str, Any] | None, estimator: TokenEstimator | None = None) -> ContextBudgetManager:
        ctx = (cfg or {}).get("context", {}) if isinstance(cfg, dict) else {}
        if estimator is None:
            estimator = TokenEstimator(TokenCache(int(ctx.get("cache_size", 100))))
        return cls(ContextLimits.from_config(cfg), estimator)

    def truncate_messages(self, messages: Sequence[ConversationMessage],
                          max_tokens: int) -> tuple[list[ConversationMessage], int]:
        """Keep the newest messages that fit; returns (kept, dropped_count)."""
        kept: list[ConversationMessage] = []
        used = 0
        for i in range(len(messages) - 1, -1, -1):
            cost = self.estimator.count_message(messages[i].role, messages[i].content)
            if used + cost > max_tokens:
                return kept, i + 1
            kept.insert(0, messages[i])
            used += cost
        return kept, 0

    def max_nodes_for(self, node_count: int, edge_count: int, budget: int) -> int:
        """Largest node cap whose estimated cost fits the budget (at least one node)."""
        if node_count == 0:
            return 0
        lim = self.limits
        low, high, best = 0, node_count, 0
        while low <= high:
            mid = (low + high) // 2
            cost = mid * lim.node_token_cost + edge_count * lim.edge_token_cost + lim.context_overhead
            if cost <= budget:
                best = mid
                low = mid + 1
            else:
                high = mid - 1
        return max(1, best)

    def manage(self, system_prompt: str, messages: Sequence[ConversationMessage],
               nodes: Sequence[GraphNode], edges: Sequence[GraphEdge],
               options: SerializeOptions | None = None) -> BudgetResult:
        options = options or SerializeOptions()
        lim = self.limits
        est = self.estimator

        analysis = None
        if options.include_analysis and nodes:
            # Analysis covers the full graph even when the listing is truncated
            analysis = GraphAnalyzer(nodes, edges, max_nodes=options.max_analysis_nodes).analyze()

        system_tokens = est.count(system_prompt)
        final_messages = list(messages)
        context = serialize_graph(nodes, edges, options, analysis)
        message_tokens = est.count_messages(final_messages)
        context_tokens = est.count(context)
        total = system_tokens + message_tokens + context_tokens + REQUEST_OVERHEAD_TOKENS

        dropped_messages = 0
        node_cap = len(nodes) if options.max_nodes is None else min(len(nodes), options.max_nodes)
        if lim.level_for(total) in ("warning", "critical"):
            available = max(0, lim.warning_limit - system_tokens - lim.response_reserve - REQUEST_OVERHEAD_TOKENS)
            history_budget = int(available * HISTORY_SHARE)
            final_messages, dropped_messages = self.truncate_messages(messages, history_budget)
            context_budget = available - history_budget
            node_cap = min(node_cap, self.max_nodes_for(len(nodes), len(edges), context_budget))
            truncated_options = SerializeOptions(
                include_positions=options.include_positions,
                include_tags=options.include_tags,
                max_nodes=node_cap,
                prioritized_ids=options.prioritized_ids,
                include_analysis=options.include_analysis,
                max_analysis_nodes=options.max_analysis_nodes,
            )
            context = serialize_graph(nodes, edges, truncated_options, analysis)
            message_tokens = est.count_messages(final_messages)
            context_tokens = est.count(context)
            total = system_tokens + message_tokens + context_tokens + REQUEST_OVERHEAD_TOKENS
            logger.info(
                "Context truncated: %d/%d messages, %d/%d nodes, ~%d tokens",
                len(final_messages), len(messages), node_cap, len(nodes), total,
            )

        included_ids = {n.id for n in _first(nodes, options, node_cap)}
        included_edges = sum(1 for e in edges if e.source in included_ids and e.target in included_ids)

        level = lim.level_for(total)
        warning = None
        if level != "none":
            percentage = total / lim.context_window * 100
            warning = ContextWarning(
                level=level,
                token_count=total,
                token_limit=lim.context_window,
                percentage=percentage,
                message=_warning_message(level, total, percentage),
                included=ElementCounts(messages=len(final_messages), nodes=len(included_ids), edges=included_edges),
                truncated=ElementCounts(
                    messages=dropped_messages,
                    nodes=len(nodes) - len(included_ids),
                    edges=len(edges) - included_edges,
                ),
            )
            if level == "critical":
                logger.warning("Context still over the hard limit after truncation (~%d tokens)", total)

        return BudgetResult(
            messages=final_messages,
            context=context,
            tokens=TokenBreakdown(total=total, system=system_tokens, messages=message_tokens, context=context_tokens),
            warning=warning,
            included_nodes=len(included_ids),
            included_edges=included_edges,
            dropped_messages=dropped_messages,
        )

    def context_summary(self, result: BudgetResult, total_nodes: int, total_edges: int, total_messages: int) -> str:
        """Human-readable summary of what went into the request."""
        lines = [
            "Context Summary:",
            f"• {result.included_nodes} nodes ({total_nodes} total)",
            f"• {result.included_edges} edges ({total_edges} total)",
            f"• {len(result.messages)} conversation messages ({total_messages} total)",
            f"• Estimated: ~{round(result.tokens.total / 1000)}k tokens",
        ]
        if result.dropped_messages or result.included_nodes < total_nodes:
            lines.append("")
            lines.append("Truncated:")
            if result.dropped_messages:
                lines.append(f"• {result.dropped_messages} older messages (keeping last {len(result.messages)})")
            if result.included_nodes < total_nodes:
                lines.append(
                    f"• {total_nodes - result.included_nodes} nodes (keeping {result.included_nodes} most relevant)"
                )
        return "\n".join(lines)


def _first(nodes: Sequence[GraphNode], options: SerializeOptions, cap: int) -> list[GraphNode]:
    return select_nodes(nodes, SerializeOptions(max_nodes=cap, prioritized_ids=options.prioritized_ids))
