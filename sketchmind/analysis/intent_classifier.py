"""
Keyword-based intent classification for canvas chat utterances.

Each intent has a keyword list; a keyword scores 10 on an exact match of the
whole normalized utterance, 5 on a whole-word match and 2 on a substring
match. The sum is normalized by ``len(keywords) * 2`` and clamped to 1.
"""

from __future__ import annotations

import logging
import re

from .models import ClassificationResult, Intent

logger = logging.getLogger(__name__)

INTENT_KEYWORDS: dict[Intent, tuple[str, ...]] = {
    Intent.ADD_NODES: (
        "add", "create", "new", "insert", "make", "build", "generate",
        "put", "place", "draw", "add a", "create a", "new node",
        "add node", "create node", "insert node", "add an", "create an",
        "called", "named",
    ),
    Intent.QUERY_RELATIONSHIPS: (
        "how", "what", "related", "connect", "connection", "relationship",
        "relate", "link", "linked", "how are", "what is the relationship",
        "how do", "how does", "related to", "connected to", "links to",
    ),
    Intent.EXPLORE_STRUCTURE: (
        "explain", "describe", "overview", "summary", "what does this",
        "what is this", "tell me about", "show me", "what are",
        "explain the", "describe the", "what does", "what is",
        "can you explain", "can you describe",
    ),
    Intent.SIMULATE: (
        "simulate", "what if", "what happens", "what would happen",
        "if", "suppose", "imagine", "scenario", "simulation",
        "what if we", "what happens if", "what would", "predict",
    ),
    Intent.MODIFY: (
        "change", "update", "modify", "edit", "alter", "adjust",
        "replace", "remove", "delete", "rename", "move",
        "change the", "update the", "modify the", "edit the",
    ),
}

QUESTION_WORDS = ("how", "what", "why", "when", "where", "who", "which", "can", "could", "would", "should")

MIN_UTTERANCE_LENGTH = 3
LOW_CONFIDENCE = 0.3
QUESTION_BOOST = 1.5
FOLLOW_UP_BOOST = 0.2

_PUNCT = re.compile(r"[^\w\s]")
_SPACE = re.compile(r"\s+")
_BOUNDARY_PATTERNS: dict[str, re.Pattern] = {}


def normalize_text(text: str) -> str:
    return _SPACE.sub(" ", _PUNCT.sub(" ", text.lower())).strip()


def _boundary(keyword: str) -> re.Pattern:
    pattern = _BOUNDARY_PATTERNS.get(keyword)
    if pattern is None:
        pattern = re.compile(rf"\b{re.escape(keyword)}\b")
        _BOUNDARY_PATTERNS[keyword] = pattern
    return pattern


def keyword_score(text: str, keywords: tuple[str, ...]) -> float:
    if not keywords:
        return 0.0
    normalized = normalize_text(text)
    score = 0
    for raw in keywords:
        keyword = normalize_text(raw)
        if normalized == keyword:
            score += 10
        elif _boundary(keyword).search(normalized):
            score += 5
        elif keyword in normalized:
            score += 2
    return min(1.0, score / (len(keywords) * 2))


def is_question(text: str) -> bool:
    """Ends with a question mark or starts with a question word."""
    if text.strip().endswith("?"):
        return True
    normalized = normalize_text(text)
    return any(normalized.startswith(word + " ") for word in QUESTION_WORDS)


def all_intent_scores(utterance: str) -> list[tuple[Intent, float]]:
    """Raw keyword scores per intent, highest first, without the question boost."""
    scores = [(intent, keyword_score(utterance, keywords)) for intent, keywords in INTENT_KEYWORDS.items()]
    scores.sort(key=lambda pair: pair[1], reverse=True)
    return scores


def _reasoning(confidence: float) -> str:
    if confidence < 0.5:
        return "Low confidence classification. Message may be ambiguous."
    if confidence >= 0.8:
        return "High confidence classification based on keyword matching."
    return "Moderate confidence classification."


def classify_intent(utterance: str | None, previous_intent: Intent | None = None) -> ClassificationResult:
    """Decide what the user wants. Always returns a result."""
    text = (utterance or "").strip()
    if len(text) < MIN_UTTERANCE_LENGTH:
        return ClassificationResult(
            intent=Intent.CLARIFICATION_NEEDED,
            confidence=0.5,
            reasoning="Message too short to determine intent",
        )

    question = is_question(text)
    scored = []
    for intent, keywords in INTENT_KEYWORDS.items():
        score = keyword_score(text, keywords)
        if question and intent in (Intent.QUERY_RELATIONSHIPS, Intent.EXPLORE_STRUCTURE):
            score *= QUESTION_BOOST
        scored.append((intent, score))
    # sort is stable, so ties keep declaration order
    scored.sort(key=lambda pair: pair[1], reverse=True)
    intent, confidence = scored[0]

    if previous_intent == Intent.CLARIFICATION_NEEDED:
        if question:
            intent, confidence = Intent.QUERY_RELATIONSHIPS, 0.6
        else:
            confidence = min(1.0, confidence + FOLLOW_UP_BOOST)

    if confidence < LOW_CONFIDENCE:
        if question:
            intent, confidence = Intent.EXPLORE_STRUCTURE, 0.4
        else:
            intent, confidence = Intent.CLARIFICATION_NEEDED, 0.3

    confidence = min(1.0, max(0.0, confidence))
    logger.debug("Classified %r as %s (%.2f)", text[:80], intent.value, confidence)
    return ClassificationResult(intent=intent, confidence=confidence, reasoning=_reasoning(confidence))
