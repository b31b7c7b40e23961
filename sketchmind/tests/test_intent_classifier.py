"""
Tests for keyword intent classification.
"""

import unittest

from sketchmind.analysis.intent_classifier import (
    INTENT_KEYWORDS,
    all_intent_scores,
    classify_intent,
    is_question,
    keyword_score,
    normalize_text,
)
from sketchmind.analysis.models import Intent


class TestKeywordScoring(unittest.TestCase):
    def test_normalize_strips_punctuation_and_case(self):
        self.assertEqual(normalize_text("  Add,  a NODE!  "), "add a node")

    def test_exact_match_scores_highest(self):
        keywords = ("simulate",)
        self.assertEqual(keyword_score("simulate", keywords), 1.0)
        # whole-word 5 / (1 * 2) is clamped to 1 too, so use a longer list to compare
        keywords = ("simulate", "x1", "x2", "x3", "x4")
        exact = keyword_score("simulate", keywords)
        word = keyword_score("please simulate this", keywords)
        substring = keyword_score("simulated", keywords)
        self.assertGreater(exact, word)
        self.assertGreater(word, substring)
        self.assertGreater(substring, 0)

    def test_empty_keywords(self):
        self.assertEqual(keyword_score("anything", ()), 0.0)

    def test_is_question(self):
        self.assertTrue(is_question("Revenue and costs?"))
        self.assertTrue(is_question("how are these linked"))
        self.assertFalse(is_question("add a node"))
        self.assertFalse(is_question("however this goes"))

    def test_all_scores_sorted(self):
        scores = all_intent_scores("add a rectangle called Budget")
        self.assertEqual(len(scores), len(INTENT_KEYWORDS))
        values = [s for _, s in scores]
        self.assertEqual(values, sorted(values, reverse=True))
        self.assertEqual(scores[0][0], Intent.ADD_NODES)


class TestClassifyIntent(unittest.TestCase):
    def test_add_request(self):
        result = classify_intent("add a rectangle called Budget")
        self.assertEqual(result.intent, Intent.ADD_NODES)
        self.assertGreaterEqual(result.confidence, 0.3)

    def test_relationship_question(self):
        result = classify_intent("How is Revenue related to Costs?")
        self.assertEqual(result.intent, Intent.QUERY_RELATIONSHIPS)
        self.assertGreater(result.confidence, 0.5)

    def test_modify_request(self):
        result = classify_intent("rename the update node and change the edit label")
        self.assertEqual(result.intent, Intent.MODIFY)

    def test_too_short(self):
        for text in ("", "  ", "ok", None):
            result = classify_intent(text)
            self.assertEqual(result.intent, Intent.CLARIFICATION_NEEDED)
            self.assertEqual(result.confidence, 0.5)

    def test_low_confidence_statement_needs_clarification(self):
        result = classify_intent("hmm interesting")
        self.assertEqual(result.intent, Intent.CLARIFICATION_NEEDED)
        self.assertEqual(result.confidence, 0.3)

    def test_low_confidence_question_explores(self):
        result = classify_intent("Why?")
        self.assertEqual(result.intent, Intent.EXPLORE_STRUCTURE)
        self.assertEqual(result.confidence, 0.4)

    def test_follow_up_question_after_clarification(self):
        result = classify_intent("and the Costs one?", previous_intent=Intent.CLARIFICATION_NEEDED)
        self.assertEqual(result.intent, Intent.QUERY_RELATIONSHIPS)
        self.assertEqual(result.confidence, 0.6)

    def test_follow_up_statement_gets_boost(self):
        base = classify_intent("add a rectangle called Budget")
        boosted = classify_intent("add a rectangle called Budget", previous_intent=Intent.CLARIFICATION_NEEDED)
        self.assertEqual(boosted.intent, base.intent)
        self.assertAlmostEqual(boosted.confidence, min(1.0, base.confidence + 0.2))

    def test_deterministic(self):
        texts = [
            "add a rectangle called Budget",
            "How is Revenue related to Costs?",
            "what if we double the budget",
            "describe the canvas",
            "x",
        ]
        for text in texts:
            self.assertEqual(classify_intent(text), classify_intent(text))

    def test_confidence_in_range(self):
        for text in ("add add add add create create new new", "what if suppose imagine simulate"):
            result = classify_intent(text)
            self.assertGreaterEqual(result.confidence, 0.0)
            self.assertLessEqual(result.confidence, 1.0)
            self.assertTrue(result.reasoning)


if __name__ == "__main__":
    unittest.main()
