"""
Tests for robust JSON extraction utility.
"""

import unittest

from sketchmind.utils.json_utils import balanced_object_span, extract_json_object


class TestJsonUtils(unittest.TestCase):
    def test_extract_direct(self):
        self.assertEqual(extract_json_object('{"action": "answer"}'), {"action": "answer"})

    def test_extract_from_fenced(self):
        text = """
        Here is output:
        ```json
        {"a": 1, "b": 2}
        ```
        Thanks.
        """
        obj = extract_json_object(text)
        self.assertIsInstance(obj, dict)
        self.assertEqual(obj.get('a'), 1)

    def test_extract_balanced(self):
        text = "Noise before {\n  \"k\": [1,2,3,],\n} and after"
        obj = extract_json_object(text)
        self.assertIsInstance(obj, dict)
        self.assertEqual(obj.get('k'), [1, 2, 3])

    def test_braces_inside_strings(self):
        text = 'Result: {"response": "use {curly} braces \\" here"} done'
        obj = extract_json_object(text)
        self.assertEqual(obj["response"], 'use {curly} braces " here')

    def test_skips_invalid_span(self):
        text = "first {not json} then {\"ok\": true}"
        self.assertEqual(extract_json_object(text), {"ok": True})

    def test_no_object(self):
        for text in ("", "   ", "plain prose", "[1, 2]", "{unclosed", None):
            self.assertIsNone(extract_json_object(text))

    def test_balanced_span(self):
        self.assertEqual(balanced_object_span('x {"a": {"b": 1}} y'), '{"a": {"b": 1}}')
        self.assertIsNone(balanced_object_span("no braces"))

    def test_deep_nesting_does_not_raise(self):
        self.assertIsNone(extract_json_object("[" * 100_000))


if __name__ == "__main__":
    unittest.main()
