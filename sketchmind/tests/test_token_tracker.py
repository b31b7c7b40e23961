"""Unit tests for token usage tracking."""
import json
import tempfile
import threading
import unittest
from pathlib import Path

from sketchmind.llm.token_tracker import UsageTracker


class TestUsageTracker(unittest.TestCase):
    """Test UsageTracker functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.tracker = UsageTracker()

    def test_track_single_usage(self):
        """Test tracking a single token usage."""
        self.tracker.track_usage(provider='Anthropic', model='claude', input_tokens=100, output_tokens=50)

        summary = self.tracker.get_summary()
        self.assertEqual(summary['total_usage']['input_tokens'], 100)
        self.assertEqual(summary['total_usage']['output_tokens'], 50)
        self.assertEqual(summary['total_usage']['total_tokens'], 150)
        self.assertEqual(summary['total_usage']['call_count'], 1)
        self.assertIn('Anthropic:claude', summary['by_model'])
        self.assertEqual(summary['by_conversation'], {})

    def test_per_conversation(self):
        self.tracker.track_usage('mock', 'm', 10, 5, conversation_id='a')
        self.tracker.track_usage('mock', 'm', 20, 5, conversation_id='b')
        self.tracker.track_usage('mock', 'm', 1, 1, conversation_id='a')
        self.assertEqual(self.tracker.get_conversation_usage('a'),
                         {'input_tokens': 11, 'output_tokens': 6, 'total_tokens': 17, 'call_count': 2})
        self.assertEqual(self.tracker.get_conversation_usage('missing')['call_count'], 0)
        self.assertEqual(self.tracker.get_summary()['by_model']['mock:m']['call_count'], 3)

    def test_last_usage_and_reset(self):
        self.assertIsNone(self.tracker.get_last_usage())
        self.tracker.track_usage('mock', 'm', 3, 4, conversation_id='c')
        last = self.tracker.get_last_usage()
        self.assertEqual(last['total_tokens'], 7)
        self.assertEqual(last['conversation_id'], 'c')
        self.tracker.reset()
        self.assertIsNone(self.tracker.get_last_usage())
        self.assertEqual(self.tracker.get_summary()['by_model'], {})

    def test_output_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            out = Path(tmpdir) / 'usage.json'
            self.tracker.set_output_file(out)
            self.tracker.track_usage('mock', 'm', 1, 2)
            data = json.loads(out.read_text())
            self.assertEqual(data['total_usage']['total_tokens'], 3)
            self.assertEqual(len(data['history']), 1)

    def test_thread_safety(self):
        def worker():
            for _ in range(200):
                self.tracker.track_usage('mock', 'm', 1, 1, conversation_id='shared')

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(self.tracker.get_conversation_usage('shared')['call_count'], 1000)


if __name__ == "__main__":
    unittest.main()
