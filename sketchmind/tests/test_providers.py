"""Unit tests for LLM providers: replies, token usage, error mapping and retries."""
import json
import unittest
from unittest.mock import Mock, patch

import anthropic
import httpx
import openai

from sketchmind.errors import (
    AuthenticationError,
    RequestRejectedError,
    TransportError,
    is_retryable,
    transport_error_for_status,
    user_message,
)
from sketchmind.llm.anthropic_provider import AnthropicProvider
from sketchmind.llm.backend_provider import BackendProvider
from sketchmind.llm.base_provider import translate_sdk_error
from sketchmind.llm.mock_provider import MockProvider
from sketchmind.llm.openai_provider import OpenAIProvider
from sketchmind.llm.schemas import LLMReply, LLMRequest

REQUEST = LLMRequest(system_prompt="You are a test", messages=[{"role": "user", "content": "hello"}])
_HTTP_REQUEST = httpx.Request("POST", "https://api.example.test/v1/messages")


def _status_error(sdk, cls_name, status):
    response = httpx.Response(status, request=_HTTP_REQUEST)
    return getattr(sdk, cls_name)(f"status {status}", response=response, body=None)


class TestErrorTaxonomy(unittest.TestCase):
    def test_status_mapping(self):
        self.assertIsInstance(transport_error_for_status(401), AuthenticationError)
        self.assertIsInstance(transport_error_for_status(403), AuthenticationError)
        self.assertEqual(transport_error_for_status(429).kind, "rate_limit")
        self.assertEqual(transport_error_for_status(408).kind, "timeout")
        self.assertEqual(transport_error_for_status(503).kind, "server")
        self.assertIsInstance(transport_error_for_status(422), RequestRejectedError)

    def test_retryable(self):
        self.assertTrue(is_retryable(transport_error_for_status(500)))
        self.assertFalse(is_retryable(transport_error_for_status(401)))
        self.assertFalse(is_retryable(transport_error_for_status(400)))
        self.assertFalse(is_retryable(ValueError("x")))

    def test_user_message(self):
        self.assertIn("Too many requests", user_message(transport_error_for_status(429)))
        self.assertIn("unexpected error", user_message(RuntimeError("boom")))

    def test_translate_sdk_errors(self):
        for sdk in (anthropic, openai):
            timeout = translate_sdk_error(sdk.APITimeoutError(request=_HTTP_REQUEST), sdk)
            self.assertEqual((type(timeout), timeout.kind), (TransportError, "timeout"))
            network = translate_sdk_error(sdk.APIConnectionError(request=_HTTP_REQUEST), sdk)
            self.assertEqual(network.kind, "network")
            self.assertIsInstance(translate_sdk_error(_status_error(sdk, "AuthenticationError", 401), sdk),
                                  AuthenticationError)
            self.assertEqual(translate_sdk_error(_status_error(sdk, "RateLimitError", 429), sdk).kind, "rate_limit")
            self.assertIsInstance(translate_sdk_error(_status_error(sdk, "BadRequestError", 400), sdk),
                                  RequestRejectedError)
            self.assertEqual(translate_sdk_error(_status_error(sdk, "InternalServerError", 500), sdk).kind, "server")
            other = translate_sdk_error(ValueError("odd"), sdk)
            self.assertFalse(other.retryable)


class TestAnthropicProvider(unittest.TestCase):
    @patch.dict('os.environ', {'ANTHROPIC_API_KEY': 'test_key'})
    @patch('sketchmind.llm.anthropic_provider.Anthropic')
    def setUp(self, mock_anthropic):
        self.mock_client = Mock()
        mock_anthropic.return_value = self.mock_client
        self.provider = AnthropicProvider(
            config={}, model_name='claude-test', api_key_env='ANTHROPIC_API_KEY', backoff_base=0,
        )
        self.sdk_kwargs = mock_anthropic.call_args.kwargs

    def _response(self, text="hello back"):
        response = Mock()
        response.content = [Mock(type="text", text=text)]
        response.usage = Mock(input_tokens=100, output_tokens=50)
        return response

    def test_sdk_retries_disabled(self):
        self.assertEqual(self.sdk_kwargs["max_retries"], 0)
        self.assertEqual(self.sdk_kwargs["api_key"], "test_key")

    def test_initial_token_usage_is_none(self):
        self.assertIsNone(self.provider.get_last_token_usage())

    def test_complete_tracks_tokens(self):
        self.mock_client.messages.create.return_value = self._response()
        reply = self.provider.complete(REQUEST)
        self.assertEqual(reply.content, "hello back")
        self.assertEqual(reply.usage.total_tokens, 150)
        self.assertEqual(self.provider.get_last_token_usage(),
                         {"input_tokens": 100, "output_tokens": 50, "total_tokens": 150})
        kwargs = self.mock_client.messages.create.call_args.kwargs
        self.assertEqual(kwargs["system"], "You are a test")
        self.assertEqual(kwargs["messages"], [{"role": "user", "content": "hello"}])
        self.assertEqual(kwargs["model"], "claude-test")

    def test_retries_connection_errors(self):
        self.mock_client.messages.create.side_effect = [
            anthropic.APIConnectionError(request=_HTTP_REQUEST),
            _status_error(anthropic, "InternalServerError", 503),
            self._response("finally"),
        ]
        reply = self.provider.complete(REQUEST)
        self.assertEqual(reply.content, "finally")
        self.assertEqual(self.mock_client.messages.create.call_count, 3)

    def test_auth_failure_not_retried(self):
        self.mock_client.messages.create.side_effect = _status_error(anthropic, "AuthenticationError", 401)
        with self.assertRaises(AuthenticationError):
            self.provider.complete(REQUEST)
        self.assertEqual(self.mock_client.messages.create.call_count, 1)

    def test_retries_exhausted(self):
        self.mock_client.messages.create.side_effect = _status_error(anthropic, "RateLimitError", 429)
        with self.assertRaises(TransportError) as ctx:
            self.provider.complete(REQUEST)
        self.assertEqual(ctx.exception.kind, "rate_limit")
        self.assertEqual(self.mock_client.messages.create.call_count, 4)

    @patch.dict('os.environ', {}, clear=True)
    def test_missing_api_key(self):
        with self.assertRaises(ValueError):
            AnthropicProvider(config={}, model_name='claude-test', api_key_env='ANTHROPIC_API_KEY')


class TestOpenAIProvider(unittest.TestCase):
    @patch.dict('os.environ', {'OPENAI_API_KEY': 'test_key'}, clear=True)
    @patch('sketchmind.llm.openai_provider.OpenAI')
    def setUp(self, mock_openai):
        self.mock_client = Mock()
        mock_openai.return_value = self.mock_client
        self.provider = OpenAIProvider(
            config={'openai': {'api_key_env': 'OPENAI_API_KEY', 'base_url': 'http://localhost:8000'}},
            model_name='gpt-test',
            timeout=30,
            backoff_base=0,
        )
        self.sdk_kwargs = mock_openai.call_args.kwargs

    def test_base_url_normalized(self):
        self.assertEqual(self.sdk_kwargs["base_url"], "http://localhost:8000/v1")
        self.assertEqual(self.sdk_kwargs["timeout"], 30)

    def test_complete_tracks_tokens(self):
        completion = Mock()
        completion.choices = [Mock(message=Mock(content="Test response"))]
        completion.usage = Mock(prompt_tokens=100, completion_tokens=50)
        self.mock_client.chat.completions.create.return_value = completion

        reply = self.provider.complete(REQUEST)
        self.assertEqual(reply.content, "Test response")
        usage = self.provider.get_last_token_usage()
        self.assertEqual(usage['input_tokens'], 100)
        self.assertEqual(usage['output_tokens'], 50)
        self.assertEqual(usage['total_tokens'], 150)
        messages = self.mock_client.chat.completions.create.call_args.kwargs["messages"]
        self.assertEqual(messages[0], {"role": "system", "content": "You are a test"})
        self.assertEqual(messages[-1], {"role": "user", "content": "hello"})

    def test_bad_request_not_retried(self):
        self.mock_client.chat.completions.create.side_effect = _status_error(openai, "BadRequestError", 400)
        with self.assertRaises(RequestRejectedError):
            self.provider.complete(REQUEST)
        self.assertEqual(self.mock_client.chat.completions.create.call_count, 1)


class TestBackendProvider(unittest.TestCase):
    def _provider(self, handler, **kwargs):
        return BackendProvider(
            config={}, model_name="claude-test", base_url="http://relay.test/api/anthropic/",
            transport=httpx.MockTransport(handler), backoff_base=0, **kwargs,
        )

    def test_posts_messages_and_reads_usage(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": "relayed", "usage": {"inputTokens": 12, "outputTokens": 4}})

        reply = self._provider(handler).complete(REQUEST)
        self.assertEqual(reply.content, "relayed")
        self.assertEqual((reply.usage.input_tokens, reply.usage.output_tokens), (12, 4))
        self.assertEqual(seen["url"], "http://relay.test/api/anthropic/messages")
        self.assertEqual(seen["body"]["system"], "You are a test")
        self.assertEqual(seen["body"]["messages"], [{"role": "user", "content": "hello"}])
        self.assertEqual(seen["body"]["model"], "claude-test")

    def test_server_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(502, json={"error": "bad gateway"})
            return httpx.Response(200, json={"content": "ok"})

        reply = self._provider(handler).complete(REQUEST)
        self.assertEqual(reply.content, "ok")
        self.assertIsNone(reply.usage)
        self.assertEqual(len(calls), 3)

    def test_auth_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"error": "invalid key"})

        with self.assertRaises(AuthenticationError) as ctx:
            self._provider(handler).complete(REQUEST)
        self.assertIn("invalid key", str(ctx.exception))
        self.assertEqual(len(calls), 1)

    def test_bad_request(self):
        provider = self._provider(lambda request: httpx.Response(400, text="nope"))
        with self.assertRaises(RequestRejectedError):
            provider.complete(REQUEST)

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(TransportError) as ctx:
            self._provider(handler, retries=1).complete(REQUEST)
        self.assertEqual(ctx.exception.kind, "network")

    def test_non_json_body(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="<html>")

        with self.assertRaises(TransportError):
            self._provider(handler).complete(REQUEST)
        self.assertEqual(len(calls), 1)

    def test_unexpected_body_shapes(self):
        bodies = [
            ["not", "an", "object"],
            {"content": [{"type": "text", "text": "hi"}]},
            "just a string",
        ]
        for body in bodies:
            calls = []

            def handler(request, body=body):
                calls.append(request)
                return httpx.Response(200, json=body)

            with self.subTest(body=body):
                with self.assertRaises(TransportError) as ctx:
                    self._provider(handler).complete(REQUEST)
                self.assertEqual(ctx.exception.kind, "server")
                self.assertFalse(ctx.exception.retryable)
                self.assertEqual(len(calls), 1)

    def test_malformed_usage_and_error_fields(self):
        def handler(request):
            return httpx.Response(200, json={
                "content": None, "error": {"code": 7}, "usage": {"inputTokens": "12", "outputTokens": True},
            })

        reply = self._provider(handler).complete(REQUEST)
        self.assertEqual(reply.content, "")
        self.assertEqual(reply.error, "{'code': 7}")
        self.assertEqual((reply.usage.input_tokens, reply.usage.output_tokens), (0, 0))

    def test_base_url_from_env(self):
        with patch.dict('os.environ', {'SKETCHMIND_BACKEND_URL': 'http://env.test/relay'}):
            provider = BackendProvider(config={'backend': {'base_url': 'http://cfg.test'}}, model_name="m")
        self.assertEqual(provider.base_url, "http://env.test/relay")
        provider.close()
        provider = BackendProvider(config={'backend': {'base_url': 'http://cfg.test/'}}, model_name="m")
        self.assertEqual(provider.base_url, "http://cfg.test")
        provider.close()

    def test_validate_connection(self):
        self.assertTrue(self._provider(lambda r: httpx.Response(200, json={"content": "pong"})).validate_connection())
        self.assertFalse(self._provider(lambda r: httpx.Response(500, text="down")).validate_connection())


class TestMockProvider(unittest.TestCase):
    def test_scripted_responses(self):
        provider = MockProvider({})
        provider.set_responses([
            "plain text",
            {"action": "answer", "response": "dict"},
            LLMReply(content="reply object"),
        ])
        self.assertEqual(provider.complete(REQUEST).content, "plain text")
        self.assertEqual(json.loads(provider.complete(REQUEST).content)["response"], "dict")
        self.assertEqual(provider.complete(REQUEST).content, "reply object")
        self.assertIn("Mock response", provider.complete(REQUEST).content)
        self.assertEqual(provider.call_count, 4)
        self.assertEqual(provider.requests[0], REQUEST)

    def test_scripted_exception_retried(self):
        provider = MockProvider({})
        provider.set_responses([transport_error_for_status(500), "recovered"])
        self.assertEqual(provider.complete(REQUEST).content, "recovered")
        self.assertEqual(provider.call_count, 2)


if __name__ == "__main__":
    unittest.main()
