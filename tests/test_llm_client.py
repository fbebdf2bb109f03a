from __future__ import annotations

import unittest
from types import SimpleNamespace
from typing import Any

import anthropic
import httpx
import openai

from agents.anthropic_client import AnthropicClient, map_anthropic_error
from agents.base import CompletionConstraints
from agents.llm_client import LLMClient, map_openai_error
from agents.providers import build_provider
from lib.errors import AuthError, ProviderError, RateLimitError


OPENAI_URL = "https://api.openai.com/v1/responses"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def _response(status: int, url: str) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", url))


class _FakeResponses:
    """Records create() kwargs; raises queued errors first, then returns output_text."""

    def __init__(self, errors: list[Exception] | None = None, text: str = " ok ") -> None:
        self.errors = list(errors or [])
        self.text = text
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.errors:
            raise self.errors.pop(0)
        return SimpleNamespace(output_text=self.text)


class _FakeMessages:
    def __init__(self, error: Exception | None = None, blocks: list[Any] | None = None) -> None:
        self.error = error
        self.blocks = blocks if blocks is not None else [SimpleNamespace(type="text", text="こんにちは")]
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.blocks)


class TestOpenAIErrorMapping(unittest.TestCase):
    def test_rate_limit(self) -> None:
        err = map_openai_error(openai.RateLimitError("slow down", response=_response(429, OPENAI_URL), body=None))
        self.assertIsInstance(err, RateLimitError)
        self.assertEqual(err.status_code, 429)

    def test_auth_and_missing_model(self) -> None:
        auth = openai.AuthenticationError("bad key", response=_response(401, OPENAI_URL), body=None)
        missing = openai.NotFoundError("no such model", response=_response(404, OPENAI_URL), body=None)
        self.assertIsInstance(map_openai_error(auth), AuthError)
        self.assertIsInstance(map_openai_error(missing), AuthError)

    def test_connection_and_server_errors(self) -> None:
        conn = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
        server = openai.InternalServerError("boom", response=_response(500, OPENAI_URL), body=None)

        conn_err = map_openai_error(conn)
        server_err = map_openai_error(server)

        self.assertIs(type(conn_err), ProviderError)
        self.assertIs(type(server_err), ProviderError)
        self.assertEqual(server_err.status_code, 500)


class TestLLMClient(unittest.TestCase):
    def _client(self, responses: _FakeResponses, **kwargs: Any) -> LLMClient:
        return LLMClient("test-model", client=SimpleNamespace(responses=responses), **kwargs)

    def test_complete_builds_request(self) -> None:
        responses = _FakeResponses()
        out = self._client(responses, seed=7).complete(
            "本文を書いてください",
            CompletionConstraints(temperature=0.2, max_tokens=300),
            system="system prompt",
        )

        self.assertEqual(out, "ok")
        call = responses.calls[0]
        self.assertEqual(call["model"], "test-model")
        self.assertEqual(call["temperature"], 0.2)
        self.assertEqual(call["max_output_tokens"], 300)
        self.assertEqual(call["seed"], 7)
        self.assertEqual(call["input"][0], {"role": "system", "content": "system prompt"})
        self.assertEqual(call["input"][1]["role"], "user")

    def test_constraint_model_overrides_default(self) -> None:
        responses = _FakeResponses()
        self._client(responses).complete("x", CompletionConstraints(model="other-model"))
        self.assertEqual(responses.calls[0]["model"], "other-model")

    def test_retries_without_seed_when_sdk_rejects_it(self) -> None:
        responses = _FakeResponses([TypeError("create() got an unexpected keyword argument 'seed'")])
        out = self._client(responses, seed=7).complete("x")

        self.assertEqual(out, "ok")
        self.assertIn("seed", responses.calls[0])
        self.assertNotIn("seed", responses.calls[1])

    def test_retries_without_unsupported_temperature(self) -> None:
        bad = openai.BadRequestError(
            "Unsupported parameter: 'temperature' is not supported with this model.",
            response=_response(400, OPENAI_URL),
            body=None,
        )
        responses = _FakeResponses([bad])
        out = self._client(responses).complete("x", CompletionConstraints(temperature=0.7))

        self.assertEqual(out, "ok")
        self.assertIn("temperature", responses.calls[0])
        self.assertNotIn("temperature", responses.calls[1])

    def test_sdk_errors_are_mapped(self) -> None:
        responses = _FakeResponses([openai.RateLimitError("slow", response=_response(429, OPENAI_URL), body=None)])
        with self.assertRaises(RateLimitError):
            self._client(responses).complete("x")


class TestAnthropicClient(unittest.TestCase):
    def test_complete_joins_text_blocks(self) -> None:
        messages = _FakeMessages(blocks=[SimpleNamespace(type="text", text="前半"), SimpleNamespace(type="text", text="後半")])
        client = AnthropicClient("claude-test", client=SimpleNamespace(messages=messages))

        out = client.complete("x", CompletionConstraints(max_tokens=200, temperature=0.3), system="sys")

        self.assertEqual(out, "前半後半")
        call = messages.calls[0]
        self.assertEqual(call["model"], "claude-test")
        self.assertEqual(call["max_tokens"], 200)
        self.assertEqual(call["temperature"], 0.3)
        self.assertEqual(call["system"], "sys")
        self.assertEqual(call["messages"], [{"role": "user", "content": "x"}])

    def test_no_system_key_without_system_prompt(self) -> None:
        messages = _FakeMessages()
        AnthropicClient("claude-test", client=SimpleNamespace(messages=messages)).complete("x")
        self.assertNotIn("system", messages.calls[0])

    def test_errors_are_mapped(self) -> None:
        cases = [
            (anthropic.RateLimitError("slow", response=_response(429, ANTHROPIC_URL), body=None), RateLimitError),
            (anthropic.AuthenticationError("bad key", response=_response(401, ANTHROPIC_URL), body=None), AuthError),
            (anthropic.APIConnectionError(request=httpx.Request("POST", ANTHROPIC_URL)), ProviderError),
        ]
        for sdk_error, expected in cases:
            messages = _FakeMessages(error=sdk_error)
            client = AnthropicClient("claude-test", client=SimpleNamespace(messages=messages))
            with self.assertRaises(expected):
                client.complete("x")

    def test_mapping_keeps_status(self) -> None:
        err = map_anthropic_error(
            anthropic.InternalServerError("overloaded", response=_response(529, ANTHROPIC_URL), body=None)
        )
        self.assertIs(type(err), ProviderError)
        self.assertEqual(err.status_code, 529)


class TestBuildProvider(unittest.TestCase):
    def test_unknown_provider(self) -> None:
        with self.assertRaises(ValueError):
            build_provider("gemini")


if __name__ == "__main__":
    unittest.main()
