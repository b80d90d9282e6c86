"""Tests for infra/llm/client.py using httpx.MockTransport"""

import json

import httpx
import pytest

from app.settings import settings
from domain.errors import (
    UpstreamMalformed,
    UpstreamQuotaExceeded,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from infra.llm.client import OPENAI_URL, OPENROUTER_URL, GenerationClient, parse_json_object


def _completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class Recorder:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.sleeps = []

    def handler(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def sleep(self, seconds):
        self.sleeps.append(seconds)

    def client(self):
        return GenerationClient(transport=httpx.MockTransport(self.handler), sleep=self.sleep)


@pytest.fixture
def openai_key(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)
    monkeypatch.setattr(settings, "LLM_MAX_ATTEMPTS", 3)


@pytest.mark.asyncio
async def test_missing_provider_is_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)
    with pytest.raises(UpstreamUnavailable):
        await GenerationClient().chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_extract_parses_fenced_json(openai_key):
    rec = Recorder(_completion('```json\n{"definition_data": {"role_title": "AE"}}\n```'))
    result = await rec.client().extract_role_definition("We are hiring an AE")
    assert result == {"definition_data": {"role_title": "AE"}}

    sent = rec.requests[0]
    assert str(sent.url) == OPENAI_URL
    assert sent.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(sent.content)
    assert body["response_format"] == {"type": "json_object"}
    assert "We are hiring an AE" in body["messages"][1]["content"]


@pytest.mark.asyncio
async def test_openrouter_is_used_when_openai_is_absent(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "or-test")
    rec = Recorder(_completion("hello"))
    assert await rec.client().chat([{"role": "user", "content": "hi"}]) == "hello"
    assert str(rec.requests[0].url) == OPENROUTER_URL
    assert json.loads(rec.requests[0].content)["model"] == settings.OPENROUTER_MODEL


@pytest.mark.asyncio
async def test_server_error_is_retried_with_backoff(openai_key):
    rec = Recorder(httpx.Response(503), httpx.Response(500), _completion("ok"))
    assert await rec.client().chat([{"role": "user", "content": "hi"}]) == "ok"
    assert len(rec.requests) == 3
    assert rec.sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_persistent_rate_limit_is_typed(openai_key):
    rec = Recorder(httpx.Response(429))
    with pytest.raises(UpstreamRateLimited):
        await rec.client().chat([{"role": "user", "content": "hi"}])
    assert len(rec.requests) == 3


@pytest.mark.asyncio
async def test_quota_exhaustion_is_not_retried(openai_key):
    rec = Recorder(httpx.Response(402))
    with pytest.raises(UpstreamQuotaExceeded) as exc_info:
        await rec.client().chat([{"role": "user", "content": "hi"}])
    assert exc_info.value.status_code == 402
    assert len(rec.requests) == 1


@pytest.mark.asyncio
async def test_client_error_is_not_retried(openai_key):
    rec = Recorder(httpx.Response(400))
    with pytest.raises(UpstreamUnavailable):
        await rec.client().chat([{"role": "user", "content": "hi"}])
    assert len(rec.requests) == 1


@pytest.mark.asyncio
async def test_transport_failure_becomes_unavailable(openai_key):
    rec = Recorder(httpx.ConnectError("connection refused"))
    with pytest.raises(UpstreamUnavailable):
        await rec.client().chat([{"role": "user", "content": "hi"}])
    assert len(rec.requests) == 3


@pytest.mark.asyncio
async def test_non_json_body_is_malformed(openai_key):
    rec = Recorder(httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(UpstreamMalformed):
        await rec.client().chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [{"choices": []}, {"choices": [{"message": {"content": "  "}}]}])
async def test_missing_content_is_malformed(openai_key, data):
    rec = Recorder(httpx.Response(200, json=data))
    with pytest.raises(UpstreamMalformed):
        await rec.client().chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_content_parts_are_joined(openai_key):
    rec = Recorder(_completion([{"type": "text", "text": "Hello "}, {"type": "text", "text": "there"}]))
    assert await rec.client().chat([{"role": "user", "content": "hi"}]) == "Hello there"


@pytest.mark.asyncio
async def test_scaffold_prompt_lists_dimensions(openai_key):
    rec = Recorder(_completion('{"scaffold_data": {}, "scaffold_preview_html": ""}'))
    await rec.client().generate_scaffold("Role: AE", ["Communication", "Execution", "Judgment"])
    prompt = json.loads(rec.requests[0].content)["messages"][1]["content"]
    assert "Communication, Execution, Judgment" in prompt
    assert "Role: AE" in prompt


@pytest.mark.asyncio
@pytest.mark.parametrize("reply,score", [("Score: 2", 2), ("3", 3), ("9/10", 1), ("no idea", 0)])
async def test_score_question_reads_first_digit(openai_key, reply, score):
    rec = Recorder(_completion(reply))
    assert await rec.client().score_question("Q?", "Is it clear?") == score


def test_parse_json_object_rejects_non_objects():
    with pytest.raises(UpstreamMalformed) as exc_info:
        parse_json_object("[1, 2]")
    assert exc_info.value.raw == "[1, 2]"
    with pytest.raises(UpstreamMalformed):
        parse_json_object("not json")
