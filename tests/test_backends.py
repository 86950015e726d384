"""Tests for the provider adapters and the backend registry."""
import json

import httpx
import pytest

from scriptwizard.exceptions import GenerationError
from scriptwizard.models.records import ScriptLength
from scriptwizard.services.backends import (
    NO_IMPROVEMENTS_LISTED,
    AnthropicBackend,
    BackendKind,
    BackendRegistry,
    OllamaBackend,
    OpenAIBackend,
    split_improvements,
)
from scriptwizard.services.prompts import GenerationRequest

REQUEST = GenerationRequest(
    title="Sourdough Basics",
    instructions="Explain how to bake a first sourdough loaf.",
    tone="friendly",
    length=ScriptLength.SHORT,
)


def _openai_reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _recording_transport(replies, seen):
    """MockTransport that records request bodies and answers from *replies* in order."""
    queue = list(replies)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        reply = queue.pop(0)
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_openai_generate_sends_chat_completion():
    seen = []
    backend = OpenAIBackend(
        api_key="sk-test",
        base_url="https://llm.test/v1",
        model="gpt-4o",
        transport=_recording_transport([_openai_reply("## Intro\nHello there.")], seen),
    )

    draft = await backend.generate(REQUEST)
    assert draft == "## Intro\nHello there."

    request = seen[0]
    assert str(request.url) == "https://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o"
    assert body["max_tokens"] == 1500
    assert body["messages"][0]["role"] == "system"
    assert "Sourdough Basics" in body["messages"][1]["content"]
    assert "response_format" not in body


@pytest.mark.asyncio
async def test_openai_http_error_raises_generation_error():
    backend = OpenAIBackend(
        api_key="sk-test",
        transport=_recording_transport([httpx.Response(500, text="upstream broke")], []),
    )
    with pytest.raises(GenerationError):
        await backend.generate(REQUEST)


@pytest.mark.asyncio
async def test_openai_empty_completion_raises_generation_error():
    backend = OpenAIBackend(
        api_key="sk-test", transport=_recording_transport([_openai_reply("   ")], [])
    )
    with pytest.raises(GenerationError):
        await backend.generate(REQUEST)


@pytest.mark.asyncio
async def test_openai_without_api_key_fails_fast():
    backend = OpenAIBackend(transport=_recording_transport([], []))
    backend.api_key = ""
    assert backend.is_configured is False
    with pytest.raises(GenerationError):
        await backend.generate(REQUEST)


@pytest.mark.asyncio
async def test_transport_error_raises_generation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = OpenAIBackend(api_key="sk-test", transport=httpx.MockTransport(handler))
    with pytest.raises(GenerationError):
        await backend.generate(REQUEST)


@pytest.mark.asyncio
async def test_improve_splits_improvements():
    reply = "## Intro\nTighter intro.\n\nIMPROVEMENTS:\n- Cut filler words"
    backend = OpenAIBackend(
        api_key="sk-test", transport=_recording_transport([_openai_reply(reply)], [])
    )
    request = GenerationRequest(
        title=REQUEST.title,
        instructions=REQUEST.instructions,
        tone=REQUEST.tone,
        length=REQUEST.length,
        iteration_number=2,
        previous_content="## Intro\nA long and winding intro.",
    )

    content, improvements = await backend.improve(request)
    assert content == "## Intro\nTighter intro."
    assert improvements == "IMPROVEMENTS:\n- Cut filler words"


@pytest.mark.asyncio
async def test_improve_without_previous_content_fails():
    backend = OpenAIBackend(api_key="sk-test", transport=_recording_transport([], []))
    with pytest.raises(GenerationError):
        await backend.improve(REQUEST)


@pytest.mark.asyncio
async def test_score_parses_provider_json():
    seen = []
    reply = '```json\n{"wordCount": 320, "estimatedDuration": 130, "readabilityScore": 8.5,}\n```'
    backend = OpenAIBackend(
        api_key="sk-test", transport=_recording_transport([_openai_reply(reply)], seen)
    )

    metrics = await backend.score("word " * 300)
    assert metrics.word_count == 320
    assert metrics.estimated_duration == 130
    assert metrics.readability_score == 8.5
    assert json.loads(seen[0].content)["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_score_falls_back_to_heuristic_on_failure():
    backend = OpenAIBackend(
        api_key="sk-test",
        transport=_recording_transport([httpx.Response(503, text="overloaded")], []),
    )
    metrics = await backend.score("word " * 450)
    assert metrics.word_count == 450
    assert metrics.estimated_duration == 180
    assert metrics.readability_score is None


@pytest.mark.asyncio
async def test_score_falls_back_on_unparseable_reply():
    backend = OpenAIBackend(
        api_key="sk-test",
        transport=_recording_transport([_openai_reply("It reads nicely!")], []),
    )
    metrics = await backend.score("word " * 450)
    assert metrics.estimated_duration == 180


@pytest.mark.asyncio
async def test_compare_parses_provider_json_and_clamps():
    reply = '{"redundancyReduction": 140, "improvementAreas": ["Better flow", ""]}'
    backend = OpenAIBackend(
        api_key="sk-test", transport=_recording_transport([_openai_reply(reply)], [])
    )
    comparison = await backend.compare("old draft", "new draft")
    assert comparison.redundancy_reduction == 100.0
    assert comparison.improvement_areas == ["Better flow"]


@pytest.mark.asyncio
async def test_compare_falls_back_to_heuristic():
    backend = OpenAIBackend(
        api_key="sk-test",
        transport=_recording_transport([httpx.Response(500)], []),
    )
    comparison = await backend.compare("same words here", "same words here")
    assert comparison.redundancy_reduction == 0.0
    assert comparison.improvement_areas == []


# ---------------------------------------------------------------------------
# Anthropic / Ollama
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_anthropic_generate_uses_messages_api():
    seen = []
    reply = {"content": [{"type": "text", "text": "## Hook\nHi."}]}
    backend = AnthropicBackend(
        api_key="ant-test",
        base_url="https://anthropic.test",
        transport=_recording_transport([reply], seen),
    )

    assert await backend.generate(REQUEST) == "## Hook\nHi."

    request = seen[0]
    assert str(request.url) == "https://anthropic.test/v1/messages"
    assert request.headers["x-api-key"] == "ant-test"
    assert request.headers["anthropic-version"] == backend.api_version
    body = json.loads(request.content)
    assert body["max_tokens"] == 3000
    assert "system" in body
    assert body["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_ollama_generate_uses_local_api():
    seen = []
    backend = OllamaBackend(
        base_url="http://ollama.test",
        model="qwen2.5:3b",
        transport=_recording_transport([{"response": "## Hook\nLocal draft."}], seen),
    )

    assert await backend.generate(REQUEST) == "## Hook\nLocal draft."

    body = json.loads(seen[0].content)
    assert str(seen[0].url) == "http://ollama.test/api/generate"
    assert body["stream"] is False
    assert body["options"]["num_predict"] == 2000


# ---------------------------------------------------------------------------
# Helpers and registry
# ---------------------------------------------------------------------------

def test_split_improvements_without_marker():
    content, improvements = split_improvements("Just a script.")
    assert content == "Just a script."
    assert improvements == NO_IMPROVEMENTS_LISTED


@pytest.fixture
def full_registry() -> BackendRegistry:
    return BackendRegistry(
        {
            BackendKind.OPENAI: OpenAIBackend(api_key="sk-test"),
            BackendKind.ANTHROPIC: AnthropicBackend(api_key="ant-test"),
            BackendKind.OLLAMA: OllamaBackend(model="qwen2.5:3b"),
        },
        default=BackendKind.OPENAI,
    )


@pytest.mark.parametrize(
    "model, kind",
    [
        ("gpt-4o", BackendKind.OPENAI),
        ("gpt-3.5", BackendKind.OPENAI),
        ("gpt-4-turbo", BackendKind.OPENAI),
        ("claude", BackendKind.ANTHROPIC),
        ("claude-3-7-sonnet-20250219", BackendKind.ANTHROPIC),
        ("Claude-3-opus", BackendKind.ANTHROPIC),
        ("ollama", BackendKind.OLLAMA),
        ("llama3", BackendKind.OLLAMA),
        ("qwen2.5:3b", BackendKind.OLLAMA),
    ],
)
def test_registry_resolves_known_models(full_registry, model, kind):
    assert full_registry.resolve_kind(model) == kind
    assert full_registry.select(model).kind == kind


@pytest.mark.parametrize("model", ["grok", "", "mistral-large"])
def test_registry_falls_back_to_default(full_registry, model, caplog):
    with caplog.at_level("WARNING"):
        assert full_registry.resolve_kind(model) == BackendKind.OPENAI
    assert "falling back" in caplog.text


def test_registry_requires_registered_default():
    with pytest.raises(ValueError):
        BackendRegistry({BackendKind.OLLAMA: OllamaBackend()}, default=BackendKind.OPENAI)


def test_registry_describe_reports_credentials(full_registry):
    full_registry.select("gpt-4o").api_key = ""
    assert full_registry.describe() == {
        "openai": "missing_credentials",
        "anthropic": "configured",
        "ollama": "configured",
    }
