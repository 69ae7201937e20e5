import json

import httpx
import pytest
from fastapi.testclient import TestClient

import main
from nimproxy import openai_api
from nimproxy.config import Settings
from nimproxy.services.openai_service import ChatCompletionService


NIM_BASE = "https://nim.test/v1"


def make_settings(**overrides) -> Settings:
    values = {
        "NIM_API_KEY": "test-key",
        "NIM_API_BASE": NIM_BASE,
        "SHOW_REASONING": True,
        "ENABLE_THINKING_MODE": True,
        "THINKING_ENCODING": "chat_template_kwargs",
        "DEFAULT_TEMPERATURE": 0.6,
        "DEFAULT_MAX_TOKENS": 9024,
        "EMIT_STREAM_ERROR_EVENT": False,
    }
    values.update(overrides)
    return Settings(**values)


def sse_event(delta, index=0, finish_reason=None, event_id="chatcmpl-up"):
    """Build one upstream SSE data line (with the blank separator line)."""
    payload = {
        "id": event_id,
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "upstream-model",
        "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(payload)}\n\n"


def parse_frames(body: str):
    """Split an outbound SSE body into data payloads ("[DONE]" kept as a string)."""
    frames = []
    for block in body.split("\n\n"):
        if not block:
            continue
        assert block.startswith("data: "), block
        payload = block[len("data: "):]
        frames.append(payload if payload == "[DONE]" else json.loads(payload))
    return frames


def frame_contents(frames):
    return [
        frame["choices"][0]["delta"]["content"]
        for frame in frames
        if isinstance(frame, dict) and frame.get("choices")
    ]


@pytest.fixture
def upstream_calls():
    return []


@pytest.fixture
def proxy_client(monkeypatch, upstream_calls):
    """Return a factory building a TestClient whose upstream is an httpx.MockTransport."""

    def factory(handler, **overrides):
        def recording_handler(request: httpx.Request):
            upstream_calls.append(request)
            return handler(request)

        settings = make_settings(**overrides)
        upstream = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        service = ChatCompletionService(settings, client=upstream)
        monkeypatch.setattr(openai_api, "service", service)
        return TestClient(main.app)

    return factory
