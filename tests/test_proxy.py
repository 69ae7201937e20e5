#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
HTTP 接口测试：健康检查、模型列表、错误信封和 CORS
"""

import pytest


MAPPING = {"gpt-4o": "deepseek-ai/deepseek-v3.1", "gpt-4": "qwen/qwen3-coder-480b-a35b-instruct"}


def unreachable(request):
    raise AssertionError("upstream must not be called")


@pytest.fixture
def client(proxy_client):
    return proxy_client(unreachable, MODEL_MAPPING=MAPPING)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "service": "OpenAI to NVIDIA NIM Proxy",
        "reasoning_display": True,
        "thinking_mode": True,
    }


def test_health_reflects_toggles(proxy_client):
    client = proxy_client(unreachable, SHOW_REASONING=False, ENABLE_THINKING_MODE=False)
    data = client.get("/health").json()

    assert data["reasoning_display"] is False
    assert data["thinking_mode"] is False


@pytest.mark.parametrize("path", ["/", "/v1/health"])
def test_redirects_to_health(client, path):
    response = client.get(path, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/health"


def test_list_models(client):
    response = client.get("/v1/models")

    assert response.status_code == 200
    data = response.json()
    assert data["object"] == "list"
    assert [model["id"] for model in data["data"]] == list(MAPPING)
    for model in data["data"]:
        assert model["object"] == "model"
        assert model["owned_by"] == "nvidia-nim-proxy"
        assert isinstance(model["created"], int)


def test_get_chat_completions_not_allowed(client):
    response = client.get("/v1/chat/completions")

    assert response.status_code == 405
    error = response.json()["error"]
    assert error["type"] == "method_not_allowed"
    assert error["code"] == 405
    assert "Use POST" in error["message"]


def test_unknown_path(client):
    response = client.get("/x")

    assert response.status_code == 404
    assert response.json() == {
        "error": {"message": "Endpoint /x not found", "type": "invalid_request_error", "code": 404}
    }


def test_unsupported_method_is_not_found(client):
    response = client.put("/health")

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Endpoint /health not found"


def test_cors_preflight(client):
    response = client.options(
        "/v1/chat/completions",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type, Authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_cors_header_on_simple_request(client):
    response = client.get("/health", headers={"Origin": "https://example.com"})
    assert response.headers["access-control-allow-origin"] == "*"


def test_options_root(client):
    assert client.options("/").status_code == 204


@pytest.mark.parametrize(
    "kwargs",
    [
        {"content": b"not json", "headers": {"content-type": "application/json"}},
        {"json": {"model": "gpt-4o", "messages": "nope"}},
    ],
)
def test_invalid_body(client, kwargs):
    response = client.post("/v1/chat/completions", **kwargs)

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == 400
    assert error["message"].startswith("Invalid request body")
