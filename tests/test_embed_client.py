import asyncio
import json

import httpx
import pytest

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.errors import EmbeddingUnavailableError


def _ollama_transport(models=("nomic-embed-text:latest",), embed_status=200, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if request.url.path == "/":
            return httpx.Response(200, text="Ollama is running")
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": name} for name in models]})
        if request.url.path == "/api/embed":
            if embed_status != 200:
                return httpx.Response(embed_status, text="model crashed")
            body = json.loads(request.content)
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2, float(i)] for i, _ in enumerate(body["input"])]})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def test_embed_after_ensure_ready(helper_config):
    requests = []
    client = EmbedClientOllama(helper_config, transport=_ollama_transport(requests=requests))

    async def scenario():
        await client.do_ensure_ready()
        try:
            return client.is_ready(), await client.do_embed(["first", "second"]), await client.do_embed_text("third")
        finally:
            await client.close()

    ready, vectors, single = asyncio.run(scenario())
    assert ready is True
    assert vectors == [[0.1, 0.2, 0.0], [0.1, 0.2, 1.0]]
    assert single == [0.1, 0.2, 0.0]
    embed_request = [r for r in requests if r.url.path == "/api/embed"][0]
    assert json.loads(embed_request.content) == {"model": "nomic-embed-text", "input": ["first", "second"]}
    assert not client.is_ready()


def test_missing_model_is_not_ready(helper_config):
    client = EmbedClientOllama(helper_config, transport=_ollama_transport(models=("llama3:latest",)))

    async def scenario():
        try:
            await client.do_ensure_ready()
        finally:
            await client.close()

    with pytest.raises(EmbeddingUnavailableError):
        asyncio.run(scenario())
    assert not client.is_ready()


def test_embed_before_ready_raises(helper_config):
    client = EmbedClientOllama(helper_config, transport=_ollama_transport())
    with pytest.raises(EmbeddingUnavailableError):
        asyncio.run(client.do_embed_text("text"))


def test_failed_embedding_request_raises(helper_config):
    client = EmbedClientOllama(helper_config, transport=_ollama_transport(embed_status=500))

    async def scenario():
        await client.do_ensure_ready()
        try:
            await client.do_embed_text("text")
        finally:
            await client.close()

    with pytest.raises(EmbeddingUnavailableError):
        asyncio.run(scenario())


def test_configured_model_and_api_key(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_MODEL", "mxbai-embed-large")
    monkeypatch.setenv("EMBED_OLLAMA_API_KEY", "token")
    client = EmbedClientOllama(helper_config)
    assert client.get_model_identifier() == "mxbai-embed-large"
    assert client.get_embed_payload(["a"]) == {"model": "mxbai-embed-large", "input": ["a"]}
    assert client._get_auth_header() == {"Authorization": "Bearer token"}


def test_manager_defaults_to_ollama(helper_config, monkeypatch):
    assert isinstance(EmbedClientManager(helper_config).get_client(), EmbedClientOllama)

    monkeypatch.setenv("EMBED_ENGINE", "nosuchengine")
    with pytest.raises(ValueError):
        EmbedClientManager(helper_config)


def test_requests_carry_the_api_key(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_OLLAMA_API_KEY", "token")
    requests = []
    client = EmbedClientOllama(helper_config, transport=_ollama_transport(requests=requests))

    async def scenario():
        await client.do_ensure_ready()
        try:
            await client.do_embed_text("text")
        finally:
            await client.close()

    asyncio.run(scenario())
    assert [(r.method, r.url.path) for r in requests] == [("GET", "/"), ("GET", "/api/tags"), ("POST", "/api/embed")]
    assert all(r.headers["Authorization"] == "Bearer token" for r in requests)


def test_request_before_boot_raises(helper_config):
    client = EmbedClientOllama(helper_config, transport=_ollama_transport())
    with pytest.raises(Exception, match="not booted"):
        asyncio.run(client.do_healthcheck())
