"""Shared fixtures: isolated environment, a deterministic embedder and a fully wired index stack."""

import hashlib
import logging
import math
import re
from types import SimpleNamespace

import pytest

from services.memory_index.IndexConsistencyManager import IndexConsistencyManager
from services.memory_index.IndexMetadataTracker import IndexMetadataTracker
from services.memory_index.IndexRegistry import IndexRegistry
from services.memory_index.MemoryCardSearchService import MemoryCardSearchService
from services.memory_index.TextSplitter import TextSplitter
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.local.RAGClientLocal import RAGClientLocal
from shared.clients.store.markdown.DocumentStoreMarkdown import DocumentStoreMarkdown
from shared.errors import EmbeddingUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.config import EnvConfig

ENV_KEYS = [
    "KNOWLEDGE_BASE_PATH", "VECTOR_INDEX_PATH", "RAG_LOCAL_PATH", "STORE_MARKDOWN_PATH",
    "EMBED_ENGINE", "EMBED_MODEL", "RAG_ENGINE", "STORE_ENGINE", "CHUNK_SIZE", "CHUNK_OVERLAP",
    "SEARCH_OVERFETCH_FACTOR", "SEARCH_MAX_EXCERPTS", "EMBED_OLLAMA_BASE_URL", "EMBED_OLLAMA_API_KEY",
    "EMBED_TIMEOUT", "APP_API_KEY",
]


class FakeEmbedClient(EmbedClientInterface):
    """Hashing bag-of-words embedder. Texts sharing words get similar vectors."""

    DIMENSIONS = 256

    def __init__(self, helper_config: HelperConfig, model: str = "fake-embed", reachable: bool = True):
        super().__init__(helper_config=helper_config)
        self.embed_model = model
        self.embedded_texts: list[str] = []
        self.reachable = reachable
        self.ensure_ready_calls = 0

    def _get_engine_name(self) -> str:
        return "Fake"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _get_auth_header(self) -> dict:
        return {}

    def _get_base_url(self) -> str:
        return "http://fake"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    def _get_endpoint_models(self) -> str:
        return "/models"

    def get_endpoint_embedding(self) -> str:
        return "/embed"

    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"input": texts}

    def extract_model_names(self, models_response: dict) -> list[str]:
        return [self.embed_model]

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        return response_data["embeddings"]

    async def _do_boot(self) -> None:
        pass

    async def do_healthcheck(self) -> None:
        pass

    async def do_ensure_ready(self) -> None:
        self.ensure_ready_calls += 1
        if not self.reachable:
            raise EmbeddingUnavailableError("Fake embedding provider is down.")
        await self.boot()
        self._ready = True

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        if not self.is_ready():
            raise EmbeddingUnavailableError("Embedding provider not ready.")
        texts = [texts] if isinstance(texts, str) else texts
        self.embedded_texts.extend(texts)
        return [self._vectorize(text) for text in texts]

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self.DIMENSIONS
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self.DIMENSIONS
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector] if norm else vector


@pytest.fixture
def helper_config(tmp_path, monkeypatch) -> HelperConfig:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PROJECT_ROOT", str(tmp_path))
    return HelperConfig(logger=ColorLogger(logging.getLogger("tests")))


@pytest.fixture
def make_stack(helper_config):
    """Async factory wiring store, embedder, vector store and services.

    Must be awaited inside the event loop of the test so that every lock
    belongs to that loop.
    """

    async def _make_stack(ready: bool = True, model: str = "fake-embed", splitter: TextSplitter | None = None):
        embed_client = FakeEmbedClient(helper_config, model=model, reachable=ready)
        rag_client = RAGClientLocal(helper_config=helper_config, embed_client=embed_client)
        document_store = DocumentStoreMarkdown(helper_config=helper_config)
        registry = IndexRegistry()
        tracker = IndexMetadataTracker(helper_config=helper_config, embedding_model=embed_client.get_model_identifier())

        await rag_client.boot()
        await document_store.boot()
        await registry.boot()
        if ready:
            await embed_client.do_ensure_ready()

        manager = IndexConsistencyManager(
            helper_config=helper_config,
            document_store=document_store,
            rag_client=rag_client,
            tracker=tracker,
            registry=registry,
            splitter=splitter,
        )
        search_service = MemoryCardSearchService(
            helper_config=helper_config,
            document_store=document_store,
            rag_client=rag_client,
            consistency_manager=manager,
        )
        return SimpleNamespace(
            config=helper_config,
            embed=embed_client,
            rag=rag_client,
            store=document_store,
            registry=registry,
            tracker=tracker,
            manager=manager,
            search=search_service,
        )

    return _make_stack
