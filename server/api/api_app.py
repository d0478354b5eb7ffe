"""FastAPI application entry point for the memory-card knowledge base API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from server.api.routers.MemoryCardRouter import memory_card_router
from services.memory_index.IndexConsistencyManager import IndexConsistencyManager
from services.memory_index.IndexMetadataTracker import IndexMetadataTracker
from services.memory_index.IndexRegistry import IndexRegistry
from services.memory_index.MemoryCardSearchService import MemoryCardSearchService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.store.DocumentStoreManager import DocumentStoreManager
from shared.errors import EmbeddingUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.logging = setup_logging()
    app.state.config = HelperConfig(logger=app.state.logging)

    # Initialise clients
    embed_client = EmbedClientManager(helper_config=app.state.config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.config, embed_client=embed_client).get_client()
    document_store = DocumentStoreManager(helper_config=app.state.config).get_client()
    await rag_client.boot()
    await document_store.boot()

    # Health checks
    await rag_client.do_healthcheck()
    await document_store.do_healthcheck()

    # semantic search is optional, the API keeps serving keyword search without it
    try:
        await embed_client.do_ensure_ready()
    except EmbeddingUnavailableError as e:
        app.state.logging.warning("Embedding provider unavailable, using text search only: %s", e)

    # Wire up services
    registry = IndexRegistry()
    await registry.boot()
    app.state.document_store = document_store
    app.state.consistency_manager = IndexConsistencyManager(
        helper_config=app.state.config,
        document_store=document_store,
        rag_client=rag_client,
        tracker=IndexMetadataTracker(
            helper_config=app.state.config,
            embedding_model=embed_client.get_model_identifier(),
        ),
        registry=registry,
    )
    app.state.search_service = MemoryCardSearchService(
        helper_config=app.state.config,
        document_store=document_store,
        rag_client=rag_client,
        consistency_manager=app.state.consistency_manager,
    )

    app.state.logging.info("Memory-card API ready.")
    yield

    # Shutdown
    await registry.close()
    await document_store.close()
    await rag_client.close()
    await embed_client.close()
    app.state.logging.info("Memory-card API shut down.")


app = FastAPI(
    title="Memory Card Index",
    description="Semantic search over the memory cards of a project knowledge base.",
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(memory_card_router)


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    logging.info(f"Starting memory-card API Server v{app_version} on port 8000...")
    uvicorn.run(app, host="0.0.0.0", port=8000)
