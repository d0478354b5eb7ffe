"""Index runner entry point.

Rebuilds the memory-card vector index of one or more scopes from the
cards currently stored in the knowledge base.

Usage:
    python -m services.memory_index.index_runner [scope ...]

Scopes are "global" (the default) or initiative ids.
"""

import asyncio
import sys

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.store.DocumentStoreManager import DocumentStoreManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.scope import GLOBAL_SCOPE, Scope
from services.memory_index.IndexConsistencyManager import IndexConsistencyManager
from services.memory_index.IndexMetadataTracker import IndexMetadataTracker
from services.memory_index.IndexRegistry import IndexRegistry


async def main(raw_scopes: list[str]) -> int:
    """Rebuild the given scopes.

    Returns:
        int: Process exit code; 1 if any scope failed.
    """
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    scopes = [Scope.from_wire(raw) for raw in (raw_scopes or [GLOBAL_SCOPE])]

    embed_client = EmbedClientManager(helper_config=config).get_client()
    rag_client = RAGClientManager(helper_config=config, embed_client=embed_client).get_client()
    document_store = DocumentStoreManager(helper_config=config).get_client()
    registry = IndexRegistry()

    try:
        # without embeddings there is nothing to rebuild, so abort
        try:
            await embed_client.do_ensure_ready()
        except Exception as e:
            logger.error(f"Error booting Embed client {embed_client.get_engine_name()}: {e}. Aborting.")
            return 1

        try:
            await rag_client.boot()
            await rag_client.do_healthcheck()
            await document_store.boot()
            await document_store.do_healthcheck()
        except Exception as e:
            logger.error(f"Error booting storage clients: {e}. Aborting.")
            return 1

        await registry.boot()
        manager = IndexConsistencyManager(
            helper_config=config,
            document_store=document_store,
            rag_client=rag_client,
            tracker=IndexMetadataTracker(helper_config=config, embedding_model=embed_client.get_model_identifier()),
            registry=registry,
        )

        failed = 0
        for scope in scopes:
            try:
                count = await manager.rebuild_scope(scope)
                logger.info("Rebuilt %s with %d memory cards.", scope.describe(), count)
            except Exception as e:
                logger.error("Rebuild of %s failed: %s", scope.describe(), e)
                failed += 1
        return 1 if failed else 0
    finally:
        await registry.close()
        await document_store.close()
        await rag_client.close()
        await embed_client.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
