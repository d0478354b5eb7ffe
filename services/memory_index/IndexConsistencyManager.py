"""Index consistency manager.

Keeps the vector index of every scope in line with the memory cards of
that scope. A scope is consistent when its metadata names the configured
embedding model and records exactly the current cards with their current
content hashes. Any drift triggers a full rebuild of the scope.

Checks, rebuilds and single-card updates of one scope are serialized
through the per-scope lock of the IndexRegistry.
"""

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.errors import EmbeddingUnavailableError, RebuildInProgress, StaleIndexDetected
from shared.helper.HelperConfig import HelperConfig
from shared.models.index import IndexMetadata, IndexResult
from shared.models.memory_card import MemoryCard
from shared.models.scope import Scope
from services.memory_index.IndexMetadataTracker import IndexMetadataTracker
from services.memory_index.IndexRegistry import IndexRegistry
from services.memory_index.TextSplitter import TextSplitter


class IndexConsistencyManager:
    def __init__(
        self,
        helper_config: HelperConfig,
        document_store: DocumentStoreInterface,
        rag_client: RAGClientInterface,
        tracker: IndexMetadataTracker,
        registry: IndexRegistry,
        splitter: TextSplitter | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._document_store = document_store
        self._rag_client = rag_client
        self._embed_client = rag_client.get_embed_client()
        self._tracker = tracker
        self._registry = registry
        self._splitter = splitter or TextSplitter.from_config(helper_config)

    def get_splitter(self) -> TextSplitter:
        return self._splitter

    async def ensure_embedder_ready(self) -> bool:
        """Retry the embedding provider if it is not ready yet.

        Returns:
            bool: Whether the provider is ready now.
        """
        if not self._embed_client.is_ready():
            try:
                await self._embed_client.do_ensure_ready()
            except EmbeddingUnavailableError as e:
                self.logging.debug("Embedding provider still unavailable: %s", e)
        return self._embed_client.is_ready()

    ##########################################
    ############## CONSISTENCY ###############
    ##########################################

    async def ensure_scope_consistent(self, scope: Scope) -> None:
        """Validate the index of a scope and rebuild it on drift.

        Returns immediately if a check or rebuild of the scope is already
        running. Never raises: failures are logged and the caller falls back
        to text search.
        """
        if not await self.ensure_embedder_ready():
            self.logging.warning("Skipping index check for %s: embedding provider not ready.", scope.describe())
            return
        if not self._registry.try_mark_rebuilding(scope):
            self.logging.debug("Index of %s is already being checked or rebuilt. Skipping.", scope.describe())
            return

        try:
            async with self._registry.get_lock(scope):
                try:
                    await self.validate_scope(scope)
                except StaleIndexDetected as stale:
                    self.logging.warning("Index inconsistency detected for %s: %s", scope.describe(), stale.reason)
                    await self._rebuild(scope)
        except Exception as e:
            self.logging.error("Failed to ensure index consistency for %s: %s", scope.describe(), e)
        finally:
            self._registry.clear_rebuilding(scope)

    async def validate_scope(self, scope: Scope) -> None:
        """Compare the recorded metadata of a scope with its current cards.

        Raises:
            StaleIndexDetected: With the first drift found.
        """
        wire_scope = scope.to_wire()
        metadata = await self._tracker.load(scope)
        if metadata is None:
            raise StaleIndexDetected(wire_scope, "no index metadata")

        if metadata.embedding_model != self._tracker.embedding_model:
            raise StaleIndexDetected(
                wire_scope,
                f"embedding model changed from '{metadata.embedding_model}' to '{self._tracker.embedding_model}'",
            )

        contents = await self._document_store.do_get_document_contents(scope)
        recorded = metadata.file_hashes
        if len(contents) != len(recorded):
            raise StaleIndexDetected(
                wire_scope, f"card count changed ({len(recorded)} indexed, {len(contents)} stored)"
            )

        for name, content in contents.items():
            recorded_hash = recorded.get(name)
            if recorded_hash is None:
                raise StaleIndexDetected(wire_scope, f"card '{name}' is not indexed")
            if recorded_hash != self._tracker.compute_hash(content):
                raise StaleIndexDetected(wire_scope, f"card '{name}' changed")

    ##########################################
    ################ REBUILD #################
    ##########################################

    async def rebuild_scope(self, scope: Scope) -> int:
        """Rebuild the index of a scope from scratch.

        Unlike ensure_scope_consistent() this reports every failure.

        Returns:
            int: The number of cards indexed.

        Raises:
            RebuildInProgress: If the scope is already being checked or rebuilt.
            EmbeddingUnavailableError: If the embedding provider is not ready.
            OSError: If the index or its metadata cannot be written.
        """
        if not self._registry.try_mark_rebuilding(scope):
            raise RebuildInProgress(scope.to_wire())
        try:
            async with self._registry.get_lock(scope):
                return await self._rebuild(scope)
        finally:
            self._registry.clear_rebuilding(scope)

    async def _rebuild(self, scope: Scope) -> int:
        # the old index is kept as long as nothing can be re-embedded
        if not await self.ensure_embedder_ready():
            raise EmbeddingUnavailableError(f"Cannot rebuild index of {scope.describe()}: embedding provider not ready.")

        self.logging.info("Rebuilding index for %s...", scope.describe(), color="cyan")
        contents, cards = await self._document_store.do_get_document_snapshot(scope)

        # without metadata an interrupted rebuild is redone by the next check
        await self._tracker.remove(scope)
        await self._rag_client.do_remove_index(scope)
        await self._rag_client.do_get_or_create_index(scope)

        chunk_count = 0
        for card in cards:
            chunk_count += await self._write_card(scope, card)

        await self._tracker.save(scope, self._tracker.build_fresh(contents))
        self.logging.info(
            "Rebuilt index for %s (%d cards, %d chunks).", scope.describe(), len(cards), chunk_count, color="green"
        )
        return len(cards)

    ##########################################
    ############## SINGLE CARD ###############
    ##########################################

    async def index_document(self, scope: Scope, card: MemoryCard) -> IndexResult:
        """Re-index one card, replacing its previous chunks and patching its hash.

        Never raises; the outcome is reported in the returned IndexResult.
        """
        try:
            await self.ensure_scope_consistent(scope)
            if not self._embed_client.is_ready():
                raise EmbeddingUnavailableError("Embedding provider not ready.")

            async with self._registry.get_lock(scope):
                await self._rag_client.do_remove_chunks_for_document(scope, card.name)
                try:
                    chunk_count = await self._write_card(scope, card)
                except Exception:
                    # without its chunks the card must not count as indexed
                    await self._forget_hash(scope, card.name)
                    raise
                await self._record_hash(scope, card.name)
        except Exception as e:
            self.logging.error("Failed to index memory card '%s' in %s: %s", card.name, scope.describe(), e)
            return IndexResult(success=False, error=str(e))

        self.logging.info("Indexed memory card '%s' in %s (%d chunks).", card.name, scope.describe(), chunk_count)
        return IndexResult(success=True, chunk_count=chunk_count)

    async def remove_document_from_index(self, scope: Scope, name: str) -> bool:
        """Remove every chunk of a card and its hash entry.

        Runs no drift check, so it also works after the card was deleted
        from the store.

        Returns:
            bool: True if chunks were removed, False if the card was not indexed or removal failed.
        """
        try:
            async with self._registry.get_lock(scope):
                removed = await self._rag_client.do_remove_chunks_for_document(scope, name)
                if removed == 0:
                    self.logging.info("No chunks found for memory card '%s' in %s.", name, scope.describe())
                    return False
                await self._forget_hash(scope, name)
        except Exception as e:
            self.logging.error("Failed to remove memory card '%s' from index of %s: %s", name, scope.describe(), e)
            return False

        self.logging.info("Removed memory card '%s' from index of %s (%d chunks).", name, scope.describe(), removed)
        return True

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _write_card(self, scope: Scope, card: MemoryCard) -> int:
        chunks = self._splitter.split(card.searchable_text())
        wire_scope = scope.to_wire()
        points = [
            (
                chunk,
                VectorPoint(
                    document_name=card.name,
                    scope=wire_scope,
                    title=card.title,
                    chunk_index=i,
                    total_chunks=len(chunks),
                    tags=list(card.tags),
                    context_policy=card.context_policy.value,
                    text_content=chunk,
                ),
            )
            for i, chunk in enumerate(chunks)
        ]
        self.logging.debug("Splitting memory card '%s' into %d chunks.", card.name, len(chunks))
        return await self._rag_client.do_insert_many(scope, points)

    async def _record_hash(self, scope: Scope, name: str) -> None:
        content = await self._document_store.do_get_document_content(scope, name)
        metadata = await self._tracker.load(scope)
        if content is None:
            # card is not stored (yet); the next check rebuilds the scope
            return
        if metadata is None:
            # only this card is known to be indexed
            metadata = IndexMetadata(embedding_model=self._tracker.embedding_model)
        metadata.file_hashes[name] = self._tracker.compute_hash(content)
        await self._tracker.save(scope, metadata)

    async def _forget_hash(self, scope: Scope, name: str) -> None:
        metadata = await self._tracker.load(scope)
        if metadata is not None and name in metadata.file_hashes:
            del metadata.file_hashes[name]
            await self._tracker.save(scope, metadata)
