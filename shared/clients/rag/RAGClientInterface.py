import asyncio
from abc import abstractmethod
from typing import Any

from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint, make_chunk_id
from shared.helper.HelperConfig import HelperConfig
from shared.models.scope import Scope
from shared.models.search import ChunkHit


def distance_to_score(distance: float) -> float:
    """Convert a vector distance into a relevance score in [0, 1] (higher is better)."""
    return max(0.0, min(1.0, 1.0 - distance))


class RAGClientInterface(ClientInterface):
    """Vector store with one independent index per scope.

    Subclasses implement the storage primitives (_do_*); this class owns
    the engine-independent rules: embedding through the embed client,
    deterministic point ids, scope filtering of query hits, the
    distance to score conversion and the cache of open index handles.
    """

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface):
        super().__init__(helper_config=helper_config)
        self._embed_client = embed_client

        # open index handles per scope, guarded against concurrent creation
        self._indexes: dict[Scope, Any] = {}
        self._index_creation_lock = asyncio.Lock()

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def get_embed_client(self) -> EmbedClientInterface:
        return self._embed_client

    ##########################################
    ########### STORAGE PRIMITIVES ###########
    ##########################################

    @abstractmethod
    async def _do_open_index(self, scope: Scope) -> Any:
        """Open the index of a scope, creating its backing storage if absent.

        Returns:
            Any: An engine-specific index handle.
        """
        pass

    @abstractmethod
    async def _do_drop_index(self, scope: Scope, handle: Any | None) -> None:
        """Delete all storage of a scope's index.

        Args:
            scope (Scope): The scope to drop.
            handle (Any | None): The cached handle, if the index was opened before.
        """
        pass

    @abstractmethod
    async def _do_upsert_points(self, handle: Any, points: list[dict[str, Any]]) -> None:
        """Insert points ({"id", "vector", "payload"}), replacing points with the same id."""
        pass

    @abstractmethod
    async def _do_search_points(self, handle: Any, vector: list[float], limit: int) -> list[dict[str, Any]]:
        """Nearest-neighbour search.

        Returns:
            list[dict[str, Any]]: Up to limit hits ({"id", "distance", "payload"}), closest first.
        """
        pass

    @abstractmethod
    async def _do_delete_document_points(self, handle: Any, scope: str, document_name: str) -> int:
        """Delete every point whose payload matches (scope, document_name).

        Returns:
            int: The number of deleted points.
        """
        pass

    @abstractmethod
    async def _do_count_points(self, handle: Any) -> int:
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_get_or_create_index(self, scope: Scope) -> Any:
        """Return the handle of a scope's index, creating the index if absent.

        Idempotent. Concurrent calls for the same scope share one creation.

        Args:
            scope (Scope): The scope of the index.

        Returns:
            Any: The engine-specific index handle.
        """
        handle = self._indexes.get(scope)
        if handle is not None:
            return handle
        async with self._index_creation_lock:
            handle = self._indexes.get(scope)
            if handle is None:
                handle = await self._do_open_index(scope)
                self._indexes[scope] = handle
                self.logging.debug("Opened vector index for %s.", scope.describe())
        return handle

    async def do_insert(self, scope: Scope, text: str, point: VectorPoint) -> None:
        """Embed one chunk and add it to the scope's index.

        Raises:
            EmbeddingUnavailableError: If the embedding provider is not ready.
        """
        await self.do_insert_many(scope, [(text, point)])

    async def do_insert_many(self, scope: Scope, chunks: list[tuple[str, VectorPoint]]) -> int:
        """Embed several chunks with one embedding request and add them to the scope's index.

        Args:
            scope (Scope): The scope of the index.
            chunks (list[tuple[str, VectorPoint]]): Chunk text and its metadata.

        Returns:
            int: The number of points written.

        Raises:
            EmbeddingUnavailableError: If the embedding provider is not ready or fails.
            ValueError: If a point's scope does not match the target scope.
        """
        if not chunks:
            return 0
        wire_scope = scope.to_wire()
        for _, point in chunks:
            if point.scope != wire_scope:
                raise ValueError(
                    f"Chunk of '{point.document_name}' belongs to scope '{point.scope}', not '{wire_scope}'."
                )

        vectors = await self._embed_client.do_embed([text for text, _ in chunks])
        handle = await self.do_get_or_create_index(scope)
        points = [
            {
                "id": make_chunk_id(wire_scope, point.document_name, point.chunk_index),
                "vector": vector,
                "payload": point.model_dump(),
            }
            for (_, point), vector in zip(chunks, vectors)
        ]
        await self._do_upsert_points(handle, points)
        return len(points)

    async def do_query(self, scope: Scope, query_text: str, limit: int) -> list[ChunkHit]:
        """Return the chunks of a scope most similar to the query, best first.

        Hits whose stored scope differs from the requested scope are dropped.

        Args:
            scope (Scope): The scope to search.
            query_text (str): Free text query.
            limit (int): Maximum number of chunks to return.

        Returns:
            list[ChunkHit]: Ranked chunk hits with scores in [0, 1].

        Raises:
            EmbeddingUnavailableError: If the embedding provider is not ready or fails.
        """
        if limit <= 0:
            return []
        vector = await self._embed_client.do_embed_text(query_text)
        handle = await self.do_get_or_create_index(scope)
        raw_hits = await self._do_search_points(handle, vector, limit)

        wire_scope = scope.to_wire()
        hits: list[ChunkHit] = []
        for raw in raw_hits:
            payload = raw.get("payload") or {}
            if payload.get("scope") != wire_scope or not payload.get("document_name"):
                self.logging.warning(
                    "Dropping point %r from query in scope '%s': stored scope is %r.",
                    raw.get("id"), wire_scope, payload.get("scope"),
                )
                continue
            hits.append(
                ChunkHit(
                    document_name=payload["document_name"],
                    score=distance_to_score(raw.get("distance", 1.0)),
                    chunk_index=payload.get("chunk_index", 0),
                    total_chunks=payload.get("total_chunks", 1),
                    text_content=payload.get("text_content") or "",
                )
            )
        return hits[:limit]

    async def do_remove_chunks_for_document(self, scope: Scope, document_name: str) -> int:
        """Delete all chunks of a card from the scope's index.

        Returns:
            int: How many chunks were removed; 0 if the card was not indexed.
        """
        handle = await self.do_get_or_create_index(scope)
        return await self._do_delete_document_points(handle, scope.to_wire(), document_name)

    async def do_remove_index(self, scope: Scope) -> None:
        """Delete the whole index of a scope. The next access recreates it empty."""
        async with self._index_creation_lock:
            handle = self._indexes.pop(scope, None)
            await self._do_drop_index(scope, handle)
        self.logging.debug("Removed vector index for %s.", scope.describe())

    async def do_count(self, scope: Scope) -> int:
        """Number of chunks currently stored for a scope."""
        handle = await self.do_get_or_create_index(scope)
        return await self._do_count_points(handle)

    async def _do_close(self) -> None:
        self._indexes.clear()
