"""Memory-card search.

Semantic search queries the chunk index of a scope and folds the chunk
hits back into ranked cards with their best chunks as excerpts. When the
embedding provider is unavailable, a keyword heuristic over the stored
cards produces results of the same shape.
"""

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.memory_card import ContextPolicy, MemoryCard
from shared.models.scope import Scope
from shared.models.search import ChunkHit, MemoryCardSearchResult, SearchExcerpt
from services.memory_index.IndexConsistencyManager import IndexConsistencyManager

OVERFETCH_FACTOR = 5    # chunks fetched per requested card
MAX_EXCERPTS = 3        # excerpts reported per card
CONTEXT_SEARCH_LIMIT = 10
EXACT_MATCH_BONUS = 10
MIN_WORD_LENGTH = 3


def aggregate_chunk_hits(
    hits: list[ChunkHit],
    max_excerpts: int = MAX_EXCERPTS,
) -> list[tuple[str, float, list[SearchExcerpt]]]:
    """Group chunk hits by card.

    A card scores the mean of its chunk scores and cards are ranked by that
    mean. Equal scores keep the order in which the cards first appear in hits.

    Args:
        hits (list[ChunkHit]): Chunk hits, best first.
        max_excerpts (int): Maximum number of excerpts per card.

    Returns:
        list[tuple[str, float, list[SearchExcerpt]]]: (card name, mean score,
            best chunks) sorted by mean score, highest first.
    """
    groups: dict[str, list[ChunkHit]] = {}
    for hit in hits:
        groups.setdefault(hit.document_name, []).append(hit)

    aggregated: list[tuple[str, float, list[SearchExcerpt]]] = []
    for name, card_hits in groups.items():
        mean_score = sum(hit.score for hit in card_hits) / len(card_hits)
        best = sorted(card_hits, key=lambda hit: hit.score, reverse=True)[:max_excerpts]
        excerpts = [
            SearchExcerpt(
                text=hit.text_content,
                score=hit.score,
                chunk_index=hit.chunk_index,
                total_chunks=hit.total_chunks,
            )
            for hit in best
        ]
        aggregated.append((name, mean_score, excerpts))

    aggregated.sort(key=lambda entry: entry[1], reverse=True)
    return aggregated


def text_relevance(text: str, query: str) -> float:
    """Keyword score of a text for a query.

    +10 if the whole query occurs in the text, +1 for every occurrence of
    each query word longer than two characters, all divided by 10.
    Case-insensitive.
    """
    text_lower = text.lower()
    query_lower = query.lower().strip()
    if not query_lower:
        return 0.0

    score = 0
    if query_lower in text_lower:
        score += EXACT_MATCH_BONUS
    for word in query_lower.split():
        if len(word) >= MIN_WORD_LENGTH:
            score += text_lower.count(word)
    return score / 10


class MemoryCardSearchService:
    def __init__(
        self,
        helper_config: HelperConfig,
        document_store: DocumentStoreInterface,
        rag_client: RAGClientInterface,
        consistency_manager: IndexConsistencyManager,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._document_store = document_store
        self._rag_client = rag_client
        self._consistency_manager = consistency_manager
        self._splitter = consistency_manager.get_splitter()
        self._overfetch_factor = int(helper_config.get_number_val("SEARCH_OVERFETCH_FACTOR", default=OVERFETCH_FACTOR))
        self._max_excerpts = int(helper_config.get_number_val("SEARCH_MAX_EXCERPTS", default=MAX_EXCERPTS))

    ##########################################
    ################# SEARCH #################
    ##########################################

    async def search(self, scope: Scope, query: str, limit: int = 5) -> list[MemoryCardSearchResult]:
        """Rank the cards of a scope against a free text query.

        Retries an unavailable embedding provider first. Uses the vector index
        when the provider is ready and the keyword fallback otherwise or when
        the semantic path fails.

        Args:
            scope (Scope): The scope to search.
            query (str): Free text query.
            limit (int): Maximum number of cards to return.

        Returns:
            list[MemoryCardSearchResult]: Cards with score and excerpts, best first.
        """
        if limit <= 0:
            return []

        if await self._consistency_manager.ensure_embedder_ready():
            try:
                return await self.semantic_search(scope, query, limit)
            except Exception as e:
                self.logging.error("Semantic search in %s failed, falling back to text search: %s", scope.describe(), e)
        else:
            self.logging.info("Embedding provider not ready. Using text search for %s.", scope.describe())

        try:
            return await self.text_search(scope, query, limit)
        except OSError as e:
            self.logging.error("Text search in %s failed: %s", scope.describe(), e)
            return []

    async def semantic_search(self, scope: Scope, query: str, limit: int) -> list[MemoryCardSearchResult]:
        """Vector search over the chunk index of a scope.

        Raises:
            EmbeddingUnavailableError: If the query cannot be embedded.
        """
        await self._consistency_manager.ensure_scope_consistent(scope)
        hits = await self._rag_client.do_query(scope, query, limit * self._overfetch_factor)
        self.logging.debug("Query %r in %s returned %d chunks.", query[:80], scope.describe(), len(hits))

        cards = {card.name: card for card in await self._document_store.do_list_documents(scope)}
        results: list[MemoryCardSearchResult] = []
        for name, score, excerpts in aggregate_chunk_hits(hits, self._max_excerpts):
            card = cards.get(name)
            if card is None:
                self.logging.debug("Skipping indexed card '%s': no longer stored in %s.", name, scope.describe())
                continue
            results.append(MemoryCardSearchResult(card=card, relevance_score=score, excerpts=excerpts))
            if len(results) >= limit:
                break
        return results

    async def text_search(self, scope: Scope, query: str, limit: int) -> list[MemoryCardSearchResult]:
        """Keyword search over the card contents of a scope."""
        results: list[MemoryCardSearchResult] = []
        for card in await self._document_store.do_list_documents(scope):
            score = text_relevance(card.content, query)
            if score > 0:
                results.append(
                    MemoryCardSearchResult(card=card, relevance_score=score, excerpts=self._text_excerpts(card, query))
                )

        results.sort(key=lambda result: result.relevance_score, reverse=True)
        return results[:limit]

    def _text_excerpts(self, card: MemoryCard, query: str) -> list[SearchExcerpt]:
        chunks = self._splitter.split(card.searchable_text())
        excerpts = [
            SearchExcerpt(text=chunk, score=text_relevance(chunk, query), chunk_index=i, total_chunks=len(chunks))
            for i, chunk in enumerate(chunks)
        ]
        matching = [excerpt for excerpt in excerpts if excerpt.score > 0]
        if not matching:
            return excerpts[:1]
        matching.sort(key=lambda excerpt: excerpt.score, reverse=True)
        return matching[: self._max_excerpts]

    ##########################################
    ############ CONTEXT CARDS ###############
    ##########################################

    async def get_context_memory_cards(
        self,
        scope: Scope,
        include_all: bool = False,
        semantic_queries: list[str] | None = None,
    ) -> list[MemoryCard]:
        """Cards to put into an agent context.

        Always-cards (or every card with include_all) come first, followed
        by the cards matching any of the semantic queries, best first.
        """
        all_cards = await self._document_store.do_list_documents(scope)
        context_cards = [
            card for card in all_cards
            if include_all or card.context_policy == ContextPolicy.ALWAYS
        ]
        if not semantic_queries:
            return context_cards

        included = {card.name for card in context_cards}
        found: dict[str, MemoryCardSearchResult] = {}
        for query in semantic_queries:
            for query_chunk in self._splitter.split(query):
                for result in await self.search(scope, query_chunk, CONTEXT_SEARCH_LIMIT):
                    card = result.card
                    if card.context_policy == ContextPolicy.ALWAYS or card.name in included:
                        continue
                    existing = found.get(card.name)
                    if existing is None or existing.relevance_score < result.relevance_score:
                        found[card.name] = result

        ranked = sorted(found.values(), key=lambda result: result.relevance_score, reverse=True)
        return context_cards + [result.card for result in ranked]
