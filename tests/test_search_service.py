import asyncio

import pytest

from services.memory_index.MemoryCardSearchService import aggregate_chunk_hits, text_relevance
from shared.models.memory_card import ContextPolicy, MemoryCard
from shared.models.scope import Scope
from shared.models.search import ChunkHit, MemoryCardSearchResult

GLOBAL = Scope.global_scope()
INITIATIVE = Scope.initiative("initiative-1")

PKCE_CONTENT = "OAuth flow uses PKCE to protect the authorization code exchange. " * 40


def _hit(name: str, score: float, index: int = 0) -> ChunkHit:
    return ChunkHit(document_name=name, score=score, chunk_index=index, total_chunks=5, text_content=f"{name}-{index}")


async def _index(stack, scope, *cards):
    results = []
    for card in cards:
        await stack.store.do_save_document(scope, card)
        results.append(await stack.manager.index_document(scope, card))
    return results


def test_aggregation_reports_mean_score():
    aggregated = aggregate_chunk_hits([_hit("docA", 0.9, 0), _hit("docA", 0.5, 1), _hit("docB", 0.7, 0)])

    assert [name for name, _, _ in aggregated] == ["docA", "docB"]
    assert aggregated[0][1] == pytest.approx(0.7)
    assert aggregated[1][1] == pytest.approx(0.7)
    assert [excerpt.score for excerpt in aggregated[0][2]] == [0.9, 0.5]


def test_aggregation_keeps_encounter_order_on_ties():
    assert [name for name, _, _ in aggregate_chunk_hits([_hit("c", 0.5), _hit("d", 0.5)])] == ["c", "d"]
    assert [name for name, _, _ in aggregate_chunk_hits([_hit("d", 0.5), _hit("c", 0.5)])] == ["d", "c"]


def test_aggregation_limits_excerpts_to_best_chunks():
    hits = [_hit("a", score, i) for i, score in enumerate([0.2, 0.9, 0.4, 0.8, 0.1])]
    (_, score, excerpts), = aggregate_chunk_hits(hits, max_excerpts=3)
    assert score == pytest.approx(0.48)
    assert [excerpt.chunk_index for excerpt in excerpts] == [1, 3, 2]


def test_text_relevance():
    assert text_relevance("OAuth uses PKCE. PKCE rocks", "pkce") == pytest.approx(1.2)
    assert text_relevance("Postgres vacuum", "vacuum tuning") == pytest.approx(0.1)
    assert text_relevance("Go to the docs", "go to") == pytest.approx(1.0)
    assert text_relevance("nothing here", "go to") == 0
    assert text_relevance("anything", "   ") == 0


def test_end_to_end_semantic_search(make_stack):
    card = MemoryCard(name="auth-notes", title="Auth notes", content=PKCE_CONTENT, tags=["security"])

    async def scenario():
        stack = await make_stack()
        index_results = await _index(stack, GLOBAL, card)
        return index_results, await stack.search.search(GLOBAL, "PKCE", 5)

    index_results, results = asyncio.run(scenario())
    assert index_results[0].success is True
    assert index_results[0].chunk_count > 1
    assert [result.card.name for result in results] == ["auth-notes"]
    assert results[0].relevance_score > 0
    assert 1 <= len(results[0].excerpts) <= 3
    assert all("PKCE" in excerpt.text for excerpt in results[0].excerpts)


def test_removed_card_is_never_returned(make_stack, monkeypatch):
    kubernetes = MemoryCard(name="kubernetes-notes", content="Kubernetes rollout uses readiness probes.")
    postgres = MemoryCard(name="postgres-notes", content="Postgres vacuum tuning keeps tables healthy.")

    async def scenario():
        stack = await make_stack()
        await _index(stack, GLOBAL, kubernetes, postgres)

        removed_counts = []
        original = stack.rag.do_remove_chunks_for_document

        async def recording(scope, name):
            count = await original(scope, name)
            removed_counts.append(count)
            return count

        monkeypatch.setattr(stack.rag, "do_remove_chunks_for_document", recording)
        await stack.store.do_remove_document(GLOBAL, "kubernetes-notes")
        removed = await stack.manager.remove_document_from_index(GLOBAL, "kubernetes-notes")

        kubernetes_results = await stack.search.search(GLOBAL, "kubernetes rollout", 5)
        postgres_results = await stack.search.search(GLOBAL, "postgres vacuum", 5)
        return removed, removed_counts, kubernetes_results, postgres_results

    removed, removed_counts, kubernetes_results, postgres_results = asyncio.run(scenario())
    assert removed is True
    assert removed_counts[0] > 0
    assert "kubernetes-notes" not in [result.card.name for result in kubernetes_results]
    assert [result.card.name for result in postgres_results] == ["postgres-notes"]


def test_scopes_do_not_leak(make_stack):
    global_card = MemoryCard(name="x", content="alpha bravo")
    initiative_card = MemoryCard(name="x", content="charlie delta")

    async def scenario():
        stack = await make_stack()
        await _index(stack, GLOBAL, global_card)
        await _index(stack, INITIATIVE, initiative_card)
        return (
            await stack.search.search(GLOBAL, "charlie delta", 5),
            await stack.search.search(INITIATIVE, "alpha bravo", 5),
        )

    global_results, initiative_results = asyncio.run(scenario())
    assert [result.card.content for result in global_results] == ["alpha bravo"]
    assert all("charlie" not in excerpt.text for result in global_results for excerpt in result.excerpts)
    assert [result.card.content for result in initiative_results] == ["charlie delta"]
    assert all("alpha" not in excerpt.text for result in initiative_results for excerpt in result.excerpts)


def test_fallback_has_the_same_shape(make_stack):
    card = MemoryCard(name="auth-notes", title="Auth notes", content=PKCE_CONTENT)

    async def scenario():
        offline = await make_stack(ready=False)
        await offline.store.do_save_document(GLOBAL, card)
        fallback = await offline.search.search(GLOBAL, "PKCE", 5)

        online = await make_stack()
        semantic = await online.search.search(GLOBAL, "PKCE", 5)
        return fallback, semantic

    fallback, semantic = asyncio.run(scenario())
    assert len(fallback) == 1 and len(semantic) == 1
    assert isinstance(fallback[0], MemoryCardSearchResult)
    assert fallback[0].model_dump().keys() == semantic[0].model_dump().keys()
    assert fallback[0].card == semantic[0].card
    # 10 for the exact match plus one per occurrence
    assert fallback[0].relevance_score == pytest.approx((10 + 40) / 10)
    assert 1 <= len(fallback[0].excerpts) <= 3
    assert all("PKCE" in excerpt.text for excerpt in fallback[0].excerpts)


def test_fallback_excludes_unrelated_cards_and_respects_limit(make_stack):
    cards = [
        MemoryCard(name="one", content="cache cache cache"),
        MemoryCard(name="two", content="cache"),
        MemoryCard(name="three", content="unrelated"),
        MemoryCard(name="four", content="cache cache"),
    ]

    async def scenario():
        stack = await make_stack(ready=False)
        for card in cards:
            await stack.store.do_save_document(GLOBAL, card)
        return await stack.search.search(GLOBAL, "cache", 2)

    results = asyncio.run(scenario())
    assert [result.card.name for result in results] == ["one", "four"]


def test_semantic_failure_falls_back_to_text_search(make_stack, monkeypatch):
    card = MemoryCard(name="auth-notes", content="PKCE everywhere")

    async def scenario():
        stack = await make_stack()
        await stack.store.do_save_document(GLOBAL, card)

        async def broken_query(scope, query_text, limit):
            raise RuntimeError("index exploded")

        monkeypatch.setattr(stack.rag, "do_query", broken_query)
        return await stack.search.search(GLOBAL, "pkce", 5)

    results = asyncio.run(scenario())
    assert [result.card.name for result in results] == ["auth-notes"]
    assert results[0].relevance_score == pytest.approx(1.1)


def test_non_positive_limit_returns_nothing(make_stack):
    async def scenario():
        stack = await make_stack()
        return await stack.search.search(GLOBAL, "anything", 0)

    assert asyncio.run(scenario()) == []


def test_context_cards(make_stack):
    style = MemoryCard(name="style-guide", content="Always use type hints.", contextIncludingPolicy=ContextPolicy.ALWAYS)
    kubernetes = MemoryCard(name="kubernetes-notes", content="Kubernetes rollout uses readiness probes.")
    postgres = MemoryCard(name="postgres-notes", content="Postgres vacuum tuning keeps tables healthy.")

    async def scenario():
        offline = await make_stack(ready=False)
        for card in (style, kubernetes, postgres):
            await offline.store.do_save_document(GLOBAL, card)
        always_only = await offline.search.get_context_memory_cards(GLOBAL)
        everything = await offline.search.get_context_memory_cards(GLOBAL, include_all=True)
        with_keywords = await offline.search.get_context_memory_cards(
            GLOBAL, semantic_queries=["kubernetes rollout", "rollout probes"]
        )
        with_all = await offline.search.get_context_memory_cards(
            GLOBAL, include_all=True, semantic_queries=["kubernetes rollout"]
        )

        online = await make_stack()
        with_semantics = await online.search.get_context_memory_cards(GLOBAL, semantic_queries=["kubernetes rollout"])
        return always_only, everything, with_keywords, with_all, with_semantics

    always_only, everything, with_keywords, with_all, with_semantics = asyncio.run(scenario())
    assert [card.name for card in always_only] == ["style-guide"]
    assert [card.name for card in everything] == ["kubernetes-notes", "postgres-notes", "style-guide"]
    assert [card.name for card in with_keywords] == ["style-guide", "kubernetes-notes"]
    assert [card.name for card in with_all] == ["kubernetes-notes", "postgres-notes", "style-guide"]
    assert [card.name for card in with_semantics[:2]] == ["style-guide", "kubernetes-notes"]
    assert [card.name for card in with_semantics].count("style-guide") == 1


def test_search_recovers_once_embedder_comes_back(make_stack):
    card = MemoryCard(name="auth-notes", title="Auth notes", content=PKCE_CONTENT)

    async def scenario():
        stack = await make_stack(ready=False)
        await stack.store.do_save_document(GLOBAL, card)
        offline = await stack.search.search(GLOBAL, "PKCE", 5)
        offline_chunks = await stack.rag.do_count(GLOBAL)

        stack.embed.reachable = True
        online = await stack.search.search(GLOBAL, "PKCE", 5)
        return stack, offline, offline_chunks, online, await stack.rag.do_count(GLOBAL)

    stack, offline, offline_chunks, online, online_chunks = asyncio.run(scenario())
    assert [result.card.name for result in offline] == ["auth-notes"]
    assert offline[0].relevance_score > 1
    assert offline_chunks == 0
    assert stack.embed.is_ready()
    assert online_chunks > 0
    assert [result.card.name for result in online] == ["auth-notes"]
    assert 0 <= online[0].relevance_score <= 1
