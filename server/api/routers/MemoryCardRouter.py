"""Memory-card router: write cards, keep their index current and search them.

Every write goes to the knowledge base first and is then mirrored into the
vector index. Index failures never fail the write; they are reported in the
response and repaired by the next consistency check.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from server.models.requests import UpsertMemoryCardRequest
from server.models.responses import RebuildResponse, RemoveMemoryCardResponse, UpsertMemoryCardResponse
from shared.dependencies.auth import verify_api_key
from shared.errors import EmbeddingUnavailableError, RebuildInProgress
from shared.models.scope import Scope
from shared.models.search import SearchRequest, SearchResponse

memory_card_router = APIRouter()


def _parse_scope(raw: str) -> Scope:
    try:
        return Scope.from_wire(raw)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid scope '{raw}': {e}")


@memory_card_router.put(
    "/memory-cards",
    dependencies=[Depends(verify_api_key)],
    tags=["Memory cards"],
)
async def handle_upsert_memory_card(request: Request, body: UpsertMemoryCardRequest) -> JSONResponse:
    """Create or update a memory card and index it.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (UpsertMemoryCardRequest): Target scope and the full card.

    Returns:
        JSONResponse: Whether the card was created or updated, plus the index outcome.
    """
    scope = _parse_scope(body.scope)
    document_store = request.app.state.document_store
    try:
        updated = await document_store.do_save_document(scope, body.card)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    index_result = await request.app.state.consistency_manager.index_document(scope, body.card)
    response = UpsertMemoryCardResponse(
        scope=scope.to_wire(),
        name=body.card.name,
        status="updated" if updated else "created",
        index=index_result,
    )
    return JSONResponse(content=response.model_dump(mode="json"))


@memory_card_router.delete(
    "/memory-cards/{scope}/{name}",
    dependencies=[Depends(verify_api_key)],
    tags=["Memory cards"],
)
async def handle_remove_memory_card(request: Request, scope: str, name: str) -> JSONResponse:
    """Delete a memory card and drop its chunks from the index.

    Raises:
        HTTPException: 404 if the card does not exist in the scope.
    """
    parsed_scope = _parse_scope(scope)
    try:
        removed = await request.app.state.document_store.do_remove_document(parsed_scope, name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail=f"Memory card '{name}' not found in scope '{scope}'.")

    removed_from_index = await request.app.state.consistency_manager.remove_document_from_index(parsed_scope, name)
    response = RemoveMemoryCardResponse(scope=parsed_scope.to_wire(), name=name, removed_from_index=removed_from_index)
    return JSONResponse(content=response.model_dump(mode="json"))


@memory_card_router.post(
    "/memory-cards/search",
    dependencies=[Depends(verify_api_key)],
    tags=["Memory cards"],
)
async def handle_search_memory_cards(request: Request, body: SearchRequest) -> JSONResponse:
    """Search the memory cards of a scope.

    Falls back to keyword search when no embedding provider is available,
    and the response shape is the same either way.
    """
    scope = _parse_scope(body.scope)
    request.app.state.logging.info("Memory card search in %s: query=%r", scope.describe(), body.query[:80])

    results = await request.app.state.search_service.search(scope, body.query, body.limit)
    response = SearchResponse(query=body.query, scope=scope.to_wire(), results=results, total=len(results))
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True))


@memory_card_router.post(
    "/memory-cards/rebuild/{scope}",
    dependencies=[Depends(verify_api_key)],
    tags=["Memory cards"],
)
async def handle_rebuild_index(request: Request, scope: str) -> JSONResponse:
    """Rebuild the vector index of a scope from scratch.

    Raises:
        HTTPException: 409 if a rebuild of the scope is running, 503 if no
            embedding provider is available.
    """
    parsed_scope = _parse_scope(scope)
    try:
        count = await request.app.state.consistency_manager.rebuild_scope(parsed_scope)
    except RebuildInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))
    except EmbeddingUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JSONResponse(content=RebuildResponse(scope=parsed_scope.to_wire(), card_count=count).model_dump())
