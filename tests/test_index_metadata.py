import asyncio
import json
import os

from services.memory_index.IndexMetadataTracker import IndexMetadataTracker
from services.memory_index.IndexRegistry import IndexRegistry
from shared.models.index import IndexMetadata
from shared.models.scope import Scope


def test_hash_is_deterministic_and_content_sensitive():
    first = IndexMetadataTracker.compute_hash("OAuth flow uses PKCE")
    assert first == IndexMetadataTracker.compute_hash("OAuth flow uses PKCE")
    assert first != IndexMetadataTracker.compute_hash("OAuth flow uses PKCE.")
    assert len(first) == 64


def test_metadata_round_trip(helper_config):
    tracker = IndexMetadataTracker(helper_config, embedding_model="nomic-embed-text")
    scope = Scope.initiative("initiative-1")
    metadata = tracker.build_fresh({"auth-notes": "a", "db-notes": "b"})

    async def scenario():
        assert await tracker.load(scope) is None
        await tracker.save(scope, metadata)
        return await tracker.load(scope)

    loaded = asyncio.run(scenario())
    assert loaded == metadata
    assert loaded.embedding_model == "nomic-embed-text"
    assert loaded.file_hashes["auth-notes"] == IndexMetadataTracker.compute_hash("a")
    assert tracker.get_metadata_path(scope).endswith(
        os.path.join("vector", "initiatives", "initiative-1", "index-metadata.json")
    )


def test_metadata_file_uses_camel_case_keys(helper_config):
    tracker = IndexMetadataTracker(helper_config, embedding_model="m")
    scope = Scope.global_scope()
    asyncio.run(tracker.save(scope, tracker.build_fresh({"card": "content"})))

    with open(tracker.get_metadata_path(scope), encoding="utf-8") as f:
        raw = json.load(f)
    assert set(raw) == {"embeddingModel", "lastRebuildTime", "fileHashes"}
    assert raw["lastRebuildTime"] > 0


def test_unknown_metadata_fields_are_ignored(helper_config):
    tracker = IndexMetadataTracker(helper_config, embedding_model="m")
    scope = Scope.global_scope()
    path = tracker.get_metadata_path(scope)
    os.makedirs(os.path.dirname(path))
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"embeddingModel": "m", "lastRebuildTime": 1, "fileHashes": {"x": "h"}, "schemaVersion": 7}, f)

    loaded = asyncio.run(tracker.load(scope))
    assert loaded == IndexMetadata(embedding_model="m", last_rebuild_time=1, file_hashes={"x": "h"})


def test_corrupt_metadata_counts_as_absent(helper_config):
    tracker = IndexMetadataTracker(helper_config, embedding_model="m")
    scope = Scope.global_scope()
    path = tracker.get_metadata_path(scope)
    os.makedirs(os.path.dirname(path))
    with open(path, "w", encoding="utf-8") as f:
        f.write("{not json")

    assert asyncio.run(tracker.load(scope)) is None


def test_registry_flags_scope_once():
    registry = IndexRegistry()
    scope = Scope.initiative("a")

    assert registry.try_mark_rebuilding(scope)
    assert not registry.try_mark_rebuilding(Scope.from_wire("a"))
    assert not registry.is_rebuilding(Scope.global_scope())
    registry.clear_rebuilding(scope)
    assert registry.try_mark_rebuilding(scope)


def test_registry_hands_out_one_lock_per_scope():
    registry = IndexRegistry()
    assert registry.get_lock(Scope.global_scope()) is registry.get_lock(Scope.from_wire("global"))
    assert registry.get_lock(Scope.global_scope()) is not registry.get_lock(Scope.initiative("a"))

    asyncio.run(registry.close())
    assert not registry.is_booted()
