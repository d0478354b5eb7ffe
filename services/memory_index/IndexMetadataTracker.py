"""Per-scope index metadata: which embedding model built the index and the content hash of every card."""

import asyncio
import hashlib
import json
import os
import time

from pydantic import ValidationError

from shared.helper.HelperConfig import HelperConfig
from shared.models.index import IndexMetadata
from shared.models.scope import Scope

METADATA_FILE_NAME = "index-metadata.json"
DEFAULT_INDEX_PATH = "vector"


class IndexMetadataTracker:
    """Owns the ``index-metadata.json`` file of every scope.

    The file lives next to the vector index of the scope:
    ``<VECTOR_INDEX_PATH>/global/`` or ``<VECTOR_INDEX_PATH>/initiatives/<id>/``.
    """

    def __init__(self, helper_config: HelperConfig, embedding_model: str) -> None:
        self.logging = helper_config.get_logger()
        self.embedding_model = embedding_model
        self._root_path = helper_config.get_path_val("VECTOR_INDEX_PATH", default=DEFAULT_INDEX_PATH)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_metadata_path(self, scope: Scope) -> str:
        return os.path.join(self._root_path, *scope.path_parts(), METADATA_FILE_NAME)

    @staticmethod
    def compute_hash(content: str) -> str:
        """SHA-256 hex digest of a card's serialized content."""
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    ##########################################
    ############## PERSISTENCE ###############
    ##########################################

    async def load(self, scope: Scope) -> IndexMetadata | None:
        """Read the persisted metadata of a scope.

        Returns:
            IndexMetadata | None: The metadata, or None if it was never written
                or the file cannot be read or parsed (both mean "rebuild").
        """
        path = self.get_metadata_path(scope)
        try:
            raw = await asyncio.to_thread(self._read_file, path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            self.logging.warning("Cannot read index metadata '%s': %s", path, exc)
            return None

        try:
            return IndexMetadata.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            self.logging.warning("Ignoring unreadable index metadata '%s': %s", path, exc)
            return None

    async def save(self, scope: Scope, metadata: IndexMetadata) -> None:
        """Persist the metadata of a scope, creating the scope directory if needed.

        Raises:
            OSError: If the file cannot be written.
        """
        path = self.get_metadata_path(scope)
        raw = json.dumps(metadata.model_dump(by_alias=True), indent=2)
        await asyncio.to_thread(self._write_file, path, raw)

    async def remove(self, scope: Scope) -> None:
        """Delete the metadata file of a scope, if present."""
        try:
            await asyncio.to_thread(os.remove, self.get_metadata_path(scope))
        except FileNotFoundError:
            pass

    ##########################################
    ############### BUILDERS #################
    ##########################################

    def build_fresh(self, contents: dict[str, str]) -> IndexMetadata:
        """Metadata for an index built from exactly these cards, stamped with the current model and time.

        Args:
            contents (dict[str, str]): Card name -> serialized card content.
        """
        return IndexMetadata(
            embedding_model=self.embedding_model,
            last_rebuild_time=int(time.time() * 1000),
            file_hashes={name: self.compute_hash(content) for name, content in contents.items()},
        )

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def _read_file(path: str) -> str:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    @staticmethod
    def _write_file(path: str, raw: str) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(raw)
        os.replace(tmp_path, path)
