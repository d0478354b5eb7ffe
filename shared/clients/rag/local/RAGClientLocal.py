import asyncio
import os
from typing import Any

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.local.LocalIndex import LocalIndex
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.scope import Scope

DEFAULT_INDEX_PATH = "vector"


class RAGClientLocal(RAGClientInterface):
    """On-disk vector store: one LocalIndex per scope directory below RAG_LOCAL_PATH."""

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface):
        super().__init__(helper_config=helper_config, embed_client=embed_client)
        default_path = helper_config.get_string_val("VECTOR_INDEX_PATH", default=DEFAULT_INDEX_PATH)
        self._root_path = self.get_config_val("PATH", default=default_path, val_type="path")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Local"

    def get_scope_directory(self, scope: Scope) -> str:
        return os.path.join(self._root_path, *scope.path_parts())

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="path", default=DEFAULT_INDEX_PATH),
        ]

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def _do_boot(self) -> None:
        await asyncio.to_thread(os.makedirs, self._root_path, exist_ok=True)

    async def do_healthcheck(self) -> None:
        if not os.path.isdir(self._root_path):
            raise Exception(f"Vector index directory '{self._root_path}' does not exist.")
        if not os.access(self._root_path, os.W_OK):
            raise PermissionError(f"Vector index directory '{self._root_path}' is not writable.")

    ##########################################
    ########### STORAGE PRIMITIVES ###########
    ##########################################

    async def _do_open_index(self, scope: Scope) -> LocalIndex:
        index = LocalIndex(self.get_scope_directory(scope), logger=self.logging)
        await index.do_open()
        return index

    async def _do_drop_index(self, scope: Scope, handle: Any | None) -> None:
        index = handle if handle is not None else LocalIndex(self.get_scope_directory(scope), logger=self.logging)
        await index.do_destroy()

    async def _do_upsert_points(self, handle: LocalIndex, points: list[dict[str, Any]]) -> None:
        await handle.do_upsert(points)

    async def _do_search_points(self, handle: LocalIndex, vector: list[float], limit: int) -> list[dict[str, Any]]:
        return handle.search(vector, limit)

    async def _do_delete_document_points(self, handle: LocalIndex, scope: str, document_name: str) -> int:
        return await handle.do_delete_where(
            lambda payload: payload.get("scope") == scope and payload.get("document_name") == document_name
        )

    async def _do_count_points(self, handle: LocalIndex) -> int:
        return handle.count()
