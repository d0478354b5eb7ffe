import asyncio
import os

import yaml
from pydantic import ValidationError

from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.memory_card import ContextPolicy, MemoryCard
from shared.models.scope import Scope

CARD_SUFFIX = ".md"
FRONT_MATTER_DELIMITER = "---"


def parse_front_matter(text: str) -> tuple[dict, str]:
    """Split a markdown file into its YAML front-matter and body.

    Args:
        text (str): The raw file content.

    Returns:
        tuple[dict, str]: The front-matter mapping (empty if absent) and the body.

    Raises:
        yaml.YAMLError: If the front-matter is not valid YAML.
        ValueError: If the front-matter is not a mapping.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != FRONT_MATTER_DELIMITER:
        return {}, text
    for i in range(1, len(lines)):
        if lines[i].rstrip("\r\n") == FRONT_MATTER_DELIMITER:
            data = yaml.safe_load("".join(lines[1:i])) or {}
            if not isinstance(data, dict):
                raise ValueError("Front-matter must be a mapping.")
            body = "".join(lines[i + 1:])
            return data, body
    return {}, text


def render_front_matter(data: dict, body: str) -> str:
    header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if not body.endswith("\n"):
        body += "\n"
    return f"{FRONT_MATTER_DELIMITER}\n{header}{FRONT_MATTER_DELIMITER}\n{body}"


class DocumentStoreMarkdown(DocumentStoreInterface):
    """Memory cards as markdown files with YAML front-matter.

    Layout below STORE_MARKDOWN_PATH (default KNOWLEDGE_BASE_PATH, i.e. <PROJECT_ROOT>/base):
        memory-cards/<name>.md                        global scope
        initiatives/<id>/memory-cards/<name>.md       initiative scope
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        default_path = helper_config.get_string_val("KNOWLEDGE_BASE_PATH", default="base")
        self._base_path = self.get_config_val("PATH", default=default_path, val_type="path")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Markdown"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="path", default="base"),
        ]

    def get_cards_directory(self, scope: Scope) -> str:
        if scope.is_global:
            return os.path.join(self._base_path, "memory-cards")
        return os.path.join(self._base_path, "initiatives", scope.initiative_id, "memory-cards")

    def get_card_path(self, scope: Scope, name: str) -> str:
        self._check_name(name)
        return os.path.join(self.get_cards_directory(scope), f"{name}{CARD_SUFFIX}")

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def _do_boot(self) -> None:
        await asyncio.to_thread(os.makedirs, self._base_path, exist_ok=True)

    async def do_healthcheck(self) -> None:
        if not os.path.isdir(self._base_path):
            raise Exception(f"Knowledge base directory '{self._base_path}' does not exist.")

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_list_document_names(self, scope: Scope) -> list[str]:
        directory = self.get_cards_directory(scope)
        try:
            files = await asyncio.to_thread(os.listdir, directory)
        except FileNotFoundError:
            return []
        return sorted(f[: -len(CARD_SUFFIX)] for f in files if f.endswith(CARD_SUFFIX))

    async def do_list_documents(self, scope: Scope) -> list[MemoryCard]:
        cards: list[MemoryCard] = []
        for name in await self.do_list_document_names(scope):
            card = await self.do_get_document(scope, name)
            if card is not None:
                cards.append(card)
        return cards

    async def do_get_document_content(self, scope: Scope, name: str) -> str | None:
        try:
            return await asyncio.to_thread(self._read_file, self.get_card_path(scope, name))
        except FileNotFoundError:
            return None

    async def do_get_document(self, scope: Scope, name: str) -> MemoryCard | None:
        content = await self.do_get_document_content(scope, name)
        if content is None:
            return None
        return self.parse_document(scope, name, content)

    def parse_document(self, scope: Scope, name: str, content: str) -> MemoryCard | None:
        try:
            return self._parse_card(name, content)
        except (yaml.YAMLError, ValueError, ValidationError) as exc:
            self.logging.error("Error parsing memory card '%s' in %s: %s", name, scope.describe(), exc)
            return None

    async def do_save_document(self, scope: Scope, card: MemoryCard) -> bool:
        path = self.get_card_path(scope, card.name)
        existed = await asyncio.to_thread(os.path.exists, path)
        front_matter = {
            "title": card.title,
            "contextIncludingPolicy": ContextPolicy(card.context_policy).value,
            "tags": list(card.tags),
        }
        await asyncio.to_thread(self._write_file, path, render_front_matter(front_matter, card.content))
        return existed

    async def do_remove_document(self, scope: Scope, name: str) -> bool:
        try:
            await asyncio.to_thread(os.remove, self.get_card_path(scope, name))
        except FileNotFoundError:
            return False
        return True

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def _check_name(name: str) -> None:
        # names become file names
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid memory card name '{name}'.")

    @staticmethod
    def _parse_card(name: str, content: str) -> MemoryCard:
        data, body = parse_front_matter(content)
        return MemoryCard(
            name=name,
            title=str(data.get("title") or ""),
            content=body,
            context_policy=data.get("contextIncludingPolicy") or ContextPolicy.AUTO,
            tags=[str(tag) for tag in (data.get("tags") or [])],
        )

    @staticmethod
    def _read_file(path: str) -> str:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    @staticmethod
    def _write_file(path: str, content: str) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
