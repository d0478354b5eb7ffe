from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.memory_card import MemoryCard
from shared.models.scope import Scope


class DocumentStoreInterface(ClientInterface):
    """Read/write access to the memory cards of each scope.

    The index only relies on the read side: do_list_documents() for the
    cards of a scope and do_get_document_content() for the exact serialized
    text that is hashed for consistency checks.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "store"
        """
        return "store"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_list_document_names(self, scope: Scope) -> list[str]:
        """Names of all cards currently stored in a scope, sorted."""
        pass

    @abstractmethod
    async def do_list_documents(self, scope: Scope) -> list[MemoryCard]:
        """All parseable cards of a scope, sorted by name. Unparseable cards are skipped."""
        pass

    @abstractmethod
    async def do_get_document_content(self, scope: Scope, name: str) -> str | None:
        """The raw serialized content of a card, or None if the card does not exist."""
        pass

    @abstractmethod
    async def do_get_document(self, scope: Scope, name: str) -> MemoryCard | None:
        """A single card, or None if it does not exist or cannot be parsed."""
        pass

    @abstractmethod
    async def do_save_document(self, scope: Scope, card: MemoryCard) -> bool:
        """Create or overwrite a card.

        Returns:
            bool: True if an existing card was updated, False if it was created.
        """
        pass

    @abstractmethod
    async def do_remove_document(self, scope: Scope, name: str) -> bool:
        """Delete a card.

        Returns:
            bool: True if the card existed and was deleted.
        """
        pass

    @abstractmethod
    def parse_document(self, scope: Scope, name: str, content: str) -> MemoryCard | None:
        """Parse raw card content as returned by do_get_document_content(); None if it is not a valid card."""
        pass

    async def do_get_document_contents(self, scope: Scope) -> dict[str, str]:
        """Raw serialized content of every card of a scope (name -> content)."""
        contents: dict[str, str] = {}
        for name in await self.do_list_document_names(scope):
            content = await self.do_get_document_content(scope, name)
            if content is not None:
                contents[name] = content
        return contents

    async def do_get_document_snapshot(self, scope: Scope) -> tuple[dict[str, str], list[MemoryCard]]:
        """Raw content and parsed card of every card of a scope, from a single read per card.

        Unparseable cards appear in the contents only.

        Returns:
            tuple[dict[str, str], list[MemoryCard]]: name -> raw content, and the cards sorted by name.
        """
        contents = await self.do_get_document_contents(scope)
        cards: list[MemoryCard] = []
        for name, content in contents.items():
            card = self.parse_document(scope, name, content)
            if card is not None:
                cards.append(card)
        return contents, cards
