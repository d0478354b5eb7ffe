from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig


class RAGClientManager:
    """
    Manager class to handle the RAG (vector store) client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the RAG engine from ENV configuration.

        Returns:
            str: The RAG engine name, capitalized (e.g. "Local").

        Raises:
            ValueError: If the configured engine is empty.
        """
        engine = self.helper_config.get_string_val("RAG_ENGINE", default="local")
        if not engine:
            raise ValueError("No RAG engine specified in configuration.")

        # lowercase all and uppercase first letter for class name lookup
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> RAGClientInterface:
        """
        Initializes the RAG client for the configured engine.

        Returns:
            RAGClientInterface: The vector store client.

        Raises:
            ValueError: If the engine is unknown.
        """
        engine = self._get_engine_from_env()
        className = f"RAGClient{engine}"
        try:
            module = __import__(
                f"shared.clients.rag.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported RAG engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config, embed_client=self._embed_client)
        self.logging.debug(f"Instantiated RAG client for engine: {engine}")
        return client

    def get_client(self) -> RAGClientInterface:
        """
        Returns the instantiated RAG client.

        Returns:
            RAGClientInterface: The RAG client instance.
        """
        return self.client
