from shared.clients.store.DocumentStoreInterface import DocumentStoreInterface
from shared.helper.HelperConfig import HelperConfig


class DocumentStoreManager:
    """
    Manager class to handle the memory-card store client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _initialize_client(self) -> DocumentStoreInterface:
        """
        Initializes the store client for the engine in STORE_ENGINE (default "markdown").

        Raises:
            ValueError: If the engine is unknown.
        """
        engine = self.helper_config.get_string_val("STORE_ENGINE", default="markdown").strip().lower().capitalize()
        className = f"DocumentStore{engine}"
        try:
            module = __import__(
                f"shared.clients.store.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported store engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug(f"Instantiated store client for engine: {engine}")
        return client

    def get_client(self) -> DocumentStoreInterface:
        return self.client
