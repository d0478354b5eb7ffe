from abc import abstractmethod

import httpx

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.errors import EmbeddingUnavailableError
from shared.helper.HelperConfig import HelperConfig

DEFAULT_EMBED_MODEL = "nomic-embed-text"


class EmbedClientInterface(HttpClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # model and embedding config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=DEFAULT_EMBED_MODEL)
        self._ready = False

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_ready(self) -> bool:
        """Returns True if the provider booted and passed its healthcheck."""
        return self._ready and self.is_booted()

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    def get_model_identifier(self) -> str:
        """Identifier of the embedding model, recorded in the index metadata of every scope."""
        return self.embed_model

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """
        Returns the endpoint path for model listing requests.

        Returns:
            str: The endpoint path for model listing requests (e.g. "/api/tags")

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_model_names(self, models_response: dict) -> list[str]:
        """Extract the available model names from a model listing response.

        Args:
            models_response (dict): The parsed JSON response of the model listing endpoint.

        Returns:
            list[str]: The model names known to the backend.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_ensure_ready(self) -> None:
        """Boot the provider if necessary and verify it can serve the configured model.

        Safe to call repeatedly; a provider that is already ready returns immediately.

        Raises:
            EmbeddingUnavailableError: If the backend cannot be reached or lacks the model.
        """
        if self.is_ready():
            return
        try:
            if not self.is_booted():
                await self.boot()
            await self.do_healthcheck()
            available = self.extract_model_names((await self.do_fetch_models()).json())
        except Exception as exc:
            self._ready = False
            raise EmbeddingUnavailableError(
                f"Embedding provider '{self.get_engine_name()}' is not reachable: {exc}"
            ) from exc

        if not self._is_model_available(available):
            self._ready = False
            raise EmbeddingUnavailableError(
                f"Embedding model '{self.embed_model}' is not available on '{self.get_engine_name()}'."
            )
        self._ready = True
        self.logging.info("Embedding provider '%s' ready with model '%s'.", self.get_engine_name(), self.embed_model)

    async def _do_close(self) -> None:
        self._ready = False
        await super()._do_close()

    def _is_model_available(self, available: list[str]) -> bool:
        wanted = self.embed_model
        for name in available:
            # "model" and "model:latest" refer to the same model
            if name == wanted or name.split(":", 1)[0] == wanted or name == f"{wanted}:latest":
                return True
        return False

    async def do_fetch_models(self) -> httpx.Response:
        """Fetch the list of available embedding models from the backend.

        Returns:
            httpx.Response: The response containing the model list.
        """
        return await self.do_request(method="GET", endpoint=self._get_endpoint_models(), raise_on_error=True)

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingUnavailableError: If the provider is not ready or the request fails.
        """
        if not self.is_ready():
            raise EmbeddingUnavailableError("Embedding provider not ready.")
        texts = [texts] if isinstance(texts, str) else texts
        if not texts:
            return []
        if any(not text.strip() for text in texts):
            raise ValueError("Cannot generate an embedding for empty text.")

        body = self.get_embed_payload(texts)
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailableError(f"Embedding request failed: {exc}") from exc
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingUnavailableError("Embedding request failed with status %d." % response.status_code)

        try:
            vectors = self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            raise EmbeddingUnavailableError(str(exc)) from exc
        if len(vectors) != len(texts):
            raise EmbeddingUnavailableError(
                f"Embedding backend returned {len(vectors)} vectors for {len(texts)} texts."
            )
        return vectors

    async def do_embed_text(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingUnavailableError: If the provider is not ready or the request fails.
        """
        return (await self.do_embed([text]))[0]
