from abc import abstractmethod

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class HttpClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config)
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)

        # httpx.MockTransport in tests, the default network transport otherwise
        self._client: httpx.AsyncClient | None = None
        self._transport = transport

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """Headers sent with every request; empty when the backend needs no API key."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """Base URL of the backend, e.g. "http://localhost:11434"."""
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """Path answered with 2xx while the backend is up; "" probes the base URL itself."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> None:
        """GET the healthcheck endpoint.

        Raises:
            Exception: If the backend is unreachable or answers with a non-2xx status.
        """
        await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), raise_on_error=True)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def _do_boot(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _do_close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        endpoint: str = "",
        json: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send a request to the embedding backend.

        Args:
            method (str): HTTP method, "GET" for probes and model listings, "POST" for embeddings.
            endpoint (str): Path below the base URL; the leading slash is optional.
            json (dict | None): JSON body of a POST request.
            raise_on_error (bool): Raise on a non-2xx status instead of returning the response.

        Returns:
            httpx.Response: The raw response.

        Raises:
            Exception: If boot() was not called, or on a non-2xx status when raise_on_error is set.
        """
        if self._client is None:
            raise Exception(f"HTTP client of {self.get_client_type()} engine '{self.get_engine_name()}' not booted.")

        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""
        url = f"{self._get_base_url().rstrip('/')}{endpoint}"
        response = await self._client.request(method, url, headers=self._get_auth_header(), json=json)

        if raise_on_error and response.status_code >= 300:
            self.logging.error("%s %s failed with status %d: %s", method, url, response.status_code, response.text[:200])
            raise Exception(f"{method} {url} failed with status {response.status_code}")

        return response
