"""Environment catalog retrieval from the compile server's REST API."""

import json
import ssl
from pathlib import Path
from typing import Any

import httpx
import structlog

from infra_deploy.config.settings import ServerConfig
from infra_deploy.exceptions import CompilationFailureError, ExternalServiceError, MalformedCatalogError
from infra_deploy.models.catalog import Catalog
from infra_deploy.utils.retry import async_retry

log = structlog.get_logger(__name__)


class CatalogClient:
    """Fetch compiled application catalogs for an environment.

    Example:
        >>> async with CatalogClient("https://puppet:8140") as client:
        ...     catalog = await client.fetch("production")
    """

    ENDPOINT = "/puppet/v3/environment/{environment}"
    # Statuses that mean the request was refused before anything was compiled.
    NOT_COMPILED = frozenset({401, 403, 404})

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        verify: bool | ssl.SSLContext = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Compile server URL, e.g. https://puppet:8140
            timeout: Request timeout in seconds
            verify: Verify TLS certificates, or an SSL context to verify with
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: ServerConfig) -> "CatalogClient":
        return cls(config.base_url, timeout=config.timeout, verify=_ssl_verify(config))

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self.verify,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
            log.debug("catalog_client_connected", base_url=self.base_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CatalogClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def _get(self, path: str) -> httpx.Response:
        if self._client is None:
            await self.connect()

        assert self._client is not None
        return await self._client.get(path)

    async def fetch(self, environment: str = "production") -> Catalog:
        """Retrieve and parse the catalog for an environment.

        Raises:
            ExternalServiceError: If the server is unreachable, refuses the
                request, or answers with an error status and no message.
            CompilationFailureError: If the server returned an error payload,
                with or without an error status.
            MalformedCatalogError: If the body is not a valid catalog.
        """
        path = self.ENDPOINT.format(environment=environment)
        log.info("catalog_fetch", environment=environment, base_url=self.base_url)

        try:
            response = await self._get(path)
        except httpx.TransportError as e:
            raise ExternalServiceError(f"Error retrieving environment catalog for {environment}: {e}") from e

        if response.is_error:
            document = _try_json(response)
            message = document.get("message") if isinstance(document, dict) else None
            if message and "applications" not in document and response.status_code not in self.NOT_COMPILED:
                log.error("catalog_compilation_failed", environment=environment, status_code=response.status_code)
                raise CompilationFailureError(str(message), environment=environment)
            raise ExternalServiceError(
                message or f"Error retrieving environment catalog for {environment}",
                status_code=response.status_code,
                response_text=response.text,
            )

        try:
            document = response.json()
        except ValueError as e:
            raise MalformedCatalogError("Catalog response is not valid JSON", environment=environment) from e

        catalog = Catalog.from_dict(document, environment=environment)
        log.info("catalog_fetched", environment=environment, applications=len(catalog.applications))
        return catalog


def _ssl_verify(config: ServerConfig) -> bool | ssl.SSLContext:
    """Build the TLS setup for the compile server.

    The environment endpoint only answers agents that present their client
    certificate, so one is loaded whenever it is configured.
    """
    if not config.verify_ssl and not config.client_cert:
        return False
    if not config.ca_cert and not config.client_cert:
        return True

    context = ssl.create_default_context(cafile=config.ca_cert if config.verify_ssl else None)
    if not config.verify_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if config.client_cert:
        context.load_cert_chain(config.client_cert, keyfile=config.client_key)
    return context


def _try_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def load_catalog_file(path: str | Path, environment: str = "production") -> Catalog:
    """Load a catalog document saved to disk.

    Raises:
        MalformedCatalogError: If the file is missing or not valid JSON.
        CompilationFailureError: If the document is an error payload.
    """
    catalog_file = Path(path).expanduser()
    try:
        document = json.loads(catalog_file.read_text())
    except OSError as e:
        raise MalformedCatalogError(f"Cannot read catalog file {path}: {e}", environment=environment) from e
    except json.JSONDecodeError as e:
        raise MalformedCatalogError(f"Catalog file {path} is not valid JSON: {e}", environment=environment) from e

    return Catalog.from_dict(document, environment=environment)
