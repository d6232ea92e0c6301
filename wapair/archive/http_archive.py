"""HTTP upload archive backed by httpx."""

import logging

import httpx

from wapair.archive.base import RemoteArchive
from wapair.core.errors import ArchiveError

logger = logging.getLogger(__name__)

# Response fields checked, in order, for the retrieval locator
_LOCATOR_FIELDS = ("url", "link", "locator", "id")


class HttpArchive(RemoteArchive):
    """Uploads blobs as multipart form data to a storage endpoint.

    The endpoint must answer with JSON containing one of ``url``, ``link``,
    ``locator`` or ``id``, or with a ``Location`` header.
    """

    name = "http"

    def __init__(
        self,
        upload_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the archive.

        Args:
            upload_url: Endpoint receiving uploads.
            api_key: Optional bearer token.
            timeout_seconds: Request timeout.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.upload_url = upload_url
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        if self._client is not None:
            return
        headers = {"User-Agent": "wapair/0.1.0"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        )
        logger.info(f"HTTP archive ready: {self.upload_url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def archive(self, data: bytes, name: str) -> str:
        if self._client is None:
            await self.open()
        assert self._client is not None

        try:
            response = await self._client.post(
                self.upload_url,
                files={"file": (name, data, "application/json")},
                data={"name": name},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ArchiveError(f"Archive upload rejected: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise ArchiveError(f"Archive upload failed: {e}") from e

        locator = self._extract_locator(response)
        if not locator:
            raise ArchiveError("Archive response did not contain a locator")

        logger.info(f"Archived {name} ({len(data)} bytes)")
        return locator

    @staticmethod
    def _extract_locator(response: httpx.Response) -> str | None:
        """Pull the locator out of a JSON body or the Location header."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            for key in _LOCATOR_FIELDS:
                value = body.get(key)
                if value:
                    return str(value)

        return response.headers.get("location")
