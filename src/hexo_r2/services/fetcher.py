"""Image byte retrieval from asset folders or remote hosts."""

import asyncio
import logging
from pathlib import Path
from urllib.parse import urljoin

import httpx

from hexo_r2 import __version__
from hexo_r2.config import Settings
from hexo_r2.models.references import Document, ImageReference

logger = logging.getLogger("hexo_r2.fetcher")


class FetchError(Exception):
    """Raised when an image's bytes cannot be obtained."""


class AssetNotFoundError(FetchError):
    """Raised when a local asset file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Asset file not found: {path}")


class HttpStatusError(FetchError):
    """Raised when a download ends with a status other than 200."""

    def __init__(self, status: int, url: str) -> None:
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status} for {url}")


class TooManyRedirectsError(FetchError):
    """Raised when a download exceeds the redirect limit."""

    def __init__(self, url: str, limit: int) -> None:
        self.url = url
        super().__init__(f"More than {limit} redirects starting at {url}")


class AssetFetcher:
    """Reads local assets and downloads remote images."""

    MAX_REDIRECTS = 5
    REDIRECT_STATUSES = frozenset({301, 302, 307, 308})

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"User-Agent": f"hexo-r2/{__version__}"}
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=30.0,
                proxy=self.settings.proxy or None,
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, reference: ImageReference, document: Document) -> bytes:
        """Return the bytes behind a reference."""
        if reference.is_local:
            return await self.read_local(document.asset_dir / reference.source)
        return await self.download(reference.source)

    async def read_local(self, path: Path) -> bytes:
        """Read a file from a post's asset folder."""
        if not path.is_file():
            raise AssetNotFoundError(path)

        # Run file read in thread pool to avoid blocking
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, path.read_bytes)
        except FileNotFoundError as exc:
            raise AssetNotFoundError(path) from exc

    async def download(self, url: str) -> bytes:
        """
        Download an image, following redirects manually.

        Relative Location headers are resolved against the URL that
        produced them.

        Raises:
            HttpStatusError: The final response was not 200
            TooManyRedirectsError: More than MAX_REDIRECTS hops
            FetchError: Transport failure or redirect without Location
        """
        client = await self._get_client()
        current = url
        redirects = 0

        while True:
            try:
                response = await client.get(current)
            except httpx.HTTPError as exc:
                raise FetchError(f"Request failed for {current}: {exc}") from exc

            if response.status_code in self.REDIRECT_STATUSES:
                location = response.headers.get("location")
                if not location:
                    raise FetchError(f"Redirect without Location header: {current}")
                if redirects >= self.MAX_REDIRECTS:
                    raise TooManyRedirectsError(url, self.MAX_REDIRECTS)
                redirects += 1
                current = urljoin(current, location)
                logger.debug("Redirect %d: %s", redirects, current)
                continue

            if response.status_code != 200:
                raise HttpStatusError(response.status_code, current)

            return response.content
