"""Streaming HTTP downloader with bounded redirects and byte-level progress."""

import logging
from collections.abc import Callable
from pathlib import Path

import aiofiles
import httpx

from core.config import settings

logger = logging.getLogger(__name__)

# (downloaded_bytes, total_bytes or None when the server sends no content-length)
ByteProgressCallback = Callable[[int, int | None], None]

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# Some model hosts reject requests without a browser-like user agent
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class DownloadError(Exception):
    """A download failed with a non-success HTTP status or a redirect loop."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class Downloader:
    """Fetch one URL to one file.

    Redirects are followed manually so the hop budget is explicit. The caller
    owns cleanup of a partially written file; the write handle is always
    closed.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        chunk_size: int | None = None,
        max_redirects: int | None = None,
    ):
        self._transport = transport
        self._chunk_size = chunk_size or settings.DOWNLOAD_CHUNK_SIZE
        self._max_redirects = settings.DOWNLOAD_MAX_REDIRECTS if max_redirects is None else max_redirects

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=False,
            timeout=None,
            headers={"User-Agent": USER_AGENT},
        )

    async def fetch(
        self,
        url: str,
        target_path: str | Path,
        on_progress: ByteProgressCallback | None = None,
        max_redirects: int | None = None,
    ) -> None:
        """Download url into target_path.

        Raises:
            DownloadError: Non-200 final status or more than max_redirects hops.
            httpx.HTTPError / OSError: Network or write failures.
        """
        remaining = self._max_redirects if max_redirects is None else max_redirects
        async with self._client() as client:
            await self._fetch(client, url, Path(target_path), on_progress, remaining)

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        target: Path,
        on_progress: ByteProgressCallback | None,
        remaining_redirects: int,
    ) -> None:
        async with client.stream("GET", url) as response:
            location = response.headers.get("location")
            if response.status_code in REDIRECT_STATUSES and location:
                if remaining_redirects <= 0:
                    raise DownloadError("Too many redirects", status_code=response.status_code)
                next_url = str(response.url.join(location))
            else:
                if response.status_code != 200:
                    raise DownloadError(
                        f"Download failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                await self._write_body(response, target, on_progress)
                return

        logger.debug("Redirected %s -> %s (%d left)", url, next_url, remaining_redirects - 1)
        await self._fetch(client, next_url, target, on_progress, remaining_redirects - 1)

    async def _write_body(
        self,
        response: httpx.Response,
        target: Path,
        on_progress: ByteProgressCallback | None,
    ) -> None:
        content_length = response.headers.get("content-length")
        total_bytes = int(content_length) if content_length and content_length.isdigit() else None
        total_bytes = total_bytes or None
        downloaded = 0

        async with aiofiles.open(target, "wb") as f:
            async for chunk in response.aiter_bytes(chunk_size=self._chunk_size):
                await f.write(chunk)
                downloaded += len(chunk)
                if on_progress:
                    on_progress(downloaded, total_bytes)

        logger.info("Downloaded %s (%d bytes)", target.name, downloaded)
