"""
Handles the low-level fetching of media files over HTTP, streaming each
response to disk in chunks with retry and exponential backoff.
"""

import asyncio
import logging
from pathlib import Path

import aiofiles
import aiohttp

from lesson_cache.exceptions import MediaFetchError

log = logging.getLogger(__name__)


class MediaFetcher:
    """
    An HTTP GET fetcher that writes remote bytes to a local file.

    The underlying `aiohttp.ClientSession` is created on first use and shared by
    every fetch until `close()` is called.
    """

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(
        self,
        max_connections: int = 8,
        max_attempts: int = 3,
        base_delay: float = 1.5,
    ):
        self.max_connections = max_connections
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session and not self._session.closed:
                return self._session

            connector = aiohttp.TCPConnector(
                limit=self.max_connections * 2,
                limit_per_host=self.max_connections,
                ttl_dns_cache=600,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
            self._session = aiohttp.ClientSession(connector=connector, timeout=timeout)
            log.debug(f"Created fetch session with limit_per_host={self.max_connections}")
            return self._session

    async def close(self) -> None:
        """Closes the shared session."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
                log.debug("Media fetch session closed.")
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _fetch_once(self, url: str, destination: Path) -> int:
        session = await self._get_session()
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            written = 0
            async with aiofiles.open(destination, "wb") as f:
                async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                    await f.write(chunk)
                    written += len(chunk)
            return written

    async def fetch_to_file(self, url: str, destination: Path) -> int:
        """
        Downloads `url` into `destination`, overwriting it.

        Returns:
            Number of bytes written.

        Raises:
            MediaFetchError: If every attempt failed.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                size = await self._fetch_once(url, destination)
                log.debug(f"Fetched '{destination.name}' ({size} bytes) from {url}")
                return size
            except aiohttp.InvalidURL as e:
                last_error = e
                break
            except aiohttp.ClientResponseError as e:
                last_error = e
                # Client errors other than throttling will not improve on retry.
                if 400 <= e.status < 500 and e.status not in (408, 429):
                    break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e

            log.debug(
                f"Fetch attempt {attempt}/{self.max_attempts} for "
                f"'{destination.name}' failed: {last_error}."
            )
            if attempt < self.max_attempts:
                await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        raise MediaFetchError(url, str(last_error) or type(last_error).__name__)
