"""
Remote image download for the send flow.
"""

import logging

import aiohttp

from ..domain.errors import MediaDownloadFailure

logger = logging.getLogger("MediaDownloader")

CHUNK_SIZE = 8192


class MediaDownloader:
    """
    Fetch remote images with a timeout and a size cap.

    Uses the shared aiohttp session created by the core plugin; a private
    session is opened per call when none was provided.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 15,
        max_bytes: int = 5 * 1024 * 1024,
    ):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_bytes = max_bytes

    async def download(self, url: str, *, tenant_id: str | None = None) -> bytes:
        """
        Download ``url`` and return its body.

        Raises:
            MediaDownloadFailure: On network errors, non-200 responses,
                timeouts or bodies larger than ``max_bytes``
        """
        if self.session is not None and not self.session.closed:
            return await self._download(self.session, url, tenant_id)
        async with aiohttp.ClientSession() as session:
            return await self._download(session, url, tenant_id)

    async def _download(
        self, session: aiohttp.ClientSession, url: str, tenant_id: str | None
    ) -> bytes:
        logger.debug(f"Downloading media from {url}")
        try:
            async with session.get(url, timeout=self.timeout) as response:
                if response.status != 200:
                    raise MediaDownloadFailure(
                        f"Download failed for {url}: HTTP {response.status}",
                        tenant_id=tenant_id,
                    )

                content_length_str = response.headers.get("content-length", "0")
                try:
                    content_length = int(content_length_str)
                except ValueError:
                    content_length = 0
                if content_length > self.max_bytes:
                    raise MediaDownloadFailure(
                        f"Media size ({content_length} bytes) exceeds max allowed "
                        f"({self.max_bytes} bytes)",
                        tenant_id=tenant_id,
                    )

                data = bytearray()
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    data.extend(chunk)
                    if len(data) > self.max_bytes:
                        raise MediaDownloadFailure(
                            f"Download aborted: size exceeded max ({self.max_bytes}) bytes",
                            tenant_id=tenant_id,
                        )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise MediaDownloadFailure(
                f"Could not fetch {url}: {e or type(e).__name__}", tenant_id=tenant_id
            ) from e

        logger.info(f"Media downloaded from {url} ({len(data)} bytes)")
        return bytes(data)
