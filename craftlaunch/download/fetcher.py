"""
Retrying fetch client

HTTP GET/POST on top of aiohttp with exponential backoff and chunked
progress reporting. Every other network facing component goes through it.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from loguru import logger

from craftlaunch.exceptions import APIError, NotFoundError, TransientNetworkError
from craftlaunch.models.config import DEFAULT_USER_AGENT, LauncherConfig


CHUNK_SIZE = 8192

ChunkHandler = Callable[[bytes], Awaitable[None]]
# (bytes so far, total bytes or None, percentage or None)
ProgressHandler = Callable[[int, Optional[int], Optional[float]], None]


def backoff_delay(attempt: int, base: float = 1.0) -> float:
    """Delay before retry number `attempt` (1-based): base * 2^attempt"""
    return base * (2**attempt)


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status == 429


class _RetryableStatus(Exception):
    """Internal marker for a response that should be retried"""

    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.url = url


class FetchClient:
    """
    HTTP client with retry.

    Transport failures, 5xx and 429 responses are retried up to `max_retries`
    additional times; any other non-success status is raised immediately.
    """

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
    ):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.user_agent = user_agent
        self.timeout = timeout
        self._session = session
        self._owned_session = session is None

    @classmethod
    def from_config(cls, config: LauncherConfig) -> "FetchClient":
        return cls(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            user_agent=config.user_agent,
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.user_agent}, timeout=timeout
            )
            self._owned_session = True
        return self._session

    async def _request(
        self,
        method: str,
        url: str,
        handler: Callable[[aiohttp.ClientResponse], Awaitable[Any]],
        on_attempt: Optional[Callable[[], Awaitable[None]]] = None,
        **kwargs,
    ) -> Any:
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries + 1):
            if on_attempt is not None:
                await on_attempt()
            try:
                async with self.session.request(method, url, **kwargs) as response:
                    if is_retryable_status(response.status):
                        raise _RetryableStatus(response.status, url)
                    if response.status == 404:
                        raise NotFoundError(
                            f"Not found: {url}",
                            context={"url": url, "status_code": 404},
                        )
                    if response.status >= 400:
                        body = await response.text()
                        raise APIError(
                            f"HTTP {response.status} from {method} {url}",
                            response=response,
                            body=body,
                        )
                    return await handler(response)

            except (aiohttp.ClientError, asyncio.TimeoutError, _RetryableStatus) as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = backoff_delay(attempt + 1, self.retry_delay)
                    logger.warning(
                        f"[retry] {method} {url} failed ({str(e) or type(e).__name__}), "
                        f"attempt {attempt + 1}/{self.max_retries}. "
                        f"Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        logger.error(f"[error] {method} {url} failed after {self.max_retries} retries")
        context: Dict[str, Any] = {"url": url, "error": str(last_error)}
        if isinstance(last_error, _RetryableStatus):
            context["status_code"] = last_error.status
        raise TransientNetworkError(
            f"Request failed after {self.max_retries} retries: {url}", context=context
        )

    async def fetch(self, url: str, method: str = "GET", **kwargs) -> bytes:
        """
        Fetch a resource body.

        Args:
            url: resource url
            method: HTTP method
            **kwargs: passed to aiohttp (json, data, headers, params)

        Returns:
            response body
        """

        async def read(response: aiohttp.ClientResponse) -> bytes:
            return await response.read()

        return await self._request(method, url, read, **kwargs)

    async def fetch_json(self, url: str, method: str = "GET", **kwargs) -> Any:
        """Fetch and decode a JSON document"""
        body = await self.fetch(url, method, **kwargs)
        try:
            return json.loads(body)
        except ValueError as e:
            raise APIError(
                f"Invalid JSON from {url}", context={"url": url, "error": str(e)}
            )

    async def fetch_streaming(
        self,
        url: str,
        on_chunk: ChunkHandler,
        on_progress: Optional[ProgressHandler] = None,
        on_attempt: Optional[Callable[[], Awaitable[None]]] = None,
        method: str = "GET",
        **kwargs,
    ) -> int:
        """
        Stream a resource chunk by chunk.

        A retry restarts the transfer from the beginning, `on_attempt` runs
        before every attempt so the caller can reset its sink.

        Returns:
            total bytes received by the successful attempt
        """

        async def stream(response: aiohttp.ClientResponse) -> int:
            total = response.content_length
            downloaded = 0
            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                await on_chunk(chunk)
                downloaded += len(chunk)
                if on_progress is not None:
                    percent = downloaded / total * 100 if total else None
                    on_progress(downloaded, total, percent)
            return downloaded

        return await self._request(
            method, url, stream, on_attempt=on_attempt, **kwargs
        )

    async def close(self):
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
