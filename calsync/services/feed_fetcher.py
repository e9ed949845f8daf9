"""
Feed Fetcher

Retrieves raw calendar text for one (unit, platform) pair. One request, no
retries: a failed pair is picked up again on the next scheduler tick.
"""

import logging
import time
from typing import Optional

import httpx

from ..config import settings
from ..exceptions import FetchError

logger = logging.getLogger(__name__)


class FeedFetcher:
    """
    Thin httpx wrapper with a fixed timeout.
    
    A shared client may be injected (tests use httpx.MockTransport); otherwise
    a short-lived client is opened per fetch so worker threads never share one.
    
    The body is streamed: `timeout` bounds each connect/read inside httpx and
    also the whole download, checked between chunks, so a server dribbling
    bytes cannot hold the pair lock indefinitely.
    """
    
    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_bytes: Optional[int] = None
    ):
        self.timeout = timeout if timeout is not None else settings.sync_fetch_timeout_seconds
        self.user_agent = user_agent or settings.sync_user_agent
        self.max_bytes = max_bytes or settings.sync_fetch_max_bytes
        self._client = client
    
    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.5",
        }
    
    def fetch(self, url: str, unit_id: str, platform: str) -> str:
        """
        Fetch feed text.
        
        Raises:
            FetchError: timeout, connection failure, non-2xx status, a body
                over max_bytes, or a download past the deadline
        """
        start = time.monotonic()
        try:
            if self._client is not None:
                return self._download(self._client, url, unit_id, platform, start)
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                return self._download(client, url, unit_id, platform, start)
        except httpx.TimeoutException as e:
            raise FetchError(unit_id, platform, f"Timed out after {self.timeout}s: {e}")
        except httpx.HTTPError as e:
            raise FetchError(unit_id, platform, f"Connection failed: {e}")
    
    def _download(self, client: httpx.Client, url: str, unit_id: str, platform: str, start: float) -> str:
        deadline = start + self.timeout
        with client.stream("GET", url, headers=self.headers, timeout=self.timeout) as response:
            if not response.is_success:
                raise FetchError(
                    unit_id,
                    platform,
                    f"HTTP {response.status_code} from feed",
                    status_code=response.status_code
                )
            
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                raise FetchError(unit_id, platform, f"Feed is {declared} bytes, limit is {self.max_bytes}")
            
            body = bytearray()
            for chunk in response.iter_bytes():
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    raise FetchError(unit_id, platform, f"Feed exceeds {self.max_bytes} bytes")
                if time.monotonic() > deadline:
                    raise FetchError(
                        unit_id,
                        platform,
                        f"Timed out after {self.timeout}s: download still running ({len(body)} bytes so far)"
                    )
            encoding = response.charset_encoding or "utf-8"
        
        duration_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Fetched {unit_id}/{platform}: {len(body)} bytes in {duration_ms:.0f}ms")
        try:
            return body.decode(encoding, errors="replace")
        except LookupError:
            # Unknown charset label in Content-Type
            return body.decode("utf-8", errors="replace")
