"""
Connectivity tracking for the question generator host.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

import aiohttp


logger = logging.getLogger(__name__)


class NetworkStatus:
    """
    Tracks whether the generator host is reachable.

    After going offline, requests are refused until ``recheck_after`` seconds
    have passed; the next request then acts as the connectivity check.
    """

    DEFAULT_RECHECK_AFTER = 10.0

    def __init__(
        self,
        online: bool = True,
        recheck_after: float = DEFAULT_RECHECK_AFTER,
        clock: Callable[[], float] = time.monotonic
    ):
        self._online = online
        self.recheck_after = recheck_after
        self._clock = clock
        self._offline_since = clock()
        self._last_change = time.time()

    @property
    def is_online(self) -> bool:
        return self._online

    def can_attempt(self) -> bool:
        """Whether a request to the generator should be tried now."""
        if self._online:
            return True
        return self._clock() - self._offline_since >= self.recheck_after

    def mark_online(self) -> None:
        if not self._online:
            logger.info(
                "Network status: OFFLINE -> ONLINE",
                extra={'event_type': 'network_online', 'timestamp': time.time()}
            )
            self._last_change = time.time()
        self._online = True

    def mark_offline(self, reason: str = "") -> None:
        if self._online:
            logger.warning(
                f"Network status: ONLINE -> OFFLINE ({reason})",
                extra={'event_type': 'network_offline', 'reason': reason, 'timestamp': time.time()}
            )
            self._last_change = time.time()
        self._online = False
        self._offline_since = self._clock()

    async def probe(self, url: str, session: Optional[aiohttp.ClientSession] = None, timeout: float = 5.0) -> bool:
        """
        Check reachability of a URL and update the status.

        Args:
            url: URL to request
            session: Optional session to reuse
            timeout: Request timeout in seconds

        Returns:
            True if the host answered, False otherwise
        """
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession()
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                # Any HTTP answer means the host is reachable.
                logger.debug(f"Probe {url} answered with status {response.status}")
            self.mark_online()
            return True
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self.mark_offline(str(e))
            return False
        finally:
            if owns_session:
                await session.close()
