"""Keep the user session alive and reconnect it when it drops.

States::

    IDLE -> CONNECTED <-> RECONNECTING -> EXHAUSTED

EXHAUSTED is terminal: automatic reconnection stops and the process has to
be restarted.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from telethon import TelegramClient

# keep-alive failures caused by a revoked login are reported elsewhere
QUIET_ERRORS = ("AUTH_KEY_UNREGISTERED", "SESSION_REVOKED")


class KeeperState(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


@dataclass
class ConnectionHealth:
    connected: bool = False
    reconnect_attempts: int = 0
    keep_alive_task: Optional[asyncio.Task] = None


class ConnectionKeeper:
    """Periodic liveness probe plus a bounded backoff reconnect cycle.

    Every change to the attempt counter happens while holding ``lock``, so a
    reconnect from the background cycle and one from an in-flight download
    never both connect or both count.
    """

    def __init__(
        self,
        client: TelegramClient,
        interval: float = 180,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ) -> None:
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.health = ConnectionHealth()
        self.state = KeeperState.IDLE
        self.lock = asyncio.Lock()
        self._retry_task: Optional[asyncio.Task] = None

    @property
    def pending_retry(self) -> Optional[asyncio.Task]:
        return self._retry_task

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def _set_connected(self) -> None:
        self.health.connected = True
        self.health.reconnect_attempts = 0
        if self.state != KeeperState.EXHAUSTED:
            self.state = KeeperState.CONNECTED

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def mark_connected(self) -> None:
        """Record the first successful connect."""
        self._set_connected()
        logging.info("Connection keeper: connected")

    def start(self) -> None:
        if self.health.keep_alive_task is None:
            self.health.keep_alive_task = asyncio.create_task(self._keep_alive())

    async def stop(self) -> None:
        self._cancel_retry()
        task, self.health.keep_alive_task = self.health.keep_alive_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _keep_alive(self) -> None:
        while self.state != KeeperState.EXHAUSTED:
            await asyncio.sleep(self.interval)
            await self.probe()
        logging.info("Keep-alive stopped")

    async def probe(self) -> None:
        """Run one liveness check."""
        if self.state == KeeperState.EXHAUSTED:
            return
        if not self.client.is_connected():
            self.health.connected = False
            if self._retry_task is not None:
                logging.info("Connection still down, reconnect already scheduled")
                return
            logging.warning("Connection lost, attempting to reconnect...")
            await self.reconnect()
            return
        try:
            await self.client.get_me()
        except Exception as err:
            if any(quiet in str(err) for quiet in QUIET_ERRORS):
                logging.debug(f"Keep-alive ping failed: {err}")
            else:
                logging.warning(f"Keep-alive ping failed: {err}")
            if not self.client.is_connected() and self._retry_task is None:
                self.health.connected = False
                await self.reconnect()
            return
        async with self.lock:
            self._cancel_retry()
            self._set_connected()
        logging.debug("Keep-alive ping successful")

    async def reconnect(self) -> bool:
        """Make one reconnect attempt and schedule the next on failure."""
        async with self.lock:
            if self.state == KeeperState.EXHAUSTED:
                return False
            if self.client.is_connected():
                self._set_connected()
                return True

            self.state = KeeperState.RECONNECTING
            self.health.reconnect_attempts += 1
            attempt = self.health.reconnect_attempts
            logging.info(f"Attempting to reconnect... ({attempt}/{self.max_attempts})")
            try:
                await self.client.connect()
            except Exception as err:
                logging.warning(f"Reconnect attempt {attempt} failed: {err}")
            else:
                self._set_connected()
                logging.info("Reconnected successfully!")
                return True

            if attempt >= self.max_attempts:
                self.state = KeeperState.EXHAUSTED
                self.health.connected = False
                logging.error(
                    f"Max reconnect attempts ({self.max_attempts}) reached. "
                    "Please restart the server."
                )
                return False

            delay = self.backoff(attempt)
            logging.info(f"Waiting {delay} seconds before next reconnect attempt...")
            self._retry_task = asyncio.create_task(self._retry_after(delay))
            return False

    async def _retry_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_task = None
        await self.reconnect()

    async def ensure_connected(self) -> bool:
        """Reconnect now if needed, for callers that cannot wait for the cycle.

        Does not count against the keeper's attempts; a no-op when connected.
        """
        async with self.lock:
            if self.client.is_connected():
                return True
            logging.info("Reconnecting to Telegram...")
            try:
                await self.client.connect()
            except Exception as err:
                logging.warning(f"Reconnect failed: {err}")
                return False
            self._cancel_retry()
            self._set_connected()
            logging.info("Reconnected successfully")
            return True
