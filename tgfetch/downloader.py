"""Download message media with retries on connection failures.

A partially written file is never thrown away by this module: it is kept
between attempts and after a final failure, so the next attempt or a human
can pick it up. Only empty or missing artifacts are removed.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from telethon import TelegramClient
from telethon.tl.custom.message import Message

from tgfetch.errors import DownloadFailed, EmptyMediaPayload
from tgfetch.fetcher import ensure_downloadable, get_file_size
from tgfetch.progress import ProgressTracker, format_bytes

CONNECTION_MARKERS = (
    "disconnect",
    "connection",
    "timeout",
    "timed out",
    "reset",
    "econnreset",
    "etimedout",
)


def is_connection_error(err: BaseException) -> bool:
    """Whether a failure looks like the network, not the request."""
    if isinstance(err, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    text = str(err).lower()
    return any(marker in text for marker in CONNECTION_MARKERS)


def file_size(path: str) -> int:
    """Size of path in bytes, -1 if it does not exist."""
    try:
        return os.path.getsize(path)
    except OSError:
        return -1


@dataclass
class TransferState:
    output_path: str
    attempts_made: int = 0
    last_progress_bytes: int = 0
    last_progress_timestamp: float = field(default_factory=time.monotonic)
    succeeded: bool = False


class ResilientDownloader:
    """Run ``client.download_media`` until it succeeds or retries run out."""

    def __init__(
        self,
        client: TelegramClient,
        max_attempts: int = 5,
        retry_delay: float = 2.0,
        reconnect: Optional[Callable[[], Awaitable[bool]]] = None,
        progress_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.client = client
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.reconnect = reconnect or self._connect
        self.progress_sink = progress_sink

    async def _connect(self) -> bool:
        if self.client.is_connected():
            return True
        logging.info("Reconnecting to Telegram...")
        try:
            await self.client.connect()
        except Exception as err:
            logging.warning(f"Reconnect failed: {err}")
            return False
        logging.info("Reconnected successfully")
        return True

    async def download(self, message: Message, output_path: str) -> str:
        """Download the media of message into output_path.

        Raises:
            UnsupportedMediaType / MediaUnavailable: before any transfer.
            DownloadFailed: connection failures outlasted the retries, or no
                file was produced.
            EmptyMediaPayload: the transfer produced zero bytes.
            Any other error from the client, unchanged, on its first
            occurrence.
        """
        ensure_downloadable(message)

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        expected = get_file_size(message)
        if expected:
            logging.info(f"File size: {format_bytes(expected)}")
        else:
            logging.info("File size: unknown")

        state = TransferState(output_path=output_path)
        tracker = ProgressTracker(expected, sink=self.progress_sink)

        def on_progress(received: int, total: int) -> None:
            if tracker.update(received, total):
                state.last_progress_bytes = received
                state.last_progress_timestamp = tracker.last_time

        try:
            result = await self._attempt_loop(message, state, tracker, on_progress)
            tracker.finish()

            if isinstance(result, bytes) and file_size(output_path) < 0:
                with open(output_path, "wb") as file:
                    file.write(result)

            size = file_size(output_path)
            if size < 0:
                raise DownloadFailed(f"Download finished but {output_path} was not created")
            if size == 0:
                raise EmptyMediaPayload("Downloaded file is empty")
        except Exception:
            self._handle_artifact(output_path)
            raise

        logging.info(f"Download completed: {format_bytes(size)} after {state.attempts_made} attempt(s)")
        return output_path

    async def _attempt_loop(self, message, state: TransferState, tracker, on_progress):
        while True:
            state.attempts_made += 1
            tracker.reset()
            try:
                result = await self.client.download_media(
                    message, file=state.output_path, progress_callback=on_progress
                )
            except Exception as err:
                logging.warning(f"Download attempt {state.attempts_made} failed: {err}")
                if not is_connection_error(err):
                    raise
                if state.attempts_made >= self.max_attempts:
                    raise DownloadFailed(
                        f"Download failed after {state.attempts_made} attempts: {err}"
                    ) from err
                await self._prepare_retry(state)
                continue
            state.succeeded = True
            return result

    async def _prepare_retry(self, state: TransferState) -> None:
        logging.info("Connection error detected, will retry...")
        await asyncio.sleep(self.retry_delay)

        existing = file_size(state.output_path)
        if existing > 0:
            logging.info(f"Existing partial file kept: {format_bytes(existing)}")

        if not self.client.is_connected():
            await self.reconnect()
        logging.info(f"Retry download (attempt {state.attempts_made + 1}/{self.max_attempts})...")

    def _handle_artifact(self, output_path: str) -> None:
        size = file_size(output_path)
        if size > 0:
            logging.warning(
                f"Download failed, partial file kept at {output_path} ({format_bytes(size)})"
            )
            return
        if size == 0:
            try:
                os.remove(output_path)
            except OSError as err:
                logging.warning(f"Could not remove empty file {output_path}: {err}")
                return
            logging.info(f"Removed empty file {output_path}")
