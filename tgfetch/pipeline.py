"""Turn a link into a downloaded file, for any front end."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tgfetch.context import TgfetchContext
from tgfetch.downloader import ResilientDownloader
from tgfetch.errors import ClientNotConnected, ErrorKind, InvalidLinkFormat, TgfetchError
from tgfetch.fetcher import ensure_downloadable, fetch_message, generate_file_name, get_file_size
from tgfetch.link import is_telegram_link, parse_link
from tgfetch.resolver import resolve_peer

StatusCallback = Callable[[str], Awaitable[None]]


@dataclass
class DownloadResult:
    success: bool
    file_path: Optional[str] = None
    message_id: Optional[int] = None
    file_size: int = 0
    error_kind: Optional[str] = None
    message: str = ""

    @classmethod
    def from_error(cls, err: TgfetchError) -> "DownloadResult":
        return cls(success=False, error_kind=err.kind.value, message=str(err))

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {
                "success": True,
                "filePath": self.file_path,
                "messageId": self.message_id,
                "fileSize": self.file_size,
            }
        return {"success": False, "errorKind": self.error_kind, "message": self.message}


async def _notify(on_status: Optional[StatusCallback], text: str) -> None:
    if on_status is None:
        return
    try:
        await on_status(text)
    except Exception as err:
        logging.warning(f"Status update failed: {err}")


async def download_from_link(
    ctx: TgfetchContext,
    link: str,
    on_status: Optional[StatusCallback] = None,
    output_dir: Optional[str] = None,
) -> DownloadResult:
    """Parse, resolve, fetch and download. Raises TgfetchError subclasses."""
    settings = ctx.config.download
    ref = parse_link(link)

    client = ctx.client
    if client is None or not client.is_connected():
        raise ClientNotConnected("Telegram client is not connected")

    await _notify(on_status, "Resolving chat...")
    peer = await resolve_peer(client, ref, dialog_limit=settings.dialog_scan_limit)

    await _notify(on_status, "Fetching message from Telegram...")
    message = await fetch_message(client, peer, ref.message_id, scan_limit=settings.recent_scan_limit)
    ensure_downloadable(message)

    expected = get_file_size(message)
    if expected >= ctx.config.bot.large_file_notice:
        await _notify(
            on_status,
            f"Large file detected ({expected / 1024 ** 3:.2f} GB), this will take a while...",
        )

    await _notify(on_status, "Downloading media...")
    output_path = os.path.join(output_dir or settings.downloads_dir, generate_file_name(message))
    downloader = ResilientDownloader(
        client,
        max_attempts=settings.max_attempts,
        retry_delay=settings.retry_delay,
        reconnect=ctx.keeper.ensure_connected if ctx.keeper else None,
    )
    path = await downloader.download(message, output_path)
    return DownloadResult(
        success=True,
        file_path=os.path.abspath(path),
        message_id=message.id,
        file_size=os.path.getsize(path),
    )


async def handle_download_request(
    ctx: TgfetchContext,
    payload: Any,
    on_status: Optional[StatusCallback] = None,
) -> DownloadResult:
    """Validate a ``{"link": ...}`` request. Failures come back as a result, never raised."""
    try:
        if not isinstance(payload, dict) or not payload.get("link"):
            raise InvalidLinkFormat("Field 'link' is required")
        link = payload["link"]
        if not isinstance(link, str):
            raise InvalidLinkFormat("Field 'link' must be a string")
        if not is_telegram_link(link):
            raise InvalidLinkFormat("Invalid Telegram link")
        return await download_from_link(ctx, link, on_status=on_status)
    except TgfetchError as err:
        logging.error(f"{err.kind.value}: {err}")
        return DownloadResult.from_error(err)
    except Exception as err:
        logging.exception(f"Failed to download media from {payload.get('link')}: {err}")
        return DownloadResult(
            success=False,
            error_kind=ErrorKind.DOWNLOAD_FAILED.value,
            message=f"Failed to download media: {err}",
        )
