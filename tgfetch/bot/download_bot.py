"""A bot that downloads media from the links users send it."""

import logging
import os

from telethon import events

from tgfetch.context import TgfetchContext
from tgfetch.errors import ErrorKind
from tgfetch.link import is_telegram_link
from tgfetch.pipeline import DownloadResult, handle_download_request
from tgfetch.progress import format_bytes

HINTS = {
    ErrorKind.INVALID_LINK_FORMAT.value: "Please check your link.",
    ErrorKind.PEER_UNREACHABLE.value: "The user account cannot open this chat. Is it a member?",
    ErrorKind.MESSAGE_NOT_FOUND.value: "The message does not exist or was deleted.",
    ErrorKind.MEDIA_UNAVAILABLE.value: "There is no media to download here.",
    ErrorKind.UNSUPPORTED_MEDIA_TYPE.value: "This kind of media is not supported.",
    ErrorKind.CLIENT_NOT_CONNECTED.value: "The downloader is offline, try again later.",
    ErrorKind.DOWNLOAD_FAILED.value: "Try again later.",
    ErrorKind.EMPTY_MEDIA_PAYLOAD.value: "Try again later.",
}


def get_args(text: str) -> str:
    """Return everything after the command."""
    parts = text.split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def error_text(result: DownloadResult) -> str:
    hint = HINTS.get(result.error_kind, "")
    return f"Error: {result.message}\n\n{hint}".strip()


def too_large_text(result: DownloadResult, limit: int) -> str:
    return (
        f"Download finished ({format_bytes(result.file_size)}).\n\n"
        f"The file is too large to send through the bot (limit {format_bytes(limit)}).\n"
        f"It is saved at:\n`{result.file_path}`"
    )


async def process_link(ctx: TgfetchContext, event, link: str) -> None:
    """Download link and reply in the chat of event."""
    status = await event.respond("Processing link...")

    async def on_status(text: str) -> None:
        await status.edit(text)

    result = await handle_download_request(ctx, {"link": link}, on_status=on_status)
    if not result.success:
        await status.edit(error_text(result))
        return

    limit = ctx.config.bot.max_upload_size
    if result.file_size > limit:
        await status.edit(too_large_text(result, limit))
        return

    await status.edit(f"Download finished ({format_bytes(result.file_size)}). Sending file...")
    name = os.path.basename(result.file_path)
    try:
        await event.client.send_file(
            event.chat_id,
            result.file_path,
            caption=f"{name}\n{format_bytes(result.file_size)}",
            force_document=True,
        )
    except Exception as err:
        logging.error(f"Failed to send {result.file_path}: {err}")
        if "too large" in str(err).lower() or "413" in str(err):
            await status.edit(too_large_text(result, limit))
        else:
            await status.edit(
                "Download finished, but sending the file failed.\n\n"
                f"The file is saved at: {result.file_path}\n\nError: {err}"
            )
        return
    await status.delete()


def make_start_command_handler(ctx: TgfetchContext):
    """Factory to create start command handler with context closure."""

    async def handler(event):
        """Handle the /start command."""
        await event.respond(ctx.config.bot.messages.start)
        raise events.StopPropagation

    return handler


def make_help_command_handler(ctx: TgfetchContext):

    async def handler(event):
        """Handle the /help command."""
        await event.respond(ctx.config.bot.messages.bot_help)
        raise events.StopPropagation

    return handler


def make_download_command_handler(ctx: TgfetchContext):
    """Factory to create download command handler with context closure."""

    async def handler(event):
        """Handle `/download` and `/download <link>`."""
        try:
            link = get_args(event.message.text)
            if link:
                ctx.waiting_for_link.discard(event.chat_id)
                await process_link(ctx, event, link)
            else:
                ctx.waiting_for_link.add(event.chat_id)
                await event.respond(ctx.config.bot.messages.ask_link)
        finally:
            raise events.StopPropagation

    return handler


def make_link_handler(ctx: TgfetchContext):
    """Factory to create the handler for links sent after /download."""

    async def handler(event):
        if event.chat_id not in ctx.waiting_for_link:
            return
        text = event.message.text or ""
        if text.startswith("/"):
            return
        if not is_telegram_link(text.strip()):
            await event.respond(
                "Invalid link. Make sure it is a Telegram link (t.me/...)\n\n"
                "Example: https://t.me/channelName/123"
            )
            return
        ctx.waiting_for_link.discard(event.chat_id)
        await process_link(ctx, event, text.strip())

    return handler


def get_events(ctx: TgfetchContext) -> dict:
    """Get bot event handlers with context bound via closures.

    Returns:
        Dict mapping names to (handler, event) tuples
    """
    return {
        "start": (make_start_command_handler(ctx), events.NewMessage(pattern=r"^/start\b")),
        "help": (make_help_command_handler(ctx), events.NewMessage(pattern=r"^/help\b")),
        "download": (make_download_command_handler(ctx), events.NewMessage(pattern=r"^/download\b")),
        "link": (make_link_handler(ctx), events.NewMessage(incoming=True)),
    }
