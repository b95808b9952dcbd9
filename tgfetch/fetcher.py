"""Fetch the message a link points to and inspect its media."""

import logging
import time
from typing import Optional

from telethon import TelegramClient
from telethon.errors import RPCError
from telethon.tl.custom.message import Message
from telethon.tl.types import MessageMediaDocument, MessageMediaPhoto

from tgfetch.errors import (
    ClientNotConnected,
    MediaUnavailable,
    MessageNotFound,
    UnsupportedMediaType,
)

SUPPORTED_MEDIA = (
    "photo",
    "document",
    "video",
    "audio",
    "voice",
    "videonote",
    "sticker",
    "gif",
)

EXTENSION_ALIASES = {"x-matroska": "mkv", "quicktime": "mov", "jpeg": "jpg"}


def _present(messages) -> list[Message]:
    if messages is None:
        return []
    if not isinstance(messages, list):
        messages = [messages]
    return [m for m in messages if m is not None]


async def fetch_message(
    client: TelegramClient, peer, message_id: int, scan_limit: int = 100
) -> Message:
    """Get a message by id, falling back to scanning the most recent ones.

    Raises:
        ClientNotConnected: the session is down.
        MessageNotFound: neither the id lookup nor the scan found it.
    """
    if not client.is_connected():
        raise ClientNotConnected("Telegram client is not connected")

    try:
        found = _present(await client.get_messages(peer, ids=[message_id]))
        if found:
            return found[0]

        logging.info(f"Message {message_id} not returned by id, scanning last {scan_limit}")
        for message in _present(await client.get_messages(peer, limit=scan_limit)):
            if message.id == message_id:
                logging.info(f"Message {message_id} found by manual scan")
                return message
    except RPCError as err:
        raise MessageNotFound(f"Failed to fetch message {message_id}: {err}") from err

    raise MessageNotFound(f"Message with ID {message_id} not found")


def media_kind(media) -> Optional[str]:
    """Name of the supported media kind, or None."""
    if isinstance(media, MessageMediaPhoto):
        return "photo"
    if isinstance(media, MessageMediaDocument):
        return "document"
    class_name = type(media).__name__.lower()
    for kind in SUPPORTED_MEDIA:
        if kind in class_name:
            return kind
    for kind in SUPPORTED_MEDIA:
        if getattr(media, kind, None):
            return kind
    return None


def ensure_downloadable(message: Message):
    """Return the message's media if this tool can download it.

    Media reachable only through a reply or forward header is refused: it
    belongs to another message and needs that message's own link.
    """
    media = getattr(message, "media", None)
    if media is None:
        if getattr(message, "reply_to", None) or getattr(message, "fwd_from", None):
            raise MediaUnavailable(
                "Media cannot be downloaded because it belongs to a replied or "
                "forwarded message. Please use the original message's link."
            )
        raise MediaUnavailable(
            "Message does not contain downloadable media. "
            "It may contain only text, or the media is no longer available."
        )
    if media_kind(media) is None:
        raise UnsupportedMediaType(
            f"Unsupported media type: {type(media).__name__}. "
            f"Supported: {', '.join(SUPPORTED_MEDIA)}"
        )
    return media


def get_file_size(message: Message) -> int:
    """Byte size hint of the attached media, 0 when unknown."""
    file = getattr(message, "file", None)
    size = getattr(file, "size", None) if file is not None else None
    return size or 0


def guess_extension(message: Message) -> str:
    media = getattr(message, "media", None)
    if isinstance(media, MessageMediaPhoto):
        return "jpg"
    document = getattr(media, "document", None)
    mime_type = getattr(document, "mime_type", None)
    if mime_type and "/" in mime_type:
        subtype = mime_type.split("/", 1)[1] or "bin"
        return EXTENSION_ALIASES.get(subtype, subtype)
    return "bin"


def generate_file_name(message: Message, extension: Optional[str] = None) -> str:
    timestamp = int(time.time() * 1000)
    message_id = getattr(message, "id", None) or timestamp
    return f"media_{message_id}_{timestamp}.{extension or guess_extension(message)}"
