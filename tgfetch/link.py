"""Parse Telegram post links.

Supported formats (scheme optional, ``?single`` and similar suffixes ignored):

- ``t.me/channel_username/123``
- ``t.me/1234567890/123``
- ``t.me/c/1234567890/123``
- ``t.me/c/1234567890/1/123`` (with a thread id)
- ``t.me/channel_username/1/123`` (forum topic)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from tgfetch.const import PRIVATE_MARKER, TELEGRAM_HOSTS
from tgfetch.errors import InvalidLinkFormat

SUPPORTED_FORMATS = (
    "t.me/channelName/123\n"
    "t.me/channelName/123?single\n"
    "t.me/c/channelId/123\n"
    "t.me/c/channelId/1/123 (with thread id)"
)


class LinkKind(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class LinkReference:
    """Where a message lives, as written in its link."""

    kind: LinkKind
    channel_identifier: str
    message_id: int

    @property
    def is_private(self) -> bool:
        return self.kind == LinkKind.PRIVATE


# First match wins. Each pattern must cover the whole path; ids are ASCII digits only.
PATTERNS = [
    # c/<channel id>/<thread id>/<message id>
    (re.compile(rf"{PRIVATE_MARKER}/(\d+)/\d+/(\d+)", re.ASCII), LinkKind.PRIVATE),
    # c/<channel id>/<message id>
    (re.compile(rf"{PRIVATE_MARKER}/(\d+)/(\d+)", re.ASCII), LinkKind.PRIVATE),
    # <username or id>/<message id>
    (re.compile(r"([^/]+)/(\d+)", re.ASCII), LinkKind.PUBLIC),
    # <username or id>/<topic id>/<message id>
    (re.compile(r"([^/]+)/\d+/(\d+)", re.ASCII), LinkKind.PUBLIC),
]

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def normalize_link(text: str) -> str:
    """Trim, drop the scheme, the query string and one trailing slash."""
    link = _SCHEME.sub("", text.strip())
    link = re.split(r"[?#]", link, maxsplit=1)[0]
    if link.endswith("/"):
        link = link[:-1]
    return link


def is_telegram_link(text: str) -> bool:
    """Cheap check that text points at a Telegram host at all."""
    if not text or not isinstance(text, str):
        return False
    host = normalize_link(text).split("/", 1)[0].lower()
    return host in TELEGRAM_HOSTS


def _invalid(link: str, reason: str = "Invalid link format.") -> InvalidLinkFormat:
    return InvalidLinkFormat(
        f"{reason}\n\nSupported formats:\n{SUPPORTED_FORMATS}\n\nGiven link: {link}"
    )


def parse_link(text: str) -> LinkReference:
    """Parse a t.me post link into a LinkReference.

    Raises:
        InvalidLinkFormat: no pattern matches, or the message id is not a
            positive number.
    """
    if not text or not isinstance(text, str):
        raise InvalidLinkFormat("Link must be a non-empty string.")

    link = normalize_link(text)
    host, _, path = link.partition("/")
    if host.lower() not in TELEGRAM_HOSTS:
        raise _invalid(link, "Not a Telegram link.")

    for pattern, kind in PATTERNS:
        match = pattern.fullmatch(path)
        if not match:
            continue
        channel, msg_id = match.group(1), int(match.group(2))
        if channel == PRIVATE_MARKER:
            raise _invalid(
                link,
                f"Invalid link format. Use t.me/{PRIVATE_MARKER}/channelId/messageId "
                f"(not t.me/{PRIVATE_MARKER}/{PRIVATE_MARKER}/...).",
            )
        if msg_id <= 0:
            raise _invalid(link, "Message id must be a positive number.")
        logging.info(f"Parsed {kind.value} link: channel={channel}, msg_id={msg_id}")
        return LinkReference(kind=kind, channel_identifier=channel, message_id=msg_id)

    raise _invalid(link)
