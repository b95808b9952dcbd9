"""Errors raised while turning a link into a downloaded file.

Every error carries a ``kind`` so front ends can tell "fix your link" apart
from "not a member", "no media here" and "try again later" without parsing
the message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_LINK_FORMAT = "InvalidLinkFormat"
    CLIENT_NOT_CONNECTED = "ClientNotConnected"
    PEER_UNREACHABLE = "PeerUnreachable"
    MESSAGE_NOT_FOUND = "MessageNotFound"
    MEDIA_UNAVAILABLE = "MediaUnavailable"
    UNSUPPORTED_MEDIA_TYPE = "UnsupportedMediaType"
    DOWNLOAD_FAILED = "DownloadFailed"
    EMPTY_MEDIA_PAYLOAD = "EmptyMediaPayload"


class TgfetchError(Exception):
    """Base class for errors that end a download request."""

    kind: ErrorKind = ErrorKind.DOWNLOAD_FAILED


class InvalidLinkFormat(TgfetchError):
    """Raised when a link does not match any supported t.me format."""

    kind = ErrorKind.INVALID_LINK_FORMAT


class ClientNotConnected(TgfetchError):
    """Raised when the user session is not connected."""

    kind = ErrorKind.CLIENT_NOT_CONNECTED


class PeerUnreachable(TgfetchError):
    """Raised when no resolution strategy could reach the chat."""

    kind = ErrorKind.PEER_UNREACHABLE

    def __init__(self, message: str, attempts=None) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])


class MessageNotFound(TgfetchError):
    kind = ErrorKind.MESSAGE_NOT_FOUND


class MediaUnavailable(TgfetchError):
    """Raised when a message has no directly attached media."""

    kind = ErrorKind.MEDIA_UNAVAILABLE


class UnsupportedMediaType(TgfetchError):
    kind = ErrorKind.UNSUPPORTED_MEDIA_TYPE


class DownloadFailed(TgfetchError):
    kind = ErrorKind.DOWNLOAD_FAILED


class EmptyMediaPayload(TgfetchError):
    """Raised when a transfer finished but produced a zero byte file."""

    kind = ErrorKind.EMPTY_MEDIA_PAYLOAD
