"""Resolve a parsed link to a telethon entity.

Private ``t.me/c/<id>`` links carry only a bare channel id. Resolving that
id directly needs an access hash the session may never have seen, so the
joined dialog list is scanned first; direct lookups with the different id
representations are tried afterwards.
"""

import logging
import re
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from telethon import TelegramClient

from tgfetch.const import SUPERGROUP_PREFIX
from tgfetch.errors import ClientNotConnected, PeerUnreachable
from tgfetch.link import LinkReference

NUMERIC_ID = re.compile(r"-?\d+", re.ASCII)


@dataclass
class Attempt:
    """Outcome of one resolution strategy."""

    strategy: str
    peer: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.peer is not None


Strategy = Callable[[], Awaitable[Attempt]]


def peer_name(peer) -> str:
    return str(
        getattr(peer, "title", None)
        or getattr(peer, "username", None)
        or getattr(peer, "id", None)
        or "Unknown"
    )


def id_representations(channel_id: str) -> set[str]:
    """The forms a channel id can take: raw, marked supergroup, negated."""
    return {channel_id, f"{SUPERGROUP_PREFIX}{channel_id}", f"-{channel_id}"}


async def from_dialogs(client: TelegramClient, channel_id: str, limit: int) -> Attempt:
    """Find the chat among the dialogs the session has already joined."""
    name = "dialogs"
    wanted = id_representations(channel_id)
    try:
        dialogs = await client.get_dialogs(limit=limit)
    except Exception as err:
        return Attempt(name, error=str(err))
    for dialog in dialogs:
        entity = getattr(dialog, "entity", None)
        if entity is None or getattr(entity, "id", None) is None:
            continue
        if str(entity.id) in wanted or str(getattr(dialog, "id", "")) in wanted:
            return Attempt(name, peer=entity)
    return Attempt(name, error=f"not found in the last {limit} dialogs")


async def from_entity(client: TelegramClient, name: str, target) -> Attempt:
    """Ask telegram for the entity directly."""
    try:
        peer = await client.get_entity(target)
    except Exception as err:
        return Attempt(name, error=str(err))
    if peer is None:
        return Attempt(name, error="no entity returned")
    return Attempt(name, peer=peer)


def private_strategies(
    client: TelegramClient, channel_id: str, dialog_limit: int
) -> list[tuple[str, Strategy]]:
    raw = int(channel_id)
    marked = int(f"{SUPERGROUP_PREFIX}{channel_id}")
    return [
        ("dialogs", partial(from_dialogs, client, channel_id, dialog_limit)),
        ("supergroup id", partial(from_entity, client, "supergroup id", marked)),
        ("negative id", partial(from_entity, client, "negative id", -raw)),
        ("raw id", partial(from_entity, client, "raw id", raw)),
    ]


def public_strategies(client: TelegramClient, identifier: str) -> list[tuple[str, Strategy]]:
    if NUMERIC_ID.fullmatch(identifier):
        marked = int(f"{SUPERGROUP_PREFIX}{identifier.lstrip('-')}")
        return [
            ("numeric id", partial(from_entity, client, "numeric id", int(identifier))),
            ("supergroup id", partial(from_entity, client, "supergroup id", marked)),
        ]
    return [("username", partial(from_entity, client, "username", identifier))]


async def run_cascade(strategies: list[tuple[str, Strategy]]) -> tuple[Any, list[Attempt]]:
    """Try strategies in order and stop at the first success."""
    attempts = []
    for name, strategy in strategies:
        logging.info(f"Resolving peer via {name}")
        attempt = await strategy()
        attempts.append(attempt)
        if attempt.ok:
            return attempt.peer, attempts
        logging.info(f"Resolving via {name} failed: {attempt.error}")
    return None, attempts


def unreachable_private(channel_id: str, attempts: list[Attempt]) -> PeerUnreachable:
    return PeerUnreachable(
        f"Cannot access private channel with ID {channel_id}.\n\n"
        "Make sure that:\n"
        "1. The user account is a member of the channel\n"
        f"2. The channel ID is correct: {channel_id}\n"
        "3. The user account has opened the channel in a Telegram app at least once\n"
        "4. The user account is allowed to read messages in the channel",
        attempts,
    )


async def resolve_peer(
    client: TelegramClient, ref: LinkReference, dialog_limit: int = 500
):
    """Turn a LinkReference into a telethon entity.

    Raises:
        ClientNotConnected: the session is down, nothing was tried.
        PeerUnreachable: every strategy failed.
    """
    if not client.is_connected():
        raise ClientNotConnected("Telegram client is not connected")

    if ref.is_private:
        strategies = private_strategies(client, ref.channel_identifier, dialog_limit)
    else:
        strategies = public_strategies(client, ref.channel_identifier)

    peer, attempts = await run_cascade(strategies)
    if peer is not None:
        logging.info(f"Resolved {ref.channel_identifier} to {peer_name(peer)} via {attempts[-1].strategy}")
        return peer

    logging.warning(f"All strategies failed for {ref.channel_identifier}")
    if ref.is_private:
        raise unreachable_private(ref.channel_identifier, attempts)
    raise PeerUnreachable(
        f"Cannot access channel {ref.channel_identifier}: {attempts[-1].error}",
        attempts,
    )
