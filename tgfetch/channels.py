"""List the channels and groups the user session has joined.

Useful to find the id behind a private ``t.me/c/<id>/<msg>`` link and to
check that the session can reach it at all.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from telethon import TelegramClient
from telethon.errors import AuthKeyError

from tgfetch.const import PRIVATE_MARKER, SUPERGROUP_PREFIX

CHAT_TYPES = ("Channel", "Supergroup", "Group")


@dataclass
class ChatRow:
    chat_type: str
    name: str
    marked_id: int
    username: Optional[str] = None
    protected: bool = False

    @property
    def private_link(self) -> Optional[str]:
        marked = str(self.marked_id)
        if not marked.startswith(SUPERGROUP_PREFIX):
            return None
        return f"t.me/{PRIVATE_MARKER}/{marked[len(SUPERGROUP_PREFIX):]}/<message id>"

    def to_text(self) -> str:
        flag = " [PROTECTED]" if self.protected else ""
        out = [f"[{self.chat_type}]{flag}", f"  Name: {self.name}", f"  ID: {self.marked_id}"]
        if self.private_link:
            out.append(f"  Private link: {self.private_link}")
        if self.username:
            out.append(f"  Username: @{self.username}")
        return "\n".join(out) + "\n"


def to_row(dialog) -> ChatRow:
    """Describe one joined dialog."""
    entity = dialog.entity
    if getattr(entity, "megagroup", False):
        chat_type = "Supergroup"
    elif getattr(entity, "broadcast", False):
        chat_type = "Channel"
    else:
        chat_type = "Group"
    return ChatRow(
        chat_type=chat_type,
        name=dialog.name,
        marked_id=dialog.id,
        username=getattr(entity, "username", None),
        protected=bool(getattr(entity, "noforwards", False)),
    )


def _table(rows: list[ChatRow]) -> Table:
    table = Table(title="Joined channels and groups")
    for column in ("Type", "Name", "ID", "Private link", "Username"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row.chat_type + (" (protected)" if row.protected else ""),
            row.name,
            str(row.marked_id),
            row.private_link or "",
            f"@{row.username}" if row.username else "",
        )
    return table


async def list_channels(
    client: TelegramClient,
    output: Optional[Path] = None,
    console: Optional[Console] = None,
) -> dict:
    """Show joined channels and groups, optionally saving a plain text copy."""
    console = console or Console()
    rows = []
    try:
        async for dialog in client.iter_dialogs():
            if dialog.is_channel or dialog.is_group:
                rows.append(to_row(dialog))
    except (ConnectionError, AuthKeyError) as err:
        logging.error(f"Telegram connection error: {err}")
        raise

    counts = Counter(row.chat_type for row in rows)
    stats = {chat_type: counts.get(chat_type, 0) for chat_type in CHAT_TYPES}
    totals = ", ".join(f"{chat_type}s: {count}" for chat_type, count in stats.items())
    summary = f"Total: {len(rows)} ({totals})"

    console.print(_table(rows))
    console.print(summary)

    if output is not None:
        body = "\n".join(row.to_text() for row in rows)
        output.write_text(f"{body}\n{summary}\n", encoding="utf-8")
        console.print(f"Results saved to: {output.absolute()}")
    return stats
