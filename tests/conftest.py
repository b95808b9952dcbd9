"""Fakes standing in for the telethon client."""

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Optional

import pytest
from telethon.tl import types

from tgfetch.config import Config
from tgfetch.context import TgfetchContext


@dataclass
class Step:
    """One scripted download_media call: write data, then maybe fail."""

    data: bytes = b""
    error: Optional[BaseException] = None
    disconnect: bool = False


class FakeClient:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.entities = {}
        self.dialogs = []
        self.messages = {}
        self.hidden_ids = set()
        self.entity_calls = []
        self.dialog_calls = []
        self.message_calls = []
        self.connect_results = []
        self.connect_calls = 0
        self.get_me_error = None
        self.get_me_calls = 0
        self.download_script = []
        self.download_calls = 0

    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_results:
            outcome = self.connect_results.pop(0)
            if outcome is not None:
                raise outcome
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def get_me(self):
        self.get_me_calls += 1
        if self.get_me_error is not None:
            raise self.get_me_error
        return SimpleNamespace(id=1, username="me")

    async def get_entity(self, target):
        self.entity_calls.append(target)
        if target in self.entities:
            return self.entities[target]
        raise ValueError(f"Could not find the input entity for {target!r}")

    async def get_dialogs(self, limit=None):
        self.dialog_calls.append(limit)
        return list(self.dialogs)

    async def get_messages(self, peer, ids=None, limit=None):
        self.message_calls.append({"ids": ids, "limit": limit})
        if ids is not None:
            return [
                None if i in self.hidden_ids else self.messages.get(i) for i in ids
            ]
        recent = sorted(self.messages.values(), key=lambda m: m.id, reverse=True)
        return recent[:limit]

    async def download_media(self, message, file=None, progress_callback=None):
        self.download_calls += 1
        step = self.download_script.pop(0)
        if step.data:
            with open(file, "wb") as out:
                out.write(step.data)
            if progress_callback is not None:
                progress_callback(len(step.data), len(step.data))
        elif step.error is None:
            open(file, "wb").close()
        if step.disconnect:
            self.connected = False
        if step.error is not None:
            raise step.error
        return file


def make_message(msg_id: int = 7, media=None, size: Optional[int] = None, **extra):
    fields = {
        "id": msg_id,
        "media": media,
        "file": SimpleNamespace(size=size) if size is not None else None,
        "reply_to": None,
        "fwd_from": None,
        "text": "",
    }
    fields.update(extra)
    return SimpleNamespace(**fields)


def photo_message(msg_id: int = 7, size: Optional[int] = 3):
    return make_message(msg_id, media=types.MessageMediaPhoto(), size=size)


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def ctx(client, tmp_path) -> TgfetchContext:
    config = Config()
    config.download.downloads_dir = str(tmp_path / "downloads")
    config.download.retry_delay = 0
    context = TgfetchContext(config=config, config_path=str(tmp_path / "config.json"))
    context.attach(client)
    return context
