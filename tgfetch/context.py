from dataclasses import dataclass, field
from typing import Optional

from telethon import TelegramClient

from tgfetch.client import build_client, start_client
from tgfetch.config import Config
from tgfetch.keeper import ConnectionKeeper, KeeperState


@dataclass
class TgfetchContext:
    """Runtime state for a tgfetch instance."""
    # Immutable config loaded once at startup
    config: Config
    config_path: str

    # Client connection, set after login
    client: Optional[TelegramClient] = None
    keeper: Optional[ConnectionKeeper] = None

    # Bot chats waiting for a link after /download
    waiting_for_link: set[int] = field(default_factory=set)

    def attach(self, client: TelegramClient) -> ConnectionKeeper:
        """Wire a connected client and its keeper into the context."""
        settings = self.config.keep_alive
        self.client = client
        self.keeper = ConnectionKeeper(
            client,
            interval=settings.interval,
            max_attempts=settings.max_reconnect_attempts,
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
        )
        self.keeper.mark_connected()
        return self.keeper

    async def start(self, keep_alive: bool = True) -> None:
        # kept before login so shutdown() can disconnect a half-started client
        self.client = build_client(self.config)
        self.attach(await start_client(self.client, self.config))
        if keep_alive:
            self.keeper.start()

    async def shutdown(self) -> None:
        if self.keeper is not None:
            await self.keeper.stop()
        if self.client is not None:
            await self.client.disconnect()

    @property
    def connection_state(self) -> str:
        if self.keeper is None:
            return KeeperState.IDLE.value
        return self.keeper.state.value
