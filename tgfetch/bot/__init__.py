"""Subpackage of tgfetch: bot.

A bot account front end for the downloader. The bot only talks to users;
every download runs through the user session held by the context.
"""

import logging

from telethon import TelegramClient, functions, types

from tgfetch.const import COMMANDS
from tgfetch.context import TgfetchContext
from tgfetch.bot.download_bot import get_events

BOT_SESSION = "tgfetch_bot"


async def start_bot(ctx: TgfetchContext) -> TelegramClient:
    """Log the bot in and register its handlers. Caller disconnects it."""
    config = ctx.config
    bot = TelegramClient(BOT_SESSION, config.login.API_ID, config.login.API_HASH)
    await bot.start(bot_token=config.bot.BOT_TOKEN)

    for key, val in get_events(ctx).items():
        bot.add_event_handler(*val)
        logging.info(f"Added event handler for {key}")

    await bot(
        functions.bots.SetBotCommandsRequest(
            scope=types.BotCommandScopeDefault(),
            lang_code="en",
            commands=[
                types.BotCommand(command=key, description=value)
                for key, value in COMMANDS.items()
            ],
        )
    )
    logging.info("Telegram bot is running!")
    return bot
