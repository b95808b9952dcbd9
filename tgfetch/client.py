"""Create and log in the telethon user client."""

import logging
import sys

from rich.prompt import Prompt
from telethon import TelegramClient

from tgfetch.config import (
    Config,
    ConfigurationError,
    get_SESSION,
    mask_secret,
    save_session_string,
)


def build_client(config: Config) -> TelegramClient:
    settings = config.client
    return TelegramClient(
        get_SESSION(config),
        config.login.API_ID,
        config.login.API_HASH,
        connection_retries=settings.connection_retries,
        timeout=settings.timeout,
        retry_delay=settings.retry_delay,
        auto_reconnect=settings.auto_reconnect,
    )


def _interactive() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


def _phone(config: Config):
    def phone() -> str:
        if not config.login.PHONE_NO:
            raise ConfigurationError("PHONE_NUMBER must be set for the first login.")
        logging.info(f"Logging in with {mask_secret(config.login.PHONE_NO, keep=3)}")
        return config.login.PHONE_NO.strip()

    return phone


def _password(config: Config):
    def password() -> str:
        if config.login.PASSWORD:
            return config.login.PASSWORD.strip()
        if not _interactive():
            raise ConfigurationError(
                "PASSWORD must be set in the environment when running without a terminal."
            )
        return Prompt.ask("Enter your 2FA password (if any)", password=True).strip()

    return password


def _code() -> str:
    if not _interactive():
        raise ConfigurationError(
            "The first login cannot be done without a terminal.\n"
            "Log in on a local machine with `tgfetch login`, then set "
            "SESSION_STRING in the environment of this service."
        )
    return Prompt.ask("Enter the login code sent to your Telegram").strip()


async def start_client(client: TelegramClient, config: Config) -> TelegramClient:
    """Connect, and log in interactively if the session is not authorized."""
    await client.connect()
    if await client.is_user_authorized():
        logging.info("Telegram client already authorized")
        return client

    logging.warning("Not authorized yet, starting login")
    await client.start(
        phone=_phone(config),
        password=_password(config),
        code_callback=_code,
    )
    session_string = client.session.save()
    if session_string:
        save_session_string(session_string, config.session_file)
        logging.info("Login successful!")
    return client
