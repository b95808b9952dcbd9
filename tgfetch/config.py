"""Load all user defined config and env vars."""

import logging
import os
import tempfile
from typing import Optional

from pydantic import BaseModel, field_validator  # pylint: disable=no-name-in-module
from telethon.sessions import StringSession

from tgfetch.const import CONFIG_FILE_NAME, MB, GB, SESSION_FILE_NAME

PLACEHOLDERS = {"your_api_id_here", "your_api_hash_here", "+6281234567890"}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class LoginConfig(BaseModel):

    API_ID: int = 0
    API_HASH: str = ""
    SESSION_STRING: str = ""
    PHONE_NO: str = ""
    PASSWORD: str = ""


class ClientSettings(BaseModel):
    """Options passed to the telethon client."""

    # pylint: disable=too-few-public-methods
    connection_retries: int = 10
    timeout: int = 300  # seconds per call, large files need a long one
    retry_delay: int = 1
    auto_reconnect: bool = True


class KeepAliveSettings(BaseModel):
    """Settings for the background keep-alive and reconnect cycle."""

    # pylint: disable=too-few-public-methods
    interval: float = 180
    max_reconnect_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, val: float) -> float:  # pylint: disable=no-self-use,no-self-argument
        """Keep the probe interval between 10 seconds and one hour."""
        if not 10 <= val <= 3600:
            logging.warning("keep alive interval must be within 10 to 3600 seconds")
            val = min(max(val, 10), 3600)
        return val

    @field_validator("max_reconnect_attempts")
    @classmethod
    def validate_attempts(cls, val: int) -> int:  # pylint: disable=no-self-use,no-self-argument
        if val < 1:
            logging.warning("max_reconnect_attempts must be at least 1")
            val = 1
        return val


class DownloadSettings(BaseModel):
    """Configuration for resolving links and downloading media."""

    # pylint: disable=too-few-public-methods
    downloads_dir: str = "downloads"
    max_attempts: int = 5
    retry_delay: float = 2.0
    dialog_scan_limit: int = 500
    recent_scan_limit: int = 100

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, val: int) -> int:  # pylint: disable=no-self-use,no-self-argument
        """Check if the attempt count is valid. If not, use closest logical values."""
        if val not in range(1, 21):
            logging.warning("max_attempts must be within 1 to 20")
            if val > 20:
                val = 20
            if val < 1:
                val = 1
        return val


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class BotMessages(BaseModel):
    start: str = (
        "Hi! I download media from Telegram links.\n\n"
        "Use /download to start.\n\n"
        "I can fetch from public channels, private channels and groups "
        "the user account is a member of."
    )
    bot_help: str = (
        "Send /download, then a link like:\n"
        "https://t.me/channelName/123\n"
        "https://t.me/c/channelId/123"
    )
    ask_link: str = (
        "Send the Telegram link of the media to download.\n\n"
        "Examples:\n"
        "https://t.me/channelName/123\n"
        "https://t.me/c/channelId/messageId"
    )


class BotSettings(BaseModel):
    BOT_TOKEN: str = ""
    max_upload_size: int = 50 * MB  # Bot API upload ceiling
    large_file_notice: int = 1 * GB
    messages: BotMessages = BotMessages()


class Config(BaseModel):
    """The blueprint for tgfetch's whole config."""

    # pylint: disable=too-few-public-methods
    session_file: str = SESSION_FILE_NAME
    login: LoginConfig = LoginConfig()
    client: ClientSettings = ClientSettings()
    keep_alive: KeepAliveSettings = KeepAliveSettings()
    download: DownloadSettings = DownloadSettings()
    server: ServerSettings = ServerSettings()
    bot: BotSettings = BotSettings()


def _atomic_write(path: str, data: str) -> None:
    dir_name = os.path.dirname(path) or "."
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf8",
        dir=dir_name,
        delete=False,
        suffix=".tmp"
    ) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())

    os.replace(tmp.name, path)


def write_config(config: Config, path: str = CONFIG_FILE_NAME) -> None:
    """Write config atomically to prevent corruption on crash."""
    _atomic_write(path, config.model_dump_json(indent=2))


def ensure_config_exists(path: str = CONFIG_FILE_NAME) -> None:
    if os.path.exists(path):
        logging.info(f"{path} detected!")
        return
    logging.info(f"config file not found. creating local config file {path}.")
    write_config(Config(), path)
    logging.info(f"{path} created!")


def _env_int(name: str) -> int:
    value = os.environ[name]
    try:
        return int(value)
    except ValueError as err:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from err


def apply_env_overrides(config: Config) -> Config:
    """Let environment variables (and .env) take precedence over the file."""
    env = os.environ
    if env.get("API_ID"):
        config.login.API_ID = _env_int("API_ID")
    if env.get("API_HASH"):
        config.login.API_HASH = env["API_HASH"]
    if env.get("SESSION_STRING"):
        config.login.SESSION_STRING = env["SESSION_STRING"]
    if env.get("PHONE_NUMBER"):
        config.login.PHONE_NO = env["PHONE_NUMBER"]
    if env.get("PASSWORD"):
        config.login.PASSWORD = env["PASSWORD"]
    if env.get("BOT_TOKEN"):
        config.bot.BOT_TOKEN = env["BOT_TOKEN"]
    if env.get("PORT"):
        config.server.port = _env_int("PORT")
    if env.get("DOWNLOADS_DIR"):
        config.download.downloads_dir = env["DOWNLOADS_DIR"]
    return config


def read_config(path: str = CONFIG_FILE_NAME) -> Config:
    """Load the configuration defined by user."""
    try:
        with open(path, encoding="utf8") as file:
            config = Config.model_validate_json(file.read())
    except FileNotFoundError:
        logging.warning(f"{path} not found, using default config")
        config = Config()
    except ValueError as err:
        logging.error(f"Failed to parse {path}: {err}")
        raise ConfigurationError(f"{path} is not a valid config file: {err}") from err
    return apply_env_overrides(config)


def validate_login(config: Config) -> None:
    """Fail early on credentials that can never work."""
    login = config.login
    if not login.API_ID or not login.API_HASH:
        raise ConfigurationError(
            "API_ID and API_HASH must be set. Get them from https://my.telegram.org/apps"
        )
    if str(login.API_ID) in PLACEHOLDERS or login.API_HASH in PLACEHOLDERS:
        raise ConfigurationError("API_ID and API_HASH still hold placeholder values.")
    if len(login.API_HASH) < 32:
        raise ConfigurationError("API_HASH is invalid, it is usually 32 characters long.")
    if not login.SESSION_STRING and not load_session_string(config.session_file):
        if not login.PHONE_NO or login.PHONE_NO in PLACEHOLDERS:
            raise ConfigurationError(
                "PHONE_NUMBER must be set for the first login, "
                "or provide SESSION_STRING from a previous login."
            )


def mask_secret(secret: str, keep: int = 4) -> str:
    """Show only the edges of a secret, for logs."""
    if not secret:
        return ""
    if len(secret) <= keep * 2:
        return "*" * len(secret)
    return f"{secret[:keep]}...{secret[-keep:]}"


def load_session_string(path: str = SESSION_FILE_NAME) -> str:
    """Read a saved session string. A missing file means no saved session."""
    try:
        with open(path, encoding="utf8") as file:
            return file.read().strip()
    except FileNotFoundError:
        return ""


def save_session_string(session_string: str, path: str = SESSION_FILE_NAME) -> None:
    _atomic_write(path, session_string)
    logging.info(f"Session saved to {path} ({mask_secret(session_string)})")


def get_SESSION(config: Config, session_string: Optional[str] = None) -> StringSession:
    if session_string is None:
        session_string = config.login.SESSION_STRING
    if session_string:
        logging.info("using session string")
    else:
        session_string = load_session_string(config.session_file)
        if session_string:
            logging.info(f"using session from {config.session_file}")
        else:
            logging.info("no saved session, a login will be required")
    return StringSession(session_string)
