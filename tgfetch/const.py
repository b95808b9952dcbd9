"""Declare all global constants."""

CONFIG_FILE_NAME = "tgfetch.config.json"
CONFIG_ENV_VAR_NAME = "TGFETCH_CONFIG"

SESSION_FILE_NAME = "session.txt"

TELEGRAM_HOSTS = ("t.me", "www.t.me", "telegram.me", "www.telegram.me")

# path segment that marks a private t.me/c/<id>/<msg> link
PRIVATE_MARKER = "c"

# channels and supergroups carry this prefix in their marked peer id
SUPERGROUP_PREFIX = "-100"

MB = 1024 * 1024
GB = 1024 * MB

COMMANDS = {
    "start": "Check whether I am alive",
    "download": "Download media from a Telegram link",
    "help": "Learn usage",
}
