"""Package tgfetch.

Fetch media from Telegram message links through a user session.
"""

__version__ = "0.1.0"
