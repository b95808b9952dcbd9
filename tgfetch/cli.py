"""This module implements the command line interface for tgfetch."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import console, traceback
from rich.markup import escape
from rich.logging import RichHandler

from tgfetch import __version__
from tgfetch.config import (
    ConfigurationError,
    ensure_config_exists,
    read_config,
    save_session_string,
    validate_login,
)
from tgfetch.const import CONFIG_ENV_VAR_NAME, CONFIG_FILE_NAME
from tgfetch.context import TgfetchContext
from tgfetch.errors import TgfetchError

app = typer.Typer(add_completion=False)

con = console.Console()


def verbosity_callback(value: bool):
    """Set logging level."""
    traceback.install()
    if value:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(
                rich_tracebacks=True,
                markup=True,
            )
        ],
    )
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))
    logging.info("Verbosity turned on! This is suitable for debugging")


def version_callback(value: bool):
    """Show current version and exit."""

    if value:
        con.print(__version__)
        raise typer.Exit()


def load_context() -> TgfetchContext:
    """Read .env and the config file, and check the login settings."""
    load_dotenv(os.path.join(os.getcwd(), ".env"))
    config_path = os.getenv(CONFIG_ENV_VAR_NAME, CONFIG_FILE_NAME)
    try:
        config = read_config(config_path)
        validate_login(config)
    except ConfigurationError as err:
        con.print(f"[red]Configuration error:[/red] {escape(str(err))}")
        raise typer.Exit(1)
    return TgfetchContext(config=config, config_path=config_path)


async def _serve(ctx: TgfetchContext) -> None:
    from tgfetch.bot import start_bot  # pylint: disable=import-outside-toplevel
    from tgfetch.server import start_server  # pylint: disable=import-outside-toplevel

    os.makedirs(ctx.config.download.downloads_dir, exist_ok=True)
    # listen first so hosting platforms see the port while we log in
    runner = await start_server(ctx)
    bot = None
    try:
        try:
            await ctx.start()
            logging.info("Telegram client (user session) initialized")
        except Exception as err:
            logging.error(f"Failed to initialize the Telegram client: {err}")
            logging.error("The server keeps running, but downloads will not work.")

        if ctx.config.bot.BOT_TOKEN:
            try:
                bot = await start_bot(ctx)
            except Exception as err:
                logging.error(f"Failed to start the Telegram bot: {err}")
        else:
            logging.warning("BOT_TOKEN not set, the bot front end is disabled.")

        await asyncio.Event().wait()
    finally:
        logging.info("Stopping server...")
        if bot is not None:
            await bot.disconnect()
        await ctx.shutdown()
        await runner.cleanup()


async def _download(ctx: TgfetchContext, link: str, output_dir: Optional[str]) -> None:
    from tgfetch.pipeline import download_from_link  # pylint: disable=import-outside-toplevel

    await ctx.start(keep_alive=False)
    try:
        result = await download_from_link(ctx, link, output_dir=output_dir)
    finally:
        await ctx.shutdown()
    con.print(f"Saved message {result.message_id} to [bold]{result.file_path}[/bold] ({result.file_size} bytes)")


async def _login(ctx: TgfetchContext, show: bool) -> None:
    await ctx.start(keep_alive=False)
    try:
        session_string = ctx.client.session.save()
        save_session_string(session_string, ctx.config.session_file)
        me = await ctx.client.get_me()
    finally:
        await ctx.shutdown()
    con.print(f"Logged in as {getattr(me, 'username', None) or getattr(me, 'id', '?')}")
    con.print(f"Session saved to {ctx.config.session_file}")
    if show:
        con.print("SESSION_STRING=" + session_string, markup=False)
        con.print("[yellow]Never share SESSION_STRING with anyone![/yellow]")


async def _channels(ctx: TgfetchContext, output: Optional[Path]) -> None:
    from tgfetch.channels import list_channels  # pylint: disable=import-outside-toplevel

    await ctx.start(keep_alive=False)
    try:
        await list_channels(ctx.client, output)
    finally:
        await ctx.shutdown()


@app.callback()
def main(
    verbose: Optional[bool] = typer.Option(  # pylint: disable=unused-argument
        None,
        "--loud",
        "-l",
        callback=verbosity_callback,
        envvar="LOUD",
        help="Increase output verbosity.",
    ),
    version: Optional[bool] = typer.Option(  # pylint: disable=unused-argument
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """Download media from Telegram message links using a user session.

    Configure API_ID, API_HASH and SESSION_STRING (or PHONE_NUMBER for the
    first login) in a .env file or in tgfetch.config.json.
    """


@app.command()
def serve():
    """Run the HTTP API, the bot (if BOT_TOKEN is set) and the keep-alive."""
    ctx = load_context()
    try:
        asyncio.run(_serve(ctx))
    except KeyboardInterrupt:
        logging.info("Interrupted")


@app.command()
def download(
    link: str = typer.Argument(..., help="Telegram post link (e.g., https://t.me/channel/123)"),
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", "-o", help="Where to save the file."
    ),
):
    """Download the media of a single message.

    Example usage:

        tgfetch download "https://t.me/durov/123"

        tgfetch download "https://t.me/c/1234567890/456" -o ./media
    """
    ctx = load_context()
    try:
        asyncio.run(_download(ctx, link, output_dir))
    except TgfetchError as err:
        con.print(f"[red]{err.kind.value}:[/red] {escape(str(err))}")
        raise typer.Exit(1)


@app.command()
def login(
    show: bool = typer.Option(
        False, "--show", help="Print the session string, to paste into SESSION_STRING."
    ),
):
    """Log in interactively and save the session."""
    ctx = load_context()
    asyncio.run(_login(ctx, show))


@app.command()
def channels(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Also write the list to this file."
    ),
):
    """List joined channels and groups with their IDs."""
    ctx = load_context()
    asyncio.run(_channels(ctx, output))


@app.command()
def init():
    """Write a default config file, unless one exists."""
    load_dotenv(os.path.join(os.getcwd(), ".env"))
    config_path = os.getenv(CONFIG_ENV_VAR_NAME, CONFIG_FILE_NAME)
    ensure_config_exists(config_path)
    con.print(f"Config file: [bold]{escape(config_path)}[/bold]")
