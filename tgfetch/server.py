"""HTTP interface: POST a link, get back where the media was saved."""

import logging
from datetime import datetime, timezone

from aiohttp import web

from tgfetch import __version__
from tgfetch.context import TgfetchContext
from tgfetch.errors import ErrorKind
from tgfetch.pipeline import handle_download_request

CTX_KEY = web.AppKey("ctx", TgfetchContext)

STATUS_CODES = {
    ErrorKind.INVALID_LINK_FORMAT.value: 400,
    ErrorKind.MEDIA_UNAVAILABLE.value: 400,
    ErrorKind.UNSUPPORTED_MEDIA_TYPE.value: 400,
    ErrorKind.PEER_UNREACHABLE.value: 403,
    ErrorKind.MESSAGE_NOT_FOUND.value: 404,
    ErrorKind.DOWNLOAD_FAILED.value: 500,
    ErrorKind.EMPTY_MEDIA_PAYLOAD.value: 500,
    ErrorKind.CLIENT_NOT_CONNECTED.value: 503,
}

routes = web.RouteTableDef()


@routes.get("/")
async def index(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "message": "Telegram Downloader API",
            "version": __version__,
            "endpoints": {
                "POST /api/download": "Download media from a Telegram link",
                "GET /health": "Health check",
            },
        }
    )


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    return web.json_response(
        {
            "status": "ok",
            "connection": ctx.connection_state,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@routes.post("/api/download")
async def download(request: web.Request) -> web.Response:
    ctx = request.app[CTX_KEY]
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    result = await handle_download_request(ctx, payload)
    status = 200 if result.success else STATUS_CODES.get(result.error_kind, 500)
    return web.json_response(result.to_dict(), status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response(
            {"success": False, "errorKind": None, "message": "Endpoint not found"},
            status=404,
        )
    except web.HTTPException:
        raise
    except Exception as err:
        logging.exception(f"Unexpected error on {request.path}: {err}")
        return web.json_response(
            {"success": False, "errorKind": None, "message": f"Internal server error: {err}"},
            status=500,
        )


def create_app(ctx: TgfetchContext) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[CTX_KEY] = ctx
    app.add_routes(routes)
    return app


async def start_server(ctx: TgfetchContext) -> web.AppRunner:
    """Start listening and return the runner, to be cleaned up by the caller."""
    settings = ctx.config.server
    runner = web.AppRunner(create_app(ctx))
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()
    logging.info(f"Server running on http://{settings.host}:{settings.port}")
    logging.info(f"Download endpoint: POST http://localhost:{settings.port}/api/download")
    return runner
