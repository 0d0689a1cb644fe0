import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.wecom_bridge.config import BridgeConfig
from services.wecom_bridge.errors import BridgeError, ConfigError, InternalError
from services.wecom_bridge.forwarder import Forwarder
from services.wecom_bridge.handler import CallbackHandler
from services.wecom_bridge.models import CallbackQuery

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


def _text(body: str, status_code: int = 200, headers: Optional[dict] = None) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code, headers=headers, media_type=TEXT_MEDIA_TYPE)


def _query(request: Request) -> CallbackQuery:
    params = request.query_params
    return CallbackQuery(
        msg_signature=params.get("msg_signature", ""),
        timestamp=params.get("timestamp", ""),
        nonce=params.get("nonce", ""),
        echostr=params.get("echostr", ""),
    )


def create_app(config: BridgeConfig, forwarder: Optional[Forwarder] = None) -> FastAPI:
    forwarder = forwarder or Forwarder(config)
    handler = CallbackHandler(config, forwarder)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(json.dumps({
            "event": "wecom_bridge.start",
            "host": config.host,
            "port": config.port,
            "path": config.callback_path,
            "forward_url": config.forward_url
        }))

        yield

        # Shutdown
        await forwarder.aclose()

    app = FastAPI(title="WeCom Callback Bridge", lifespan=lifespan, redirect_slashes=False)
    app.state.config = config
    app.state.handler = handler

    @app.middleware("http")
    async def add_security_headers(request, call_next):
        resp = await call_next(request)
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        if isinstance(exc, InternalError):
            # cause already logged by the route
            pass
        elif exc.status_code >= 500:
            logger.error(json.dumps({
                "event": "wecom_bridge.error",
                "error": exc.error,
                "detail": exc.detail
            }))
        else:
            logger.info(json.dumps({
                "event": "wecom_bridge.callback.failed",
                "method": request.method,
                "status": exc.status_code,
                "error": exc.error,
                "detail": exc.detail
            }))
        return _text(exc.detail, exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _text(str(exc.detail), exc.status_code, headers=getattr(exc, "headers", None))

    @app.api_route(config.callback_path, methods=["GET", "POST"])
    async def callback(request: Request):
        """WeCom URL verification (GET) and event push (POST)"""
        try:
            query = _query(request)
            if request.method == "GET":
                return _text(handler.handshake(query))

            body = await request.body()
            return _text(await handler.deliver(query, body.decode("utf-8", errors="replace")))
        except BridgeError:
            raise
        except Exception as e:
            logger.error(json.dumps({
                "event": "wecom_bridge.error",
                "method": request.method,
                "error": str(e) or type(e).__name__
            }))
            raise InternalError()

    return app


def main() -> None:
    try:
        config = BridgeConfig.from_env()
    except ConfigError as e:
        logger.error(json.dumps({
            "event": "wecom_bridge.config.invalid",
            "detail": e.detail
        }))
        sys.exit(2)

    import uvicorn
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
