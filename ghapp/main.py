import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ghapp.config import Settings
from ghapp.dispatcher import EventDispatcher, Handler
from ghapp.errors import ConfigError
from ghapp.github.pool import ClientPool
from ghapp.handlers import echo_handler

logger = logging.getLogger(__name__)


def _build_pool(settings: Settings) -> ClientPool | None:
    """Outbound auth is optional: a receive-only app needs no credentials."""
    try:
        return ClientPool.from_settings(settings)
    except ConfigError as exc:
        logger.warning("%s; client pool unavailable", exc)
        return None


def create_app(
    settings: Settings | None = None,
    handler: Handler | None = None,
    client_pool: ClientPool | None = None,
) -> FastAPI:
    """
    Assemble the webhook service.

    Run with ``uvicorn ghapp.main:create_app --factory``. Host code that needs
    to call GitHub gets the pool from ``app.state.client_pool``.
    """
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    if client_pool is None:
        client_pool = _build_pool(settings)

    dispatcher = EventDispatcher(
        handler or echo_handler,
        secret=settings.webhook_secret or None,
        algorithm=settings.signature_algorithm,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if not dispatcher.verifies_signatures:
            logger.warning("GITHUB_WEBHOOK_SECRET not set; webhook signatures will not be verified")
        logger.info("GitHub App service ready (%r)", settings)
        yield

    app = FastAPI(title="ghapp", lifespan=lifespan)
    app.state.settings = settings
    app.state.client_pool = client_pool
    app.state.dispatcher = dispatcher

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        remote = request.client.host if request.client else "-"
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "[%s] %s %s - %s (%.1fms)",
                remote, request.method, request.url.path, exc,
                (time.perf_counter() - start) * 1000,
            )
            raise
        logger.info(
            "[%s] %s %s - %s (%.1fms)",
            remote, request.method, request.url.path, response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/webhook")
    async def webhook(request: Request):
        payload = await request.body()
        outcome = await dispatcher.dispatch(request.headers, payload)
        if outcome.ok:
            return {"ok": True}
        return JSONResponse(
            status_code=outcome.status_code,
            content={"ok": False, "error": str(outcome.error)},
        )

    return app
