import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.api.routes import persistence_failure_handler
from app.api.routes import router as api_router
from app.api.webhook import (
    configuration_missing_handler,
    signature_invalid_handler,
)
from app.api.webhook import router as webhook_router
from app.bot.controller import ConversationController
from app.bot.line import LineMessagingClient
from app.bot.replies import ReplyBuilder
from app.config import Settings, get_settings
from app.db.repository import LedgerRepository
from app.errors import ConfigurationMissing, PersistenceFailure, SignatureInvalid


def configure_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} | {level:<7} | {message}")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app and every collaborator it owns."""
    settings = settings or get_settings()

    app = FastAPI(title="Ledger Bot", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("{} {}", request.method, request.url.path)
        response: Response = await call_next(request)
        logger.info("→ {}", response.status_code)
        return response

    repo = LedgerRepository(settings.db_path)
    replies = ReplyBuilder(settings.currency_label, settings.report_url)

    app.state.settings = settings
    app.state.repo = repo
    app.state.controller = ConversationController(
        repo, replies, baseline=settings.unknown_expense_baseline
    )
    app.state.line = None
    app.state.bot = None

    missing = settings.missing_line_config()
    if missing:
        logger.warning("{} not set — LINE webhook will refuse events", ", ".join(missing))
    else:
        app.state.line = LineMessagingClient(
            settings.line_channel_access_token, settings.line_api_base
        )

    app.include_router(api_router)
    app.include_router(webhook_router)
    app.add_exception_handler(PersistenceFailure, persistence_failure_handler)
    app.add_exception_handler(SignatureInvalid, signature_invalid_handler)
    app.add_exception_handler(ConfigurationMissing, configuration_missing_handler)

    @app.on_event("startup")
    async def startup():
        """Start the Telegram bot alongside FastAPI."""
        if not settings.telegram_bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set — bot will not start")
            return

        from app.bot.handler import build_bot_app

        bot_app = build_bot_app(settings.telegram_bot_token, app.state.controller)
        app.state.bot = bot_app

        # Initialize and start polling in the background
        await bot_app.initialize()
        await bot_app.start()
        await bot_app.updater.start_polling(drop_pending_updates=True)
        logger.info("Telegram bot started (polling)")

    @app.on_event("shutdown")
    async def shutdown():
        """Stop the Telegram bot and release outbound and storage handles."""
        bot_app = app.state.bot
        if bot_app:
            await bot_app.updater.stop()
            await bot_app.stop()
            await bot_app.shutdown()
            app.state.bot = None
            logger.info("Telegram bot stopped")
        if app.state.line is not None:
            await app.state.line.close()
        repo.close()

    return app


configure_logging(get_settings().log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
