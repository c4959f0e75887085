import json

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger
from telegram.error import TelegramError

from app.bot.controller import ConversationController
from app.bot.handler import send_replies
from app.bot.line import LineMessagingClient, parse_events, verify_signature
from app.config import Settings
from app.db.repository import LedgerRepository
from app.deps import get_app_settings, get_controller, get_line_client, get_repo
from app.errors import ConfigurationMissing, DeliveryError, SignatureInvalid

router = APIRouter(prefix="/api")


@router.post("/webhook")
async def line_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    controller: ConversationController = Depends(get_controller),
    line: LineMessagingClient | None = Depends(get_line_client),
):
    missing = settings.missing_line_config()
    if missing or line is None:
        raise ConfigurationMissing(missing or ["LINE client"])

    body = await request.body()
    signature = request.headers.get("x-line-signature")
    if not verify_signature(body, signature, settings.line_channel_secret):
        raise SignatureInvalid("x-line-signature does not match body")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body is not a JSON object")

    for event in parse_events(payload):
        replies = await run_in_threadpool(controller.handle, event, "line")
        if not event.reply_token or not replies:
            continue
        try:
            await line.reply(event.reply_token, replies)
        except DeliveryError as e:
            # Confirmations are at-most-once; the user can ask again
            logger.warning("Reply to {} not delivered: {}", event.user_id, e)

    return {"status": "ok"}


@router.get("/cron/monthly-reminder")
async def monthly_reminder(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    repo: LedgerRepository = Depends(get_repo),
    controller: ConversationController = Depends(get_controller),
    line: LineMessagingClient | None = Depends(get_line_client),
):
    """Push the monthly bookkeeping reminder to every known user."""
    if settings.cron_secret:
        if request.headers.get("authorization") != f"Bearer {settings.cron_secret}":
            raise HTTPException(status_code=401, detail="Invalid cron secret")

    users = await run_in_threadpool(repo.list_users)
    reminder = [controller.replies.monthly_reminder()]
    bot_app = getattr(request.app.state, "bot", None)

    sent = 0
    for user in users:
        try:
            if user.channel == "telegram":
                if bot_app is None:
                    logger.warning("Telegram bot not running, skipping user #{}", user.id)
                    continue
                await send_replies(bot_app.bot, user.external_id, reminder)
            else:
                if line is None:
                    logger.warning("LINE client not configured, skipping user #{}", user.id)
                    continue
                await line.push(user.external_id, reminder)
            sent += 1
        except (DeliveryError, TelegramError) as e:
            logger.warning("Reminder to user #{} failed: {}", user.id, e)

    logger.info("Monthly reminder sent to {}/{} users", sent, len(users))
    return {"status": "ok", "message": f"Sent monthly reminder to {sent} users"}


def signature_invalid_handler(request: Request, exc: SignatureInvalid):
    logger.warning("Rejected {} {}: {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=401, content={"error": "Invalid signature"})


def configuration_missing_handler(request: Request, exc: ConfigurationMissing):
    logger.error("Refusing {} {}: {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Server not configured"})
