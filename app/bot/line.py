"""LINE Messaging API transport: webhook decoding and outbound messages."""

import base64
import hashlib
import hmac
from typing import Any

import httpx
from loguru import logger

from app.errors import DeliveryError
from app.models.schemas import (
    Action,
    FlexReply,
    FollowEvent,
    InboundEvent,
    MessageEvent,
    PostbackEvent,
    Reply,
    TemplateColumn,
    TemplateReply,
    TextReply,
)

# LINE accepts at most five message objects per reply or push call
MAX_MESSAGES_PER_CALL = 5


def verify_signature(body: bytes, signature: str | None, channel_secret: str) -> bool:
    if not signature or not channel_secret:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


def parse_events(payload: dict[str, Any]) -> list[InboundEvent]:
    """Normalise a webhook body into inbound events.

    Events this bot has no use for (stickers, images, unfollow, joins, events
    without a user source) are dropped.
    """
    events: list[InboundEvent] = []
    for raw in payload.get("events") or []:
        if not isinstance(raw, dict):
            continue
        user_id = (raw.get("source") or {}).get("userId")
        if not user_id:
            continue
        reply_token = raw.get("replyToken")
        event_type = raw.get("type")
        message = raw.get("message") or {}

        if event_type == "follow":
            events.append(FollowEvent(user_id=user_id, reply_token=reply_token))
        elif event_type == "message" and message.get("type") == "text":
            events.append(
                MessageEvent(
                    user_id=user_id,
                    text=message.get("text") or "",
                    reply_token=reply_token,
                )
            )
        elif event_type == "postback":
            events.append(
                PostbackEvent(
                    user_id=user_id,
                    data=(raw.get("postback") or {}).get("data") or "",
                    reply_token=reply_token,
                )
            )
        else:
            logger.debug("Skipping LINE event of type {}", event_type)
    return events


def _action_to_line(action: Action) -> dict[str, Any]:
    if action.uri is not None:
        return {"type": "uri", "label": action.label, "uri": action.uri}
    return {"type": "postback", "label": action.label, "data": action.data or ""}


def _column_to_line(column: TemplateColumn) -> dict[str, Any]:
    data: dict[str, Any] = {
        "text": column.text,
        "actions": [_action_to_line(a) for a in column.actions],
    }
    if column.title:
        data["title"] = column.title
    return data


def to_line_message(reply: Reply) -> dict[str, Any]:
    if isinstance(reply, TextReply):
        return {"type": "text", "text": reply.text}

    if isinstance(reply, TemplateReply):
        if reply.layout == "carousel":
            template = {
                "type": "carousel",
                "columns": [_column_to_line(c) for c in reply.columns],
            }
        elif reply.layout == "confirm":
            column = reply.columns[0]
            template = {
                "type": "confirm",
                "text": column.text,
                "actions": [_action_to_line(a) for a in column.actions],
            }
        else:
            template = {"type": "buttons", **_column_to_line(reply.columns[0])}
        return {"type": "template", "altText": reply.alt_text, "template": template}

    if isinstance(reply, FlexReply):
        return {"type": "flex", "altText": reply.alt_text, "contents": reply.contents}

    raise TypeError(f"Unsupported reply: {type(reply).__name__}")


class LineMessagingClient:
    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.line.me",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def reply(self, reply_token: str, replies: list[Reply]) -> None:
        await self._send(
            "/v2/bot/message/reply", {"replyToken": reply_token}, replies
        )

    async def push(self, user_id: str, replies: list[Reply]) -> None:
        await self._send("/v2/bot/message/push", {"to": user_id}, replies)

    async def _send(self, path: str, target: dict[str, str], replies: list[Reply]) -> None:
        if len(replies) > MAX_MESSAGES_PER_CALL:
            logger.warning(
                "Dropping {} messages over the LINE limit",
                len(replies) - MAX_MESSAGES_PER_CALL,
            )
        messages = [to_line_message(r) for r in replies[:MAX_MESSAGES_PER_CALL]]
        try:
            response = await self.client.post(path, json={**target, "messages": messages})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "LINE {} rejected: {} {}", path, e.response.status_code, e.response.text
            )
            raise DeliveryError(f"LINE API returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("LINE {} failed: {}", path, e)
            raise DeliveryError(str(e)) from e
