import base64
import hashlib
import hmac
import json

import httpx
import pytest

from app.bot.line import (
    LineMessagingClient,
    parse_events,
    to_line_message,
    verify_signature,
)
from app.errors import DeliveryError
from app.models.schemas import (
    FlexReply,
    FollowEvent,
    MessageEvent,
    PostbackEvent,
    TextReply,
)

SECRET = "channel-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def test_verify_signature():
    body = b'{"events": []}'

    assert verify_signature(body, _sign(body), SECRET)
    assert not verify_signature(body, _sign(body, "other"), SECRET)
    assert not verify_signature(body + b" ", _sign(body), SECRET)
    assert not verify_signature(body, None, SECRET)
    assert not verify_signature(body, _sign(body), "")


def test_parse_events():
    payload = {
        "events": [
            {"type": "follow", "replyToken": "r1", "source": {"userId": "U1"}},
            {
                "type": "message",
                "replyToken": "r2",
                "source": {"userId": "U1"},
                "message": {"type": "text", "text": "午餐 120"},
            },
            {
                "type": "message",
                "replyToken": "r3",
                "source": {"userId": "U1"},
                "message": {"type": "sticker", "packageId": "1"},
            },
            {
                "type": "postback",
                "replyToken": "r4",
                "source": {"userId": "U1"},
                "postback": {"data": "disclaimer_accept"},
            },
            {"type": "unfollow", "source": {"userId": "U1"}},
            {"type": "message", "source": {"groupId": "G1"}, "message": {"type": "text"}},
        ]
    }

    events = parse_events(payload)

    assert events == [
        FollowEvent(user_id="U1", reply_token="r1"),
        MessageEvent(user_id="U1", text="午餐 120", reply_token="r2"),
        PostbackEvent(user_id="U1", data="disclaimer_accept", reply_token="r4"),
    ]


def test_parse_events_without_events_key():
    assert parse_events({}) == []


def test_parse_events_skips_null_fields():
    payload = {
        "events": [
            {"type": "message", "replyToken": "r1", "source": None},
            {"type": "message", "replyToken": "r2", "source": {"userId": "U1"}, "message": None},
            {"type": "postback", "replyToken": "r3", "source": {"userId": "U1"}, "postback": None},
            "not-an-event",
        ]
    }

    assert parse_events(payload) == [PostbackEvent(user_id="U1", data="", reply_token="r3")]
    assert parse_events({"events": None}) == []


def test_template_rendering(replies):
    disclaimer = to_line_message(replies.disclaimer())
    settings_menu = to_line_message(replies.settings_menu())
    reminder = to_line_message(replies.monthly_reminder())

    assert disclaimer["template"]["type"] == "confirm"
    assert disclaimer["template"]["actions"][0] == {
        "type": "postback",
        "label": "同意",
        "data": "disclaimer_accept",
    }
    assert settings_menu["template"]["type"] == "buttons"
    assert settings_menu["template"]["title"] == "個人設定"
    assert reminder["altText"] == "每月記帳提醒 - 記帳小豆腐"
    assert len(reminder["template"]["columns"]) == 2
    assert reminder["template"]["columns"][0]["actions"][2] == {
        "type": "uri",
        "label": "查看報表",
        "uri": "https://example.com/report",
    }


def test_text_and_flex_rendering():
    assert to_line_message(TextReply(text="hi")) == {"type": "text", "text": "hi"}
    flex = to_line_message(FlexReply(alt_text="alt", contents={"type": "bubble"}))
    assert flex == {"type": "flex", "altText": "alt", "contents": {"type": "bubble"}}


@pytest.mark.asyncio
async def test_client_reply_posts_messages():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = LineMessagingClient("token", transport=httpx.MockTransport(handler))
    await client.reply("reply-token", [TextReply(text=str(i)) for i in range(7)])
    await client.close()

    request = seen[0]
    body = json.loads(request.content)
    assert request.url.path == "/v2/bot/message/reply"
    assert request.headers["authorization"] == "Bearer token"
    assert body["replyToken"] == "reply-token"
    assert [m["text"] for m in body["messages"]] == ["0", "1", "2", "3", "4"]


@pytest.mark.asyncio
async def test_client_push_errors_raise_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "Invalid reply token"})

    client = LineMessagingClient("token", transport=httpx.MockTransport(handler))
    with pytest.raises(DeliveryError):
        await client.push("U1", [TextReply(text="hi")])
    await client.close()
