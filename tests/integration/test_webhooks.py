# -*- coding: utf-8 -*-
"""
Webhook end-to-end tests (Flask test client)

Each channel: authenticity check, payload mapping, gateway run against a
real SQLite file (regex parser), and reply delivery.
"""

import base64
import hashlib
import hmac
import json
import time
from unittest.mock import Mock

import pytest
from nacl.signing import SigningKey

from aiexpense.channels import (
    DiscordAdapter,
    LineAdapter,
    SlackAdapter,
    TeamsAdapter,
    TelegramAdapter,
    TerminalAdapter,
    WhatsAppAdapter,
)
from aiexpense.channels.base import GENERIC_FAILURE_TEXT
from aiexpense.config import Settings
from aiexpense.errors import StoreUnavailableError
from aiexpense.gateway import build_gateway
from aiexpense.parser.engine import ParsingEngine
from aiexpense.server import create_app
from aiexpense.storage.repositories import ExpenseRepository, UserRepository
from tests.test_utils import InlineExecutor

DISCORD_SIGNING_KEY = SigningKey(bytes(range(32)))

CREDENTIALS = {
    "LINE_CHANNEL_ACCESS_TOKEN": "line-token",
    "LINE_CHANNEL_SECRET": "line-secret",
    "TELEGRAM_BOT_TOKEN": "123:abc",
    "TELEGRAM_SECRET_TOKEN": "tg-secret",
    "DISCORD_BOT_TOKEN": "discord-token",
    "DISCORD_PUBLIC_KEY": DISCORD_SIGNING_KEY.verify_key.encode().hex(),
    "SLACK_BOT_TOKEN": "xoxb-token",
    "SLACK_SIGNING_SECRET": "slack-secret",
    "TEAMS_APP_ID": "teams-app",
    "TEAMS_APP_PASSWORD": "teams-password",
    "WHATSAPP_PHONE_NUMBER_ID": "10001",
    "WHATSAPP_ACCESS_TOKEN": "wa-token",
    "WHATSAPP_APP_SECRET": "wa-secret",
    "WHATSAPP_VERIFY_TOKEN": "wa-verify",
}


@pytest.fixture
def channel_settings(db_path):
    return Settings(
        enabled_messengers=["terminal", "line", "telegram", "discord", "slack", "teams", "whatsapp"],
        database_path=db_path,
        credentials=dict(CREDENTIALS),
        exchange_rate_live=False,
    )


@pytest.fixture
def make_client(channel_settings):
    def _make(*adapters, gateway=None):
        app = create_app(
            channel_settings,
            gateway=gateway or build_gateway(channel_settings, parser=ParsingEngine(backend=None)),
            executor=InlineExecutor(),
            adapters=adapters,
        )
        return app.test_client()
    return _make


def _ok_response(payload=None):
    resp = Mock()
    resp.status_code = 200
    resp.json.return_value = payload if payload is not None else {"ok": True}
    return resp


class TestHealth:

    def test_lists_registered_channels(self, make_client, channel_settings):
        client = make_client(TerminalAdapter(channel_settings), TelegramAdapter(channel_settings))

        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok", "channels": ["terminal", "telegram"]}


class TestTerminal:

    def test_reply_in_response_body(self, make_client, channel_settings, db_path):
        client = make_client(TerminalAdapter(channel_settings))

        resp = client.post("/webhook/terminal", json={"user_id": "me", "message": "lunch $120 taxi $250"})

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["status"] == "success"
        assert body["message"].splitlines()[0].startswith("✓ lunch 120 TWD (Food, ")
        assert len(body["data"]["expenses"]) == 2
        assert UserRepository(db_path).get("me", "terminal") is not None

    def test_invalid_json(self, make_client, channel_settings):
        client = make_client(TerminalAdapter(channel_settings))

        resp = client.post("/webhook/terminal", data=b"not json", content_type="application/json")

        assert resp.status_code == 400

    def test_gateway_failure_gets_generic_reply(self, make_client, channel_settings):
        gateway = Mock()
        gateway.process.side_effect = StoreUnavailableError("database unavailable: /data/aiexpense.db")
        client = make_client(TerminalAdapter(channel_settings), gateway=gateway)

        resp = client.post("/webhook/terminal", json={"message": "lunch $120"})

        body = resp.get_json()
        assert body["status"] == "error"
        assert body["message"] == GENERIC_FAILURE_TEXT
        assert "aiexpense.db" not in body["message"]


def _line_body(text="breakfast $20 lunch $30 gas $200", user_id="U4af4980629"):
    return json.dumps({
        "destination": "Uxxxxxxxxxxxxxx",
        "events": [{
            "type": "message",
            "mode": "active",
            "timestamp": 1736944200000,
            "webhookEventId": "01HZZZZZZZZZZZZZZZZZZZZZZZ",
            "deliveryContext": {"isRedelivery": False},
            "replyToken": "reply-token-1",
            "source": {"type": "user", "userId": user_id},
            "message": {"type": "text", "id": "444573844083572737", "text": text, "quoteToken": "q1"},
        }],
    }).encode("utf-8")


def _line_signature(body: bytes) -> str:
    digest = hmac.new(b"line-secret", body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


class TestLine:

    def test_valid_signature_replies_with_reply_token(self, make_client, channel_settings, db_path):
        messaging_api = Mock()
        client = make_client(LineAdapter(channel_settings, messaging_api=messaging_api))
        body = _line_body()

        resp = client.post(
            "/webhook/line",
            data=body,
            headers={"X-Line-Signature": _line_signature(body)},
            content_type="application/json",
        )

        assert resp.status_code == 200
        request = messaging_api.reply_message.call_args[0][0]
        assert request.reply_token == "reply-token-1"
        lines = request.messages[0].text.splitlines()
        assert len(lines) == 3
        assert lines[0].startswith("✓ breakfast 20 TWD (Food, ")
        assert lines[2].startswith("✓ gas 200 TWD (Transport, ")
        assert [e.description for e in ExpenseRepository(db_path).list_by_user("U4af4980629", "line")] == [
            "breakfast", "lunch", "gas",
        ]

    def test_invalid_signature(self, make_client, channel_settings, db_path):
        messaging_api = Mock()
        client = make_client(LineAdapter(channel_settings, messaging_api=messaging_api))

        resp = client.post(
            "/webhook/line",
            data=_line_body(),
            headers={"X-Line-Signature": "bm90LWEtc2lnbmF0dXJl"},
            content_type="application/json",
        )

        assert resp.status_code == 401
        messaging_api.reply_message.assert_not_called()
        assert ExpenseRepository(db_path).list_by_user("U4af4980629", "line") == []

    def test_missing_signature(self, make_client, channel_settings):
        client = make_client(LineAdapter(channel_settings, messaging_api=Mock()))

        resp = client.post("/webhook/line", data=_line_body(), content_type="application/json")

        assert resp.status_code == 401


class TestTelegram:

    def _update(self, text="coffee $5"):
        return {
            "update_id": 1,
            "message": {
                "message_id": 7,
                "from": {"id": 99, "is_bot": False, "first_name": "A"},
                "chat": {"id": 555, "type": "private"},
                "text": text,
            },
        }

    def test_delivers_via_send_message(self, make_client, channel_settings, db_path, mocker):
        post = mocker.patch("requests.post", return_value=_ok_response())
        client = make_client(TelegramAdapter(channel_settings))

        resp = client.post(
            "/webhook/telegram",
            json=self._update(),
            headers={"X-Telegram-Bot-Api-Secret-Token": "tg-secret"},
        )

        assert resp.status_code == 200
        url = post.call_args[0][0]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert post.call_args.kwargs["json"]["chat_id"] == 555
        assert post.call_args.kwargs["json"]["text"].startswith("✓ coffee 5 TWD (Food, ")
        assert UserRepository(db_path).get("telegram_99", "telegram") is not None

    def test_wrong_secret_token(self, make_client, channel_settings, mocker):
        post = mocker.patch("requests.post")
        client = make_client(TelegramAdapter(channel_settings))

        resp = client.post(
            "/webhook/telegram",
            json=self._update(),
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
        )

        assert resp.status_code == 401
        post.assert_not_called()

    def test_update_without_text_is_acknowledged(self, make_client, channel_settings, mocker):
        post = mocker.patch("requests.post")
        client = make_client(TelegramAdapter(channel_settings))

        resp = client.post(
            "/webhook/telegram",
            json={"update_id": 2, "message": {"message_id": 8, "chat": {"id": 555}, "sticker": {}}},
            headers={"X-Telegram-Bot-Api-Secret-Token": "tg-secret"},
        )

        assert resp.status_code == 200
        post.assert_not_called()


class TestDiscord:

    TIMESTAMP = "1736944200"

    def _post(self, client, interaction, signing_key=DISCORD_SIGNING_KEY):
        body = json.dumps(interaction).encode("utf-8")
        signature = signing_key.sign(self.TIMESTAMP.encode("utf-8") + body).signature.hex()
        return client.post(
            "/webhook/discord",
            data=body,
            content_type="application/json",
            headers={"X-Signature-Ed25519": signature, "X-Signature-Timestamp": self.TIMESTAMP},
        )

    def test_ping_is_answered_with_pong(self, make_client, channel_settings):
        client = make_client(DiscordAdapter(channel_settings))

        resp = self._post(client, {"type": 1, "id": "1"})

        assert resp.get_json() == {"type": 1}

    def test_command_reply_in_response_body(self, make_client, channel_settings):
        client = make_client(DiscordAdapter(channel_settings))
        interaction = {
            "type": 2,
            "id": "interaction-1",
            "channel_id": "c1",
            "member": {"user": {"id": "80351110224678912"}},
            "data": {"name": "expense", "options": [{"name": "text", "type": 3, "value": "movie $9"}]},
        }

        resp = self._post(client, interaction)

        body = resp.get_json()
        assert body["type"] == 4
        assert body["data"]["content"].startswith("✓ movie 9 TWD (Entertainment, ")

    def test_missing_signature_headers(self, make_client, channel_settings):
        client = make_client(DiscordAdapter(channel_settings))

        resp = client.post("/webhook/discord", json={"type": 1})

        assert resp.status_code == 401

    def test_signature_from_another_key(self, make_client, channel_settings):
        client = make_client(DiscordAdapter(channel_settings))

        resp = self._post(client, {"type": 1, "id": "1"}, signing_key=SigningKey.generate())

        assert resp.status_code == 401

    def test_tampered_body(self, make_client, channel_settings, db_path):
        client = make_client(DiscordAdapter(channel_settings))
        signed = json.dumps({"type": 1, "id": "1"}).encode("utf-8")
        signature = DISCORD_SIGNING_KEY.sign(self.TIMESTAMP.encode("utf-8") + signed).signature.hex()
        interaction = {
            "type": 2,
            "id": "interaction-2",
            "member": {"user": {"id": "80351110224678912"}},
            "data": {"content": "movie $9"},
        }

        resp = client.post(
            "/webhook/discord",
            json=interaction,
            headers={"X-Signature-Ed25519": signature, "X-Signature-Timestamp": self.TIMESTAMP},
        )

        assert resp.status_code == 401
        assert ExpenseRepository(db_path).list_by_user("80351110224678912", "discord") == []

    def test_signature_that_is_not_hex(self, make_client, channel_settings):
        client = make_client(DiscordAdapter(channel_settings))

        resp = client.post(
            "/webhook/discord",
            json={"type": 1},
            headers={"X-Signature-Ed25519": "not-hex", "X-Signature-Timestamp": self.TIMESTAMP},
        )

        assert resp.status_code == 401


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _slack_headers(body: bytes, timestamp: int, secret: str = "slack-secret") -> dict:
    basestring = f"v0:{timestamp}:".encode("utf-8") + body
    signature = "v0=" + hmac.new(secret.encode("utf-8"), basestring, hashlib.sha256).hexdigest()
    return {"X-Slack-Request-Timestamp": str(timestamp), "X-Slack-Signature": signature}


class TestSlack:

    NOW = 1736944200

    def test_url_verification(self, make_client, channel_settings):
        client = make_client(SlackAdapter(channel_settings, clock=FixedClock(self.NOW)))
        body = json.dumps({"type": "url_verification", "challenge": "3eZbrw1aBm2rZgRNFdxV2595E9CY3gmdALWMmHkvFXO7tYXAYM8P"}).encode()

        resp = client.post("/webhook/slack", data=body, headers=_slack_headers(body, self.NOW), content_type="application/json")

        assert resp.get_json() == {"challenge": "3eZbrw1aBm2rZgRNFdxV2595E9CY3gmdALWMmHkvFXO7tYXAYM8P"}

    def test_event_is_posted_to_thread(self, make_client, channel_settings, mocker):
        post = mocker.patch("requests.post", return_value=_ok_response())
        client = make_client(SlackAdapter(channel_settings, clock=FixedClock(self.NOW)))
        body = json.dumps({
            "type": "event_callback",
            "event": {
                "type": "app_mention",
                "user": "U061F7AUR",
                "text": "<@U0LAN0Z89> taxi $250",
                "channel": "C0LAN2Q65",
                "thread_ts": "1736944100.000200",
            },
        }).encode()

        resp = client.post("/webhook/slack", data=body, headers=_slack_headers(body, self.NOW), content_type="application/json")

        assert resp.status_code == 200
        assert post.call_args[0][0] == "https://slack.com/api/chat.postMessage"
        payload = post.call_args.kwargs["json"]
        assert payload["channel"] == "C0LAN2Q65"
        assert payload["thread_ts"] == "1736944100.000200"
        assert payload["text"].startswith("✓ taxi 250 TWD (Transport, ")
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer xoxb-token"

    def test_bad_signature(self, make_client, channel_settings):
        client = make_client(SlackAdapter(channel_settings, clock=FixedClock(self.NOW)))
        body = b'{"type": "url_verification", "challenge": "x"}'

        resp = client.post(
            "/webhook/slack",
            data=body,
            headers=_slack_headers(body, self.NOW, secret="other-secret"),
            content_type="application/json",
        )

        assert resp.status_code == 401

    def test_stale_timestamp(self, make_client, channel_settings):
        client = make_client(SlackAdapter(channel_settings, clock=FixedClock(self.NOW)))
        body = b'{"type": "url_verification", "challenge": "x"}'

        resp = client.post(
            "/webhook/slack",
            data=body,
            headers=_slack_headers(body, self.NOW - 301),
            content_type="application/json",
        )

        assert resp.status_code == 401

    def test_bot_messages_are_ignored(self, make_client, channel_settings, mocker):
        post = mocker.patch("requests.post")
        client = make_client(SlackAdapter(channel_settings, clock=FixedClock(self.NOW)))
        body = json.dumps({
            "type": "event_callback",
            "event": {"type": "message", "bot_id": "B1", "text": "✓ taxi 250 TWD", "channel": "C1"},
        }).encode()

        resp = client.post("/webhook/slack", data=body, headers=_slack_headers(body, self.NOW), content_type="application/json")

        assert resp.status_code == 200
        post.assert_not_called()


class TestTeams:

    def _activity(self):
        return json.dumps({
            "type": "message",
            "id": "activity-1",
            "text": "bus $15",
            "from": {"id": "29:1abc", "name": "A"},
            "conversation": {"id": "a:conv-1"},
            "serviceUrl": "https://smba.trafficmanager.net/apac/",
        }).encode()

    def _authorization(self, body: bytes) -> str:
        digest = hmac.new(b"teams-password", body, hashlib.sha256).digest()
        return "HMAC " + base64.b64encode(digest).decode("utf-8")

    def test_reply_posted_with_bot_token(self, make_client, channel_settings, mocker):
        post = mocker.patch(
            "requests.post",
            side_effect=[_ok_response({"access_token": "bot-token", "expires_in": 3600}), _ok_response({"id": "r1"})],
        )
        client = make_client(TeamsAdapter(channel_settings))
        body = self._activity()

        resp = client.post(
            "/webhook/teams",
            data=body,
            headers={"Authorization": self._authorization(body)},
            content_type="application/json",
        )

        assert resp.status_code == 200
        token_call, reply_call = post.call_args_list
        assert token_call.kwargs["data"]["client_id"] == "teams-app"
        assert reply_call[0][0] == "https://smba.trafficmanager.net/apac/v3/conversations/a:conv-1/activities"
        assert reply_call.kwargs["json"]["replyToId"] == "activity-1"
        assert reply_call.kwargs["json"]["text"].startswith("✓ bus 15 TWD (Transport, ")
        assert reply_call.kwargs["headers"]["Authorization"] == "Bearer bot-token"

    def test_token_is_cached(self, channel_settings, mocker):
        post = mocker.patch("requests.post", return_value=_ok_response({"access_token": "bot-token", "expires_in": 3600}))
        adapter = TeamsAdapter(channel_settings)

        assert adapter.get_access_token() == "bot-token"
        assert adapter.get_access_token() == "bot-token"
        assert post.call_count == 1

    def test_invalid_hmac(self, make_client, channel_settings):
        client = make_client(TeamsAdapter(channel_settings))

        resp = client.post(
            "/webhook/teams",
            data=self._activity(),
            headers={"Authorization": "HMAC bm90LXZhbGlk"},
            content_type="application/json",
        )

        assert resp.status_code == 401


class TestWhatsApp:

    def _notification(self):
        return json.dumps({
            "object": "whatsapp_business_account",
            "entry": [{
                "id": "WABA",
                "changes": [{
                    "field": "messages",
                    "value": {
                        "messaging_product": "whatsapp",
                        "messages": [
                            {"from": "886912345678", "id": "wamid.1", "type": "text", "text": {"body": "午餐 120元"}},
                            {"from": "886912345678", "id": "wamid.2", "type": "image", "image": {"id": "m1"}},
                        ],
                    },
                }],
            }],
        }).encode()

    def _signature(self, body: bytes) -> str:
        return "sha256=" + hmac.new(b"wa-secret", body, hashlib.sha256).hexdigest()

    def test_subscription_verification(self, make_client, channel_settings):
        client = make_client(WhatsAppAdapter(channel_settings))

        resp = client.get(
            "/webhook/whatsapp",
            query_string={"hub.mode": "subscribe", "hub.verify_token": "wa-verify", "hub.challenge": "1158201444"},
        )

        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "1158201444"

    def test_subscription_with_wrong_token(self, make_client, channel_settings):
        client = make_client(WhatsAppAdapter(channel_settings))

        resp = client.get(
            "/webhook/whatsapp",
            query_string={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1158201444"},
        )

        assert resp.status_code == 401

    def test_text_message_is_answered(self, make_client, channel_settings, db_path, mocker):
        post = mocker.patch("requests.post", return_value=_ok_response({"messages": [{"id": "wamid.r"}]}))
        client = make_client(WhatsAppAdapter(channel_settings))
        body = self._notification()

        resp = client.post(
            "/webhook/whatsapp",
            data=body,
            headers={"X-Hub-Signature-256": self._signature(body)},
            content_type="application/json",
        )

        assert resp.status_code == 200
        assert post.call_count == 1
        assert post.call_args[0][0] == "https://graph.facebook.com/v18.0/10001/messages"
        payload = post.call_args.kwargs["json"]
        assert payload["to"] == "886912345678"
        assert payload["text"]["body"].startswith("✓ 午餐 120 TWD (Food, ")
        assert len(ExpenseRepository(db_path).list_by_user("886912345678", "whatsapp")) == 1

    def test_bad_signature(self, make_client, channel_settings, mocker):
        post = mocker.patch("requests.post")
        client = make_client(WhatsAppAdapter(channel_settings))

        resp = client.post(
            "/webhook/whatsapp",
            data=self._notification(),
            headers={"X-Hub-Signature-256": "sha256=00"},
            content_type="application/json",
        )

        assert resp.status_code == 401
        post.assert_not_called()


class TestDeliveryFailure:

    def test_outbound_error_is_logged_not_raised(self, make_client, channel_settings, mocker):
        failing = Mock()
        failing.status_code = 502
        failing.text = "Bad Gateway"
        mocker.patch("requests.post", return_value=failing)
        client = make_client(TelegramAdapter(channel_settings))

        resp = client.post(
            "/webhook/telegram",
            json={"update_id": 3, "message": {"message_id": 9, "from": {"id": 1}, "chat": {"id": 2}, "text": "tea $3"}},
            headers={"X-Telegram-Bot-Api-Secret-Token": "tg-secret"},
        )

        assert resp.status_code == 200
