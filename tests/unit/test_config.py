# -*- coding: utf-8 -*-
"""Environment configuration."""

import pytest

from aiexpense.config import load_settings
from aiexpense.errors import ConfigError
from aiexpense.types import Source


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings({})

        assert settings.enabled_messengers == ["terminal"]
        assert settings.ai_provider == "gemini"
        assert settings.ai_model == "gemini-2.5-flash-lite"
        assert settings.ai_timeout == 5.0
        assert settings.home_currency == "TWD"
        assert settings.parse_cache_ttl == 86400
        assert settings.exchange_rate_live is True
        assert settings.sources == [Source.TERMINAL]

    def test_enabled_messengers_are_normalized(self):
        settings = load_settings(
            {
                "ENABLED_MESSENGERS": " Terminal, telegram ,terminal",
                "TELEGRAM_BOT_TOKEN": "123:abc",
            }
        )

        assert settings.enabled_messengers == ["terminal", "telegram"]
        assert settings.credential("TELEGRAM_BOT_TOKEN") == "123:abc"

    def test_missing_credentials_are_all_listed(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings({"ENABLED_MESSENGERS": "line,slack", "SLACK_BOT_TOKEN": "xoxb-1"})

        message = str(exc_info.value)
        assert "LINE_CHANNEL_ACCESS_TOKEN" in message
        assert "LINE_CHANNEL_SECRET" in message
        assert "SLACK_SIGNING_SECRET" in message
        assert "SLACK_BOT_TOKEN" not in message

    def test_discord_needs_its_public_key(self):
        with pytest.raises(ConfigError, match="DISCORD_PUBLIC_KEY"):
            load_settings({"ENABLED_MESSENGERS": "discord", "DISCORD_BOT_TOKEN": "token"})

    @pytest.mark.parametrize("raw", ["false", "0", "off", " No "])
    def test_live_exchange_rates_can_be_turned_off(self, raw):
        assert load_settings({"EXCHANGE_RATE_LIVE": raw}).exchange_rate_live is False

    def test_unknown_messenger(self):
        with pytest.raises(ConfigError, match="fax"):
            load_settings({"ENABLED_MESSENGERS": "terminal,fax"})

    def test_openai_provider_uses_openai_key(self):
        settings = load_settings({"AI_PROVIDER": "openai", "OPENAI_API_KEY": "sk-1", "GEMINI_API_KEY": "g-1"})

        assert settings.ai_api_key == "sk-1"
        assert settings.ai_model == "gpt-4o-mini"

    def test_invalid_timeout(self):
        with pytest.raises(ConfigError):
            load_settings({"AI_TIMEOUT": "soon"})

        with pytest.raises(ConfigError):
            load_settings({"AI_TIMEOUT": "0"})

    def test_validation_can_be_skipped(self):
        settings = load_settings({"ENABLED_MESSENGERS": "line"}, validate=False)

        assert settings.is_enabled("line")
