# -*- coding: utf-8 -*-
"""
Environment configuration module
Loads and validates environment variables.

Channel credentials are only required for channels listed in
ENABLED_MESSENGERS (default: terminal only).
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from aiexpense.errors import ConfigError
from aiexpense.types import Source

# Load .env file (for local development)
load_dotenv()

DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash-lite",
    "openai": "gpt-4o-mini",
}

# Credentials each channel needs when enabled
CHANNEL_CREDENTIALS = {
    "terminal": (),
    "line": ("LINE_CHANNEL_ACCESS_TOKEN", "LINE_CHANNEL_SECRET"),
    "telegram": ("TELEGRAM_BOT_TOKEN",),
    "discord": ("DISCORD_BOT_TOKEN", "DISCORD_PUBLIC_KEY"),
    "slack": ("SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET"),
    "teams": ("TEAMS_APP_ID", "TEAMS_APP_PASSWORD"),
    "whatsapp": ("WHATSAPP_PHONE_NUMBER_ID", "WHATSAPP_ACCESS_TOKEN", "WHATSAPP_APP_SECRET"),
}


def _parse_enabled(raw: Optional[str]) -> list[str]:
    if not raw or not raw.strip():
        return ["terminal"]
    names = []
    for part in raw.split(","):
        name = part.strip().lower()
        if name and name not in names:
            names.append(name)
    return names


@dataclass
class Settings:
    enabled_messengers: list[str] = field(default_factory=lambda: ["terminal"])
    database_path: str = "./aiexpense.db"

    # AI
    ai_provider: str = "gemini"
    ai_model: str = DEFAULT_MODELS["gemini"]
    ai_api_key: str = ""
    ai_timeout: float = 5.0

    home_currency: str = "TWD"
    # Query FinMind for rates; backup table only when off
    exchange_rate_live: bool = True

    # Parse cache (Redis when REDIS_URL is set, in-process otherwise)
    redis_url: str = ""
    parse_cache_ttl: int = 86400

    log_level: str = "INFO"

    # Channel credentials, keyed by environment variable name
    credentials: dict = field(default_factory=dict)

    def is_enabled(self, channel: str) -> bool:
        return channel in self.enabled_messengers

    def credential(self, name: str, default: str = "") -> str:
        return self.credentials.get(name) or default

    def validate(self) -> None:
        unknown = [name for name in self.enabled_messengers if name not in CHANNEL_CREDENTIALS]
        if unknown:
            raise ConfigError(f"Unknown messengers in ENABLED_MESSENGERS: {', '.join(unknown)}")

        missing_vars = []
        for channel in self.enabled_messengers:
            for var_name in CHANNEL_CREDENTIALS[channel]:
                if not self.credentials.get(var_name):
                    missing_vars.append(var_name)

        if missing_vars:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing_vars)}")

        if self.ai_provider not in DEFAULT_MODELS:
            raise ConfigError(f"Unsupported AI_PROVIDER: {self.ai_provider}")

        if self.ai_timeout <= 0:
            raise ConfigError("AI_TIMEOUT must be positive")

    @property
    def sources(self) -> list[Source]:
        return [Source.from_string(name) for name in self.enabled_messengers]


def load_settings(environ: Optional[dict] = None, validate: bool = True) -> Settings:
    """
    Build Settings from the process environment (or a provided mapping).

    Raises:
        ConfigError: an enabled channel is missing credentials
    """
    env = os.environ if environ is None else environ

    provider = env.get("AI_PROVIDER", "gemini").strip().lower()
    if provider == "openai":
        api_key = env.get("OPENAI_API_KEY", "")
    else:
        api_key = env.get("GEMINI_API_KEY", "")

    credential_names = {name for names in CHANNEL_CREDENTIALS.values() for name in names}
    credential_names.update({"TELEGRAM_SECRET_TOKEN", "WHATSAPP_VERIFY_TOKEN"})

    try:
        ai_timeout = float(env.get("AI_TIMEOUT", "5"))
        parse_cache_ttl = int(env.get("PARSE_CACHE_TTL", "86400"))
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}")

    settings = Settings(
        enabled_messengers=_parse_enabled(env.get("ENABLED_MESSENGERS")),
        database_path=env.get("DATABASE_PATH", "./aiexpense.db"),
        ai_provider=provider,
        ai_model=env.get("AI_MODEL") or DEFAULT_MODELS.get(provider, ""),
        ai_api_key=api_key,
        ai_timeout=ai_timeout,
        home_currency=env.get("HOME_CURRENCY", "TWD").upper(),
        exchange_rate_live=env.get("EXCHANGE_RATE_LIVE", "true").strip().lower() not in ("0", "false", "no", "off"),
        redis_url=env.get("REDIS_URL", ""),
        parse_cache_ttl=parse_cache_ttl,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        credentials={name: env.get(name, "") for name in credential_names},
    )

    if validate:
        settings.validate()
    return settings
