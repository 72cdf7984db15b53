# -*- coding: utf-8 -*-
"""
Exception hierarchy shared across the gateway, stores, AI backend and channels.
"""

from typing import Optional


class AIExpenseError(Exception):
    """Base class for all application errors."""


class ConfigError(AIExpenseError, ValueError):
    """Missing or invalid environment configuration."""


class PersistenceError(AIExpenseError):
    """A single store operation failed."""


class DuplicateKeyError(PersistenceError):
    """Insert rejected by a uniqueness constraint."""


class StoreUnavailableError(AIExpenseError):
    """The database cannot be reached at all."""


class SignupError(AIExpenseError):
    """User provisioning failed for a reason other than the user already existing."""


class AIBackendError(AIExpenseError):
    """The AI backend did not produce usable output."""

    reason = "ai_error"


class AITimeoutError(AIBackendError):
    reason = "timeout"


class AIRateLimitError(AIBackendError):
    reason = "rate_limited"


class AIEmptyOutputError(AIBackendError):
    reason = "empty_output"


class AIMalformedOutputError(AIBackendError):
    reason = "malformed_output"


class InvalidSignatureError(AIExpenseError):
    """Webhook authenticity check failed."""


class MalformedPayloadError(AIExpenseError):
    """Webhook body could not be decoded."""


class DeliveryError(AIExpenseError):
    """Outbound reply to a platform failed."""

    def __init__(self, channel: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{channel} delivery failed: {message}")
        self.channel = channel
        self.status_code = status_code
