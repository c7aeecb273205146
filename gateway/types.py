# gateway/types.py
"""
Value types shared by the pool, the adapters and the gateway.

ProviderAttemptResult is a tagged union of three frozen dataclasses:
Success, RetryableFailure and FatalFailure. Callers dispatch with
isinstance(); `retryable` is provided for the common branch.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from core import settings
from core.exceptions import InvalidRequestError


class Provider(str, Enum):
    """Supported generation backends."""
    OPENAI = "openai"
    GEMINI = "gemini"


class FailureReason(str, Enum):
    # Retryable
    TIMEOUT = "timeout"
    QUOTA_OR_SERVER_ERROR = "quota_or_server_error"
    EMPTY_RESPONSE = "empty_response"
    MALFORMED_OUTPUT = "malformed_output"
    NETWORK_ERROR = "network_error"
    # Fatal
    CLIENT_ERROR = "client_error"
    CONTENT_BLOCKED = "content_blocked"


@dataclass(frozen=True)
class Credential:
    provider: Provider
    key: str = field(repr=False)
    rank: int = 0

    def __repr__(self) -> str:
        masked = "***" if len(self.key) <= 4 else f"***{self.key[-4:]}"
        return f"Credential(provider={self.provider.value!r}, rank={self.rank}, key='{masked}')"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    contract: Optional[Dict[str, Any]] = None
    timeout_ms: int = settings.DEFAULT_TIMEOUT_MS

    def __post_init__(self):
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise InvalidRequestError("prompt is required")
        if self.timeout_ms is None or self.timeout_ms <= 0:
            raise InvalidRequestError("timeout_ms must be positive")
        if self.contract is not None and not isinstance(self.contract, dict):
            raise InvalidRequestError("contract must be a mapping")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


# ----------------------------------------------------------------------
# Attempt outcomes
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    raw_text: str
    retryable = False


@dataclass(frozen=True)
class RetryableFailure:
    reason: FailureReason
    detail: str = ""
    retryable = True


@dataclass(frozen=True)
class FatalFailure:
    reason: FailureReason
    detail: str = ""
    retryable = False


ProviderAttemptResult = Union[Success, RetryableFailure, FatalFailure]


@dataclass(frozen=True)
class GenerationResult:
    """Validated output of a generate() call."""
    data: Any
    source: Provider
    attempts: int
