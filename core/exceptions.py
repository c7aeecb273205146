# core/exceptions.py
"""
Centralized exception definitions for the generation gateway.

Only terminal outcomes are raised to callers. Retryable provider failures
are handled inside the gateway (they cause credential rotation) and never
surface individually.
"""

from typing import Optional


# ============================================================
# Base Exceptions
# ============================================================

class GatewayError(Exception):
    """
    Root base exception for the gateway.
    All custom exceptions should inherit from this.
    """

    reason: Optional[str] = None
    attempts: int = 0


class InvalidRequestError(GatewayError):
    """
    Raised when a generation request is malformed (empty prompt,
    non-positive timeout). Never reaches a provider.
    """
    pass


# ============================================================
# Credential / Provider Outcomes
# ============================================================

class NoCredentialsConfigured(GatewayError):
    """
    Raised when the caller has no usable credential for any provider,
    or a provider with an empty key list is asked for a credential.
    Raised before any network call.
    """

    reason = "no_credentials_configured"

    def __init__(self, message: str = "no credentials configured for any provider"):
        super().__init__(message)


class FatalGenerationError(GatewayError):
    """
    A provider rejected the request itself (bad request, auth rejected,
    safety block). The whole call is aborted; no other credential or
    provider is tried.
    """

    def __init__(self, reason: str, detail: str, provider: str, attempts: int):
        self.reason = reason
        self.detail = detail
        self.provider = provider
        self.attempts = attempts
        super().__init__(f"{provider} rejected the request ({reason}): {detail}")


class AllProvidersExhausted(GatewayError):
    """
    Every credential across every provider was tried and all of them
    failed retryably. Carries the last concrete reason for diagnostics.
    """

    def __init__(self, reason: Optional[str], detail: str, attempts: int):
        self.reason = reason
        self.detail = detail
        self.attempts = attempts
        super().__init__(f"all providers exhausted; last error: {detail or reason}")
