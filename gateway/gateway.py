# gateway/gateway.py
"""
Generation gateway: provider x credential traversal with one shared
classify step.

For each provider in the pool's priority order, every credential of that
provider is tried at most once, starting at the pool's rotation cursor:

    Success + valid output   -> return immediately (first success wins)
    Success + invalid output -> treated as RetryableFailure(MALFORMED_OUTPUT)
    RetryableFailure         -> advance cursor, try next credential/provider
    FatalFailure             -> abort the whole call, cursor untouched

Attempts are made one at a time; trying providers in parallel would burn
quota on providers that turn out not to be needed.
"""
import logging
import time
from typing import Any, Dict, Mapping, Optional

from core.exceptions import AllProvidersExhausted, FatalGenerationError, NoCredentialsConfigured
from core.metrics import record_attempt, record_request, record_rotation
from core.request_context import get_request_id
from gateway.adapters import ProviderAdapter
from gateway.credential_pool import CredentialPool
from gateway.types import (
    FailureReason,
    FatalFailure,
    GenerationRequest,
    GenerationResult,
    Provider,
    RetryableFailure,
    Success,
)
from gateway.validator import ResponseValidator

logger = logging.getLogger(__name__)


class GenerationGateway:
    """
    Args:
        pool: the caller's credential pool; its cursors are mutated in place.
        adapters: provider -> adapter. Providers in the pool without an
                  adapter are skipped.
        validator: output validator (default ResponseValidator()).
    """

    def __init__(
        self,
        pool: CredentialPool,
        adapters: Mapping[Provider, ProviderAdapter],
        validator: Optional[ResponseValidator] = None,
    ):
        self.pool = pool
        self.adapters: Dict[Provider, ProviderAdapter] = dict(adapters)
        self.validator = validator or ResponseValidator()

    async def generate(
        self,
        prompt: str,
        contract: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> GenerationResult:
        """Build a GenerationRequest and run it. See generate_request()."""
        if timeout_ms is None:
            request = GenerationRequest(prompt=prompt, contract=contract)
        else:
            request = GenerationRequest(prompt=prompt, contract=contract, timeout_ms=timeout_ms)
        return await self.generate_request(request)

    async def generate_request(self, request: GenerationRequest) -> GenerationResult:
        """
        Returns the first validated success.

        Raises:
            NoCredentialsConfigured: no provider has a usable credential.
            FatalGenerationError: a provider rejected the request itself.
            AllProvidersExhausted: every credential failed retryably.
        """
        request_id = get_request_id()
        start = time.monotonic()

        providers = [p for p in self.pool.list_providers() if p in self.adapters]
        if not providers:
            record_request(provider="none", status="no_credentials", attempts=0, duration_sec=0.0)
            logger.error("No usable credentials for any provider", extra={"request_id": request_id})
            raise NoCredentialsConfigured()

        attempts = 0
        last_failure: Optional[RetryableFailure] = None

        for provider in providers:
            adapter = self.adapters[provider]

            # Each credential at most once per call
            for _ in range(self.pool.size(provider)):
                credential = self.pool.next_credential(provider)
                attempts += 1

                attempt_start = time.monotonic()
                outcome = await adapter.invoke(credential, request, request.timeout_seconds)
                attempt_latency = time.monotonic() - attempt_start

                if isinstance(outcome, Success):
                    data, ok = self.validator.validate(outcome.raw_text, request.contract)
                    if ok:
                        record_attempt(provider.value, attempt_latency)
                        duration = time.monotonic() - start
                        record_request(provider.value, "success", attempts, duration)
                        logger.info(
                            "Generation succeeded",
                            extra={
                                "request_id": request_id,
                                "provider": provider.value,
                                "credential_rank": credential.rank,
                                "attempts": attempts,
                                "latency_sec": round(duration, 3),
                            },
                        )
                        return GenerationResult(data=data, source=provider, attempts=attempts)
                    outcome = RetryableFailure(
                        FailureReason.MALFORMED_OUTPUT,
                        f"{provider.value} returned output that does not match the contract",
                    )

                record_attempt(provider.value, attempt_latency, reason=outcome.reason.value)

                if isinstance(outcome, FatalFailure):
                    record_request(provider.value, "fatal", attempts, time.monotonic() - start)
                    logger.error(
                        "Provider rejected request, aborting",
                        extra={
                            "request_id": request_id,
                            "provider": provider.value,
                            "credential_rank": credential.rank,
                            "reason": outcome.reason.value,
                            "detail": outcome.detail,
                            "attempts": attempts,
                        },
                    )
                    raise FatalGenerationError(
                        reason=outcome.reason.value,
                        detail=outcome.detail,
                        provider=provider.value,
                        attempts=attempts,
                    )

                last_failure = outcome
                cursor = self.pool.advance(provider)
                record_rotation(provider.value)
                logger.warning(
                    "Attempt failed, rotating credential",
                    extra={
                        "request_id": request_id,
                        "provider": provider.value,
                        "credential_rank": credential.rank,
                        "reason": outcome.reason.value,
                        "detail": outcome.detail,
                        "next_cursor": cursor,
                        "attempts": attempts,
                    },
                )

            logger.warning(
                "All credentials for provider failed, trying next provider",
                extra={"request_id": request_id, "provider": provider.value},
            )

        record_request("none", "exhausted", attempts, time.monotonic() - start)
        reason = last_failure.reason.value if last_failure else None
        detail = last_failure.detail if last_failure else ""
        logger.error(
            "All providers exhausted",
            extra={"request_id": request_id, "attempts": attempts, "reason": reason, "detail": detail},
        )
        raise AllProvidersExhausted(reason=reason, detail=detail, attempts=attempts)
