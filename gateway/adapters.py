# gateway/adapters.py
"""
Provider adapters: one per backend.

Each adapter turns a GenerationRequest into exactly one HTTPS POST and
maps the outcome onto Success / RetryableFailure / FatalFailure. Adapters
never retry and never raise for provider-side failures; retry policy is
the gateway's job.

    429, 5xx              -> RetryableFailure(QUOTA_OR_SERVER_ERROR)
    other 4xx             -> FatalFailure(CLIENT_ERROR)
    2xx, blocked in-band  -> FatalFailure(CONTENT_BLOCKED)
    2xx, no content       -> RetryableFailure(EMPTY_RESPONSE)
    deadline exceeded     -> RetryableFailure(TIMEOUT)
    connection or decoding problems -> RetryableFailure(NETWORK_ERROR)
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from core import settings
from core.http_client import get_client
from gateway.types import (
    Credential,
    FailureReason,
    FatalFailure,
    GenerationRequest,
    Provider,
    ProviderAttemptResult,
    RetryableFailure,
    Success,
)

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = (
    "Respond only with a single JSON value, without prose or markdown fences, "
    "that matches this JSON schema: {schema}"
)

# Gemini finish reasons that mean the output was withheld by policy
GEMINI_BLOCKED_FINISH_REASONS = {"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the provider's error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
    return response.reason_phrase


def _root_type(contract: Optional[Dict[str, Any]]) -> Optional[str]:
    if not contract:
        return None
    value = contract.get("type")
    return str(value).lower() if value else None


# ----------------------------------------------------------------------
# Base adapter
# ----------------------------------------------------------------------
class ProviderAdapter(ABC):
    """
    Abstract adapter. Subclasses describe the wire format; the base class
    owns transport, deadline enforcement and HTTP status classification.
    """

    provider: Provider

    def __init__(self, model: str, client: Optional[httpx.AsyncClient] = None):
        self.model = model
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_client()

    @abstractmethod
    def build_url(self) -> str:
        ...

    def build_auth(self, credential: Credential) -> Dict[str, Dict[str, str]]:
        """Return {"headers": {...}, "params": {...}} carrying the credential."""
        return {"headers": {}, "params": {}}

    @abstractmethod
    def build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        ...

    @abstractmethod
    def parse_body(self, body: Dict[str, Any]) -> ProviderAttemptResult:
        """Map a 2xx JSON envelope to an attempt result."""
        ...

    async def invoke(
        self,
        credential: Credential,
        request: GenerationRequest,
        timeout: Optional[float] = None,
    ) -> ProviderAttemptResult:
        """
        Perform one attempt with `credential`. `timeout` is in seconds and
        defaults to the request's own per-attempt timeout.
        """
        timeout = request.timeout_seconds if timeout is None else timeout
        auth = self.build_auth(credential)

        try:
            response = await asyncio.wait_for(
                self.client.post(
                    self.build_url(),
                    json=self.build_payload(request),
                    headers=auth["headers"],
                    params=auth["params"],
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return RetryableFailure(FailureReason.TIMEOUT, f"no response within {timeout:.1f}s")
        except httpx.RequestError as e:
            # connection failures plus undecodable bodies (DecodingError)
            return RetryableFailure(FailureReason.NETWORK_ERROR, f"{type(e).__name__}: {e}")

        result = self.classify(response)
        if not isinstance(result, Success):
            logger.debug(
                "Provider attempt failed",
                extra={
                    "provider": self.provider.value,
                    "status": response.status_code,
                    "reason": result.reason.value,
                    "credential_rank": credential.rank,
                },
            )
        return result

    def classify(self, response: httpx.Response) -> ProviderAttemptResult:
        status = response.status_code

        if status == 429 or status >= 500:
            return RetryableFailure(
                FailureReason.QUOTA_OR_SERVER_ERROR,
                f"HTTP {status}: {_error_message(response)}",
            )
        if not 200 <= status < 300:
            return FatalFailure(
                FailureReason.CLIENT_ERROR,
                f"HTTP {status}: {_error_message(response)}",
            )

        try:
            body = response.json()
        except ValueError:
            return RetryableFailure(FailureReason.EMPTY_RESPONSE, "response envelope is not JSON")
        if not isinstance(body, dict):
            return RetryableFailure(FailureReason.EMPTY_RESPONSE, "unexpected response envelope")

        return self.parse_body(body)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


# ----------------------------------------------------------------------
# OpenAI
# ----------------------------------------------------------------------
class OpenAIAdapter(ProviderAdapter):
    provider = Provider.OPENAI

    def __init__(self, model: str = settings.OPENAI_MODEL, client=None, url: str = settings.OPENAI_API_URL):
        super().__init__(model, client)
        self.url = url

    def build_url(self) -> str:
        return self.url

    def build_auth(self, credential):
        return {"headers": {"Authorization": f"Bearer {credential.key}"}, "params": {}}

    def build_payload(self, request):
        messages = []
        payload: Dict[str, Any] = {"model": self.model}

        if request.contract:
            messages.append({
                "role": "system",
                "content": JSON_INSTRUCTION.format(schema=json.dumps(request.contract)),
            })
            # json_object mode always yields an object; array contracts rely on the instruction
            if _root_type(request.contract) in (None, "object"):
                payload["response_format"] = {"type": "json_object"}

        messages.append({"role": "user", "content": request.prompt})
        payload["messages"] = messages
        return payload

    def parse_body(self, body):
        choices = body.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return RetryableFailure(FailureReason.EMPTY_RESPONSE, "no choices in response")

        choice = choices[0]
        message = choice.get("message") or {}
        if choice.get("finish_reason") == "content_filter":
            return FatalFailure(FailureReason.CONTENT_BLOCKED, "completion withheld by content filter")
        if message.get("refusal"):
            return FatalFailure(FailureReason.CONTENT_BLOCKED, str(message["refusal"]))

        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            return RetryableFailure(FailureReason.EMPTY_RESPONSE, "completion has no content")
        return Success(content)


# ----------------------------------------------------------------------
# Gemini
# ----------------------------------------------------------------------
class GeminiAdapter(ProviderAdapter):
    provider = Provider.GEMINI

    def __init__(self, model: str = settings.GEMINI_MODEL, client=None, base_url: str = settings.GEMINI_API_BASE):
        super().__init__(model, client)
        self.base_url = base_url.rstrip("/")

    def build_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_auth(self, credential):
        # key-in-query authentication
        return {"headers": {}, "params": {"key": credential.key}}

    def build_payload(self, request):
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
        }
        if request.contract:
            payload["generationConfig"] = {
                "response_mime_type": "application/json",
                "response_schema": request.contract,
            }
        return payload

    def parse_body(self, body):
        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            return FatalFailure(FailureReason.CONTENT_BLOCKED, f"prompt blocked: {feedback['blockReason']}")

        candidates = body.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return RetryableFailure(FailureReason.EMPTY_RESPONSE, "no candidates in response")

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in GEMINI_BLOCKED_FINISH_REASONS:
            return FatalFailure(FailureReason.CONTENT_BLOCKED, f"candidate blocked: {finish_reason}")

        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            return RetryableFailure(FailureReason.EMPTY_RESPONSE, "candidate has no text")
        return Success(text)


ADAPTER_CLASSES = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.GEMINI: GeminiAdapter,
}


def build_adapters(client: Optional[httpx.AsyncClient] = None) -> Dict[Provider, ProviderAdapter]:
    """Default adapter set, one per supported provider."""
    return {provider: cls(client=client) for provider, cls in ADAPTER_CLASSES.items()}
