# api/app.py
# NOTE:
# This is a thin route layer over the generation gateway. It owns one
# CredentialPool per caller (keyed by the X-User-Id header) so the rotation
# cursor persists across requests for that caller, and maps gateway errors
# to HTTP statuses. Authentication and settings storage live elsewhere.

import json
import logging
import threading
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request, Response
from pydantic import BaseModel, Field, field_validator
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from core import settings
from core.exceptions import (
    AllProvidersExhausted,
    FatalGenerationError,
    GatewayError,
    InvalidRequestError,
    NoCredentialsConfigured,
)
from core.http_client import close_client
from core.logging_config import setup_logging
from core.request_context import set_request_id
from gateway.adapters import build_adapters
from gateway.credential_pool import CredentialPool
from gateway.gateway import GenerationGateway
from gateway.types import FailureReason, Provider

logger = logging.getLogger(__name__)


def default_credentials() -> Dict[Provider, list]:
    """Keys every new caller pool starts with."""
    keys: Dict[Provider, list] = {}
    if settings.OPENAI_API_KEY:
        keys[Provider.OPENAI] = [settings.OPENAI_API_KEY]
    if settings.GEMINI_API_KEYS:
        keys[Provider.GEMINI] = list(settings.GEMINI_API_KEYS)
    return keys


class CallerPools:
    """
    In-memory CredentialPool per caller, created on first use.
    At most `max_size` pools are kept; the least recently used one is
    dropped (and its rotation cursor forgotten) when the limit is hit.
    """

    def __init__(self, factory=None, max_size: Optional[int] = None):
        self._factory = factory or (lambda caller_id: CredentialPool(default_credentials()))
        self._max_size = max(1, max_size or settings.MAX_CALLER_POOLS)
        self._pools: "OrderedDict[str, CredentialPool]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, caller_id: str) -> CredentialPool:
        with self._lock:
            pool = self._pools.get(caller_id)
            if pool is not None:
                self._pools.move_to_end(caller_id)
                return pool

            pool = self._factory(caller_id)
            self._pools[caller_id] = pool
            if len(self._pools) > self._max_size:
                evicted, _ = self._pools.popitem(last=False)
                logger.debug("Caller pool evicted", extra={"caller": evicted})
            return pool

    def discard(self, caller_id: str) -> None:
        """Forget a caller's pool, e.g. when its session ends."""
        with self._lock:
            self._pools.pop(caller_id, None)

    def __contains__(self, caller_id: str) -> bool:
        return caller_id in self._pools

    def __len__(self) -> int:
        return len(self._pools)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: configure structured JSON logging
    setup_logging()

    app.state.adapters = build_adapters()
    app.state.pools = CallerPools()
    logger.info(
        "Gateway started",
        extra={"providers": [p.value for p in app.state.adapters], "priority": settings.PROVIDER_PRIORITY},
    )

    yield

    # Shared httpx client is bound to this loop
    await close_client()


app = FastAPI(
    title="Generation Gateway",
    lifespan=lifespan
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Propagate or generate a request ID and store it in the context."""
    request_id = set_request_id(request.headers.get("X-Request-ID") or str(uuid.uuid4()))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


class GenerateRequest(BaseModel):
    prompt: str
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    timeout_ms: Optional[int] = Field(default=None, gt=0)

    @field_validator("prompt")
    @classmethod
    def prompt_must_not_be_blank(cls, v):
        if not v.strip():
            raise ValueError("prompt is required")
        return v


def _error_response(status_code: int, exc: GatewayError) -> Response:
    body = {
        "message": str(exc),
        "reason": exc.reason,
        "attempts": exc.attempts,
    }
    return Response(
        content=json.dumps(body),
        status_code=status_code,
        media_type="application/json"
    )


def status_for(exc: GatewayError) -> int:
    """HTTP status for a gateway error."""
    if isinstance(exc, (NoCredentialsConfigured, InvalidRequestError)):
        return 400
    if isinstance(exc, FatalGenerationError):
        return 422 if exc.reason == FailureReason.CONTENT_BLOCKED.value else 502
    if isinstance(exc, AllProvidersExhausted):
        return 503
    return 500


@app.post("/api/generate")
async def generate(
    req: GenerateRequest,
    request: Request,
    x_user_id: str = Header(default="anonymous"),
):
    """
    Generate content through the caller's credential pool.
    Returns {"data", "apiSource", "attempts"} on success.
    """
    pool = request.app.state.pools.get(x_user_id)
    gateway = GenerationGateway(pool, request.app.state.adapters)

    try:
        result = await gateway.generate(req.prompt, contract=req.schema_, timeout_ms=req.timeout_ms)
    except GatewayError as e:
        logger.warning(
            "Generation failed",
            extra={"caller": x_user_id, "reason": e.reason, "attempts": e.attempts},
        )
        return _error_response(status_for(e), e)

    return {"data": result.data, "apiSource": result.source.value, "attempts": result.attempts}


@app.get("/health")
async def health(request: Request):
    """Configured providers and number of live caller pools."""
    configured = [p.value for p in default_credentials()]
    return {
        "status": "ok" if configured else "degraded",
        "providers": configured,
        "caller_pools": len(request.app.state.pools),
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
