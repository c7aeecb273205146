# gateway/credential_pool.py
"""
Per-caller credential pool with a persisted rotation cursor.

One pool is created per caller/session and handed to the gateway on each
call. The cursor for a provider only moves through advance(), which the
gateway calls exactly once per retryable failure, so a key that just hit
its quota is not the first one tried on the next call.
"""
import logging
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from core import settings
from core.exceptions import NoCredentialsConfigured
from gateway.types import Credential, Provider

logger = logging.getLogger(__name__)


def _coerce_provider(value: Union[str, Provider]) -> Provider:
    return value if isinstance(value, Provider) else Provider(str(value).strip().lower())


def _known_providers(names: Iterable[Union[str, Provider]]) -> List[Provider]:
    """Coerce a priority list, skipping names no adapter exists for."""
    order: List[Provider] = []
    for name in names:
        try:
            provider = _coerce_provider(name)
        except ValueError:
            logger.warning("Ignoring unknown provider in priority list", extra={"provider": str(name)})
            continue
        if provider not in order:
            order.append(provider)
    return order


class CredentialPool:
    """
    Ordered per-provider key lists plus one rotation cursor per provider.

    Args:
        keys: mapping of provider -> ordered keys (list order is priority).
              Blank keys are dropped.
        priority: provider order used by list_providers(). Providers not
                  named here are appended in the order they were given.
    """

    def __init__(
        self,
        keys: Mapping[Union[str, Provider], Iterable[str]],
        priority: Optional[Sequence[Union[str, Provider]]] = None,
    ):
        self._credentials: Dict[Provider, List[Credential]] = {}
        for raw_provider, raw_keys in keys.items():
            provider = _coerce_provider(raw_provider)
            usable = [k.strip() for k in raw_keys if isinstance(k, str) and k.strip()]
            self._credentials[provider] = [
                Credential(provider=provider, key=k, rank=i) for i, k in enumerate(usable)
            ]

        order = _known_providers(priority or settings.PROVIDER_PRIORITY)
        for provider in self._credentials:
            if provider not in order:
                order.append(provider)
        self._priority: List[Provider] = order

        self._cursors: Dict[Provider, int] = {p: 0 for p in self._credentials}
        # Guards cursor mutation only; never held across a network call
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, user_settings: Mapping[str, object], priority=None) -> "CredentialPool":
        """
        Build a pool from a stored settings document such as
        {"openai": "sk-...", "gemini": ["k1", "k2"]}. A single string is
        treated as a one-key list; unknown providers and values that are
        neither a string nor a list of strings are ignored.
        """
        keys: Dict[Provider, List[str]] = {}
        for provider in Provider:
            value = user_settings.get(provider.value)
            if isinstance(value, str):
                keys[provider] = [value]
            elif isinstance(value, (list, tuple)):
                keys[provider] = list(value)
        return cls(keys, priority=priority)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def list_providers(self) -> List[Provider]:
        """Providers with at least one usable credential, in priority order."""
        return [p for p in self._priority if self._credentials.get(p)]

    def size(self, provider: Union[str, Provider]) -> int:
        return len(self._credentials.get(_coerce_provider(provider), ()))

    def total(self) -> int:
        """Total number of usable credentials across all providers."""
        return sum(len(creds) for creds in self._credentials.values())

    def cursor(self, provider: Union[str, Provider]) -> int:
        with self._lock:
            return self._cursors.get(_coerce_provider(provider), 0)

    def next_credential(self, provider: Union[str, Provider]) -> Credential:
        """Credential at the current cursor. Does not advance."""
        provider = _coerce_provider(provider)
        creds = self._credentials.get(provider)
        if not creds:
            raise NoCredentialsConfigured(f"no credentials configured for provider {provider.value}")
        with self._lock:
            return creds[self._cursors[provider]]

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def advance(self, provider: Union[str, Provider]) -> int:
        """
        Move the provider's cursor to the next credential, wrapping at the
        end of the list. Returns the new cursor position.
        """
        provider = _coerce_provider(provider)
        creds = self._credentials.get(provider)
        if not creds:
            raise NoCredentialsConfigured(f"no credentials configured for provider {provider.value}")
        with self._lock:
            new_cursor = (self._cursors[provider] + 1) % len(creds)
            self._cursors[provider] = new_cursor
        logger.debug(
            "Credential cursor advanced",
            extra={"provider": provider.value, "cursor": new_cursor, "pool_size": len(creds)},
        )
        return new_cursor

    def __repr__(self) -> str:
        sizes = ", ".join(f"{p.value}={len(c)}" for p, c in self._credentials.items())
        return f"CredentialPool({sizes})"
