# core/http_client.py
import asyncio
import logging
import httpx
from weakref import WeakKeyDictionary

logger = logging.getLogger(__name__)

# One client per event loop
_clients: WeakKeyDictionary = WeakKeyDictionary()


def get_client() -> httpx.AsyncClient:
    """
    Returns a shared AsyncClient bound to the current running event loop.
    Provider adapters use it for their single POST per attempt; the attempt
    deadline itself is enforced by the adapter, so read timeouts here are
    only an upper bound.
    """
    loop = asyncio.get_running_loop()

    client = _clients.get(loop)
    if client is not None and not client.is_closed:
        return client

    timeout = httpx.Timeout(
        connect=10.0,
        read=120.0,
        write=10.0,
        pool=10.0
    )

    limits = httpx.Limits(
        max_connections=100,
        max_keepalive_connections=20
    )

    client = httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        follow_redirects=False,
    )

    _clients[loop] = client
    return client


async def close_client():
    """
    Gracefully close all AsyncClient instances.
    Call this during application shutdown.
    """
    for client in list(_clients.values()):
        try:
            await client.aclose()
        except Exception:
            logger.warning("http_client_close_failed", exc_info=True)

    _clients.clear()
