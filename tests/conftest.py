# tests/conftest.py
import asyncio

import pytest
from fastapi.testclient import TestClient


class FakeAdapter:
    """
    Scripted stand-in for a ProviderAdapter.

    `outcomes` maps credential key -> attempt result (or a callable taking
    the request). Unscripted keys get `default`.
    """

    def __init__(self, provider, outcomes=None, default=None):
        self.provider = provider
        self.outcomes = outcomes or {}
        self.default = default
        self.calls = []
        self.timeouts = []

    async def invoke(self, credential, request, timeout=None):
        self.calls.append(credential.key)
        self.timeouts.append(timeout)
        # yield to the loop like a real network call would
        await asyncio.sleep(0)
        outcome = self.outcomes.get(credential.key, self.default)
        if callable(outcome):
            return outcome(request)
        return outcome


@pytest.fixture
def fake_adapter():
    return FakeAdapter


@pytest.fixture
def api_setup(monkeypatch):
    """
    Wire api.app to fake adapters and a fixed key set.
    Returns a dict the test fills in before creating the client.
    """
    wiring = {"adapters": {}, "keys": {}}

    monkeypatch.setattr("api.app.build_adapters", lambda: wiring["adapters"])
    monkeypatch.setattr("api.app.default_credentials", lambda: wiring["keys"])
    return wiring


@pytest.fixture
def client(api_setup):
    from api.app import app
    with TestClient(app) as c:
        yield c

