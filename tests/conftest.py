"""Shared fixtures: settings without retries and a mock-transport client factory."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from apitester.actions import ActionRegistry
from apitester.config import Settings
from apitester.runner import TestRunner


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url="http://test", retries=0, backoff_base_s=0, timeout_s=5)


@pytest.fixture
def registry() -> ActionRegistry:
    return ActionRegistry()


@pytest.fixture
def make_runner(settings: Settings, registry: ActionRegistry) -> Callable[..., TestRunner]:
    """Build a runner whose HTTP calls go to `handler(request) -> httpx.Response`."""

    def factory(handler, **kwargs) -> TestRunner:
        client = httpx.AsyncClient(base_url="http://test", transport=httpx.MockTransport(handler))
        return TestRunner(
            settings=kwargs.pop("settings", settings),
            registry=kwargs.pop("registry", registry),
            client=client,
            **kwargs,
        )

    return factory
