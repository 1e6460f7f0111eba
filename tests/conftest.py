"""Shared test fixtures for the H8 Marketplace storefront."""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from h8_marketplace.catalog import CatalogStore
from h8_marketplace.config import Settings
from h8_marketplace.models import Product
from h8_marketplace.streaming import SupportEventStream
from h8_marketplace.support import SupportSession


class StubAssistant:
    """Query collaborator that records calls and returns a canned reply."""

    def __init__(self, reply: str = "We have that in stock.", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def __call__(
        self,
        user_text: str,
        history: Sequence[dict[str, Any]],
        catalog: Sequence[Product],
    ) -> str:
        self.calls.append({"text": user_text, "history": list(history), "catalog": list(catalog)})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def settings(tmp_path):
    """Create test settings with no LLM provider and no handover delay."""
    return Settings(
        environment="testing",
        openai_api_key="",
        anthropic_api_key="",
        handover_delay_seconds=0,
        preferences_path=str(tmp_path / "prefs.json"),
    )


@pytest.fixture
def catalog():
    return CatalogStore()


@pytest.fixture
def assistant():
    return StubAssistant()


@pytest.fixture
def stream():
    return SupportEventStream()


@pytest.fixture
def support(settings, assistant, catalog, stream):
    return SupportSession(settings, assistant, catalog, stream)


@pytest.fixture
def product():
    return Product(
        id="px",
        name="Test Phone",
        price=1000,
        category="Phones",
        colors=["Black", "White"],
    )
