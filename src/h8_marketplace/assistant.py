"""LLM-backed marketplace assistant used by the support chat.

Answers customer questions with the live catalog as context. Uses OpenAI
when a key is configured, then Anthropic, and otherwise a scripted
keyword responder so the demo works offline. Provider failures are raised
as :class:`AssistantError`; the support session turns them into a fallback
message.
"""

from __future__ import annotations

import re
from typing import Any, Protocol, Sequence

import structlog

from h8_marketplace.config import Settings
from h8_marketplace.errors import AssistantError
from h8_marketplace.models import Product
from h8_marketplace.orders import effective_price

logger = structlog.get_logger(__name__)

HistoryEntry = dict[str, Any]

_SYSTEM_PROMPT = """\
You are the sales and support assistant of H8 MARKETPLACE, an online store.
Answer briefly and politely. Only recommend products from the catalog below
and quote the prices exactly as listed (discounts already applied).

Payments are made by bank transfer only:
Bank: {bank_name}
Account Name: {account_name}
Account Number: {account_number}

When the customer wants to pay, restate the item, the Total including 10% tax
and the account details. If the customer asks for a person, tell them to type
"human agent".

CATALOG:
{catalog}
"""


class QueryCollaborator(Protocol):
    """Anything that can answer a customer message."""

    async def __call__(
        self,
        user_text: str,
        history: Sequence[HistoryEntry],
        catalog: Sequence[Product],
    ) -> str: ...


def format_catalog(products: Sequence[Product], currency: str = "₦") -> str:
    """Render the catalog as one line per product for the system prompt."""
    lines = []
    for product in products:
        price = effective_price(product)
        parts = [f"- [{product.id}] {product.name} ({product.category}): {currency}{price:,.2f}"]
        if product.discount:
            parts.append(f"{product.discount:g}% off")
        if product.colors:
            parts.append("colours: " + ", ".join(product.colors))
        parts.append("OUT OF STOCK" if product.is_out_of_stock else "in stock")
        lines.append(" | ".join(parts))
    return "\n".join(lines)


class MarketplaceAssistant:
    """Default query collaborator for the support session."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._openai_client: object | None = None
        self._anthropic_client: object | None = None

    async def __call__(
        self,
        user_text: str,
        history: Sequence[HistoryEntry],
        catalog: Sequence[Product],
    ) -> str:
        return await self.process_marketplace_query(user_text, history, catalog)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_marketplace_query(
        self,
        user_text: str,
        history: Sequence[HistoryEntry],
        catalog: Sequence[Product],
    ) -> str:
        """Answer *user_text* given the prior transcript and the catalog."""
        system = self._system_prompt(catalog)

        if self._settings.openai_api_key:
            try:
                return await self._query_openai(system, user_text, history)
            except Exception as exc:
                logger.warning("openai_query_failed", exc_info=True)
                raise AssistantError("OpenAI request failed") from exc

        if self._settings.anthropic_api_key:
            try:
                return await self._query_anthropic(system, user_text, history)
            except Exception as exc:
                logger.warning("anthropic_query_failed", exc_info=True)
                raise AssistantError("Anthropic request failed") from exc

        logger.info("using_scripted_assistant")
        return self._scripted_reply(user_text, catalog)

    def _system_prompt(self, catalog: Sequence[Product]) -> str:
        return _SYSTEM_PROMPT.format(
            bank_name=self._settings.bank_name,
            account_name=self._settings.account_name,
            account_number=self._settings.account_number,
            catalog=format_catalog(catalog, self._settings.currency_symbol),
        )

    # ------------------------------------------------------------------
    # OpenAI
    # ------------------------------------------------------------------

    async def _query_openai(
        self,
        system: str,
        user_text: str,
        history: Sequence[HistoryEntry],
    ) -> str:
        from openai import AsyncOpenAI

        if self._openai_client is None:
            self._openai_client = AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                timeout=self._settings.assistant_timeout,
            )

        client: AsyncOpenAI = self._openai_client  # type: ignore[assignment]
        messages: list[dict[str, str]] = [{"role": "system", "content": system}]
        for role, text in _flatten_history(history):
            messages.append({"role": role, "content": text})
        messages.append({"role": "user", "content": user_text})

        response = await client.chat.completions.create(
            model=self._settings.default_model,
            messages=messages,  # type: ignore[arg-type]
            temperature=0.4,
            max_tokens=self._settings.assistant_max_tokens,
        )
        return response.choices[0].message.content or ""

    # ------------------------------------------------------------------
    # Anthropic
    # ------------------------------------------------------------------

    async def _query_anthropic(
        self,
        system: str,
        user_text: str,
        history: Sequence[HistoryEntry],
    ) -> str:
        from anthropic import AsyncAnthropic

        if self._anthropic_client is None:
            self._anthropic_client = AsyncAnthropic(
                api_key=self._settings.anthropic_api_key,
                timeout=self._settings.assistant_timeout,
            )

        client: AsyncAnthropic = self._anthropic_client  # type: ignore[assignment]

        # The messages API wants alternating turns starting with the user.
        messages: list[dict[str, str]] = []
        for role, text in [*_flatten_history(history), ("user", user_text)]:
            if not messages and role != "user":
                continue
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"] += "\n\n" + text
            else:
                messages.append({"role": role, "content": text})

        response = await client.messages.create(
            model=self._settings.anthropic_model,
            max_tokens=self._settings.assistant_max_tokens,
            system=system,
            messages=messages,  # type: ignore[arg-type]
        )
        return response.content[0].text if response.content else ""  # type: ignore[union-attr]

    # ------------------------------------------------------------------
    # Scripted fallback
    # ------------------------------------------------------------------

    def _scripted_reply(self, user_text: str, catalog: Sequence[Product]) -> str:
        """Keyword responder used when no LLM provider is configured."""
        lowered = user_text.lower()
        currency = self._settings.currency_symbol

        if re.search(r"\b(pay|payment|transfer|bank|account)\b", lowered):
            return (
                "You can pay by bank transfer.\n"
                f"Bank: {self._settings.bank_name}\n"
                f"Account Name: {self._settings.account_name}\n"
                f"Account Number: {self._settings.account_number}\n"
                "Please use your TRACKING ID as the transfer reference."
            )

        words = {w for w in re.findall(r"[a-z0-9]+", lowered) if len(w) > 2}
        matches = [
            p
            for p in catalog
            if words & set(re.findall(r"[a-z0-9]+", f"{p.name} {p.category}".lower()))
        ]
        if matches:
            lines = []
            for product in matches[:5]:
                stock = "out of stock" if product.is_out_of_stock else "in stock"
                lines.append(
                    f"- {product.name}: {currency}{effective_price(product):,.2f} ({stock})"
                )
            return "Here is what I found in our catalog:\n" + "\n".join(lines)

        return (
            "I can help you find products, check prices and availability, or "
            "explain how to pay. What are you looking for today?"
        )


def _flatten_history(history: Sequence[HistoryEntry]) -> list[tuple[str, str]]:
    """Map ``{"role": "model"|"user", "parts": [{"text": ...}]}`` to chat turns."""
    turns = []
    for entry in history:
        role = "assistant" if entry.get("role") == "model" else "user"
        text = "".join(part.get("text", "") for part in entry.get("parts", []))
        turns.append((role, text))
    return turns
