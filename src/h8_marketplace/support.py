"""Support chat session with AI-to-human escalation.

The session starts ``AI_ASSISTED``: customer messages are answered by the
query collaborator unless they ask for a person, which switches it to
``LIVE_SUPPORT``. In live support the customer's messages only flag the
admin inbox as unread until the admin resolves the conversation, which
archives the transcript and starts over with a fresh welcome message.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog

from h8_marketplace.assistant import QueryCollaborator
from h8_marketplace.catalog import CatalogStore
from h8_marketplace.config import Settings
from h8_marketplace.models import GroundingLink, Message, MessageRole, Order, SupportMode
from h8_marketplace.streaming import (
    EVENT_ESCALATED,
    EVENT_MESSAGE,
    EVENT_TYPING,
    EVENT_UNREAD,
    SupportEventStream,
)
from h8_marketplace.support_graph import compile_support_graph

logger = structlog.get_logger(__name__)


def _message_id(prefix: str | None = None) -> str:
    token = uuid.uuid4().hex[:12]
    return f"{prefix}-{token}" if prefix else token


class SupportSession:
    """Active transcript, archive and escalation flags."""

    def __init__(
        self,
        settings: Settings,
        assistant: QueryCollaborator,
        catalog: CatalogStore,
        stream: SupportEventStream | None = None,
    ) -> None:
        self.settings = settings
        self.assistant = assistant
        self.catalog = catalog
        self.stream = stream or SupportEventStream()

        self.transcript_id = uuid.uuid4().hex
        self.stream.open(self.transcript_id)
        self.mode = SupportMode.AI_ASSISTED
        self.is_typing = False
        self.has_unread = False
        self._messages: list[Message] = [self._welcome_message()]
        self._archive: list[list[Message]] = []

        self._graph = compile_support_graph(self, settings.handover_delay_seconds)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def archive(self) -> list[list[Message]]:
        """Archived transcripts, most recent first."""
        return [list(transcript) for transcript in self._archive]

    @property
    def is_live_support(self) -> bool:
        return self.mode == SupportMode.LIVE_SUPPORT

    def ai_history(self) -> list[dict[str, Any]]:
        """Transcript in the collaborator's format, without system messages."""
        return [
            {
                "role": "model" if m.role == MessageRole.ASSISTANT else "user",
                "parts": [{"text": m.content}],
            }
            for m in self._messages
            if m.role != MessageRole.SYSTEM
        ]

    def snapshot(self) -> dict[str, Any]:
        return {
            "transcript_id": self.transcript_id,
            "mode": self.mode.value,
            "is_typing": self.is_typing,
            "messages": [m.model_dump(mode="json") for m in self._messages],
        }

    # ------------------------------------------------------------------
    # Primitive mutations (used by the routing graph)
    # ------------------------------------------------------------------

    def _welcome_message(self) -> Message:
        return Message(
            id=_message_id(),
            role=MessageRole.ASSISTANT,
            content=self.settings.support_welcome_message,
        )

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        self.stream.emit(
            self.transcript_id,
            EVENT_MESSAGE,
            data=message.model_dump(mode="json"),
        )
        return message

    def append_user(self, text: str) -> Message:
        return self._append(Message(id=_message_id(), role=MessageRole.USER, content=text))

    def append_system(self, text: str) -> Message:
        return self._append(
            Message(id=_message_id("sys"), role=MessageRole.SYSTEM, content=text)
        )

    def append_assistant(
        self,
        text: str,
        is_invoice: bool = False,
        id_prefix: str | None = None,
        grounding_links: list[GroundingLink] | None = None,
    ) -> Message:
        return self._append(
            Message(
                id=_message_id(id_prefix),
                role=MessageRole.ASSISTANT,
                content=text,
                is_invoice=is_invoice,
                grounding_links=grounding_links or [],
            )
        )

    def set_typing(self, typing: bool) -> None:
        self.is_typing = typing
        self.stream.emit(self.transcript_id, EVENT_TYPING, data={"is_typing": typing})

    def mark_unread(self) -> None:
        self.has_unread = True
        self.stream.emit(self.transcript_id, EVENT_UNREAD, data={"has_unread": True})

    def escalate(self) -> None:
        self.mode = SupportMode.LIVE_SUPPORT
        logger.info("support_escalated", transcript_id=self.transcript_id)
        self.stream.emit(
            self.transcript_id,
            EVENT_ESCALATED,
            message="Customer asked for a human agent.",
        )

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def send_customer_message(self, text: str) -> list[Message]:
        """Record a customer message and produce at most one automated reply.

        Returns the messages appended for this call, the customer's own
        message first.
        """
        waits_for_reply = not self.is_live_support
        if waits_for_reply:
            self.set_typing(True)
        try:
            result = await self._graph.ainvoke({"text": text})
        finally:
            if waits_for_reply:
                self.set_typing(False)
        return list(result.get("appended", []))

    def admin_reply(self, text: str) -> Message:
        """Answer as a human agent. Live support stays active."""
        message = self.append_assistant(text, id_prefix="adm")
        self.has_unread = False
        logger.info("support_admin_replied", transcript_id=self.transcript_id)
        return message

    def post_payment_instructions(self, order: Order) -> Message:
        """Append the transfer instructions for a freshly placed order."""
        currency = self.settings.currency_symbol
        text = (
            f"Thank you {order.customer.name}! Your order has been received.\n"
            f"TRACKING ID: {order.id}\n"
            f"Total: {currency}{order.total_amount:,.2f} (incl. tax)\n"
            f"Please pay by {order.payment_method.lower()} to:\n"
            f"Bank: {self.settings.bank_name}\n"
            f"Account Name: {self.settings.account_name}\n"
            f"Account Number: {self.settings.account_number}\n"
            "Use your tracking ID as the payment reference."
        )
        return self.append_assistant(text, is_invoice=True, id_prefix="inv")

    def resolve(self) -> bool:
        """Archive the transcript and start a fresh one.

        Does nothing and returns ``False`` while the transcript only holds
        the welcome message.
        """
        if len(self._messages) <= 1:
            return False

        self._archive.insert(0, [m.model_copy(deep=True) for m in self._messages])

        previous_id = self.transcript_id
        self.stream.retire(previous_id, message="Conversation resolved.")

        self.transcript_id = uuid.uuid4().hex
        self.stream.open(self.transcript_id)
        self._messages = [self._welcome_message()]
        self.mode = SupportMode.AI_ASSISTED
        self.has_unread = False
        logger.info(
            "support_resolved",
            archived_transcript_id=previous_id,
            archived_sessions=len(self._archive),
        )
        return True
