"""Tests for the support session escalation state machine."""

from conftest import StubAssistant

from h8_marketplace.assistant import MarketplaceAssistant
from h8_marketplace.errors import AssistantError
from h8_marketplace.models import (
    CartItem,
    CustomerDetails,
    MessageRole,
    Order,
    SupportMode,
)
from h8_marketplace.streaming import EVENT_ESCALATED, EVENT_RESOLVED
from h8_marketplace.support import SupportSession
from h8_marketplace.support_graph import (
    FALLBACK_MESSAGE,
    HANDOVER_MESSAGE,
    looks_like_invoice,
    needs_escalation,
    product_links,
)


class TestKeywordHelpers:
    def test_escalation_keywords(self):
        assert needs_escalation("Can I talk to an AGENT please")
        assert needs_escalation("I need customer service")
        assert needs_escalation("is there a real person here?")
        assert not needs_escalation("How much is the iPhone?")

    def test_invoice_heuristic_is_case_sensitive(self):
        assert looks_like_invoice("Total: 2,475.00")
        assert looks_like_invoice("Account Number: 0123")
        assert looks_like_invoice("Your TRACKING ID is TRK-ABCDE")
        assert not looks_like_invoice("the total is small")

    def test_product_links_match_names_case_insensitively(self, catalog):
        links = product_links("grip performance socks go with any boot", catalog.products)
        assert [link.uri for link in links] == ["/api/v1/products/p8"]
        assert product_links("nothing relevant", catalog.products) == []


class TestAssistedReplies:
    async def test_reply_is_appended(self, support, assistant):
        appended = await support.send_customer_message("Do you have jerseys?")

        assert [m.role for m in appended] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert support.messages[-1].content == "We have that in stock."
        assert support.mode == SupportMode.AI_ASSISTED
        assert support.is_typing is False
        assert len(assistant.calls) == 1

    async def test_history_excludes_current_and_system_messages(self, support, assistant):
        support.append_system("note for staff")
        await support.send_customer_message("hello")

        history = assistant.calls[0]["history"]
        assert history == [
            {"role": "model", "parts": [{"text": support.settings.support_welcome_message}]}
        ]
        assert assistant.calls[0]["text"] == "hello"
        assert len(assistant.calls[0]["catalog"]) == len(support.catalog.products)

    async def test_invoice_flag(self, settings, catalog):
        session = SupportSession(settings, StubAssistant(reply="Total: 2,475.00"), catalog)
        appended = await session.send_customer_message("how much?")
        assert appended[-1].is_invoice is True

    async def test_reply_links_mentioned_products(self, settings, catalog):
        reply = "The iphone 15 pro max and the Dior Sauvage Elixir are both in stock."
        session = SupportSession(settings, StubAssistant(reply=reply), catalog)

        appended = await session.send_customer_message("what's popular?")

        links = appended[-1].grounding_links
        assert [(link.title, link.uri) for link in links] == [
            ("iPhone 15 Pro Max", "/api/v1/products/p1"),
            ("Dior Sauvage Elixir", "/api/v1/products/p5"),
        ]

    async def test_reply_without_product_names_has_no_links(self, support):
        appended = await support.send_customer_message("Do you ship to Abuja?")
        assert appended[-1].grounding_links == []

    async def test_collaborator_failure_degrades(self, settings, catalog):
        failing = StubAssistant(error=AssistantError("timeout"))
        session = SupportSession(settings, failing, catalog)

        appended = await session.send_customer_message("hello")

        assert len(appended) == 2
        assert appended[-1].role == MessageRole.ASSISTANT
        assert appended[-1].content == FALLBACK_MESSAGE
        assert session.is_typing is False

    async def test_scripted_assistant_without_provider(self, settings, catalog):
        session = SupportSession(settings, MarketplaceAssistant(settings), catalog)
        appended = await session.send_customer_message("How do I pay by transfer?")
        assert appended[-1].is_invoice is True
        assert settings.account_number in appended[-1].content


class TestEscalation:
    async def test_keyword_hands_over_once(self, support, assistant, stream):
        appended = await support.send_customer_message("I want to speak to an agent")

        assert support.mode == SupportMode.LIVE_SUPPORT
        assert support.has_unread is True
        system_messages = [m for m in support.messages if m.role == MessageRole.SYSTEM]
        assert len(system_messages) == 1
        assert system_messages[0].content == HANDOVER_MESSAGE
        assert appended[-1].role == MessageRole.SYSTEM
        assert assistant.calls == []
        assert support.is_typing is False
        events = [e.event_type for e in stream.get_history(support.transcript_id)]
        assert EVENT_ESCALATED in events

    async def test_live_support_suppresses_replies(self, support, assistant):
        await support.send_customer_message("human please")
        support.has_unread = False
        before = len(support.messages)

        appended = await support.send_customer_message("hello? anyone?")

        assert len(appended) == 1
        assert len(support.messages) == before + 1
        assert support.messages[-1].role == MessageRole.USER
        assert support.has_unread is True
        assert assistant.calls == []

    async def test_admin_reply_clears_unread_and_keeps_live(self, support):
        await support.send_customer_message("staff")
        message = support.admin_reply("Hi, this is Tolu from H8.")

        assert message.role == MessageRole.ASSISTANT
        assert message.id.startswith("adm-")
        assert support.has_unread is False
        assert support.mode == SupportMode.LIVE_SUPPORT


class TestResolve:
    def test_welcome_only_is_noop(self, support):
        assert support.resolve() is False
        assert support.archive == []
        assert len(support.messages) == 1

    async def test_archive_and_reset(self, support, stream):
        original_welcome = support.messages[0].content
        old_transcript = support.transcript_id
        await support.send_customer_message("representative")
        archived_count = len(support.messages)

        assert support.resolve() is True

        assert len(support.archive) == 1
        assert len(support.archive[0]) == archived_count
        assert len(support.messages) == 1
        assert support.messages[0].content == original_welcome
        assert support.mode == SupportMode.AI_ASSISTED
        assert support.has_unread is False
        assert support.transcript_id != old_transcript
        assert not stream.is_open(old_transcript)
        assert stream.get_history(old_transcript) == []
        assert stream.open_transcripts == [support.transcript_id]

    async def test_resolve_ends_open_feeds(self, support, stream):
        await support.send_customer_message("representative")
        old_transcript = support.transcript_id
        feed = stream.subscribe(old_transcript)
        first = await anext(feed)
        assert first.transcript_id == old_transcript

        support.resolve()

        rest = [event async for event in feed]
        assert rest[-1].event_type == EVENT_RESOLVED
        assert rest[-1].message == "Conversation resolved."
        assert stream.follower_count(old_transcript) == 0

    async def test_archive_is_most_recent_first_and_frozen(self, support):
        await support.send_customer_message("first conversation")
        support.resolve()
        await support.send_customer_message("second conversation")
        support.resolve()

        archive = support.archive
        assert archive[0][1].content == "second conversation"
        assert archive[1][1].content == "first conversation"

        archive[0].clear()
        assert len(support.archive[0]) > 0


class TestPaymentInstructions:
    def test_invoice_message(self, support):
        order = Order(
            id="TRK-ABCDE",
            customer=CustomerDetails(name="Ada", email="a@x.io", phone="1", address="Lagos"),
            items=[CartItem(id="p1", name="Phone", price=100, category="Phones")],
            total_amount=110,
        )
        message = support.post_payment_instructions(order)
        assert message.is_invoice is True
        assert "TRACKING ID: TRK-ABCDE" in message.content
        assert support.messages[-1] is message
