"""LangGraph routing for a single customer support message.

Nodes
-----
intake           -- capture the assistant history, append the user message,
                    look for escalation keywords
queue_for_agent  -- live support already active: flag unread for the admin
handover         -- switch to live support and announce the human agent
assistant_reply  -- ask the query collaborator and append its answer

Edges
-----
intake -> queue_for_agent (live support) | handover (keyword) | assistant_reply
every other node -> END
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypedDict

import structlog
from langgraph.graph import END, StateGraph

from h8_marketplace.models import GroundingLink, Message, Product, SupportMode

if TYPE_CHECKING:
    from h8_marketplace.support import SupportSession

logger = structlog.get_logger(__name__)

ESCALATION_KEYWORDS: tuple[str, ...] = (
    "human",
    "agent",
    "support person",
    "real person",
    "staff",
    "representative",
    "customer service",
)

HANDOVER_MESSAGE = "Request received. Connecting you to a human agent... Please wait."
FALLBACK_MESSAGE = (
    "I'm having trouble connecting. Please try again or ask for a human agent."
)
INVOICE_MARKERS: tuple[str, ...] = ("Total", "Account", "TRACKING ID")


def needs_escalation(text: str) -> bool:
    """Case-insensitive substring match against the escalation keywords."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in ESCALATION_KEYWORDS)


def looks_like_invoice(text: str) -> bool:
    """Best-effort UI hint that a reply carries payment details."""
    return any(marker in text for marker in INVOICE_MARKERS)


def product_links(text: str, products: list[Product]) -> list[GroundingLink]:
    """Link each catalog product whose name appears in *text*."""
    lowered = text.lower()
    return [
        GroundingLink(title=p.name, uri=f"/api/v1/products/{p.id}")
        for p in products
        if p.name and p.name.lower() in lowered
    ]


class SupportGraphState(TypedDict, total=False):
    """Data flowing through the graph for one customer message."""

    text: str
    mode: SupportMode
    history: list[dict[str, Any]]
    escalate: bool
    appended: list[Message]


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------


def _make_intake_node(session: SupportSession):
    async def intake_node(state: SupportGraphState) -> SupportGraphState:
        text = state["text"]
        # History excludes the message being answered.
        history = session.ai_history()
        message = session.append_user(text)
        return {
            **state,
            "mode": session.mode,
            "history": history,
            "escalate": needs_escalation(text),
            "appended": [message],
        }

    return intake_node


def _make_queue_node(session: SupportSession):
    async def queue_for_agent_node(state: SupportGraphState) -> SupportGraphState:
        session.mark_unread()
        logger.info("support_message_queued", transcript_id=session.transcript_id)
        return state

    return queue_for_agent_node


def _make_handover_node(session: SupportSession, delay: float):
    async def handover_node(state: SupportGraphState) -> SupportGraphState:
        session.escalate()
        session.mark_unread()
        if delay > 0:
            await asyncio.sleep(delay)
        message = session.append_system(HANDOVER_MESSAGE)
        return {**state, "appended": [*state.get("appended", []), message]}

    return handover_node


def _make_assistant_node(session: SupportSession):
    async def assistant_reply_node(state: SupportGraphState) -> SupportGraphState:
        try:
            products = session.catalog.products
            reply = await session.assistant(state["text"], state.get("history", []), products)
            message = session.append_assistant(
                reply,
                is_invoice=looks_like_invoice(reply),
                grounding_links=product_links(reply, products),
            )
        except Exception:
            logger.warning(
                "assistant_reply_failed",
                transcript_id=session.transcript_id,
                exc_info=True,
            )
            message = session.append_assistant(FALLBACK_MESSAGE, id_prefix="err")
        return {**state, "appended": [*state.get("appended", []), message]}

    return assistant_reply_node


def _route_message(state: SupportGraphState) -> str:
    """Live support swallows the message; otherwise escalate or answer."""
    if state.get("mode") == SupportMode.LIVE_SUPPORT:
        return "queue_for_agent"
    if state.get("escalate", False):
        return "handover"
    return "assistant_reply"


# ---------------------------------------------------------------------------
# Graph builder
# ---------------------------------------------------------------------------


def build_support_graph(session: SupportSession, handover_delay: float = 1.0) -> StateGraph:
    """Construct the uncompiled per-message support graph."""
    graph = StateGraph(SupportGraphState)

    graph.add_node("intake", _make_intake_node(session))
    graph.add_node("queue_for_agent", _make_queue_node(session))
    graph.add_node("handover", _make_handover_node(session, handover_delay))
    graph.add_node("assistant_reply", _make_assistant_node(session))

    graph.set_entry_point("intake")

    graph.add_conditional_edges(
        "intake",
        _route_message,
        {
            "queue_for_agent": "queue_for_agent",
            "handover": "handover",
            "assistant_reply": "assistant_reply",
        },
    )

    graph.add_edge("queue_for_agent", END)
    graph.add_edge("handover", END)
    graph.add_edge("assistant_reply", END)

    return graph


def compile_support_graph(session: SupportSession, handover_delay: float = 1.0):
    """Build and compile the support graph into a runnable."""
    return build_support_graph(session, handover_delay).compile()
