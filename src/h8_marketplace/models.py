"""Pydantic models for the H8 Marketplace storefront.

Covers the catalog (products, reviews, categories), cart lines, customer
details and orders, support chat messages and events, and the enums that
drive the order lifecycle, the support escalation machine and the view
router.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time used for every record timestamp."""
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Review(BaseModel):
    """A customer review attached to a product."""

    id: str
    user_name: str
    rating: int = Field(ge=1, le=5)
    comment: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class Product(BaseModel):
    """A catalog product."""

    id: str
    name: str
    price: float
    category: str
    image: str = ""
    images: list[str] = Field(default_factory=list, max_length=5)
    description: str = ""
    colors: list[str] = Field(default_factory=list)
    is_out_of_stock: bool = False
    discount: float = Field(default=0, ge=0, le=100)
    reviews: list[Review] = Field(default_factory=list)


class Category(BaseModel):
    """Category id/label pair referenced by ``Product.category``."""

    id: str
    label: str


# ---------------------------------------------------------------------------
# Cart and orders
# ---------------------------------------------------------------------------


class CartItem(Product):
    """A product snapshot with the chosen colour and a positive quantity."""

    selected_color: str | None = None
    quantity: int = Field(default=1, ge=1)

    @property
    def key(self) -> tuple[str, str | None]:
        """Line identity inside the cart."""
        return (self.id, self.selected_color)


class CustomerDetails(BaseModel):
    """Buyer details captured by the checkout form."""

    name: str
    email: str
    phone: str
    address: str


class OrderStatus(str, enum.Enum):
    """Order lifecycle statuses.

    Any status may be written over any other; ``REJECTED`` is reachable from
    every state.
    """

    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    REJECTED = "REJECTED"


class Order(BaseModel):
    """A placed order. Only ``status`` changes after creation."""

    id: str
    customer: CustomerDetails
    items: list[CartItem] = Field(default_factory=list)
    total_amount: float
    status: OrderStatus = OrderStatus.PENDING
    timestamp: datetime = Field(default_factory=utcnow)
    payment_method: str = "Transfer"


# ---------------------------------------------------------------------------
# Support chat
# ---------------------------------------------------------------------------


class MessageRole(str, enum.Enum):
    """Author of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class GroundingLink(BaseModel):
    """Catalog product an assistant answer mentions by name."""

    title: str
    uri: str


class Message(BaseModel):
    """A single support transcript message."""

    id: str
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    is_invoice: bool = False
    grounding_links: list[GroundingLink] = Field(default_factory=list)


class SupportMode(str, enum.Enum):
    """Who answers the customer: the assistant or a human agent."""

    AI_ASSISTED = "AI_ASSISTED"
    LIVE_SUPPORT = "LIVE_SUPPORT"


class SupportEvent(BaseModel):
    """Server-Sent Event pushed when the support transcript changes."""

    event_type: str
    transcript_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class ViewMode(str, enum.Enum):
    """Screens of the storefront."""

    HOME = "HOME"
    MARKETPLACE = "MARKETPLACE"
    PRODUCT_DETAIL = "PRODUCT_DETAIL"
    SUPPORT_DM = "SUPPORT_DM"
    CART = "CART"
    ADMIN = "ADMIN"
    CHECKOUT_FORM = "CHECKOUT_FORM"
    ORDER_TRACKING = "ORDER_TRACKING"
