"""Order ledger: tracking-ID issuance, totals, status writes and lookup.

Orders are kept newest first. After creation only ``status`` ever changes,
and any status may overwrite any other.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Iterable, Sequence

import structlog

from h8_marketplace.models import (
    CartItem,
    CustomerDetails,
    Order,
    OrderStatus,
    Product,
    utcnow,
)

logger = structlog.get_logger(__name__)

# Excludes I, O, 1 and 0.
TRACKING_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TRACKING_PREFIX = "TRK-"
TRACKING_LENGTH = 5


def generate_tracking_id() -> str:
    """Return ``TRK-`` followed by five symbols drawn from the tracking alphabet.

    Issued IDs are not checked against the ledger.
    """
    suffix = "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(TRACKING_LENGTH))
    return f"{TRACKING_PREFIX}{suffix}"


def effective_price(item: Product) -> float:
    """Price after the item's discount percentage, before tax."""
    if item.discount and item.discount > 0:
        return item.price * (1 - item.discount / 100)
    return item.price


def order_total(items: Iterable[CartItem], tax_rate: float = 0.10) -> float:
    """Sum of effective price times quantity, with tax applied."""
    subtotal = sum(effective_price(item) * item.quantity for item in items)
    return round(subtotal * (1 + tax_rate), 2)


def seed_orders() -> list[Order]:
    """Demo order available for tracking from the first start."""
    return [
        Order(
            id="TRK-9J2M4",
            customer=CustomerDetails(
                name="Guest User",
                email="guest@example.com",
                phone="08012345678",
                address="123 Lagos Way, Ikeja",
            ),
            items=[
                CartItem(
                    id="p1",
                    name="iPhone 15 Pro Max",
                    price=2250000,
                    category="Phones",
                    image=(
                        "https://images.unsplash.com/photo-1696446701796-da61225697cc"
                        "?auto=format&fit=crop&q=80&w=800"
                    ),
                    quantity=1,
                    selected_color="Natural Titanium",
                )
            ],
            total_amount=2475000,
            status=OrderStatus.PENDING,
            timestamp=utcnow() - timedelta(hours=1),
            payment_method="Transfer",
        )
    ]


class OrderLedger:
    """Append-only order list owned by the application root."""

    def __init__(
        self,
        orders: list[Order] | None = None,
        tax_rate: float = 0.10,
        payment_method: str = "Transfer",
    ) -> None:
        self._orders: list[Order] = list(orders) if orders is not None else seed_orders()
        self._tax_rate = tax_rate
        self._payment_method = payment_method

    def list_orders(self) -> list[Order]:
        """All orders, most recent first."""
        return list(self._orders)

    def create_order(self, customer: CustomerDetails, items: Sequence[CartItem]) -> Order:
        """Create a PENDING order from a snapshot of *items*."""
        snapshot = [item.model_copy(deep=True) for item in items]
        order = Order(
            id=generate_tracking_id(),
            customer=customer.model_copy(),
            items=snapshot,
            total_amount=order_total(snapshot, self._tax_rate),
            status=OrderStatus.PENDING,
            timestamp=utcnow(),
            payment_method=self._payment_method,
        )
        self._orders.insert(0, order)
        logger.info(
            "order_created",
            order_id=order.id,
            items=len(snapshot),
            total=order.total_amount,
        )
        return order

    def set_status(self, order_id: str, status: OrderStatus) -> Order | None:
        """Overwrite one order's status; ``None`` when the ID is unknown."""
        for order in self._orders:
            if order.id == order_id:
                previous = order.status
                order.status = status
                logger.info(
                    "order_status_changed",
                    order_id=order_id,
                    previous=previous.value,
                    status=status.value,
                )
                return order
        return None

    def set_status_bulk(self, order_ids: Iterable[str], status: OrderStatus) -> list[Order]:
        """Overwrite the status of every listed order; unknown IDs are skipped."""
        wanted = set(order_ids)
        updated = []
        for order in self._orders:
            if order.id in wanted:
                order.status = status
                updated.append(order)
        logger.info("order_status_bulk_changed", count=len(updated), status=status.value)
        return updated

    def find_by_id(self, raw_id: str) -> Order | None:
        """Exact match after trimming and upper-casing *raw_id*."""
        tracking_id = raw_id.strip().upper()
        for order in self._orders:
            if order.id == tracking_id:
                return order
        return None

    def orders_for_email(self, email: str) -> list[Order]:
        return [o for o in self._orders if o.customer.email == email]

    def visible_orders_for(
        self,
        customer_email: str | None = None,
        searched_order: Order | None = None,
    ) -> list[Order]:
        """Orders the tracking screen may show.

        The session customer's orders plus an explicitly searched order,
        without duplicates. A searched order outside the session set comes
        first.
        """
        session_orders = self.orders_for_email(customer_email) if customer_email else []

        if searched_order is not None and all(o.id != searched_order.id for o in session_orders):
            return [searched_order, *session_orders]
        return session_orders
