"""In-memory shopping cart.

Lines are keyed by ``(product id, selected colour)``: adding the same pair
again bumps the quantity, a different colour opens a new line. A line never
holds a quantity below one; reaching zero removes it.
"""

from __future__ import annotations

import structlog

from h8_marketplace.errors import ProductUnavailableError
from h8_marketplace.models import CartItem, Product

logger = structlog.get_logger(__name__)


class CartStore:
    """Cart for the active storefront session."""

    def __init__(self) -> None:
        self._items: list[CartItem] = []

    @property
    def items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def item_count(self) -> int:
        """Total number of units across every line."""
        return sum(item.quantity for item in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def _find(self, product_id: str, color: str | None) -> CartItem | None:
        for item in self._items:
            if item.key == (product_id, color):
                return item
        return None

    def add(self, product: Product, color: str | None = None) -> CartItem:
        """Add one unit of *product* in *color*."""
        if product.is_out_of_stock:
            raise ProductUnavailableError(f"{product.name} is out of stock")

        existing = self._find(product.id, color)
        if existing is not None:
            existing.quantity += 1
            return existing

        item = CartItem(**product.model_dump(), selected_color=color, quantity=1)
        self._items.append(item)
        logger.debug("cart_line_added", product_id=product.id, color=color)
        return item

    def remove(self, product_id: str, color: str | None = None) -> None:
        self._items = [item for item in self._items if item.key != (product_id, color)]

    def update_quantity(
        self,
        product_id: str,
        color: str | None,
        delta: int,
    ) -> CartItem | None:
        """Shift a line's quantity by *delta*.

        Returns the updated line, or ``None`` when the line is gone (either
        it did not exist or the new quantity reached zero and it was removed).
        """
        item = self._find(product_id, color)
        if item is None:
            return None

        new_quantity = item.quantity + delta
        if new_quantity <= 0:
            self.remove(product_id, color)
            return None

        item.quantity = new_quantity
        return item

    def clear(self) -> None:
        self._items = []
