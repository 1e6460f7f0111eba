"""Checkout flow coordinator.

Two entry points stage items for checkout: "buy now" from a product page
(one unit of one colour) and checkout of the whole cart. Submitting the
buyer's details turns the staged items into exactly one order and sends the
customer to the support chat for payment instructions.
"""

from __future__ import annotations

import structlog

from h8_marketplace.cart import CartStore
from h8_marketplace.catalog import ALL_CATEGORY
from h8_marketplace.errors import EmptyCheckoutError, ProductUnavailableError
from h8_marketplace.models import CartItem, CustomerDetails, Order, Product, ViewMode
from h8_marketplace.orders import OrderLedger
from h8_marketplace.router import ViewRouter
from h8_marketplace.support import SupportSession

logger = structlog.get_logger(__name__)


class CheckoutCoordinator:
    """Bridges cart and product selection into the order ledger."""

    def __init__(
        self,
        cart: CartStore,
        ledger: OrderLedger,
        router: ViewRouter,
        support: SupportSession,
    ) -> None:
        self._cart = cart
        self._ledger = ledger
        self._router = router
        self._support = support
        self.current_customer: CustomerDetails | None = None

    @property
    def pending_items(self) -> list[CartItem]:
        return list(self._router.pending_checkout_items)

    def buy_now(self, product: Product, color: str | None = None) -> list[CartItem]:
        """Stage a single unit of *product* in *color*."""
        if product.is_out_of_stock:
            raise ProductUnavailableError(f"{product.name} is out of stock")

        self._router.pending_checkout_items = [
            CartItem(**product.model_dump(), selected_color=color, quantity=1)
        ]
        self._router.selected_product = product
        self._router.selected_color = color
        self._router.go(ViewMode.CHECKOUT_FORM)
        return self.pending_items

    def checkout_cart(self) -> list[CartItem]:
        """Stage the whole cart. Does nothing when the cart is empty."""
        if len(self._cart) == 0:
            return []

        self._router.pending_checkout_items = [item.model_copy(deep=True) for item in self._cart.items]
        # A bulk order has no single selected product.
        self._router.selected_product = None
        self._router.selected_color = None
        self._router.go(ViewMode.CHECKOUT_FORM)
        return self.pending_items

    def cancel(self) -> ViewMode:
        """Leave the checkout form for wherever the items came from."""
        if len(self._cart) > 0:
            return self._router.go(ViewMode.CART)
        if self._router.selected_product is not None:
            return self._router.go(ViewMode.PRODUCT_DETAIL)
        return self._router.show_marketplace(ALL_CATEGORY)

    def _staged_from_cart(self, staged: list[CartItem]) -> bool:
        # Same length and same first product id; not a full set comparison.
        cart_items = self._cart.items
        return (
            len(cart_items) > 0
            and len(staged) == len(cart_items)
            and staged[0].id == cart_items[0].id
        )

    def finalize(self, details: CustomerDetails) -> Order:
        """Create the order from the staged items and route to support."""
        staged = self.pending_items
        if not staged:
            raise EmptyCheckoutError("No items are staged for checkout")

        self.current_customer = details
        order = self._ledger.create_order(details, staged)
        self._router.searched_order = order

        if self._staged_from_cart(staged):
            self._cart.clear()

        self._support.post_payment_instructions(order)
        self._router.go(ViewMode.SUPPORT_DM)
        logger.info("checkout_finalized", order_id=order.id, items=len(staged))
        return order
