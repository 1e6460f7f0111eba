"""View router: current screen plus the selections that depend on it."""

from __future__ import annotations

import structlog

from h8_marketplace.catalog import ALL_CATEGORY
from h8_marketplace.models import CartItem, Order, Product, ViewMode

logger = structlog.get_logger(__name__)


class ViewRouter:
    """Holds the current view and contextual selections.

    Navigation clears selections that would otherwise go stale: opening the
    support chat drops pending checkout items, and leaving order tracking
    forgets the searched order.
    """

    def __init__(self) -> None:
        self.current_view = ViewMode.HOME
        self.selected_product: Product | None = None
        self.selected_color: str | None = None
        self.selected_category = ALL_CATEGORY
        self.pending_checkout_items: list[CartItem] = []
        self.searched_order: Order | None = None

    def go(self, view: ViewMode) -> ViewMode:
        """Switch views without side effects."""
        self.current_view = view
        return view

    def navigate(self, view: ViewMode) -> ViewMode:
        """Sidebar navigation with stale-selection cleanup."""
        if view == ViewMode.SUPPORT_DM:
            self.pending_checkout_items = []
        if self.current_view == ViewMode.ORDER_TRACKING and view != ViewMode.ORDER_TRACKING:
            self.searched_order = None
        logger.debug("view_changed", previous=self.current_view.value, view=view.value)
        return self.go(view)

    def show_marketplace(self, category: str = ALL_CATEGORY) -> ViewMode:
        self.selected_category = category or ALL_CATEGORY
        return self.go(ViewMode.MARKETPLACE)

    def select_product(self, product: Product) -> ViewMode:
        self.selected_product = product
        return self.go(ViewMode.PRODUCT_DETAIL)

    def title(self, is_live_support: bool = False, is_admin: bool = False) -> str:
        """Header text for the current view."""
        titles = {
            ViewMode.HOME: "H8 Marketplace Enterprise",
            ViewMode.MARKETPLACE: f"Marketplace: {self.selected_category}",
            ViewMode.PRODUCT_DETAIL: "Product Details",
            ViewMode.SUPPORT_DM: "Live Support" if is_live_support else "Secure Payment & Support",
            ViewMode.CART: "Shopping Cart",
            ViewMode.CHECKOUT_FORM: "Buyer Details",
            ViewMode.ORDER_TRACKING: "Track Orders",
            ViewMode.ADMIN: "Admin Dashboard" if is_admin else "Staff Access",
        }
        return titles[self.current_view]
