"""Application state aggregate.

One ``StorefrontState`` owns every store for the lifetime of the process.
Route handlers reach it through ``app.state.storefront`` and change it only
through the intents defined on the stores or here.
"""

from __future__ import annotations

import structlog

from h8_marketplace.assistant import MarketplaceAssistant, QueryCollaborator
from h8_marketplace.cart import CartStore
from h8_marketplace.catalog import CatalogStore
from h8_marketplace.checkout import CheckoutCoordinator
from h8_marketplace.config import Settings
from h8_marketplace.errors import (
    AdminRequiredError,
    InvalidCredentialsError,
    OrderNotFoundError,
)
from h8_marketplace.models import Order, Review, ViewMode
from h8_marketplace.orders import OrderLedger
from h8_marketplace.preferences import PreferenceStore
from h8_marketplace.router import ViewRouter
from h8_marketplace.streaming import SupportEventStream
from h8_marketplace.support import SupportSession

logger = structlog.get_logger(__name__)


class StorefrontState:
    """Shared storefront state accessible from every route handler."""

    def __init__(
        self,
        settings: Settings,
        assistant: QueryCollaborator | None = None,
        catalog: CatalogStore | None = None,
        ledger: OrderLedger | None = None,
    ) -> None:
        self.settings = settings
        self.catalog = catalog or CatalogStore()
        self.cart = CartStore()
        self.ledger = ledger or OrderLedger(
            tax_rate=settings.tax_rate,
            payment_method=settings.payment_method,
        )
        self.router = ViewRouter()
        self.event_stream = SupportEventStream()
        self.support = SupportSession(
            settings,
            assistant or MarketplaceAssistant(settings),
            self.catalog,
            self.event_stream,
        )
        self.checkout = CheckoutCoordinator(self.cart, self.ledger, self.router, self.support)
        self.preferences = PreferenceStore(
            settings.preferences_path,
            prefers_dark_scheme=settings.prefers_dark_scheme,
        )
        self.is_admin = False

    # ------------------------------------------------------------------
    # Admin gate
    # ------------------------------------------------------------------

    def login(self, password: str) -> None:
        if password != self.settings.admin_password:
            logger.info("admin_login_rejected")
            raise InvalidCredentialsError()
        self.is_admin = True
        logger.info("admin_logged_in")

    def logout(self) -> None:
        self.is_admin = False
        self.router.go(ViewMode.HOME)

    def require_admin(self) -> None:
        if not self.is_admin:
            raise AdminRequiredError("Enter credentials to access the admin panel.")

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track_order(self, tracking_id: str) -> Order:
        """Look an order up by tracking ID and remember it for the tracking view."""
        order = self.ledger.find_by_id(tracking_id)
        self.router.searched_order = order
        if order is None:
            raise OrderNotFoundError()
        return order

    def visible_orders(self) -> list[Order]:
        customer = self.checkout.current_customer
        return self.ledger.visible_orders_for(
            customer.email if customer else None,
            self.router.searched_order,
        )

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def add_review(self, product_id: str, user_name: str, rating: int, comment: str = "") -> Review:
        """Add a review; the selected product shares the catalog record."""
        return self.catalog.add_review(product_id, user_name, rating, comment)
