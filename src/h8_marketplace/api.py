"""FastAPI application for the H8 Marketplace storefront.

Exposes REST endpoints for:
- Catalog browsing, product selection and reviews
- Cart management
- Checkout (buy now, cart checkout, buyer details)
- Order tracking
- Support chat with SSE streaming of transcript updates
- View state and display preferences
- The password-gated admin panel (inventory, orders, support inbox)
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from common import ErrorResponse, HealthResponse

from h8_marketplace.assistant import QueryCollaborator
from h8_marketplace.catalog import ALL_CATEGORY
from h8_marketplace.config import Settings
from h8_marketplace.errors import StorefrontError, SupportBusyError
from h8_marketplace.models import CustomerDetails, OrderStatus, ViewMode
from h8_marketplace.state import StorefrontState

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AddToCartRequest(BaseModel):
    product_id: str
    color: str | None = None


class UpdateQuantityRequest(BaseModel):
    color: str | None = None
    delta: int


class BuyNowRequest(BaseModel):
    product_id: str
    color: str | None = None


class ReviewRequest(BaseModel):
    user_name: str
    rating: int = Field(ge=1, le=5)
    comment: str = ""


class TrackRequest(BaseModel):
    tracking_id: str


class ChatRequest(BaseModel):
    text: str = Field(min_length=1)


class NavigateRequest(BaseModel):
    view: ViewMode


class LoginRequest(BaseModel):
    password: str


class ProductCreateRequest(BaseModel):
    name: str
    price: float = Field(ge=0)
    category: str
    image: str = ""
    images: list[str] = Field(default_factory=list, max_length=5)
    description: str = ""
    colors: list[str] = Field(default_factory=list)


class DiscountRequest(BaseModel):
    discount: float


class ImageRequest(BaseModel):
    image: str


class CategoryRequest(BaseModel):
    name: str = Field(min_length=1)


class StatusRequest(BaseModel):
    status: OrderStatus


class BulkStatusRequest(BaseModel):
    order_ids: list[str]
    status: OrderStatus


class SupportReplyRequest(BaseModel):
    text: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    assistant: QueryCollaborator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="H8 Marketplace",
        description=(
            "Single-storefront demo: catalog, cart, checkout, order tracking, "
            "AI-assisted support chat with human handover, and an admin panel."
        ),
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state = StorefrontState(settings, assistant=assistant)
    app.state.storefront = state
    app.state.settings = settings

    def cart_payload() -> dict[str, Any]:
        return {
            "items": [item.model_dump(mode="json") for item in state.cart.items],
            "item_count": state.cart.item_count,
        }

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=settings.service_version,
        )

    # -------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------

    @app.get("/api/v1/categories", tags=["catalog"])
    async def list_categories() -> dict[str, Any]:
        categories = state.catalog.list_categories()
        return {"categories": [c.model_dump() for c in categories], "total": len(categories)}

    @app.get("/api/v1/products", tags=["catalog"])
    async def list_products(category: str = ALL_CATEGORY) -> dict[str, Any]:
        products = state.catalog.list_products(category)
        return {
            "products": [p.model_dump(mode="json") for p in products],
            "total": len(products),
            "category": category,
        }

    @app.get("/api/v1/products/{product_id}", tags=["catalog"])
    async def get_product(product_id: str) -> dict[str, Any]:
        return state.catalog.get_product(product_id).model_dump(mode="json")

    @app.post("/api/v1/products/{product_id}/select", tags=["catalog"])
    async def select_product(product_id: str) -> dict[str, Any]:
        """Open the product detail view."""
        product = state.catalog.get_product(product_id)
        view = state.router.select_product(product)
        return {"view": view.value, "product": product.model_dump(mode="json")}

    @app.post("/api/v1/products/{product_id}/reviews", tags=["catalog"])
    async def add_review(product_id: str, req: ReviewRequest) -> dict[str, Any]:
        review = state.add_review(product_id, req.user_name, req.rating, req.comment)
        return review.model_dump(mode="json")

    # -------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------

    @app.get("/api/v1/cart", tags=["cart"])
    async def get_cart() -> dict[str, Any]:
        return cart_payload()

    @app.post("/api/v1/cart/items", tags=["cart"])
    async def add_to_cart(req: AddToCartRequest) -> dict[str, Any]:
        product = state.catalog.get_product(req.product_id)
        state.cart.add(product, req.color)
        return cart_payload()

    @app.patch("/api/v1/cart/items/{product_id}", tags=["cart"])
    async def update_cart_quantity(product_id: str, req: UpdateQuantityRequest) -> dict[str, Any]:
        state.cart.update_quantity(product_id, req.color, req.delta)
        return cart_payload()

    @app.delete("/api/v1/cart/items/{product_id}", tags=["cart"])
    async def remove_from_cart(product_id: str, color: str | None = None) -> dict[str, Any]:
        state.cart.remove(product_id, color)
        return cart_payload()

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------

    @app.post("/api/v1/checkout/buy-now", tags=["checkout"])
    async def buy_now(req: BuyNowRequest) -> dict[str, Any]:
        product = state.catalog.get_product(req.product_id)
        items = state.checkout.buy_now(product, req.color)
        return {
            "view": state.router.current_view.value,
            "items": [i.model_dump(mode="json") for i in items],
        }

    @app.post("/api/v1/checkout/cart", tags=["checkout"])
    async def checkout_cart() -> dict[str, Any]:
        items = state.checkout.checkout_cart()
        return {
            "view": state.router.current_view.value,
            "items": [i.model_dump(mode="json") for i in items],
        }

    @app.post("/api/v1/checkout/cancel", tags=["checkout"])
    async def cancel_checkout() -> dict[str, Any]:
        return {"view": state.checkout.cancel().value}

    @app.post("/api/v1/checkout/submit", tags=["checkout"])
    async def submit_checkout(details: CustomerDetails) -> dict[str, Any]:
        """Finalize the staged items into an order."""
        order = state.checkout.finalize(details)
        return {
            "order": order.model_dump(mode="json"),
            "view": state.router.current_view.value,
        }

    # -------------------------------------------------------------------
    # Orders and tracking
    # -------------------------------------------------------------------

    @app.get("/api/v1/orders", tags=["orders"])
    async def list_visible_orders() -> dict[str, Any]:
        """Orders the tracking view may show to this customer."""
        orders = state.visible_orders()
        return {"orders": [o.model_dump(mode="json") for o in orders], "total": len(orders)}

    @app.post("/api/v1/orders/track", tags=["orders"])
    async def track_order(req: TrackRequest) -> dict[str, Any]:
        order = state.track_order(req.tracking_id)
        return order.model_dump(mode="json")

    # -------------------------------------------------------------------
    # Support chat
    # -------------------------------------------------------------------

    @app.get("/api/v1/support", tags=["support"])
    async def get_support_session() -> dict[str, Any]:
        return state.support.snapshot()

    @app.post("/api/v1/support/messages", tags=["support"])
    async def send_support_message(req: ChatRequest) -> dict[str, Any]:
        """Send a customer message and wait for the automated reply, if any."""
        if state.support.is_typing:
            raise SupportBusyError("A reply is already on its way.")
        appended = await state.support.send_customer_message(req.text)
        return {
            "messages": [m.model_dump(mode="json") for m in appended],
            "mode": state.support.mode.value,
        }

    def transcript_feed() -> EventSourceResponse:
        """SSE feed of the active transcript; ends when it is resolved."""
        transcript_id = state.support.transcript_id

        async def event_generator():  # type: ignore[no-untyped-def]
            async for event in state.event_stream.subscribe(transcript_id):
                yield {
                    "event": event.event_type,
                    "data": json.dumps(event.model_dump(), default=str),
                }

        return EventSourceResponse(event_generator())

    @app.get("/api/v1/support/stream", tags=["support"])
    async def stream_support() -> EventSourceResponse:
        return transcript_feed()

    # -------------------------------------------------------------------
    # View state and preferences
    # -------------------------------------------------------------------

    @app.get("/api/v1/view", tags=["view"])
    async def get_view() -> dict[str, Any]:
        router = state.router
        return {
            "view": router.current_view.value,
            "title": router.title(state.support.is_live_support, state.is_admin),
            "selected_product_id": router.selected_product.id if router.selected_product else None,
            "selected_color": router.selected_color,
            "selected_category": router.selected_category,
            "pending_checkout_items": [
                i.model_dump(mode="json") for i in router.pending_checkout_items
            ],
            "searched_order_id": router.searched_order.id if router.searched_order else None,
            "cart_count": state.cart.item_count,
        }

    @app.post("/api/v1/view/navigate", tags=["view"])
    async def navigate(req: NavigateRequest) -> dict[str, Any]:
        return {"view": state.router.navigate(req.view).value}

    @app.post("/api/v1/view/marketplace", tags=["view"])
    async def show_marketplace(category: str = ALL_CATEGORY) -> dict[str, Any]:
        view = state.router.show_marketplace(category)
        return {"view": view.value, "category": state.router.selected_category}

    @app.get("/api/v1/preferences", tags=["view"])
    async def get_preferences() -> dict[str, Any]:
        return {"dark_mode": state.preferences.dark_mode}

    @app.post("/api/v1/preferences/dark-mode/toggle", tags=["view"])
    async def toggle_dark_mode() -> dict[str, Any]:
        return {"dark_mode": state.preferences.toggle_dark_mode()}

    # -------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------

    @app.post("/api/v1/admin/login", tags=["admin"])
    async def admin_login(req: LoginRequest) -> dict[str, Any]:
        state.login(req.password)
        return {"is_admin": True}

    @app.post("/api/v1/admin/logout", tags=["admin"])
    async def admin_logout() -> dict[str, Any]:
        state.logout()
        return {"is_admin": False, "view": state.router.current_view.value}

    @app.get("/api/v1/admin/orders", tags=["admin"])
    async def admin_list_orders() -> dict[str, Any]:
        state.require_admin()
        orders = state.ledger.list_orders()
        return {"orders": [o.model_dump(mode="json") for o in orders], "total": len(orders)}

    @app.patch("/api/v1/admin/orders/{order_id}/status", tags=["admin"])
    async def admin_set_status(order_id: str, req: StatusRequest) -> dict[str, Any]:
        state.require_admin()
        order = state.ledger.set_status(order_id, req.status)
        if order is None:
            raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
        return order.model_dump(mode="json")

    @app.post("/api/v1/admin/orders/status", tags=["admin"])
    async def admin_bulk_status(req: BulkStatusRequest) -> dict[str, Any]:
        state.require_admin()
        updated = state.ledger.set_status_bulk(req.order_ids, req.status)
        return {"updated": [o.id for o in updated], "status": req.status.value}

    @app.post("/api/v1/admin/products", tags=["admin"])
    async def admin_add_product(req: ProductCreateRequest) -> dict[str, Any]:
        state.require_admin()
        product = state.catalog.add_product(req.model_dump())
        return product.model_dump(mode="json")

    @app.delete("/api/v1/admin/products/{product_id}", tags=["admin"])
    async def admin_delete_product(product_id: str, confirm: bool = False) -> dict[str, Any]:
        state.require_admin()
        product = state.catalog.delete_product(product_id, confirm=confirm)
        return {"deleted": product.id}

    @app.post("/api/v1/admin/products/{product_id}/toggle-stock", tags=["admin"])
    async def admin_toggle_stock(product_id: str) -> dict[str, Any]:
        state.require_admin()
        return state.catalog.toggle_stock(product_id).model_dump(mode="json")

    @app.put("/api/v1/admin/products/{product_id}/discount", tags=["admin"])
    async def admin_update_discount(product_id: str, req: DiscountRequest) -> dict[str, Any]:
        state.require_admin()
        return state.catalog.update_discount(product_id, req.discount).model_dump(mode="json")

    @app.put("/api/v1/admin/products/{product_id}/image", tags=["admin"])
    async def admin_update_image(product_id: str, req: ImageRequest) -> dict[str, Any]:
        state.require_admin()
        return state.catalog.update_image(product_id, req.image).model_dump(mode="json")

    @app.post("/api/v1/admin/categories", tags=["admin"])
    async def admin_add_category(req: CategoryRequest) -> dict[str, Any]:
        state.require_admin()
        return state.catalog.add_category(req.name).model_dump()

    @app.get("/api/v1/admin/support", tags=["admin"])
    async def admin_support_inbox() -> dict[str, Any]:
        state.require_admin()
        support = state.support
        return {
            **support.snapshot(),
            "has_unread": support.has_unread,
            "archived_sessions": [
                [m.model_dump(mode="json") for m in transcript] for transcript in support.archive
            ],
        }

    @app.get("/api/v1/admin/support/stream", tags=["admin"])
    async def admin_support_stream() -> EventSourceResponse:
        """Inbox feed; reconnect after ``resolved`` to follow the next transcript."""
        state.require_admin()
        return transcript_feed()

    @app.post("/api/v1/admin/support/reply", tags=["admin"])
    async def admin_support_reply(req: SupportReplyRequest) -> dict[str, Any]:
        state.require_admin()
        message = state.support.admin_reply(req.text)
        return message.model_dump(mode="json")

    @app.post("/api/v1/admin/support/resolve", tags=["admin"])
    async def admin_support_resolve() -> dict[str, Any]:
        state.require_admin()
        resolved = state.support.resolve()
        return {"resolved": resolved, "archived_sessions": len(state.support.archive)}

    # -------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------

    @app.exception_handler(StorefrontError)
    async def storefront_exception_handler(
        request: Request, exc: StorefrontError
    ) -> JSONResponse:
        logger.info(
            "storefront_error",
            error=exc.error,
            detail=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.error,
                detail=str(exc) or None,
                status_code=exc.status_code,
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception", error=str(exc), path=request.url.path
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc),
                status_code=500,
            ).model_dump(),
        )

    return app
