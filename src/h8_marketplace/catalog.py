"""In-memory catalog store.

Holds the product list and the category list. Products are seeded from the
bundled JSON catalog and mutated only by admin actions (add, delete, stock,
discount, image) and by customer reviews.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any

import structlog

from h8_marketplace.errors import ConfirmationRequiredError, ProductNotFoundError
from h8_marketplace.models import Category, Product, Review

logger = structlog.get_logger(__name__)

_CATALOG_DIR = Path(__file__).parent / "catalogs"

ALL_CATEGORY = "All"

DEFAULT_CATEGORIES: list[dict[str, str]] = [
    {"id": ALL_CATEGORY, "label": "All Products"},
    {"id": "Phones", "label": "Smartphones"},
    {"id": "Perfume", "label": "Fragrances"},
    {"id": "Jerseys", "label": "Soccer Jerseys"},
    {"id": "Soccer Boots", "label": "Soccer Boots"},
    {"id": "Socks", "label": "Performance Socks"},
    {"id": "Phone Pouches", "label": "Phone Pouches"},
]


def load_catalog(catalog_file: str = "products.json") -> list[Product]:
    """Load seed products from a JSON file inside ``catalogs/``."""
    catalog_path = _CATALOG_DIR / catalog_file
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog file not found: {catalog_path}")

    with open(catalog_path, encoding="utf-8") as f:
        raw = json.load(f)

    return [Product.model_validate(item) for item in raw]


class CatalogStore:
    """Products and categories owned by the application root."""

    def __init__(
        self,
        products: list[Product] | None = None,
        categories: list[Category] | None = None,
    ) -> None:
        self._products: list[Product] = list(products) if products is not None else load_catalog()
        self._categories: list[Category] = (
            list(categories)
            if categories is not None
            else [Category(**c) for c in DEFAULT_CATEGORIES]
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def products(self) -> list[Product]:
        return list(self._products)

    def list_products(self, category: str = ALL_CATEGORY) -> list[Product]:
        """Return products in *category* (every product for ``All``)."""
        if not category or category == ALL_CATEGORY:
            return list(self._products)
        return [p for p in self._products if p.category == category]

    def get_product(self, product_id: str) -> Product:
        for product in self._products:
            if product.id == product_id:
                return product
        raise ProductNotFoundError(f"Product {product_id} not found")

    def list_categories(self) -> list[Category]:
        return list(self._categories)

    # ------------------------------------------------------------------
    # Admin mutations
    # ------------------------------------------------------------------

    def add_product(self, data: dict[str, Any]) -> Product:
        """Create a product from admin input and put it first in the list.

        New products always start in stock, undiscounted and without reviews.
        """
        fields = {k: v for k, v in data.items() if k not in ("id", "reviews")}
        fields.update(is_out_of_stock=False, discount=0)
        product = Product(id=f"p-{uuid.uuid4().hex[:12]}", reviews=[], **fields)
        self._products.insert(0, product)
        logger.info("product_added", product_id=product.id, category=product.category)
        return product

    def delete_product(self, product_id: str, confirm: bool = False) -> Product:
        """Remove a product. Refuses to act unless *confirm* is set."""
        product = self.get_product(product_id)
        if not confirm:
            raise ConfirmationRequiredError(
                f"Are you sure you want to delete {product.name}? Resend with confirm=true."
            )
        self._products = [p for p in self._products if p.id != product_id]
        logger.info("product_deleted", product_id=product_id)
        return product

    def toggle_stock(self, product_id: str) -> Product:
        product = self.get_product(product_id)
        product.is_out_of_stock = not product.is_out_of_stock
        logger.info(
            "product_stock_toggled",
            product_id=product_id,
            out_of_stock=product.is_out_of_stock,
        )
        return product

    def update_discount(self, product_id: str, discount: float) -> Product:
        """Set the discount percentage, clamped into ``[0, 100]``."""
        product = self.get_product(product_id)
        product.discount = max(0, min(100, discount))
        return product

    def update_image(self, product_id: str, image_url: str) -> Product:
        product = self.get_product(product_id)
        product.image = image_url
        return product

    def add_category(self, name: str) -> Category:
        """Add a category whose id and label are *name*; existing ids win."""
        for category in self._categories:
            if category.id == name:
                return category
        category = Category(id=name, label=name)
        self._categories.append(category)
        return category

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def add_review(
        self,
        product_id: str,
        user_name: str,
        rating: int,
        comment: str = "",
    ) -> Review:
        """Prepend a review to the product; reviews are never edited."""
        product = self.get_product(product_id)
        review = Review(
            id=f"rev-{uuid.uuid4().hex[:12]}",
            user_name=user_name,
            rating=rating,
            comment=comment,
        )
        product.reviews.insert(0, review)
        logger.info("review_added", product_id=product_id, rating=rating)
        return review
