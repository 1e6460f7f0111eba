"""Entry point for the H8 Marketplace storefront service.

Configures logging, builds the FastAPI application and starts the uvicorn
server.
"""

from __future__ import annotations

import structlog
import uvicorn

from common import setup_logging

from h8_marketplace.api import create_app
from h8_marketplace.assistant import QueryCollaborator
from h8_marketplace.config import Settings, get_settings

logger = structlog.get_logger(__name__)


def build_app(
    settings: Settings | None = None,
    assistant: QueryCollaborator | None = None,
) -> object:
    """Construct the fully-configured storefront application.

    *assistant* replaces the default LLM-backed query collaborator, which
    tests use to script support replies.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.environment)

    app = create_app(settings, assistant=assistant)

    storefront = app.state.storefront
    logger.info(
        "application_ready",
        service=settings.service_name,
        version=settings.service_version,
        products=len(storefront.catalog.products),
        orders=len(storefront.ledger.list_orders()),
        docs_url=f"http://localhost:{settings.port}/docs",
    )

    return app


def main() -> None:
    """Launch the storefront server."""
    settings = get_settings()

    app = build_app(settings)

    uvicorn.run(
        app,  # type: ignore[arg-type]
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
