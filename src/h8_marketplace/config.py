"""Configuration management for the H8 Marketplace storefront."""

from __future__ import annotations

from common.config import Settings as BaseSettings


class Settings(BaseSettings):
    """Storefront configuration.

    Inherits provider keys and logging settings from
    ``common.config.Settings`` and adds storefront-specific options.
    """

    # Service identity
    service_name: str = "h8-marketplace"
    service_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8030

    # LLM configuration
    default_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-3-5-haiku-latest"
    assistant_timeout: float = 30.0
    assistant_max_tokens: int = 1024

    # Admin gate (cosmetic, compared in plaintext)
    admin_password: str = "admin"

    # Orders
    tax_rate: float = 0.10
    payment_method: str = "Transfer"
    currency_symbol: str = "₦"

    # Transfer details shown on payment instructions
    bank_name: str = "H8 Trust Bank"
    account_name: str = "H8 Marketplace Ltd"
    account_number: str = "0123456789"

    # Support chat
    support_welcome_message: str = (
        "Welcome to H8 MARKETPLACE Support. How can I assist you with your purchase today?"
    )
    handover_delay_seconds: float = 1.0

    # Display preferences
    preferences_path: str = ".h8_preferences.json"
    prefers_dark_scheme: bool = False


def get_settings() -> Settings:
    """Return a settings instance built from the environment."""
    return Settings()
