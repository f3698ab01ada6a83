"""Storefront selector and payload contract, overridable through ``config.selectors``."""

from __future__ import annotations

from e2e_harness.scenario import ScenarioContext

DEFAULT_SELECTORS: dict[str, str] = {
    # catalog
    "product_card": '[data-testid="product-card"]',
    "product_name": "h3",
    "product_price": '[data-testid="product-price"]',
    "sold_out_badge": 'text="Sold Out"',
    "card_add_button": 'button:has-text("Add")',
    # header
    "cart_button": '[data-testid="cart-button"]',
    "cart_count": '[data-testid="cart-count"]',
    # product detail
    "product_title": "h1",
    "add_to_cart": '[data-testid="add-to-cart-button"]',
    "out_of_stock_control": 'button:has-text("Out of Stock")',
    # cart
    "cart_item": '[data-testid="cart-item"]',
    "cart_subtotal": '[data-testid="cart-subtotal"]',
    "checkout_button": 'button:has-text("Checkout"), button:has-text("Proceed to Checkout")',
    # checkout
    "first_name": 'input[name="firstName"]',
    "last_name": 'input[name="lastName"]',
    "email": 'input[name="email"]',
    "phone": 'input[name="phone"]',
    "continue_button": 'button:has-text("Continue")',
    "pickup_option": 'button:has-text("Pickup")',
    "cash_option": "#cash",
    "age_checkbox": "#age-verify",
    "terms_checkbox": "#terms",
    "place_order": 'button:has-text("Place Order")',
    # confirmation
    "order_number": '[data-testid="order-number"]',
    "order_total": '[data-testid="order-total"]',
    "contact_link": 'a[href*="t.me"], a[href*="telegram"]',
}

# order-creation response fields
ORDER_ID = "orderId"
ORDER_NUMBER = "orderNumber"
ORDER_ERROR = "error"
ORDER_CONTACT_LINK = "telegramLink"

# notification request fields
NOTIFY_ORDER_ID = "orderId"
NOTIFY_TENANT = "tenantId"
NOTIFY_CUSTOMER = "customerName"
NOTIFY_ITEMS = "items"

TEST_CUSTOMER = {
    "first_name": "E2E",
    "last_name": "Shopper",
    "email": "e2e-shopper@example.com",
    "phone": "555-010-2030",
}


def selector(ctx_or_config: object, name: str) -> str:
    """Resolve a contract selector from a scenario context or a harness config."""
    if isinstance(ctx_or_config, ScenarioContext):
        return ctx_or_config.selector(name, DEFAULT_SELECTORS.get(name))
    overrides = getattr(ctx_or_config, "selectors", {}) or {}
    value = overrides.get(name, DEFAULT_SELECTORS.get(name))
    if value is None:
        raise KeyError(f"No selector configured for '{name}'")
    return value


class Selectors:
    """Attribute access to the contract for one configuration."""

    def __init__(self, config: object) -> None:
        self._config = config

    def __getattr__(self, name: str) -> str:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return selector(self._config, name)
        except KeyError as exc:
            raise AttributeError(exc.args[0]) from exc
