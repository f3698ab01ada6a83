"""Cart scenarios."""

from __future__ import annotations

from e2e_harness import probes, steps
from e2e_harness.config import HarnessConfig
from e2e_harness.scenario import Scenario, scenario

from . import flows
from .contract import Selectors


def subtotal_sums_items(s: Selectors) -> Scenario:
    return scenario(
        "cart-subtotal-sums-items",
        [
            *flows.open_catalog(s),
            steps.require(
                probes.find_first(s.product_card, "second_candidate", lacks=s.sold_out_badge, skip=1),
                "catalog needs two in-stock products",
            ),
            *flows.add_in_stock_product(s, "first_item", price_key="first_price"),
            *flows.open_cart(s),
            steps.assert_count(s.cart_item, 1),
            steps.assert_money(s.cart_subtotal, steps.captured("first_price")),
            steps.navigate("catalog"),
            *flows.add_in_stock_product(s, "second_item", skip=1, price_key="second_price"),
            *flows.open_cart(s),
            steps.assert_count(s.cart_item, 2),
            steps.assert_money(s.cart_subtotal, steps.captured_sum("first_price", "second_price")),
        ],
        description="The cart subtotal tracks the sum of the listed prices as items are added.",
        tags=("cart", "pricing"),
    )


def survives_reload(s: Selectors) -> Scenario:
    return scenario(
        "cart-survives-reload",
        [
            *flows.open_catalog(s),
            *flows.add_in_stock_product(s, "item"),
            *flows.open_cart(s),
            steps.capture_money(s.cart_subtotal, "subtotal_before"),
            flows.capture_cart_count(s, "count_before"),
            steps.reload(),
            steps.assert_visible(s.cart_item),
            steps.capture_money(s.cart_subtotal, "subtotal_after"),
            steps.assert_captured_close("subtotal_before", "subtotal_after", name="subtotal unchanged after reload"),
            *flows.cart_unchanged(s, "count_before", "count_after"),
        ],
        description="Reloading the cart keeps its items, badge count and subtotal.",
        tags=("cart", "pricing"),
    )


def scenarios(config: HarnessConfig) -> list[Scenario]:
    s = Selectors(config)
    return [subtotal_sums_items(s), survives_reload(s)]
