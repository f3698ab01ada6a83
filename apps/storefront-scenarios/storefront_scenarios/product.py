"""Product detail scenarios."""

from __future__ import annotations

from e2e_harness import probes, steps
from e2e_harness.config import HarnessConfig
from e2e_harness.matchers import Contains
from e2e_harness.scenario import Scenario, scenario

from . import flows
from .contract import Selectors


def out_of_stock_detail_disabled(s: Selectors) -> Scenario:
    return scenario(
        "product-out-of-stock-detail-disabled",
        [
            *flows.open_catalog(s),
            steps.require(
                probes.find_first(s.product_card, "sold_out_card", has=s.sold_out_badge),
                "no sold-out product in the catalog",
            ),
            flows.capture_cart_count(s, "cart_before"),
            steps.click(steps.in_captured("sold_out_card"), name="open sold-out product"),
            steps.assert_visible(s.product_title),
            steps.assert_visible(s.out_of_stock_control),
            steps.assert_text(s.add_to_cart, Contains("Out of Stock", ignore_case=True), soft=True),
            steps.assert_disabled(s.out_of_stock_control),
            steps.click(s.out_of_stock_control, name="force click out-of-stock control", force=True),
            steps.pause(500, reason="give a stray add time to reach the cart badge"),
            *flows.cart_unchanged(s, "cart_before", "cart_after"),
        ],
        description="A sold-out product's detail page offers a disabled Out of Stock control.",
        tags=("product", "inventory"),
    )


def scenarios(config: HarnessConfig) -> list[Scenario]:
    return [out_of_stock_detail_disabled(Selectors(config))]
