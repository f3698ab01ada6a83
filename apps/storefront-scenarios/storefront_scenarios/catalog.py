"""Catalog scenarios: sold-out cards, reload stability, card/detail consistency."""

from __future__ import annotations

from e2e_harness import probes, steps
from e2e_harness.config import HarnessConfig
from e2e_harness.scenario import Branch, Scenario, ScenarioContext, scenario, variant

from . import flows
from .contract import Selectors


def sold_out_card_blocks_add(s: Selectors) -> Scenario:
    return scenario(
        "catalog-sold-out-card-blocks-add",
        [
            *flows.open_catalog(s),
            flows.capture_cart_count(s, "cart_before"),
            Branch(
                name="sold-out card present",
                probe=probes.find_first(s.product_card, "sold_out_card", has=s.sold_out_badge),
                when_true=variant(
                    "sold-out",
                    [
                        steps.assert_visible(steps.in_captured("sold_out_card", s.sold_out_badge)),
                        steps.assert_disabled(steps.in_captured("sold_out_card", s.card_add_button)),
                        steps.click(
                            steps.in_captured("sold_out_card", s.card_add_button),
                            name="force click disabled add",
                            force=True,
                        ),
                        steps.pause(500, reason="give a stray add time to reach the cart badge"),
                        *flows.cart_unchanged(s, "cart_before", "cart_after"),
                    ],
                ),
                when_false=variant(
                    "all-in-stock",
                    [steps.assert_enabled(f"{s.product_card} >> {s.card_add_button}")],
                ),
            ),
        ],
        description="A sold-out card shows its badge and its add control cannot change the cart.",
        tags=("catalog", "inventory"),
    )


def reload_is_idempotent(s: Selectors) -> Scenario:
    return scenario(
        "catalog-reload-is-idempotent",
        [
            *flows.open_catalog(s),
            steps.capture_count(s.sold_out_badge, "sold_out_initial", ready=s.product_card),
            steps.reload(),
            steps.capture_count(s.sold_out_badge, "sold_out_reload_1", ready=s.product_card),
            steps.assert_captures_equal("sold_out_initial", "sold_out_reload_1"),
            steps.reload(),
            steps.capture_count(s.sold_out_badge, "sold_out_reload_2", ready=s.product_card),
            steps.assert_captures_equal("sold_out_initial", "sold_out_reload_2"),
        ],
        description="Reloading the catalog does not change how many products read as sold out.",
        tags=("catalog", "inventory"),
    )


def detail_stock_consistency(s: Selectors) -> Scenario:
    async def card_sold_out(ctx: ScenarioContext) -> bool:
        first = ctx.locators.element(s.product_card).nth(0)
        return await first.child(s.sold_out_badge).handle.count() > 0

    async def detail_out_of_stock(ctx: ScenarioContext) -> bool:
        control = ctx.locators.element(s.add_to_cart)
        disabled = not await control.handle.first.is_enabled()
        label = await control.handle.first.text_content() or ""
        return disabled or "out of stock" in label.lower()

    return scenario(
        "catalog-detail-stock-consistency",
        [
            *flows.open_catalog(s),
            steps.capture_state("card_sold_out", card_sold_out, target=s.product_card),
            *flows.open_product(s.product_card, s),
            steps.capture_state("detail_out_of_stock", detail_out_of_stock, target=s.add_to_cart),
            steps.assert_captures_equal("card_sold_out", "detail_out_of_stock", name="card and detail agree"),
        ],
        description="The first card's sold-out state matches the detail page's purchase control.",
        tags=("catalog", "inventory"),
    )


def scenarios(config: HarnessConfig) -> list[Scenario]:
    s = Selectors(config)
    return [sold_out_card_blocks_add(s), reload_is_idempotent(s), detail_stock_consistency(s)]
