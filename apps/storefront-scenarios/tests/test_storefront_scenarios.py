from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Iterable

import pytest

from e2e_harness.config import HarnessConfig
from e2e_harness.models import Outcome, RunSummary, ScenarioResult
from e2e_harness.output_config import OutputFormat
from e2e_harness.registry import ScenarioRegistry
from e2e_harness.runner import ScenarioRunner
from storefront_scenarios.contract import DEFAULT_SELECTORS, Selectors

from fakes import FakeSessionFactory
from fake_storefront import PRODUCTS, Product, Storefront, storefront_config

BUNDLED = {
    "catalog-sold-out-card-blocks-add",
    "catalog-reload-is-idempotent",
    "catalog-detail-stock-consistency",
    "product-out-of-stock-detail-disabled",
    "cart-subtotal-sums-items",
    "cart-survives-reload",
    "checkout-survives-notification-outage",
    "checkout-forwards-order-notification",
    "checkout-confirmation-total-matches-cart",
    "checkout-confirmation-contact-link",
}


async def _run(tmp_path: Path, site: Storefront, names: Iterable[str] = (), **overrides) -> RunSummary:
    config = storefront_config(tmp_path, **overrides)
    selected = ScenarioRegistry(config).select(names=names)
    runner = ScenarioRunner(
        config=config,
        run_id="storefront",
        sessions=FakeSessionFactory(site),
        output_format=OutputFormat.PLAIN,
    )
    return await runner.run(selected)


def _by_name(summary: RunSummary) -> dict[str, ScenarioResult]:
    return {result.scenario: result for result in summary.scenarios}


def test_registry_bundles_storefront_scenarios() -> None:
    registry = ScenarioRegistry(HarnessConfig())

    assert {scenario.name for scenario in registry.all()} == BUNDLED
    assert {scenario.name for scenario in registry.select(tags=["checkout"])} == {
        name for name in BUNDLED if name.startswith("checkout-")
    }
    with pytest.raises(KeyError):
        registry.select(names=["checkout-with-card"])


def test_selectors_follow_config_overrides() -> None:
    selectors = Selectors(HarnessConfig(selectors={"place_order": "#submit-order"}))

    assert selectors.place_order == "#submit-order"
    assert selectors.cart_subtotal == DEFAULT_SELECTORS["cart_subtotal"]
    with pytest.raises(AttributeError):
        selectors.wishlist_button


async def test_healthy_storefront_passes_every_scenario(tmp_path: Path) -> None:
    site = Storefront()

    summary = await _run(tmp_path, site, workers=4)

    failures = {result.scenario: result.error for result in summary.scenarios if result.outcome != Outcome.PASSED}
    assert failures == {}
    assert summary.exit_code == 0
    results = _by_name(summary)
    assert results["catalog-sold-out-card-blocks-add"].variants == ["sold-out"]
    assert results["product-out-of-stock-detail-disabled"].soft_failures == []
    assert "no-link" in results["checkout-confirmation-contact-link"].variants
    assert len(site.orders) == 4


async def test_notification_outage_keeps_order_and_skips_backend(tmp_path: Path) -> None:
    site = Storefront()

    summary = await _run(tmp_path, site, ["checkout-survives-notification-outage"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.PASSED, result.error
    assert len(site.orders) == 1
    assert site.notifications == []
    notification_calls = [call for call in result.calls if call["rule"] == "notification"]
    assert notification_calls[0]["substituted"] is True
    assert notification_calls[0]["status"] == 500
    assert result.captures["order"]["response_body"]["orderId"] == site.orders[0]["orderId"]


async def test_order_blocked_by_notification_outage_fails(tmp_path: Path) -> None:
    site = Storefront(order_needs_notification=True)

    summary = await _run(tmp_path, site, ["checkout-survives-notification-outage"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.FAILED
    assert result.error_type == "NavigationError"
    assert result.failed_step == "wait for url **/order-confirmation**"
    assert result.screenshot and Path(result.screenshot).exists()
    assert summary.exit_code == 1


async def test_forwarded_notification_carries_order_id(tmp_path: Path) -> None:
    site = Storefront()

    summary = await _run(tmp_path, site, ["checkout-forwards-order-notification"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.PASSED, result.error
    [notification] = site.notifications
    assert notification["orderId"] == site.orders[0]["orderId"]
    assert notification["customerName"] == "E2E Shopper"


async def test_confirmation_total_matches_cart(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(), ["checkout-confirmation-total-matches-cart"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.PASSED, result.error
    assert result.captures["cart_subtotal"] == "12.50"


async def test_confirmation_links_configured_contact(tmp_path: Path) -> None:
    link = "https://t.me/demo_store"

    summary = await _run(tmp_path, Storefront(contact_link=link), ["checkout-confirmation-contact-link"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.PASSED, result.error
    assert "link-configured" in result.variants
    assert "no-link" not in result.variants
    assert result.captures["order"]["response_body"]["telegramLink"] == link
    assert "confirmation links to order contact" in [step.name for step in result.steps]


async def test_confirmation_without_contact_link_shows_none(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(), ["checkout-confirmation-contact-link"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.PASSED, result.error
    assert "no-link" in result.variants
    assert "telegramLink" not in result.captures["order"]["response_body"]


async def test_enabled_sold_out_add_is_caught(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(sold_out_add_enabled=True), ["catalog-sold-out-card-blocks-add"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.FAILED
    assert result.error_type == "HarnessAssertionError"
    assert result.detail["expected"] == "disabled"
    assert result.variants == ["sold-out"]


async def test_subtotal_drift_is_caught(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(subtotal_offset=Decimal("1.00")), ["cart-subtotal-sums-items"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.FAILED
    assert "12.50" in result.detail["expected"]
    assert "$13.50" in result.detail["actual"]


async def test_cart_survives_reload(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(), ["cart-survives-reload"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.PASSED, result.error
    assert result.captures["subtotal_before"] == result.captures["subtotal_after"] == "12.50"
    assert result.captures["count_before"] == result.captures["count_after"] == 1


async def test_cart_lost_on_reload_is_caught(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(cart_lost_on_reload=True), ["cart-survives-reload"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.FAILED
    assert result.failed_step == f'{DEFAULT_SELECTORS["cart_item"]} is visible'
    assert "subtotal_after" not in result.captures


async def test_subtotal_change_on_reload_is_caught(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(reload_subtotal_drift=Decimal("0.50")), ["cart-survives-reload"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.FAILED
    assert result.failed_step == "subtotal unchanged after reload"
    assert result.detail["actual"] == "12.50"
    assert "13.00" in result.detail["expected"]


async def test_flaky_badges_fail_reload_check(tmp_path: Path) -> None:
    summary = await _run(tmp_path, Storefront(flaky_badges=True), ["catalog-reload-is-idempotent"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.FAILED
    assert result.error_type == "HarnessAssertionError"


async def test_catalog_without_sold_out_products(tmp_path: Path) -> None:
    in_stock = tuple(product for product in PRODUCTS if not product.sold_out)

    summary = await _run(
        tmp_path,
        Storefront(in_stock),
        ["catalog-sold-out-card-blocks-add", "product-out-of-stock-detail-disabled"],
    )

    results = _by_name(summary)
    sold_out = results["catalog-sold-out-card-blocks-add"]
    assert sold_out.outcome == Outcome.PASSED
    assert sold_out.variants == ["all-in-stock"]
    detail = results["product-out-of-stock-detail-disabled"]
    assert detail.outcome == Outcome.SKIPPED
    assert detail.skip_reason == "no sold-out product in the catalog"
    assert summary.exit_code == 0


async def test_cart_scenario_skips_without_two_in_stock_products(tmp_path: Path) -> None:
    catalog = (Product("p1", "Lemon Haze 3.5g", Decimal("12.50")), Product("p2", "Gummies", Decimal("18.00"), sold_out=True))

    summary = await _run(tmp_path, Storefront(catalog), ["cart-subtotal-sums-items"])

    [result] = summary.scenarios
    assert result.outcome == Outcome.SKIPPED
    assert result.skip_reason == "catalog needs two in-stock products"
