"""Checkout scenarios covering order creation, notification forwarding and the confirmation page."""

from __future__ import annotations

from e2e_harness import probes, steps
from e2e_harness.config import HarnessConfig
from e2e_harness.interceptor import InterceptRule, PassThrough, Substitute
from e2e_harness.scenario import Branch, Scenario, scenario, variant

from . import flows
from .contract import (
    NOTIFY_CUSTOMER,
    NOTIFY_ITEMS,
    NOTIFY_ORDER_ID,
    NOTIFY_TENANT,
    ORDER_CONTACT_LINK,
    ORDER_ERROR,
    ORDER_ID,
    ORDER_NUMBER,
    Selectors,
)

CONFIRMATION_URL = "**/order-confirmation**"


def checkout_rule(config: HarnessConfig) -> InterceptRule:
    return InterceptRule(
        name="checkout",
        pattern=config.endpoint("checkout"),
        method="POST",
        behavior=PassThrough(),
        required=True,
    )


def survives_notification_outage(s: Selectors, config: HarnessConfig) -> Scenario:
    outage = InterceptRule(
        name="notification",
        pattern=config.endpoint("notification"),
        behavior=Substitute(status=500, body={"error": "notification service unavailable"}),
        required=True,
    )
    return scenario(
        "checkout-survives-notification-outage",
        [
            steps.arm_intercept(outage),
            steps.arm_intercept(checkout_rule(config)),
            *flows.open_catalog(s),
            *flows.add_in_stock_product(s, "item"),
            *flows.complete_checkout(s),
            steps.capture_call("checkout", "order"),
            steps.expect_call(
                "checkout",
                status=200,
                response_truthy=(ORDER_ID, ORDER_NUMBER),
                response_absent=(ORDER_ERROR,),
            ),
            steps.expect_call("notification", status=500),
            steps.wait_for_url(CONFIRMATION_URL),
            flows.assert_order_number_rendered(s, "order"),
        ],
        description="A failing order notification must not fail order creation or confirmation.",
        tags=("checkout", "resilience"),
    )


def forwards_order_notification(s: Selectors, config: HarnessConfig) -> Scenario:
    return scenario(
        "checkout-forwards-order-notification",
        [
            steps.arm_intercept(
                InterceptRule(
                    name="notification",
                    pattern=config.endpoint("notification"),
                    behavior=PassThrough(),
                    required=True,
                )
            ),
            steps.arm_intercept(checkout_rule(config)),
            *flows.open_catalog(s),
            *flows.add_in_stock_product(s, "item"),
            *flows.complete_checkout(s),
            steps.capture_call("checkout", "order"),
            steps.expect_call(
                "notification",
                request_equals={NOTIFY_ORDER_ID: steps.response_field("order", ORDER_ID)},
                request_truthy=(NOTIFY_TENANT, NOTIFY_CUSTOMER, NOTIFY_ITEMS),
            ),
            steps.wait_for_url(CONFIRMATION_URL),
        ],
        description="The order notification carries the created order's id, tenant, customer and items.",
        tags=("checkout", "notifications"),
    )


def confirmation_total_matches_cart(s: Selectors, config: HarnessConfig) -> Scenario:
    return scenario(
        "checkout-confirmation-total-matches-cart",
        [
            steps.arm_intercept(checkout_rule(config)),
            *flows.open_catalog(s),
            *flows.add_in_stock_product(s, "item"),
            *flows.open_cart(s),
            steps.capture_money(s.cart_subtotal, "cart_subtotal"),
            *flows.complete_checkout(s),
            steps.wait_for_call("checkout"),
            steps.wait_for_url(CONFIRMATION_URL),
            steps.assert_money(s.order_total, steps.captured("cart_subtotal")),
        ],
        description="The confirmation total equals the cart subtotal.",
        tags=("checkout", "pricing"),
    )


def confirmation_contact_link(s: Selectors, config: HarnessConfig) -> Scenario:
    return scenario(
        "checkout-confirmation-contact-link",
        [
            steps.arm_intercept(checkout_rule(config)),
            *flows.open_catalog(s),
            *flows.add_in_stock_product(s, "item"),
            *flows.complete_checkout(s),
            steps.capture_call("checkout", "order"),
            steps.wait_for_url(CONFIRMATION_URL),
            Branch(
                name="order contact link",
                probe=probes.truthy(steps.response_field("order", ORDER_CONTACT_LINK)),
                when_true=variant("link-configured", [flows.assert_contact_link_rendered("order")]),
                when_false=variant("no-link", [steps.assert_hidden(s.contact_link)]),
            ),
        ],
        description="The confirmation page links to the store contact only when the order response names one.",
        tags=("checkout", "notifications"),
    )


def scenarios(config: HarnessConfig) -> list[Scenario]:
    s = Selectors(config)
    return [
        survives_notification_outage(s, config),
        forwards_order_notification(s, config),
        confirmation_total_matches_cart(s, config),
        confirmation_contact_link(s, config),
    ]
