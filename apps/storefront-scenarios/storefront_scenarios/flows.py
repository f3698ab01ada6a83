"""Step sequences shared by storefront scenarios."""

from __future__ import annotations

from typing import Optional

from e2e_harness import probes, steps
from e2e_harness.errors import HarnessAssertionError
from e2e_harness.interceptor import InterceptedCall
from e2e_harness.matchers import Contains, Regex
from e2e_harness.scenario import Branch, Node, ScenarioContext, Step, StepKind, variant

from .contract import ORDER_CONTACT_LINK, ORDER_NUMBER, TEST_CUSTOMER, Selectors


def open_catalog(s: Selectors) -> list[Node]:
    return [
        steps.navigate("catalog"),
        steps.require(probes.exists(s.product_card), "catalog has no products"),
    ]


def read_cart_count(s: Selectors):
    """Reader for the header cart badge; an absent badge means an empty cart."""

    async def read(ctx: ScenarioContext) -> int:
        badge = await ctx.locators.find(s.cart_count)
        if badge is None:
            return 0
        text = (await badge.handle.text_content() or "").strip()
        if not text:
            return 0
        if not text.isdigit():
            raise HarnessAssertionError("cart count is not a number", selector=s.cart_count, actual=text)
        return int(text)

    return read


def capture_cart_count(s: Selectors, key: str) -> Step:
    return steps.capture_state(key, read_cart_count(s), name=f"capture cart count as {key}", target=s.cart_count)


def open_product(target: steps.Target, s: Selectors) -> list[Node]:
    """Click into a product detail page and wait for its purchase control."""
    return [
        steps.click(target, name="open product detail"),
        steps.assert_visible(s.product_title),
        steps.assert_visible(s.add_to_cart),
    ]


def add_in_stock_product(s: Selectors, key: str, *, skip: int = 0, price_key: Optional[str] = None) -> list[Node]:
    """Capture an in-stock catalog card under ``key`` and add it from the card's control."""
    nodes: list[Node] = [
        steps.require(
            probes.find_first(s.product_card, key, lacks=s.sold_out_badge, skip=skip),
            f"catalog needs at least {skip + 1} in-stock product(s)",
        ),
    ]
    if price_key:
        nodes.append(steps.capture_money(steps.in_captured(key, s.product_price), price_key))
    nodes += [
        steps.assert_enabled(steps.in_captured(key, s.card_add_button)),
        steps.click(steps.in_captured(key, s.card_add_button), name=f"add {key} to cart"),
        steps.assert_text(s.cart_count, Regex(r"[1-9]"), name="cart badge shows items"),
    ]
    return nodes


def open_cart(s: Selectors) -> list[Node]:
    return [
        steps.navigate("cart"),
        steps.assert_visible(s.cart_item),
    ]


def optional(name: str, selector: str, when_present: list[Node], *, timeout_ms: int = 1_500) -> Branch:
    """Run ``when_present`` only if ``selector`` shows up; storefront configurations differ."""
    return Branch(
        name=name,
        probe=probes.visible(selector, timeout_ms=timeout_ms),
        when_true=variant(f"{name}: present", when_present),
        when_false=variant(f"{name}: absent"),
    )


def complete_checkout(s: Selectors) -> list[Node]:
    """Fill the guest checkout as a cash pickup order and place it."""
    return [
        steps.navigate("checkout"),
        steps.fill(s.first_name, TEST_CUSTOMER["first_name"]),
        steps.fill(s.last_name, TEST_CUSTOMER["last_name"]),
        steps.fill(s.email, TEST_CUSTOMER["email"]),
        steps.fill(s.phone, TEST_CUSTOMER["phone"]),
        steps.click(s.continue_button, name="continue to fulfilment"),
        optional("pickup", s.pickup_option, [steps.click(s.pickup_option, name="choose pickup")]),
        steps.click(s.continue_button, name="continue to payment"),
        steps.click(s.cash_option, name="pay with cash"),
        steps.click(s.continue_button, name="continue to review"),
        optional("age confirmation", s.age_checkbox, [steps.check(s.age_checkbox)]),
        optional("terms", s.terms_checkbox, [steps.check(s.terms_checkbox)]),
        steps.assert_enabled(s.place_order),
        steps.click(s.place_order, name="place order"),
    ]


def assert_order_number_rendered(s: Selectors, call_key: str) -> Step:
    """The confirmation page shows the order number returned by order creation."""

    async def action(ctx: ScenarioContext) -> str:
        call = ctx.captures.get(call_key)
        if not isinstance(call, InterceptedCall) or not isinstance(call.response_body, dict):
            raise HarnessAssertionError(f"captured '{call_key}' holds no order response")
        number = call.response_body.get(ORDER_NUMBER)
        if not number:
            raise HarnessAssertionError("order response has no order number", expected=ORDER_NUMBER, actual=number)
        return await ctx.locators.assert_text(
            s.order_number,
            Contains(str(number)),
            timeout_ms=ctx.config.timeouts.render,
        )

    return Step("confirmation shows order number", StepKind.ASSERT, action, s.order_number, "order number")


def assert_contact_link_rendered(call_key: str) -> Step:
    """The confirmation page links to the contact channel named in the order response."""

    async def action(ctx: ScenarioContext) -> str:
        link = steps.response_field(call_key, ORDER_CONTACT_LINK).resolve(ctx)
        await ctx.locators.assert_visible(f'a[href="{link}"]', timeout_ms=ctx.config.timeouts.render)
        return link

    return Step("confirmation links to order contact", StepKind.ASSERT, action, "a[href]", ORDER_CONTACT_LINK)


def cart_unchanged(s: Selectors, before: str, after: str) -> list[Node]:
    return [
        capture_cart_count(s, after),
        steps.assert_captures_equal(before, after, name="cart count unchanged"),
    ]
