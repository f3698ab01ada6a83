"""
In-memory page, context and route doubles following the Playwright async API.

A ``Site`` renders a tree of ``FakeNode`` objects for each URL and answers API requests; the
doubles implement the subset of locator, page, context and route calls the harness makes, with
Playwright's semantics for route ordering, fallback, forced clicks on disabled controls and
lazy locator resolution.
"""

from __future__ import annotations

import json
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Optional, Protocol, Union

from playwright.async_api import Error as PlaywrightError

from e2e_harness.browser import BrowserSession
from e2e_harness.interceptor import compile_pattern

ClickHandler = Callable[["FakePage"], Union[None, Awaitable[None]]]

_SIMPLE = re.compile(
    r'^(?P<tag>[a-zA-Z][a-zA-Z0-9]*)?(?P<id>#[\w-]+)?(?P<attrs>(?:\[[^\]]+\])*)'
    r'(?::has-text\("(?P<has>[^"]*)"\))?$'
)
_ATTR = re.compile(r'\[([\w-]+)(?:(\*?=)"([^"]*)")?\]')


class FakeNode:
    """One element of a rendered page."""

    def __init__(
        self,
        tag: str,
        text: str = "",
        *,
        testid: Optional[str] = None,
        id: Optional[str] = None,
        attrs: Optional[dict[str, str]] = None,
        visible: bool = True,
        enabled: bool = True,
        on_click: Optional[ClickHandler] = None,
        children: tuple["FakeNode", ...] = (),
    ) -> None:
        self.tag = tag
        self.text = text
        self.attrs = dict(attrs or {})
        if testid is not None:
            self.attrs["data-testid"] = testid
        if id is not None:
            self.attrs["id"] = id
        self.visible = visible
        self.enabled = enabled
        self.on_click = on_click
        self.value = ""
        self.checked = False
        self.parent: Optional[FakeNode] = None
        self.children: list[FakeNode] = []
        self.add(*children)

    def add(self, *children: "FakeNode") -> "FakeNode":
        for child in children:
            child.parent = self
            self.children.append(child)
        return self

    def descendants(self) -> Iterator["FakeNode"]:
        for child in self.children:
            yield child
            yield from child.descendants()

    def text_content(self) -> str:
        parts = [self.text] + [child.text_content() for child in self.children]
        return " ".join(part for part in parts if part)

    def is_visible(self) -> bool:
        node: Optional[FakeNode] = self
        while node is not None:
            if not node.visible:
                return False
            node = node.parent
        return True

    def matches(self, simple: str) -> bool:
        if simple.startswith("text="):
            return self.text.strip() == simple[5:].strip().strip('"')
        match = _SIMPLE.match(simple.strip())
        if match is None:
            raise PlaywrightError(f"Unsupported selector in fake page: {simple!r}")
        if match.group("tag") and match.group("tag").lower() != self.tag:
            return False
        if match.group("id") and self.attrs.get("id") != match.group("id")[1:]:
            return False
        for name, operator, value in _ATTR.findall(match.group("attrs") or ""):
            if name not in self.attrs:
                return False
            if operator == "=" and self.attrs[name] != value:
                return False
            if operator == "*=" and value not in self.attrs[name]:
                return False
        has_text = match.group("has")
        if has_text is not None and has_text.lower() not in self.text_content().lower():
            return False
        return True

    def __repr__(self) -> str:
        return f"FakeNode({self.tag!r}, {self.text!r}, attrs={self.attrs!r})"


class FakeLocator:
    """Lazily resolved query; every call re-reads the page's current document."""

    def __init__(
        self,
        page: "FakePage",
        parent: Optional["FakeLocator"] = None,
        selector: Optional[str] = None,
        index: Optional[int] = None,
    ) -> None:
        self._page = page
        self._parent = parent
        self._selector = selector
        self._index = index

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self._page, self, None, 0)

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self._page, self, None, index)

    def locator(self, selector: str) -> "FakeLocator":
        return FakeLocator(self._page, self, selector)

    def resolve(self) -> list[FakeNode]:
        nodes = self._parent.resolve() if self._parent is not None else [self._page.document]
        if self._selector is not None:
            nodes = _select(nodes, self._selector)
        if self._index is not None:
            if -len(nodes) <= self._index < len(nodes):
                return [nodes[self._index]]
            return []
        return nodes

    async def count(self) -> int:
        return len(self.resolve())

    async def is_visible(self) -> bool:
        nodes = self.resolve()
        return bool(nodes) and nodes[0].is_visible()

    async def is_enabled(self) -> bool:
        return self._single("is_enabled").enabled

    async def text_content(self) -> Optional[str]:
        nodes = self.resolve()
        return nodes[0].text_content() if nodes else None

    async def click(self, *, force: bool = False, timeout: Optional[float] = None) -> None:
        node = self._single("click")
        if not node.is_visible():
            raise PlaywrightError(f"locator.click: element is not visible ({self.describe()})")
        if not node.enabled:
            if not force:
                raise PlaywrightError(f"locator.click: element is not enabled ({self.describe()})")
            # disabled controls swallow dispatched clicks
            self._page.clicks.append((self.describe(), False))
            return
        self._page.clicks.append((self.describe(), True))
        if node.attrs.get("type") in {"checkbox", "radio"}:
            node.checked = not node.checked if node.attrs.get("type") == "checkbox" else True
        if node.on_click is not None:
            outcome = node.on_click(self._page)
            if outcome is not None:
                await outcome

    async def fill(self, value: str, *, timeout: Optional[float] = None) -> None:
        node = self._single("fill")
        if node.tag not in {"input", "textarea"} or not node.enabled:
            raise PlaywrightError(f"locator.fill: element is not an editable input ({self.describe()})")
        node.value = value

    async def check(self, *, timeout: Optional[float] = None) -> None:
        node = self._single("check")
        if node.attrs.get("type") not in {"checkbox", "radio"}:
            raise PlaywrightError(f"locator.check: not a checkbox or radio ({self.describe()})")
        node.checked = True

    def describe(self) -> str:
        parts = []
        if self._parent is not None:
            parts.append(self._parent.describe())
        if self._selector is not None:
            parts.append(self._selector)
        if self._index is not None:
            parts.append(f"nth={self._index}")
        return " >> ".join(part for part in parts if part)

    def _single(self, action: str) -> FakeNode:
        nodes = self.resolve()
        if not nodes:
            raise PlaywrightError(f"locator.{action}: Timeout waiting for {self.describe()}")
        return nodes[0]


class Site(Protocol):
    def render(self, page: "FakePage", url: str) -> FakeNode: ...

    async def api(self, request: "FakeRequest") -> "FakeResponse": ...


@dataclass
class FakeRequest:
    method: str
    url: str
    post_data: Optional[str] = None


@dataclass
class FakeResponse:
    status: int = 200
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300 and not self.aborted

    async def text(self) -> str:
        return self.body

    async def json(self) -> Any:
        return json.loads(self.body)


class FakeRoute:
    """Handle passed to route handlers; exactly one terminal call settles the request."""

    def __init__(self, context: "FakeContext", request: FakeRequest, remaining: list[Callable[..., Any]]) -> None:
        self.request = request
        self.response: Optional[FakeResponse] = None
        self._context = context
        self._remaining = remaining

    async def fulfill(
        self,
        *,
        response: Optional[FakeResponse] = None,
        status: Optional[int] = None,
        body: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> None:
        merged = dict(response.headers) if response is not None else {}
        merged.update(headers or {})
        if content_type:
            merged["content-type"] = content_type
        self.response = FakeResponse(
            status=status if status is not None else (response.status if response is not None else 200),
            body=body if body is not None else (response.body if response is not None else ""),
            headers=merged,
        )

    async def fetch(self) -> FakeResponse:
        return await self._context.backend(self.request)

    async def fallback(self) -> None:
        self.response = await self._context.dispatch(self.request, self._remaining)

    async def abort(self) -> None:
        self.response = FakeResponse(status=0, aborted=True)


class FakeContext:
    """Browser context double: owns route handlers and the path to the site's backend."""

    def __init__(self, site: Site) -> None:
        self.site = site
        self.routes: list[tuple[Any, Callable[..., Any]]] = []
        self.backend_requests: list[FakeRequest] = []
        self.pages: list[FakePage] = []
        self.closed = False

    async def route(self, pattern: Any, handler: Callable[..., Any]) -> None:
        self.routes.append((pattern, handler))

    async def unroute(self, pattern: Any, handler: Optional[Callable[..., Any]] = None) -> None:
        self.routes = [
            (registered, callback)
            for registered, callback in self.routes
            if not (registered == pattern and (handler is None or callback == handler))
        ]

    async def new_page(self) -> "FakePage":
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True

    async def request(self, method: str, url: str, body: Any = None) -> FakeResponse:
        """Issue a page-originated request through the registered routes."""
        post_data = body if isinstance(body, str) or body is None else json.dumps(body)
        request = FakeRequest(method.upper(), url, post_data)
        handlers = [handler for pattern, handler in reversed(self.routes) if _url_matches(pattern, url)]
        return await self.dispatch(request, handlers)

    async def dispatch(self, request: FakeRequest, handlers: list[Callable[..., Any]]) -> FakeResponse:
        if not handlers:
            return await self.backend(request)
        route = FakeRoute(self, request, handlers[1:])
        await handlers[0](route, request)
        if route.response is None:
            raise PlaywrightError(f"Route handler for {request.url} did not settle the request")
        return route.response

    async def backend(self, request: FakeRequest) -> FakeResponse:
        self.backend_requests.append(request)
        return await self.site.api(request)


class FakePage:
    """Page double rendering documents from its context's site."""

    def __init__(self, context: FakeContext) -> None:
        self.context = context
        self.url = "about:blank"
        self.document = FakeNode("html")
        self.history: list[str] = []
        self.state: dict[str, Any] = {}
        self.clicks: list[tuple[str, bool]] = []
        self.screenshots: list[str] = []
        self.load_states: list[str] = []
        self.navigation_timeouts: list[Optional[float]] = []
        self.reloads = 0

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, None, selector)

    async def goto(self, url: str, *, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> FakeResponse:
        self.navigation_timeouts.append(timeout)
        if self.url != "about:blank":
            self.history.append(self.url)
        self._render(url)
        return FakeResponse(status=200)

    async def reload(self, *, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> FakeResponse:
        self.navigation_timeouts.append(timeout)
        self.reloads += 1
        self._render(self.url)
        return FakeResponse(status=200)

    async def go_back(self, *, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> Optional[FakeResponse]:
        if not self.history:
            return None
        self._render(self.history.pop())
        return FakeResponse(status=200)

    async def wait_for_load_state(self, state: str = "load", *, timeout: Optional[float] = None) -> None:
        self.load_states.append(state)

    async def wait_for_url(self, pattern: Any, *, timeout: Optional[float] = None) -> None:
        if not _url_matches(pattern, self.url):
            raise PlaywrightError(f"page.wait_for_url: Timeout {timeout}ms exceeded waiting for {pattern}")

    async def screenshot(self, *, path: Optional[str] = None, full_page: bool = False) -> bytes:
        data = b"\x89PNG fake"
        if path is not None:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).write_bytes(data)
            self.screenshots.append(path)
        return data

    def navigate(self, url: str) -> None:
        """In-page navigation triggered by click handlers."""
        self.history.append(self.url)
        self._render(url)

    def rerender(self) -> None:
        self._render(self.url)

    async def fetch(self, method: str, url: str, body: Any = None) -> FakeResponse:
        return await self.context.request(method, url, body)

    def _render(self, url: str) -> None:
        self.document = self.context.site.render(self, url)
        self.url = url


class FakeSessionFactory:
    """Session factory double: one fresh context and page per scenario."""

    def __init__(self, site: Site) -> None:
        self.site = site
        self.contexts: list[FakeContext] = []
        self.entered = False
        self.exited = False

    async def __aenter__(self) -> "FakeSessionFactory":
        self.entered = True
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.exited = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        context = FakeContext(self.site)
        self.contexts.append(context)
        page = await context.new_page()
        try:
            yield BrowserSession(context=context, page=page)
        finally:
            await context.close()


class StaticSite:
    """Site serving fixed documents per path and a fixed API table."""

    def __init__(
        self,
        pages: dict[str, Callable[[FakePage], FakeNode]],
        api: Optional[dict[str, Callable[[FakeRequest], FakeResponse]]] = None,
        *,
        origin: str = "http://shop.test",
    ) -> None:
        self.pages = pages
        self.endpoints = api or {}
        self.origin = origin

    def render(self, page: FakePage, url: str) -> FakeNode:
        path = url[len(self.origin):] if url.startswith(self.origin) else url
        builder = self.pages.get(path.split("?", 1)[0])
        if builder is None:
            raise PlaywrightError(f"page.goto: net::ERR_HTTP_RESPONSE_CODE_FAILURE at {url}")
        return FakeNode("html").add(builder(page))

    async def api(self, request: FakeRequest) -> FakeResponse:
        for pattern, handler in self.endpoints.items():
            if compile_pattern(pattern).search(request.url):
                return handler(request)
        return FakeResponse(status=404, body=json.dumps({"error": "not found"}))


def json_response(payload: Any, status: int = 200) -> FakeResponse:
    return FakeResponse(status=status, body=json.dumps(payload), headers={"content-type": "application/json"})


def _select(roots: list[FakeNode], selector: str) -> list[FakeNode]:
    current = roots
    for segment in (part.strip() for part in selector.split(">>")):
        if segment.startswith("nth="):
            index = int(segment[4:])
            current = [current[index]] if -len(current) <= index < len(current) else []
            continue
        alternatives = _split_union(segment)
        found: list[FakeNode] = []
        seen: set[int] = set()
        for root in current:
            for node in root.descendants():
                if id(node) not in seen and any(node.matches(alt) for alt in alternatives):
                    seen.add(id(node))
                    found.append(node)
        current = found
    return current


def _split_union(selector: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    quote: Optional[str] = None
    start = 0
    for index, char in enumerate(selector):
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append(selector[start:index].strip())
            start = index + 1
    parts.append(selector[start:].strip())
    return [part for part in parts if part]


def _url_matches(pattern: Any, url: str) -> bool:
    if isinstance(pattern, re.Pattern):
        return pattern.search(url) is not None
    return compile_pattern(pattern).search(url) is not None
