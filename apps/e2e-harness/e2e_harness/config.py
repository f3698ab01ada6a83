"""Run configuration injected into every scenario."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_STORE_SLUG = "willysbo"

DEFAULT_ROUTES = {
    "home": "/shop/{store}",
    "catalog": "/shop/{store}/products",
    "product": "/shop/{store}/product/{product_id}",
    "cart": "/shop/{store}/cart",
    "checkout": "/shop/{store}/checkout",
    "confirmation": "/shop/{store}/order-confirmation",
}

DEFAULT_ENDPOINTS = {
    "checkout": "**/functions/v1/storefront-checkout*",
    "notification": "**/functions/v1/forward-order-telegram*",
}

# field name -> environment variables checked in order
ENV_VARS: dict[str, tuple[str, ...]] = {
    "base_url": ("E2E_BASE_URL", "VITE_APP_URL"),
    "store_slug": ("TEST_STORE_SLUG",),
    "tenant_slug": ("TEST_TENANT_SLUG",),
    "results_dir": ("E2E_RESULTS_DIR",),
    "browser": ("E2E_BROWSER",),
    "headless": ("E2E_HEADLESS",),
    "workers": ("E2E_WORKERS",),
    "scenario_timeout_s": ("E2E_SCENARIO_TIMEOUT",),
}


class Timeouts(BaseModel):
    """Per-category bounds in milliseconds; each call still passes its own bound."""

    navigation: int = 15_000
    render: int = 5_000
    network: int = 10_000
    interstitial: int = 2_000


class Interstitial(BaseModel):
    """Blocking modal dismissed after every page load."""

    selector: str = '[data-testid="age-verification-modal"]'
    confirm: str = 'button:has-text("I am 21"), button:has-text("Yes, I am")'


class HarnessConfig(BaseModel):
    """Explicit configuration for one harness run."""

    base_url: str = DEFAULT_BASE_URL
    store_slug: str = DEFAULT_STORE_SLUG
    tenant_slug: str = DEFAULT_STORE_SLUG
    results_dir: Path = Path("test-results")
    browser: str = "chromium"
    headless: bool = True
    workers: int = Field(default=1, ge=1)
    scenario_timeout_s: float = Field(default=120.0, gt=0)
    screenshot_on_failure: bool = True
    poll_interval_ms: int = Field(default=100, gt=0)
    money_epsilon: float = Field(default=0.01, ge=0)
    load_state: str = "networkidle"
    timeouts: Timeouts = Field(default_factory=Timeouts)
    interstitial: Optional[Interstitial] = Field(default_factory=Interstitial)
    routes: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ROUTES))
    endpoints: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    selectors: dict[str, str] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("browser")
    @classmethod
    def _known_browser(cls, value: str) -> str:
        value = value.lower()
        if value not in {"chromium", "firefox", "webkit"}:
            raise ValueError(f"Unsupported browser '{value}'")
        return value

    def endpoint(self, name: str) -> str:
        try:
            return self.endpoints[name]
        except KeyError as exc:
            raise KeyError(f"No endpoint pattern configured for '{name}'") from exc


def load_config(
    config_file: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> HarnessConfig:
    """
    Build the run configuration with priority: CLI overrides > environment > config file > defaults.

    Nested sections (``timeouts``, ``routes``, ``selectors``...) from the config file are merged
    over the defaults instead of replacing them.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    if config_file is not None:
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")
        payload = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        if not isinstance(payload, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
        data.update(payload)

    for field_name, env_names in ENV_VARS.items():
        for env_name in env_names:
            value = environ.get(env_name)
            if value:
                data[field_name] = value
                break

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    defaults = HarnessConfig()
    for key in ("routes", "endpoints"):
        if key in data and isinstance(data[key], dict):
            data[key] = {**getattr(defaults, key), **data[key]}
    if isinstance(data.get("timeouts"), dict):
        data["timeouts"] = {**defaults.timeouts.model_dump(), **data["timeouts"]}

    return HarnessConfig.model_validate(data)
