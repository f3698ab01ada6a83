from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from e2e_harness.loader import ScenarioLoadError, load_scenarios
from e2e_harness.models import Outcome
from e2e_harness.output_config import OutputFormat
from e2e_harness.runner import ScenarioRunner
from e2e_harness.scenario import Branch, Step

from fakes import FakeSessionFactory
from harness_support import demo_site, make_config

CARD = '[data-testid="product-card"]'
FIRST_PRICE = f'{CARD} >> nth=0 >> [data-testid="product-price"]'


def _write(tmp_path: Path, payload: Any) -> Path:
    path = tmp_path / "scenarios.yaml"
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def _documents() -> dict[str, Any]:
    return {
        "scenarios": [
            {
                "name": "yaml-sold-out",
                "tags": ["catalog"],
                "steps": [
                    {"do": "navigate", "route": "catalog"},
                    {"do": "require", "probe": {"kind": "exists", "selector": CARD}, "reason": "empty catalog"},
                    {
                        "branch": "sold-out card",
                        "probe": {"kind": "find_first", "selector": CARD, "key": "sold", "has": 'text="Sold Out"'},
                        "when_true": {
                            "name": "sold-out",
                            "steps": [{"do": "assert_disabled", "target": {"in": "sold", "selector": "button"}}],
                        },
                        "when_false": {"name": "all-in-stock"},
                    },
                    {"do": "assert_text", "target": f"{CARD} >> nth=0 >> h3", "matcher": {"contains": "Lemon"}},
                    {"do": "capture_money", "target": FIRST_PRICE, "key": "first_price"},
                    {"do": "assert_money", "target": FIRST_PRICE, "expected": {"captured": "first_price"}},
                ],
            },
            {
                "name": "yaml-order-outage",
                "steps": [
                    {
                        "do": "arm_intercept",
                        "rule": {
                            "endpoint": "orders",
                            "behavior": {"mode": "substitute", "status": 500, "body": {"error": "down"}},
                            "required": True,
                        },
                    },
                    {"do": "navigate", "route": "cart"},
                    {"do": "click", "target": 'button:has-text("Place Order")'},
                    {"do": "expect_call", "rule": "orders", "status": 500, "response_truthy": ["error"]},
                ],
            },
        ]
    }


async def test_yaml_scenarios_compile_and_run(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    scenarios = load_scenarios(_write(tmp_path, _documents()), config)

    assert [item.name for item in scenarios] == ["yaml-sold-out", "yaml-order-outage"]
    sold_out = scenarios[0]
    assert sold_out.tags == ("catalog",)
    assert isinstance(sold_out.steps[2], Branch)
    assert sold_out.steps[2].when_false.steps == ()
    assert isinstance(sold_out.steps[0], Step)
    assert sold_out.steps[0].name == "open catalog"

    runner = ScenarioRunner(
        config=config,
        run_id="yaml",
        sessions=FakeSessionFactory(demo_site()),
        output_format=OutputFormat.PLAIN,
    )
    summary = await runner.run(scenarios)

    assert [result.outcome for result in summary.scenarios] == [Outcome.PASSED, Outcome.PASSED]
    assert summary.scenarios[0].variants == ["sold-out"]


def test_single_document_file(tmp_path: Path) -> None:
    path = _write(tmp_path, {"name": "one", "steps": [{"do": "reload"}]})

    [loaded] = load_scenarios(path)

    assert loaded.name == "one"


@pytest.mark.parametrize(
    "steps, message",
    [
        ([{"do": "teleport"}], "teleport"),
        ([], "invalid"),
        ([{"do": "pause", "ms": 9000, "reason": "too long"}], "pause"),
        ([{"do": "arm_intercept", "rule": {"endpoint": "refunds"}}], "refunds"),
        ([{"do": "assert_text", "target": "h1", "matcher": {"fuzzy": "x"}}], "matcher"),
        ([{"do": "require", "reason": "no probe"}], "probe"),
    ],
)
def test_invalid_documents_are_rejected(tmp_path: Path, steps: list[dict[str, Any]], message: str) -> None:
    path = _write(tmp_path, {"name": "broken", "steps": steps})

    with pytest.raises(ScenarioLoadError) as excinfo:
        load_scenarios(path, make_config(tmp_path))

    assert message in str(excinfo.value)


def test_non_mapping_file_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, ["navigate"])

    with pytest.raises(ScenarioLoadError):
        load_scenarios(path)
