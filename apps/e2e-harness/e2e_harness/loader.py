"""Declarative YAML scenarios compiled into step and branch structures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from pydantic import ValidationError

from . import probes, steps
from .config import HarnessConfig
from .interceptor import InterceptRule
from .matchers import CloseTo, Contains, Exact, Regex
from .models import BranchSpec, NodeSpec, ProbeSpec, ScenarioDocument, ScenarioFile, StepSpec, VariantSpec
from .scenario import Branch, Node, Probe, Scenario, Variant

STEP_FACTORIES: dict[str, Callable[..., Any]] = {
    name: getattr(steps, name)
    for name in (
        "navigate",
        "reload",
        "back",
        "wait_for_url",
        "dismiss_interstitial",
        "assert_visible",
        "assert_hidden",
        "assert_enabled",
        "assert_disabled",
        "assert_text",
        "assert_count",
        "click",
        "fill",
        "check",
        "capture_text",
        "capture_money",
        "capture_count",
        "capture_call",
        "assert_money",
        "assert_captures_equal",
        "assert_captured_close",
        "arm_intercept",
        "wait_for_call",
        "expect_call",
        "pause",
        "screenshot",
    )
}

_VALUE_REFS = {
    "captured": lambda value: steps.captured(value),
    "captured_sum": lambda value: steps.captured_sum(*value),
    "response_field": lambda value: steps.response_field(*value),
    "request_field": lambda value: steps.request_field(*value),
}

_MATCHERS = {
    "exact": Exact,
    "contains": Contains,
    "regex": Regex,
    "money": CloseTo.of,
}


class ScenarioLoadError(ValueError):
    """Raised when a scenario document cannot be compiled."""


def load_scenarios(path: Path, config: Optional[HarnessConfig] = None) -> list[Scenario]:
    """Load a YAML file holding one scenario or a ``scenarios:`` list."""

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ScenarioLoadError(f"Scenario file {path} must contain a mapping")
    try:
        if "scenarios" in data:
            documents = ScenarioFile.model_validate(data).scenarios
        else:
            documents = [ScenarioDocument.model_validate(data)]
    except ValidationError as exc:
        raise ScenarioLoadError(f"Scenario file {path} is invalid: {exc}") from exc
    return [compile_document(document, config or HarnessConfig()) for document in documents]


def compile_document(document: ScenarioDocument, config: HarnessConfig) -> Scenario:
    nodes = [_compile_node(node, config, document.name) for node in document.steps]
    return Scenario(
        name=document.name,
        steps=tuple(nodes),
        description=document.description,
        tags=tuple(document.tags),
        timeout_s=document.timeout_s,
    )


def _compile_node(node: NodeSpec, config: HarnessConfig, scenario: str) -> Node:
    if isinstance(node, BranchSpec):
        return Branch(
            name=node.branch,
            probe=_compile_probe(node.probe),
            when_true=_compile_variant(node.when_true, config, scenario),
            when_false=_compile_variant(node.when_false, config, scenario),
            unmet_reason=node.unmet_reason,
        )
    return _compile_step(node, config, scenario)


def _compile_variant(spec: Optional[VariantSpec], config: HarnessConfig, scenario: str) -> Optional[Variant]:
    if spec is None:
        return None
    return Variant(spec.name, tuple(_compile_node(node, config, scenario) for node in spec.steps))


def _compile_probe(spec: ProbeSpec) -> Probe:
    if spec.kind == "exists":
        return probes.exists(spec.selector, timeout_ms=spec.timeout_ms)
    if spec.kind == "visible":
        return probes.visible(spec.selector, timeout_ms=spec.timeout_ms)
    if spec.kind == "count_at_least":
        return probes.count_at_least(spec.selector, spec.minimum, timeout_ms=spec.timeout_ms)
    if not spec.key:
        raise ScenarioLoadError(f"find_first probe on {spec.selector!r} needs a capture key")
    return probes.find_first(
        spec.selector, spec.key, has=spec.has, lacks=spec.lacks, skip=spec.skip, timeout_ms=spec.timeout_ms
    )


def _compile_step(spec: StepSpec, config: HarnessConfig, scenario: str) -> Node:
    arguments = spec.arguments()
    if spec.do == "require":
        if "probe" not in arguments:
            raise ScenarioLoadError(f"{scenario}: require step needs a probe")
        probe = _compile_probe(ProbeSpec.model_validate(arguments.pop("probe")))
        return steps.require(probe, arguments.pop("reason", None))

    factory = STEP_FACTORIES.get(spec.do)
    if factory is None:
        raise ScenarioLoadError(f"{scenario}: unknown step '{spec.do}'; known steps: {sorted(STEP_FACTORIES)}")

    if isinstance(arguments.get("target"), dict):
        scope = arguments["target"]
        arguments["target"] = steps.in_captured(scope["in"], scope.get("selector"))
    if "matcher" in arguments:
        arguments["matcher"] = _matcher(arguments["matcher"], scenario)
    if "expected" in arguments:
        arguments["expected"] = _value(arguments["expected"])
    if "second" in arguments and isinstance(arguments["second"], dict):
        arguments["second"] = _value(arguments["second"])
    if "rule" in arguments and isinstance(arguments["rule"], dict):
        arguments["rule"] = _rule(arguments["rule"], config, scenario)
    for key in ("response_equals", "request_equals"):
        if key in arguments:
            arguments[key] = {path: _value(value) for path, value in arguments[key].items()}

    try:
        return factory(**arguments)
    except (TypeError, ValueError) as exc:
        raise ScenarioLoadError(f"{scenario}: step '{spec.do}' has invalid arguments: {exc}") from exc


def _rule(payload: dict[str, Any], config: HarnessConfig, scenario: str) -> InterceptRule:
    payload = dict(payload)
    endpoint = payload.pop("endpoint", None)
    if endpoint is not None:
        try:
            payload.setdefault("pattern", config.endpoint(endpoint))
        except KeyError as exc:
            raise ScenarioLoadError(f"{scenario}: {exc.args[0]}") from exc
        payload.setdefault("name", endpoint)
    try:
        return InterceptRule.model_validate(payload)
    except ValidationError as exc:
        raise ScenarioLoadError(f"{scenario}: invalid intercept rule: {exc}") from exc


def _matcher(value: Any, scenario: str) -> Any:
    if isinstance(value, str):
        return Exact(value)
    if isinstance(value, dict) and len(value) == 1:
        kind, argument = next(iter(value.items()))
        if kind in _MATCHERS:
            return _MATCHERS[kind](argument)
    raise ScenarioLoadError(f"{scenario}: matcher must be text or one of {sorted(_MATCHERS)}, got {value!r}")


def _value(value: Any) -> Any:
    if isinstance(value, dict) and len(value) == 1:
        kind, argument = next(iter(value.items()))
        if kind in _VALUE_REFS:
            return _VALUE_REFS[kind](argument)
    return value
