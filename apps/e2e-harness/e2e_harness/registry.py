"""Scenario discovery from Python modules and YAML files."""

from __future__ import annotations

import importlib
from pathlib import Path
from types import ModuleType
from typing import Iterable, Sequence

from .config import HarnessConfig
from .loader import load_scenarios
from .scenario import Scenario

DEFAULT_MODULES = (
    "storefront_scenarios.catalog",
    "storefront_scenarios.product",
    "storefront_scenarios.cart",
    "storefront_scenarios.checkout",
)


class ScenarioRegistry:
    """Collects scenarios from modules exposing ``scenarios(config)`` and from YAML files."""

    def __init__(
        self,
        config: HarnessConfig,
        *,
        modules: Sequence[str] = DEFAULT_MODULES,
        files: Sequence[Path] = (),
    ) -> None:
        self.config = config
        self.modules = tuple(modules)
        self.files = tuple(files)
        self._modules: dict[str, ModuleType] = {}
        self._scenarios: dict[str, Scenario] | None = None

    def all(self) -> list[Scenario]:
        if self._scenarios is None:
            self._scenarios = {}
            for scenario in self._collect():
                if scenario.name in self._scenarios:
                    raise ValueError(f"Scenario '{scenario.name}' is defined more than once")
                self._scenarios[scenario.name] = scenario
        return list(self._scenarios.values())

    def select(self, names: Iterable[str] = (), tags: Iterable[str] = ()) -> list[Scenario]:
        names = list(names)
        tags = set(tags)
        available = self.all()
        known = {scenario.name for scenario in available}
        unknown = [name for name in names if name not in known]
        if unknown:
            raise KeyError(f"Unknown scenario(s): {', '.join(unknown)}; known: {', '.join(sorted(known))}")
        selected = [scenario for scenario in available if not names or scenario.name in names]
        if tags:
            selected = [scenario for scenario in selected if tags.intersection(scenario.tags)]
        return selected

    def _collect(self) -> list[Scenario]:
        collected: list[Scenario] = []
        for module_name in self.modules:
            module = self._modules.get(module_name)
            if module is None:
                module = importlib.import_module(module_name)
                self._modules[module_name] = module
            factory = getattr(module, "scenarios", None)
            if factory is None:
                raise AttributeError(f"Scenario module {module_name} does not define scenarios(config)")
            collected.extend(factory(self.config))
        for path in self.files:
            collected.extend(load_scenarios(path, self.config))
        return collected
