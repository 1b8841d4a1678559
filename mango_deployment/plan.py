import typing
from collections import OrderedDict
from typing import Any, Callable, Iterable, List, Optional

from mango_deployment.constants import SUPPORTED_CHAIN_IDS


class DeploymentStep(typing.NamedTuple):
    """A deployment function, the tags it provides and the tags it depends on."""

    name: str
    function: Callable[[Any], Optional[List[Any]]]
    tags: typing.Tuple[str, ...]
    dependencies: typing.Tuple[str, ...]
    chain_ids: typing.FrozenSet[int]


class DeploymentPlan:
    """
    An ordered collection of deployment steps.

    Steps are resolved the way tagged deployment scripts are: a step runs after every
    step providing one of its dependency tags, each step runs at most once, and the
    registration order is kept wherever dependencies allow it.
    """

    class Invalid(Exception):
        """Raised when the plan cannot be resolved"""

    def __init__(self):
        self._steps: typing.Dict[str, DeploymentStep] = OrderedDict()

    @property
    def steps(self) -> List[DeploymentStep]:
        return list(self._steps.values())

    @property
    def tags(self) -> List[str]:
        tags = list()
        for step in self._steps.values():
            tags.extend(tag for tag in step.tags if tag not in tags)
        return tags

    def step(
        self,
        tags: Iterable[str],
        dependencies: Iterable[str] = (),
        chain_ids: Iterable[int] = SUPPORTED_CHAIN_IDS,
    ) -> Callable:
        """Registers the decorated function as a deployment step."""

        def decorator(function: Callable) -> Callable:
            name = function.__name__
            if name in self._steps:
                raise self.Invalid(f"Deployment step '{name}' is already registered.")
            self._steps[name] = DeploymentStep(
                name=name,
                function=function,
                tags=tuple(tags),
                dependencies=tuple(dependencies),
                chain_ids=frozenset(chain_ids),
            )
            return function

        return decorator

    def providers(self, tag: str) -> List[DeploymentStep]:
        """Returns the steps providing a tag."""
        providers = [step for step in self._steps.values() if tag in step.tags]
        if not providers:
            raise self.Invalid(f"No deployment step provides tag '{tag}'.")
        return providers

    def resolve(self, tags: Optional[Iterable[str]] = None) -> List[DeploymentStep]:
        """Returns the steps to run for the given tags (all steps if none), in order."""
        if tags:
            selected = list()
            for tag in tags:
                selected.extend(step for step in self.providers(tag) if step not in selected)
            # keep registration order among the requested steps
            selected.sort(key=self.steps.index)
        else:
            selected = self.steps

        ordered = list()
        visiting = list()

        def visit(step: DeploymentStep) -> None:
            if step in ordered:
                return
            if step in visiting:
                cycle = " -> ".join(s.name for s in visiting[visiting.index(step) :])
                raise self.Invalid(f"Dependency cycle detected: {cycle} -> {step.name}")
            visiting.append(step)
            for dependency in step.dependencies:
                for provider in self.providers(dependency):
                    visit(provider)
            visiting.pop()
            ordered.append(step)

        for step in selected:
            visit(step)
        return ordered

    def run(self, deployer, tags: Optional[Iterable[str]] = None) -> OrderedDict:
        """
        Runs the resolved steps with the deployer and returns their results by step name.
        Steps that do not target the deployer's chain are skipped.
        """
        results = OrderedDict()
        for step in self.resolve(tags):
            if deployer.chain_id not in step.chain_ids:
                print(f"\n(i) Skipping {step.name}: not deployed on chain {deployer.chain_id}")
                continue
            print(f"\n--- {step.name} ({', '.join(step.tags)}) ---")
            results[step.name] = step.function(deployer) or list()
        return results
