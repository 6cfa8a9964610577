"""Named analysis steps, their parameter models and plugin discovery.

Configured ``steps`` lists (see ``AnalysisConfig.steps``) are resolved here
into a :class:`Pipeline`. A definition is a step name, a ``(name, params)``
pair, or a mapping with ``name`` and ``params``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from importlib import metadata
from typing import Any

from pydantic import BaseModel, ValidationError

from lisaflow.core.errors import InvalidConfigurationError
from lisaflow.core.pipeline import Pipeline, Step
from lisaflow.core.utils import get_logger

StepDefinition = str | tuple[str, Mapping[str, Any] | None] | Mapping[str, Any]

logger = get_logger(__name__)

STEP_TAGS = frozenset({"geometry", "filter", "weights", "autocorrelation"})


@dataclass(frozen=True, slots=True)
class StepSpec:
    """A registered step class with its tags and optional parameter model."""

    name: str
    cls: type[Step]
    tags: frozenset[str] = field(default_factory=frozenset)
    description: str | None = None
    config_model: type[BaseModel] | None = None

    def parse_params(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """Validate *params* against the parameter model, if there is one."""
        if self.config_model is None:
            return dict(params or {})
        try:
            return self.config_model(**dict(params or {})).model_dump()
        except ValidationError as e:
            raise InvalidConfigurationError(f"Invalid params for step {self.name!r}: {e}") from None


def parse_definition(entry: StepDefinition) -> tuple[str, Mapping[str, Any] | None]:
    """Split a step definition into its name and params."""
    if isinstance(entry, str):
        return entry, None
    if isinstance(entry, tuple) and len(entry) == 2:
        name, params = entry
    elif isinstance(entry, Mapping):
        name = entry.get("name")
        params = entry.get("params")
        unknown = set(entry) - {"name", "params"}
        if unknown:
            raise InvalidConfigurationError(
                f"Unrecognised keys in step definition: {sorted(unknown)}"
            )
    else:
        raise InvalidConfigurationError(
            f"A step is a name, a (name, params) pair or a mapping with 'name'; got {entry!r}"
        )
    if not isinstance(name, str):
        raise InvalidConfigurationError(f"Step definition needs a string 'name', got {name!r}")
    if params is not None and not isinstance(params, Mapping):
        raise InvalidConfigurationError(f"Params of step {name!r} must be a mapping")
    return name, params


class StepRegistry:
    """Steps available to configured pipelines, by name."""

    entry_point_group = "lisaflow.steps"

    def __init__(self) -> None:
        self._specs: dict[str, StepSpec] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def register(
        self,
        name: str,
        step_cls: type[Step],
        *,
        tags: Iterable[str] | None = None,
        description: str | None = None,
        config_model: type[BaseModel] | None = None,
    ) -> StepSpec:
        """Register *step_cls* under *name*."""
        if name in self._specs:
            raise InvalidConfigurationError(f"Step already registered: {name}")
        tag_set = frozenset(tags or ())
        unsupported = tag_set - STEP_TAGS
        if unsupported:
            raise InvalidConfigurationError(f"Unsupported step tags: {sorted(unsupported)}")

        spec = StepSpec(name, step_cls, tag_set, description, config_model)
        self._specs[name] = spec
        logger.debug("Registered step %s with tags=%s", name, sorted(tag_set))
        return spec

    def load_entry_points(self) -> None:
        """Let installed plugins register their steps.

        Each entry point in the ``lisaflow.steps`` group is a callable taking
        this registry.
        """
        for ep in metadata.entry_points().select(group=self.entry_point_group):
            try:
                register = ep.load()
            except Exception as exc:  # pragma: no cover
                logger.error("Failed to load step plugin %s: %s", ep.name, exc)
                continue
            if not callable(register):  # pragma: no cover
                logger.warning("Step plugin %s is not callable; skipping", ep.name)
                continue
            register(self)

    def get(self, name: str) -> StepSpec:
        """Return the StepSpec registered as *name*."""
        try:
            return self._specs[name]
        except KeyError:
            raise InvalidConfigurationError(
                f"Unknown step {name!r}; registered: {sorted(self._specs)}"
            ) from None

    def list(self, *, tag: str | None = None) -> list[StepSpec]:
        """Registered specs, optionally only those carrying *tag*."""
        return [spec for spec in self._specs.values() if tag is None or tag in spec.tags]

    def create(self, name: str, *, params: Mapping[str, Any] | None = None) -> Step:
        """Instantiate step *name* with validated *params*."""
        spec = self.get(name)
        kwargs = spec.parse_params(params)
        logger.debug("Creating step %s with params=%s", name, sorted(kwargs))
        return spec.cls(**kwargs)

    def build_pipeline(self, steps: Iterable[StepDefinition]) -> Pipeline:
        """
        Resolve step definitions into a Pipeline.

        Raises:
            InvalidConfigurationError: For malformed definitions, unknown
                steps or invalid params
        """
        instances = []
        for entry in steps:
            name, params = parse_definition(entry)
            instances.append(self.create(name, params=params))
        return Pipeline(instances)
