"""Ordered analysis steps over UnitFrame snapshots."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from lisaflow.core.errors import MisalignedInputError
from lisaflow.core.unit_frame import UnitFrame
from lisaflow.core.utils import format_ids, get_logger

logger = get_logger(__name__)


class Step(ABC):
    """
    Base class for pipeline steps.

    A step takes a UnitFrame and returns a new one; the input is never
    modified.
    """

    @abstractmethod
    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """Execute the step and return the resulting frame."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


def transition_issues(before: UnitFrame, after: UnitFrame) -> list[str]:
    """
    Problems with a step turning *before* into *after*.

    A step may only remove units, and every removal must be logged as an
    exclusion. It must keep columns and provenance, and it must not drop
    weights that were already built. Units cannot be removed once test
    results have been recorded, because those results describe the old
    unit set.
    """
    issues = before.schema.compatibility_issues(after.schema)

    before_ids, after_ids = set(before.ids), set(after.ids)
    added = after_ids - before_ids
    if added:
        issues.append(f"introduced units {format_ids(sorted(added))}")
    removed = before_ids - after_ids
    unlogged = removed - set(after.excluded_ids())
    if unlogged:
        issues.append(f"removed units without an exclusion record: {format_ids(sorted(unlogged))}")

    if before.weights is not None and after.weights is None:
        issues.append("dropped the spatial weights")

    recorded = sorted({*before.metadata.global_results, *before.metadata.local_results})
    if removed and recorded:
        issues.append(f"removed units after results were recorded for {recorded}")
    return issues


class Pipeline:
    """
    Steps applied in order to a UnitFrame.

    Every transition is checked with :func:`transition_issues`, so the frame
    handed to the tests always matches its weights and exclusion log.
    """

    def __init__(self, steps: Sequence[Step]) -> None:
        self.steps = list(steps)
        logger.debug("Created pipeline: %s", self)

    def run(self, unit_frame: UnitFrame) -> UnitFrame:
        """
        Run every step on *unit_frame*.

        Raises:
            TypeError: If a step does not return a UnitFrame
            MisalignedInputError: If a step breaks the frame's unit bookkeeping
        """
        current = unit_frame
        total = len(self.steps)
        for i, step in enumerate(self.steps, 1):
            step_name = step.__class__.__name__
            logger.info(f"Step {i}/{total}: {step_name} on {len(current)} units")
            try:
                result = step.run(current)
                if not isinstance(result, UnitFrame):
                    raise TypeError(
                        f"Step {step_name} returned {type(result).__name__} instead of UnitFrame"
                    )
                issues = transition_issues(current, result)
                if issues:
                    raise MisalignedInputError(
                        f"Step {step_name} left an inconsistent unit frame: {'; '.join(issues)}"
                    )
            except Exception as e:
                logger.error(f"Step {i}/{total}: {step_name} failed: {e}")
                raise

            if len(result) < len(current):
                logger.info(
                    "%s removed %d unit(s); %d remain",
                    step_name,
                    len(current) - len(result),
                    len(result),
                )
            current = result
        return current

    def __repr__(self) -> str:
        return f"Pipeline({' -> '.join(repr(step) for step in self.steps)})"

    def __len__(self) -> int:
        return len(self.steps)
