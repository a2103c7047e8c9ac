"""Dependency resolution for ability steps."""

from __future__ import annotations

from typing import Sequence

from abilities.core.errors import DefinitionError
from abilities.definitions.models import Step
from abilities.utils import get_logger

logger = get_logger(__name__)


def order_steps(steps: Sequence[Step]) -> list[Step]:
    """Linearize steps so every step comes after the steps it needs.

    Repeatedly takes the first remaining step, in declaration order, whose
    dependencies have all been placed. Independent steps therefore keep
    their declaration order.

    Args:
        steps: Steps in declaration order

    Returns:
        Steps in execution order

    Raises:
        DefinitionError: If the remaining steps can never become eligible
    """
    ordered: list[Step] = []
    placed: set[str] = set()
    remaining = list(steps)

    while remaining:
        next_step = next(
            (step for step in remaining if all(dep in placed for dep in step.needs)),
            None,
        )
        if next_step is None:
            stuck = [step.id for step in remaining]
            logger.error("Unable to resolve step order", extra={"steps": stuck})
            raise DefinitionError(
                f"Unable to resolve step order, circular or missing dependency among: {', '.join(stuck)}"
            )

        ordered.append(next_step)
        placed.add(next_step.id)
        remaining.remove(next_step)

    return ordered
