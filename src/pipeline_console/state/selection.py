"""SelectionState — the chosen pipeline and the dependency-closed stage set.

Toggling a stage on adds it together with everything it transitively depends
on. Toggling a stage off removes only that stage: dependents stay selected
even though one of their dependencies is now missing.

The dependency graph is assumed acyclic but never checked. A cycle still
terminates (set insertion is idempotent) and selects every stage reachable
from the toggled one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pipeline_console.state.catalog import StageCatalog

logger = logging.getLogger(__name__)


class SelectionState:
    """User selection of one pipeline and a set of its stages.

    Stage membership is the contract; iteration order follows insertion so
    payloads built from the selection are deterministic.
    """

    def __init__(self, catalog: StageCatalog) -> None:
        self._catalog = catalog
        self._pipeline: str | None = None
        self._stages: dict[str, None] = {}

    @property
    def selected_pipeline(self) -> str | None:
        return self._pipeline

    @property
    def selected_stages(self) -> tuple[str, ...]:
        return tuple(self._stages)

    def is_selected(self, stage_name: str) -> bool:
        return stage_name in self._stages

    def select_pipeline(self, pipeline_name: str) -> None:
        """Select a pipeline, discarding any prior stage selection."""
        self._pipeline = pipeline_name
        self._stages = {}
        logger.debug("Selected pipeline %s", pipeline_name)

    def toggle(self, stage_name: str) -> set[str]:
        """Toggle one stage.

        Args:
            stage_name: Stage to add or remove. Unknown names are added as
                stages without dependencies.

        Returns:
            The stages newly added by this call (empty on removal).
        """
        if stage_name in self._stages:
            del self._stages[stage_name]
            return set()

        # Walk past already-selected stages; the selection may not be closed.
        added: set[str] = set()
        visited: set[str] = set()
        pending = [stage_name]
        while pending:
            name = pending.pop()
            if name in visited:
                continue
            visited.add(name)
            if name not in self._stages:
                self._stages[name] = None
                added.add(name)
            pending.extend(self._catalog.dependencies_of(name))

        if added - {stage_name}:
            logger.debug(
                "Auto-selected dependencies of %s: %s",
                stage_name,
                sorted(added - {stage_name}),
            )
        return added

    def set_selected_stages(self, stage_names: Iterable[str]) -> None:
        """Replace the stage set as given; dependency closure is not applied."""
        self._stages = dict.fromkeys(stage_names)

    def clear(self) -> None:
        """Clear both the pipeline and the stage selection."""
        self._pipeline = None
        self._stages = {}

    def missing_dependencies(self) -> dict[str, list[str]]:
        """Selected stages whose dependencies are not all selected.

        Non-empty only after a deselection or a bulk replace.
        """
        missing: dict[str, list[str]] = {}
        for name in self._stages:
            absent = [d for d in self._catalog.dependencies_of(name) if d not in self._stages]
            if absent:
                missing[name] = absent
        return missing
