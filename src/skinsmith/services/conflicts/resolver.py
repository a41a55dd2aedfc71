"""Pick a winner (or a merged result) for each detected conflict."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import reduce

from skinsmith.errors import KeyValuesSyntaxError
from skinsmith.keyvalues.merge import MergeConflictError, merge_blocks, merge_settings
from skinsmith.schemas.conflict import (
    ConflictSeverity,
    ConflictType,
    ModConflict,
    ResolutionOption,
    ResolutionOutcome,
    ResolutionStrategy,
)
from skinsmith.schemas.mod import ModSource
from skinsmith.schemas.priority import ModPriorityConfig

logger = logging.getLogger(__name__)


class ConflictAlreadyResolvedError(Exception):
    def __init__(self, conflict_id: str) -> None:
        self.conflict_id = conflict_id
        super().__init__(f"Conflict {conflict_id} has already been resolved")


@dataclass(slots=True)
class ResolutionBatch:
    outcomes: list[ResolutionOutcome] = field(default_factory=list)
    pending: list[ModConflict] = field(default_factory=list)


class ConflictResolver:
    """Applies resolution strategies to conflicts.

    A conflict is resolved at most once: its ``selected_resolution`` is set
    on success and any further attempt raises
    :class:`ConflictAlreadyResolvedError`.
    """

    # -- policy ------------------------------------------------------------

    def can_auto_resolve(self, conflict: ModConflict, config: ModPriorityConfig) -> bool:
        if conflict.requires_user_intervention:
            return False
        if conflict.severity == ConflictSeverity.HIGH:
            return False
        if conflict.severity == ConflictSeverity.MEDIUM:
            return config.auto_resolve_non_breaking
        return True

    def strategy_for(self, conflict: ModConflict, config: ModPriorityConfig) -> ResolutionStrategy:
        """Category override of the first matching source, else the default strategy."""
        for source in conflict.conflicting_sources:
            if source.category in config.category_strategies:
                return config.category_strategies[source.category]
        return config.default_strategy

    @staticmethod
    def determine_winner(
        conflict: ModConflict, strategy: ResolutionStrategy
    ) -> ModSource | None:
        sources = conflict.conflicting_sources
        match strategy:
            case ResolutionStrategy.HIGHER_PRIORITY:
                return conflict.highest_priority_source
            case ResolutionStrategy.LOWER_PRIORITY:
                return max(sources, key=lambda s: s.priority)
            case ResolutionStrategy.MOST_RECENT:
                return conflict.most_recent_source
            case ResolutionStrategy.KEEP_EXISTING:
                return sources[0]
            case ResolutionStrategy.USE_NEW:
                return sources[-1]
        return None

    # -- resolution --------------------------------------------------------

    @staticmethod
    def _matches(
        option: ResolutionOption, strategy: ResolutionStrategy, winner: ModSource | None
    ) -> bool:
        if option.strategy != strategy:
            return False
        if winner is None or option.preferred_source is None:
            return winner is None and option.preferred_source is None
        return option.preferred_source.mod_id == winner.mod_id

    def _select(
        self, conflict: ModConflict, strategy: ResolutionStrategy, winner: ModSource | None
    ) -> None:
        option = next(
            (o for o in conflict.available_resolutions if self._matches(o, strategy, winner)),
            None,
        )
        conflict.selected_resolution = option or ResolutionOption(
            id=strategy.value, strategy=strategy, preferred_source=winner
        )

    def _ensure_open(self, conflict: ModConflict) -> None:
        if conflict.is_resolved:
            raise ConflictAlreadyResolvedError(conflict.id)

    def resolve(self, conflict: ModConflict, strategy: ResolutionStrategy) -> ResolutionOutcome:
        self._ensure_open(conflict)
        logger.info("Resolving conflict %s using %s", conflict.id, strategy)

        if strategy == ResolutionStrategy.INTERACTIVE:
            return ResolutionOutcome.failed(
                conflict, strategy, "Interactive resolution requires a user choice"
            )
        if strategy == ResolutionStrategy.MERGE:
            return self.try_merge(conflict)

        winner = self.determine_winner(conflict, strategy)
        if winner is None:
            return ResolutionOutcome.failed(conflict, strategy, "Could not determine a winner")
        self._select(conflict, strategy, winner)
        logger.info("Conflict %s resolved in favour of %s", conflict.id, winner.mod_name)
        return ResolutionOutcome.successful(conflict, strategy, winner)

    def try_merge(self, conflict: ModConflict) -> ResolutionOutcome:
        """Structurally merge Script and Configuration conflicts.

        Anything that cannot be merged falls back to HigherPriority.
        """
        self._ensure_open(conflict)
        sources = conflict.conflicting_sources
        try:
            if conflict.type == ConflictType.SCRIPT and conflict.affected_keys:
                merged_blocks = {
                    key: reduce(merge_blocks, [s.config_blocks[key] for s in sources])
                    for key in conflict.affected_keys
                }
                self._select(conflict, ResolutionStrategy.MERGE, None)
                logger.info("Merged %d block(s) for conflict %s", len(merged_blocks), conflict.id)
                return ResolutionOutcome.successful(
                    conflict, ResolutionStrategy.MERGE, None, merged_blocks=merged_blocks
                )
            if (
                conflict.type == ConflictType.CONFIGURATION
                and conflict.affected_keys
                and not conflict.affected_files
            ):
                merged = reduce(merge_settings, [s.settings for s in sources], {})
                self._select(conflict, ResolutionStrategy.MERGE, None)
                return ResolutionOutcome.successful(
                    conflict, ResolutionStrategy.MERGE, None, merged_settings=merged
                )
            logger.warning("Merge not supported for %s conflicts", conflict.type)
        except (MergeConflictError, KeyValuesSyntaxError, KeyError) as exc:
            logger.warning("Merge failed for conflict %s: %s", conflict.id, exc)

        logger.info("Falling back to %s for %s", ResolutionStrategy.HIGHER_PRIORITY, conflict.id)
        return self.resolve(conflict, ResolutionStrategy.HIGHER_PRIORITY)

    def apply_user_choice(
        self, conflict: ModConflict, option: ResolutionOption
    ) -> ResolutionOutcome:
        self._ensure_open(conflict)
        if option.strategy == ResolutionStrategy.MERGE:
            return self.try_merge(conflict)
        if option.preferred_source is None:
            return ResolutionOutcome.failed(
                conflict, option.strategy, "No preferred source in chosen option"
            )
        conflict.selected_resolution = option
        logger.info(
            "User chose '%s' for conflict %s", option.description or option.id, conflict.id
        )
        return ResolutionOutcome.successful(conflict, option.strategy, option.preferred_source)

    def resolve_all(
        self,
        conflicts: list[ModConflict],
        config: ModPriorityConfig,
        decisions: dict[str, str] | None = None,
    ) -> ResolutionBatch:
        """Resolve what can be resolved; everything else comes back as pending.

        *decisions* maps conflict ids to the option id a user picked.
        """
        decisions = decisions or {}
        batch = ResolutionBatch()
        for conflict in conflicts:
            if conflict.is_resolved:
                continue
            if conflict.id in decisions:
                option = conflict.option(decisions[conflict.id])
                if option is None:
                    logger.warning(
                        "Unknown option %s for conflict %s", decisions[conflict.id], conflict.id
                    )
                    batch.pending.append(conflict)
                    continue
                outcome = self.apply_user_choice(conflict, option)
            elif self.can_auto_resolve(conflict, config):
                outcome = self.resolve(conflict, self.strategy_for(conflict, config))
            else:
                logger.info("Conflict %s requires user intervention", conflict.id)
                batch.pending.append(conflict)
                continue

            if outcome.success:
                batch.outcomes.append(outcome)
            else:
                batch.pending.append(conflict)
        return batch
