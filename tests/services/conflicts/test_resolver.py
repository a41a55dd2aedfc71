from datetime import UTC, datetime, timedelta

import pytest

from skinsmith.schemas.conflict import (
    ConflictSeverity,
    ModConflict,
    ResolutionOption,
    ResolutionStrategy,
)
from skinsmith.schemas.mod import ModSource
from skinsmith.schemas.priority import ModPriorityConfig
from skinsmith.services.conflicts import (
    ConflictAlreadyResolvedError,
    ConflictEngine,
    ConflictResolver,
)
from skinsmith.services.conflicts.detectors import (
    ConfigKeyDetector,
    FileOverlapDetector,
    SettingsDetector,
)

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _mod(mod_id, *, priority=100, files=(), blocks=None, category="Terrain", age_days=0, **kw):
    return ModSource(
        mod_id=mod_id,
        mod_name=mod_id,
        category=category,
        priority=priority,
        applied_at=NOW - timedelta(days=age_days),
        affected_files=list(files),
        config_blocks=blocks or {},
        **kw,
    )


def _weather_conflict(category="Terrain") -> ModConflict:
    first = _mod("old", priority=50, files=["weather.vpk"], category=category, age_days=3)
    second = _mod("new", priority=10, files=["weather.vpk"], category=category)
    return FileOverlapDetector().detect(first, second)


def _with_severity(conflict: ModConflict, severity: ConflictSeverity) -> ModConflict:
    return conflict.model_copy(update={"severity": severity})


class TestPolicy:
    def test_critical_never_auto_resolvable(self):
        config = ModPriorityConfig(auto_resolve_non_breaking=True)
        conflict = SettingsDetector().detect(
            _mod("a", settings={"k": "1"}), _mod("b", settings={"k": "2"})
        )
        assert conflict.severity == ConflictSeverity.CRITICAL
        assert not ConflictResolver().can_auto_resolve(conflict, config)

    def test_high_needs_user(self):
        conflict = _with_severity(_weather_conflict(), ConflictSeverity.HIGH)
        assert not ConflictResolver().can_auto_resolve(conflict, ModPriorityConfig())

    def test_medium_follows_config_flag(self):
        conflict = _with_severity(_weather_conflict(), ConflictSeverity.MEDIUM)
        resolver = ConflictResolver()
        assert resolver.can_auto_resolve(conflict, ModPriorityConfig())
        assert not resolver.can_auto_resolve(
            conflict, ModPriorityConfig(auto_resolve_non_breaking=False)
        )

    def test_low_always_auto(self):
        config = ModPriorityConfig(auto_resolve_non_breaking=False)
        assert ConflictResolver().can_auto_resolve(_weather_conflict(), config)

    def test_category_strategy_overrides_default(self):
        resolver = ConflictResolver()
        config = ModPriorityConfig()
        assert resolver.strategy_for(_weather_conflict("Weather"), config) == (
            ResolutionStrategy.MOST_RECENT
        )
        assert resolver.strategy_for(_weather_conflict("Terrain"), config) == (
            ResolutionStrategy.HIGHER_PRIORITY
        )


class TestDetermineWinner:
    @pytest.mark.parametrize(
        ("strategy", "expected"),
        [
            (ResolutionStrategy.HIGHER_PRIORITY, "new"),
            (ResolutionStrategy.LOWER_PRIORITY, "old"),
            (ResolutionStrategy.MOST_RECENT, "new"),
            (ResolutionStrategy.KEEP_EXISTING, "old"),
            (ResolutionStrategy.USE_NEW, "new"),
        ],
    )
    def test_strategies(self, strategy, expected):
        winner = ConflictResolver.determine_winner(_weather_conflict(), strategy)
        assert winner.mod_id == expected

    def test_interactive_has_no_winner(self):
        conflict = _weather_conflict()
        assert ConflictResolver.determine_winner(conflict, ResolutionStrategy.INTERACTIVE) is None

    def test_priority_and_recency_can_disagree(self):
        conflict = FileOverlapDetector().detect(
            _mod("pinned", priority=1, files=["rain.vpcf_c"], age_days=9),
            _mod("fresh", priority=90, files=["rain.vpcf_c"]),
        )
        assert conflict.highest_priority_source.mod_id == "pinned"
        assert conflict.most_recent_source.mod_id == "fresh"
        resolver = ConflictResolver()
        assert resolver.determine_winner(conflict, ResolutionStrategy.HIGHER_PRIORITY) is (
            conflict.highest_priority_source
        )
        assert resolver.determine_winner(conflict, ResolutionStrategy.MOST_RECENT) is (
            conflict.most_recent_source
        )
        assert not conflict.requires_user_intervention


class TestResolve:
    def test_higher_priority_picks_lower_number(self):
        conflict = _weather_conflict()
        outcome = ConflictResolver().resolve(conflict, ResolutionStrategy.HIGHER_PRIORITY)
        assert outcome.success
        assert outcome.winning_source.priority == 10
        assert outcome.resolved_files == ["weather.vpk"]
        assert conflict.is_resolved
        assert conflict.selected_resolution.id == "priority"

    def test_conflict_resolved_only_once(self):
        conflict = _weather_conflict()
        resolver = ConflictResolver()
        resolver.resolve(conflict, ResolutionStrategy.HIGHER_PRIORITY)
        with pytest.raises(ConflictAlreadyResolvedError):
            resolver.resolve(conflict, ResolutionStrategy.USE_NEW)

    def test_interactive_strategy_fails_without_choice(self):
        conflict = _weather_conflict()
        outcome = ConflictResolver().resolve(conflict, ResolutionStrategy.INTERACTIVE)
        assert not outcome.success
        assert outcome.error_message
        assert not conflict.is_resolved


class TestMerge:
    def test_script_blocks_merged(self):
        a = _mod("a", blocks={"100": '"100" { "style" "1" }'})
        b = _mod("b", blocks={"100": '"100" { "particle" "fire" }'})
        conflict = ConfigKeyDetector().detect(a, b)

        outcome = ConflictResolver().try_merge(conflict)

        assert outcome.success
        assert outcome.used_strategy == ResolutionStrategy.MERGE
        assert outcome.winning_source is None
        merged = outcome.merged_blocks["100"]
        assert '"style"' in merged
        assert '"particle"' in merged
        assert conflict.selected_resolution.id == "merge"

    def test_incompatible_blocks_fall_back_to_priority(self):
        a = _mod("a", priority=5, blocks={"100": '"100" { "style" "1" }'})
        b = _mod("b", priority=9, blocks={"100": '"100" { "style" "2" }'})
        conflict = ConfigKeyDetector().detect(a, b)

        outcome = ConflictResolver().try_merge(conflict)

        assert outcome.success
        assert outcome.used_strategy == ResolutionStrategy.HIGHER_PRIORITY
        assert outcome.winning_source.mod_id == "a"
        assert outcome.merged_blocks == {}

    def test_asset_conflicts_fall_back_to_priority(self):
        outcome = ConflictResolver().try_merge(_weather_conflict())
        assert outcome.used_strategy == ResolutionStrategy.HIGHER_PRIORITY
        assert outcome.winning_source.mod_id == "new"

    def test_clashing_settings_fall_back_to_priority(self):
        conflict = SettingsDetector().detect(
            _mod("a", priority=1, settings={"k": "1"}), _mod("b", settings={"k": "2"})
        )
        outcome = ConflictResolver().resolve(conflict, ResolutionStrategy.MERGE)
        assert outcome.used_strategy == ResolutionStrategy.HIGHER_PRIORITY
        assert outcome.winning_source.mod_id == "a"


class TestUserChoice:
    def test_choice_applied(self):
        conflict = SettingsDetector().detect(
            _mod("a", settings={"k": "1"}), _mod("b", settings={"k": "2"})
        )
        outcome = ConflictResolver().apply_user_choice(conflict, conflict.option("choose_second"))
        assert outcome.success
        assert outcome.winning_source.mod_id == "b"
        assert conflict.selected_resolution.id == "choose_second"

    def test_choice_without_source_fails(self):
        conflict = _weather_conflict()
        option = ResolutionOption(id="x", strategy=ResolutionStrategy.USE_NEW)
        outcome = ConflictResolver().apply_user_choice(conflict, option)
        assert not outcome.success
        assert not conflict.is_resolved


class TestResolveAll:
    def _mods(self):
        return [
            _mod("a", priority=10, files=["particles/x.vpcf_c"], settings={"hud": "dark"}),
            _mod("b", priority=20, files=["particles/x.vpcf_c"], settings={"hud": "light"}),
        ]

    def test_low_resolved_critical_pending(self):
        conflicts = ConflictEngine().detect(self._mods())
        batch = ConflictResolver().resolve_all(conflicts, ModPriorityConfig())
        assert len(batch.outcomes) == 1
        assert batch.outcomes[0].winning_source.mod_id == "a"
        assert len(batch.pending) == 1
        assert batch.pending[0].severity == ConflictSeverity.CRITICAL

    def test_decisions_resolve_critical(self):
        conflicts = ConflictEngine().detect(self._mods())
        critical = next(c for c in conflicts if c.severity == ConflictSeverity.CRITICAL)
        batch = ConflictResolver().resolve_all(
            conflicts, ModPriorityConfig(), {critical.id: "choose_second"}
        )
        assert batch.pending == []
        winners = {o.conflict_id: o.winning_source.mod_id for o in batch.outcomes}
        assert winners[critical.id] == "b"

    def test_unknown_option_left_pending(self):
        conflicts = ConflictEngine().detect(self._mods())
        critical = next(c for c in conflicts if c.severity == ConflictSeverity.CRITICAL)
        batch = ConflictResolver().resolve_all(
            conflicts, ModPriorityConfig(), {critical.id: "nope"}
        )
        assert batch.pending == [critical]

    def test_medium_pending_when_auto_resolve_disabled(self):
        conflict = _with_severity(_weather_conflict(), ConflictSeverity.MEDIUM)
        batch = ConflictResolver().resolve_all(
            [conflict], ModPriorityConfig(auto_resolve_non_breaking=False)
        )
        assert batch.pending == [conflict]
        assert batch.outcomes == []

    def test_already_resolved_skipped(self):
        conflict = _weather_conflict()
        resolver = ConflictResolver()
        resolver.resolve(conflict, ResolutionStrategy.USE_NEW)
        batch = resolver.resolve_all([conflict], ModPriorityConfig())
        assert batch.outcomes == []
        assert batch.pending == []
