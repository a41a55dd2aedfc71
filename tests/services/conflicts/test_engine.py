from skinsmith.schemas.conflict import ConflictSeverity, ConflictType
from skinsmith.schemas.mod import ModSource
from skinsmith.services.conflicts import ConflictEngine


def _mod(mod_id, files=(), settings=None):
    return ModSource(
        mod_id=mod_id, mod_name=mod_id, affected_files=list(files), settings=settings or {}
    )


class TestConflictEngine:
    def test_single_mod_has_no_conflicts(self):
        assert ConflictEngine().detect([_mod("a", ["x.vpcf_c"])]) == []

    def test_pairwise_over_all_mods(self):
        mods = [
            _mod("a", ["particles/x.vpcf_c"]),
            _mod("b", ["particles/x.vpcf_c"]),
            _mod("c", ["particles/x.vpcf_c"]),
        ]
        conflicts = ConflictEngine().detect(mods)
        pairs = {tuple(s.mod_id for s in c.conflicting_sources) for c in conflicts}
        assert pairs == {("a", "b"), ("a", "c"), ("b", "c")}

    def test_most_severe_first(self):
        mods = [
            _mod("a", ["particles/x.vpcf_c"], settings={"hud": "dark"}),
            _mod("b", ["particles/x.vpcf_c"], settings={"hud": "light"}),
        ]
        conflicts = ConflictEngine().detect(mods)
        assert [c.severity for c in conflicts] == [ConflictSeverity.CRITICAL, ConflictSeverity.LOW]
        assert conflicts[1].type == ConflictType.ASSET
