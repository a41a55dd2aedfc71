import json

from skinsmith.schemas.conflict import ResolutionStrategy
from skinsmith.schemas.mod import ModSource
from skinsmith.schemas.priority import ModPriority, ModPriorityConfig
from skinsmith.services.priority_service import (
    PriorityService,
    config_path,
    load_config,
    save_config,
)


class TestConfigFile:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path)
        assert config.priorities == []
        assert config.default_strategy == ResolutionStrategy.HIGHER_PRIORITY
        assert config.category_strategies["Weather"] == ResolutionStrategy.MOST_RECENT

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        assert load_config(tmp_path).priorities == []

    def test_saved_as_camel_case(self, tmp_path):
        config = ModPriorityConfig(priorities=[ModPriority(mod_id="m1", priority=5)])
        path = save_config(tmp_path, config)
        assert path == tmp_path / "game" / "_skinsmith" / "_temp" / "mod_priority.json"
        data = json.loads(path.read_text())
        assert data["priorities"][0]["modId"] == "m1"
        assert data["autoResolveNonBreaking"] is True
        assert load_config(tmp_path).get_priority("m1") == 5

    def test_priority_clamped(self):
        assert ModPriority(mod_id="m", priority=5000).priority == 999
        assert ModPriority(mod_id="m", priority=0).priority == 1


class TestPriorityService:
    def test_set_and_get(self, tmp_path):
        service = PriorityService()
        assert service.set_priority(tmp_path, "m1", 20, mod_name="Mod One")
        assert service.get_priority(tmp_path, "m1") == 20
        assert PriorityService().get_priority(tmp_path, "m1") == 20

    def test_locked_entry_unchanged(self, tmp_path):
        service = PriorityService()
        config = ModPriorityConfig(
            priorities=[ModPriority(mod_id="m1", priority=7, is_locked=True)]
        )
        service.save_config(tmp_path, config)
        assert service.set_priority(tmp_path, "m1", 1) is False
        assert service.get_priority(tmp_path, "m1") == 7

    def test_cache_served_until_invalidated(self, tmp_path):
        service = PriorityService(cache_seconds=3600)
        service.get_config(tmp_path)
        save_config(
            tmp_path, ModPriorityConfig(priorities=[ModPriority(mod_id="x", priority=3)])
        )
        assert service.get_priority(tmp_path, "x") is None
        service.invalidate(tmp_path)
        assert service.get_priority(tmp_path, "x") == 3

    def test_reset(self, tmp_path):
        service = PriorityService()
        service.set_priority(tmp_path, "m1", 20)
        config = service.reset(tmp_path)
        assert config.priorities == []
        assert load_config(tmp_path).priorities == []

    def test_apply_priorities_keeps_request_order(self, tmp_path):
        service = PriorityService()
        service.set_priority(tmp_path, "b", 1)
        mods = [
            ModSource(mod_id="a", mod_name="A", priority=50),
            ModSource(mod_id="b", mod_name="B", priority=60),
        ]
        applied = service.apply_priorities(tmp_path, mods)
        assert [m.mod_id for m in applied] == ["a", "b"]
        assert [m.priority for m in applied] == [50, 1]
        assert mods[1].priority == 60
