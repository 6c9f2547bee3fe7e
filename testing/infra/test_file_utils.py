"""测试配置文件读取与覆盖项合并。"""

from pathlib import Path

import pytest

from automaple.infra.exceptions import ConfigError
from automaple.infra.file_utils import load_yaml, merge_dicts


class TestLoadYaml:
    def test_rotation_section(self, tmp_yaml):
        content = """\
rotation:
  mode: AutoMobbing
  auto_mob_key: {key: A, count: 2}
  actions:
    - type: Key
      key: Shift
      condition: {kind: ErdaShowerOffCooldown}
"""
        data = load_yaml(tmp_yaml("rotation.yaml", content))

        rotation = data["rotation"]
        assert rotation["mode"] == "AutoMobbing"
        assert rotation["auto_mob_key"] == {"key": "A", "count": 2}
        assert rotation["actions"][0]["condition"] == {"kind": "ErdaShowerOffCooldown"}

    def test_empty_file(self, tmp_yaml):
        assert load_yaml(tmp_yaml("empty.yaml", "")) == {}

    def test_chinese_chat_content(self, tmp_yaml):
        data = load_yaml(tmp_yaml("cn.yaml", "player:\n  chat: 射手村见\n"))
        assert data == {"player": {"chat": "射手村见"}}

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="不存在"):
            load_yaml(tmp_path / "no_such_config.yaml")

    def test_syntax_error(self, tmp_yaml):
        path = tmp_yaml("broken.yaml", "rotation:\n  actions: [\n")
        with pytest.raises(ConfigError, match="解析失败"):
            load_yaml(path)

    def test_top_level_list(self, tmp_yaml):
        path = tmp_yaml("actions.yaml", "- type: Key\n  key: A\n")
        with pytest.raises(ConfigError, match="映射"):
            load_yaml(path)


class TestMergeDicts:
    def test_override_player_key(self):
        base = {"player": {"jump_key": "Space", "interact_key": "E"}, "seed": 1}
        result = merge_dicts(base, {"player": {"jump_key": "C"}})
        assert result == {"player": {"jump_key": "C", "interact_key": "E"}, "seed": 1}

    def test_action_list_replaced(self):
        """动作列表整体替换，不与文件中的列表拼接。"""
        base = {"rotation": {"actions": [{"type": "Key", "key": "A"}]}}
        override = {"rotation": {"actions": [{"type": "Move", "position": {"x": 1, "y": 2}}]}}

        result = merge_dicts(base, override)

        assert result["rotation"]["actions"] == [{"type": "Move", "position": {"x": 1, "y": 2}}]

    def test_does_not_mutate_inputs(self):
        base = {"notification": {"enabled": True}}
        override = {"notification": {"discord_user_id": "42"}}

        merge_dicts(base, override)

        assert base == {"notification": {"enabled": True}}
        assert override == {"notification": {"discord_user_id": "42"}}
