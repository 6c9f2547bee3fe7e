"""测试玩家状态机的每 tick 入口。"""

from automaple.entities.anchor import Anchor, Color
from automaple.entities.minimap import MinimapIdle
from automaple.geometry import Point, Rect
from automaple.infra.exceptions import NotFoundError
from automaple.player.actions import Key
from automaple.player.state import (
    CashShopThenExit,
    Detecting,
    Idle,
    Stalling,
    Unstucking,
    UseKey,
    UseKeyStage,
)
from automaple.player.system import run_system
from automaple.resources import Operation
from automaple.timeout import Timeout
from automaple.types import KeyKind

ANCHOR = Anchor(Point(0, 0), Color(0, 0, 0))


def _idle(partially_overlapping: bool = False) -> MinimapIdle:
    return MinimapIdle(
        tl_anchor=ANCHOR,
        br_anchor=ANCHOR,
        bbox=Rect(0, 0, 100, 50),
        partially_overlapping=partially_overlapping,
    )


class TestPlayerSystem:
    def test_detected_player_updates_position(self, resources, world, fake_detector):
        """图像坐标的玩家框换算为左下角原点的位置。"""
        world.minimap.state = _idle()
        world.player.state = Detecting()
        fake_detector.detect_player.return_value = Rect(10, 20, 4, 6)

        run_system(resources, world.player, world.minimap, world.buffs)

        assert world.player.context.last_known_pos == Point(12, 24)
        assert world.player.state == Idle()

    def test_lost_player_starts_unstucking(self, resources, world, fake_detector):
        world.minimap.state = _idle()
        fake_detector.detect_player.side_effect = NotFoundError("player")

        run_system(resources, world.player, world.minimap, world.buffs)

        assert isinstance(world.player.state, Unstucking)

    def test_lost_player_with_partial_minimap(self, resources, world, fake_detector):
        world.minimap.state = _idle(partially_overlapping=True)
        fake_detector.detect_player.side_effect = NotFoundError("player")

        run_system(resources, world.player, world.minimap, world.buffs)

        assert world.player.state == Detecting()

    def test_non_positional_state_advances_without_player(self, resources, world, fake_detector):
        world.minimap.state = _idle()
        fake_detector.detect_player.side_effect = NotFoundError("player")
        world.player.context.set_priority_action(0, Key(KeyKind.A))
        world.player.state = UseKey(KeyKind.A)

        run_system(resources, world.player, world.minimap, world.buffs)

        assert isinstance(world.player.state, UseKey)
        assert world.player.state.stage is UseKeyStage.using

    def test_stalling_waits_for_player(self, resources, world, fake_detector):
        world.minimap.state = _idle()
        fake_detector.detect_player.side_effect = NotFoundError("player")
        world.player.state = Stalling(Timeout(), 5)

        run_system(resources, world.player, world.minimap, world.buffs)

        assert isinstance(world.player.state, Unstucking)

    def test_halting_keeps_state(self, resources, world, fake_detector):
        world.minimap.state = _idle()
        fake_detector.detect_player.side_effect = NotFoundError("player")
        resources.operation = Operation.halting

        run_system(resources, world.player, world.minimap, world.buffs)

        assert world.player.state == Idle()

    def test_reset_to_idle_next_update(self, resources, world, fake_detector):
        world.minimap.state = _idle()
        fake_detector.detect_player.return_value = Rect(10, 20, 4, 6)
        world.player.state = Stalling(Timeout(), 5)
        world.player.context.set_priority_action(0, Key(KeyKind.B))

        run_system(resources, world.player, world.minimap, world.buffs)

        # 新动作使状态回到 Idle，再由 Idle 进入按键
        assert isinstance(world.player.state, UseKey)
        assert world.player.state.key is KeyKind.B

    def test_rune_failures_enter_cash_shop(self, resources, world, fake_input):
        world.player.context.rune_cash_shop = True

        run_system(resources, world.player, world.minimap, world.buffs)

        assert world.player.state == CashShopThenExit()
        assert not world.player.context.rune_cash_shop
        fake_input.send_key_up.assert_any_call(KeyKind.Right)
