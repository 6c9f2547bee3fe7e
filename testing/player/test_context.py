"""测试玩家上下文：动作槽位、失败计数与自动打怪的位置模型。"""

import pytest

from automaple.entities.anchor import Anchor, Color
from automaple.entities.minimap import MinimapIdle, Platform
from automaple.geometry import Point, Rect, XRange
from automaple.infra.config import PlayerConfig
from automaple.models.actions import Position
from automaple.player.actions import AutoMob, Chat, Key, MobbingKeyTicks, Move
from automaple.player.context import (
    AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT,
    AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT,
    MAX_BOOSTER_FAILED_COUNT,
    MAX_FAMILIARS_SWAP_FAIL_COUNT,
    MAX_RUNE_FAILED_COUNT,
    PlayerContext,
    Quadrant,
    quadrant_bound,
)
from automaple.types import BoosterKind, KeyKind

ANCHOR = Anchor(Point(0, 0), Color(0, 0, 0))


def _minimap(**kwargs) -> MinimapIdle:
    return MinimapIdle(tl_anchor=ANCHOR, br_anchor=ANCHOR, bbox=Rect(0, 0, 100, 50), **kwargs)


@pytest.fixture
def context() -> PlayerContext:
    return PlayerContext()


# ── 动作槽位 ──


class TestActionSlots:
    def test_normal_action(self, context):
        assert context.normal_action_id() is None
        context.set_normal_action(3, Key(KeyKind.A))
        assert context.has_normal_action()
        assert context.normal_action_id() == 3

        context.reset_normal_action()
        assert not context.has_normal_action()
        assert context.normal_action_id() is None

    def test_replace_returns_previous_id(self, context):
        assert context.replace_priority_action(1, Key(KeyKind.A)) is None
        assert context.replace_priority_action(2, Key(KeyKind.B)) == 1
        assert context.priority_action_id() == 2
        assert context.reset_to_idle_next_update

    def test_move_keeps_stalling_buffer(self, context):
        """移动动作不清理后台停顿，其他动作会清理。"""
        context.set_priority_action(1, Move(Position(x=1, y=1)))
        assert not context.reset_stalling_buffer_states_next_update
        context.set_priority_action(2, Key(KeyKind.A))
        assert context.reset_stalling_buffer_states_next_update

    def test_take_priority_action(self, context):
        context.set_priority_action(5, Key(KeyKind.A))
        assert context.take_priority_action() == 5
        assert not context.has_priority_action()
        assert context.take_priority_action() is None

    def test_side_loaded_action_has_no_id(self, context):
        context.set_priority_action(None, Chat("hi"))
        assert context.has_priority_action()
        assert context.priority_action_id() is None

    def test_completion_clears_priority_first(self, context):
        context.set_normal_action(1, Key(KeyKind.A))
        context.set_priority_action(2, Key(KeyKind.B))

        context.clear_action_completed()
        assert not context.has_priority_action()
        assert context.has_normal_action()

        context.clear_action_completed()
        assert not context.has_normal_action()

    def test_abort_clears_both(self, context):
        context.set_normal_action(1, Key(KeyKind.A))
        context.set_priority_action(2, Key(KeyKind.B))
        context.reset_to_idle_next_update = False

        context.clear_actions_aborted(True)

        assert not context.has_normal_action()
        assert not context.has_priority_action()
        assert context.reset_to_idle_next_update

    def test_reset_keeps_config(self):
        config = PlayerConfig(interact_key=KeyKind.E)
        context = PlayerContext(config)
        context.last_known_pos = Point(1, 2)
        context.set_normal_action(1, Key(KeyKind.A))

        context.reset()

        assert context.config is config
        assert context.last_known_pos is None
        assert not context.has_normal_action()
        assert context.reset_to_idle_next_update


# ── 失败计数 ──


class TestFailCounts:
    def test_booster_limit_per_kind(self, context):
        for _ in range(MAX_BOOSTER_FAILED_COUNT + 2):
            context.track_booster_fail_count(BoosterKind.hexa)
        assert context.is_booster_fail_count_limit_reached(BoosterKind.hexa)
        assert not context.is_booster_fail_count_limit_reached(BoosterKind.generic)

        context.clear_booster_fail_count(BoosterKind.hexa)
        assert not context.is_booster_fail_count_limit_reached(BoosterKind.hexa)

    def test_familiars_swap_limit(self, context):
        for _ in range(MAX_FAMILIARS_SWAP_FAIL_COUNT):
            context.track_familiars_swap_fail_count()
        assert context.is_familiars_swap_fail_count_limit_reached()

    def test_rune_failures_schedule_cash_shop(self, context):
        for _ in range(MAX_RUNE_FAILED_COUNT - 1):
            context.track_rune_fail_count()
        assert not context.rune_cash_shop

        context.track_rune_fail_count()
        assert context.rune_cash_shop
        assert context.rune_failed_count == 0

    def test_validating_rune(self, context):
        assert not context.is_validating_rune()
        context.start_validating_rune()
        assert context.is_validating_rune()


# ── 自动打怪：可达 y ──


class TestReachableY:
    def test_populate_from_platforms_and_position(self, context):
        context.last_known_pos = Point(10, 30)
        context.auto_mob_populate_reachable_y(_minimap())

        assert context.auto_mob_reachable_y_map == {30: AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT - 1}

    def test_pick_snaps_to_reachable_y(self, context, resources):
        context.last_known_pos = Point(10, 20)
        picked = context.auto_mob_pick_reachable_y_position(resources, _minimap(), Point(40, 26))
        assert picked == Point(40, 20)

    def test_pick_keeps_y_when_nothing_near(self, context, resources):
        context.last_known_pos = Point(10, 20)
        picked = context.auto_mob_pick_reachable_y_position(resources, _minimap(), Point(40, 45))
        assert picked == Point(40, 45)

    def test_track_solidifies_landing_y(self, context):
        context.last_known_pos = Point(10, 20)
        for _ in range(AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT + 3):
            context.auto_mob_track_reachable_y(20)

        assert context.auto_mob_reachable_y_map[20] == AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT
        assert not context.auto_mob_reachable_y_require_update(20)

    def test_noisy_landing_not_solidified(self, context):
        """平台外的偶发落脚点达不到上限，被目标 y 的失败抵消。"""
        context.auto_mob_reachable_y_map = {20: AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT}
        context.last_known_pos = Point(10, 33)
        context.auto_mob_track_reachable_y(33)
        context.last_known_pos = Point(10, 20)
        context.auto_mob_track_reachable_y(33)

        assert 33 not in context.auto_mob_reachable_y_map
        assert not context.auto_mob_reachable_y_require_update(20)

    def test_track_decays_missed_y(self, context):
        """目标 y 与落脚点不同时，目标 y 的计数减少，归零后删除。"""
        context.last_known_pos = Point(10, 20)
        context.auto_mob_reachable_y_map = {35: 1}

        context.auto_mob_track_reachable_y(35)

        assert 35 not in context.auto_mob_reachable_y_map
        assert context.auto_mob_reachable_y_map[20] == 1


# ── 自动打怪：忽略区间 ──


class TestIgnoreXs:
    def _mob(self, x: int, y: int) -> AutoMob:
        return AutoMob(MobbingKeyTicks(KeyKind.A), Position(x=x, y=y))

    def test_aborts_solidify_and_filter_targets(self, context, resources):
        minimap = _minimap()
        context.last_known_pos = Point(10, 20)
        context.auto_mob_reachable_y_map = {20: AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT}
        context.set_normal_action(None, self._mob(40, 20))

        for _ in range(AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT):
            context.auto_mob_track_ignore_xs(minimap, True)

        [(xs, count)] = context.auto_mob_ignore_xs_map[20]
        assert 40 in xs
        assert count == AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT
        assert context.auto_mob_pick_reachable_y_position(resources, minimap, Point(41, 22)) is None
        assert context.auto_mob_pick_reachable_y_position(resources, minimap, Point(80, 22)) == (
            Point(80, 20)
        )

    def test_success_decays_unsolidified_range(self, context):
        minimap = _minimap()
        context.auto_mob_reachable_y_map = {20: AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT}
        context.set_normal_action(None, self._mob(40, 20))

        context.auto_mob_track_ignore_xs(minimap, True)
        context.auto_mob_track_ignore_xs(minimap, False)

        assert context.auto_mob_ignore_xs_map[20] == []

    def test_unsolidified_y_is_not_tracked(self, context):
        minimap = _minimap()
        context.set_normal_action(None, self._mob(40, 20))

        context.auto_mob_track_ignore_xs(minimap, True)

        assert 20 not in context.auto_mob_ignore_xs_map

    def test_platform_gaps_are_ignored(self, context):
        minimap = _minimap(platforms=(Platform(XRange(10, 30), 20), Platform(XRange(50, 90), 20)))
        context.auto_mob_populate_ignore_xs(minimap)

        ranges = [xs for xs, _ in context.auto_mob_ignore_xs_map[20]]
        assert XRange(0, 10) in ranges
        assert XRange(90, 100) in ranges
        assert XRange(30, 50) in ranges


# ── 自动打怪：寻路 ──


class TestPathing:
    def test_quadrant_bound(self):
        bound = Rect(0, 0, 100, 50)
        assert quadrant_bound(Quadrant.top_left, bound) == Rect(0, 0, 50, 25)
        assert quadrant_bound(Quadrant.bottom_right, bound) == Rect(50, 25, 50, 25)

    def test_pathing_moves_clockwise(self, context, resources):
        """玩家位于左上象限（图像坐标）时前往右上象限。"""
        minimap = _minimap()
        context.last_known_pos = Point(10, 40)

        point = context.auto_mob_pathing_point(resources, minimap, Rect(0, 0, 100, 50))

        assert context.auto_mob_last_quadrant is Quadrant.top_right
        assert 50 <= point.x < 100
        # 右上象限的图像 y 为 [0, 25)，换算为玩家坐标 (25, 50]
        assert 25 < point.y <= 50

        context.auto_mob_pathing_point(resources, minimap, Rect(0, 0, 100, 50))
        assert context.auto_mob_last_quadrant is Quadrant.bottom_right


# ── 后台停顿 ──


class TestStallingBuffer:
    def test_interruptible_cleared_with_callback(self, context, resources):
        ended = []
        context.stalling_timeout_buffered(10, end_callback=ended.append)

        context.clear_stalling_buffer_states(resources)

        assert not context.has_stalling_timeout_buffered()
        assert ended == [resources]

    def test_uninterruptible_survives_new_action(self, context, resources):
        context.stalling_timeout_buffered(10, interruptible=False)
        context.clear_stalling_buffer_states(resources)
        assert context.has_stalling_timeout_buffered()

    def test_abort_forces_clear(self, context, resources):
        context.stalling_timeout_buffered(10, interruptible=False)
        context.clear_actions_aborted(False)
        context.clear_stalling_buffer_states(resources)
        assert not context.has_stalling_timeout_buffered()
