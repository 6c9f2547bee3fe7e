"""测试动作轮换器的调度。"""

from unittest.mock import MagicMock

import pytest

from automaple.entities.anchor import Anchor, Color
from automaple.entities.minimap import MinimapIdle
from automaple.entities.skill import SkillIdle, SkillKind
from automaple.geometry import Point, Rect
from automaple.models.actions import (
    ActionCondition,
    ActionKey,
    ActionMove,
    MobbingKey,
    Position,
)
from automaple.player.actions import AutoMob, Chat, Key, Move, PingPong, PingPongDirection
from automaple.player.state import Stalling
from automaple.resources import Operation, millis_to_ticks
from automaple.rotator import (
    ConditionResult,
    LinkedAction,
    PriorityAction,
    Rotator,
    RotatorBuildArgs,
    UseBoosterMetadata,
    rotator_action,
)
from automaple.rotator.priority import fixed_priority_action
from automaple.timeout import Timeout
from automaple.types import BuffKind, KeyKind, RotationMode


def always_queue(resources, world, info):
    return ConditionResult.QUEUE


def _register(rotator: Rotator, action: PriorityAction) -> int:
    action_id = rotator.ids.next_id()
    rotator.priority_actions[action_id] = action
    return action_id


def _idle_minimap(width: int = 100, height: int = 50) -> MinimapIdle:
    anchor = Anchor(Point(0, 0), Color(255, 255, 255))
    return MinimapIdle(tl_anchor=anchor, br_anchor=anchor, bbox=Rect(0, 0, width, height))


@pytest.fixture
def rotator() -> Rotator:
    return Rotator(mode=RotationMode.start_to_end)


# ── 优先动作入队 ──


class TestPriorityQueue:
    def test_non_front_actions_queue_in_order(self, rotator, resources, world):
        """三个普通优先动作按求值顺序排队，插队动作排在最前。"""
        world.player.state = Stalling(Timeout(), 10)
        ids = [_register(rotator, PriorityAction(always_queue, Key(KeyKind.A))) for _ in range(3)]
        front = _register(
            rotator, PriorityAction(always_queue, Key(KeyKind.B), queue_to_front=True)
        )

        rotator.rotate_action(resources, world)

        assert list(rotator.priority_actions_queue) == [front, *ids]

    def test_queued_action_is_ignored_while_waiting(self, rotator, resources, world):
        world.player.state = Stalling(Timeout(), 10)
        condition = MagicMock(return_value=ConditionResult.QUEUE)
        action_id = _register(rotator, PriorityAction(condition, Key(KeyKind.A)))

        rotator.rotate_action(resources, world)
        rotator.rotate_action(resources, world)

        assert condition.call_count == 1
        assert list(rotator.priority_actions_queue) == [action_id]
        assert rotator.priority_actions[action_id].queue_info.ignoring

    def test_front_action_dispatched_in_one_pass(self, rotator, resources, world):
        """没有优先动作时，插队动作一次调度后即成为玩家的优先动作。"""
        action_id = _register(
            rotator, PriorityAction(always_queue, Key(KeyKind.C), queue_to_front=True)
        )

        rotator.rotate_action(resources, world)

        context = world.player.context
        assert context.priority_action_id() == action_id
        assert context.priority_action == Key(KeyKind.C)
        assert not rotator.priority_actions_queue

    def test_second_front_action_cannot_preempt(self, rotator, resources, world):
        first = _register(
            rotator, PriorityAction(always_queue, Key(KeyKind.A), queue_to_front=True)
        )
        rotator.rotate_action(resources, world)
        second = _register(
            rotator, PriorityAction(always_queue, Key(KeyKind.B), queue_to_front=True)
        )

        rotator.rotate_action(resources, world)

        assert world.player.context.priority_action_id() == first
        assert list(rotator.priority_actions_queue) == [second]

    def test_front_action_replaces_non_front(self, rotator, resources, world):
        """插队动作替换执行中的普通优先动作，被替换的动作放回队首。"""
        normal = _register(rotator, PriorityAction(always_queue, Key(KeyKind.A)))
        rotator.rotate_action(resources, world)
        assert world.player.context.priority_action_id() == normal

        front = _register(
            rotator, PriorityAction(always_queue, Key(KeyKind.B), queue_to_front=True)
        )
        rotator.rotate_action(resources, world)

        assert world.player.context.priority_action_id() == front
        assert list(rotator.priority_actions_queue) == [normal]

    def test_non_front_waits_for_current_priority(self, rotator, resources, world):
        first = _register(rotator, PriorityAction(always_queue, Key(KeyKind.A)))
        rotator.rotate_action(resources, world)
        second = _register(rotator, PriorityAction(always_queue, Key(KeyKind.B)))

        rotator.rotate_action(resources, world)

        assert world.player.context.priority_action_id() == first
        assert list(rotator.priority_actions_queue) == [second]


class TestConflict:
    def test_booster_conflict_is_not_queued(self, rotator, resources, world):
        """同为加速器的动作在队列或执行中时，另一个的入队请求被忽略，但时间戳仍刷新。"""
        world.player.state = Stalling(Timeout(), 10)
        first = _register(
            rotator,
            PriorityAction(always_queue, Key(KeyKind.A), metadata=UseBoosterMetadata()),
        )
        second = _register(
            rotator,
            PriorityAction(always_queue, Key(KeyKind.B), metadata=UseBoosterMetadata()),
        )

        rotator.rotate_action(resources, world)

        assert list(rotator.priority_actions_queue) == [first]
        assert rotator.priority_actions[second].queue_info.last_queued_time is not None

    def test_booster_conflict_with_executing(self, rotator, resources, world):
        first = _register(
            rotator,
            PriorityAction(always_queue, Key(KeyKind.A), metadata=UseBoosterMetadata()),
        )
        rotator.rotate_action(resources, world)
        assert world.player.context.priority_action_id() == first

        second = _register(
            rotator,
            PriorityAction(always_queue, Key(KeyKind.B), metadata=UseBoosterMetadata()),
        )
        rotator.rotate_action(resources, world)

        assert second not in rotator.priority_actions_queue
        assert rotator.priority_actions[second].queue_info.last_queued_time is not None


class TestConditionResults:
    def test_skip_keeps_timestamp(self, rotator, resources, world):
        action_id = _register(
            rotator,
            PriorityAction(lambda *_: ConditionResult.SKIP, Key(KeyKind.A)),
        )
        rotator.rotate_action(resources, world)

        info = rotator.priority_actions[action_id].queue_info
        assert info.last_queued_time is None
        assert not rotator.priority_actions_queue

    def test_ignore_refreshes_timestamp(self, rotator, resources, world):
        action_id = _register(
            rotator,
            PriorityAction(lambda *_: ConditionResult.IGNORE, Key(KeyKind.A)),
        )
        rotator.rotate_action(resources, world)

        info = rotator.priority_actions[action_id].queue_info
        assert info.last_queued_time is not None
        assert not rotator.priority_actions_queue
        assert world.player.context.priority_action is None

    def test_every_millis_requeues_after_ticks(self, rotator, resources, world):
        """入队间隔按 tick 计算：推进足够的 tick 后再次入队。"""
        action_id = _register(
            rotator,
            fixed_priority_action(Key(KeyKind.A), ActionCondition.every_millis(1000), False),
        )
        context = world.player.context

        rotator.rotate_action(resources, world)
        assert context.priority_action_id() == action_id
        assert rotator.priority_actions[action_id].queue_info.last_queued_time == 0

        context.clear_action_completed()
        resources.tick += 1
        rotator.rotate_action(resources, world)
        assert context.priority_action_id() is None

        resources.tick += millis_to_ticks(1000)
        rotator.rotate_action(resources, world)
        assert context.priority_action_id() == action_id


# ── 连锁动作 ──


class TestLinkedAction:
    def test_chain_dispatches_one_node_per_completion(self, rotator, resources, world):
        """连锁动作每完成一个节点下发下一个，玩家上的动作 id 保持不变。"""
        chain = LinkedAction(Key(KeyKind.A), LinkedAction(Key(KeyKind.B)))
        action_id = _register(rotator, PriorityAction(always_queue, chain))
        context = world.player.context

        rotator.rotate_action(resources, world)
        assert context.priority_action == Key(KeyKind.A)
        assert context.priority_action_id() == action_id

        # 第一个节点仍在执行，不下发下一个
        rotator.rotate_action(resources, world)
        assert context.priority_action == Key(KeyKind.A)

        context.clear_action_completed()
        rotator.rotate_action(resources, world)
        assert context.priority_action == Key(KeyKind.B)
        assert context.priority_action_id() == action_id
        assert rotator.priority_queuing_linked_action is None

    def test_rotator_action_builds_chain(self):
        actions = [
            ActionKey(key=KeyKind.A),
            ActionMove(position=Position(x=10, y=5), condition=ActionCondition.linked()),
            ActionKey(key=KeyKind.B, condition=ActionCondition.linked()),
            ActionKey(key=KeyKind.C),
        ]

        head, offset = rotator_action(actions, 0)

        assert offset == 3
        assert isinstance(head, LinkedAction)
        assert list(head) == [
            Key(KeyKind.A),
            Move(Position(x=10, y=5)),
            Key(KeyKind.B),
        ]
        single, offset = rotator_action(actions, 3)
        assert single == Key(KeyKind.C)
        assert offset == 1


# ── 注入动作 ──


class TestInjectedAction:
    def test_injected_runs_while_halting(self, rotator, resources, world):
        condition = MagicMock(return_value=ConditionResult.QUEUE)
        _register(rotator, PriorityAction(condition, Key(KeyKind.A)))
        resources.operation = Operation.halting

        rotator.inject_action(Chat("hello"))
        rotator.inject_action(Chat("again"))
        rotator.rotate_action(resources, world)

        context = world.player.context
        assert context.priority_action == Chat("hello")
        assert context.priority_action_id() is None
        condition.assert_not_called()

        # 上一个注入动作仍在执行
        rotator.rotate_action(resources, world)
        assert context.priority_action == Chat("hello")
        assert len(rotator.priority_actions_side_queue) == 1

    def test_injected_before_priority_queue(self, rotator, resources, world):
        _register(rotator, PriorityAction(always_queue, Key(KeyKind.A)))
        rotator.inject_action(Chat("hi"))

        rotator.rotate_action(resources, world)

        assert world.player.context.priority_action == Chat("hi")
        assert len(rotator.priority_actions_queue) == 1


# ── 生成动作 ──


class TestBuildActions:
    def _actions(self):
        return (
            ActionKey(key=KeyKind.A, condition=ActionCondition.every_millis(1000)),
            ActionKey(key=KeyKind.B),
            ActionMove(position=Position(x=1, y=2)),
            ActionKey(key=KeyKind.C, condition=ActionCondition.linked()),
        )

    def test_normal_and_priority_split(self, rotator):
        args = RotatorBuildArgs(
            mode=RotationMode.start_to_end,
            actions=self._actions(),
            buffs=((BuffKind.familiar, KeyKind.F),),
        )
        rotator.build_actions(args)

        assert len(rotator.normal_actions) == 2
        assert isinstance(rotator.normal_actions[1][1], LinkedAction)
        # 固定动作、解符文、宠物精华、增益、脱困
        assert len(rotator.priority_actions) == 5

    def test_auto_mobbing_ignores_any_actions(self, rotator):
        args = RotatorBuildArgs(
            mode=RotationMode.auto_mobbing,
            mobbing_key=MobbingKey(key=KeyKind.A),
            actions=self._actions(),
            enable_rune_solving=False,
        )
        rotator.build_actions(args)

        assert rotator.normal_actions == []
        assert len(rotator.priority_actions) == 2

    def test_ids_are_unique(self, rotator):
        rotator.build_actions(RotatorBuildArgs(actions=self._actions()))
        ids = [action_id for action_id, _ in rotator.normal_actions]
        ids += list(rotator.priority_actions)
        assert len(ids) == len(set(ids))

    def test_rebuild_clears_queue(self, rotator, resources, world):
        world.player.state = Stalling(Timeout(), 10)
        _register(rotator, PriorityAction(always_queue, Key(KeyKind.A)))
        rotator.rotate_action(resources, world)
        assert rotator.priority_actions_queue

        rotator.build_actions(RotatorBuildArgs(enable_rune_solving=False))

        assert not rotator.priority_actions_queue
        assert rotator.normal_index == 0


# ── 普通动作 ──


def _normal_sequence(rotator, resources, world, n: int) -> list[KeyKind]:
    context = world.player.context
    keys = []
    for _ in range(n):
        rotator.rotate_action(resources, world)
        keys.append(context.normal_action.key)
        context.reset_normal_action()
    return keys


class TestNormalRotation:
    def _args(self, mode: RotationMode) -> RotatorBuildArgs:
        return RotatorBuildArgs(
            mode=mode,
            actions=tuple(ActionKey(key=key) for key in (KeyKind.A, KeyKind.B, KeyKind.C)),
            enable_rune_solving=False,
        )

    def test_start_to_end(self, rotator, resources, world):
        rotator.build_actions(self._args(RotationMode.start_to_end))
        keys = _normal_sequence(rotator, resources, world, 5)
        assert keys == [KeyKind.A, KeyKind.B, KeyKind.C, KeyKind.A, KeyKind.B]

    def test_start_to_end_then_reverse(self, rotator, resources, world):
        rotator.build_actions(self._args(RotationMode.start_to_end_then_reverse))
        keys = _normal_sequence(rotator, resources, world, 9)
        assert keys == [
            KeyKind.A,
            KeyKind.B,
            KeyKind.C,
            KeyKind.B,
            KeyKind.A,
            KeyKind.B,
            KeyKind.C,
            KeyKind.B,
            KeyKind.A,
        ]

    def test_existing_normal_action_is_kept(self, rotator, resources, world):
        rotator.build_actions(self._args(RotationMode.start_to_end))
        rotator.rotate_action(resources, world)
        rotator.rotate_action(resources, world)
        assert world.player.context.normal_action == Key(KeyKind.A)

    def test_erda_action_resets_normal_rotation(self, rotator, resources, world):
        """艾尔达斯之雨冷却结束的动作入队时，普通轮换从头开始。"""
        args = RotatorBuildArgs(
            mode=RotationMode.start_to_end,
            actions=(
                ActionKey(key=KeyKind.A),
                ActionKey(key=KeyKind.B),
                ActionKey(key=KeyKind.E, condition=ActionCondition.erda_shower_off_cooldown()),
            ),
            enable_rune_solving=False,
            enable_reset_normal_actions_on_erda=True,
        )
        rotator.build_actions(args)
        world.player.state = Stalling(Timeout(), 10)
        rotator.rotate_action(resources, world)
        assert world.player.context.normal_action == Key(KeyKind.A)
        assert rotator.normal_index == 1

        anchor = Anchor(Point(0, 0), Color(0, 0, 0))
        world.skills[SkillKind.erda_shower].state = SkillIdle(anchor)
        rotator.rotate_action(resources, world)

        # 重置后立即重新从第一个普通动作开始
        assert world.player.context.normal_action == Key(KeyKind.A)
        assert rotator.normal_index == 1


class TestMobbingModes:
    def test_ping_pong_moves_toward_farther_edge(self, resources, world):
        rotator = Rotator(
            mode=RotationMode.ping_pong,
            mobbing_key=MobbingKey(key=KeyKind.A),
            ping_pong_bound=Rect(10, 5, 80, 20),
        )
        world.minimap.state = _idle_minimap()
        world.player.context.last_known_pos = Point(30, 10)

        rotator.rotate_action(resources, world)

        action = world.player.context.normal_action
        assert isinstance(action, PingPong)
        assert action.direction is PingPongDirection.right
        assert action.bound == Rect(10, 25, 80, 20)

    def test_ping_pong_requires_position(self, resources, world):
        rotator = Rotator(mode=RotationMode.ping_pong, mobbing_key=MobbingKey(key=KeyKind.A))
        world.minimap.state = _idle_minimap()

        rotator.rotate_action(resources, world)

        assert world.player.context.normal_action is None

    def test_auto_mob_targets_detected_mob(self, resources, world, fake_detector):
        rotator = Rotator(
            mode=RotationMode.auto_mobbing,
            mobbing_key=MobbingKey(key=KeyKind.A),
            auto_mob_bound=Rect(0, 0, 100, 50),
        )
        world.minimap.state = _idle_minimap()
        world.player.context.last_known_pos = Point(10, 20)
        fake_detector.detect_mobs.return_value = [Point(40, 30)]

        # 第一次轮询只提交识别
        rotator.rotate_action(resources, world)
        assert world.player.context.normal_action is None
        rotator.rotate_action(resources, world)

        action = world.player.context.normal_action
        assert isinstance(action, AutoMob)
        assert (action.position.x, action.position.y) == (40, 20)
        assert not action.is_pathing

    def test_auto_mob_falls_back_to_pathing(self, resources, world, fake_detector):
        """怪物都够不着时前往下一象限的寻路点。"""
        rotator = Rotator(
            mode=RotationMode.auto_mobbing,
            mobbing_key=MobbingKey(key=KeyKind.A),
            auto_mob_bound=Rect(0, 0, 100, 50),
        )
        world.minimap.state = _idle_minimap()
        world.player.context.last_known_pos = Point(10, 5)
        fake_detector.detect_mobs.return_value = [Point(40, 0)]

        rotator.rotate_action(resources, world)
        rotator.rotate_action(resources, world)

        action = world.player.context.normal_action
        assert isinstance(action, AutoMob)
        assert action.is_pathing
        assert world.player.context.auto_mob_last_quadrant is not None
