"""测试移动协调与各移动方式。"""

import pytest

from automaple.entities.minimap import MinimapDetecting
from automaple.geometry import Point
from automaple.models.actions import Position
from automaple.player.actions import Key, Move
from automaple.player.adjust import update_adjusting_state
from automaple.player.context import (
    HORIZONTAL_MOVEMENT_REPEAT_COUNT,
    UNSTUCK_COUNT_THRESHOLD,
    LastMovement,
)
from automaple.player.fall import update_falling_state
from automaple.player.grapple import update_grappling_state
from automaple.player.moving import next_movement_lifecycle, update_moving_state
from automaple.player.state import (
    MOVE_TIMEOUT,
    Adjusting,
    DoubleJumping,
    Falling,
    Grappling,
    Idle,
    Jumping,
    Movement,
    Moving,
    Stalling,
    Unstucking,
    UpJumping,
    UseKey,
)
from automaple.timeout import Ended, Started, Timeout, Updated
from automaple.types import ActionKeyDirection, ActionKeyWith, KeyKind

START = Point(50, 20)


def _with_config(context, **changes):
    context.config = context.config.model_copy(update=changes)
    return context


@pytest.fixture
def minimap():
    return MinimapDetecting()


@pytest.fixture
def positioned(player):
    player.context.last_known_pos = START
    return player


# ── 移动计时 ──


class TestMovementLifecycle:
    def test_ends_after_position_stable(self):
        movement = Movement(Point(0, 0), Point(10, 0))
        lifecycle, movement = next_movement_lifecycle(movement, START, MOVE_TIMEOUT)
        assert isinstance(lifecycle, Started)
        assert movement.pos == START

        for _ in range(MOVE_TIMEOUT - 1):
            lifecycle, movement = next_movement_lifecycle(movement, START, MOVE_TIMEOUT)
            assert isinstance(lifecycle, Updated)

        lifecycle, _ = next_movement_lifecycle(movement, START, MOVE_TIMEOUT)
        assert lifecycle == Ended()

    def test_position_change_resets(self):
        movement = Movement(START, Point(10, 0), timeout=Timeout(current=3, total=4, started=True))
        lifecycle, movement = next_movement_lifecycle(movement, Point(51, 20), MOVE_TIMEOUT)
        assert isinstance(lifecycle, Updated)
        assert movement.timeout.current == 0


# ── Moving ──


class TestMoving:
    @pytest.mark.parametrize(
        ("dest", "expected"),
        [
            (Point(80, 20), DoubleJumping),
            (Point(55, 20), Adjusting),
            (Point(50, 50), UpJumping),
            (Point(50, 25), Jumping),
            (Point(50, 8), Falling),
        ],
    )
    def test_picks_movement_kind(self, resources, positioned, minimap, dest, expected):
        positioned.state = Moving(dest)

        update_moving_state(resources, positioned, minimap)

        assert isinstance(positioned.state, expected)
        assert positioned.state.movement.dest == dest

    def test_grappling_with_key(self, resources, positioned, minimap):
        _with_config(positioned.context, grappling_key=KeyKind.R)
        positioned.state = Moving(Point(50, 50))

        update_moving_state(resources, positioned, minimap)

        assert isinstance(positioned.state, Grappling)

    def test_teleport_halves_double_jump_threshold(self, resources, positioned, minimap):
        _with_config(positioned.context, teleport_key=KeyKind.X)
        positioned.state = Moving(Point(65, 20))

        update_moving_state(resources, positioned, minimap)

        assert isinstance(positioned.state, DoubleJumping)

    def test_exact_requires_short_adjust(self, resources, positioned, minimap):
        positioned.state = Moving(Point(51, 20), exact=True)
        update_moving_state(resources, positioned, minimap)
        assert isinstance(positioned.state, Adjusting)

    def test_close_enough_without_action(self, resources, positioned, minimap):
        positioned.state = Moving(Point(51, 20))
        update_moving_state(resources, positioned, minimap)
        assert positioned.state == Idle()

    def test_falling_anchor_is_start(self, resources, positioned, minimap):
        positioned.state = Moving(Point(50, 8))
        update_moving_state(resources, positioned, minimap)
        assert positioned.state.anchor == START

    def test_arrived_uses_key(self, resources, positioned, minimap):
        positioned.context.set_priority_action(1, Key(KeyKind.A))
        positioned.state = Moving(START)

        update_moving_state(resources, positioned, minimap)

        assert isinstance(positioned.state, UseKey)
        assert positioned.state.key is KeyKind.A

    def test_arrived_move_waits(self, resources, positioned, minimap):
        positioned.context.set_normal_action(1, Move(Position(x=50, y=20), 10))
        positioned.state = Moving(START)

        update_moving_state(resources, positioned, minimap)

        assert positioned.state == Stalling(Timeout(), 10)

    def test_arrived_move_completes(self, resources, positioned, minimap):
        positioned.context.set_normal_action(1, Move(Position(x=50, y=20)))
        positioned.state = Moving(START)

        update_moving_state(resources, positioned, minimap)

        assert positioned.state == Idle()
        assert not positioned.context.has_normal_action()

    def test_double_jump_key_in_other_direction(self, resources, positioned, minimap):
        """方向不符时先由按键状态转向。"""
        positioned.context.last_known_direction = ActionKeyDirection.left
        positioned.context.set_priority_action(
            1, Key(KeyKind.A, direction=ActionKeyDirection.right, with_=ActionKeyWith.double_jump)
        )
        positioned.state = Moving(START)

        update_moving_state(resources, positioned, minimap)

        assert isinstance(positioned.state, UseKey)

    def test_unstucking_after_no_progress(self, resources, positioned, minimap):
        positioned.context.unstuck_count = UNSTUCK_COUNT_THRESHOLD - 1
        positioned.state = Moving(Point(80, 20))

        update_moving_state(resources, positioned, minimap)

        assert isinstance(positioned.state, Unstucking)
        assert not positioned.state.esc_only

    def test_repeated_movement_aborts(self, resources, positioned, minimap):
        context = positioned.context
        context.set_normal_action(1, Move(Position(x=55, y=20)))
        context.last_movement = LastMovement.adjusting
        context.last_movement_normal_map[LastMovement.adjusting] = (
            HORIZONTAL_MOVEMENT_REPEAT_COUNT - 1
        )
        positioned.state = Moving(Point(55, 20))

        update_moving_state(resources, positioned, minimap)

        assert positioned.state == Idle()
        assert not context.has_normal_action()


# ── 各移动方式 ──


class TestAdjusting:
    def test_walks_toward_target(self, resources, positioned, minimap, fake_input):
        positioned.state = Adjusting(Movement(START, Point(55, 20)))

        update_adjusting_state(resources, positioned, minimap)
        assert positioned.context.last_movement is LastMovement.adjusting
        fake_input.send_key_down.assert_not_called()

        update_adjusting_state(resources, positioned, minimap)
        fake_input.send_key_up.assert_any_call(KeyKind.Left)
        fake_input.send_key_down.assert_called_with(KeyKind.Right)
        assert positioned.context.last_known_direction is ActionKeyDirection.right

    def test_exact_taps(self, resources, positioned, minimap, fake_input):
        positioned.state = Adjusting(Movement(START, Point(49, 20), exact=True))

        update_adjusting_state(resources, positioned, minimap)
        update_adjusting_state(resources, positioned, minimap)

        fake_input.send_key.assert_called_once_with(KeyKind.Left)
        fake_input.send_key_down.assert_not_called()

    def test_close_enough_returns_to_moving(self, resources, positioned, minimap):
        positioned.state = Adjusting(Movement(START, Point(51, 20)))

        update_adjusting_state(resources, positioned, minimap)
        update_adjusting_state(resources, positioned, minimap)
        assert positioned.state.movement.completed

        update_adjusting_state(resources, positioned, minimap)
        assert positioned.state == Moving(Point(51, 20))


class TestFalling:
    def test_drop_through_platform(self, resources, positioned, minimap, fake_input):
        positioned.state = Falling(Movement(START, Point(50, 8)), START)

        update_falling_state(resources, positioned, minimap)
        fake_input.send_key_down.assert_called_once_with(KeyKind.Down)
        fake_input.send_key.assert_called_once_with(KeyKind.Alt)

        positioned.context.last_known_pos = Point(50, 12)
        update_falling_state(resources, positioned, minimap)

        fake_input.send_key_up.assert_called_with(KeyKind.Down)
        assert positioned.state.movement.completed

    def test_teleport_while_falling(self, resources, positioned, minimap, fake_input):
        _with_config(positioned.context, teleport_key=KeyKind.X)
        positioned.state = Falling(Movement(START, Point(50, 0)), START)

        update_falling_state(resources, positioned, minimap)
        positioned.context.last_known_pos = Point(50, 19)
        update_falling_state(resources, positioned, minimap)

        fake_input.send_key.assert_any_call(KeyKind.X)


class TestGrappling:
    def test_stops_near_target(self, resources, positioned, minimap, fake_input):
        _with_config(positioned.context, grappling_key=KeyKind.R)
        positioned.state = Grappling(Movement(START, Point(50, 50)))

        update_grappling_state(resources, positioned, minimap)
        positioned.context.last_known_pos = Point(50, 30)
        update_grappling_state(resources, positioned, minimap)
        assert fake_input.send_key.call_count == 1

        positioned.context.last_known_pos = Point(50, 48)
        update_grappling_state(resources, positioned, minimap)

        assert fake_input.send_key.call_count == 2
        assert positioned.state.movement.completed
