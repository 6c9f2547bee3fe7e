"""移动协调。

:class:`~automaple.player.state.Moving` 本身不发送按键，只根据与目标的距离
选择具体的移动方式：先水平（二段跳 / 微调），再垂直（绳索 / 上跳 / 跳跃 / 下跳）。
各移动状态结束后都回到 Moving 重新判断，直到到达目标。

到达目标后根据当前动作决定下一步（使用按键、解除符文、完成移动……）。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap
from automaple.geometry import Point
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob, Key, Move, PingPong, SolveRune
from automaple.player.context import LastMovement
from automaple.player.state import (
    GRAPPLING_MAX_THRESHOLD,
    GRAPPLING_THRESHOLD,
    JUMP_THRESHOLD,
    Adjusting,
    DoubleJumping,
    Falling,
    Grappling,
    Idle,
    Jumping,
    Movement,
    Moving,
    Player,
    SolvingRune,
    Stalling,
    Unstucking,
    UpJumping,
    UseKey,
)
from automaple.player.transitions import next_action, require_position, transition_from_action
from automaple.timeout import Ended, Lifecycle, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import ActionKeyDirection, ActionKeyWith, StrEnum

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

ADJUSTING_MEDIUM_THRESHOLD = 3
"""需要微调的最小 x 距离"""

ADJUSTING_SHORT_THRESHOLD = 1
"""精确对齐时需要微调的最小 x 距离"""

UP_JUMP_THRESHOLD = 10
"""需要上跳的最小 y 距离"""

JUMP_MIN_THRESHOLD = 4
"""需要跳跃的最小 y 距离，小于 :data:`JUMP_THRESHOLD` 时才跳跃"""


class ChangeAxis(StrEnum):
    """判断位置是否变化时参考的坐标轴。"""

    horizontal = "Horizontal"
    vertical = "Vertical"
    both = "Both"


def next_movement_lifecycle(
    movement: Movement,
    cur_pos: Point,
    max_timeout: int,
    axis: ChangeAxis = ChangeAxis.both,
) -> tuple[Lifecycle, Movement]:
    """推进移动计时。

    位置在 *axis* 上发生变化时计时归零，因此只有在位置连续 *max_timeout*
    个 tick 不变后才会结束。返回的 :class:`Movement` 已更新为当前位置与新的计时。
    """
    prev_pos = movement.pos
    lifecycle = next_timeout_lifecycle(movement.timeout, max_timeout)
    match lifecycle:
        case Started(timeout):
            return lifecycle, replace(movement, pos=cur_pos, timeout=timeout)
        case Updated(timeout):
            match axis:
                case ChangeAxis.horizontal:
                    changed = prev_pos.x != cur_pos.x
                case ChangeAxis.vertical:
                    changed = prev_pos.y != cur_pos.y
                case ChangeAxis.both:
                    changed = prev_pos != cur_pos
            if changed:
                timeout = replace(timeout, current=0)
            lifecycle = Updated(timeout)
            return lifecycle, replace(movement, pos=cur_pos, timeout=timeout)
        case Ended():
            return lifecycle, replace(movement, pos=cur_pos)


def transition_to_moving(player: PlayerEntity, movement: Movement) -> None:
    """移动方式结束，回到 Moving 重新判断。"""
    player.state = Moving(movement.dest, movement.exact)


def update_moving_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    """更新 :class:`Moving` 状态。

    同时负责脱困计数：位置未变化的情况下反复进入 Moving 会转移到
    :class:`Unstucking`。同一种移动方式重复次数过多时放弃当前动作。
    """
    state = player.state
    if not isinstance(state, Moving):
        raise StateProtocolError("Moving", state)
    context = player.context

    player.state = Idle()
    if context.track_unstucking():
        logger.info("位置长时间未变化，开始脱困")
        player.state = Unstucking.new_movement(Timeout(), context.track_unstucking_transitioned())
        return

    cur_pos = require_position(context)
    movement = Movement(cur_pos, state.dest, state.exact)
    x_distance, _ = movement.x_distance_direction_from(cur_pos)
    y_distance, y_direction = movement.y_distance_direction_from(cur_pos)
    config = context.config

    if not config.disable_double_jumping and x_distance >= context.double_jump_threshold():
        require_near_stationary = (
            context.has_ping_pong_action_only()
            and context.last_movement not in (LastMovement.grappling, LastMovement.up_jumping)
        )
        abort_action_on_state_repeat(
            player, DoubleJumping(movement, False, require_near_stationary), minimap
        )
        return

    # 只有在不需要精确对齐时才允许禁用微调
    if (not config.disable_adjusting and x_distance >= ADJUSTING_MEDIUM_THRESHOLD) or (
        state.exact and x_distance >= ADJUSTING_SHORT_THRESHOLD
    ):
        abort_action_on_state_repeat(player, Adjusting(movement), minimap)
        return

    has_teleport_key = config.teleport_key is not None
    if (
        y_direction > 0
        and (
            (not has_teleport_key and y_distance >= GRAPPLING_THRESHOLD)
            or (has_teleport_key and y_distance >= GRAPPLING_MAX_THRESHOLD)
        )
        and not context.should_disable_grappling()
    ):
        abort_action_on_state_repeat(player, Grappling(movement), minimap)
        return

    if y_direction > 0 and y_distance >= UP_JUMP_THRESHOLD:
        abort_action_on_state_repeat(player, UpJumping(movement), minimap)
        return

    if y_direction > 0 and JUMP_MIN_THRESHOLD <= y_distance < JUMP_THRESHOLD:
        abort_action_on_state_repeat(player, Jumping(movement), minimap)
        return

    if y_direction < 0 and y_distance >= context.falling_threshold():
        abort_action_on_state_repeat(player, Falling(movement, cur_pos, False), minimap)
        return

    logger.debug("已到达 {}，实际位置 {}", state.dest, cur_pos)
    _update_from_action(resources, player, movement)


def abort_action_on_state_repeat(
    player: PlayerEntity, next_state: Player, minimap: Minimap
) -> None:
    """同一种移动方式重复过多时放弃动作，否则转移到 *next_state*。"""
    context = player.context
    if context.track_last_movement_repeated():
        logger.info("移动方式重复次数过多，放弃当前动作")
        context.auto_mob_track_ignore_xs(minimap, True)
        context.clear_action_completed()
        player.state = Idle()
        return
    player.state = next_state


def _update_from_action(resources: Resources, player: PlayerEntity, movement: Movement) -> None:
    action = next_action(player.context)
    last_direction = player.context.last_known_direction

    match action:
        case Move(wait_after_move_ticks=wait_ticks):
            if wait_ticks > 0:
                player.state = Stalling(Timeout(), wait_ticks)
                return
            transition_from_action(player, Idle())
        case Key(with_=ActionKeyWith.double_jump, direction=direction):
            if direction is ActionKeyDirection.any or direction is last_direction:
                player.state = DoubleJumping(movement, True, False)
            else:
                player.state = UseKey.from_key(action, resources.rng)
        case Key():
            player.state = UseKey.from_key(action, resources.rng)
        case AutoMob():
            player.state = UseKey.from_auto_mob(
                action, ActionKeyDirection.any, True, resources.rng
            )
        case SolveRune():
            player.state = SolvingRune()
        case PingPong():
            transition_from_action(player, Idle())
        case None:
            pass
        case _:
            raise TypeError(f"移动结束时无法处理动作 {action}")
