"""跳跃与上跳。"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from automaple.entities.minimap import Minimap
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob
from automaple.player.context import LastMovement
from automaple.player.moving import (
    JUMP_MIN_THRESHOLD,
    ChangeAxis,
    next_movement_lifecycle,
    transition_to_moving,
)
from automaple.player.state import MOVE_TIMEOUT, Jumping, UpJumping
from automaple.player.transitions import (
    next_action,
    require_position,
    update_from_auto_mob_action,
)
from automaple.timeout import Ended, Started, Updated
from automaple.types import KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

UP_JUMP_TIMEOUT = MOVE_TIMEOUT + 3

UP_JUMP_FLIGHT_STOPPING_THRESHOLD = JUMP_MIN_THRESHOLD
"""飞行上跳时距离目标 y 小于等于该值即松开按键"""


def update_jumping_state(resources: Resources, player: PlayerEntity) -> None:
    """原地跳一次，等待落地。"""
    state = player.state
    if not isinstance(state, Jumping):
        raise StateProtocolError("Jumping", state)
    context = player.context
    cur_pos = require_position(context)

    lifecycle, movement = next_movement_lifecycle(state.movement, cur_pos, MOVE_TIMEOUT)
    match lifecycle:
        case Started():
            context.last_movement = LastMovement.jumping
            resources.input.send_key(context.config.jump_key)
            player.state = Jumping(replace(movement, completed=True))
        case Updated():
            player.state = Jumping(movement)
        case Ended():
            transition_to_moving(player, movement)


def update_up_jumping_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    """上跳。

    三种方式：

    - 没有上跳键：按住 ↑ 后连按两次跳跃；
    - 有上跳键：按住 ↑ 后按上跳键，``up_jump_specific_key_should_jump`` 时先起跳；
    - ``up_jump_is_flight``：按住上跳键飞行，接近目标后松开。
    """
    state = player.state
    if not isinstance(state, UpJumping):
        raise StateProtocolError("UpJumping", state)
    context = player.context
    config = context.config
    cur_pos = require_position(context)

    lifecycle, movement = next_movement_lifecycle(
        state.movement, cur_pos, UP_JUMP_TIMEOUT, ChangeAxis.vertical
    )
    match lifecycle:
        case Started():
            context.last_movement = LastMovement.up_jumping
            resources.input.send_key_down(KeyKind.Up)
            if config.up_jump_key is None or config.up_jump_specific_key_should_jump:
                resources.input.send_key(config.jump_key)
            player.state = UpJumping(movement)
            return
        case Ended():
            resources.input.send_key_up(KeyKind.Up)
            if config.up_jump_is_flight and config.up_jump_key is not None:
                resources.input.send_key_up(config.up_jump_key)
            transition_to_moving(player, movement)
            return
        case Updated():
            pass

    y_distance, y_direction = movement.y_distance_direction_from(cur_pos)
    if not movement.completed:
        key = config.up_jump_key
        if key is None:
            resources.input.send_key(config.jump_key)
            completed = True
        elif config.up_jump_is_flight:
            resources.input.send_key_down(key)
            completed = y_direction <= 0 or y_distance <= UP_JUMP_FLIGHT_STOPPING_THRESHOLD
            if completed:
                resources.input.send_key_up(key)
        else:
            resources.input.send_key(key)
            completed = True
        if completed:
            resources.input.send_key_up(KeyKind.Up)
            movement = replace(movement, completed=True)
    player.state = UpJumping(movement)

    match next_action(context):
        case AutoMob() as mob:
            x_distance, x_direction = movement.x_distance_direction_from(cur_pos)
            update_from_auto_mob_action(
                resources, player, minimap, mob, x_distance, x_direction, y_distance
            )
        case _:
            pass
