"""下跳。

按住 ↓ 起跳穿过脚下的平台，y 低于起跳点即视为已经落下。
配置了瞬移键时在下落途中瞬移以加速，可通过 ``disable_teleport_on_fall`` 关闭。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from automaple.entities.minimap import Minimap
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob
from automaple.player.context import LastMovement
from automaple.player.moving import next_movement_lifecycle, transition_to_moving
from automaple.player.state import FALLING_THRESHOLD, MOVE_TIMEOUT, Falling
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

FALLING_TELEPORT_THRESHOLD = FALLING_THRESHOLD
"""剩余 y 距离达到该值时才在下落途中瞬移"""


def update_falling_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    state = player.state
    if not isinstance(state, Falling):
        raise StateProtocolError("Falling", state)
    context = player.context
    config = context.config
    cur_pos = require_position(context)

    lifecycle, movement = next_movement_lifecycle(state.movement, cur_pos, MOVE_TIMEOUT)
    match lifecycle:
        case Started():
            context.last_movement = LastMovement.falling
            resources.input.send_key_down(KeyKind.Down)
            resources.input.send_key(config.jump_key)
            player.state = replace(state, movement=movement)
            return
        case Ended():
            resources.input.send_key_up(KeyKind.Down)
            transition_to_moving(player, movement)
            return
        case Updated():
            pass

    y_distance, _ = movement.y_distance_direction_from(cur_pos)
    if not movement.completed:
        if (
            movement.timeout.total == 2
            and config.teleport_key is not None
            and not config.disable_teleport_on_fall
            and y_distance >= FALLING_TELEPORT_THRESHOLD
        ):
            resources.input.send_key(config.teleport_key)
        if cur_pos.y < state.anchor.y:
            resources.input.send_key_up(KeyKind.Down)
            movement = replace(movement, completed=True)
            if state.timeout_on_complete:
                movement = replace(
                    movement, timeout=replace(movement.timeout, current=MOVE_TIMEOUT)
                )
    player.state = replace(state, movement=movement)

    match next_action(context):
        case AutoMob() as mob:
            x_distance, x_direction = movement.x_distance_direction_from(cur_pos)
            update_from_auto_mob_action(
                resources, player, minimap, mob, x_distance, x_direction, y_distance
            )
        case _:
            pass
