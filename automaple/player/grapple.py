"""绳索技能。

按下绳索键后角色持续上升，接近目标（或已经越过）时再按一次停止。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from automaple.entities.minimap import Minimap
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob
from automaple.player.context import LastMovement
from automaple.player.moving import ChangeAxis, next_movement_lifecycle, transition_to_moving
from automaple.player.state import MOVE_TIMEOUT, Grappling
from automaple.player.transitions import (
    next_action,
    require_position,
    update_from_auto_mob_action,
)
from automaple.timeout import Ended, Started, Updated

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

GRAPPLING_TIMEOUT = MOVE_TIMEOUT * 8
"""按下绳索键后位置持续不变的最大 tick 数，覆盖出绳动画"""

GRAPPLING_STOPPING_THRESHOLD = 3
"""距离目标 y 小于等于该值时再次按键停止上升"""


def update_grappling_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    state = player.state
    if not isinstance(state, Grappling):
        raise StateProtocolError("Grappling", state)
    context = player.context
    key = context.config.grappling_key
    cur_pos = require_position(context)

    lifecycle, movement = next_movement_lifecycle(
        state.movement, cur_pos, GRAPPLING_TIMEOUT, ChangeAxis.vertical
    )
    match lifecycle:
        case Started():
            context.last_movement = LastMovement.grappling
            if key is not None:
                resources.input.send_key(key)
            player.state = Grappling(movement)
            return
        case Ended():
            transition_to_moving(player, movement)
            return
        case Updated():
            pass

    y_distance, y_direction = movement.y_distance_direction_from(cur_pos)
    if not movement.completed and (y_direction <= 0 or y_distance <= GRAPPLING_STOPPING_THRESHOLD):
        if key is not None:
            resources.input.send_key(key)
        # 停止后只需等待落稳
        current = max(movement.timeout.current, GRAPPLING_TIMEOUT - MOVE_TIMEOUT)
        movement = replace(
            movement, completed=True, timeout=replace(movement.timeout, current=current)
        )
    player.state = Grappling(movement)

    match next_action(context):
        case AutoMob() as mob:
            x_distance, x_direction = movement.x_distance_direction_from(cur_pos)
            update_from_auto_mob_action(
                resources, player, minimap, mob, x_distance, x_direction, y_distance
            )
        case _:
            pass
