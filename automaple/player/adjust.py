"""小距离水平移动。

距离较大时按住方向键走动；精确对齐时改为每隔几个 tick 轻点一次方向键，
直到 x 完全一致。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from automaple.entities.minimap import Minimap
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob
from automaple.player.context import LastMovement
from automaple.player.moving import (
    ADJUSTING_MEDIUM_THRESHOLD,
    ADJUSTING_SHORT_THRESHOLD,
    next_movement_lifecycle,
    transition_to_moving,
)
from automaple.player.state import MOVE_TIMEOUT, Adjusting
from automaple.player.transitions import (
    next_action,
    require_position,
    update_from_auto_mob_action,
)
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import ActionKeyDirection, KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

ADJUSTING_SHORT_TIMEOUT = 3
"""精确对齐时两次轻点之间的 tick 数"""


def update_adjusting_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    state = player.state
    if not isinstance(state, Adjusting):
        raise StateProtocolError("Adjusting", state)
    context = player.context
    cur_pos = require_position(context)

    lifecycle, movement = next_movement_lifecycle(state.movement, cur_pos, MOVE_TIMEOUT)
    match lifecycle:
        case Started():
            context.last_movement = LastMovement.adjusting
            player.state = replace(state, movement=movement)
            return
        case Ended():
            resources.input.send_key_up(KeyKind.Left)
            resources.input.send_key_up(KeyKind.Right)
            transition_to_moving(player, movement)
            return
        case Updated():
            pass

    x_distance, x_direction = movement.x_distance_direction_from(cur_pos)
    adjust_timeout = state.adjust_timeout
    if not movement.completed:
        if x_direction > 0:
            key, opposite, direction = KeyKind.Right, KeyKind.Left, ActionKeyDirection.right
        else:
            key, opposite, direction = KeyKind.Left, KeyKind.Right, ActionKeyDirection.left

        if x_distance >= ADJUSTING_MEDIUM_THRESHOLD and not context.config.disable_adjusting:
            resources.input.send_key_up(opposite)
            resources.input.send_key_down(key)
            context.last_known_direction = direction
        elif movement.exact and x_distance >= ADJUSTING_SHORT_THRESHOLD:
            resources.input.send_key_up(KeyKind.Left)
            resources.input.send_key_up(KeyKind.Right)
            match next_timeout_lifecycle(adjust_timeout, ADJUSTING_SHORT_TIMEOUT):
                case Started(timeout):
                    resources.input.send_key(key)
                    context.last_known_direction = direction
                    adjust_timeout = timeout
                case Updated(timeout):
                    adjust_timeout = timeout
                case Ended():
                    adjust_timeout = Timeout()
        else:
            resources.input.send_key_up(KeyKind.Left)
            resources.input.send_key_up(KeyKind.Right)
            movement = replace(
                movement,
                completed=True,
                timeout=replace(movement.timeout, current=MOVE_TIMEOUT),
            )

    player.state = replace(state, movement=movement, adjust_timeout=adjust_timeout)

    match next_action(context):
        case AutoMob() as mob:
            y_distance, _ = movement.y_distance_direction_from(cur_pos)
            update_from_auto_mob_action(
                resources, player, minimap, mob, x_distance, x_direction, y_distance
            )
        case _:
            pass
