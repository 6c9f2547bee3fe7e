"""状态更新函数共用的转移工具。

状态更新函数的约定：接收 :class:`~automaple.player.state.PlayerEntity`，
直接写入 ``player.state`` 后返回。完成动作的转移必须经由
:func:`transition_from_action`，以保证动作槽位与计数器同步清理。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from automaple.entities.minimap import Minimap, MinimapIdle
from automaple.geometry import Point
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import (
    AUTO_MOB_USE_KEY_X_THRESHOLD,
    AUTO_MOB_USE_KEY_Y_THRESHOLD,
    AutoMob,
    Key,
    Move,
    PingPong,
    PingPongDirection,
    PlayerAction,
    SolveRune,
)
from automaple.player.state import Adjusting, DoubleJumping, Idle, Moving, Player, UseKey
from automaple.types import ARROW_KEYS, ActionKeyDirection

if TYPE_CHECKING:
    from automaple.player.context import PlayerContext
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources


def next_action(context: PlayerContext) -> PlayerAction | None:
    """当前应执行的动作，优先动作优先。"""
    if context.priority_action is not None:
        return context.priority_action
    return context.normal_action


def require_position(context: PlayerContext) -> Point:
    """带位置的状态只在已知玩家位置时更新。"""
    pos = context.last_known_pos
    if pos is None:
        raise StateProtocolError("已知玩家位置", pos)
    return pos


def release_arrow_keys(resources: Resources) -> None:
    for key in ARROW_KEYS:
        resources.input.send_key_up(key)


def transition_from_action(player: PlayerEntity, state: Player, is_terminal: bool = True) -> None:
    """转移到 *state*，*is_terminal* 为 True 时同时完成当前动作。

    带位置的动作完成时说明角色确实移动过，清空脱困计数。
    """
    if is_terminal:
        action = next_action(player.context)
        if isinstance(action, (SolveRune, PingPong, Move)) or (
            isinstance(action, Key) and action.position is not None
        ):
            player.context.clear_unstucking(False)
        player.context.clear_action_completed()
    player.state = state


def update_from_ping_pong_action(
    resources: Resources,
    player: PlayerEntity,
    minimap: Minimap,
    ping_pong: PingPong,
    cur_pos: Point,
) -> None:
    """来回刷怪：碰到范围边缘即完成，否则继续朝小地图边缘移动。"""
    bound = ping_pong.bound
    match ping_pong.direction:
        case PingPongDirection.left:
            hit_edge = cur_pos.x - bound.x <= 0
        case PingPongDirection.right:
            hit_edge = cur_pos.x - bound.x - bound.width >= 0
    if hit_edge:
        transition_from_action(player, Idle())
        return

    if not isinstance(minimap, MinimapIdle):
        raise StateProtocolError("MinimapIdle", minimap)

    release_arrow_keys(resources)
    # y 对来回刷怪没有意义
    x = 0 if ping_pong.direction is PingPongDirection.left else minimap.bbox.width
    player.state = Moving(Point(x, cur_pos.y), False)


def update_from_auto_mob_action(
    resources: Resources,
    player: PlayerEntity,
    minimap: Minimap,
    mob: AutoMob,
    x_distance: int,
    x_direction: int,
    y_distance: int,
) -> bool:
    """检查与自动打怪目标的距离，足够近时转移到 :class:`UseKey`。

    当前处于二段跳或微调时，还会检查寻路途中能否顺路攻击。

    Returns
    -------
    bool
        是否发生了转移。
    """
    context = player.context
    should_terminate = (
        x_distance <= AUTO_MOB_USE_KEY_X_THRESHOLD and y_distance <= AUTO_MOB_USE_KEY_Y_THRESHOLD
    )
    if should_terminate and context.has_stalling_timeout_buffered():
        context.clear_action_completed()
        player.state = Idle()
        return True

    if x_direction > 0:
        direction = ActionKeyDirection.right
    elif x_direction < 0:
        direction = ActionKeyDirection.left
    else:
        direction = ActionKeyDirection.any

    should_check_pathing = isinstance(player.state, (DoubleJumping, Adjusting))
    if should_check_pathing and context.auto_mob_pathing_should_use_key(resources, minimap):
        release_arrow_keys(resources)
        player.state = UseKey.from_auto_mob(mob, direction, should_terminate, resources.rng)
        return True

    if should_terminate:
        context.last_known_direction = ActionKeyDirection.any
        release_arrow_keys(resources)
        player.state = UseKey.from_auto_mob(mob, direction, should_terminate, resources.rng)
        return True
    return False
