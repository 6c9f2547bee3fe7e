"""二段跳（或瞬移）。

非强制时，只要 x 距离仍不小于二段跳阈值就持续起跳；强制时只跳一次，
用于 ``with: DoubleJump`` 的按键。以速度判断是否已经跳出，避免在空中
重复发送跳跃键。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from automaple.entities.minimap import Minimap
from automaple.geometry import Point
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob, Key, PingPong, PingPongDirection
from automaple.player.context import LastMovement
from automaple.player.moving import ChangeAxis, next_movement_lifecycle, transition_to_moving
from automaple.player.state import (
    DOUBLE_JUMP_THRESHOLD,
    MOVE_TIMEOUT,
    DoubleJumping,
    Falling,
    Grappling,
    Idle,
    Movement,
    Player,
    UpJumping,
    UseKey,
)
from automaple.player.transitions import (
    next_action,
    require_position,
    transition_from_action,
    update_from_auto_mob_action,
)
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import ActionKeyDirection, ActionKeyWith, KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

TIMEOUT = MOVE_TIMEOUT
TIMEOUT_FORCED = MOVE_TIMEOUT + 3

COOLDOWN_TIMEOUT = MOVE_TIMEOUT
"""两次起跳之间的间隔，减少空中误发的跳跃键"""

USE_KEY_X_THRESHOLD = DOUBLE_JUMP_THRESHOLD
USE_KEY_Y_THRESHOLD = 10

GRAPPLING_X_THRESHOLD = 4
"""跳完后 x 距离不超过该值且目标在上方时改用绳索"""

X_VELOCITY_THRESHOLD = 0.9
"""x 速度超过该值视为已经跳出"""

X_NEAR_STATIONARY_VELOCITY_THRESHOLD = 0.75
Y_NEAR_STATIONARY_VELOCITY_THRESHOLD = 0.4

PING_PONG_IGNORE_RANDOMIZE_Y_THRESHOLD = 9
"""距离来回刷怪范围中线的 y 距离达到该值才会随机上下移动"""

PING_PONG_UPWARD_PROBABILITY = 0.35
PING_PONG_DOWNWARD_PROBABILITY = 0.25


def update_double_jumping_state(
    resources: Resources, player: PlayerEntity, minimap: Minimap
) -> None:
    state = player.state
    if not isinstance(state, DoubleJumping):
        raise StateProtocolError("DoubleJumping", state)
    context = player.context
    ignore_grappling = state.forced or context.should_disable_grappling()
    max_timeout = TIMEOUT_FORCED if state.forced else TIMEOUT
    # 强制起跳时只看水平位置，避免朝地图边缘无限起跳
    axis = ChangeAxis.horizontal if state.forced else ChangeAxis.both

    cur_pos = require_position(context)
    lifecycle, movement = next_movement_lifecycle(state.movement, cur_pos, max_timeout, axis)
    match lifecycle:
        case Started():
            x_velocity, y_velocity = context.velocity
            if state.require_near_stationary and (
                x_velocity > X_NEAR_STATIONARY_VELOCITY_THRESHOLD
                or y_velocity > Y_NEAR_STATIONARY_VELOCITY_THRESHOLD
            ):
                # 重置 started，直到接近静止才真正开始
                restarted = replace(movement, timeout=movement.timeout.restarted())
                player.state = replace(state, movement=restarted)
                return
            context.last_movement = LastMovement.double_jumping
            player.state = replace(state, movement=movement)
        case Ended():
            resources.input.send_key_up(KeyKind.Right)
            resources.input.send_key_up(KeyKind.Left)
            transition_to_moving(player, movement)
        case Updated():
            x_distance, x_direction = movement.x_distance_direction_from(movement.pos)
            if not movement.completed:
                state, movement = _update_jumping(
                    resources, player, state, movement, x_distance, x_direction
                )
            player.state = _next_updated_state(state, movement, x_distance, ignore_grappling)
            _update_from_action(resources, player, minimap, movement, state.forced)


def _update_jumping(
    resources: Resources,
    player: PlayerEntity,
    state: DoubleJumping,
    movement: Movement,
    x_distance: int,
    x_direction: int,
) -> tuple[DoubleJumping, Movement]:
    context = player.context
    config = context.config
    has_teleport_key = config.teleport_key is not None

    if not state.forced or has_teleport_key:
        keys: tuple[KeyKind, KeyKind, ActionKeyDirection] | None = None
        if x_direction > 0:
            keys = (KeyKind.Right, KeyKind.Left, ActionKeyDirection.right)
        elif x_direction < 0:
            keys = (KeyKind.Left, KeyKind.Right, ActionKeyDirection.left)
        elif has_teleport_key:
            # 瞬移需要方向，已在目标处时沿用上一次的朝向
            match context.last_known_direction:
                case ActionKeyDirection.right:
                    keys = (KeyKind.Right, KeyKind.Left, ActionKeyDirection.right)
                case ActionKeyDirection.left:
                    keys = (KeyKind.Left, KeyKind.Right, ActionKeyDirection.left)
        if keys is not None:
            key_down, key_up, direction = keys
            resources.input.send_key_down(key_down)
            resources.input.send_key_up(key_up)
            context.last_known_direction = direction

    x_velocity = context.velocity[0]
    can_continue = not state.forced and x_distance >= context.double_jump_threshold()
    can_press = state.forced and x_velocity <= X_VELOCITY_THRESHOLD
    if can_continue or can_press:
        if not state.cooldown_timeout.started and x_velocity <= X_VELOCITY_THRESHOLD:
            resources.input.send_key(config.teleport_key or config.jump_key)
        else:
            match next_timeout_lifecycle(state.cooldown_timeout, COOLDOWN_TIMEOUT):
                case Started(timeout) | Updated(timeout):
                    state = replace(state, cooldown_timeout=timeout)
                case Ended():
                    state = replace(state, cooldown_timeout=Timeout())
        return state, movement

    resources.input.send_key_up(KeyKind.Right)
    resources.input.send_key_up(KeyKind.Left)
    return state, replace(movement, completed=True)


def _next_updated_state(
    state: DoubleJumping, movement: Movement, x_distance: int, ignore_grappling: bool
) -> Player:
    if not ignore_grappling and movement.completed and x_distance <= GRAPPLING_X_THRESHOLD:
        _, y_direction = movement.y_distance_direction_from(movement.pos)
        if y_direction > 0:
            return Grappling(replace(movement, completed=False, timeout=Timeout()))

    if movement.completed:
        # 已经跳完，只需等待落地
        movement = replace(movement, timeout=replace(movement.timeout, current=TIMEOUT))
    return replace(state, movement=movement)


def _update_from_action(
    resources: Resources,
    player: PlayerEntity,
    minimap: Minimap,
    movement: Movement,
    forced: bool,
) -> None:
    cur_pos = movement.pos
    x_distance, x_direction = movement.x_distance_direction_from(cur_pos)
    y_distance, _ = movement.y_distance_direction_from(cur_pos)
    double_jumped_or_flying = player.context.velocity[0] > X_VELOCITY_THRESHOLD

    match next_action(player.context):
        case PingPong() as ping_pong:
            _update_from_ping_pong_action(
                resources, player, ping_pong, cur_pos, double_jumped_or_flying
            )
        case AutoMob() as mob:
            update_from_auto_mob_action(
                resources, player, minimap, mob, x_distance, x_direction, y_distance
            )
        case Key(with_=ActionKeyWith.double_jump | ActionKeyWith.any) as key:
            if not movement.completed:
                return
            # 强制起跳说明已经在目标附近，不再检查距离
            if forced or (
                not movement.exact
                and x_distance <= USE_KEY_X_THRESHOLD
                and y_distance <= USE_KEY_Y_THRESHOLD
            ):
                player.state = UseKey.from_key(key, resources.rng)
        case _:
            pass


def _update_from_ping_pong_action(
    resources: Resources,
    player: PlayerEntity,
    ping_pong: PingPong,
    cur_pos: Point,
    double_jumped: bool,
) -> None:
    """来回刷怪途中：起跳后使用按键，偶尔上下移动以覆盖整个范围。"""
    bound = ping_pong.bound
    match ping_pong.direction:
        case PingPongDirection.left:
            hit_edge = cur_pos.x - bound.x <= 0
        case PingPongDirection.right:
            hit_edge = cur_pos.x - bound.x - bound.width >= 0
    if hit_edge:
        transition_from_action(player, Idle())
        return
    if not double_jumped:
        return
    if player.context.has_stalling_timeout_buffered():
        player.state = Idle()
        return

    resources.input.send_key_up(KeyKind.Left)
    resources.input.send_key_up(KeyKind.Right)
    bound_y_max = bound.y + bound.height
    bound_y_mid = bound.y + bound.height // 2

    rng = resources.rng
    allow_randomize = abs(cur_pos.y - bound_y_mid) >= PING_PONG_IGNORE_RANDOMIZE_Y_THRESHOLD
    should_upward = (
        allow_randomize
        and cur_pos.y < bound_y_mid
        and rng.random_bool(PING_PONG_UPWARD_PROBABILITY)
    )
    should_downward = (
        allow_randomize
        and cur_pos.y > bound_y_mid
        and rng.random_bool(PING_PONG_DOWNWARD_PROBABILITY)
    )

    if cur_pos.y < bound.y or should_upward:
        movement = Movement(cur_pos, Point(cur_pos.x, bound_y_max))
        if player.context.config.grappling_key is not None:
            player.state = Grappling(movement)
        else:
            player.state = UpJumping(movement)
        return

    if cur_pos.y > bound_y_max or should_downward:
        player.state = Falling(Movement(cur_pos, Point(cur_pos.x, bound.y)), cur_pos, True)
        return
    player.state = UseKey.from_ping_pong(ping_pong, resources.rng)
