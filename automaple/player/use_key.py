"""使用按键。

阶段::

    Precondition ─┬─ 朝向不符 ──→ ChangingDirection ──→ Precondition
                  ├─ 姿态不符 ──→ EnsuringUseWith ──→ Precondition / DoubleJumping
                  ├─ wait_before > 0 ──→ Stalling ──→ Using
                  └─→ Using ─┬─ wait_after > 0 ──→ Stalling ──→ Postcondition
                             └─→ Postcondition ── 未满 count ──→ Precondition

连携键在 Using 阶段处理，时间窗口长度取决于连携方式与职业。
主键需要按住时，按下后经 Stalling 等待按住时长再松开；也可以把按住时长
并入按键后的后台等待，此时不再停留在原地。
"""

from __future__ import annotations

from dataclasses import replace
from enum import Enum, auto
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob, Key, Move, PingPong
from automaple.player.context import LastMovement, PlayerContext
from automaple.player.state import (
    MOVE_TIMEOUT,
    DoubleJumping,
    Idle,
    Movement,
    Player,
    Stalling,
    UseKey,
    UseKeyStage,
)
from automaple.player.transitions import (
    next_action,
    require_position,
    transition_from_action,
    update_from_ping_pong_action,
)
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import (
    ActionKeyDirection,
    ActionKeyWith,
    Class,
    KeyKind,
    LinkKeyKind,
    WaitAfterBuffered,
)

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

CHANGE_DIRECTION_TIMEOUT = 3
"""改变朝向的等待 tick 数"""

LINK_ALONG_TIMEOUT = 4
LINK_ALONG_PRESS_TICK = 2
"""``Along`` 连携在第几次推进时按下主键"""

LINK_KEY_TIMEOUTS: dict[Class, int] = {
    Class.cadena: 4,
    Class.blaster: 8,
    Class.ark: 10,
    Class.generic: 5,
}
"""各职业连携键的时间窗口"""


class _Pending(Enum):
    """阶段更新后需要离开 UseKey 的转移。"""

    WAIT_BEFORE = auto()
    WAIT_AFTER = auto()
    KEY_HOLD = auto()
    DOUBLE_JUMP = auto()


def update_use_key_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    use_key = player.state
    if not isinstance(use_key, UseKey):
        raise StateProtocolError("UseKey", use_key)
    context = player.context
    pending: _Pending | None = None

    match use_key.stage:
        case UseKeyStage.precondition:
            use_key, pending = _update_precondition(context, use_key)
            if pending is _Pending.WAIT_BEFORE:
                context.stalling_timeout_state = use_key.staged(UseKeyStage.using)
                player.state = Stalling(Timeout(), use_key.wait_before_use_ticks)
                return
        case UseKeyStage.changing_direction:
            use_key = _update_changing_direction(resources, context, use_key)
        case UseKeyStage.ensuring_use_with:
            use_key, pending = _update_ensuring_use_with(context, use_key)
            if pending is _Pending.DOUBLE_JUMP:
                pos = require_position(context)
                player.state = DoubleJumping(Movement(pos, pos), True, True)
                return
        case UseKeyStage.using:
            use_key, pending = _update_using(resources, context, use_key)
            if pending is _Pending.KEY_HOLD:
                context.stalling_timeout_state = replace(use_key, key_holding=True)
                player.state = Stalling(Timeout(), use_key.key_hold_ticks)
                return
            if pending is _Pending.WAIT_AFTER:
                context.stalling_timeout_state = use_key.staged(UseKeyStage.postcondition)
                player.state = Stalling(Timeout(), use_key.wait_after_use_ticks)
                return
        case UseKeyStage.postcondition:
            use_key = replace(use_key, current_count=use_key.current_count + 1)
            if use_key.current_count < use_key.count:
                use_key = use_key.staged(UseKeyStage.precondition)

    next_state: Player = Idle() if use_key.current_count >= use_key.count else use_key
    is_terminal = isinstance(next_state, Idle)

    match next_action(context):
        case AutoMob(position=position):
            should_terminate = use_key.auto_mob_should_terminate is True
            if not is_terminal or not should_terminate:
                player.state = next_state
                return
            context.auto_mob_track_ignore_xs(minimap, False)
            if context.auto_mob_reachable_y_require_update(position.y):
                # 等待落稳后在 Stalling 结束时记录可达 y
                player.state = Stalling(Timeout(), MOVE_TIMEOUT)
                return
            transition_from_action(player, next_state)
        case PingPong() as ping_pong:
            if not is_terminal:
                player.state = next_state
                return
            context.clear_unstucking(True)
            cur_pos = require_position(context)
            update_from_ping_pong_action(resources, player, minimap, ping_pong, cur_pos)
        case Move() | Key():
            transition_from_action(player, next_state, is_terminal)
        case None:
            player.state = next_state
        case action:
            raise TypeError(f"使用按键时无法处理动作 {action}")


# ═══════════════════════════════════════════════════════════════════════════════
# 阶段
# ═══════════════════════════════════════════════════════════════════════════════


def _update_precondition(
    context: PlayerContext, use_key: UseKey
) -> tuple[UseKey, _Pending | None]:
    if not _ensure_direction(context, use_key.direction):
        return use_key.staged(UseKeyStage.changing_direction), None
    if not _ensure_use_with(context, use_key.with_):
        return use_key.staged(UseKeyStage.ensuring_use_with), None
    if use_key.wait_before_use_ticks == 0:
        return use_key.staged(UseKeyStage.using), None
    return use_key, _Pending.WAIT_BEFORE


def _ensure_direction(context: PlayerContext, direction: ActionKeyDirection) -> bool:
    return direction is ActionKeyDirection.any or direction is context.last_known_direction


def _ensure_use_with(context: PlayerContext, with_: ActionKeyWith) -> bool:
    match with_:
        case ActionKeyWith.any:
            return True
        case ActionKeyWith.stationary:
            return context.is_stationary
        case ActionKeyWith.double_jump:
            return context.last_movement is LastMovement.double_jumping


def _update_changing_direction(
    resources: Resources, context: PlayerContext, use_key: UseKey
) -> UseKey:
    key = KeyKind.Left if use_key.direction is ActionKeyDirection.left else KeyKind.Right
    match next_timeout_lifecycle(use_key.timeout, CHANGE_DIRECTION_TIMEOUT):
        case Started(timeout):
            # 上一次的方向键还没有真正松开，按下去不会改变朝向
            if not resources.input.is_key_cleared(key):
                return replace(use_key, timeout=timeout.restarted())
            resources.input.send_key(key)
            return replace(use_key, timeout=timeout)
        case Updated(timeout):
            return replace(use_key, timeout=timeout)
        case Ended():
            context.last_known_direction = use_key.direction
            return use_key.staged(UseKeyStage.precondition)


def _update_ensuring_use_with(
    context: PlayerContext, use_key: UseKey
) -> tuple[UseKey, _Pending | None]:
    match use_key.with_:
        case ActionKeyWith.stationary:
            if context.is_stationary:
                return use_key.staged(UseKeyStage.precondition), None
            return use_key, None
        case ActionKeyWith.double_jump:
            return use_key, _Pending.DOUBLE_JUMP
        case _:
            return use_key.staged(UseKeyStage.precondition), None


def _update_using(
    resources: Resources, context: PlayerContext, use_key: UseKey
) -> tuple[UseKey, _Pending | None]:
    link = use_key.link_key
    match link.kind:
        case LinkKeyKind.after:
            if not use_key.timeout.started:
                resources.input.send_key(use_key.key)
            if not use_key.link_completed:
                return _update_link_key(resources, context, use_key), None
        case LinkKeyKind.at_the_same:
            if not use_key.key_holding:
                resources.input.send_key(link.key)
            pending = _use_main_key(resources, context, use_key)
            if pending is not None:
                return use_key, pending
        case LinkKeyKind.along:
            if not use_key.link_completed:
                return _update_link_key(resources, context, use_key), None
        case _:
            if not link.is_none and not use_key.link_completed:
                return _update_link_key(resources, context, use_key), None
            pending = _use_main_key(resources, context, use_key)
            if pending is not None:
                return use_key, pending

    if use_key.key_hold_ticks > 0 and use_key.key_hold_buffered_to_wait_after:
        # 按住时长与 wait_after 已经合并为后台等待
        return use_key.staged(UseKeyStage.postcondition), None
    if use_key.wait_after_use_ticks == 0:
        return use_key.staged(UseKeyStage.postcondition), None
    if use_key.wait_after_buffered is not WaitAfterBuffered.none:
        context.stalling_timeout_buffered(
            use_key.wait_after_use_ticks,
            interruptible=use_key.wait_after_buffered is WaitAfterBuffered.interruptible,
        )
        return use_key.staged(UseKeyStage.postcondition), None
    return use_key, _Pending.WAIT_AFTER


def _use_main_key(
    resources: Resources, context: PlayerContext, use_key: UseKey
) -> _Pending | None:
    """发送主键。需要按住时按下主键并返回 :attr:`_Pending.KEY_HOLD`。"""
    key = use_key.key
    if use_key.key_hold_ticks <= 0:
        resources.input.send_key(key)
        return None
    if use_key.key_holding:
        resources.input.send_key_up(key)
        return None

    resources.input.send_key_down(key)
    if not use_key.key_hold_buffered_to_wait_after:
        return _Pending.KEY_HOLD

    logger.debug("按住 {} 并入后台等待 {} tick", key, use_key.key_hold_ticks)
    context.stalling_timeout_buffered(
        use_key.key_hold_ticks + use_key.wait_after_use_ticks,
        interruptible=use_key.wait_after_buffered is not WaitAfterBuffered.uninterruptible,
        end_callback=lambda res: res.input.send_key_up(key),
    )
    return None


def _update_link_key(resources: Resources, context: PlayerContext, use_key: UseKey) -> UseKey:
    link = use_key.link_key
    link_key = link.key
    if link_key is None:
        raise StateProtocolError("LinkKey.key", link)
    config = context.config
    if link.kind is LinkKeyKind.along:
        max_timeout = LINK_ALONG_TIMEOUT
    else:
        max_timeout = LINK_KEY_TIMEOUTS[config.class_]

    match next_timeout_lifecycle(use_key.timeout, max_timeout):
        case Started(timeout):
            if link.kind is LinkKeyKind.before:
                resources.input.send_key(link_key)
            elif link.kind is LinkKeyKind.along:
                resources.input.send_key_down(link_key)
            return replace(use_key, timeout=timeout)
        case Updated(timeout):
            if link.kind is LinkKeyKind.along and timeout.total == LINK_ALONG_PRESS_TICK:
                resources.input.send_key(use_key.key)
            return replace(use_key, timeout=timeout)
        case Ended():
            if link.kind is LinkKeyKind.after:
                resources.input.send_key(link_key)
                if config.class_ is Class.blaster and link_key is not config.jump_key:
                    resources.input.send_key(config.jump_key)
            elif link.kind is LinkKeyKind.along:
                resources.input.send_key_up(link_key)
            return replace(use_key, link_completed=True)
