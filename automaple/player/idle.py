"""空闲状态。

本身不做任何事，只在有动作时作为进入其他状态的入口，并负责松开方向键。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap, MinimapIdle
from automaple.geometry import Point
from automaple.models.actions import Position
from automaple.player.actions import (
    AutoMob,
    Chat,
    ExchangeBooster,
    FamiliarsSwap,
    Key,
    Move,
    Panic,
    PingPong,
    SolveRune,
    Unstuck,
    UseBooster,
)
from automaple.player.booster import exchanging_booster
from automaple.player.chat import chatting
from automaple.player.state import (
    DoubleJumping,
    FamiliarsSwapping,
    Idle,
    Movement,
    Moving,
    Panicking,
    Unstucking,
    UseKey,
    UsingBooster,
)
from automaple.player.transitions import (
    next_action,
    release_arrow_keys,
    require_position,
    transition_from_action,
    update_from_ping_pong_action,
)
from automaple.types import ActionKeyDirection, ActionKeyWith

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources, Rng


def update_idle_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    context = player.context
    context.last_movement = None
    context.stalling_timeout_state = None
    player.state = Idle()
    release_arrow_keys(resources)

    match next_action(context):
        case AutoMob(position=position):
            context.auto_mob_clear_pathing_task()
            player.state = Moving(Point(position.x, position.y), position.allow_adjusting)

        case Move(position=position) | Key(position=Position() as position):
            point = Point(x_destination(resources.rng, position), position.y)
            logger.debug("移动到 {}", point)
            player.state = Moving(point, position.allow_adjusting)

        case Key(with_=ActionKeyWith.double_jump, direction=direction) as key:
            pos = require_position(context)
            if direction is ActionKeyDirection.any or direction is context.last_known_direction:
                player.state = DoubleJumping(Movement(pos, pos), True, True)
            else:
                player.state = UseKey.from_key(key, resources.rng)

        case Key() as key:
            player.state = UseKey.from_key(key, resources.rng)

        case SolveRune():
            rune = minimap.rune if isinstance(minimap, MinimapIdle) else None
            if rune is None:
                transition_from_action(player, Idle())
                return
            player.state = Moving(rune, False)

        case PingPong() as ping_pong:
            pos = require_position(context)
            update_from_ping_pong_action(resources, player, minimap, ping_pong, pos)

        case FamiliarsSwap(swappable_slots=slots, swappable_rarities=rarities):
            player.state = FamiliarsSwapping(slots, rarities)

        case Panic(to=to):
            player.state = Panicking.new(to)

        case Chat(content=content):
            player.state = chatting(content)

        case UseBooster(kind=kind):
            player.state = UsingBooster(kind)

        case ExchangeBooster(amount=amount, all=all_):
            player.state = exchanging_booster(amount, all_)

        case Unstuck():
            player.state = Unstucking.new_esc()

        case None:
            pass


def x_destination(rng: Rng, position: Position) -> int:
    """在 ``x ± x_random_range`` 范围内随机选取目标 x，不小于 0。"""
    x_min = max(position.x - position.x_random_range, 0)
    x_max = position.x + position.x_random_range + 1
    return rng.random_range(x_min, x_max)
