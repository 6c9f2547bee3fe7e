"""原地停顿。"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import AutoMob, Move
from automaple.player.state import Idle, Stalling
from automaple.player.transitions import next_action, transition_from_action
from automaple.timeout import Ended, Started, Updated, next_timeout_lifecycle

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity


def update_stalling_state(player: PlayerEntity) -> None:
    """等待 ``max_timeout`` 个 tick。

    结束后优先恢复 ``stalling_timeout_state``（按键前后的等待）；否则视为
    动作收尾的等待，完成 :class:`AutoMob` / :class:`Move` 动作后回到 Idle。
    """
    state = player.state
    if not isinstance(state, Stalling):
        raise StateProtocolError("Stalling", state)
    context = player.context

    match next_timeout_lifecycle(state.timeout, state.max_timeout):
        case Started(timeout) | Updated(timeout):
            player.state = replace(state, timeout=timeout)
        case Ended():
            resume = context.stalling_timeout_state
            if resume is not None:
                context.stalling_timeout_state = None
                player.state = resume
                return

            match next_action(context):
                case AutoMob(position=position):
                    context.auto_mob_track_reachable_y(position.y)
                    transition_from_action(player, Idle())
                case Move():
                    transition_from_action(player, Idle())
                case _:
                    player.state = Idle()
