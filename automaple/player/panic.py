"""遇到其他玩家时换线或回城。"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap, MinimapIdle
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import Panic
from automaple.player.state import Idle, PanicPhase, Panicking
from automaple.player.transitions import next_action, release_arrow_keys, transition_from_action
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

MAX_RETRY = 3

OPEN_MENU_TIMEOUT = 20
"""按下换线 / 回城键后等待菜单出现的 tick 数"""

COMPLETING_TIMEOUT = 90
"""切换地图后等待小地图重新出现的 tick 数"""


def update_panicking_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    state = player.state
    if not isinstance(state, Panicking):
        raise StateProtocolError("Panicking", state)
    config = player.context.config

    match state.phase:
        case PanicPhase.changing_channel:
            state = _update_changing_channel(resources, state, config.change_channel_key)
        case PanicPhase.going_to_town:
            state = _update_going_to_town(resources, state, config.to_town_key)
        case PanicPhase.completing:
            match next_timeout_lifecycle(state.timeout, COMPLETING_TIMEOUT):
                case Started(timeout) | Updated(timeout):
                    state = replace(state, timeout=timeout)
                case Ended():
                    if not isinstance(minimap, MinimapIdle):
                        state = replace(state, timeout=Timeout())
                    else:
                        _complete(player)
                        return
    player.state = state


def _complete(player: PlayerEntity) -> None:
    if isinstance(next_action(player.context), Panic):
        transition_from_action(player, Idle())
    else:
        player.state = Idle()


def _completing(state: Panicking) -> Panicking:
    return replace(state, phase=PanicPhase.completing, timeout=Timeout())


def _update_changing_channel(
    resources: Resources, state: Panicking, key: KeyKind | None
) -> Panicking:
    if key is None:
        logger.warning("未设置换线按键")
        return _completing(state)

    match next_timeout_lifecycle(state.timeout, OPEN_MENU_TIMEOUT):
        case Started(timeout):
            release_arrow_keys(resources)
            resources.input.send_key(key)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            if resources.detector_cloned().detect_change_channel_menu_opened():
                # 选择下一个频道
                resources.input.send_key(KeyKind.Right)
                resources.input.send_key(KeyKind.Enter)
                logger.info("发现其他玩家，切换频道")
                return _completing(state)
            if state.retry_count < MAX_RETRY:
                return replace(state, timeout=Timeout(), retry_count=state.retry_count + 1)
            logger.warning("换线菜单打不开")
            return _completing(state)


def _update_going_to_town(resources: Resources, state: Panicking, key: KeyKind | None) -> Panicking:
    if key is None:
        logger.warning("未设置回城按键")
        return _completing(state)

    match next_timeout_lifecycle(state.timeout, OPEN_MENU_TIMEOUT):
        case Started(timeout):
            release_arrow_keys(resources)
            resources.input.send_key(key)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            resources.input.send_key(KeyKind.Enter)
            logger.info("发现其他玩家，回城")
            return _completing(state)
