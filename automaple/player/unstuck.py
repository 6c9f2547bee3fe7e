"""脱困。

两种脱困方式：

- 移动脱困：角色长时间位置不变，或者走进了小地图边缘识别不到的位置时，
  朝远离较近边缘的方向按住方向键并起跳；连续多次脱困后改为随机方向。
- ESC 脱困：只按一次 ESC，关闭挡住角色的设置菜单。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap, MinimapIdle
from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import Unstuck
from automaple.player.state import Idle, Unstucking
from automaple.player.transitions import next_action, release_arrow_keys, transition_from_action
from automaple.timeout import Ended, Started, Updated, next_timeout_lifecycle
from automaple.types import KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

UNSTUCK_TIMEOUT = 50
"""移动脱困持续的 tick 数"""

UNSTUCK_SECOND_JUMP_TICK = UNSTUCK_TIMEOUT // 2
"""移动脱困途中第二次起跳的 tick"""

UNSTUCK_ESC_TIMEOUT = 8


def update_unstucking_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    state = player.state
    if not isinstance(state, Unstucking):
        raise StateProtocolError("Unstucking", state)
    if state.esc_only:
        _update_esc(resources, player, state)
    else:
        _update_movement(resources, player, state, minimap)


def _update_esc(resources: Resources, player: PlayerEntity, state: Unstucking) -> None:
    match next_timeout_lifecycle(state.timeout, UNSTUCK_ESC_TIMEOUT):
        case Started(timeout):
            logger.info("按 ESC 关闭遮挡界面")
            resources.input.send_key(KeyKind.Esc)
            player.state = replace(state, timeout=timeout)
        case Updated(timeout):
            player.state = replace(state, timeout=timeout)
        case Ended():
            if isinstance(next_action(player.context), Unstuck):
                transition_from_action(player, Idle())
            else:
                player.state = Idle()


def _update_movement(
    resources: Resources, player: PlayerEntity, state: Unstucking, minimap: Minimap
) -> None:
    context = player.context
    jump_key = context.config.jump_key

    match next_timeout_lifecycle(state.timeout, UNSTUCK_TIMEOUT):
        case Started(timeout):
            release_arrow_keys(resources)
            detector = resources.detector
            if detector is not None and detector.detect_esc_settings():
                logger.info("脱困时发现 ESC 菜单，关闭后回到 Idle")
                resources.input.send_key(KeyKind.Esc)
                player.state = Idle()
                return

            key = _unstuck_direction_key(resources, player, state, minimap)
            logger.debug("脱困 方向={} 随机={}", key, state.gamba_mode)
            resources.input.send_key_down(key)
            resources.input.send_key(jump_key)
            player.state = replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current == UNSTUCK_SECOND_JUMP_TICK:
                resources.input.send_key(jump_key)
            player.state = replace(state, timeout=timeout)
        case Ended():
            release_arrow_keys(resources)
            player.state = Idle()


def _unstuck_direction_key(
    resources: Resources, player: PlayerEntity, state: Unstucking, minimap: Minimap
) -> KeyKind:
    """朝远离较近小地图边缘的方向；随机模式或位置未知时随机选择。"""
    pos = player.context.last_known_pos
    if state.gamba_mode or pos is None or not isinstance(minimap, MinimapIdle):
        return KeyKind.Left if resources.rng.random_bool() else KeyKind.Right
    if pos.x < minimap.bbox.width // 2:
        return KeyKind.Right
    return KeyKind.Left
