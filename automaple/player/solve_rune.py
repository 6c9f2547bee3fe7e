"""解除符文。

阶段::

    Precondition ──→ Solving ──→ PressKeys ──→ Completed

本状态中的识别全部同步进行，不经由 :class:`~automaple.task.Task`。解除期间
角色不会移动，阻塞一帧的代价可以接受。

完成后开始符文校验，校验结果由 :class:`~automaple.player.context.PlayerContext`
在之后的 tick 中根据符文 buff 判定。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.infra.exceptions import NotFoundError, StateProtocolError
from automaple.player.actions import SolveRune
from automaple.player.state import Idle, RunePhase, SolvingRune
from automaple.player.transitions import next_action, transition_from_action
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

PRECONDITION_TIMEOUT = 15
"""进入解除前需要保持静止的 tick 数"""

SOLVE_TIMEOUT = 125
"""按下交互键后等待箭头出现并识别的最大 tick 数"""

SOLVE_INTERVAL = 30
"""识别箭头的间隔 tick 数"""

PRESS_KEY_INTERVAL = 8


def update_solving_rune_state(resources: Resources, player: PlayerEntity) -> None:
    state = player.state
    if not isinstance(state, SolvingRune):
        raise StateProtocolError("SolvingRune", state)
    context = player.context

    match state.phase:
        case RunePhase.precondition:
            state = _update_precondition(resources, player, state)
        case RunePhase.solving:
            state = _update_solving(resources, player, state)
        case RunePhase.press_keys:
            state = _update_press_keys(resources, state)
        case RunePhase.completed:
            pass

    is_terminal = state.phase is RunePhase.completed
    next_state = Idle() if is_terminal else state
    match next_action(context):
        case SolveRune():
            if is_terminal:
                context.start_validating_rune()
            transition_from_action(player, next_state, is_terminal)
        case None:
            # 不是由动作触发的解除直接取消
            player.state = Idle()
        case action:
            raise TypeError(f"解除符文时无法处理动作 {action}")


def _update_precondition(
    resources: Resources, player: PlayerEntity, state: SolvingRune
) -> SolvingRune:
    match next_timeout_lifecycle(state.timeout, PRECONDITION_TIMEOUT):
        case Started(timeout) | Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            if player.context.is_stationary and resources.input.all_keys_cleared():
                return SolvingRune(phase=RunePhase.solving)
            return state


def _update_solving(resources: Resources, player: PlayerEntity, state: SolvingRune) -> SolvingRune:
    match next_timeout_lifecycle(state.timeout, SOLVE_TIMEOUT):
        case Started(timeout):
            resources.input.send_key(player.context.config.interact_key)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current % SOLVE_INTERVAL != 0:
                return replace(state, timeout=timeout)
            try:
                keys = resources.detector_cloned().detect_rune_arrows()
            except NotFoundError:
                logger.debug("第 {} tick 未识别到符文箭头", timeout.current)
                return replace(state, timeout=timeout)
            logger.info("符文箭头 {}", [key.value for key in keys])
            return SolvingRune(phase=RunePhase.press_keys, keys=tuple(keys))
        case Ended():
            logger.warning("符文箭头识别超时")
            return replace(state, phase=RunePhase.completed)


def _update_press_keys(resources: Resources, state: SolvingRune) -> SolvingRune:
    match next_timeout_lifecycle(state.timeout, PRESS_KEY_INTERVAL):
        case Started(timeout):
            resources.input.send_key(state.keys[state.key_index])
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            if state.key_index + 1 < len(state.keys):
                return replace(state, timeout=Timeout(), key_index=state.key_index + 1)
            return replace(state, phase=RunePhase.completed)
