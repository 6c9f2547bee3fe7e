"""进入商城后退出。

符文连续解除失败时进入商城停留一段时间，离开后符文与惩罚状态会被重置。
商城中识别不到玩家，因此本状态在识别失败时也继续更新。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.infra.exceptions import StateProtocolError
from automaple.player.state import CashShopPhase, CashShopThenExit, Idle
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

ENTERING_TIMEOUT = 90
"""按下商城键后等待进入的 tick 数，超时后重新按键"""

STAYING_TIMEOUT = 300
"""在商城内停留的 tick 数"""

EXITING_TIMEOUT = 60
EXITING_CONFIRM_AT = 10
"""按下 ESC 后确认离开的 tick"""


def update_cash_shop_state(
    resources: Resources, player: PlayerEntity, failed_to_detect_player: bool
) -> None:
    state = player.state
    if not isinstance(state, CashShopThenExit):
        raise StateProtocolError("CashShopThenExit", state)
    key = player.context.config.cash_shop_key
    if key is None:
        logger.warning("未设置商城按键，无法通过商城重置符文")
        player.state = Idle()
        return

    match state.phase:
        case CashShopPhase.entering:
            player.state = _update_entering(resources, state, key)
        case CashShopPhase.entered:
            match next_timeout_lifecycle(state.timeout, STAYING_TIMEOUT):
                case Started(timeout) | Updated(timeout):
                    player.state = replace(state, timeout=timeout)
                case Ended():
                    player.state = CashShopThenExit(CashShopPhase.exiting)
        case CashShopPhase.exiting:
            player.state = _update_exiting(resources, state)
        case CashShopPhase.exited:
            # 回到地图并重新识别到玩家后才算完成
            if not failed_to_detect_player:
                logger.info("已离开商城")
                player.state = Idle()


def _update_entering(
    resources: Resources, state: CashShopThenExit, key: KeyKind
) -> CashShopThenExit:
    match next_timeout_lifecycle(state.timeout, ENTERING_TIMEOUT):
        case Started(timeout):
            resources.input.send_key(key)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            if resources.detector_cloned().detect_player_in_cash_shop():
                logger.info("已进入商城")
                return CashShopThenExit(CashShopPhase.entered)
            return replace(state, timeout=Timeout())


def _update_exiting(resources: Resources, state: CashShopThenExit) -> CashShopThenExit:
    match next_timeout_lifecycle(state.timeout, EXITING_TIMEOUT):
        case Started(timeout):
            resources.input.send_key(KeyKind.Esc)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current == EXITING_CONFIRM_AT:
                resources.input.send_key(KeyKind.Enter)
            return replace(state, timeout=timeout)
        case Ended():
            if resources.detector_cloned().detect_player_in_cash_shop():
                return replace(state, timeout=Timeout())
            return CashShopThenExit(CashShopPhase.exited)
