"""玩家状态机的每 tick 入口。

状态分为两类：

- 非位置状态（按键、界面操作、停顿……）即使本 tick 没有识别到玩家也可以推进；
- 位置状态（各种移动）需要当前位置，识别失败时转入 Detecting 或 Unstucking。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap, MinimapEntity, MinimapIdle
from automaple.player.adjust import update_adjusting_state
from automaple.player.booster import update_exchanging_booster_state, update_using_booster_state
from automaple.player.cash_shop import update_cash_shop_state
from automaple.player.chat import update_chatting_state
from automaple.player.double_jump import update_double_jumping_state
from automaple.player.fall import update_falling_state
from automaple.player.familiars_swap import update_familiars_swapping_state
from automaple.player.grapple import update_grappling_state
from automaple.player.idle import update_idle_state
from automaple.player.jump import update_jumping_state, update_up_jumping_state
from automaple.player.moving import update_moving_state
from automaple.player.panic import update_panicking_state
from automaple.player.solve_rune import update_solving_rune_state
from automaple.player.stall import update_stalling_state
from automaple.player.state import (
    Adjusting,
    CashShopThenExit,
    Chatting,
    Detecting,
    DoubleJumping,
    ExchangingBooster,
    Falling,
    FamiliarsSwapping,
    Grappling,
    Idle,
    Jumping,
    Moving,
    Panicking,
    SolvingRune,
    Stalling,
    Unstucking,
    UpJumping,
    UseKey,
    UsingBooster,
)
from automaple.player.transitions import release_arrow_keys
from automaple.player.unstuck import update_unstucking_state
from automaple.player.use_key import update_use_key_state
from automaple.timeout import Timeout
from automaple.types import ActionKeyDirection

if TYPE_CHECKING:
    from automaple.entities.buff import BuffEntities
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources


def run_system(
    resources: Resources, player: PlayerEntity, minimap: MinimapEntity, buffs: BuffEntities
) -> None:
    """推进一次玩家状态。

    Parameters
    ----------
    resources:
        本 tick 的共享资源。
    player:
        玩家实体，``player.state`` 会被原地替换。
    minimap:
        本 tick 已更新过的小地图。
    buffs:
        本 tick 已更新过的 buff，用于判定符文是否解除成功。
    """
    context = player.context
    if context.rune_cash_shop:
        release_arrow_keys(resources)
        context.rune_cash_shop = False
        context.reset_to_idle_next_update = False
        player.state = CashShopThenExit()
        return

    did_update = context.update_state(resources, player.state, minimap.state, buffs)
    if not did_update and not resources.operation.is_halting:
        # 识别失败的原因通常是玩家走进了小地图边缘，或者小地图被其他界面遮挡。
        # 非位置状态照常推进，使进入边缘后的脱困与商城状态能够继续。
        if _update_non_positional_state(resources, player, minimap.state, True):
            return

        state = minimap.state
        if isinstance(state, MinimapIdle) and not state.partially_overlapping:
            logger.debug("未识别到玩家，开始脱困")
            context.last_known_direction = ActionKeyDirection.any
            player.state = Unstucking.new_movement(
                Timeout(), context.track_unstucking_transitioned()
            )
            return
        player.state = Detecting()
        return

    if context.reset_to_idle_next_update:
        context.reset_to_idle_next_update = False
        player.state = Idle()
    if context.reset_stalling_buffer_states_next_update:
        context.reset_stalling_buffer_states_next_update = False
        context.clear_stalling_buffer_states(resources)

    if not _update_non_positional_state(resources, player, minimap.state, False):
        _update_positional_state(resources, player, minimap.state)


def _update_non_positional_state(
    resources: Resources, player: PlayerEntity, minimap: Minimap, failed_to_detect_player: bool
) -> bool:
    """推进不需要当前位置的状态，返回是否已经推进。"""
    match player.state:
        case UseKey():
            update_use_key_state(resources, player, minimap)
        case FamiliarsSwapping():
            update_familiars_swapping_state(resources, player)
        case Unstucking():
            update_unstucking_state(resources, player, minimap)
        case Stalling():
            if failed_to_detect_player:
                return False
            update_stalling_state(player)
        case SolvingRune():
            if failed_to_detect_player:
                return False
            update_solving_rune_state(resources, player)
        case CashShopThenExit():
            update_cash_shop_state(resources, player, failed_to_detect_player)
        case Panicking():
            update_panicking_state(resources, player, minimap)
        case Chatting():
            update_chatting_state(resources, player)
        case UsingBooster():
            update_using_booster_state(resources, player)
        case ExchangingBooster():
            update_exchanging_booster_state(resources, player)
        case _:
            return False
    return True


def _update_positional_state(resources: Resources, player: PlayerEntity, minimap: Minimap) -> None:
    match player.state:
        case Detecting():
            player.state = Idle()
        case Idle():
            update_idle_state(resources, player, minimap)
        case Moving():
            update_moving_state(resources, player, minimap)
        case Adjusting():
            update_adjusting_state(resources, player, minimap)
        case DoubleJumping():
            update_double_jumping_state(resources, player, minimap)
        case Grappling():
            update_grappling_state(resources, player, minimap)
        case UpJumping():
            update_up_jumping_state(resources, player, minimap)
        case Jumping():
            update_jumping_state(resources, player)
        case Falling():
            update_falling_state(resources, player, minimap)
        case state:
            raise TypeError(f"状态 {type(state).__name__} 不是位置状态")
