"""经验加速器：使用与兑换。

使用::

    Using ──→ Confirming ──→ Completing
      └──（未弹出确认框）──→ Completing(failed)

兑换（HEXA 矩阵中把碎片兑换为 HEXA 加速器）::

    OpenHexaMenu ──→ OpenExchangingMenu ──→ OpenBoosterMenu ──→ Exchanging
        ──→ Confirming ──→ Completing

任一步识别失败都直接进入 Completing。两者的识别都是同步的。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.infra.exceptions import NotFoundError, StateProtocolError
from automaple.player.state import (
    BoosterPhase,
    ExchangePhase,
    ExchangingBooster,
    Idle,
    Player,
    UsingBooster,
)
from automaple.player.transitions import next_action, transition_from_action
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import BoosterKind, KeyKind, MouseKind

if TYPE_CHECKING:
    from automaple.geometry import Rect
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

# ── 使用 ──

USING_TIMEOUT = 60
USING_PRESS_KEY_AT = 30
"""等待技能动画结束后才按下加速器键"""
CONFIRMING_TIMEOUT = 30
CONFIRMING_SECOND_LEFT_AT = 15
COMPLETING_TIMEOUT = 20

# ── 兑换 ──

EXCHANGE_MENU_TIMEOUT = 20
EXCHANGE_TYPING_TIMEOUT = 60
EXCHANGE_TYPE_INTERVAL = 10
EXCHANGE_INPUT_BOX_OFFSET = 30
"""数量输入框位于 MAX 按钮左侧的像素距离"""
EXCHANGE_MAX_AMOUNT = 20

_DIGIT_KEYS = {
    "0": KeyKind.Zero,
    "1": KeyKind.One,
    "2": KeyKind.Two,
    "3": KeyKind.Three,
    "4": KeyKind.Four,
    "5": KeyKind.Five,
    "6": KeyKind.Six,
    "7": KeyKind.Seven,
    "8": KeyKind.Eight,
    "9": KeyKind.Nine,
}


def _finish(player: PlayerEntity, next_state: Player) -> None:
    """有动作时经由动作完成转移，否则直接取消回到 Idle。"""
    if next_action(player.context) is None:
        player.state = Idle()
        return
    transition_from_action(player, next_state, isinstance(next_state, Idle))


def _close_esc_settings(resources: Resources) -> None:
    detector = resources.detector
    if detector is not None and detector.detect_esc_settings():
        resources.input.send_key(KeyKind.Esc)


# ═══════════════════════════════════════════════════════════════════════════════
# 使用
# ═══════════════════════════════════════════════════════════════════════════════


def update_using_booster_state(resources: Resources, player: PlayerEntity) -> None:
    state = player.state
    if not isinstance(state, UsingBooster):
        raise StateProtocolError("UsingBooster", state)
    context = player.context
    config = context.config
    if state.kind is BoosterKind.generic:
        key = config.generic_booster_key
    else:
        key = config.hexa_booster_key

    match state.phase:
        case BoosterPhase.using:
            state = _update_using(resources, state, key)
        case BoosterPhase.confirming:
            state = _update_confirming(resources, state)
        case BoosterPhase.completing:
            state = _update_completing(resources, state)

    if state.completed:
        if state.failed:
            logger.info("使用 {} 加速器失败", state.kind)
            context.track_booster_fail_count(state.kind)
        else:
            context.clear_booster_fail_count(state.kind)
        _finish(player, Idle())
    else:
        _finish(player, state)


def _update_using(resources: Resources, state: UsingBooster, key: KeyKind | None) -> UsingBooster:
    if key is None:
        logger.warning("未设置 {} 加速器按键", state.kind)
        return UsingBooster(state.kind, BoosterPhase.completing, failed=True)

    match next_timeout_lifecycle(state.timeout, USING_TIMEOUT):
        case Started(timeout):
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current == USING_PRESS_KEY_AT:
                resources.input.send_key(key)
            return replace(state, timeout=timeout)
        case Ended():
            if resources.detector_cloned().detect_admin_visible():
                return UsingBooster(state.kind, BoosterPhase.confirming)
            return UsingBooster(state.kind, BoosterPhase.completing, failed=True)


def _update_confirming(resources: Resources, state: UsingBooster) -> UsingBooster:
    match next_timeout_lifecycle(state.timeout, CONFIRMING_TIMEOUT):
        case Started(timeout):
            resources.input.send_key(KeyKind.Left)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current == CONFIRMING_SECOND_LEFT_AT:
                resources.input.send_key(KeyKind.Left)
            return replace(state, timeout=timeout)
        case Ended():
            resources.input.send_key(KeyKind.Enter)
            return UsingBooster(state.kind, BoosterPhase.completing)


def _update_completing(resources: Resources, state: UsingBooster) -> UsingBooster:
    match next_timeout_lifecycle(state.timeout, COMPLETING_TIMEOUT):
        case Started(timeout) | Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            _close_esc_settings(resources)
            return replace(state, completed=True)


# ═══════════════════════════════════════════════════════════════════════════════
# 兑换
# ═══════════════════════════════════════════════════════════════════════════════


def exchanging_booster(amount: int, all_: bool) -> ExchangingBooster:
    """构造兑换状态。

    ``all_`` 为 True 时点击 MAX 兑换全部；否则先清空输入框再输入数量，
    数量限制在 ``[1, 20]``。
    """
    if all_:
        return ExchangingBooster(amount_keys=None)
    amount = min(max(amount, 1), EXCHANGE_MAX_AMOUNT)
    keys = (KeyKind.Backspace, KeyKind.Backspace, *(_DIGIT_KEYS[c] for c in str(amount)))
    return ExchangingBooster(amount_keys=keys)


def update_exchanging_booster_state(resources: Resources, player: PlayerEntity) -> None:
    state = player.state
    if not isinstance(state, ExchangingBooster):
        raise StateProtocolError("ExchangingBooster", state)

    match state.phase:
        case ExchangePhase.open_hexa_menu:
            state = _update_open_hexa_menu(resources, state)
        case ExchangePhase.open_exchanging_menu:
            state = _update_open_menu(
                resources, state, ExchangePhase.open_booster_menu, "detect_hexa_booster_button"
            )
        case ExchangePhase.open_booster_menu:
            state = _update_open_menu(
                resources, state, ExchangePhase.exchanging, "detect_hexa_max_button"
            )
        case ExchangePhase.exchanging:
            state = _update_exchanging(resources, state)
        case ExchangePhase.confirming:
            state = _update_exchange_confirming(resources, state)
        case ExchangePhase.completing:
            state = _update_exchange_completing(resources, state)

    _finish(player, Idle() if state.completed else state)


def _completing(state: ExchangingBooster, completed: bool = False) -> ExchangingBooster:
    return replace(
        state, phase=ExchangePhase.completing, timeout=Timeout(), button=None, completed=completed
    )


def _click_center(resources: Resources, bbox: Rect, x_offset: int = 0) -> None:
    center = bbox.center
    resources.input.send_mouse(center.x + x_offset, center.y, MouseKind.click)


def _update_open_hexa_menu(resources: Resources, state: ExchangingBooster) -> ExchangingBooster:
    detector = resources.detector_cloned()
    match next_timeout_lifecycle(state.timeout, EXCHANGE_MENU_TIMEOUT):
        case Started(timeout):
            try:
                menu = detector.detect_hexa_quick_menu()
            except NotFoundError:
                logger.info("未找到 HEXA 快捷菜单，跳过兑换")
                return _completing(state, completed=True)
            _click_center(resources, menu)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            try:
                button = detector.detect_hexa_erda_conversion_button()
            except NotFoundError:
                return _completing(state)
            return replace(
                state, phase=ExchangePhase.open_exchanging_menu, timeout=Timeout(), button=button
            )


def _update_open_menu(
    resources: Resources, state: ExchangingBooster, next_phase: ExchangePhase, detect: str
) -> ExchangingBooster:
    """点击当前按钮打开下一级菜单，结束时识别下一级菜单中的按钮。"""
    if state.button is None:
        raise StateProtocolError("ExchangingBooster.button", state)
    match next_timeout_lifecycle(state.timeout, EXCHANGE_MENU_TIMEOUT):
        case Started(timeout):
            _click_center(resources, state.button)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            try:
                button = getattr(resources.detector_cloned(), detect)()
            except NotFoundError:
                return _completing(state)
            return replace(state, phase=next_phase, timeout=Timeout(), button=button)


def _update_exchanging(resources: Resources, state: ExchangingBooster) -> ExchangingBooster:
    if state.button is None:
        raise StateProtocolError("ExchangingBooster.button", state)
    keys = state.amount_keys
    max_timeout = EXCHANGE_MENU_TIMEOUT if keys is None else EXCHANGE_TYPING_TIMEOUT

    match next_timeout_lifecycle(state.timeout, max_timeout):
        case Started(timeout):
            # 指定数量时点击输入框，否则点击 MAX
            offset = 0 if keys is None else -EXCHANGE_INPUT_BOX_OFFSET
            _click_center(resources, state.button, offset)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if (
                keys is not None
                and timeout.current % EXCHANGE_TYPE_INTERVAL == 0
                and state.key_index < len(keys)
            ):
                resources.input.send_key(keys[state.key_index])
                return replace(state, timeout=timeout, key_index=state.key_index + 1)
            return replace(state, timeout=timeout)
        case Ended():
            try:
                button = resources.detector_cloned().detect_hexa_convert_button()
            except NotFoundError:
                return _completing(state)
            return replace(
                state, phase=ExchangePhase.confirming, timeout=Timeout(), button=button
            )


def _update_exchange_confirming(
    resources: Resources, state: ExchangingBooster
) -> ExchangingBooster:
    if state.button is None:
        raise StateProtocolError("ExchangingBooster.button", state)
    match next_timeout_lifecycle(state.timeout, EXCHANGE_MENU_TIMEOUT):
        case Started(timeout):
            _click_center(resources, state.button)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            logger.info("HEXA 加速器兑换完成")
            return _completing(state)


def _update_exchange_completing(
    resources: Resources, state: ExchangingBooster
) -> ExchangingBooster:
    match next_timeout_lifecycle(state.timeout, COMPLETING_TIMEOUT):
        case Started(timeout) | Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            _close_esc_settings(resources)
            return replace(state, completed=True)
