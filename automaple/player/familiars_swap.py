"""替换已满级的宠物。

流程::

    OpenMenu ──→ FindSlots ──→ FreeSlots ⇄ FreeSlot ──→ FindCards ──→ Swapping
        ──→ Saving ──→ Completing

- FreeSlots 从最后一个栏位向前检查，允许替换且已满级的宠物双击释放；
- FindCards 只保留允许稀有度的卡片，Swapping 依次悬停检查等级，未满级的点击放入空栏；
- 栏位全部占满后保存并关闭菜单。

识别全部同步进行。菜单打不开、栏位数量不对或者没有可用卡片时记为一次失败，
连续失败达到上限后轮换器不再排入替换动作。
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.geometry import Point
from automaple.infra.exceptions import NotFoundError, StateProtocolError
from automaple.player.state import FamiliarsPhase, FamiliarsSwapping, Idle
from automaple.player.transitions import next_action, transition_from_action
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import KeyKind, MouseKind, SwappableFamiliars

if TYPE_CHECKING:
    from automaple.bridge.detector import Detector
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

FAMILIAR_SLOTS = 3
MAX_RETRY = 3

MOUSE_REST = Point(50, 50)
"""鼠标空闲位置，避免悬停提示遮挡识别"""

OPEN_MENU_TIMEOUT = 10

FREE_SLOT_TIMEOUT = 10
FREE_SLOT_CHECK_LEVEL_TICK = 5
FREE_SLOT_CHECK_FREE_TICK = FREE_SLOT_TIMEOUT

FIND_CARDS_TIMEOUT = 5

SWAPPING_TIMEOUT = 10
SWAPPING_CHECK_LEVEL_TICK = 5

SAVING_TIMEOUT = 30
SAVING_PRESS_OK_AT = 15
SAVING_PRESS_ESC_AT = 20

COMPLETING_TIMEOUT = 10


def update_familiars_swapping_state(resources: Resources, player: PlayerEntity) -> None:
    state = player.state
    if not isinstance(state, FamiliarsSwapping):
        raise StateProtocolError("FamiliarsSwapping", state)
    context = player.context

    key = context.config.familiar_menu_key
    if key is None:
        logger.info("未设置宠物菜单按键，放弃替换宠物")
        context.clear_action_completed()
        player.state = Idle()
        return

    detector = resources.detector_cloned()
    match state.phase:
        case FamiliarsPhase.open_menu:
            state = _update_open_menu(resources, detector, state, key)
        case FamiliarsPhase.find_slots:
            state = _update_find_slots(detector, state)
        case FamiliarsPhase.free_slots:
            state = _update_free_slots(resources, state)
        case FamiliarsPhase.free_slot:
            state = _update_free_slot(resources, detector, state)
        case FamiliarsPhase.find_cards:
            state = _update_find_cards(detector, state)
        case FamiliarsPhase.swapping:
            state = _update_swapping(resources, detector, state)
        case FamiliarsPhase.saving:
            state = _update_saving(resources, detector, state)
        case FamiliarsPhase.completing:
            state = _update_completing(resources, detector, state)

    if next_action(context) is None:
        player.state = Idle()
        return
    if not state.completed:
        transition_from_action(player, state, False)
        return

    if state.failed:
        context.track_familiars_swap_fail_count()
    else:
        context.clear_familiars_swap_fail_count()
    transition_from_action(player, Idle())


def _completing(state: FamiliarsSwapping, failed: bool) -> FamiliarsSwapping:
    return replace(state, phase=FamiliarsPhase.completing, timeout=Timeout(), failed=failed)


def _rest_mouse(resources: Resources) -> None:
    resources.input.send_mouse(MOUSE_REST.x, MOUSE_REST.y, MouseKind.move)


def _can_free(swappable: SwappableFamiliars, index: int) -> bool:
    match swappable:
        case SwappableFamiliars.all:
            return True
        case SwappableFamiliars.last:
            return index == FAMILIAR_SLOTS - 1
        case SwappableFamiliars.second_and_last:
            return index >= FAMILIAR_SLOTS - 2


def _with_slot_free(state: FamiliarsSwapping, index: int, is_free: bool) -> FamiliarsSwapping:
    slots = list(state.slots)
    slots[index] = (slots[index][0], is_free)
    return replace(state, slots=tuple(slots))


def _find_cards_or_complete(resources: Resources, state: FamiliarsSwapping) -> FamiliarsSwapping:
    if any(is_free for _, is_free in state.slots):
        _rest_mouse(resources)
        return replace(state, phase=FamiliarsPhase.find_cards, timeout=Timeout())
    # 栏位全部被未满级的宠物占用
    return _completing(state, failed=False)


# ── 阶段 ──


def _update_open_menu(
    resources: Resources, detector: Detector, state: FamiliarsSwapping, key: KeyKind
) -> FamiliarsSwapping:
    match next_timeout_lifecycle(state.timeout, OPEN_MENU_TIMEOUT):
        case Started(timeout):
            _rest_mouse(resources)
            if detector.detect_familiar_menu_opened():
                return replace(state, phase=FamiliarsPhase.find_slots, timeout=Timeout())
            if state.retry_count < MAX_RETRY:
                resources.input.send_key(key)
                return replace(state, timeout=timeout, retry_count=state.retry_count + 1)
            logger.info("宠物菜单打不开")
            return _completing(state, failed=True)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            return replace(state, timeout=Timeout())


def _update_find_slots(detector: Detector, state: FamiliarsSwapping) -> FamiliarsSwapping:
    slots = tuple(detector.detect_familiar_slots())
    if len(slots) != FAMILIAR_SLOTS:
        logger.debug("宠物栏位数量为 {}，放弃替换", len(slots))
        return _completing(state, failed=True)
    return replace(
        state,
        phase=FamiliarsPhase.free_slots,
        slots=slots,
        index=FAMILIAR_SLOTS - 1,
        was_freeing=False,
    )


def _update_free_slots(resources: Resources, state: FamiliarsSwapping) -> FamiliarsSwapping:
    index = state.index
    _, is_free = state.slots[index]
    if is_free:
        if index > 0:
            return replace(state, index=index - 1, was_freeing=False)
        return _find_cards_or_complete(resources, state)

    if not _can_free(state.swappable_slots, index):
        return _find_cards_or_complete(resources, state)
    if state.was_freeing:
        # 释放后栏位仍被占用，菜单可能已经被关闭
        return replace(
            state, phase=FamiliarsPhase.open_menu, timeout=Timeout(), retry_count=0, slots=()
        )
    return replace(state, phase=FamiliarsPhase.free_slot, timeout=Timeout())


def _update_free_slot(
    resources: Resources, detector: Detector, state: FamiliarsSwapping
) -> FamiliarsSwapping:
    index = state.index
    bbox = state.slots[index][0]
    center = bbox.center

    match next_timeout_lifecycle(state.timeout, FREE_SLOT_TIMEOUT):
        case Started(timeout):
            # 悬停在栏位上显示等级
            resources.input.send_mouse(center.x, bbox.y + 20, MouseKind.move)
            return replace(state, timeout=timeout)
        case Ended():
            return replace(state, phase=FamiliarsPhase.free_slots, was_freeing=True)
        case Updated(timeout):
            pass

    if timeout.current == FREE_SLOT_CHECK_LEVEL_TICK:
        try:
            is_max_level = detector.detect_familiar_hover_is_max_level()
        except NotFoundError:
            return replace(state, phase=FamiliarsPhase.free_slots, was_freeing=True)
        if not is_max_level:
            if index > 0:
                return replace(
                    state, phase=FamiliarsPhase.free_slots, index=index - 1, was_freeing=False
                )
            return _find_cards_or_complete(resources, state)
        # 双击释放后移开鼠标，检查是否真的释放
        resources.input.send_mouse(center.x, center.y, MouseKind.click)
        resources.input.send_mouse(center.x, center.y, MouseKind.click)
        resources.input.send_mouse(center.x, bbox.y - 20, MouseKind.move)
    elif timeout.current == FREE_SLOT_CHECK_FREE_TICK:
        if detector.detect_familiar_slot_is_free(bbox):
            return replace(_with_slot_free(state, index, True), timeout=timeout)
        # 释放后后面的宠物会前移，重新检查后面的栏位
        for i in range(index + 1, FAMILIAR_SLOTS):
            is_free = detector.detect_familiar_slot_is_free(state.slots[i][0])
            state = _with_slot_free(state, i, is_free)
        return replace(state, timeout=Timeout())
    return replace(state, timeout=timeout)


def _update_find_cards(detector: Detector, state: FamiliarsSwapping) -> FamiliarsSwapping:
    match next_timeout_lifecycle(state.timeout, FIND_CARDS_TIMEOUT):
        case Started(timeout) | Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            cards = tuple(
                bbox
                for bbox, rarity in detector.detect_familiar_cards()
                if rarity in state.swappable_rarities
            )
            if not cards:
                logger.info("没有可替换的宠物卡片")
                return _completing(state, failed=True)
            return replace(
                state, phase=FamiliarsPhase.swapping, timeout=Timeout(), cards=cards, index=0
            )


def _update_swapping(
    resources: Resources, detector: Detector, state: FamiliarsSwapping
) -> FamiliarsSwapping:
    card = state.cards[state.index].center

    match next_timeout_lifecycle(state.timeout, SWAPPING_TIMEOUT):
        case Started(timeout):
            resources.input.send_mouse(card.x, card.y, MouseKind.move)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current != SWAPPING_CHECK_LEVEL_TICK:
                return replace(state, timeout=timeout)
            try:
                is_max_level = detector.detect_familiar_hover_is_max_level()
            except NotFoundError:
                if not detector.detect_familiar_menu_opened():
                    return _completing(state, failed=True)
                return replace(state, timeout=timeout)
            if not is_max_level:
                resources.input.send_mouse(card.x, card.y, MouseKind.click)
            _rest_mouse(resources)
            return replace(state, timeout=timeout)
        case Ended():
            slots = tuple(
                (bbox, detector.detect_familiar_slot_is_free(bbox)) for bbox, _ in state.slots
            )
            state = replace(state, slots=slots)
            if not any(is_free for _, is_free in slots):
                return replace(state, phase=FamiliarsPhase.saving, timeout=Timeout(), retry_count=0)
            if state.index + 1 < len(state.cards):
                return replace(state, timeout=Timeout(), index=state.index + 1)
            # 卡片用完仍有空栏，保存已经放入的宠物
            return replace(state, phase=FamiliarsPhase.saving, timeout=Timeout(), retry_count=0)


def _update_saving(
    resources: Resources, detector: Detector, state: FamiliarsSwapping
) -> FamiliarsSwapping:
    match next_timeout_lifecycle(state.timeout, SAVING_TIMEOUT):
        case Started(timeout):
            try:
                button = detector.detect_familiar_save_button()
            except NotFoundError:
                return _completing(state, failed=True)
            center = button.center
            resources.input.send_mouse(center.x, center.y, MouseKind.click)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            if timeout.current == SAVING_PRESS_OK_AT:
                try:
                    button = detector.detect_popup_confirm_button()
                except NotFoundError:
                    logger.debug("保存宠物时没有出现确认弹窗")
                else:
                    resources.input.send_mouse(button.center.x, button.center.y, MouseKind.click)
            elif timeout.current == SAVING_PRESS_ESC_AT:
                resources.input.send_key(KeyKind.Esc)
            return replace(state, timeout=timeout)
        case Ended():
            if detector.detect_familiar_menu_opened() and state.retry_count < MAX_RETRY:
                return replace(state, timeout=Timeout(), retry_count=state.retry_count + 1)
            logger.info("宠物替换已保存")
            return _completing(state, failed=False)


def _update_completing(
    resources: Resources, detector: Detector, state: FamiliarsSwapping
) -> FamiliarsSwapping:
    match next_timeout_lifecycle(state.timeout, COMPLETING_TIMEOUT):
        case Started(timeout):
            # 菜单仍然打开时先关闭，等下一轮确认
            has_menu = detector.detect_familiar_menu_opened()
            if has_menu:
                resources.input.send_key(KeyKind.Esc)
            return replace(state, timeout=timeout, completed=not has_menu)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            return replace(state, timeout=Timeout())
