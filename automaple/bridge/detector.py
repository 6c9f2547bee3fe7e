"""识别器接口。

识别器封装一帧截图上的全部视觉查询（模板匹配 / 目标检测 / OCR），
本包只依赖此接口，不包含任何具体实现。

约定:

- 一帧对应一个识别器实例，整个 tick 内只读共享，可跨线程传递。
- 找不到目标时抛出 :class:`~automaple.infra.exceptions.NotFoundError`，
  不得用 None 或异常值代替，也不得抛出基础设施异常。
- 所有调用都可能耗时数十毫秒，主循环中只能经由 :mod:`automaple.task` 调用。

所有矩形均为图像坐标（左上角原点）。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from automaple.geometry import Point, Rect
from automaple.types import (
    BoosterKind,
    BuffKind,
    FamiliarRarity,
    KeyKind,
    OtherPlayerKind,
    QuickSlotsBooster,
)


class Detector(ABC):
    """单帧识别器抽象基类。"""

    # ── 帧 ──

    @property
    @abstractmethod
    def mat(self) -> np.ndarray:
        """原始帧，BGR uint8 数组 ``(H, W, 3)``。"""
        ...

    # ── 小地图 ──

    @abstractmethod
    def detect_minimap(self, border_threshold: int) -> Rect:
        """识别小地图区域。"""
        ...

    @abstractmethod
    def detect_minimap_rune(self, minimap: Rect) -> Rect:
        """识别小地图中的符文，返回相对小地图的矩形。"""
        ...

    @abstractmethod
    def detect_minimap_portals(self, minimap: Rect) -> list[Rect]:
        """识别小地图中的传送门，返回相对小地图的矩形列表。"""
        ...

    @abstractmethod
    def detect_player(self, minimap: Rect) -> Rect:
        """识别小地图中的玩家标记，返回相对小地图的矩形。"""
        ...

    @abstractmethod
    def detect_player_kind(self, minimap: Rect, kind: OtherPlayerKind) -> bool:
        """小地图中是否存在指定种类的其他玩家。"""
        ...

    @abstractmethod
    def detect_mobs(self, minimap: Rect, bound: Rect, player: Point) -> list[Point]:
        """识别 *bound* 范围内的怪物，返回相对小地图的坐标列表。"""
        ...

    # ── 玩家状态 ──

    @abstractmethod
    def detect_player_is_dead(self) -> bool:
        ...

    @abstractmethod
    def detect_player_in_cash_shop(self) -> bool:
        ...

    @abstractmethod
    def detect_player_health_bar(self) -> Rect:
        """识别血条整体区域。"""
        ...

    @abstractmethod
    def detect_player_current_max_health_bars(self, health_bar: Rect) -> tuple[Rect, Rect]:
        """在血条区域内识别当前血量与最大血量两段数字区域。"""
        ...

    @abstractmethod
    def detect_player_health(self, current_bar: Rect, max_bar: Rect) -> tuple[int, int]:
        """读取 ``(当前血量, 最大血量)``。"""
        ...

    @abstractmethod
    def detect_player_buff(self, kind: BuffKind) -> bool:
        ...

    # ── 符文 / 技能 ──

    @abstractmethod
    def detect_rune_arrows(self) -> tuple[KeyKind, KeyKind, KeyKind, KeyKind]:
        """识别符文解除界面上的四个方向键。"""
        ...

    @abstractmethod
    def detect_erda_shower(self) -> Rect:
        """识别技能栏中可用的艾尔达斯之雨图标。"""
        ...

    # ── 弹窗 / 界面 ──

    @abstractmethod
    def detect_esc_settings(self) -> bool:
        """ESC 设置菜单是否打开（通常意味着角色卡在了某个界面上）。"""
        ...

    @abstractmethod
    def detect_popup_ok_new_button(self) -> Rect:
        ...

    @abstractmethod
    def detect_elite_boss_bar(self) -> bool:
        ...

    @abstractmethod
    def detect_timer_visible(self) -> bool:
        """加速器计时器是否可见（可见即加速器仍在生效）。"""
        ...

    @abstractmethod
    def detect_quick_slots_booster(self, kind: BoosterKind) -> QuickSlotsBooster:
        ...

    @abstractmethod
    def detect_familiar_essence_depleted(self) -> bool:
        ...

    @abstractmethod
    def detect_familiar_menu_opened(self) -> bool:
        ...

    @abstractmethod
    def detect_familiar_save_button(self) -> Rect:
        ...

    @abstractmethod
    def detect_change_channel_menu_opened(self) -> bool:
        ...

    @abstractmethod
    def detect_chat_menu_opened(self) -> bool:
        ...

    @abstractmethod
    def detect_popup_confirm_button(self) -> Rect:
        ...

    @abstractmethod
    def detect_admin_visible(self) -> bool:
        """使用加速器时弹出的确认对话框是否可见。"""
        ...

    # ── HEXA 矩阵 ──

    @abstractmethod
    def detect_hexa_quick_menu(self) -> Rect:
        ...

    @abstractmethod
    def detect_hexa_erda_conversion_button(self) -> Rect:
        ...

    @abstractmethod
    def detect_hexa_booster_button(self) -> Rect:
        ...

    @abstractmethod
    def detect_hexa_max_button(self) -> Rect:
        ...

    @abstractmethod
    def detect_hexa_convert_button(self) -> Rect:
        ...

    # ── 宠物 ──

    @abstractmethod
    def detect_familiar_slots(self) -> list[tuple[Rect, bool]]:
        """识别三个宠物栏位，返回 ``(区域, 是否空闲)``，按从左到右排序。"""
        ...

    @abstractmethod
    def detect_familiar_slot_is_free(self, slot: Rect) -> bool:
        ...

    @abstractmethod
    def detect_familiar_hover_is_max_level(self) -> bool:
        """鼠标悬停处的宠物是否已满级。"""
        ...

    @abstractmethod
    def detect_familiar_cards(self) -> list[tuple[Rect, FamiliarRarity]]:
        """识别宠物卡片列表中可见的卡片。"""
        ...
