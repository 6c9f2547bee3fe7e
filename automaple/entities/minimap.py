"""小地图追踪。

状态::

    Detecting ── 识别到小地图 ──→ Idle
    Idle ── 两个锚点像素都不匹配 ──→ Detecting

Idle 状态下通过各自的 Task 槽位持续识别符文、其他玩家、精英 Boss 与传送门。
这些结果都带有失败容忍阈值：连续若干次识别失败才清除已有的值。

坐标约定：除 :attr:`MinimapIdle.bbox` 为帧内图像坐标外，其余位置均为玩家坐标
（左下角原点）。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Generic, TypeVar

from loguru import logger

from automaple.entities.anchor import Anchor, anchor_at_diagonal, anchor_match, pixel_at
from automaple.geometry import Point, Rect, XRange
from automaple.infra.exceptions import NotFoundError
from automaple.task import Task, Update, update_detection_task
from automaple.types import NotificationKind, OtherPlayerKind

if TYPE_CHECKING:
    from automaple.resources import Resources

T = TypeVar("T")

MINIMAP_BORDER_WHITENESS_THRESHOLD = 160
MAX_PORTALS_COUNT = 16
PORTAL_INVALIDATE_THRESHOLD = 3
"""传送门连续未被识别到的次数达到此值后移除"""
PLATFORMS_BOUND_MARGIN = 5
"""平台范围向上扩展的像素，覆盖站在平台上的怪物"""
DARKEN_RATIO_THRESHOLD = 0.5


# ═══════════════════════════════════════════════════════════════════════════════
# 数据类型
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Platform:
    """水平平台（玩家坐标）。"""

    xs: XRange
    y: int


@dataclass(frozen=True, slots=True)
class Threshold(Generic[T]):
    """带失败容忍的识别值。"""

    max_fail_count: int
    value: T | None = None
    fail_count: int = 0

    def updated(self, update: Update[T]) -> Threshold[T]:
        """根据一次轮询结果更新。

        成功时覆盖值并清零计数；失败时仅在已有值的情况下累计，
        达到上限后清除值。
        """
        if update.is_ok:
            return replace(self, value=update.value, fail_count=0)
        if update.is_err and self.value is not None:
            count = self.fail_count + 1
            if count >= self.max_fail_count:
                return replace(self, value=None, fail_count=0)
            return replace(self, fail_count=count)
        return self


@dataclass(frozen=True, slots=True)
class MinimapDetecting:
    """正在识别小地图。"""


@dataclass(frozen=True, slots=True)
class MinimapIdle:
    """小地图已识别。"""

    tl_anchor: Anchor
    br_anchor: Anchor
    bbox: Rect
    """小地图在帧内的区域（图像坐标）"""
    partially_overlapping: bool = False
    """仅一个锚点匹配，小地图可能被部分遮挡"""
    rune_threshold: Threshold[Point] = field(default_factory=lambda: Threshold(3))
    guildie_threshold: Threshold[bool] = field(default_factory=lambda: Threshold(2))
    stranger_threshold: Threshold[bool] = field(default_factory=lambda: Threshold(2))
    friend_threshold: Threshold[bool] = field(default_factory=lambda: Threshold(2))
    elite_boss_threshold: Threshold[bool] = field(default_factory=lambda: Threshold(2))
    portals: tuple[Rect, ...] = ()
    platforms: tuple[Platform, ...] = ()
    platforms_bound: Rect | None = None
    """平台覆盖的范围（图像坐标），没有平台时为 None"""

    @property
    def rune(self) -> Point | None:
        return self.rune_threshold.value

    def has_any_other_player(self) -> bool:
        return any(
            t.value is not None
            for t in (self.guildie_threshold, self.stranger_threshold, self.friend_threshold)
        )

    def has_elite_boss(self) -> bool:
        return self.elite_boss_threshold.value is not None

    def is_position_inside_portal(self, pos: Point) -> bool:
        for portal in self.portals:
            if portal.contains(pos):
                logger.debug("位置 {} 位于传送门 {} 内", pos, portal)
                return True
        return False


Minimap = MinimapDetecting | MinimapIdle


# ═══════════════════════════════════════════════════════════════════════════════
# 实体
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class MinimapContext:
    """小地图的识别槽位与平台配置。"""

    minimap_task: Task = field(default_factory=Task)
    rune_task: Task = field(default_factory=Task)
    portals_task: Task = field(default_factory=Task)
    elite_boss_task: Task = field(default_factory=Task)
    other_player_tasks: dict[OtherPlayerKind, Task] = field(
        default_factory=lambda: {kind: Task() for kind in OtherPlayerKind}
    )
    portals_invalidate: dict[Rect, int] = field(default_factory=dict)
    platforms: list[Platform] = field(default_factory=list)
    platforms_dirty: bool = False

    def set_platforms(self, platforms: list[Platform]) -> None:
        self.platforms = list(platforms)
        self.platforms_dirty = True

    def reset_tasks(self) -> None:
        self.rune_task = Task()
        self.portals_task = Task()
        self.elite_boss_task = Task()
        self.other_player_tasks = {kind: Task() for kind in OtherPlayerKind}
        self.portals_invalidate.clear()


@dataclass
class MinimapEntity:
    state: Minimap = field(default_factory=MinimapDetecting)
    context: MinimapContext = field(default_factory=MinimapContext)


_OTHER_PLAYER_NOTIFICATIONS: dict[OtherPlayerKind, NotificationKind] = {
    OtherPlayerKind.guildie: NotificationKind.player_guildie_appeared,
    OtherPlayerKind.stranger: NotificationKind.player_stranger_appeared,
    OtherPlayerKind.friend: NotificationKind.player_friend_appeared,
}


def run_system(
    resources: Resources,
    minimap: MinimapEntity,
    *,
    in_cash_shop: bool = False,
    solving_rune: bool = False,
) -> None:
    """推进一次小地图状态。

    Parameters
    ----------
    in_cash_shop:
        玩家正处于商城中，此时小地图不可见，保持当前状态不变。
    solving_rune:
        玩家正在解除符文，已识别到的符文位置保持不变。
    """
    match minimap.state:
        case MinimapDetecting():
            _update_detecting(resources, minimap)
        case MinimapIdle() as idle:
            if in_cash_shop:
                return
            _update_idle(resources, minimap, idle, solving_rune)


def _update_detecting(resources: Resources, minimap: MinimapEntity) -> None:
    def detect(detector):
        bbox = detector.detect_minimap(MINIMAP_BORDER_WHITENESS_THRESHOLD)
        size = min(bbox.width, bbox.height)
        tl = anchor_at_diagonal(
            detector.mat, bbox.tl, size, 1, MINIMAP_BORDER_WHITENESS_THRESHOLD
        )
        br = anchor_at_diagonal(
            detector.mat, bbox.br, size, -1, MINIMAP_BORDER_WHITENESS_THRESHOLD
        )
        return tl, br, bbox

    update = update_detection_task(resources, 2000, minimap.context.minimap_task, detect)
    if not update.is_ok:
        return

    tl, br, bbox = update.value
    context = minimap.context
    context.reset_tasks()
    context.platforms_dirty = False
    logger.info("已识别小地图 {}", bbox)
    minimap.state = MinimapIdle(
        tl_anchor=tl,
        br_anchor=br,
        bbox=bbox,
        platforms=tuple(context.platforms),
        platforms_bound=platforms_bound(bbox, context.platforms),
    )


def _update_idle(
    resources: Resources, minimap: MinimapEntity, idle: MinimapIdle, solving_rune: bool
) -> None:
    mat = resources.detector.mat
    tl_pixel = pixel_at(mat, idle.tl_anchor.point)
    br_pixel = pixel_at(mat, idle.br_anchor.point)
    if tl_pixel is None or br_pixel is None:
        minimap.state = MinimapDetecting()
        return

    tl_match = anchor_match(idle.tl_anchor.color, tl_pixel, DARKEN_RATIO_THRESHOLD)
    br_match = anchor_match(idle.br_anchor.color, br_pixel, DARKEN_RATIO_THRESHOLD)
    if not tl_match and not br_match:
        logger.debug("小地图锚点不匹配，重新识别")
        minimap.state = MinimapDetecting()
        return

    context = minimap.context
    bbox = idle.bbox
    halting = resources.operation.is_halting

    # 符文
    rune = idle.rune_threshold
    if not (solving_rune and rune.value is not None):
        was_none = rune.value is None
        rune = rune.updated(
            update_detection_task(
                resources,
                5000,
                context.rune_task,
                lambda detector: center_of_bbox(detector.detect_minimap_rune(bbox), bbox),
            )
        )
        if was_none and rune.value is not None and not halting:
            logger.info("地图上出现符文 {}", rune.value)
            resources.notification.schedule_notification(NotificationKind.rune_appeared)

    # 其他玩家
    others = {
        OtherPlayerKind.guildie: idle.guildie_threshold,
        OtherPlayerKind.stranger: idle.stranger_threshold,
        OtherPlayerKind.friend: idle.friend_threshold,
    }
    for kind, threshold in others.items():
        had = threshold.value is not None
        others[kind] = threshold.updated(
            update_detection_task(
                resources,
                3000,
                context.other_player_tasks[kind],
                lambda detector, kind=kind: _require(
                    detector.detect_player_kind(bbox, kind), f"player:{kind.value}"
                ),
            )
        )
        if not had and others[kind].value is not None and not halting:
            logger.info("地图上出现其他玩家: {}", kind.value)
            resources.notification.schedule_notification(_OTHER_PLAYER_NOTIFICATIONS[kind])

    # 精英 Boss
    elite_boss = idle.elite_boss_threshold
    had_elite_boss = elite_boss.value is not None
    elite_boss = elite_boss.updated(
        update_detection_task(
            resources,
            5000,
            context.elite_boss_task,
            lambda detector: _require(detector.detect_elite_boss_bar(), "elite_boss_bar"),
        )
    )
    if not had_elite_boss and elite_boss.value is not None and not halting:
        resources.notification.schedule_notification(NotificationKind.elite_boss_appeared)

    # 传送门
    portals = idle.portals
    update = update_detection_task(
        resources,
        5000,
        context.portals_task,
        lambda detector: detector.detect_minimap_portals(bbox),
    )
    if update.is_ok:
        flipped = {portal.flip_y(bbox.height) for portal in update.value}
        portals = merge_portals(set(idle.portals), flipped, context.portals_invalidate)

    platforms = idle.platforms
    bound = idle.platforms_bound
    if context.platforms_dirty:
        platforms = tuple(context.platforms)
        bound = platforms_bound(bbox, context.platforms)
        context.platforms_dirty = False

    minimap.state = replace(
        idle,
        partially_overlapping=tl_match != br_match,
        rune_threshold=rune,
        guildie_threshold=others[OtherPlayerKind.guildie],
        stranger_threshold=others[OtherPlayerKind.stranger],
        friend_threshold=others[OtherPlayerKind.friend],
        elite_boss_threshold=elite_boss,
        portals=portals,
        platforms=platforms,
        platforms_bound=bound,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# 工具函数
# ═══════════════════════════════════════════════════════════════════════════════


def _require(found: bool, target: str) -> bool:
    if not found:
        raise NotFoundError(target)
    return True


def center_of_bbox(bbox: Rect, minimap: Rect) -> Point:
    """小地图内图像矩形的底部中心，转换为玩家坐标。"""
    return Point((bbox.x + bbox.br.x) // 2, minimap.height - bbox.br.y + 1)


def merge_portals(
    old: set[Rect],
    new: set[Rect],
    invalidate: dict[Rect, int],
) -> tuple[Rect, ...]:
    """合并新旧传送门。

    旧传送门连续 :data:`PORTAL_INVALIDATE_THRESHOLD` 次未出现才移除；
    总数超过 :data:`MAX_PORTALS_COUNT` 时视为误识别，全部清空。
    """
    merged = old | new
    for portal in old & new:
        invalidate[portal] = 0
    for portal in old - new:
        count = invalidate.get(portal, 0) + 1
        if count >= PORTAL_INVALIDATE_THRESHOLD:
            invalidate.pop(portal, None)
            merged.discard(portal)
        else:
            invalidate[portal] = count
    if len(merged) >= MAX_PORTALS_COUNT:
        invalidate.clear()
        return ()
    return tuple(sorted(merged, key=lambda r: (r.x, r.y)))


def platforms_bound(bbox: Rect, platforms: list[Platform]) -> Rect | None:
    """覆盖全部平台的矩形（图像坐标）。"""
    if not platforms:
        return None
    left = min(p.xs.start for p in platforms)
    right = max(p.xs.end for p in platforms)
    bottom = min(p.y for p in platforms)
    top = max(p.y for p in platforms) + PLATFORMS_BOUND_MARGIN
    return Rect(left, bottom, right - left, top - bottom).flip_y(bbox.height)
