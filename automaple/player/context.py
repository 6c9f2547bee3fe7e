"""玩家上下文。

跨状态保存的长期数据：配置、普通与优先两个动作槽位、失败计数、
自动打怪的位置修正模型，以及每 tick 更新的位置、速度与静止状态。

轮换器只通过本模块的公开方法读写动作槽位；其余方法供状态更新函数调用。

位置修正模型
------------
识别到的怪物 y 并不可靠（镜头滞后、噪声），因此会被"吸附"到已知可达的 y 上：

- **可达 y 表**：``y → 置信计数``。配置的平台 y 直接以上限计数
  :data:`AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT` 写入，玩家当前 y 以上限减一写入。
  每次打怪结束时玩家落脚的 y 计数加一，目标 y 与落脚 y 不同则目标 y 计数减一，
  减到 0 即移除。
- **忽略 x 区间表**：``y → [(x 区间, 计数)]``。平台之间的空隙以上限计数写入；
  某个目标点反复导致动作中止时，其附近区间计数增加，达到上限后该区间内的
  怪物直接被忽略。相邻且重叠的区间在任一方达到上限时合并。
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.buff import Buff
from automaple.entities.minimap import Minimap, MinimapIdle
from automaple.geometry import Point, Rect, XRange
from automaple.infra.config import PlayerConfig
from automaple.infra.exceptions import NotFoundError, StateProtocolError
from automaple.infra.logger import save_image
from automaple.player.actions import (
    AUTO_MOB_USE_KEY_X_THRESHOLD,
    AUTO_MOB_USE_KEY_Y_THRESHOLD,
    AutoMob,
    Move,
    PingPong,
    PlayerAction,
    SolveRune,
)
from automaple.player.state import (
    DOUBLE_JUMP_AUTO_MOB_THRESHOLD,
    DOUBLE_JUMP_THRESHOLD,
    FALLING_THRESHOLD,
    JUMP_THRESHOLD,
    MOVE_TIMEOUT,
    Player,
    SolvingRune,
)
from automaple.task import Task, update_detection_task
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import (
    ActionKeyDirection,
    BoosterKind,
    BuffKind,
    MouseKind,
    NotificationKind,
    StrEnum,
)

if TYPE_CHECKING:
    from automaple.entities.buff import BuffEntities
    from automaple.resources import Resources

STATIONARY_TIMEOUT = MOVE_TIMEOUT + 1
"""位置保持不变多少 tick 后视为静止"""

MAX_RUNE_FAILED_COUNT = 8
"""符文连续解除失败的上限，达到后进入商城重置"""

MAX_BOOSTER_FAILED_COUNT = 5
"""加速器连续使用失败的上限，达到后视为不可用（例如已达每日上限）"""

MAX_FAMILIARS_SWAP_FAIL_COUNT = 3
"""宠物替换连续失败的上限，达到后视为没有可替换的卡片"""

HORIZONTAL_MOVEMENT_REPEAT_COUNT = 20
VERTICAL_MOVEMENT_REPEAT_COUNT = 8
AUTO_MOB_HORIZONTAL_MOVEMENT_REPEAT_COUNT = 6
AUTO_MOB_VERTICAL_MOVEMENT_REPEAT_COUNT = 3

AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT = 4
"""可达 y 的计数上限，达到即视为该 y 上一定有平台"""

AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT = 3
"""忽略 x 区间的计数上限，达到后区间内的目标点被忽略"""

AUTO_MOB_IGNORE_XS_RANGE = 3
"""x 为 5 时忽略区间为 ``[2, 9)``"""

AUTO_MOB_REACHABLE_Y_THRESHOLD = 10
"""怪物 y 上下多少像素内的可达 y 可以被选中"""

UNSTUCK_COUNT_THRESHOLD = 6
"""位置不变的移动次数达到该值时进入脱困"""

UNSTUCK_GAMBA_MODE_COUNT = 3
"""连续进入脱困的次数达到该值时改用随机方向"""

VELOCITY_SAMPLES = MOVE_TIMEOUT

RUNE_VALIDATE_TIMEOUT = 375
"""发送完符文按键后约 12 秒检查符文增益"""

StallingCallback = Callable[["Resources"], None]


class LastMovement(StrEnum):
    """上一次使用的移动方式。"""

    adjusting = "Adjusting"
    double_jumping = "DoubleJumping"
    falling = "Falling"
    grappling = "Grappling"
    up_jumping = "UpJumping"
    jumping = "Jumping"

    @property
    def is_horizontal(self) -> bool:
        return self in (LastMovement.adjusting, LastMovement.double_jumping)


class Quadrant(StrEnum):
    top_left = "TopLeft"
    top_right = "TopRight"
    bottom_right = "BottomRight"
    bottom_left = "BottomLeft"

    def next_clockwise(self) -> Quadrant:
        order = list(Quadrant)
        return order[(order.index(self) + 1) % len(order)]


def _require_idle(minimap: Minimap) -> MinimapIdle:
    if not isinstance(minimap, MinimapIdle):
        raise StateProtocolError("MinimapIdle", minimap)
    return minimap


def ignore_xs_range_value(x: int) -> tuple[XRange, int]:
    return XRange(x - AUTO_MOB_IGNORE_XS_RANGE, x + AUTO_MOB_IGNORE_XS_RANGE + 1), 0


def quadrant_bound(quadrant: Quadrant, bound: Rect) -> Rect:
    """*bound* 中某个象限的范围（图像坐标）。"""
    half_width = bound.width // 2
    half_height = bound.height // 2
    x_mid = bound.x + half_width
    y_mid = bound.y + half_height
    match quadrant:
        case Quadrant.top_left:
            return Rect(bound.x, bound.y, half_width, half_height)
        case Quadrant.top_right:
            return Rect(x_mid, bound.y, half_width, half_height)
        case Quadrant.bottom_right:
            return Rect(x_mid, y_mid, half_width, half_height)
        case Quadrant.bottom_left:
            return Rect(bound.x, y_mid, half_width, half_height)


class PlayerContext:
    """玩家的长期状态。

    Parameters
    ----------
    config:
        角色配置，:meth:`reset` 时保留。
    """

    def __init__(self, config: PlayerConfig | None = None) -> None:
        self.config = config or PlayerConfig()

        # ── 动作槽位 ──
        self._normal_action_id: int | None = None
        self.normal_action: PlayerAction | None = None
        self._priority_action_id: int | None = None
        self.priority_action: PlayerAction | None = None

        # ── 血量 ──
        self.health: tuple[int, int] | None = None
        self.health_task: Task = Task()
        self.health_bar: Rect | None = None
        self.health_bar_task: Task = Task()

        # ── 位置 ──
        self.is_stationary_timeout = Timeout()
        self.is_stationary = False
        self.last_known_direction = ActionKeyDirection.any
        self.last_known_pos: Point | None = None
        self.velocity_samples: list[tuple[Point, int]] = []
        self.velocity: tuple[float, float] = (0.0, 0.0)

        # ── 死亡 ──
        self.is_dead = False
        self.is_dead_task: Task = Task()
        self.is_dead_button_task: Task = Task()

        # ── 下一 tick 的重置标记 ──
        self.reset_to_idle_next_update = False
        self.reset_stalling_buffer_states_next_update = False

        # ── 移动重复追踪（普通与优先动作分开计数） ──
        self.last_movement: LastMovement | None = None
        self.last_movement_normal_map: dict[LastMovement, int] = {}
        self.last_movement_priority_map: dict[LastMovement, int] = {}

        # ── 自动打怪 ──
        self.auto_mob_reachable_y_map: dict[int, int] = {}
        self.auto_mob_ignore_xs_map: dict[int, list[tuple[XRange, int]]] = {}
        self.auto_mob_last_quadrant: Quadrant | None = None
        self.auto_mob_last_quadrant_bound: Rect | None = None
        """上一次寻路象限范围（玩家坐标）"""
        self.auto_mob_next_quadrant_bound: Rect | None = None
        """下一个寻路象限范围（玩家坐标）"""
        self.auto_mob_pathing_task: Task = Task()

        # ── 脱困 ──
        self.unstuck_count = 0
        self.unstuck_transitioned_count = 0

        # ── 符文 ──
        self.rune_failed_count = 0
        self.rune_cash_shop = False
        """下一 tick 进入商城"""
        self.rune_validate_timeout: Timeout | None = None

        # ── 停顿 ──
        self.stalling_timeout_state: Player | None = None
        """停顿结束后恢复的状态"""
        self.stalling_timeout_buffered_state: tuple[Timeout, int] | None = None
        """后台停顿，允许其他动作在上一个动作的等待期间执行"""
        self.stalling_timeout_buffered_interruptible = True
        self.stalling_timeout_buffered_update_callback: StallingCallback | None = None
        self.stalling_timeout_buffered_end_callback: StallingCallback | None = None
        self._force_clear_stalling_buffer = False

        # ── 失败计数 ──
        self.generic_booster_failed_count = 0
        self.hexa_booster_failed_count = 0
        self.familiars_swap_failed_count = 0

    def reset(self) -> None:
        """重置除配置外的全部状态。小地图或配置变化时调用。"""
        self.__init__(self.config)
        self.reset_to_idle_next_update = True

    # ═══════════════════════════════════════════════════════════════════════════
    # 动作槽位
    # ═══════════════════════════════════════════════════════════════════════════

    def normal_action_id(self) -> int | None:
        return self._normal_action_id if self.has_normal_action() else None

    def has_normal_action(self) -> bool:
        return self.normal_action is not None

    def set_normal_action(self, action_id: int | None, action: PlayerAction) -> None:
        self._normal_action_id = action_id
        self.normal_action = action

    def reset_normal_action(self) -> None:
        self.normal_action = None

    def priority_action_id(self) -> int | None:
        return self._priority_action_id if self.has_priority_action() else None

    def has_priority_action(self) -> bool:
        return self.priority_action is not None

    def set_priority_action(self, action_id: int | None, action: PlayerAction) -> None:
        """设置优先动作，下一 tick 回到 Idle。"""
        self.replace_priority_action(action_id, action)

    def replace_priority_action(self, action_id: int | None, action: PlayerAction) -> int | None:
        """替换优先动作，返回被替换的动作 id（没有时为 None）。"""
        prev_id = self._priority_action_id
        had_action = self.priority_action is not None
        self.reset_to_idle_next_update = True
        self.reset_stalling_buffer_states_next_update = not isinstance(action, Move)
        self._priority_action_id = action_id
        self.priority_action = action
        return prev_id if had_action else None

    def take_priority_action(self) -> int | None:
        """移除优先动作并返回其 id。"""
        self.reset_to_idle_next_update = True
        had_action = self.priority_action is not None
        self.priority_action = None
        return self._priority_action_id if had_action else None

    def has_auto_mob_action_only(self) -> bool:
        return not self.has_priority_action() and isinstance(self.normal_action, AutoMob)

    def has_ping_pong_action_only(self) -> bool:
        return not self.has_priority_action() and isinstance(self.normal_action, PingPong)

    def has_rune_action(self) -> bool:
        return isinstance(self.priority_action, SolveRune)

    def clear_actions_aborted(self, should_idle: bool) -> None:
        """外部中止：同时清除普通与优先动作。"""
        self.reset_to_idle_next_update = should_idle
        self.reset_stalling_buffer_states_next_update = True
        self._force_clear_stalling_buffer = True
        self.priority_action = None
        self.normal_action = None

    def clear_action_completed(self) -> None:
        """当前动作完成：有优先动作时清除优先动作，否则清除普通动作。"""
        self.clear_last_movement()
        if self.has_priority_action():
            self.priority_action = None
        else:
            self.normal_action = None

    # ═══════════════════════════════════════════════════════════════════════════
    # 停顿
    # ═══════════════════════════════════════════════════════════════════════════

    def stalling_timeout_buffered(
        self,
        max_timeout: int,
        interruptible: bool = True,
        update_callback: StallingCallback | None = None,
        end_callback: StallingCallback | None = None,
    ) -> None:
        """开始一段后台停顿。

        停顿期间每 tick 调用 *update_callback*，结束或被清除时调用一次 *end_callback*。
        *interruptible* 为 False 时，新的优先动作不会清除它，只有外部中止会。
        """
        self.stalling_timeout_buffered_state = (Timeout(), max_timeout)
        self.stalling_timeout_buffered_interruptible = interruptible
        self.stalling_timeout_buffered_update_callback = update_callback
        self.stalling_timeout_buffered_end_callback = end_callback

    def has_stalling_timeout_buffered(self) -> bool:
        return self.stalling_timeout_buffered_state is not None

    def clear_stalling_buffer_states(self, resources: Resources) -> None:
        force = self._force_clear_stalling_buffer
        self._force_clear_stalling_buffer = False
        if self.stalling_timeout_buffered_state is None:
            return
        if not force and not self.stalling_timeout_buffered_interruptible:
            return
        callback = self.stalling_timeout_buffered_end_callback
        self.stalling_timeout_buffered_state = None
        self.stalling_timeout_buffered_update_callback = None
        self.stalling_timeout_buffered_end_callback = None
        if callback is not None:
            callback(resources)

    # ═══════════════════════════════════════════════════════════════════════════
    # 计数器
    # ═══════════════════════════════════════════════════════════════════════════

    def clear_unstucking(self, include_transitioned_count: bool) -> None:
        self.unstuck_count = 0
        if include_transitioned_count:
            self.unstuck_transitioned_count = 0

    def track_unstucking(self) -> bool:
        """位置未变化的移动计数加一，返回是否需要进入脱困。"""
        self.unstuck_count += 1
        if self.unstuck_count >= UNSTUCK_COUNT_THRESHOLD:
            self.unstuck_count = 0
            return True
        return False

    def track_unstucking_transitioned(self) -> bool:
        """进入脱困的计数加一，返回是否启用随机方向。"""
        self.unstuck_transitioned_count += 1
        if self.unstuck_transitioned_count >= UNSTUCK_GAMBA_MODE_COUNT:
            self.unstuck_transitioned_count = 0
            return True
        return False

    def is_booster_fail_count_limit_reached(self, kind: BoosterKind) -> bool:
        return self._booster_failed_count(kind) >= MAX_BOOSTER_FAILED_COUNT

    def track_booster_fail_count(self, kind: BoosterKind) -> None:
        count = min(self._booster_failed_count(kind) + 1, MAX_BOOSTER_FAILED_COUNT)
        self._set_booster_failed_count(kind, count)

    def clear_booster_fail_count(self, kind: BoosterKind) -> None:
        self._set_booster_failed_count(kind, 0)

    def _booster_failed_count(self, kind: BoosterKind) -> int:
        match kind:
            case BoosterKind.generic:
                return self.generic_booster_failed_count
            case BoosterKind.hexa:
                return self.hexa_booster_failed_count

    def _set_booster_failed_count(self, kind: BoosterKind, count: int) -> None:
        match kind:
            case BoosterKind.generic:
                self.generic_booster_failed_count = count
            case BoosterKind.hexa:
                self.hexa_booster_failed_count = count

    def is_familiars_swap_fail_count_limit_reached(self) -> bool:
        return self.familiars_swap_failed_count >= MAX_FAMILIARS_SWAP_FAIL_COUNT

    def track_familiars_swap_fail_count(self) -> None:
        if self.familiars_swap_failed_count < MAX_FAMILIARS_SWAP_FAIL_COUNT:
            self.familiars_swap_failed_count += 1

    def clear_familiars_swap_fail_count(self) -> None:
        self.familiars_swap_failed_count = 0

    def start_validating_rune(self) -> None:
        self.rune_validate_timeout = Timeout()

    def is_validating_rune(self) -> bool:
        return self.rune_validate_timeout is not None

    def track_rune_fail_count(self) -> None:
        self.rune_failed_count += 1
        logger.info("符文解除失败 次数={}", self.rune_failed_count)
        if self.rune_failed_count >= MAX_RUNE_FAILED_COUNT:
            logger.warning("符文连续解除失败 {} 次，进入商城重置", self.rune_failed_count)
            self.rune_failed_count = 0
            self.rune_cash_shop = True

    def clear_last_movement(self) -> None:
        if self.has_priority_action():
            self.last_movement_priority_map.clear()
        else:
            self.last_movement_normal_map.clear()

    def track_last_movement_repeated(self) -> bool:
        """累计上一次移动方式的使用次数，返回是否超过上限。"""
        if self.last_movement is None:
            return False

        auto_mob = self.has_auto_mob_action_only()
        if self.last_movement.is_horizontal:
            count_max = (
                AUTO_MOB_HORIZONTAL_MOVEMENT_REPEAT_COUNT
                if auto_mob
                else HORIZONTAL_MOVEMENT_REPEAT_COUNT
            )
        else:
            count_max = (
                AUTO_MOB_VERTICAL_MOVEMENT_REPEAT_COUNT
                if auto_mob
                else VERTICAL_MOVEMENT_REPEAT_COUNT
            )

        counts = (
            self.last_movement_priority_map
            if self.has_priority_action()
            else self.last_movement_normal_map
        )
        count = min(counts.get(self.last_movement, 0) + 1, count_max)
        counts[self.last_movement] = count
        logger.debug("移动重复计数 {}", counts)
        return count >= count_max

    # ═══════════════════════════════════════════════════════════════════════════
    # 移动阈值
    # ═══════════════════════════════════════════════════════════════════════════

    def falling_threshold(self) -> int:
        """下跳的最小 y 距离，自动打怪时放宽。"""
        return JUMP_THRESHOLD if self.has_auto_mob_action_only() else FALLING_THRESHOLD

    def double_jump_threshold(self) -> int:
        """二段跳的最小 x 距离。

        自动打怪时放宽；来回刷怪时没有阈值；有瞬移键时减半。
        """
        if self.has_auto_mob_action_only():
            return DOUBLE_JUMP_AUTO_MOB_THRESHOLD
        if self.has_ping_pong_action_only():
            return 0
        if self.config.teleport_key is not None:
            return DOUBLE_JUMP_THRESHOLD // 2
        return DOUBLE_JUMP_THRESHOLD

    def should_disable_grappling(self) -> bool:
        return self.config.grappling_key is None

    # ═══════════════════════════════════════════════════════════════════════════
    # 自动打怪
    # ═══════════════════════════════════════════════════════════════════════════

    def auto_mob_clear_pathing_task(self) -> None:
        self.auto_mob_pathing_task = Task()

    def auto_mob_pathing_should_use_key(self, resources: Resources, minimap: Minimap) -> bool:
        """寻路途中，前方近处是否有怪物可以顺路攻击。"""
        use_key_y_range = AUTO_MOB_USE_KEY_Y_THRESHOLD + 4

        if not self.config.auto_mob_use_key_when_pathing:
            return False
        mob = self.normal_action
        if not isinstance(mob, AutoMob) or not mob.is_pathing:
            return False
        if not isinstance(minimap, MinimapIdle):
            return False

        bbox = minimap.bbox
        pos = self.last_known_pos
        if pos is None:
            return False
        update = update_detection_task(
            resources,
            self.config.auto_mob_use_key_when_pathing_update_millis,
            self.auto_mob_pathing_task,
            lambda detector: detector.detect_mobs(bbox, Rect(0, 0, bbox.width, bbox.height), pos),
        )
        if not update.is_ok:
            return False

        pathing_point = Point(mob.position.x, mob.position.y)
        use_key = False
        for point in update.value:
            point = self._auto_mob_pick_reachable_y_position(
                resources, minimap, Point(point.x, bbox.height - point.y), False
            )
            if point is None:
                continue
            within_x = abs(point.x - pos.x) <= AUTO_MOB_USE_KEY_X_THRESHOLD
            within_y = point.y >= pos.y and point.y - pos.y <= use_key_y_range
            same_direction = (point - pos).dot(pathing_point - pos) > 0
            if within_x and within_y and same_direction:
                use_key = True
                break
        logger.debug("自动打怪寻路途中使用按键 {}", use_key)
        return use_key

    def auto_mob_pathing_point(self, resources: Resources, minimap: Minimap, bound: Rect) -> Point:
        """按顺时针顺序选取下一个象限中的寻路点。

        *bound* 为图像坐标，返回玩家坐标。
        """
        idle = _require_idle(minimap)
        bbox = idle.bbox

        current = self.auto_mob_last_quadrant
        if current is None:
            pos = self.last_known_pos
            if pos is None:
                raise StateProtocolError("positional context", None)
            x_mid = bound.x + bound.width // 2
            y_mid = bound.y + bound.height // 2
            image_y = bbox.height - pos.y
            match (pos.x < x_mid, image_y < y_mid):
                case (True, True):
                    current = Quadrant.top_left
                case (False, True):
                    current = Quadrant.top_right
                case (False, False):
                    current = Quadrant.bottom_right
                case _:
                    current = Quadrant.bottom_left

        next_quadrant = current.next_clockwise()
        next_bound = quadrant_bound(next_quadrant, bound)
        next_next_bound = quadrant_bound(next_quadrant.next_clockwise(), bound)
        self.auto_mob_last_quadrant = next_quadrant
        self.auto_mob_last_quadrant_bound = next_bound.flip_y(bbox.height)
        self.auto_mob_next_quadrant_bound = next_next_bound.flip_y(bbox.height)

        bound_xs = XRange(next_bound.x, next_bound.x + next_bound.width)
        ys_start, ys_end = next_bound.y, next_bound.y + next_bound.height

        candidates = [
            platform
            for platform in idle.platforms
            if platform.xs.overlaps(bound_xs) and ys_start <= bbox.height - platform.y < ys_end
        ]
        platform = resources.rng.random_choose(candidates)
        if platform is not None:
            start = max(bound_xs.start, platform.xs.start)
            end = min(bound_xs.end, platform.xs.end)
            return Point(resources.rng.random_range(start, end), platform.y)

        x = resources.rng.random_range(bound_xs.start, bound_xs.end)
        solidified = [
            y
            for y, count in self.auto_mob_reachable_y_map.items()
            if count >= AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT and ys_start <= bbox.height - y < ys_end
        ]
        y = resources.rng.random_choose(solidified)
        if y is None:
            y = bbox.height - resources.rng.random_range(ys_start, ys_end)
        return Point(x, y)

    def auto_mob_reachable_y_require_update(self, y: int) -> bool:
        """*y* 是否尚未达到可达计数上限。"""
        return self.auto_mob_reachable_y_map.get(y, 0) < AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT

    def auto_mob_pick_reachable_y_position(
        self, resources: Resources, minimap: Minimap, mob_pos: Point
    ) -> Point | None:
        """把怪物位置（玩家坐标）吸附到可达 y 上。

        Returns
        -------
        Point | None
            新的目标位置；None 表示该位置应当被丢弃。
        """
        return self._auto_mob_pick_reachable_y_position(resources, minimap, mob_pos, True)

    def _auto_mob_pick_reachable_y_position(
        self, resources: Resources, minimap: Minimap, mob_pos: Point, bound_to_quads: bool
    ) -> Point | None:
        if not self.auto_mob_reachable_y_map:
            self.auto_mob_populate_reachable_y(minimap)

        ys = [
            y
            for y in self.auto_mob_reachable_y_map
            if abs(mob_pos.y - y) <= AUTO_MOB_REACHABLE_Y_THRESHOLD
        ]
        y = resources.rng.random_choose(ys)

        # 只有已固化的 y 才会出现在忽略表中，这里无需再检查 y 的计数
        if y is not None and any(
            count >= AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT and mob_pos.x in xs
            for xs, count in self.auto_mob_ignore_xs_map.get(y, ())
        ):
            logger.debug("自动打怪忽略位置 {},{} / {}", mob_pos.x, y, mob_pos.y)
            return None

        point = Point(mob_pos.x, mob_pos.y if y is None else y)
        last_bound = self.auto_mob_last_quadrant_bound
        next_bound = self.auto_mob_next_quadrant_bound
        if (
            bound_to_quads
            and last_bound is not None
            and next_bound is not None
            and not last_bound.contains(point)
            and not next_bound.contains(point)
        ):
            return None
        return point

    def auto_mob_populate_reachable_y(self, minimap: Minimap) -> None:
        idle = _require_idle(minimap)
        for platform in idle.platforms:
            self.auto_mob_reachable_y_map[platform.y] = AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT
        if self.last_known_pos is not None:
            self.auto_mob_reachable_y_map.setdefault(
                self.last_known_pos.y, AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT - 1
            )
        logger.debug("自动打怪初始可达 y {}", self.auto_mob_reachable_y_map)

    def auto_mob_track_reachable_y(self, y: int) -> None:
        """打怪结束时更新可达 y 计数。

        使用 :attr:`last_known_pos` 而不是 *y* 作为落脚点，两者可能不同。
        """
        pos = self.last_known_pos
        if pos is None:
            return

        ys = self.auto_mob_reachable_y_map
        if y != pos.y and y in ys:
            ys[y] = max(ys[y] - 1, 0)
            if ys[y] == 0:
                del ys[y]

        ys[pos.y] = min(ys.get(pos.y, 0) + 1, AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT)
        logger.debug("自动打怪可达 y {} / {}", pos.y, ys[pos.y])

    def auto_mob_track_ignore_xs(self, minimap: Minimap, is_aborted: bool) -> None:
        """根据当前打怪目标的结果更新忽略区间。"""
        mob = self.normal_action
        if not self.has_auto_mob_action_only() or not isinstance(mob, AutoMob):
            return
        if not self.auto_mob_ignore_xs_map:
            self.auto_mob_populate_ignore_xs(minimap)

        x, y = mob.position.x, mob.position.y
        if self.auto_mob_reachable_y_require_update(y):
            return

        ranges = self.auto_mob_ignore_xs_map.setdefault(y, [ignore_xs_range_value(x)])
        solid = AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT

        if is_aborted and len(ranges) >= 2 and any(
            second.start < first.end and (first_count >= solid or second_count >= solid)
            for (first, first_count), (second, second_count) in zip(ranges[::2], ranges[1::2])
        ):
            merged: list[tuple[XRange, int]] = []
            for xs, count in ranges:
                if merged:
                    last_xs, last_count = merged[-1]
                    # 区间已按起点排序且非空，只需比较起点与上一个终点
                    if xs.start < last_xs.end and (last_count >= solid or count >= solid):
                        merged[-1] = (XRange(last_xs.start, max(last_xs.end, xs.end)), solid)
                        continue
                merged.append((xs, count))
            ranges[:] = merged
            logger.debug("自动打怪合并忽略区间 {} = {}", y, ranges)

        for i, (xs, count) in enumerate(ranges):
            if x not in xs:
                continue
            if count < solid:
                count = count + 1 if is_aborted else max(count - 1, 0)
                if not is_aborted and count == 0:
                    del ranges[i]
                else:
                    ranges[i] = (xs, count)
                logger.debug("自动打怪更新忽略区间 {}", self.auto_mob_ignore_xs_map)
            return

        if is_aborted:
            xs, count = ignore_xs_range_value(x)
            ranges.append((xs, count + 1))
            ranges.sort(key=lambda item: item[0].start)
            logger.debug("自动打怪新增忽略区间 {}", self.auto_mob_ignore_xs_map)

    def auto_mob_populate_ignore_xs(self, minimap: Minimap) -> None:
        """把同一 y 上平台之间的空隙写入忽略表。"""
        idle = _require_idle(minimap)
        if not idle.platforms:
            return

        by_y: dict[int, list[XRange]] = {}
        for platform in idle.platforms:
            by_y.setdefault(platform.y, []).append(platform.xs)

        solid = AUTO_MOB_IGNORE_XS_SOLIDIFY_COUNT
        width = idle.bbox.width
        for y, xs_list in by_y.items():
            xs_list.sort(key=lambda xs: xs.start)
            ignores = self.auto_mob_ignore_xs_map.setdefault(y, [])

            first_gap = XRange(0, xs_list[0].start)
            if not first_gap.is_empty():
                ignores.append((first_gap, solid))
            last_gap = XRange(xs_list[-1].end, width)
            if not last_gap.is_empty():
                ignores.append((last_gap, solid))

            last_end = xs_list[0].end
            for xs in xs_list[1:]:
                if xs.start > last_end:
                    ignores.append((XRange(last_end, xs.start), solid))
                last_end = max(last_end, xs.end)

    # ═══════════════════════════════════════════════════════════════════════════
    # 每 tick 更新
    # ═══════════════════════════════════════════════════════════════════════════

    def update_state(
        self, resources: Resources, player_state: Player, minimap: Minimap, buffs: BuffEntities
    ) -> bool:
        """更新位置、血量、符文校验、死亡与后台停顿。

        Returns
        -------
        bool
            未识别到玩家时返回 False，此时其余部分不更新。
        """
        if not self._update_position_state(resources, minimap):
            return False
        self._update_health_state(resources, player_state)
        self._update_rune_validating_state(resources, buffs)
        self._update_is_dead_state(resources)
        self._update_stalling_buffer_state(resources)
        return True

    def _update_position_state(self, resources: Resources, minimap: Minimap) -> bool:
        if not isinstance(minimap, MinimapIdle) or resources.detector is None:
            return False
        bbox = minimap.bbox
        try:
            player_bbox = resources.detector.detect_player(bbox)
        except NotFoundError:
            return False

        # 图像坐标翻转为左下角原点的玩家坐标
        pos = Point((player_bbox.tl.x + player_bbox.br.x) // 2, bbox.height - player_bbox.br.y)
        last_known_pos = self.last_known_pos or pos
        if last_known_pos != pos:
            self.unstuck_count = 0
            self.unstuck_transitioned_count = 0
            self.is_stationary_timeout = Timeout()
        self._update_velocity(pos, resources.tick)

        match next_timeout_lifecycle(self.is_stationary_timeout, STATIONARY_TIMEOUT):
            case Started(timeout) | Updated(timeout):
                self.is_stationary = False
                self.is_stationary_timeout = timeout
            case Ended():
                self.is_stationary = True
        self.last_known_pos = pos
        return True

    def _update_velocity(self, pos: Point, tick: int) -> None:
        """以加权平均近似速度，越新的样本权重越大，再与上一次结果平滑。"""
        if len(self.velocity_samples) == VELOCITY_SAMPLES:
            self.velocity_samples.pop(0)
        self.velocity_samples.append((pos, tick))
        if len(self.velocity_samples) < 2:
            return

        sum_dx = sum_dy = total_weight = 0.0
        for i, ((a, a_tick), (b, b_tick)) in enumerate(
            zip(self.velocity_samples, self.velocity_samples[1:])
        ):
            dt = b_tick - a_tick
            if dt == 0:
                continue
            weight = float(i + 1)
            sum_dx += weight * (b.x - a.x) / dt
            sum_dy += weight * (b.y - a.y) / dt
            total_weight += weight

        if total_weight > 0:
            avg_dx = abs(sum_dx / total_weight)
            avg_dy = abs(sum_dy / total_weight)
            self.velocity = (
                0.5 * avg_dx + 0.5 * self.velocity[0],
                0.5 * avg_dy + 0.5 * self.velocity[1],
            )

    def _update_health_state(self, resources: Resources, player_state: Player) -> None:
        if isinstance(player_state, SolvingRune):
            return
        percent = self.config.use_potion_below_percent
        if percent is None:
            self.health = None
            self.health_task = Task()
            self.health_bar = None
            self.health_bar_task = Task()
            return

        health_bar = self.health_bar
        if health_bar is None:
            update = update_detection_task(
                resources,
                1000,
                self.health_bar_task,
                lambda detector: detector.detect_player_health_bar(),
            )
            if update.is_ok:
                self.health_bar = update.value
            return

        def detect_health(detector) -> tuple[int, int]:
            current_bar, max_bar = detector.detect_player_current_max_health_bars(health_bar)
            return detector.detect_player_health(current_bar, max_bar)

        update = update_detection_task(
            resources, self.config.update_health_millis, self.health_task, detect_health
        )
        if not update.is_ok:
            return

        current, maximum = update.value
        self.health = (current, maximum)
        if maximum > 0 and current / maximum <= percent and self.config.potion_key is not None:
            logger.info("血量 {}/{} 低于阈值，使用药水", current, maximum)
            resources.input.send_key(self.config.potion_key)

    def _update_rune_validating_state(self, resources: Resources, buffs: BuffEntities) -> None:
        timeout = self.rune_validate_timeout
        if timeout is None:
            return
        match next_timeout_lifecycle(timeout, RUNE_VALIDATE_TIMEOUT):
            case Started(timeout) | Updated(timeout):
                self.rune_validate_timeout = timeout
            case Ended():
                self.rune_validate_timeout = None
                if buffs.state(BuffKind.rune) is Buff.no:
                    self.track_rune_fail_count()
                    if resources.detector is not None:
                        save_image(resources.detector.mat, tag="rune_failed")
                else:
                    logger.info("符文解除成功")
                    self.rune_failed_count = 0

    def _update_is_dead_state(self, resources: Resources) -> None:
        update = update_detection_task(
            resources, 3000, self.is_dead_task, lambda detector: detector.detect_player_is_dead()
        )
        if update.is_ok:
            is_dead = bool(update.value)
            if is_dead and not self.is_dead:
                logger.warning("角色已死亡")
                resources.notification.schedule_notification(NotificationKind.player_is_dead)
            self.is_dead = is_dead

        if not self.is_dead:
            return
        update = update_detection_task(
            resources,
            1000,
            self.is_dead_button_task,
            lambda detector: detector.detect_popup_ok_new_button(),
        )
        if update.is_ok:
            center = update.value.center
            resources.input.send_mouse(center.x, center.y, MouseKind.click)
        elif update.is_err:
            resources.input.send_mouse(300, 100, MouseKind.move)

    def _update_stalling_buffer_state(self, resources: Resources) -> None:
        if self.stalling_timeout_buffered_state is None:
            return
        timeout, max_timeout = self.stalling_timeout_buffered_state
        match next_timeout_lifecycle(timeout, max_timeout):
            case Started(timeout):
                self.stalling_timeout_buffered_state = (timeout, max_timeout)
            case Updated(timeout):
                self.stalling_timeout_buffered_state = (timeout, max_timeout)
                if self.stalling_timeout_buffered_update_callback is not None:
                    self.stalling_timeout_buffered_update_callback(resources)
            case Ended():
                callback = self.stalling_timeout_buffered_end_callback
                self.stalling_timeout_buffered_state = None
                self.stalling_timeout_buffered_update_callback = None
                self.stalling_timeout_buffered_end_callback = None
                if callback is not None:
                    callback(resources)
