"""玩家状态定义。

玩家在任一时刻处于且仅处于一个状态，每个状态只携带自己恢复执行所需的数据
（通常是若干 :class:`~automaple.timeout.Timeout` 与计数器）。状态对象不可变，
每 tick 由当前状态的更新函数整体替换。

状态总览::

    Detecting ─→ Idle ─┬─→ Moving ─→ Adjusting / DoubleJumping / Grappling /
                       │            Jumping / UpJumping / Falling ─→ Moving ...
                       ├─→ UseKey ─→ Stalling ─→ UseKey ...
                       ├─→ SolvingRune / FamiliarsSwapping / Panicking / Chatting /
                       │   UsingBooster / ExchangingBooster
                       └─→ Unstucking
    任意状态 ─→ CashShopThenExit（符文连续失败）

状态的推进逻辑分布在同目录的各模块中，由 :mod:`automaple.player.system` 分派。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from automaple.geometry import Point, Rect
from automaple.models.actions import LinkKeyBinding
from automaple.resources import Rng
from automaple.timeout import Timeout
from automaple.types import (
    ActionKeyDirection,
    ActionKeyWith,
    BoosterKind,
    FamiliarRarity,
    KeyKind,
    PanicTo,
    StrEnum,
    SwappableFamiliars,
    WaitAfterBuffered,
)

if TYPE_CHECKING:
    from automaple.player.actions import AutoMob, Key, PingPong
    from automaple.player.context import PlayerContext

MOVE_TIMEOUT = 5
"""移动状态在位置不再变化后等待的 tick 数"""

JUMP_THRESHOLD = 7
"""需要跳跃的最小 y 距离，同时是自动打怪时的下跳阈值"""

FALLING_THRESHOLD = 10
"""需要下跳的最小 y 距离"""

DOUBLE_JUMP_THRESHOLD = 25
"""需要二段跳的最小 x 距离"""

DOUBLE_JUMP_AUTO_MOB_THRESHOLD = 17
"""自动打怪时需要二段跳的最小 x 距离"""

GRAPPLING_THRESHOLD = 24
"""使用绳索的最小 y 距离"""

GRAPPLING_MAX_THRESHOLD = 41
"""绳索能够到达的最大 y 距离"""

OVERRIDABLE_DISTANCE = DOUBLE_JUMP_THRESHOLD // 2
"""水平移动中距离目标仍超过该值时允许被新动作打断"""


# ═══════════════════════════════════════════════════════════════════════════════
# 移动数据
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Movement:
    """各移动状态共享的移动数据。"""

    pos: Point
    """上一次推进时的玩家位置"""
    dest: Point
    """目标位置"""
    exact: bool = False
    """是否需要精确对齐 x"""
    completed: bool = False
    """移动动作本身是否已经完成（例如按键已发送），等待位置稳定"""
    timeout: Timeout = Timeout()

    def x_distance_direction_from(self, cur_pos: Point) -> tuple[int, int]:
        """返回 ``(|dx|, dx)``，``dx = dest.x - cur_pos.x``。"""
        direction = self.dest.x - cur_pos.x
        return abs(direction), direction

    def y_distance_direction_from(self, cur_pos: Point) -> tuple[int, int]:
        """返回 ``(|dy|, dy)``，``dy = dest.y - cur_pos.y``。"""
        direction = self.dest.y - cur_pos.y
        return abs(direction), direction


# ═══════════════════════════════════════════════════════════════════════════════
# 基础状态
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Detecting:
    """等待小地图上识别到玩家。"""


@dataclass(frozen=True, slots=True)
class Idle:
    """空闲，有动作时作为进入其他状态的入口。"""


@dataclass(frozen=True, slots=True)
class Stalling:
    """原地等待 ``max_timeout`` 个 tick。"""

    timeout: Timeout
    max_timeout: int


# ── 移动 ──


@dataclass(frozen=True, slots=True)
class Moving:
    """移动协调状态，本身不发送按键，只决定下一步使用哪种移动方式。"""

    dest: Point
    exact: bool = False


@dataclass(frozen=True, slots=True)
class Adjusting:
    """小距离水平走动。"""

    movement: Movement
    adjust_timeout: Timeout = Timeout()


@dataclass(frozen=True, slots=True)
class DoubleJumping:
    """二段跳（或瞬移）。

    ``forced`` 为 True 时即使已经接近目标也会跳一次，用于 ``with: DoubleJump``
    的按键动作。
    """

    movement: Movement
    forced: bool = False
    require_near_stationary: bool = False
    cooldown_timeout: Timeout = Timeout()


@dataclass(frozen=True, slots=True)
class Grappling:
    """使用绳索技能向上移动。"""

    movement: Movement


@dataclass(frozen=True, slots=True)
class Jumping:
    movement: Movement


@dataclass(frozen=True, slots=True)
class UpJumping:
    movement: Movement


@dataclass(frozen=True, slots=True)
class Falling:
    """下跳。``anchor`` 为起跳位置，y 低于它即视为已经落下。"""

    movement: Movement
    anchor: Point
    timeout_on_complete: bool = False


# ── 脱困 ──


@dataclass(frozen=True, slots=True)
class Unstucking:
    """脱困。

    - 移动脱困：朝远离小地图边缘的方向跳跃；``gamba_mode`` 时方向随机。
    - ESC 脱困：只按一次 ESC 关闭遮挡界面。
    """

    timeout: Timeout = Timeout()
    gamba_mode: bool = False
    esc_only: bool = False

    @classmethod
    def new_movement(cls, timeout: Timeout, gamba_mode: bool) -> Unstucking:
        return cls(timeout=timeout, gamba_mode=gamba_mode)

    @classmethod
    def new_esc(cls) -> Unstucking:
        return cls(esc_only=True)


# ═══════════════════════════════════════════════════════════════════════════════
# 按键
# ═══════════════════════════════════════════════════════════════════════════════


class UseKeyStage(StrEnum):
    """使用按键的阶段。"""

    precondition = "Precondition"
    """检查朝向与姿态，按需等待 wait_before"""
    changing_direction = "ChangingDirection"
    ensuring_use_with = "EnsuringUseWith"
    using = "Using"
    """发送主键与连携键，按需等待 wait_after"""
    postcondition = "Postcondition"
    """累计次数，未满 count 时回到 precondition"""


def random_wait_ticks(rng: Rng, base: int, random_range: int) -> int:
    """在 ``[base - range, base + range]`` 内取随机等待 tick 数。"""
    return rng.random_range(max(base - random_range, 0), base + random_range + 1)


@dataclass(frozen=True, slots=True)
class UseKey:
    """使用按键。

    只能由动作进入：有位置的按键动作在移动结束后进入，无位置的由 Idle 直接进入。
    """

    key: KeyKind
    link_key: LinkKeyBinding = field(default_factory=LinkKeyBinding)
    count: int = 1
    current_count: int = 0
    direction: ActionKeyDirection = ActionKeyDirection.any
    with_: ActionKeyWith = ActionKeyWith.any
    key_hold_ticks: int = 0
    key_hold_buffered_to_wait_after: bool = False
    wait_before_use_ticks: int = 0
    wait_after_use_ticks: int = 0
    wait_after_buffered: WaitAfterBuffered = WaitAfterBuffered.none
    auto_mob_should_terminate: bool | None = None
    """仅自动打怪：None 表示不是自动打怪，True 表示使用完即完成动作"""
    stage: UseKeyStage = UseKeyStage.precondition
    timeout: Timeout = Timeout()
    link_completed: bool = False
    """连携键时间窗口是否已经走完"""
    key_holding: bool = False
    """主键已按下，正在等待按住时长结束"""

    @classmethod
    def from_key(cls, key: Key, rng: Rng) -> UseKey:
        return cls(
            key=key.key,
            link_key=key.link_key,
            count=key.count,
            direction=key.direction,
            with_=key.with_,
            key_hold_ticks=key.key_hold_ticks,
            key_hold_buffered_to_wait_after=key.key_hold_buffered_to_wait_after,
            wait_before_use_ticks=random_wait_ticks(
                rng, key.wait_before_use_ticks, key.wait_before_use_ticks_random_range
            ),
            wait_after_use_ticks=random_wait_ticks(
                rng, key.wait_after_use_ticks, key.wait_after_use_ticks_random_range
            ),
            wait_after_buffered=key.wait_after_buffered,
        )

    @classmethod
    def from_auto_mob(
        cls, mob: AutoMob, direction: ActionKeyDirection, should_terminate: bool, rng: Rng
    ) -> UseKey:
        key = mob.key
        return cls(
            key=key.key,
            link_key=key.link_key,
            count=key.count,
            direction=direction,
            with_=key.with_,
            key_hold_ticks=key.key_hold_ticks,
            wait_before_use_ticks=random_wait_ticks(
                rng, key.wait_before_ticks, key.wait_before_ticks_random_range
            ),
            wait_after_use_ticks=random_wait_ticks(
                rng, key.wait_after_ticks, key.wait_after_ticks_random_range
            ),
            auto_mob_should_terminate=should_terminate,
        )

    @classmethod
    def from_ping_pong(cls, ping_pong: PingPong, rng: Rng) -> UseKey:
        from automaple.player.actions import PingPongDirection

        key = ping_pong.key
        direction = (
            ActionKeyDirection.left
            if ping_pong.direction is PingPongDirection.left
            else ActionKeyDirection.right
        )
        return cls(
            key=key.key,
            link_key=key.link_key,
            count=key.count,
            direction=direction,
            with_=key.with_,
            key_hold_ticks=key.key_hold_ticks,
            wait_before_use_ticks=random_wait_ticks(
                rng, key.wait_before_ticks, key.wait_before_ticks_random_range
            ),
            wait_after_use_ticks=random_wait_ticks(
                rng, key.wait_after_ticks, key.wait_after_ticks_random_range
            ),
        )

    def staged(self, stage: UseKeyStage, timeout: Timeout | None = None) -> UseKey:
        """切换阶段并重置阶段内的计时。"""
        return replace(
            self, stage=stage, timeout=timeout or Timeout(), link_completed=False, key_holding=False
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 界面操作
# ═══════════════════════════════════════════════════════════════════════════════


class RunePhase(StrEnum):
    precondition = "Precondition"
    solving = "Solving"
    press_keys = "PressKeys"
    completed = "Completed"


@dataclass(frozen=True, slots=True)
class SolvingRune:
    """解除符文。"""

    phase: RunePhase = RunePhase.precondition
    timeout: Timeout = Timeout()
    keys: tuple[KeyKind, ...] = ()
    key_index: int = 0


class CashShopPhase(StrEnum):
    entering = "Entering"
    entered = "Entered"
    exiting = "Exiting"
    exited = "Exited"


@dataclass(frozen=True, slots=True)
class CashShopThenExit:
    """进入商城停留一段时间后退出，用于重置符文冷却。"""

    phase: CashShopPhase = CashShopPhase.entering
    timeout: Timeout = Timeout()


class PanicPhase(StrEnum):
    changing_channel = "ChangingChannel"
    going_to_town = "GoingToTown"
    completing = "Completing"


@dataclass(frozen=True, slots=True)
class Panicking:
    """换线或回城躲避其他玩家。"""

    to: PanicTo
    phase: PanicPhase = PanicPhase.changing_channel
    timeout: Timeout = Timeout()
    retry_count: int = 0

    @classmethod
    def new(cls, to: PanicTo) -> Panicking:
        phase = PanicPhase.going_to_town if to is PanicTo.town else PanicPhase.changing_channel
        return cls(to=to, phase=phase)


class ChatPhase(StrEnum):
    opening = "Opening"
    typing = "Typing"
    completing = "Completing"


@dataclass(frozen=True, slots=True)
class Chatting:
    """打开聊天框输入并发送内容。"""

    keys: tuple[KeyKind, ...]
    phase: ChatPhase = ChatPhase.opening
    timeout: Timeout = Timeout()
    key_index: int = 0
    retry_count: int = 0


class BoosterPhase(StrEnum):
    using = "Using"
    confirming = "Confirming"
    completing = "Completing"


@dataclass(frozen=True, slots=True)
class UsingBooster:
    kind: BoosterKind
    phase: BoosterPhase = BoosterPhase.using
    timeout: Timeout = Timeout()
    failed: bool = False
    completed: bool = False


class ExchangePhase(StrEnum):
    open_hexa_menu = "OpenHexaMenu"
    open_exchanging_menu = "OpenExchangingMenu"
    open_booster_menu = "OpenBoosterMenu"
    exchanging = "Exchanging"
    confirming = "Confirming"
    completing = "Completing"


@dataclass(frozen=True, slots=True)
class ExchangingBooster:
    """在 HEXA 矩阵中把艾尔达碎片兑换为 HEXA 加速器。

    ``amount_keys`` 为 None 时点击 MAX 兑换全部。
    """

    amount_keys: tuple[KeyKind, ...] | None
    phase: ExchangePhase = ExchangePhase.open_hexa_menu
    timeout: Timeout = Timeout()
    button: Rect | None = None
    key_index: int = 0
    completed: bool = False


class FamiliarsPhase(StrEnum):
    open_menu = "OpenMenu"
    find_slots = "FindSlots"
    free_slots = "FreeSlots"
    free_slot = "FreeSlot"
    find_cards = "FindCards"
    swapping = "Swapping"
    saving = "Saving"
    completing = "Completing"


@dataclass(frozen=True, slots=True)
class FamiliarsSwapping:
    """替换已满级的宠物。"""

    swappable_slots: SwappableFamiliars
    swappable_rarities: tuple[FamiliarRarity, ...]
    phase: FamiliarsPhase = FamiliarsPhase.open_menu
    timeout: Timeout = Timeout()
    retry_count: int = 0
    slots: tuple[tuple[Rect, bool], ...] = ()
    """``(栏位区域, 是否空闲)``"""
    cards: tuple[Rect, ...] = ()
    index: int = 0
    was_freeing: bool = False
    """上一次检查该栏位时已经尝试过释放"""
    failed: bool = False
    completed: bool = False


Player = (
    Detecting
    | Idle
    | UseKey
    | Moving
    | Adjusting
    | DoubleJumping
    | Grappling
    | Jumping
    | UpJumping
    | Falling
    | Unstucking
    | Stalling
    | SolvingRune
    | CashShopThenExit
    | FamiliarsSwapping
    | Panicking
    | Chatting
    | UsingBooster
    | ExchangingBooster
)


def can_override_current_state(state: Player, cur_pos: Point | None) -> bool:
    """当前状态能否被新的动作打断。

    界面操作与按键使用过程中不可打断；水平移动在距离目标仍较远时可以打断；
    垂直移动只有在移动动作本身完成后才可打断。
    """
    match state:
        case Detecting() | Idle():
            return True
        case Moving(dest=dest):
            if cur_pos is None:
                return True
            return abs(dest.x - cur_pos.x) >= OVERRIDABLE_DISTANCE
        case DoubleJumping(forced=True):
            return False
        case DoubleJumping(movement=movement) | Adjusting(movement=movement):
            distance, _ = movement.x_distance_direction_from(cur_pos or movement.pos)
            return distance >= OVERRIDABLE_DISTANCE
        case (
            Grappling(movement=movement)
            | Jumping(movement=movement)
            | UpJumping(movement=movement)
            | Falling(movement=movement)
        ):
            return movement.completed
        case _:
            return False


@dataclass
class PlayerEntity:
    """玩家实体：当前状态与跨状态的上下文。"""

    state: Player
    context: PlayerContext

    def can_override_current_state(self, cur_pos: Point | None = None) -> bool:
        return can_override_current_state(self.state, cur_pos)
