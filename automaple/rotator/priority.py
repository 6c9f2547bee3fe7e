"""优先动作与入队条件。

优先动作可以打断正在执行的普通动作。每个优先动作带一个入队条件，
轮换器每 tick 对所有未被忽略的优先动作求值一次::

    QUEUE   → 放入待执行队列（插队动作放在队首），刷新 last_queued_time
    SKIP    → 什么也不做
    IGNORE  → 只刷新 last_queued_time，相当于推迟下一次检查

条件是可调用对象 ``(resources, world, queue_info) -> ConditionResult``。
不需要额外状态的条件是普通函数；需要后台识别的条件是持有 :class:`Task`
槽位的小型 dataclass。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Union

from automaple.entities.buff import Buff
from automaple.entities.minimap import MinimapDetecting, MinimapIdle
from automaple.entities.skill import SkillIdle, SkillKind
from automaple.models.actions import ActionCondition
from automaple.player.actions import (
    ExchangeBooster,
    FamiliarsSwap,
    Key,
    Panic,
    PlayerAction,
    SolveRune,
    Unstuck,
    UseBooster,
)
from automaple.resources import millis_to_ticks
from automaple.task import Task, update_detection_task
from automaple.types import (
    ActionConditionKind,
    ActionKeyWith,
    BoosterKind,
    BuffKind,
    FamiliarRarity,
    KeyKind,
    PanicTo,
    QuickSlotsBooster,
    SwappableFamiliars,
)

if TYPE_CHECKING:
    from automaple.resources import Resources, World

BUFF_CHECK_MILLIS = 20_000
PANIC_MILLIS = 15_000
ELITE_BOSS_CHECK_MILLIS = 15_000
BOOSTER_CHECK_MILLIS = 20_000
EXCHANGE_BOOSTER_CHECK_MILLIS = 20_000
UNSTUCK_CHECK_MILLIS = 3_000
SOLVE_RUNE_CHECK_MILLIS = 10_000
FAMILIAR_ESSENCE_CHECK_MILLIS = 20_000
ERDA_SHOWER_CHECK_MILLIS = 20_000

DETECTION_REPEAT_MILLIS = 10_000
"""后台识别条件两次查询之间的间隔"""


class ConditionResult(Enum):
    """入队条件的求值结果。"""

    QUEUE = auto()
    """放入待执行队列。"""

    SKIP = auto()
    """本 tick 不入队。"""

    IGNORE = auto()
    """不入队，但刷新 ``last_queued_time``。"""


@dataclass
class PriorityActionQueueInfo:
    ignoring: bool = False
    """动作正在执行或已在队列中，期间只刷新 ``last_queued_time``"""
    last_queued_time: int | None = None
    """上一次入队（或被忽略）时的 tick"""


Condition = Callable[["Resources", "World", PriorityActionQueueInfo], ConditionResult]


# ── 动作元数据 ──


@dataclass(frozen=True, slots=True)
class UseBoosterMetadata:
    """使用或兑换加速器。同一时刻只允许一个此类动作在队列中或执行中。"""



# ── 连锁动作 ──


@dataclass(frozen=True, slots=True)
class LinkedAction:
    """单向链表形式的连锁动作，按顺序逐个执行，期间不会被其他动作替换。"""

    inner: PlayerAction
    next: LinkedAction | None = None

    def __iter__(self):
        node: LinkedAction | None = self
        while node is not None:
            yield node.inner
            node = node.next


RotatorAction = Union[PlayerAction, LinkedAction]
"""交给玩家的动作：单个动作或连锁动作"""


@dataclass
class PriorityAction:
    """可打断普通动作的优先动作。

    不能打断按键、停顿等"终结"状态，也不能打断连锁动作。
    ``queue_to_front`` 为 True 时放在队首，并可替换玩家当前的非插队优先动作，
    被替换的动作重新放回队首。
    """

    condition: Condition
    inner: RotatorAction
    condition_kind: ActionConditionKind | None = None
    """由用户动作条件生成时记录条件种类"""
    metadata: UseBoosterMetadata | None = None
    queue_to_front: bool = False
    queue_info: PriorityActionQueueInfo = field(default_factory=PriorityActionQueueInfo)


# ═══════════════════════════════════════════════════════════════════════════════
# 工具函数
# ═══════════════════════════════════════════════════════════════════════════════


def at_least_millis_passed_since(
    resources: Resources, last_queued_time: int | None, millis: int
) -> bool:
    """距 *last_queued_time* 是否已过去至少 *millis* 毫秒（按 tick 换算）。从未入队时为 True。"""
    if last_queued_time is None:
        return True
    return resources.tick - last_queued_time >= millis_to_ticks(millis)


def should_queue_fixed_action(
    resources: Resources,
    world: World,
    last_queued_time: int | None,
    condition: ActionCondition,
) -> bool:
    """用户动作的 ``EveryMillis`` / ``ErdaShowerOffCooldown`` 条件。"""
    match condition.kind:
        case ActionConditionKind.every_millis:
            millis = condition.millis
        case ActionConditionKind.erda_shower_off_cooldown:
            millis = ERDA_SHOWER_CHECK_MILLIS
        case kind:
            raise ValueError(f"条件 {kind.value} 不是优先动作条件")

    if not at_least_millis_passed_since(resources, last_queued_time, millis):
        return False
    if condition.kind is ActionConditionKind.erda_shower_off_cooldown:
        return isinstance(world.skills[SkillKind.erda_shower].state, SkillIdle)
    return True


def _detection_result(update) -> ConditionResult:
    if update.is_pending:
        return ConditionResult.SKIP
    if update.is_ok and update.value:
        return ConditionResult.QUEUE
    return ConditionResult.IGNORE


# ═══════════════════════════════════════════════════════════════════════════════
# 条件
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class FixedActionCondition:
    condition: ActionCondition

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if should_queue_fixed_action(resources, world, info.last_queued_time, self.condition):
            return ConditionResult.QUEUE
        return ConditionResult.SKIP


@dataclass
class BuffCondition:
    """增益消失时施放。同组互斥的增益任一生效时跳过。"""

    kind: BuffKind

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if not at_least_millis_passed_since(resources, info.last_queued_time, BUFF_CHECK_MILLIS):
            return ConditionResult.SKIP
        if not isinstance(world.minimap.state, MinimapIdle):
            return ConditionResult.SKIP
        if any(world.buffs.state(kind) is not Buff.no for kind in self.kind.exclusive_with):
            return ConditionResult.SKIP
        if world.buffs.state(self.kind) is Buff.no:
            return ConditionResult.QUEUE
        return ConditionResult.SKIP


def panic_condition(
    resources: Resources, world: World, info: PriorityActionQueueInfo
) -> ConditionResult:
    """发现其他玩家 15 秒后仍未离开则入队。

    第一次发现时只记录时刻，之后持续存在才会入队。
    """
    minimap = world.minimap.state
    if isinstance(minimap, MinimapDetecting):
        return ConditionResult.SKIP
    if not minimap.has_any_other_player() or info.last_queued_time is None:
        return ConditionResult.IGNORE
    if at_least_millis_passed_since(resources, info.last_queued_time, PANIC_MILLIS):
        return ConditionResult.QUEUE
    return ConditionResult.SKIP


def elite_boss_condition(
    resources: Resources, world: World, info: PriorityActionQueueInfo
) -> ConditionResult:
    if not at_least_millis_passed_since(resources, info.last_queued_time, ELITE_BOSS_CHECK_MILLIS):
        return ConditionResult.SKIP
    minimap = world.minimap.state
    if isinstance(minimap, MinimapIdle) and minimap.has_elite_boss():
        return ConditionResult.QUEUE
    return ConditionResult.SKIP


def solve_rune_condition(
    resources: Resources, world: World, info: PriorityActionQueueInfo
) -> ConditionResult:
    if world.player.context.is_validating_rune():
        return ConditionResult.IGNORE
    if not at_least_millis_passed_since(resources, info.last_queued_time, SOLVE_RUNE_CHECK_MILLIS):
        return ConditionResult.SKIP
    minimap = world.minimap.state
    if (
        isinstance(minimap, MinimapIdle)
        and minimap.rune is not None
        and world.buffs.state(BuffKind.rune) is Buff.no
    ):
        return ConditionResult.QUEUE
    return ConditionResult.SKIP


@dataclass
class FamiliarsSwapCondition:
    check_millis: int

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if not at_least_millis_passed_since(resources, info.last_queued_time, self.check_millis):
            return ConditionResult.SKIP
        if world.player.context.is_familiars_swap_fail_count_limit_reached():
            return ConditionResult.SKIP
        return ConditionResult.QUEUE


@dataclass
class FamiliarEssenceCondition:
    """宠物增益生效且精华耗尽时补充。"""

    task: Task[bool] = field(default_factory=Task)

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if not at_least_millis_passed_since(
            resources, info.last_queued_time, FAMILIAR_ESSENCE_CHECK_MILLIS
        ):
            return ConditionResult.SKIP
        if world.buffs.state(BuffKind.familiar) is not Buff.yes:
            return ConditionResult.SKIP
        if resources.detector is None:
            return ConditionResult.SKIP
        update = update_detection_task(
            resources,
            DETECTION_REPEAT_MILLIS,
            self.task,
            lambda detector: detector.detect_familiar_essence_depleted(),
        )
        return _detection_result(update)


@dataclass
class UseBoosterCondition:
    """加速器计时器不可见（未生效）时使用。"""

    kind: BoosterKind
    task: Task[bool] = field(default_factory=Task)

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if not at_least_millis_passed_since(resources, info.last_queued_time, BOOSTER_CHECK_MILLIS):
            return ConditionResult.SKIP
        if world.player.context.is_booster_fail_count_limit_reached(self.kind):
            return ConditionResult.IGNORE
        if resources.detector is None:
            return ConditionResult.IGNORE
        update = update_detection_task(
            resources,
            DETECTION_REPEAT_MILLIS,
            self.task,
            lambda detector: not detector.detect_timer_visible(),
        )
        return _detection_result(update)


@dataclass
class ExchangeBoosterCondition:
    """快捷栏中没有 HEXA 加速器时兑换。"""

    task: Task[bool] = field(default_factory=Task)

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if not at_least_millis_passed_since(
            resources, info.last_queued_time, EXCHANGE_BOOSTER_CHECK_MILLIS
        ):
            return ConditionResult.SKIP
        if resources.detector is None:
            return ConditionResult.SKIP
        update = update_detection_task(
            resources,
            DETECTION_REPEAT_MILLIS,
            self.task,
            lambda detector: (
                detector.detect_quick_slots_booster(BoosterKind.hexa)
                is QuickSlotsBooster.unavailable
            ),
        )
        return _detection_result(update)


@dataclass
class UnstuckCondition:
    """ESC 设置界面挡住了角色时关闭它。死亡时由复活流程处理，不入队。"""

    task: Task[bool] = field(default_factory=Task)

    def __call__(
        self, resources: Resources, world: World, info: PriorityActionQueueInfo
    ) -> ConditionResult:
        if not at_least_millis_passed_since(resources, info.last_queued_time, UNSTUCK_CHECK_MILLIS):
            return ConditionResult.SKIP
        if not world.player.can_override_current_state(None):
            return ConditionResult.SKIP
        if resources.detector is None or world.player.context.is_dead:
            return ConditionResult.SKIP

        def detect(detector) -> bool:
            if detector.detect_player_is_dead():
                return False
            return detector.detect_esc_settings()

        update = update_detection_task(resources, UNSTUCK_CHECK_MILLIS, self.task, detect)
        if update.is_ok and update.value:
            return ConditionResult.QUEUE
        return ConditionResult.SKIP


# ═══════════════════════════════════════════════════════════════════════════════
# 内置优先动作
# ═══════════════════════════════════════════════════════════════════════════════


def _stationary_key(key: KeyKind) -> Key:
    return Key(
        key=key,
        with_=ActionKeyWith.stationary,
        wait_before_use_ticks=10,
        wait_after_use_ticks=10,
    )


def fixed_priority_action(
    action: RotatorAction, condition: ActionCondition, queue_to_front: bool
) -> PriorityAction:
    """由用户动作生成优先动作。"""
    return PriorityAction(
        condition=FixedActionCondition(condition),
        inner=action,
        condition_kind=condition.kind,
        queue_to_front=queue_to_front,
    )


def buff_priority_action(kind: BuffKind, key: KeyKind) -> PriorityAction:
    return PriorityAction(
        condition=BuffCondition(kind),
        inner=_stationary_key(key),
        queue_to_front=True,
    )


def panic_priority_action(to: PanicTo = PanicTo.channel) -> PriorityAction:
    return PriorityAction(condition=panic_condition, inner=Panic(to), queue_to_front=True)


def elite_boss_change_channel_priority_action() -> PriorityAction:
    return PriorityAction(
        condition=elite_boss_condition, inner=Panic(PanicTo.channel), queue_to_front=True
    )


def elite_boss_use_key_priority_action(key: KeyKind) -> PriorityAction:
    return PriorityAction(
        condition=elite_boss_condition, inner=_stationary_key(key), queue_to_front=True
    )


def use_booster_priority_action(kind: BoosterKind) -> PriorityAction:
    return PriorityAction(
        condition=UseBoosterCondition(kind),
        inner=UseBooster(kind),
        metadata=UseBoosterMetadata(),
    )


def exchange_booster_priority_action(amount: int, all_: bool) -> PriorityAction:
    return PriorityAction(
        condition=ExchangeBoosterCondition(),
        inner=ExchangeBooster(amount, all_),
        metadata=UseBoosterMetadata(),
    )


def unstuck_priority_action() -> PriorityAction:
    return PriorityAction(condition=UnstuckCondition(), inner=Unstuck(), queue_to_front=True)


def solve_rune_priority_action() -> PriorityAction:
    return PriorityAction(condition=solve_rune_condition, inner=SolveRune(), queue_to_front=True)


def familiar_essence_priority_action(key: KeyKind) -> PriorityAction:
    return PriorityAction(
        condition=FamiliarEssenceCondition(),
        inner=Key(key=key, wait_before_use_ticks=5),
        queue_to_front=True,
    )


def familiars_swap_priority_action(
    slots: SwappableFamiliars, rarities: tuple[FamiliarRarity, ...], check_millis: int
) -> PriorityAction:
    return PriorityAction(
        condition=FamiliarsSwapCondition(check_millis),
        inner=FamiliarsSwap(slots, rarities),
        queue_to_front=True,
    )
