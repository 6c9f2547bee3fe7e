"""动作轮换器。

两级调度：

1. **优先动作**：每 tick 检查入队条件，满足时放入待执行队列；
   玩家当前状态可以被打断时，从队列取出一个交给玩家。
2. **普通动作**：没有优先动作可执行时，按轮换模式产生一个普通动作：
   顺序、往返、自动打怪或来回刷怪。

调度顺序固定为：优先动作入队 → 出队 → 普通动作。
外部注入的一次性动作（如聊天）进入旁路队列，在优先队列之前执行，
且在运行暂停时仍然会被执行。
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.minimap import Minimap, MinimapIdle
from automaple.geometry import Point, Rect
from automaple.models.actions import Action, MobbingKey, Position
from automaple.player.actions import (
    AutoMob,
    MobbingKeyTicks,
    PingPong,
    PingPongDirection,
    PlayerAction,
    player_action_from,
)
from automaple.player.state import GRAPPLING_THRESHOLD
from automaple.rotator.priority import (
    ConditionResult,
    LinkedAction,
    PriorityAction,
    RotatorAction,
    UseBoosterMetadata,
    buff_priority_action,
    elite_boss_change_channel_priority_action,
    elite_boss_use_key_priority_action,
    exchange_booster_priority_action,
    familiar_essence_priority_action,
    familiars_swap_priority_action,
    fixed_priority_action,
    panic_priority_action,
    solve_rune_priority_action,
    unstuck_priority_action,
    use_booster_priority_action,
)
from automaple.task import Task, update_detection_task
from automaple.types import (
    ActionConditionKind,
    BoosterKind,
    BuffKind,
    EliteBossBehavior,
    KeyKind,
    PanicTo,
    RotationMode,
)

if TYPE_CHECKING:
    from automaple.infra.config import FamiliarsConfig, RotationConfig
    from automaple.player.context import PlayerContext, Quadrant
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources, World

AUTO_MOB_SAME_QUAD_THRESHOLD = 5
"""同一象限内连续选取目标的次数上限，达到后强制前往下一象限"""


class ActionIdAllocator:
    """为轮换器内的动作分配递增 id。"""

    def __init__(self) -> None:
        self._next = 0

    def next_id(self) -> int:
        action_id = self._next
        self._next += 1
        return action_id


@dataclass(frozen=True)
class RotatorBuildArgs:
    """:meth:`Rotator.build_actions` 的参数。

    ``auto_mob_bound`` 与 ``ping_pong_bound`` 为小地图图像坐标。
    """

    mode: RotationMode = RotationMode.start_to_end_then_reverse
    mobbing_key: MobbingKey | None = None
    auto_mob_bound: Rect = Rect(0, 0, 0, 0)
    ping_pong_bound: Rect = Rect(0, 0, 0, 0)
    actions: tuple[Action, ...] = ()
    buffs: tuple[tuple[BuffKind, KeyKind], ...] = ()
    familiars: FamiliarsConfig | None = None
    familiar_essence_key: KeyKind = KeyKind.Nine
    elite_boss_behavior: EliteBossBehavior = EliteBossBehavior.none
    elite_boss_behavior_key: KeyKind | None = None
    enable_hexa_booster_exchange: bool = False
    hexa_booster_exchange_amount: int = 1
    hexa_booster_exchange_all: bool = False
    enable_panic_mode: bool = False
    panic_to: PanicTo = PanicTo.channel
    enable_rune_solving: bool = True
    enable_reset_normal_actions_on_erda: bool = False
    enable_using_generic_booster: bool = False
    enable_using_hexa_booster: bool = False

    @classmethod
    def from_config(cls, config: RotationConfig) -> RotatorBuildArgs:
        return cls(
            mode=config.mode,
            mobbing_key=config.mobbing_key,
            auto_mob_bound=config.auto_mob_bound.to_rect(),
            ping_pong_bound=config.ping_pong_bound.to_rect(),
            actions=tuple(config.actions),
            buffs=tuple((buff.kind, buff.key) for buff in config.buffs),
            familiars=config.familiars,
            familiar_essence_key=config.familiar_essence_key,
            elite_boss_behavior=config.elite_boss_behavior,
            elite_boss_behavior_key=config.elite_boss_behavior_key,
            enable_hexa_booster_exchange=config.enable_hexa_booster_exchange,
            hexa_booster_exchange_amount=config.hexa_booster_exchange_amount,
            hexa_booster_exchange_all=config.hexa_booster_exchange_all,
            enable_panic_mode=config.enable_panic_mode,
            panic_to=config.panic_to,
            enable_rune_solving=config.enable_rune_solving,
            enable_reset_normal_actions_on_erda=config.enable_reset_normal_actions_on_erda,
            enable_using_generic_booster=config.enable_using_generic_booster,
            enable_using_hexa_booster=config.enable_using_hexa_booster,
        )


def rotator_action(actions: list[Action], start_index: int) -> tuple[RotatorAction, int]:
    """以 *start_index* 处的动作为首生成轮换动作。

    其后紧跟的 ``Linked`` 条件动作与它组成连锁动作。

    Returns
    -------
    tuple[RotatorAction, int]
        动作本身，以及到下一个非连锁动作的偏移量。
    """
    head = player_action_from(actions[start_index])
    chain: list[PlayerAction] = []
    for action in actions[start_index + 1 :]:
        if action.condition.kind is not ActionConditionKind.linked:
            break
        chain.append(player_action_from(action))
    if not chain:
        return head, 1

    node: LinkedAction | None = None
    for inner in reversed(chain):
        node = LinkedAction(inner, node)
    return LinkedAction(head, node), len(chain) + 1


@dataclass
class Rotator:
    """动作轮换器。

    普通动作与优先动作的 id 都由 :attr:`ids` 分配，
    玩家上下文中记录的 id 用于判断动作归属。
    """

    ids: ActionIdAllocator = field(default_factory=ActionIdAllocator)

    mode: RotationMode = RotationMode.start_to_end_then_reverse
    mobbing_key: MobbingKey | None = None
    auto_mob_bound: Rect = Rect(0, 0, 0, 0)
    ping_pong_bound: Rect = Rect(0, 0, 0, 0)

    # ── 普通动作 ──
    normal_actions: list[tuple[int, RotatorAction]] = field(default_factory=list)
    normal_queuing_linked_action: tuple[int, LinkedAction] | None = None
    normal_index: int = 0
    normal_actions_backward: bool = False
    """往返模式下是否正在从尾部向前遍历"""
    normal_actions_reset_on_erda: bool = False

    # ── 自动打怪 ──
    auto_mob_task: Task[list[Point]] = field(default_factory=Task)
    auto_mob_quadrant_consecutive_count: tuple[Quadrant, int] | None = None
    """同一象限内已完成的识别次数"""

    # ── 优先动作 ──
    priority_actions: dict[int, PriorityAction] = field(default_factory=dict)
    priority_queuing_linked_action: tuple[int, LinkedAction] | None = None
    priority_actions_queue: deque[int] = field(default_factory=deque)
    """满足条件、等待执行的优先动作 id"""
    priority_actions_side_queue: deque[PlayerAction] = field(default_factory=deque)
    """外部注入的一次性动作，没有 id"""

    # ═══════════════════════════════════════════════════════════════════════════
    # 公开接口
    # ═══════════════════════════════════════════════════════════════════════════

    def build_actions(self, args: RotatorBuildArgs) -> None:
        """清空现有动作并按 *args* 重新生成。

        注册顺序即求值顺序：低优先级在前，高优先级在后。
        由于插队动作放在队首，后求值的动作最终排在更前面。
        """
        logger.info("生成轮换动作 模式={} 动作数={}", args.mode.value, len(args.actions))
        self.reset_queue()
        self.normal_actions.clear()
        self.priority_actions.clear()
        self.mode = args.mode
        self.mobbing_key = args.mobbing_key
        self.auto_mob_bound = args.auto_mob_bound
        self.ping_pong_bound = args.ping_pong_bound
        self.normal_actions_reset_on_erda = args.enable_reset_normal_actions_on_erda

        # ── 低优先级 ──
        if args.enable_using_generic_booster:
            self._add_priority_action(use_booster_priority_action(BoosterKind.generic))
        if args.enable_using_hexa_booster:
            self._add_priority_action(use_booster_priority_action(BoosterKind.hexa))
        if args.enable_hexa_booster_exchange:
            self._add_priority_action(
                exchange_booster_priority_action(
                    args.hexa_booster_exchange_amount, args.hexa_booster_exchange_all
                )
            )
        familiars = args.familiars
        if familiars is not None and familiars.enable_familiars_swapping:
            self._add_priority_action(
                familiars_swap_priority_action(
                    familiars.swappable_familiars,
                    tuple(familiars.swappable_rarities),
                    familiars.swap_check_millis,
                )
            )

        # ── 用户动作 ──
        actions = list(args.actions)
        ignore_any = self.mode in (RotationMode.auto_mobbing, RotationMode.ping_pong)
        i = 0
        while i < len(actions):
            action = actions[i]
            condition = action.condition
            queue_to_front = getattr(action, "queue_to_front", False)
            inner, offset = rotator_action(actions, i)
            i += offset
            match condition.kind:
                case (
                    ActionConditionKind.every_millis
                    | ActionConditionKind.erda_shower_off_cooldown
                ):
                    self._add_priority_action(
                        fixed_priority_action(inner, condition, queue_to_front)
                    )
                case ActionConditionKind.any:
                    if ignore_any:
                        continue
                    self.normal_actions.append((self.ids.next_id(), inner))
                case ActionConditionKind.linked:
                    # 没有首个动作的连锁动作
                    logger.warning("忽略孤立的 Linked 动作 #{}", i - offset)

        # ── 高优先级 ──
        if args.enable_rune_solving:
            self._add_priority_action(solve_rune_priority_action())

        match args.elite_boss_behavior:
            case EliteBossBehavior.cycle_channel:
                self._add_priority_action(elite_boss_change_channel_priority_action())
            case EliteBossBehavior.use_key if args.elite_boss_behavior_key is not None:
                self._add_priority_action(
                    elite_boss_use_key_priority_action(args.elite_boss_behavior_key)
                )

        if args.enable_panic_mode:
            self._add_priority_action(panic_priority_action(args.panic_to))

        if any(kind is BuffKind.familiar for kind, _ in args.buffs):
            self._add_priority_action(familiar_essence_priority_action(args.familiar_essence_key))
        for kind, key in args.buffs:
            self._add_priority_action(buff_priority_action(kind, key))

        self._add_priority_action(unstuck_priority_action())
        logger.debug(
            "普通动作 {} 个，优先动作 {} 个", len(self.normal_actions), len(self.priority_actions)
        )

    def reset_queue(self) -> None:
        """清空普通与优先动作的队列，保留已生成的动作。"""
        self.normal_actions_backward = False
        self._reset_normal_actions_queue()
        self.priority_actions_queue.clear()
        self.priority_queuing_linked_action = None
        self.auto_mob_task = Task()
        self.auto_mob_quadrant_consecutive_count = None

    def inject_action(self, action: PlayerAction) -> None:
        """注入一次性动作，与已生成的优先动作协同执行。"""
        self.priority_actions_side_queue.append(action)

    def rotate_action(self, resources: Resources, world: World) -> None:
        """轮换一次。

        运行暂停时只执行注入的动作。
        """
        context = world.player.context
        if resources.operation.is_halting:
            if not _has_side_loaded_action_executing(context):
                self._rotate_side_priority_action(context)
            return

        self._rotate_priority_actions(resources, world)
        self._rotate_priority_actions_queue(world.player)

        match self.mode:
            case RotationMode.start_to_end:
                self._rotate_start_to_end(context)
            case RotationMode.start_to_end_then_reverse:
                self._rotate_start_to_end_then_reverse(context)
            case RotationMode.auto_mobbing:
                self._rotate_auto_mobbing(resources, context, world.minimap.state)
            case RotationMode.ping_pong:
                self._rotate_ping_pong(context, world.minimap.state)

    # ═══════════════════════════════════════════════════════════════════════════
    # 优先动作
    # ═══════════════════════════════════════════════════════════════════════════

    def _add_priority_action(self, action: PriorityAction) -> None:
        self.priority_actions[self.ids.next_id()] = action

    def _is_priority_linked_action_queuing_or_executing(
        self, context: PlayerContext, action_id: int
    ) -> bool:
        queuing = self.priority_queuing_linked_action
        if queuing is not None and queuing[0] == action_id:
            return True
        if context.priority_action_id() != action_id:
            return False
        action = self.priority_actions.get(action_id)
        return action is not None and isinstance(action.inner, LinkedAction)

    def _has_erda_action_queuing_or_executing(self, context: PlayerContext) -> bool:
        def is_erda(action_id: int | None) -> bool:
            action = self.priority_actions.get(action_id) if action_id is not None else None
            return (
                action is not None
                and action.condition_kind is ActionConditionKind.erda_shower_off_cooldown
            )

        return is_erda(context.priority_action_id()) or any(
            is_erda(action_id) for action_id in self.priority_actions_queue
        )

    def _has_use_booster_conflict(self, context: PlayerContext) -> bool:
        action_ids = [context.priority_action_id(), *self.priority_actions_queue]
        for action_id in action_ids:
            action = self.priority_actions.get(action_id) if action_id is not None else None
            if action is not None and isinstance(action.metadata, UseBoosterMetadata):
                return True
        return False

    def _rotate_priority_actions(self, resources: Resources, world: World) -> None:
        """检查优先动作的入队条件，满足条件的放入队列。"""
        context = world.player.context
        has_erda_action = self._has_erda_action_queuing_or_executing(context)
        did_queue_erda_action = False

        for action_id, action in self.priority_actions.items():
            has_linked_action = self._is_priority_linked_action_queuing_or_executing(
                context, action_id
            )
            if action.condition_kind is ActionConditionKind.erda_shower_off_cooldown:
                ignoring = has_erda_action or has_linked_action
            else:
                ignoring = (
                    context.priority_action_id() == action_id
                    or action_id in self.priority_actions_queue
                    or has_linked_action
                )
            action.queue_info.ignoring = ignoring
            if ignoring:
                action.queue_info.last_queued_time = resources.tick
                continue

            match action.condition(resources, world, action.queue_info):
                case ConditionResult.QUEUE:
                    action.queue_info.last_queued_time = resources.tick
                    if isinstance(
                        action.metadata, UseBoosterMetadata
                    ) and self._has_use_booster_conflict(context):
                        logger.info("已有加速器动作在执行或排队，忽略本次入队")
                        continue
                    if action.queue_to_front:
                        self.priority_actions_queue.appendleft(action_id)
                    else:
                        self.priority_actions_queue.append(action_id)
                    logger.debug("优先动作 #{} 入队 {}", action_id, action.inner)
                    if action.condition_kind is ActionConditionKind.erda_shower_off_cooldown:
                        did_queue_erda_action = True
                case ConditionResult.IGNORE:
                    action.queue_info.last_queued_time = resources.tick
                case ConditionResult.SKIP:
                    pass

        if did_queue_erda_action and self.normal_actions_reset_on_erda:
            logger.debug("艾尔达斯之雨动作入队，重置普通轮换")
            self._reset_normal_actions_queue()
            context.reset_normal_action()

    def _has_normal_linked_action_queuing_or_executing(self, context: PlayerContext) -> bool:
        if self.normal_queuing_linked_action is not None:
            return True
        normal_id = context.normal_action_id()
        if normal_id is None:
            return False
        return any(
            action_id == normal_id and isinstance(action, LinkedAction)
            for action_id, action in self.normal_actions
        )

    def _has_priority_linked_action_executing(self, context: PlayerContext) -> bool:
        # 排队中的连锁动作需要在出队时继续轮换，这里只检查执行中的
        priority_id = context.priority_action_id()
        if priority_id is None:
            return False
        action = self.priority_actions.get(priority_id)
        return action is not None and isinstance(action.inner, LinkedAction)

    def _rotate_priority_actions_queue(self, player: PlayerEntity) -> None:
        """从队列中取出一个优先动作交给玩家。

        出队顺序：进行中的连锁动作 → 注入动作 → 队首的优先动作。
        玩家正在执行插队动作时不出队；队首动作只有在玩家没有优先动作，
        或者自身是插队动作时才会出队。
        """
        context = player.context
        if (
            not self.priority_actions_queue
            and not self.priority_actions_side_queue
            and self.priority_queuing_linked_action is None
        ):
            return
        if (
            not player.can_override_current_state(context.last_known_pos)
            or self._has_normal_linked_action_queuing_or_executing(context)
            or self._has_priority_linked_action_executing(context)
            or _has_side_loaded_action_executing(context)
        ):
            return
        if self._rotate_queuing_linked_action(context, is_priority=True):
            return
        if self._rotate_side_priority_action(context):
            return

        current_id = context.priority_action_id()
        current = self.priority_actions.get(current_id) if current_id is not None else None
        if current is not None and current.queue_to_front:
            return

        if not self.priority_actions_queue:
            return
        action_id = self.priority_actions_queue[0]
        action = self.priority_actions.get(action_id)
        if action is not None and context.has_priority_action() and not action.queue_to_front:
            return
        self.priority_actions_queue.popleft()
        if action is None:
            return

        if isinstance(action.inner, LinkedAction):
            if action.queue_to_front:
                replaced_id = context.take_priority_action()
                if replaced_id is not None:
                    self.priority_actions_queue.appendleft(replaced_id)
            self.priority_queuing_linked_action = (action_id, action.inner)
            self._rotate_queuing_linked_action(context, is_priority=True)
        elif action.queue_to_front:
            replaced_id = context.replace_priority_action(action_id, action.inner)
            if replaced_id is not None:
                # 被替换的动作放回队首，待插队动作完成后继续执行
                self.priority_actions_queue.appendleft(replaced_id)
        else:
            context.set_priority_action(action_id, action.inner)

    def _rotate_queuing_linked_action(self, context: PlayerContext, is_priority: bool) -> bool:
        """把排队中的连锁动作的下一个节点交给玩家。"""
        if is_priority:
            queuing = self.priority_queuing_linked_action
        else:
            queuing = self.normal_queuing_linked_action
        if queuing is None:
            return False

        action_id, linked = queuing
        rest = (action_id, linked.next) if linked.next is not None else None
        if is_priority:
            self.priority_queuing_linked_action = rest
            context.set_priority_action(action_id, linked.inner)
        else:
            self.normal_queuing_linked_action = rest
            context.set_normal_action(action_id, linked.inner)
        return True

    def _rotate_side_priority_action(self, context: PlayerContext) -> bool:
        if not self.priority_actions_side_queue:
            return False
        action = self.priority_actions_side_queue.popleft()
        context.set_priority_action(None, action)
        return True

    # ═══════════════════════════════════════════════════════════════════════════
    # 普通动作
    # ═══════════════════════════════════════════════════════════════════════════

    def _reset_normal_actions_queue(self) -> None:
        self.normal_index = 0
        self.normal_queuing_linked_action = None

    def _set_normal_action(self, context: PlayerContext, index: int) -> None:
        action_id, action = self.normal_actions[index]
        if isinstance(action, LinkedAction):
            self.normal_queuing_linked_action = (action_id, action)
            self._rotate_queuing_linked_action(context, is_priority=False)
        else:
            context.set_normal_action(action_id, action)

    def _rotate_start_to_end(self, context: PlayerContext) -> None:
        if context.has_normal_action() or not self.normal_actions:
            return
        if self._rotate_queuing_linked_action(context, is_priority=False):
            return

        index = self.normal_index
        self.normal_index = (self.normal_index + 1) % len(self.normal_actions)
        self._set_normal_action(context, index)

    def _rotate_start_to_end_then_reverse(self, context: PlayerContext) -> None:
        if context.has_normal_action() or not self.normal_actions:
            return
        if self._rotate_queuing_linked_action(context, is_priority=False):
            return

        length = len(self.normal_actions)
        if self.normal_index + 1 == length:
            self.normal_actions_backward = not self.normal_actions_backward
            self.normal_index = 0

        if self.normal_actions_backward:
            index = max(length - self.normal_index - 1, 0)
        else:
            index = self.normal_index
        self.normal_index = (self.normal_index + 1) % length
        self._set_normal_action(context, index)

    def _rotate_auto_mobbing(
        self, resources: Resources, context: PlayerContext, minimap: Minimap
    ) -> None:
        if context.has_normal_action() or self.mobbing_key is None:
            return
        if not isinstance(minimap, MinimapIdle):
            return
        pos = context.last_known_pos
        if pos is None:
            return

        bound = self.auto_mob_bound
        if context.config.auto_mob_platforms_bound and minimap.platforms_bound is not None:
            bound = minimap.platforms_bound
        bbox = minimap.bbox

        update = update_detection_task(
            resources,
            0,
            self.auto_mob_task,
            lambda detector: detector.detect_mobs(bbox, bound, pos),
        )
        if not update.is_ok:
            return

        points = []
        for point in update.value:
            y = bbox.height - point.y
            # 高于玩家太多的怪物够不着
            if y > pos.y and abs(y - pos.y) > GRAPPLING_THRESHOLD:
                continue
            logger.debug("自动打怪原始位置 {},{}", point.x, y)
            picked = context.auto_mob_pick_reachable_y_position(
                resources, minimap, Point(point.x, y)
            )
            if picked is not None:
                points.append(picked)

        use_pathing_point = False
        last_quadrant = context.auto_mob_last_quadrant
        if last_quadrant is not None and points:
            count = self.auto_mob_quadrant_consecutive_count
            if count is None or count[0] is not last_quadrant:
                count = (last_quadrant, 0)
            count = (last_quadrant, count[1] + 1)
            if count[1] >= AUTO_MOB_SAME_QUAD_THRESHOLD:
                count = (last_quadrant, 0)
                use_pathing_point = True
            self.auto_mob_quadrant_consecutive_count = count

        target = None if use_pathing_point else resources.rng.random_choose(points)
        is_pathing = target is None
        if target is None:
            target = context.auto_mob_pathing_point(resources, minimap, bound)

        logger.debug("自动打怪目标 {} 寻路={}", target, is_pathing)
        context.set_normal_action(
            None,
            AutoMob(
                key=MobbingKeyTicks.from_model(self.mobbing_key),
                position=Position(x=target.x, y=target.y),
                is_pathing=is_pathing,
            ),
        )

    def _rotate_ping_pong(self, context: PlayerContext, minimap: Minimap) -> None:
        if context.has_normal_action() or self.mobbing_key is None:
            return
        if not isinstance(minimap, MinimapIdle):
            return
        pos = context.last_known_pos
        if pos is None:
            return

        bbox = minimap.bbox
        dist_left = pos.x - bbox.x
        dist_right = bbox.x + bbox.width - pos.x
        if dist_left > dist_right:
            direction = PingPongDirection.left
        else:
            direction = PingPongDirection.right

        context.set_normal_action(
            None,
            PingPong(
                key=MobbingKeyTicks.from_model(self.mobbing_key),
                bound=self.ping_pong_bound.flip_y(bbox.height),
                direction=direction,
            ),
        )


def _has_side_loaded_action_executing(context: PlayerContext) -> bool:
    return context.has_priority_action() and context.priority_action_id() is None
