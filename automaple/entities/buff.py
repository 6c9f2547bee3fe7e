"""增益追踪。

每种增益一个实体，状态为 ``No`` / ``Yes`` / ``Volatile``::

    识别到        → Yes
    Yes 未识别到  → Volatile（失败上限为 1 时直接 No）
    Volatile 连续未识别到达到上限 → No

``Volatile`` 用于吸收单帧遮挡造成的误判，避免重复施放。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from automaple.task import Task, update_detection_task
from automaple.types import BuffKind, StrEnum

if TYPE_CHECKING:
    from automaple.resources import Resources

COMMON_FAIL_COUNT = 5
FAMILIAR_FAIL_COUNT = 2
RUNE_FAIL_COUNT = 1


class Buff(StrEnum):
    """增益状态。"""

    no = "No"
    yes = "Yes"
    volatile = "Volatile"


def _max_fail_count(kind: BuffKind) -> int:
    match kind:
        case BuffKind.rune:
            return RUNE_FAIL_COUNT
        case BuffKind.familiar:
            return FAMILIAR_FAIL_COUNT
        case _:
            return COMMON_FAIL_COUNT


@dataclass
class BuffContext:
    kind: BuffKind
    task: Task = field(default_factory=Task)
    fail_count: int = 0
    enabled: bool = True

    @property
    def max_fail_count(self) -> int:
        return _max_fail_count(self.kind)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.fail_count = 0
            self.task = Task()


@dataclass
class BuffEntity:
    context: BuffContext
    state: Buff = Buff.no


class BuffEntities:
    """按 :class:`BuffKind` 索引的增益实体集合。"""

    def __init__(self) -> None:
        self._entities = {kind: BuffEntity(BuffContext(kind)) for kind in BuffKind}

    def __getitem__(self, kind: BuffKind) -> BuffEntity:
        return self._entities[kind]

    def __iter__(self):
        return iter(self._entities.values())

    def state(self, kind: BuffKind) -> Buff:
        return self._entities[kind].state

    def update_enabled(self, enabled_kinds: set[BuffKind]) -> None:
        """只追踪 *enabled_kinds* 中的增益，其余置为 ``No``。"""
        for entity in self._entities.values():
            entity.context.set_enabled(entity.context.kind in enabled_kinds)


def run_system(resources: Resources, buff: BuffEntity, *, in_cash_shop: bool = False) -> None:
    """推进一次增益状态。"""
    if not buff.context.enabled:
        buff.state = Buff.no
        return
    if in_cash_shop:
        return

    kind = buff.context.kind
    update = update_detection_task(
        resources, 5000, buff.context.task, lambda detector: detector.detect_player_buff(kind)
    )
    if not update.is_ok:
        return

    has_buff = bool(update.value)
    context = buff.context
    if buff.state is Buff.volatile and not has_buff:
        context.fail_count += 1
    else:
        context.fail_count = 0

    match (has_buff, buff.state):
        case (True, _):
            buff.state = Buff.yes
        case (False, Buff.no):
            pass
        case (False, Buff.yes):
            buff.state = Buff.volatile if context.max_fail_count > 1 else Buff.no
        case (False, Buff.volatile):
            if context.fail_count >= context.max_fail_count:
                buff.state = Buff.no
