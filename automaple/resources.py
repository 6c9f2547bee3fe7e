"""每 tick 共享的环境资源。

- :class:`Resources`：当前 tick、输入、识别器句柄、随机数、通知、运行状态、线程池
- :class:`World`：各实体（小地图 / 玩家 / 技能 / 增益）的容器
- :class:`Rng`：可注入种子的随机数源

所有时长在配置中以毫秒给出，进入状态机前统一换算为 tick。
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from automaple.infra.exceptions import CriticalError
from automaple.types import StrEnum

if TYPE_CHECKING:
    from automaple.bridge import Detector, Input
    from automaple.entities.buff import BuffEntities
    from automaple.entities.minimap import MinimapEntity
    from automaple.entities.skill import SkillEntities
    from automaple.notification import DiscordNotification
    from automaple.player.state import PlayerEntity

T = TypeVar("T")

FPS = 30
"""主循环频率"""

MS_PER_TICK = 1000 // FPS
"""每 tick 的毫秒数"""


def millis_to_ticks(millis: int) -> int:
    """毫秒换算为 tick，向下取整。"""
    return millis // MS_PER_TICK


# ═══════════════════════════════════════════════════════════════════════════════
# 随机数
# ═══════════════════════════════════════════════════════════════════════════════


class Rng:
    """随机数源。测试中传入固定种子以获得可复现的序列。"""

    def __init__(self, seed: int | None = None) -> None:
        self._inner = random.Random(seed)

    def random_range(self, start: int, end: int) -> int:
        """返回 ``[start, end)`` 内的随机整数，区间为空时返回 *start*。"""
        if end <= start:
            return start
        return self._inner.randrange(start, end)

    def random_choose(self, items: Iterable[T]) -> T | None:
        """从 *items* 中随机挑选一个，为空时返回 None。"""
        pool = list(items)
        if not pool:
            return None
        return self._inner.choice(pool)

    def random_bool(self, probability: float = 0.5) -> bool:
        """以 *probability* 的概率返回 True。"""
        return self._inner.random() < probability


# ═══════════════════════════════════════════════════════════════════════════════
# 运行状态
# ═══════════════════════════════════════════════════════════════════════════════


class Operation(StrEnum):
    """机器人当前运行状态。"""

    running = "Running"
    halting = "Halting"

    @property
    def is_halting(self) -> bool:
        return self is Operation.halting


# ═══════════════════════════════════════════════════════════════════════════════
# 资源
# ═══════════════════════════════════════════════════════════════════════════════


def _default_executor() -> Executor:
    return ThreadPoolExecutor(max_workers=4, thread_name_prefix="automaple-task")


@dataclass
class Resources:
    """每 tick 共享的资源。

    除 :attr:`tick` 与 :attr:`detector` 由主循环推进外，其余字段在运行期间保持不变。
    """

    input: Input
    """输入发送器"""
    notification: DiscordNotification
    """通知推送"""
    rng: Rng = field(default_factory=Rng)
    """随机数源"""
    detector: Detector | None = None
    """最新一帧的识别器。从未截到帧时为 None"""
    operation: Operation = Operation.running
    """运行状态"""
    tick: int = 0
    """当前 tick，单调递增"""
    executor: Executor = field(default_factory=_default_executor)
    """后台查询线程池"""

    def detector_cloned(self) -> Detector:
        """返回当前帧的识别器句柄，可安全地传给工作线程。

        Raises
        ------
        CriticalError
            从未截到过帧。
        """
        if self.detector is None:
            raise CriticalError("尚未截取任何帧，识别器不可用")
        return self.detector


@dataclass
class World:
    """实体容器。"""

    minimap: MinimapEntity
    player: PlayerEntity
    skills: SkillEntities
    buffs: BuffEntities
