"""动作轮换器：决定玩家下一步执行哪个动作。

模块组成::

    rotator/
    ├── priority.py   # 优先动作、入队条件与内置优先动作
    └── rotator.py    # 优先队列调度与普通动作轮换

典型使用::

    from automaple.rotator import Rotator, RotatorBuildArgs

    rotator = Rotator()
    rotator.build_actions(RotatorBuildArgs.from_config(config.rotation))
    rotator.rotate_action(resources, world)
"""

from .priority import (
    ConditionResult,
    LinkedAction,
    PriorityAction,
    PriorityActionQueueInfo,
    UseBoosterMetadata,
    at_least_millis_passed_since,
    should_queue_fixed_action,
)
from .rotator import (
    AUTO_MOB_SAME_QUAD_THRESHOLD,
    ActionIdAllocator,
    Rotator,
    RotatorBuildArgs,
    rotator_action,
)

__all__ = [
    "AUTO_MOB_SAME_QUAD_THRESHOLD",
    "ActionIdAllocator",
    "ConditionResult",
    "LinkedAction",
    "PriorityAction",
    "PriorityActionQueueInfo",
    "Rotator",
    "RotatorBuildArgs",
    "UseBoosterMetadata",
    "at_least_millis_passed_since",
    "rotator_action",
    "should_queue_fixed_action",
]
