"""持久化模型：用户动作与按键配置。"""

from .actions import (
    Action,
    ActionCondition,
    ActionKey,
    ActionMove,
    Bound,
    LinkKeyBinding,
    MobbingKey,
    Position,
)

__all__ = [
    "Action",
    "ActionCondition",
    "ActionKey",
    "ActionMove",
    "Bound",
    "LinkKeyBinding",
    "MobbingKey",
    "Position",
]
