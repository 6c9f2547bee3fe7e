"""玩家：上下文与状态机。

模块组成::

    player/
    ├── actions.py       # 运行时动作
    ├── state.py         # 状态（不可变 dataclass 的闭合联合）
    ├── context.py       # 跨状态的长期数据与动作槽位
    ├── transitions.py   # 状态之间共用的转移函数
    ├── system.py        # 每 tick 入口
    └── <state>.py       # 各状态的更新函数
"""

from .actions import PlayerAction, player_action_from
from .context import PlayerContext
from .state import Player, PlayerEntity, can_override_current_state
from .system import run_system

__all__ = [
    "Player",
    "PlayerAction",
    "PlayerContext",
    "PlayerEntity",
    "can_override_current_state",
    "player_action_from",
    "run_system",
]
