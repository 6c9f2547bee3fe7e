"""玩家可执行的动作。

用户动作（:class:`~automaple.models.actions.ActionKey` /
:class:`~automaple.models.actions.ActionMove`）在进入状态机前被转换为这里的
运行时表示：毫秒换算为 tick，并去掉只有轮换器关心的字段（条件、插队标记）。

其余动作（解符文、自动打怪、来回刷怪、宠物替换……）由轮换器内部生成。
"""

from __future__ import annotations

from dataclasses import dataclass, field

from automaple.geometry import Rect
from automaple.models.actions import ActionKey, ActionMove, LinkKeyBinding, MobbingKey, Position
from automaple.resources import millis_to_ticks
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

AUTO_MOB_USE_KEY_X_THRESHOLD = 16
"""自动打怪时距离目标 x 小于等于该值即可使用按键"""
AUTO_MOB_USE_KEY_Y_THRESHOLD = 8
"""自动打怪时距离目标 y 小于等于该值即可使用按键"""


# ═══════════════════════════════════════════════════════════════════════════════
# 用户动作
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Key:
    """固定按键动作。"""

    key: KeyKind
    key_hold_ticks: int = 0
    key_hold_buffered_to_wait_after: bool = False
    link_key: LinkKeyBinding = field(default_factory=LinkKeyBinding)
    count: int = 1
    position: Position | None = None
    direction: ActionKeyDirection = ActionKeyDirection.any
    with_: ActionKeyWith = ActionKeyWith.any
    wait_before_use_ticks: int = 0
    wait_before_use_ticks_random_range: int = 0
    wait_after_use_ticks: int = 0
    wait_after_use_ticks_random_range: int = 0
    wait_after_buffered: WaitAfterBuffered = WaitAfterBuffered.none

    @classmethod
    def from_model(cls, action: ActionKey) -> Key:
        return cls(
            key=action.key,
            key_hold_ticks=millis_to_ticks(action.key_hold_millis),
            key_hold_buffered_to_wait_after=action.key_hold_buffered_to_wait_after,
            link_key=action.link_key,
            count=max(action.count, 1),
            position=action.position,
            direction=action.direction,
            with_=action.with_,
            wait_before_use_ticks=millis_to_ticks(action.wait_before_use_millis),
            wait_before_use_ticks_random_range=millis_to_ticks(
                action.wait_before_use_millis_random_range
            ),
            wait_after_use_ticks=millis_to_ticks(action.wait_after_use_millis),
            wait_after_use_ticks_random_range=millis_to_ticks(
                action.wait_after_use_millis_random_range
            ),
            wait_after_buffered=action.wait_after_buffered,
        )


@dataclass(frozen=True, slots=True)
class Move:
    """固定移动动作。"""

    position: Position
    wait_after_move_ticks: int = 0

    @classmethod
    def from_model(cls, action: ActionMove) -> Move:
        return cls(
            position=action.position,
            wait_after_move_ticks=millis_to_ticks(action.wait_after_move_millis),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 内部动作
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class MobbingKeyTicks:
    """打怪按键的 tick 版本，由 :class:`AutoMob` 与 :class:`PingPong` 共用。"""

    key: KeyKind
    key_hold_ticks: int = 0
    link_key: LinkKeyBinding = field(default_factory=LinkKeyBinding)
    count: int = 1
    with_: ActionKeyWith = ActionKeyWith.any
    wait_before_ticks: int = 0
    wait_before_ticks_random_range: int = 0
    wait_after_ticks: int = 0
    wait_after_ticks_random_range: int = 0

    @classmethod
    def from_model(cls, key: MobbingKey) -> MobbingKeyTicks:
        return cls(
            key=key.key,
            key_hold_ticks=millis_to_ticks(key.key_hold_millis),
            link_key=key.link_key,
            count=max(key.count, 1),
            with_=key.with_,
            wait_before_ticks=millis_to_ticks(key.wait_before_millis),
            wait_before_ticks_random_range=millis_to_ticks(key.wait_before_millis_random_range),
            wait_after_ticks=millis_to_ticks(key.wait_after_millis),
            wait_after_ticks_random_range=millis_to_ticks(key.wait_after_millis_random_range),
        )


@dataclass(frozen=True, slots=True)
class AutoMob:
    """自动打怪：移动到目标点后使用打怪按键。

    ``is_pathing`` 为 True 表示目标点不是识别到的怪物，而是为了巡视下一象限
    生成的寻路点。
    """

    key: MobbingKeyTicks
    position: Position
    is_pathing: bool = False

    def __str__(self) -> str:
        return f"AutoMob({self.position.x}, {self.position.y})"


class PingPongDirection(StrEnum):
    left = "Left"
    right = "Right"


@dataclass(frozen=True, slots=True)
class PingPong:
    """来回刷怪：朝一个方向移动并持续使用按键，碰到范围边缘即完成。

    ``bound`` 为玩家坐标。
    """

    key: MobbingKeyTicks
    bound: Rect
    direction: PingPongDirection


@dataclass(frozen=True, slots=True)
class SolveRune:
    """移动到符文并解除。"""


@dataclass(frozen=True, slots=True)
class FamiliarsSwap:
    swappable_slots: SwappableFamiliars
    swappable_rarities: tuple[FamiliarRarity, ...]


@dataclass(frozen=True, slots=True)
class Panic:
    to: PanicTo


@dataclass(frozen=True, slots=True)
class Chat:
    content: str


@dataclass(frozen=True, slots=True)
class UseBooster:
    kind: BoosterKind


@dataclass(frozen=True, slots=True)
class ExchangeBooster:
    amount: int
    all: bool


@dataclass(frozen=True, slots=True)
class Unstuck:
    """按 ESC 关闭卡住角色的界面。"""


PlayerAction = (
    Key
    | Move
    | SolveRune
    | AutoMob
    | PingPong
    | FamiliarsSwap
    | Panic
    | Chat
    | UseBooster
    | ExchangeBooster
    | Unstuck
)


def player_action_from(action: ActionKey | ActionMove) -> PlayerAction:
    """把用户动作模型转换为运行时动作。"""
    match action:
        case ActionMove():
            return Move.from_model(action)
        case ActionKey():
            return Key.from_model(action)
    raise TypeError(f"未知的动作类型: {type(action).__name__}")
