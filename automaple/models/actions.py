"""用户动作的持久化模型：基于 Pydantic v2。

动作列表写在 YAML 的 ``rotation.actions`` 下，每项以 ``type`` 区分::

    - type: Key
      key: A
      condition: {kind: EveryMillis, millis: 5000}
      with: Stationary
      wait_after_use_millis: 300
    - type: Move
      position: {x: 120, y: 40}
      condition: {kind: Linked}

所有时长以毫秒给出，进入状态机前由 :mod:`automaple.player.actions` 换算为 tick。
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from automaple.geometry import Rect
from automaple.types import (
    ActionConditionKind,
    ActionKeyDirection,
    ActionKeyWith,
    KeyKind,
    LinkKeyKind,
    WaitAfterBuffered,
)


class Position(BaseModel):
    """动作目标位置（玩家坐标）。"""

    model_config = {"frozen": True}

    x: int
    x_random_range: int = 0
    """x 的随机偏移范围，实际目标为 ``x ± range``"""
    y: int
    allow_adjusting: bool = False
    """是否需要精确对齐 x（会启用更小的微调阈值）"""


class LinkKeyBinding(BaseModel):
    """连携键。``kind`` 为 ``None`` 时没有连携键。"""

    model_config = {"frozen": True}

    kind: LinkKeyKind = LinkKeyKind.none
    key: KeyKind | None = None

    @model_validator(mode="after")
    def _require_key(self) -> LinkKeyBinding:
        if self.kind is not LinkKeyKind.none and self.key is None:
            raise ValueError(f"连携方式 {self.kind.value} 需要指定 key")
        return self

    @property
    def is_none(self) -> bool:
        return self.kind is LinkKeyKind.none


class ActionCondition(BaseModel):
    """动作的触发条件。"""

    model_config = {"frozen": True}

    kind: ActionConditionKind = ActionConditionKind.any
    millis: int = 0
    """仅 ``EveryMillis`` 使用"""

    @model_validator(mode="after")
    def _check_millis(self) -> ActionCondition:
        if self.kind is ActionConditionKind.every_millis and self.millis <= 0:
            raise ValueError("EveryMillis 条件的 millis 必须为正整数")
        return self

    @classmethod
    def every_millis(cls, millis: int) -> ActionCondition:
        return cls(kind=ActionConditionKind.every_millis, millis=millis)

    @classmethod
    def linked(cls) -> ActionCondition:
        return cls(kind=ActionConditionKind.linked)

    @classmethod
    def erda_shower_off_cooldown(cls) -> ActionCondition:
        return cls(kind=ActionConditionKind.erda_shower_off_cooldown)


class ActionMove(BaseModel):
    """移动到指定位置。"""

    model_config = {"frozen": True}

    type: Literal["Move"] = "Move"
    position: Position
    condition: ActionCondition = Field(default_factory=ActionCondition)
    wait_after_move_millis: int = 0


class ActionKey(BaseModel):
    """在（可选的）指定位置使用按键。"""

    model_config = {"frozen": True, "populate_by_name": True}

    type: Literal["Key"] = "Key"
    key: KeyKind
    key_hold_millis: int = 0
    """按住主键的时长"""
    key_hold_buffered_to_wait_after: bool = False
    """按住期间不停留在原地，而是并入按键后的后台等待"""
    link_key: LinkKeyBinding = Field(default_factory=LinkKeyBinding)
    count: int = 1
    """连续使用次数"""
    position: Position | None = None
    condition: ActionCondition = Field(default_factory=ActionCondition)
    direction: ActionKeyDirection = ActionKeyDirection.any
    with_: ActionKeyWith = Field(default=ActionKeyWith.any, alias="with")
    wait_before_use_millis: int = 0
    wait_before_use_millis_random_range: int = 0
    wait_after_use_millis: int = 0
    wait_after_use_millis_random_range: int = 0
    wait_after_buffered: WaitAfterBuffered = WaitAfterBuffered.none
    queue_to_front: bool = False
    """作为优先动作时是否插队到队首"""

    @field_validator("count")
    @classmethod
    def _validate_count(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("count 必须为正整数")
        return v


Action = Annotated[ActionMove | ActionKey, Field(discriminator="type")]
"""用户动作，``Move`` 或 ``Key``。"""


class MobbingKey(BaseModel):
    """自动打怪 / 来回刷怪模式使用的按键。"""

    model_config = {"frozen": True, "populate_by_name": True}

    key: KeyKind
    key_hold_millis: int = 0
    link_key: LinkKeyBinding = Field(default_factory=LinkKeyBinding)
    count: int = 1
    with_: ActionKeyWith = Field(default=ActionKeyWith.any, alias="with")
    wait_before_millis: int = 0
    wait_before_millis_random_range: int = 0
    wait_after_millis: int = 0
    wait_after_millis_random_range: int = 0


class Bound(BaseModel):
    """小地图上的矩形范围（图像坐标，左上角原点）。"""

    model_config = {"frozen": True}

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def to_rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)
