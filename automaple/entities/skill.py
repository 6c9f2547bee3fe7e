"""技能冷却追踪。

目前只追踪艾尔达斯之雨。识别到可用图标后记录图标中心的像素作为锚点，
之后每 tick 比较锚点像素，颜色变化即视为进入冷却，然后重新识别。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from automaple.entities.anchor import Anchor, anchor_match, pixel_at
from automaple.infra.exceptions import NotFoundError
from automaple.task import Task, update_detection_task
from automaple.types import StrEnum

if TYPE_CHECKING:
    from automaple.resources import Resources


class SkillKind(StrEnum):
    erda_shower = "ErdaShower"


@dataclass(frozen=True, slots=True)
class SkillDetecting:
    """正在识别技能图标。"""


@dataclass(frozen=True, slots=True)
class SkillIdle:
    """技能可用，记录图标锚点。"""

    anchor: Anchor


@dataclass(frozen=True, slots=True)
class SkillCooldown:
    """技能冷却中。"""


Skill = SkillDetecting | SkillIdle | SkillCooldown


@dataclass
class SkillEntity:
    kind: SkillKind
    state: Skill = field(default_factory=SkillDetecting)
    task: Task = field(default_factory=Task)


class SkillEntities:
    """按 :class:`SkillKind` 索引的技能实体集合。"""

    def __init__(self) -> None:
        self._entities = {kind: SkillEntity(kind) for kind in SkillKind}

    def __getitem__(self, kind: SkillKind) -> SkillEntity:
        return self._entities[kind]

    def __iter__(self):
        return iter(self._entities.values())


def run_system(resources: Resources, skill: SkillEntity, *, in_cash_shop: bool = False) -> None:
    """推进一次技能状态。"""
    if in_cash_shop:
        return

    match skill.state:
        case SkillIdle(anchor=anchor):
            pixel = pixel_at(resources.detector.mat, anchor.point)
            if pixel is None:
                skill.state = SkillDetecting()
            elif not anchor_match(anchor.color, pixel):
                logger.debug("技能 {} 进入冷却", skill.kind.value)
                skill.state = SkillCooldown()
        case SkillDetecting() | SkillCooldown():
            _update_detection(resources, skill)


def _update_detection(resources: Resources, skill: SkillEntity) -> None:
    def detect(detector) -> Anchor:
        match skill.kind:
            case SkillKind.erda_shower:
                bbox = detector.detect_erda_shower()
        point = bbox.center
        pixel = pixel_at(detector.mat, point)
        if pixel is None:
            raise NotFoundError(f"skill_anchor:{skill.kind.value}")
        return Anchor(point, pixel)

    update = update_detection_task(resources, 1000, skill.task, detect)
    if update.is_ok:
        skill.state = SkillIdle(update.value)
