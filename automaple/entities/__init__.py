"""玩家之外的追踪实体：小地图、增益、技能。

这些实体只依赖识别结果推进自身状态，供轮换器与玩家状态机只读引用。
"""

from .buff import Buff, BuffEntities, BuffEntity
from .minimap import Minimap, MinimapDetecting, MinimapEntity, MinimapIdle, Platform
from .skill import Skill, SkillCooldown, SkillDetecting, SkillEntities, SkillIdle, SkillKind

__all__ = [
    "Buff",
    "BuffEntities",
    "BuffEntity",
    "Minimap",
    "MinimapDetecting",
    "MinimapEntity",
    "MinimapIdle",
    "Platform",
    "Skill",
    "SkillCooldown",
    "SkillDetecting",
    "SkillEntities",
    "SkillIdle",
    "SkillKind",
]
