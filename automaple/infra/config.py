"""配置管理：基于 Pydantic v2。

配置从 YAML 文件加载，经过 Pydantic 校验后生成不可变的配置对象。

使用方式::

    from automaple.infra.config import ConfigManager

    config = ConfigManager.load("settings.yaml")
    print(config.rotation.mode)
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator

from .file_utils import load_yaml, merge_dicts
from automaple.models.actions import Action, Bound, MobbingKey
from automaple.types import (
    ActionConditionKind,
    BuffKind,
    Class,
    EliteBossBehavior,
    FamiliarRarity,
    KeyKind,
    NotificationKind,
    PanicTo,
    RotationMode,
    SwappableFamiliars,
)


# ── 子配置模型 ──


class LogConfig(BaseModel):
    """日志配置。"""

    model_config = {"frozen": True}

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    """日志级别"""
    root: Path = Path("log")
    """日志保存根目录"""
    dir: Path | None = None
    """日志保存路径。自动按日期生成"""
    save_images: bool = False
    """是否保存符文解除失败时的截图"""

    @model_validator(mode="after")
    def _set_log_dir(self) -> LogConfig:
        if self.dir is None:
            ts = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            object.__setattr__(self, "dir", self.root / ts)
        return self


class PlayerConfig(BaseModel):
    """角色配置。

    对应玩家上下文中的只读配置，按键为 None 表示该功能未绑定。
    """

    model_config = {"frozen": True, "populate_by_name": True}

    class_: Class = Field(default=Class.generic, alias="class")
    """职业，仅影响连携键时间窗口"""

    # 移动
    disable_double_jumping: bool = False
    disable_adjusting: bool = False
    disable_teleport_on_fall: bool = False
    up_jump_is_flight: bool = False
    """上跳需要按住按键飞行"""
    up_jump_specific_key_should_jump: bool = False
    """专用上跳键需要先起跳"""

    # 自动打怪
    auto_mob_platforms_bound: bool = False
    """使用平台范围代替配置的打怪范围"""
    auto_mob_use_key_when_pathing: bool = False
    """寻路途中如果发现怪物就直接使用按键"""
    auto_mob_use_key_when_pathing_update_millis: int = 1000

    # 按键
    interact_key: KeyKind = KeyKind.Space
    jump_key: KeyKind = KeyKind.Alt
    grappling_key: KeyKind | None = None
    """绳索技能"""
    teleport_key: KeyKind | None = None
    """瞬移技能，None 表示使用二段跳"""
    up_jump_key: KeyKind | None = None
    """上跳技能，None 表示 ↑ + 二段跳"""
    cash_shop_key: KeyKind | None = None
    familiar_menu_key: KeyKind | None = None
    to_town_key: KeyKind | None = None
    change_channel_key: KeyKind | None = None
    generic_booster_key: KeyKind | None = None
    hexa_booster_key: KeyKind | None = None

    # 药水
    potion_key: KeyKind | None = None
    use_potion_below_percent: float | None = None
    """血量低于该比例时喝药，取值 (0, 1]"""
    update_health_millis: int = 1000

    @field_validator("use_potion_below_percent")
    @classmethod
    def _validate_percent(cls, v: float | None) -> float | None:
        if v is not None and not 0 < v <= 1:
            raise ValueError("use_potion_below_percent 必须位于 (0, 1] 区间")
        return v


class BuffBinding(BaseModel):
    """增益与其施放按键。"""

    model_config = {"frozen": True}

    kind: BuffKind
    key: KeyKind


class FamiliarsConfig(BaseModel):
    """宠物替换配置。"""

    model_config = {"frozen": True}

    enable_familiars_swapping: bool = False
    swap_check_millis: int = 300_000
    """检查间隔"""
    swappable_familiars: SwappableFamiliars = SwappableFamiliars.all
    swappable_rarities: list[FamiliarRarity] = Field(default_factory=list)


class RotationConfig(BaseModel):
    """动作轮换配置。"""

    model_config = {"frozen": True}

    mode: RotationMode = RotationMode.start_to_end_then_reverse
    """普通动作的轮换方式"""
    mobbing_key: MobbingKey | None = None
    """自动打怪 / 来回刷怪使用的按键"""
    auto_mob_bound: Bound = Field(default_factory=Bound)
    ping_pong_bound: Bound = Field(default_factory=Bound)
    actions: list[Action] = Field(default_factory=list)
    """用户动作列表"""
    buffs: list[BuffBinding] = Field(default_factory=list)
    familiar_essence_key: KeyKind = KeyKind.Nine
    familiars: FamiliarsConfig = Field(default_factory=FamiliarsConfig)

    elite_boss_behavior: EliteBossBehavior = EliteBossBehavior.none
    elite_boss_behavior_key: KeyKind | None = None

    enable_hexa_booster_exchange: bool = False
    hexa_booster_exchange_amount: int = 1
    hexa_booster_exchange_all: bool = False

    enable_panic_mode: bool = False
    panic_to: PanicTo = PanicTo.channel
    enable_rune_solving: bool = True
    enable_reset_normal_actions_on_erda: bool = False
    """艾尔达斯之雨冷却结束的动作入队时重置普通轮换"""
    enable_using_generic_booster: bool = False
    enable_using_hexa_booster: bool = False

    @model_validator(mode="after")
    def _check_mode(self) -> RotationConfig:
        if (
            self.mode in (RotationMode.auto_mobbing, RotationMode.ping_pong)
            and self.mobbing_key is None
        ):
            raise ValueError(f"轮换模式 {self.mode.value} 需要配置 mobbing_key")
        if self.elite_boss_behavior is EliteBossBehavior.use_key and (
            self.elite_boss_behavior_key is None
        ):
            raise ValueError("精英 Boss 应对方式为 UseKey 时需要配置 elite_boss_behavior_key")
        if self.actions and self.actions[0].condition.kind is ActionConditionKind.linked:
            raise ValueError("第一个动作不能是 Linked 条件")
        return self


class NotificationConfig(BaseModel):
    """通知推送配置。"""

    model_config = {"frozen": True}

    discord_webhook_url: str | None = None
    """Discord Webhook 地址，None 表示禁用"""
    discord_user_id: str | None = None
    """需要 @ 的用户"""
    notify_on: list[NotificationKind] = Field(default_factory=lambda: list(NotificationKind))
    """推送的事件种类"""
    timeout: float = 10.0
    """HTTP 请求超时（秒）"""

    @property
    def enabled(self) -> bool:
        return bool(self.discord_webhook_url)


# ── 顶层配置 ──


class BotConfig(BaseModel):
    """机器人配置（顶层聚合）。"""

    model_config = {"frozen": True}

    log: LogConfig = Field(default_factory=LogConfig)
    player: PlayerConfig = Field(default_factory=PlayerConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)

    seed: int | None = None
    """随机数种子，None 表示不固定"""
    task_workers: int = 4
    """后台识别线程数"""

    @field_validator("task_workers")
    @classmethod
    def _validate_workers(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("task_workers 必须为正整数")
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> BotConfig:
        """从 YAML 文件加载配置。"""
        data = load_yaml(path)
        return cls.model_validate(data)


# ── ConfigManager ──


class ConfigManager:
    """配置管理器：提供加载入口。"""

    @staticmethod
    def load(path: str | Path, overrides: dict[str, Any] | None = None) -> BotConfig:
        """从文件加载配置。不存在时返回默认配置。

        Parameters
        ----------
        path:
            YAML 文件路径。
        overrides:
            覆盖项，递归合并到文件内容之上。

        Raises
        ------
        ConfigError
            YAML 语法错误或顶层不是映射。
        """
        path = Path(path)
        if not path.exists():
            logger.warning("配置文件 {} 不存在，使用默认配置", path)
            data: Any = {}
        else:
            data = load_yaml(path)
            logger.info("已加载配置: {}", path)
        if overrides:
            data = merge_dicts(data, overrides)
        return BotConfig.model_validate(data)
