"""全局枚举类型定义。

所有与按键、动作、职业、增益相关的枚举集中于此，供各层引用。
字符串值与 YAML 配置中的写法保持一致。
"""

from __future__ import annotations

from enum import Enum


# ── 枚举基类 ──


class BaseEnum(Enum):
    """提供更友好的中文报错信息。"""

    @classmethod
    def _missing_(cls, value: object) -> None:
        supported = ", ".join(str(m.value) for m in cls)
        raise ValueError(f'"{value}" 不是合法的 {cls.__name__} 取值。 支持: [{supported}]')


class StrEnum(str, BaseEnum):
    """字符串枚举基类。"""


class IntEnum(int, BaseEnum):
    """整数枚举基类。"""


# ── 输入 ──


class KeyKind(StrEnum):
    """可发送的键盘按键。"""

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"
    G = "G"
    H = "H"
    I = "I"  # noqa: E741
    J = "J"
    K = "K"
    L = "L"
    M = "M"
    N = "N"
    O = "O"  # noqa: E741
    P = "P"
    Q = "Q"
    R = "R"
    S = "S"
    T = "T"
    U = "U"
    V = "V"
    W = "W"
    X = "X"
    Y = "Y"
    Z = "Z"

    Zero = "0"
    One = "1"
    Two = "2"
    Three = "3"
    Four = "4"
    Five = "5"
    Six = "6"
    Seven = "7"
    Eight = "8"
    Nine = "9"

    F1 = "F1"
    F2 = "F2"
    F3 = "F3"
    F4 = "F4"
    F5 = "F5"
    F6 = "F6"
    F7 = "F7"
    F8 = "F8"
    F9 = "F9"
    F10 = "F10"
    F11 = "F11"
    F12 = "F12"

    Up = "Up"
    Down = "Down"
    Left = "Left"
    Right = "Right"

    Home = "Home"
    End = "End"
    PageUp = "PageUp"
    PageDown = "PageDown"
    Insert = "Insert"
    Delete = "Delete"
    Backspace = "Backspace"

    Ctrl = "Ctrl"
    Enter = "Enter"
    Space = "Space"
    Tilde = "Tilde"
    Quote = "Quote"
    Semicolon = "Semicolon"
    Comma = "Comma"
    Period = "Period"
    Slash = "Slash"
    Esc = "Esc"
    Shift = "Shift"
    Alt = "Alt"


ARROW_KEYS: tuple[KeyKind, ...] = (KeyKind.Down, KeyKind.Up, KeyKind.Left, KeyKind.Right)
"""方向键，状态切换时统一松开。"""


class MouseKind(StrEnum):
    """鼠标操作类型。"""

    move = "Move"
    click = "Click"
    scroll = "Scroll"


# ── 动作 ──


class ActionKeyWith(StrEnum):
    """按键动作的前置姿态要求。"""

    any = "Any"
    stationary = "Stationary"
    double_jump = "DoubleJump"


class ActionKeyDirection(StrEnum):
    """按键动作要求的朝向。"""

    any = "Any"
    left = "Left"
    right = "Right"


class LinkKeyKind(StrEnum):
    """连携键相对主键的发送时机。"""

    none = "None"
    before = "Before"
    at_the_same = "AtTheSame"
    after = "After"
    along = "Along"


class WaitAfterBuffered(StrEnum):
    """按键后等待是否转为后台缓冲。

    - ``none``: 在 Stalling 状态中原地等待。
    - ``interruptible``: 后台计时，下一个优先动作到来时被清除。
    - ``uninterruptible``: 后台计时，直到自然结束。
    """

    none = "None"
    interruptible = "Interruptible"
    uninterruptible = "Uninterruptible"


class ActionConditionKind(StrEnum):
    """动作的触发条件种类。"""

    any = "Any"
    every_millis = "EveryMillis"
    erda_shower_off_cooldown = "ErdaShowerOffCooldown"
    linked = "Linked"


# ── 角色 / 增益 ──


class Class(StrEnum):
    """职业，仅用于决定连携键的时间窗口。"""

    cadena = "Cadena"
    blaster = "Blaster"
    ark = "Ark"
    generic = "Generic"


class BuffKind(StrEnum):
    """可识别的增益种类。"""

    rune = "Rune"
    familiar = "Familiar"
    sayram_elixir = "SayramElixir"
    aurelia_elixir = "AureliaElixir"
    exp_coupon_x2 = "ExpCouponX2"
    exp_coupon_x3 = "ExpCouponX3"
    exp_coupon_x4 = "ExpCouponX4"
    bonus_exp_coupon = "BonusExpCoupon"
    legion_wealth = "LegionWealth"
    legion_luck = "LegionLuck"
    wealth_acquisition_potion = "WealthAcquisitionPotion"
    exp_accumulation_potion = "ExpAccumulationPotion"
    small_wealth_acquisition_potion = "SmallWealthAcquisitionPotion"
    small_exp_accumulation_potion = "SmallExpAccumulationPotion"
    for_the_guild = "ForTheGuild"
    hard_hitter = "HardHitter"
    extreme_red_potion = "ExtremeRedPotion"
    extreme_blue_potion = "ExtremeBluePotion"
    extreme_green_potion = "ExtremeGreenPotion"
    extreme_gold_potion = "ExtremeGoldPotion"

    @property
    def exclusive_with(self) -> tuple[BuffKind, ...]:
        """同时只能生效一个的增益组。"""
        for group in _EXCLUSIVE_BUFFS:
            if self in group:
                return tuple(kind for kind in group if kind is not self)
        return ()


_EXCLUSIVE_BUFFS: tuple[tuple[BuffKind, ...], ...] = (
    (
        BuffKind.exp_coupon_x2,
        BuffKind.exp_coupon_x3,
        BuffKind.exp_coupon_x4,
    ),
    (BuffKind.sayram_elixir, BuffKind.aurelia_elixir),
    (BuffKind.wealth_acquisition_potion, BuffKind.small_wealth_acquisition_potion),
    (BuffKind.exp_accumulation_potion, BuffKind.small_exp_accumulation_potion),
)


class BoosterKind(StrEnum):
    """经验加速器种类。"""

    generic = "Generic"
    hexa = "Hexa"


class QuickSlotsBooster(StrEnum):
    """快捷栏中加速器的识别结果。"""

    available = "Available"
    unavailable = "Unavailable"


class EliteBossBehavior(StrEnum):
    """精英 Boss 出现时的应对方式。"""

    none = "None"
    cycle_channel = "CycleChannel"
    use_key = "UseKey"


class PanicTo(StrEnum):
    """遇到其他玩家时的撤离目标。"""

    town = "Town"
    channel = "Channel"


class OtherPlayerKind(StrEnum):
    """小地图上的其他玩家种类。"""

    guildie = "Guildie"
    stranger = "Stranger"
    friend = "Friend"


class NotificationKind(StrEnum):
    """可推送的通知事件。"""

    fail_or_map_changed = "FailOrMapChanged"
    rune_appeared = "RuneAppeared"
    elite_boss_appeared = "EliteBossAppeared"
    player_is_dead = "PlayerIsDead"
    player_guildie_appeared = "PlayerGuildieAppeared"
    player_stranger_appeared = "PlayerStrangerAppeared"
    player_friend_appeared = "PlayerFriendAppeared"


# ── 轮换 ──


class RotationMode(StrEnum):
    """普通动作的轮换方式。"""

    start_to_end = "StartToEnd"
    start_to_end_then_reverse = "StartToEndThenReverse"
    auto_mobbing = "AutoMobbing"
    ping_pong = "PingPong"


class SwappableFamiliars(StrEnum):
    """允许被替换的宠物栏位。"""

    all = "All"
    last = "Last"
    second_and_last = "SecondAndLast"


class FamiliarRarity(StrEnum):
    """可替换的宠物稀有度。"""

    rare = "Rare"
    epic = "Epic"
