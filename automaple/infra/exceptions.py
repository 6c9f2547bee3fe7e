"""AutoMaple 异常层级体系。

层级树::

    AutoMapleError
    ├── ConfigError
    ├── DetectionError
    │   └── NotFoundError
    ├── InputError
    ├── NotificationError
    ├── StateProtocolError
    └── CriticalError

处理约定:

- ``NotFoundError`` 属于瞬时失败，经 Task 以失败结果交付，下一个可用 tick 重试。
- ``InputError`` / ``NotificationError`` 在调用点记录日志后吞掉，不得卡住主循环。
- ``StateProtocolError`` 是编程错误，必须直接抛出终止循环。
"""

from __future__ import annotations


# ── 基类 ──


class AutoMapleError(Exception):
    """所有 AutoMaple 异常的基类。"""


# ── 基础设施异常 ──


class ConfigError(AutoMapleError):
    """配置错误（文件缺失、字段非法等）。"""


# ── 识别异常 ──


class DetectionError(AutoMapleError):
    """视觉识别相关错误。"""


class NotFoundError(DetectionError):
    """识别器未能在当前帧中找到目标。"""

    def __init__(self, target: str = "") -> None:
        self.target = target
        super().__init__(f"未找到目标 '{target}'")


# ── 外部协作者异常 ──


class InputError(AutoMapleError):
    """按键 / 鼠标输入发送失败。"""

    def __init__(self, operation: str, reason: str = "") -> None:
        self.operation = operation
        msg = f"输入失败: {operation}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class NotificationError(AutoMapleError):
    """通知发送失败。"""


# ── 状态机异常 ──


class StateProtocolError(AutoMapleError):
    """在错误的状态上调用了状态专属操作。"""

    def __init__(self, expected: str, actual: object) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"状态不是 {expected}: {actual!r}")


# ── 不可恢复错误 ──


class CriticalError(AutoMapleError):
    """不可恢复的严重错误，需要终止。"""
