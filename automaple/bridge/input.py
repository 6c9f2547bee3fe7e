"""输入接口。

输入是"发出即忘"的：实现内部自行模拟按键间隔与释放延迟，
发送失败只记录日志，绝不向状态机抛出异常。

按键释放遵循独立的随机延迟，状态机需要通过 :meth:`Input.is_key_cleared`
确认上一次按下的键已经真正松开，才能可靠地改变朝向。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from automaple.infra.exceptions import InputError
from automaple.types import KeyKind, MouseKind


class Input(ABC):
    """输入发送器抽象基类。

    子类实现 ``_send_*`` 系列方法，可直接抛出 :class:`InputError`；
    公开方法负责记录并吞掉失败。
    """

    # ── 公开接口 ──

    def send_key(self, key: KeyKind) -> None:
        """按下并松开一个键。"""
        self._guard("send_key", self._send_key, key)

    def send_key_down(self, key: KeyKind, repeatable: bool = False) -> None:
        """按住一个键。*repeatable* 为 True 时重复调用会再次触发按下事件。"""
        self._guard("send_key_down", self._send_key_down, key, repeatable)

    def send_key_up(self, key: KeyKind) -> None:
        self._guard("send_key_up", self._send_key_up, key)

    def send_mouse(self, x: int, y: int, kind: MouseKind) -> None:
        """在窗口坐标 ``(x, y)`` 处执行鼠标操作。"""
        self._guard("send_mouse", self._send_mouse, x, y, kind)

    @abstractmethod
    def is_key_cleared(self, key: KeyKind) -> bool:
        """*key* 的模拟释放是否已经完成。"""
        ...

    @abstractmethod
    def all_keys_cleared(self) -> bool:
        ...

    # ── 子类实现 ──

    @abstractmethod
    def _send_key(self, key: KeyKind) -> None: ...

    @abstractmethod
    def _send_key_down(self, key: KeyKind, repeatable: bool) -> None: ...

    @abstractmethod
    def _send_key_up(self, key: KeyKind) -> None: ...

    @abstractmethod
    def _send_mouse(self, x: int, y: int, kind: MouseKind) -> None: ...

    # ── 内部 ──

    @staticmethod
    def _guard(operation: str, fn, *args) -> None:
        try:
            fn(*args)
        except InputError as e:
            logger.warning("{}", e)
        except OSError as e:
            logger.warning("{}", InputError(operation, str(e)))
