"""基于 tick 的倒计时生命周期。

状态机中所有"等待 N 个 tick 再做某事"都用 :class:`Timeout` 表达，
推进函数 :func:`next_timeout_lifecycle` 给出三个转移点::

    Started  ── 首次推进，一次性入口副作用
    Updated  ── 中途推进，调用方按 current 取值触发子步骤
    Ended    ── 本轮结束，调用方须装入新的 Timeout() 才能开始下一轮

使用方式::

    match next_timeout_lifecycle(state.timeout, 5):
        case Started(timeout):
            input.send_key(KeyKind.Left)
            state = replace(state, timeout=timeout)
        case Updated(timeout):
            state = replace(state, timeout=timeout)
        case Ended():
            state = replace(state, timeout=Timeout())
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class Timeout:
    """倒计时数据。

    ``started`` 每轮只翻转一次。上限为 ``n`` 的一轮共推进 ``n + 1`` 次：
    一次 Started（current 为 0）、``n - 1`` 次 Updated（current 依次为 1..n-1）、
    一次 Ended。
    """

    current: int = 0
    """已推进的 tick 数"""
    total: int = 0
    """累计推进次数（含 Started）"""
    started: bool = False
    """是否已经触发过 Started"""

    def restarted(self) -> Timeout:
        """返回 ``started=False`` 的副本，使下一次推进重新触发 Started。"""
        return replace(self, started=False)


@dataclass(frozen=True, slots=True)
class Started:
    """首次推进。"""

    timeout: Timeout


@dataclass(frozen=True, slots=True)
class Updated:
    """中途推进。"""

    timeout: Timeout


@dataclass(frozen=True, slots=True)
class Ended:
    """倒计时结束。"""


Lifecycle = Started | Updated | Ended


def next_timeout_lifecycle(timeout: Timeout, total: int) -> Lifecycle:
    """推进一次倒计时。

    Parameters
    ----------
    timeout:
        当前倒计时。
    total:
        本轮最大 tick 数。

    Returns
    -------
    Lifecycle
        ``Started`` / ``Updated`` 携带推进后的倒计时；``Ended`` 不携带，
        调用方需要自行装入 ``Timeout()`` 以开始新一轮。
    """
    if not timeout.started:
        return Started(Timeout(current=0, total=timeout.total + 1, started=True))
    if timeout.current + 1 < total:
        return Updated(
            Timeout(current=timeout.current + 1, total=timeout.total + 1, started=True)
        )
    return Ended()
