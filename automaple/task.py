"""非阻塞的后台查询槽位。

识别调用动辄数十毫秒，主循环不能等待。每个需要识别结果的地方持有一个
:class:`Task` 槽位，每 tick 轮询一次::

    槽位为空且节流已过  → 提交查询，返回 Pending
    查询未完成          → Pending，不重复提交
    查询已完成          → 交付结果一次（Ok / Err），清空槽位，记录完成 tick

``repeat_delay`` 以 tick 计，从完成（被消费）那一刻开始计算；为 0 时在交付的同一次
轮询里立即提交下一次查询。查询函数在提交时快照参数，完成时世界可能已经变化。

使用方式::

    update = update_detection_task(
        resources, 1000, context.health_bar_task,
        lambda detector: detector.detect_player_health_bar(),
    )
    if update.is_ok:
        context.health_bar = update.value
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from loguru import logger

from automaple.infra.exceptions import NotFoundError
from automaple.resources import millis_to_ticks

if TYPE_CHECKING:
    from automaple.bridge import Detector
    from automaple.resources import Resources

T = TypeVar("T")
A = TypeVar("A")


class UpdateKind(Enum):
    """一次轮询的结果种类。"""

    OK = auto()
    """查询成功完成。"""

    ERR = auto()
    """查询抛出异常。"""

    PENDING = auto()
    """尚无结果，下个 tick 再试。"""


@dataclass(frozen=True, slots=True)
class Update(Generic[T]):
    """:meth:`Task.poll` 的返回值。"""

    kind: UpdateKind
    value: T | None = None
    error: Exception | None = None

    @classmethod
    def ok(cls, value: T) -> Update[T]:
        return cls(UpdateKind.OK, value=value)

    @classmethod
    def err(cls, error: Exception) -> Update[T]:
        return cls(UpdateKind.ERR, error=error)

    @classmethod
    def pending(cls) -> Update[T]:
        return _PENDING

    @property
    def is_ok(self) -> bool:
        return self.kind is UpdateKind.OK

    @property
    def is_err(self) -> bool:
        return self.kind is UpdateKind.ERR

    @property
    def is_pending(self) -> bool:
        return self.kind is UpdateKind.PENDING


_PENDING: Update[Any] = Update(UpdateKind.PENDING)


class Task(Generic[T]):
    """单个后台查询槽位。

    同一时刻最多一个在途查询。槽位只属于声明它的对象，不可共享。
    """

    __slots__ = ("_future", "_completed_tick")

    def __init__(self) -> None:
        self._future: Future[T] | None = None
        self._completed_tick: int | None = None

    def __repr__(self) -> str:
        state = "empty" if self._future is None else ("done" if self._future.done() else "running")
        return f"Task({state}, completed_tick={self._completed_tick})"

    @property
    def in_flight(self) -> bool:
        """是否有已提交但尚未被消费的查询。"""
        return self._future is not None

    @property
    def completed(self) -> bool:
        """在途查询是否已经完成（结果尚未交付）。"""
        return self._future is not None and self._future.done()

    def join(self, timeout: float | None = None) -> None:
        """阻塞等待在途查询完成。仅用于测试与关闭流程，主循环中禁止调用。"""
        if self._future is not None:
            self._future.exception(timeout=timeout)

    def poll(
        self,
        tick: int,
        repeat_delay: int,
        query: Callable[..., T],
        executor: Executor,
        args: Callable[[], Any] | None = None,
    ) -> Update[T]:
        """轮询槽位。

        Parameters
        ----------
        tick:
            当前 tick。
        repeat_delay:
            两次查询之间至少间隔的 tick 数，从上一次结果交付时开始计算。
        query:
            在工作线程中执行的函数，抛出异常即视为失败。
        executor:
            执行查询的线程池。
        args:
            可选的参数快照函数。仅在真正提交时于主线程调用一次，
            其返回值作为 *query* 的唯一参数。

        Returns
        -------
        Update[T]
            ``Ok`` / ``Err`` 每个查询只交付一次，其余情况为 ``Pending``。
        """
        update: Update[T] = _PENDING
        if self._future is not None:
            if not self._future.done():
                return _PENDING
            future, self._future = self._future, None
            self._completed_tick = tick
            error = future.exception()
            if error is None:
                update = Update.ok(future.result())
            elif isinstance(error, Exception):
                update = Update.err(error)
            else:
                raise error

        if self._completed_tick is None or tick - self._completed_tick >= repeat_delay:
            if args is None:
                self._future = executor.submit(query)
            else:
                self._future = executor.submit(query, args())
        return update


def update_task(
    resources: Resources,
    repeat_delay_millis: int,
    task: Task[T],
    task_fn_args: Callable[[], A],
    task_fn: Callable[[A], T],
) -> Update[T]:
    """以毫秒节流轮询 *task*。

    *task_fn_args* 在主线程、仅在提交新查询时调用，用于快照参数；
    *task_fn* 接收该快照并在工作线程中运行。
    """
    update = task.poll(
        resources.tick,
        millis_to_ticks(repeat_delay_millis),
        task_fn,
        resources.executor,
        args=task_fn_args,
    )
    if update.is_err and not isinstance(update.error, NotFoundError):
        logger.opt(exception=update.error).warning("后台查询异常")
    return update


def update_detection_task(
    resources: Resources,
    repeat_delay_millis: int,
    task: Task[T],
    task_fn: Callable[[Detector], T],
) -> Update[T]:
    """:func:`update_task` 的识别版本，参数为提交时刻的识别器句柄。"""
    return update_task(resources, repeat_delay_millis, task, resources.detector_cloned, task_fn)
