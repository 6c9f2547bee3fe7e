"""测试公共 fixtures。"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from automaple.bridge import Detector, Input
from automaple.entities.buff import BuffEntities
from automaple.entities.minimap import MinimapEntity
from automaple.entities.skill import SkillEntities
from automaple.player.context import PlayerContext
from automaple.player.state import Idle, PlayerEntity
from automaple.resources import Resources, Rng, World


class ImmediateExecutor(Executor):
    """在提交时同步执行的线程池替身，提交后 future 立即完成。"""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs):
        self.submitted += 1
        future: Future = Future()
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        return future


class ManualExecutor(Executor):
    """手动控制完成时机的线程池替身。"""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, object, tuple]] = []
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs):
        self.submitted += 1
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for future, fn, args in pending:
            try:
                future.set_result(fn(*args))
            except Exception as e:
                future.set_exception(e)


@pytest.fixture
def tmp_yaml(tmp_path: Path):
    """创建临时 YAML 文件的工厂 fixture。"""

    def _factory(name: str, content: str) -> Path:
        p = tmp_path / name
        p.write_text(content, encoding="utf-8")
        return p

    return _factory


@pytest.fixture
def executor() -> ImmediateExecutor:
    return ImmediateExecutor()


@pytest.fixture
def manual_executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def fake_input() -> MagicMock:
    """所有按键都已释放的输入替身。"""
    inp = MagicMock(spec=Input)
    inp.is_key_cleared.return_value = True
    inp.all_keys_cleared.return_value = True
    return inp


@pytest.fixture
def fake_detector() -> MagicMock:
    return MagicMock(spec=Detector)


@pytest.fixture
def resources(fake_input, fake_detector, executor) -> Resources:
    return Resources(
        input=fake_input,
        notification=MagicMock(),
        rng=Rng(42),
        detector=fake_detector,
        executor=executor,
    )


@pytest.fixture
def player() -> PlayerEntity:
    return PlayerEntity(Idle(), PlayerContext())


@pytest.fixture
def world(player) -> World:
    return World(
        minimap=MinimapEntity(),
        player=player,
        skills=SkillEntities(),
        buffs=BuffEntities(),
    )
