"""主循环。

每 tick 的顺序固定::

    截取一帧 → 小地图 / 技能 / 增益追踪 → 轮换器（入队 → 出队 → 普通动作）→ 玩家状态

典型使用::

    from automaple.bot import Bot
    from automaple.infra import ConfigManager

    config = ConfigManager.load("settings.yaml")
    bot = Bot.from_config(config, capture=grab_detector, input_=keyboard)
    bot.run()
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from loguru import logger

from automaple.bridge import Detector, Input
from automaple.entities import buff as buff_system
from automaple.entities import minimap as minimap_system
from automaple.entities import skill as skill_system
from automaple.entities.buff import BuffEntities
from automaple.entities.minimap import MinimapDetecting, MinimapEntity, MinimapIdle
from automaple.entities.skill import SkillEntities
from automaple.infra.config import BotConfig
from automaple.notification import DiscordNotification
from automaple.player import system as player_system
from automaple.player.context import PlayerContext
from automaple.player.state import CashShopThenExit, Idle, PlayerEntity, SolvingRune
from automaple.resources import MS_PER_TICK, Operation, Resources, Rng, World
from automaple.rotator import Rotator, RotatorBuildArgs
from automaple.types import BuffKind, NotificationKind

FrameSource = Callable[[], "Detector | None"]
"""截取当前帧并返回识别器，窗口不可用时返回 None"""


class Bot:
    """驱动全部实体的主循环。

    Parameters
    ----------
    resources:
        共享资源，:attr:`Resources.tick` 由本类推进。
    world:
        实体容器。
    rotator:
        已生成动作的轮换器。
    capture:
        每 tick 调用一次的帧来源。
    """

    def __init__(
        self,
        resources: Resources,
        world: World,
        rotator: Rotator,
        capture: FrameSource,
    ) -> None:
        self.resources = resources
        self.world = world
        self.rotator = rotator
        self._capture = capture
        self._stopped = False

    @classmethod
    def from_config(cls, config: BotConfig, capture: FrameSource, input_: Input) -> Bot:
        """按配置组装资源、实体与轮换器。"""
        executor = ThreadPoolExecutor(
            max_workers=config.task_workers, thread_name_prefix="automaple-task"
        )
        resources = Resources(
            input=input_,
            notification=DiscordNotification(config.notification),
            rng=Rng(config.seed),
            executor=executor,
        )
        buffs = BuffEntities()
        buffs.update_enabled({BuffKind.rune, *(buff.kind for buff in config.rotation.buffs)})
        world = World(
            minimap=MinimapEntity(),
            player=PlayerEntity(Idle(), PlayerContext(config.player)),
            skills=SkillEntities(),
            buffs=buffs,
        )
        rotator = Rotator()
        rotator.build_actions(RotatorBuildArgs.from_config(config.rotation))
        return cls(resources, world, rotator, capture)

    # ═══════════════════════════════════════════════════════════════════════════
    # 公共接口
    # ═══════════════════════════════════════════════════════════════════════════

    def step(self) -> None:
        """执行一个 tick。"""
        resources = self.resources
        world = self.world

        detector = self._capture()
        if detector is not None:
            resources.detector = detector
            self._update_world(resources, world)

        resources.tick += 1

    def run(self, max_ticks: int | None = None) -> None:
        """以固定帧率循环执行 :meth:`step`，直到 :meth:`stop` 或达到 *max_ticks*。"""
        self._stopped = False
        interval = MS_PER_TICK / 1000
        ticks = 0
        logger.info("主循环启动")
        while not self._stopped and (max_ticks is None or ticks < max_ticks):
            start = time.perf_counter()
            self.step()
            ticks += 1
            elapsed = time.perf_counter() - start
            if elapsed < interval:
                time.sleep(interval - elapsed)
            else:
                logger.trace("tick {} 耗时 {:.1f}ms", self.resources.tick, elapsed * 1000)
        logger.info("主循环结束 共 {} tick", ticks)

    def stop(self) -> None:
        self._stopped = True

    def halt(self) -> None:
        """暂停轮换，只执行注入的动作。"""
        self.resources.operation = Operation.halting
        self.world.player.context.clear_actions_aborted(True)
        self.rotator.reset_queue()

    def resume(self) -> None:
        self.resources.operation = Operation.running

    def shutdown(self) -> None:
        """停止主循环并关闭后台线程池，不等待在途查询。"""
        self.stop()
        self.resources.executor.shutdown(wait=False, cancel_futures=True)

    # ═══════════════════════════════════════════════════════════════════════════
    # 内部方法
    # ═══════════════════════════════════════════════════════════════════════════

    def _update_world(self, resources: Resources, world: World) -> None:
        player_state = world.player.state
        in_cash_shop = isinstance(player_state, CashShopThenExit)
        solving_rune = isinstance(player_state, SolvingRune)
        was_minimap_idle = isinstance(world.minimap.state, MinimapIdle)

        minimap_system.run_system(
            resources, world.minimap, in_cash_shop=in_cash_shop, solving_rune=solving_rune
        )
        for skill in world.skills:
            skill_system.run_system(resources, skill, in_cash_shop=in_cash_shop)
        for buff in world.buffs:
            buff_system.run_system(resources, buff, in_cash_shop=in_cash_shop)

        if was_minimap_idle and isinstance(world.minimap.state, MinimapDetecting):
            self._on_minimap_changed(resources, world)

        self.rotator.rotate_action(resources, world)
        player_system.run_system(resources, world.player, world.minimap, world.buffs)

    def _on_minimap_changed(self, resources: Resources, world: World) -> None:
        logger.info("小地图变化，重置玩家状态与动作队列")
        world.player.context.reset()
        self.rotator.reset_queue()
        resources.notification.schedule_notification(NotificationKind.fail_or_map_changed)
