"""automaple：横版游戏自动化的决策与控制核心。

模块组成::

    automaple/
    ├── resources.py      # tick、随机数、共享资源与实体容器
    ├── task.py           # 非阻塞后台查询槽位
    ├── timeout.py        # tick 计时器
    ├── bridge/           # 识别器与输入发送器接口
    ├── entities/         # 小地图、增益、技能追踪
    ├── player/           # 玩家上下文与状态机
    ├── rotator/          # 动作轮换器
    ├── notification.py   # Discord 通知
    └── bot.py            # 主循环
"""

__version__ = "0.1.0"
