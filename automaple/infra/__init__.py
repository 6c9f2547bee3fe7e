"""基础设施层：日志、配置、异常体系、文件工具。"""

from .config import (
    BotConfig,
    BuffBinding,
    ConfigManager,
    FamiliarsConfig,
    LogConfig,
    NotificationConfig,
    PlayerConfig,
    RotationConfig,
)
from .exceptions import (
    AutoMapleError,
    ConfigError,
    CriticalError,
    DetectionError,
    InputError,
    NotFoundError,
    NotificationError,
    StateProtocolError,
)
from .file_utils import load_yaml, merge_dicts
from .logger import save_image, setup_logger

__all__ = [
    # config
    "BotConfig",
    "BuffBinding",
    "ConfigManager",
    "FamiliarsConfig",
    "LogConfig",
    "NotificationConfig",
    "PlayerConfig",
    "RotationConfig",
    # exceptions
    "AutoMapleError",
    "ConfigError",
    "CriticalError",
    "DetectionError",
    "InputError",
    "NotFoundError",
    "NotificationError",
    "StateProtocolError",
    # file_utils
    "load_yaml",
    "merge_dicts",
    # logger
    "setup_logger",
    "save_image",
]
