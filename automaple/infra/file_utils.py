"""配置文件读取工具。

机器人配置与轮换预设都是顶层为映射的 YAML 文件；命令行或调用方传入的覆盖项
通过 :func:`merge_dicts` 逐层叠加到文件内容之上。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError


def load_yaml(path: str | Path) -> dict[str, Any]:
    """加载顶层为映射的 YAML 配置文件。

    Parameters
    ----------
    path:
        YAML 文件路径。

    Returns
    -------
    dict[str, Any]
        解析后的字典，空文件返回 ``{}``。

    Raises
    ------
    ConfigError
        文件不存在、YAML 语法错误或顶层不是映射。
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"配置文件不存在: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"配置文件 {path} 解析失败: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"配置文件 {path} 顶层必须是映射")
    return data


def merge_dicts(base: dict, override: dict) -> dict:
    """深度合并两个字典，*override* 中的值优先，不修改任何一个输入字典。

    列表整体替换而不是拼接，``rotation.actions`` 的覆盖项会取代文件中的动作列表。
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result
