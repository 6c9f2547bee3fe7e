"""外部协作者接口：识别器与输入发送器。"""

from .detector import Detector
from .input import Input

__all__ = [
    "Detector",
    "Input",
]
