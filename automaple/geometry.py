"""整数像素几何类型。

小地图相关坐标有两套约定:

- **图像坐标**：OpenCV 原生，左上角为原点，y 向下增长。识别器返回值均为此坐标。
- **玩家坐标**：左下角为原点，y 向上增长，``y = 小地图高度 - 图像 y``。
  玩家位置、动作目标点、平台均使用此坐标。

使用方式::

    from automaple.geometry import Point, Rect

    bbox = Rect(10, 20, 200, 100)
    bbox.contains(Point(15, 30))        # True
    bbox.flip_y(height=120)             # 转换到玩家坐标
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Point:
    """二维整数点。"""

    x: int
    y: int

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def dot(self, other: Point) -> int:
        """向量点积。"""
        return self.x * other.x + self.y * other.y


@dataclass(frozen=True, slots=True)
class Rect:
    """整数矩形，``(x, y)`` 为左上角（图像坐标）或左下角（玩家坐标）。

    与 OpenCV 一致，右下角 :attr:`br` 为开区间端点。
    """

    x: int
    y: int
    width: int
    height: int

    # ── 顶点 ──

    @property
    def tl(self) -> Point:
        return Point(self.x, self.y)

    @property
    def br(self) -> Point:
        return Point(self.x + self.width, self.y + self.height)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width // 2, self.y + self.height // 2)

    # ── 查询 ──

    def contains(self, point: Point) -> bool:
        """判断点是否位于矩形内（左闭右开）。"""
        return (
            self.x <= point.x < self.x + self.width
            and self.y <= point.y < self.y + self.height
        )

    def flip_y(self, height: int) -> Rect:
        """在图像坐标与玩家坐标之间翻转 y 轴。"""
        return Rect(self.x, height - (self.y + self.height), self.width, self.height)

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True, slots=True)
class XRange:
    """左闭右开的 x 区间 ``[start, end)``。"""

    start: int
    end: int

    def __contains__(self, x: int) -> bool:
        return self.start <= x < self.end

    def is_empty(self) -> bool:
        return self.start >= self.end

    def overlaps(self, other: XRange) -> bool:
        return self.start < other.end and other.start < self.end
