"""像素锚点。

小地图与技能图标在识别成功后，各自记录一个（或两个）锚点像素；之后每 tick
只需读取锚点位置的像素并与记录值比较，即可廉价地判断界面是否变化，
不必重新跑模板匹配。

- :class:`Color`：BGR 颜色值
- :class:`Anchor`：坐标 + 当时的颜色
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from automaple.geometry import Point
from automaple.infra.exceptions import NotFoundError

ANCHOR_ACCEPTABLE_ERROR_RANGE = 45
"""三通道平均差值在此范围内视为相同"""


@dataclass(frozen=True, slots=True)
class Color:
    """颜色值。与 OpenCV 帧一致使用 BGR 通道顺序存储。"""

    b: int
    g: int
    r: int

    @classmethod
    def from_bgr_tuple(cls, bgr: tuple[int, int, int]) -> Color:
        return cls(b=int(bgr[0]), g=int(bgr[1]), r=int(bgr[2]))

    @property
    def grayscale(self) -> int:
        return (self.b + self.g + self.r) // 3

    def mean_abs_diff(self, other: Color) -> int:
        """三通道绝对差值的平均。"""
        return (abs(self.b - other.b) + abs(self.g - other.g) + abs(self.r - other.r)) // 3

    def is_white(self, threshold: int) -> bool:
        return min(self.b, self.g, self.r) >= threshold


@dataclass(frozen=True, slots=True)
class Anchor:
    """锚点：位置与记录时的颜色。"""

    point: Point
    color: Color


def pixel_at(mat: np.ndarray, point: Point) -> Color | None:
    """读取 *point* 处的像素，越界时返回 None。"""
    height, width = mat.shape[:2]
    if not (0 <= point.x < width and 0 <= point.y < height):
        return None
    return Color.from_bgr_tuple(tuple(mat[point.y, point.x][:3]))


def anchor_match(anchor: Color, pixel: Color, darken_ratio: float | None = None) -> bool:
    """判断像素是否仍与锚点一致。

    Parameters
    ----------
    darken_ratio:
        允许整体变暗的比例下限。小地图被半透明界面覆盖时会整体变暗，
        此时灰度比高于该值仍视为一致。None 表示不允许变暗。
    """
    if anchor.mean_abs_diff(pixel) <= ANCHOR_ACCEPTABLE_ERROR_RANGE:
        return True
    if darken_ratio is None or anchor.grayscale == 0:
        return False
    return pixel.grayscale / anchor.grayscale > darken_ratio


def anchor_at_diagonal(
    mat: np.ndarray, offset: Point, size: int, sign: int, whiteness: int
) -> Anchor:
    """从 *offset* 沿对角线查找第一个白色边框像素作为锚点。

    *sign* 为 1 时向右下查找，为 -1 时向左上查找。

    Raises
    ------
    NotFoundError
        *size* 步内没有白色像素。
    """
    for i in range(size):
        point = Point(offset.x + sign * i, offset.y + sign * i)
        pixel = pixel_at(mat, point)
        if pixel is not None and pixel.is_white(whiteness):
            return Anchor(point, pixel)
    raise NotFoundError("minimap_anchor")
