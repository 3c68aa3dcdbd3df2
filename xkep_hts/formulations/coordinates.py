"""座標系と積分重み.

  Cartesian2D      w(x) = 1
  Axisymmetric2D   w(x) = 2π max(r, EPS_AXIS)   （r = 第 1 座標）
  ThreeD           w(x) = 1（体積はベクトル演算子側で扱う）

重みは弱形式のすべての被積分関数に掛かる。Cartesian と軸対称の組み立ての
違いはこの重みと 2D curl の定義のみ。
"""

from __future__ import annotations

import math
from collections.abc import Callable
from enum import Enum

import numpy as np

from xkep_hts.constants import EPS_AXIS
from xkep_hts.core.errors import UnsupportedCombination


class CoordinateSystem(Enum):
    """座標系タグ."""

    CARTESIAN_2D = "cartesian2d"
    AXISYMMETRIC_2D = "axisymmetric2d"
    THREE_D = "3d"

    @classmethod
    def parse(cls, value: str | CoordinateSystem) -> CoordinateSystem:
        """文字列タグ → CoordinateSystem.

        Raises:
            UnsupportedCombination: 未知のタグ
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            names = [c.value for c in cls]
            raise UnsupportedCombination(f"未知の座標系: {value!r}（{names} のいずれか）") from None

    @property
    def dim(self) -> int:
        return 3 if self is CoordinateSystem.THREE_D else 2


def _unit_weight(x: np.ndarray) -> np.ndarray:
    return np.ones(np.shape(x)[:-1])


def axisymmetric_weight(x: np.ndarray) -> np.ndarray:
    """2π max(r, EPS_AXIS). x は (..., 2) の (r, z) 座標."""
    r = np.asarray(x, dtype=float)[..., 0]
    return 2.0 * math.pi * np.maximum(r, EPS_AXIS)


_WEIGHTS: dict[CoordinateSystem, Callable[[np.ndarray], np.ndarray]] = {
    CoordinateSystem.CARTESIAN_2D: _unit_weight,
    CoordinateSystem.AXISYMMETRIC_2D: axisymmetric_weight,
    CoordinateSystem.THREE_D: _unit_weight,
}


def weight(coordinate_system: str | CoordinateSystem) -> Callable[[np.ndarray], np.ndarray]:
    """座標系の積分重み関数 x (..., dim) → (...) を返す."""
    return _WEIGHTS[CoordinateSystem.parse(coordinate_system)]
