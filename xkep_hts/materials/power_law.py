"""HTS のべき乗則 E-J 構成則.

E-J べき乗則:
  E = E_c (|J| / J_c)^n (J / |J|)

非線形抵抗率で書くと:
  ρ(|J|) = (E_c / J_c) (|J| / J_c)^(n-1)

Jacobian 組み立て用の厳密な微分:
  dρ/d|J| = (E_c / J_c²) (n-1) (|J| / J_c)^(n-2)

|J| = 0 では max(|J|, EPS_REG) で正則化し、ρ は常に有限かつ非負。

参考文献:
  - Rhyner (1993), Physica C, 212(3-4), 292-300.
"""

from __future__ import annotations

import dataclasses
import numbers
from dataclasses import dataclass

import numpy as np

from xkep_hts.constants import E_C_DEFAULT, EPS_REG, JC_DEFAULT, N_DEFAULT
from xkep_hts.core.errors import InvalidParameter


def norm_safe(v, eps: float = EPS_REG):
    """正則化ノルム sqrt(v·v + eps).

    ベクトル配列 (..., d) は最後の軸でノルムを取る。スカラーは sqrt(s² + eps)。
    常に有限かつ正。
    """
    v = np.asarray(v, dtype=float)
    if v.ndim == 0:
        return float(np.sqrt(v * v + eps))
    out = np.sqrt(np.sum(v * v, axis=-1) + eps)
    return float(out) if out.ndim == 0 else out


def _scalar_or_array(a):
    a = np.asarray(a, dtype=float)
    return float(a) if a.ndim == 0 else a


def check_positive(name: str, value: float) -> None:
    """value > 0 でなければ InvalidParameter."""
    if not np.isfinite(value) or value <= 0:
        raise InvalidParameter(f"{name} は正値でなければなりません: {value}")


def check_exponent(n) -> None:
    """べき乗則指数は正の整数."""
    if isinstance(n, bool) or not isinstance(n, numbers.Integral):
        raise InvalidParameter(f"べき乗則指数 n は整数でなければなりません: {n!r}")
    if n <= 0:
        raise InvalidParameter(f"べき乗則指数 n は正値でなければなりません: {n}")


@dataclass(frozen=True)
class PowerLawMaterial:
    """標準的な HTS べき乗則構成則（HTSMaterialProtocol 適合）.

    不変オブジェクト。指数継続法では with_exponent() で新しいインスタンスを作る。

    Attributes:
        ec: 臨界電界 E_c [V/m]
        jc: 臨界電流密度 J_c [A/m²]
        n: べき乗則指数（大きいほど急峻な転移）
    """

    ec: float = E_C_DEFAULT
    jc: float = JC_DEFAULT
    n: int = N_DEFAULT

    field_dependent = False

    def __post_init__(self) -> None:
        check_positive("E_c", self.ec)
        check_positive("J_c", self.jc)
        check_exponent(self.n)

    @classmethod
    def from_jc_n(cls, jc: float, n: int, *, ec: float = E_C_DEFAULT) -> PowerLawMaterial:
        """J_c と n を直接指定するコンストラクタ."""
        return cls(ec=float(ec), jc=float(jc), n=int(n))

    def with_exponent(self, n: int) -> PowerLawMaterial:
        """指数のみ差し替えた新しい材料."""
        return dataclasses.replace(self, n=n)

    def resistivity(self, J_norm, B=None):
        """ρ = (E_c/J_c) (max(|J|, ε)/J_c)^(n-1) [Ω·m].

        Args:
            J_norm: 電流密度の大きさ |J| [A/m²]（スカラー or 配列）
            B: 未使用（インタフェース統一用）
        """
        J_reg = np.maximum(np.asarray(J_norm, dtype=float), EPS_REG)
        return _scalar_or_array((self.ec / self.jc) * (J_reg / self.jc) ** (self.n - 1))

    def resistivity_derivative(self, J_norm, B=None):
        """dρ/d|J| = (E_c/J_c²)(n-1)(max(|J|, ε)/J_c)^(n-2) [Ω·m²/A]."""
        J_reg = np.maximum(np.asarray(J_norm, dtype=float), EPS_REG)
        return _scalar_or_array(
            (self.ec / self.jc**2) * (self.n - 1) * (J_reg / self.jc) ** (self.n - 2)
        )

    def electric_field(self, J: np.ndarray, B=None) -> np.ndarray:
        """E = ρ(|J|_reg) J [V/m]. J は (..., d) 配列."""
        J = np.asarray(J, dtype=float)
        rho = np.asarray(self.resistivity(norm_safe(J)))
        return rho[..., None] * J
