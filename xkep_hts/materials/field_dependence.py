"""磁場依存の臨界電流密度モデル.

外部磁場下での HTS 解析に必要な J_c(B) 依存性。

Kim モデル:
  J_c(B) = J_c0 / (1 + |B| / B_0)

B = 0 で J_c0、|B| = B_0 で J_c0 / 2。|B| に対して単調減少。

参考文献:
  - Kim et al. (1962), Phys. Rev. Lett., 9(7), 306.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

import numpy as np

from xkep_hts.constants import B0_DEFAULT, E_C_DEFAULT, EPS_REG, JC_DEFAULT, N_DEFAULT
from xkep_hts.core.errors import InvalidParameter
from xkep_hts.materials.power_law import (
    _scalar_or_array,
    check_exponent,
    check_positive,
    norm_safe,
)


def _field_norm(B):
    """|B|_reg = sqrt(|B|² + ε).

    0 次元・1 次元配列は |B| の値（の列）、2 次元以上は最後の軸を成分とする
    ベクトル配列 (..., d), d = 2 or 3 として扱う。単一ベクトルは (1, d) で渡す。
    """
    B = np.asarray(B, dtype=float)
    if B.ndim <= 1:
        out = np.sqrt(B * B + EPS_REG)
        return float(out) if out.ndim == 0 else out
    if B.shape[-1] not in (2, 3):
        raise InvalidParameter(f"B ベクトル配列の最後の軸は 2 または 3 成分: shape={B.shape}")
    return norm_safe(B)


@dataclass(frozen=True)
class KimModel:
    """Kim モデルのパラメータ.

    Attributes:
        jc0: 自己磁場での臨界電流密度 J_c0 [A/m²]
        b0: 特性磁場 B_0 [T]
    """

    jc0: float = JC_DEFAULT
    b0: float = B0_DEFAULT

    def __post_init__(self) -> None:
        check_positive("J_c0", self.jc0)
        check_positive("B_0", self.b0)

    def critical_current_density(self, B):
        """J_c(B) = J_c0 / (1 + |B|/B_0)."""
        return _scalar_or_array(self.jc0 / (1.0 + _field_norm(B) / self.b0))

    def critical_current_derivative(self, B):
        """dJ_c/d|B| = -J_c0 / (B_0 (1 + |B|/B_0)²)."""
        s = 1.0 + _field_norm(B) / self.b0
        return _scalar_or_array(-self.jc0 / (self.b0 * s * s))


def critical_current_density(model: KimModel, B):
    """J_c(B) を Kim モデルで評価する.

    Args:
        model: Kim モデル
        B: 磁束密度ベクトル配列 (..., d) [T]、または |B| のスカラー・1 次元配列

    Returns:
        J_c [A/m²]
    """
    return model.critical_current_density(B)


@dataclass(frozen=True)
class FieldDependentMaterial:
    """J_c(B) 依存のべき乗則材料（HTSMaterialProtocol 適合）.

    E = E_c (|J| / J_c(B))^n (J / |J|)

    B を省略した評価は自己磁場（B = 0, J_c = J_c0）として扱う。

    Attributes:
        ec: 臨界電界 E_c [V/m]
        n: べき乗則指数
        jc_model: J_c(B) モデル
    """

    ec: float = E_C_DEFAULT
    n: int = N_DEFAULT
    jc_model: KimModel = field(default_factory=KimModel)

    field_dependent = True

    def __post_init__(self) -> None:
        check_positive("E_c", self.ec)
        check_exponent(self.n)

    @property
    def jc(self) -> float:
        """自己磁場での J_c."""
        return self.jc_model.jc0

    def with_exponent(self, n: int) -> FieldDependentMaterial:
        return dataclasses.replace(self, n=n)

    def _jc_eff(self, B):
        if B is None:
            return self.jc_model.jc0
        return np.asarray(self.jc_model.critical_current_density(B), dtype=float)

    def resistivity(self, J_norm, B=None):
        """ρ = (E_c/J_c(B)) (max(|J|, ε)/J_c(B))^(n-1)."""
        jc = self._jc_eff(B)
        J_reg = np.maximum(np.asarray(J_norm, dtype=float), EPS_REG)
        return _scalar_or_array((self.ec / jc) * (J_reg / jc) ** (self.n - 1))

    def resistivity_derivative(self, J_norm, B=None):
        """dρ/d|J|（J_c(B) は固定）."""
        jc = self._jc_eff(B)
        J_reg = np.maximum(np.asarray(J_norm, dtype=float), EPS_REG)
        return _scalar_or_array((self.ec / jc**2) * (self.n - 1) * (J_reg / jc) ** (self.n - 2))

    def resistivity_field_derivative(self, J_norm, B):
        """dρ/d|B| = (∂ρ/∂J_c)(dJ_c/d|B|), ∂ρ/∂J_c = -n ρ / J_c."""
        jc = self._jc_eff(B)
        rho = np.asarray(self.resistivity(J_norm, B), dtype=float)
        djc = np.asarray(self.jc_model.critical_current_derivative(B), dtype=float)
        return _scalar_or_array(-self.n * rho / jc * djc)

    def electric_field(self, J: np.ndarray, B=None) -> np.ndarray:
        """E = ρ(|J|_reg, B) J."""
        J = np.asarray(J, dtype=float)
        rho = np.asarray(self.resistivity(norm_safe(J), B))
        return rho[..., None] * J
