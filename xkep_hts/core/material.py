"""HTS 材料モデルの抽象インタフェース定義.

Protocol 定義:
  HTSMaterialProtocol: E-J 構成則（resistivity, resistivity_derivative, electric_field）。

適合クラス:
  - PowerLawMaterial         べき乗則（J_c 一定）
  - FieldDependentMaterial   べき乗則 + Kim モデル J_c(B)

弱形式ビルダーは material.field_dependent で磁束密度 B を渡すかを切り替える。
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class HTSMaterialProtocol(Protocol):
    """E-J 構成則の共通インタフェース.

    すべての関数は numpy 配列を受け付け、要素ごとに評価する。
    B は FieldDependentMaterial のみ使用する（PowerLawMaterial では無視）。

    Attributes:
        ec: 臨界電界 E_c [V/m]
        n: べき乗則指数
        field_dependent: J_c が磁束密度 B に依存するか
    """

    ec: float
    n: int
    field_dependent: bool

    def resistivity(self, J_norm, B=None):
        """非線形抵抗率 ρ(|J|) [Ω·m]."""
        ...

    def resistivity_derivative(self, J_norm, B=None):
        """dρ/d|J| [Ω·m²/A]（Jacobian の厳密な線形化に使用）."""
        ...

    def electric_field(self, J: np.ndarray, B=None) -> np.ndarray:
        """電界ベクトル E = ρ(|J|_reg) J [V/m]."""
        ...
