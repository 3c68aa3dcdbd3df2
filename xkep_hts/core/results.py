"""メソッド戻り値の型定義.

各モジュールの公開メソッドが返すデータ構造を NamedTuple で統一的に定義する。
NamedTuple を採用する理由:
  - 名前付きフィールドアクセス（result.u, result.K 等）
  - タプルアンパッキングとの互換性（u, info = solve_linear(...)）
  - 不変（immutable）
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
import scipy.sparse as sp

if TYPE_CHECKING:
    from xkep_hts.core.state import SolutionState, StateLayout


class LinearSolveResult(NamedTuple):
    """線形ソルバーの結果.

    Attributes:
        u: (ndof,) 解ベクトル
        info: ソルバー情報辞書 (method, nit, residual_norm, setup_time, solve_time 等)
    """

    u: np.ndarray
    info: dict[str, Any]


class DirichletResult(NamedTuple):
    """Dirichlet 境界条件適用後の結果.

    Attributes:
        K: 拘束適用後の係数行列 (CSR)
        f: 拘束適用後の右辺ベクトル (ndof,)
    """

    K: sp.csr_matrix
    f: np.ndarray


class LinearSystem(NamedTuple):
    """A 定式化（線形）の組み立て済み連立方程式.

    Attributes:
        K: (ndof, ndof) 双線形形式の行列（拘束適用前）
        f: (ndof,) 線形形式（ソース + Neumann）
        fixed_dofs: Dirichlet 拘束 DOF
        fixed_values: 拘束値
        layout: 自由度配置
        linear_solver: 線形ソルバー選択 ("auto", "spsolve", "pyamg", "cg")
    """

    K: sp.csr_matrix
    f: np.ndarray
    fixed_dofs: np.ndarray
    fixed_values: np.ndarray
    layout: StateLayout
    linear_solver: str = "auto"


class NewtonResult(NamedTuple):
    """Newton-Raphson の結果（収束した場合のみ返る）.

    Attributes:
        state: 収束解
        iterations: Newton 更新回数
        residual_norm: 最終残差ノルム
        residual_history: 各反復の残差ノルム（初期残差を含む）
    """

    state: SolutionState
    iterations: int
    residual_norm: float
    residual_history: list[float]
