"""非線形系（残差・Jacobian の組）.

NonlinearSystem は固定の材料スナップショット・重み・積分領域に閉じた
残差 R(x) と Jacobian J(x) を保持する。材料が変わるたびに作り直し、
書き換えはしない。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np
import scipy.sparse as sp

from xkep_hts.core.state import SolutionState, StateLayout


@dataclass(frozen=True)
class NonlinearSystem:
    """残差 R(x) と Jacobian J(x) の組.

    R(x) の第 i 成分は試験関数 v_i に対する残差形式の値、
    J(x) は方向 dx への方向微分 J(x)·dx を与える行列。

    Attributes:
        residual: x → R(x) (ndofs,)
        jacobian: x → J(x) (ndofs, ndofs) CSR
        layout: 自由度配置（SolutionState との変換）
        fixed_dofs: Dirichlet 拘束 DOF
        fixed_values: 拘束値
        initial_guess: コールドスタート用初期値を返すコールバック（None = ゼロ + 拘束値）
        linear_solver: Newton 修正量の線形ソルバー選択
        label: 表示用ラベル
    """

    residual: Callable[[np.ndarray], np.ndarray]
    jacobian: Callable[[np.ndarray], sp.csr_matrix]
    layout: StateLayout
    fixed_dofs: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))
    fixed_values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    initial_guess: Callable[[], np.ndarray] | None = None
    linear_solver: str = "auto"
    label: str = ""

    @property
    def ndofs(self) -> int:
        return self.layout.ndofs

    def start_vector(self, warm_start: SolutionState | None = None) -> np.ndarray:
        """Newton の初期反復ベクトル.

        warm_start があればそのまま（コピーして）使う。無ければ initial_guess、
        それも無ければゼロベクトル。いずれも拘束 DOF は規定値で上書きする。
        """
        if warm_start is not None:
            x = self.layout.pack(warm_start)
        elif self.initial_guess is not None:
            x = np.array(self.initial_guess(), dtype=float, copy=True)
        else:
            x = np.zeros(self.ndofs, dtype=float)
        x[self.fixed_dofs] = self.fixed_values
        return x
