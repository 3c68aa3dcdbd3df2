"""Dirichlet 境界条件の適用（行・列消去）."""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from xkep_hts.core.results import DirichletResult


def _free_mask(n: int, fixed_dofs: np.ndarray) -> np.ndarray:
    mask = np.ones(n, dtype=float)
    mask[fixed_dofs] = 0.0
    return mask


def _eliminate(K: sp.spmatrix, fixed_dofs: np.ndarray) -> sp.csr_matrix:
    """K[fixed, :] = K[:, fixed] = 0, K[d, d] = 1（対角スケーリングでベクトル化）."""
    n = K.shape[0]
    free = _free_mask(n, fixed_dofs)
    D = sp.diags(free)
    K_bc = (D @ K.tocsr() @ D + sp.diags(1.0 - free)).tocsr()
    K_bc.eliminate_zeros()
    return K_bc


def apply_dirichlet(
    K: sp.csr_matrix,
    f: np.ndarray,
    fixed_dofs: np.ndarray,
    values: float | np.ndarray = 0.0,
) -> DirichletResult:
    """Dirichlet境界条件（行・列消去＋右辺補正）を適用する.

    アルゴリズム（元のK, fから）:
      1) f <- f - K[:, fixed_dofs] @ values  （元のKで一括補正）
      2) K[:, fixed_dofs] = 0, K[fixed_dofs, :] = 0
      3) K[d,d] = 1, f[d] = val

    Args:
        K: CSR係数行列
        f: 右辺ベクトル (n,)
        fixed_dofs: 拘束するDOFの配列
        values: 拘束値（スカラー or 同長配列）

    Returns:
        DirichletResult: (K, f) の NamedTuple。
    """
    fbc = np.asarray(f, dtype=float).copy()

    fixed_dofs = np.asarray(fixed_dofs, dtype=int)
    if np.isscalar(values):
        values = np.full(fixed_dofs.shape, float(values))
    else:
        values = np.asarray(values, dtype=float)
        if values.shape[0] != fixed_dofs.shape[0]:
            raise ValueError("values の長さと fixed_dofs の長さが一致していません。")

    n = K.shape[0]
    if fbc.shape[0] != n:
        raise ValueError("K と f のサイズが一致していません。")
    if fixed_dofs.size == 0:
        return DirichletResult(K=K.tocsr(), f=fbc)

    nonzero_mask = values != 0.0
    if np.any(nonzero_mask):
        K_csc = K.tocsc()
        fbc -= K_csc[:, fixed_dofs[nonzero_mask]] @ values[nonzero_mask]

    K_bc = _eliminate(K, fixed_dofs)
    fbc[fixed_dofs] = values
    return DirichletResult(K=K_bc, f=fbc)


def apply_dirichlet_increment(
    K: sp.spmatrix,
    r: np.ndarray,
    fixed_dofs: np.ndarray,
) -> DirichletResult:
    """Newton 修正量用の境界条件（拘束 DOF の増分をゼロに固定）."""
    r_bc = np.asarray(r, dtype=float).copy()
    fixed_dofs = np.asarray(fixed_dofs, dtype=int)
    if fixed_dofs.size == 0:
        return DirichletResult(K=K.tocsr(), f=r_bc)
    r_bc[fixed_dofs] = 0.0
    return DirichletResult(K=_eliminate(K, fixed_dofs), f=r_bc)
