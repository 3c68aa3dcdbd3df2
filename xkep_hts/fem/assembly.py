"""ベクトル化 COO アセンブリ.

セルごとの局所行列・局所ベクトルを一括で全体 CSR 行列 / ベクトルに散布する。
COO インデックスは np.repeat / np.tile で全セル分をまとめて計算する。
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp


def _vectorized_coo_indices(
    row_dofs: np.ndarray,
    col_dofs: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """全セルの COO row/col インデックスをベクトル化計算.

    Args:
        row_dofs: (nc, kr) 行側のセル DOF
        col_dofs: (nc, kc) 列側のセル DOF

    Returns:
        (rows, cols): それぞれ (nc * kr * kc,) の int64 配列
    """
    kr = row_dofs.shape[1]
    kc = col_dofs.shape[1]
    rows = np.repeat(row_dofs.astype(np.int64), kc, axis=1).ravel()
    cols = np.tile(col_dofs.astype(np.int64), (1, kr)).ravel()
    return rows, cols


def assemble_matrix(
    Ke: np.ndarray,
    row_dofs: np.ndarray,
    col_dofs: np.ndarray | None = None,
    shape: tuple[int, int] | None = None,
) -> sp.csr_matrix:
    """局所行列 (nc, kr, kc) を全体 CSR 行列に組み立てる.

    重複インデックスは sum_duplicates で加算される。

    Args:
        Ke: (nc, kr, kc) 局所行列
        row_dofs: (nc, kr) 行 DOF
        col_dofs: (nc, kc) 列 DOF（None なら row_dofs）
        shape: 全体行列の形状（None なら正方 max(dof)+1）
    """
    if col_dofs is None:
        col_dofs = row_dofs
    if shape is None:
        n = int(max(row_dofs.max(initial=-1), col_dofs.max(initial=-1))) + 1
        shape = (n, n)
    rows, cols = _vectorized_coo_indices(row_dofs, col_dofs)
    K = sp.coo_matrix((np.asarray(Ke, dtype=float).ravel(), (rows, cols)), shape=shape).tocsr()
    K.sum_duplicates()
    return K


def assemble_vector(fe: np.ndarray, dofs: np.ndarray, n: int) -> np.ndarray:
    """局所ベクトル (nc, k) を全体ベクトル (n,) に組み立てる."""
    return np.bincount(
        np.asarray(dofs, dtype=np.int64).ravel(),
        weights=np.asarray(fe, dtype=float).ravel(),
        minlength=n,
    )
