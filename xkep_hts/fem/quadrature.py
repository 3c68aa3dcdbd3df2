"""積分点と積分領域.

2 次精度の単体積分則:
  - 三角形: 3 点則（重心座標 (2/3, 1/6, 1/6) の巡回）
  - 四面体: 4 点則（a = 0.5854..., b = 0.1382...）
  - 線分: 2 点 Gauss 則

QuadratureRegion は「全領域」または「タグ付き部分領域」のセル集合に対する
物理積分点・重み（|det J| 込み）・P1 基底の勾配を保持する。
弱形式はこれらの配列上で被積分関数を評価するだけで、離散化は行わない。
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from xkep_hts.core.errors import UnsupportedCombination
from xkep_hts.mesh.structured import Mesh


def triangle_rule() -> tuple[np.ndarray, np.ndarray]:
    """(3, 3) 重心座標と (3,) 重み（参照三角形面積 1/2 で正規化済み）."""
    a, b = 2.0 / 3.0, 1.0 / 6.0
    bary = np.array([[a, b, b], [b, a, b], [b, b, a]])
    return bary, np.full(3, 1.0 / 6.0)


def tetra_rule() -> tuple[np.ndarray, np.ndarray]:
    """(4, 4) 重心座標と (4,) 重み（参照四面体体積 1/6）."""
    a, b = 0.5854101966249685, 0.1381966011250105
    bary = np.full((4, 4), b)
    np.fill_diagonal(bary, a)
    return bary, np.full(4, 1.0 / 24.0)


def line_rule() -> tuple[np.ndarray, np.ndarray]:
    """(2, 2) 重心座標と (2,) 重み（区間 [0, 1]）."""
    g = 0.5 / np.sqrt(3.0)
    bary = np.array([[0.5 + g, 0.5 - g], [0.5 - g, 0.5 + g]])
    return bary, np.array([0.5, 0.5])


def simplex_gradients(coords: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """P1 基底（重心座標）の勾配と Jacobian 行列式.

    Args:
        coords: (nc, dim+1, dim) セル節点座標

    Returns:
        grads: (nc, dim+1, dim) ∇λ_a（セル内で一定）
        detJ: (nc,) 符号付き行列式
    """
    dim = coords.shape[2]
    # J[:, :, k] = x_{k+1} - x_0
    J = np.transpose(coords[:, 1:, :] - coords[:, :1, :], (0, 2, 1))
    detJ = np.linalg.det(J)
    invJ = np.linalg.inv(J)
    ref = np.vstack([-np.ones((1, dim)), np.eye(dim)])  # (dim+1, dim) 参照勾配
    grads = np.einsum("ad,cdk->cak", ref, invJ)
    return grads, detJ


@dataclass(frozen=True)
class QuadratureRegion:
    """セル集合上の積分領域.

    Attributes:
        mesh: 元のメッシュ
        cells: (nc,) セル番号
        bary: (nq, dim+1) 積分点の重心座標（= P1 基底値）
        points: (nc, nq, dim) 物理積分点
        weights: (nc, nq) 積分重み（|det J| 込み）
        grads: (nc, dim+1, dim) P1 基底の勾配
        tag: 部分領域タグ（全領域なら None）
    """

    mesh: Mesh
    cells: np.ndarray
    bary: np.ndarray
    points: np.ndarray
    weights: np.ndarray
    grads: np.ndarray
    tag: str | None = None

    @property
    def n_cells(self) -> int:
        return int(self.cells.shape[0])

    @property
    def n_points(self) -> int:
        return int(self.bary.shape[0])

    @property
    def cell_nodes(self) -> np.ndarray:
        """(nc, dim+1) 領域内セルの節点番号."""
        return self.mesh.cells[self.cells]

    def measure(self) -> float:
        """領域の面積 / 体積."""
        return float(self.weights.sum())

    def integrate(self, values: np.ndarray) -> float:
        """(nc, nq) 積分点値の積分."""
        return float(np.sum(values * self.weights))


def build_region(mesh: Mesh, tag: str | None = None) -> QuadratureRegion:
    """全領域（tag=None）またはセルタグ部分領域の積分領域を構築する.

    Raises:
        UnsupportedCombination: 未対応の次元、または未定義のセルタグ
    """
    if mesh.dim == 2:
        bary, w = triangle_rule()
    elif mesh.dim == 3:
        bary, w = tetra_rule()
    else:
        raise UnsupportedCombination(f"未対応の次元: {mesh.dim}")

    if tag is None:
        cells = np.arange(mesh.n_cells)
    elif tag in mesh.cell_tags:
        cells = np.asarray(mesh.cell_tags[tag], dtype=int)
    else:
        raise UnsupportedCombination(
            f"未定義のセルタグ: {tag!r}（定義済み: {sorted(mesh.cell_tags)}）"
        )

    coords = mesh.nodes[mesh.cells[cells]]
    grads, detJ = simplex_gradients(coords)
    points = np.einsum("qa,cad->cqd", bary, coords)
    weights = np.abs(detJ)[:, None] * w[None, :]
    return QuadratureRegion(
        mesh=mesh,
        cells=cells,
        bary=bary,
        points=points,
        weights=weights,
        grads=grads,
        tag=tag,
    )


@dataclass(frozen=True)
class BoundaryRegion:
    """2D 境界辺上の線積分領域（Neumann 条件用）.

    Attributes:
        facets: (ne, 2) 辺の節点番号
        bary: (nq, 2) 積分点の重心座標
        points: (ne, nq, 2) 物理積分点
        weights: (ne, nq) 積分重み（辺長込み）
    """

    facets: np.ndarray
    bary: np.ndarray
    points: np.ndarray
    weights: np.ndarray


def build_boundary_region(mesh: Mesh, tags) -> BoundaryRegion:
    """境界ファセットタグ群から線積分領域を構築する（2D のみ）."""
    if mesh.dim != 2:
        raise UnsupportedCombination("境界積分は 2D メッシュのみ対応しています。")
    if isinstance(tags, str):
        tags = [tags]
    blocks = []
    for t in tags:
        if t not in mesh.boundary_facets:
            raise UnsupportedCombination(
                f"未定義の境界タグ: {t!r}（定義済み: {sorted(mesh.boundary_facets)}）"
            )
        blocks.append(mesh.boundary_facets[t])
    facets = np.unique(np.sort(np.vstack(blocks), axis=1), axis=0) if blocks else np.zeros(
        (0, 2), dtype=int
    )
    bary, w = line_rule()
    coords = mesh.nodes[facets]  # (ne, 2, 2)
    length = np.linalg.norm(coords[:, 1] - coords[:, 0], axis=1)
    points = np.einsum("qa,ead->eqd", bary, coords)
    weights = length[:, None] * w[None, :]
    return BoundaryRegion(facets=facets, bary=bary, points=points, weights=weights)
