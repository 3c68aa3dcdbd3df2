"""離散関数空間（P1 Lagrange / 最低次 Nedelec）.

H1Space:
  節点 P1 Lagrange。2D/3D のスカラー場（2D の面外 A、T）に使用。
  DOF = 節点値。

HcurlSpace:
  四面体上の最低次 Nedelec 辺要素（Whitney 1-form）。3D のベクトル A に使用。
    w_ij = λ_i ∇λ_j - λ_j ∇λ_i,   curl w_ij = 2 ∇λ_i × ∇λ_j
  DOF = 辺に沿った接線成分の線積分 ∫_e A·t ds。
  辺の大域向きは節点番号の小 → 大。接線連続性は辺 DOF の共有で保証される。
"""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np

from xkep_hts.core.errors import UnsupportedCombination
from xkep_hts.fem.quadrature import QuadratureRegion, line_rule
from xkep_hts.mesh.structured import Mesh

# 四面体の局所辺（局所節点ペア）
TET_EDGES = np.array([[0, 1], [0, 2], [0, 3], [1, 2], [1, 3], [2, 3]])


def _as_tag_list(tags) -> list[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        return [tags]
    return list(tags)


class _SpaceBase:
    """Dirichlet タグ処理の共通部分."""

    mesh: Mesh

    def _tag_nodes(self, tag: str) -> np.ndarray:
        try:
            return np.asarray(self.mesh.node_tags[tag], dtype=int)
        except KeyError:
            raise UnsupportedCombination(
                f"未定義の境界タグ: {tag!r}（定義済み: {sorted(self.mesh.node_tags)}）"
            ) from None

    def _tag_dofs(self, tag: str) -> np.ndarray:
        raise NotImplementedError

    def dirichlet_dofs(self, tags) -> np.ndarray:
        """タグ群に属する拘束 DOF（昇順・重複なし）."""
        tag_list = _as_tag_list(tags)
        if not tag_list:
            return np.zeros(0, dtype=int)
        return np.unique(np.concatenate([self._tag_dofs(t) for t in tag_list]))

    def dirichlet_values(self, tags, value=None) -> tuple[np.ndarray, np.ndarray]:
        """拘束 DOF とその値.

        Args:
            tags: 境界タグ（str またはその列）
            value: None（ゼロ）、定数、x → 値 の関数、または {タグ: 値} の辞書。
                辞書の場合、後に現れるタグの値が共有 DOF を上書きする。

        Returns:
            (dofs, values)
        """
        dofs = self.dirichlet_dofs(tags)
        vals = np.zeros(self.ndofs)
        if isinstance(value, Mapping):
            unknown = set(value) - set(_as_tag_list(tags))
            if unknown:
                raise UnsupportedCombination(
                    f"Dirichlet 値のタグが拘束タグに含まれていません: {sorted(unknown)}"
                )
            for tag, v in value.items():
                tag_dofs = self._tag_dofs(tag)
                vals[tag_dofs] = self.interpolate(v)[tag_dofs]
        elif value is not None:
            vals = self.interpolate(value)
        return dofs, vals[dofs]


class H1Space(_SpaceBase):
    """P1 Lagrange 空間."""

    vector = False

    def __init__(self, mesh: Mesh) -> None:
        self.mesh = mesh

    @property
    def ndofs(self) -> int:
        return self.mesh.n_nodes

    @property
    def dofs_per_cell(self) -> int:
        return self.mesh.dim + 1

    def cell_dofs(self, region: QuadratureRegion) -> np.ndarray:
        return region.cell_nodes

    def basis_values(self, region: QuadratureRegion) -> np.ndarray:
        """(nq, k) 積分点での基底値（全セル共通）."""
        return region.bary

    def basis_gradients(self, region: QuadratureRegion) -> np.ndarray:
        """(nc, k, dim) 基底勾配（セル内一定）."""
        return region.grads

    def evaluate(self, region: QuadratureRegion, u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """係数ベクトル u の積分点値 (nc, nq) と勾配 (nc, dim)."""
        ue = u[region.cell_nodes]
        return ue @ region.bary.T, np.einsum("ca,cad->cd", ue, region.grads)

    def interpolate(self, value) -> np.ndarray:
        """節点補間. value は定数または (n, dim) → (n,) の関数."""
        x = self.mesh.nodes
        if callable(value):
            out = np.asarray(value(x), dtype=float)
        else:
            out = np.asarray(value, dtype=float)
        if out.ndim > 1 or (out.ndim == 1 and out.shape[0] != x.shape[0]):
            raise UnsupportedCombination("H1 空間の値はスカラーでなければなりません。")
        return np.broadcast_to(out, (x.shape[0],)).astype(float)

    def _tag_dofs(self, tag: str) -> np.ndarray:
        return self._tag_nodes(tag)


class HcurlSpace(_SpaceBase):
    """四面体上の最低次 Nedelec 空間."""

    vector = True

    def __init__(self, mesh: Mesh) -> None:
        if mesh.dim != 3:
            raise UnsupportedCombination("H(curl) 空間は 3D 四面体メッシュのみ対応しています。")
        self.mesh = mesh
        local = mesh.cells[:, TET_EDGES]  # (nc, 6, 2)
        sorted_pairs = np.sort(local, axis=2).reshape(-1, 2)
        self.edges, inverse = np.unique(sorted_pairs, axis=0, return_inverse=True)
        self.cell_edges = inverse.reshape(-1, 6)
        self.signs = np.where(local[:, :, 0] < local[:, :, 1], 1.0, -1.0)

    @property
    def ndofs(self) -> int:
        return int(self.edges.shape[0])

    @property
    def dofs_per_cell(self) -> int:
        return 6

    def cell_dofs(self, region: QuadratureRegion) -> np.ndarray:
        return self.cell_edges[region.cells]

    def basis_values(self, region: QuadratureRegion) -> np.ndarray:
        """(nc, nq, 6, 3) 大域向き込みの基底値."""
        lam = region.bary  # (nq, 4)
        g = region.grads  # (nc, 4, 3)
        i, j = TET_EDGES[:, 0], TET_EDGES[:, 1]
        w = (
            lam[None, :, i, None] * g[:, None, j, :]
            - lam[None, :, j, None] * g[:, None, i, :]
        )
        return w * self.signs[region.cells][:, None, :, None]

    def basis_curls(self, region: QuadratureRegion) -> np.ndarray:
        """(nc, 6, 3) 大域向き込みの基底 curl（セル内一定）."""
        g = region.grads
        i, j = TET_EDGES[:, 0], TET_EDGES[:, 1]
        c = 2.0 * np.cross(g[:, i, :], g[:, j, :])
        return c * self.signs[region.cells][:, :, None]

    def evaluate(self, region: QuadratureRegion, u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """係数ベクトル u の積分点値 (nc, nq, 3) と curl (nc, 3)."""
        ue = u[self.cell_dofs(region)]
        vals = np.einsum("ce,cqed->cqd", ue, self.basis_values(region))
        curls = np.einsum("ce,ced->cd", ue, self.basis_curls(region))
        return vals, curls

    def interpolate(self, value) -> np.ndarray:
        """辺 DOF への補間 ∫_0^1 A(x(s))·(x_j - x_i) ds（2 点 Gauss）.

        value は (3,) 定数ベクトルまたは (n, 3) → (n, 3) の関数。
        """
        x = self.mesh.nodes
        xi, xj = x[self.edges[:, 0]], x[self.edges[:, 1]]
        d = xj - xi
        bary, w = line_rule()
        dofs = np.zeros(self.ndofs)
        for q in range(bary.shape[0]):
            pts = bary[q, 0] * xi + bary[q, 1] * xj
            if callable(value):
                A = np.asarray(value(pts), dtype=float)
            else:
                A = np.asarray(value, dtype=float)
            if A.ndim == 0 or A.shape[-1] != 3:
                raise UnsupportedCombination("H(curl) 空間の値は 3 成分ベクトルでなければなりません。")
            A = np.broadcast_to(A, pts.shape)
            dofs += w[q] * np.sum(A * d, axis=1)
        return dofs

    def _tag_dofs(self, tag: str) -> np.ndarray:
        mask = np.zeros(self.mesh.n_nodes, dtype=bool)
        mask[self._tag_nodes(tag)] = True
        return np.where(mask[self.edges].all(axis=1))[0]


