"""構造格子メッシュ生成（三角形 / 四面体）.

直方体領域を格子分割し、各セルを単体要素に分割する。
  - 2D: 各矩形を 2 つの三角形に分割
  - 3D: 各六面体を主対角線まわりの 6 つの四面体に分割（Kuhn 分割、隣接セル間で適合）

タグ:
  node_tags      節点集合（Dirichlet 境界条件用）
  cell_tags      セル集合（超伝導部分領域・ソース領域用）
  boundary_facets 境界ファセット（2D: 辺 (M, 2)、3D: 面 (M, 3)）
"""

from __future__ import annotations

import dataclasses
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np

from xkep_hts.core.errors import InvalidParameter


@dataclass(frozen=True)
class Mesh:
    """単体要素メッシュ.

    Attributes:
        nodes: (n_nodes, dim) 節点座標
        cells: (n_cells, dim+1) 接続配列
        node_tags: タグ名 → 節点番号配列
        cell_tags: タグ名 → セル番号配列
        boundary_facets: タグ名 → 境界ファセット配列
    """

    nodes: np.ndarray
    cells: np.ndarray
    node_tags: dict[str, np.ndarray] = field(default_factory=dict)
    cell_tags: dict[str, np.ndarray] = field(default_factory=dict)
    boundary_facets: dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def dim(self) -> int:
        return int(self.nodes.shape[1])

    @property
    def n_nodes(self) -> int:
        return int(self.nodes.shape[0])

    @property
    def n_cells(self) -> int:
        return int(self.cells.shape[0])

    def centroids(self) -> np.ndarray:
        """(n_cells, dim) セル重心."""
        return self.nodes[self.cells].mean(axis=1)

    def cell_facets(self) -> np.ndarray:
        """(n_cells, dim+1, dim) 各セルのファセット（節点番号昇順）."""
        k = self.dim + 1
        local = [c for c in itertools.combinations(range(k), self.dim)]
        return np.sort(self.cells[:, local], axis=2)


def _check_partition(partition, dim: int) -> tuple[int, ...]:
    if len(partition) != dim:
        raise InvalidParameter(f"partition は {dim} 要素でなければなりません: {partition}")
    part = tuple(int(p) for p in partition)
    if any(p <= 0 for p in part):
        raise InvalidParameter(f"partition は正の整数でなければなりません: {partition}")
    return part


def _check_domain(domain, dim: int) -> np.ndarray:
    d = np.asarray(domain, dtype=float)
    if d.shape != (2 * dim,):
        raise InvalidParameter(f"domain は {2 * dim} 要素でなければなりません: {domain}")
    lo, hi = d[0::2], d[1::2]
    if np.any(hi <= lo):
        raise InvalidParameter(f"domain の各区間は min < max でなければなりません: {domain}")
    return d


def _side_tags(nodes: np.ndarray, domain: np.ndarray, names) -> dict[str, np.ndarray]:
    tags: dict[str, np.ndarray] = {}
    span = domain[1::2] - domain[0::2]
    tol = 1e-10 * float(np.max(span))
    for axis, (lo_name, hi_name) in enumerate(names):
        tags[lo_name] = np.where(np.abs(nodes[:, axis] - domain[2 * axis]) < tol)[0]
        tags[hi_name] = np.where(np.abs(nodes[:, axis] - domain[2 * axis + 1]) < tol)[0]
    tags["boundary"] = np.unique(np.concatenate(list(tags.values())))
    return tags


def _side_facets(
    facets: np.ndarray, node_tags: dict[str, np.ndarray], n_nodes: int
) -> dict[str, np.ndarray]:
    """全ノードが該当辺タグに含まれる境界ファセットを辺タグごとに抽出."""
    out: dict[str, np.ndarray] = {}
    for name, idx in node_tags.items():
        mask = np.zeros(n_nodes, dtype=bool)
        mask[idx] = True
        out[name] = facets[np.all(mask[facets], axis=1)]
    return out


def _exterior_facets(cell_facets: np.ndarray) -> np.ndarray:
    """1 セルにしか属さないファセット."""
    flat = cell_facets.reshape(-1, cell_facets.shape[-1])
    uniq, counts = np.unique(flat, axis=0, return_counts=True)
    return uniq[counts == 1]


def make_rect_tri_mesh(
    domain=(0.0, 1.0, 0.0, 1.0),
    partition=(20, 20),
) -> Mesh:
    """矩形領域の三角形メッシュ.

    Args:
        domain: (x0, x1, y0, y1)
        partition: (nx, ny) 分割数

    Returns:
        Mesh: node_tags = left, right, bottom, top, boundary
    """
    d = _check_domain(domain, 2)
    nx, ny = _check_partition(partition, 2)
    xs = np.linspace(d[0], d[1], nx + 1)
    ys = np.linspace(d[2], d[3], ny + 1)
    X, Y = np.meshgrid(xs, ys, indexing="xy")
    nodes = np.column_stack([X.ravel(), Y.ravel()])

    def nid(i, j):
        return j * (nx + 1) + i

    i, j = np.meshgrid(np.arange(nx), np.arange(ny), indexing="xy")
    i, j = i.ravel(), j.ravel()
    n00, n10 = nid(i, j), nid(i + 1, j)
    n01, n11 = nid(i, j + 1), nid(i + 1, j + 1)
    lower = np.column_stack([n00, n10, n11])
    upper = np.column_stack([n00, n11, n01])
    cells = np.empty((2 * nx * ny, 3), dtype=int)
    cells[0::2] = lower
    cells[1::2] = upper

    mesh = Mesh(nodes=nodes, cells=cells)
    node_tags = _side_tags(nodes, d, [("left", "right"), ("bottom", "top")])
    ext = _exterior_facets(mesh.cell_facets())
    return dataclasses.replace(
        mesh,
        node_tags=node_tags,
        boundary_facets=_side_facets(ext, node_tags, mesh.n_nodes),
    )


# Kuhn 分割: 軸の置換ごとに 000 → 111 の単調パスをたどる
_KUHN_PATHS = list(itertools.permutations(range(3)))


def make_box_tet_mesh(
    domain=(0.0, 1.0, 0.0, 1.0, 0.0, 1.0),
    partition=(4, 4, 4),
) -> Mesh:
    """直方体領域の四面体メッシュ（六面体あたり 6 要素）.

    Args:
        domain: (x0, x1, y0, y1, z0, z1)
        partition: (nx, ny, nz)

    Returns:
        Mesh: node_tags = left, right, bottom, top, front, back, boundary
    """
    d = _check_domain(domain, 3)
    nx, ny, nz = _check_partition(partition, 3)
    xs = np.linspace(d[0], d[1], nx + 1)
    ys = np.linspace(d[2], d[3], ny + 1)
    zs = np.linspace(d[4], d[5], nz + 1)
    X, Y, Z = np.meshgrid(xs, ys, zs, indexing="ij")
    nodes = np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])

    def nid(i, j, k):
        return (i * (ny + 1) + j) * (nz + 1) + k

    i, j, k = np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing="ij")
    base = np.stack([i.ravel(), j.ravel(), k.ravel()], axis=1)
    blocks = []
    for perm in _KUHN_PATHS:
        corner = base.copy()
        verts = [nid(*corner.T)]
        for axis in perm:
            corner = corner.copy()
            corner[:, axis] += 1
            verts.append(nid(*corner.T))
        blocks.append(np.column_stack(verts))
    cells = np.stack(blocks, axis=1).reshape(-1, 4)

    mesh = Mesh(nodes=nodes, cells=cells)
    node_tags = _side_tags(
        nodes, d, [("left", "right"), ("bottom", "top"), ("front", "back")]
    )
    ext = _exterior_facets(mesh.cell_facets())
    return dataclasses.replace(
        mesh,
        node_tags=node_tags,
        boundary_facets=_side_facets(ext, node_tags, mesh.n_nodes),
    )


def add_cell_tag(
    mesh: Mesh,
    name: str,
    predicate: Callable[[np.ndarray], np.ndarray],
) -> Mesh:
    """重心座標の述語でセルにタグを付けた新しい Mesh を返す.

    同時に節点タグ name（タグ付きセルの全節点）と name + "_boundary"
    （タグ付きセル集合の境界節点）、境界ファセット name + "_boundary" を追加する。

    Args:
        mesh: 元のメッシュ
        name: タグ名
        predicate: (n_cells, dim) 重心 → (n_cells,) bool

    Raises:
        InvalidParameter: 該当セルが無い場合
    """
    mask = np.asarray(predicate(mesh.centroids()), dtype=bool)
    cells_idx = np.where(mask)[0]
    if cells_idx.size == 0:
        raise InvalidParameter(f"セルタグ {name!r} に該当するセルがありません。")

    facets = _exterior_facets(mesh.cell_facets()[cells_idx])
    node_tags = dict(mesh.node_tags)
    node_tags[name] = np.unique(mesh.cells[cells_idx])
    node_tags[f"{name}_boundary"] = np.unique(facets)
    cell_tags = dict(mesh.cell_tags)
    cell_tags[name] = cells_idx
    boundary_facets = dict(mesh.boundary_facets)
    boundary_facets[f"{name}_boundary"] = facets
    return dataclasses.replace(
        mesh, node_tags=node_tags, cell_tags=cell_tags, boundary_facets=boundary_facets
    )


def box_predicate(bounds) -> Callable[[np.ndarray], np.ndarray]:
    """(x0, x1, y0, y1[, z0, z1]) の箱に重心が入るセルを選ぶ述語."""
    b = np.asarray(bounds, dtype=float)

    def predicate(xc: np.ndarray) -> np.ndarray:
        lo, hi = b[0::2], b[1::2]
        return np.all((xc >= lo) & (xc <= hi), axis=1)

    return predicate
