"""後処理: 解状態からの派生量（セル平均値）.

  flux_density          B = ∇ × A
  current_density       J = -∇T
  electric_field_cells  E = ρ(|J|, B) J
  transport_current     断面を通過する正味の電流
  l2_error              解析解との L2 誤差

ファイル出力は行わない（可視化は呼び出し側で行う）。
"""

from __future__ import annotations

import numpy as np

from xkep_hts.core.material import HTSMaterialProtocol
from xkep_hts.fem.quadrature import QuadratureRegion
from xkep_hts.fem.spaces import H1Space, HcurlSpace
from xkep_hts.formulations.coordinates import CoordinateSystem
from xkep_hts.formulations.weak_forms import evaluate_flux_density, weighted_measure


def flux_density(
    space: H1Space | HcurlSpace,
    region: QuadratureRegion,
    A: np.ndarray,
    coordinate_system: str | CoordinateSystem = CoordinateSystem.CARTESIAN_2D,
) -> np.ndarray:
    """(nc, d) セル平均の磁束密度 B."""
    B = evaluate_flux_density(space, region, A, coordinate_system)
    w = region.weights
    return np.einsum("cqd,cq->cd", B, w) / w.sum(axis=1)[:, None]


def current_density(space_T: H1Space, region: QuadratureRegion, T: np.ndarray) -> np.ndarray:
    """(nc, d) 電流密度 J = -∇T（P1 ではセル内一定）."""
    _, grad = space_T.evaluate(region, T)
    return -grad


def electric_field_cells(
    material: HTSMaterialProtocol,
    space_T: H1Space,
    region: QuadratureRegion,
    T: np.ndarray,
    *,
    space_A: H1Space | HcurlSpace | None = None,
    A: np.ndarray | None = None,
    coordinate_system: str | CoordinateSystem = CoordinateSystem.CARTESIAN_2D,
) -> np.ndarray:
    """(nc, d) 電界 E = ρ(|J|_reg, B) J.

    J_c(B) 依存材料では space_A と A からセル平均の B を計算して渡す。
    """
    J = current_density(space_T, region, T)
    B = None
    if material.field_dependent and space_A is not None and A is not None:
        B = flux_density(space_A, region, A, coordinate_system)
    return material.electric_field(J, B)


def transport_current(
    space_T: H1Space,
    region: QuadratureRegion,
    T: np.ndarray,
    axis: int = 0,
) -> float:
    """axis に垂直な断面を通過する正味の電流 ∫ J_axis dΩ / L_axis [A].

    div J = 0 の矩形導体では全断面で一定の値になる。
    """
    J = current_density(space_T, region, T)
    vol = region.weights.sum(axis=1)
    coords = region.mesh.nodes[np.unique(region.cell_nodes), axis]
    length = float(coords.max() - coords.min())
    return float(np.sum(J[:, axis] * vol) / length)


def l2_error(
    space: H1Space,
    region: QuadratureRegion,
    u: np.ndarray,
    exact,
    coordinate_system: str | CoordinateSystem = CoordinateSystem.CARTESIAN_2D,
) -> float:
    """sqrt(∫ w (u_h - u)² dΩ). exact は (n, dim) → (n,) の関数."""
    uq, _ = space.evaluate(region, u)
    pts = region.points
    ex = np.asarray(exact(pts.reshape(-1, pts.shape[-1])), dtype=float).reshape(uq.shape)
    wm = weighted_measure(region, coordinate_system)
    return float(np.sqrt(np.sum(wm * (uq - ex) ** 2)))
