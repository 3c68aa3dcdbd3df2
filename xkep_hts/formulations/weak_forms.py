"""A / T-A 定式化の弱形式（残差・Jacobian）.

被積分関数の定義のみを行い、離散化は fem（空間・積分領域）に任せる。
w は座標系の積分重み（coordinates.weight）。

A 定式化（線形）:
  2D: a(A, v) = ∫ w μ⁻¹ ∇A·∇v dΩ      （面外スカラー A の curl-curl）
  3D: a(A, v) = ∫ μ⁻¹ (∇×A)·(∇×v) dΩ
  l(v) = ∫ w f·v dΩ

T-A 定式化（非線形）, J = -∇T:
  R_A = a(A, v_A) - l(v_A)                       （全領域）
  R_T = ∫_sc w ρ(|J|) (J·∇v_T) dΩ                （超伝導部分領域）

Jacobian:
  ∂R_A/∂A·dA = a(dA, v_A)
  ∂R_T/∂T·dT = ∫_sc w [ρ (dJ·∇v_T) + dρ ((J·dJ)/|J|) (J·∇v_T)],  dJ = -∇dT
  J_c(B) 依存材料では B = ∇×A を通じた交差項
  ∂R_T/∂A·dA = ∫_sc w (dρ/d|B|) ((B·dB)/|B|) (J·∇v_T),        dB = ∇×dA

|J| と |B| は正則化ノルム sqrt(v·v + EPS_REG) で評価し、残差と Jacobian で
同じノルムを使う（Jacobian は残差の厳密な微分）。

2D の B = ∇×(A e_z):
  Cartesian    B = (∂A/∂y, -∂A/∂x)
  軸対称 (r,z) B = (-∂A/∂z, ∂A/∂r + A/r)
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import scipy.sparse as sp

from xkep_hts.constants import EPS_AXIS
from xkep_hts.core.material import HTSMaterialProtocol
from xkep_hts.core.state import StateLayout
from xkep_hts.fem.assembly import assemble_matrix, assemble_vector
from xkep_hts.fem.quadrature import BoundaryRegion, QuadratureRegion
from xkep_hts.fem.spaces import H1Space, HcurlSpace
from xkep_hts.formulations.coordinates import CoordinateSystem, weight
from xkep_hts.materials.power_law import norm_safe


def weighted_measure(
    region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem,
) -> np.ndarray:
    """(nc, nq) 座標重み込みの積分重み w(x_q) W_q."""
    return weight(coordinate_system)(region.points) * region.weights


def _eval_at_points(fun, points: np.ndarray, value_dim: int | None = None) -> np.ndarray:
    """関数または定数を積分点 (..., dim) で評価する.

    Returns:
        value_dim=None ならスカラー (...,)、そうでなければ (..., value_dim)
    """
    lead = points.shape[:-1]
    if callable(fun):
        vals = np.asarray(fun(points.reshape(-1, points.shape[-1])), dtype=float)
        if value_dim is None:
            return np.broadcast_to(vals, (int(np.prod(lead)),)).reshape(lead)
        return np.broadcast_to(vals, (int(np.prod(lead)), value_dim)).reshape(*lead, value_dim)
    vals = np.asarray(fun, dtype=float)
    shape = lead if value_dim is None else (*lead, value_dim)
    return np.broadcast_to(vals, shape)


# ========== B = curl A 演算子 ==========


def flux_density_operator(
    space: H1Space | HcurlSpace,
    region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem,
) -> np.ndarray:
    """B = Σ_b Bop[c, q, b, :] A_b となる (nc, nq, k, d) 配列."""
    nq = region.n_points
    if space.vector:
        curls = space.basis_curls(region)
        return np.broadcast_to(curls[:, None, :, :], (curls.shape[0], nq, *curls.shape[1:]))

    G = region.grads  # (nc, 3, 2)
    nc, k = G.shape[0], G.shape[1]
    Bop = np.empty((nc, nq, k, 2))
    if CoordinateSystem.parse(coordinate_system) is CoordinateSystem.AXISYMMETRIC_2D:
        r = np.maximum(region.points[..., 0], EPS_AXIS)  # (nc, nq)
        Bop[..., 0] = -G[:, None, :, 1]
        Bop[..., 1] = G[:, None, :, 0] + region.bary[None, :, :] / r[..., None]
    else:
        Bop[..., 0] = G[:, None, :, 1]
        Bop[..., 1] = -G[:, None, :, 0]
    return Bop


def evaluate_flux_density(
    space: H1Space | HcurlSpace,
    region: QuadratureRegion,
    A: np.ndarray,
    coordinate_system: str | CoordinateSystem,
) -> np.ndarray:
    """(nc, nq, d) 積分点での B = ∇×A."""
    Bop = flux_density_operator(space, region, coordinate_system)
    Ae = A[space.cell_dofs(region)]
    return np.einsum("cqbd,cb->cqd", Bop, Ae)


# ========== 補助形式 ==========


def grad_grad_bilinear(
    space: H1Space,
    region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem = CoordinateSystem.CARTESIAN_2D,
    coefficient: float = 1.0,
) -> sp.csr_matrix:
    """∫ w c ∇u·∇v dΩ."""
    G = region.grads
    wm = weighted_measure(region, coordinate_system).sum(axis=1)
    Ke = coefficient * wm[:, None, None] * np.einsum("cad,cbd->cab", G, G)
    dofs = space.cell_dofs(region)
    return assemble_matrix(Ke, dofs, shape=(space.ndofs, space.ndofs))


def mass_bilinear(
    space: H1Space,
    region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem = CoordinateSystem.CARTESIAN_2D,
) -> sp.csr_matrix:
    """∫ w u v dΩ."""
    N = region.bary
    wm = weighted_measure(region, coordinate_system)
    Ke = np.einsum("cq,qa,qb->cab", wm, N, N)
    dofs = space.cell_dofs(region)
    return assemble_matrix(Ke, dofs, shape=(space.ndofs, space.ndofs))


# ========== A 定式化 ==========


def a_bilinear_form(
    mu_inv: float,
    space: H1Space | HcurlSpace,
    region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem,
) -> sp.csr_matrix:
    """a(A, v) の行列.

    2D（H1）: ∫ w μ⁻¹ ∇A·∇v、3D（H(curl)）: ∫ μ⁻¹ curl A·curl v（重みなし）。
    """
    if space.vector:
        C = space.basis_curls(region)
        vol = region.weights.sum(axis=1)
        Ke = mu_inv * vol[:, None, None] * np.einsum("cad,cbd->cab", C, C)
        dofs = space.cell_dofs(region)
        return assemble_matrix(Ke, dofs, shape=(space.ndofs, space.ndofs))
    return grad_grad_bilinear(space, region, coordinate_system, coefficient=mu_inv)


def a_linear_form(
    source,
    space: H1Space | HcurlSpace,
    region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem,
) -> np.ndarray:
    """l(v) = ∫ w f·v dΩ.

    Args:
        source: 定数（2D スカラー / 3D ベクトル）または x (n, dim) → 値 の関数
        region: 全領域またはソース部分領域
    """
    wm = weighted_measure(region, coordinate_system)
    dofs = space.cell_dofs(region)
    if space.vector:
        f = _eval_at_points(source, region.points, value_dim=3)  # (nc, nq, 3)
        fe = np.einsum("cq,cqd,cqed->ce", wm, f, space.basis_values(region))
    else:
        f = _eval_at_points(source, region.points)  # (nc, nq)
        fe = np.einsum("cq,cq,qa->ca", wm, f, region.bary)
    return assemble_vector(fe, dofs, space.ndofs)


def neumann_linear_form(
    g,
    space: H1Space,
    boundary: BoundaryRegion,
    coordinate_system: str | CoordinateSystem,
) -> np.ndarray:
    """l_N(v) = ∫_Γ w g v ds（2D スカラー A のみ）."""
    w = weight(coordinate_system)(boundary.points) * boundary.weights  # (ne, nq)
    gq = _eval_at_points(g, boundary.points)
    fe = np.einsum("eq,eq,qa->ea", w, gq, boundary.bary)
    return assemble_vector(fe, boundary.facets, space.ndofs)


# ========== T-A 定式化 ==========


class _TAKernel:
    """T-A 弱形式の共通前処理（積分点データと DOF 配置）."""

    def __init__(
        self,
        material: HTSMaterialProtocol,
        space_A: H1Space | HcurlSpace,
        space_T: H1Space,
        sc_region: QuadratureRegion,
        coordinate_system: str | CoordinateSystem,
        layout: StateLayout,
    ) -> None:
        self.material = material
        self.space_A = space_A
        self.layout = layout
        self.G = sc_region.grads  # (nc, k, d)
        self.wm = weighted_measure(sc_region, coordinate_system)  # (nc, nq)
        self.T_dofs = space_T.cell_dofs(sc_region)
        self.A_dofs = space_A.cell_dofs(sc_region)
        self.Bop = None
        if material.field_dependent:
            self.Bop = flux_density_operator(space_A, sc_region, coordinate_system)

    def fields(self, x: np.ndarray):
        """(J (nc, d), |J| (nc, nq), B (nc, nq, d) or None)."""
        A = x[: self.layout.n_A]
        T = x[self.layout.n_A :]
        J = -np.einsum("ca,cad->cd", T[self.T_dofs], self.G)
        J_norm = np.broadcast_to(norm_safe(J)[:, None], self.wm.shape)
        B = None
        if self.Bop is not None:
            B = np.einsum("cqbd,cb->cqd", self.Bop, A[self.A_dofs])
        return J, J_norm, B


def ta_residual(
    material: HTSMaterialProtocol,
    mu_inv: float,
    space_A: H1Space | HcurlSpace,
    space_T: H1Space,
    region: QuadratureRegion,
    sc_region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem,
    layout: StateLayout,
    source_vector: np.ndarray | None = None,
) -> Callable[[np.ndarray], np.ndarray]:
    """連成残差 R(x), x = [A; T] を返す.

    Args:
        material: 材料スナップショット（指数継続法の 1 ステップ分）
        mu_inv: 透磁率の逆数 μ⁻¹
        region: 全領域（A 方程式）
        sc_region: 超伝導部分領域（T 方程式）
        source_vector: A 方程式の線形形式 l(v_A)（None ならソースなし）
    """
    K_A = a_bilinear_form(mu_inv, space_A, region, coordinate_system)
    f_A = np.zeros(layout.n_A) if source_vector is None else np.asarray(source_vector, dtype=float)
    kernel = _TAKernel(material, space_A, space_T, sc_region, coordinate_system, layout)

    def residual(x: np.ndarray) -> np.ndarray:
        R = np.empty(layout.ndofs)
        R[: layout.n_A] = K_A @ x[: layout.n_A] - f_A
        J, J_norm, B = kernel.fields(x)
        rho = np.asarray(material.resistivity(J_norm, B))
        s = np.sum(kernel.wm * rho, axis=1)  # (nc,)
        fe = s[:, None] * np.einsum("cd,cad->ca", J, kernel.G)
        R[layout.n_A :] = assemble_vector(fe, kernel.T_dofs, layout.n_T)
        return R

    return residual


def ta_jacobian(
    material: HTSMaterialProtocol,
    mu_inv: float,
    space_A: H1Space | HcurlSpace,
    space_T: H1Space,
    region: QuadratureRegion,
    sc_region: QuadratureRegion,
    coordinate_system: str | CoordinateSystem,
    layout: StateLayout,
) -> Callable[[np.ndarray], sp.csr_matrix]:
    """連成 Jacobian J(x) を返す（ブロック [[K_AA, 0], [K_TA, K_TT]]）."""
    K_A = a_bilinear_form(mu_inv, space_A, region, coordinate_system)
    kernel = _TAKernel(material, space_A, space_T, sc_region, coordinate_system, layout)
    n_A, n_T = layout.n_A, layout.n_T

    def jacobian(x: np.ndarray) -> sp.csr_matrix:
        J, J_norm, B = kernel.fields(x)
        rho = np.asarray(material.resistivity(J_norm, B))
        drho = np.asarray(material.resistivity_derivative(J_norm, B))
        JG = np.einsum("cd,cad->ca", J, kernel.G)  # J·∇N_a
        GG = np.einsum("cad,cbd->cab", kernel.G, kernel.G)
        s_rho = np.sum(kernel.wm * rho, axis=1)
        s_drho = np.sum(kernel.wm * drho / J_norm, axis=1)
        # dJ = -∇N_b
        Ke_TT = -(s_rho[:, None, None] * GG + s_drho[:, None, None] * JG[:, :, None] * JG[:, None, :])
        K_TT = assemble_matrix(Ke_TT, kernel.T_dofs, shape=(n_T, n_T))

        blocks = [[K_A, None], [None, K_TT]]
        if B is not None:
            B_norm = norm_safe(B)  # (nc, nq)
            drho_dB = np.asarray(material.resistivity_field_derivative(J_norm, B))
            BdB = np.einsum("cqd,cqbd->cqb", B, kernel.Bop)  # B·dB_b
            coef = kernel.wm * drho_dB / B_norm  # (nc, nq)
            Ke_TA = np.einsum("cq,ca,cqb->cab", coef, JG, BdB)
            blocks[1][0] = assemble_matrix(Ke_TA, kernel.T_dofs, kernel.A_dofs, shape=(n_T, n_A))
        return sp.bmat(blocks, format="csr")

    return jacobian
