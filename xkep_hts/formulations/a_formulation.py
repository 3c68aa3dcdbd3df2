"""A 定式化（磁気ベクトルポテンシャル, 線形静磁場）.

  ∇ × (μ⁻¹ ∇ × A) = J_s

2D は面外スカラー A を P1 Lagrange（H1）で、3D はベクトル A を
最低次 Nedelec（H(curl)）で離散化する。ゲージ固定は行わないため、3D の
curl-curl 行列は特異で、線形ソルバーは共役勾配法を使う。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from xkep_hts.core.errors import UnsupportedCombination
from xkep_hts.core.results import LinearSolveResult, LinearSystem
from xkep_hts.core.state import SolutionState, StateLayout
from xkep_hts.fem.quadrature import QuadratureRegion, build_boundary_region, build_region
from xkep_hts.fem.spaces import H1Space, HcurlSpace
from xkep_hts.formulations.coordinates import CoordinateSystem
from xkep_hts.formulations.weak_forms import (
    a_bilinear_form,
    a_linear_form,
    neumann_linear_form,
)
from xkep_hts.mesh.structured import Mesh
from xkep_hts.solver import solve_linear_system

if TYPE_CHECKING:
    from xkep_hts.config import FormulationConfig


class AFormulationSetup(NamedTuple):
    """A 定式化の組み立て結果.

    Attributes:
        mesh: メッシュ
        space: A の関数空間（2D: H1Space, 3D: HcurlSpace）
        region: 全領域の積分領域
        system: 組み立て済み線形系（拘束適用前）
        mu_inv: μ⁻¹
        coordinate_system: 座標系
        source_tag: ソース部分領域タグ（None なら全領域）
    """

    mesh: Mesh
    space: H1Space | HcurlSpace
    region: QuadratureRegion
    system: LinearSystem
    mu_inv: float
    coordinate_system: CoordinateSystem
    source_tag: str | None


def make_space(mesh: Mesh, dimension: int) -> H1Space | HcurlSpace:
    """A の関数空間: 2D はスカラー H1、3D は接線連続な H(curl)."""
    if mesh.dim != dimension:
        raise UnsupportedCombination(
            f"メッシュ次元 {mesh.dim} と定式化の次元 D = {dimension} が一致しません。"
        )
    return H1Space(mesh) if dimension == 2 else HcurlSpace(mesh)


def assemble_source(
    config: FormulationConfig,
    space: H1Space | HcurlSpace,
    mesh: Mesh,
    region: QuadratureRegion,
) -> np.ndarray:
    """A 方程式の右辺 l(v)（ソース + Neumann）."""
    f = np.zeros(space.ndofs)
    source = config.source
    if source is not None:
        src_region = region if source.tag is None else build_region(mesh, source.tag)
        f += a_linear_form(source.value, space, src_region, config.coordinate_system)
    bcs = config.boundary
    if bcs.neumann_tags and bcs.neumann_values is not None:
        boundary = build_boundary_region(mesh, bcs.neumann_tags)
        f += neumann_linear_form(bcs.neumann_values, space, boundary, config.coordinate_system)
    return f


def setup_a_formulation(
    config: FormulationConfig,
    mesh: Mesh,
    *,
    linear_solver: str | None = None,
) -> AFormulationSetup:
    """A 定式化の線形系を組み立てる.

    Args:
        config: 定式化設定
        mesh: メッシュ（次元は config.dimension と一致すること）
        linear_solver: 線形ソルバー（None なら 2D: "auto", 3D: "cg"）

    Returns:
        AFormulationSetup
    """
    space = make_space(mesh, config.dimension)
    region = build_region(mesh)

    bcs = config.boundary
    fixed_dofs, fixed_values = space.dirichlet_values(bcs.dirichlet_tags, bcs.dirichlet_values)

    K = a_bilinear_form(config.mu_inv, space, region, config.coordinate_system)
    f = assemble_source(config, space, mesh, region)

    if linear_solver is None:
        linear_solver = "cg" if space.vector else "auto"
    system = LinearSystem(
        K=K,
        f=f,
        fixed_dofs=fixed_dofs,
        fixed_values=fixed_values,
        layout=StateLayout(n_A=space.ndofs, vector_A=space.vector),
        linear_solver=linear_solver,
    )
    return AFormulationSetup(
        mesh=mesh,
        space=space,
        region=region,
        system=system,
        mu_inv=config.mu_inv,
        coordinate_system=config.coordinate_system,
        source_tag=None if config.source is None else config.source.tag,
    )


def solve_a_formulation(
    setup: AFormulationSetup,
    *,
    show_progress: bool = True,
) -> tuple[SolutionState, LinearSolveResult]:
    """A 定式化を解く（線形のため ConvergenceFailure は発生しない）."""
    result = solve_linear_system(setup.system, show_progress=show_progress)
    return setup.system.layout.unpack(result.u), result
