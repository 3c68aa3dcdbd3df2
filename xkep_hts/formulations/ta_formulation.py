"""T-A 定式化（ベクトルポテンシャル A とスカラーポテンシャル T の連成）.

  A 方程式: ∇ × (μ⁻¹ ∇ × A) = J_s    （全領域）
  T 方程式: ∇ · E(J) = 0              （超伝導部分領域）

J = -∇T、E = ρ(|J|) J（べき乗則）。

超伝導部分領域:
  superconductor_tag がメッシュのセルタグを指す場合、T 方程式はそのセル上でのみ
  積分し、部分領域外の節点の T はゼロに固定する。タグが無い場合は全領域を
  超伝導体として扱う。

T の Dirichlet タグ "superconductor_boundary" は部分領域の境界節点
（タグ名 + "_boundary"）、部分領域が無ければ領域境界 "boundary" を指す。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from xkep_hts.core.material import HTSMaterialProtocol
from xkep_hts.core.results import LinearSystem
from xkep_hts.core.state import StateLayout
from xkep_hts.core.system import NonlinearSystem
from xkep_hts.fem.quadrature import QuadratureRegion, build_region
from xkep_hts.fem.spaces import H1Space, HcurlSpace
from xkep_hts.formulations.a_formulation import assemble_source, make_space
from xkep_hts.formulations.coordinates import CoordinateSystem
from xkep_hts.formulations.weak_forms import ta_jacobian, ta_residual
from xkep_hts.materials.power_law import PowerLawMaterial
from xkep_hts.mesh.structured import Mesh
from xkep_hts.solver import solve_linear_system

if TYPE_CHECKING:
    from xkep_hts.config import FormulationConfig, MaterialConfig

SC_BOUNDARY_ALIAS = "superconductor_boundary"


class TAFormulationSetup(NamedTuple):
    """T-A 定式化の組み立て結果.

    指数継続法では space / region / fixed_* を共有したまま、材料だけを
    差し替えて build_ta_system() で非線形系を作り直す。

    Attributes:
        mesh: メッシュ
        space_A: A の関数空間
        space_T: T の関数空間（H1）
        region: 全領域
        sc_region: 超伝導部分領域（未指定なら region と同じ）
        layout: 自由度配置 [A; T]
        mu_inv: μ⁻¹
        coordinate_system: 座標系
        fixed_dofs: 拘束 DOF（全体番号）
        fixed_values: 拘束値
        source_vector: A 方程式の右辺 l(v_A)
        material_config: 材料設定（ステップごとの材料構築用）
        material: 基準指数の材料
        system: 基準指数の非線形系
        superconductor_tag: 使用した超伝導タグ（全領域なら None）
        linear_solver: Newton 修正量の線形ソルバー
    """

    mesh: Mesh
    space_A: H1Space | HcurlSpace
    space_T: H1Space
    region: QuadratureRegion
    sc_region: QuadratureRegion
    layout: StateLayout
    mu_inv: float
    coordinate_system: CoordinateSystem
    fixed_dofs: np.ndarray
    fixed_values: np.ndarray
    source_vector: np.ndarray
    material_config: MaterialConfig
    material: HTSMaterialProtocol
    system: NonlinearSystem
    superconductor_tag: str | None
    linear_solver: str


def _resolve_T_tags(tags, sc_tag: str | None) -> tuple[str, ...]:
    target = "boundary" if sc_tag is None else f"{sc_tag}_boundary"
    return tuple(target if t == SC_BOUNDARY_ALIAS else t for t in tags)


def _resolve_T_values(values, sc_tag: str | None):
    if isinstance(values, dict):
        return dict(zip(_resolve_T_tags(values.keys(), sc_tag), values.values(), strict=True))
    return values


def _T_constraints(
    space_T: H1Space,
    mesh: Mesh,
    config: FormulationConfig,
    sc_tag: str | None,
) -> tuple[np.ndarray, np.ndarray]:
    """T の拘束 DOF と値（部分領域外はゼロ、Dirichlet 値が優先）."""
    bcs = config.boundary
    dofs, vals = space_T.dirichlet_values(
        _resolve_T_tags(bcs.dirichlet_tags_T, sc_tag),
        _resolve_T_values(bcs.dirichlet_values_T, sc_tag),
    )
    if sc_tag is None:
        return dofs, vals
    outside = np.setdiff1d(np.arange(space_T.ndofs), mesh.node_tags[sc_tag])
    all_vals = np.zeros(space_T.ndofs)
    all_vals[dofs] = vals
    all_dofs = np.union1d(dofs, outside)
    return all_dofs, all_vals[all_dofs]


def setup_ta_formulation(
    config: FormulationConfig,
    material_config: MaterialConfig,
    mesh: Mesh,
    *,
    linear_solver: str | None = None,
) -> TAFormulationSetup:
    """T-A 定式化を組み立てる.

    Args:
        config: 定式化設定（A / T 別々の Dirichlet タグ、超伝導タグ）
        material_config: 材料設定（種別で PowerLaw / FieldDependent を選択）
        mesh: メッシュ
        linear_solver: Newton 修正量の線形ソルバー（None なら "spsolve"）

    Raises:
        UnsupportedCombination: 未知の材料種別・タグ、次元の不一致
    """
    material = material_config.build()

    space_A = make_space(mesh, config.dimension)
    space_T = H1Space(mesh)
    region = build_region(mesh)

    sc_tag = config.superconductor_tag
    sc_region = region if sc_tag is None else build_region(mesh, sc_tag)

    bcs = config.boundary
    dofs_A, vals_A = space_A.dirichlet_values(bcs.dirichlet_tags, bcs.dirichlet_values)
    dofs_T, vals_T = _T_constraints(space_T, mesh, config, sc_tag)
    layout = StateLayout(n_A=space_A.ndofs, n_T=space_T.ndofs, vector_A=space_A.vector)

    setup = TAFormulationSetup(
        mesh=mesh,
        space_A=space_A,
        space_T=space_T,
        region=region,
        sc_region=sc_region,
        layout=layout,
        mu_inv=config.mu_inv,
        coordinate_system=config.coordinate_system,
        fixed_dofs=np.concatenate([dofs_A, dofs_T + layout.n_A]),
        fixed_values=np.concatenate([vals_A, vals_T]),
        source_vector=assemble_source(config, space_A, mesh, region),
        material_config=material_config,
        material=material,
        system=None,
        superconductor_tag=sc_tag,
        linear_solver=linear_solver or "spsolve",
    )
    return setup._replace(system=build_ta_system(setup, material))


def _form_args(setup: TAFormulationSetup) -> tuple:
    return (
        setup.mu_inv,
        setup.space_A,
        setup.space_T,
        setup.region,
        setup.sc_region,
        setup.coordinate_system,
        setup.layout,
    )


def build_ta_system(
    setup: TAFormulationSetup,
    material: HTSMaterialProtocol,
) -> NonlinearSystem:
    """材料スナップショットに閉じた連成非線形系を作る.

    初期値はオーミック問題（n = 1, ρ = E_c/J_c 一定）の解。高い n では
    ゼロ初期値の ρ がほぼ 0 となり Jacobian が特異になるため。
    """
    args = _form_args(setup)
    residual = ta_residual(material, *args, source_vector=setup.source_vector)
    jacobian = ta_jacobian(material, *args)

    def initial_guess() -> np.ndarray:
        return ohmic_initial_guess(setup, material)

    return NonlinearSystem(
        residual=residual,
        jacobian=jacobian,
        layout=setup.layout,
        fixed_dofs=setup.fixed_dofs,
        fixed_values=setup.fixed_values,
        initial_guess=initial_guess,
        linear_solver=setup.linear_solver,
        label=f"T-A n={material.n}",
    )


def ohmic_initial_guess(setup: TAFormulationSetup, material: HTSMaterialProtocol) -> np.ndarray:
    """オーミック（n = 1）問題の解: K x = -R(0)、拘束値を持ち上げた状態で求解."""
    ohmic = PowerLawMaterial(ec=material.ec, jc=material.jc, n=1)
    args = _form_args(setup)
    x0 = np.zeros(setup.layout.ndofs)
    R0 = ta_residual(ohmic, *args, source_vector=setup.source_vector)(x0)
    K = ta_jacobian(ohmic, *args)(x0)
    system = LinearSystem(
        K=K,
        f=-R0,
        fixed_dofs=setup.fixed_dofs,
        fixed_values=setup.fixed_values,
        layout=setup.layout,
        linear_solver="spsolve",
    )
    return solve_linear_system(system).u
