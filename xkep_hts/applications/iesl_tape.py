"""IESL 2D 矩形テープベンチマーク.

htsmodelling.com のベンチマーク問題 1: 外部磁場中の HTS テープ断面
（幅 12 mm × 厚さ 1 μm）。テープ周囲に幅の 10 倍の空気領域を取る。

構造格子では 1 μm の厚さを解像できないため、y = 0 を中心とする 1 層のセル列を
テープとしてタグ付けし、臨界電流 I_c = J_c w d が保たれるよう J_c を
d / h（h はセル高さ）倍した等価 J_c を使う。

外部磁場 B_y = b_max は A の Dirichlet 値 A = -b_max x で与える
（2D Cartesian の B = (∂A/∂y, -∂A/∂x)）。

参考:
  - IESL HTS Modelling Workgroup: https://htsmodelling.com/
"""

from __future__ import annotations

from xkep_hts.config import (
    BoundaryConfig,
    Formulation,
    MaterialConfig,
    MeshConfig,
    SimulationConfig,
    SolverConfig,
)
from xkep_hts.constants import E_C_DEFAULT, MU_0
from xkep_hts.core.errors import InvalidParameter

TAPE_WIDTH = 12e-3  # [m]
TAPE_THICKNESS = 1e-6  # [m]
AIR_MARGIN = 10 * TAPE_WIDTH  # [m]


def applied_field_potential(b_applied: float):
    """一様磁場 B = (0, b_applied) を与える A(x) = -b_applied x."""

    def potential(x):
        return -b_applied * x[:, 0]

    return potential


def setup_iesl_benchmark(
    *,
    b_max: float = 1.0,
    jc: float = 3e10,
    n: int = 21,
    partition: tuple[int, int] = (120, 41),
) -> SimulationConfig:
    """IESL 2D テープベンチマークの設定を作る.

    Args:
        b_max: 外部磁場 [T]
        jc: テープの臨界電流密度 [A/m²]
        n: べき乗則指数
        partition: (nx, ny) 格子分割。ny は奇数（テープ層を y = 0 中心に置くため）、
            nx はテープ幅がセル境界に一致するよう 20 の倍数。

    Returns:
        SimulationConfig（T-A 定式化、指数継続 [5, 10, 15, n]）
    """
    nx, ny = int(partition[0]), int(partition[1])
    if ny % 2 != 1:
        raise InvalidParameter(f"ny は奇数でなければなりません: {ny}")
    if nx % 20 != 0:
        raise InvalidParameter(f"nx は 20 の倍数でなければなりません: {nx}")

    cell_height = 2 * AIR_MARGIN / ny
    jc_eff = jc * TAPE_THICKNESS / cell_height
    tape_box = (-TAPE_WIDTH / 2, TAPE_WIDTH / 2, -cell_height / 2, cell_height / 2)
    schedule = tuple(k for k in (5, 10, 15) if k < n) + (int(n),)

    return SimulationConfig(
        formulation=Formulation.TA,
        mesh=MeshConfig(
            domain=(-AIR_MARGIN, AIR_MARGIN, -AIR_MARGIN, AIR_MARGIN),
            partition=(nx, ny),
            cell_tags={"tape": tape_box},
        ),
        material=MaterialConfig(
            kind="power_law", jc=jc_eff, n_exponent=int(n), ec=E_C_DEFAULT, mu=MU_0
        ),
        boundary=BoundaryConfig(
            dirichlet_tags=("boundary",),
            dirichlet_values=applied_field_potential(b_max),
            dirichlet_tags_T=("superconductor_boundary",),
        ),
        solver=SolverConfig(max_iter=50, rtol=1e-6, atol=1e-12, n_continuation=schedule),
        superconductor_tag="tape",
        problem_name="IESL_2D_Tape",
        metadata={
            "name": "IESL 2D Rectangular Tape",
            "tape_width": TAPE_WIDTH,
            "tape_thickness": TAPE_THICKNESS,
            "b_max": b_max,
            "jc": jc,
            "jc_effective": jc_eff,
            "reference_url": "https://htsmodelling.com/",
        },
    )
