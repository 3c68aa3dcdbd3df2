"""高レベルAPI: 設定から解までの一括実行.

main(config) は設定を検証し、定式化の種別（A / TA）ごとのディスパッチ表から
組み立て・求解関数を選んで実行する。T-A で n_continuation が指定されていれば
指数継続法を使う。
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any, NamedTuple

from xkep_hts.config import Formulation, SimulationConfig, check_schedule_target
from xkep_hts.continuation import ContinuationResult, solve_with_continuation
from xkep_hts.core.results import LinearSolveResult, NewtonResult
from xkep_hts.core.state import SolutionState
from xkep_hts.formulations.a_formulation import setup_a_formulation, solve_a_formulation
from xkep_hts.formulations.ta_formulation import build_ta_system, setup_ta_formulation
from xkep_hts.mesh.structured import (
    Mesh,
    add_cell_tag,
    box_predicate,
    make_box_tet_mesh,
    make_rect_tri_mesh,
)
from xkep_hts.solver import newton_solve


class SimulationResult(NamedTuple):
    """main() の戻り値.

    Attributes:
        state: 解状態
        formulation: 実行した定式化
        elapsed_time: 所要時間 [s]
        setup: 定式化の組み立て結果（AFormulationSetup / TAFormulationSetup）
        config: 使用した設定
        linear: 線形求解情報（A 定式化のみ）
        newton: Newton 結果（継続法なしの T-A のみ）
        continuation: 継続法の結果（継続法ありの T-A のみ）
    """

    state: SolutionState
    formulation: Formulation
    elapsed_time: float
    setup: Any
    config: SimulationConfig
    linear: LinearSolveResult | None = None
    newton: NewtonResult | None = None
    continuation: ContinuationResult | None = None


def build_mesh(config: SimulationConfig) -> Mesh:
    """メッシュ設定から構造格子メッシュを生成し、セルタグを付ける."""
    mesh_cfg = config.mesh
    if mesh_cfg.dim == 2:
        mesh = make_rect_tri_mesh(mesh_cfg.domain, mesh_cfg.partition)
    else:
        mesh = make_box_tet_mesh(mesh_cfg.domain, mesh_cfg.partition)
    for name, bounds in mesh_cfg.cell_tags.items():
        mesh = add_cell_tag(mesh, name, box_predicate(bounds))
    return mesh


def _run_a(config: SimulationConfig, mesh: Mesh, *, show_progress: bool) -> dict[str, Any]:
    setup = setup_a_formulation(
        config.formulation_config(), mesh, linear_solver=config.solver.linear_solver
    )
    state, linear = solve_a_formulation(setup, show_progress=show_progress)
    return {"state": state, "setup": setup, "linear": linear}


def _run_ta(config: SimulationConfig, mesh: Mesh, *, show_progress: bool) -> dict[str, Any]:
    setup = setup_ta_formulation(
        config.formulation_config(),
        config.material,
        mesh,
        linear_solver=config.solver.linear_solver,
    )
    schedule = config.solver.n_continuation
    if schedule is None:
        newton = newton_solve(setup.system, config.solver, show_progress=show_progress)
        return {"state": newton.state, "setup": setup, "newton": newton}

    if not check_schedule_target(schedule, config.material) and show_progress:
        print(
            f"  WARNING: continuation ends at n = {schedule[-1]}, "
            f"but material n_exponent = {config.material.n_exponent}."
        )

    def build_system(n: int):
        return build_ta_system(setup, config.material.build(n))

    result = solve_with_continuation(
        schedule, build_system, config.solver, show_progress=show_progress
    )
    return {"state": result.state, "setup": setup, "continuation": result}


_DISPATCH = {
    Formulation.A: _run_a,
    Formulation.TA: _run_ta,
}


def main(
    config: SimulationConfig | Mapping[str, Any],
    *,
    show_progress: bool = True,
) -> SimulationResult:
    """シミュレーションのエントリポイント.

    Args:
        config: SimulationConfig または入れ子の辞書設定（SimulationConfig.from_dict で変換）
        show_progress: 進捗表示

    Returns:
        SimulationResult

    Raises:
        InvalidParameter / UnsupportedCombination: 設定の検証失敗
        ConvergenceFailure: T-A の Newton が収束しない（継続法では ContinuationFailure）
    """
    if not isinstance(config, SimulationConfig):
        config = SimulationConfig.from_dict(config)

    if show_progress:
        print(f"xkep_hts: Running {config.formulation.value}-formulation ({config.problem_name})")
    t_start = time.time()

    mesh = build_mesh(config)
    out = _DISPATCH[config.formulation](config, mesh, show_progress=show_progress)

    elapsed = time.time() - t_start
    if show_progress:
        print(f"xkep_hts: Completed in {elapsed:.2f} s")
    return SimulationResult(
        formulation=config.formulation,
        elapsed_time=elapsed,
        config=config,
        **out,
    )
