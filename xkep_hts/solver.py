"""線形・非線形ソルバーモジュール.

線形:
  - solve_linear(): spsolve / pyamg / cg の選択（"auto" は規模で切替）
  - solve_linear_system(): LinearSystem に Dirichlet 条件を適用して解く

非線形:
  - newton_solve(): NonlinearSystem に対する Newton-Raphson 法
    x_{k+1} = x_k - J(x_k)⁻¹ R(x_k)（拘束 DOF は規定値に固定）
    収束判定: ||R|| <= atol、||R|| <= rtol ||R_0||、または ||R|| が丸め誤差水準
    ROUNDOFF_FACTOR·eps·|| |J| |x| || 以下（開始点が線形ブロックの厳密解で
    残差がそれ以上減らない場合）
    ダンピング・直線探索は行わない。max_iter 以内に収束しなければ
    ConvergenceFailure を送出し、未収束の状態は返さない。
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import numpy as np
import pyamg
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from xkep_hts.bc import apply_dirichlet, apply_dirichlet_increment
from xkep_hts.core.errors import ConvergenceFailure, UnsupportedCombination
from xkep_hts.core.results import LinearSolveResult, LinearSystem, NewtonResult
from xkep_hts.core.state import SolutionState
from xkep_hts.core.system import NonlinearSystem

if TYPE_CHECKING:
    from xkep_hts.config import SolverConfig

LINEAR_METHODS = ("auto", "spsolve", "pyamg", "cg")
ROUNDOFF_FACTOR = 1e3


def solve_linear(
    K: sp.csr_matrix,
    f: np.ndarray,
    *,
    method: str = "auto",
    rtol: float = 1e-10,
    maxiter: int = 10000,
    size_threshold: int = 20000,
    show_progress: bool = False,
) -> LinearSolveResult:
    """線形方程式 K u = f を解く.

    Args:
        K: CSR 係数行列（拘束適用済み）
        f: 右辺ベクトル
        method: "spsolve"（直接法）, "pyamg"（smoothed aggregation, SPD 前提）,
            "cg"（共役勾配法, ゲージ未固定の 3D curl-curl 用）,
            "auto"（size_threshold 未満は spsolve、以上は pyamg）
        rtol: 反復法の相対許容値
        maxiter: 反復法の最大反復回数
        size_threshold: "auto" で pyamg に切り替える規模
        show_progress: 求解時間を表示

    Returns:
        LinearSolveResult: (u, info) の NamedTuple
    """
    if method not in LINEAR_METHODS:
        raise UnsupportedCombination(f"未知の線形ソルバー: {method!r}（{LINEAR_METHODS}）")
    n = K.shape[0]
    if method == "auto":
        method = "spsolve" if n < size_threshold else "pyamg"

    info: dict[str, Any] = {
        "method": method,
        "nit": None,
        "residual_norm": None,
        "setup_time": 0.0,
        "solve_time": None,
    }

    t0 = time.time()
    if method == "spsolve":
        u = spla.spsolve(K.tocsc(), f)
        info["nit"] = 1
    elif method == "pyamg":
        ml = pyamg.smoothed_aggregation_solver(
            K,
            symmetry="symmetric",
            presmoother=("gauss_seidel", {"sweep": "symmetric"}),
            postsmoother=("gauss_seidel", {"sweep": "symmetric"}),
        )
        info["setup_time"] = time.time() - t0
        residuals: list[float] = []
        u = ml.solve(b=f, tol=rtol, maxiter=maxiter, cycle="V", residuals=residuals)
        info["nit"] = len(residuals)
    else:
        nit = [0]

        def _count(_xk):
            nit[0] += 1

        u, _ = spla.cg(K, f, rtol=rtol, maxiter=maxiter, callback=_count)
        info["nit"] = nit[0]
    u = np.asarray(u, dtype=float)
    info["solve_time"] = time.time() - t0 - info["setup_time"]
    info["residual_norm"] = float(np.linalg.norm(K @ u - f))

    if show_progress:
        print(
            f"[{method}] n={n}, nnz={K.nnz}, nit={info['nit']}, "
            f"||Ku-f||={info['residual_norm']:.3e}, elapsed={info['solve_time']:.3f} s"
        )
    return LinearSolveResult(u=u, info=info)


def solve_linear_system(
    system: LinearSystem,
    *,
    show_progress: bool = False,
) -> LinearSolveResult:
    """組み立て済みの線形系に Dirichlet 条件を適用して解く."""
    K_bc, f_bc = apply_dirichlet(system.K, system.f, system.fixed_dofs, system.fixed_values)
    return solve_linear(K_bc, f_bc, method=system.linear_solver, show_progress=show_progress)


def _roundoff_floor(K: sp.spmatrix, x: np.ndarray, fixed: np.ndarray) -> float:
    """残差の丸め誤差水準 ROUNDOFF_FACTOR·eps·|| |K| |x| ||（拘束行は除く）.

    |K||x| は残差を構成する各寄与の大きさの目安。残差がこれ以下なら
    それ以上の Newton 更新では減らない。
    """
    scale = abs(sp.csr_matrix(K)) @ np.abs(x)
    scale[fixed] = 0.0
    return ROUNDOFF_FACTOR * np.finfo(float).eps * float(np.linalg.norm(scale))


def newton_solve(
    system: NonlinearSystem,
    config: SolverConfig,
    *,
    warm_start: SolutionState | None = None,
    show_progress: bool = True,
) -> NewtonResult:
    """Newton-Raphson 法で R(x) = 0 を解く.

    Args:
        system: 残差・Jacobian の組
        config: max_iter / rtol / atol
        warm_start: 前ステップの解。与えられればそのまま初期反復値にする
            （コピーして使うため、呼び出し側の状態は書き換えない）。
        show_progress: 反復ごとの残差を表示

    Returns:
        NewtonResult: 収束解と反復履歴

    Raises:
        ConvergenceFailure: max_iter 回の更新で許容値を満たさない、
            または残差が非有限値になった場合
    """
    fixed = np.asarray(system.fixed_dofs, dtype=int)
    x = system.start_vector(warm_start)
    label = f"[{system.label}] " if system.label else ""

    history: list[float] = []
    res0 = None
    res_norm = 0.0
    for it in range(config.max_iter + 1):
        residual = np.asarray(system.residual(x), dtype=float).copy()
        residual[fixed] = 0.0
        res_norm = float(np.linalg.norm(residual))
        history.append(res_norm)
        if not np.isfinite(res_norm):
            raise ConvergenceFailure(res_norm, it, f"{label}残差が非有限値になりました（iter {it}）")
        if res0 is None:
            res0 = res_norm

        rel = res_norm / res0 if res0 > 0.0 else 0.0
        if show_progress:
            print(f"  {label}iter {it}, ||R|| = {res_norm:.3e}, ||R||/||R0|| = {rel:.3e}")
        converged = res_norm <= config.atol or res_norm <= config.rtol * res0
        if not converged:
            K = system.jacobian(x)
            converged = res_norm <= _roundoff_floor(K, x, fixed)
        if converged:
            return NewtonResult(
                state=system.layout.unpack(x),
                iterations=it,
                residual_norm=res_norm,
                residual_history=history,
            )
        if it == config.max_iter:
            break

        K_bc, r_bc = apply_dirichlet_increment(K, -residual, fixed)
        dx = solve_linear(K_bc, r_bc, method=system.linear_solver).u
        x = x + dx

    if show_progress:
        print(f"  WARNING: {label}did not converge in {config.max_iter} iterations.")
    raise ConvergenceFailure(res_norm, config.max_iter)
