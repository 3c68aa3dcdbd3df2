"""線形ソルバーと Newton-Raphson のテスト.

1. solve_linear: spsolve / pyamg / cg の一致、"auto" の切替、未知の手法
2. solve_linear_system: Dirichlet 付き線形系
3. newton_solve（スカラー非線形方程式 x^p = c の成分ごとの系）:
   - 収束と二次収束、遅い（線形）収束でも rtol まで反復
   - 厳密解からの開始は丸め誤差水準で停止
   - 拘束 DOF の保持
   - warm start をそのまま初期値に使い、呼び出し側の状態を書き換えない
   - max_iter 超過で ConvergenceFailure（未収束の状態は返さない）
   - 非有限残差で ConvergenceFailure
"""

from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from xkep_hts.config import SolverConfig
from xkep_hts.core import (
    ConvergenceFailure,
    LinearSystem,
    NonlinearSystem,
    SolutionState,
    StateLayout,
    UnsupportedCombination,
)
from xkep_hts.solver import newton_solve, solve_linear, solve_linear_system


def _laplacian_1d(n: int) -> sp.csr_matrix:
    """SPD 三重対角行列."""
    main = 2.0 * np.ones(n)
    off = -1.0 * np.ones(n - 1)
    return sp.diags([off, main, off], [-1, 0, 1], format="csr")


def _make_power_system(
    c: np.ndarray,
    p: int = 3,
    fixed_dofs=None,
    fixed_values=None,
    initial=1.0,
) -> NonlinearSystem:
    """R_i(x) = x_i^p - c_i の対角非線形系."""
    c = np.asarray(c, dtype=float)
    n = c.shape[0]

    def residual(x):
        return x**p - c

    def jacobian(x):
        return sp.diags(p * x ** (p - 1), format="csr")

    return NonlinearSystem(
        residual=residual,
        jacobian=jacobian,
        layout=StateLayout(n_A=n),
        fixed_dofs=np.zeros(0, dtype=int) if fixed_dofs is None else np.asarray(fixed_dofs),
        fixed_values=np.zeros(0) if fixed_values is None else np.asarray(fixed_values),
        initial_guess=lambda: np.full(n, initial),
        linear_solver="spsolve",
        label="toy",
    )


# ================================================================
# 線形ソルバー
# ================================================================


class TestSolveLinear:
    """線形ソルバーの選択."""

    @pytest.mark.parametrize("method", ["spsolve", "pyamg", "cg", "auto"])
    def test_methods_agree(self, method):
        n = 50
        K = _laplacian_1d(n)
        f = np.random.default_rng(0).standard_normal(n)
        u_ref = sp.linalg.spsolve(K.tocsc(), f)
        result = solve_linear(K, f, method=method)
        np.testing.assert_allclose(result.u, u_ref, rtol=1e-6, atol=1e-6)
        assert result.info["residual_norm"] < 1e-6 * np.linalg.norm(f)

    def test_auto_switches_by_size(self):
        K = _laplacian_1d(30)
        f = np.ones(30)
        assert solve_linear(K, f, method="auto").info["method"] == "spsolve"
        assert solve_linear(K, f, method="auto", size_threshold=10).info["method"] == "pyamg"

    def test_unknown_method(self):
        with pytest.raises(UnsupportedCombination):
            solve_linear(_laplacian_1d(4), np.ones(4), method="gmres")

    def test_tuple_unpacking(self):
        u, info = solve_linear(_laplacian_1d(4), np.ones(4), method="spsolve")
        assert u.shape == (4,)
        assert info["nit"] == 1

    def test_progress_output(self, capsys):
        solve_linear(_laplacian_1d(4), np.ones(4), method="spsolve", show_progress=True)
        assert "[spsolve]" in capsys.readouterr().out

    def test_linear_system_with_dirichlet(self):
        """-u'' = 0, u(0) = 1, u(L) = 3 → 線形分布."""
        n = 11
        K = _laplacian_1d(n).tolil()
        K[0, 0] = 1.0
        K[n - 1, n - 1] = 1.0
        system = LinearSystem(
            K=K.tocsr(),
            f=np.zeros(n),
            fixed_dofs=np.array([0, n - 1]),
            fixed_values=np.array([1.0, 3.0]),
            layout=StateLayout(n_A=n),
            linear_solver="spsolve",
        )
        u = solve_linear_system(system).u
        np.testing.assert_allclose(u, np.linspace(1.0, 3.0, n), atol=1e-12)


# ================================================================
# Newton-Raphson
# ================================================================


class TestNewtonConvergence:
    """収束と収束速度."""

    def test_converges_to_root(self):
        c = np.array([2.0, 8.0, 27.0])
        result = newton_solve(_make_power_system(c), SolverConfig(), show_progress=False)
        np.testing.assert_allclose(result.state.A, [2.0 ** (1 / 3), 2.0, 3.0], rtol=1e-6)
        assert result.residual_norm <= SolverConfig().rtol * result.residual_history[0]
        assert result.iterations == len(result.residual_history) - 1

    def test_quadratic_rate(self):
        """漸近的に ||R_{k+1}|| ≈ C ||R_k||²."""
        c = np.array([1.5, 2.0])
        config = SolverConfig(rtol=1e-14, atol=1e-300, max_iter=30)
        result = newton_solve(_make_power_system(c), config, show_progress=False)
        h = result.residual_history
        # 漸近域（||R|| < 0.1）の連続する反復の組
        pairs = [(a, b) for a, b in zip(h[:-1], h[1:], strict=True) if a < 1e-1]
        assert pairs
        for a, b in pairs:
            assert b <= 10.0 * a * a + 1e-14

    def test_fixed_dofs_held(self):
        c = np.array([8.0, 8.0, 8.0])
        system = _make_power_system(c, fixed_dofs=[1], fixed_values=[5.0])
        result = newton_solve(system, SolverConfig(), show_progress=False)
        assert result.state.A[1] == pytest.approx(5.0)
        np.testing.assert_allclose(result.state.A[[0, 2]], 2.0, rtol=1e-6)

    def test_atol_satisfied_immediately(self):
        """初期値が許容値を満たせば反復 0 回."""
        c = np.array([1.0, 1.0])
        result = newton_solve(_make_power_system(c), SolverConfig(), show_progress=False)
        assert result.iterations == 0
        assert result.residual_history == [0.0]

    def test_slow_convergence_meets_rtol(self):
        """三重根 (x - 1e9)³ = 0: 線形収束でも ||R|| <= rtol ||R_0|| まで反復する."""
        root = 1e9
        system = NonlinearSystem(
            residual=lambda x: (x - root) ** 3,
            jacobian=lambda x: sp.diags(3.0 * (x - root) ** 2, format="csr"),
            layout=StateLayout(n_A=1),
            initial_guess=lambda: np.array([root + 1e3]),
            linear_solver="spsolve",
        )
        config = SolverConfig(rtol=1e-8, atol=1e-300, max_iter=50)
        result = newton_solve(system, config, show_progress=False)
        assert result.residual_norm <= config.rtol * result.residual_history[0]
        assert result.iterations > 10
        assert abs(result.state.A[0] - root) < 3.0

    def test_exact_start_stops_at_roundoff(self):
        """開始点が線形系の厳密解なら、rtol が届かなくても丸め誤差水準で収束."""
        n = 40
        K = _laplacian_1d(n)
        f = 1e9 * np.random.default_rng(1).standard_normal(n)
        x_exact = sp.linalg.spsolve(K.tocsc(), f)
        system = NonlinearSystem(
            residual=lambda x: K @ x - f,
            jacobian=lambda x: K,
            layout=StateLayout(n_A=n),
            initial_guess=lambda: x_exact.copy(),
            linear_solver="spsolve",
        )
        config = SolverConfig(rtol=1e-14, atol=1e-300, max_iter=3)
        result = newton_solve(system, config, show_progress=False)
        assert result.residual_norm <= 1e-10 * np.linalg.norm(f)
        np.testing.assert_allclose(result.state.A, x_exact, atol=1e-10 * np.abs(x_exact).max())

    def test_progress_output(self, capsys):
        newton_solve(_make_power_system(np.array([2.0])), SolverConfig(), show_progress=True)
        out = capsys.readouterr().out
        assert "[toy] iter 0" in out


class TestNewtonWarmStart:
    """warm start の扱い."""

    def test_warm_start_used_verbatim(self):
        """収束解から再開すると反復 0 回で同じ状態を返す."""
        c = np.array([2.0, 3.0])
        system = _make_power_system(c)
        first = newton_solve(system, SolverConfig(atol=1e-300), show_progress=False)
        config = SolverConfig(atol=max(10.0 * first.residual_norm, 1e-300))
        second = newton_solve(system, config, warm_start=first.state, show_progress=False)
        assert second.iterations == 0
        np.testing.assert_array_equal(second.state.A, first.state.A)

    def test_warm_start_overrides_initial_guess(self):
        c = np.array([8.0])
        system = _make_power_system(c, initial=100.0)
        result = newton_solve(
            system,
            SolverConfig(max_iter=1, rtol=1e-1),
            warm_start=SolutionState(A=np.array([2.0001])),
            show_progress=False,
        )
        assert result.state.A[0] == pytest.approx(2.0, rel=1e-6)

    def test_warm_start_not_mutated(self):
        c = np.array([8.0, 27.0])
        warm = SolutionState(A=np.array([1.5, 2.5]))
        before = warm.A.copy()
        newton_solve(_make_power_system(c), SolverConfig(), warm_start=warm, show_progress=False)
        np.testing.assert_array_equal(warm.A, before)
        assert not warm.A.flags.writeable

    def test_warm_start_size_mismatch(self):
        with pytest.raises(ValueError):
            newton_solve(
                _make_power_system(np.ones(3) * 2.0),
                SolverConfig(),
                warm_start=SolutionState(A=np.ones(2)),
                show_progress=False,
            )


class TestNewtonFailure:
    """収束失敗は例外で通知."""

    def test_max_iter_exceeded(self):
        c = np.array([1e6])
        config = SolverConfig(max_iter=2, rtol=1e-12, atol=1e-300)
        with pytest.raises(ConvergenceFailure) as exc_info:
            newton_solve(_make_power_system(c), config, show_progress=False)
        err = exc_info.value
        assert err.iterations == 2
        assert err.residual_norm > 0.0
        assert np.isfinite(err.residual_norm)

    def test_warning_printed(self, capsys):
        config = SolverConfig(max_iter=1, rtol=1e-12, atol=1e-300)
        with pytest.raises(ConvergenceFailure):
            newton_solve(_make_power_system(np.array([1e6])), config, show_progress=True)
        assert "WARNING" in capsys.readouterr().out

    def test_non_finite_residual(self):
        system = NonlinearSystem(
            residual=lambda x: np.full_like(x, np.nan),
            jacobian=lambda x: sp.identity(x.shape[0], format="csr"),
            layout=StateLayout(n_A=2),
        )
        with pytest.raises(ConvergenceFailure):
            newton_solve(system, SolverConfig(), show_progress=False)


class TestNonlinearSystemStart:
    """start_vector の優先順位."""

    def test_zero_default_with_fixed_values(self):
        system = NonlinearSystem(
            residual=lambda x: x,
            jacobian=lambda x: sp.identity(3, format="csr"),
            layout=StateLayout(n_A=3),
            fixed_dofs=np.array([2]),
            fixed_values=np.array([4.0]),
        )
        np.testing.assert_array_equal(system.start_vector(), [0.0, 0.0, 4.0])

    def test_coupled_layout_roundtrip(self):
        layout = StateLayout(n_A=2, n_T=3)
        state = layout.unpack(np.arange(5.0))
        assert state.kind == "pair"
        np.testing.assert_array_equal(state.T, [2.0, 3.0, 4.0])
        np.testing.assert_array_equal(layout.pack(state), np.arange(5.0))

    def test_coupled_warm_start_requires_T(self):
        layout = StateLayout(n_A=2, n_T=3)
        with pytest.raises(ValueError):
            layout.pack(SolutionState(A=np.zeros(2)))
