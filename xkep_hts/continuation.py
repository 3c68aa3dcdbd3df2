"""べき乗則指数の継続法（n-continuation）.

急峻な非線形性（大きな n）を直接解く代わりに、昇順の指数スケジュール
n_1 <= n_2 <= ... <= n_K に沿って Newton 解法を順に実行する。
各ステップで材料と非線形系を作り直し、前ステップの解を warm start に渡す。

状態遷移:
  INITIALIZED → STEPPING →（全ステップ収束）→ CONVERGED
                         →（ConvergenceFailure）→ FAILED（残りのスケジュールは打ち切り）

失敗ステップの再試行・刻み縮小は行わない。ステップ i+1 は i の解に依存するため
ステップ間の並列化はできない。
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

from xkep_hts.core.errors import ContinuationFailure, ConvergenceFailure, InvalidParameter
from xkep_hts.core.state import SolutionState
from xkep_hts.core.system import NonlinearSystem
from xkep_hts.materials.power_law import check_exponent
from xkep_hts.solver import newton_solve

if TYPE_CHECKING:
    from xkep_hts.config import SolverConfig


class ContinuationStatus(Enum):
    """継続法ドライバの状態."""

    INITIALIZED = "initialized"
    STEPPING = "stepping"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass
class ContinuationStep:
    """1 ステップの記録.

    Attributes:
        step: ステップ番号（1 始まり）
        exponent: べき乗則指数 n
        iterations: Newton 更新回数
        residual_norm: 最終残差ノルム
        residual_history: 残差履歴
        elapsed_time: 所要時間 [s]
    """

    step: int
    exponent: int
    iterations: int
    residual_norm: float
    residual_history: list[float] = field(default_factory=list)
    elapsed_time: float = 0.0


class ContinuationResult(NamedTuple):
    """継続法の結果（全ステップ収束時のみ返る）.

    Attributes:
        state: 最終指数での収束解
        steps: 各ステップの記録
        elapsed_time: 総所要時間 [s]
    """

    state: SolutionState
    steps: list[ContinuationStep]
    elapsed_time: float


class ExponentContinuation:
    """指数継続法の状態機械.

    Args:
        schedule: 指数スケジュール（正の整数列。昇順であることは呼び出し側の責任）
        build_system: 指数 n → その指数の材料で作った NonlinearSystem
        solver_config: 各ステップの Newton 設定
        show_progress: 進捗表示
    """

    def __init__(
        self,
        schedule: Sequence[int],
        build_system: Callable[[int], NonlinearSystem],
        solver_config: SolverConfig,
        *,
        show_progress: bool = True,
    ) -> None:
        schedule = tuple(schedule)
        if not schedule:
            raise InvalidParameter("指数スケジュールが空です。")
        for n in schedule:
            check_exponent(n)
        self.schedule = schedule
        self.build_system = build_system
        self.solver_config = solver_config
        self.show_progress = show_progress

        self.status = ContinuationStatus.INITIALIZED
        self.current_step = 0
        self.steps: list[ContinuationStep] = []
        self.last_state: SolutionState | None = None
        self.failed_step: int | None = None
        self.failed_exponent: int | None = None

    @property
    def attempted_exponents(self) -> list[int]:
        """実行を開始した指数（失敗ステップを含む）."""
        return list(self.schedule[: self.current_step])

    def run(self, initial_state: SolutionState | None = None) -> ContinuationResult:
        """スケジュールを先頭から順に実行する.

        Args:
            initial_state: 第 1 ステップの warm start（None ならソルバー既定のコールドスタート）

        Returns:
            ContinuationResult

        Raises:
            ContinuationFailure: あるステップで Newton が収束しなかった場合
            RuntimeError: INITIALIZED 以外の状態から呼ばれた場合
        """
        if self.status is not ContinuationStatus.INITIALIZED:
            raise RuntimeError(f"継続法は既に実行済みです（状態: {self.status.value}）")
        self.status = ContinuationStatus.STEPPING
        t_start = time.time()
        state = initial_state
        n_steps = len(self.schedule)

        for i, n in enumerate(self.schedule, start=1):
            self.current_step = i
            if self.show_progress:
                print(f"  Continuation step {i}/{n_steps}: n = {n}")
            system = self.build_system(n)
            t0 = time.time()
            try:
                result = newton_solve(
                    system,
                    self.solver_config,
                    warm_start=state,
                    show_progress=self.show_progress,
                )
            except ConvergenceFailure as exc:
                self.status = ContinuationStatus.FAILED
                self.failed_step = i
                self.failed_exponent = n
                if self.show_progress:
                    print(f"  WARNING: continuation aborted at step {i}/{n_steps} (n = {n}).")
                raise ContinuationFailure(i, n, exc, last_state=self.last_state) from exc

            state = result.state
            self.last_state = state
            self.steps.append(
                ContinuationStep(
                    step=i,
                    exponent=n,
                    iterations=result.iterations,
                    residual_norm=result.residual_norm,
                    residual_history=list(result.residual_history),
                    elapsed_time=time.time() - t0,
                )
            )
            if self.show_progress:
                print(
                    f"  Step {i}/{n_steps}, n = {n}: converged in {result.iterations} iterations, "
                    f"||R|| = {result.residual_norm:.3e}"
                )

        self.status = ContinuationStatus.CONVERGED
        return ContinuationResult(
            state=state, steps=list(self.steps), elapsed_time=time.time() - t_start
        )


def solve_with_continuation(
    schedule: Sequence[int],
    build_system: Callable[[int], NonlinearSystem],
    solver_config: SolverConfig,
    *,
    initial_state: SolutionState | None = None,
    show_progress: bool = True,
) -> ContinuationResult:
    """ExponentContinuation を構築して実行するショートカット."""
    driver = ExponentContinuation(
        schedule, build_system, solver_config, show_progress=show_progress
    )
    return driver.run(initial_state)
