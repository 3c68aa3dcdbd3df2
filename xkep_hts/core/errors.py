"""例外の分類.

  InvalidParameter       : 構築時の正値・範囲チェック違反（ValueError 派生）
  UnsupportedCombination : 未対応の材料・座標系・メッシュ・ソース種別（ValueError 派生）
  ConvergenceFailure     : Newton 反復が max_iter 内で収束しない（RuntimeError 派生）
  ContinuationFailure    : 指数継続法のあるステップで ConvergenceFailure が発生

いずれも呼び出し側へ伝播させ、内部で握りつぶさない。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from xkep_hts.core.state import SolutionState


class InvalidParameter(ValueError):
    """パラメータの正値・範囲の不変条件違反."""


class UnsupportedCombination(ValueError):
    """未対応の定式化・材料・座標系・メッシュ・タグの組み合わせ."""


class ConvergenceFailure(RuntimeError):
    """Newton-Raphson が max_iter 以内に許容誤差を満たさなかった.

    Attributes:
        residual_norm: 最後に評価した残差ノルム
        iterations: 実行した Newton 更新回数
    """

    def __init__(self, residual_norm: float, iterations: int, message: str | None = None) -> None:
        self.residual_norm = float(residual_norm)
        self.iterations = int(iterations)
        if message is None:
            message = (
                f"Newton-Raphson が収束しません: {iterations} 反復後 "
                f"||R|| = {self.residual_norm:.3e}"
            )
        super().__init__(message)


class ContinuationFailure(ConvergenceFailure):
    """指数継続法の途中ステップでの収束失敗.

    Attributes:
        step: 失敗したステップ番号（1 始まり）
        exponent: 失敗したステップのべき乗則指数 n
        last_state: 直前に収束したステップの解（履歴情報。代替解ではない）
    """

    def __init__(
        self,
        step: int,
        exponent: int,
        cause: ConvergenceFailure,
        last_state: SolutionState | None = None,
    ) -> None:
        self.step = int(step)
        self.exponent = int(exponent)
        self.last_state = last_state
        super().__init__(
            cause.residual_norm,
            cause.iterations,
            f"指数継続ステップ {step} (n = {exponent}) で収束失敗: {cause}",
        )
