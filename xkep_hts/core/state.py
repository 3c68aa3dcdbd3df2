"""解状態（未知場の自由度ベクトル）.

SolutionState はステップごとに新しく生成され、配列は読み取り専用コピーとして
保持する。warm start で次ステップへ渡しても、反復中に書き換えられることはない。
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


def _frozen_copy(a: np.ndarray) -> np.ndarray:
    out = np.array(a, dtype=float, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class StateLayout:
    """全体自由度ベクトル内での場の配置.

    連成系では x = [A の自由度, T の自由度] の順に並べる。

    Attributes:
        n_A: A 場の自由度数
        n_T: T 場の自由度数（単一場なら 0）
        vector_A: A がベクトル場（3D, Nedelec）か
    """

    n_A: int
    n_T: int = 0
    vector_A: bool = False

    @property
    def ndofs(self) -> int:
        return self.n_A + self.n_T

    @property
    def coupled(self) -> bool:
        return self.n_T > 0

    def pack(self, state: SolutionState) -> np.ndarray:
        """SolutionState → 全体ベクトル（新しい配列）."""
        if state.A.shape[0] != self.n_A:
            raise ValueError(f"A の自由度数が一致しません: {state.A.shape[0]} != {self.n_A}")
        if not self.coupled:
            return np.array(state.A, dtype=float, copy=True)
        if state.T is None or state.T.shape[0] != self.n_T:
            raise ValueError("連成系の warm start には T の自由度が必要です。")
        return np.concatenate([state.A, state.T])

    def unpack(self, x: np.ndarray) -> SolutionState:
        """全体ベクトル → SolutionState（コピー）."""
        x = np.asarray(x, dtype=float)
        if x.shape[0] != self.ndofs:
            raise ValueError(f"自由度数が一致しません: {x.shape[0]} != {self.ndofs}")
        if not self.coupled:
            return SolutionState(A=x, vector_A=self.vector_A)
        return SolutionState(A=x[: self.n_A], T=x[self.n_A :], vector_A=self.vector_A)


@dataclass(frozen=True)
class SolutionState:
    """未知場の値.

    - 2D 単一場: A はスカラー（面外成分）の節点値
    - 3D 単一場: A は Nedelec 辺自由度
    - 連成 T-A: (A, T) の組

    Attributes:
        A: A 場の自由度ベクトル
        T: T 場の自由度ベクトル（単一場では None）
        vector_A: A がベクトル場か
    """

    A: np.ndarray
    T: np.ndarray | None = None
    vector_A: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "A", _frozen_copy(self.A))
        if self.T is not None:
            object.__setattr__(self, "T", _frozen_copy(self.T))

    @property
    def kind(self) -> str:
        """"scalar" / "vector" / "pair"."""
        if self.T is not None:
            return "pair"
        return "vector" if self.vector_A else "scalar"

    def norm(self) -> float:
        """全自由度のユークリッドノルム."""
        sq = float(np.dot(self.A, self.A))
        if self.T is not None:
            sq += float(np.dot(self.T, self.T))
        return float(np.sqrt(sq))
