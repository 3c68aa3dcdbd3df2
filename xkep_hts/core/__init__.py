"""xkep_hts.core - 材料インタフェース・解状態・非線形系・戻り値型・例外.

Protocol:
  HTSMaterialProtocol : E-J 構成則（resistivity / resistivity_derivative / electric_field）
"""

from xkep_hts.core.errors import (
    ContinuationFailure,
    ConvergenceFailure,
    InvalidParameter,
    UnsupportedCombination,
)
from xkep_hts.core.material import HTSMaterialProtocol
from xkep_hts.core.results import (
    DirichletResult,
    LinearSolveResult,
    LinearSystem,
    NewtonResult,
)
from xkep_hts.core.state import SolutionState, StateLayout
from xkep_hts.core.system import NonlinearSystem

__all__ = [
    "HTSMaterialProtocol",
    "SolutionState",
    "StateLayout",
    "NonlinearSystem",
    "LinearSolveResult",
    "DirichletResult",
    "LinearSystem",
    "NewtonResult",
    "InvalidParameter",
    "UnsupportedCombination",
    "ConvergenceFailure",
    "ContinuationFailure",
]
