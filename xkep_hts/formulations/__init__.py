"""A / T-A 定式化（座標重み・弱形式・組み立て）."""

from xkep_hts.formulations.a_formulation import (
    AFormulationSetup,
    setup_a_formulation,
    solve_a_formulation,
)
from xkep_hts.formulations.coordinates import CoordinateSystem, axisymmetric_weight, weight
from xkep_hts.formulations.ta_formulation import (
    TAFormulationSetup,
    build_ta_system,
    ohmic_initial_guess,
    setup_ta_formulation,
)
from xkep_hts.formulations.weak_forms import (
    a_bilinear_form,
    a_linear_form,
    evaluate_flux_density,
    flux_density_operator,
    neumann_linear_form,
    ta_jacobian,
    ta_residual,
)

__all__ = [
    "AFormulationSetup",
    "setup_a_formulation",
    "solve_a_formulation",
    "CoordinateSystem",
    "axisymmetric_weight",
    "weight",
    "TAFormulationSetup",
    "build_ta_system",
    "ohmic_initial_guess",
    "setup_ta_formulation",
    "a_bilinear_form",
    "a_linear_form",
    "evaluate_flux_density",
    "flux_density_operator",
    "neumann_linear_form",
    "ta_jacobian",
    "ta_residual",
]
