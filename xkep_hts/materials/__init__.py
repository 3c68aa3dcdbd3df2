"""HTS 材料モデル（E-J 構成則と J_c(B) モデル）."""

from xkep_hts.materials.field_dependence import (
    FieldDependentMaterial,
    KimModel,
    critical_current_density,
)
from xkep_hts.materials.library import bscco_default, material_from_config, rebco_default
from xkep_hts.materials.power_law import PowerLawMaterial, norm_safe

__all__ = [
    "PowerLawMaterial",
    "FieldDependentMaterial",
    "KimModel",
    "critical_current_density",
    "norm_safe",
    "rebco_default",
    "bscco_default",
    "material_from_config",
]
