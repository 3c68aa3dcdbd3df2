"""HTS 材料のプリセット定義と設定からの構築."""

from __future__ import annotations

from typing import TYPE_CHECKING

from xkep_hts.constants import E_C_DEFAULT
from xkep_hts.core.errors import UnsupportedCombination
from xkep_hts.materials.field_dependence import FieldDependentMaterial, KimModel
from xkep_hts.materials.power_law import PowerLawMaterial

if TYPE_CHECKING:
    from xkep_hts.config import MaterialConfig

MATERIAL_KINDS = ("power_law", "field_dependent")


def rebco_default(*, jc: float = 3e10, n: int = 25, ec: float = E_C_DEFAULT) -> PowerLawMaterial:
    """REBCO テープの標準パラメータ（77 K, 自己磁場）.

    J_c = 3×10¹⁰ A/m²（膜厚 1 μm で約 300 A/cm-width）, n = 25, E_c = 10⁻⁴ V/m。
    """
    return PowerLawMaterial(ec=float(ec), jc=float(jc), n=int(n))


def bscco_default(*, jc: float = 1e9, n: int = 15, ec: float = E_C_DEFAULT) -> PowerLawMaterial:
    """Bi-2223 (BSCCO) の標準パラメータ（77 K, 自己磁場）."""
    return PowerLawMaterial(ec=float(ec), jc=float(jc), n=int(n))


def _power_law(cfg: MaterialConfig, n: int) -> PowerLawMaterial:
    return PowerLawMaterial(ec=cfg.ec, jc=cfg.jc, n=n)


def _field_dependent(cfg: MaterialConfig, n: int) -> FieldDependentMaterial:
    return FieldDependentMaterial(ec=cfg.ec, n=n, jc_model=KimModel(jc0=cfg.jc, b0=cfg.b0))


_BUILDERS = {
    "power_law": _power_law,
    "field_dependent": _field_dependent,
}


def material_from_config(
    cfg: MaterialConfig,
    n: int | None = None,
) -> PowerLawMaterial | FieldDependentMaterial:
    """材料設定から HTS 材料を構築する.

    Args:
        cfg: 材料設定（kind = "power_law" / "field_dependent"）
        n: 指数の上書き（指数継続法の各ステップ用）。None なら cfg.n_exponent。

    Raises:
        UnsupportedCombination: 未知の材料種別
    """
    try:
        builder = _BUILDERS[cfg.kind]
    except KeyError:
        raise UnsupportedCombination(
            f"未知の材料種別: {cfg.kind!r}（{MATERIAL_KINDS} のいずれか）"
        ) from None
    return builder(cfg, cfg.n_exponent if n is None else n)
