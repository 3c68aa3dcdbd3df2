"""HTS べき乗則材料・Kim モデル・材料ライブラリのテスト.

テスト方針:
  べき乗則:
    1. |J| = J_c で ρ = E_c / J_c
    2. |J| に対する単調増加
    3. |J| = 0 で有限（正則化）
    4. dρ/d|J| の有限差分検証
    5. E ∥ J、|J| = J_c で |E| = E_c
    6. 不正パラメータで InvalidParameter
    7. with_exponent は新しいインスタンス（元は不変）
  Kim モデル:
    8. J_c(0) = J_c0, J_c(B_0) = J_c0 / 2, 単調減少
    9. dJ_c/d|B| と dρ/d|B| の有限差分検証
  ライブラリ:
    10. プリセット値と設定からの構築、未知の種別
"""

from __future__ import annotations

import numpy as np
import pytest

from xkep_hts.config import MaterialConfig
from xkep_hts.core.errors import InvalidParameter, UnsupportedCombination
from xkep_hts.core.material import HTSMaterialProtocol
from xkep_hts.materials import (
    FieldDependentMaterial,
    KimModel,
    PowerLawMaterial,
    bscco_default,
    critical_current_density,
    material_from_config,
    rebco_default,
)

# ===== テスト用パラメータ =====
EC = 1e-4  # V/m
JC = 1e9  # A/m²
N = 25


# ================================================================
# べき乗則
# ================================================================


class TestPowerLawResistivity:
    """ρ(|J|) の値と性質."""

    def test_resistivity_at_jc(self):
        """|J| = J_c で ρ = E_c / J_c = 1e-13 Ω·m."""
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        assert mat.resistivity(JC) == pytest.approx(1e-13, rel=1e-10)

    def test_monotonic_in_current(self):
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        J = np.linspace(0.1 * JC, 1.5 * JC, 30)
        rho = mat.resistivity(J)
        assert np.all(np.diff(rho) > 0.0)

    def test_finite_at_zero_current(self):
        """|J| = 0 でも ρ は有限かつ非負."""
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        rho = mat.resistivity(0.0)
        assert np.isfinite(rho)
        assert rho >= 0.0
        assert np.isfinite(mat.resistivity_derivative(0.0))

    def test_ohmic_limit(self):
        """n = 1 では ρ は |J| に依存しない."""
        mat = PowerLawMaterial(ec=EC, jc=JC, n=1)
        np.testing.assert_allclose(mat.resistivity(np.array([1e3, 1e8, 5e9])), EC / JC)
        assert mat.resistivity_derivative(1e8) == pytest.approx(0.0)

    def test_scalar_in_scalar_out(self):
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        assert isinstance(mat.resistivity(JC), float)
        assert mat.resistivity(np.array([JC, JC])).shape == (2,)

    @pytest.mark.parametrize("J", [0.5e9, 1e9, 1.3e9])
    def test_derivative_finite_difference(self, J):
        """解析微分と中心差分 (δ = 1e3 A/m²) の一致."""
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        delta = 1e3
        fd = (mat.resistivity(J + delta) - mat.resistivity(J - delta)) / (2 * delta)
        assert mat.resistivity_derivative(J) == pytest.approx(fd, rel=1e-3)


class TestPowerLawElectricField:
    """E = ρ J."""

    def test_parallel_to_current(self):
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        J = np.array([[0.3e9, -0.8e9], [1e8, 2e8]])
        E = mat.electric_field(J)
        e_dir = E / np.linalg.norm(E, axis=1, keepdims=True)
        j_dir = J / np.linalg.norm(J, axis=1, keepdims=True)
        np.testing.assert_allclose(e_dir, j_dir, atol=1e-12)

    def test_magnitude_at_jc(self):
        """|J| = J_c で |E| = E_c."""
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        J = np.array([0.6, 0.8, 0.0]) * JC
        E = mat.electric_field(J)
        assert np.linalg.norm(E) == pytest.approx(EC, rel=1e-8)

    def test_zero_current_gives_zero_field(self):
        mat = PowerLawMaterial(ec=EC, jc=JC, n=N)
        E = mat.electric_field(np.zeros((4, 2)))
        np.testing.assert_array_equal(E, 0.0)


class TestPowerLawValidation:
    """構築時の検証."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"ec": 0.0},
            {"ec": -1e-4},
            {"jc": 0.0},
            {"jc": -1e9},
            {"n": 0},
            {"n": -3},
            {"n": 2.5},
            {"n": True},
            {"jc": float("nan")},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        params = {"ec": EC, "jc": JC, "n": N}
        params.update(kwargs)
        with pytest.raises(InvalidParameter):
            PowerLawMaterial(**params)

    def test_with_exponent_returns_new_instance(self):
        mat = PowerLawMaterial(ec=EC, jc=JC, n=5)
        mat25 = mat.with_exponent(25)
        assert mat.n == 5
        assert mat25.n == 25
        assert mat25.jc == mat.jc

    def test_with_exponent_validates(self):
        with pytest.raises(InvalidParameter):
            PowerLawMaterial(ec=EC, jc=JC, n=5).with_exponent(0)

    def test_from_jc_n(self):
        mat = PowerLawMaterial.from_jc_n(3e10, 21)
        assert mat.jc == 3e10
        assert mat.n == 21
        assert mat.ec == pytest.approx(1e-4)

    def test_protocol_conformance(self):
        assert isinstance(PowerLawMaterial(), HTSMaterialProtocol)
        assert isinstance(FieldDependentMaterial(), HTSMaterialProtocol)


# ================================================================
# Kim モデル
# ================================================================


class TestKimModel:
    """J_c(B) = J_c0 / (1 + |B|/B_0)."""

    def test_reference_values(self):
        model = KimModel(jc0=1e10, b0=0.1)
        assert critical_current_density(model, 0.0) == pytest.approx(1e10)
        assert critical_current_density(model, 0.1) == pytest.approx(0.5e10)

    def test_vector_field_uses_magnitude(self):
        model = KimModel(jc0=1e10, b0=0.1)
        B = np.array([[0.06, 0.08], [-0.06, -0.08]])
        np.testing.assert_allclose(model.critical_current_density(B), 0.5e10, rtol=1e-8)

    def test_monotonically_decreasing(self):
        model = KimModel(jc0=1e10, b0=0.1)
        B = np.linspace(0.0, 2.0, 40)
        jc = model.critical_current_density(B)
        assert np.all(np.diff(jc) < 0.0)

    def test_magnitude_array_elementwise(self):
        """|B| の 1 次元配列は要素ごとに評価（ベクトル 1 本とはみなさない）."""
        model = KimModel(jc0=1e10, b0=0.1)
        jc = model.critical_current_density(np.array([0.0, 0.1]))
        assert jc.shape == (2,)
        np.testing.assert_allclose(jc, [1e10, 0.5e10], rtol=1e-8)
        djc = model.critical_current_derivative(np.array([0.0, 0.1, 0.3]))
        assert djc.shape == (3,)

    def test_scalar_and_vector_paths_agree(self):
        """同じ |B| ならスカラー入力とベクトル入力で J_c と導関数が一致."""
        model = KimModel(jc0=1e10, b0=0.1)
        mags = np.array([0.0, 1e-12, 0.05, 0.5])
        vecs = np.stack([np.zeros_like(mags), mags], axis=-1)
        np.testing.assert_allclose(
            model.critical_current_density(mags), model.critical_current_density(vecs), rtol=1e-14
        )
        np.testing.assert_allclose(
            model.critical_current_derivative(mags),
            model.critical_current_derivative(vecs),
            rtol=1e-14,
        )
        assert model.critical_current_density(0.0) == model.critical_current_density(
            np.zeros((1, 2))
        )[0]

    def test_invalid_vector_width(self):
        with pytest.raises(InvalidParameter):
            KimModel().critical_current_density(np.zeros((3, 4)))

    def test_derivative_finite_difference(self):
        model = KimModel(jc0=1e10, b0=0.1)
        b, h = 0.25, 1e-6
        fd = (model.critical_current_density(b + h) - model.critical_current_density(b - h)) / (
            2 * h
        )
        assert model.critical_current_derivative(b) == pytest.approx(fd, rel=1e-6)

    @pytest.mark.parametrize("kwargs", [{"jc0": 0.0}, {"b0": 0.0}, {"b0": -0.1}])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(InvalidParameter):
            KimModel(**kwargs)


class TestFieldDependentMaterial:
    """J_c(B) 依存のべき乗則."""

    def _make(self, n: int = 15) -> FieldDependentMaterial:
        return FieldDependentMaterial(ec=EC, n=n, jc_model=KimModel(jc0=JC, b0=0.1))

    def test_self_field_matches_power_law(self):
        """B = None（自己磁場）では J_c0 のべき乗則と一致."""
        fd_mat = self._make()
        pl = PowerLawMaterial(ec=EC, jc=JC, n=15)
        J = np.array([0.3e9, 1e9, 1.2e9])
        np.testing.assert_allclose(fd_mat.resistivity(J), pl.resistivity(J), rtol=1e-12)
        np.testing.assert_allclose(
            fd_mat.resistivity_derivative(J), pl.resistivity_derivative(J), rtol=1e-12
        )

    def test_field_reduces_critical_current(self):
        """|B| = B_0 で J_c が半減 → 同じ |J| で ρ は増加."""
        mat = self._make()
        assert mat.resistivity(JC, 0.1) > mat.resistivity(JC, 0.0)
        assert mat.resistivity(0.5 * JC, 0.1) == pytest.approx(EC / (0.5 * JC), rel=1e-10)

    def test_resistivity_with_field_magnitudes(self):
        """|J| と |B| の配列は要素ごとに対応する."""
        mat = self._make(n=5)
        rho = mat.resistivity(np.array([0.5 * JC, 0.5 * JC]), np.array([0.0, 0.1]))
        assert rho.shape == (2,)
        assert rho[0] == pytest.approx(EC / JC * 0.5**4, rel=1e-8)
        assert rho[1] == pytest.approx(EC / (0.5 * JC), rel=1e-8)

    def test_field_derivative_finite_difference(self):
        mat = self._make()
        J, b, h = 0.7e9, 0.05, 1e-7
        fd = (mat.resistivity(J, b + h) - mat.resistivity(J, b - h)) / (2 * h)
        assert mat.resistivity_field_derivative(J, b) == pytest.approx(fd, rel=1e-5)

    def test_with_exponent_keeps_model(self):
        mat = self._make(5).with_exponent(20)
        assert mat.n == 20
        assert mat.jc == pytest.approx(JC)
        assert mat.field_dependent

    def test_electric_field_with_vector_field(self):
        mat = self._make()
        J = np.array([[0.5 * JC, 0.0]])
        B = np.array([[0.0, 0.1]])
        E = mat.electric_field(J, B)
        assert E[0, 0] == pytest.approx(EC, rel=1e-8)
        assert E[0, 1] == pytest.approx(0.0)


# ================================================================
# 材料ライブラリ
# ================================================================


class TestMaterialLibrary:
    """プリセットと設定からの構築."""

    def test_rebco_default(self):
        mat = rebco_default()
        assert mat.jc == pytest.approx(3e10)
        assert mat.n == 25

    def test_bscco_default(self):
        mat = bscco_default(n=10)
        assert mat.n == 10

    def test_from_config_power_law(self):
        mat = material_from_config(MaterialConfig(jc=2e9, n_exponent=20))
        assert isinstance(mat, PowerLawMaterial)
        assert mat.n == 20
        assert mat.jc == pytest.approx(2e9)

    def test_from_config_exponent_override(self):
        cfg = MaterialConfig(n_exponent=25)
        assert cfg.build(5).n == 5
        assert cfg.build().n == 25

    def test_from_config_field_dependent(self):
        mat = MaterialConfig(kind="field_dependent", jc=1e10, b0=0.2).build()
        assert isinstance(mat, FieldDependentMaterial)
        assert mat.jc_model.b0 == pytest.approx(0.2)

    def test_unknown_kind(self):
        with pytest.raises(UnsupportedCombination):
            MaterialConfig(kind="bean").build()
