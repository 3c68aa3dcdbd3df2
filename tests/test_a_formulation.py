"""A 定式化（線形静磁場）のテスト.

1. ゼロソース・ゼロ Dirichlet → A ≡ 0（2D Cartesian / 軸対称 / 3D）
2. 製造解 -ΔA = 2π² sin(πx) sin(πy) の L2 誤差と収束次数
3. 線形 Dirichlet 値の厳密再現、Neumann 条件（A = x）
4. 軸対称: ∂_r(r ∂_r A) = 0 の解 A = ln r
5. 3D: 一様ソースの curl-curl を CG で解く
6. タグ・次元の不一致は UnsupportedCombination
"""

from __future__ import annotations

import numpy as np
import pytest

from xkep_hts.config import BoundaryConfig, FormulationConfig, SourceConfig
from xkep_hts.core.errors import UnsupportedCombination
from xkep_hts.formulations import setup_a_formulation, solve_a_formulation
from xkep_hts.mesh import add_cell_tag, box_predicate, make_box_tet_mesh, make_rect_tri_mesh
from xkep_hts.postprocess import flux_density, l2_error


def _solve(config, mesh):
    setup = setup_a_formulation(config, mesh)
    state, linear = solve_a_formulation(setup, show_progress=False)
    return setup, state, linear


def _poisson_error(n: int) -> float:
    mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (n, n))

    def source(x):
        return 2.0 * np.pi**2 * np.sin(np.pi * x[:, 0]) * np.sin(np.pi * x[:, 1])

    def exact(x):
        return np.sin(np.pi * x[:, 0]) * np.sin(np.pi * x[:, 1])

    config = FormulationConfig(dimension=2, mu_inv=1.0, source=SourceConfig(value=source))
    setup, state, _ = _solve(config, mesh)
    return l2_error(setup.space, setup.region, state.A, exact)


class TestZeroSolution:
    """ゼロデータ → ゼロ解."""

    @pytest.mark.parametrize("cs", ["cartesian2d", "axisymmetric2d"])
    def test_2d(self, cs):
        mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (6, 6))
        _, state, _ = _solve(FormulationConfig(dimension=2, coordinate_system=cs), mesh)
        assert state.kind == "scalar"
        assert state.norm() < 1e-12

    def test_3d(self):
        mesh = make_box_tet_mesh(partition=(2, 2, 2))
        setup, state, linear = _solve(FormulationConfig(dimension=3, coordinate_system="3d"), mesh)
        assert state.kind == "vector"
        assert setup.system.linear_solver == "cg"
        assert state.norm() < 1e-12


class TestCartesian:
    """2D Cartesian の解析解."""

    def test_manufactured_convergence(self):
        e8 = _poisson_error(8)
        e16 = _poisson_error(16)
        assert e16 < 1e-2
        # P1 の L2 誤差は O(h²)
        assert e8 / e16 > 3.0

    def test_linear_dirichlet_reproduced(self):
        mesh = make_rect_tri_mesh((0.0, 2.0, 0.0, 1.0), (5, 4))
        bcs = BoundaryConfig(dirichlet_values=lambda x: x[:, 0] + 2.0 * x[:, 1])
        _, state, _ = _solve(FormulationConfig(mu_inv=1.0, boundary=bcs), mesh)
        np.testing.assert_allclose(state.A, mesh.nodes[:, 0] + 2.0 * mesh.nodes[:, 1], atol=1e-10)

    def test_neumann(self):
        """A = 0 (left), ∂A/∂n = 1 (right), 上下は自然境界 → A = x."""
        mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (4, 4))
        bcs = BoundaryConfig(dirichlet_tags=("left",), neumann_tags=("right",), neumann_values=1.0)
        _, state, _ = _solve(FormulationConfig(mu_inv=1.0, boundary=bcs), mesh)
        np.testing.assert_allclose(state.A, mesh.nodes[:, 0], atol=1e-10)

    def test_uniform_field(self):
        """A = -b x → B = (0, b)."""
        mesh = make_rect_tri_mesh((-1.0, 1.0, -1.0, 1.0), (4, 4))
        bcs = BoundaryConfig(dirichlet_values=lambda x: -0.5 * x[:, 0])
        setup, state, _ = _solve(FormulationConfig(boundary=bcs), mesh)
        B = flux_density(setup.space, setup.region, state.A)
        np.testing.assert_allclose(B, np.tile([0.0, 0.5], (mesh.n_cells, 1)), atol=1e-9)

    def test_source_subdomain(self):
        """部分領域ソースの組み立て: 右辺の総和 = 値 × 面積."""
        mesh = add_cell_tag(
            make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (8, 8)),
            "coil",
            box_predicate((0.25, 0.75, 0.25, 0.75)),
        )
        config = FormulationConfig(source=SourceConfig(value=4.0, tag="coil"))
        setup = setup_a_formulation(config, mesh)
        assert setup.source_tag == "coil"
        assert setup.system.f.sum() == pytest.approx(1.0)


class TestAxisymmetric:
    """軸対称 (r, z)."""

    def test_log_solution(self):
        """左右 Dirichlet A = ln r、上下は自然境界 → A ≈ ln r."""
        mesh = make_rect_tri_mesh((1.0, 2.0, 0.0, 0.5), (20, 4))
        bcs = BoundaryConfig(
            dirichlet_tags=("left", "right"), dirichlet_values=lambda x: np.log(x[:, 0])
        )
        config = FormulationConfig(coordinate_system="axisymmetric2d", mu_inv=1.0, boundary=bcs)
        _, state, _ = _solve(config, mesh)
        np.testing.assert_allclose(state.A, np.log(mesh.nodes[:, 0]), atol=2e-3)

    def test_constant_solution_on_axis(self):
        mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (4, 4))
        bcs = BoundaryConfig(dirichlet_tags=("right",), dirichlet_values=2.0)
        config = FormulationConfig(coordinate_system="axisymmetric2d", boundary=bcs)
        _, state, _ = _solve(config, mesh)
        np.testing.assert_allclose(state.A, 2.0, atol=1e-10)


class TestThreeD:
    """3D curl-curl（ゲージ未固定、CG）."""

    def test_uniform_source(self):
        mesh = make_box_tet_mesh(partition=(2, 2, 2))
        config = FormulationConfig(
            dimension=3,
            coordinate_system="3d",
            mu_inv=1.0,
            source=SourceConfig(value=np.array([0.0, 0.0, 1.0])),
        )
        setup, state, linear = _solve(config, mesh)
        assert linear.info["method"] == "cg"
        f_norm = np.linalg.norm(setup.system.f)
        assert f_norm > 0.0
        assert linear.info["residual_norm"] < 1e-8 * f_norm
        B = flux_density(setup.space, setup.region, state.A, "3d")
        assert np.all(np.isfinite(B))
        assert np.max(np.abs(B)) > 0.0


class TestSetupErrors:
    """組み立て時の検証."""

    def test_unknown_dirichlet_tag(self):
        mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (2, 2))
        config = FormulationConfig(boundary=BoundaryConfig(dirichlet_tags=("outer",)))
        with pytest.raises(UnsupportedCombination):
            setup_a_formulation(config, mesh)

    def test_unknown_source_tag(self):
        mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (2, 2))
        config = FormulationConfig(source=SourceConfig(value=1.0, tag="coil"))
        with pytest.raises(UnsupportedCombination):
            setup_a_formulation(config, mesh)

    def test_dimension_mismatch(self):
        mesh = make_rect_tri_mesh((0.0, 1.0, 0.0, 1.0), (2, 2))
        config = FormulationConfig(dimension=3, coordinate_system="3d")
        with pytest.raises(UnsupportedCombination):
            setup_a_formulation(config, mesh)

    def test_coordinate_dimension_mismatch(self):
        with pytest.raises(UnsupportedCombination):
            FormulationConfig(dimension=2, coordinate_system="3d")

    def test_neumann_in_3d(self):
        with pytest.raises(UnsupportedCombination):
            FormulationConfig(
                dimension=3,
                coordinate_system="3d",
                boundary=BoundaryConfig(neumann_tags=("left",), neumann_values=1.0),
            )
