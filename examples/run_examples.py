#!/usr/bin/env python3
"""xkep_hts サンプル解析の実行スクリプト.

Usage:
    python examples/run_examples.py                 # 全サンプル実行
    python examples/run_examples.py coil            # 軸対称コイル（A 定式化）
    python examples/run_examples.py strip           # 輸送電流を流す超伝導帯（T-A + 指数継続）
    python examples/run_examples.py iesl            # IESL 2D テープベンチマーク
    python examples/run_examples.py iesl --plot     # 磁束密度分布を PNG 出力
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np

from xkep_hts.api import main as run_simulation
from xkep_hts.applications import setup_iesl_benchmark
from xkep_hts.constants import MU_0
from xkep_hts.postprocess import (
    current_density,
    electric_field_cells,
    flux_density,
    transport_current,
)

OUTPUT_DIR = Path(__file__).resolve().parent / "output"


def run_axisymmetric_coil():
    """軸対称コイル: 一様電流密度の環状コイルが作る磁場.

    長いソレノイドの中心磁場 B_z ≈ μ0 J_s t（t: 巻線の半径方向厚さ）と比較する。
    """
    print("=" * 60)
    print("軸対称コイル（A 定式化, (r, z)）")
    print("=" * 60)

    js = 1e7  # [A/m²]
    coil = (0.10, 0.12, -0.5, 0.5)
    params = {
        "formulation": "A",
        "mesh": {
            "domain": [0.0, 0.4, -1.0, 1.0],
            "partition": [40, 100],
            "coordinate_system": "axisymmetric2d",
            "cell_tags": {"coil": list(coil)},
        },
        "bcs": {"dirichlet_tags": ["right", "top", "bottom"]},
        "source": js,
        "source_tag": "coil",
        "problem_name": "axisymmetric_coil",
    }
    result = run_simulation(params, show_progress=False)
    setup = result.setup
    B = flux_density(setup.space, setup.region, result.state.A, "axisymmetric2d")

    centroids = setup.mesh.centroids()
    center = np.argmin(np.linalg.norm(centroids - np.array([0.01, 0.0]), axis=1))
    bz_fem = B[center, 1]
    bz_ref = MU_0 * js * (coil[1] - coil[0])

    print(f"  電流密度: J_s = {js:.1e} A/m²")
    print(f"  中心磁場 B_z (FEM):   {bz_fem:.6e} T")
    print(f"  中心磁場 B_z (無限長): {bz_ref:.6e} T")
    error = abs(bz_fem - bz_ref) / bz_ref * 100
    print(f"  相対誤差: {error:.2f}%（有限長ソレノイドのため数 % の差は想定内）")
    print()
    return error


def run_transport_strip():
    """超伝導帯に J_c 近傍の輸送電流を流し、指数継続法で n = 25 まで解く."""
    print("=" * 60)
    print("輸送電流を流す超伝導帯（T-A, n = 5 → 25）")
    print("=" * 60)

    jc = 1e9
    width, height = 1e-2, 2e-3
    params = {
        "formulation": "TA",
        "mesh": {"domain": [0.0, width, 0.0, height], "partition": [40, 8]},
        "material": {"jc": jc, "n_exponent": 25},
        "bcs": {
            "dirichlet_tags": ["boundary"],
            "dirichlet_tags_T": ["left", "right"],
            "dirichlet_values_T": {"left": 0.0, "right": 1.05 * jc * width},
        },
        "solver": {"n_continuation": [5, 10, 15, 20, 25]},
        "problem_name": "transport_strip",
    }
    result = run_simulation(params, show_progress=False)
    setup = result.setup

    for step in result.continuation.steps:
        print(
            f"  n = {step.exponent:2d}: {step.iterations} iterations, "
            f"||R|| = {step.residual_norm:.3e}"
        )
    J = current_density(setup.space_T, setup.region, result.state.T)
    E = electric_field_cells(setup.material, setup.space_T, setup.region, result.state.T)
    current = transport_current(setup.space_T, setup.region, result.state.T, axis=0)
    print(f"  平均 |J|/J_c = {np.mean(np.linalg.norm(J, axis=1)) / jc:.4f}")
    print(f"  平均 |E|/E_c = {np.mean(np.linalg.norm(E, axis=1)) / setup.material.ec:.4f}")
    print(f"  輸送電流（単位奥行き）: {abs(current):.4e} A/m")
    print()


def run_iesl_tape(plot: bool = False):
    """IESL 2D テープ: 外部磁場 1 T 中のテープ断面."""
    print("=" * 60)
    print("IESL 2D Rectangular Tape")
    print("=" * 60)

    config = setup_iesl_benchmark(b_max=1.0, partition=(120, 41))
    result = run_simulation(config, show_progress=False)
    setup = result.setup
    B = flux_density(setup.space_A, setup.region, result.state.A)

    print(f"  等価 J_c: {config.metadata['jc_effective']:.4e} A/m²")
    print(f"  継続ステップ: {[s.exponent for s in result.continuation.steps]}")
    b_norm = np.linalg.norm(B, axis=1)
    print(f"  |B| 範囲: {b_norm.min():.4f} - {b_norm.max():.4f} T")
    print(f"  所要時間: {result.elapsed_time:.2f} s")

    if plot:
        path = plot_flux_density(setup.mesh, B, OUTPUT_DIR / "iesl_tape_B.png")
        print(f"  出力: {path}")
    print()


def plot_flux_density(mesh, B: np.ndarray, output_path: Path) -> Path:
    """セル平均 |B| の三角形カラーマップを PNG で保存する."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    import matplotlib.tri as mtri

    triang = mtri.Triangulation(mesh.nodes[:, 0], mesh.nodes[:, 1], mesh.cells)
    fig, ax = plt.subplots(figsize=(7, 6), dpi=100)
    tpc = ax.tripcolor(triang, facecolors=np.linalg.norm(B, axis=1), cmap="viridis")
    fig.colorbar(tpc, ax=ax, label="|B| [T]")
    ax.set_xlabel("x [m]")
    ax.set_ylabel("y [m]")
    ax.set_aspect("equal")
    ax.set_title("IESL 2D tape: |B|")
    fig.tight_layout()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, bbox_inches="tight")
    plt.close(fig)
    return output_path


def main():
    """メイン実行."""
    print("=" * 60)
    print("xkep_hts サンプル解析実行")
    print("=" * 60)
    print()

    args = [a.lower() for a in sys.argv[1:]]
    plot = "--plot" in args
    filters = [a for a in args if not a.startswith("--")]
    filter_key = filters[0] if filters else None

    examples = {
        "coil": run_axisymmetric_coil,
        "strip": run_transport_strip,
        "iesl": lambda: run_iesl_tape(plot=plot),
    }

    for name, func in examples.items():
        if filter_key is None or filter_key in name:
            func()


if __name__ == "__main__":
    main()
