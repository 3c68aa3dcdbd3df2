"""シミュレーション設定（型付き・不変）.

入れ子の辞書設定（文字列キー）を from_dict で受け取り、各フィールドを
明示的に既定値付きで構築する。検証は構築時の __post_init__ で一度だけ行う。

  MeshConfig         メッシュ（構造格子）と座標系
  MaterialConfig     HTS 材料（種別・J_c・n・E_c・μ・B_0）
  BoundaryConfig     A / T それぞれの Dirichlet タグと値、Neumann 条件
  SourceConfig       A 方程式のソース（全領域 or タグ付き部分領域）
  FormulationConfig  定式化の設定（次元・座標系・μ⁻¹・境界・ソース・超伝導タグ）
  SolverConfig       Newton-Raphson と指数継続スケジュール
  SimulationConfig   上記をまとめたトップレベル設定
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from xkep_hts.constants import B0_DEFAULT, E_C_DEFAULT, JC_DEFAULT, MU_0, N_DEFAULT
from xkep_hts.core.errors import InvalidParameter, UnsupportedCombination
from xkep_hts.formulations.coordinates import CoordinateSystem
from xkep_hts.materials.library import material_from_config
from xkep_hts.materials.power_law import check_exponent, check_positive


class Formulation(Enum):
    """定式化の種別."""

    A = "A"
    TA = "TA"

    @classmethod
    def parse(cls, value: str | Formulation) -> Formulation:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise UnsupportedCombination(f"未知の定式化: {value!r}（'A' または 'TA'）") from None


def _as_tags(tags) -> tuple[str, ...]:
    if tags is None:
        return ()
    if isinstance(tags, str):
        return (tags,)
    return tuple(str(t) for t in tags)


@dataclass(frozen=True)
class MeshConfig:
    """構造格子メッシュの設定.

    Attributes:
        kind: メッシュ種別（"cartesian" のみ対応）
        domain: (x0, x1, y0, y1[, z0, z1])
        partition: 各軸の分割数
        coordinate_system: 座標系
        cell_tags: セルタグ名 → 箱 (x0, x1, y0, y1[, z0, z1])（重心で判定）
    """

    kind: str = "cartesian"
    domain: tuple[float, ...] = (0.0, 1.0, 0.0, 1.0)
    partition: tuple[int, ...] = (20, 20)
    coordinate_system: CoordinateSystem = CoordinateSystem.CARTESIAN_2D
    cell_tags: Mapping[str, tuple[float, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind != "cartesian":
            raise UnsupportedCombination(
                f"未対応のメッシュ種別: {self.kind!r}（構造格子 'cartesian' のみ対応）"
            )
        object.__setattr__(self, "domain", tuple(float(v) for v in self.domain))
        object.__setattr__(self, "partition", tuple(int(p) for p in self.partition))
        object.__setattr__(
            self, "coordinate_system", CoordinateSystem.parse(self.coordinate_system)
        )
        object.__setattr__(
            self, "cell_tags", {k: tuple(float(v) for v in b) for k, b in self.cell_tags.items()}
        )
        dim = len(self.partition)
        if dim not in (2, 3):
            raise InvalidParameter(f"partition は 2 または 3 要素: {self.partition}")
        if len(self.domain) != 2 * dim:
            raise InvalidParameter(
                f"domain は {2 * dim} 要素でなければなりません: {self.domain}"
            )
        if any(p <= 0 for p in self.partition):
            raise InvalidParameter(f"partition は正の整数でなければなりません: {self.partition}")
        if self.coordinate_system.dim != dim:
            raise UnsupportedCombination(
                f"座標系 {self.coordinate_system.value} は {dim}D メッシュに使えません。"
            )
        if self.coordinate_system is CoordinateSystem.AXISYMMETRIC_2D and self.domain[0] < 0:
            raise InvalidParameter(
                f"軸対称 2D では半径座標 r >= 0 が必要です: r_min = {self.domain[0]}"
            )

    @property
    def dim(self) -> int:
        return len(self.partition)


@dataclass(frozen=True)
class MaterialConfig:
    """HTS 材料の設定.

    Attributes:
        kind: "power_law" または "field_dependent"（検証は材料構築時）
        jc: 臨界電流密度 [A/m²]（field_dependent では J_c0）
        n_exponent: べき乗則指数
        ec: 臨界電界 [V/m]
        mu: 透磁率 [H/m]
        b0: Kim モデル特性磁場 [T]（field_dependent のみ使用）
    """

    kind: str = "power_law"
    jc: float = JC_DEFAULT
    n_exponent: int = N_DEFAULT
    ec: float = E_C_DEFAULT
    mu: float = MU_0
    b0: float = B0_DEFAULT

    def __post_init__(self) -> None:
        check_positive("J_c", self.jc)
        check_exponent(self.n_exponent)
        check_positive("E_c", self.ec)
        check_positive("μ", self.mu)
        check_positive("B_0", self.b0)

    @property
    def mu_inv(self) -> float:
        return 1.0 / self.mu

    def build(self, n: int | None = None):
        """指数 n（None なら n_exponent）の材料を新しく構築する."""
        return material_from_config(self, n)


@dataclass(frozen=True)
class BoundaryConfig:
    """境界条件の設定.

    Dirichlet 値は None（ゼロ）、定数、x → 値 の関数、または {タグ: 値}。
    T のタグ "superconductor_boundary" は超伝導部分領域の境界を指す
    （部分領域が無ければ領域全体の境界 "boundary"）。

    Attributes:
        dirichlet_tags: A の Dirichlet タグ
        dirichlet_values: A の Dirichlet 値
        dirichlet_tags_T: T の Dirichlet タグ
        dirichlet_values_T: T の Dirichlet 値
        neumann_tags: A の Neumann 境界タグ（2D のみ）
        neumann_values: Neumann データ g（定数 or 関数）
    """

    dirichlet_tags: tuple[str, ...] = ("boundary",)
    dirichlet_values: Any = None
    dirichlet_tags_T: tuple[str, ...] = ("superconductor_boundary",)
    dirichlet_values_T: Any = None
    neumann_tags: tuple[str, ...] = ()
    neumann_values: Any = None

    def __post_init__(self) -> None:
        for name in ("dirichlet_tags", "dirichlet_tags_T", "neumann_tags"):
            object.__setattr__(self, name, _as_tags(getattr(self, name)))


@dataclass(frozen=True)
class SourceConfig:
    """A 方程式のソース（電流密度）.

    Attributes:
        value: 定数（2D スカラー / 3D ベクトル）または x → 値 の関数
        tag: ソースを限定するセルタグ（None なら全領域）
    """

    value: float | np.ndarray | Callable[[np.ndarray], np.ndarray] = 0.0
    tag: str | None = None


@dataclass(frozen=True)
class FormulationConfig:
    """定式化の設定（構築時に一度だけ検証）.

    Attributes:
        dimension: 問題の次元 D ∈ {2, 3}
        coordinate_system: 座標系
        mu_inv: 透磁率の逆数 μ⁻¹ > 0
        boundary: 境界条件（A / T 別々のタグ）
        source: A 方程式のソース（None ならゼロ）
        superconductor_tag: T 方程式を積分する超伝導セルタグ（T-A のみ、None なら全領域）
    """

    dimension: int = 2
    coordinate_system: CoordinateSystem = CoordinateSystem.CARTESIAN_2D
    mu_inv: float = 1.0 / MU_0
    boundary: BoundaryConfig = field(default_factory=BoundaryConfig)
    source: SourceConfig | None = None
    superconductor_tag: str | None = None

    def __post_init__(self) -> None:
        if self.dimension not in (2, 3):
            raise InvalidParameter(f"次元 D は 2 または 3: {self.dimension}")
        object.__setattr__(
            self, "coordinate_system", CoordinateSystem.parse(self.coordinate_system)
        )
        if self.coordinate_system.dim != self.dimension:
            raise UnsupportedCombination(
                f"座標系 {self.coordinate_system.value} と次元 D = {self.dimension} は組み合わせられません。"
            )
        check_positive("μ⁻¹", self.mu_inv)
        if self.dimension == 3 and self.boundary.neumann_tags:
            raise UnsupportedCombination("Neumann 条件は 2D のみ対応しています。")


@dataclass(frozen=True)
class SolverConfig:
    """非線形ソルバーの設定.

    Attributes:
        kind: "newton" のみ対応
        max_iter: 最大 Newton 反復回数
        rtol: 相対残差許容値（||R|| <= rtol ||R_0||）
        atol: 絶対残差許容値
        n_continuation: 指数継続スケジュール（例: (5, 10, 15, 20, 25)）。None なら単一解法。
            昇順であることは呼び出し側の責任（検証しない）。
        linear_solver: 線形ソルバー ("auto", "spsolve", "pyamg", "cg")。None なら定式化の既定値。
    """

    kind: str = "newton"
    max_iter: int = 50
    rtol: float = 1e-8
    atol: float = 1e-12
    n_continuation: tuple[int, ...] | None = None
    linear_solver: str | None = None

    def __post_init__(self) -> None:
        if self.kind != "newton":
            raise UnsupportedCombination(f"未対応のソルバー種別: {self.kind!r}（'newton' のみ）")
        if isinstance(self.max_iter, bool) or int(self.max_iter) != self.max_iter or self.max_iter <= 0:
            raise InvalidParameter(f"max_iter は正の整数でなければなりません: {self.max_iter}")
        check_positive("rtol", self.rtol)
        check_positive("atol", self.atol)
        if self.n_continuation is not None:
            schedule = tuple(self.n_continuation)
            if not schedule:
                raise InvalidParameter("n_continuation が空です。")
            for n in schedule:
                check_exponent(n)
            object.__setattr__(self, "n_continuation", schedule)
        if self.linear_solver not in (None, "auto", "spsolve", "pyamg", "cg"):
            raise UnsupportedCombination(f"未知の線形ソルバー: {self.linear_solver!r}")


@dataclass(frozen=True)
class SimulationConfig:
    """トップレベル設定.

    Attributes:
        formulation: A または TA
        mesh: メッシュ設定
        material: 材料設定
        boundary: 境界条件
        source: A 方程式のソース
        solver: 非線形ソルバー設定
        superconductor_tag: 超伝導セルタグ（T-A のみ）
        problem_name: 表示用の問題名
        metadata: ベンチマーク情報など（計算には使わない）
    """

    formulation: Formulation = Formulation.A
    mesh: MeshConfig = field(default_factory=MeshConfig)
    material: MaterialConfig = field(default_factory=MaterialConfig)
    boundary: BoundaryConfig = field(default_factory=BoundaryConfig)
    source: SourceConfig | None = None
    solver: SolverConfig = field(default_factory=SolverConfig)
    superconductor_tag: str | None = None
    problem_name: str = "xkep_hts"
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "formulation", Formulation.parse(self.formulation))
        if self.superconductor_tag is not None and self.formulation is Formulation.A:
            raise UnsupportedCombination("superconductor_tag は T-A 定式化でのみ使えます。")

    def formulation_config(self) -> FormulationConfig:
        """定式化設定を導出する（次元はメッシュ、μ⁻¹ は材料から）."""
        return FormulationConfig(
            dimension=self.mesh.dim,
            coordinate_system=self.mesh.coordinate_system,
            mu_inv=self.material.mu_inv,
            boundary=self.boundary,
            source=self.source,
            superconductor_tag=self.superconductor_tag,
        )

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> SimulationConfig:
        """入れ子の辞書設定から構築する.

        例:
            {"formulation": "TA",
             "mesh": {"domain": (0, 1, 0, 1), "partition": (8, 8)},
             "material": {"jc": 3e10, "n_exponent": 25},
             "solver": {"n_continuation": [5, 10, 15, 20, 25]}}

        Raises:
            InvalidParameter: 未知のキー、または値の範囲違反
            UnsupportedCombination: 未知の種別
        """
        p = dict(params)
        unknown = set(p) - _TOP_LEVEL_KEYS
        if unknown:
            raise InvalidParameter(f"未知の設定キー: {sorted(unknown)}")
        if int(p.get("fe_order", 1)) != 1:
            raise UnsupportedCombination(f"fe_order = {p['fe_order']} は未対応です（1 次要素のみ）。")

        mesh = _section(p, "mesh")
        mat = _section(p, "material")
        bcs = _section(p, "bcs")
        sol = _section(p, "solver")

        sc_tag = mesh.pop("superconductor_tag", None)
        mesh_type = mesh.pop("type", "cartesian")
        if mesh.pop("file", None) is not None:
            raise UnsupportedCombination("メッシュファイルの読み込みは未対応です。")
        mesh_cfg = MeshConfig(kind=mesh_type, **_pick(mesh, MeshConfig, "mesh"))

        mat_type = mat.pop("type", "power_law")
        mat_cfg = MaterialConfig(kind=mat_type, **_pick(mat, MaterialConfig, "material"))

        bc_cfg = BoundaryConfig(**_pick(bcs, BoundaryConfig, "bcs"))

        sol_type = sol.pop("type", "newton")
        sol_cfg = SolverConfig(kind=sol_type, **_pick(sol, SolverConfig, "solver"))

        source = None
        if p.get("source") is not None:
            source = SourceConfig(value=p["source"], tag=p.get("source_tag"))
        elif p.get("source_tag") is not None:
            raise InvalidParameter("source_tag には source が必要です。")

        return cls(
            formulation=p.get("formulation", "A"),
            mesh=mesh_cfg,
            material=mat_cfg,
            boundary=bc_cfg,
            source=source,
            solver=sol_cfg,
            superconductor_tag=sc_tag,
            problem_name=str(p.get("problem_name", "xkep_hts")),
            metadata=dict(p.get("benchmark", {})),
        )


# output / gauge は受け付けるが使わない（ファイル出力・ゲージ固定は対象外）
_TOP_LEVEL_KEYS = {
    "formulation",
    "fe_order",
    "mesh",
    "material",
    "bcs",
    "solver",
    "source",
    "source_tag",
    "problem_name",
    "benchmark",
    "output",
    "gauge",
}


def _section(params: dict[str, Any], name: str) -> dict[str, Any]:
    section = params.get(name) or {}
    if not isinstance(section, Mapping):
        raise InvalidParameter(f"設定 {name!r} は辞書でなければなりません。")
    return {str(k): v for k, v in section.items()}


def _pick(section: dict[str, Any], cls: type, name: str) -> dict[str, Any]:
    allowed = set(cls.__dataclass_fields__) - {"kind"}
    unknown = set(section) - allowed
    if unknown:
        raise InvalidParameter(f"設定 {name!r} の未知のキー: {sorted(unknown)}")
    return section


def check_schedule_target(schedule, material: MaterialConfig) -> bool:
    """継続スケジュールの最終指数が材料の n_exponent と一致するか."""
    return bool(schedule) and int(schedule[-1]) == int(material.n_exponent)


