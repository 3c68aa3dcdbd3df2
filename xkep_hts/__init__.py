"""xkep_hts - HTS（高温超伝導体）の非線形電磁界有限要素ソルバー.

  A 定式化   : 線形静磁場 ∇ × (μ⁻¹ ∇ × A) = J_s
  T-A 定式化 : べき乗則 / J_c(B) 依存材料の非線形連成問題（Newton + 指数継続法）

エントリポイントは xkep_hts.api.main。
"""

__version__ = "0.1.0"
