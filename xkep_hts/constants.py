"""物理定数とデフォルト値.

HTS（高温超伝導体）電磁界解析で共通に使う定数。
"""

from __future__ import annotations

import math

MU_0 = 4.0 * math.pi * 1e-7  # 真空の透磁率 [H/m]
E_C_DEFAULT = 1e-4  # 臨界電界基準 E_c [V/m]
JC_DEFAULT = 1e9  # 臨界電流密度 J_c [A/m²]
N_DEFAULT = 25  # べき乗則指数（REBCO 典型値）
B0_DEFAULT = 0.1  # Kim モデル特性磁場 B_0 [T]

# |J| → 0 でのゼロ除算・非有限値を避ける正則化
EPS_REG = 1e-20

# 軸対称重み 2πr の対称軸上での下限 r_min [m]
EPS_AXIS = 1e-12
