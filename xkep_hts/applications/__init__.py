"""ベンチマーク問題の設定."""

from xkep_hts.applications.iesl_tape import applied_field_potential, setup_iesl_benchmark

__all__ = ["applied_field_potential", "setup_iesl_benchmark"]
