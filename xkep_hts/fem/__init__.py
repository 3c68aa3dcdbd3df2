"""有限要素離散化（積分領域・関数空間・アセンブリ）."""

from xkep_hts.fem.assembly import assemble_matrix, assemble_vector
from xkep_hts.fem.quadrature import (
    BoundaryRegion,
    QuadratureRegion,
    build_boundary_region,
    build_region,
)
from xkep_hts.fem.spaces import H1Space, HcurlSpace

__all__ = [
    "assemble_matrix",
    "assemble_vector",
    "BoundaryRegion",
    "QuadratureRegion",
    "build_boundary_region",
    "build_region",
    "H1Space",
    "HcurlSpace",
]
