"""メッシュ生成ユーティリティ."""

from xkep_hts.mesh.structured import (
    Mesh,
    add_cell_tag,
    box_predicate,
    make_box_tet_mesh,
    make_rect_tri_mesh,
)

__all__ = [
    "Mesh",
    "add_cell_tag",
    "box_predicate",
    "make_box_tet_mesh",
    "make_rect_tri_mesh",
]
