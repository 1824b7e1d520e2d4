"""3D label scene graph: drawable labels, their shapes, and the label arena."""

from .box3d import Box3D
from .label3d import Label3D, LabelIntent
from .label_list import Label3DList, make_drawable
from .names import LabelTypeName, ShapeTypeName, color_for_label, label_type_from_string
from .plane3d import Plane3D
from .protocol import Drawable
from .shape3d import Cube3D, Grid3D, Shape3D

__all__ = [
    "Box3D",
    "Cube3D",
    "Drawable",
    "Grid3D",
    "Label3D",
    "Label3DList",
    "LabelIntent",
    "LabelTypeName",
    "Plane3D",
    "Shape3D",
    "ShapeTypeName",
    "color_for_label",
    "label_type_from_string",
    "make_drawable",
]
