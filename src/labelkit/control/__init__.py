"""Interactive transform handles and the drag controller."""

from .controller import ControlMode, Controller, TransformationControl, make_units
from .protocol import ControlUnit, UnitVisual
from .units import RotationRing, ScaleAxis, TranslationAxis, TranslationPlane

__all__ = [
    "ControlMode",
    "ControlUnit",
    "Controller",
    "RotationRing",
    "ScaleAxis",
    "TransformationControl",
    "TranslationAxis",
    "TranslationPlane",
    "UnitVisual",
    "make_units",
]
