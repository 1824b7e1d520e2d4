"""Control unit protocol and visual states."""

from __future__ import annotations

import enum
from typing import Protocol, runtime_checkable

import torch

from ..types import Intersection, Plane, Ray


class UnitVisual(enum.Enum):
    """Rendering state of a control unit handle."""

    NORMAL = "normal"
    HIGHLIGHTED = "highlighted"
    FADED = "faded"


@runtime_checkable
class ControlUnit(Protocol):
    """Interactive handle that turns pointer motion into a transform delta."""

    @property
    def visual(self) -> UnitVisual: ...

    def get_delta(
        self,
        old_intersection: torch.Tensor,
        ray: Ray,
        drag_plane: Plane,
    ) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
        """Incremental update for one pointer move.

        Args:
            old_intersection: Pointer point of the previous move, shape (3,).
            ray: Current pointer ray.
            drag_plane: Plane the pointer is dragged on.

        Returns:
            Tuple of (translation (3,), rotation quaternion (4,),
            scale factors (3,), new intersection (3,)).
        """
        ...

    def set_highlighted(self, intersection: Intersection | None = None) -> bool:
        """Highlight when ``intersection`` hit this unit; returns whether it did."""
        ...

    def set_faded(self) -> None:
        """Dim the unit while another one is engaged."""
        ...

    def update_scale(self, world_scale: torch.Tensor) -> None:
        """Resize the handle to the extent of the labels it controls."""
        ...

    def hit_test(self, ray: Ray) -> Intersection | None:
        """Intersection of ``ray`` with the handle, or None."""
        ...
