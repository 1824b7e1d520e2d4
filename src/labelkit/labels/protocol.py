"""Drawable protocol shared by every 3D label variant."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

import torch

if TYPE_CHECKING:
    from ..camera import CameraModel
    from ..store import State
    from .shape3d import Shape3D


@runtime_checkable
class Drawable(Protocol):
    """Capability interface of 3D labels (plane, box, ...).

    Any class implementing these methods satisfies the protocol structurally;
    label variants are dispatched through it rather than through a deep
    class hierarchy.
    """

    def init(
        self,
        item_index: int,
        category: int,
        center: torch.Tensor | None = None,
        sensors: list[int] | None = None,
        temporary: bool = False,
    ) -> None:
        """Allocate a fresh in-memory label and shape, not yet in the store."""
        ...

    def update_state(self, state: State, item_index: int, label_id: int) -> None:
        """Resynchronize from an authoritative store snapshot. Idempotent."""
        ...

    def shapes(self) -> list[Shape3D]:
        """Owned shapes, for hit testing and rendering."""
        ...

    def shape_states(self) -> tuple[list[int], list[str], list[dict]]:
        """(shape ids, shape type tags, shape snapshots) for persistence."""
        ...

    def translate(self, delta: torch.Tensor) -> None:
        """Move the owned shapes by a world-space delta, shape (3,)."""
        ...

    def rotate(self, quaternion: torch.Tensor) -> None:
        """Rotate the owned shapes about their centers by a world-space quaternion."""
        ...

    def scale(self, scale: torch.Tensor, anchor: torch.Tensor) -> None:
        """Scale the owned shapes by per-axis factors relative to ``anchor``."""
        ...

    def on_mouse_down(self, x: float, y: float, camera: CameraModel) -> bool:
        """Pointer pressed at pixel (x, y). Returns whether the event was consumed."""
        ...

    def on_mouse_move(self, x: float, y: float, camera: CameraModel) -> bool:
        """Pointer moved to pixel (x, y). Returns whether the event was consumed."""
        ...

    def on_mouse_up(self) -> None:
        """Pointer released."""
        ...
