"""Base class for 3D drawable labels."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import torch

from ..exceptions import LabelStateError, MissingShapeError, UninitializedLabelError
from ..log import get_logger
from ..store import LabelRecord, State
from ..types import Intersection
from .names import LabelTypeName, color_for_label

if TYPE_CHECKING:
    from ..camera import CameraModel
    from .label_list import Label3DList
    from .shape3d import Shape3D

logger = get_logger(__name__)


@dataclass
class LabelIntent:
    """Mutation request emitted toward the store.

    Attributes:
        label_id: Store id, -1 for a label to be created.
        item: Item index.
        type: Label type tag.
        category: Selected category ids.
        attributes: Attribute id to selected value ids.
        parent: Parent label id, or None.
        children: Child label ids.
        shape_ids: Ids of the label's shapes, -1 for new shapes.
        shape_types: Type tags of the shapes.
        shapes: Geometry snapshots of the shapes.
        temporary: True when the label has never been committed.
    """

    label_id: int
    item: int
    type: str
    category: list[int] = field(default_factory=list)
    attributes: dict[int, list[int]] = field(default_factory=dict)
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    shape_ids: list[int] = field(default_factory=list)
    shape_types: list[str] = field(default_factory=list)
    shapes: list[dict] = field(default_factory=list)
    temporary: bool = False


class Label3D:
    """Abstract 3D label.

    Labels refer to each other by arena index (:attr:`index`) and keep their
    record's ``parent``/``children`` store ids consistent with those links.

    Args:
        labels: Arena the label is registered in.
    """

    type_name: LabelTypeName = LabelTypeName.EMPTY

    def __init__(self, labels: Label3DList) -> None:
        self._labels = labels
        self._index = -1
        self._label_id = -1
        self._track_id = -1
        self._record: LabelRecord | None = None
        self._selected = False
        self._highlighted = False
        self._color = (0.0, 0.0, 0.0, 1.0)
        self._parent_index: int | None = None
        self._child_indices: list[int] = []
        self._temporary = False

    # -- identity ------------------------------------------------------------

    @property
    def index(self) -> int:
        """Arena index, -1 until registered."""
        return self._index

    @index.setter
    def index(self, i: int) -> None:
        self._index = i
        for shape in self.shapes():
            shape.label_index = i

    @property
    def label_id(self) -> int:
        return self._label_id

    @property
    def track_id(self) -> int:
        return self._track_id

    @property
    def color(self) -> tuple[float, float, float, float]:
        return self._color

    @property
    def label(self) -> LabelRecord:
        """In-memory label record.

        Raises:
            UninitializedLabelError: Before ``init`` or ``update_state``.
        """
        if self._record is None:
            raise UninitializedLabelError("Label uninitialized", self._label_id)
        return self._record

    @property
    def temporary(self) -> bool:
        """True while the label is not committed to the store."""
        return self._temporary

    @property
    def selected(self) -> bool:
        return self._selected

    @selected.setter
    def selected(self, s: bool) -> None:
        self._selected = s
        for shape in self.shapes():
            shape.selected = s

    @property
    def highlighted(self) -> bool:
        return self._highlighted

    def set_highlighted(self, intersection: Intersection | None = None) -> None:
        self._highlighted = intersection is not None
        for shape in self.shapes():
            shape.set_highlighted(intersection)

    @property
    def category(self) -> list[int]:
        if self._record is not None:
            return self._record.category
        return []

    @property
    def attributes(self) -> dict[int, list[int]]:
        if self._record is not None:
            return self._record.attributes
        return {}

    # -- hierarchy -----------------------------------------------------------

    @property
    def parent_index(self) -> int | None:
        return self._parent_index

    @property
    def parent(self) -> Label3D | None:
        if self._parent_index is None:
            return None
        return self._labels.get(self._parent_index)

    @property
    def child_indices(self) -> list[int]:
        return list(self._child_indices)

    @property
    def children(self) -> list[Label3D]:
        return [self._labels.get(i) for i in self._child_indices]

    def _set_parent(self, parent: Label3D | None) -> None:
        self._parent_index = None if parent is None else parent.index
        if self._record is not None:
            self._record.parent = None if parent is None else parent.label_id

    def is_ancestor_of(self, other: Label3D) -> bool:
        """True when ``other`` is in this label's subtree (excluding itself)."""
        node = other.parent
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def add_child(self, child: Label3D) -> None:
        """Attach ``child`` under this label, detaching it from any prior parent.

        The child's shapes are re-expressed in this label's shape frame.

        Raises:
            ValueError: If the link would create a cycle.
        """
        if child.parent_index == self._index and child.parent_index is not None:
            return
        if child is self or child.is_ancestor_of(self):
            raise ValueError(f"Adding label {child.index} under {self._index} would create a cycle.")

        previous = child.parent
        if previous is not None:
            previous.remove_child(child)

        self._child_indices.append(child.index)
        child._set_parent(self)
        if self._record is not None and child.label_id >= 0:
            if child.label_id not in self._record.children:
                self._record.children.append(child.label_id)

        if self.shapes():
            for shape in child.shapes():
                shape.attach_to(self._index)

    def remove_child(self, child: Label3D) -> None:
        """Detach ``child``; its shapes return to world coordinates."""
        if child.index not in self._child_indices:
            return
        self._child_indices.remove(child.index)
        child._set_parent(None)
        if self._record is not None and child.label_id in self._record.children:
            self._record.children.remove(child.label_id)
        for shape in child.shapes():
            shape.detach()

    # -- geometry ------------------------------------------------------------

    def shapes(self) -> list[Shape3D]:
        """Owned shapes, for hit testing and rendering."""
        raise NotImplementedError

    def _primary_shape(self) -> Shape3D:
        shapes = self.shapes()
        if not shapes:
            raise MissingShapeError("Label has no shape", self._label_id)
        return shapes[0]

    @property
    def center(self) -> torch.Tensor:
        """World position of the primary shape, shape (3,)."""
        return self._primary_shape().center

    @property
    def orientation(self) -> torch.Tensor:
        """World orientation of the primary shape, shape (4,)."""
        return self._primary_shape().orientation

    def translate(self, delta: torch.Tensor) -> None:
        for shape in self.shapes():
            shape.translate(delta)

    def rotate(self, quaternion: torch.Tensor) -> None:
        for shape in self.shapes():
            shape.rotate(quaternion)

    def scale(self, scale: torch.Tensor, anchor: torch.Tensor) -> None:
        for shape in self.shapes():
            shape.scale(scale, anchor)

    def shape_states(self) -> tuple[list[int], list[str], list[dict]]:
        """(shape ids, shape type tags, shape snapshots) for persistence.

        Raises:
            UninitializedLabelError: Before ``init`` or ``update_state``.
        """
        if self._record is None:
            raise UninitializedLabelError("Uninitialized label", self._label_id)
        shapes = self.shapes()
        return (
            [shape.id for shape in shapes],
            [shape.type_name.value for shape in shapes],
            [shape.to_state() for shape in shapes],
        )

    # -- pointer protocol ----------------------------------------------------

    def on_mouse_down(self, x: float, y: float, camera: CameraModel) -> bool:
        return False

    def on_mouse_move(self, x: float, y: float, camera: CameraModel) -> bool:
        return False

    def on_mouse_up(self) -> None:
        return None

    # -- store synchronization -----------------------------------------------

    def init(
        self,
        item_index: int,
        category: int,
        center: torch.Tensor | None = None,
        sensors: list[int] | None = None,
        temporary: bool = False,
    ) -> None:
        raise NotImplementedError

    def update_state(self, state: State, item_index: int, label_id: int) -> None:
        """Resync identity and color from the store snapshot.

        Raises:
            LabelStateError: If the item or label is not in the snapshot.
        """
        if not 0 <= item_index < len(state.items):
            raise LabelStateError(f"Item {item_index} not in state", label_id)
        item = state.items[item_index]
        if label_id not in item.labels:
            raise LabelStateError(f"Label {label_id} not in item {item_index}", label_id)

        self._record = copy.deepcopy(item.labels[label_id])
        self._label_id = self._record.id
        self._track_id = self._record.track
        self._color = color_for_label(self._label_id, self._track_id)
        self._temporary = False

    def intent(self) -> LabelIntent:
        """Describe this label as a store mutation request."""
        record = self.label
        shape_ids, shape_types, shapes = self.shape_states()
        parent = self.parent
        return LabelIntent(
            label_id=self._label_id,
            item=record.item,
            type=self.type_name.value,
            category=list(record.category),
            attributes={k: list(v) for k, v in record.attributes.items()},
            parent=None if parent is None or parent.label_id < 0 else parent.label_id,
            children=list(record.children),
            shape_ids=shape_ids,
            shape_types=shape_types,
            shapes=shapes,
            temporary=self._temporary,
        )
