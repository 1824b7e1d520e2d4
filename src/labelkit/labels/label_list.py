"""Arena of 3D labels with selection management and store synchronization."""

from __future__ import annotations

import warnings
from typing import Iterator

from ..log import get_logger
from ..store import State
from ..types import Intersection, Ray
from .box3d import Box3D
from .label3d import Label3D
from .names import LabelTypeName, label_type_from_string
from .plane3d import Plane3D

logger = get_logger(__name__)

_DRAWABLES: dict[LabelTypeName, type[Label3D]] = {
    LabelTypeName.BOX_3D: Box3D,
    LabelTypeName.PLANE_3D: Plane3D,
}


def make_drawable(type_name: str, labels: Label3DList) -> Label3D | None:
    """Instantiate the drawable for a stored label type; None for unknown types."""
    cls = _DRAWABLES.get(label_type_from_string(type_name))
    if cls is None:
        return None
    return cls(labels)


class Label3DList:
    """Owns every drawable label; labels address each other by arena index.

    Indices are assigned on :meth:`add` and never reused.
    """

    def __init__(self) -> None:
        self._labels: dict[int, Label3D] = {}
        self._next_index = 0
        self._selected: list[int] = []

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[Label3D]:
        return iter(list(self._labels.values()))

    def __contains__(self, label: object) -> bool:
        return isinstance(label, Label3D) and self._labels.get(label.index) is label

    def add(self, label: Label3D) -> int:
        """Register ``label`` and return its arena index."""
        index = self._next_index
        self._next_index += 1
        self._labels[index] = label
        label.index = index
        return index

    def get(self, index: int) -> Label3D:
        """Label at ``index``.

        Raises:
            KeyError: If no label has that index.
        """
        return self._labels[index]

    def find_by_id(self, label_id: int) -> Label3D | None:
        """Committed label with store id ``label_id``, if any."""
        if label_id < 0:
            return None
        for label in self._labels.values():
            if label.label_id == label_id:
                return label
        return None

    def remove(self, label: Label3D) -> None:
        """Drop ``label`` and its shapes; its children become roots."""
        if label not in self:
            return
        parent = label.parent
        if parent is not None:
            parent.remove_child(label)
        for child in label.children:
            label.remove_child(child)
        self.deselect(label)
        del self._labels[label.index]

    # -- selection -----------------------------------------------------------

    @property
    def selected_labels(self) -> list[Label3D]:
        """Selected labels in selection order."""
        return [self._labels[i] for i in self._selected if i in self._labels]

    @property
    def selected_label(self) -> Label3D | None:
        """Most recently selected label."""
        selected = self.selected_labels
        return selected[-1] if selected else None

    def select(self, label: Label3D, append: bool = False) -> None:
        if not append:
            self.clear_selection()
        if label.index not in self._selected:
            self._selected.append(label.index)
        label.selected = True

    def deselect(self, label: Label3D) -> None:
        if label.index in self._selected:
            self._selected.remove(label.index)
        label.selected = False

    def clear_selection(self) -> None:
        for label in self.selected_labels:
            label.selected = False
        self._selected = []

    def temporary_labels(self) -> list[Label3D]:
        """Labels drawn but not yet committed to the store."""
        return [label for label in self._labels.values() if label.temporary]

    # -- picking -------------------------------------------------------------

    def raycast(self, ray: Ray) -> list[Intersection]:
        """Hits of ``ray`` against every shape, nearest first."""
        hits = []
        for label in self._labels.values():
            for shape in label.shapes():
                hit = shape.hit_test(ray)
                if hit is not None:
                    hits.append(hit)
        return sorted(hits, key=lambda h: h.distance)

    def label_of(self, intersection: Intersection) -> Label3D | None:
        """Owning label of the shape an intersection hit."""
        index = getattr(intersection.target, "label_index", None)
        if index is None:
            return None
        return self._labels.get(index)

    # -- store synchronization -----------------------------------------------

    def update_state(self, state: State) -> None:
        """Resync all labels of the selected item from a snapshot.

        Labels missing from the snapshot are removed (temporary ones are
        kept), new ones are created, and parent links are rebuilt. Parents
        are resynced before their children so that world poses are read
        against up-to-date frames.
        """
        item = state.current_item
        if item is None:
            for label in self:
                if not label.temporary:
                    self.remove(label)
            return

        for label in self:
            if not label.temporary and label.label_id not in item.labels:
                self.remove(label)

        def depth(label_id: int) -> int:
            seen = set()
            d = 0
            parent = item.labels[label_id].parent
            while parent is not None and parent in item.labels and parent not in seen:
                seen.add(parent)
                d += 1
                parent = item.labels[parent].parent
            return d

        for label_id in sorted(item.labels, key=depth):
            record = item.labels[label_id]
            label = self.find_by_id(label_id)
            if label is None:
                label = make_drawable(record.type, self)
                if label is None:
                    warnings.warn(
                        f"Label {label_id} of unsupported type {record.type!r} skipped.",
                        UserWarning,
                        stacklevel=2,
                    )
                    continue
                self.add(label)
            label.update_state(state, item.index, label_id)

            parent = None if record.parent is None else self.find_by_id(record.parent)
            if parent is None:
                if label.parent is not None and not label.parent.temporary:
                    label.parent.remove_child(label)
            elif label.parent is not parent:
                parent.add_child(label)

        selected_ids = set(state.selected_label_ids())
        self._selected = [
            i for i in self._selected if self._labels[i].label_id in selected_ids or self._labels[i].temporary
        ]
        for label in self:
            if label.label_id in selected_ids and label.index not in self._selected:
                self._selected.append(label.index)
            label.selected = label.index in self._selected

        logger.debug(f"Synchronized {len(self)} labels for item {item.index}")
