"""Tests for the label scene graph: shapes, labels, the arena and store sync."""

from __future__ import annotations

import pytest
import torch

from labelkit.camera import CameraModel
from labelkit.exceptions import LabelStateError, MissingShapeError, UninitializedLabelError
from labelkit.labels import (
    Box3D,
    Drawable,
    Label3DList,
    LabelTypeName,
    Plane3D,
    color_for_label,
    label_type_from_string,
    make_drawable,
)
from labelkit.store import load_state
from labelkit.types import DTYPE, CameraExtrinsics, CameraIntrinsics, Intersection, Ray

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_camera(extrinsics: CameraExtrinsics | None = None) -> CameraModel:
    """Camera with fx=fy=100, cx=cy=50; at the world origin looking down +Z by default."""
    return CameraModel(
        (100, 100),
        CameraIntrinsics(
            focal_length=torch.tensor([100.0, 100.0], dtype=DTYPE),
            focal_center=torch.tensor([50.0, 50.0], dtype=DTYPE),
        ),
        extrinsics,
    )


def flipped_camera(z: float) -> CameraModel:
    """Camera at (0, 0, z) turned half a turn about X, looking down -Z."""
    return make_camera(CameraExtrinsics(translation=vec(0.0, 0.0, z), rotation=vec(1.0, 0.0, 0.0, 0.0)))


def vec(*values: float) -> torch.Tensor:
    return torch.tensor(values, dtype=DTYPE)


@pytest.fixture
def scene(scene_dict: dict) -> tuple[Label3DList, Plane3D, Box3D]:
    """Arena synchronized with the shared snapshot: (labels, plane, box)."""
    labels = Label3DList()
    labels.update_state(load_state(scene_dict))
    plane = labels.find_by_id(0)
    box = labels.find_by_id(1)
    assert isinstance(plane, Plane3D)
    assert isinstance(box, Box3D)
    return labels, plane, box


# ---------------------------------------------------------------------------
# Names and colors
# ---------------------------------------------------------------------------


class TestNames:
    def test_type_from_string(self) -> None:
        assert label_type_from_string("plane3d") is LabelTypeName.PLANE_3D
        assert label_type_from_string("box3d") is LabelTypeName.BOX_3D
        assert label_type_from_string("polygon2d") is LabelTypeName.EMPTY

    def test_uncommitted_label_is_black(self) -> None:
        assert color_for_label(-1) == (0.0, 0.0, 0.0, 1.0)

    def test_track_color_wins(self) -> None:
        assert color_for_label(3, track_id=7) == color_for_label(7)
        assert color_for_label(3) != color_for_label(4)

    def test_make_drawable(self) -> None:
        labels = Label3DList()
        assert isinstance(make_drawable("plane3d", labels), Plane3D)
        assert isinstance(make_drawable("box3d", labels), Box3D)
        assert make_drawable("tag", labels) is None

    def test_variants_satisfy_protocol(self) -> None:
        labels = Label3DList()
        assert isinstance(Plane3D(labels), Drawable)
        assert isinstance(Box3D(labels), Drawable)


# ---------------------------------------------------------------------------
# Store synchronization
# ---------------------------------------------------------------------------


class TestUpdateState:
    def test_builds_hierarchy(self, scene) -> None:
        labels, plane, box = scene
        assert len(labels) == 2
        assert box.parent is plane
        assert plane.children == [box]
        assert box.label.parent == 0
        assert plane.label.children == [1]
        assert box.cube.parent_index == plane.index

    def test_geometry_in_world_coordinates(self, scene) -> None:
        _, plane, box = scene
        torch.testing.assert_close(plane.center, vec(0.0, 0.0, 5.0))
        torch.testing.assert_close(plane.grid.normal, vec(0.0, 0.0, 1.0))
        torch.testing.assert_close(box.center, vec(1.0, 2.0, 4.5))
        torch.testing.assert_close(box.cube.size, vec(2.0, 1.0, 1.0))

    def test_identity_and_color(self, scene) -> None:
        _, plane, box = scene
        assert box.label_id == 1
        assert box.track_id == 4
        assert box.color == color_for_label(1, 4)
        assert not box.temporary
        assert box.category == [2]

    def test_selection_follows_snapshot(self, scene) -> None:
        labels, plane, box = scene
        assert labels.selected_labels == [plane]
        assert plane.selected
        assert plane.grid.selected
        assert not box.selected

    def test_idempotent(self, scene, scene_dict: dict) -> None:
        labels, plane, box = scene
        state = load_state(scene_dict)
        labels.update_state(state)
        labels.update_state(state)

        assert len(labels) == 2
        assert labels.find_by_id(0) is plane
        assert labels.find_by_id(1) is box
        assert plane.children == [box]
        assert plane.label.children == [1]
        torch.testing.assert_close(box.center, vec(1.0, 2.0, 4.5))
        torch.testing.assert_close(box.cube.size, vec(2.0, 1.0, 1.0))

    def test_moved_plane_carries_nothing_stale(self, scene, scene_dict: dict) -> None:
        """Parents resync first, so children land on their snapshot poses."""
        labels, plane, box = scene
        scene_dict["items"][0]["shapes"]["0"]["shape"]["center"] = [0.0, 0.0, 8.0]
        labels.update_state(load_state(scene_dict))
        torch.testing.assert_close(plane.center, vec(0.0, 0.0, 8.0))
        torch.testing.assert_close(box.center, vec(1.0, 2.0, 4.5))

    def test_dropped_label_is_removed(self, scene, scene_dict: dict) -> None:
        labels, plane, box = scene
        del scene_dict["items"][0]["labels"]["1"]
        scene_dict["items"][0]["labels"]["0"]["children"] = []
        labels.update_state(load_state(scene_dict))

        assert len(labels) == 1
        assert box not in labels
        assert plane.children == []

    def test_unknown_type_warns(self, scene_dict: dict) -> None:
        scene_dict["items"][0]["labels"]["2"] = {"id": 2, "type": "tag"}
        labels = Label3DList()
        with pytest.warns(UserWarning, match="unsupported type"):
            labels.update_state(load_state(scene_dict))
        assert len(labels) == 2

    def test_missing_label_raises(self, scene_dict: dict) -> None:
        box = Box3D(Label3DList())
        with pytest.raises(LabelStateError):
            box.update_state(load_state(scene_dict), 0, 42)
        with pytest.raises(LabelStateError):
            box.update_state(load_state(scene_dict), 5, 1)

    def test_missing_shape_raises(self, scene_dict: dict) -> None:
        scene_dict["items"][0]["labels"]["1"]["shapes"] = []
        box = Box3D(Label3DList())
        with pytest.raises(MissingShapeError):
            box.update_state(load_state(scene_dict), 0, 1)


class TestUninitialized:
    def test_label_access_raises(self) -> None:
        box = Box3D(Label3DList())
        with pytest.raises(UninitializedLabelError):
            _ = box.label
        with pytest.raises(UninitializedLabelError):
            box.shape_states()

    def test_init_creates_uncommitted_record(self) -> None:
        box = Box3D(Label3DList())
        box.init(3, 1, vec(1.0, 1.0, 1.0), [0], temporary=True)
        assert box.label.id == -1
        assert box.label.item == 3
        assert box.label.type == "box3d"
        assert box.temporary
        torch.testing.assert_close(box.center, vec(1.0, 1.0, 1.0))


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------


class TestHierarchy:
    def test_add_then_remove_restores_forest(self, scene) -> None:
        labels, plane, _ = scene
        other = Box3D(labels)
        labels.add(other)
        other.init(0, 0, vec(2.0, -1.0, 3.0))

        children_before = plane.child_indices
        record_children_before = list(plane.label.children)
        pose_before = other.cube.world_pose()

        plane.add_child(other)
        assert other.parent is plane
        assert other.cube.parent_index == plane.index
        torch.testing.assert_close(other.cube.world_pose().position, pose_before.position)

        plane.remove_child(other)
        assert other.parent is None
        assert other.label.parent is None
        assert other.cube.parent_index is None
        assert plane.child_indices == children_before
        assert plane.label.children == record_children_before
        after = other.cube.world_pose()
        torch.testing.assert_close(after.position, pose_before.position)
        torch.testing.assert_close(after.rotation, pose_before.rotation)
        torch.testing.assert_close(after.scale, pose_before.scale)

    def test_add_child_twice_is_noop(self, scene) -> None:
        _, plane, box = scene
        plane.add_child(box)
        assert plane.children == [box]
        assert plane.label.children == [1]

    def test_cycle_rejected(self, scene) -> None:
        _, plane, box = scene
        with pytest.raises(ValueError, match="cycle"):
            plane.add_child(plane)
        with pytest.raises(ValueError, match="cycle"):
            box.add_child(plane)

    def test_reparent_detaches_from_previous(self, scene) -> None:
        labels, plane, box = scene
        other_plane = Plane3D(labels)
        labels.add(other_plane)
        other_plane.init(0, 0, vec(0.0, 0.0, 9.0))

        other_plane.add_child(box)

        assert box.parent is other_plane
        assert plane.children == []
        assert plane.label.children == []
        torch.testing.assert_close(box.center, vec(1.0, 2.0, 4.5))

    def test_children_follow_parent(self, scene) -> None:
        _, plane, box = scene
        plane.translate(vec(0.0, 0.0, 1.0))
        torch.testing.assert_close(box.center, vec(1.0, 2.0, 5.5))

    def test_remove_from_arena_orphans_children(self, scene) -> None:
        labels, plane, box = scene
        labels.remove(plane)
        assert plane not in labels
        assert box.parent is None
        assert labels.selected_labels == []
        torch.testing.assert_close(box.center, vec(1.0, 2.0, 4.5))


# ---------------------------------------------------------------------------
# Transforms and persistence
# ---------------------------------------------------------------------------


class TestTransforms:
    def test_scale_about_anchor(self, scene) -> None:
        _, _, box = scene
        box.scale(vec(2.0, 2.0, 2.0), vec(0.0, 0.0, 4.5))
        torch.testing.assert_close(box.center, vec(2.0, 4.0, 4.5))
        torch.testing.assert_close(box.cube.size, vec(4.0, 2.0, 2.0))

    def test_grid_scale_keeps_flat(self, scene) -> None:
        _, plane, _ = scene
        plane.scale(vec(2.0, 2.0, 2.0), plane.center)
        torch.testing.assert_close(plane.grid.world_pose().scale, vec(20.0, 20.0, 1.0))

    def test_intent_round_trip(self, scene) -> None:
        _, plane, box = scene
        intent = box.intent()
        assert intent.label_id == 1
        assert intent.type == "box3d"
        assert intent.parent == 0
        assert intent.shape_ids == [1]
        assert intent.shape_types == ["cube"]
        shape = intent.shapes[0]
        torch.testing.assert_close(torch.tensor(shape["center"], dtype=DTYPE), vec(1.0, 2.0, 4.5))
        torch.testing.assert_close(torch.tensor(shape["orientation"], dtype=DTYPE), vec(0.0, 0.0, 0.3))
        torch.testing.assert_close(torch.tensor(shape["size"], dtype=DTYPE), vec(2.0, 1.0, 1.0))

        plane_intent = plane.intent()
        assert plane_intent.children == [1]
        assert plane_intent.shapes[0]["scale"] == pytest.approx([10.0, 10.0])


# ---------------------------------------------------------------------------
# Picking and pointer gestures
# ---------------------------------------------------------------------------


class TestRaycast:
    def test_nearest_first(self, scene) -> None:
        labels, plane, box = scene
        hits = labels.raycast(Ray(origin=vec(1.0, 2.0, 0.0), direction=vec(0.0, 0.0, 1.0)))
        assert [labels.label_of(hit) for hit in hits] == [box, plane]
        assert hits[0].distance == pytest.approx(4.0)
        assert hits[1].distance == pytest.approx(5.0)

    def test_grid_extent(self, scene) -> None:
        labels, _, _ = scene
        assert labels.raycast(Ray(origin=vec(6.0, 0.0, 0.0), direction=vec(0.0, 0.0, 1.0))) == []


class TestPlaneDrawing:
    def test_selected_plane_spawns_temporary_box(self, scene) -> None:
        labels, plane, _ = scene
        camera = make_camera()

        assert plane.on_mouse_down(50.0, 50.0, camera)
        drawn = plane.temporary_label
        assert isinstance(drawn, Box3D)
        assert drawn.temporary
        assert drawn.parent is plane
        assert drawn in labels

        assert plane.on_mouse_move(70.0, 60.0, camera)
        torch.testing.assert_close(drawn.center, vec(0.5, 0.25, 4.5))
        torch.testing.assert_close(drawn.cube.size, vec(1.0, 0.5, 1.0))

        plane.on_mouse_up()
        assert plane.temporary_label is None
        assert labels.temporary_labels() == [drawn]
        assert not drawn.drawing

    def test_temporary_child_survives_resync(self, scene, scene_dict: dict) -> None:
        labels, plane, _ = scene
        plane.on_mouse_down(50.0, 50.0, make_camera())
        drawn = plane.temporary_label
        plane.on_mouse_up()

        labels.update_state(load_state(scene_dict))

        assert drawn in labels
        assert drawn.parent is plane

    def test_unselected_plane_ignores_press(self, scene) -> None:
        labels, plane, _ = scene
        labels.clear_selection()
        assert not plane.on_mouse_down(50.0, 50.0, make_camera())
        assert plane.temporary_label is None
        assert len(labels) == 2

    def test_no_projection_is_not_consumed(self, scene) -> None:
        _, plane, _ = scene
        assert not plane.on_mouse_down(50.0, 50.0, CameraModel((100, 100)))
        assert plane.temporary_label is None

    def test_press_missing_plane_leaves_no_box(self, scene) -> None:
        labels, plane, _ = scene
        assert not plane.on_mouse_down(50.0, 50.0, flipped_camera(0.0))
        plane.on_mouse_up()

        assert plane.temporary_label is None
        assert labels.temporary_labels() == []
        assert len(labels) == 2
        assert plane.child_indices == [labels.find_by_id(1).index]

    def test_box_rises_toward_camera(self, scene) -> None:
        _, plane, _ = scene
        assert plane.on_mouse_down(50.0, 50.0, flipped_camera(10.0))
        torch.testing.assert_close(plane.temporary_label.center, vec(0.0, 0.0, 5.5))


class TestBoxDrag:
    def test_highlighted_box_drags_on_plane(self, scene) -> None:
        _, _, box = scene
        camera = make_camera()
        box.set_highlighted(Intersection(point=box.center, target=box.cube))

        assert box.on_mouse_down(50.0, 50.0, camera)
        assert box.on_mouse_move(60.0, 50.0, camera)
        box.on_mouse_up()

        torch.testing.assert_close(box.center, vec(1.5, 2.0, 4.5))

    def test_plain_box_ignores_press(self, scene) -> None:
        _, _, box = scene
        assert not box.on_mouse_down(50.0, 50.0, make_camera())


class TestSelection:
    def test_select_replaces_unless_append(self, scene) -> None:
        labels, plane, box = scene
        labels.select(box)
        assert labels.selected_labels == [box]
        assert not plane.selected

        labels.select(plane, append=True)
        assert labels.selected_labels == [box, plane]
        assert labels.selected_label is plane

        labels.deselect(box)
        assert labels.selected_labels == [plane]
        assert not box.selected

        labels.clear_selection()
        assert labels.selected_label is None
