"""Tests for store.py: snapshot records and load_state."""

from __future__ import annotations

import copy
import json
import warnings

import pytest
import torch

from labelkit.store import DEFAULT_VIEWING_DISTANCE, State, load_state, make_label
from labelkit.types import DTYPE


class TestLoadState:
    def test_load_from_dict(self, scene_dict: dict) -> None:
        state = load_state(scene_dict)

        assert isinstance(state, State)
        assert len(state.items) == 1
        assert set(state.sensors) == {0}
        assert state.sensors[0].name == "front"
        item = state.current_item
        assert item is not None
        assert set(item.labels) == {0, 1}
        assert item.labels[1].parent == 0
        assert item.labels[0].children == [1]
        assert item.labels[1].track == 4
        assert item.shapes[0].type == "grid"
        assert state.selected_label_ids() == [0]
        assert state.viewer_configs[0].distance == 5.0

    def test_load_from_path(self, scene_dict: dict, tmp_path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps(scene_dict), encoding="utf-8")
        state = load_state(path)
        assert state.sensors[0].intrinsics is not None
        torch.testing.assert_close(
            state.sensors[0].intrinsics.focal_length, torch.tensor([100.0, 100.0], dtype=DTYPE)
        )

    def test_missing_file_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_state(tmp_path / "nope.json")

    def test_missing_items_raises(self, scene_dict: dict) -> None:
        del scene_dict["items"]
        with pytest.raises(ValueError, match="items"):
            load_state(scene_dict)

    def test_unknown_version_warns(self, scene_dict: dict) -> None:
        scene_dict["version"] = "9.9"
        with pytest.warns(UserWarning, match="Unknown state version"):
            state = load_state(scene_dict)
        assert len(state.items) == 1

    def test_bad_sensor_skipped(self, scene_dict: dict) -> None:
        bad = copy.deepcopy(scene_dict["sensors"]["0"])
        bad["intrinsics"]["focal_length"] = [0.0, 100.0]
        scene_dict["sensors"]["1"] = bad
        with pytest.warns(UserWarning, match="Sensor '1' skipped"):
            state = load_state(scene_dict)
        assert set(state.sensors) == {0}

    def test_uncalibrated_sensor_kept(self, scene_dict: dict) -> None:
        scene_dict["sensors"]["2"] = {"name": "side"}
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            state = load_state(scene_dict)
        assert state.sensors[2].intrinsics is None
        assert state.sensors[2].extrinsics is None

    def test_rotation_normalized(self, scene_dict: dict) -> None:
        scene_dict["sensors"]["0"]["extrinsics"]["rotation"] = [0.0, 0.0, 0.0, 3.0]
        state = load_state(scene_dict)
        torch.testing.assert_close(
            state.sensors[0].extrinsics.rotation, torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE)
        )

    def test_negative_parent_is_root(self, scene_dict: dict) -> None:
        scene_dict["items"][0]["labels"]["1"]["parent"] = -1
        state = load_state(scene_dict)
        assert state.items[0].labels[1].parent is None

    def test_viewer_defaults(self, scene_dict: dict) -> None:
        scene_dict["viewer_configs"] = {"1": {"sensor": 0}}
        state = load_state(scene_dict)
        assert state.viewer_configs[1].distance == DEFAULT_VIEWING_DISTANCE
        assert state.viewer_configs[1].type == "image"


class TestState:
    def test_out_of_range_item(self, scene_dict: dict) -> None:
        scene_dict["select"]["item"] = 3
        state = load_state(scene_dict)
        assert state.current_item is None
        assert state.selected_label_ids() == []


class TestMakeLabel:
    def test_fresh_label_is_uncommitted(self) -> None:
        record = make_label("box3d", item=2, category=[1], sensors=[0])
        assert record.id == -1
        assert record.item == 2
        assert record.parent is None
        assert record.children == []
        assert record.category == [1]
        assert record.sensors == [0]
