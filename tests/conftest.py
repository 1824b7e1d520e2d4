"""Shared pytest fixtures for labelkit tests."""

import pytest
import torch

_DEVICES = ["cpu"]
if torch.cuda.is_available():
    _DEVICES.append("cuda")


@pytest.fixture(params=_DEVICES)
def device(request) -> torch.device:
    """Device to run device-agnostic tensor tests on (CPU, plus CUDA when available)."""
    return torch.device(request.param)


@pytest.fixture
def scene_dict() -> dict:
    """Store snapshot: one calibrated sensor, a plane at z=5 holding one box."""
    return {
        "version": "1.0",
        "sensors": {
            "0": {
                "name": "front",
                "intrinsics": {"focal_length": [100.0, 100.0], "focal_center": [50.0, 50.0]},
                "extrinsics": {"translation": [0.0, 0.0, 0.0], "rotation": [0.0, 0.0, 0.0, 1.0]},
            },
        },
        "items": [
            {
                "labels": {
                    "0": {"id": 0, "type": "plane3d", "category": [0], "children": [1], "shapes": [0]},
                    "1": {"id": 1, "type": "box3d", "category": [2], "parent": 0, "shapes": [1], "track": 4},
                },
                "shapes": {
                    "0": {
                        "type": "grid",
                        "shape": {"center": [0.0, 0.0, 5.0], "orientation": [0.0, 0.0, 0.0], "scale": [10.0, 10.0]},
                        "label": [0],
                    },
                    "1": {
                        "type": "cube",
                        "shape": {"center": [1.0, 2.0, 4.5], "orientation": [0.0, 0.0, 0.3], "size": [2.0, 1.0, 1.0]},
                        "label": [1],
                    },
                },
            },
        ],
        "select": {"item": 0, "labels": {"0": [0]}},
        "viewer_configs": {"0": {"type": "homography", "sensor": 0, "distance": 5.0}},
    }
