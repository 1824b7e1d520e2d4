"""Custom exception classes for labelkit."""

from __future__ import annotations

from typing import Optional


class LabelKitError(Exception):
    """Base exception for all labelkit errors."""

    pass


class LabelStateError(LabelKitError):
    """Raised when a store snapshot is inconsistent with a drawable label."""

    def __init__(self, message: str, label_id: Optional[int] = None):
        self.label_id = label_id
        super().__init__(message)


class UninitializedLabelError(LabelStateError):
    """Raised when a label is used before ``init`` or ``update_state``."""

    pass


class MissingShapeError(LabelStateError):
    """Raised when a label has no shape where one is required."""

    pass


class ProjectionUnavailableError(LabelKitError):
    """Raised when a camera without intrinsics is asked to project."""

    pass
