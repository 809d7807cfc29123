"""Pose mode selection and frame throttling."""

from __future__ import annotations

from enum import Enum


class PoseMode(Enum):
    """Which transform the controller stores and publishes."""

    TARGET_RELATIVE_TO_CAMERA = "target"
    CAMERA_RELATIVE_TO_TARGET = "camera"


class ModeSwitch:
    """Holds the pose mode.

    The mode is chosen at construction. The only transition allowed later is
    target -> camera; once camera poses are requested there is no way back.
    """

    def __init__(self, mode: PoseMode = PoseMode.TARGET_RELATIVE_TO_CAMERA):
        self._mode = PoseMode(mode)

    @property
    def mode(self) -> PoseMode:
        return self._mode

    @property
    def camera_pose(self) -> bool:
        return self._mode is PoseMode.CAMERA_RELATIVE_TO_TARGET

    def set_mode(self, mode: PoseMode) -> None:
        mode = PoseMode(mode)
        if self.camera_pose and mode is PoseMode.TARGET_RELATIVE_TO_CAMERA:
            raise ValueError("cannot switch back from camera pose to target pose")
        self._mode = mode

    def compute_camera_pose(self) -> None:
        self._mode = PoseMode.CAMERA_RELATIVE_TO_TARGET


class FrameThrottle:
    """Decides which incoming frames are processed.

    ``frame_count`` is incremented on every arrival. With ``skip_count`` N >= 1
    the arrivals N, 2N, 3N, ... (1-indexed) are admitted; N < 1 admits
    nothing and leaves processing to explicit requests.
    """

    def __init__(self, skip_count: int = 1):
        self.skip_count = int(skip_count)
        self.frame_count = 0

    @property
    def continuous(self) -> bool:
        return self.skip_count >= 1

    def admit(self) -> bool:
        self.frame_count += 1
        if self.skip_count < 1:
            return False
        return self.frame_count % self.skip_count == 0

    def force_immediate(self) -> None:
        self.skip_count = 1
        self.frame_count = 0
