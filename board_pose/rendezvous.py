"""Blocking one-shot pose requests on top of the frame stream.

A request that finds the controller unsubscribed subscribes it, forces the
very next frame through the throttle and keeps spinning the stream until a
detection succeeds, then unsubscribes again. The wait happens by re-entering
the same single-threaded loop that delivers frames, so nothing else may
spin that stream while a request is pending.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional

from .controller import PoseController
from .errors import RequestBusy, RequestCancelled, RequestTimeout
from .frame_source import CameraStream
from .pose import Pose

_USE_DEFAULT = object()


@dataclass
class PoseResponse:
    position: tuple[float, float, float]
    orientation: tuple[float, float, float, float]  # x, y, z, w

    @classmethod
    def from_pose(cls, pose: Pose) -> "PoseResponse":
        q = pose.quaternion()
        return cls(pose.position(), (float(q[0]), float(q[1]), float(q[2]), float(q[3])))

    def as_dict(self) -> dict:
        x, y, z = self.position
        qx, qy, qz, qw = self.orientation
        return {
            "position": {"x": x, "y": y, "z": z},
            "orientation": {"x": qx, "y": qy, "z": qz, "w": qw},
        }


class PoseService:
    """Serves "compute the pose now" requests for one controller.

    Only one request may be outstanding; a second call while the first is
    still waiting raises :class:`RequestBusy`.
    """

    def __init__(
        self,
        controller: PoseController,
        stream: Optional[CameraStream] = None,
        timeout: Optional[float] = None,
        idle_sleep: float = 0.001,
    ):
        self.controller = controller
        self.stream = stream or controller.stream
        self.timeout = timeout
        self.idle_sleep = idle_sleep
        self._lock = threading.Lock()
        self._cancel = threading.Event()

    @property
    def pending(self) -> bool:
        return self._lock.locked()

    def cancel(self) -> None:
        """Abort the outstanding request, if any. Safe to call from another thread."""
        if self._lock.locked():
            self._cancel.set()

    def compute_pose(self, timeout=_USE_DEFAULT) -> PoseResponse:
        """Return the current pose, capturing a fresh one if not streaming.

        Args:
            timeout: seconds to wait for a detection; None waits forever.
                Defaults to the service timeout.

        Raises:
            RequestBusy: another request is still waiting.
            RequestTimeout: no detection before the deadline.
            RequestCancelled: :meth:`cancel` was called while waiting.
        """
        if timeout is _USE_DEFAULT:
            timeout = self.timeout
        if not self._lock.acquire(blocking=False):
            raise RequestBusy("a pose request is already pending")

        self._cancel.clear()
        try:
            if not self.controller.subscribed:
                self._capture_one(timeout)
            return PoseResponse.from_pose(self.controller.pose)
        finally:
            self._cancel.clear()
            self._lock.release()

    def _capture_one(self, timeout: Optional[float]) -> None:
        ctl = self.controller
        saved_skip = ctl.throttle.skip_count
        deadline = None if timeout is None else time.monotonic() + timeout

        ctl.subscribe()
        ctl.captured = False
        ctl.throttle.force_immediate()
        ctl.logger.info("pose requested, waiting for a detection")
        try:
            while not ctl.captured:
                if self._cancel.is_set():
                    raise RequestCancelled("pose request cancelled")
                if deadline is not None and time.monotonic() >= deadline:
                    raise RequestTimeout(f"no board detected within {timeout:.3f}s")
                if not self.stream.spin_once():
                    time.sleep(self.idle_sleep)
        finally:
            ctl.unsubscribe()
            ctl.throttle.skip_count = saved_skip
