"""Frame source abstraction for camera input.

Provides a unified interface for different frame sources:
- Device cameras (USB via V4L2, video files, stream URLs)
- Folders of still images

and ``CameraStream``, the single-threaded loop that pulls frames from a
source and hands them to subscribed callbacks.
"""

from __future__ import annotations

import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import cv2
import numpy as np


@dataclass
class CameraInfo:
    """Intrinsics delivered with every frame."""

    projection: np.ndarray  # 3x4
    distortion: np.ndarray = field(default_factory=lambda: np.zeros(5))
    frame_id: str = "camera"
    width: int = 0
    height: int = 0


@dataclass
class CameraFrame:
    image: Any  # numpy array, layout given by encoding
    encoding: str
    stamp: float  # seconds since epoch
    seq: int
    info: CameraInfo


FrameCallback = Callable[[CameraFrame], None]


class FrameSource(ABC):
    """Abstract base class for frame sources.

    A frame source provides frames from various inputs: USB cameras, image folders, etc.
    """

    @abstractmethod
    def start(self) -> None:
        """Start the frame source. Called before any read() calls."""
        ...

    @abstractmethod
    def read(self) -> CameraFrame | None:
        """Read next frame, or None if no frame is available right now."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the frame source and release resources."""
        ...


def _encoding_for(image: np.ndarray) -> str:
    if image.ndim == 2:
        return "mono8"
    channels = image.shape[2]
    if channels == 1:
        return "mono8"
    if channels == 4:
        return "bgra8"
    return "bgr8"


class DeviceCameraSource(FrameSource):
    """USB camera source using OpenCV's V4L2 interface.

    Wraps cv2.VideoCapture to provide a unified FrameSource interface.
    Anything that is not a device index or ``/dev/videoN`` is passed to
    VideoCapture as a file name or URL.
    """

    def __init__(self, device: int | str, fps: int, width: int, height: int, info: CameraInfo):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.info = info
        self.cap: Any = None
        self.frame_id = 0

    def start(self) -> None:
        """Open the camera device."""
        if isinstance(self.device, int):
            self.cap = cv2.VideoCapture(self.device, cv2.CAP_V4L2)
        else:
            dev_str = str(self.device)
            match = re.match(r"^/dev/video(\d+)$", dev_str)
            if match:
                dev_idx = int(match.group(1))
                self.cap = cv2.VideoCapture(dev_idx, cv2.CAP_V4L2)
            else:
                self.cap = cv2.VideoCapture(dev_str)

        if self.width:
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        if self.fps:
            self.cap.set(cv2.CAP_PROP_FPS, self.fps)

        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera: {self.device}")

        self.frame_id = 0

    def read(self) -> CameraFrame | None:
        """Read next frame from camera."""
        if self.cap is None:
            return None

        ok, img = self.cap.read()
        if not ok:
            return None

        self.frame_id += 1
        return CameraFrame(img, _encoding_for(img), time.time(), self.frame_id, self.info)

    def stop(self) -> None:
        """Release camera resources."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class ImageFolderSource(FrameSource):
    """Replays the images of a directory in file name order."""

    EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff"}

    def __init__(self, image_dir: str | Path, info: CameraInfo, loop: bool = False):
        self.image_dir = Path(image_dir)
        self.info = info
        self.loop = loop
        self.paths: list[Path] = []
        self._pos = 0
        self.frame_id = 0

    def start(self) -> None:
        if not self.image_dir.is_dir():
            raise RuntimeError(f"Image directory not found: {self.image_dir}")
        self.paths = sorted(
            p for p in self.image_dir.iterdir() if p.suffix.lower() in self.EXTENSIONS
        )
        self._pos = 0
        self.frame_id = 0

    def read(self) -> CameraFrame | None:
        if self._pos >= len(self.paths):
            if not self.loop or not self.paths:
                return None
            self._pos = 0
        path = self.paths[self._pos]
        self._pos += 1
        self.frame_id += 1

        # unreadable files are passed on with image=None and dropped by the decoder
        img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        encoding = _encoding_for(img) if img is not None else "unknown"
        return CameraFrame(img, encoding, time.time(), self.frame_id, self.info)

    def stop(self) -> None:
        self.paths = []
        self._pos = 0


class Subscription:
    """Handle returned by :meth:`CameraStream.subscribe`."""

    def __init__(self, stream: "CameraStream", callback: FrameCallback):
        self._stream = stream
        self.callback = callback
        self.active = True

    def shutdown(self) -> None:
        self._stream.unsubscribe(self)


class CameraStream:
    """Single cooperative event loop over one frame source.

    The source is started when the first callback subscribes and stopped
    when the last one leaves. Each :meth:`spin_once` reads at most one frame
    and dispatches it to the active subscriptions in subscription order, so
    frames are always handled in arrival order.
    """

    def __init__(self, source: FrameSource):
        self.source = source
        self._subscriptions: list[Subscription] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: FrameCallback) -> Subscription:
        if not self._running:
            self.source.start()
            self._running = True
        sub = Subscription(self, callback)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        self._subscriptions = [s for s in self._subscriptions if s is not subscription]
        if not self._subscriptions and self._running:
            self._running = False
            self.source.stop()

    def spin_once(self) -> bool:
        """Deliver one frame. Returns False if there was nothing to deliver."""
        if not self._subscriptions:
            return False
        frame = self.source.read()
        if frame is None:
            return False
        for sub in list(self._subscriptions):
            if sub.active:
                sub.callback(frame)
        return True

    def spin(
        self,
        stop_event: threading.Event,
        rate_hz: Optional[float] = None,
        on_tick: Optional[Callable[[], None]] = None,
    ) -> None:
        """Spin until ``stop_event`` is set, sleeping when no frame is ready.

        ``on_tick`` runs at the top of every iteration, outside frame
        dispatch, and may itself spin this stream.
        """
        period = 1.0 / rate_hz if rate_hz and rate_hz > 0 else 0.0
        while not stop_event.is_set():
            t0 = time.monotonic()
            if on_tick is not None:
                on_tick()
            delivered = self.spin_once()
            wait = period - (time.monotonic() - t0)
            if wait > 0:
                stop_event.wait(wait)
            elif not delivered:
                stop_event.wait(0.005)
