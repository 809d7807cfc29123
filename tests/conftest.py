import numpy as np
import pytest

import cv2

from board_pose.config import PoseConfig
from board_pose.detect import BoardDetection
from board_pose.frame_source import CameraFrame, CameraInfo, CameraStream, FrameSource
from board_pose.sinks import PoseSink


FX = FY = 600.0


class ScriptedSource(FrameSource):
    """Endless source of blank frames, or a fixed list when ``frames`` is given."""

    def __init__(self, frames=None, encoding="mono8", frame_id="camera_optical"):
        self.frames = list(frames) if frames is not None else None
        self.encoding = encoding
        self.info = CameraInfo(
            projection=np.array([[FX, 0, 2.0, 0], [0, FY, 2.0, 0], [0, 0, 1, 0]], dtype=float),
            distortion=np.zeros(5),
            frame_id=frame_id,
        )
        self.started = 0
        self.stopped = 0
        self.reads = 0
        self.seq = 0

    def start(self):
        self.started += 1

    def read(self):
        self.reads += 1
        if self.frames is not None:
            if not self.frames:
                return None
            return self.frames.pop(0)
        self.seq += 1
        image = np.zeros((4, 4), dtype=np.uint8)
        return CameraFrame(image, self.encoding, 100.0 + self.seq, self.seq, self.info)

    def stop(self):
        self.stopped += 1


class FakeDetector:
    """Returns scripted results; ``None`` is a miss, an exception is raised."""

    def __init__(self, results, default=None):
        self.results = list(results)
        self.default = default
        self.calls = 0

    def find(self, gray, projection, distortion):
        self.calls += 1
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSink(PoseSink):
    def __init__(self):
        self.transforms = []
        self.markers = []
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    def send_transform(self, transform):
        self.transforms.append(transform)

    def send_marker(self, marker):
        self.markers.append(marker)

    def close(self):
        self.closed = True


def found(tvec, rvec=(0.0, 0.0, 0.0)):
    return BoardDetection(np.array(rvec, dtype=float), np.array(tvec, dtype=float), None)


@pytest.fixture
def make_source():
    return ScriptedSource


@pytest.fixture
def make_detector():
    return FakeDetector


@pytest.fixture
def make_found():
    return found


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def config(tmp_path):
    return PoseConfig(
        node_name="test",
        base_frame="camera",
        frame_id="board",
        skip_frames=1,
        checkerboard_width=8,
        checkerboard_height=6,
        checkerboard_box_width=0.03,
        checkerboard_box_height=0.03,
        request_timeout_s=2.0,
    )


@pytest.fixture
def stream_for():
    def _make(source):
        return CameraStream(source)
    return _make


def render_checkerboard(squares=(9, 7), square_px=40, margin=60):
    """White-bordered board with ``squares`` boxes, i.e. (cols-1, rows-1) inner corners."""
    cols, rows = squares
    h = rows * square_px + 2 * margin
    w = cols * square_px + 2 * margin
    img = np.full((h, w), 255, dtype=np.uint8)
    for r in range(rows):
        for c in range(cols):
            if (r + c) % 2 == 0:
                y0 = margin + r * square_px
                x0 = margin + c * square_px
                img[y0:y0 + square_px, x0:x0 + square_px] = 0
    return cv2.GaussianBlur(img, (3, 3), 0)


@pytest.fixture
def board_frame():
    img = render_checkerboard()
    h, w = img.shape
    info = CameraInfo(
        projection=np.array([[FX, 0, w / 2.0, 0], [0, FY, h / 2.0, 0], [0, 0, 1, 0]], dtype=float),
        distortion=np.zeros(5),
        frame_id="camera_optical",
        width=w,
        height=h,
    )
    return CameraFrame(img, "mono8", 42.0, 1, info)


@pytest.fixture
def board_image():
    return render_checkerboard()
