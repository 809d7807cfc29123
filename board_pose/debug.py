from __future__ import annotations

from pathlib import Path
from typing import Optional

import cv2

from .detect import BoardDetection, CheckerboardDetector
from .pose import Pose


class DebugView:
    """Overlay drawing and display for the working image.

    Every method is a no-op while ``enabled`` is False. With ``save_dir``
    set, shown images are written there instead of opening a window.
    """

    def __init__(
        self,
        enabled: bool = False,
        window_name: str = "Debug",
        save_dir: Optional[str | Path] = None,
        wait_ms: int = 100,
    ):
        self.enabled = enabled
        self.window_name = window_name
        self.save_dir = Path(save_dir) if save_dir else None
        self.wait_ms = wait_ms
        self.last_path: Optional[str] = None
        self._window_open = False
        if self.enabled and self.save_dir is not None:
            self.save_dir.mkdir(parents=True, exist_ok=True)

    def canvas(self, gray):
        """Colour copy of the working image to draw on."""
        if not self.enabled:
            return None
        return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)

    def draw_board(self, image, detector: CheckerboardDetector, detection: BoardDetection) -> None:
        if not self.enabled or image is None:
            return
        detector.draw_board(image, detection)

    def draw_axes(self, image, detector: CheckerboardDetector, projection, distortion, pose: Pose) -> None:
        if not self.enabled or image is None:
            return
        detector.draw_axes(image, projection, distortion, pose)

    def show(self, image, seq: int = 0, label: str = "") -> None:
        if not self.enabled or image is None:
            return
        if label:
            cv2.putText(
                image,
                label,
                (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.8,
                (255, 255, 255),
                2,
                cv2.LINE_AA,
            )
        if self.save_dir is not None:
            p = self.save_dir / f"f{seq:06d}_board.jpg"
            cv2.imwrite(str(p), image)
            self.last_path = str(p)
            return
        if not self._window_open:
            cv2.namedWindow(self.window_name)
            self._window_open = True
        cv2.imshow(self.window_name, image)
        cv2.waitKey(self.wait_ms)

    def close(self) -> None:
        if self._window_open:
            cv2.destroyWindow(self.window_name)
            self._window_open = False
