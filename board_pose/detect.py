from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import cv2
import numpy as np

from .pose import Pose


@dataclass
class BoardDetection:
    rvec: np.ndarray  # (3,)
    tvec: np.ndarray  # (3,)
    corners: Any  # (N,1,2) float32


def intrinsic_matrix(projection) -> np.ndarray:
    """Left 3x3 block of a 3x4 projection matrix (a 3x3 matrix passes through)."""
    P = np.asarray(projection, dtype=np.float64)
    if P.size == 9:
        return P.reshape(3, 3)
    if P.size == 12:
        return np.ascontiguousarray(P.reshape(3, 4)[:, :3])
    raise ValueError(f"projection must be 3x3 or 3x4, got {P.shape}")


def distortion_vector(distortion) -> np.ndarray:
    if distortion is None:
        return np.zeros(5)
    d = np.asarray(distortion, dtype=np.float64).reshape(-1)
    if d.size == 0:
        return np.zeros(5)
    return d


def board_object_points(pattern_size: Tuple[int, int], square_size: Tuple[float, float]) -> np.ndarray:
    """Inner corner positions on the board plane (z = 0), row by row."""
    cols, rows = pattern_size
    objp = np.zeros((cols * rows, 3), np.float32)
    grid = np.mgrid[0:cols, 0:rows].T.reshape(-1, 2).astype(np.float32)
    objp[:, 0] = grid[:, 0] * square_size[0]
    objp[:, 1] = grid[:, 1] * square_size[1]
    return objp


class CheckerboardDetector:
    """
    Finds a checkerboard of known geometry and solves its pose.

    ``pattern_size`` counts inner corners (columns, rows); ``square_size`` is
    the box width and height in meters. The returned pose is the board in
    the camera frame.
    """

    FIND_FLAGS = cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE
    SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.01)

    def __init__(
        self,
        pattern_size: Tuple[int, int],
        square_size: Tuple[float, float],
        use_sub_pixel: bool = True,
    ):
        self.pattern_size = (int(pattern_size[0]), int(pattern_size[1]))
        self.square_size = (float(square_size[0]), float(square_size[1]))
        self.use_sub_pixel = use_sub_pixel
        self.object_points = board_object_points(self.pattern_size, self.square_size)

    def find(self, gray: np.ndarray, projection, distortion) -> Optional[BoardDetection]:
        found, corners = cv2.findChessboardCorners(gray, self.pattern_size, flags=self.FIND_FLAGS)
        if not found or corners is None:
            return None

        if self.use_sub_pixel:
            corners = cv2.cornerSubPix(gray, corners, (11, 11), (-1, -1), self.SUBPIX_CRITERIA)

        K = intrinsic_matrix(projection)
        dist = distortion_vector(distortion)
        ok, rvec, tvec = cv2.solvePnP(self.object_points, corners, K, dist)
        if not ok:
            return None
        return BoardDetection(rvec.reshape(3), tvec.reshape(3), corners)

    def draw_board(self, image: np.ndarray, detection: BoardDetection) -> np.ndarray:
        cv2.drawChessboardCorners(image, self.pattern_size, detection.corners, True)
        return image

    def draw_axes(
        self,
        image: np.ndarray,
        projection,
        distortion,
        pose: Pose,
        length: Optional[float] = None,
    ) -> np.ndarray:
        if length is None:
            length = max(0.01, 2.0 * max(self.square_size))
        cv2.drawFrameAxes(
            image,
            intrinsic_matrix(projection),
            distortion_vector(distortion),
            pose.rvec,
            pose.tvec,
            length,
        )
        return image
