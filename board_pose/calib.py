from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np

from .frame_source import CameraInfo


def _mat(fs, key: str):
    node = fs.getNode(key)
    if node.empty() or node.isNone():
        return None
    return node.mat()


def load_calib(path: str | Path, frame_id: str = "camera") -> CameraInfo:
    """Read intrinsics from an OpenCV calibration file.

    Expects ``camera_matrix`` and ``dist_coeffs``; ``projection_matrix``,
    ``image_width`` and ``image_height`` are optional. Without a projection
    matrix the projection is ``[K | 0]``.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Calibration not found: {p}")
    fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    try:
        K = _mat(fs, "camera_matrix")
        if K is None:
            raise ValueError(f"{p}: missing camera_matrix")
        dist = _mat(fs, "dist_coeffs")
        P = _mat(fs, "projection_matrix")
        width_node = fs.getNode("image_width")
        height_node = fs.getNode("image_height")
        w = 0 if width_node.empty() else int(width_node.real())
        h = 0 if height_node.empty() else int(height_node.real())
    finally:
        fs.release()

    if P is None:
        P = np.hstack([np.asarray(K, dtype=np.float64).reshape(3, 3), np.zeros((3, 1))])
    if dist is None:
        dist = np.zeros(5)
    return CameraInfo(
        projection=np.asarray(P, dtype=np.float64).reshape(3, 4),
        distortion=np.asarray(dist, dtype=np.float64).reshape(-1),
        frame_id=frame_id,
        width=w,
        height=h,
    )
