"""Rigid pose value type and its on-disk record.

A pose is stored as a rotation vector plus a translation, the same pair
``cv2.solvePnP`` returns. Pose files are ``cv2.FileStorage`` documents (YAML
for ``.yml``/``.yaml``), one record per file, overwritten on each write::

    %YAML:1.0
    ---
    base_frame: camera
    frame_id: checkerboard
    rvec: !!opencv-matrix
       rows: 3
       cols: 1
       dt: d
       data: [ 0., 0., 0. ]
    tvec: ...
    quaternion: ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import cv2
import numpy as np

from .errors import PoseFormatError, PoseIOError
from .transforms import (
    invert_transform,
    quaternion_to_rvec,
    rvec_to_quaternion,
    rvec_tvec_to_matrix,
)


def _vec3(value) -> np.ndarray:
    return np.array(value, dtype=np.float64).reshape(3)


@dataclass(eq=False)
class Pose:
    rvec: np.ndarray = field(default_factory=lambda: np.zeros(3))
    tvec: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.rvec = _vec3(self.rvec)
        self.tvec = _vec3(self.tvec)

    @property
    def x(self) -> float:
        return float(self.tvec[0])

    @property
    def y(self) -> float:
        return float(self.tvec[1])

    @property
    def z(self) -> float:
        return float(self.tvec[2])

    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def matrix(self) -> np.ndarray:
        return rvec_tvec_to_matrix(self.rvec, self.tvec)

    def inverted(self) -> "Pose":
        """Return the inverse rigid motion (board-in-camera <-> camera-in-board).

        The rotation vector is negated rather than recovered from the inverse
        matrix, so inverting twice gives back the same vector even when its
        angle exceeds pi.
        """
        T_inv = invert_transform(self.matrix())
        return Pose(-self.rvec, T_inv[:3, 3])

    def quaternion(self) -> np.ndarray:
        """Rotation as a unit quaternion ``(x, y, z, w)``."""
        return rvec_to_quaternion(self.rvec)

    def isclose(self, other: "Pose", atol: float = 1e-6) -> bool:
        return bool(
            np.allclose(self.rvec, other.rvec, atol=atol)
            and np.allclose(self.tvec, other.tvec, atol=atol)
        )


@dataclass
class StoredPose:
    pose: Pose
    base_frame: str
    frame_id: str


def write_pose(path: str | Path, pose: Pose, base_frame: str, frame_id: str) -> None:
    """Overwrite ``path`` with a single pose record.

    Raises:
        PoseIOError: if the file cannot be opened for writing.
    """
    p = Path(path)
    if not p.parent.is_dir():
        raise PoseIOError(f"Pose file directory does not exist: {p.parent}")
    try:
        fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_WRITE)
    except cv2.error as exc:
        raise PoseIOError(f"Failed to open pose file for writing: {p}: {exc}") from exc
    if not fs.isOpened():
        raise PoseIOError(f"Failed to open pose file for writing: {p}")
    try:
        fs.write("base_frame", str(base_frame))
        fs.write("frame_id", str(frame_id))
        fs.write("rvec", pose.rvec.reshape(3, 1))
        fs.write("tvec", pose.tvec.reshape(3, 1))
        fs.write("quaternion", pose.quaternion().reshape(4, 1))
    except cv2.error as exc:
        raise PoseIOError(f"Failed to write pose file: {p}: {exc}") from exc
    finally:
        fs.release()


def _read_string(fs, key: str, path: Path) -> str:
    node = fs.getNode(key)
    if node.empty() or node.isNone():
        raise PoseFormatError(f"{path}: missing '{key}'")
    if not node.isString():
        raise PoseFormatError(f"{path}: '{key}' must be a string")
    return node.string()


def _read_vector(fs, key: str, size: int, path: Path) -> np.ndarray:
    node = fs.getNode(key)
    if node.empty() or node.isNone():
        raise PoseFormatError(f"{path}: missing '{key}'")
    if node.isSeq():
        values = []
        for i in range(node.size()):
            el = node.at(i)
            if not (el.isReal() or el.isInt()):
                raise PoseFormatError(f"{path}: '{key}' element {i} is not a number")
            values.append(el.real())
    else:
        values = node.mat()
        if values is None:
            raise PoseFormatError(f"{path}: '{key}' is not a matrix or sequence")
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    if arr.size != size:
        raise PoseFormatError(f"{path}: '{key}' must have {size} values, got {arr.size}")
    if not np.all(np.isfinite(arr)):
        raise PoseFormatError(f"{path}: '{key}' contains non-finite values")
    return arr


def read_pose(path: str | Path) -> StoredPose:
    """Load a pose record written by :func:`write_pose`.

    The rotation is taken from ``rvec`` or, when that node is absent, from a
    4-element ``quaternion``.

    Raises:
        PoseIOError: if the file does not exist or cannot be opened.
        PoseFormatError: if the content cannot be parsed into a pose.
    """
    p = Path(path)
    if not p.is_file():
        raise PoseIOError(f"Pose file not found: {p}")
    try:
        fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    except cv2.error as exc:
        raise PoseFormatError(f"Failed to parse pose file {p}: {exc}") from exc
    if not fs.isOpened():
        raise PoseIOError(f"Failed to open pose file: {p}")

    try:
        base_frame = _read_string(fs, "base_frame", p)
        frame_id = _read_string(fs, "frame_id", p)
        tvec = _read_vector(fs, "tvec", 3, p)
        rvec_node = fs.getNode("rvec")
        if rvec_node.empty() or rvec_node.isNone():
            quat = _read_vector(fs, "quaternion", 4, p)
            if np.linalg.norm(quat) < 1e-12:
                raise PoseFormatError(f"{p}: 'quaternion' has zero norm")
            rvec = quaternion_to_rvec(quat)
        else:
            rvec = _read_vector(fs, "rvec", 3, p)
    except cv2.error as exc:
        raise PoseFormatError(f"Malformed pose file {p}: {exc}") from exc
    finally:
        fs.release()

    return StoredPose(Pose(rvec, tvec), base_frame, frame_id)
