from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np


@dataclass
class TransformStamped:
    stamp: float
    parent_frame: str
    child_frame: str
    translation: np.ndarray  # (3,)
    rotation: np.ndarray  # quaternion (x, y, z, w)


@dataclass
class BoardMarker:
    stamp: float
    frame_id: str
    ns: str
    position: np.ndarray
    orientation: np.ndarray
    scale: tuple[float, float, float]
    color: tuple[float, float, float, float] = (0.0, 1.0, 0.0, 1.0)
    id: int = 0
    kind: str = "cube"
    lifetime: float = 5.0


class PoseSink(ABC):
    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def send_transform(self, transform: TransformStamped) -> None: ...

    @abstractmethod
    def send_marker(self, marker: BoardMarker) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvPoseSink(PoseSink):
    """Appends one row per published transform or marker."""

    HEADER = [
        "stamp", "kind",
        "parent_frame", "child_frame",
        "tx", "ty", "tz",
        "qx", "qy", "qz", "qw",
    ]

    def __init__(self, csv_path: str | Path):
        self.csv_path = Path(csv_path)
        self._fh = None
        self._w = None

    def open(self) -> None:
        self.csv_path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)

    def _row(self, stamp, kind, parent, child, translation, rotation) -> None:
        if self._w is None:
            return
        t = np.asarray(translation, dtype=float).reshape(3).tolist()
        q = np.asarray(rotation, dtype=float).reshape(4).tolist()
        self._w.writerow([f"{stamp:.6f}", kind, parent, child, *t, *q])
        self._fh.flush()

    def send_transform(self, transform: TransformStamped) -> None:
        self._row(
            transform.stamp, "transform",
            transform.parent_frame, transform.child_frame,
            transform.translation, transform.rotation,
        )

    def send_marker(self, marker: BoardMarker) -> None:
        self._row(
            marker.stamp, "marker",
            marker.frame_id, f"{marker.ns}/{marker.id}",
            marker.position, marker.orientation,
        )

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._w = None


class LogPoseSink(PoseSink):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def open(self) -> None:
        return None

    def send_transform(self, transform: TransformStamped) -> None:
        t = np.asarray(transform.translation).reshape(3)
        q = np.asarray(transform.rotation).reshape(4)
        self.logger.debug(
            "tf %s -> %s t=[%.4f %.4f %.4f] q=[%.4f %.4f %.4f %.4f]",
            transform.parent_frame, transform.child_frame, *t, *q,
        )

    def send_marker(self, marker: BoardMarker) -> None:
        self.logger.debug("marker %s/%d in %s", marker.ns, marker.id, marker.frame_id)

    def close(self) -> None:
        return None


class NullSink(PoseSink):
    def open(self) -> None:
        return None

    def send_transform(self, transform: TransformStamped) -> None:
        return None

    def send_marker(self, marker: BoardMarker) -> None:
        return None

    def close(self) -> None:
        return None
