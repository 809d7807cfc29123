"""Checkerboard pose estimation service."""

from .config import PoseConfig
from .controller import PoseController
from .pose import Pose
from .rendezvous import PoseService

__all__ = ["PoseConfig", "PoseController", "Pose", "PoseService"]
