from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional


@dataclass
class SourceConfig:
    """Configuration for frame source (camera device or image folder)."""

    type: str = "device"  # "device", "images"
    device: int | str = 0
    fps: int = 15
    width: int = 0  # 0 keeps the driver default
    height: int = 0
    image_dir: Optional[str] = None  # For "images": directory to replay
    loop: bool = False
    calibration_path: str = "calib/camera.yml"
    frame_id: str = "camera"  # frame of the optical center, used in camera-pose mode

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PoseConfig:
    node_name: str = "checkerboard_pose"
    base_frame: str = "camera"
    frame_id: str = "checkerboard"
    marker_ns: str = "checkerboard"
    skip_frames: int = 1  # < 1: frames are processed only on request
    pose_file: str = ""
    read_pose_file: bool = False
    draw_debug_image: bool = False
    debug_dir: Optional[str] = None
    publish_marker: bool = True
    publish_tf: bool = True
    publish_last_success: bool = False
    publish_camera_pose: bool = False
    use_sub_pixel: bool = True
    checkerboard_width: int = 8  # inner corners per row
    checkerboard_height: int = 6  # inner corners per column
    checkerboard_box_width: float = 0.03
    checkerboard_box_height: float = 0.03
    loop_rate_hz: float = 30.0
    request_timeout_s: Optional[float] = 10.0
    transform_csv: Optional[str] = None
    source: SourceConfig = field(default_factory=SourceConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "PoseConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        import yaml  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "YAML config requested but PyYAML is not installed. "
            "Install with: pip install pyyaml"
        ) from exc
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def load_config(path: str | Path) -> PoseConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = PoseConfig()
    cfg.node_name = str(raw.get("node_name", cfg.node_name))
    cfg.base_frame = str(raw.get("base_frame", cfg.base_frame))
    cfg.frame_id = str(raw.get("frame_id", cfg.frame_id))
    cfg.marker_ns = str(raw.get("marker_ns", cfg.marker_ns))
    cfg.skip_frames = int(raw.get("skip_frames", cfg.skip_frames))
    cfg.pose_file = str(raw.get("pose_file", cfg.pose_file) or "")
    cfg.read_pose_file = bool(raw.get("read_pose_file", cfg.read_pose_file))
    cfg.draw_debug_image = bool(raw.get("draw_debug_image", cfg.draw_debug_image))
    cfg.debug_dir = raw.get("debug_dir", cfg.debug_dir)
    cfg.publish_marker = bool(raw.get("publish_marker", cfg.publish_marker))
    cfg.publish_tf = bool(raw.get("publish_tf", cfg.publish_tf))
    cfg.publish_last_success = bool(raw.get("publish_last_success", cfg.publish_last_success))
    cfg.publish_camera_pose = bool(raw.get("publish_camera_pose", cfg.publish_camera_pose))
    cfg.use_sub_pixel = bool(raw.get("use_sub_pixel", cfg.use_sub_pixel))
    cfg.checkerboard_width = int(raw.get("checkerboard_width", cfg.checkerboard_width))
    cfg.checkerboard_height = int(raw.get("checkerboard_height", cfg.checkerboard_height))
    cfg.checkerboard_box_width = float(raw.get("checkerboard_box_width", cfg.checkerboard_box_width))
    cfg.checkerboard_box_height = float(raw.get("checkerboard_box_height", cfg.checkerboard_box_height))
    cfg.loop_rate_hz = float(raw.get("loop_rate_hz", cfg.loop_rate_hz))
    cfg.request_timeout_s = _optional_float(raw.get("request_timeout_s", cfg.request_timeout_s))
    cfg.transform_csv = raw.get("transform_csv", cfg.transform_csv)

    if cfg.checkerboard_width < 2 or cfg.checkerboard_height < 2:
        raise ValueError("checkerboard_width/height count inner corners and must be >= 2")
    if cfg.checkerboard_box_width <= 0 or cfg.checkerboard_box_height <= 0:
        raise ValueError("checkerboard box sizes must be positive")

    # Load source config if present
    src_raw = raw.get("source")
    if src_raw is not None:
        if not isinstance(src_raw, dict):
            raise ValueError("source must be a mapping")
        src_cfg = SourceConfig()
        src_cfg.type = str(src_raw.get("type", src_cfg.type))
        device = src_raw.get("device", src_cfg.device)
        if isinstance(device, str) and device.isdigit():
            device = int(device)
        src_cfg.device = device
        src_cfg.fps = int(src_raw.get("fps", src_cfg.fps))
        src_cfg.width = int(src_raw.get("width", src_cfg.width))
        src_cfg.height = int(src_raw.get("height", src_cfg.height))
        src_cfg.image_dir = src_raw.get("image_dir", src_cfg.image_dir)
        src_cfg.loop = bool(src_raw.get("loop", src_cfg.loop))
        src_cfg.calibration_path = str(src_raw.get("calibration_path", src_cfg.calibration_path))
        src_cfg.frame_id = str(src_raw.get("frame_id", src_cfg.frame_id))
        if src_cfg.type not in {"device", "images"}:
            raise ValueError(f"Unknown source type: {src_cfg.type}")
        cfg.source = src_cfg

    return cfg
