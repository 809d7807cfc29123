import argparse
import json
import os
import signal
import sys
import threading
from typing import Optional

from .calib import load_calib
from .config import PoseConfig, load_config
from .controller import PoseController
from .errors import PoseError
from .frame_source import CameraStream, DeviceCameraSource, FrameSource, ImageFolderSource
from .logging_utils import add_file_handler, setup_logger
from .rendezvous import PoseService
from .sinks import CsvPoseSink, LogPoseSink, NullSink, PoseSink


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Estimate the pose of a checkerboard relative to a camera")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")

    ap.add_argument("--node-name")
    ap.add_argument("--base-frame")
    ap.add_argument("--frame-id")
    ap.add_argument("--skip-frames", type=int)
    ap.add_argument("--pose-file")
    ap.add_argument("--read-pose-file", action="store_true")
    ap.add_argument("--camera-pose", action="store_true", help="Publish the camera pose relative to the board")
    ap.add_argument("--debug", action="store_true", help="Draw debug images")
    ap.add_argument("--debug-dir")
    ap.add_argument("--transform-csv")
    ap.add_argument("--timeout", type=float, help="Request timeout in seconds")
    ap.add_argument("--log-file")
    ap.add_argument("--log-level", default="info", help="Log level name, e.g. debug")
    ap.add_argument("--query", action="store_true", help="Capture one pose, print it as JSON and exit")
    ap.add_argument(
        "--request-signal",
        default="SIGUSR1",
        help="Signal that makes a running node answer one pose request on stdout",
    )

    return ap


def _apply_args(cfg: PoseConfig, args: argparse.Namespace) -> PoseConfig:
    cfg.apply_overrides(
        node_name=args.node_name,
        base_frame=args.base_frame,
        frame_id=args.frame_id,
        skip_frames=args.skip_frames,
        pose_file=args.pose_file,
        read_pose_file=True if args.read_pose_file else None,
        publish_camera_pose=True if args.camera_pose else None,
        draw_debug_image=True if args.debug else None,
        debug_dir=args.debug_dir,
        transform_csv=args.transform_csv,
        request_timeout_s=args.timeout,
    )
    return cfg


def build_source(cfg: PoseConfig) -> FrameSource:
    src = cfg.source
    info = load_calib(src.calibration_path, frame_id=src.frame_id)
    if src.type == "images":
        if not src.image_dir:
            raise ValueError("source.image_dir is required for an images source")
        return ImageFolderSource(src.image_dir, info, loop=src.loop)
    return DeviceCameraSource(src.device, src.fps, src.width, src.height, info)


def build_sinks(cfg: PoseConfig, logger) -> list[PoseSink]:
    if not (cfg.publish_tf or cfg.publish_marker):
        logger.info("tf and marker export disabled")
        sinks: list[PoseSink] = [NullSink()]
    else:
        sinks = [LogPoseSink(logger)]
        if cfg.transform_csv:
            sinks.append(CsvPoseSink(cfg.transform_csv))
    for sink in sinks:
        sink.open()
    return sinks


def serve_request(service: PoseService, logger) -> bool:
    """Answer one pose request and print the response as a JSON line."""
    try:
        response = service.compute_pose()
    except PoseError as e:
        logger.error("pose request failed: %s", e)
        return False
    print(json.dumps(response.as_dict()), flush=True)
    return True


def main(argv: Optional[list[str]] = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)

    logger = setup_logger(cfg.node_name, args.log_level)
    if args.log_file:
        add_file_handler(logger, cfg.node_name, args.log_file)
    logger.info("config: %s", cfg.as_dict())

    stream = CameraStream(build_source(cfg))
    controller = PoseController(cfg, stream, sinks=build_sinks(cfg, logger), logger=logger)
    service = PoseService(controller, stream, timeout=cfg.request_timeout_s)

    if args.query:
        try:
            ok = serve_request(service, logger)
        finally:
            controller.close()
        return 0 if ok else 1

    if cfg.skip_frames > 0:
        controller.subscribe()
    else:
        logger.info("Skip frame count is %d, images are ONLY processed on request", cfg.skip_frames)

    stop_event = threading.Event()
    request_event = threading.Event()

    def _handle_signal(_sig, _frame):
        stop_event.set()
        service.cancel()

    def _handle_request(_sig, _frame):
        request_event.set()

    def _serve_pending():
        if request_event.is_set():
            request_event.clear()
            serve_request(service, logger)

    handlers = {signal.SIGINT: _handle_signal}
    if hasattr(signal, "SIGTERM"):
        handlers[signal.SIGTERM] = _handle_signal
    request_sig = getattr(signal, args.request_signal, None)
    if request_sig is None:
        logger.warning("signal %s is not available, pose requests are disabled", args.request_signal)
    else:
        handlers[request_sig] = _handle_request
        logger.info("send %s to pid %d to request a pose", args.request_signal, os.getpid())
    previous = {sig: signal.signal(sig, handler) for sig, handler in handlers.items()}

    try:
        stream.spin(stop_event, cfg.loop_rate_hz, on_tick=_serve_pending)
    finally:
        controller.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    logger.info(
        "summary frames=%d detections=%d misses=%d dropped=%d",
        controller.frames_received,
        controller.detections,
        controller.misses,
        controller.frames_dropped,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
