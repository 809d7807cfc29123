from __future__ import annotations

from typing import Optional

import cv2

from .config import PoseConfig
from .control import FrameThrottle, ModeSwitch, PoseMode
from .debug import DebugView
from .detect import BoardDetection, CheckerboardDetector
from .errors import ImageDecodeError, PoseFormatError, PoseIOError
from .frame_source import CameraFrame, CameraStream, Subscription
from .logging_utils import setup_logger
from .pose import Pose, read_pose, write_pose
from .preprocess import to_gray
from .sinks import BoardMarker, PoseSink, TransformStamped


class PoseController:
    """Owns the pose state of one camera/board pair.

    Frames arrive through :meth:`on_frame` from a :class:`CameraStream`
    subscription. Admitted frames are converted, searched for the board and,
    on success, folded into :attr:`pose`. ``valid`` turns true with the first
    success and gates everything sent to the sinks. ``captured`` is the flag
    a pending request waits on.
    """

    def __init__(
        self,
        config: PoseConfig,
        stream: CameraStream,
        detector: Optional[CheckerboardDetector] = None,
        sinks: Optional[list[PoseSink]] = None,
        debug: Optional[DebugView] = None,
        logger=None,
    ):
        self.config = config
        self.stream = stream
        self.logger = logger or setup_logger(config.node_name)

        if detector is None:
            detector = CheckerboardDetector(
                (config.checkerboard_width, config.checkerboard_height),
                (config.checkerboard_box_width, config.checkerboard_box_height),
                use_sub_pixel=config.use_sub_pixel,
            )
        self.detector = detector
        self.sinks = sinks if sinks is not None else []

        if debug is None:
            debug = DebugView(
                enabled=config.draw_debug_image and not config.read_pose_file,
                window_name=f"Debug_{config.node_name}",
                save_dir=config.debug_dir,
            )
        self.debug = debug

        mode = PoseMode.CAMERA_RELATIVE_TO_TARGET if config.publish_camera_pose else PoseMode.TARGET_RELATIVE_TO_CAMERA
        self.mode = ModeSwitch(mode)
        self.throttle = FrameThrottle(config.skip_frames)

        self.base_frame = config.base_frame
        self.frame_id = config.frame_id
        self.pose = Pose()
        self.valid = False
        self.captured = False
        self.stamp = 0.0
        self.subscription: Optional[Subscription] = None

        self.frames_received = 0
        self.frames_dropped = 0
        self.detections = 0
        self.misses = 0

    @property
    def subscribed(self) -> bool:
        return self.subscription is not None and self.subscription.active

    def compute_camera_pose(self) -> None:
        self.mode.compute_camera_pose()

    def subscribe(self) -> None:
        if self.subscribed:
            return
        if self.config.read_pose_file:
            self._load_pose_file()
            self.subscription = self.stream.subscribe(self.on_replay_frame)
        else:
            self.subscription = self.stream.subscribe(self.on_frame)

    def unsubscribe(self) -> None:
        if self.subscription is not None:
            self.subscription.shutdown()
            self.subscription = None

    def close(self) -> None:
        self.unsubscribe()
        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                self.logger.warning("Closing sink failed: %s", e)
        self.debug.close()

    # -- frame handling -------------------------------------------------

    def on_replay_frame(self, frame: CameraFrame) -> None:
        """Re-publish the pose loaded from file, stamped with the frame time."""
        self.frames_received += 1
        self.stamp = frame.stamp
        self.publish()
        if self.valid:
            self.captured = True

    def on_frame(self, frame: CameraFrame) -> None:
        self.frames_received += 1
        if not self.throttle.admit():
            return

        try:
            gray = to_gray(frame)
        except ImageDecodeError as e:
            self.frames_dropped += 1
            self.logger.error("Failed to convert image: %s", e)
            return

        try:
            detection = self.detector.find(gray, frame.info.projection, frame.info.distortion)
        except Exception as e:
            self.frames_dropped += 1
            self.logger.error("Detection failed on frame %d: %s", frame.seq, e)
            return

        self.stamp = frame.stamp
        canvas = self.debug.canvas(gray)

        if detection is None:
            self.misses += 1
            self.logger.debug("frame=%d board not found", frame.seq)
            if self.config.publish_last_success:
                self.publish()
        else:
            self._accept(detection, frame)
            if canvas is not None:
                self._draw(canvas, detection, frame)

        if canvas is not None:
            label = f"#{frame.seq} {'found' if detection is not None else 'no board'}"
            try:
                self.debug.show(canvas, frame.seq, label)
            except cv2.error as e:
                self.logger.warning("Debug display failed: %s", e)

    def _accept(self, detection: BoardDetection, frame: CameraFrame) -> None:
        candidate = Pose(detection.rvec, detection.tvec)
        if self.mode.camera_pose:
            self.frame_id = frame.info.frame_id
            candidate = candidate.inverted()
        self.pose = candidate
        self.valid = True
        self.detections += 1

        if self.config.pose_file:
            self._persist()

        self.publish()
        self.captured = True
        self.logger.info(
            "frame=%d pose %s -> %s t=[%.4f %.4f %.4f]",
            frame.seq, self.base_frame, self.frame_id, *self.pose.tvec,
        )

    def _draw(self, canvas, detection: BoardDetection, frame: CameraFrame) -> None:
        # axes are drawn for the board in the camera frame, whatever the mode
        board = Pose(detection.rvec, detection.tvec)
        try:
            self.debug.draw_board(canvas, self.detector, detection)
            self.debug.draw_axes(canvas, self.detector, frame.info.projection, frame.info.distortion, board)
        except cv2.error as e:
            self.logger.warning("Debug drawing failed: %s", e)

    # -- persistence ----------------------------------------------------

    def _persist(self) -> bool:
        """Write the current pose to ``pose_file``; False if that failed."""
        try:
            write_pose(self.config.pose_file, self.pose, self.base_frame, self.frame_id)
        except PoseIOError as e:
            self.logger.error("Failed to write pose file: %s", e)
            return False
        return True

    def _load_pose_file(self) -> bool:
        try:
            stored = read_pose(self.config.pose_file)
        except (PoseIOError, PoseFormatError) as e:
            self.logger.error("Failed to read pose file: %s", e)
            return False
        if stored.base_frame != self.base_frame or stored.frame_id != self.frame_id:
            self.logger.warning(
                "pose file frames %s -> %s differ from configured %s -> %s",
                stored.base_frame, stored.frame_id, self.base_frame, self.frame_id,
            )
        self.pose = stored.pose
        self.valid = True
        self.logger.info("pose loaded from %s", self.config.pose_file)
        return True

    # -- export ---------------------------------------------------------

    def publish(self) -> None:
        self.publish_transform()
        self.publish_marker()

    def publish_transform(self) -> Optional[TransformStamped]:
        if not self.config.publish_tf or not self.valid:
            return None
        transform = TransformStamped(
            stamp=self.stamp,
            parent_frame=self.base_frame,
            child_frame=self.frame_id,
            translation=self.pose.tvec.copy(),
            rotation=self.pose.quaternion(),
        )
        for sink in self.sinks:
            try:
                sink.send_transform(transform)
            except Exception as e:
                self.logger.warning("Transform publish failed: %s", e)
        return transform

    def publish_marker(self) -> Optional[BoardMarker]:
        if not self.config.publish_marker or not self.valid:
            return None
        bw = self.config.checkerboard_box_width
        bh = self.config.checkerboard_box_height
        marker = BoardMarker(
            stamp=self.stamp,
            frame_id=self.base_frame,
            ns=self.config.marker_ns,
            position=self.pose.tvec.copy(),
            orientation=self.pose.quaternion(),
            scale=(bw * 2, bh * 2, (bh + bw) / 20),
        )
        for sink in self.sinks:
            try:
                sink.send_marker(marker)
            except Exception as e:
                self.logger.warning("Marker publish failed: %s", e)
        return marker
